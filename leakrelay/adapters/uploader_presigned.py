from __future__ import annotations

import logging
import time
from typing import Callable
from urllib import request as url_request

from leakrelay.adapters.http_client import Opener, TransportError, send
from leakrelay.core import retry
from leakrelay.core.errors import UploadFailed
from leakrelay.core.models import Report, RetryPolicy, UploadCredential, UploadReceipt
from leakrelay.core.report import serialize_report


logger = logging.getLogger(__name__)


class PresignedUrlUploader:
    """PUT a serialized report to a presigned object-store URL.

    The Content-Type header is part of the presigned signature, so it is
    taken from the credential rather than chosen here.
    """
    def __init__(
        self,
        policy: RetryPolicy,
        timeout_s: float = 10.0,
        opener: Opener = url_request.urlopen,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.policy = policy
        self.timeout_s = timeout_s
        self.opener = opener
        self.sleep = sleep
        self.clock = clock

    def upload(self, report: Report, credential: UploadCredential | None) -> UploadReceipt:
        if credential is None or not credential.url or not credential.url.strip():
            raise UploadFailed("No upload credential was provided", reason="missing_credential")

        body = serialize_report(report)

        def attempt() -> int:
            return self._attempt(credential, body)

        result = retry.execute(attempt, self.policy, name="report_upload", sleep=self.sleep)
        logger.info(
            "Uploaded report (%d bytes, %d finding(s)) to %s in %d attempt(s)",
            len(body),
            len(report.findings),
            credential.redacted_url(),
            result.attempts,
        )
        return UploadReceipt(status=result.value, attempts=result.attempts, bytes_sent=len(body))

    def _attempt(self, credential: UploadCredential, body: bytes) -> int:
        if credential.is_expired(self.clock()):
            raise UploadFailed(
                "Upload credential expired before the transfer could complete",
                reason="credential_expired",
            )
        try:
            response = send(
                credential.method,
                credential.url,
                timeout=self.timeout_s,
                body=body,
                headers={"Content-Type": credential.content_type},
                opener=self.opener,
            )
        except TransportError as exc:
            raise UploadFailed(str(exc), reason="network_error", retryable=True) from exc

        if response.ok:
            return response.status
        if self.policy.is_transient_status(response.status):
            raise UploadFailed(
                f"Upload target answered HTTP {response.status}",
                reason=f"http_{response.status}",
                retryable=True,
            )
        # Object stores answer 403 for signature mismatches and expired URLs.
        raise UploadFailed(
            f"Upload target rejected the transfer with HTTP {response.status}",
            reason="rejected",
        )
