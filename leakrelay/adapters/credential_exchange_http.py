from __future__ import annotations

import json
import logging
import time
from typing import Callable
from urllib import request as url_request
from urllib.parse import urlsplit

from leakrelay.adapters.http_client import HttpResponse, Opener, TransportError, send
from leakrelay.core import retry
from leakrelay.core.errors import ExchangeFailed
from leakrelay.core.models import IdentityAssertion, RetryPolicy, RunMetadata, UploadCredential
from leakrelay.core.redaction import redact_text


logger = logging.getLogger(__name__)

TOKEN_FIELD = "oidc_token"
URL_FIELD = "presigned_url"


class HttpCredentialExchange:
    """Exchange a CI identity token for a presigned upload URL.

    The token travels in the JSON body under ``oidc_token``; no Authorization
    header is sent, so a repository-scoped token can never reach the backend
    by accident.
    """
    def __init__(
        self,
        policy: RetryPolicy,
        timeout_s: float = 10.0,
        metadata: RunMetadata | None = None,
        opener: Opener = url_request.urlopen,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.policy = policy
        self.timeout_s = timeout_s
        self.metadata = metadata
        self.opener = opener
        self.sleep = sleep
        self.clock = clock
        self.last_attempts = 0

    def exchange(self, assertion: IdentityAssertion, endpoint: str) -> UploadCredential:
        """Exchange the assertion under the retry policy.

        Raises:
            ExchangeFailed: After a terminal answer or exhausted attempts.
        """
        body = json.dumps(self._payload(assertion)).encode("utf-8")

        def attempt() -> UploadCredential:
            return self._attempt(endpoint, body)

        try:
            result = retry.execute(attempt, self.policy, name="credential_exchange", sleep=self.sleep)
        except ExchangeFailed as exc:
            self.last_attempts = exc.attempts
            raise
        self.last_attempts = result.attempts
        logger.info(
            "Received upload credential for %s after %d attempt(s)",
            result.value.redacted_url(),
            result.attempts,
        )
        return result.value

    def _payload(self, assertion: IdentityAssertion) -> dict:
        payload = {TOKEN_FIELD: assertion.value}
        if self.metadata is not None:
            payload.update(
                {
                    "tenant_id": self.metadata.tenant_id,
                    "repository": self.metadata.repository,
                    "commit_sha": self.metadata.commit_sha,
                    "run_id": self.metadata.run_id,
                    "run_attempt": self.metadata.run_attempt,
                }
            )
        return payload

    def _attempt(self, endpoint: str, body: bytes) -> UploadCredential:
        try:
            response = send(
                "POST",
                endpoint,
                timeout=self.timeout_s,
                body=body,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                opener=self.opener,
            )
        except TransportError as exc:
            raise ExchangeFailed(str(exc), reason="network_error", retryable=True) from exc

        if not response.ok:
            raise self._status_error(response)
        return self._parse_credential(response)

    def _status_error(self, response: HttpResponse) -> ExchangeFailed:
        detail = redact_text(response.text_excerpt())
        if self.policy.is_transient_status(response.status):
            return ExchangeFailed(
                f"Exchange endpoint answered HTTP {response.status}",
                reason=f"http_{response.status}",
                retryable=True,
            )
        return ExchangeFailed(
            f"Exchange endpoint rejected the request with HTTP {response.status}: {detail}",
            reason="rejected",
            retryable=False,
        )

    def _parse_credential(self, response: HttpResponse) -> UploadCredential:
        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ExchangeFailed("Exchange response is not valid JSON", reason="malformed_response") from exc
        if not isinstance(payload, dict):
            raise ExchangeFailed("Exchange response is not a JSON object", reason="malformed_response")

        url = payload.get(URL_FIELD)
        if not isinstance(url, str) or not url.strip() or not _is_upload_url(url.strip()):
            raise ExchangeFailed(
                f"Exchange response has no usable {URL_FIELD}",
                reason="malformed_response",
            )

        expires_at = None
        expires_in = payload.get("expires_in")
        if isinstance(expires_in, (int, float)) and not isinstance(expires_in, bool) and expires_in > 0:
            expires_at = self.clock() + float(expires_in)
        return UploadCredential(url=url.strip(), expires_at=expires_at)


def _is_upload_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if not parts.netloc:
        return False
    if parts.scheme == "https":
        return True
    # Plain http is only accepted for local test backends.
    return parts.scheme == "http" and parts.hostname in {"localhost", "127.0.0.1"}
