from __future__ import annotations

from typing import Protocol

from leakrelay.core.models import Report, UploadCredential, UploadReceipt


class Uploader(Protocol):
    """Delivery boundary for finished reports."""
    def upload(self, report: Report, credential: UploadCredential | None) -> UploadReceipt:
        """Deliver a report to the location named by the credential.

        Raises:
            UploadFailed: When the credential is missing or the transfer
                does not complete with a 2xx status.
        """
        ...
