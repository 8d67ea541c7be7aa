from __future__ import annotations

from typing import Protocol

from leakrelay.core.models import ScanResult


class ScannerGateway(Protocol):
    """Runs the external secret scanner."""
    def scan(self, source_dir: str) -> ScanResult:
        """Scan a checkout and return its findings.

        Scanner failures are reported through ScanResult.error, never raised.
        """
        ...
