from __future__ import annotations

import logging
import os
import subprocess
import tempfile
import time
from pathlib import Path

from leakrelay.core.errors import ScanToolError
from leakrelay.core.models import Finding, ScanResult
from leakrelay.core.redaction import redact_text
from leakrelay.core.report import load_findings


logger = logging.getLogger(__name__)


class GitleaksScanner:
    """Run gitleaks over a checkout's git history.

    Scanner failures never raise: they are returned as ScanResult.error
    alongside whatever findings were readable, so a broken scanner does not
    block the rest of the CI job.
    """
    def __init__(
        self,
        scanner_path: str,
        timeout_ms: int = 600_000,
        scanner_version: str | None = None,
        extra_args: list[str] | None = None,
    ) -> None:
        self.scanner_path = scanner_path
        self.timeout_ms = timeout_ms
        self.scanner_version = scanner_version
        self.extra_args = list(extra_args or [])

    def scan(self, source_dir: str) -> ScanResult:
        start = time.time()
        if not os.path.exists(self.scanner_path):
            return self._failed(start, ScanToolError(f"Scanner not found: {self.scanner_path}", reason="tool_not_found"))

        with tempfile.TemporaryDirectory(prefix="leakrelay-") as tmp_dir:
            report_path = Path(tmp_dir) / "gitleaks-report.json"
            cmd = [
                self.scanner_path,
                "detect",
                "--source",
                source_dir,
                "--report-format",
                "json",
                "--report-path",
                str(report_path),
                "--exit-code",
                "0",
                "--no-banner",
                *self.extra_args,
            ]
            try:
                proc = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout_ms / 1000,
                    check=False,
                )
            except subprocess.TimeoutExpired:
                findings, _ = _read_partial(report_path)
                error = ScanToolError(f"Scanner timed out after {self.timeout_ms} ms", reason="tool_timeout")
                return self._failed(start, error, findings)
            except OSError as exc:
                return self._failed(start, ScanToolError(f"Scanner could not start: {exc}", reason="tool_error"))

            findings, parse_error = _read_partial(report_path)

        if proc.returncode != 0:
            stderr = redact_text((proc.stderr or "")[-2000:])
            error = ScanToolError(
                f"Scanner exited with code {proc.returncode}: {stderr.strip()}",
                reason="tool_error",
            )
            return self._failed(start, error, findings)
        if parse_error is not None:
            return self._failed(start, parse_error, findings)

        logger.info("Scanner reported %d finding(s)", len(findings))
        return ScanResult(
            findings=tuple(findings),
            scanner_version=self.scanner_version,
            duration_ms=_elapsed_ms(start),
        )

    def _failed(self, start: float, error: ScanToolError, findings: list[Finding] | None = None) -> ScanResult:
        return ScanResult(
            findings=tuple(findings or []),
            scanner_version=self.scanner_version,
            error=error,
            duration_ms=_elapsed_ms(start),
        )


class ReportFileScanner:
    """Use a findings document produced by an earlier CI step."""
    def __init__(self, report_path: str) -> None:
        self.report_path = report_path

    def scan(self, source_dir: str) -> ScanResult:
        start = time.time()
        if not os.path.exists(self.report_path):
            error = ScanToolError(f"Findings file not found: {self.report_path}", reason="missing_report")
            return ScanResult(error=error, duration_ms=_elapsed_ms(start))
        findings, error = _read_partial(Path(self.report_path))
        return ScanResult(findings=tuple(findings), error=error, duration_ms=_elapsed_ms(start))


def _read_partial(report_path: Path) -> tuple[list[Finding], ScanToolError | None]:
    try:
        return load_findings(report_path), None
    except ScanToolError as exc:
        return [], exc
    except OSError as exc:
        return [], ScanToolError(f"Scanner report unreadable: {exc}", reason="invalid_tool_output")


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


class UnavailableScanner:
    """Stand-in used when no scanner binary could be resolved."""
    def __init__(self, detail: str) -> None:
        self.detail = detail

    def scan(self, source_dir: str) -> ScanResult:
        return ScanResult(error=ScanToolError(self.detail, reason="tool_not_found"))
