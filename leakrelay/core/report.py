from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

from leakrelay.core.errors import ConfigurationError, ScanToolError
from leakrelay.core.models import Finding, Report, RunMetadata


REPORT_FIELDS = (
    "tenant_id",
    "repository",
    "commit_sha",
    "run_id",
    "run_attempt",
    "ref",
    "ref_name",
    "actor",
    "run_url",
    "generated_at",
)


def build_report(findings: Iterable[Finding], metadata: RunMetadata) -> Report:
    """Merge scanner findings with run metadata into a single report.

    Args:
        findings (Iterable[Finding]): Findings in scanner order; may be empty.
        metadata (RunMetadata): Metadata captured at process start.

    Returns:
        Report: Immutable report ready for serialization.

    Raises:
        ConfigurationError: When any metadata field is empty.
    """
    values = metadata.to_dict()
    missing = [name for name in REPORT_FIELDS if not str(values.get(name) or "").strip()]
    if missing:
        raise ConfigurationError(
            f"Run metadata is incomplete: missing {', '.join(missing)}",
            reason="missing_metadata",
        )
    return Report(metadata=metadata, findings=tuple(findings))


def report_to_dict(report: Report) -> dict[str, Any]:
    """Render the backend report schema.

    The key names here are a contract with the backend; renaming any of them
    requires a coordinated migration.
    """
    payload: dict[str, Any] = dict(report.metadata.to_dict())
    payload["findings"] = [finding.to_dict() for finding in report.findings]
    return payload


def serialize_report(report: Report) -> bytes:
    return json.dumps(report_to_dict(report), indent=2, sort_keys=True).encode("utf-8")


def parse_findings(raw: Any) -> list[Finding]:
    """Parse a decoded scanner document into findings.

    Raises:
        ScanToolError: When the document is not a list of objects.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ScanToolError("Scanner report must be a JSON array", reason="invalid_tool_output")
    findings: list[Finding] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ScanToolError(
                f"Scanner report entry {index} is not an object",
                reason="invalid_tool_output",
            )
        try:
            findings.append(Finding.from_scanner(item))
        except (TypeError, ValueError) as exc:
            raise ScanToolError(
                f"Scanner report entry {index} has invalid field types: {exc}",
                reason="invalid_tool_output",
            ) from exc
    return findings


def load_findings(path: str | Path) -> list[Finding]:
    """Load findings from a scanner report file.

    Notes:
        A missing or empty file is a clean scan. gitleaks skips writing the
        report in some failure modes, and that is handled by the caller's
        scanner tolerance rather than here.
    """
    report_path = Path(path)
    if not report_path.exists():
        return []
    text = report_path.read_text(encoding="utf-8").strip()
    if not text:
        return []
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ScanToolError(
            f"Scanner report is not valid JSON: {report_path}",
            reason="invalid_tool_output",
        ) from exc
    return parse_findings(raw)
