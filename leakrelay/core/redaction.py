from __future__ import annotations

import re
from typing import Any


REDACTED = "[REDACTED]"

_PATTERNS = [
    (re.compile(r"(Authorization\s*:\s*Bearer\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(x-api-key\s*[:=])\s*[^\s]+", re.IGNORECASE), r"\1 [REDACTED]"),
    (re.compile(r"(api_key\s*[:=])\s*[^\s]+", re.IGNORECASE), r"\1 [REDACTED]"),
    (re.compile(r"(token\s*[:=])\s*[^\s]+", re.IGNORECASE), r"\1 [REDACTED]"),
    (re.compile(r"(secret\s*[:=])\s*[^\s]+", re.IGNORECASE), r"\1 [REDACTED]"),
    (re.compile(r"(X-Amz-(?:Signature|Credential|Security-Token)=)[^&\s\"']+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"\beyJ[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]*"), REDACTED),
]

_FINDING_SECRET_KEYS = ("Secret", "Match")


def redact_text(value: str) -> str:
    """Redact common credential patterns from text.

    Notes:
        Applied to every log record and to backend error bodies before they
        are echoed, so tokens and presigned signatures stay out of CI logs.
    """
    redacted = value
    for pattern, repl in _PATTERNS:
        redacted = pattern.sub(repl, redacted)
    return redacted


def redact_data(value: Any) -> Any:
    """Recursively redact credential patterns from structured data."""
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, list):
        return [redact_data(item) for item in value]
    if isinstance(value, dict):
        return {key: redact_data(val) for key, val in value.items()}
    return value


def redact_report_dict(report: dict) -> dict:
    """Mask secret material in a serialized report for local artifacts.

    The delivered payload keeps the secrets; only copies written next to the
    CI job (artifacts, logs) go through this.
    """
    masked = dict(report)
    findings = []
    for item in report.get("findings", []):
        entry = dict(item)
        for key in _FINDING_SECRET_KEYS:
            if entry.get(key):
                entry[key] = REDACTED
        findings.append(entry)
    masked["findings"] = findings
    return masked
