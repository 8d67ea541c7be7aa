from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar
from urllib.parse import urlsplit, urlunsplit


T = TypeVar("T")


@dataclass(frozen=True)
class Finding:
    """One secret occurrence as reported by the scanner."""
    rule_id: str
    file: str
    start_line: int
    end_line: int
    start_column: int
    end_column: int
    match: str
    secret: str
    commit: str
    author: str
    email: str
    message: str
    date: str
    entropy: float
    description: str = ""
    fingerprint: str = ""
    tags: tuple[str, ...] = ()

    @staticmethod
    def from_scanner(data: dict[str, Any]) -> "Finding":
        """Build a Finding from one gitleaks report entry.

        Notes:
            Missing keys fall back to empty values; the scanner omits commit
            fields when scanning a plain directory.
        """
        return Finding(
            rule_id=str(data.get("RuleID", "")),
            file=str(data.get("File", "")),
            start_line=int(data.get("StartLine") or 0),
            end_line=int(data.get("EndLine") or 0),
            start_column=int(data.get("StartColumn") or 0),
            end_column=int(data.get("EndColumn") or 0),
            match=str(data.get("Match", "")),
            secret=str(data.get("Secret", "")),
            commit=str(data.get("Commit", "")),
            author=str(data.get("Author", "")),
            email=str(data.get("Email", "")),
            message=str(data.get("Message", "")),
            date=str(data.get("Date", "")),
            entropy=float(data.get("Entropy") or 0.0),
            description=str(data.get("Description", "")),
            fingerprint=str(data.get("Fingerprint", "")),
            tags=tuple(str(tag) for tag in data.get("Tags") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "RuleID": self.rule_id,
            "File": self.file,
            "StartLine": self.start_line,
            "EndLine": self.end_line,
            "StartColumn": self.start_column,
            "EndColumn": self.end_column,
            "Match": self.match,
            "Secret": self.secret,
            "Commit": self.commit,
            "Author": self.author,
            "Email": self.email,
            "Message": self.message,
            "Date": self.date,
            "Entropy": self.entropy,
            "Description": self.description,
            "Fingerprint": self.fingerprint,
            "Tags": list(self.tags),
        }

    def location(self) -> str:
        return f"{self.file}:{self.start_line}"


@dataclass(frozen=True)
class RunMetadata:
    """Facts about the current CI invocation, captured once at start."""
    tenant_id: str
    repository: str
    commit_sha: str
    run_id: str
    run_attempt: str
    ref: str
    ref_name: str
    actor: str
    run_url: str
    generated_at: str

    def to_dict(self) -> dict[str, str]:
        return {
            "tenant_id": self.tenant_id,
            "repository": self.repository,
            "commit_sha": self.commit_sha,
            "run_id": self.run_id,
            "run_attempt": self.run_attempt,
            "ref": self.ref,
            "ref_name": self.ref_name,
            "actor": self.actor,
            "run_url": self.run_url,
            "generated_at": self.generated_at,
        }


@dataclass(frozen=True)
class Report:
    metadata: RunMetadata
    findings: tuple[Finding, ...] = ()


@dataclass(frozen=True)
class IdentityAssertion:
    """Signed CI identity token scoped to one audience.

    The token value is excluded from repr so it cannot leak through logging
    or tracebacks.
    """
    value: str = field(repr=False)
    audience: str


@dataclass(frozen=True)
class UploadCredential:
    """Presigned, single-use upload location issued by the backend."""
    url: str = field(repr=False)
    method: str = "PUT"
    content_type: str = "application/json"
    expires_at: float | None = None

    def redacted_url(self) -> str:
        """Return the URL without its query string (which holds the signature)."""
        parts = urlsplit(self.url)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return current >= self.expires_at

    def __repr__(self) -> str:
        return (
            f"UploadCredential(url={self.redacted_url()!r}, method={self.method!r}, "
            f"content_type={self.content_type!r}, expires_at={self.expires_at!r})"
        )


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff policy.

    Delays double from ``base_delay`` (2s, 4s, 8s by default) and are capped
    at ``max_delay``. ``retry_statuses`` lists non-5xx HTTP statuses that are
    still considered transient.
    """
    max_attempts: int = 3
    base_delay: float = 2.0
    factor: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.0
    retry_statuses: frozenset[int] = frozenset({408, 429})

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        delay = self.base_delay * (self.factor ** (attempt - 1))
        return min(delay, self.max_delay)

    def is_transient_status(self, status: int) -> bool:
        return status >= 500 or status in self.retry_statuses


@dataclass(frozen=True)
class RetryResult(Generic[T]):
    value: T
    attempts: int


@dataclass(frozen=True)
class UploadReceipt:
    status: int
    attempts: int
    bytes_sent: int


@dataclass(frozen=True)
class ScanResult:
    """Scanner outcome. ``error`` is set when the scanner misbehaved."""
    findings: tuple[Finding, ...] = ()
    scanner_version: str | None = None
    error: Any = None
    duration_ms: int = 0
