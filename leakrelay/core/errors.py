from __future__ import annotations


class PipelineError(RuntimeError):
    """Base error for every stage of a delivery run.

    Attributes:
        kind (str): Stable error kind reported in run outcomes.
        reason (str): Short machine-friendly reason code.
        retryable (bool): Whether the retry controller may try again.
        operation (str | None): Operation name, set by the retry controller.
        attempts (int): Attempts made before this error surfaced.
    """

    kind = "pipeline_error"

    def __init__(self, message: str, reason: str = "error", retryable: bool = False) -> None:
        super().__init__(message)
        self.reason = reason
        self.retryable = retryable
        self.operation: str | None = None
        self.attempts = 0

    def describe(self) -> str:
        text = f"{self.kind}({self.reason}): {self}"
        if self.operation:
            text += f" [operation={self.operation} attempts={self.attempts}]"
        return text


class ConfigurationError(PipelineError):
    """Required settings or CI metadata are missing or invalid."""

    kind = "configuration_error"

    def __init__(self, message: str, reason: str = "invalid_configuration") -> None:
        super().__init__(message, reason=reason, retryable=False)


class TokenUnavailable(PipelineError):
    """The CI runtime could not issue an identity token."""

    kind = "token_unavailable"

    def __init__(self, message: str, reason: str = "token_unavailable") -> None:
        super().__init__(message, reason=reason, retryable=False)


class ExchangeFailed(PipelineError):
    """The backend did not return a usable upload credential."""

    kind = "exchange_failed"


class UploadFailed(PipelineError):
    """The report could not be delivered to the presigned location."""

    kind = "upload_failed"


class ScanToolError(PipelineError):
    """The external scanner failed or produced unreadable output.

    Runs continue with whatever findings are available when this is raised.
    """

    kind = "scan_tool_error"

    def __init__(self, message: str, reason: str = "tool_error") -> None:
        super().__init__(message, reason=reason, retryable=False)
