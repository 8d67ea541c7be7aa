from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from leakrelay.core.errors import ConfigurationError, PipelineError
from leakrelay.core.models import Finding, Report, RunMetadata, UploadCredential
from leakrelay.core.report import build_report
from leakrelay.ports.credential_exchange import CredentialExchange
from leakrelay.ports.report_store import ReportStore
from leakrelay.ports.scanner import ScannerGateway
from leakrelay.ports.token_provider import IdentityTokenProvider
from leakrelay.ports.uploader import Uploader


logger = logging.getLogger(__name__)


class Stage(str, Enum):
    START = "start"
    SCAN = "scan"
    BUILD_REPORT = "build_report"
    ACQUIRE_TOKEN = "acquire_token"
    EXCHANGE_CREDENTIAL = "exchange_credential"
    UPLOAD = "upload"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunOutcome:
    """Terminal state of one delivery run plus what is needed to diagnose it."""
    state: Stage
    transitions: list[Stage] = field(default_factory=list)
    findings: int = 0
    failed_stage: Stage | None = None
    error_kind: str | None = None
    reason: str | None = None
    message: str | None = None
    attempts: int = 0
    upload_attempts: int = 0
    scan_error: str | None = None
    dry_run: bool = False
    artifacts: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state is Stage.DONE

    def summary(self) -> dict:
        return {
            "state": self.state.value,
            "transitions": [stage.value for stage in self.transitions],
            "findings": self.findings,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "error_kind": self.error_kind,
            "reason": self.reason,
            "message": self.message,
            "attempts": self.attempts,
            "upload_attempts": self.upload_attempts,
            "scan_error": self.scan_error,
            "dry_run": self.dry_run,
        }


class Orchestrator:
    """Sequence scan, report build, token, exchange and upload for one run.

    Stages run strictly in order and are never retried as a whole; retries
    live inside the exchange and upload adapters. Any unrecovered stage
    error ends the run in FAILED, which callers must surface as a failed job.
    """
    def __init__(
        self,
        token_provider: IdentityTokenProvider,
        credential_exchange: CredentialExchange,
        uploader: Uploader,
        scanner: ScannerGateway | None = None,
        report_store: ReportStore | None = None,
    ) -> None:
        self.token_provider = token_provider
        self.credential_exchange = credential_exchange
        self.uploader = uploader
        self.scanner = scanner
        self.report_store = report_store

    def run(
        self,
        metadata: RunMetadata,
        *,
        exchange_url: str | None,
        audience: str,
        findings: Sequence[Finding] | None = None,
        source_dir: str = ".",
        dry_run: bool = False,
    ) -> RunOutcome:
        """Run the delivery pipeline end-to-end.

        Args:
            metadata (RunMetadata): Metadata captured at process start.
            exchange_url (str | None): Backend credential exchange endpoint.
            audience (str): Audience requested for the identity token.
            findings (Sequence[Finding] | None): Pre-loaded findings. When None
                and a scanner is configured, the scanner runs first.
            source_dir (str): Checkout to scan.
            dry_run (bool): Build the report without contacting any service.

        Returns:
            RunOutcome: DONE or FAILED with stage, error kind and attempts.
        """
        outcome = RunOutcome(state=Stage.START, transitions=[Stage.START], dry_run=dry_run)
        report: Report | None = None

        try:
            if not dry_run and not exchange_url:
                raise ConfigurationError("exchange_url is not configured", reason="missing_exchange_url")

            collected = self._collect_findings(outcome, findings, source_dir)

            self._enter(outcome, Stage.BUILD_REPORT)
            report = build_report(collected, metadata)
            outcome.findings = len(report.findings)
            _log_findings(report.findings)

            if dry_run:
                logger.info("Dry run: report built, delivery skipped")
            else:
                credential = self._obtain_credential(outcome, audience, exchange_url or "")
                self._enter(outcome, Stage.UPLOAD)
                receipt = self.uploader.upload(report, credential)
                outcome.upload_attempts = receipt.attempts
            self._enter(outcome, Stage.DONE)
        except PipelineError as exc:
            self._fail(outcome, exc)

        if report is not None and self.report_store is not None:
            self._write_artifacts(outcome, report)
        return outcome

    def _collect_findings(
        self,
        outcome: RunOutcome,
        findings: Sequence[Finding] | None,
        source_dir: str,
    ) -> list[Finding]:
        if findings is not None:
            return list(findings)
        if self.scanner is None:
            return []

        self._enter(outcome, Stage.SCAN)
        result = self.scanner.scan(source_dir)
        if result.error is not None:
            # Scanner failures are tolerated: deliver whatever was produced.
            outcome.scan_error = str(result.error)
            logger.warning(
                "Scanner failed (%s); continuing with %d finding(s)",
                result.error,
                len(result.findings),
            )
        return list(result.findings)

    def _obtain_credential(self, outcome: RunOutcome, audience: str, exchange_url: str) -> UploadCredential:
        # The token is short-lived, so it is requested right before the exchange.
        self._enter(outcome, Stage.ACQUIRE_TOKEN)
        assertion = self.token_provider.acquire(audience)

        self._enter(outcome, Stage.EXCHANGE_CREDENTIAL)
        return self.credential_exchange.exchange(assertion, exchange_url)

    @staticmethod
    def _enter(outcome: RunOutcome, stage: Stage) -> None:
        outcome.state = stage
        outcome.transitions.append(stage)
        logger.debug("Entering stage %s", stage.value)

    @staticmethod
    def _fail(outcome: RunOutcome, exc: PipelineError) -> None:
        outcome.failed_stage = outcome.state
        outcome.error_kind = exc.kind
        outcome.reason = exc.reason
        outcome.message = str(exc)
        outcome.attempts = exc.attempts
        outcome.state = Stage.FAILED
        outcome.transitions.append(Stage.FAILED)
        logger.error("Run failed at stage %s: %s", outcome.failed_stage.value, exc.describe())

    def _write_artifacts(self, outcome: RunOutcome, report: Report) -> None:
        try:
            outcome.artifacts = self.report_store.write(report, outcome.summary())
        except OSError as exc:
            logger.error("Unable to write run artifacts: %s", exc)


def _log_findings(findings: Sequence[Finding]) -> None:
    # Only rule and location are logged; secret values stay in the payload.
    for finding in findings:
        logger.info("Finding %s at %s (commit %s)", finding.rule_id, finding.location(), finding.commit[:12] or "-")
