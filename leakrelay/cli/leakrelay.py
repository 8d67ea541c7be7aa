from __future__ import annotations

"""leakrelay command-line interface entrypoint."""

import argparse
import json
import logging
import os
import sys

from pathlib import Path

from leakrelay.adapters.credential_exchange_http import HttpCredentialExchange
from leakrelay.adapters.report_store_fs import FileSystemReportStore
from leakrelay.adapters.scanner_gitleaks import GitleaksScanner, ReportFileScanner, UnavailableScanner
from leakrelay.adapters.token_env import EnvTokenProvider
from leakrelay.adapters.token_github_oidc import GitHubOidcTokenProvider
from leakrelay.adapters.uploader_presigned import PresignedUrlUploader
from leakrelay.core.errors import ConfigurationError
from leakrelay.core.logs import configure_logging
from leakrelay.core.metadata import capture_run_metadata
from leakrelay.core.orchestrator import Orchestrator, RunOutcome
from leakrelay.core.scanner_resolver import ScannerResolutionError, resolve_scanner
from leakrelay.core.settings import Settings
from leakrelay.core.version import get_leakrelay_version
from leakrelay.ports.scanner import ScannerGateway


logger = logging.getLogger("leakrelay.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _env_bool(name: str, default: bool) -> bool:
    """Read a boolean from the environment with a safe default."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes"}


def _parse_bool(value: str | None) -> bool:
    """Parse optional boolean flags that allow an implicit True value."""
    if value is None:
        return True
    return value.lower() in {"1", "true", "yes"}


def _load_settings(args: argparse.Namespace) -> Settings:
    """Layer CLI flags over env vars over the optional config file."""
    settings = Settings.load(args.config)
    overrides = {
        "tenant_id": getattr(args, "tenant_id", None),
        "exchange_url": getattr(args, "exchange_url", None),
        "audience": getattr(args, "audience", None),
        "scanner_path": getattr(args, "scanner_path", None),
        "scanner_version": getattr(args, "scanner_version", None),
        "source_dir": getattr(args, "source", None),
        "token_env": getattr(args, "token_env", None),
        "artifact_dir": getattr(args, "artifact_dir", None),
        "log_format": getattr(args, "log_format", None),
    }
    return settings.merged({key: value for key, value in overrides.items() if value is not None})


def _build_scanner(settings: Settings, findings_path: str | None) -> ScannerGateway:
    if findings_path:
        return ReportFileScanner(findings_path)
    try:
        resolved = resolve_scanner(settings.scanner_version, settings.scanner_path)
    except ScannerResolutionError as exc:
        logger.warning("%s", exc)
        return UnavailableScanner(str(exc))
    logger.info("Using gitleaks %s (%s) at %s", resolved.version or "unknown", resolved.source, resolved.path)
    return GitleaksScanner(
        scanner_path=resolved.path,
        timeout_ms=settings.scanner_timeout_ms,
        scanner_version=resolved.version,
    )


def _describe(outcome: RunOutcome) -> str:
    if outcome.ok:
        if outcome.dry_run:
            return f"Dry run complete: findings={outcome.findings} (not delivered)"
        if outcome.findings == 0:
            return "Run complete: no secrets found; report delivered"
        return f"Run complete: findings={outcome.findings}; report delivered"
    stage = outcome.failed_stage.value if outcome.failed_stage else "unknown"
    text = f"Run failed: stage={stage} error={outcome.error_kind} reason={outcome.reason}"
    if outcome.attempts:
        text += f" attempts={outcome.attempts}"
    return text


def run_command(args: argparse.Namespace) -> int:
    """Scan (or load findings), build the report and deliver it."""
    try:
        settings = _load_settings(args)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    configure_logging(settings.log_level, settings.log_format)

    try:
        metadata = capture_run_metadata(settings.tenant_id)
        exchange_url = None if args.dry_run else settings.require_exchange_url()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    if settings.token_env:
        token_provider = EnvTokenProvider(settings.token_env)
    else:
        token_provider = GitHubOidcTokenProvider(timeout_s=settings.request_timeout_s)
    policy = settings.retry_policy()
    report_store = FileSystemReportStore(settings.artifact_dir) if settings.artifact_dir else None

    orchestrator = Orchestrator(
        token_provider=token_provider,
        credential_exchange=HttpCredentialExchange(policy, timeout_s=settings.request_timeout_s, metadata=metadata),
        uploader=PresignedUrlUploader(policy, timeout_s=settings.request_timeout_s),
        scanner=_build_scanner(settings, args.findings),
        report_store=report_store,
    )
    outcome = orchestrator.run(
        metadata,
        exchange_url=exchange_url,
        audience=settings.audience,
        source_dir=settings.source_dir,
        dry_run=args.dry_run,
    )

    print(_describe(outcome))
    if outcome.scan_error:
        print(f"Scanner warning: {outcome.scan_error}", file=sys.stderr)
    if outcome.artifacts:
        print(f"Artifacts: {outcome.artifacts}")
    if outcome.ok:
        return EXIT_OK
    if outcome.error_kind == ConfigurationError.kind:
        return EXIT_CONFIG
    return EXIT_FAILED


def scan_command(args: argparse.Namespace) -> int:
    """Run only the scanner and write its findings document."""
    try:
        settings = _load_settings(args)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    configure_logging(settings.log_level, settings.log_format)

    scanner = _build_scanner(settings, None)
    result = scanner.scan(settings.source_dir)
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(
        json.dumps([finding.to_dict() for finding in result.findings], indent=2),
        encoding="utf-8",
    )
    if result.error is not None:
        print(f"Scanner warning: {result.error}", file=sys.stderr)
    print(f"Scan complete: findings={len(result.findings)} out={out_path}")
    return EXIT_OK


def version_command(args: argparse.Namespace) -> int:
    print(get_leakrelay_version())
    return EXIT_OK


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=os.environ.get("LEAKRELAY_CONFIG"), help="Path to leakrelay.yaml")
    parser.add_argument("--source", default=None, help="Checkout directory to scan")
    parser.add_argument("--scanner-path", default=None, help="Path to the gitleaks binary")
    parser.add_argument("--scanner-version", default=None, help="Pinned gitleaks version")
    parser.add_argument("--log-format", choices=["text", "json"], default=None, help="Log output format")


def main() -> int:
    """CLI entrypoint and command registration."""
    parser = argparse.ArgumentParser(prog="leakrelay")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Scan and deliver the findings report")
    _add_common(run_parser)
    run_parser.add_argument("--findings", default=None, help="Use an existing gitleaks JSON report instead of scanning")
    run_parser.add_argument("--tenant-id", default=None, help="Tenant identifier recorded in the report")
    run_parser.add_argument("--exchange-url", default=None, help="Backend credential exchange endpoint")
    run_parser.add_argument("--audience", default=None, help="Audience requested for the identity token")
    run_parser.add_argument("--token-env", default=None, help="Read the identity token from this env var")
    run_parser.add_argument("--artifact-dir", default=None, help="Directory for redacted report artifacts")
    run_parser.add_argument(
        "--dry-run",
        nargs="?",
        const=True,
        default=_env_bool("LEAKRELAY_DRY_RUN", False),
        type=_parse_bool,
        help="Build the report without contacting the backend (true/false)",
    )
    run_parser.set_defaults(func=run_command)

    scan_parser = subparsers.add_parser("scan", help="Run gitleaks and write its findings")
    _add_common(scan_parser)
    scan_parser.add_argument("--out", default="gitleaks-report.json", help="Findings output path")
    scan_parser.set_defaults(func=scan_command)

    version_parser = subparsers.add_parser("version", help="Print the leakrelay version")
    version_parser.set_defaults(func=version_command)

    args = parser.parse_args()
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
