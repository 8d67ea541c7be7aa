from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Mapping

from leakrelay.core.errors import ConfigurationError
from leakrelay.core.models import RunMetadata


REQUIRED_ENV = (
    "GITHUB_REPOSITORY",
    "GITHUB_SHA",
    "GITHUB_RUN_ID",
    "GITHUB_RUN_ATTEMPT",
    "GITHUB_REF",
    "GITHUB_REF_NAME",
    "GITHUB_ACTOR",
)

DEFAULT_SERVER_URL = "https://github.com"


def capture_run_metadata(
    tenant_id: str,
    env: Mapping[str, str] | None = None,
    now: datetime | None = None,
) -> RunMetadata:
    """Capture the CI run facts into an immutable value.

    Args:
        tenant_id (str): Tenant identifier from settings.
        env (Mapping[str, str] | None): Environment to read; defaults to os.environ.
        now (datetime | None): Clock override for deterministic tests.

    Returns:
        RunMetadata: Metadata used for the rest of the run.

    Raises:
        ConfigurationError: When the tenant id or any required variable is
            missing. All missing names are reported together.
    """
    source = os.environ if env is None else env
    missing = [name for name in REQUIRED_ENV if not source.get(name, "").strip()]
    if not tenant_id or not tenant_id.strip():
        missing.insert(0, "tenant_id")
    if missing:
        raise ConfigurationError(
            f"Missing required CI metadata: {', '.join(missing)}",
            reason="missing_metadata",
        )

    repository = source["GITHUB_REPOSITORY"].strip()
    run_id = source["GITHUB_RUN_ID"].strip()
    server_url = (source.get("GITHUB_SERVER_URL") or DEFAULT_SERVER_URL).strip().rstrip("/")
    generated = now or datetime.now(timezone.utc)
    if generated.tzinfo is None:
        generated = generated.replace(tzinfo=timezone.utc)

    return RunMetadata(
        tenant_id=tenant_id.strip(),
        repository=repository,
        commit_sha=source["GITHUB_SHA"].strip(),
        run_id=run_id,
        run_attempt=source["GITHUB_RUN_ATTEMPT"].strip(),
        ref=source["GITHUB_REF"].strip(),
        ref_name=source["GITHUB_REF_NAME"].strip(),
        actor=source["GITHUB_ACTOR"].strip(),
        run_url=f"{server_url}/{repository}/actions/runs/{run_id}",
        generated_at=generated.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
    )
