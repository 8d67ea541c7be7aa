from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from leakrelay.core.errors import ConfigurationError
from leakrelay.core.models import RetryPolicy


ENV_PREFIX = "LEAKRELAY_"

DEFAULT_SCANNER_VERSION = "8.18.4"

# Plain http is only accepted for local test backends.
_ALLOWED_EXCHANGE_PREFIXES = ("https://", "http://localhost", "http://127.0.0.1")


@dataclass
class Settings:
    tenant_id: str = "default"
    scanner_version: str = DEFAULT_SCANNER_VERSION
    scanner_path: str | None = None
    scanner_timeout_ms: int = 600_000
    source_dir: str = "."
    exchange_url: str | None = None
    audience: str = "leakrelay"
    request_timeout_ms: int = 10_000
    max_attempts: int = 3
    backoff_base_s: float = 2.0
    backoff_factor: float = 2.0
    backoff_max_s: float = 30.0
    retry_statuses: list[int] = field(default_factory=lambda: [408, 429])
    token_env: str | None = None
    artifact_dir: str | None = None
    log_format: str = "text"
    log_level: str = "INFO"

    @staticmethod
    def from_file(path: str) -> "Settings":
        """Load settings from a YAML or JSON file.

        Unknown keys are rejected so typos do not silently fall back to
        defaults.
        """
        ext = Path(path).suffix.lower()
        try:
            with open(path, "r", encoding="utf-8") as handle:
                if ext in {".yaml", ".yml"}:
                    data = yaml.safe_load(handle)
                elif ext == ".json":
                    data = json.load(handle)
                else:
                    raise ConfigurationError(f"Unsupported config file extension: {ext}")
        except OSError as exc:
            raise ConfigurationError(f"Unable to read config file {path}: {exc}") from exc
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Invalid config file {path}: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return Settings().merged(data)

    @staticmethod
    def load(path: str | None = None, env: Mapping[str, str] | None = None) -> "Settings":
        """Resolve settings from defaults, an optional file, then LEAKRELAY_* env vars."""
        settings = Settings.from_file(path) if path else Settings()
        source = os.environ if env is None else env
        overrides: dict[str, Any] = {}
        for item in fields(Settings):
            value = source.get(f"{ENV_PREFIX}{item.name.upper()}")
            if value is not None and value != "":
                overrides[item.name] = value
        return settings.merged(overrides)

    def merged(self, values: Mapping[str, Any]) -> "Settings":
        """Return a copy with the given raw values coerced and applied."""
        known = {item.name for item in fields(Settings)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown setting(s): {', '.join(unknown)}")
        updates = {name: _coerce(name, raw) for name, raw in values.items() if raw is not None}
        updated = replace(self, **updates)
        updated.validate()
        return updated

    def validate(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be >= 1")
        if self.request_timeout_ms <= 0:
            raise ConfigurationError("request_timeout_ms must be > 0")
        if self.scanner_timeout_ms <= 0:
            raise ConfigurationError("scanner_timeout_ms must be > 0")
        if self.backoff_base_s < 0 or self.backoff_factor < 1:
            raise ConfigurationError("backoff_base_s must be >= 0 and backoff_factor >= 1")
        if self.log_format not in {"text", "json"}:
            raise ConfigurationError(f"Unsupported log_format: {self.log_format}")
        if self.exchange_url and not self.exchange_url.startswith(_ALLOWED_EXCHANGE_PREFIXES):
            raise ConfigurationError("exchange_url must use https")

    def require_exchange_url(self) -> str:
        if not self.exchange_url:
            raise ConfigurationError(
                "exchange_url is not configured (set LEAKRELAY_EXCHANGE_URL or pass --exchange-url)",
                reason="missing_exchange_url",
            )
        return self.exchange_url

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.backoff_base_s,
            factor=self.backoff_factor,
            max_delay=self.backoff_max_s,
            retry_statuses=frozenset(self.retry_statuses),
        )

    @property
    def request_timeout_s(self) -> float:
        return self.request_timeout_ms / 1000


_INT_FIELDS = {"scanner_timeout_ms", "request_timeout_ms", "max_attempts"}
_FLOAT_FIELDS = {"backoff_base_s", "backoff_factor", "backoff_max_s"}


def _coerce(name: str, raw: Any) -> Any:
    try:
        if name in _INT_FIELDS:
            return int(raw)
        if name in _FLOAT_FIELDS:
            return float(raw)
        if name == "retry_statuses":
            if isinstance(raw, str):
                return [int(item) for item in raw.split(",") if item.strip()]
            return [int(item) for item in raw]
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from exc
    if name == "log_format":
        return str(raw).lower()
    return str(raw)
