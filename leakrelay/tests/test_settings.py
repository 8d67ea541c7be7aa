import pytest

from leakrelay.core.errors import ConfigurationError
from leakrelay.core.settings import DEFAULT_SCANNER_VERSION, Settings


def test_defaults_without_file_or_env() -> None:
    settings = Settings.load(None, env={})
    assert settings.tenant_id == "default"
    assert settings.scanner_version == DEFAULT_SCANNER_VERSION
    policy = settings.retry_policy()
    assert policy.max_attempts == 3
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]
    assert policy.retry_statuses == frozenset({408, 429})


def test_yaml_file_then_env_override(tmp_path) -> None:
    config = tmp_path / "leakrelay.yaml"
    config.write_text(
        """
tenant_id: tenant-a
exchange_url: https://backend.example.com/v1/uploads
request_timeout_ms: 5000
retry_statuses: [429]
""",
        encoding="utf-8",
    )

    settings = Settings.load(str(config), env={"LEAKRELAY_TENANT_ID": "tenant-b", "LEAKRELAY_MAX_ATTEMPTS": "4"})

    assert settings.tenant_id == "tenant-b"
    assert settings.exchange_url == "https://backend.example.com/v1/uploads"
    assert settings.request_timeout_s == 5.0
    assert settings.max_attempts == 4
    assert settings.retry_statuses == [429]


def test_json_config_is_supported(tmp_path) -> None:
    config = tmp_path / "leakrelay.json"
    config.write_text('{"scanner_version": "v8.21.0", "log_format": "JSON"}', encoding="utf-8")
    settings = Settings.from_file(str(config))
    assert settings.scanner_version == "v8.21.0"
    assert settings.log_format == "json"


def test_unknown_keys_are_rejected(tmp_path) -> None:
    config = tmp_path / "leakrelay.yaml"
    config.write_text("tennant_id: typo\n", encoding="utf-8")
    with pytest.raises(ConfigurationError) as exc:
        Settings.from_file(str(config))
    assert "tennant_id" in str(exc.value)


def test_invalid_values_are_configuration_errors() -> None:
    with pytest.raises(ConfigurationError):
        Settings.load(None, env={"LEAKRELAY_MAX_ATTEMPTS": "three"})
    with pytest.raises(ConfigurationError):
        Settings.load(None, env={"LEAKRELAY_MAX_ATTEMPTS": "0"})
    with pytest.raises(ConfigurationError):
        Settings.load(None, env={"LEAKRELAY_EXCHANGE_URL": "http://backend.example.com"})


def test_env_retry_statuses_parse_from_csv() -> None:
    settings = Settings.load(None, env={"LEAKRELAY_RETRY_STATUSES": "408, 429,425"})
    assert settings.retry_statuses == [408, 429, 425]


def test_require_exchange_url() -> None:
    with pytest.raises(ConfigurationError) as exc:
        Settings().require_exchange_url()
    assert exc.value.reason == "missing_exchange_url"


def test_example_config_loads() -> None:
    settings = Settings.from_file("leakrelay.example.yaml")
    assert settings.tenant_id == "acme"
    assert settings.scanner_version == "8.18.4"
    assert settings.retry_policy().max_attempts == 3
    assert settings.artifact_dir == "leakrelay-artifacts"
