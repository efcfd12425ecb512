import pytest
from pydantic import ValidationError

from lab_gear.config import (
    ClientConfig,
    LabGearConfig,
    load_client_config,
    load_config,
    resolve_client_settings,
)
from lab_gear.errors import ConfigError
from lab_gear.logging import LogLevel


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in (
        "API_TOKEN",
        "DB_PATH",
        "PORT",
        "HOST",
        "MAX_BODY_BYTES",
        "LOG_LEVEL",
        "LAB_ENDPOINT",
        "LAB_API_KEY",
    ):
        monkeypatch.delenv(key, raising=False)


def test_load_config_from_yaml_file(tmp_path):
    config_file = tmp_path / "lab_gear.yml"
    config_file.write_text("""
api_token: "yaml-token"
db_path: "/var/lib/lab_gear/inventory.db"
port: 9090
log_level: debug
""")

    config = load_config(str(config_file))

    assert config.api_token == "yaml-token"
    assert config.db_path == "/var/lib/lab_gear/inventory.db"
    assert config.port == 9090
    assert config.log_level == LogLevel.DEBUG
    assert config.host == "0.0.0.0"
    assert config.max_body_bytes == 65536


def test_env_overrides_yaml_config(tmp_path, monkeypatch):
    config_file = tmp_path / "lab_gear.yml"
    config_file.write_text("""
api_token: "yaml-token"
port: 9090
""")

    monkeypatch.setenv("API_TOKEN", "env-token")
    monkeypatch.setenv("PORT", "8181")
    monkeypatch.setenv("DB_PATH", "/tmp/env.db")

    config = load_config(str(config_file))

    assert config.api_token == "env-token"
    assert config.port == 8181
    assert config.db_path == "/tmp/env.db"


def test_defaults_when_file_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("API_TOKEN", "secret")

    config = load_config(str(tmp_path / "does-not-exist.yml"))

    assert config.port == 8080
    assert config.db_path == "./lab_gear.db"
    assert config.log_level == LogLevel.INFO


def test_missing_api_token_is_rejected(tmp_path):
    with pytest.raises(ValidationError, match="API_TOKEN"):
        load_config(str(tmp_path / "does-not-exist.yml"))


def test_blank_api_token_is_rejected():
    with pytest.raises(ValidationError):
        LabGearConfig(api_token="   ")


def test_invalid_port_is_rejected():
    with pytest.raises(ValidationError):
        LabGearConfig(api_token="secret", port=70000)


def test_invalid_env_value_is_ignored(tmp_path, monkeypatch):
    monkeypatch.setenv("API_TOKEN", "secret")
    monkeypatch.setenv("PORT", "not-a-number")

    config = load_config(str(tmp_path / "does-not-exist.yml"))

    assert config.port == 8080


def test_client_config_strips_trailing_slash():
    config = ClientConfig(endpoint="http://lab.local:8080/", token="t")
    assert config.endpoint == "http://lab.local:8080"
    assert config.timeout_seconds == 15.0


def test_explicit_client_settings_win_over_environment():
    endpoint, token = resolve_client_settings(
        "http://explicit:8080", "explicit-token", "http://env:8080", "env-token"
    )
    assert endpoint == "http://explicit:8080"
    assert token == "explicit-token"


def test_blank_explicit_settings_fall_back_to_environment():
    endpoint, token = resolve_client_settings("  ", "", " http://env:8080 ", "env-token")
    assert endpoint == "http://env:8080"
    assert token == "env-token"


def test_load_client_config_from_environment(monkeypatch):
    monkeypatch.setenv("LAB_ENDPOINT", "http://env:8080")
    monkeypatch.setenv("LAB_API_KEY", "env-token")

    config = load_client_config()

    assert config.endpoint == "http://env:8080"
    assert config.token == "env-token"


def test_load_client_config_requires_endpoint(monkeypatch):
    monkeypatch.setenv("LAB_API_KEY", "env-token")

    with pytest.raises(ConfigError, match="LAB_ENDPOINT"):
        load_client_config()


def test_load_client_config_requires_token():
    with pytest.raises(ConfigError, match="LAB_API_KEY"):
        load_client_config(endpoint="http://lab.local")
