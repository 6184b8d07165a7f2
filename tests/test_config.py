import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from user_service.config import ConfigError, Settings, load_settings, resolve_config_path


def _write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "service.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_file_or_environment():
    settings = load_settings(environ={})

    assert settings == Settings()
    assert settings.port == 3000
    assert settings.allowed_origins == ("*",)
    assert settings.rate_limit_max == 100
    assert settings.rate_limit_window == 900
    assert settings.max_body_bytes == 10 * 1024
    assert settings.trusted_proxies == ("127.0.0.1",)
    assert not settings.expose_errors


def test_yaml_file_is_applied(tmp_path):
    path = _write_config(
        tmp_path,
        """
port: 8080
environment: Development
allowed_origins:
  - https://app.example.com
  - https://admin.example.com
rate_limit:
  max_requests: 10
  window_seconds: 60
""",
    )

    settings = load_settings(path, environ={})

    assert settings.port == 8080
    assert settings.environment == "development"
    assert settings.expose_errors
    assert settings.allowed_origins == ("https://app.example.com", "https://admin.example.com")
    assert settings.rate_limit_max == 10
    assert settings.rate_limit_window == 60


def test_environment_overrides_file(tmp_path):
    path = _write_config(tmp_path, "port: 8080\nenvironment: development\n")
    environ = {
        "USER_SERVICE_CONFIG": str(path),
        "USER_SERVICE_PORT": "9090",
        "USER_SERVICE_ENV": "production",
        "USER_SERVICE_ALLOWED_ORIGINS": "https://a.example.com, https://b.example.com",
        "USER_SERVICE_RATE_LIMIT_MAX": "0",
        "USER_SERVICE_TRUSTED_PROXIES": "10.0.0.1, 10.0.0.2",
    }

    settings = load_settings(environ=environ)

    assert settings.port == 9090
    assert settings.environment == "production"
    assert settings.allowed_origins == ("https://a.example.com", "https://b.example.com")
    assert not settings.rate_limit_enabled
    assert settings.trusted_proxies == ("10.0.0.1", "10.0.0.2")


def test_blank_environment_values_are_ignored():
    settings = load_settings(environ={"USER_SERVICE_PORT": "  ", "USER_SERVICE_CONFIG": ""})

    assert settings.port == 3000


@pytest.mark.parametrize(
    "environ",
    [
        {"USER_SERVICE_PORT": "not-a-port"},
        {"USER_SERVICE_PORT": "70000"},
        {"USER_SERVICE_MAX_BODY_BYTES": "0"},
        {"USER_SERVICE_RATE_LIMIT_WINDOW": "-5"},
    ],
)
def test_invalid_values_raise_config_error(environ):
    with pytest.raises(ConfigError):
        load_settings(environ=environ)


def test_config_file_must_be_a_mapping(tmp_path):
    path = _write_config(tmp_path, "- just\n- a list\n")

    with pytest.raises(ConfigError):
        load_settings(path, environ={})


def test_rate_limit_section_must_be_a_mapping(tmp_path):
    path = _write_config(tmp_path, "rate_limit: 5\n")

    with pytest.raises(ConfigError):
        load_settings(path, environ={})


def test_resolve_config_path_expands_user(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))

    assert resolve_config_path(None) is None
    assert resolve_config_path("~/service.yaml") == (tmp_path / "service.yaml").resolve()
