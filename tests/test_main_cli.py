import sys
from pathlib import Path

import httpx
import pytest
import uvicorn

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import main
from main import _parse_args, _probe, _resolve_serve_settings


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_probe_subcommand_still_available() -> None:
    args = _parse_args(["probe", "--url", "http://service:3000"])
    assert args.command == "probe"
    assert args.url == "http://service:3000"


def test_serve_options_override_configuration(tmp_path, monkeypatch) -> None:
    for name in ("USER_SERVICE_CONFIG", "USER_SERVICE_PORT", "USER_SERVICE_HOST"):
        monkeypatch.delenv(name, raising=False)
    config = tmp_path / "service.yaml"
    config.write_text("port: 4000\nenvironment: development\n", encoding="utf-8")

    settings = _resolve_serve_settings(_parse_args(["--config", str(config), "--port", "5000"]))

    assert settings.port == 5000
    assert settings.environment == "development"


def test_serve_ignores_broken_environment_config_when_config_given(tmp_path, monkeypatch) -> None:
    for name in ("USER_SERVICE_PORT", "USER_SERVICE_HOST"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("USER_SERVICE_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delitem(sys.modules, "user_service.api", raising=False)
    config = tmp_path / "service.yaml"
    config.write_text("port: 4000\n", encoding="utf-8")
    runs = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: runs.append(kwargs))

    assert main.main(["serve", "--config", str(config)]) == 0
    assert runs == [{"host": "0.0.0.0", "port": 4000, "log_level": "info"}]


def test_default_app_is_built_on_first_access(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("USER_SERVICE_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delitem(sys.modules, "user_service.api", raising=False)

    import user_service.api as api

    with pytest.raises(FileNotFoundError):
        api.app


def test_probe_reports_ready_service(monkeypatch, capsys) -> None:
    def fake_get(url, timeout=None):
        assert url == "http://service:3000/health/ready"
        return httpx.Response(200, json={"status": "ready", "checks": {"memory": True, "uptime": True}})

    monkeypatch.setattr(main.httpx, "get", fake_get)

    assert _probe("http://service:3000/", 1.0) == 0
    output = capsys.readouterr().out
    assert "(ready)" in output
    assert "memory" in output


def test_probe_fails_when_service_not_ready(monkeypatch) -> None:
    def fake_get(url, timeout=None):
        return httpx.Response(503, json={"status": "not ready", "checks": {"memory": False, "uptime": True}})

    monkeypatch.setattr(main.httpx, "get", fake_get)

    assert _probe("http://service:3000", 1.0) == 1


def test_probe_fails_when_service_unreachable(monkeypatch) -> None:
    def fake_get(url, timeout=None):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(main.httpx, "get", fake_get)

    assert _probe("http://service:3000", 1.0) == 1
