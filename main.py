"""Command-line interface for the user service."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

import httpx

from user_service.config import ConfigError, Settings, load_settings

logger = logging.getLogger("userservice.main")

_DEFAULT_SERVICE_URL = "http://localhost:3000"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP user service")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: 0.0.0.0)")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Listening port (default: USER_SERVICE_PORT or 3000)",
    )
    serve_parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: USER_SERVICE_CONFIG)",
    )

    probe_parser = subparsers.add_parser(
        "probe", help="Query the readiness endpoint of a running service"
    )
    probe_parser.add_argument(
        "--url",
        default=_DEFAULT_SERVICE_URL,
        help=f"Base URL of the running service (default: {_DEFAULT_SERVICE_URL})",
    )
    probe_parser.add_argument("--timeout", type=float, default=5.0, help="Request timeout in seconds")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "probe"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _resolve_serve_settings(args: argparse.Namespace) -> Settings:
    config_path = Path(args.config).expanduser() if args.config else None
    settings = load_settings(config_path)
    overrides: dict[str, object] = {}
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if overrides:
        settings = Settings.from_dict(overrides, settings)
    return settings


def _serve(settings: Settings) -> None:
    from user_service.api import create_app
    import uvicorn

    logger.info(
        "Starting user service on http://%s:%s (%s mode)",
        settings.host,
        settings.port,
        settings.environment,
    )
    logger.info("Health check: http://%s:%s/health", settings.host, settings.port)

    app = create_app(settings=settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


def _probe(base_url: str, timeout: float) -> int:
    endpoint = base_url.rstrip("/") + "/health/ready"

    try:
        response = httpx.get(endpoint, timeout=timeout)
    except httpx.HTTPError as exc:
        print(f"Failed to contact user service: {exc}")
        return 1

    try:
        payload = response.json()
    except ValueError:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return 1

    state = payload.get("status", "unknown")
    print(f"{endpoint} -> {response.status_code} ({state})")
    for name, passed in sorted(payload.get("checks", {}).items()):
        print(f"  {name:<8} {'ok' if passed else 'failing'}")

    return 0 if response.status_code == 200 else 1


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)

    if args.command == "probe":
        return _probe(args.url, args.timeout)

    try:
        settings = _resolve_serve_settings(args)
    except (ConfigError, OSError) as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc
    _serve(settings)
    return 0


if __name__ == "__main__":
    sys.exit(main())
