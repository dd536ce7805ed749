from __future__ import annotations

import argparse
import os

import uvicorn

from traffic_coordinator import __version__
from traffic_coordinator.config import CONFIG_ENV_VAR, load_config
from traffic_coordinator.logging_setup import configure_logging, get_logger
from traffic_coordinator.main import build_services


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="traffic-coordinator")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service")
    serve_parser.add_argument("--config", dest="config_path", default=None)
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    reset_parser = subparsers.add_parser(
        "reset-ranking", help="Clear the session ranking now (no notifications)"
    )
    reset_parser.add_argument("--config", dest="config_path", default=None)
    return parser


def _reset_ranking(config_path: str | None) -> None:
    config = load_config(config_path)
    configure_logging(config.logging)
    services = build_services(config)
    user_ids = services["coordinator"].ranking.reset_all()
    get_logger(__name__).info("Ranking cleared; %d known user(s).", len(user_ids))


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    command = args.command or "serve"
    config_path = getattr(args, "config_path", None)

    if command == "reset-ranking":
        _reset_ranking(config_path)
        return

    # Without a subcommand argparse leaves serve-only fields unset; use config values.
    config = load_config(config_path)
    host = getattr(args, "host", None) or config.server.host
    port = getattr(args, "port", None) or config.server.port
    if config_path:
        # The app factory runs inside uvicorn and reads the path from the environment.
        os.environ[CONFIG_ENV_VAR] = str(config_path)
    uvicorn.run(
        "traffic_coordinator.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    main()
