"""Command line entry point: ``leadflow serve``."""
from __future__ import annotations

import argparse
import logging
import os
import sys

from leadflow.application import get_campaign_service
from leadflow.core.logs import configure_logging
from leadflow.core.settings import get_settings
from leadflow.infrastructure import ProcessSingleton

logger = logging.getLogger(__name__)


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="leadflow", description="Lead prospecting workflow server.")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API server")
    serve.add_argument("--host", default=os.getenv("LEADFLOW_HOST", "127.0.0.1"), help="Bind host")
    serve.add_argument("--port", type=int, default=int(os.getenv("LEADFLOW_PORT", "8000")), help="Bind port")
    serve.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "info"), help="Log level")
    serve.add_argument(
        "--force",
        action="store_true",
        help="Remove an existing PID file and start even if another instance looks alive",
    )
    return parser


def serve(host: str, port: int, log_level: str, force: bool = False) -> int:
    settings = get_settings()
    configure_logging(log_level)

    singleton = ProcessSingleton(settings.server_name, settings.lock_dir)
    if force:
        singleton.force_start()
    elif singleton.is_another_instance_running():
        info = singleton.get_running_instance_info() or {}
        logger.error(
            "%s is already running (pid %s, port %s); stop it first or pass --force",
            settings.server_name,
            info.get("pid"),
            info.get("port"),
        )
        return 1

    singleton.create_lock(port)
    singleton.setup_exit_handlers()
    get_campaign_service().locks.install_exit_handlers()

    import uvicorn

    from leadflow.app import app

    try:
        uvicorn.run(app, host=host, port=port, log_level=log_level.lower())
    finally:
        singleton.remove_lock()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    if args.command == "serve":
        return serve(args.host, args.port, args.log_level, force=args.force)
    return 2


if __name__ == "__main__":
    sys.exit(main())
