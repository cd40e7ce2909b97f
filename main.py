"""Command-line entry point for the relay server and its dashboard."""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import uvicorn

from relay.config import config

if TYPE_CHECKING:
    from collections.abc import Sequence
    from logging import Logger

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_APP = PROJECT_ROOT / "app.py"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Build the CLI parser and read command-line arguments."""  # noqa: DOC201
    parser = argparse.ArgumentParser(
        description="Run the RAG relay server or its operator dashboard.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the webhook and API server.")
    serve.add_argument(
        "--host",
        default="0.0.0.0",  # noqa: S104
        help="Bind address for the API server (default: 0.0.0.0).",
    )
    serve.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port for the API server (default: 3000).",
    )

    dashboard = subparsers.add_parser("dashboard", help="Run the Streamlit dashboard.")
    dashboard.add_argument(
        "--app",
        type=Path,
        default=DEFAULT_APP,
        help="Path to the Streamlit script (default: app.py).",
    )
    dashboard.add_argument(
        "--port",
        type=int,
        default=8501,
        help="Port for the Streamlit server (default: 8501).",
    )
    dashboard.add_argument(
        "--address",
        default="localhost",
        help="Bind address for the Streamlit server (default: localhost).",
    )
    dashboard.add_argument(
        "--show",
        dest="headless",
        action="store_false",
        help="Open Streamlit in a browser window instead of headless mode.",
    )
    dashboard.set_defaults(headless=True)
    return parser.parse_args(argv)


def build_streamlit_command(
    script_path: Path,
    *,
    port: int,
    headless: bool,
    address: str,
) -> list[str]:
    """Construct the streamlit CLI invocation."""  # noqa: DOC201
    return [
        sys.executable,
        "-m",
        "streamlit",
        "run",
        str(script_path),
        "--server.port",
        str(port),
        "--server.address",
        address,
        "--server.headless",
        "true" if headless else "false",
    ]


def run_streamlit(command: Sequence[str], logger: Logger) -> int:
    """Execute the configured streamlit command and return its exit code."""  # noqa: DOC201
    try:
        result = subprocess.run(
            command,
            check=False,
            cwd=PROJECT_ROOT,
        )
    except KeyboardInterrupt:
        logger.info("Dashboard stopped by user")
        return 0
    except OSError:
        logger.exception("Unable to launch Streamlit")
        return 1
    return result.returncode


def run_dashboard(args: argparse.Namespace, logger: Logger) -> int:
    """Launch the Streamlit dashboard."""  # noqa: DOC201
    script_path = (
        args.app if args.app.is_absolute() else (PROJECT_ROOT / args.app)
    ).resolve()
    if not script_path.exists():
        logger.error("Streamlit script not found: %s", script_path)
        return 1

    logger.info(
        "Starting dashboard at http://%s:%s (headless=%s, api=%s)",
        args.address,
        args.port,
        args.headless,
        config.RELAY_API_URL,
    )

    command = build_streamlit_command(
        script_path,
        port=args.port,
        headless=args.headless,
        address=args.address,
    )

    return_code = run_streamlit(command, logger)
    if return_code != 0:
        logger.error("Streamlit exited with status %s", return_code)
    return return_code


def run_server(args: argparse.Namespace, logger: Logger) -> int:
    """Serve the webhook and dashboard API with uvicorn."""  # noqa: DOC201
    missing = config.missing_settings()
    if missing:
        logger.warning("Starting with missing settings: %s", ", ".join(missing))

    logger.info("Starting relay server at http://%s:%s", args.host, args.port)
    try:
        uvicorn.run(
            "relay.api:create_app",
            factory=True,
            host=args.host,
            port=args.port,
            log_level=config.LOG_LEVEL.lower(),
        )
    except KeyboardInterrupt:
        logger.info("Relay server stopped by user")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Dispatch to the selected subcommand."""  # noqa: DOC201
    args = parse_args(argv)

    config.setup_logging()
    logger = config.get_logger(__name__)

    if args.command == "serve":
        return run_server(args, logger)
    return run_dashboard(args, logger)


if __name__ == "__main__":
    sys.exit(main())
