"""
Entrypoint for a build agent.

Usage:
    python -m gip_runner [OPTIONS]
    gip-runner [OPTIONS]  (after pip install)

Environment Variables:
    GIP_SERVER_URL: Control plane URL (default: http://localhost:3000)
"""

import argparse
import logging
import platform
import signal
import socket
import sys
from typing import Any

from gip_common.config import get_server_url

from .runner import AgentRunner

logger = logging.getLogger(__name__)


def default_labels() -> dict[str, str]:
    """Labels describing the host: operating system and CPU architecture."""
    return {
        "os": platform.system().lower(),
        "arch": platform.machine().lower(),
    }


def default_name() -> str:
    return socket.gethostname() or "unknown-runner"


def parse_label(value: str) -> tuple[str, str]:
    """argparse type for --label key=value."""
    key, sep, val = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"Invalid label {value!r}, expected key=value")
    return key, val


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="GIP Runner - registers a build agent and keeps it alive",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  GIP_SERVER_URL   Control plane URL (default: http://localhost:3000)

Examples:
  # Register under the host name with os/arch labels
  gip-runner --server-url http://ci.internal:3000

  # Custom name and extra labels
  gip-runner -n builder-1 -l pool=fast -l gpu=none
        """,
    )

    parser.add_argument(
        "--server-url",
        "-c",
        type=str,
        default=None,
        help="Control plane URL (default: GIP_SERVER_URL env or http://localhost:3000)",
    )
    parser.add_argument(
        "--name",
        "-n",
        type=str,
        default=None,
        help="Agent name (default: host name)",
    )
    parser.add_argument(
        "--label",
        "-l",
        dest="labels",
        type=parse_label,
        action="append",
        default=[],
        help="Agent label as key=value, repeatable (default: os and arch)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=30.0,
        help="Seconds between heartbeats (default: 30)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def build_runner(args: argparse.Namespace) -> AgentRunner:
    """Create the runner from parsed arguments, applying defaults."""
    labels = default_labels()
    labels.update(dict(args.labels))

    interval = args.interval
    if interval <= 0:
        logger.warning(f"Invalid interval={interval}, using default 30.0")
        interval = 30.0

    return AgentRunner(
        server_url=args.server_url or get_server_url(),
        name=args.name or default_name(),
        labels=labels,
        heartbeat_interval=interval,
    )


def main(argv: list[str] | None = None) -> int:
    """
    Main entrypoint for the runner.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    runner = build_runner(args)
    logger.info(
        f"Starting runner {runner.name} against {runner.server_url} "
        f"(labels={runner.labels})"
    )

    def signal_handler(sig: Any, _frame: Any) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {sig}, initiating graceful shutdown...")
        runner.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        runner.run()
        logger.info("Runner stopped cleanly")
        return 0
    except RuntimeError as e:
        logger.error(f"Runner failed: {e}")
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
