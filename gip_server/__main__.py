"""
Entrypoint for running the GIP control plane.

Serves the HTTP API with uvicorn. The liveness sweeper runs inside the
same process and is started by the application's lifespan.

Usage:
    python -m gip_server [OPTIONS]
    gip-server [OPTIONS]  (after pip install)

Environment Variables:
    GIP_DB_PATH: Database path (default: gip.db)
    GIP_WORKSPACE: Workspace root (default: ./workspace)
    GIP_BUILD_TIMEOUT: Build deadline in seconds (default: 300)
    GIP_AGENT_TIMEOUT: Heartbeat expiry in seconds (default: 90)
    GIP_SWEEP_INTERVAL: Seconds between liveness sweeps (default: 30)
    GIP_GO_BINARY: Go toolchain executable (default: go)
"""

import argparse
import logging
import os
import sys

import uvicorn

from gip_builder.workspace import validate_workspace_dir
from gip_common.config import get_workspace_dir

logger = logging.getLogger(__name__)

# CLI option -> environment variable read by gip_common.config
_ENV_OVERRIDES = {
    "db_path": "GIP_DB_PATH",
    "workspace": "GIP_WORKSPACE",
    "build_timeout": "GIP_BUILD_TIMEOUT",
    "agent_timeout": "GIP_AGENT_TIMEOUT",
    "sweep_interval": "GIP_SWEEP_INTERVAL",
    "go_binary": "GIP_GO_BINARY",
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="GIP Server - builds Go projects from git and tracks build agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  GIP_DB_PATH          Database path (default: gip.db)
  GIP_WORKSPACE        Workspace root (default: ./workspace)
  GIP_BUILD_TIMEOUT    Build deadline in seconds (default: 300)
  GIP_AGENT_TIMEOUT    Heartbeat expiry in seconds (default: 90)
  GIP_SWEEP_INTERVAL   Seconds between liveness sweeps (default: 30)
  GIP_GO_BINARY        Go toolchain executable (default: go)

Note: Command-line arguments override environment variables.

Examples:
  # Run with default settings on port 3000
  gip-server

  # Use a custom database and workspace
  gip-server --db-path /var/lib/gip/gip.db --workspace /var/lib/gip/workspace

  # Enable debug logging
  gip-server --log-level DEBUG
        """,
    )

    parser.add_argument(
        "--host",
        type=str,
        default="0.0.0.0",
        help="Interface to bind (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port to listen on (default: 3000)",
    )
    parser.add_argument(
        "--db-path",
        type=str,
        default=None,
        help="Path to SQLite database file (default: GIP_DB_PATH env or gip.db)",
    )
    parser.add_argument(
        "--workspace",
        type=str,
        default=None,
        help="Workspace root directory (default: GIP_WORKSPACE env or ./workspace)",
    )
    parser.add_argument(
        "--build-timeout",
        type=float,
        default=None,
        help="Build deadline in seconds (default: GIP_BUILD_TIMEOUT env or 300)",
    )
    parser.add_argument(
        "--agent-timeout",
        type=float,
        default=None,
        help="Heartbeat expiry in seconds (default: GIP_AGENT_TIMEOUT env or 90)",
    )
    parser.add_argument(
        "--sweep-interval",
        type=float,
        default=None,
        help="Seconds between liveness sweeps (default: GIP_SWEEP_INTERVAL env or 30)",
    )
    parser.add_argument(
        "--go-binary",
        type=str,
        default=None,
        help="Go toolchain executable (default: GIP_GO_BINARY env or go)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def apply_overrides(args: argparse.Namespace) -> None:
    """
    Export command-line options as environment variables.

    The application reads its configuration from the environment at startup,
    so this is how CLI arguments take precedence.
    """
    for option, env_name in _ENV_OVERRIDES.items():
        value = getattr(args, option)
        if value is None:
            continue
        if isinstance(value, float) and value <= 0:
            logger.warning(f"Invalid --{option.replace('_', '-')}={value}, ignoring")
            continue
        os.environ[env_name] = str(value)


def main(argv: list[str] | None = None) -> int:
    """
    Main entrypoint for the server.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    apply_overrides(args)

    # Fail before binding the port if the workspace is unusable
    try:
        validate_workspace_dir(get_workspace_dir())
    except OSError as e:
        logger.error(f"Workspace validation failed: {e}")
        return 1

    logger.info(f"Starting GIP server on {args.host}:{args.port}")

    try:
        uvicorn.run(
            "gip_server.app:app",
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
        )
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
