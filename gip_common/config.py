"""
Configuration lookup shared by the server, the runner and the admin CLI.

Every setting comes from an environment variable with a default. Entry
points accept command-line overrides and fall back to these functions.

Environment variables:
    GIP_DB_PATH: SQLite database path (default: gip.db)
    GIP_WORKSPACE: Workspace root for checkouts and artifacts (default: ./workspace)
    GIP_BUILD_TIMEOUT: Pipeline deadline in seconds (default: 300)
    GIP_AGENT_TIMEOUT: Seconds without heartbeat before an agent is OFFLINE (default: 90)
    GIP_SWEEP_INTERVAL: Seconds between liveness sweeps (default: 30)
    GIP_GO_BINARY: Compiler executable (default: go)
    GIP_SERVER_URL: Control plane URL used by the runner (default: http://localhost:3000)
"""

import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "gip.db"
DEFAULT_WORKSPACE = "./workspace"
DEFAULT_BUILD_TIMEOUT = 300.0
DEFAULT_AGENT_TIMEOUT = 90.0
DEFAULT_SWEEP_INTERVAL = 30.0
DEFAULT_GO_BINARY = "go"
DEFAULT_SERVER_URL = "http://localhost:3000"


def _positive_float_env(name: str, default: float) -> float:
    """
    Read a positive number from the environment.

    Invalid or non-positive values are logged and replaced by the default.
    """
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"Invalid {name}={value}, using default {default}")
        return default
    return value


def get_database_path() -> str:
    return os.environ.get("GIP_DB_PATH", DEFAULT_DB_PATH)


def get_workspace_dir() -> str:
    return os.environ.get("GIP_WORKSPACE", DEFAULT_WORKSPACE)


def get_build_timeout() -> float:
    return _positive_float_env("GIP_BUILD_TIMEOUT", DEFAULT_BUILD_TIMEOUT)


def get_agent_timeout() -> float:
    return _positive_float_env("GIP_AGENT_TIMEOUT", DEFAULT_AGENT_TIMEOUT)


def get_sweep_interval() -> float:
    return _positive_float_env("GIP_SWEEP_INTERVAL", DEFAULT_SWEEP_INTERVAL)


def get_go_binary() -> str:
    return os.environ.get("GIP_GO_BINARY", DEFAULT_GO_BINARY)


def get_server_url() -> str:
    return os.environ.get("GIP_SERVER_URL", DEFAULT_SERVER_URL)
