"""
Execution environment shared by every process the build pipeline spawns.

Builds run with a minimal, explicitly constructed environment and under a
single deadline that covers the whole pipeline (checkout included).
"""

import os
import time
from pathlib import Path


def build_environment(home: Path, cache_root: Path) -> dict[str, str]:
    """
    Construct the environment for a spawned build process.

    Only PATH is inherited from the host so git and the compiler can be
    found. HOME and the Go tool caches point inside the workspace; nothing
    else from the host environment is forwarded.

    Args:
        home: Directory used as the synthetic HOME
        cache_root: Directory under which the tool caches live

    Returns:
        Environment mapping suitable for asyncio.create_subprocess_exec
    """
    home = Path(home).resolve()
    cache_root = Path(cache_root).resolve()
    return {
        "PATH": os.environ.get("PATH", os.defpath),
        "HOME": str(home),
        "GOMODCACHE": str(cache_root / "gomodcache"),
        "GOCACHE": str(cache_root / "gocache"),
    }


class Deadline:
    """
    A point in monotonic time after which the pipeline must stop.

    Created once per build and passed to every stage, so time spent cloning
    is not available to the compiler anymore.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._expires_at = time.monotonic() + timeout

    def remaining(self) -> float:
        """Seconds left before expiry (never negative)."""
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at
