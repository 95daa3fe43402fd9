"""
Workspace directory layout.

    <workspace>/project-<project id>/
        src-<build id>/     checkout of one build (removed afterwards)
        out/                artifacts, named <project name>-<build id>
        .cache/             Go module and build caches shared by the project's builds
"""

import logging
import os
from pathlib import Path

from gip_common.errors import EntryPointMissing

logger = logging.getLogger(__name__)


def validate_workspace_dir(path: str | Path) -> Path:
    """
    Make sure the workspace root exists and is writable.

    The directory is created if it does not exist.

    Args:
        path: Workspace root, relative or absolute

    Returns:
        The absolute workspace path

    Raises:
        NotADirectoryError: If the path exists but is not a directory
        OSError: If the directory cannot be created, read or written
    """
    abs_path = Path(path).resolve()

    if not abs_path.exists():
        logger.info(f"Workspace directory {abs_path} does not exist, creating it")
        abs_path.mkdir(parents=True, exist_ok=True)
        return abs_path

    if not abs_path.is_dir():
        raise NotADirectoryError(f"Workspace path is not a directory: {abs_path}")

    # Readable
    os.listdir(abs_path)

    # Writable
    probe = abs_path / ".gip_test_write"
    probe.touch()
    probe.unlink()

    return abs_path


class WorkspaceLayout:
    """Computes the absolute paths used by the build pipeline."""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def project_dir(self, project_id: int) -> Path:
        return self.root / f"project-{project_id}"

    def checkout_dir(self, project_id: int, build_id: int) -> Path:
        # One checkout per build; concurrent builds of a project never share it.
        return self.project_dir(project_id) / f"src-{build_id}"

    def output_dir(self, project_id: int) -> Path:
        return self.project_dir(project_id) / "out"

    def cache_dir(self, project_id: int) -> Path:
        return self.project_dir(project_id) / ".cache"

    def source_dir(self, checkout_dir: Path, subdir: str | None) -> Path:
        """
        Resolve the directory the build runs in.

        Raises:
            EntryPointMissing: If subdir does not exist or points outside the checkout
        """
        checkout_dir = Path(checkout_dir).resolve()
        if not subdir:
            return checkout_dir

        source_dir = (checkout_dir / subdir).resolve()
        if not source_dir.is_relative_to(checkout_dir) or not source_dir.is_dir():
            raise EntryPointMissing(f"{subdir} not found in the repository")
        return source_dir
