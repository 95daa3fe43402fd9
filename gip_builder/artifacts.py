"""
Artifact store: deterministic placement of compiled binaries.

Artifacts live at <workspace>/project-<project id>/out/<project name>-<build id>.
Build ids are unique, so two builds of the same project never write the
same file.
"""

import logging
from pathlib import Path

from gip_common.errors import ArtifactWriteFailed
from gip_common.models import Project

from .workspace import WorkspaceLayout

logger = logging.getLogger(__name__)


def artifact_name(project_name: str, build_id: int) -> str:
    """File name of a build's artifact, also used as the download name."""
    return f"{project_name}-{build_id}"


class ArtifactStore:
    """Addresses build artifacts by project and build id."""

    def __init__(self, layout: WorkspaceLayout):
        self.layout = layout

    def artifact_path(self, project: Project, build_id: int) -> Path:
        return self.layout.output_dir(project.id) / artifact_name(project.name, build_id)

    def prepare(self, project: Project, build_id: int) -> Path:
        """
        Create the output directory and return the artifact path.

        Raises:
            ArtifactWriteFailed: If the output directory cannot be created
        """
        path = self.artifact_path(project, build_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArtifactWriteFailed(str(e)) from e
        return path

    def verify(self, path: Path) -> None:
        """
        Check that the build actually produced the artifact.

        Raises:
            ArtifactWriteFailed: If no file exists at path
        """
        if not Path(path).is_file():
            raise ArtifactWriteFailed(f"Build produced no artifact at {path}")
        logger.info(f"Artifact stored at {path}")
