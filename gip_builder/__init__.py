"""
GIP Builder module.

This module contains the build pipeline: workspace layout, hermetic process
environment, source checkout, build step execution, artifact placement and
the orchestrator tying them to the build state machine.
"""

from .artifacts import ArtifactStore
from .environment import Deadline, build_environment
from .executor import ENTRY_POINT, BuildExecutor
from .orchestrator import BuildOrchestrator
from .source import SourceAcquirer
from .workspace import WorkspaceLayout, validate_workspace_dir

__all__ = [
    "ArtifactStore",
    "BuildExecutor",
    "BuildOrchestrator",
    "Deadline",
    "ENTRY_POINT",
    "SourceAcquirer",
    "WorkspaceLayout",
    "build_environment",
    "validate_workspace_dir",
]
