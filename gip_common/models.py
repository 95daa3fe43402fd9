"""
Data models for projects, builds and build agents.

These models represent the domain objects used throughout the application,
independent of the underlying storage mechanism.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

# First line of a successful build's log output. Kept byte-for-byte
# compatible with rows written by earlier versions of the service.
BINARY_MARKER = "Binary: "

# Project names end up in artifact file names and download headers.
PROJECT_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]*$"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class BuildStatus(str, Enum):
    """
    Lifecycle of a build.

    pending -> building -> success | failed. The two last states are terminal.
    """

    PENDING = "pending"
    BUILDING = "building"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BuildStatus.SUCCESS, BuildStatus.FAILED)

    def predecessors(self) -> tuple["BuildStatus", ...]:
        """Statuses a build may be in for a transition to this one to be legal."""
        return _BUILD_PREDECESSORS[self]


_BUILD_PREDECESSORS: dict[BuildStatus, tuple[BuildStatus, ...]] = {
    BuildStatus.PENDING: (),
    BuildStatus.BUILDING: (BuildStatus.PENDING,),
    BuildStatus.SUCCESS: (BuildStatus.BUILDING,),
    # A build may fail before it ever reached "building".
    BuildStatus.FAILED: (BuildStatus.PENDING, BuildStatus.BUILDING),
}


class AgentStatus(str, Enum):
    """Liveness status of a build agent."""

    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    DRAINING = "DRAINING"


@dataclass
class Project:
    """
    A registered source project.

    Projects are read-only input to the build pipeline.
    """

    id: int
    name: str  # Unique
    repo_url: str
    branch: str = "main"
    subdir: str | None = None  # Build from this directory inside the checkout
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert project to dictionary format (for API responses)."""
        return {
            "id": self.id,
            "name": self.name,
            "repo_url": self.repo_url,
            "branch": self.branch,
            "subdir": self.subdir,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class Build:
    """
    A single execution of the build pipeline for a project.

    Invariant: ended_at is set if and only if the status is terminal.
    """

    id: int
    project_id: int
    branch: str  # Snapshot of the project's branch at trigger time
    status: BuildStatus = BuildStatus.PENDING
    log_output: str = ""
    artifact_path: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    created_at: datetime | None = None

    def binary_path(self) -> str | None:
        """
        Resolve the artifact path of this build.

        Prefers the structured artifact_path column and falls back to the
        "Binary: <path>" marker on the first log line.
        """
        if self.artifact_path:
            return self.artifact_path
        return parse_binary_marker(self.log_output)

    def to_dict(self) -> dict[str, Any]:
        """Convert build to dictionary format (for API responses)."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "branch": self.branch,
            "status": self.status.value,
            "log_output": self.log_output,
            "artifact_path": self.artifact_path,
            "started_at": _iso(self.started_at),
            "ended_at": _iso(self.ended_at),
            "created_at": _iso(self.created_at),
        }

    def to_summary_dict(self) -> dict[str, Any]:
        """Convert build to summary format (without logs, for listings)."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "branch": self.branch,
            "status": self.status.value,
            "started_at": _iso(self.started_at),
            "ended_at": _iso(self.ended_at),
            "created_at": _iso(self.created_at),
        }


@dataclass
class Agent:
    """
    A build agent process known to the control plane.

    Agents register once, then keep themselves ONLINE through heartbeats.
    """

    id: int
    name: str  # Unique
    labels: dict[str, str] = field(default_factory=dict)
    status: AgentStatus = AgentStatus.OFFLINE
    last_seen_at: datetime | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert agent to dictionary format (for API responses)."""
        return {
            "id": self.id,
            "name": self.name,
            "labels": dict(self.labels),
            "status": self.status.value,
            "last_seen_at": _iso(self.last_seen_at),
            "created_at": _iso(self.created_at),
        }


def format_binary_marker(binary_path: str, logs: str) -> str:
    """Prefix build logs with the artifact marker line."""
    return f"{BINARY_MARKER}{binary_path}\n\n{logs}"


def parse_binary_marker(log_output: str | None) -> str | None:
    """
    Extract the artifact path from a "Binary: <path>" first log line.

    Returns None when the log does not start with the marker or the marker
    line is not newline-terminated.
    """
    if not log_output or not log_output.startswith(BINARY_MARKER):
        return None
    end = log_output.find("\n", len(BINARY_MARKER))
    if end == -1:
        return None
    path = log_output[len(BINARY_MARKER) : end]
    return path or None
