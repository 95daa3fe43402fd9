"""
Abstract repository interface for project, build and agent persistence.

This module defines the contract that any database implementation must follow,
allowing easy swapping between SQLite, PostgreSQL, MySQL, etc.

Every mutation is a single-row statement. Implementations must not rely on
multi-row transactions: concurrent builds and concurrent heartbeats only
ever race on one row at a time.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from .models import Agent, AgentStatus, Build, BuildStatus, Project


class GipRepository(ABC):
    """
    Abstract base class for storage operations.

    Implementations must provide async-safe access to the data and handle
    their own connection management.
    """

    # Project methods

    @abstractmethod
    async def create_project(
        self, name: str, repo_url: str, branch: str = "main", subdir: str | None = None
    ) -> Project:
        """
        Create a new project.

        Raises:
            ConflictError: If a project with the same name already exists
        """
        pass

    @abstractmethod
    async def get_project(self, project_id: int) -> Project | None:
        """Retrieve a project by its ID, or None."""
        pass

    @abstractmethod
    async def list_projects(self) -> list[Project]:
        """List all projects, newest first."""
        pass

    # Build methods

    @abstractmethod
    async def create_build(self, project_id: int, branch: str) -> Build:
        """
        Create a new build in the pending state.

        Args:
            project_id: ID of the project being built
            branch: Branch snapshot taken from the project at trigger time

        Returns:
            The created Build with its assigned ID
        """
        pass

    @abstractmethod
    async def get_build(self, build_id: int) -> Build | None:
        """Retrieve a build with its full log output, or None."""
        pass

    @abstractmethod
    async def list_project_builds(self, project_id: int) -> list[Build]:
        """List builds of a project, newest first, without log output."""
        pass

    @abstractmethod
    async def update_build_status(
        self,
        build_id: int,
        status: BuildStatus,
        log_output: str | None = None,
        artifact_path: str | None = None,
    ) -> bool:
        """
        Move a build to a new status.

        The update only applies when the build's current status is one of
        status.predecessors(). ended_at is set when status is terminal.

        Args:
            build_id: ID of the build
            status: Target status
            log_output: Replacement log text (unchanged when None)
            artifact_path: Path of the produced artifact (success only)

        Returns:
            True if the transition was applied, False if the build does not
            exist or is not in a state that allows it
        """
        pass

    # Agent methods

    @abstractmethod
    async def create_agent(self, name: str, labels: dict[str, str]) -> Agent:
        """
        Create an OFFLINE agent that has never been seen.

        Raises:
            ConflictError: If an agent with the same name already exists
        """
        pass

    @abstractmethod
    async def get_agent(self, agent_id: int) -> Agent | None:
        """Retrieve an agent by its ID, or None."""
        pass

    @abstractmethod
    async def get_agent_by_name(self, name: str) -> Agent | None:
        """Retrieve an agent by its unique name, or None."""
        pass

    @abstractmethod
    async def list_agents(self, status: AgentStatus | None = None) -> list[Agent]:
        """List agents, optionally filtered by status."""
        pass

    @abstractmethod
    async def record_heartbeat(self, agent_id: int, seen_at: datetime) -> bool:
        """
        Refresh last_seen_at and promote an OFFLINE agent to ONLINE.

        Returns:
            False if the agent does not exist
        """
        pass

    @abstractmethod
    async def update_agent_status(
        self, agent_id: int, status: AgentStatus, seen_at: datetime
    ) -> bool:
        """
        Set an agent's status explicitly and refresh last_seen_at.

        Returns:
            False if the agent does not exist
        """
        pass

    @abstractmethod
    async def update_agent_labels(self, agent_id: int, labels: dict[str, str]) -> bool:
        """
        Replace an agent's labels.

        Returns:
            False if the agent does not exist
        """
        pass

    @abstractmethod
    async def delete_agent(self, agent_id: int) -> bool:
        """
        Remove an agent permanently.

        Returns:
            False if the agent does not exist
        """
        pass

    @abstractmethod
    async def mark_stale_agents_offline(self, threshold: datetime) -> int:
        """
        Demote ONLINE agents last seen before threshold to OFFLINE.

        The condition is evaluated by the database at write time, so a
        heartbeat that lands concurrently is never overwritten.

        Returns:
            Number of agents demoted
        """
        pass

    @abstractmethod
    async def ping(self) -> None:
        """
        Check that the database answers.

        Raises:
            Exception: If the database is unreachable
        """
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the database (create tables, etc.).

        Called once at application startup.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close database connections and cleanup resources.

        Called at application shutdown.
        """
        pass
