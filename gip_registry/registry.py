"""
Agent registry and liveness state machine.

Agents register once (OFFLINE, never seen), then keep themselves ONLINE by
heartbeating. Explicit status changes are accepted at any time, and a
periodic sweep demotes ONLINE agents whose heartbeat has expired.

Every mutation is one conditional single-row update in the repository, so
heartbeats and sweeps racing on the same agent converge on the most recent
signal without locking.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from gip_common.errors import NotFoundError, ValidationError
from gip_common.models import Agent, AgentStatus
from gip_common.repository import GipRepository

logger = logging.getLogger(__name__)


def parse_agent_status(value: AgentStatus | str) -> AgentStatus:
    """
    Convert a status name into an AgentStatus.

    Raises:
        ValidationError: If value is not ONLINE, OFFLINE or DRAINING
    """
    if isinstance(value, AgentStatus):
        return value
    try:
        return AgentStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in AgentStatus)
        raise ValidationError(
            f"Invalid agent status {value!r}, expected one of: {allowed}"
        ) from None


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AgentRegistry:
    """Registration, heartbeats, status transitions and the stale sweep."""

    def __init__(
        self,
        repository: GipRepository,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the registry.

        Args:
            repository: Storage for agents
            clock: Returns the current UTC time (replaceable in tests)
        """
        self.repository = repository
        self.clock = clock

    async def register(self, name: str, labels: dict[str, str] | None = None) -> Agent:
        """
        Register a new agent.

        Raises:
            ValidationError: If name is empty
            ConflictError: If the name is already taken
        """
        if not name or not name.strip():
            raise ValidationError("Agent name is required")

        agent = await self.repository.create_agent(name, dict(labels or {}))
        logger.info(f"Agent {agent.id} registered as {agent.name}")
        return agent

    async def get(self, agent_id: int) -> Agent:
        """
        Raises:
            NotFoundError: If the agent does not exist
        """
        agent = await self.repository.get_agent(agent_id)
        if agent is None:
            raise NotFoundError("Agent not found")
        return agent

    async def get_by_name(self, name: str) -> Agent:
        """
        Look an agent up by its registered name.

        Raises:
            NotFoundError: If no agent has this name
        """
        agent = await self.repository.get_agent_by_name(name)
        if agent is None:
            raise NotFoundError("Agent not found")
        return agent

    async def list_agents(self, status: AgentStatus | str | None = None) -> list[Agent]:
        """
        List agents, optionally only those in one status.

        Raises:
            ValidationError: If status is not a known status
        """
        if status is None or status == "":
            return await self.repository.list_agents()
        return await self.repository.list_agents(parse_agent_status(status))

    async def heartbeat(self, agent_id: int) -> datetime:
        """
        Record a heartbeat; an OFFLINE agent becomes ONLINE.

        Returns:
            The recorded last_seen_at

        Raises:
            NotFoundError: If the agent does not exist
        """
        seen_at = self.clock()
        if not await self.repository.record_heartbeat(agent_id, seen_at):
            raise NotFoundError("Agent not found")
        logger.debug(f"Heartbeat from agent {agent_id}")
        return seen_at

    async def set_status(self, agent_id: int, status: AgentStatus | str) -> Agent:
        """
        Move an agent to ONLINE, OFFLINE or DRAINING.

        Raises:
            ValidationError: If status is not a known status
            NotFoundError: If the agent does not exist
        """
        new_status = parse_agent_status(status)
        if not await self.repository.update_agent_status(
            agent_id, new_status, self.clock()
        ):
            raise NotFoundError("Agent not found")

        logger.info(f"Agent {agent_id} status set to {new_status.value}")
        return await self.get(agent_id)

    async def update_labels(self, agent_id: int, labels: dict[str, str]) -> Agent:
        """
        Replace an agent's labels.

        Raises:
            NotFoundError: If the agent does not exist
        """
        if not await self.repository.update_agent_labels(agent_id, dict(labels)):
            raise NotFoundError("Agent not found")

        logger.info(f"Agent {agent_id} labels updated")
        return await self.get(agent_id)

    async def deregister(self, agent_id: int) -> None:
        """
        Remove an agent permanently.

        Raises:
            NotFoundError: If the agent does not exist
        """
        if not await self.repository.delete_agent(agent_id):
            raise NotFoundError("Agent not found")
        logger.info(f"Agent {agent_id} deregistered")

    async def sweep_stale(self, timeout: float | timedelta) -> int:
        """
        Mark ONLINE agents silent for longer than timeout as OFFLINE.

        Args:
            timeout: Heartbeat expiry, in seconds or as a timedelta

        Returns:
            Number of agents demoted
        """
        if not isinstance(timeout, timedelta):
            timeout = timedelta(seconds=timeout)
        threshold = self.clock() - timeout

        count = await self.repository.mark_stale_agents_offline(threshold)
        if count:
            logger.info(f"Marked {count} stale agent(s) OFFLINE")
        return count
