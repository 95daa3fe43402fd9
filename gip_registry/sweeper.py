"""
Background liveness sweep.

Runs AgentRegistry.sweep_stale on a fixed interval. The runner's shutdown
signal is best-effort, so this loop is what eventually marks agents that
died without saying goodbye as OFFLINE.
"""

import asyncio
import logging

from .registry import AgentRegistry

logger = logging.getLogger(__name__)


class LivenessSweeper:
    """
    Periodically demotes agents whose heartbeat has expired.

    Failures of a single sweep are logged and never stop the loop.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        agent_timeout: float = 90.0,
        sweep_interval: float = 30.0,
    ):
        """
        Initialize the sweeper.

        Args:
            registry: Agent registry to sweep
            agent_timeout: Seconds without heartbeat before an agent is stale
            sweep_interval: Seconds between sweeps
        """
        self.registry = registry
        self.agent_timeout = agent_timeout
        self.sweep_interval = sweep_interval

        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the sweep loop."""
        if self._running:
            logger.warning("Liveness sweeper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"Liveness sweeper started (timeout={self.agent_timeout}s, "
            f"interval={self.sweep_interval}s)"
        )

    async def stop(self) -> None:
        """Stop the sweep loop."""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Liveness sweeper stopped")

    async def _run_loop(self) -> None:
        """Main sweep loop."""
        while self._running:
            await self.sweep_once()
            await asyncio.sleep(self.sweep_interval)

    async def sweep_once(self) -> int:
        """
        Perform one sweep.

        Returns:
            Number of agents demoted, 0 if the sweep failed
        """
        try:
            return await self.registry.sweep_stale(self.agent_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in liveness sweep: {e}", exc_info=True)
            return 0
