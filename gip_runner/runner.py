"""
Build agent lifecycle.

register -> ONLINE -> heartbeat every interval -> OFFLINE on shutdown.

Heartbeat failures are logged and retried on the next tick. The final
OFFLINE update is best-effort; the server's liveness sweep catches agents
that exit without it.
"""

import logging
import threading

from . import client

logger = logging.getLogger(__name__)


class AgentRunner:
    """Keeps one agent registered and alive on the control plane."""

    def __init__(
        self,
        server_url: str,
        name: str,
        labels: dict[str, str],
        heartbeat_interval: float = 30.0,
    ):
        """
        Initialize the runner.

        Args:
            server_url: Base URL of the control plane
            name: Unique agent name
            labels: Labels reported at registration
            heartbeat_interval: Seconds between heartbeats
        """
        self.server_url = server_url.rstrip("/")
        self.name = name
        self.labels = labels
        self.heartbeat_interval = heartbeat_interval

        self.agent_id: int | None = None
        self._stop = threading.Event()

    def start(self) -> int:
        """
        Register the agent and report it ONLINE.

        Returns:
            The agent id assigned by the server

        Raises:
            RuntimeError: If registration fails
        """
        agent = client.register_agent(self.name, self.labels, self.server_url)
        self.agent_id = agent["id"]
        logger.info(f"Agent registered: id={self.agent_id} name={self.name}")

        try:
            client.update_agent_status(self.agent_id, "ONLINE", self.server_url)
            logger.info("Agent set ONLINE")
        except RuntimeError as e:
            # The first heartbeat promotes the agent anyway
            logger.warning(f"Could not set agent ONLINE: {e}")

        return self.agent_id

    def heartbeat_once(self) -> bool:
        """Send one heartbeat. Returns True if the server accepted it."""
        if self.agent_id is None:
            raise RuntimeError("Agent not registered")
        try:
            result = client.send_heartbeat(self.agent_id, self.server_url)
        except RuntimeError as e:
            logger.error(f"Heartbeat failed: {e}")
            return False
        logger.info(f"Heartbeat sent (last_seen_at={result.get('last_seen_at')})")
        return True

    def heartbeat_loop(self) -> None:
        """Heartbeat immediately, then every interval until stop() is called."""
        self.heartbeat_once()
        while not self._stop.wait(self.heartbeat_interval):
            self.heartbeat_once()
        logger.info("Heartbeat loop stopped")

    def stop(self) -> None:
        """Ask the heartbeat loop to exit. Safe to call from a signal handler."""
        self._stop.set()

    def shutdown(self) -> None:
        """Report the agent OFFLINE, best-effort."""
        if self.agent_id is None:
            return
        try:
            client.update_agent_status(self.agent_id, "OFFLINE", self.server_url)
            logger.info("Agent set OFFLINE")
        except RuntimeError as e:
            logger.warning(f"Could not set agent OFFLINE: {e}")

    def run(self) -> None:
        """
        Run the full lifecycle, blocking until stop() is called.

        Raises:
            RuntimeError: If registration fails
        """
        self.start()
        try:
            self.heartbeat_loop()
        finally:
            self.shutdown()
