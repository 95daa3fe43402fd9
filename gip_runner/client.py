"""HTTP calls from a build agent to the control plane."""

import logging
from typing import Any

import requests

logger = logging.getLogger(__name__)


def register_agent(
    name: str,
    labels: dict[str, str],
    server_url: str = "http://localhost:3000",
) -> dict[str, Any]:
    """
    Register this agent with the control plane.

    Args:
        name: Unique agent name
        labels: Free-form key/value labels
        server_url: Base URL of the control plane

    Returns:
        The registered agent as returned by the server (includes "id")

    Raises:
        RuntimeError: If the request fails or the server rejects it
    """
    try:
        response = requests.post(
            f"{server_url}/agents/register",
            json={"name": name, "labels": labels},
            timeout=30,
        )
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error registering agent: {e}")


def update_agent_status(
    agent_id: int, status: str, server_url: str = "http://localhost:3000"
) -> dict[str, Any]:
    """
    Set the agent's status (ONLINE, OFFLINE or DRAINING).

    Raises:
        RuntimeError: If the request fails or the server rejects it
    """
    try:
        response = requests.put(
            f"{server_url}/agents/{agent_id}/status",
            json={"status": status},
            timeout=30,
        )
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error updating agent status: {e}")


def send_heartbeat(
    agent_id: int, server_url: str = "http://localhost:3000"
) -> dict[str, Any]:
    """
    Send one heartbeat.

    Returns:
        dict with "message" and "last_seen_at"

    Raises:
        RuntimeError: If the request fails or the server rejects it
    """
    try:
        response = requests.post(
            f"{server_url}/agents/{agent_id}/heartbeat",
            timeout=30,
        )
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error sending heartbeat: {e}")
