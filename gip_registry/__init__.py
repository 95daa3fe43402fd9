"""
GIP Registry module.

This module contains the agent registry (registration, heartbeats, status
transitions) and the background sweep that reaps agents which stopped
reporting.
"""

from .registry import AgentRegistry, parse_agent_status
from .sweeper import LivenessSweeper

__all__ = ["AgentRegistry", "LivenessSweeper", "parse_agent_status"]
