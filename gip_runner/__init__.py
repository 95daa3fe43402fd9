"""
GIP Runner module.

The build agent process: registers itself with the control plane, reports
ONLINE and heartbeats until it is stopped.
"""

from .runner import AgentRunner

__all__ = ["AgentRunner"]
