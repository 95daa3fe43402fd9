"""
GIP Common module.

This module contains shared domain models, the error taxonomy, configuration
lookup and the repository interface used across the GIP components (server,
builder, registry, persistence, admin CLI).

The common module has no dependencies on other gip_* modules, making it
a pure domain layer that can be imported by any component.
"""

from .models import Agent, AgentStatus, Build, BuildStatus, Project
from .repository import GipRepository

__all__ = ["Agent", "AgentStatus", "Build", "BuildStatus", "GipRepository", "Project"]
