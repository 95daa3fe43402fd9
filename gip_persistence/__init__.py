"""
GIP Persistence module.

This module contains the database implementation for projects, builds and
agents. Currently supports SQLite, but can be extended to PostgreSQL, MySQL,
etc.

The persistence layer depends on gip_common for domain models and
interfaces, and is used by the server and the admin CLI.
"""

from .sqlite_repository import SQLiteGipRepository

__all__ = ["SQLiteGipRepository"]
