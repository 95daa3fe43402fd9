"""
SQLite implementation of the GIP repository.

Uses aiosqlite for async operations and provides thread-safe access.
Can be easily replaced with PostgreSQL/MySQL implementations.
"""

import json
import logging
from datetime import UTC, datetime

import aiosqlite

from gip_common.errors import ConflictError
from gip_common.models import Agent, AgentStatus, Build, BuildStatus, Project
from gip_common.repository import GipRepository

logger = logging.getLogger(__name__)

_PROJECT_COLUMNS = "id, name, repo_url, branch, subdir, created_at, updated_at"
_BUILD_COLUMNS = (
    "id, project_id, branch, status, log_output, artifact_path, "
    "started_at, ended_at, created_at"
)
_AGENT_COLUMNS = "id, name, labels, status, last_seen_at, created_at"


def _ts(value: datetime | None) -> str | None:
    """
    Serialize a timestamp as UTC ISO-8601 with a fixed width.

    Always emitting microseconds keeps lexical order equal to chronological
    order, which the stale-agent sweep relies on.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _now() -> datetime:
    return datetime.now(UTC)


class SQLiteGipRepository(GipRepository):
    """
    SQLite-based storage implementation.

    Uses a single database file with three tables:
    - projects: Registered source projects
    - builds: Build records with foreign key to projects
    - agents: Build agents and their liveness state
    """

    def __init__(self, db_path: str = "gip.db"):
        """
        Initialize the SQLite repository.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
            # Enable foreign key constraints
            await self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    async def initialize(self) -> None:
        """
        Create database tables if they don't exist.

        Schema:
        - projects table: id, unique name, repository URL, branch, subdir
        - builds table: status, logs and artifact path per build
        - agents table: unique name, JSON labels, status, last_seen_at
        """
        conn = await self._get_connection()

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS projects (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                repo_url TEXT NOT NULL,
                branch TEXT NOT NULL DEFAULT 'main',
                subdir TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS builds (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id INTEGER NOT NULL,
                branch TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK(status IN ('pending', 'building', 'success', 'failed')),
                log_output TEXT NOT NULL DEFAULT '',
                artifact_path TEXT,
                started_at TEXT,
                ended_at TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
            )
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_builds_project_id
            ON builds(project_id)
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS agents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                labels TEXT NOT NULL DEFAULT '{}',
                status TEXT NOT NULL DEFAULT 'OFFLINE'
                    CHECK(status IN ('ONLINE', 'OFFLINE', 'DRAINING')),
                last_seen_at TEXT,
                created_at TEXT NOT NULL
            )
        """)

        # The sweep filters on status
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_agents_status
            ON agents(status)
        """)

        await conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def ping(self) -> None:
        conn = await self._get_connection()
        await conn.execute("SELECT 1")

    # Project methods

    @staticmethod
    def _row_to_project(row) -> Project:
        project_id, name, repo_url, branch, subdir, created_at, updated_at = row
        return Project(
            id=project_id,
            name=name,
            repo_url=repo_url,
            branch=branch,
            subdir=subdir or None,
            created_at=_parse_ts(created_at),
            updated_at=_parse_ts(updated_at),
        )

    async def create_project(
        self, name: str, repo_url: str, branch: str = "main", subdir: str | None = None
    ) -> Project:
        """
        Create a new project.

        Raises:
            ConflictError: If a project with the same name already exists
        """
        conn = await self._get_connection()
        now = _now()

        try:
            cursor = await conn.execute(
                """
                INSERT INTO projects (name, repo_url, branch, subdir, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (name, repo_url, branch or "main", subdir, _ts(now), _ts(now)),
            )
        except aiosqlite.IntegrityError as e:
            raise ConflictError(f"Project with name {name!r} already exists") from e
        await conn.commit()

        return Project(
            id=cursor.lastrowid,
            name=name,
            repo_url=repo_url,
            branch=branch or "main",
            subdir=subdir or None,
            created_at=now,
            updated_at=now,
        )

    async def get_project(self, project_id: int) -> Project | None:
        conn = await self._get_connection()

        cursor = await conn.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id = ?",
            (project_id,),
        )
        row = await cursor.fetchone()

        if row is None:
            return None
        return self._row_to_project(row)

    async def list_projects(self) -> list[Project]:
        conn = await self._get_connection()

        cursor = await conn.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects ORDER BY id DESC"
        )
        rows = await cursor.fetchall()

        return [self._row_to_project(row) for row in rows]

    # Build methods

    @staticmethod
    def _row_to_build(row) -> Build:
        (
            build_id,
            project_id,
            branch,
            status,
            log_output,
            artifact_path,
            started_at,
            ended_at,
            created_at,
        ) = row
        return Build(
            id=build_id,
            project_id=project_id,
            branch=branch,
            status=BuildStatus(status),
            log_output=log_output or "",
            artifact_path=artifact_path,
            started_at=_parse_ts(started_at),
            ended_at=_parse_ts(ended_at),
            created_at=_parse_ts(created_at),
        )

    async def create_build(self, project_id: int, branch: str) -> Build:
        """
        Create a new build in the pending state.

        Args:
            project_id: ID of the project being built
            branch: Branch snapshot taken from the project at trigger time
        """
        conn = await self._get_connection()
        now = _now()

        cursor = await conn.execute(
            """
            INSERT INTO builds (project_id, branch, status, log_output, started_at, created_at)
            VALUES (?, ?, ?, '', ?, ?)
            """,
            (project_id, branch, BuildStatus.PENDING.value, _ts(now), _ts(now)),
        )
        await conn.commit()

        return Build(
            id=cursor.lastrowid,
            project_id=project_id,
            branch=branch,
            status=BuildStatus.PENDING,
            started_at=now,
            created_at=now,
        )

    async def get_build(self, build_id: int) -> Build | None:
        conn = await self._get_connection()

        cursor = await conn.execute(
            f"SELECT {_BUILD_COLUMNS} FROM builds WHERE id = ?",
            (build_id,),
        )
        row = await cursor.fetchone()

        if row is None:
            return None
        return self._row_to_build(row)

    async def list_project_builds(self, project_id: int) -> list[Build]:
        """
        List builds of a project, newest first.

        Returns:
            List of Build objects with empty log output (for listing efficiency)
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            """
            SELECT id, project_id, branch, status, '', artifact_path,
                   started_at, ended_at, created_at
            FROM builds
            WHERE project_id = ?
            ORDER BY id DESC
            """,
            (project_id,),
        )
        rows = await cursor.fetchall()

        return [self._row_to_build(row) for row in rows]

    async def update_build_status(
        self,
        build_id: int,
        status: BuildStatus,
        log_output: str | None = None,
        artifact_path: str | None = None,
    ) -> bool:
        """
        Move a build to a new status if its current status allows it.

        Args:
            build_id: ID of the build
            status: Target status
            log_output: Replacement log text (unchanged when None)
            artifact_path: Path of the produced artifact

        Returns:
            True if the row was updated
        """
        predecessors = status.predecessors()
        if not predecessors:
            return False

        conn = await self._get_connection()

        # Build dynamic SQL based on what's being updated
        updates = ["status = ?"]
        params: list = [status.value]

        if log_output is not None:
            updates.append("log_output = ?")
            params.append(log_output)

        if artifact_path is not None:
            updates.append("artifact_path = ?")
            params.append(artifact_path)

        if status.is_terminal:
            updates.append("ended_at = ?")
            params.append(_ts(_now()))

        placeholders = ", ".join("?" for _ in predecessors)
        params.append(build_id)  # WHERE clause parameters
        params.extend(p.value for p in predecessors)

        sql = (
            f"UPDATE builds SET {', '.join(updates)} "
            f"WHERE id = ? AND status IN ({placeholders})"
        )
        cursor = await conn.execute(sql, params)
        await conn.commit()

        updated = cursor.rowcount > 0
        if updated:
            logger.info(f"Build {build_id} status updated to {status.value}")
        else:
            logger.warning(
                f"Build {build_id} not moved to {status.value}: "
                "missing or in a state that does not allow it"
            )
        return updated

    # Agent methods

    @staticmethod
    def _row_to_agent(row) -> Agent:
        agent_id, name, labels_json, status, last_seen_at, created_at = row
        try:
            labels = json.loads(labels_json) if labels_json else {}
        except json.JSONDecodeError:
            labels = {}
        return Agent(
            id=agent_id,
            name=name,
            labels=labels,
            status=AgentStatus(status),
            last_seen_at=_parse_ts(last_seen_at),
            created_at=_parse_ts(created_at),
        )

    async def create_agent(self, name: str, labels: dict[str, str]) -> Agent:
        """
        Create an OFFLINE agent that has never been seen.

        Raises:
            ConflictError: If an agent with the same name already exists
        """
        conn = await self._get_connection()
        now = _now()

        try:
            cursor = await conn.execute(
                """
                INSERT INTO agents (name, labels, status, last_seen_at, created_at)
                VALUES (?, ?, ?, NULL, ?)
                """,
                (name, json.dumps(labels or {}), AgentStatus.OFFLINE.value, _ts(now)),
            )
        except aiosqlite.IntegrityError as e:
            raise ConflictError(f"Agent with name {name!r} already exists") from e
        await conn.commit()

        return Agent(
            id=cursor.lastrowid,
            name=name,
            labels=dict(labels or {}),
            status=AgentStatus.OFFLINE,
            last_seen_at=None,
            created_at=now,
        )

    async def get_agent(self, agent_id: int) -> Agent | None:
        conn = await self._get_connection()

        cursor = await conn.execute(
            f"SELECT {_AGENT_COLUMNS} FROM agents WHERE id = ?",
            (agent_id,),
        )
        row = await cursor.fetchone()

        if row is None:
            return None
        return self._row_to_agent(row)

    async def get_agent_by_name(self, name: str) -> Agent | None:
        conn = await self._get_connection()

        cursor = await conn.execute(
            f"SELECT {_AGENT_COLUMNS} FROM agents WHERE name = ?",
            (name,),
        )
        row = await cursor.fetchone()

        if row is None:
            return None
        return self._row_to_agent(row)

    async def list_agents(self, status: AgentStatus | None = None) -> list[Agent]:
        conn = await self._get_connection()

        if status is None:
            cursor = await conn.execute(
                f"SELECT {_AGENT_COLUMNS} FROM agents ORDER BY id DESC"
            )
        else:
            cursor = await conn.execute(
                f"SELECT {_AGENT_COLUMNS} FROM agents WHERE status = ? ORDER BY id DESC",
                (status.value,),
            )
        rows = await cursor.fetchall()

        return [self._row_to_agent(row) for row in rows]

    async def record_heartbeat(self, agent_id: int, seen_at: datetime) -> bool:
        """
        Refresh last_seen_at and promote an OFFLINE agent to ONLINE.

        A single statement, so a concurrent sweep either runs entirely
        before it (and the promotion undoes the demotion) or entirely after
        it (and sees the fresh timestamp).
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            """
            UPDATE agents
            SET last_seen_at = ?,
                status = CASE WHEN status = 'OFFLINE' THEN 'ONLINE' ELSE status END
            WHERE id = ?
            """,
            (_ts(seen_at), agent_id),
        )
        await conn.commit()

        return cursor.rowcount > 0

    async def update_agent_status(
        self, agent_id: int, status: AgentStatus, seen_at: datetime
    ) -> bool:
        conn = await self._get_connection()

        cursor = await conn.execute(
            "UPDATE agents SET status = ?, last_seen_at = ? WHERE id = ?",
            (status.value, _ts(seen_at), agent_id),
        )
        await conn.commit()

        return cursor.rowcount > 0

    async def update_agent_labels(self, agent_id: int, labels: dict[str, str]) -> bool:
        conn = await self._get_connection()

        cursor = await conn.execute(
            "UPDATE agents SET labels = ? WHERE id = ?",
            (json.dumps(labels), agent_id),
        )
        await conn.commit()

        return cursor.rowcount > 0

    async def delete_agent(self, agent_id: int) -> bool:
        conn = await self._get_connection()

        cursor = await conn.execute("DELETE FROM agents WHERE id = ?", (agent_id,))
        await conn.commit()

        return cursor.rowcount > 0

    async def mark_stale_agents_offline(self, threshold: datetime) -> int:
        """
        Demote ONLINE agents last seen before threshold to OFFLINE.

        An ONLINE agent that was never seen counts as stale.

        Returns:
            Number of agents demoted
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            """
            UPDATE agents
            SET status = 'OFFLINE'
            WHERE status = 'ONLINE'
            AND (last_seen_at IS NULL OR last_seen_at < ?)
            """,
            (_ts(threshold),),
        )
        await conn.commit()

        return cursor.rowcount
