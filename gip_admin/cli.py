"""
Admin CLI for managing GIP projects, builds and agents.

Works directly on the SQLite database, so it can be used while the server
is stopped.
"""

import asyncio
import json
import re
import sys

import click

from gip_common.config import get_agent_timeout, get_database_path
from gip_common.errors import ConflictError, GipError
from gip_common.models import PROJECT_NAME_PATTERN, AgentStatus
from gip_persistence.sqlite_repository import SQLiteGipRepository
from gip_registry.registry import AgentRegistry


def get_db_path() -> str:
    """Get the database path from environment variable or default."""
    return get_database_path()


def get_repository() -> SQLiteGipRepository:
    """Get the repository instance."""
    return SQLiteGipRepository(get_db_path())


def validate_project_name(name: str) -> bool:
    """Validate project name format."""
    return re.match(PROJECT_NAME_PATTERN, name) is not None


def run_async(coro):
    """Helper to run async functions in CLI commands."""
    return asyncio.run(coro)


@click.group()
def cli():
    """GIP Admin - Manage projects, builds and agents."""
    pass


@cli.group()
def project():
    """Manage projects."""
    pass


@cli.group()
def build():
    """Inspect builds."""
    pass


@cli.group()
def agent():
    """Manage build agents."""
    pass


# ============================================================================
# Project Commands
# ============================================================================


@project.command("create")
@click.option("--name", required=True, help="Unique project name")
@click.option("--repo-url", required=True, help="Git repository URL")
@click.option("--branch", default="main", show_default=True, help="Branch to build")
@click.option("--subdir", default=None, help="Build from this directory of the repository")
def project_create(name: str, repo_url: str, branch: str, subdir: str | None):
    """Create a new project."""
    if not validate_project_name(name):
        click.echo(f"Error: Invalid project name: {name}", err=True)
        sys.exit(1)

    async def create():
        repo = get_repository()
        await repo.initialize()

        try:
            try:
                project_obj = await repo.create_project(
                    name, repo_url, branch=branch, subdir=subdir
                )
            except ConflictError as e:
                click.echo(f"Error: {e.message}", err=True)
                sys.exit(1)

            click.echo("✓ Project created successfully")
            click.echo(f"  ID:     {project_obj.id}")
            click.echo(f"  Name:   {project_obj.name}")
            click.echo(f"  Repo:   {project_obj.repo_url}")
            click.echo(f"  Branch: {project_obj.branch}")
            if project_obj.subdir:
                click.echo(f"  Subdir: {project_obj.subdir}")

        finally:
            await repo.close()

    run_async(create())


@project.command("list")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def project_list(json_output: bool):
    """List all projects."""

    async def list_projects():
        repo = get_repository()
        await repo.initialize()

        try:
            projects = await repo.list_projects()

            if json_output:
                click.echo(json.dumps([p.to_dict() for p in projects], indent=2))
                return

            if not projects:
                click.echo("No projects found.")
                return

            click.echo(f"\n{'ID':<6} {'Name':<24} {'Branch':<16} {'Repository':<50}")
            click.echo("-" * 100)
            for p in projects:
                click.echo(f"{p.id:<6} {p.name:<24} {p.branch:<16} {p.repo_url:<50}")
            click.echo()

        finally:
            await repo.close()

    run_async(list_projects())


# ============================================================================
# Build Commands
# ============================================================================


@build.command("list")
@click.argument("project_id", type=int)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def build_list(project_id: int, json_output: bool):
    """List the builds of a project, newest first."""

    async def list_builds():
        repo = get_repository()
        await repo.initialize()

        try:
            if await repo.get_project(project_id) is None:
                click.echo(f"Error: Project not found: {project_id}", err=True)
                sys.exit(1)

            builds = await repo.list_project_builds(project_id)

            if json_output:
                click.echo(json.dumps([b.to_summary_dict() for b in builds], indent=2))
                return

            if not builds:
                click.echo("No builds found.")
                return

            click.echo(f"\n{'ID':<6} {'Status':<10} {'Branch':<16} {'Started':<34} {'Ended':<34}")
            click.echo("-" * 100)
            for b in builds:
                started = b.started_at.isoformat() if b.started_at else "-"
                ended = b.ended_at.isoformat() if b.ended_at else "-"
                click.echo(
                    f"{b.id:<6} {b.status.value:<10} {b.branch:<16} {started:<34} {ended:<34}"
                )
            click.echo()

        finally:
            await repo.close()

    run_async(list_builds())


@build.command("show")
@click.argument("build_id", type=int)
def build_show(build_id: int):
    """Show a build with its full log."""

    async def show():
        repo = get_repository()
        await repo.initialize()

        try:
            build_obj = await repo.get_build(build_id)
            if not build_obj:
                click.echo(f"Error: Build not found: {build_id}", err=True)
                sys.exit(1)

            click.echo("\nBuild Details:")
            click.echo(f"  ID:       {build_obj.id}")
            click.echo(f"  Project:  {build_obj.project_id}")
            click.echo(f"  Branch:   {build_obj.branch}")
            click.echo(f"  Status:   {build_obj.status.value}")
            click.echo(f"  Artifact: {build_obj.binary_path() or '-'}")
            click.echo()
            click.echo(build_obj.log_output)

        finally:
            await repo.close()

    run_async(show())


# ============================================================================
# Agent Commands
# ============================================================================


@agent.command("list")
@click.option(
    "--status",
    type=click.Choice([s.value for s in AgentStatus]),
    default=None,
    help="Only show agents in this status",
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def agent_list(status: str | None, json_output: bool):
    """List registered agents."""

    async def list_agents():
        repo = get_repository()
        await repo.initialize()

        try:
            agents = await AgentRegistry(repo).list_agents(status)

            if json_output:
                click.echo(json.dumps([a.to_dict() for a in agents], indent=2))
                return

            if not agents:
                click.echo("No agents found.")
                return

            click.echo(f"\n{'ID':<6} {'Name':<24} {'Status':<10} {'Last seen':<34} {'Labels':<24}")
            click.echo("-" * 100)
            for a in agents:
                last_seen = a.last_seen_at.isoformat() if a.last_seen_at else "never"
                labels = ",".join(f"{k}={v}" for k, v in sorted(a.labels.items()))
                click.echo(
                    f"{a.id:<6} {a.name:<24} {a.status.value:<10} {last_seen:<34} {labels:<24}"
                )
            click.echo()

        finally:
            await repo.close()

    run_async(list_agents())


@agent.command("show")
@click.argument("name")
def agent_show(name: str):
    """Show one agent by name."""

    async def show():
        repo = get_repository()
        await repo.initialize()

        try:
            try:
                agent_obj = await AgentRegistry(repo).get_by_name(name)
            except GipError as e:
                click.echo(f"Error: {e.message}: {name}", err=True)
                sys.exit(1)

            last_seen = agent_obj.last_seen_at.isoformat() if agent_obj.last_seen_at else "never"
            click.echo("\nAgent Details:")
            click.echo(f"  ID:        {agent_obj.id}")
            click.echo(f"  Name:      {agent_obj.name}")
            click.echo(f"  Status:    {agent_obj.status.value}")
            click.echo(f"  Last seen: {last_seen}")
            for key, value in sorted(agent_obj.labels.items()):
                click.echo(f"  Label:     {key}={value}")
            click.echo()

        finally:
            await repo.close()

    run_async(show())


@agent.command("sweep")
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Seconds without heartbeat before an agent is stale (default: GIP_AGENT_TIMEOUT env or 90)",
)
def agent_sweep(timeout: float | None):
    """Mark stale ONLINE agents OFFLINE now."""
    if timeout is not None and timeout <= 0:
        click.echo(f"Error: Invalid timeout: {timeout}", err=True)
        sys.exit(1)

    async def sweep():
        repo = get_repository()
        await repo.initialize()

        try:
            count = await AgentRegistry(repo).sweep_stale(timeout or get_agent_timeout())
            click.echo(f"✓ Marked {count} agent(s) OFFLINE")

        finally:
            await repo.close()

    run_async(sweep())


@agent.command("deregister")
@click.argument("agent_id", type=int)
def agent_deregister(agent_id: int):
    """Remove an agent permanently."""

    async def deregister():
        repo = get_repository()
        await repo.initialize()

        try:
            try:
                await AgentRegistry(repo).deregister(agent_id)
            except GipError as e:
                click.echo(f"Error: {e.message}: {agent_id}", err=True)
                sys.exit(1)

            click.echo(f"✓ Agent deregistered: {agent_id}")

        finally:
            await repo.close()

    run_async(deregister())


if __name__ == "__main__":
    cli()
