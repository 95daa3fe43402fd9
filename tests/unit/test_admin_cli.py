"""
Unit tests for the gip-admin CLI.

Commands run in-process through click's CliRunner against a temporary
database selected with GIP_DB_PATH.
"""

import asyncio
import json
import os
import tempfile
from datetime import UTC, datetime, timedelta

import pytest
from click.testing import CliRunner

from gip_admin.cli import cli
from gip_common.models import AgentStatus, BuildStatus
from gip_persistence.sqlite_repository import SQLiteGipRepository


@pytest.fixture
def test_db_path(monkeypatch):
    """Create a temporary database file and point the CLI at it."""
    fd, path = tempfile.mkstemp(suffix=".db", prefix="gip_admin_test_")
    os.close(fd)
    monkeypatch.setenv("GIP_DB_PATH", path)

    yield path

    if os.path.exists(path):
        os.unlink(path)


def run_db(path, operation):
    """Run an async operation against the test database."""

    async def run():
        repo = SQLiteGipRepository(path)
        await repo.initialize()
        try:
            return await operation(repo)
        finally:
            await repo.close()

    return asyncio.run(run())


@pytest.fixture
def runner():
    return CliRunner()


class TestProjectCommands:
    """Test suite for project management."""

    def test_create_project(self, runner, test_db_path):
        result = runner.invoke(
            cli,
            ["project", "create", "--name", "hello", "--repo-url", "https://example.com/hello.git"],
        )

        assert result.exit_code == 0
        assert "created successfully" in result.output
        assert "Branch: main" in result.output

        project = run_db(test_db_path, lambda repo: repo.get_project(1))
        assert project.name == "hello"

    def test_create_project_with_branch_and_subdir(self, runner, test_db_path):
        result = runner.invoke(
            cli,
            [
                "project", "create",
                "--name", "api",
                "--repo-url", "https://example.com/mono.git",
                "--branch", "develop",
                "--subdir", "services/api",
            ],
        )

        assert result.exit_code == 0
        project = run_db(test_db_path, lambda repo: repo.get_project(1))
        assert project.branch == "develop"
        assert project.subdir == "services/api"

    def test_create_duplicate_project(self, runner, test_db_path):
        args = ["project", "create", "--name", "hello", "--repo-url", "https://example.com/h.git"]
        runner.invoke(cli, args)

        result = runner.invoke(cli, args)

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_create_project_invalid_name(self, runner, test_db_path):
        result = runner.invoke(
            cli, ["project", "create", "--name", "bad name", "--repo-url", "https://x"]
        )

        assert result.exit_code == 1
        assert "Invalid project name" in result.output

    def test_list_projects(self, runner, test_db_path):
        run_db(test_db_path, lambda repo: repo.create_project("hello", "https://example.com/h.git"))

        result = runner.invoke(cli, ["project", "list"])

        assert result.exit_code == 0
        assert "hello" in result.output
        assert "https://example.com/h.git" in result.output

    def test_list_projects_json(self, runner, test_db_path):
        run_db(test_db_path, lambda repo: repo.create_project("hello", "https://example.com/h.git"))

        result = runner.invoke(cli, ["project", "list", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data[0]["name"] == "hello"

    def test_list_no_projects(self, runner, test_db_path):
        result = runner.invoke(cli, ["project", "list"])

        assert result.exit_code == 0
        assert "No projects found." in result.output


class TestBuildCommands:
    """Test suite for build inspection."""

    @pytest.fixture
    def failed_build(self, test_db_path):
        async def seed(repo):
            project = await repo.create_project("hello", "https://example.com/h.git")
            build = await repo.create_build(project.id, "main")
            await repo.update_build_status(
                build.id, BuildStatus.FAILED, log_output="cmd/main.go not found\n"
            )
            return project, build

        return run_db(test_db_path, seed)

    def test_list_builds(self, runner, failed_build):
        project, build = failed_build

        result = runner.invoke(cli, ["build", "list", str(project.id)])

        assert result.exit_code == 0
        assert "failed" in result.output

    def test_list_builds_json(self, runner, failed_build):
        project, build = failed_build

        result = runner.invoke(cli, ["build", "list", str(project.id), "--json"])

        data = json.loads(result.output)
        assert data[0]["id"] == build.id
        assert "log_output" not in data[0]

    def test_list_builds_unknown_project(self, runner, test_db_path):
        result = runner.invoke(cli, ["build", "list", "42"])

        assert result.exit_code == 1
        assert "Project not found" in result.output

    def test_show_build(self, runner, failed_build):
        _, build = failed_build

        result = runner.invoke(cli, ["build", "show", str(build.id)])

        assert result.exit_code == 0
        assert "Status:   failed" in result.output
        assert "cmd/main.go not found" in result.output

    def test_show_unknown_build(self, runner, test_db_path):
        result = runner.invoke(cli, ["build", "show", "42"])
        assert result.exit_code == 1


class TestAgentCommands:
    """Test suite for agent management."""

    def test_list_agents(self, runner, test_db_path):
        run_db(test_db_path, lambda repo: repo.create_agent("runner-1", {"os": "linux"}))

        result = runner.invoke(cli, ["agent", "list"])

        assert result.exit_code == 0
        assert "runner-1" in result.output
        assert "OFFLINE" in result.output
        assert "os=linux" in result.output

    def test_list_agents_by_status(self, runner, test_db_path):
        run_db(test_db_path, lambda repo: repo.create_agent("runner-1", {}))

        result = runner.invoke(cli, ["agent", "list", "--status", "ONLINE"])

        assert result.exit_code == 0
        assert "No agents found." in result.output

    def test_list_agents_invalid_status(self, runner, test_db_path):
        result = runner.invoke(cli, ["agent", "list", "--status", "BUSY"])
        assert result.exit_code != 0

    def test_show_agent(self, runner, test_db_path):
        run_db(test_db_path, lambda repo: repo.create_agent("runner-1", {"pool": "gpu"}))

        result = runner.invoke(cli, ["agent", "show", "runner-1"])

        assert result.exit_code == 0
        assert "Name:      runner-1" in result.output
        assert "Last seen: never" in result.output
        assert "pool=gpu" in result.output

    def test_show_unknown_agent(self, runner, test_db_path):
        result = runner.invoke(cli, ["agent", "show", "ghost"])

        assert result.exit_code == 1
        assert "Agent not found: ghost" in result.output

    def test_sweep(self, runner, test_db_path):
        async def seed(repo):
            agent = await repo.create_agent("runner-1", {})
            await repo.record_heartbeat(agent.id, datetime.now(UTC) - timedelta(hours=1))
            return agent

        agent = run_db(test_db_path, seed)

        result = runner.invoke(cli, ["agent", "sweep", "--timeout", "60"])

        assert result.exit_code == 0
        assert "Marked 1 agent(s) OFFLINE" in result.output
        stored = run_db(test_db_path, lambda repo: repo.get_agent(agent.id))
        assert stored.status == AgentStatus.OFFLINE

    def test_sweep_invalid_timeout(self, runner, test_db_path):
        result = runner.invoke(cli, ["agent", "sweep", "--timeout", "-5"])
        assert result.exit_code == 1

    def test_deregister(self, runner, test_db_path):
        agent = run_db(test_db_path, lambda repo: repo.create_agent("runner-1", {}))

        result = runner.invoke(cli, ["agent", "deregister", str(agent.id)])

        assert result.exit_code == 0
        assert run_db(test_db_path, lambda repo: repo.get_agent(agent.id)) is None

    def test_deregister_unknown(self, runner, test_db_path):
        result = runner.invoke(cli, ["agent", "deregister", "42"])

        assert result.exit_code == 1
        assert "Agent not found" in result.output
