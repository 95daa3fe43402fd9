"""
Build orchestrator.

Sequences source acquisition, compilation and artifact storage for one
build, and records every outcome on the build row:

    pending -> building -> success | failed

Any pipeline stage failure is persisted as a failed build, together with
the log text captured so far, before the error reaches the caller. A
cancelled build is recorded as failed the same way.
"""

import asyncio
import logging
import shutil
from collections.abc import Awaitable
from io import StringIO
from pathlib import Path
from typing import TypeVar

from gip_common.errors import (
    GipError,
    InternalError,
    NotFoundError,
    PipelineStageError,
    SourceAcquisitionFailed,
)
from gip_common.models import Build, BuildStatus, Project, format_binary_marker
from gip_common.repository import GipRepository

from .artifacts import ArtifactStore
from .environment import Deadline, build_environment
from .executor import BuildExecutor
from .source import SourceAcquirer
from .workspace import WorkspaceLayout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BuildOrchestrator:
    """
    Runs the build pipeline for a project and keeps its Build row current.

    Concurrent builds of the same project are neither queued nor merged:
    each gets its own Build row, checkout directory and artifact.
    """

    def __init__(
        self,
        repository: GipRepository,
        layout: WorkspaceLayout,
        executor: BuildExecutor | None = None,
        acquirer: SourceAcquirer | None = None,
        artifacts: ArtifactStore | None = None,
        build_timeout: float = 300.0,
        keep_checkouts: bool = False,
    ):
        """
        Initialize the orchestrator.

        Args:
            repository: Storage for projects and builds
            layout: Workspace directory layout
            executor: Build step runner
            acquirer: Repository checkout
            artifacts: Artifact placement
            build_timeout: Seconds allowed for the whole pipeline
            keep_checkouts: Keep the per-build checkout after the build
        """
        self.repository = repository
        self.layout = layout
        self.executor = executor or BuildExecutor()
        self.acquirer = acquirer or SourceAcquirer(self.executor)
        self.artifacts = artifacts or ArtifactStore(layout)
        self.build_timeout = build_timeout
        self.keep_checkouts = keep_checkouts

    async def _persist(self, operation: Awaitable[T], failure: str) -> T:
        """Await a repository call, reporting storage failures as InternalError."""
        try:
            return await operation
        except GipError:
            raise
        except Exception as e:
            logger.error(f"{failure}: {e}", exc_info=True)
            raise InternalError(failure) from e

    async def run_build(self, project_id: int) -> Build:
        """
        Trigger and run a build of a project.

        Args:
            project_id: ID of the project to build

        Returns:
            The successful Build, with its artifact path recorded

        Raises:
            NotFoundError: If the project does not exist (no build is created)
            PipelineStageError: If a stage failed; the build is recorded as
                failed and the error carries its id and the captured logs
            InternalError: If the database could not be read or updated
        """
        project = await self._persist(
            self.repository.get_project(project_id), "Failed to load project"
        )
        if project is None:
            raise NotFoundError("Project not found")

        build = await self._persist(
            self.repository.create_build(project.id, project.branch),
            "Failed to create build record",
        )
        logger.info(f"Build {build.id} created for project {project.name}")

        moved = await self._persist(
            self.repository.update_build_status(build.id, BuildStatus.BUILDING),
            "Failed to update build status",
        )
        if not moved:
            raise InternalError("Failed to update build status")

        deadline = Deadline(self.build_timeout)
        log = StringIO()
        checkout_dir = self.layout.checkout_dir(project.id, build.id)

        try:
            binary_path = await self._execute(project, build, checkout_dir, log, deadline)
        except PipelineStageError as e:
            e.logs = log.getvalue()
            e.build_id = build.id
            logger.warning(f"Build {build.id} failed: {e.message}")
            await self._record_failure(build.id, e.logs)
            raise
        except Exception as e:
            logger.error(f"Build {build.id} crashed: {e}", exc_info=True)
            log.write(f"Error: {e}\n")
            await self._record_failure(build.id, log.getvalue())
            raise InternalError(f"Build {build.id} failed unexpectedly") from e
        except asyncio.CancelledError:
            logger.warning(f"Build {build.id} cancelled")
            log.write("\n==> Build cancelled\n")
            await asyncio.shield(self._record_failure(build.id, log.getvalue()))
            raise
        finally:
            if not self.keep_checkouts:
                shutil.rmtree(checkout_dir, ignore_errors=True)

        log_output = format_binary_marker(str(binary_path), log.getvalue())
        moved = await self._persist(
            self.repository.update_build_status(
                build.id,
                BuildStatus.SUCCESS,
                log_output=log_output,
                artifact_path=str(binary_path),
            ),
            "Build succeeded but failed to update status",
        )
        if not moved:
            raise InternalError("Build succeeded but failed to update status")

        logger.info(f"Build {build.id} succeeded: {binary_path}")
        stored = await self._persist(
            self.repository.get_build(build.id), "Failed to load build"
        )
        return stored or build

    async def _execute(
        self,
        project: Project,
        build: Build,
        checkout_dir: Path,
        log: StringIO,
        deadline: Deadline,
    ) -> Path:
        """Clone, check the entry point, compile, and verify the artifact."""
        project_dir = self.layout.project_dir(project.id)
        cache_dir = self.layout.cache_dir(project.id)

        try:
            project_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SourceAcquisitionFailed(f"Failed to prepare workspace: {e}") from e

        clone_env = build_environment(home=project_dir, cache_root=cache_dir)
        await self.acquirer.acquire(
            project.repo_url, checkout_dir, build.branch, clone_env, log, deadline
        )

        source_dir = self.layout.source_dir(checkout_dir, project.subdir)
        self.executor.check_entry_point(source_dir)

        binary_path = self.artifacts.prepare(project, build.id)
        env = build_environment(home=source_dir, cache_root=cache_dir)
        await self.executor.compile(source_dir, binary_path, env, log, deadline)

        self.artifacts.verify(binary_path)
        return binary_path

    async def _record_failure(self, build_id: int, logs: str) -> None:
        moved = await self._persist(
            self.repository.update_build_status(
                build_id, BuildStatus.FAILED, log_output=logs
            ),
            "Failed to record build failure",
        )
        if not moved:
            raise InternalError("Failed to record build failure")
