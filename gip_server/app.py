import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field

from gip_builder.artifacts import artifact_name
from gip_builder.executor import BuildExecutor
from gip_builder.orchestrator import BuildOrchestrator
from gip_builder.workspace import WorkspaceLayout, validate_workspace_dir
from gip_common.config import (
    get_agent_timeout,
    get_build_timeout,
    get_database_path,
    get_go_binary,
    get_sweep_interval,
    get_workspace_dir,
)
from gip_common.errors import (
    GipError,
    NotFoundError,
    PipelineStageError,
    ValidationError,
)
from gip_common.models import PROJECT_NAME_PATTERN, AgentStatus, BuildStatus
from gip_common.repository import GipRepository
from gip_persistence.sqlite_repository import SQLiteGipRepository
from gip_registry.registry import AgentRegistry
from gip_registry.sweeper import LivenessSweeper

logger = logging.getLogger(__name__)

# Global instances (initialized at startup)
repository: GipRepository | None = None
sweeper: LivenessSweeper | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI app.

    Handles startup and shutdown events:
    - Startup: Validate the workspace, initialize the database schema and
      start the liveness sweeper
    - Shutdown: Stop the sweeper and close database connections
    """
    global repository, sweeper

    workspace = validate_workspace_dir(get_workspace_dir())
    logger.info(f"Workspace: {workspace}")

    db_path = get_database_path()
    repository = SQLiteGipRepository(db_path)
    await repository.initialize()
    logger.info(f"Database initialized: {db_path}")

    sweeper = LivenessSweeper(
        AgentRegistry(repository),
        agent_timeout=get_agent_timeout(),
        sweep_interval=get_sweep_interval(),
    )
    await sweeper.start()

    yield

    if sweeper:
        await sweeper.stop()
        sweeper = None
    if repository:
        await repository.close()
        repository = None


app = FastAPI(title="GIP", lifespan=lifespan)


def get_repository() -> GipRepository:
    """
    Get the global repository instance.

    Raises:
        RuntimeError: If repository is not initialized
    """
    if repository is None:
        raise RuntimeError("Repository not initialized")
    return repository


def get_workspace_layout() -> WorkspaceLayout:
    return WorkspaceLayout(get_workspace_dir())


def get_registry(repo: GipRepository = Depends(get_repository)) -> AgentRegistry:
    return AgentRegistry(repo)


def get_orchestrator(
    repo: GipRepository = Depends(get_repository),
    layout: WorkspaceLayout = Depends(get_workspace_layout),
) -> BuildOrchestrator:
    return BuildOrchestrator(
        repo,
        layout,
        executor=BuildExecutor(go_binary=get_go_binary()),
        build_timeout=get_build_timeout(),
    )


# Error translation


@app.exception_handler(PipelineStageError)
async def pipeline_error_handler(
    request: Request, exc: PipelineStageError
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "logs": exc.logs, "build_id": exc.build_id},
    )


@app.exception_handler(GipError)
async def gip_error_handler(request: Request, exc: GipError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request payload",
            "details": jsonable_encoder(exc.errors()),
        },
    )


# Request bodies


class CreateProjectRequest(BaseModel):
    name: str = Field(min_length=1, pattern=PROJECT_NAME_PATTERN)
    repo_url: str = Field(min_length=1)
    branch: str = "main"
    subdir: str | None = None


class RegisterAgentRequest(BaseModel):
    name: str = Field(min_length=1)
    labels: dict[str, str] = Field(default_factory=dict)


class UpdateAgentStatusRequest(BaseModel):
    status: AgentStatus


class UpdateAgentLabelsRequest(BaseModel):
    labels: dict[str, str]


class CreateBuildRequest(BaseModel):
    project_id: int


@app.get("/health")
async def health_check(repo: GipRepository = Depends(get_repository)) -> JSONResponse:
    """
    Health check endpoint, including a database round trip.

    Returns:
        200 with status="ok", or 503 if the database does not answer
    """
    try:
        await repo.ping()
    except Exception as e:
        logger.error(f"Database ping failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "error": "database unavailable"},
        )
    return JSONResponse(content={"status": "ok", "database": "connected"})


# Projects


@app.post("/projects", status_code=201)
async def create_project(
    req: CreateProjectRequest,
    repo: GipRepository = Depends(get_repository),
) -> dict[str, Any]:
    """
    Register a source project.

    Raises:
        ConflictError: 409 if a project with this name exists
    """
    project = await repo.create_project(
        req.name, req.repo_url, branch=req.branch or "main", subdir=req.subdir or None
    )
    logger.info(f"Project {project.id} created: {project.name}")
    return project.to_dict()


# Agents


@app.post("/agents/register", status_code=201)
async def register_agent(
    req: RegisterAgentRequest,
    registry: AgentRegistry = Depends(get_registry),
) -> dict[str, Any]:
    """
    Register a build agent. Agents start OFFLINE until their first heartbeat.

    Raises:
        ConflictError: 409 if the name is taken
    """
    agent = await registry.register(req.name, req.labels)
    return agent.to_dict()


@app.get("/agents")
async def list_agents(
    status: str | None = None,
    registry: AgentRegistry = Depends(get_registry),
) -> dict[str, Any]:
    """List agents, optionally filtered by ?status=ONLINE|OFFLINE|DRAINING."""
    agents = await registry.list_agents(status)
    return {"agents": [agent.to_dict() for agent in agents], "count": len(agents)}


@app.get("/agents/{agent_id}")
async def get_agent(
    agent_id: int,
    registry: AgentRegistry = Depends(get_registry),
) -> dict[str, Any]:
    agent = await registry.get(agent_id)
    return agent.to_dict()


@app.post("/agents/{agent_id}/heartbeat")
async def heartbeat(
    agent_id: int,
    registry: AgentRegistry = Depends(get_registry),
) -> dict[str, Any]:
    """
    Record a heartbeat. An OFFLINE agent is promoted to ONLINE.

    Raises:
        NotFoundError: 404 if the agent is unknown
    """
    seen_at = await registry.heartbeat(agent_id)
    return {"message": "Heartbeat registered", "last_seen_at": seen_at.isoformat()}


@app.put("/agents/{agent_id}/status")
async def update_agent_status(
    agent_id: int,
    req: UpdateAgentStatusRequest,
    registry: AgentRegistry = Depends(get_registry),
) -> dict[str, Any]:
    agent = await registry.set_status(agent_id, req.status)
    return agent.to_dict()


@app.put("/agents/{agent_id}/labels")
async def update_agent_labels(
    agent_id: int,
    req: UpdateAgentLabelsRequest,
    registry: AgentRegistry = Depends(get_registry),
) -> dict[str, Any]:
    agent = await registry.update_labels(agent_id, req.labels)
    return agent.to_dict()


@app.delete("/agents/{agent_id}")
async def delete_agent(
    agent_id: int,
    registry: AgentRegistry = Depends(get_registry),
) -> dict[str, str]:
    await registry.deregister(agent_id)
    return {"message": "Agent deleted successfully"}


# Builds


@app.post("/builds", status_code=201)
async def create_build(
    req: CreateBuildRequest,
    orchestrator: BuildOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """
    Build a project synchronously and return where to download the result.

    The request blocks until the pipeline finishes or its deadline expires.

    Raises:
        NotFoundError: 404 if the project is unknown
        PipelineStageError: 400 with the captured logs; the build is recorded as failed
        InternalError: 500 if the database could not be updated
    """
    build = await orchestrator.run_build(req.project_id)
    return {
        "build_id": build.id,
        "status": build.status.value,
        "binary_path": build.binary_path(),
        "download_url": f"/builds/{build.id}/download",
    }


@app.get("/builds/project/{project_id}")
async def list_project_builds(
    project_id: int,
    repo: GipRepository = Depends(get_repository),
) -> list[dict[str, Any]]:
    builds = await repo.list_project_builds(project_id)
    return [build.to_summary_dict() for build in builds]


@app.get("/builds/{build_id}")
async def get_build(
    build_id: int,
    repo: GipRepository = Depends(get_repository),
) -> dict[str, Any]:
    build = await repo.get_build(build_id)
    if build is None:
        raise NotFoundError("Build not found")
    return build.to_dict()


@app.get("/builds/{build_id}/download")
async def download_build(
    build_id: int,
    repo: GipRepository = Depends(get_repository),
) -> FileResponse:
    """
    Stream the artifact of a successful build.

    Raises:
        NotFoundError: 404 if the build, its artifact path or the file is missing
        ValidationError: 400 if the build did not succeed
    """
    build = await repo.get_build(build_id)
    if build is None:
        raise NotFoundError("Build not found")

    if build.status != BuildStatus.SUCCESS:
        raise ValidationError("Build is not successful, cannot download binary")

    binary_path = build.binary_path()
    if not binary_path:
        raise NotFoundError("Binary path not found in build logs")
    if not Path(binary_path).is_file():
        raise NotFoundError("Binary file not found on disk")

    project = await repo.get_project(build.project_id)
    if project is not None:
        filename = artifact_name(project.name, build.id)
    else:
        filename = Path(binary_path).name

    return FileResponse(
        binary_path,
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-Description": "File Transfer",
            "Content-Transfer-Encoding": "binary",
        },
    )
