"""
Error taxonomy shared by the build pipeline, the agent registry and the
HTTP layer.

Each error class carries the HTTP status it maps to, so the server can
translate any GipError without knowing where it was raised.
"""


class GipError(Exception):
    """Base class for all service errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GipError):
    """Malformed or missing input, or an unknown enum value."""

    status_code = 400


class NotFoundError(GipError):
    """Unknown project, build or agent id."""

    status_code = 404


class ConflictError(GipError):
    """Duplicate agent or project name."""

    status_code = 409


class InternalError(GipError):
    """
    Persistence-layer failure.

    May leave a record in an inconsistent state, e.g. a build row that was
    created but whose status update failed.
    """

    status_code = 500


class PipelineStageError(GipError):
    """
    A build pipeline stage failed.

    Carries whatever log text had been captured when the stage failed, and
    the id of the build row once the orchestrator has recorded the failure.
    """

    status_code = 400

    def __init__(self, message: str, logs: str = "", build_id: int | None = None):
        super().__init__(message)
        self.logs = logs
        self.build_id = build_id


class SourceAcquisitionFailed(PipelineStageError):
    """Checkout failed (network, authentication, unknown ref or disk)."""


class EntryPointMissing(PipelineStageError):
    """The entry-point source file is absent; no process was spawned."""


class BuildStepFailed(PipelineStageError):
    """A build step exited with a non-zero code."""

    def __init__(
        self,
        message: str,
        exit_code: int,
        logs: str = "",
        build_id: int | None = None,
    ):
        super().__init__(message, logs=logs, build_id=build_id)
        self.exit_code = exit_code


class BuildTimeout(PipelineStageError):
    """The shared pipeline deadline expired; the running child was killed."""


class ArtifactWriteFailed(PipelineStageError):
    """The output directory could not be prepared or no artifact was produced."""
