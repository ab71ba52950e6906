"""Tagged error types shared by the pipeline and its collaborators."""

from enum import Enum


class ErrorKind(str, Enum):
    """Discriminant for pipeline failures."""

    PRECONDITION = "precondition"
    TRANSPORT = "transport"
    AI_STAGE = "ai_stage"
    UNKNOWN = "unknown"


class PipelineError(Exception):
    """Base exception for failures that end an analysis run in ``error``."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    stage: str | None = None

    @classmethod
    def wrap(cls, exc: BaseException) -> "PipelineError":
        """Return ``exc`` unchanged if it is tagged, else an ``UNKNOWN`` wrapper."""
        if isinstance(exc, PipelineError):
            return exc
        wrapped = cls(str(exc) or type(exc).__name__)
        wrapped.__cause__ = exc
        return wrapped


class PreconditionError(PipelineError):
    """Raised when a run cannot start because required input is missing."""

    kind = ErrorKind.PRECONDITION
