from compliance_worker.errors import ErrorKind, PipelineError


class StageError(PipelineError):
    """Raised when an AI stage fails."""

    kind = ErrorKind.AI_STAGE

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage

    def for_stage(self, stage: str, max_length: int) -> "StageError":
        """Return a copy of this error tagged with ``stage`` and a bounded message."""
        return type(self)(str(self)[:max_length], stage=stage)


class StageNetworkError(StageError):
    """Raised when the AI provider call fails due to network/infrastructure issues."""


class StageOutputError(StageError):
    """Raised when the AI provider returns output missing its required fields."""


class PromptLoadError(StageError):
    """Raised when a bundled prompt template or schema cannot be read."""
