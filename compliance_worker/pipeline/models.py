from enum import Enum


class RunOutcome(str, Enum):
    """How one handler invocation ended."""

    SKIPPED = "skipped"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
