from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class AnalysisStatus(str, Enum):
    """Lifecycle statuses of an analysis record."""

    UPLOADING = "uploading"
    SUMMARIZING = "summarizing"
    IDENTIFYING = "identifying"
    ANALYZING = "analyzing"
    REVIEWING = "reviewing"
    COMPLETED = "completed"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    ERROR = "error"
    PENDING_DELETION = "pending_deletion"
    DELETED = "deleted"


ENTRY_STATUS = AnalysisStatus.SUMMARIZING

TERMINAL_STATUSES = frozenset(
    {
        AnalysisStatus.COMPLETED,
        AnalysisStatus.ERROR,
        AnalysisStatus.CANCELLED,
        AnalysisStatus.DELETED,
    }
)

CANCELLATION_STATUSES = frozenset({AnalysisStatus.CANCELLING, AnalysisStatus.CANCELLED})

# Statuses written by a run in flight.
PIPELINE_STATUSES = frozenset(
    {
        AnalysisStatus.SUMMARIZING,
        AnalysisStatus.IDENTIFYING,
        AnalysisStatus.ANALYZING,
        AnalysisStatus.REVIEWING,
    }
)

_CANCELLABLE = frozenset(
    {
        AnalysisStatus.UPLOADING,
        AnalysisStatus.SUMMARIZING,
        AnalysisStatus.IDENTIFYING,
        AnalysisStatus.ANALYZING,
        AnalysisStatus.REVIEWING,
    }
)

_TRANSITIONS: dict[AnalysisStatus, frozenset[AnalysisStatus]] = {
    AnalysisStatus.UPLOADING: frozenset({AnalysisStatus.SUMMARIZING, AnalysisStatus.PENDING_DELETION}),
    AnalysisStatus.SUMMARIZING: frozenset({AnalysisStatus.IDENTIFYING}),
    AnalysisStatus.IDENTIFYING: frozenset({AnalysisStatus.ANALYZING}),
    AnalysisStatus.ANALYZING: frozenset({AnalysisStatus.REVIEWING}),
    AnalysisStatus.REVIEWING: frozenset({AnalysisStatus.COMPLETED}),
    AnalysisStatus.COMPLETED: frozenset({AnalysisStatus.SUMMARIZING, AnalysisStatus.PENDING_DELETION}),
    AnalysisStatus.ERROR: frozenset({AnalysisStatus.SUMMARIZING, AnalysisStatus.PENDING_DELETION}),
    AnalysisStatus.CANCELLING: frozenset({AnalysisStatus.CANCELLED}),
    AnalysisStatus.CANCELLED: frozenset(),
    AnalysisStatus.PENDING_DELETION: frozenset({AnalysisStatus.DELETED}),
    AnalysisStatus.DELETED: frozenset(),
}


def is_valid_transition(current: AnalysisStatus, target: AnalysisStatus) -> bool:
    """Return True if moving from ``current`` to ``target`` is allowed.

    ``cancelling`` is reachable from any non-terminal pipeline status and
    ``error`` from any status except ``deleted`` and ``cancelled``.
    """
    if current in (AnalysisStatus.DELETED, AnalysisStatus.CANCELLED):
        return False
    if target == AnalysisStatus.CANCELLING:
        return current in _CANCELLABLE
    if target == AnalysisStatus.ERROR:
        return True
    return target in _TRANSITIONS[current]


@dataclass
class AnalysisRecord:
    """Represents a row from the analyses table."""

    id: str
    user_id: str
    status: AnalysisStatus
    progress: int = 0
    file_name: str = ""
    source_ref: str | None = None
    language_code: str | None = None
    is_chunked: bool | None = None
    data_summary: str | None = None
    identified_regulations: list[str] | None = None
    structured_report: dict[str, Any] | None = None
    summary: str | None = None
    rendered_report_ref: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class StatusSnapshot:
    """Status and progress of a record at one side of a change."""

    status: AnalysisStatus | None
    progress: int = 0


@dataclass
class ChangeEvent:
    """Represents a row from the analysis_events table."""

    id: int
    analysis_id: str
    previous: StatusSnapshot
    current: StatusSnapshot
    status: str = "pending"
    attempts: int = 0
    error_message: str | None = None
    created_at: datetime | None = None
    # Redelivered after its previous claim's lock expired.
    reclaimed: bool = False
