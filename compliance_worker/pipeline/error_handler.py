from compliance_worker.database.models import AnalysisStatus
from compliance_worker.database.repositories.analysis_repository import AnalysisRepository
from compliance_worker.errors import ErrorKind, PipelineError
from compliance_worker.logging.logger import Log
from compliance_worker.pipeline.cancellation import CancellationMonitor
from compliance_worker.pipeline.models import RunOutcome

SUBSYSTEM_LABELS: dict[ErrorKind, str] = {
    ErrorKind.PRECONDITION: "precondition",
    ErrorKind.TRANSPORT: "storage",
    ErrorKind.AI_STAGE: "AI stage",
    ErrorKind.UNKNOWN: "processing",
}

# Kinds raised before any stage ran; the run never really started.
_RESET_PROGRESS_KINDS = frozenset({ErrorKind.PRECONDITION})


def subsystem_label(error: PipelineError) -> str:
    label = SUBSYSTEM_LABELS[error.kind]
    if error.kind == ErrorKind.AI_STAGE and error.stage:
        return f"{label} '{error.stage}'"
    return label


def describe_failure(exc: BaseException, max_length: int) -> str:
    """Build a bounded message naming the failing subsystem."""
    error = PipelineError.wrap(exc)
    detail = str(error) or type(error).__name__
    return f"Failure ({subsystem_label(error)}): {detail}"[:max_length]


class ErrorHandler:
    """Moves a failed run to ``error`` unless the user already cancelled it."""

    def __init__(
        self,
        repo: AnalysisRepository,
        monitor: CancellationMonitor,
        max_message_length: int = 1000,
    ) -> None:
        self._repo = repo
        self._monitor = monitor
        self._max_message_length = max_message_length

    def handle(self, analysis_id: str, exc: BaseException) -> RunOutcome:
        """Persist the failure. Never raises.

        Progress stays at its last checkpoint, except for precondition
        failures, which reset it to 0.
        """
        error = PipelineError.wrap(exc)
        message = describe_failure(error, self._max_message_length)
        Log.error(f"Error processing analysis {analysis_id} ({error.kind.value}): {message}")
        try:
            if self._monitor.check(analysis_id):
                Log.info(f"Analysis {analysis_id} was cancelled; not recording the failure")
                return RunOutcome.CANCELLED
            fields: dict[str, object] = {
                "status": AnalysisStatus.ERROR,
                "error_message": message,
            }
            if error.kind in _RESET_PROGRESS_KINDS:
                fields["progress"] = 0
            self._repo.update(analysis_id, fields)
        except Exception:  # noqa: BLE001
            Log.critical(f"Failed to record error state for analysis {analysis_id}")
        return RunOutcome.FAILED
