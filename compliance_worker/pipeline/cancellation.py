from compliance_worker.database.models import AnalysisStatus, ChangeEvent
from compliance_worker.database.repositories.analysis_repository import AnalysisRepository
from compliance_worker.logging.logger import Log
from compliance_worker.pipeline.models import RunOutcome

CANCELLED_MESSAGE = "Analysis cancelled by user request."


class CancellationMonitor:
    """Decides from the persisted record whether a run must stop.

    This is the only writer of the ``cancelling -> cancelled`` transition.
    """

    def __init__(self, repo: AnalysisRepository) -> None:
        self._repo = repo

    def check(self, analysis_id: str) -> bool:
        """Return True if the analysis is cancelling or cancelled.

        A record found in ``cancelling`` is moved to ``cancelled`` with its
        current progress preserved.
        """
        record = self._repo.get(analysis_id)
        if record is None:
            return False
        if record.status not in (AnalysisStatus.CANCELLING, AnalysisStatus.CANCELLED):
            return False

        Log.info(f"Cancellation detected for analysis {analysis_id} (status {record.status.value})")
        if record.status == AnalysisStatus.CANCELLING:
            self._repo.update(
                analysis_id,
                {
                    "status": AnalysisStatus.CANCELLED,
                    "error_message": CANCELLED_MESSAGE,
                    "progress": record.progress,
                },
            )
        return True


class UploadCancellationHandler:
    """Finishes cancellations requested while the input was still uploading.

    No run exists yet for such a record, so nothing else would ever move it
    from ``cancelling`` to ``cancelled``.
    """

    def __init__(self, repo: AnalysisRepository) -> None:
        self._monitor = CancellationMonitor(repo)

    def handle_change(self, event: ChangeEvent) -> RunOutcome:
        if event.current.status != AnalysisStatus.CANCELLING:
            return RunOutcome.SKIPPED
        if event.previous.status != AnalysisStatus.UPLOADING:
            return RunOutcome.SKIPPED
        if not self._monitor.check(event.analysis_id):
            return RunOutcome.SKIPPED
        return RunOutcome.CANCELLED
