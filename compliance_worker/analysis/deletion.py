from compliance_worker.database.models import AnalysisStatus, ChangeEvent
from compliance_worker.database.repositories.analysis_repository import AnalysisRepository
from compliance_worker.logging.logger import Log
from compliance_worker.pipeline.models import RunOutcome
from compliance_worker.storage.base import BaseBlobStore

DELETED_MESSAGE = "Analysis and associated files were deleted."


class DeletionHandler:
    """Removes the stored files of an analysis marked ``pending_deletion``."""

    def __init__(self, repo: AnalysisRepository, blob_store: BaseBlobStore) -> None:
        self._repo = repo
        self._blob_store = blob_store

    def handle_change(self, event: ChangeEvent) -> RunOutcome:
        if event.current.status != AnalysisStatus.PENDING_DELETION:
            return RunOutcome.SKIPPED

        record = self._repo.get(event.analysis_id)
        if record is None or record.status != AnalysisStatus.PENDING_DELETION:
            Log.info(f"Analysis {event.analysis_id} is no longer pending deletion, skipping")
            return RunOutcome.SKIPPED

        Log.info(f"Deleting files of analysis {record.id}")
        for ref in (record.source_ref, record.rendered_report_ref):
            if ref:
                self._blob_store.delete(ref)

        self._repo.update(
            record.id,
            {"status": AnalysisStatus.DELETED, "error_message": DELETED_MESSAGE},
        )
        Log.info(f"Analysis {record.id} deleted")
        return RunOutcome.COMPLETED
