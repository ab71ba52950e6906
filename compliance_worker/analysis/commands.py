"""Request-side operations that move an analysis through its lifecycle.

The worker never calls these; they are what an API layer or an operator
runs. Each command only writes status, so the change feed is what wakes
the worker up.
"""

import uuid

from compliance_worker.database.exceptions import AnalysisNotFoundError
from compliance_worker.database.models import (
    ENTRY_STATUS,
    AnalysisRecord,
    AnalysisStatus,
    is_valid_transition,
)
from compliance_worker.database.repositories.analysis_repository import AnalysisRepository
from compliance_worker.logging.logger import Log
from compliance_worker.pipeline.orchestrator import STALE_OUTPUTS
from compliance_worker.pipeline.progress import FILE_READ

UPLOAD_COMPLETE_PROGRESS = FILE_READ


class AnalysisCommands:
    def __init__(self, repo: AnalysisRepository) -> None:
        self._repo = repo

    def create_analysis(
        self,
        user_id: str,
        file_name: str,
        language_code: str | None = None,
        analysis_id: str | None = None,
    ) -> AnalysisRecord:
        """Create a record in ``uploading`` for a file the user is about to send."""
        record = AnalysisRecord(
            id=analysis_id or str(uuid.uuid4()),
            user_id=user_id,
            status=AnalysisStatus.UPLOADING,
            progress=0,
            file_name=file_name,
            language_code=language_code,
        )
        self._repo.create(record)
        Log.info(f"Created analysis {record.id} for user {user_id}")
        return record

    def finalize_upload(self, analysis_id: str, source_ref: str) -> bool:
        """Attach the uploaded file and enter the pipeline.

        Allowed from ``uploading``, and from ``error`` to replace a bad file.
        """
        record = self._load(analysis_id)
        if record.status not in (AnalysisStatus.UPLOADING, AnalysisStatus.ERROR):
            Log.info(f"Ignoring upload completion for analysis {analysis_id} in {record.status.value}")
            return False
        self._repo.update(
            analysis_id,
            {
                **STALE_OUTPUTS,
                "source_ref": source_ref,
                "status": ENTRY_STATUS,
                "progress": UPLOAD_COMPLETE_PROGRESS,
            },
        )
        Log.info(f"Upload finalized for analysis {analysis_id}")
        return True

    def request_processing(self, analysis_id: str) -> bool:
        """Retry a failed analysis or reprocess a completed one."""
        record = self._load(analysis_id)
        if record.status not in (AnalysisStatus.ERROR, AnalysisStatus.COMPLETED):
            Log.info(f"Ignoring processing request for analysis {analysis_id} in {record.status.value}")
            return False
        self._repo.update(
            analysis_id,
            {
                "status": ENTRY_STATUS,
                "progress": max(record.progress, UPLOAD_COMPLETE_PROGRESS),
                "error_message": None,
            },
        )
        Log.info(f"Processing requested for analysis {analysis_id} (was {record.status.value})")
        return True

    def request_cancellation(self, analysis_id: str) -> bool:
        return self._transition(analysis_id, AnalysisStatus.CANCELLING)

    def request_deletion(self, analysis_id: str) -> bool:
        """Mark an idle analysis for deletion; the worker removes its files."""
        return self._transition(analysis_id, AnalysisStatus.PENDING_DELETION)

    def _transition(self, analysis_id: str, target: AnalysisStatus) -> bool:
        record = self._load(analysis_id)
        if not is_valid_transition(record.status, target):
            Log.info(
                f"Ignoring {target.value} request for analysis {analysis_id} "
                f"in {record.status.value}"
            )
            return False
        self._repo.update(analysis_id, {"status": target})
        Log.info(f"Analysis {analysis_id} moved to {target.value}")
        return True

    def _load(self, analysis_id: str) -> AnalysisRecord:
        record = self._repo.get(analysis_id)
        if record is None:
            raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")
        return record
