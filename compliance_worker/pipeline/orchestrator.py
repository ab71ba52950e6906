from collections.abc import Mapping

from compliance_worker.config.settings import Settings
from compliance_worker.database.models import (
    ENTRY_STATUS,
    PIPELINE_STATUSES,
    AnalysisRecord,
    AnalysisStatus,
    ChangeEvent,
)
from compliance_worker.database.repositories.analysis_repository import (
    SERVER_TIMESTAMP,
    AnalysisRepository,
)
from compliance_worker.errors import PreconditionError
from compliance_worker.logging.logger import Log
from compliance_worker.pipeline import progress as milestones
from compliance_worker.pipeline.cancellation import CancellationMonitor
from compliance_worker.pipeline.chunker import chunk_text
from compliance_worker.pipeline.entry_guard import should_process
from compliance_worker.pipeline.error_handler import ErrorHandler
from compliance_worker.pipeline.models import RunOutcome
from compliance_worker.pipeline.progress import ProgressTracker, chunk_progress
from compliance_worker.report.mdx_renderer import MDX_CONTENT_TYPE, render_mdx, report_blob_ref
from compliance_worker.stages.exceptions import StageError
from compliance_worker.stages.factory import StageClientFactory, StageSet
from compliance_worker.stages.models import (
    AnalyzeInput,
    ComplianceReport,
    IdentifyInput,
    ReviewInput,
    SummarizeInput,
)
from compliance_worker.storage.base import BaseBlobStore
from compliance_worker.storage.factory import BlobStoreFactory

# Outputs of a previous run; cleared when a new run starts.
STALE_OUTPUTS: dict[str, object] = {
    "is_chunked": None,
    "data_summary": None,
    "identified_regulations": None,
    "structured_report": None,
    "summary": None,
    "rendered_report_ref": None,
    "error_message": None,
    "completed_at": None,
}


class AnalysisOrchestrator:
    """Runs the compliance analysis pipeline for one record.

    Pipeline: read file -> chunk -> summarize -> identify -> analyze ->
    review -> render. Each stage boundary re-reads the record for
    cancellation and persists status and progress before moving on.
    """

    def __init__(
        self,
        repo: AnalysisRepository,
        blob_store: BaseBlobStore,
        stages: StageSet,
        *,
        chunk_size: int = 100_000,
        overlap_size: int = 10_000,
        default_language_code: str = "pt-BR",
        max_error_length: int = 1000,
    ) -> None:
        self._repo = repo
        self._blob_store = blob_store
        self._stages = stages
        self._chunk_size = chunk_size
        self._overlap_size = overlap_size
        self._default_language_code = default_language_code
        self._monitor = CancellationMonitor(repo)
        self._error_handler = ErrorHandler(repo, self._monitor, max_error_length)

    def handle_change(self, event: ChangeEvent) -> RunOutcome:
        """Start a run if the change is a valid entry into the pipeline.

        A reclaimed entry event means the worker that ran it died; the
        record is left in whatever status that run last wrote, so the run is
        restarted from any pipeline status, and a cancellation requested
        meanwhile is finished here.
        """
        if not should_process(event.previous, event.current):
            Log.debug(
                f"Change {event.id} on analysis {event.analysis_id} "
                f"({_describe(event.previous.status)} -> {_describe(event.current.status)}) "
                "does not start a run"
            )
            return RunOutcome.SKIPPED

        record = self._repo.get(event.analysis_id)
        if record is None:
            Log.warning(f"Analysis {event.analysis_id} no longer exists, skipping change {event.id}")
            return RunOutcome.SKIPPED
        if event.reclaimed and record.status == AnalysisStatus.CANCELLING:
            Log.warning(f"Analysis {record.id} was cancelled while its run was interrupted")
            self._monitor.check(record.id)
            return RunOutcome.CANCELLED
        if event.reclaimed and record.status in PIPELINE_STATUSES:
            Log.warning(
                f"Restarting analysis {record.id}, interrupted while {record.status.value}"
            )
            return self.run(record)
        if record.status != ENTRY_STATUS:
            Log.info(
                f"Analysis {record.id} is now {record.status.value}, "
                f"skipping stale change {event.id}"
            )
            return RunOutcome.SKIPPED
        return self.run(record)

    def run(self, record: AnalysisRecord) -> RunOutcome:
        """Run the full pipeline. Failures end in ``error``; nothing is raised."""
        analysis_id = record.id
        Log.info(f"Starting analysis {analysis_id} (file {record.file_name!r})")

        if not record.source_ref:
            return self._error_handler.handle(
                analysis_id, PreconditionError("Input file reference is missing")
            )

        try:
            outcome = self._run_pipeline(record, ProgressTracker(self._repo, analysis_id))
        except Exception as exc:  # noqa: BLE001
            return self._error_handler.handle(analysis_id, exc)

        Log.info(f"Analysis {analysis_id} finished: {outcome.value}")
        return outcome

    def _run_pipeline(self, record: AnalysisRecord, progress: ProgressTracker) -> RunOutcome:
        analysis_id = record.id
        language_code = record.language_code or self._default_language_code

        # Step 1: Read the input file
        # An interrupted run may have left a later status behind.
        restart = {} if record.status == ENTRY_STATUS else {"status": ENTRY_STATUS}
        if self._monitor.check(analysis_id):
            return RunOutcome.CANCELLED
        progress.reset()
        self._repo.update(
            analysis_id,
            {**STALE_OUTPUTS, **restart, **progress.fields(milestones.FILE_READ_STARTED)},
        )
        content = self._blob_store.fetch_text(record.source_ref or "")
        progress.checkpoint(milestones.FILE_READ)
        Log.info(f"Read {len(content)} chars for analysis {analysis_id}")

        # Step 2: Chunk
        if self._monitor.check(analysis_id):
            return RunOutcome.CANCELLED
        chunks = chunk_text(content, self._chunk_size, self._overlap_size)
        self._repo.update(
            analysis_id,
            {"is_chunked": len(chunks) > 1, **progress.fields(milestones.CHUNKED)},
        )
        Log.info(f"Split analysis {analysis_id} input into {len(chunks)} chunk(s)")

        # Step 3: Summarize each chunk
        data_summary = self._summarize(analysis_id, chunks, language_code, progress)
        if data_summary is None:
            return RunOutcome.CANCELLED
        if not self._advance(
            analysis_id,
            {
                "data_summary": data_summary,
                "status": AnalysisStatus.IDENTIFYING,
                **progress.fields(milestones.SUMMARIZATION_COMPLETE),
            },
        ):
            return RunOutcome.CANCELLED

        # Step 4: Identify regulations
        identified = self._stages.identifier.execute(
            IdentifyInput(data_summary=data_summary, language_code=language_code)
        ).relevant_resolutions
        Log.info(f"Identified {len(identified)} regulation(s) for analysis {analysis_id}")
        if not self._advance(
            analysis_id,
            {
                "identified_regulations": identified,
                "status": AnalysisStatus.ANALYZING,
                **progress.fields(milestones.IDENTIFICATION_COMPLETE),
            },
        ):
            return RunOutcome.CANCELLED

        # Step 5: Analyze compliance
        report = self._stages.analyzer.execute(
            AnalyzeInput(
                data_summary=data_summary,
                identified_regulations=identified,
                file_name=record.file_name,
                language_code=language_code,
            )
        )
        if not self._advance(
            analysis_id,
            {
                "status": AnalysisStatus.REVIEWING,
                **progress.fields(milestones.ANALYSIS_COMPLETE),
            },
        ):
            return RunOutcome.CANCELLED

        # Step 6: Review, falling back to the unreviewed report
        final_report = self._review(analysis_id, report, language_code)
        self._repo.update(
            analysis_id,
            {
                "structured_report": final_report.to_dict(),
                "summary": final_report.introduction.overall_results_summary,
                **progress.fields(milestones.REVIEW_COMPLETE),
            },
        )

        # Step 7: Render and store the MDX report
        if self._monitor.check(analysis_id):
            return RunOutcome.CANCELLED
        ref = report_blob_ref(record.user_id, analysis_id)
        self._blob_store.store(ref, render_mdx(final_report, record.file_name), MDX_CONTENT_TYPE)
        self._repo.update(analysis_id, {"rendered_report_ref": ref})
        Log.info(f"Stored rendered report for analysis {analysis_id} at {ref}")

        # Step 8: Complete
        if not self._advance(
            analysis_id,
            {
                "status": AnalysisStatus.COMPLETED,
                "error_message": None,
                "completed_at": SERVER_TIMESTAMP,
                **progress.fields(milestones.FINAL_COMPLETE),
            },
        ):
            return RunOutcome.CANCELLED
        return RunOutcome.COMPLETED

    def _summarize(
        self,
        analysis_id: str,
        chunks: list[str],
        language_code: str,
        progress: ProgressTracker,
    ) -> str | None:
        """Summarize chunks in order. Returns None if cancelled along the way."""
        summaries: list[str] = []
        total = len(chunks)
        for index, chunk in enumerate(chunks, start=1):
            if self._monitor.check(analysis_id):
                return None
            if not chunk.strip():
                Log.warning(f"Chunk {index}/{total} of analysis {analysis_id} is empty, skipping")
            else:
                Log.debug(f"Summarizing chunk {index}/{total} of analysis {analysis_id}")
                output = self._stages.summarizer.execute(
                    SummarizeInput(data_chunk=chunk, language_code=language_code)
                )
                summaries.append(output.data_summary)
            progress.checkpoint(chunk_progress(index, total))
        return "\n\n".join(summaries).strip()

    def _review(
        self,
        analysis_id: str,
        report: ComplianceReport,
        language_code: str,
    ) -> ComplianceReport:
        try:
            return self._stages.reviewer.execute(
                ReviewInput(report=report, language_code=language_code)
            )
        except StageError as exc:
            Log.warning(f"Review failed for analysis {analysis_id}, keeping unreviewed report: {exc}")
            return report

    def _advance(self, analysis_id: str, fields: Mapping[str, object]) -> bool:
        """Write a status-advancing update unless the user cancelled meanwhile."""
        if self._monitor.check(analysis_id):
            return False
        self._repo.update(analysis_id, fields)
        return True


def _describe(status: AnalysisStatus | None) -> str:
    return status.value if status is not None else "none"


def build_orchestrator(
    settings: Settings,
    repo: AnalysisRepository | None = None,
) -> AnalysisOrchestrator:
    """Build an AnalysisOrchestrator with all required adapters."""
    return AnalysisOrchestrator(
        repo=repo if repo is not None else AnalysisRepository(),
        blob_store=BlobStoreFactory.create(settings),
        stages=StageClientFactory.create_stages(settings),
        chunk_size=settings.chunk_size,
        overlap_size=settings.overlap_size,
        default_language_code=settings.default_language_code,
        max_error_length=settings.max_error_message_length,
    )
