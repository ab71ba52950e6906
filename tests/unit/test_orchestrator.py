from dataclasses import replace
from unittest.mock import MagicMock

from compliance_worker.analysis.commands import AnalysisCommands
from compliance_worker.database.models import AnalysisStatus, ChangeEvent, StatusSnapshot
from compliance_worker.pipeline import progress as milestones
from compliance_worker.pipeline.cancellation import UploadCancellationHandler
from compliance_worker.pipeline.models import RunOutcome
from compliance_worker.pipeline.orchestrator import AnalysisOrchestrator
from compliance_worker.report.mdx_renderer import MDX_CONTENT_TYPE
from compliance_worker.stages.example_client_adapter import ExampleClientAdapter
from compliance_worker.stages.exceptions import StageNetworkError, StageOutputError
from compliance_worker.stages.factory import StageSet
from tests.fakes import (
    InMemoryAnalysisRepository,
    InMemoryBlobStore,
    RecordingStageClient,
    make_record,
    make_stages,
)

SOURCE_REF = "uploads/u1/a1/measurements.csv"
CSV_HEADER = "timestamp;tensao_a;tensao_b;tensao_c;frequencia\n"
CSV_ROW = "2024-01-01 00:00:00;127,1;126,8;127,4;60,01\n"
EXAMPLE_SUMMARY = ExampleClientAdapter.RESPONSES["summarize"]["dataSummary"]


def _csv(length: int) -> str:
    body = CSV_HEADER + CSV_ROW * (length // len(CSV_ROW) + 1)
    return body[:length]


def _orchestrator(
    repo: InMemoryAnalysisRepository,
    blob_store: InMemoryBlobStore,
    stages: StageSet,
    **kwargs: object,
) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(repo, blob_store, stages, **kwargs)  # type: ignore[arg-type]


def _event(
    previous: AnalysisStatus | None = AnalysisStatus.UPLOADING,
    previous_progress: int = 0,
    current_progress: int = 10,
) -> ChangeEvent:
    return ChangeEvent(
        id=1,
        analysis_id="a1",
        previous=StatusSnapshot(previous, previous_progress),
        current=StatusSnapshot(AnalysisStatus.SUMMARIZING, current_progress),
    )


def _seed(
    repo: InMemoryAnalysisRepository,
    blob_store: InMemoryBlobStore,
    content: str,
    **kwargs: object,
) -> None:
    repo.create(make_record(language_code="pt-BR", **kwargs))
    blob_store.blobs[SOURCE_REF] = content


class TestEndToEnd:
    def test_single_chunk_run_completes(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(50_000))
        orchestrator = _orchestrator(analysis_repo, blob_store, make_stages(stage_client))

        outcome = orchestrator.handle_change(_event())

        record = analysis_repo.get("a1")
        assert outcome == RunOutcome.COMPLETED
        assert record is not None
        assert record.status == AnalysisStatus.COMPLETED
        assert record.progress == 100
        assert record.is_chunked is False
        assert record.data_summary == EXAMPLE_SUMMARY
        assert record.identified_regulations == [
            "Resolução Normativa ANEEL nº 956/2021 (PRODIST Módulo 8)"
        ]
        assert record.structured_report is not None
        assert record.summary == "The installation is compliant."
        assert record.rendered_report_ref == "reports/u1/a1/report.mdx"
        assert record.error_message is None
        assert record.completed_at is not None

    def test_stages_run_in_order(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(50_000))

        _orchestrator(analysis_repo, blob_store, make_stages(stage_client)).handle_change(_event())

        assert stage_client.calls == ["summarize", "identify", "report", "report"]
        assert analysis_repo.status_history("a1") == [
            AnalysisStatus.IDENTIFYING,
            AnalysisStatus.ANALYZING,
            AnalysisStatus.REVIEWING,
            AnalysisStatus.COMPLETED,
        ]

    def test_progress_is_monotonic(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(50_000))

        _orchestrator(analysis_repo, blob_store, make_stages(stage_client)).handle_change(_event())

        history = analysis_repo.progress_history("a1")
        assert history == sorted(history)
        assert history[0] == milestones.FILE_READ_STARTED
        assert history[-1] == milestones.FINAL_COMPLETE
        for milestone in (45, 60, 75, 90):
            assert milestone in history

    def test_language_reaches_prompts(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000))

        _orchestrator(analysis_repo, blob_store, make_stages(stage_client)).handle_change(_event())

        assert "pt-BR" in stage_client.prompts[0]

    def test_default_language_when_record_has_none(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        analysis_repo.create(make_record())
        blob_store.blobs[SOURCE_REF] = _csv(1_000)
        orchestrator = _orchestrator(
            analysis_repo,
            blob_store,
            make_stages(stage_client),
            default_language_code="en-US",
        )

        orchestrator.handle_change(_event())

        assert "en-US" in stage_client.prompts[0]

    def test_rendered_report_is_stored(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000))

        _orchestrator(analysis_repo, blob_store, make_stages(stage_client)).handle_change(_event())

        ref = "reports/u1/a1/report.mdx"
        assert blob_store.content_types[ref] == MDX_CONTENT_TYPE
        assert "# Power Quality Compliance Report" in blob_store.blobs[ref]
        assert "measurements.csv" in blob_store.blobs[ref]


class TestChunkedRun:
    def test_large_input_is_summarized_per_chunk(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(250_000))

        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(_event())

        record = analysis_repo.get("a1")
        assert outcome == RunOutcome.COMPLETED
        assert record is not None
        assert record.is_chunked is True
        assert stage_client.calls.count("summarize") == 3
        assert record.data_summary == "\n\n".join([EXAMPLE_SUMMARY] * 3)
        history = analysis_repo.progress_history("a1")
        assert [25, 35, 45] == [p for p in history if 15 <= p <= 45][:3]
        assert history == sorted(history)

    def test_blank_chunks_are_skipped(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, "abcdefghij" + " " * 10 + "klmnopqrst")
        orchestrator = _orchestrator(
            analysis_repo,
            blob_store,
            make_stages(stage_client),
            chunk_size=10,
            overlap_size=0,
        )

        outcome = orchestrator.handle_change(_event())

        assert outcome == RunOutcome.COMPLETED
        assert stage_client.calls.count("summarize") == 2


class TestEntryGuard:
    def test_equal_progress_duplicate_is_skipped(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000))
        event = _event(previous=AnalysisStatus.SUMMARIZING, previous_progress=10)

        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(event)

        assert outcome == RunOutcome.SKIPPED
        assert stage_client.calls == []
        assert analysis_repo.updates == []

    def test_redelivery_after_completion_is_noop(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000))
        orchestrator = _orchestrator(analysis_repo, blob_store, make_stages(stage_client))
        orchestrator.handle_change(_event())
        calls_after_first_run = list(stage_client.calls)
        updates_after_first_run = len(analysis_repo.updates)

        outcome = orchestrator.handle_change(_event())

        assert outcome == RunOutcome.SKIPPED
        assert stage_client.calls == calls_after_first_run
        assert len(analysis_repo.updates) == updates_after_first_run

    def test_own_status_changes_are_skipped(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000))
        orchestrator = _orchestrator(analysis_repo, blob_store, make_stages(stage_client))
        orchestrator.handle_change(_event())
        calls = len(stage_client.calls)

        outcomes = [orchestrator.handle_change(e) for e in analysis_repo.events]

        assert outcomes == [RunOutcome.SKIPPED] * len(analysis_repo.events)
        assert len(stage_client.calls) == calls

    def test_missing_record_is_skipped(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(_event())

        assert outcome == RunOutcome.SKIPPED


class TestRetry:
    def test_retry_clears_previous_outputs(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(
            analysis_repo,
            blob_store,
            _csv(1_000),
            progress=45,
            data_summary="stale summary",
            error_message="Failure (AI stage 'identify'): timeout",
            rendered_report_ref="reports/u1/a1/old.mdx",
        )
        event = _event(previous=AnalysisStatus.ERROR, previous_progress=45, current_progress=45)

        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(event)

        first_write = analysis_repo.updates[0][1]
        record = analysis_repo.get("a1")
        assert outcome == RunOutcome.COMPLETED
        assert first_write["data_summary"] is None
        assert first_write["error_message"] is None
        assert first_write["progress"] == milestones.FILE_READ_STARTED
        assert record is not None
        assert record.data_summary == EXAMPLE_SUMMARY
        assert record.error_message is None
        assert record.rendered_report_ref == "reports/u1/a1/report.mdx"

    def test_reprocess_from_completed(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000), progress=100)
        event = _event(
            previous=AnalysisStatus.COMPLETED, previous_progress=100, current_progress=100
        )

        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(event)

        assert outcome == RunOutcome.COMPLETED
        assert analysis_repo.progress_history("a1")[-1] == 100


class TestFailures:
    def test_missing_source_ref(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        analysis_repo.create(make_record(source_ref=None))

        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(_event())

        record = analysis_repo.get("a1")
        assert outcome == RunOutcome.FAILED
        assert record is not None
        assert record.status == AnalysisStatus.ERROR
        assert record.progress == 0
        assert record.error_message is not None
        assert record.error_message.startswith("Failure (precondition)")
        assert stage_client.calls == []

    def test_missing_input_file(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        analysis_repo.create(make_record())

        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(_event())

        record = analysis_repo.get("a1")
        assert outcome == RunOutcome.FAILED
        assert record is not None
        assert record.status == AnalysisStatus.ERROR
        assert record.error_message == f"Failure (storage): File not found at path: {SOURCE_REF}"
        assert record.progress == milestones.FILE_READ_STARTED

    def test_stage_failure_names_stage_and_keeps_progress(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000))
        stage_client.failures["identify"] = StageNetworkError(
            "AI provider network error: timed out"
        )

        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(_event())

        record = analysis_repo.get("a1")
        assert outcome == RunOutcome.FAILED
        assert record is not None
        assert record.status == AnalysisStatus.ERROR
        assert record.progress == milestones.SUMMARIZATION_COMPLETE
        assert record.error_message == (
            "Failure (AI stage 'identify'): AI provider network error: timed out"
        )
        assert "report" not in stage_client.calls

    def test_error_message_is_bounded(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000))
        stage_client.failures["summarize"] = StageNetworkError("x" * 5_000)

        _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client), max_error_length=200
        ).handle_change(_event())

        record = analysis_repo.get("a1")
        assert record is not None
        assert record.error_message is not None
        assert len(record.error_message) <= 200


class TestReviewFallback:
    def test_failed_review_keeps_unreviewed_report(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000))
        reviewer = MagicMock()
        reviewer.execute.side_effect = StageOutputError(
            "AI produced no usable output: empty response", stage="review"
        )
        stages = replace(make_stages(stage_client), reviewer=reviewer)

        outcome = _orchestrator(analysis_repo, blob_store, stages).handle_change(_event())

        record = analysis_repo.get("a1")
        assert outcome == RunOutcome.COMPLETED
        assert record is not None
        assert record.status == AnalysisStatus.COMPLETED
        assert record.structured_report is not None
        assert record.structured_report["reportMetadata"]["title"] == (
            "Power Quality Compliance Report"
        )
        assert record.error_message is None


class TestCancellation:
    def test_cancel_during_stage_stops_before_next_write(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000))

        def cancel_on_identify(schema_name: str) -> None:
            if schema_name == "identify":
                analysis_repo.set_status("a1", AnalysisStatus.CANCELLING)

        stage_client.before_call = cancel_on_identify

        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(_event())

        record = analysis_repo.get("a1")
        assert outcome == RunOutcome.CANCELLED
        assert record is not None
        assert record.status == AnalysisStatus.CANCELLED
        assert record.progress == milestones.SUMMARIZATION_COMPLETE
        assert record.identified_regulations is None
        assert stage_client.calls == ["summarize", "identify"]

    def test_cancel_between_chunks(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(250_000))

        def cancel_on_second_chunk(schema_name: str) -> None:
            if stage_client.calls.count("summarize") == 2:
                analysis_repo.set_status("a1", AnalysisStatus.CANCELLING)

        stage_client.before_call = cancel_on_second_chunk

        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(_event())

        record = analysis_repo.get("a1")
        assert outcome == RunOutcome.CANCELLED
        assert record is not None
        assert record.status == AnalysisStatus.CANCELLED
        assert record.progress == 35
        assert stage_client.calls == ["summarize", "summarize"]

    def test_cancel_before_start(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000))
        orchestrator = _orchestrator(analysis_repo, blob_store, make_stages(stage_client))
        record = analysis_repo.get("a1")
        assert record is not None
        analysis_repo.set_status("a1", AnalysisStatus.CANCELLING)

        outcome = orchestrator.run(record)

        assert outcome == RunOutcome.CANCELLED
        assert stage_client.calls == []

    def test_cancellation_wins_over_failure(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000))

        def cancel_on_report(schema_name: str) -> None:
            if schema_name == "report":
                analysis_repo.set_status("a1", AnalysisStatus.CANCELLING)

        stage_client.before_call = cancel_on_report
        stage_client.failures["report"] = StageNetworkError("AI provider network error: reset")

        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(_event())

        record = analysis_repo.get("a1")
        assert outcome == RunOutcome.CANCELLED
        assert record is not None
        assert record.status == AnalysisStatus.CANCELLED
        assert "reset" not in (record.error_message or "")


class TestInterruptedRun:
    """The worker died mid-run and the entry change was reclaimed."""

    def test_reclaimed_entry_restarts_run(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(
            analysis_repo,
            blob_store,
            _csv(1_000),
            status=AnalysisStatus.ANALYZING,
            progress=60,
            data_summary="summary from the interrupted run",
        )

        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(replace(_event(), reclaimed=True))

        record = analysis_repo.get("a1")
        assert outcome == RunOutcome.COMPLETED
        assert record is not None
        assert record.status == AnalysisStatus.COMPLETED
        assert record.progress == 100
        assert record.data_summary == EXAMPLE_SUMMARY
        assert analysis_repo.status_history("a1")[0] == AnalysisStatus.SUMMARIZING
        assert stage_client.calls == ["summarize", "identify", "report", "report"]

    def test_in_flight_record_without_reclaim_is_skipped(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000), status=AnalysisStatus.ANALYZING, progress=60)

        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(_event())

        assert outcome == RunOutcome.SKIPPED
        assert stage_client.calls == []
        assert analysis_repo.updates == []

    def test_reclaimed_entry_finishes_cancellation(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000), status=AnalysisStatus.CANCELLING, progress=60)

        outcome = _orchestrator(
            analysis_repo, blob_store, make_stages(stage_client)
        ).handle_change(replace(_event(), reclaimed=True))

        record = analysis_repo.get("a1")
        assert outcome == RunOutcome.CANCELLED
        assert record is not None
        assert record.status == AnalysisStatus.CANCELLED
        assert record.progress == 60
        assert stage_client.calls == []

    def test_cancel_after_crash_reaches_terminal_status(
        self,
        analysis_repo: InMemoryAnalysisRepository,
        blob_store: InMemoryBlobStore,
        stage_client: RecordingStageClient,
    ) -> None:
        _seed(analysis_repo, blob_store, _csv(1_000), status=AnalysisStatus.ANALYZING, progress=60)
        commands = AnalysisCommands(analysis_repo)
        orchestrator = _orchestrator(analysis_repo, blob_store, make_stages(stage_client))
        upload_cancellation = UploadCancellationHandler(analysis_repo)

        assert not commands.request_processing("a1")
        assert commands.request_cancellation("a1")
        for event in list(analysis_repo.events):
            orchestrator.handle_change(event)
            upload_cancellation.handle_change(event)
        record = analysis_repo.get("a1")
        assert record is not None
        assert record.status == AnalysisStatus.CANCELLING

        orchestrator.handle_change(replace(_event(), reclaimed=True))

        record = analysis_repo.get("a1")
        assert record is not None
        assert record.status == AnalysisStatus.CANCELLED
        assert record.progress == 60
