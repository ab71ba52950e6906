from compliance_worker.analysis.deletion import DeletionHandler
from compliance_worker.config.settings import Settings
from compliance_worker.database.connection import apply_schema, close_pool, init_pool
from compliance_worker.database.repositories.analysis_repository import AnalysisRepository
from compliance_worker.database.repositories.event_repository import EventRepository
from compliance_worker.logging.logger import Log
from compliance_worker.pipeline.cancellation import UploadCancellationHandler
from compliance_worker.pipeline.orchestrator import build_orchestrator
from compliance_worker.storage.factory import BlobStoreFactory
from compliance_worker.worker.trigger_runner import TriggerRunner
from compliance_worker.worker.worker import Worker


def main() -> None:
    """Entry point: initialize pool -> build dependencies -> start worker loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    try:
        apply_schema()
        analysis_repo = AnalysisRepository()
        orchestrator = build_orchestrator(settings, analysis_repo)
        deletion_handler = DeletionHandler(analysis_repo, BlobStoreFactory.create(settings))
        event_repo = EventRepository(
            settings.max_event_attempts, settings.event_lock_timeout_seconds
        )
        trigger_runner = TriggerRunner(
            [orchestrator, UploadCancellationHandler(analysis_repo), deletion_handler],
            event_repo,
            settings,
        )
        worker = Worker(event_repo, trigger_runner, settings)
        worker.run()
    finally:
        close_pool()


if __name__ == "__main__":
    main()
