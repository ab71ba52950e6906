import time

from compliance_worker.config.settings import Settings
from compliance_worker.database.connection import get_connection
from compliance_worker.database.models import ChangeEvent
from compliance_worker.database.repositories.event_repository import EventRepository
from compliance_worker.logging.logger import Log
from compliance_worker.worker.trigger_runner import TriggerRunner


class Worker:
    """Poll loop: sleep -> claim -> deliver."""

    def __init__(
        self,
        event_repo: EventRepository,
        trigger_runner: TriggerRunner,
        settings: Settings,
    ) -> None:
        self._event_repo = event_repo
        self._trigger_runner = trigger_runner
        self._settings = settings

    def run(self, max_events: int | None = None) -> None:
        """Main poll loop. Runs forever until interrupted.

        If max_events is set, stop after delivering that many events (for testing).
        """
        Log.info("Worker started, polling for analysis changes")
        delivered = 0
        try:
            while True:
                if max_events is not None and delivered >= max_events:
                    break
                event = self._try_claim_event()
                if event:
                    self._trigger_runner.run(event)
                    delivered += 1
                else:
                    Log.debug("No changes pending, sleeping")
                    time.sleep(self._settings.event_poll_interval_seconds)
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")

    def _try_claim_event(self) -> ChangeEvent | None:
        """Attempt to claim the next pending event. Gracefully handle DB errors."""
        try:
            with get_connection() as conn:
                return self._event_repo.claim_next_event(conn)
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None
