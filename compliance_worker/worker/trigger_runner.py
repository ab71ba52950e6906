from collections.abc import Sequence
from typing import Protocol

from compliance_worker.config.settings import Settings
from compliance_worker.database.models import ChangeEvent
from compliance_worker.database.repositories.event_repository import EventRepository
from compliance_worker.logging.logger import Log
from compliance_worker.pipeline.models import RunOutcome


class ChangeHandler(Protocol):
    def handle_change(self, event: ChangeEvent) -> RunOutcome: ...


class TriggerRunner:
    """Deliver one change event to every handler, and apply redelivery logic."""

    def __init__(
        self,
        handlers: Sequence[ChangeHandler],
        event_repo: EventRepository,
        settings: Settings,
    ) -> None:
        self._handlers = list(handlers)
        self._event_repo = event_repo
        self._settings = settings

    def run(self, event: ChangeEvent) -> None:
        """Deliver a single event with error handling."""
        Log.info(
            f"Delivering change {event.id} for analysis {event.analysis_id} "
            f"(attempt {event.attempts + 1})"
        )
        try:
            for handler in self._handlers:
                outcome = handler.handle_change(event)
                if outcome != RunOutcome.SKIPPED:
                    Log.info(f"{type(handler).__name__} handled change {event.id}: {outcome.value}")
            self._event_repo.mark_done(event.id)
        except Exception as exc:
            self._handle_failure(event, exc)

    def _handle_failure(self, event: ChangeEvent, exc: Exception) -> None:
        """Increment attempts; mark failed if at max, otherwise back to pending."""
        Log.error(f"Change {event.id} delivery failed: {exc}")
        if event.attempts + 1 >= self._settings.max_event_attempts:
            self._event_repo.mark_failed(event.id, str(exc))
            Log.error(f"Change {event.id} permanently failed after {event.attempts + 1} attempts")
        else:
            self._event_repo.increment_attempts(event.id)
            Log.warning(f"Change {event.id} will be redelivered (attempt {event.attempts + 1})")
