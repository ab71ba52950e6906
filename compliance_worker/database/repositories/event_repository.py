from collections.abc import Mapping
from typing import Any

import psycopg
from psycopg.rows import dict_row

from compliance_worker.database.connection import get_connection
from compliance_worker.database.models import AnalysisStatus, ChangeEvent, StatusSnapshot
from compliance_worker.logging.logger import Log


class EventRepository:
    """Database operations for the analysis_events change feed."""

    def __init__(self, max_attempts: int, lock_timeout_seconds: int = 3600) -> None:
        self._max_attempts = max_attempts
        self._lock_timeout_seconds = lock_timeout_seconds

    def claim_next_event(self, conn: psycopg.Connection[Any]) -> ChangeEvent | None:
        """Claim the oldest deliverable event using SELECT FOR UPDATE SKIP LOCKED.

        Deliverable means pending, or processing with a lock older than the
        lock timeout (its worker died mid-delivery). Reclaiming counts as an
        attempt so an event that keeps killing its worker is eventually dropped.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT id, analysis_id, previous_status, previous_progress,
                       current_status, current_progress, status, attempts, created_at
                FROM analysis_events
                WHERE attempts < %s
                  AND (
                      status = 'pending'
                      OR (status = 'processing'
                          AND locked_at < NOW() - %s * INTERVAL '1 second')
                  )
                ORDER BY created_at, id
                LIMIT 1
                FOR UPDATE SKIP LOCKED
                """,
                (self._max_attempts, self._lock_timeout_seconds),
            )
            row = cur.fetchone()

        if row is None:
            conn.commit()
            return None

        reclaimed = row["status"] == "processing"
        conn.execute(
            """
            UPDATE analysis_events
            SET status = 'processing', locked_at = NOW(), updated_at = NOW(),
                attempts = attempts + %s
            WHERE id = %s
            """,
            (1 if reclaimed else 0, row["id"]),
        )
        conn.commit()

        event = _row_to_event(row)
        event.status = "processing"
        if reclaimed:
            event.reclaimed = True
            event.attempts += 1
            Log.warning(
                f"Reclaimed change {event.id} for analysis {event.analysis_id} "
                f"after its lock expired (attempt {event.attempts + 1})"
            )
        return event

    def mark_done(self, event_id: int) -> None:
        """Mark an event as delivered."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE analysis_events
                SET status = 'done', updated_at = NOW()
                WHERE id = %s
                """,
                (event_id,),
            )
            conn.commit()

    def mark_failed(self, event_id: int, error: str) -> None:
        """Mark an event as permanently undeliverable."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE analysis_events
                SET status = 'failed', error_message = %s, updated_at = NOW()
                WHERE id = %s
                """,
                (error, event_id),
            )
            conn.commit()

    def increment_attempts(self, event_id: int) -> None:
        """Increment attempt count and return the event to pending."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE analysis_events
                SET attempts = attempts + 1, status = 'pending',
                    locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (event_id,),
            )
            conn.commit()

    def find_by_id(self, event_id: int) -> ChangeEvent | None:
        """Find an event by ID. Useful for tests."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, analysis_id, previous_status, previous_progress,
                           current_status, current_progress, status, attempts,
                           error_message, created_at
                    FROM analysis_events
                    WHERE id = %s
                    """,
                    (event_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _row_to_event(row)

    def list_for_analysis(self, analysis_id: str) -> list[ChangeEvent]:
        """Return every event recorded for an analysis, oldest first."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, analysis_id, previous_status, previous_progress,
                           current_status, current_progress, status, attempts,
                           error_message, created_at
                    FROM analysis_events
                    WHERE analysis_id = %s
                    ORDER BY created_at, id
                    """,
                    (analysis_id,),
                )
                rows = cur.fetchall()
        return [_row_to_event(row) for row in rows]


def _row_to_event(row: Mapping[str, Any]) -> ChangeEvent:
    previous_status = row["previous_status"]
    return ChangeEvent(
        id=row["id"],
        analysis_id=row["analysis_id"],
        previous=StatusSnapshot(
            status=AnalysisStatus(previous_status) if previous_status else None,
            progress=row["previous_progress"],
        ),
        current=StatusSnapshot(
            status=AnalysisStatus(row["current_status"]),
            progress=row["current_progress"],
        ),
        status=row.get("status", "pending"),
        attempts=row["attempts"],
        error_message=row.get("error_message"),
        created_at=row["created_at"],
    )
