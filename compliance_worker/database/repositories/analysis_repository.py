from collections.abc import Mapping
from enum import Enum
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from compliance_worker.database.connection import get_connection
from compliance_worker.database.exceptions import AnalysisNotFoundError, UnknownFieldError
from compliance_worker.database.models import AnalysisRecord, AnalysisStatus


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()
"""Field value that the store replaces with its own clock (``NOW()``)."""

_COLUMNS = (
    "id",
    "user_id",
    "file_name",
    "status",
    "progress",
    "source_ref",
    "language_code",
    "is_chunked",
    "data_summary",
    "identified_regulations",
    "structured_report",
    "summary",
    "rendered_report_ref",
    "error_message",
    "created_at",
    "completed_at",
    "updated_at",
)
_UPDATABLE_COLUMNS = frozenset(_COLUMNS) - {"id", "created_at", "updated_at"}
_JSON_COLUMNS = frozenset({"identified_regulations", "structured_report"})


class AnalysisRepository:
    """Document store operations for the analyses table.

    Every update that changes ``status`` appends a row to analysis_events in
    the same transaction, carrying the before/after status and progress. The
    worker consumes those rows as change notifications.
    """

    def create(self, record: AnalysisRecord) -> None:
        """Insert a new analysis record."""
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO analyses
                    (id, user_id, file_name, status, progress, source_ref, language_code)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    record.id,
                    record.user_id,
                    record.file_name,
                    record.status.value,
                    record.progress,
                    record.source_ref,
                    record.language_code,
                ),
            )
            conn.commit()

    def get(self, analysis_id: str) -> AnalysisRecord | None:
        """Read the current persisted state of a record, or None if absent."""
        query = sql.SQL("SELECT {} FROM analyses WHERE id = %s").format(
            sql.SQL(", ").join(sql.Identifier(c) for c in _COLUMNS)
        )
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, (analysis_id,))
                row = cur.fetchone()

        if row is None:
            return None
        return _row_to_record(row)

    def update(self, analysis_id: str, fields: Mapping[str, object]) -> None:
        """Merge ``fields`` into the record. Columns not named are left untouched.

        Raises:
            AnalysisNotFoundError: if the record does not exist.
            UnknownFieldError: if a field is not an updatable column.
        """
        if not fields:
            return
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise UnknownFieldError(f"Unknown analysis fields: {sorted(unknown)}")

        assignments, params = _build_assignments(fields)
        query = sql.SQL(
            "UPDATE analyses SET {}, updated_at = NOW() WHERE id = %s RETURNING status, progress"
        ).format(sql.SQL(", ").join(assignments))

        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT status, progress FROM analyses WHERE id = %s FOR UPDATE",
                    (analysis_id,),
                )
                before = cur.fetchone()
                if before is None:
                    conn.rollback()
                    raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")
                cur.execute(query, (*params, analysis_id))
                after = cur.fetchone()
                if after is not None and after["status"] != before["status"]:
                    _append_change_event(cur, analysis_id, before, after)
            conn.commit()


def _build_assignments(
    fields: Mapping[str, object],
) -> tuple[list[sql.Composable], list[object]]:
    assignments: list[sql.Composable] = []
    params: list[object] = []
    for column, value in fields.items():
        if value is SERVER_TIMESTAMP:
            assignments.append(sql.SQL("{} = NOW()").format(sql.Identifier(column)))
            continue
        assignments.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
        params.append(_adapt(column, value))
    return assignments, params


def _adapt(column: str, value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    if column in _JSON_COLUMNS and value is not None:
        return Jsonb(value)
    return value


def _append_change_event(
    cur: psycopg.Cursor[Any],
    analysis_id: str,
    before: Mapping[str, Any],
    after: Mapping[str, Any],
) -> None:
    cur.execute(
        """
        INSERT INTO analysis_events
            (analysis_id, previous_status, previous_progress,
             current_status, current_progress)
        VALUES (%s, %s, %s, %s, %s)
        """,
        (
            analysis_id,
            before["status"],
            before["progress"],
            after["status"],
            after["progress"],
        ),
    )


def _row_to_record(row: Mapping[str, Any]) -> AnalysisRecord:
    return AnalysisRecord(
        id=row["id"],
        user_id=row["user_id"],
        file_name=row["file_name"],
        status=AnalysisStatus(row["status"]),
        progress=row["progress"],
        source_ref=row["source_ref"],
        language_code=row["language_code"],
        is_chunked=row["is_chunked"],
        data_summary=row["data_summary"],
        identified_regulations=row["identified_regulations"],
        structured_report=row["structured_report"],
        summary=row["summary"],
        rendered_report_ref=row["rendered_report_ref"],
        error_message=row["error_message"],
        created_at=row["created_at"],
        completed_at=row["completed_at"],
        updated_at=row["updated_at"],
    )
