import os
import uuid
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from compliance_worker.config.settings import Settings
from compliance_worker.database.connection import (
    apply_schema,
    close_pool,
    get_connection,
    init_pool,
)
from compliance_worker.database.models import AnalysisRecord, AnalysisStatus
from compliance_worker.database.repositories.analysis_repository import AnalysisRepository


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "compliance_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        apply_schema()
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run.")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def integration_cleanup(integration_pool: None) -> Generator[list[str], None, None]:
    """Analysis ids to delete after the test; their events cascade."""
    cleanup: list[str] = []
    yield cleanup
    if not cleanup:
        return
    with get_connection() as conn:
        conn.execute("DELETE FROM analyses WHERE id = ANY(%s)", (cleanup,))
        conn.commit()


@pytest.fixture
def seed_analysis(integration_cleanup: list[str]) -> AnalysisRecord:
    record = AnalysisRecord(
        id=f"it-{uuid.uuid4()}",
        user_id="it-user",
        status=AnalysisStatus.UPLOADING,
        progress=0,
        file_name="medicoes.csv",
        language_code="pt-BR",
    )
    AnalysisRepository().create(record)
    integration_cleanup.append(record.id)
    return record
