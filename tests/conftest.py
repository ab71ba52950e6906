import pytest

from tests.fakes import InMemoryAnalysisRepository, InMemoryBlobStore, RecordingStageClient


@pytest.fixture()
def analysis_repo() -> InMemoryAnalysisRepository:
    return InMemoryAnalysisRepository()


@pytest.fixture()
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture()
def stage_client() -> RecordingStageClient:
    return RecordingStageClient()
