from compliance_worker.database.repositories.analysis_repository import AnalysisRepository
from compliance_worker.logging.logger import Log

# Cumulative progress milestones; later stages always sit strictly higher.
FILE_READ_STARTED = 5
FILE_READ = 10
CHUNKED = 14
SUMMARIZATION_BASE = 15
SUMMARIZATION_SPAN = 30
SUMMARIZATION_COMPLETE = SUMMARIZATION_BASE + SUMMARIZATION_SPAN
IDENTIFICATION_COMPLETE = SUMMARIZATION_COMPLETE + 15
ANALYSIS_COMPLETE = IDENTIFICATION_COMPLETE + 15
REVIEW_COMPLETE = ANALYSIS_COMPLETE + 15
FINAL_COMPLETE = 100


def chunk_progress(done_chunks: int, total_chunks: int) -> int:
    """Progress after ``done_chunks`` of ``total_chunks`` have been summarized."""
    if total_chunks <= 0:
        return SUMMARIZATION_COMPLETE
    return SUMMARIZATION_BASE + round((done_chunks / total_chunks) * SUMMARIZATION_SPAN)


class ProgressTracker:
    """Persists a run's progress percentage, never moving it backwards."""

    def __init__(self, repo: AnalysisRepository, analysis_id: str) -> None:
        self._repo = repo
        self._analysis_id = analysis_id
        self._last = 0

    @property
    def last(self) -> int:
        return self._last

    def reset(self, value: int = 0) -> None:
        """Start a new run baseline without writing anything."""
        self._last = value

    def checkpoint(self, value: int) -> int:
        """Persist ``value`` (clamped to 0-100 and to the run's maximum so far)."""
        target = max(self._last, min(100, max(0, value)))
        if target != value:
            Log.debug(f"Progress {value} for analysis {self._analysis_id} clamped to {target}")
        self._repo.update(self._analysis_id, {"progress": target})
        self._last = target
        return target

    def fields(self, value: int) -> dict[str, int]:
        """Return the progress field for a combined write, advancing the baseline."""
        target = max(self._last, min(100, max(0, value)))
        self._last = target
        return {"progress": target}
