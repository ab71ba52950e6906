from compliance_worker.database.models import ENTRY_STATUS, AnalysisStatus, StatusSnapshot

_START_FROM = frozenset(
    {
        AnalysisStatus.UPLOADING,
        AnalysisStatus.ERROR,
        AnalysisStatus.COMPLETED,
    }
)


def should_process(previous: StatusSnapshot, current: StatusSnapshot) -> bool:
    """Decide from a change's before/after snapshots whether to start a run.

    Starts on upload completion, retry from ``error`` and reprocess from
    ``completed``. A change that stays in the entry status only starts a run
    when progress strictly increased; equal progress is a pure duplicate.
    """
    if current.status != ENTRY_STATUS:
        return False
    if previous.status in _START_FROM:
        return True
    if previous.status == ENTRY_STATUS:
        return current.progress > previous.progress
    return False
