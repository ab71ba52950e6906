from compliance_worker.stages.executor import StageExecutor
from compliance_worker.stages.factory import StageClientFactory, StageSet
from compliance_worker.stages.stages import (
    ComplianceAnalyzer,
    RegulationIdentifier,
    ReportReviewer,
    Summarizer,
)

__all__ = [
    "ComplianceAnalyzer",
    "RegulationIdentifier",
    "ReportReviewer",
    "StageClientFactory",
    "StageExecutor",
    "StageSet",
    "Summarizer",
]
