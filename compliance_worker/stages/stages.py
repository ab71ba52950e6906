import json
from typing import Any

from compliance_worker.stages.executor import StageExecutor
from compliance_worker.stages.models import (
    AnalyzeInput,
    ComplianceReport,
    IdentifyInput,
    IdentifyOutput,
    ReviewInput,
    SummarizeInput,
    SummarizeOutput,
)
from compliance_worker.stages.validator import build_identification, build_report, build_summary


class Summarizer(StageExecutor[SummarizeInput, SummarizeOutput]):
    """Summarizes one chunk of power-quality CSV data."""

    name = "summarize"
    prompt_name = "summarize"
    schema_name = "summarize"

    def _prompt_variables(self, stage_input: SummarizeInput) -> dict[str, str]:
        return {
            "data_chunk": stage_input.data_chunk,
            "language_code": stage_input.language_code,
        }

    def _build_output(self, data: dict[str, Any]) -> SummarizeOutput:
        return build_summary(data)


class RegulationIdentifier(StageExecutor[IdentifyInput, IdentifyOutput]):
    """Lists the regulations relevant to the aggregate data summary."""

    name = "identify"
    prompt_name = "identify"
    schema_name = "identify"

    def _prompt_variables(self, stage_input: IdentifyInput) -> dict[str, str]:
        return {
            "data_summary": stage_input.data_summary,
            "language_code": stage_input.language_code,
        }

    def _build_output(self, data: dict[str, Any]) -> IdentifyOutput:
        return build_identification(data)


class ComplianceAnalyzer(StageExecutor[AnalyzeInput, ComplianceReport]):
    """Writes the structured compliance report."""

    name = "analyze"
    prompt_name = "analyze"
    schema_name = "report"

    def _prompt_variables(self, stage_input: AnalyzeInput) -> dict[str, str]:
        return {
            "data_summary": stage_input.data_summary,
            "identified_regulations": ", ".join(stage_input.identified_regulations),
            "file_name": stage_input.file_name,
            "language_code": stage_input.language_code,
        }

    def _build_output(self, data: dict[str, Any]) -> ComplianceReport:
        return build_report(data)


class ReportReviewer(StageExecutor[ReviewInput, ComplianceReport]):
    """Refines a structured compliance report."""

    name = "review"
    prompt_name = "review"
    schema_name = "report"

    def _prompt_variables(self, stage_input: ReviewInput) -> dict[str, str]:
        return {
            "report_json": json.dumps(stage_input.report.to_dict(), ensure_ascii=False, indent=2),
            "language_code": stage_input.language_code,
        }

    def _build_output(self, data: dict[str, Any]) -> ComplianceReport:
        return build_report(data)
