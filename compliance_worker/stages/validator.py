"""Validates parsed AI responses and builds typed stage outputs."""

from typing import Any

from compliance_worker.stages.exceptions import StageOutputError
from compliance_worker.stages.models import (
    BibliographyItem,
    ComplianceReport,
    IdentifyOutput,
    Introduction,
    ReportMetadata,
    ReportSection,
    SummarizeOutput,
)

_NO_OUTPUT = "AI produced no usable output"


def build_summary(data: dict[str, Any]) -> SummarizeOutput:
    summary = data.get("dataSummary")
    if not isinstance(summary, str) or not summary.strip():
        raise StageOutputError(f"{_NO_OUTPUT}: 'dataSummary' must be a non-empty string")
    return SummarizeOutput(data_summary=summary)


def build_identification(data: dict[str, Any]) -> IdentifyOutput:
    """An empty list is valid output; a missing or mistyped one is not."""
    resolutions = _string_list(data.get("relevantResolutions"), "relevantResolutions")
    return IdentifyOutput(relevant_resolutions=resolutions)


def build_report(data: dict[str, Any]) -> ComplianceReport:
    """Validate a structured compliance report and build a ComplianceReport.

    Raises:
        StageOutputError: on any missing or mistyped required field.
    """
    for name in ("reportMetadata", "introduction", "analysisSections", "finalConsiderations"):
        if name not in data:
            raise StageOutputError(f"{_NO_OUTPUT}: missing required field '{name}'")

    return ComplianceReport(
        report_metadata=_build_metadata(data["reportMetadata"]),
        introduction=_build_introduction(data["introduction"]),
        final_considerations=_string(data["finalConsiderations"], "finalConsiderations"),
        analysis_sections=_build_sections(data["analysisSections"]),
        table_of_contents=_string_list(data.get("tableOfContents") or [], "tableOfContents"),
        bibliography=_build_bibliography(data.get("bibliography") or []),
    )


def _build_metadata(raw: Any) -> ReportMetadata:
    if not isinstance(raw, dict):
        raise StageOutputError(f"{_NO_OUTPUT}: 'reportMetadata' must be an object")
    return ReportMetadata(
        title=_string(raw.get("title"), "reportMetadata.title"),
        author=_string(raw.get("author"), "reportMetadata.author"),
        generated_date=_string(raw.get("generatedDate"), "reportMetadata.generatedDate"),
        subtitle=_optional_string(raw.get("subtitle"), "reportMetadata.subtitle"),
    )


def _build_introduction(raw: Any) -> Introduction:
    if not isinstance(raw, dict):
        raise StageOutputError(f"{_NO_OUTPUT}: 'introduction' must be an object")
    return Introduction(
        objective=_string(raw.get("objective"), "introduction.objective"),
        overall_results_summary=_string(
            raw.get("overallResultsSummary"), "introduction.overallResultsSummary"
        ),
        used_norms_overview=_string(
            raw.get("usedNormsOverview"), "introduction.usedNormsOverview"
        ),
    )


def _build_sections(raw: Any) -> list[ReportSection]:
    if not isinstance(raw, list):
        raise StageOutputError(f"{_NO_OUTPUT}: 'analysisSections' must be a list")
    sections: list[ReportSection] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise StageOutputError(f"{_NO_OUTPUT}: section at index {i} must be an object")
        sections.append(
            ReportSection(
                title=_string(item.get("title"), f"analysisSections[{i}].title"),
                content=_string(item.get("content"), f"analysisSections[{i}].content"),
                insights=_string_list(item.get("insights") or [], f"analysisSections[{i}].insights"),
                relevant_norms_cited=_string_list(
                    item.get("relevantNormsCited") or [],
                    f"analysisSections[{i}].relevantNormsCited",
                ),
                chart_or_image_suggestion=_optional_string(
                    item.get("chartOrImageSuggestion"),
                    f"analysisSections[{i}].chartOrImageSuggestion",
                ),
            )
        )
    return sections


def _build_bibliography(raw: Any) -> list[BibliographyItem]:
    if not isinstance(raw, list):
        raise StageOutputError(f"{_NO_OUTPUT}: 'bibliography' must be a list")
    items: list[BibliographyItem] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise StageOutputError(f"{_NO_OUTPUT}: bibliography item {i} must be an object")
        items.append(
            BibliographyItem(
                text=_string(item.get("text"), f"bibliography[{i}].text"),
                link=_optional_string(item.get("link"), f"bibliography[{i}].link"),
            )
        )
    return items


def _string(raw: Any, name: str) -> str:
    if not isinstance(raw, str):
        raise StageOutputError(f"{_NO_OUTPUT}: '{name}' must be a string")
    return raw


def _optional_string(raw: Any, name: str) -> str | None:
    if raw is None or raw == "":
        return None
    return _string(raw, name)


def _string_list(raw: Any, name: str) -> list[str]:
    if not isinstance(raw, list):
        raise StageOutputError(f"{_NO_OUTPUT}: '{name}' must be a list")
    if not all(isinstance(item, str) for item in raw):
        raise StageOutputError(f"{_NO_OUTPUT}: '{name}' must contain only strings")
    return list(raw)
