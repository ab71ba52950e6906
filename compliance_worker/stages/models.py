from dataclasses import dataclass, field


@dataclass(frozen=True)
class SummarizeInput:
    """One chunk of power-quality CSV data to summarize."""

    data_chunk: str
    language_code: str


@dataclass(frozen=True)
class SummarizeOutput:
    data_summary: str


@dataclass(frozen=True)
class IdentifyInput:
    data_summary: str
    language_code: str


@dataclass(frozen=True)
class IdentifyOutput:
    relevant_resolutions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ReportMetadata:
    title: str
    author: str
    generated_date: str
    subtitle: str | None = None


@dataclass(frozen=True)
class Introduction:
    objective: str
    overall_results_summary: str
    used_norms_overview: str


@dataclass(frozen=True)
class ReportSection:
    title: str
    content: str
    insights: list[str] = field(default_factory=list)
    relevant_norms_cited: list[str] = field(default_factory=list)
    chart_or_image_suggestion: str | None = None


@dataclass(frozen=True)
class BibliographyItem:
    text: str
    link: str | None = None


@dataclass(frozen=True)
class ComplianceReport:
    """Structured compliance report produced by the analysis and review stages."""

    report_metadata: ReportMetadata
    introduction: Introduction
    final_considerations: str
    analysis_sections: list[ReportSection] = field(default_factory=list)
    table_of_contents: list[str] = field(default_factory=list)
    bibliography: list[BibliographyItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        """Serialize to the camelCase shape the AI stages exchange and the store keeps."""
        metadata: dict[str, object] = {
            "title": self.report_metadata.title,
            "author": self.report_metadata.author,
            "generatedDate": self.report_metadata.generated_date,
        }
        if self.report_metadata.subtitle is not None:
            metadata["subtitle"] = self.report_metadata.subtitle
        return {
            "reportMetadata": metadata,
            "tableOfContents": list(self.table_of_contents),
            "introduction": {
                "objective": self.introduction.objective,
                "overallResultsSummary": self.introduction.overall_results_summary,
                "usedNormsOverview": self.introduction.used_norms_overview,
            },
            "analysisSections": [_section_to_dict(s) for s in self.analysis_sections],
            "finalConsiderations": self.final_considerations,
            "bibliography": [_bibliography_to_dict(b) for b in self.bibliography],
        }


def _section_to_dict(section: ReportSection) -> dict[str, object]:
    data: dict[str, object] = {
        "title": section.title,
        "content": section.content,
        "insights": list(section.insights),
        "relevantNormsCited": list(section.relevant_norms_cited),
    }
    if section.chart_or_image_suggestion is not None:
        data["chartOrImageSuggestion"] = section.chart_or_image_suggestion
    return data


def _bibliography_to_dict(item: BibliographyItem) -> dict[str, object]:
    data: dict[str, object] = {"text": item.text}
    if item.link is not None:
        data["link"] = item.link
    return data


@dataclass(frozen=True)
class AnalyzeInput:
    data_summary: str
    identified_regulations: list[str]
    file_name: str
    language_code: str


@dataclass(frozen=True)
class ReviewInput:
    report: ComplianceReport
    language_code: str
