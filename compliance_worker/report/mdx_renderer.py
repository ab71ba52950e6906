"""Renders a structured compliance report as an MDX document."""

from compliance_worker.stages.models import ComplianceReport

MDX_CONTENT_TYPE = "text/markdown"

_UNKNOWN_FILE_NAME = "File name not available"


def sanitize(text: str | None) -> str:
    """Escape angle brackets so report text cannot inject JSX."""
    if not text:
        return ""
    return text.replace("<", "&lt;").replace(">", "&gt;")


def _quoted(value: str) -> str:
    """Double-quoted YAML scalar."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def report_blob_ref(user_id: str, analysis_id: str) -> str:
    return f"reports/{user_id}/{analysis_id}/report.mdx"


def render_mdx(report: ComplianceReport, file_name: str | None) -> str:
    """Render front matter followed by the report body in markdown."""
    name = sanitize(file_name or _UNKNOWN_FILE_NAME)
    meta = report.report_metadata
    title = sanitize(meta.title)
    subtitle = sanitize(meta.subtitle) or f"Analysis of {name}"
    author = sanitize(meta.author)
    generated = sanitize(meta.generated_date)

    lines = [
        "---",
        f"title: {_quoted(title)}",
        f"subtitle: {_quoted(subtitle)}",
        f"author: {_quoted(author)}",
        f"generatedDate: {_quoted(generated)}",
        f"fileName: {_quoted(name)}",
        "---",
        "",
        f"# {title}",
        "",
        f"**Subtitle:** {subtitle}",
        f"**Author:** {author}",
        f"**Generated:** {generated}",
        f"**Analyzed file:** {name}",
    ]

    if report.table_of_contents:
        lines += ["", "## Table of Contents"]
        lines += [f"- {sanitize(item)}" for item in report.table_of_contents]

    intro = report.introduction
    lines += [
        "",
        "## Introduction",
        f"**Objective:** {sanitize(intro.objective)}",
        "",
        f"**Results summary:** {sanitize(intro.overall_results_summary)}",
        "",
        f"**Regulations overview:** {sanitize(intro.used_norms_overview)}",
    ]

    for section in report.analysis_sections:
        lines += ["", f"## {sanitize(section.title) or 'Untitled section'}", sanitize(section.content)]
        if section.insights:
            lines += ["", "**Key insights:**"]
            lines += [f"- {sanitize(insight)}" for insight in section.insights]
        if section.relevant_norms_cited:
            lines += ["", "**Regulations cited in this section:**"]
            lines += [f"- {sanitize(norm)}" for norm in section.relevant_norms_cited]
        if section.chart_or_image_suggestion:
            lines += [
                "",
                "<div className=\"chart-suggestion\">",
                f"  <strong>Suggested chart:</strong> {sanitize(section.chart_or_image_suggestion)}",
                "</div>",
            ]

    if report.final_considerations:
        lines += ["", "## Final Considerations", sanitize(report.final_considerations)]

    if report.bibliography:
        lines += ["", "## References"]
        for item in report.bibliography:
            entry = f"- {sanitize(item.text)}"
            if item.link:
                entry += f" ([link]({sanitize(item.link)}))"
            lines.append(entry)

    return "\n".join(lines) + "\n"
