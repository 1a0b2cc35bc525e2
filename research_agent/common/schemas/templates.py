"""
Report Text Templates

Renders a stored ResearchReportContent and its citations to Markdown for
display. The JSON blob stays the source of truth; this is a view of it.
"""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .research_record import Citation, ResearchReportContent


REPORT_TEMPLATE = """# Research Report: {query}

## Summary
{summary}

Confidence: {confidence}

{sections_block}

## Sources
{sources_block}
"""


def _format_sections(sections: list) -> str:
    """Format report sections with their grounding source ids"""
    if not sections:
        return "_No sections: no sources were retrieved for this query._"

    blocks = []
    for section in sections:
        grounding = ", ".join(dict.fromkeys(section.source_ids))
        blocks.append(f"## {section.heading}\n{section.text}\n\n[{grounding}]")
    return "\n\n".join(blocks)


def _format_sources(citations: list) -> str:
    """Format numbered citation list"""
    if not citations:
        return "- (none)"

    lines = []
    for i, c in enumerate(citations, 1):
        title = c.title or c.source_id or "Untitled"
        line = f"{i}. {title}"
        if c.source_url:
            line += f" <{c.source_url}>"
        if c.source_id:
            line += f" [{c.source_id}]"
        lines.append(line)
    return "\n".join(lines)


def render_report_text(
    content: "ResearchReportContent",
    citations: Optional[List["Citation"]] = None,
) -> str:
    """
    Render a report to Markdown.

    Args:
        content: Parsed report content of a ResearchResult
        citations: Citation rows of the same result, in insertion order

    Returns:
        Markdown text
    """
    return REPORT_TEMPLATE.format(
        query=content.query,
        summary=content.summary,
        confidence=f"{content.confidence:.0%}",
        sections_block=_format_sections(content.sections),
        sources_block=_format_sources(citations or []),
    )
