"""
Research Record Schemas

Persisted rows, stored report/snapshot blobs and their Markdown rendering.
"""

from .research_record import (
    QueryStatus,
    SourceType,
    ResearchQuery,
    VaultDocument,
    ResearchResult,
    Citation,
    UserFeedback,
    DocumentAnnotation,
    ReportSection,
    ResearchReportContent,
    ReasoningSnapshot,
    RatingCount,
    ResearchMetrics,
    REPORT_SCHEMA_VERSION,
    SNAPSHOT_SCHEMA_VERSION,
    load_report_content,
    load_reasoning_snapshot,
)
from .templates import render_report_text, REPORT_TEMPLATE

__all__ = [
    "QueryStatus",
    "SourceType",
    "ResearchQuery",
    "VaultDocument",
    "ResearchResult",
    "Citation",
    "UserFeedback",
    "DocumentAnnotation",
    "ReportSection",
    "ResearchReportContent",
    "ReasoningSnapshot",
    "RatingCount",
    "ResearchMetrics",
    "REPORT_SCHEMA_VERSION",
    "SNAPSHOT_SCHEMA_VERSION",
    "load_report_content",
    "load_reasoning_snapshot",
    "render_report_text",
    "REPORT_TEMPLATE",
]
