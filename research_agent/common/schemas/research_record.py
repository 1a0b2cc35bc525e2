"""
Research Record Schema

Persisted rows of the research pipeline and the structured JSON blobs stored
alongside them.

Core principle: a result is always traceable back through its citations to
the chunks retrieved for that run.
"""

from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator
from enum import Enum


REPORT_SCHEMA_VERSION = "1.0"
SNAPSHOT_SCHEMA_VERSION = "1.0"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enums
# ============================================================================

class QueryStatus(str, Enum):
    """Lifecycle of a research query"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class SourceType(str, Enum):
    """Where a retrieved chunk came from"""
    VAULT = "vault"
    PUBLIC = "public"


# ============================================================================
# Rows
# ============================================================================

class ResearchQuery(BaseModel):
    """A submitted research question"""
    id: int
    query_text: str
    status: QueryStatus = Field(default=QueryStatus.PENDING)
    parent_query_id: Optional[int] = Field(default=None, description="Query this one refines")
    saved_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def saved(self) -> bool:
        return self.saved_at is not None


class VaultDocument(BaseModel):
    """A document in the private vault"""
    id: int
    title: str
    content: Optional[str] = None
    source_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ResearchResult(BaseModel):
    """
    Output of one successful run. Immutable once written.

    `content` holds a serialized ResearchReportContent and
    `reasoning_snapshot` a serialized ReasoningSnapshot.
    """
    id: int
    research_query_id: int
    content: Optional[str] = None
    summary: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    duration_ms: Optional[int] = Field(default=None, ge=0)
    reasoning_snapshot: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Citation(BaseModel):
    """One source actually used by a result"""
    id: int
    research_result_id: int
    source_url: Optional[str] = None
    title: Optional[str] = None
    snippet: Optional[str] = None
    source_id: Optional[str] = Field(default=None, description="vault:<id> or public:<slug>")
    created_at: datetime = Field(default_factory=utcnow)


class UserFeedback(BaseModel):
    """
    Append-only rating/comment on a result and/or a query.

    At least one of research_result_id / research_query_id must be set.
    """
    id: int
    research_result_id: Optional[int] = None
    research_query_id: Optional[int] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    feedback_text: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _require_reference(self) -> "UserFeedback":
        if self.research_result_id is None and self.research_query_id is None:
            raise ValueError("Either research_result_id or research_query_id must be set")
        return self


class DocumentAnnotation(BaseModel):
    """A free-text note attached to a vault document"""
    id: int
    vault_document_id: int
    note: str = Field(min_length=1)
    created_at: datetime = Field(default_factory=utcnow)


# ============================================================================
# Stored blobs
# ============================================================================

class ReportSection(BaseModel):
    heading: str
    text: str
    source_ids: List[str] = Field(default_factory=list)


class ResearchReportContent(BaseModel):
    """Structured report stored in ResearchResult.content"""
    schema_version: str = Field(default=REPORT_SCHEMA_VERSION)
    summary: str
    sections: List[ReportSection] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    query: str


class ReasoningSnapshot(BaseModel):
    """Diagnostic trace of a run, for transparency display only"""
    schema_version: str = Field(default=SNAPSHOT_SCHEMA_VERSION)
    steps: List[str] = Field(default_factory=list)
    chunk_count: int = 0
    section_count: int = 0
    source_count: int = 0
    vault_sources: int = 0
    public_sources: int = 0
    source_ids: List[str] = Field(default_factory=list)


class RatingCount(BaseModel):
    rating: int
    count: int


class ResearchMetrics(BaseModel):
    """Aggregate view of runs and feedback for the dashboard"""
    total_runs: int = 0
    completed_runs: int = 0
    failed_runs: int = 0
    avg_confidence: Optional[float] = None
    avg_duration_ms: Optional[float] = None
    total_feedback_count: int = 0
    avg_rating: Optional[float] = None
    rating_distribution: List[RatingCount] = Field(default_factory=list)


def load_report_content(content: str) -> ResearchReportContent:
    """Parse a stored report blob back into its structured form"""
    return ResearchReportContent.model_validate_json(content)


def load_reasoning_snapshot(snapshot: str) -> ReasoningSnapshot:
    """Parse a stored reasoning snapshot blob"""
    return ReasoningSnapshot.model_validate_json(snapshot)
