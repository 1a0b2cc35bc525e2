"""
Research Store

Row store for queries, vault documents and their annotations, results,
citations and feedback.

Rows live in memory and, when a path is given, are written through to a
JSON file after every mutation (loaded again on start). Ids are integers
assigned per table, starting at 1.

The store is the `deps` object of the runner: it provides get_query,
update_status, get_all_vault_documents, get_vault_documents_by_ids,
insert_result and insert_citation.
"""

import json
import logging
import os
import threading
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from ..common.config import StoreConfig
from ..common.schemas import (
    Citation,
    QueryStatus,
    RatingCount,
    ResearchMetrics,
    ResearchQuery,
    ResearchResult,
    UserFeedback,
    DocumentAnnotation,
    VaultDocument,
)
from ..common.schemas.research_record import utcnow

logger = logging.getLogger("research_agent.store")

STORE_FORMAT_VERSION = 1
CORRUPT_SUFFIX = ".corrupt"

_TABLES = {
    "research_queries": ResearchQuery,
    "vault_documents": VaultDocument,
    "research_results": ResearchResult,
    "citations": Citation,
    "user_feedback": UserFeedback,
    "document_annotations": DocumentAnnotation,
}


class StoreError(Exception):
    """Integrity error in the row store."""
    pass


class ResearchStore:
    """
    In-memory row store with optional JSON file persistence.

    Not safe for concurrent writers across processes. Within one process
    every call holds the store lock, so the runner may run on a worker
    thread while other calls are served.
    """

    def __init__(self, store_path: Optional[Path] = None):
        """
        Initialize the store.

        Args:
            store_path: JSON file to persist to (None: memory only)
        """
        self._path = Path(store_path) if store_path else None
        self._rows: Dict[str, Dict[int, object]] = {name: {} for name in _TABLES}
        self._next_ids: Dict[str, int] = {name: 1 for name in _TABLES}
        self._lock = threading.RLock()
        self._load()

    @classmethod
    def from_config(cls, config: StoreConfig) -> "ResearchStore":
        return cls(Path(config.path).expanduser() if config.path else None)

    @property
    def path(self) -> Optional[Path]:
        return self._path

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def _load(self) -> None:
        """Load rows from disk. An unreadable file is moved aside, never overwritten."""
        if self._path is None or not self._path.exists():
            return

        try:
            with open(self._path) as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")

            rows_by_table = {}
            next_ids = {}
            tables = data.get("tables", {})
            saved_next_ids = data.get("next_ids", {})
            for name, model in _TABLES.items():
                rows = {}
                for raw in tables.get(name, []):
                    row = model.model_validate(raw)
                    rows[row.id] = row
                rows_by_table[name] = rows
                next_ids[name] = max(saved_next_ids.get(name, 1), max(rows, default=0) + 1)
        except (json.JSONDecodeError, OSError, ValueError, TypeError, AttributeError) as e:
            backup = self._path.with_name(self._path.name + CORRUPT_SUFFIX)
            try:
                os.replace(self._path, backup)
            except OSError as move_error:
                raise StoreError(
                    f"Store {self._path} is unreadable ({e}) and could not be moved aside: {move_error}"
                ) from e
            logger.warning("Failed to load store %s (%s); moved it to %s, starting empty", self._path, e, backup)
            return

        self._rows = rows_by_table
        self._next_ids = next_ids

    def _save(self) -> None:
        """Write all rows to disk (temp file + rename)"""
        if self._path is None:
            return

        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            data = {
                "format_version": STORE_FORMAT_VERSION,
                "next_ids": self._next_ids,
                "tables": {
                    name: [row.model_dump(mode="json") for row in rows.values()]
                    for name, rows in self._rows.items()
                },
            }
            tmp_path = self._path.with_name(self._path.name + ".tmp")
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)

    def _insert(self, table: str, **fields):
        with self._lock:
            row_id = self._next_ids[table]
            row = _TABLES[table](id=row_id, **fields)
            self._rows[table][row_id] = row
            self._next_ids[table] = row_id + 1
            self._save()
            return row

    def _all(self, table: str) -> list:
        with self._lock:
            return list(self._rows[table].values())

    def _newest_first(self, rows: Iterable) -> list:
        return sorted(rows, key=lambda r: (r.created_at, r.id), reverse=True)

    # ------------------------------------------------------------------ #
    # research_queries
    # ------------------------------------------------------------------ #

    def insert_query(
        self,
        query_text: str,
        status: Union[QueryStatus, str] = QueryStatus.PENDING,
        parent_query_id: Optional[int] = None,
    ) -> ResearchQuery:
        return self._insert(
            "research_queries",
            query_text=query_text,
            status=QueryStatus(status),
            parent_query_id=parent_query_id,
        )

    def get_query(self, query_id: int) -> Optional[ResearchQuery]:
        return self._rows["research_queries"].get(query_id)

    def list_queries(
        self,
        status: Optional[Union[QueryStatus, str]] = None,
        saved: Optional[bool] = None,
        parent_query_id: Optional[int] = None,
        limit: Optional[int] = 50,
    ) -> List[ResearchQuery]:
        """List queries, newest first, with optional filters"""
        queries = self._all("research_queries")
        if status is not None:
            queries = [q for q in queries if q.status == QueryStatus(status)]
        if saved is not None:
            queries = [q for q in queries if q.saved == saved]
        if parent_query_id is not None:
            queries = [q for q in queries if q.parent_query_id == parent_query_id]

        queries = self._newest_first(queries)
        return queries[:limit] if limit is not None else queries

    def list_related_queries(self, query_id: int, limit: int = 50) -> List[ResearchQuery]:
        """Refinements of a query (children by parent_query_id)"""
        return self.list_queries(parent_query_id=query_id, limit=limit)

    def update_status(
        self,
        query_id: int,
        status: Union[QueryStatus, str],
    ) -> Optional[ResearchQuery]:
        """Set status and bump updated_at. No-op (returns None) for unknown ids."""
        with self._lock:
            query = self.get_query(query_id)
            if query is None:
                logger.debug("update_status: query %s not found, ignoring", query_id)
                return None

            query.status = QueryStatus(status)
            query.updated_at = utcnow()
            self._save()
            return query

    def update_saved(self, query_id: int, saved: bool) -> Optional[ResearchQuery]:
        """Mark or unmark a query as saved. Returns None for unknown ids."""
        with self._lock:
            query = self.get_query(query_id)
            if query is None:
                return None

            now = utcnow()
            query.saved_at = now if saved else None
            query.updated_at = now
            self._save()
            return query

    # ------------------------------------------------------------------ #
    # vault_documents
    # ------------------------------------------------------------------ #

    def insert_vault_document(
        self,
        title: str,
        content: Optional[str] = None,
        source_url: Optional[str] = None,
    ) -> VaultDocument:
        return self._insert(
            "vault_documents",
            title=title,
            content=content,
            source_url=source_url,
        )

    def get_vault_document(self, document_id: int) -> Optional[VaultDocument]:
        return self._rows["vault_documents"].get(document_id)

    def list_vault_documents(self, limit: Optional[int] = None) -> List[VaultDocument]:
        docs = self._newest_first(self._all("vault_documents"))
        return docs[:limit] if limit is not None else docs

    def get_all_vault_documents(self) -> List[VaultDocument]:
        """Full vault listing used for retrieval"""
        return self.list_vault_documents()

    def get_vault_documents_by_ids(self, document_ids: Iterable[int]) -> List[VaultDocument]:
        """Documents for the given ids, in request order; unknown ids are skipped"""
        seen = set()
        docs = []
        with self._lock:
            table = self._rows["vault_documents"]
            for doc_id in document_ids:
                if doc_id in table and doc_id not in seen:
                    seen.add(doc_id)
                    docs.append(table[doc_id])
        return docs

    def search_vault_documents(self, q: str, limit: int = 50) -> List[VaultDocument]:
        """Case-insensitive substring search over title and content"""
        needle = q.strip().lower()
        if not needle:
            return self.list_vault_documents(limit)

        matches = [
            doc for doc in self._all("vault_documents")
            if needle in doc.title.lower() or needle in (doc.content or "").lower()
        ]
        return self._newest_first(matches)[:limit]

    def delete_vault_document(self, document_id: int) -> bool:
        """Delete a document and its annotations. Citations are kept."""
        with self._lock:
            if self._rows["vault_documents"].pop(document_id, None) is None:
                return False

            annotations = self._rows["document_annotations"]
            for annotation_id in [a.id for a in annotations.values() if a.vault_document_id == document_id]:
                del annotations[annotation_id]
            self._save()
            return True

    # ------------------------------------------------------------------ #
    # document_annotations
    # ------------------------------------------------------------------ #

    def insert_document_annotation(self, vault_document_id: int, note: str) -> DocumentAnnotation:
        """
        Attach a note to a vault document.

        Raises:
            ValueError: note is empty after trimming
            StoreError: the document does not exist
        """
        note = (note or "").strip()
        if not note:
            raise ValueError("Annotation note cannot be empty")
        if self.get_vault_document(vault_document_id) is None:
            raise StoreError(f"Cannot insert annotation: document {vault_document_id} does not exist")

        return self._insert(
            "document_annotations",
            vault_document_id=vault_document_id,
            note=note,
        )

    def list_document_annotations(self, vault_document_id: int) -> List[DocumentAnnotation]:
        """Annotations of a document, newest first"""
        return self._newest_first(
            a for a in self._all("document_annotations")
            if a.vault_document_id == vault_document_id
        )

    def delete_document_annotation(self, annotation_id: int) -> bool:
        with self._lock:
            if self._rows["document_annotations"].pop(annotation_id, None) is None:
                return False
            self._save()
            return True

    # ------------------------------------------------------------------ #
    # research_results
    # ------------------------------------------------------------------ #

    def insert_result(
        self,
        research_query_id: int,
        content: Optional[str] = None,
        summary: Optional[str] = None,
        confidence: Optional[float] = None,
        duration_ms: Optional[int] = None,
        reasoning_snapshot: Optional[str] = None,
    ) -> ResearchResult:
        if self.get_query(research_query_id) is None:
            raise StoreError(f"Cannot insert result: query {research_query_id} does not exist")

        return self._insert(
            "research_results",
            research_query_id=research_query_id,
            content=content,
            summary=summary,
            confidence=confidence,
            duration_ms=duration_ms,
            reasoning_snapshot=reasoning_snapshot,
        )

    def get_result(self, result_id: int) -> Optional[ResearchResult]:
        return self._rows["research_results"].get(result_id)

    def list_results_by_query(self, query_id: int) -> List[ResearchResult]:
        """All results of a query, newest first"""
        return self._newest_first(
            r for r in self._all("research_results")
            if r.research_query_id == query_id
        )

    def get_latest_result(self, query_id: int) -> Optional[ResearchResult]:
        """The authoritative (most recent) result of a query"""
        results = self.list_results_by_query(query_id)
        return results[0] if results else None

    # ------------------------------------------------------------------ #
    # citations
    # ------------------------------------------------------------------ #

    def insert_citation(
        self,
        research_result_id: int,
        source_url: Optional[str] = None,
        title: Optional[str] = None,
        snippet: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> Citation:
        if self.get_result(research_result_id) is None:
            raise StoreError(f"Cannot insert citation: result {research_result_id} does not exist")

        return self._insert(
            "citations",
            research_result_id=research_result_id,
            source_url=source_url,
            title=title,
            snippet=snippet,
            source_id=source_id,
        )

    def list_citations_by_result(self, result_id: int) -> List[Citation]:
        """Citations of a result, in insertion order"""
        return [
            c for c in self._all("citations")
            if c.research_result_id == result_id
        ]

    # ------------------------------------------------------------------ #
    # user_feedback
    # ------------------------------------------------------------------ #

    def insert_feedback(
        self,
        research_result_id: Optional[int] = None,
        research_query_id: Optional[int] = None,
        rating: Optional[int] = None,
        feedback_text: Optional[str] = None,
    ) -> UserFeedback:
        """
        Append a feedback row.

        Raises:
            pydantic.ValidationError: no reference given, or rating outside 1-5
            StoreError: a given reference does not exist
        """
        if research_result_id is not None and self.get_result(research_result_id) is None:
            raise StoreError(f"Cannot insert feedback: result {research_result_id} does not exist")
        if research_query_id is not None and self.get_query(research_query_id) is None:
            raise StoreError(f"Cannot insert feedback: query {research_query_id} does not exist")

        return self._insert(
            "user_feedback",
            research_result_id=research_result_id,
            research_query_id=research_query_id,
            rating=rating,
            feedback_text=feedback_text,
        )

    def list_feedback_by_result(self, result_id: int) -> List[UserFeedback]:
        return self._newest_first(
            f for f in self._all("user_feedback")
            if f.research_result_id == result_id
        )

    def list_feedback_by_query(self, query_id: int) -> List[UserFeedback]:
        return self._newest_first(
            f for f in self._all("user_feedback")
            if f.research_query_id == query_id
        )

    # ------------------------------------------------------------------ #
    # Metrics
    # ------------------------------------------------------------------ #

    def get_metrics(self) -> ResearchMetrics:
        """Run and feedback aggregates for the dashboard"""
        statuses = Counter(q.status for q in self._all("research_queries"))
        results = self._all("research_results")
        feedback = self._all("user_feedback")

        confidences = [r.confidence for r in results if r.confidence is not None]
        durations = [r.duration_ms for r in results if r.duration_ms is not None]
        ratings = [f.rating for f in feedback if f.rating is not None]
        rating_counts = Counter(ratings)

        return ResearchMetrics(
            total_runs=sum(n for status, n in statuses.items() if status != QueryStatus.PENDING),
            completed_runs=statuses.get(QueryStatus.COMPLETED, 0),
            failed_runs=statuses.get(QueryStatus.FAILED, 0),
            avg_confidence=sum(confidences) / len(confidences) if confidences else None,
            avg_duration_ms=sum(durations) / len(durations) if durations else None,
            total_feedback_count=len(feedback),
            avg_rating=sum(ratings) / len(ratings) if ratings else None,
            rating_distribution=[
                RatingCount(rating=rating, count=count)
                for rating, count in sorted(rating_counts.items())
            ],
        )
