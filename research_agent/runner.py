"""
Research Runner

Runs one research pass for a stored query:
in_progress → retrieve (vault + public) → synthesize → cite → save → completed.

Any failure after the query is marked in_progress marks it failed and
re-raises the original exception. Nothing already written is rolled back:
if citation inserts fail after the result row is stored, that row stays.

The store is passed in explicitly (`deps`); it must provide get_query,
update_status, get_all_vault_documents, get_vault_documents_by_ids,
insert_result and insert_citation (see ResearchStore).
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from .common.config import RetrievalConfig
from .common.schemas import (
    QueryStatus,
    ReasoningSnapshot,
    ReportSection,
    ResearchReportContent,
)
from .retriever.searcher import RetrievalOptions, Searcher
from .retriever.sources import ChunkSource, VaultRetriever
from .retriever.synthesizer import Synthesizer, extract_citations

logger = logging.getLogger("research_agent.runner")

REASONING_STEPS = ["retrieval", "synthesis", "cite"]
MAX_SNAPSHOT_SOURCE_IDS = 50
MAX_RESULT_SUMMARY_CHARS = 500


class QueryNotFoundError(LookupError):
    """The query id given to a run does not exist."""

    def __init__(self, query_id: int):
        super().__init__(f"Query not found: {query_id}")
        self.query_id = query_id


@dataclass
class RunResearchOptions:
    """Per-run options"""
    # Restrict retrieval to these vault documents (workspace scoping)
    vault_doc_ids: Optional[List[int]] = None


@dataclass
class RunResearchResult:
    """Outcome of a successful run"""
    research_result_id: int
    summary: str
    confidence: float
    citation_count: int


class ResearchRunner:
    """
    Orchestrates a research run against a row store.

    Retrieval and synthesis are pure, in-memory steps; only the store calls
    touch shared state. Concurrent runs of the same query are not guarded:
    each successful run adds its own result.
    """

    def __init__(
        self,
        deps,
        retrieval: Optional[RetrievalConfig] = None,
        public_source: Optional[ChunkSource] = None,
        synthesizer: Optional[Synthesizer] = None,
    ):
        """
        Initialize runner.

        Args:
            deps: Row store (see module docstring for required methods)
            retrieval: Retrieval limits (default: 20 vault / 10 public / 25 total)
            public_source: Public ChunkSource (default: literature stub)
            synthesizer: Synthesizer instance
        """
        self._deps = deps
        self._retrieval = RetrievalOptions.from_config(retrieval or RetrievalConfig())
        self._public_source = public_source
        self._synthesizer = synthesizer or Synthesizer()

    def run(
        self,
        query_id: int,
        options: Optional[RunResearchOptions] = None,
    ) -> RunResearchResult:
        """
        Run research for a stored query.

        Raises:
            QueryNotFoundError: no query with this id
            Exception: any store failure, re-raised after marking the query failed
        """
        deps = self._deps

        query = deps.get_query(query_id)
        if query is None:
            self._mark_failed(query_id)
            raise QueryNotFoundError(query_id)

        deps.update_status(query_id, QueryStatus.IN_PROGRESS)
        logger.info("Research run started for query %s", query_id)
        start = time.monotonic()

        try:
            documents = self._resolve_documents(options)

            searcher = Searcher(VaultRetriever(documents), self._public_source)
            chunks = searcher.search(query.query_text, self._retrieval)

            synthesis = self._synthesizer.synthesize(query.query_text, chunks)
            used_source_ids = synthesis.used_source_ids
            citations = extract_citations(chunks, used_source_ids)

            content = ResearchReportContent(
                summary=synthesis.summary,
                sections=[
                    ReportSection(heading=s.heading, text=s.text, source_ids=s.source_ids)
                    for s in synthesis.sections
                ],
                confidence=synthesis.confidence,
                query=query.query_text,
            )

            duration_ms = int((time.monotonic() - start) * 1000)
            snapshot = ReasoningSnapshot(
                steps=list(REASONING_STEPS),
                chunk_count=len(chunks),
                section_count=len(synthesis.sections),
                source_count=len(citations),
                vault_sources=len({c.source_id for c in chunks if c.is_vault}),
                public_sources=len({c.source_id for c in chunks if c.is_public}),
                source_ids=list(dict.fromkeys(used_source_ids))[:MAX_SNAPSHOT_SOURCE_IDS],
            )

            result = deps.insert_result(
                research_query_id=query_id,
                content=content.model_dump_json(),
                summary=synthesis.summary[:MAX_RESULT_SUMMARY_CHARS],
                confidence=synthesis.confidence,
                duration_ms=duration_ms,
                reasoning_snapshot=snapshot.model_dump_json(),
            )

            for citation in citations:
                deps.insert_citation(
                    research_result_id=result.id,
                    source_url=citation.url,
                    title=citation.title,
                    snippet=citation.snippet,
                    source_id=citation.source_id,
                )

            deps.update_status(query_id, QueryStatus.COMPLETED)
        except Exception:
            logger.error("Research run failed for query %s", query_id, exc_info=True)
            self._mark_failed(query_id)
            raise

        logger.info(
            "Research run completed for query %s: result %s, %d citations, confidence %.2f (%d ms)",
            query_id, result.id, len(citations), synthesis.confidence, duration_ms,
        )
        return RunResearchResult(
            research_result_id=result.id,
            summary=synthesis.summary,
            confidence=synthesis.confidence,
            citation_count=len(citations),
        )

    def _resolve_documents(self, options: Optional[RunResearchOptions]):
        if options and options.vault_doc_ids:
            return self._deps.get_vault_documents_by_ids(options.vault_doc_ids)
        return self._deps.get_all_vault_documents()

    def _mark_failed(self, query_id: int) -> None:
        """Best-effort transition to failed; never masks the run's own error."""
        try:
            self._deps.update_status(query_id, QueryStatus.FAILED)
        except Exception as e:
            logger.warning("Could not mark query %s as failed: %s", query_id, e)


def run_research(
    query_id: int,
    deps,
    options: Optional[RunResearchOptions] = None,
    retrieval: Optional[RetrievalConfig] = None,
    public_source: Optional[ChunkSource] = None,
) -> RunResearchResult:
    """
    Run research for `query_id` against the store `deps`.

    See ResearchRunner.run.
    """
    runner = ResearchRunner(deps, retrieval=retrieval, public_source=public_source)
    return runner.run(query_id, options)
