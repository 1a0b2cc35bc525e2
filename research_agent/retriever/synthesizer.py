"""
Synthesizer

Turns ranked chunks into a structured, citation-grounded report.

Key principle: every section is grounded in the chunks it was built from.
- One section per source, in order of the source's first appearance
- Confidence depends only on the chunk set (reproducible)
- Citations only for sources referenced by sections
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .sources import RetrievedChunk

logger = logging.getLogger("research_agent.retriever.synthesizer")

MAX_SUMMARY_QUERY_CHARS = 100
MAX_SECTION_CHARS = 3000
MAX_CITATION_SNIPPET_CHARS = 1000

# Confidence weights
CONFIDENCE_BASE = 0.3
SOURCE_WEIGHT = 0.4
RELEVANCE_WEIGHT = 0.3
SOURCE_SATURATION = 5


@dataclass
class SynthesisSection:
    """One section of the report"""
    heading: str
    text: str
    source_ids: List[str] = field(default_factory=list)  # one entry per chunk


@dataclass
class SynthesisOutput:
    """Synthesized report before persistence"""
    summary: str
    sections: List[SynthesisSection]
    confidence: float  # 0.0 to 1.0

    @property
    def used_source_ids(self) -> List[str]:
        """All section source ids, flattened in section order"""
        return [sid for section in self.sections for sid in section.source_ids]


@dataclass
class CitationRecord:
    """A deduplicated source ready to be stored as a Citation"""
    source_id: str
    title: str
    url: Optional[str]
    snippet: str


def compute_confidence(chunks: List[RetrievedChunk]) -> float:
    """
    Confidence in [0, 1] from corroboration breadth and relevance.

    confidence = 0.3
               + min(1, distinct_sources / 5) * 0.4
               + mean(chunk.score) * 0.3

    Empty input gives 0. Once any evidence exists the floor is 0.3.
    """
    if not chunks:
        return 0.0

    distinct_sources = len({c.source_id for c in chunks})
    source_factor = min(1.0, distinct_sources / SOURCE_SATURATION) * SOURCE_WEIGHT
    avg_score = sum(c.score for c in chunks) / len(chunks)
    relevance_factor = avg_score * RELEVANCE_WEIGHT

    return min(1.0, max(0.0, CONFIDENCE_BASE + source_factor + relevance_factor))


def extract_citations(
    chunks: List[RetrievedChunk],
    used_source_ids: Iterable[str],
) -> List[CitationRecord]:
    """
    One citation per distinct source id that is both used and retrieved.

    When several chunks share a source id, the last one in iteration order
    wins. Used ids with no matching chunk are ignored.
    """
    used = set(used_source_ids)
    by_id: Dict[str, RetrievedChunk] = {}
    for chunk in chunks:
        if chunk.source_id in used:
            by_id[chunk.source_id] = chunk

    return [
        CitationRecord(
            source_id=chunk.source_id,
            title=chunk.title,
            url=chunk.url,
            snippet=chunk.snippet[:MAX_CITATION_SNIPPET_CHARS],
        )
        for chunk in by_id.values()
    ]


class Synthesizer:
    """
    Builds summary, sections and confidence from retrieved chunks.

    Template-based and deterministic; no LLM is involved.
    """

    def synthesize(self, query: str, chunks: List[RetrievedChunk]) -> SynthesisOutput:
        """
        Synthesize a report from retrieved chunks.

        Args:
            query: Original query text
            chunks: Chunks from the Searcher, best first

        Returns:
            SynthesisOutput (empty sections and confidence 0 for no chunks)
        """
        output = SynthesisOutput(
            summary=self._build_summary(query, chunks),
            sections=self._build_sections(chunks),
            confidence=compute_confidence(chunks),
        )
        logger.debug(
            "Synthesized %d sections from %d chunks (confidence %.2f)",
            len(output.sections), len(chunks), output.confidence,
        )
        return output

    def _build_summary(self, query: str, chunks: List[RetrievedChunk]) -> str:
        source_count = len({c.source_id for c in chunks})
        shown = query[:MAX_SUMMARY_QUERY_CHARS]
        ellipsis = "..." if len(query) > MAX_SUMMARY_QUERY_CHARS else ""
        return (
            f'Summary for: "{shown}{ellipsis}". Synthesized from {len(chunks)} '
            f"chunk(s) across {source_count} source(s)."
        )

    def _build_sections(self, chunks: List[RetrievedChunk]) -> List[SynthesisSection]:
        # dicts keep insertion order: first appearance decides section order
        by_source: Dict[str, List[RetrievedChunk]] = {}
        for chunk in chunks:
            by_source.setdefault(chunk.source_id, []).append(chunk)

        sections = []
        for position, group in enumerate(by_source.values(), 1):
            text = "\n\n".join(c.snippet for c in group)[:MAX_SECTION_CHARS]
            sections.append(SynthesisSection(
                heading=group[0].title or f"Source {position}",
                text=text,
                source_ids=[c.source_id for c in group],
            ))
        return sections


def synthesize(query: str, chunks: List[RetrievedChunk]) -> SynthesisOutput:
    """Synthesize with the default Synthesizer"""
    return Synthesizer().synthesize(query, chunks)
