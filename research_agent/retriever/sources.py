"""
Chunk Sources

Provenance-tagged retrieval from the private vault and from public
literature.

Every source implements the same capability, ``retrieve(query, limit)``,
so the public stub can be replaced by a real literature API (or the vault
scorer by an embedding index) without touching the combiner or the
synthesizer.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..common.config import DEFAULT_PUBLIC_LIMIT, DEFAULT_VAULT_LIMIT
from ..common.schemas import SourceType, VaultDocument
from .scorer import score_text

logger = logging.getLogger("research_agent.retriever.sources")

MAX_VAULT_SNIPPET_CHARS = 2000
MAX_PUBLIC_QUERY_ECHO_CHARS = 80


@dataclass
class RetrievedChunk:
    """A scored text snippet with its provenance. Never persisted directly."""
    source_type: SourceType
    source_id: str  # "vault:<id>" or "public:<slug>", unique within a run
    title: str
    url: Optional[str]
    snippet: str
    score: float  # 0.0 to 1.0

    @property
    def is_vault(self) -> bool:
        return self.source_type == SourceType.VAULT

    @property
    def is_public(self) -> bool:
        return self.source_type == SourceType.PUBLIC


class ChunkSource(ABC):
    """Anything that turns a query into scored chunks"""

    source_type: SourceType

    @abstractmethod
    def retrieve(self, query: str, limit: int) -> List[RetrievedChunk]:
        """
        Return at most `limit` chunks for the query, most relevant first.
        """
        pass


class VaultRetriever(ChunkSource):
    """
    Ranks a fixed set of vault documents by keyword overlap.

    One chunk per document; the snippet is the document content (or its
    title when there is no content), truncated.
    """

    source_type = SourceType.VAULT

    def __init__(self, documents: Sequence[VaultDocument]):
        self._documents = list(documents)

    def retrieve(self, query: str, limit: int = DEFAULT_VAULT_LIMIT) -> List[RetrievedChunk]:
        if not self._documents:
            return []

        scored = [
            (doc, score_text(query, " ".join([doc.title, doc.content or ""])))
            for doc in self._documents
        ]
        # sorted() is stable: equal scores keep store order
        scored = sorted(scored, key=lambda pair: pair[1], reverse=True)

        chunks = []
        for doc, score in scored[:max(limit, 0)]:
            body = (doc.content or doc.title).strip()
            snippet = body[:MAX_VAULT_SNIPPET_CHARS] or doc.title
            chunks.append(RetrievedChunk(
                source_type=SourceType.VAULT,
                source_id=f"vault:{doc.id}",
                title=doc.title,
                url=doc.source_url,
                snippet=snippet,
                score=score,
            ))

        logger.debug("Vault retrieval: %d/%d documents kept", len(chunks), len(self._documents))
        return chunks


class ExternalLiteratureRetriever(ChunkSource):
    """
    Placeholder for a public literature search API.

    Returns two fixed chunks that echo the query, with descending fixed
    scores. A real implementation keeps the same contract: query in,
    scored/titled/snippeted public chunks out.
    """

    source_type = SourceType.PUBLIC

    def retrieve(self, query: str, limit: int = DEFAULT_PUBLIC_LIMIT) -> List[RetrievedChunk]:
        echo = query[:MAX_PUBLIC_QUERY_ECHO_CHARS].strip()
        placeholders = [
            RetrievedChunk(
                source_type=SourceType.PUBLIC,
                source_id="public:mock-1",
                title=f"Literature overview: {echo}",
                url="https://example.com/source1",
                snippet=(
                    f'Relevant discussion related to "{echo}". This is a placeholder '
                    "from the public retrieval layer. Multiple studies suggest further "
                    "investigation."
                ),
                score=0.85,
            ),
            RetrievedChunk(
                source_type=SourceType.PUBLIC,
                source_id="public:mock-2",
                title="Related findings",
                url="https://example.com/source2",
                snippet=(
                    "Additional context for the query. Placeholder snippet for a "
                    "literature search integration."
                ),
                score=0.70,
            ),
        ]
        return placeholders[:max(limit, 0)]


def retrieve_from_vault(
    query: str,
    documents: Sequence[VaultDocument],
    limit: int = DEFAULT_VAULT_LIMIT,
) -> List[RetrievedChunk]:
    """Top `limit` vault documents as chunks, best first."""
    return VaultRetriever(documents).retrieve(query, limit)


def retrieve_from_public_sources(
    query: str,
    limit: int = DEFAULT_PUBLIC_LIMIT,
) -> List[RetrievedChunk]:
    """Chunks from the public literature stub."""
    return ExternalLiteratureRetriever().retrieve(query, limit)
