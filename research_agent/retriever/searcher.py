"""
Searcher

Combines vault and public retrieval into one ranked chunk list.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..common.config import (
    DEFAULT_MAX_TOTAL,
    DEFAULT_PUBLIC_LIMIT,
    DEFAULT_VAULT_LIMIT,
    RetrievalConfig,
)
from ..common.schemas import VaultDocument
from .sources import ChunkSource, ExternalLiteratureRetriever, RetrievedChunk, VaultRetriever

logger = logging.getLogger("research_agent.retriever.searcher")


@dataclass
class RetrievalOptions:
    """Limits for one combined retrieval"""
    vault_limit: int = DEFAULT_VAULT_LIMIT
    public_limit: int = DEFAULT_PUBLIC_LIMIT
    max_total: int = DEFAULT_MAX_TOTAL

    @classmethod
    def from_config(cls, config: RetrievalConfig) -> "RetrievalOptions":
        return cls(
            vault_limit=config.vault_limit,
            public_limit=config.public_limit,
            max_total=config.max_total,
        )


class Searcher:
    """
    Runs the vault source and the public source for a query and merges them.

    Merged chunks are sorted by score, descending. The sort is stable, so
    equal scores keep vault-then-public order. The list is then capped at
    `max_total`.
    """

    def __init__(
        self,
        vault_source: ChunkSource,
        public_source: Optional[ChunkSource] = None,
    ):
        """
        Initialize searcher.

        Args:
            vault_source: Source over the private vault
            public_source: Source over public literature (default: stub)
        """
        self._vault = vault_source
        self._public = public_source or ExternalLiteratureRetriever()

    def search(
        self,
        query: str,
        options: Optional[RetrievalOptions] = None,
    ) -> List[RetrievedChunk]:
        options = options or RetrievalOptions()

        from_vault = self._vault.retrieve(query, options.vault_limit)
        from_public = self._public.retrieve(query, options.public_limit)

        combined = sorted(from_vault + from_public, key=lambda c: c.score, reverse=True)
        capped = combined[:max(options.max_total, 0)]

        logger.info(
            "Retrieved %d chunks (vault=%d, public=%d, kept=%d)",
            len(combined), len(from_vault), len(from_public), len(capped),
        )
        return capped


def retrieve(
    query: str,
    documents: Sequence[VaultDocument],
    options: Optional[RetrievalOptions] = None,
    public_source: Optional[ChunkSource] = None,
) -> List[RetrievedChunk]:
    """
    Combined retrieval over the given vault documents and public sources.

    Args:
        query: Query text
        documents: Vault documents to rank
        options: vault_limit / public_limit / max_total
        public_source: Alternative public ChunkSource

    Returns:
        At most `max_total` chunks, sorted by score (non-increasing)
    """
    return Searcher(VaultRetriever(documents), public_source).search(query, options)
