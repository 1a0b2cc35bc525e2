"""
Retriever - Research Retrieval and Synthesis

Finds supporting text for a research question and synthesizes a grounded
report from it.

Key Components:
- scorer: Keyword-overlap relevance between a query and a document
- VaultRetriever / ExternalLiteratureRetriever: ChunkSource implementations
- Searcher: Merges and ranks chunks from both sources
- Synthesizer: Sections, summary and confidence from chunks

Pipeline:
1. Score vault documents against the query, keep the top N
2. Fetch public literature chunks
3. Merge, sort by score, cap
4. Group by source into sections; compute confidence
5. Extract one citation per source used
"""

from .scorer import tokenize, score_text
from .sources import (
    RetrievedChunk,
    ChunkSource,
    VaultRetriever,
    ExternalLiteratureRetriever,
    retrieve_from_vault,
    retrieve_from_public_sources,
)
from .searcher import Searcher, RetrievalOptions, retrieve
from .synthesizer import (
    Synthesizer,
    SynthesisSection,
    SynthesisOutput,
    CitationRecord,
    compute_confidence,
    extract_citations,
    synthesize,
)

__all__ = [
    "tokenize",
    "score_text",
    "RetrievedChunk",
    "ChunkSource",
    "VaultRetriever",
    "ExternalLiteratureRetriever",
    "retrieve_from_vault",
    "retrieve_from_public_sources",
    "Searcher",
    "RetrievalOptions",
    "retrieve",
    "Synthesizer",
    "SynthesisSection",
    "SynthesisOutput",
    "CitationRecord",
    "compute_confidence",
    "extract_citations",
    "synthesize",
]
