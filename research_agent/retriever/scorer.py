"""
Chunk Scorer

Lexical relevance between a query and a document body.

Score = fraction of distinct query tokens that occur (as substrings) in the
lowercased document text. This is a keyword-overlap heuristic, not semantic
search: synonyms and paraphrases score 0, and a short token such as "ai"
also matches inside "said". Swap in an embedding-backed ChunkSource for
real semantic retrieval.
"""

import re
from typing import List

# Runs of letters (any script); digits and underscores are separators
_LETTER_RUN = re.compile(r"[^\W\d_]+")
_WHITESPACE = re.compile(r"\s+")


def tokenize(text: str) -> List[str]:
    """
    Split text into lowercase letter-only tokens, dropping 1-char tokens.

    Order of first appearance is preserved; duplicates are kept.
    """
    if not text:
        return []
    normalized = _WHITESPACE.sub(" ", text.lower())
    return [t for t in _LETTER_RUN.findall(normalized) if len(t) > 1]


def score_text(query_text: str, document_text: str) -> float:
    """
    Relevance of a document to a query, in [0, 1].

    Args:
        query_text: Natural-language query
        document_text: Text to search in (e.g. title + content)

    Returns:
        matched distinct query tokens / distinct query tokens (0.0 if the
        query has no tokens)
    """
    query_tokens = set(tokenize(query_text))
    if not query_tokens:
        return 0.0

    haystack = (document_text or "").lower()
    hits = sum(1 for token in query_tokens if token in haystack)
    return hits / len(query_tokens)
