#!/usr/bin/env python3
"""
Store Seeding Script

Seeds a research store with sample vault documents (each with a note) and
queries so the MCP tools have something to show. With --run, research is
run for every pending query and a sample rating is recorded on each result.

Usage:
    python scripts/seed_store.py [--store-path PATH] [--run]
"""

import sys
import argparse
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


VAULT_DOCUMENTS = [
    {
        "title": "Internal research guidelines 2024",
        "content": (
            "All external claims must be backed by at least one primary source. "
            "Use the vault for sensitive or proprietary context. Confidence scores "
            "should be shown for every synthesis."
        ),
        "source_url": None,
    },
    {
        "title": "RAG architecture notes",
        "content": (
            "Chunk size 512 tokens, overlap 64. Retrieval returns the top 10 "
            "passages; a re-ranker is optional. Retrieval-augmented generation "
            "keeps source attribution explicit."
        ),
        "source_url": "https://example.com/rag-notes",
    },
]

ANNOTATIONS = [
    "Review chunk sizes for next quarter.",
    "Consider adding a re-ranker to the pipeline.",
]

QUERIES = [
    "What are the main benefits of agentic AI for research workflows?",
    "Compare retrieval-augmented generation (RAG) vs fine-tuning for knowledge grounding.",
]
REFINED_QUERY = "Best practices for citation and source attribution in agentic research reports."


def main():
    parser = argparse.ArgumentParser(description="Seed the research store with sample data")
    parser.add_argument("--store-path", type=str, default=None, help="JSON store file (default: from config)")
    parser.add_argument("--run", action="store_true", help="Run research for every pending query")
    args = parser.parse_args()

    from research_agent.common.config import StoreConfig, ensure_directories, load_config
    from research_agent.common.schemas import QueryStatus
    from research_agent.runner import ResearchRunner
    from research_agent.store import ResearchStore

    config = load_config()
    store_path = args.store_path if args.store_path is not None else config.store.path
    if not args.store_path:
        ensure_directories()

    store = ResearchStore.from_config(StoreConfig(path=store_path))
    print(f"[Seed] Store: {store.path or '(in-memory)'}")

    for doc, note in zip(VAULT_DOCUMENTS, ANNOTATIONS):
        row = store.insert_vault_document(doc["title"], content=doc["content"], source_url=doc["source_url"])
        store.insert_document_annotation(row.id, note)
        print(f"[Seed] Vault document {row.id}: {row.title} (note: {note})")

    queries = [store.insert_query(text) for text in QUERIES]
    store.update_saved(queries[0].id, True)
    refined = store.insert_query(REFINED_QUERY, parent_query_id=queries[0].id)
    queries.append(refined)
    for q in queries:
        lineage = f" (refines {q.parent_query_id})" if q.parent_query_id else ""
        print(f"[Seed] Query {q.id}{lineage}: {q.query_text}")

    if not args.run:
        print(f"[Seed] Done: {len(VAULT_DOCUMENTS)} vault documents, {len(ANNOTATIONS)} annotations, {len(queries)} queries")
        return

    runner = ResearchRunner(store, retrieval=config.retrieval)
    completed = 0
    for q in store.list_queries(status=QueryStatus.PENDING, limit=None):
        try:
            outcome = runner.run(q.id)
        except Exception as e:
            print(f"[Seed] ERROR: Research for query {q.id} failed: {e}")
            continue

        store.insert_feedback(research_result_id=outcome.research_result_id, rating=5 if q.saved else 4)
        completed += 1
        print(
            f"[Seed] Query {q.id} -> result {outcome.research_result_id} "
            f"(confidence {outcome.confidence:.2f}, {outcome.citation_count} citations)"
        )

    metrics = store.get_metrics()
    print(f"[Seed] Done: {completed} runs completed, {metrics.total_feedback_count} feedback entries")


if __name__ == "__main__":
    main()
