"""
Research Agent

Answers a natural-language research question from a private document vault
and public literature, and keeps the full provenance trail.

Philosophy:
- Every report section is grounded in retrieved chunks
- Every citation traces back to a chunk seen in the same run
- Confidence is reproducible from the chunk set alone
- A query never stays stuck in "in_progress" after a run attempt

Usage:
    from research_agent.common import load_config
    from research_agent.store import ResearchStore
    from research_agent.retriever import retrieve, Synthesizer
    from research_agent.runner import ResearchRunner, run_research
"""

__version__ = "0.1.0"
