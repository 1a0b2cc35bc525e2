"""
Research Agent Common Module

Shared configuration and schemas for the retriever, runner and store.
"""

from .config import ResearchConfig, RetrievalConfig, load_config

__all__ = [
    "ResearchConfig",
    "RetrievalConfig",
    "load_config",
]
