"""
Research Store

Row store backing the research runner and the tool server.
"""

from .row_store import ResearchStore, StoreError

__all__ = [
    "ResearchStore",
    "StoreError",
]
