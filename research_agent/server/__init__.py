"""Research Agent MCP server."""

from .server import ResearchServerApp

__all__ = ["ResearchServerApp"]
