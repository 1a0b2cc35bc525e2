"""
Research Agent MCP Server.

Transport: stdio.

Exposes query submission, research runs, results with citations, feedback,
vault documents with their annotations, and metrics as MCP tools.

Expected MCP Tool Return Format:
{
    "ok": bool,
    ...,                     # Tool-specific payload if ok is True
    "error": str            # Present if ok is False
}
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, Dict, List, Optional, Annotated

from dotenv import load_dotenv
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from mcp.types import ToolAnnotations
from pydantic import Field, ValidationError

from ..common.config import RetrievalConfig, StoreConfig, ensure_directories, load_config
from ..common.schemas import QueryStatus, load_report_content, render_report_text
from ..retriever.sources import ChunkSource
from ..runner import QueryNotFoundError, ResearchRunner, RunResearchOptions
from ..store import ResearchStore, StoreError

logger = logging.getLogger("research_agent.server")

MAX_QUERY_TEXT_LENGTH = 10_000
MAX_TITLE_LENGTH = 2_000
MAX_NOTE_LENGTH = 5_000


def _dump(row) -> Dict[str, Any]:
    return row.model_dump(mode="json")


class ResearchServerApp:
    """
    Main application class for the MCP server.

    Owns one ResearchStore and one ResearchRunner bound to it.
    """

    def __init__(
        self,
        store: ResearchStore,
        mcp_server_name: str = "research_agent",
        retrieval: Optional[RetrievalConfig] = None,
        public_source: Optional[ChunkSource] = None,
    ) -> None:
        """
        Args:
            store: Row store shared by all tools
            mcp_server_name: Advertised MCP server name
            retrieval: Retrieval limits for runs
            public_source: Public ChunkSource override (default: literature stub)
        """
        self.store = store
        self.runner = ResearchRunner(store, retrieval=retrieval, public_source=public_source)
        self.mcp = FastMCP(name=mcp_server_name)

        # ---------- MCP Tools: Queries ---------- #
        @self.mcp.tool(
            name="submit_query",
            description="Submit a research question. Pass parent_query_id to record it as a refinement of an earlier query.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_submit_query(
            query_text: Annotated[str, Field(description="natural-language research question")],
            parent_query_id: Annotated[Optional[int], Field(description="query this one refines")] = None,
        ) -> Dict[str, Any]:
            text = (query_text or "").strip()
            if not text:
                return {"ok": False, "error": "query_text cannot be empty"}
            if len(text) > MAX_QUERY_TEXT_LENGTH:
                return {"ok": False, "error": f"query_text must be at most {MAX_QUERY_TEXT_LENGTH} characters"}
            if parent_query_id is not None and self.store.get_query(parent_query_id) is None:
                return {"ok": False, "error": f"Parent query not found: {parent_query_id}"}

            query = self.store.insert_query(text, parent_query_id=parent_query_id)
            return {"ok": True, "query": _dump(query)}

        @self.mcp.tool(
            name="get_query",
            description="Get a research query by id.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_get_query(
            query_id: Annotated[int, Field(description="research query id")],
        ) -> Dict[str, Any]:
            query = self.store.get_query(query_id)
            if query is None:
                return {"ok": False, "error": f"Query not found: {query_id}"}
            return {"ok": True, "query": _dump(query)}

        @self.mcp.tool(
            name="list_queries",
            description="List research queries, newest first.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_list_queries(
            status: Annotated[Optional[str], Field(description="pending, in_progress, completed or failed")] = None,
            saved: Annotated[Optional[bool], Field(description="only saved (true) or unsaved (false) queries")] = None,
            parent_query_id: Annotated[Optional[int], Field(description="only refinements of this query")] = None,
            limit: Annotated[int, Field(description="maximum number of queries")] = 50,
        ) -> Dict[str, Any]:
            if limit < 0:
                return {"ok": False, "error": "limit must be non-negative"}
            if status is not None:
                try:
                    status = QueryStatus(status)
                except ValueError as exc:
                    raise ToolError(f"Invalid status: {status}") from exc
            queries = self.store.list_queries(
                status=status, saved=saved, parent_query_id=parent_query_id, limit=limit,
            )
            return {"ok": True, "queries": [_dump(q) for q in queries]}

        @self.mcp.tool(
            name="related_queries",
            description="List refinements of a query.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_related_queries(
            query_id: Annotated[int, Field(description="parent research query id")],
        ) -> Dict[str, Any]:
            return {"ok": True, "queries": [_dump(q) for q in self.store.list_related_queries(query_id)]}

        @self.mcp.tool(
            name="set_saved",
            description="Save or unsave a research query.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_set_saved(
            query_id: Annotated[int, Field(description="research query id")],
            saved: Annotated[bool, Field(description="true to save, false to unsave")],
        ) -> Dict[str, Any]:
            query = self.store.update_saved(query_id, saved)
            if query is None:
                return {"ok": False, "error": f"Query not found: {query_id}"}
            return {"ok": True, "query": _dump(query)}

        # ---------- MCP Tools: Research Runs ---------- #
        @self.mcp.tool(
            name="run_research",
            description=(
                "Run the research pipeline for a stored query: retrieve from the vault "
                "and public sources, synthesize a cited report, and store it. "
                "Pass vault_doc_ids to restrict retrieval to specific vault documents."
            ),
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_run_research(
            query_id: Annotated[int, Field(description="research query id")],
            vault_doc_ids: Annotated[Optional[List[int]], Field(description="vault document ids to use")] = None,
        ) -> Dict[str, Any]:
            options = RunResearchOptions(vault_doc_ids=vault_doc_ids) if vault_doc_ids else None
            try:
                # blocking: retrieval, synthesis and store writes
                outcome = await asyncio.to_thread(self.runner.run, query_id, options)
            except QueryNotFoundError as e:
                return {"ok": False, "error": str(e)}
            except Exception as e:
                return {"ok": False, "error": f"Research run failed: {e}"}

            return {
                "ok": True,
                "research_result_id": outcome.research_result_id,
                "summary": outcome.summary,
                "confidence": outcome.confidence,
                "citation_count": outcome.citation_count,
            }

        @self.mcp.tool(
            name="list_results",
            description="List the results of a query, newest (authoritative) first.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_list_results(
            query_id: Annotated[int, Field(description="research query id")],
        ) -> Dict[str, Any]:
            return {"ok": True, "results": [_dump(r) for r in self.store.list_results_by_query(query_id)]}

        @self.mcp.tool(
            name="get_result",
            description="Get a research result with its citations, feedback and a Markdown rendering of the report.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_get_result(
            result_id: Annotated[int, Field(description="research result id")],
        ) -> Dict[str, Any]:
            result = self.store.get_result(result_id)
            if result is None:
                return {"ok": False, "error": f"Result not found: {result_id}"}

            citations = self.store.list_citations_by_result(result_id)
            feedback = self.store.list_feedback_by_result(result_id)
            report = None
            if result.content:
                try:
                    report = render_report_text(load_report_content(result.content), citations)
                except ValidationError as e:
                    logger.warning("Stored content of result %s is not a valid report: %s", result_id, e)

            return {
                "ok": True,
                "result": _dump(result),
                "citations": [_dump(c) for c in citations],
                "feedback": [_dump(f) for f in feedback],
                "report": report,
            }

        # ---------- MCP Tools: Feedback ---------- #
        @self.mcp.tool(
            name="submit_feedback",
            description="Rate (1-5) and/or comment on a research result or query. At least one of result_id / query_id is required.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_submit_feedback(
            result_id: Annotated[Optional[int], Field(description="research result id")] = None,
            query_id: Annotated[Optional[int], Field(description="research query id")] = None,
            rating: Annotated[Optional[int], Field(description="integer rating 1-5")] = None,
            feedback_text: Annotated[Optional[str], Field(description="free-text comment")] = None,
        ) -> Dict[str, Any]:
            if result_id is None and query_id is None:
                return {"ok": False, "error": "result_id or query_id is required"}
            if rating is not None and not 1 <= rating <= 5:
                return {"ok": False, "error": "rating must be an integer 1-5"}

            text = feedback_text.strip() if feedback_text else None
            try:
                feedback = self.store.insert_feedback(
                    research_result_id=result_id,
                    research_query_id=query_id,
                    rating=rating,
                    feedback_text=text or None,
                )
            except (StoreError, ValidationError) as e:
                return {"ok": False, "error": str(e)}
            return {"ok": True, "feedback": _dump(feedback)}

        @self.mcp.tool(
            name="list_feedback",
            description="List feedback for a result or for a query.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_list_feedback(
            result_id: Annotated[Optional[int], Field(description="research result id")] = None,
            query_id: Annotated[Optional[int], Field(description="research query id")] = None,
        ) -> Dict[str, Any]:
            if result_id is not None:
                feedback = self.store.list_feedback_by_result(result_id)
            elif query_id is not None:
                feedback = self.store.list_feedback_by_query(query_id)
            else:
                return {"ok": False, "error": "result_id or query_id is required"}
            return {"ok": True, "feedback": [_dump(f) for f in feedback]}

        # ---------- MCP Tools: Vault ---------- #
        @self.mcp.tool(
            name="add_vault_document",
            description="Add a document to the private vault.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_add_vault_document(
            title: Annotated[str, Field(description="document title")],
            content: Annotated[Optional[str], Field(description="document text")] = None,
            source_url: Annotated[Optional[str], Field(description="where the document came from")] = None,
        ) -> Dict[str, Any]:
            title = (title or "").strip()
            if not title:
                return {"ok": False, "error": "title cannot be empty"}
            if len(title) > MAX_TITLE_LENGTH:
                return {"ok": False, "error": f"title must be at most {MAX_TITLE_LENGTH} characters"}

            doc = self.store.insert_vault_document(title, content=content, source_url=source_url or None)
            return {"ok": True, "document": _dump(doc)}

        @self.mcp.tool(
            name="list_vault_documents",
            description="List vault documents, newest first, or search them by text when q is given.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_list_vault_documents(
            q: Annotated[Optional[str], Field(description="case-insensitive text to search in title and content")] = None,
            limit: Annotated[Optional[int], Field(description="maximum number of documents")] = None,
        ) -> Dict[str, Any]:
            if limit is not None and limit < 0:
                return {"ok": False, "error": "limit must be non-negative"}
            if q and q.strip():
                docs = self.store.search_vault_documents(q, 50 if limit is None else limit)
            else:
                docs = self.store.list_vault_documents(limit)
            return {"ok": True, "documents": [_dump(d) for d in docs]}

        @self.mcp.tool(
            name="delete_vault_document",
            description="Delete a vault document. Existing citations are kept.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=True)
        )
        async def tool_delete_vault_document(
            document_id: Annotated[int, Field(description="vault document id")],
        ) -> Dict[str, Any]:
            if not self.store.delete_vault_document(document_id):
                return {"ok": False, "error": f"Document not found: {document_id}"}
            return {"ok": True, "deleted": document_id}

        # ---------- MCP Tools: Vault Annotations ---------- #
        @self.mcp.tool(
            name="add_annotation",
            description="Attach a note to a vault document.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_add_annotation(
            document_id: Annotated[int, Field(description="vault document id")],
            note: Annotated[str, Field(description="note text")],
        ) -> Dict[str, Any]:
            note = (note or "").strip()
            if not note:
                return {"ok": False, "error": "note cannot be empty"}
            if len(note) > MAX_NOTE_LENGTH:
                return {"ok": False, "error": f"note must be at most {MAX_NOTE_LENGTH} characters"}

            try:
                annotation = self.store.insert_document_annotation(document_id, note)
            except StoreError:
                return {"ok": False, "error": f"Document not found: {document_id}"}
            return {"ok": True, "annotation": _dump(annotation)}

        @self.mcp.tool(
            name="list_annotations",
            description="List the notes on a vault document, newest first.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_list_annotations(
            document_id: Annotated[int, Field(description="vault document id")],
        ) -> Dict[str, Any]:
            if self.store.get_vault_document(document_id) is None:
                return {"ok": False, "error": f"Document not found: {document_id}"}
            annotations = self.store.list_document_annotations(document_id)
            return {"ok": True, "annotations": [_dump(a) for a in annotations]}

        @self.mcp.tool(
            name="delete_annotation",
            description="Delete a note from a vault document.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=True)
        )
        async def tool_delete_annotation(
            annotation_id: Annotated[int, Field(description="annotation id")],
        ) -> Dict[str, Any]:
            if not self.store.delete_document_annotation(annotation_id):
                return {"ok": False, "error": f"Annotation not found: {annotation_id}"}
            return {"ok": True, "deleted": annotation_id}

        # ---------- MCP Tools: Metrics ---------- #
        @self.mcp.tool(
            name="get_metrics",
            description="Run counts, average confidence and duration, and feedback statistics.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_get_metrics() -> Dict[str, Any]:
            return {"ok": True, "metrics": _dump(self.store.get_metrics())}

    def run(self) -> None:
        """Runs the MCP server using stdio transport."""
        self.mcp.run(transport="stdio")


def main() -> None:
    load_dotenv()
    config = load_config()

    parser = argparse.ArgumentParser(description="Run the Research Agent MCP server (stdio).")
    parser.add_argument(
        "--server-name",
        default=config.server.name,
        help="Advertised MCP server name.",
    )
    parser.add_argument(
        "--store-path",
        default=config.store.path,
        help="JSON file backing the research store (empty for in-memory).",
    )
    args = parser.parse_args()

    # stdout carries the MCP protocol; logs go to stderr
    logging.basicConfig(
        stream=sys.stderr,
        level=config.server.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ensure_directories()
    store = ResearchStore.from_config(StoreConfig(path=args.store_path))
    if store.path:
        logger.info("Using research store at %s", store.path)
    else:
        logger.info("Using in-memory research store")

    app = ResearchServerApp(
        store=store,
        mcp_server_name=args.server_name,
        retrieval=config.retrieval,
    )

    def _handle_shutdown(signum, frame):
        raise SystemExit(0)
    for sig in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
        if sig is not None:
            signal.signal(sig, _handle_shutdown)

    app.run()


if __name__ == "__main__":
    main()
