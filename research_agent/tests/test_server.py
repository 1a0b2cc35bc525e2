# tests/test_server.py
import pytest

from fastmcp import Client
from fastmcp.exceptions import ToolError

from research_agent.server import ResearchServerApp
from research_agent.store import ResearchStore


def _data(result):
    return getattr(result, "data", None) or getattr(result, "structured", None) \
           or getattr(result, "structured_content", None)


@pytest.fixture
def store():
    return ResearchStore()


@pytest.fixture
def mcp_server(store):
    """
    Create and return a FastMCP server instance for testing.
    Backed by an in-memory store.
    """
    app = ResearchServerApp(store=store, mcp_server_name="test-research")
    return app.mcp  # FastMCP Instance


# ----------- Tool Registration ----------- #
@pytest.mark.asyncio
async def test_tools_registered(mcp_server):
    async with Client(mcp_server) as client:
        tools = await client.list_tools()
        names = {t.name for t in tools}
        expected = {
            "submit_query", "get_query", "list_queries", "related_queries", "set_saved",
            "run_research", "list_results", "get_result",
            "submit_feedback", "list_feedback",
            "add_vault_document", "list_vault_documents", "delete_vault_document",
            "add_annotation", "list_annotations", "delete_annotation",
            "get_metrics",
        }
        assert expected <= names


# ----------- Queries ----------- #
@pytest.mark.asyncio
async def test_submit_query_trims_text(mcp_server):
    async with Client(mcp_server) as client:
        result = await client.call_tool("submit_query", {"query_text": "  agentic AI  "})
        data = _data(result)

        assert data is not None, "No data returned from tool call"
        assert data.get("ok") is True
        assert data["query"]["query_text"] == "agentic AI"
        assert data["query"]["status"] == "pending"


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "x" * 10_001])
async def test_submit_query_rejects_invalid_text(mcp_server, text):
    async with Client(mcp_server) as client:
        result = await client.call_tool("submit_query", {"query_text": text})
        data = _data(result)

        assert data.get("ok") is False
        assert "query_text" in data.get("error", "")


@pytest.mark.asyncio
async def test_submit_refinement_and_related(mcp_server, store):
    parent = store.insert_query("parent question")
    async with Client(mcp_server) as client:
        result = await client.call_tool(
            "submit_query", {"query_text": "narrower question", "parent_query_id": parent.id}
        )
        assert _data(result)["query"]["parent_query_id"] == parent.id

        related = _data(await client.call_tool("related_queries", {"query_id": parent.id}))
        assert [q["query_text"] for q in related["queries"]] == ["narrower question"]

        missing = _data(await client.call_tool(
            "submit_query", {"query_text": "orphan", "parent_query_id": 404}
        ))
        assert missing.get("ok") is False


@pytest.mark.asyncio
async def test_get_query_not_found(mcp_server):
    async with Client(mcp_server) as client:
        data = _data(await client.call_tool("get_query", {"query_id": 404}))

        assert data.get("ok") is False
        assert "not found" in data.get("error", "")


@pytest.mark.asyncio
async def test_set_saved_and_filter(mcp_server, store):
    saved = store.insert_query("keep me")
    store.insert_query("ephemeral")
    async with Client(mcp_server) as client:
        data = _data(await client.call_tool("set_saved", {"query_id": saved.id, "saved": True}))
        assert data["query"]["saved_at"] is not None

        listed = _data(await client.call_tool("list_queries", {"saved": True}))
        assert [q["id"] for q in listed["queries"]] == [saved.id]


@pytest.mark.asyncio
async def test_list_queries_invalid_status(mcp_server):
    async with Client(mcp_server) as client:
        with pytest.raises(ToolError):
            await client.call_tool("list_queries", {"status": "sleeping"})


@pytest.mark.asyncio
async def test_list_queries_limit(mcp_server, store):
    store.insert_query("first")
    store.insert_query("second")
    async with Client(mcp_server) as client:
        empty = _data(await client.call_tool("list_queries", {"limit": 0}))
        assert empty.get("ok") is True
        assert empty["queries"] == []

        one = _data(await client.call_tool("list_queries", {"limit": 1}))
        assert [q["query_text"] for q in one["queries"]] == ["second"]

        negative = _data(await client.call_tool("list_queries", {"limit": -1}))
        assert negative.get("ok") is False


# ----------- Research Runs ----------- #
@pytest.mark.asyncio
async def test_run_research_and_get_result(mcp_server, store):
    store.insert_vault_document(
        "Microplastics in marine ecosystems",
        content="Microplastic particles accumulate in marine food webs.",
    )
    query = store.insert_query("microplastics marine")
    async with Client(mcp_server) as client:
        run = _data(await client.call_tool("run_research", {"query_id": query.id}))
        assert run.get("ok") is True
        assert run["citation_count"] == 3
        assert 0.0 < run["confidence"] <= 1.0

        listed = _data(await client.call_tool("list_results", {"query_id": query.id}))
        assert [r["id"] for r in listed["results"]] == [run["research_result_id"]]

        detail = _data(await client.call_tool("get_result", {"result_id": run["research_result_id"]}))
        assert detail.get("ok") is True
        assert detail["result"]["research_query_id"] == query.id
        assert len(detail["citations"]) == 3
        assert detail["report"].startswith("# Research Report: microplastics marine")

        status = _data(await client.call_tool("get_query", {"query_id": query.id}))
        assert status["query"]["status"] == "completed"


@pytest.mark.asyncio
async def test_run_research_scoped_to_vault_docs(mcp_server, store):
    store.insert_vault_document("Marine notes", content="marine")
    kept = store.insert_vault_document("Marine survey", content="marine")
    query = store.insert_query("marine")
    async with Client(mcp_server) as client:
        run = _data(await client.call_tool(
            "run_research", {"query_id": query.id, "vault_doc_ids": [kept.id]}
        ))
        assert run.get("ok") is True

    source_ids = [c.source_id for c in store.list_citations_by_result(run["research_result_id"])]
    assert f"vault:{kept.id}" in source_ids
    assert "vault:1" not in source_ids


@pytest.mark.asyncio
async def test_run_research_runs_off_event_loop_thread(store):
    import threading

    from research_agent.runner import RunResearchResult

    app = ResearchServerApp(store=store, mcp_server_name="test-research")
    seen = {}

    def fake_run(query_id, options=None):
        seen["thread"] = threading.get_ident()
        return RunResearchResult(research_result_id=7, summary="s", confidence=0.5, citation_count=0)

    app.runner.run = fake_run
    async with Client(app.mcp) as client:
        data = _data(await client.call_tool("run_research", {"query_id": 1}))

    assert data.get("ok") is True
    assert data["research_result_id"] == 7
    assert seen["thread"] != threading.get_ident()


@pytest.mark.asyncio
async def test_run_research_missing_query(mcp_server):
    async with Client(mcp_server) as client:
        data = _data(await client.call_tool("run_research", {"query_id": 404}))

        assert data.get("ok") is False
        assert data["error"] == "Query not found: 404"


@pytest.mark.asyncio
async def test_get_result_not_found(mcp_server):
    async with Client(mcp_server) as client:
        data = _data(await client.call_tool("get_result", {"result_id": 404}))

        assert data.get("ok") is False


# ----------- Feedback ----------- #
@pytest.mark.asyncio
async def test_submit_and_list_feedback(mcp_server, store):
    query = store.insert_query("q")
    result = store.insert_result(query.id, summary="s")
    async with Client(mcp_server) as client:
        data = _data(await client.call_tool(
            "submit_feedback", {"result_id": result.id, "rating": 5, "feedback_text": " great "}
        ))
        assert data.get("ok") is True
        assert data["feedback"]["feedback_text"] == "great"

        listed = _data(await client.call_tool("list_feedback", {"result_id": result.id}))
        assert [f["rating"] for f in listed["feedback"]] == [5]


@pytest.mark.asyncio
@pytest.mark.parametrize("args", [
    {"rating": 3},
    {"query_id": 1, "rating": 9},
    {"result_id": 404, "rating": 4},
])
async def test_submit_feedback_rejects_invalid(mcp_server, store, args):
    store.insert_query("q")
    async with Client(mcp_server) as client:
        data = _data(await client.call_tool("submit_feedback", args))

        assert data.get("ok") is False
        assert data.get("error")


# ----------- Vault ----------- #
@pytest.mark.asyncio
async def test_vault_document_lifecycle(mcp_server):
    async with Client(mcp_server) as client:
        added = _data(await client.call_tool(
            "add_vault_document", {"title": " Reef survey ", "content": "Bleaching data"}
        ))
        assert added.get("ok") is True
        doc_id = added["document"]["id"]
        assert added["document"]["title"] == "Reef survey"

        await client.call_tool("add_vault_document", {"title": "Desert notes"})

        found = _data(await client.call_tool("list_vault_documents", {"q": "bleaching"}))
        assert [d["id"] for d in found["documents"]] == [doc_id]

        everything = _data(await client.call_tool("list_vault_documents", {}))
        assert len(everything["documents"]) == 2

        deleted = _data(await client.call_tool("delete_vault_document", {"document_id": doc_id}))
        assert deleted.get("ok") is True

        again = _data(await client.call_tool("delete_vault_document", {"document_id": doc_id}))
        assert again.get("ok") is False


@pytest.mark.asyncio
@pytest.mark.parametrize("title", ["", "t" * 2_001])
async def test_add_vault_document_rejects_invalid_title(mcp_server, title):
    async with Client(mcp_server) as client:
        data = _data(await client.call_tool("add_vault_document", {"title": title}))

        assert data.get("ok") is False


@pytest.mark.asyncio
async def test_list_vault_documents_limit(mcp_server, store):
    store.insert_vault_document("Reef survey")
    async with Client(mcp_server) as client:
        listed = _data(await client.call_tool("list_vault_documents", {"limit": 0}))
        assert listed.get("ok") is True
        assert listed["documents"] == []

        searched = _data(await client.call_tool("list_vault_documents", {"q": "reef", "limit": 0}))
        assert searched["documents"] == []

        negative = _data(await client.call_tool("list_vault_documents", {"limit": -5}))
        assert negative.get("ok") is False


# ----------- Vault Annotations ----------- #
@pytest.mark.asyncio
async def test_annotation_lifecycle(mcp_server, store):
    doc = store.insert_vault_document("RAG architecture notes")
    async with Client(mcp_server) as client:
        added = _data(await client.call_tool(
            "add_annotation", {"document_id": doc.id, "note": "  Review chunk sizes.  "}
        ))
        assert added.get("ok") is True
        annotation_id = added["annotation"]["id"]
        assert added["annotation"]["note"] == "Review chunk sizes."
        assert added["annotation"]["vault_document_id"] == doc.id

        await client.call_tool("add_annotation", {"document_id": doc.id, "note": "Add a re-ranker."})

        listed = _data(await client.call_tool("list_annotations", {"document_id": doc.id}))
        assert [a["note"] for a in listed["annotations"]] == ["Add a re-ranker.", "Review chunk sizes."]

        deleted = _data(await client.call_tool("delete_annotation", {"annotation_id": annotation_id}))
        assert deleted.get("ok") is True

        again = _data(await client.call_tool("delete_annotation", {"annotation_id": annotation_id}))
        assert again.get("ok") is False

        remaining = _data(await client.call_tool("list_annotations", {"document_id": doc.id}))
        assert [a["note"] for a in remaining["annotations"]] == ["Add a re-ranker."]


@pytest.mark.asyncio
@pytest.mark.parametrize("note", ["", "   ", "n" * 5_001])
async def test_add_annotation_rejects_invalid_note(mcp_server, store, note):
    doc = store.insert_vault_document("Doc")
    async with Client(mcp_server) as client:
        data = _data(await client.call_tool("add_annotation", {"document_id": doc.id, "note": note}))

        assert data.get("ok") is False
        assert store.list_document_annotations(doc.id) == []


@pytest.mark.asyncio
async def test_annotations_unknown_document(mcp_server):
    async with Client(mcp_server) as client:
        added = _data(await client.call_tool("add_annotation", {"document_id": 404, "note": "orphan"}))
        assert added.get("ok") is False
        assert "404" in added["error"]

        listed = _data(await client.call_tool("list_annotations", {"document_id": 404}))
        assert listed.get("ok") is False


# ----------- Metrics ----------- #
@pytest.mark.asyncio
async def test_get_metrics(mcp_server, store):
    query = store.insert_query("agentic AI")
    store.insert_query("never run")
    async with Client(mcp_server) as client:
        await client.call_tool("run_research", {"query_id": query.id})
        data = _data(await client.call_tool("get_metrics", {}))

        assert data.get("ok") is True
        metrics = data["metrics"]
        assert metrics["total_runs"] == 1
        assert metrics["completed_runs"] == 1
        assert metrics["failed_runs"] == 0
        assert metrics["avg_confidence"] is not None
        assert metrics["rating_distribution"] == []
