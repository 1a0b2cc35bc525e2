"""Tests for Markdown rendering of stored reports."""

import pytest


@pytest.fixture
def content():
    from research_agent.common.schemas import ReportSection, ResearchReportContent
    return ResearchReportContent(
        summary='Summary for: "coral bleaching". Synthesized from 3 chunk(s) across 2 source(s).',
        sections=[
            ReportSection(heading="Reef survey 2023", text="Bleaching doubled.\n\nRecovery slow.",
                          source_ids=["vault:4", "vault:4"]),
            ReportSection(heading="Related findings", text="Placeholder.", source_ids=["public:mock-2"]),
        ],
        confidence=0.68,
        query="coral bleaching",
    )


@pytest.fixture
def citations():
    from research_agent.common.schemas import Citation
    return [
        Citation(id=1, research_result_id=1, title="Reef survey 2023", source_id="vault:4"),
        Citation(id=2, research_result_id=1, title="Related findings",
                 source_url="https://example.com/source2", source_id="public:mock-2"),
    ]


class TestRenderReportText:
    def test_header_summary_and_confidence(self, content):
        from research_agent.common.schemas import render_report_text

        text = render_report_text(content)

        assert text.startswith("# Research Report: coral bleaching")
        assert content.summary in text
        assert "Confidence: 68%" in text

    def test_sections_with_grounding(self, content):
        from research_agent.common.schemas import render_report_text

        text = render_report_text(content)

        assert "## Reef survey 2023\nBleaching doubled." in text
        assert "[vault:4]" in text
        assert "[vault:4, vault:4]" not in text
        assert "[public:mock-2]" in text

    def test_sources_list(self, content, citations):
        from research_agent.common.schemas import render_report_text

        text = render_report_text(content, citations)

        assert "1. Reef survey 2023 [vault:4]" in text
        assert "2. Related findings <https://example.com/source2> [public:mock-2]" in text

    def test_no_sections_and_no_citations(self):
        from research_agent.common.schemas import ResearchReportContent, render_report_text

        empty = ResearchReportContent(summary="Nothing.", confidence=0.0, query="q")
        text = render_report_text(empty, [])

        assert "_No sections" in text
        assert "## Sources\n- (none)" in text
        assert "Confidence: 0%" in text


class TestReportContentRoundTrip:
    def test_json_roundtrip(self, content):
        from research_agent.common.schemas import load_report_content

        restored = load_report_content(content.model_dump_json())

        assert restored.summary == content.summary
        assert restored.confidence == content.confidence
        assert restored.query == content.query
        assert [s.heading for s in restored.sections] == [s.heading for s in content.sections]

    def test_blob_keys(self, content):
        import json

        data = json.loads(content.model_dump_json())

        assert {"summary", "sections", "confidence", "query", "schema_version"} <= set(data)
        assert data["sections"][0]["source_ids"] == ["vault:4", "vault:4"]
