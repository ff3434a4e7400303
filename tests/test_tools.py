"""Tests for tool-call extraction and the search heuristic."""

import json

from src.agent.tools import (
    SEARCH_TOOL_NAME,
    SearchToolCall,
    UnknownToolCall,
    extract_tool_invocation,
    needs_fresh_search,
    search_tool_definition,
)
from src.agent.wire import ToolCall


def _call(name=SEARCH_TOOL_NAME, args=None, call_id="call_1"):
    return ToolCall(id=call_id, name=name, arguments=json.dumps(args or {}))


class TestExtractToolInvocation:
    """Single-tool-per-turn extraction."""

    def test_no_calls(self):
        assert extract_tool_invocation([]) is None

    def test_search_call(self):
        invocation = extract_tool_invocation(
            [_call(args={"query": "tasas TIE", "focus_sites": ["sepe.es"], "search_reason": "tasas cambian"})]
        )
        assert invocation == SearchToolCall(
            call_id="call_1", query="tasas TIE", focus_sites=["sepe.es"], reason="tasas cambian"
        )

    def test_only_first_call_is_used(self):
        invocation = extract_tool_invocation(
            [_call(args={"query": "primera"}), _call(args={"query": "segunda"}, call_id="call_2")]
        )
        assert invocation.query == "primera"

    def test_unknown_tool(self):
        invocation = extract_tool_invocation([_call(name="book_appointment", args={"date": "mañana"})])
        assert isinstance(invocation, UnknownToolCall)
        assert invocation.name == "book_appointment"

    def test_invalid_json_is_ignored(self):
        assert extract_tool_invocation([ToolCall(id="c", name=SEARCH_TOOL_NAME, arguments="{not json")]) is None

    def test_missing_query_is_ignored(self):
        assert extract_tool_invocation([_call(args={"focus_sites": ["boe.es"]})]) is None

    def test_bad_focus_sites_dropped(self):
        invocation = extract_tool_invocation([_call(args={"query": "q", "focus_sites": "boe.es"})])
        assert invocation.focus_sites is None

    def test_definition_requires_query(self):
        definition = search_tool_definition()
        assert definition.name == SEARCH_TOOL_NAME
        assert definition.parameters["required"] == ["query"]


class TestNeedsFreshSearch:
    """Deterministic freshness heuristic."""

    def test_recent_year(self):
        assert needs_fresh_search("¿Qué cambió en 2024?") is True
        assert needs_fresh_search("ley de 2023") is True

    def test_old_year(self):
        assert needs_fresh_search("¿Qué decía la ley de 1985?") is False

    def test_keywords(self):
        assert needs_fresh_search("¿Cuáles son los requisitos del arraigo?") is True
        assert needs_fresh_search("plazos de resolución") is True
        assert needs_fresh_search("Cita en Madrid") is True

    def test_plain_question(self):
        assert needs_fresh_search("¿Qué es el NIE?") is False

    def test_keyword_must_be_whole_word(self):
        assert needs_fresh_search("¿Cómo renuevo el NIE?") is False
