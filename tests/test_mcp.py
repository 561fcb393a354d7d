"""Tests for the MCP tool handlers."""

import asyncio
import json

import pytest
from conftest import make_decision
from crossroads import NarrativeResponse
from crossroads import mcp as server


@pytest.fixture
def mcp_engine(engine, monkeypatch):
    """Route tool calls to the test engine."""
    monkeypatch.setattr(server, "_engine", engine)
    return engine


def call(name, arguments=None):
    [content] = asyncio.run(server.call_tool(name, arguments or {}))
    return content.text


def call_json(name, arguments=None):
    return json.loads(call(name, arguments))


def test_list_tools():
    tools = asyncio.run(server.list_tools())

    assert {t.name for t in tools} == {
        "present_decision",
        "select_option",
        "clear_decision",
        "get_current_decision",
        "add_narrative",
        "trigger_decision",
        "get_history_context",
        "get_impact_state",
        "evolve_impacts",
        "save_session",
    }


def test_present_and_get_current_decision(mcp_engine):
    presented = call_json(
        "present_decision",
        {
            "prompt": "Do you take the bounty?",
            "context": "A poster flaps on the jailhouse wall.",
            "importance": "significant",
            "location": {"type": "town", "name": "Red Gulch"},
            "options": [
                {"text": "Take it", "impact": "The story of the bounty begins"},
                {"text": "Leave it", "impact": "Nothing changes"},
            ],
        },
    )

    current = call_json("get_current_decision")

    assert current == presented
    assert current["importance"] == "significant"
    assert [o["text"] for o in current["options"]] == ["Take it", "Leave it"]
    assert mcp_engine.current_decision.id == current["id"]


def test_get_current_decision_when_empty(mcp_engine):
    assert call_json("get_current_decision") is None


def test_select_option_with_declared_impacts(mcp_engine):
    decision = make_decision()
    mcp_engine.present_decision(decision)

    result = call_json(
        "select_option",
        {
            "decision_id": decision.id,
            "option_id": decision.options[0].id,
            "impacts": [
                {"type": "relationship", "target": "Sheriff", "value": 4},
                {"type": "story-arc", "target": "bounty", "value": 30},
            ],
        },
    )

    assert result["narrative"] == "The sheriff nods slowly."
    assert result["record"]["decision_id"] == decision.id
    assert call_json("get_impact_state")["relationship"] == {"player": {"Sheriff": 4.0}}
    assert mcp_engine.impact_state.story_arc == {"bounty": 30.0}


def test_select_option_error_is_reported(mcp_engine):
    """Test that validation failures come back as error text."""
    text = call("select_option", {"decision_id": "d1", "option_id": "o1"})

    assert text.startswith("Error: No active decision")


def test_select_option_discarded(mcp_engine):
    """Test the reply when the decision is cleared mid-response."""
    decision = make_decision()
    mcp_engine.present_decision(decision)

    class ClearingResponder:
        async def respond(self, *args):
            mcp_engine.clear_decision()
            return NarrativeResponse(narrative="Too late.")

    mcp_engine.responder = ClearingResponder()

    text = call(
        "select_option",
        {"decision_id": decision.id, "option_id": decision.options[0].id},
    )

    assert text.startswith("Selection discarded")
    assert mcp_engine.get_decision_history() == []


def test_clear_decision(mcp_engine):
    mcp_engine.present_decision(make_decision())

    assert call("clear_decision") == "Cleared current decision"
    assert mcp_engine.current_decision is None


def test_add_narrative_triggers_decision(mcp_engine):
    call("add_narrative", {"text": "Player: I hitch my horse"})
    call("add_narrative", {"text": "Player: I walk to the bank"})

    result = call_json("add_narrative", {"text": "Player: I knock on the door"})

    assert result["decision_presented"] is True
    assert result["skip_narrative_response"] is True
    assert result["decision"]["id"] == mcp_engine.current_decision.id


def test_trigger_decision(mcp_engine, generator):
    generator.result = make_decision()

    result = call_json("trigger_decision", {"context": "Shots ring out", "importance": "critical"})

    assert result["decision_presented"] is True
    assert result["decision"]["importance"] == "critical"
    assert generator.calls[0]["context"] == "Shots ring out"


def test_history_context_without_records(mcp_engine):
    assert call("get_history_context", {"location": "town"}) == "No relevant decisions."


def test_history_context_with_records(mcp_engine):
    decision = make_decision()
    mcp_engine.present_decision(decision)
    call("select_option", {"decision_id": decision.id, "option_id": decision.options[0].id})

    text = call("get_history_context", {"characters": ["Sheriff"], "limit": 3})

    assert text.startswith("Player's past relevant decisions:")


def test_evolve_impacts(mcp_engine):
    assert call_json("evolve_impacts")["reputation"] == {}


def test_save_session(mcp_engine, store):
    mcp_engine.present_decision(make_decision())

    assert call("save_session", {"session_id": "saloon"}) == "Saved session: saloon"
    assert store.load("saloon").current_decision == mcp_engine.current_decision


def test_unknown_tool(mcp_engine):
    assert call("shoot_sheriff") == "Unknown tool: shoot_sheriff"


def test_get_engine_from_environment(monkeypatch):
    monkeypatch.setenv("CROSSROADS_DB_PATH", ":memory:")
    monkeypatch.setenv("CROSSROADS_GENERATOR", "none")
    monkeypatch.setattr(server, "_engine", None)

    engine = server.get_engine()
    try:
        assert engine.config.db_path == ":memory:"
        assert engine.generator is None
        assert engine.responder is None
        assert engine.store is not None
        assert server.get_engine() is engine
    finally:
        engine.close()
