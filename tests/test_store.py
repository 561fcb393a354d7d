"""Tests for the SQLite session store."""

from dataclasses import replace

from conftest import START, make_decision
from crossroads.decisions import create_decision_record, present_decision
from crossroads.impacts import attach_impacts
from crossroads.models import PHASE_PRESENTED, PHASE_RECORDING, SessionState, make_impact


def session_with_records(count):
    state = SessionState(narrative_history=("Player: I ride in",), inventory=("Rope",))
    for i in range(count):
        decision = make_decision(now=START + i)
        option = decision.options[i % 2]
        record = create_decision_record(decision, option.id, f"Narrative {i}", now=START + i)
        record = attach_impacts(record, [make_impact("reputation", "Sheriff", 3)], now=START + i)
        state = replace(state, decision_history=state.decision_history + (record,))
    return state


def test_store_creates_tables(store):
    """Verify the session tables are created."""
    tables = store.db.execute(
        "SELECT name FROM sqlite_master WHERE type='table'"
    ).fetchall()
    table_names = {row["name"] for row in tables}

    assert "sessions" in table_names
    assert "decision_records" in table_names


def test_save_and_load_round_trip(store):
    state = present_decision(session_with_records(2), make_decision())

    store.save("s1", state)

    assert store.load("s1") == state


def test_load_missing_session(store):
    assert store.load("missing") is None


def test_save_replaces_records(store):
    """Test that saving again mirrors only the latest history."""
    store.save("s1", session_with_records(3))
    store.save("s1", session_with_records(1))

    assert len(store.query_records("s1")) == 1
    assert len(store.load("s1").decision_history) == 1


def test_query_records_by_tag(store):
    state = session_with_records(3)
    store.save("s1", state)

    law = store.query_records("s1", tag="law")
    walked = store.query_records("s1", tag="self-interest")

    assert [r.narrative for r in law] == ["Narrative 0", "Narrative 2"]
    assert [r.narrative for r in walked] == ["Narrative 1"]
    assert store.query_records("s1", tag="nothing") == []
    assert store.query_records("s1") == list(state.decision_history)


def test_list_sessions(store):
    store.save("s1", session_with_records(2))
    store.save("s2", SessionState())

    sessions = {s["id"]: s for s in store.list_sessions()}

    assert sessions["s1"]["record_count"] == 2
    assert sessions["s2"]["record_count"] == 0


def test_delete_session_removes_records(store):
    store.save("s1", session_with_records(2))

    store.delete("s1")

    assert store.load("s1") is None
    count = store.db.execute("SELECT COUNT(*) FROM decision_records").fetchone()[0]
    assert count == 0


def test_load_mid_recording_resumes_presented(store):
    """Test that a save taken while recording comes back presented."""
    state = replace(present_decision(SessionState(), make_decision()), phase=PHASE_RECORDING)

    store.save("s1", state)

    assert store.load("s1").phase == PHASE_PRESENTED


def test_sessions_are_isolated(store):
    store.save("s1", session_with_records(2))
    store.save("s2", session_with_records(1))

    assert len(store.query_records("s1")) == 2
    assert len(store.query_records("s2")) == 1
