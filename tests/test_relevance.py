"""Tests for relevance scoring and history digests."""

import pytest
from conftest import START
from crossroads.models import DecisionRecord, Location, make_impact
from crossroads.relevance import (
    DAY_MS,
    RelevanceConfig,
    calculate_relevance_score,
    create_decision_history_context,
    filter_most_relevant_decisions,
    format_decisions_for_ai_context,
    generate_context_tags,
)

FULL_MATCH_TAGS = (
    "character:Sheriff",
    "location:town",
    "place:Red Gulch",
    "law",
    "justice",
)


def record(
    decision_id="d1",
    timestamp=START,
    relevance=5,
    tags=(),
    impacts=(),
    expiration=None,
    narrative="You stood your ground.",
    description="Stood with the sheriff",
):
    return DecisionRecord(
        decision_id=decision_id,
        selected_option_id="o1",
        timestamp=timestamp,
        narrative=narrative,
        impact_description=description,
        tags=tuple(tags),
        relevance_score=relevance,
        expiration_timestamp=expiration,
        impacts=tuple(impacts),
    )


def test_fresh_critical_record_scores_at_least_ten():
    """Test that a fresh critical record keeps its full base score."""
    r = record(relevance=10)

    assert calculate_relevance_score(r, (), now=START) >= 10


def test_week_old_minor_record_scores_below_four():
    """Test that a minor record a week old scores below 4 even on a full match."""
    r = record(
        relevance=2,
        tags=FULL_MATCH_TAGS,
        impacts=[make_impact("reputation", "Red Gulch", 10), make_impact("story-arc", "main", 10)],
        expiration=START + 7 * DAY_MS,
    )

    score = calculate_relevance_score(r, FULL_MATCH_TAGS, now=START + 7 * DAY_MS)

    assert score < 4
    assert score == pytest.approx(3.5)


def test_expired_record_scores_zero():
    """Test that expired records score exactly zero."""
    r = record(relevance=2, expiration=START + 7 * DAY_MS)

    assert calculate_relevance_score(r, (), now=START + 7 * DAY_MS + 1) == 0


def test_score_halves_every_seven_days():
    """Test recency decay of the stored relevance score."""
    fresh = calculate_relevance_score(record(relevance=8), (), now=START)
    week = calculate_relevance_score(record(relevance=8), (), now=START + 7 * DAY_MS)

    # 0.25 impact bonus with no impacts
    assert fresh == pytest.approx(8.25)
    assert week == pytest.approx(4.25)


def test_partial_tag_match():
    """Test the match ratio is scaled by how many tags the record has."""
    r = record(tags=("character:Sheriff", "location:town"))

    score = calculate_relevance_score(r, ["character:sheriff"], now=START)

    # ratio 1/2, count factor 2/5
    assert score == pytest.approx(5 + 2.0 * 0.5 * (0.7 + 0.3 * 0.4) + 0.25)


def test_tags_match_by_containment():
    """Test that a bare tag matches a namespaced context tag."""
    r = record(tags=("town",))

    score = calculate_relevance_score(r, ["location:town"], now=START)

    assert score > calculate_relevance_score(r, ["location:desert"], now=START)


def test_impact_bonus_is_capped():
    """Test that the impact bonus never exceeds the impact weight."""
    big = record(impacts=[make_impact("reputation", "a", 10), make_impact("reputation", "b", 30)])
    small = record(impacts=[make_impact("reputation", "a", 2)])

    assert calculate_relevance_score(big, (), now=START) == pytest.approx(5.5)
    assert calculate_relevance_score(small, (), now=START) == pytest.approx(5.05)


def test_custom_config():
    """Test that weights can be tuned."""
    config = RelevanceConfig(half_life_ms=DAY_MS, impact_weight=0.0)
    r = record(relevance=4)

    assert calculate_relevance_score(r, (), now=START + DAY_MS, config=config) == pytest.approx(2)


def test_generate_context_tags():
    """Test scene tags use the same vocabulary as record tags."""
    tags = generate_context_tags(
        Location(type="town", name="Red Gulch"), ["Sheriff"], ["revenge"]
    )

    assert tags == ["location:town", "place:Red Gulch", "character:Sheriff", "theme:revenge"]
    assert generate_context_tags(Location(type="wilderness", name="Flats")) == [
        "location:wilderness"
    ]
    assert generate_context_tags() == []


def test_filter_returns_top_records():
    """Test that filtering keeps the highest scoring records in order."""
    records = [
        record("d1", relevance=2),
        record("d2", relevance=10),
        record("d3", relevance=5),
        record("d4", relevance=8),
        record("d5", relevance=5, tags=FULL_MATCH_TAGS),
    ]

    result = filter_most_relevant_decisions(records, FULL_MATCH_TAGS, limit=3, now=START)

    assert [r.decision_id for r in result] == ["d2", "d4", "d5"]


def test_filter_breaks_ties_by_recency():
    """Test that equal scores put the newer record first."""
    old = record("old", timestamp=START)
    new = record("new", timestamp=START + 1)

    # Neither record has aged yet, so both score the same
    result = filter_most_relevant_decisions([old, new], now=START)

    assert [r.decision_id for r in result] == ["new", "old"]


def test_filter_drops_expired_records():
    """Test that expired records never make the digest."""
    records = [record("gone", relevance=2, expiration=START), record("kept")]

    result = filter_most_relevant_decisions(records, now=START + 1)

    assert [r.decision_id for r in result] == ["kept"]


def test_filter_with_no_records():
    assert filter_most_relevant_decisions([], now=START) == []


def test_format_decisions():
    """Test the digest layout."""
    records = [
        record("d1", description="Sided with the settlers", narrative="The settlers cheer."),
        record("d2", description="Fetched the sheriff", narrative="x" * 150),
    ]

    text = format_decisions_for_ai_context(records)

    assert text == (
        "Player's past relevant decisions:\n\n"
        "1. Decision: Sided with the settlers\n"
        "   Context: The settlers cheer.\n\n"
        "2. Decision: Fetched the sheriff\n"
        f"   Context: {'x' * 100}..."
    )


def test_format_no_decisions():
    assert format_decisions_for_ai_context([]) == ""


def test_format_respects_limit():
    records = [record(f"d{i}", description=f"Choice {i}") for i in range(4)]

    text = format_decisions_for_ai_context(records, limit=2)

    assert "Choice 1" in text
    assert "Choice 2" not in text


def test_history_context_prefers_matching_scene():
    """Test that the digest ranks records matching the scene first."""
    records = [
        record("d1", description="Robbed the stage", tags=("location:wilderness",)),
        record("d2", description="Helped the sheriff", tags=("character:Sheriff", "location:town")),
    ]

    text = create_decision_history_context(
        records,
        location=Location(type="town", name="Red Gulch"),
        characters=["Sheriff"],
        now=START,
    )

    assert text.index("Helped the sheriff") < text.index("Robbed the stage")
    assert text.startswith("Player's past relevant decisions:")
