"""Relevance scoring and history selection for narrative context.

Scores are a read-side projection: nothing here mutates a record.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from crossroads.decisions import NAMED_LOCATION_TYPES, has_decision_expired
from crossroads.models import DecisionRecord, Location, now_ms

DAY_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class RelevanceConfig:
    """Tuning for calculate_relevance_score and the history digest."""

    half_life_ms: int = 7 * DAY_MS
    context_weight: float = 2.0
    impact_weight: float = 0.5
    full_tag_count: int = 5  # records with this many tags get full match credit
    excerpt_length: int = 100
    header: str = "Player's past relevant decisions:"


DEFAULT_RELEVANCE_CONFIG = RelevanceConfig()


def _tag_match_score(
    record_tags: Sequence[str], context_tags: Sequence[str], full_tag_count: int
) -> float:
    """0-1 score for how well a record's tags match the current context.

    Tags match when equal or when one contains the other, ignoring case.
    """
    if not record_tags or not context_tags:
        return 0.0

    current = {t.lower() for t in context_tags}
    matching = 0
    for tag in record_tags:
        lower = tag.lower()
        if any(c == lower or c in lower or lower in c for c in current):
            matching += 1

    ratio = matching / len(record_tags)
    count_factor = min(len(record_tags) / full_tag_count, 1.0)
    return ratio * (0.7 + 0.3 * count_factor)


def _impact_score(record: DecisionRecord) -> float:
    if not record.impacts:
        return 0.5
    total = sum(abs(i.value) for i in record.impacts)
    return min(total / 20, 1.0)


def calculate_relevance_score(
    record: DecisionRecord,
    context_tags: Sequence[str] = (),
    now: int | None = None,
    config: RelevanceConfig = DEFAULT_RELEVANCE_CONFIG,
) -> float:
    """Score how relevant a past decision is to the current context.

    The stored relevance score decays with a half-life; a context-match bonus
    and a small impact bonus are added on top. Expired records score 0.
    """
    now = now_ms() if now is None else now
    if has_decision_expired(record, now):
        return 0.0

    age = max(now - record.timestamp, 0)
    recency = 0.5 ** (age / config.half_life_ms)

    return (
        record.relevance_score * recency
        + config.context_weight
        * _tag_match_score(record.tags, context_tags, config.full_tag_count)
        + config.impact_weight * _impact_score(record)
    )


def generate_context_tags(
    location: Location | None = None,
    characters: Iterable[str] = (),
    themes: Iterable[str] = (),
) -> list[str]:
    """Tags describing the current scene, in the same vocabulary as records."""
    tags = []
    if location:
        tags.append(f"location:{location.type}")
        if location.type in NAMED_LOCATION_TYPES and location.name:
            tags.append(f"place:{location.name}")
    tags.extend(f"character:{c}" for c in characters)
    tags.extend(f"theme:{t}" for t in themes)
    return tags


def filter_most_relevant_decisions(
    records: Iterable[DecisionRecord],
    context_tags: Sequence[str] = (),
    limit: int = 5,
    now: int | None = None,
    min_score: float = 0.0,
    config: RelevanceConfig = DEFAULT_RELEVANCE_CONFIG,
) -> list[DecisionRecord]:
    """Return up to ``limit`` records, most relevant first.

    Records scoring at or below ``min_score`` (expired records score 0) are
    dropped. Ties go to the more recent record.
    """
    now = now_ms() if now is None else now
    scored = [
        (calculate_relevance_score(r, context_tags, now, config), r) for r in records
    ]
    scored = [(score, r) for score, r in scored if score > min_score]
    scored.sort(key=lambda item: (item[0], item[1].timestamp), reverse=True)
    return [r for _, r in scored[:limit]]


def format_decisions_for_ai_context(
    records: Sequence[DecisionRecord],
    limit: int | None = None,
    config: RelevanceConfig = DEFAULT_RELEVANCE_CONFIG,
) -> str:
    """Render records as a short digest for a generation prompt.

    Records are rendered in the order given; rank them first.
    """
    if not records:
        return ""
    if limit is not None:
        records = records[:limit]

    blocks = [config.header]
    for index, record in enumerate(records, start=1):
        excerpt = record.narrative[: config.excerpt_length]
        if len(record.narrative) > config.excerpt_length:
            excerpt += "..."
        blocks.append(
            f"{index}. Decision: {record.impact_description}\n"
            f"   Context: {excerpt}"
        )
    return "\n\n".join(blocks)


def create_decision_history_context(
    records: Iterable[DecisionRecord],
    location: Location | None = None,
    characters: Iterable[str] = (),
    themes: Iterable[str] = (),
    limit: int = 5,
    now: int | None = None,
    config: RelevanceConfig = DEFAULT_RELEVANCE_CONFIG,
) -> str:
    """Digest of the decisions most relevant to the described scene."""
    tags = generate_context_tags(location, characters, themes)
    relevant = filter_most_relevant_decisions(
        records, tags, limit=limit, now=now, config=config
    )
    return format_decisions_for_ai_context(relevant, config=config)
