"""Decision impact processing, reconciliation and decay.

``process_decision_impacts`` is the only function that writes new values into
an ImpactState; ``apply_decision_impacts`` is the only place a session's
ImpactState is replaced, gated by each record's ``processed_for_impact`` flag.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import replace

from crossroads.decisions import MINOR_DECISION_LIFETIME_MS
from crossroads.models import (
    Decision,
    DecisionRecord,
    Impact,
    ImpactState,
    RelationshipImpact,
    ReputationImpact,
    SessionState,
    StoryArcImpact,
    WorldStateImpact,
    now_ms,
)

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"major": 3, "moderate": 2, "minor": 1}

SEVERITY_BY_IMPORTANCE = {"critical": "major", "significant": "moderate"}

VALUE_BY_SEVERITY = {"major": 8, "moderate": 5, "minor": 2}

REPUTATION_RANGE = (-10, 10)
RELATIONSHIP_RANGE = (-10, 10)
STORY_ARC_RANGE = (0, 100)
RECONCILED_RANGE = (-10, 10)

# Keywords in an option's consequence text that imply an impact type.
_TYPE_KEYWORDS = (
    (ReputationImpact.kind, ("reputation", "opinion")),
    (RelationshipImpact.kind, ("relationship", "friendship", "alliance")),
    (StoryArcImpact.kind, ("story", "quest", "mission")),
    (WorldStateImpact.kind, ("town", "location", "world")),
)


def clamp(value: float, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


# -------------------------------------------------------------------------
# Derivation
# -------------------------------------------------------------------------


def create_decision_impacts(decision: Decision, selected_option_id: str) -> list[Impact]:
    """Derive impacts from the chosen option's consequence text.

    Used when the decision itself declares no impacts. One impact is created
    per impact type the text mentions; world-state is the default.

    Raises:
        ValueError: if the option is not part of the decision
    """
    option = decision.get_option(selected_option_id)
    if option is None:
        raise ValueError(
            f"Option {selected_option_id} not found in decision {decision.id}"
        )

    text = option.impact.lower()
    kinds = [kind for kind, words in _TYPE_KEYWORDS if any(w in text for w in words)]
    if not kinds:
        kinds = [WorldStateImpact.kind]

    severity = SEVERITY_BY_IMPORTANCE.get(decision.importance, "minor")
    value = VALUE_BY_SEVERITY[severity]
    if "negative" in text:
        value = -value
    duration = MINOR_DECISION_LIFETIME_MS if severity == "minor" else None

    location = decision.location
    first_character = decision.characters[0] if decision.characters else None

    common = dict(
        value=value,
        severity=severity,
        duration=duration,
        description=option.impact,
    )

    impacts = []
    for kind in kinds:
        if kind == ReputationImpact.kind:
            subject = (location and location.name) or first_character or "general"
            impacts.append(ReputationImpact(subject=subject, **common))
        elif kind == RelationshipImpact.kind:
            impacts.append(
                RelationshipImpact(recipient=first_character or "general", **common)
            )
        elif kind == WorldStateImpact.kind:
            if location:
                subject = location.name or location.type or "general"
            else:
                subject = "general"
            impacts.append(WorldStateImpact(subject=subject, **common))
        else:
            impacts.append(StoryArcImpact(subject="general", **common))
    return impacts


def attach_impacts(
    record: DecisionRecord, impacts: Iterable[Impact], now: int | None = None
) -> DecisionRecord:
    """Return ``record`` carrying ``impacts``, ready for processing."""
    return replace(
        record,
        impacts=tuple(impacts),
        processed_for_impact=False,
        last_impact_update=now_ms() if now is None else now,
    )


# -------------------------------------------------------------------------
# Processing
# -------------------------------------------------------------------------


def _write(state: ImpactState, impact: Impact, value: float) -> ImpactState:
    """Store ``value`` at ``impact``'s slot, copying only the map touched."""
    if isinstance(impact, RelationshipImpact):
        relationship = dict(state.relationship)
        inner = dict(relationship.get(impact.actor, {}))
        inner[impact.recipient] = value
        relationship[impact.actor] = inner
        return replace(state, relationship=relationship)
    if isinstance(impact, ReputationImpact):
        return replace(state, reputation={**state.reputation, impact.subject: value})
    if isinstance(impact, WorldStateImpact):
        return replace(state, world_state={**state.world_state, impact.subject: value})
    if isinstance(impact, StoryArcImpact):
        return replace(state, story_arc={**state.story_arc, impact.subject: value})
    raise TypeError(f"Unsupported impact: {type(impact).__name__}")


def _apply(state: ImpactState, impact: Impact) -> ImpactState:
    current = state.get(impact.key) or 0
    if isinstance(impact, ReputationImpact):
        return _write(state, impact, clamp(current + impact.value, REPUTATION_RANGE))
    if isinstance(impact, RelationshipImpact):
        return _write(state, impact, clamp(current + impact.value, RELATIONSHIP_RANGE))
    if isinstance(impact, WorldStateImpact):
        return _write(state, impact, impact.value)
    if isinstance(impact, StoryArcImpact):
        return _write(state, impact, clamp(current + impact.value, STORY_ARC_RANGE))
    raise TypeError(f"Unsupported impact: {type(impact).__name__}")


def process_decision_impacts(
    impact_state: ImpactState,
    record: DecisionRecord,
    now: int | None = None,
) -> ImpactState:
    """Merge a record's impacts into the impact state.

    Returns ``impact_state`` unchanged when the record was already processed.
    """
    if record.processed_for_impact:
        return impact_state

    state = impact_state
    for impact in record.impacts:
        state = _apply(state, impact)
    return replace(state, last_updated=now_ms() if now is None else now)


def apply_decision_impacts(
    state: SessionState, decision_id: str, now: int | None = None
) -> SessionState:
    """Process the impacts of the latest record for ``decision_id``.

    Flips the record's ``processed_for_impact`` flag; calling again is a
    no-op, as is calling for an unknown decision.
    """
    history = list(state.decision_history)
    for index in range(len(history) - 1, -1, -1):
        if history[index].decision_id == decision_id:
            break
    else:
        logger.debug("No record for decision %s; nothing to apply", decision_id)
        return state

    record = history[index]
    if record.processed_for_impact:
        logger.debug("Impacts for decision %s already applied", decision_id)
        return state

    impact_state = process_decision_impacts(state.impact_state, record, now)
    history[index] = replace(record, processed_for_impact=True)
    return replace(state, impact_state=impact_state, decision_history=tuple(history))


# -------------------------------------------------------------------------
# Reconciliation
# -------------------------------------------------------------------------


def reconcile_conflicting_impacts(impacts: Sequence[Impact]) -> list[Impact]:
    """Blend impacts that target the same slot.

    The most severe impact of each group is the base; the i-th further impact
    adds ``value * 0.5 / i``. Combined values are clamped to [-10, 10].
    """
    groups: dict[tuple, list[Impact]] = {}
    for impact in impacts:
        groups.setdefault(impact.key, []).append(impact)

    reconciled = []
    for group in groups.values():
        if len(group) == 1:
            reconciled.append(group[0])
            continue

        ranked = sorted(group, key=lambda i: SEVERITY_ORDER[i.severity], reverse=True)
        base = ranked[0]
        combined = base.value
        for i, impact in enumerate(ranked[1:], start=1):
            combined += impact.value * (0.5 / i)

        related = dict.fromkeys(
            rid for impact in ranked for rid in impact.related_decision_ids
        )
        reconciled.append(
            replace(
                base,
                value=clamp(combined, RECONCILED_RANGE),
                related_decision_ids=tuple(related),
            )
        )
    return reconciled


# -------------------------------------------------------------------------
# Evolution
# -------------------------------------------------------------------------


def _expired_impacts(
    records: Iterable[DecisionRecord], now: int
) -> Iterator[tuple[int, int, Impact]]:
    """Yield (record index, impact index, impact) for impacts due to decay."""
    for r_index, record in enumerate(records):
        if not record.processed_for_impact or record.last_impact_update is None:
            continue
        elapsed = now - record.last_impact_update
        for i_index, impact in enumerate(record.impacts):
            if impact.duration and not impact.decayed and elapsed >= impact.duration:
                yield r_index, i_index, impact


def evolve_impacts_over_time(
    impact_state: ImpactState,
    records: Sequence[DecisionRecord],
    now: int | None = None,
) -> ImpactState:
    """Halve the stored value of every temporary impact whose duration elapsed.

    Decay happens once, at expiry; impacts without a duration are permanent.
    """
    now = now_ms() if now is None else now
    state = impact_state
    for _, _, impact in _expired_impacts(records, now):
        current = state.get(impact.key)
        if current:
            state = _write(state, impact, current * 0.5)
    return replace(state, last_updated=now)


def mark_decayed_impacts(
    records: Sequence[DecisionRecord], now: int | None = None
) -> list[DecisionRecord]:
    """Flag the impacts that evolve_impacts_over_time would decay at ``now``."""
    now = now_ms() if now is None else now
    updated = list(records)
    due: dict[int, set[int]] = {}
    for r_index, i_index, _ in _expired_impacts(records, now):
        due.setdefault(r_index, set()).add(i_index)

    for r_index, indexes in due.items():
        record = updated[r_index]
        impacts = tuple(
            replace(impact, decayed=True) if i in indexes else impact
            for i, impact in enumerate(record.impacts)
        )
        updated[r_index] = replace(record, impacts=impacts)
    return updated


# -------------------------------------------------------------------------
# Formatting
# -------------------------------------------------------------------------


def _arc_progress(value: float) -> str:
    if value >= 75:
        return "nearing completion"
    if value >= 50:
        return "well underway"
    if value >= 25:
        return "making progress"
    return "just beginning"


def format_impacts_for_ai_context(impact_state: ImpactState, max_entries: int = 5) -> str:
    """Summarise the impact state for a generation prompt.

    Reputation and relationships are only listed when their magnitude
    exceeds 2.
    """
    parts = []

    reputation = sorted(
        ((k, v) for k, v in impact_state.reputation.items() if abs(v) > 2),
        key=lambda kv: abs(kv[1]),
        reverse=True,
    )[:max_entries]
    if reputation:
        parts.append("Character Reputation:")
        for target, value in reputation:
            sentiment = "positive" if value > 0 else "negative"
            intensity = (
                "strong" if abs(value) >= 8 else "moderate" if abs(value) >= 4 else "mild"
            )
            parts.append(f"- {target}: {intensity} {sentiment} reputation ({value:g})")

    pairs = sorted(
        (
            (actor, recipient, value)
            for actor, targets in impact_state.relationship.items()
            for recipient, value in targets.items()
            if abs(value) > 2
        ),
        key=lambda p: abs(p[2]),
        reverse=True,
    )[:max_entries]
    if pairs:
        parts.append("\nRelationships:")
        for actor, recipient, value in pairs:
            relation = "friendly" if value > 0 else "hostile"
            intensity = (
                "very" if abs(value) >= 8 else "somewhat" if abs(value) >= 4 else "slightly"
            )
            parts.append(f"- {actor} is {intensity} {relation} toward {recipient} ({value:g})")

    world = list(impact_state.world_state.items())[:max_entries]
    if world:
        parts.append("\nWorld State:")
        for target, value in world:
            change = "improved" if value > 0 else "worsened"
            parts.append(f"- {target} has {change} ({value:g})")

    arcs = sorted(impact_state.story_arc.items(), key=lambda kv: kv[1], reverse=True)
    if arcs:
        parts.append("\nStory Progression:")
        for arc, value in arcs[:max_entries]:
            parts.append(f"- {arc}: {_arc_progress(value)} ({value:g}%)")

    return "\n".join(parts).strip()
