"""Decision factory and lifecycle.

Every lifecycle transition is a pure function from a SessionState to a new
SessionState; nothing here keeps hidden state.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace

from crossroads.errors import DecisionValidationError
from crossroads.models import (
    IMPORTANCE_LEVELS,
    PHASE_NONE,
    PHASE_PRESENTED,
    PHASE_RECORDING,
    Decision,
    DecisionRecord,
    Location,
    Option,
    SessionState,
    new_id,
    now_ms,
)

logger = logging.getLogger(__name__)

RELEVANCE_BY_IMPORTANCE = {
    "critical": 10,
    "significant": 8,
    "moderate": 5,
    "minor": 2,
}

MINOR_DECISION_LIFETIME_MS = 7 * 24 * 60 * 60 * 1000

NAMED_LOCATION_TYPES = ("town", "landmark")


# -------------------------------------------------------------------------
# Factory
# -------------------------------------------------------------------------


def create_decision(
    prompt: str,
    options: Sequence[Option],
    context: str,
    importance: str = "moderate",
    location: Location | None = None,
    characters: Iterable[str] = (),
    ai_generated: bool = True,
    now: int | None = None,
) -> Decision:
    """Create a new decision with a fresh id and timestamp.

    Args:
        prompt: The question put to the player
        options: Selectable options, in display order (may be empty)
        context: Narrative snippet the decision arose from
        importance: 'minor', 'moderate', 'significant' or 'critical'
        location: Where the decision takes place
        characters: Names of characters involved
        ai_generated: False for hand-authored decisions

    Returns:
        The new Decision
    """
    if importance not in IMPORTANCE_LEVELS:
        raise ValueError(f"Invalid importance: {importance}")

    return Decision(
        id=new_id(),
        prompt=prompt,
        timestamp=now_ms() if now is None else now,
        options=tuple(options),
        context=context,
        importance=importance,
        location=location,
        characters=tuple(characters),
        ai_generated=ai_generated,
    )


def create_option(text: str, impact: str, tags: Iterable[str] = ()) -> Option:
    """Create a decision option with a fresh id."""
    return Option(id=new_id(), text=text, impact=impact, tags=tuple(tags))


def record_tags(decision: Decision, option: Option) -> tuple[str, ...]:
    """Tags stored on a record of ``option`` being chosen in ``decision``."""
    tags = list(option.tags)
    tags.extend(f"character:{name}" for name in decision.characters)
    tags.append(f"importance:{decision.importance}")

    location = decision.location
    if location and location.type:
        tags.append(f"location:{location.type}")
        if location.type in NAMED_LOCATION_TYPES and location.name:
            tags.append(f"place:{location.name}")

    return tuple(tags)


def create_decision_record(
    decision: Decision,
    selected_option_id: str,
    narrative: str,
    now: int | None = None,
) -> DecisionRecord:
    """Create the record of the player choosing ``selected_option_id``.

    Raises:
        DecisionValidationError: if the option is not part of the decision
    """
    option = decision.get_option(selected_option_id)
    if option is None:
        raise DecisionValidationError(
            f"Option {selected_option_id} not found in decision {decision.id}"
        )

    timestamp = now_ms() if now is None else now
    expiration = (
        timestamp + MINOR_DECISION_LIFETIME_MS
        if decision.importance == "minor"
        else None
    )

    return DecisionRecord(
        decision_id=decision.id,
        selected_option_id=selected_option_id,
        timestamp=timestamp,
        narrative=narrative,
        impact_description=option.impact,
        tags=record_tags(decision, option),
        relevance_score=RELEVANCE_BY_IMPORTANCE.get(decision.importance, 5),
        expiration_timestamp=expiration,
    )


def has_decision_expired(record: DecisionRecord, now: int | None = None) -> bool:
    """True once a record's expiration timestamp lies in the past."""
    if record.expiration_timestamp is None:
        return False
    return record.expiration_timestamp < (now_ms() if now is None else now)


def get_decision_history(
    state: SessionState,
    tags: Iterable[str] | None = None,
) -> list[DecisionRecord]:
    """Decision history, optionally limited to records sharing a tag."""
    wanted = set(tags or ())
    if not wanted:
        return list(state.decision_history)
    return [r for r in state.decision_history if wanted.intersection(r.tags)]


# -------------------------------------------------------------------------
# Lifecycle
# -------------------------------------------------------------------------


def present_decision(state: SessionState, decision: Decision) -> SessionState:
    """Make ``decision`` the current decision, replacing any prior one."""
    if state.current_decision is not None:
        logger.debug(
            "Replacing current decision %s with %s",
            state.current_decision.id,
            decision.id,
        )
    return replace(state, current_decision=decision, phase=PHASE_PRESENTED)


def validate_selection(
    state: SessionState, decision_id: str, option_id: str
) -> tuple[Decision, Option]:
    """Check a selection against the current decision.

    Raises:
        DecisionValidationError: if there is no current decision, the ids
            don't match, or the decision is already being recorded
    """
    decision = state.current_decision
    if decision is None:
        raise DecisionValidationError("No active decision to select from")
    if decision.id != decision_id:
        raise DecisionValidationError(
            f"Decision ID mismatch: selecting {decision_id!r} "
            f"but current is {decision.id!r}"
        )
    if state.phase == PHASE_RECORDING:
        raise DecisionValidationError(f"Decision {decision_id} is already being recorded")

    option = decision.get_option(option_id)
    if option is None:
        raise DecisionValidationError(
            f"Option {option_id} not found in decision {decision_id}"
        )
    return decision, option


def begin_recording(
    state: SessionState, decision_id: str, option_id: str
) -> SessionState:
    """Move a presented decision into the transient recording phase."""
    validate_selection(state, decision_id, option_id)
    return replace(state, phase=PHASE_RECORDING)


def complete_recording(state: SessionState, record: DecisionRecord) -> SessionState:
    """Append ``record`` to history and clear the current slot.

    If another decision was presented while the response was outstanding, it
    stays current; the record is still kept.
    """
    history = state.decision_history + (record,)
    current = state.current_decision
    if current is not None and current.id != record.decision_id:
        logger.debug(
            "Decision %s superseded by %s while recording",
            record.decision_id,
            current.id,
        )
        return replace(state, decision_history=history, phase=PHASE_PRESENTED)
    return replace(
        state,
        current_decision=None,
        phase=PHASE_NONE,
        decision_history=history,
    )


def select_decision(
    state: SessionState,
    decision_id: str,
    option_id: str,
    narrative: str,
    now: int | None = None,
) -> tuple[SessionState, DecisionRecord]:
    """Select an option and record it in one synchronous step.

    Returns:
        The new state and the created record
    """
    recording = begin_recording(state, decision_id, option_id)
    record = create_decision_record(
        recording.current_decision, option_id, narrative, now=now
    )
    return complete_recording(recording, record), record


def clear_decision(state: SessionState) -> SessionState:
    """Drop the current decision without recording anything."""
    return replace(state, current_decision=None, phase=PHASE_NONE)
