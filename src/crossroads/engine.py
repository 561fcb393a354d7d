"""Decision Engine - session manager for decisions and their consequences."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace

from crossroads.decisions import (
    begin_recording,
    clear_decision,
    complete_recording,
    create_decision_record,
    get_decision_history,
    present_decision,
    validate_selection,
)
from crossroads.generation import (
    DecisionGenerator,
    NarrativeResponder,
    Notifier,
    respond_with_fallback,
)
from crossroads.impacts import (
    apply_decision_impacts,
    attach_impacts,
    create_decision_impacts,
    evolve_impacts_over_time,
    format_impacts_for_ai_context,
    mark_decayed_impacts,
    reconcile_conflicting_impacts,
)
from crossroads.models import (
    Decision,
    DecisionRecord,
    EngineConfig,
    Impact,
    ImpactState,
    Location,
    NarrativeResponse,
    SessionState,
    now_ms,
)
from crossroads.relevance import create_decision_history_context
from crossroads.store import SessionStore
from crossroads.triggers import DecisionTrigger

logger = logging.getLogger(__name__)

EVENT_DECISION_READY = "decision-ready"
EVENT_DECISION_CLEARED = "decision-cleared"
EVENT_FORCE_UPDATE = "force-update"


@dataclass(frozen=True)
class DecisionResolution:
    """What selecting an option produced."""

    record: DecisionRecord
    response: NarrativeResponse


class DecisionEngine:
    """Engine for presenting decisions and propagating their consequences.

    The engine owns one session's SessionState value and replaces it on every
    transition; the transitions themselves are the pure functions in
    ``crossroads.decisions`` and ``crossroads.impacts``.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        generator: DecisionGenerator | None = None,
        responder: NarrativeResponder | None = None,
        notifier: Notifier | None = None,
        store: SessionStore | None = None,
        state: SessionState | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = config or EngineConfig()
        self.generator = generator
        self.responder = responder
        self.notifier = notifier
        self.store = store
        self.state = state or SessionState()
        self.clock = clock

        # Soft lock while a collaborator call is outstanding.
        self.generating = False
        # Bumped whenever the current-decision slot is reassigned.
        self.generation_epoch = 0
        # Decisions whose narrative response is outstanding; emptied by
        # clear and load so late responses are dropped.
        self._recording: set[str] = set()

        self.location: Location | None = None
        self.characters: tuple[str, ...] = ()
        self.themes: tuple[str, ...] = ()

        self.trigger = DecisionTrigger(self)

    def close(self) -> None:
        """Close the backing store, if any."""
        if self.store is not None:
            self.store.close()

    def __enter__(self) -> DecisionEngine:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Scene and narrative
    # -------------------------------------------------------------------------

    def set_scene(
        self,
        location: Location | None = None,
        characters: Iterable[str] = (),
        themes: Iterable[str] = (),
    ) -> None:
        """Describe the current scene for synthesis and history selection."""
        self.location = location
        self.characters = tuple(characters)
        self.themes = tuple(themes)

    def set_inventory(self, items: Iterable[str]) -> None:
        """Mirror the inventory item names used as narrative context."""
        self.state = replace(self.state, inventory=tuple(items))

    def add_context(self, context: str) -> None:
        """Seed extra context into the narrative history."""
        self.state = self.state.with_narrative(f"Context: {context}")

    async def add_narrative(self, text: str) -> bool:
        """Append a narrative line and check it for decision triggers.

        Returns:
            True if a decision was presented as a result
        """
        self.state = self.state.with_narrative(text)
        return await self.trigger.check_for_decision_triggers(text)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def current_decision(self) -> Decision | None:
        return self.state.current_decision

    def present_decision(self, decision: Decision) -> None:
        """Make ``decision`` current and notify listeners."""
        self.state = present_decision(self.state, decision)
        self.generation_epoch += 1
        logger.debug("Presented decision %s", decision.id)
        self._emit(EVENT_DECISION_READY, {"decision": decision.to_dict()})
        self._emit(EVENT_FORCE_UPDATE, {})

    def clear_decision(self) -> None:
        """Abandon the current decision without recording it."""
        decision = self.state.current_decision
        self.state = clear_decision(self.state)
        self.generation_epoch += 1
        self._recording.clear()
        self._emit(
            EVENT_DECISION_CLEARED,
            {"decision_id": decision.id if decision else None},
        )
        self._emit(EVENT_FORCE_UPDATE, {})

    async def select_option(
        self,
        decision_id: str,
        option_id: str,
        impacts: Sequence[Impact] | None = None,
    ) -> DecisionResolution | None:
        """Resolve the current decision with the player's chosen option.

        A decision presented while the response is outstanding supersedes this
        one but the choice is still recorded. Clearing or loading a session in
        that window abandons the choice instead.

        Args:
            decision_id: ID of the decision being answered
            option_id: ID of the chosen option
            impacts: Declared impacts; derived from the option text if None

        Returns:
            The created record and the narrative response, or None if the
            choice was abandoned while the response was outstanding

        Raises:
            DecisionValidationError: if the ids don't match the current decision
        """
        decision, option = validate_selection(self.state, decision_id, option_id)
        self.state = begin_recording(self.state, decision_id, option_id)
        self._recording.add(decision_id)
        self.generating = True

        try:
            recent = "\n".join(
                self.state.narrative_history[-self.config.recent_context_lines :]
            )
            response = await respond_with_fallback(
                self.responder,
                option.text,
                decision.prompt,
                recent,
                self.state.inventory,
            )
            if decision_id not in self._recording:
                logger.info(
                    "Discarding response for decision %s: the session changed while recording",
                    decision_id,
                )
                return None

            now = self.clock()
            state = self.state.with_narrative(
                f"Player: {option.text.lower()}",
                f"Game Master: {response.narrative}",
            )
            record = create_decision_record(decision, option_id, response.narrative, now=now)
            if impacts is None:
                impacts = create_decision_impacts(decision, option_id)
            record = attach_impacts(record, reconcile_conflicting_impacts(impacts), now=now)

            state = complete_recording(state, record)
            self.state = apply_decision_impacts(state, decision_id, now=now)
        except Exception:
            logger.exception("Error recording decision %s", decision_id)
            current = self.state.current_decision
            if current is not None and current.id == decision_id:
                self.clear_decision()
            raise
        finally:
            self._recording.discard(decision_id)
            self.generating = False

        if self.state.current_decision is None:
            self.generation_epoch += 1
        record = self.state.find_record(decision_id)
        logger.debug("Recorded option %s for decision %s", option_id, decision_id)
        self._emit(
            EVENT_DECISION_CLEARED,
            {"decision_id": decision_id, "record": record.to_dict()},
        )
        self._emit(EVENT_FORCE_UPDATE, {})
        return DecisionResolution(record=record, response=response)

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    async def check_for_decision_triggers(self, text: str) -> bool:
        return await self.trigger.check_for_decision_triggers(text)

    async def trigger_ai_decision(
        self, context: str | None = None, importance: str | None = None
    ) -> bool:
        return await self.trigger.trigger_ai_decision(context, importance)

    def should_skip_narrative_response(self) -> bool:
        return self.trigger.should_skip_narrative_response()

    # -------------------------------------------------------------------------
    # Impacts and history
    # -------------------------------------------------------------------------

    @property
    def impact_state(self) -> ImpactState:
        return self.state.impact_state

    def evolve_impacts(self) -> ImpactState:
        """Decay temporary impacts whose duration has elapsed."""
        now = self.clock()
        history = self.state.decision_history
        impact_state = evolve_impacts_over_time(self.state.impact_state, history, now)
        self.state = replace(
            self.state,
            impact_state=impact_state,
            decision_history=tuple(mark_decayed_impacts(history, now)),
        )
        return impact_state

    def get_decision_history(self, tags: Iterable[str] | None = None) -> list[DecisionRecord]:
        return get_decision_history(self.state, tags)

    def history_context(
        self,
        location: Location | None = None,
        characters: Iterable[str] | None = None,
        themes: Iterable[str] | None = None,
        limit: int | None = None,
    ) -> str:
        """Digest of the past decisions most relevant to the scene."""
        return create_decision_history_context(
            self.state.decision_history,
            location=location if location is not None else self.location,
            characters=self.characters if characters is None else characters,
            themes=self.themes if themes is None else themes,
            limit=self.config.history_limit if limit is None else limit,
            now=self.clock(),
        )

    def narrative_context(self) -> str:
        """Decision history and impact digests for a generation prompt."""
        parts = [
            self.history_context(),
            format_impacts_for_ai_context(self.state.impact_state),
        ]
        return "\n\n".join(p for p in parts if p)

    def snapshot(self) -> dict:
        """Session snapshot handed to the decision generator."""
        data = self.state.to_dict()
        data["history_context"] = self.history_context()
        data["impact_context"] = format_impacts_for_ai_context(self.state.impact_state)
        data["player_name"] = self.trigger.player_name
        data["location"] = self.location.to_dict() if self.location else None
        data["characters"] = list(self.characters)
        data["themes"] = list(self.themes)
        return data

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save(self, session_id: str) -> None:
        if self.store is None:
            raise ValueError("No session store configured")
        self.store.save(session_id, self.state)

    def load(self, session_id: str) -> bool:
        """Replace the in-memory state with a saved session.

        Returns:
            False if the session does not exist
        """
        if self.store is None:
            raise ValueError("No session store configured")
        state = self.store.load(session_id)
        if state is None:
            return False
        self.state = state
        self.generation_epoch += 1
        self._recording.clear()
        return True

    def _emit(self, event: str, payload: dict) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.emit(event, payload)
        except Exception as e:
            logger.warning("Notifier failed on %s: %s", event, e)
