"""Decide when to put a new decision in front of the player."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from crossroads.generation import generate_decision_with_fallback
from crossroads.models import IMPORTANCE_LEVELS, Decision
from crossroads.synthesis import (
    detect_player_name,
    generate_contextual_decision,
    has_decision_triggers,
    is_player_action,
)

if TYPE_CHECKING:
    from crossroads.engine import DecisionEngine

logger = logging.getLogger(__name__)


class DecisionTrigger:
    """Per-session trigger state: action cadence, player name, skip flag."""

    def __init__(self, engine: DecisionEngine):
        self.engine = engine
        self.action_count = 0
        self.player_name: str | None = None
        self._skip_narrative_response = False

    # -------------------------------------------------------------------------
    # Skip flag
    # -------------------------------------------------------------------------

    def mark_skip_narrative_response(self) -> None:
        """Ask the narrative layer not to respond to the current action."""
        self._skip_narrative_response = True

    def should_skip_narrative_response(self) -> bool:
        """Read and reset the skip flag."""
        skip = self._skip_narrative_response
        self._skip_narrative_response = False
        return skip

    # -------------------------------------------------------------------------
    # Decision sources
    # -------------------------------------------------------------------------

    def generate_contextual_decision(self, importance: str = "moderate") -> Decision:
        """Synthesise a decision locally from the last few narrative lines."""
        engine = self.engine
        config = engine.config
        return generate_contextual_decision(
            engine.state.narrative_history,
            player_name=self.player_name,
            importance=importance,
            location=engine.location,
            characters=engine.characters,
            themes=engine.themes,
            default_name=config.default_player_name,
            max_lines=config.recent_context_lines,
            max_chars=config.recent_context_chars,
        )

    def _present(self, decision: Decision) -> None:
        self.action_count = 0
        self.mark_skip_narrative_response()
        self.engine.present_decision(decision)

    async def _generate_and_present(
        self, context: str | None, importance: str | None
    ) -> bool:
        engine = self.engine
        epoch = engine.generation_epoch
        engine.generating = True
        try:
            outcome = await generate_decision_with_fallback(
                engine.generator,
                engine.snapshot(),
                fallback=lambda: self.generate_contextual_decision(
                    importance or "moderate"
                ),
                context=context,
                force=True,
            )
        finally:
            engine.generating = False

        if engine.generation_epoch != epoch:
            logger.info(
                "Discarding decision %s: the current decision changed while generating",
                outcome.decision.id,
            )
            return False

        decision = outcome.decision
        if importance is not None and decision.importance != importance:
            decision = replace(decision, importance=importance)
        logger.debug("Presenting %s decision %s", outcome.source, decision.id)
        self._present(decision)
        return True

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def check_for_decision_triggers(self, text: str) -> bool:
        """Inspect a new narrative line and present a decision if it calls for one.

        Returns:
            True if a decision was presented
        """
        engine = self.engine
        if engine.state.current_decision is not None or engine.generating:
            return False

        if self.player_name is None:
            name = detect_player_name(text)
            if name:
                self.player_name = name
                logger.debug("Detected player name: %s", name)

        if is_player_action(text):
            self.action_count += 1
            if self.action_count >= engine.config.actions_before_decision:
                logger.debug(
                    "Auto-triggering decision after %d player actions",
                    self.action_count,
                )
                self._present(self.generate_contextual_decision())
                return True

        if has_decision_triggers(text):
            return await self._generate_and_present(None, None)

        return False

    async def trigger_ai_decision(
        self, context: str | None = None, importance: str | None = None
    ) -> bool:
        """Request a decision on demand, optionally seeding extra context.

        Returns:
            True if a decision was presented
        """
        if importance is not None and importance not in IMPORTANCE_LEVELS:
            raise ValueError(f"Invalid importance: {importance}")

        engine = self.engine
        if engine.state.current_decision is not None or engine.generating:
            return False

        if context:
            engine.add_context(context)
        return await self._generate_and_present(context, importance)
