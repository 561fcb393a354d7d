"""External collaborators and the generate-then-fallback pipeline."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from crossroads.decisions import create_decision, create_option
from crossroads.errors import GenerationFailure, InvalidGeneratedDecision
from crossroads.models import IMPORTANCE_LEVELS, Decision, Location, NarrativeResponse

logger = logging.getLogger(__name__)

SOURCE_GENERATED = "generated"
SOURCE_FALLBACK = "fallback"


class DecisionGenerator(Protocol):
    """Produces a decision from a session snapshot."""

    async def generate(
        self, snapshot: dict, context: str | None, force: bool
    ) -> Decision | None:
        """Return a decision, or None when none fits. May raise."""
        ...


class NarrativeResponder(Protocol):
    """Continues the story after the player picks an option."""

    async def respond(
        self,
        option_text: str,
        decision_prompt: str,
        recent_narrative: str,
        inventory: Sequence[str],
    ) -> NarrativeResponse:
        """Narrate the outcome of the choice. May raise."""
        ...


class Notifier(Protocol):
    """Out-of-band signal to UI layers."""

    def emit(self, event: str, payload: dict) -> None:
        ...


# -------------------------------------------------------------------------
# Pipeline
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class GenerationOutcome:
    """Result of the two-stage pipeline; ``decision`` is always set."""

    decision: Decision
    source: str  # 'generated' | 'fallback'
    error: str | None = None


def verify_decision_context(decision: Decision | None) -> bool:
    """Reject missing decisions, blank prompts and decisions with no options."""
    if decision is None:
        return False
    if not decision.prompt.strip() or not decision.options:
        logger.warning("Rejected empty decision from generator")
        return False
    return True


async def attempt_generation(
    generator: DecisionGenerator | None,
    snapshot: dict,
    context: str | None = None,
    force: bool = True,
) -> Decision | GenerationFailure:
    """Stage one: ask the remote generator, folding every failure into a value."""
    if generator is None:
        return GenerationFailure("No decision generator configured")
    try:
        decision = await generator.generate(snapshot, context, force)
    except Exception as e:
        logger.warning("Decision generation failed: %s", e)
        return GenerationFailure(str(e))

    if decision is None:
        return GenerationFailure("Generator returned no decision")
    if not verify_decision_context(decision):
        return InvalidGeneratedDecision(
            f"Generated decision {decision.id} has an empty prompt or no options"
        )
    return decision


async def generate_decision_with_fallback(
    generator: DecisionGenerator | None,
    snapshot: dict,
    fallback: Callable[[], Decision],
    context: str | None = None,
    force: bool = True,
) -> GenerationOutcome:
    """Stage one remote generation, stage two local synthesis. Never raises."""
    result = await attempt_generation(generator, snapshot, context, force)
    if isinstance(result, Decision):
        return GenerationOutcome(decision=result, source=SOURCE_GENERATED)

    logger.info("Using local decision synthesis: %s", result)
    return GenerationOutcome(
        decision=fallback(), source=SOURCE_FALLBACK, error=str(result)
    )


def fallback_narrative(option_text: str) -> str:
    """Deterministic narrative used when the responder fails."""
    return (
        f"You chose to {option_text.rstrip('.').lower()}. "
        "The consequences of your choice will unfold as your journey continues."
    )


async def respond_with_fallback(
    responder: NarrativeResponder | None,
    option_text: str,
    decision_prompt: str,
    recent_narrative: str = "",
    inventory: Sequence[str] = (),
) -> NarrativeResponse:
    """Narrative for a chosen option; never raises."""
    if responder is not None:
        try:
            response = await responder.respond(
                option_text, decision_prompt, recent_narrative, inventory
            )
            if response.narrative.strip():
                return response
            logger.warning("Narrative responder returned empty text")
        except Exception as e:
            logger.warning("Narrative response failed: %s", e)
    return NarrativeResponse(narrative=fallback_narrative(option_text))


# -------------------------------------------------------------------------
# Payload parsing
# -------------------------------------------------------------------------


def decision_from_payload(payload: dict[str, Any]) -> Decision:
    """Build a Decision from a generator's JSON payload.

    Raises:
        InvalidGeneratedDecision: if the payload has no usable options list
    """
    raw_options = payload.get("options")
    if not isinstance(raw_options, list):
        raise InvalidGeneratedDecision("Generated decision has no options list")

    options = []
    for o in raw_options:
        if not isinstance(o, dict) or not o.get("text"):
            continue
        tags = o.get("tags") or ()
        if isinstance(tags, str):
            tags = [tags]
        options.append(
            create_option(str(o.get("text", "")), str(o.get("impact", "")), tags)
        )

    importance = payload.get("importance", "moderate")
    if importance not in IMPORTANCE_LEVELS:
        importance = "moderate"

    location = payload.get("location")
    if isinstance(location, str):
        location = Location(type=location)
    elif isinstance(location, dict):
        location = Location.from_dict(location)
    else:
        location = None

    return create_decision(
        str(payload.get("prompt", "")),
        options,
        str(payload.get("context", "")),
        importance=importance,
        location=location,
        characters=payload.get("characters") or (),
    )


# -------------------------------------------------------------------------
# OpenAI-backed collaborators
# -------------------------------------------------------------------------

DECISION_SYSTEM_PROMPT = """You are the game master of a Wild West role-playing game.
Offer the player a meaningful choice that follows from the recent story.
Respond with JSON only, in this shape:
{"prompt": str, "context": str, "importance": "minor"|"moderate"|"significant"|"critical",
 "characters": [str], "location": {"type": str, "name": str},
 "options": [{"text": str, "impact": str, "tags": [str]}]}
Offer between two and four options. Each impact describes the consequence."""

NARRATIVE_SYSTEM_PROMPT = """You are the game master of a Wild West role-playing game.
Narrate what happens after the player's choice in two or three short paragraphs.
Respond with JSON only: {"narrative": str, "acquiredItems": [str], "removedItems": [str]}"""


class OpenAIDecisionGenerator:
    """Decision generator backed by the OpenAI chat completions API."""

    def __init__(self, model: str = "gpt-4o-mini", client: Any | None = None):
        if client is None:
            from openai import AsyncOpenAI

            client = AsyncOpenAI()
        self.model = model
        self.client = client

    def build_messages(self, snapshot: dict, context: str | None, force: bool) -> list[dict]:
        recent = "\n".join(snapshot.get("narrative_history", [])[-10:])
        parts = [f"Recent story:\n{recent or '(the story is just beginning)'}"]
        if snapshot.get("history_context"):
            parts.append(snapshot["history_context"])
        if snapshot.get("impact_context"):
            parts.append(snapshot["impact_context"])
        if context:
            parts.append(f"Decision context: {context}")
        if force:
            parts.append("A decision is required now.")
        return [
            {"role": "system", "content": DECISION_SYSTEM_PROMPT},
            {"role": "user", "content": "\n\n".join(parts)},
        ]

    async def generate(
        self, snapshot: dict, context: str | None, force: bool
    ) -> Decision | None:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=self.build_messages(snapshot, context, force),
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content
        if not content:
            return None
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as e:
            raise GenerationFailure(f"Generator returned invalid JSON: {e}") from e
        return decision_from_payload(payload)


class OpenAINarrativeResponder:
    """Narrative responder backed by the OpenAI chat completions API."""

    def __init__(self, model: str = "gpt-4o-mini", client: Any | None = None):
        if client is None:
            from openai import AsyncOpenAI

            client = AsyncOpenAI()
        self.model = model
        self.client = client

    async def respond(
        self,
        option_text: str,
        decision_prompt: str,
        recent_narrative: str,
        inventory: Sequence[str],
    ) -> NarrativeResponse:
        user = (
            f"Recent story:\n{recent_narrative}\n\n"
            f"The player was asked: {decision_prompt}\n"
            f"The player chose: {option_text}\n"
            f"Inventory: {', '.join(inventory) or 'nothing'}"
        )
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": NARRATIVE_SYSTEM_PROMPT},
                {"role": "user", "content": user},
            ],
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content or "{}"
        return NarrativeResponse.from_dict(json.loads(content))
