"""Local decision synthesis and narrative-text heuristics.

Everything here is synchronous and offline so it can always stand in for the
remote decision generator.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from crossroads.decisions import create_decision, create_option
from crossroads.models import Decision, Location, now_ms

_DECISION_MARKERS = (
    "what will you do",
    "what do you do",
    "what would you like to do",
    "what's your next move",
    "you must decide",
    "you must choose",
    "you need to decide",
    "make a choice",
    "make your choice",
    "choose between",
    "decide whether",
    "the choice is yours",
    "decision point",
)

_PLAYER_NAME_PATTERNS = (
    re.compile(r"(?i:\bmy name is)\s+([A-Z][a-zA-Z'-]+)"),
    re.compile(r"(?i:\bcall me)\s+([A-Z][a-zA-Z'-]+)"),
    re.compile(r"(?i:\bname's)\s+([A-Z][a-zA-Z'-]+)"),
    re.compile(r"\b(?:I'm|I am)\s+([A-Z][a-zA-Z'-]+)"),
)

_SKIPPED_PREFIXES = ("Game Event:", "Context:")


def is_player_action(text: str) -> bool:
    """True for narrative lines that record something the player did."""
    return text.lstrip().lower().startswith("player:")


def has_decision_triggers(text: str) -> bool:
    """True when the text explicitly asks the player to make a choice."""
    lower = text.lower()
    return any(marker in lower for marker in _DECISION_MARKERS)


def detect_player_name(text: str) -> str | None:
    """Pick a self-introduced player name out of narrative text."""
    for pattern in _PLAYER_NAME_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


@dataclass(frozen=True)
class DecisionContext:
    """Recent narrative distilled for decision synthesis."""

    player_name: str
    recent_text: str
    timestamp: int


def extract_decision_context(
    narrative_history: Sequence[str],
    player_name: str | None = None,
    default_name: str = "Cowboy",
    max_lines: int = 5,
    max_chars: int = 1000,
) -> DecisionContext:
    """Gather the last few story lines, skipping bookkeeping entries."""
    lines = [
        line
        for line in narrative_history[-max_lines:]
        if line
        and not line.startswith(_SKIPPED_PREFIXES)
        and "STORY_POINT:" not in line
    ]
    joined = "\n".join(lines)
    name = player_name or detect_player_name(" ".join(lines)) or default_name
    return DecisionContext(
        player_name=name,
        recent_text=joined[:max_chars],
        timestamp=now_ms(),
    )


# -------------------------------------------------------------------------
# Templates
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class TemplateOption:
    text: str
    impact: str
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class DecisionTemplate:
    """A hand-authored decision for a kind of location."""

    id: str
    prompt: str
    importance: str
    location_type: str  # a Location.type, or 'any'
    options: tuple[TemplateOption, ...]
    context: str
    location_name: str | None = None
    character_requirements: tuple[str, ...] = ()
    theme_requirements: tuple[str, ...] = ()


TEMPLATES = (
    DecisionTemplate(
        id="town-sheriff-dispute",
        prompt="The sheriff asks for your opinion on a local dispute. How do you respond?",
        importance="moderate",
        location_type="town",
        character_requirements=("Sheriff",),
        context=(
            "A property dispute has been brewing in town, and tensions are high "
            "between a wealthy landowner and settlers."
        ),
        options=(
            TemplateOption(
                "Side with the wealthy landowner who claims rights to the disputed property",
                "The landowner will be grateful, but the locals may resent your favoritism toward the rich.",
                ("wealth", "property", "favoritism"),
            ),
            TemplateOption(
                "Support the settlers who have been working the land for years",
                "The common folk will appreciate your support, but you may make a powerful enemy.",
                ("common-folk", "justice", "enemies"),
            ),
            TemplateOption(
                "Suggest a compromise that gives partial rights to both parties",
                "Neither side will be completely satisfied, but your reputation for fairness may increase.",
                ("diplomacy", "compromise", "reputation"),
            ),
        ),
    ),
    DecisionTemplate(
        id="town-saloon-fight",
        prompt="A fight breaks out in the saloon. What do you do?",
        importance="moderate",
        location_type="town",
        theme_requirements=("violence",),
        context="The saloon is rowdy tonight, and a disagreement at the card table has turned violent.",
        options=(
            TemplateOption(
                "Try to calm everyone down with words",
                "You might prevent violence without making enemies, but you risk being seen as weak.",
                ("diplomacy", "peace", "reputation"),
            ),
            TemplateOption(
                "Join the side that seems to be in the right",
                "You will make both friends and enemies, and the fight will likely escalate.",
                ("violence", "justice", "conflict"),
            ),
            TemplateOption(
                "Fetch the sheriff to handle the situation",
                "The law will be upheld, but you might be seen as someone who won't handle their own problems.",
                ("law", "authority", "delegation"),
            ),
        ),
    ),
    DecisionTemplate(
        id="wilderness-injured-traveler",
        prompt="You come across an injured traveler on the trail. How do you respond?",
        importance="significant",
        location_type="wilderness",
        context="The trail is quiet apart from a figure slumped beside a lame horse.",
        options=(
            TemplateOption(
                "Stop and offer medical assistance",
                "You might save a life, but you'll be delayed and could be vulnerable while helping.",
                ("compassion", "medicine", "delay"),
            ),
            TemplateOption(
                "Approach cautiously, suspecting a possible ambush",
                "Your caution may protect you from a trap, but might leave someone in genuine need without help.",
                ("caution", "suspicion", "self-preservation"),
            ),
            TemplateOption(
                "Continue on your way, avoiding involvement",
                "You'll reach your destination on time and avoid potential danger, but your conscience may be troubled.",
                ("self-interest", "caution", "abandonment"),
            ),
        ),
    ),
    DecisionTemplate(
        id="wilderness-storm",
        prompt="Dark clouds roll in over the plains. Where do you take shelter?",
        importance="minor",
        location_type="wilderness",
        theme_requirements=("survival",),
        context="A storm is building fast and the nearest town is half a day's ride away.",
        options=(
            TemplateOption(
                "Push on through the storm toward town",
                "You may arrive sooner, but the journey will be dangerous.",
                ("risk", "travel"),
            ),
            TemplateOption(
                "Shelter in an abandoned homestead",
                "You'll stay dry, but you may not be the only one seeking shelter there.",
                ("caution", "exploration"),
            ),
        ),
    ),
    DecisionTemplate(
        id="landmark-old-mine",
        prompt="The entrance to the old mine is boarded up, but fresh tracks lead inside. What do you do?",
        importance="moderate",
        location_type="landmark",
        context="Locals say the mine has been abandoned for years.",
        options=(
            TemplateOption(
                "Follow the tracks into the mine",
                "You may uncover whoever is using the mine, and the story behind it.",
                ("exploration", "danger"),
            ),
            TemplateOption(
                "Report the tracks to the town",
                "The town will know of the trespassers, improving your reputation with the law.",
                ("law", "reputation"),
            ),
        ),
    ),
    DecisionTemplate(
        id="any-stranger",
        prompt="A stranger approaches and asks where you're headed. How do you answer?",
        importance="minor",
        location_type="any",
        context="A lone rider has fallen in beside you.",
        options=(
            TemplateOption(
                "Tell the truth",
                "Honesty may earn the stranger's trust and friendship.",
                ("honesty", "trust"),
            ),
            TemplateOption(
                "Give a false destination",
                "You keep your plans to yourself, but the stranger may sense the lie.",
                ("deception", "caution"),
            ),
            TemplateOption(
                "Ride on without answering",
                "You avoid trouble for now, though the stranger's opinion of you sours.",
                ("self-interest",),
            ),
        ),
    ),
)


def get_templates_for_location(
    location: Location | None,
    templates: Iterable[DecisionTemplate] = TEMPLATES,
) -> list[DecisionTemplate]:
    """Templates for the location type, plus those valid anywhere."""
    loc_type = location.type if location else None
    return [t for t in templates if t.location_type in (loc_type, "any")]


def find_best_template(
    templates: Sequence[DecisionTemplate],
    characters: Iterable[str] = (),
    themes: Iterable[str] = (),
) -> DecisionTemplate | None:
    """Template whose character/theme requirements best match the scene.

    Ties go to the earliest template.
    """
    if not templates:
        return None
    present = set(characters) | set(themes)

    def score(template: DecisionTemplate) -> int:
        required = template.character_requirements + template.theme_requirements
        return sum(1 for r in required if r in present)

    return max(templates, key=score)


def template_to_decision(
    template: DecisionTemplate,
    location: Location | None = None,
    characters: Iterable[str] = (),
) -> Decision:
    """Turn a template into a presentable, hand-authored Decision."""
    if location is None or location.type != template.location_type:
        location = Location(type=template.location_type, name=template.location_name)
        if template.location_type == "any":
            location = Location(type="unknown")

    options = [create_option(o.text, o.impact, o.tags) for o in template.options]
    return create_decision(
        template.prompt,
        options,
        template.context,
        importance=template.importance,
        location=location,
        characters=characters,
        ai_generated=False,
    )


# -------------------------------------------------------------------------
# Contextual fallback
# -------------------------------------------------------------------------


def generate_contextual_decision(
    narrative_history: Sequence[str],
    player_name: str | None = None,
    importance: str = "moderate",
    location: Location | None = None,
    characters: Iterable[str] = (),
    themes: Iterable[str] = (),
    default_name: str = "Cowboy",
    max_lines: int = 5,
    max_chars: int = 1000,
) -> Decision:
    """Build a decision from recent narrative without calling any model.

    Falls back to a location template when there is no usable narrative.
    """
    context = extract_decision_context(
        narrative_history,
        player_name=player_name,
        default_name=default_name,
        max_lines=max_lines,
        max_chars=max_chars,
    )
    characters = tuple(characters)

    if not context.recent_text:
        template = find_best_template(
            get_templates_for_location(location), characters, themes
        )
        if template is not None:
            return template_to_decision(template, location, characters)

    prompt = f"{context.recent_text}\n\nWhat would {context.player_name} like to do next?"
    options = [
        create_option(
            "Explore the area",
            "Look for interesting locations or people",
            ("exploration",),
        ),
        create_option(
            "Ask questions",
            "Gather more information about the situation",
            ("information",),
        ),
        create_option(
            "Move on",
            "Continue to the next location",
            ("travel",),
        ),
    ]
    return create_decision(
        prompt.strip(),
        options,
        context.recent_text,
        importance=importance,
        location=location,
        characters=characters,
    )
