"""Tests for local decision synthesis and narrative heuristics."""

from crossroads.models import Location
from crossroads.synthesis import (
    TEMPLATES,
    detect_player_name,
    extract_decision_context,
    find_best_template,
    generate_contextual_decision,
    get_templates_for_location,
    has_decision_triggers,
    is_player_action,
    template_to_decision,
)


def test_is_player_action():
    assert is_player_action("Player: I walk into the saloon")
    assert is_player_action("  player: look around")
    assert not is_player_action("Game Master: The saloon is quiet.")


def test_has_decision_triggers():
    """Test that only explicit requests for a choice count as triggers."""
    assert has_decision_triggers("The outlaw draws. What will you do?")
    assert has_decision_triggers("You must decide whether to trust him.")
    assert not has_decision_triggers("The sun sets over the mesa.")


def test_detect_player_name():
    assert detect_player_name("Player: My name is Jesse") == "Jesse"
    assert detect_player_name("Player: call me Wyatt, stranger") == "Wyatt"
    assert detect_player_name("Player: I'm Doc and I need a drink") == "Doc"
    assert detect_player_name("Player: I'm tired") is None


def test_extract_context_skips_bookkeeping_lines():
    """Test that event, context and story-point lines are left out."""
    history = [
        "Player: I ride into town",
        "Game Event: weather changed",
        "Context: The town is tense",
        "Game Master: STORY_POINT: arrival",
        "Game Master: The streets are empty.",
    ]

    context = extract_decision_context(history, default_name="Stranger")

    assert context.recent_text == "Player: I ride into town\nGame Master: The streets are empty."
    assert context.player_name == "Stranger"


def test_extract_context_limits():
    history = [f"line {i}" for i in range(10)]

    context = extract_decision_context(history, max_lines=3, max_chars=10)

    assert context.recent_text == "line 7\nlin"


def test_extract_context_detects_name():
    context = extract_decision_context(["Player: My name is Jesse"])

    assert context.player_name == "Jesse"


def test_templates_for_location():
    """Test that location templates come with the any-location ones."""
    ids = [t.id for t in get_templates_for_location(Location(type="wilderness"))]

    assert ids == ["wilderness-injured-traveler", "wilderness-storm", "any-stranger"]
    assert [t.id for t in get_templates_for_location(None)] == ["any-stranger"]


def test_find_best_template_prefers_matching_requirements():
    town = get_templates_for_location(Location(type="town"))

    assert find_best_template(town, themes=["violence"]).id == "town-saloon-fight"
    assert find_best_template(town, characters=["Sheriff"]).id == "town-sheriff-dispute"
    # Ties go to the first template
    assert find_best_template(town).id == "town-sheriff-dispute"
    assert find_best_template([]) is None


def test_template_to_decision():
    """Test that template decisions are hand-authored and keep the location."""
    template = next(t for t in TEMPLATES if t.id == "town-sheriff-dispute")
    location = Location(type="town", name="Red Gulch")

    decision = template_to_decision(template, location, ["Sheriff"])

    assert decision.ai_generated is False
    assert decision.prompt == template.prompt
    assert decision.location == location
    assert decision.characters == ("Sheriff",)
    assert [o.text for o in decision.options] == [o.text for o in template.options]
    assert len({o.id for o in decision.options}) == len(template.options)


def test_template_for_any_location():
    template = next(t for t in TEMPLATES if t.id == "any-stranger")

    decision = template_to_decision(template)

    assert decision.location == Location(type="unknown")


def test_contextual_decision_from_narrative():
    """Test the explore, ask, move-on fallback built from recent story."""
    history = ["Player: My name is Jesse", "Game Master: A stagecoach rattles past."]

    decision = generate_contextual_decision(history, importance="minor")

    assert decision.prompt.endswith("What would Jesse like to do next?")
    assert decision.prompt.startswith("Player: My name is Jesse")
    assert [o.text for o in decision.options] == ["Explore the area", "Ask questions", "Move on"]
    assert decision.importance == "minor"
    assert decision.context == "\n".join(history)
    assert decision.ai_generated is True


def test_contextual_decision_falls_back_to_template():
    """Test that an empty story yields a location template."""
    decision = generate_contextual_decision(
        ["Context: nothing yet"],
        location=Location(type="landmark", name="Old Mine"),
    )

    assert decision.prompt.startswith("The entrance to the old mine")
    assert decision.ai_generated is False
    assert decision.location == Location(type="landmark", name="Old Mine")


def test_contextual_decision_always_has_options():
    decision = generate_contextual_decision([])

    assert decision.prompt
    assert decision.options
