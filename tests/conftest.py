"""Pytest fixtures for Crossroads tests."""

import pytest
from crossroads import DecisionEngine, EngineConfig, NarrativeResponse, SessionStore
from crossroads.decisions import create_decision, create_option
from crossroads.models import Location

START = 1_700_000_000_000


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class FakeGenerator:
    """Decision generator returning canned results, or raising them."""

    def __init__(self, result=None):
        self.result = result
        self.calls = []
        self.before_return = None

    async def generate(self, snapshot, context, force):
        self.calls.append({"snapshot": snapshot, "context": context, "force": force})
        if self.before_return is not None:
            self.before_return()
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FakeResponder:
    """Narrative responder returning a canned response, or raising it."""

    def __init__(self, result=None):
        self.result = result or NarrativeResponse(narrative="The sheriff nods slowly.")
        self.calls = []

    async def respond(self, option_text, decision_prompt, recent_narrative, inventory):
        self.calls.append(
            {
                "option_text": option_text,
                "decision_prompt": decision_prompt,
                "recent_narrative": recent_narrative,
                "inventory": list(inventory),
            }
        )
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def emit(self, event, payload):
        self.events.append((event, payload))

    def names(self):
        return [event for event, _ in self.events]


def make_decision(importance="moderate", now=START, **kwargs):
    """Two-option decision in Red Gulch with the Sheriff present."""
    options = [
        create_option("Help the sheriff", "Your reputation in town improves", ["law"]),
        create_option("Walk away", "The sheriff's opinion of you sours", ["self-interest"]),
    ]
    kwargs.setdefault("location", Location(type="town", name="Red Gulch"))
    kwargs.setdefault("characters", ["Sheriff"])
    return create_decision(
        "The sheriff needs a deputy. Will you help?",
        options,
        "Outlaws were seen near the bank.",
        importance=importance,
        now=now,
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def responder():
    return FakeResponder()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store():
    """Create an in-memory session store for testing."""
    store = SessionStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def engine(clock, generator, responder, notifier, store):
    """Create an in-memory engine with fake collaborators."""
    engine = DecisionEngine(
        EngineConfig(db_path=":memory:"),
        generator=generator,
        responder=responder,
        notifier=notifier,
        store=store,
        clock=clock,
    )
    yield engine
    engine.close()


@pytest.fixture
def decision():
    return make_decision()
