"""Data models for Crossroads."""

from __future__ import annotations

import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import ClassVar

IMPORTANCE_LEVELS = ("minor", "moderate", "significant", "critical")
SEVERITY_LEVELS = ("minor", "moderate", "major")

PHASE_NONE = "none"
PHASE_PRESENTED = "presented"
PHASE_RECORDING = "recording"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class EngineConfig:
    """Configuration for DecisionEngine."""

    db_path: str = ":memory:"
    openai_model: str = "gpt-4o-mini"
    actions_before_decision: int = 3
    history_limit: int = 5
    recent_context_lines: int = 5
    recent_context_chars: int = 1000
    default_player_name: str = "Cowboy"


@dataclass(frozen=True)
class Location:
    """Where a decision takes place."""

    type: str  # 'town', 'landmark', 'wilderness', 'unknown'
    name: str | None = None

    def to_dict(self) -> dict:
        data = {"type": self.type}
        if self.name:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: dict | None) -> Location | None:
        if not data:
            return None
        return cls(type=data.get("type", "unknown"), name=data.get("name"))


@dataclass(frozen=True)
class Option:
    """One selectable branch of a Decision."""

    id: str
    text: str
    impact: str
    tags: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "impact": self.impact,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Option:
        return cls(
            id=data.get("id") or new_id(),
            text=data.get("text", ""),
            impact=data.get("impact", ""),
            tags=tuple(data.get("tags") or ()),
        )


@dataclass(frozen=True)
class Decision:
    """A branching choice point offered to the player."""

    id: str
    prompt: str
    timestamp: int
    options: tuple[Option, ...]
    context: str
    importance: str = "moderate"
    location: Location | None = None
    characters: tuple[str, ...] = ()
    ai_generated: bool = True

    def get_option(self, option_id: str) -> Option | None:
        return next((o for o in self.options if o.id == option_id), None)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "timestamp": self.timestamp,
            "options": [o.to_dict() for o in self.options],
            "context": self.context,
            "importance": self.importance,
            "location": self.location.to_dict() if self.location else None,
            "characters": list(self.characters),
            "ai_generated": self.ai_generated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Decision:
        return cls(
            id=data["id"],
            prompt=data.get("prompt", ""),
            timestamp=int(data.get("timestamp", 0)),
            options=tuple(Option.from_dict(o) for o in data.get("options") or ()),
            context=data.get("context", ""),
            importance=data.get("importance", "moderate"),
            location=Location.from_dict(data.get("location")),
            characters=tuple(data.get("characters") or ()),
            ai_generated=bool(data.get("ai_generated", True)),
        )


# -------------------------------------------------------------------------
# Impacts
# -------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class Impact(ABC):
    """A signed, targeted effect declared by a resolved decision.

    Concrete impacts are one of the four subclasses below; ``kind`` is the
    wire name and ``key`` identifies the ImpactState slot it writes to.
    """

    kind: ClassVar[str] = ""

    value: float
    severity: str = "moderate"
    duration: int | None = None  # ms; None = permanent
    related_decision_ids: tuple[str, ...] = ()
    description: str = ""
    decayed: bool = False
    id: str = field(default_factory=new_id)

    @property
    @abstractmethod
    def key(self) -> tuple:
        ...

    @property
    @abstractmethod
    def target(self) -> str:
        """Wire form of the target key."""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.kind,
            "target": self.target,
            "value": self.value,
            "severity": self.severity,
            "duration": self.duration,
            "related_decision_ids": list(self.related_decision_ids),
            "description": self.description,
            "decayed": self.decayed,
        }


@dataclass(frozen=True, kw_only=True)
class ReputationImpact(Impact):
    kind: ClassVar[str] = "reputation"

    subject: str

    @property
    def key(self) -> tuple:
        return (self.kind, self.subject)

    @property
    def target(self) -> str:
        return self.subject


@dataclass(frozen=True, kw_only=True)
class RelationshipImpact(Impact):
    kind: ClassVar[str] = "relationship"

    actor: str = "player"
    recipient: str

    @property
    def key(self) -> tuple:
        return (self.kind, self.actor, self.recipient)

    @property
    def target(self) -> str:
        return f"{self.actor}:{self.recipient}"


@dataclass(frozen=True, kw_only=True)
class WorldStateImpact(Impact):
    kind: ClassVar[str] = "world-state"

    subject: str

    @property
    def key(self) -> tuple:
        return (self.kind, self.subject)

    @property
    def target(self) -> str:
        return self.subject


@dataclass(frozen=True, kw_only=True)
class StoryArcImpact(Impact):
    kind: ClassVar[str] = "story-arc"

    subject: str

    @property
    def key(self) -> tuple:
        return (self.kind, self.subject)

    @property
    def target(self) -> str:
        return self.subject


IMPACT_TYPES: dict[str, type[Impact]] = {
    cls.kind: cls
    for cls in (ReputationImpact, RelationshipImpact, WorldStateImpact, StoryArcImpact)
}


def make_impact(kind: str, target: str, value: float, **kwargs) -> Impact:
    """Build the Impact variant for ``kind`` from a wire-format target.

    Relationship targets use ``actor:recipient``; the actor defaults to
    ``player`` when there is no colon.
    """
    if kind not in IMPACT_TYPES:
        raise ValueError(f"Invalid impact type: {kind}")
    severity = kwargs.get("severity", "moderate")
    if severity not in SEVERITY_LEVELS:
        raise ValueError(f"Invalid impact severity: {severity}")

    if kind == RelationshipImpact.kind:
        actor, sep, recipient = target.partition(":")
        if not sep:
            actor, recipient = "player", target
        return RelationshipImpact(actor=actor, recipient=recipient, value=value, **kwargs)
    return IMPACT_TYPES[kind](subject=target, value=value, **kwargs)


def impact_from_dict(data: dict) -> Impact:
    kwargs = {
        "severity": data.get("severity", "moderate"),
        "duration": data.get("duration"),
        "related_decision_ids": tuple(data.get("related_decision_ids") or ()),
        "description": data.get("description", ""),
        "decayed": bool(data.get("decayed", False)),
    }
    if data.get("id"):
        kwargs["id"] = data["id"]
    return make_impact(data["type"], data["target"], float(data["value"]), **kwargs)


# -------------------------------------------------------------------------
# Records and aggregate state
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class DecisionRecord:
    """The durable record of a resolved Decision plus the Option chosen."""

    decision_id: str
    selected_option_id: str
    timestamp: int
    narrative: str
    impact_description: str
    tags: tuple[str, ...]
    relevance_score: float
    expiration_timestamp: int | None = None
    impacts: tuple[Impact, ...] = ()
    processed_for_impact: bool = False
    last_impact_update: int | None = None

    def to_dict(self) -> dict:
        return {
            "decision_id": self.decision_id,
            "selected_option_id": self.selected_option_id,
            "timestamp": self.timestamp,
            "narrative": self.narrative,
            "impact_description": self.impact_description,
            "tags": list(self.tags),
            "relevance_score": self.relevance_score,
            "expiration_timestamp": self.expiration_timestamp,
            "impacts": [i.to_dict() for i in self.impacts],
            "processed_for_impact": self.processed_for_impact,
            "last_impact_update": self.last_impact_update,
        }

    @classmethod
    def from_dict(cls, data: dict) -> DecisionRecord:
        return cls(
            decision_id=data["decision_id"],
            selected_option_id=data["selected_option_id"],
            timestamp=int(data["timestamp"]),
            narrative=data.get("narrative", ""),
            impact_description=data.get("impact_description", ""),
            tags=tuple(data.get("tags") or ()),
            relevance_score=data.get("relevance_score", 5),
            expiration_timestamp=data.get("expiration_timestamp"),
            impacts=tuple(impact_from_dict(i) for i in data.get("impacts") or ()),
            processed_for_impact=bool(data.get("processed_for_impact", False)),
            last_impact_update=data.get("last_impact_update"),
        )


@dataclass(frozen=True)
class ImpactState:
    """Aggregate, clamped accumulation of all processed impacts."""

    reputation: dict[str, float] = field(default_factory=dict)
    relationship: dict[str, dict[str, float]] = field(default_factory=dict)
    world_state: dict[str, float] = field(default_factory=dict)
    story_arc: dict[str, float] = field(default_factory=dict)
    last_updated: int = 0

    def get(self, key: tuple) -> float | None:
        """Stored value for an impact key, or None if never written."""
        kind = key[0]
        if kind == RelationshipImpact.kind:
            return self.relationship.get(key[1], {}).get(key[2])
        if kind == ReputationImpact.kind:
            return self.reputation.get(key[1])
        if kind == WorldStateImpact.kind:
            return self.world_state.get(key[1])
        if kind == StoryArcImpact.kind:
            return self.story_arc.get(key[1])
        raise ValueError(f"Invalid impact type: {kind}")

    def to_dict(self) -> dict:
        return {
            "reputation": dict(self.reputation),
            "relationship": {k: dict(v) for k, v in self.relationship.items()},
            "world_state": dict(self.world_state),
            "story_arc": dict(self.story_arc),
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> ImpactState:
        if not data:
            return cls()
        return cls(
            reputation=dict(data.get("reputation") or {}),
            relationship={
                k: dict(v) for k, v in (data.get("relationship") or {}).items()
            },
            world_state=dict(data.get("world_state") or {}),
            story_arc=dict(data.get("story_arc") or {}),
            last_updated=int(data.get("last_updated", 0)),
        )


@dataclass(frozen=True)
class SessionState:
    """The decision subsystem's fragment of the overall session tree."""

    current_decision: Decision | None = None
    phase: str = PHASE_NONE  # 'none', 'presented', 'recording'
    decision_history: tuple[DecisionRecord, ...] = ()
    impact_state: ImpactState = field(default_factory=ImpactState)
    narrative_history: tuple[str, ...] = ()
    inventory: tuple[str, ...] = ()

    def with_narrative(self, *lines: str) -> SessionState:
        return replace(self, narrative_history=self.narrative_history + lines)

    def find_record(self, decision_id: str) -> DecisionRecord | None:
        return next(
            (r for r in reversed(self.decision_history) if r.decision_id == decision_id),
            None,
        )

    def to_dict(self) -> dict:
        return {
            "current_decision": (
                self.current_decision.to_dict() if self.current_decision else None
            ),
            "phase": self.phase,
            "decision_history": [r.to_dict() for r in self.decision_history],
            "impact_state": self.impact_state.to_dict(),
            "narrative_history": list(self.narrative_history),
            "inventory": list(self.inventory),
        }

    @classmethod
    def from_dict(cls, data: dict) -> SessionState:
        current = data.get("current_decision")
        phase = data.get("phase", PHASE_NONE)
        # A save taken mid-recording resumes with the decision still presented.
        if phase == PHASE_RECORDING:
            phase = PHASE_PRESENTED if current else PHASE_NONE
        return cls(
            current_decision=Decision.from_dict(current) if current else None,
            phase=phase,
            decision_history=tuple(
                DecisionRecord.from_dict(r) for r in data.get("decision_history") or ()
            ),
            impact_state=ImpactState.from_dict(data.get("impact_state")),
            narrative_history=tuple(data.get("narrative_history") or ()),
            inventory=tuple(data.get("inventory") or ()),
        )


@dataclass(frozen=True)
class NarrativeResponse:
    """Narrative continuation produced after an option is chosen."""

    narrative: str
    acquired_items: tuple[str, ...] = ()
    removed_items: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> NarrativeResponse:
        return cls(
            narrative=str(data.get("narrative", "")),
            acquired_items=tuple(data.get("acquiredItems") or data.get("acquired_items") or ()),
            removed_items=tuple(data.get("removedItems") or data.get("removed_items") or ()),
        )
