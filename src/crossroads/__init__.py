"""Crossroads - Decision and consequence engine for narrated role-playing games."""

from crossroads.models import (
    EngineConfig,
    Location,
    Option,
    Decision,
    DecisionRecord,
    Impact,
    ReputationImpact,
    RelationshipImpact,
    WorldStateImpact,
    StoryArcImpact,
    ImpactState,
    SessionState,
    NarrativeResponse,
    make_impact,
)
from crossroads.errors import (
    CrossroadsError,
    DecisionValidationError,
    GenerationFailure,
    InvalidGeneratedDecision,
)
from crossroads.engine import DecisionEngine, DecisionResolution
from crossroads.store import SessionStore

__version__ = "0.1.0"

__all__ = [
    "DecisionEngine",
    "DecisionResolution",
    "SessionStore",
    "EngineConfig",
    "Location",
    "Option",
    "Decision",
    "DecisionRecord",
    "Impact",
    "ReputationImpact",
    "RelationshipImpact",
    "WorldStateImpact",
    "StoryArcImpact",
    "ImpactState",
    "SessionState",
    "NarrativeResponse",
    "make_impact",
    "CrossroadsError",
    "DecisionValidationError",
    "GenerationFailure",
    "InvalidGeneratedDecision",
]
