"""MCP server for the Crossroads decision engine.

Exposes the engine's API through Model Context Protocol tools.
"""

from __future__ import annotations

import json
import os
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from crossroads.engine import DecisionEngine
from crossroads.generation import (
    OpenAIDecisionGenerator,
    OpenAINarrativeResponder,
    decision_from_payload,
)
from crossroads.models import IMPORTANCE_LEVELS, EngineConfig, Location, impact_from_dict
from crossroads.store import SessionStore

# Global engine instance (initialized on first connection)
_engine: DecisionEngine | None = None


def get_session_id() -> str:
    return os.getenv("CROSSROADS_SESSION_ID", "default")


def get_engine() -> DecisionEngine:
    """Get or initialize the engine instance."""
    global _engine
    if _engine is None:
        # Load config from environment or use defaults
        config = EngineConfig(
            db_path=os.getenv("CROSSROADS_DB_PATH", "crossroads.db"),
            openai_model=os.getenv("CROSSROADS_OPENAI_MODEL", "gpt-4o-mini"),
        )
        generator = responder = None
        if os.getenv("CROSSROADS_GENERATOR", "openai") == "openai":
            generator = OpenAIDecisionGenerator(model=config.openai_model)
            responder = OpenAINarrativeResponder(model=config.openai_model)

        _engine = DecisionEngine(
            config,
            generator=generator,
            responder=responder,
            store=SessionStore(config.db_path),
        )
        _engine.load(get_session_id())
    return _engine


def _location(data: Any) -> Location | None:
    if isinstance(data, str):
        return Location(type=data)
    if isinstance(data, dict):
        return Location.from_dict(data)
    return None


def _json(result: Any) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(result, indent=2))]


# Initialize server
server = Server("crossroads")


# -------------------------------------------------------------------------
# Tool Definitions
# -------------------------------------------------------------------------

_LOCATION_SCHEMA = {
    "type": "object",
    "properties": {
        "type": {
            "type": "string",
            "description": "Location type (town, landmark, wilderness, ...)",
        },
        "name": {"type": "string"},
    },
    "required": ["type"],
}

TOOLS = [
    Tool(
        name="present_decision",
        description="Present a decision to the player, replacing any current one",
        inputSchema={
            "type": "object",
            "properties": {
                "prompt": {"type": "string", "description": "Question for the player"},
                "context": {"type": "string", "description": "Narrative context"},
                "importance": {"type": "string", "enum": list(IMPORTANCE_LEVELS)},
                "location": _LOCATION_SCHEMA,
                "characters": {"type": "array", "items": {"type": "string"}},
                "options": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "text": {"type": "string"},
                            "impact": {
                                "type": "string",
                                "description": "Consequence description",
                            },
                            "tags": {"type": "array", "items": {"type": "string"}},
                        },
                        "required": ["text"],
                    },
                },
            },
            "required": ["prompt", "options"],
        },
    ),
    Tool(
        name="select_option",
        description="Resolve the current decision with the chosen option",
        inputSchema={
            "type": "object",
            "properties": {
                "decision_id": {"type": "string"},
                "option_id": {"type": "string"},
                "impacts": {
                    "type": "array",
                    "description": "Declared impacts; derived from the option if omitted",
                    "items": {
                        "type": "object",
                        "properties": {
                            "type": {
                                "type": "string",
                                "enum": [
                                    "reputation",
                                    "relationship",
                                    "world-state",
                                    "story-arc",
                                ],
                            },
                            "target": {
                                "type": "string",
                                "description": "Target key; relationships use actor:recipient",
                            },
                            "value": {"type": "number"},
                            "severity": {
                                "type": "string",
                                "enum": ["minor", "moderate", "major"],
                            },
                            "duration": {
                                "type": "integer",
                                "description": "Milliseconds until decay; omit for permanent",
                            },
                        },
                        "required": ["type", "target", "value"],
                    },
                },
            },
            "required": ["decision_id", "option_id"],
        },
    ),
    Tool(
        name="clear_decision",
        description="Abandon the current decision without recording it",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="get_current_decision",
        description="Get the decision currently presented to the player",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="add_narrative",
        description="Append a narrative line and check it for decision triggers",
        inputSchema={
            "type": "object",
            "properties": {
                "text": {
                    "type": "string",
                    "description": "Narrative line; prefix player actions with 'Player:'",
                },
            },
            "required": ["text"],
        },
    ),
    Tool(
        name="trigger_decision",
        description="Generate and present a decision now",
        inputSchema={
            "type": "object",
            "properties": {
                "context": {"type": "string", "description": "Extra context to seed"},
                "importance": {"type": "string", "enum": list(IMPORTANCE_LEVELS)},
            },
        },
    ),
    Tool(
        name="get_history_context",
        description="Digest of the past decisions most relevant to a scene",
        inputSchema={
            "type": "object",
            "properties": {
                "location": _LOCATION_SCHEMA,
                "characters": {"type": "array", "items": {"type": "string"}},
                "themes": {"type": "array", "items": {"type": "string"}},
                "limit": {"type": "integer", "default": 5},
            },
        },
    ),
    Tool(
        name="get_impact_state",
        description="Get accumulated reputation, relationship, world and story-arc values",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="evolve_impacts",
        description="Decay temporary impacts whose duration has elapsed",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="save_session",
        description="Save the session state to the store",
        inputSchema={
            "type": "object",
            "properties": {
                "session_id": {"type": "string"},
            },
        },
    ),
]


# -------------------------------------------------------------------------
# MCP Handlers
# -------------------------------------------------------------------------


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return TOOLS


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    engine = get_engine()

    try:
        # Route to appropriate engine method
        if name == "present_decision":
            decision = decision_from_payload(arguments)
            engine.present_decision(decision)
            return _json(decision.to_dict())

        elif name == "select_option":
            impacts = None
            if arguments.get("impacts") is not None:
                impacts = [impact_from_dict(i) for i in arguments["impacts"]]
            resolution = await engine.select_option(
                decision_id=arguments["decision_id"],
                option_id=arguments["option_id"],
                impacts=impacts,
            )
            if resolution is None:
                return [
                    TextContent(
                        type="text",
                        text="Selection discarded: the session changed while recording",
                    )
                ]
            return _json(
                {
                    "record": resolution.record.to_dict(),
                    "narrative": resolution.response.narrative,
                    "acquired_items": list(resolution.response.acquired_items),
                    "removed_items": list(resolution.response.removed_items),
                }
            )

        elif name == "clear_decision":
            engine.clear_decision()
            return [TextContent(type="text", text="Cleared current decision")]

        elif name == "get_current_decision":
            decision = engine.current_decision
            return _json(decision.to_dict() if decision else None)

        elif name == "add_narrative":
            presented = await engine.add_narrative(arguments["text"])
            decision = engine.current_decision
            return _json(
                {
                    "decision_presented": presented,
                    "skip_narrative_response": engine.should_skip_narrative_response(),
                    "decision": decision.to_dict() if presented and decision else None,
                }
            )

        elif name == "trigger_decision":
            presented = await engine.trigger_ai_decision(
                context=arguments.get("context"),
                importance=arguments.get("importance"),
            )
            decision = engine.current_decision
            return _json(
                {
                    "decision_presented": presented,
                    "decision": decision.to_dict() if decision else None,
                }
            )

        elif name == "get_history_context":
            text = engine.history_context(
                location=_location(arguments.get("location")),
                characters=arguments.get("characters"),
                themes=arguments.get("themes"),
                limit=arguments.get("limit"),
            )
            return [TextContent(type="text", text=text or "No relevant decisions.")]

        elif name == "get_impact_state":
            return _json(engine.impact_state.to_dict())

        elif name == "evolve_impacts":
            return _json(engine.evolve_impacts().to_dict())

        elif name == "save_session":
            session_id = arguments.get("session_id") or get_session_id()
            engine.save(session_id)
            return [TextContent(type="text", text=f"Saved session: {session_id}")]

        else:
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

    except Exception as e:
        return [TextContent(type="text", text=f"Error: {str(e)}")]


# -------------------------------------------------------------------------
# Main Entry Point
# -------------------------------------------------------------------------


async def main():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


def run():
    """Console script entry point."""
    import asyncio

    asyncio.run(main())


if __name__ == "__main__":
    run()
