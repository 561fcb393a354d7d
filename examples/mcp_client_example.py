"""Example of using Crossroads through MCP.

This demonstrates how a game master agent would drive decisions over MCP.
"""

import asyncio
import json
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client


async def run_example():
    """Run example MCP interactions."""
    # No model calls: decisions come from local synthesis
    server_params = StdioServerParameters(
        command="crossroads-mcp",
        env={
            "CROSSROADS_DB_PATH": "example_session.db",
            "CROSSROADS_SESSION_ID": "example",
            "CROSSROADS_GENERATOR": "none",
        },
    )

    async with stdio_client(server_params) as (read, write):
        async with ClientSession(read, write) as session:
            await session.initialize()

            tools = await session.list_tools()
            print(f"Available tools: {[t.name for t in tools.tools]}")

            # Present a decision
            print("\n=== Presenting decision ===")
            result = await session.call_tool(
                "present_decision",
                {
                    "prompt": "A stranger offers you a map to a lost silver mine. Do you buy it?",
                    "context": "The saloon is nearly empty.",
                    "importance": "significant",
                    "location": {"type": "town", "name": "Red Gulch"},
                    "characters": ["Stranger"],
                    "options": [
                        {"text": "Buy the map", "impact": "The quest for the silver mine begins"},
                        {"text": "Turn him down", "impact": "The stranger's opinion of you sours"},
                    ],
                },
            )
            decision = json.loads(result.content[0].text)
            print(decision["prompt"])

            # Resolve it
            print("\n=== Selecting option ===")
            result = await session.call_tool(
                "select_option",
                {
                    "decision_id": decision["id"],
                    "option_id": decision["options"][0]["id"],
                    "impacts": [
                        {"type": "story-arc", "target": "silver-mine", "value": 10},
                        {"type": "relationship", "target": "Stranger", "value": 3},
                    ],
                },
            )
            print(json.loads(result.content[0].text)["narrative"])

            # Keep playing until a decision comes up
            print("\n=== Adding narrative ===")
            for line in [
                "Player: I study the map",
                "Player: I buy supplies for the trip",
                "Player: I ride toward the hills",
            ]:
                result = await session.call_tool("add_narrative", {"text": line})
                data = json.loads(result.content[0].text)
                if data["decision_presented"]:
                    print(f"New decision: {data['decision']['prompt']}")

            # What the next prompt would know
            print("\n=== History and impacts ===")
            history = await session.call_tool(
                "get_history_context", {"location": {"type": "wilderness"}}
            )
            print(history.content[0].text)
            impacts = await session.call_tool("get_impact_state", {})
            print(impacts.content[0].text)

            await session.call_tool("save_session", {})


if __name__ == "__main__":
    asyncio.run(run_example())
