"""Basic session example for Crossroads.

This example demonstrates:
- Presenting a hand-written decision and resolving it
- Declared impacts on reputation and relationships
- Automatic decisions after a few player actions
- Relevance-ranked decision history for the next prompt
- Saving and restoring a session

No model is called: without a generator or responder the engine uses its
local decision synthesis and fallback narrative. Pass OpenAIDecisionGenerator
and OpenAINarrativeResponder to DecisionEngine to use a real model.
"""

import asyncio
import logging

from crossroads import DecisionEngine, EngineConfig, Location, SessionStore, make_impact
from crossroads.decisions import create_decision, create_option


async def main():
    logging.basicConfig(level=logging.INFO)

    config = EngineConfig(db_path="session.db")
    with DecisionEngine(config, store=SessionStore(config.db_path)) as engine:
        engine.set_scene(Location(type="town", name="Red Gulch"), characters=["Sheriff"])

        # Present a decision written by hand
        decision = create_decision(
            "The sheriff needs a deputy for the night. Will you help?",
            [
                create_option("Pin on the star", "The sheriff's opinion of you improves", ["law"]),
                create_option("Refuse", "The town will remember you stayed out of it"),
            ],
            "Outlaws were seen near the bank.",
            importance="significant",
            location=engine.location,
            characters=engine.characters,
        )
        engine.present_decision(decision)

        # Resolve it with explicit impacts
        resolution = await engine.select_option(
            decision.id,
            decision.options[0].id,
            impacts=[
                make_impact("reputation", "Red Gulch", 5),
                make_impact("relationship", "Sheriff", 6),
            ],
        )
        print(f"Narrative: {resolution.response.narrative}")
        print(f"Reputation: {engine.impact_state.reputation}")
        print(f"Relationships: {engine.impact_state.relationship}")

        # Three player actions bring up a decision on their own
        for line in [
            "Player: My name is Jesse",
            "Player: I walk the boardwalk",
            "Player: I check the bank's back door",
        ]:
            if await engine.add_narrative(line):
                print(f"\nNew decision: {engine.current_decision.prompt}")
                for option in engine.current_decision.options:
                    print(f"  - {option.text}")

        # What the next prompt would be told about the past
        print(f"\n{engine.narrative_context()}")

        engine.save("example")
        print(f"\nSaved sessions: {engine.store.list_sessions()}")


if __name__ == "__main__":
    asyncio.run(main())
