"""Run the City Center scenario, optionally with LLM-driven residents.

Deterministic by default (baselines only, no network):

    python -m examples.city_center.run --ticks 30

With ``--llm`` the four named residents are switched to an LLM decision
source; everyone else keeps their baseline. Requires ``LLM_PROVIDER``,
``LLM_MODEL`` and the provider's API key:

    python -m examples.city_center.run --llm --ticks 10

Use ``--persistence json --out runs/city`` to keep a browsable record of every
committed tick.
"""

from __future__ import annotations

import argparse
import asyncio
from collections import Counter

from agentcity import (
    Config,
    EventBus,
    LLMDecisionSource,
    RandomService,
    ScenarioLoader,
    SimulationContext,
    TickScheduler,
    create_baseline,
    create_persistence,
)

NAMED_RESIDENTS = ("alice", "bob", "carol", "dave")
NOTABLE_EVENTS = {
    "agent_died",
    "offspring_born",
    "agent_harmed",
    "agent_stole",
    "job_accepted",
    "agent_traded",
    "worker_fired",
    "name_consensus_changed",
    "decision_fallback",
}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="City Center simulation")
    parser.add_argument("--ticks", type=int, default=None, help="Ticks to run (defaults to the scenario's value)")
    parser.add_argument("--llm", action="store_true", help="Drive the named residents with an LLM")
    parser.add_argument("--seed", type=int, default=None, help="Override the scenario seed")
    parser.add_argument(
        "--persistence",
        choices=["memory", "json", "postgres"],
        default=None,
        help="Storage backend (defaults to AGENTCITY_PERSISTENCE)",
    )
    parser.add_argument("--out", default=None, help="Directory for the JSON store")
    return parser.parse_args()


async def print_notable(subscription) -> None:
    async for event in subscription:
        if event.type in NOTABLE_EVENTS:
            who = (event.agent_id or "-")[:8]
            print(f"    tick {event.tick}: {event.type} [{who}] {event.payload}")


async def main(args: argparse.Namespace) -> None:
    scenario = ScenarioLoader().load("city_center")
    config = scenario.config
    if args.seed is not None:
        config = config.model_copy(update={"seed": args.seed})
    world = scenario.world

    rng = RandomService(config.seed)
    context = SimulationContext(config, rng=rng, fallback=create_baseline(Config.FALLBACK_STRATEGY, rng))
    if args.llm:
        Config.validate()
        names = {agent_id: world.agents[agent_id].name for agent_id in NAMED_RESIDENTS}
        context.register_source("llm", LLMDecisionSource(agent_names=names))
        for agent_id in NAMED_RESIDENTS:
            world.agents[agent_id] = world.agents[agent_id].model_copy(update={"decision_source": "llm"})

    options = {"base_path": args.out} if args.out else {}
    persistence = create_persistence(args.persistence, **options)

    bus = EventBus()
    subscription = bus.subscribe(max_buffer=500)
    printer = asyncio.create_task(print_notable(subscription))

    print(f"{scenario.name}: {scenario.description}\n")
    scheduler = TickScheduler(world, context=context, persistence=persistence, event_bus=bus)
    ticks = args.ticks or scenario.metadata["recommended_ticks"]
    result = await scheduler.run(ticks)

    subscription.close()
    await printer

    final = result["world"]
    deaths = Counter(a.cause_of_death for a in final.agents.values() if a.cause_of_death)
    print(f"\nFinished at tick {result['tick']}: {len(final.living_agents())}/{len(final.agents)} alive")
    if deaths:
        print("  Deaths: " + ", ".join(f"{cause} x{count}" for cause, count in deaths.items()))
    for source, counts in sorted(result["decisions"].items()):
        print(f"  {source}: {counts}")
    for agent in sorted(final.living_agents(), key=lambda a: a.balance, reverse=True)[:5]:
        print(
            f"  {agent.name or agent.id[:8]:<10} balance {agent.balance:>6.1f}  "
            f"hunger {agent.hunger:>5.1f}  energy {agent.energy:>5.1f}  health {agent.health:>5.1f}"
        )


if __name__ == "__main__":
    asyncio.run(main(parse_args()))
