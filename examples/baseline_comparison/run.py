"""Compare the four baseline strategies on identical generated worlds.

Each baseline drives every agent in its own copy of the same seeded world.
No LLM calls are made, so this runs offline:

    python -m examples.baseline_comparison.run --ticks 200 --agents 12 --seeds 3

Reported per baseline (averaged over seeds): survival rate, mean balance,
mean vitals, wealth Gini coefficient and the number of deaths by cause.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import statistics
from collections import Counter
from typing import Dict, List

from agentcity import SimulationConfig, SimulationContext, TickScheduler, build_world
from agentcity.cognition import BASELINES, create_baseline
from agentcity.context import RandomService
from agentcity.world import World


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Baseline strategy comparison")
    parser.add_argument("--ticks", type=int, default=100, help="Ticks per run")
    parser.add_argument("--agents", type=int, default=10, help="Agents per world")
    parser.add_argument("--world-size", type=int, default=40, help="Grid side length")
    parser.add_argument("--seeds", type=int, default=3, help="Number of seeded worlds per baseline")
    parser.add_argument("--base-seed", type=int, default=1, help="First seed; run i uses base-seed + i")
    parser.add_argument(
        "--baselines",
        nargs="+",
        default=list(BASELINES),
        choices=list(BASELINES),
        help="Baselines to compare",
    )
    return parser.parse_args()


def gini(values: List[float]) -> float:
    if not values or sum(values) == 0:
        return 0.0
    ordered = sorted(values)
    n = len(ordered)
    weighted = sum((index + 1) * value for index, value in enumerate(ordered))
    return (2 * weighted) / (n * sum(ordered)) - (n + 1) / n


def summarise(world: World) -> Dict[str, float]:
    agents = list(world.agents.values())
    living = world.living_agents()
    balances = [a.balance for a in living]
    return {
        "survival": len(living) / len(agents) if agents else 0.0,
        "balance": statistics.fmean(balances) if balances else 0.0,
        "hunger": statistics.fmean(a.hunger for a in living) if living else 0.0,
        "energy": statistics.fmean(a.energy for a in living) if living else 0.0,
        "health": statistics.fmean(a.health for a in living) if living else 0.0,
        "gini": gini(balances),
    }


async def run_baseline(name: str, args: argparse.Namespace, seed: int) -> tuple[Dict[str, float], Counter]:
    config = SimulationConfig(world_size=args.world_size, seed=seed)
    world = build_world(config, RandomService(seed), agent_count=args.agents, decision_sources=name)
    rng = RandomService(seed)
    context = SimulationContext(config, rng=rng, fallback=create_baseline("rule_based", rng))
    result = await TickScheduler(world, context=context).run(args.ticks)

    final: World = result["world"]
    causes = Counter(a.cause_of_death for a in final.agents.values() if a.cause_of_death)
    return summarise(final), causes


async def run_comparison(args: argparse.Namespace) -> None:
    print(f"{args.agents} agents, {args.ticks} ticks, {args.seeds} seed(s), {args.world_size}x{args.world_size} grid\n")
    header = f"{'baseline':<12} {'survival':>9} {'balance':>9} {'hunger':>7} {'energy':>7} {'health':>7} {'gini':>6}  deaths"
    print(header)
    print("-" * len(header))

    for name in args.baselines:
        runs: List[Dict[str, float]] = []
        deaths: Counter = Counter()
        for index in range(args.seeds):
            summary, causes = await run_baseline(name, args, args.base_seed + index)
            runs.append(summary)
            deaths.update(causes)

        mean = {key: statistics.fmean(run[key] for run in runs) for key in runs[0]}
        death_text = ", ".join(f"{cause}={count}" for cause, count in sorted(deaths.items())) or "none"
        print(
            f"{name:<12} {mean['survival']:>8.0%} {mean['balance']:>9.1f} {mean['hunger']:>7.1f} "
            f"{mean['energy']:>7.1f} {mean['health']:>7.1f} {mean['gini']:>6.2f}  {death_text}"
        )


def main() -> None:
    os.environ.setdefault("AGENTCITY_QUIET", "1")
    args = parse_args()
    asyncio.run(run_comparison(args))


if __name__ == "__main__":
    main()
