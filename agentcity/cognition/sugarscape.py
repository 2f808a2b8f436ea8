"""Sugarscape baseline (Epstein & Axtell, 1996).

Agents look ``vision`` cells in each direction, move toward the richest
resource they can see and harvest it. No trade, no communication, no conflict.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..context import RandomService
from ..environment import manhattan_distance
from ..schemas import Decision, NearbySpawn, Observation
from .base import BaselineStrategy, move_decision, random_step, step_toward
from .rule_based import spawns_here


@dataclass(frozen=True)
class SugarscapeParams:
    vision: int = 4
    critical_hunger: float = 20.0
    critical_energy: float = 15.0
    min_energy_to_move: float = 5.0
    prefer_food_below: float = 50.0


class SugarscapeStrategy(BaselineStrategy):
    name = "sugarscape"

    def __init__(self, rng: Optional[RandomService] = None, *, params: Optional[SugarscapeParams] = None):
        super().__init__(rng)
        self.params = params or SugarscapeParams()

    def decide(self, observation: Observation) -> Decision:
        p = self.params
        me = observation.agent
        here = (me.x, me.y)
        rng = self.stream(observation)

        if me.hunger < p.critical_hunger and observation.item_quantity("food") > 0:
            return Decision(action="consume", params={"item_type": "food"}, reasoning="Survival: consuming food")
        if me.energy < p.critical_energy:
            return Decision(action="sleep", params={"duration": 2}, reasoning="Survival: resting to recover energy")

        wants_food = me.hunger < p.prefer_food_below
        stocked = spawns_here(observation)
        if stocked:
            preferred = [s for s in stocked if s.resource_type == "food"] if wants_food else []
            spawn = (preferred or stocked)[0]
            return Decision(
                action="gather",
                params={"resource_type": spawn.resource_type, "quantity": min(3, spawn.current_amount)},
                reasoning=f"Harvesting {spawn.resource_type} at current location",
            )

        if me.energy >= p.min_energy_to_move:
            best = self._best_in_vision(observation, wants_food, rng)
            if best is not None:
                return move_decision(
                    step_toward(here, (best.x, best.y), observation.world_size, larger_gap_first=True),
                    f"Moving toward {best.resource_type} (amount: {best.current_amount})",
                )
            return move_decision(random_step(here, observation.world_size, rng), "Exploring for resources")

        return Decision(action="sleep", params={"duration": 2}, reasoning="No resources in vision, resting")

    def _best_in_vision(self, observation: Observation, wants_food: bool, rng) -> Optional[NearbySpawn]:
        me = (observation.agent.x, observation.agent.y)
        visible = [
            s
            for s in observation.nearby_resource_spawns
            if s.current_amount > 0 and manhattan_distance(me, (s.x, s.y)) <= self.params.vision
        ]
        if wants_food:
            visible = [s for s in visible if s.resource_type == "food"] or visible
        if not visible:
            return None
        # amount * 10 - distance, ties broken at random
        scored = [(s.current_amount * 10 - manhattan_distance(me, (s.x, s.y)), rng.random(), s) for s in visible]
        return max(scored, key=lambda item: (item[0], item[1]))[2]
