"""Rule-based baseline: a fixed priority ladder over the agent's needs.

Also the default fallback strategy; whenever a decision source times out or
errors, the dispatcher substitutes this policy's choice for the same
observation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..context import RandomService
from ..schemas import Decision, EmploymentView, NearbySpawn, Observation
from .base import BaselineStrategy, move_decision, random_step, step_toward


@dataclass(frozen=True)
class RuleThresholds:
    critical_hunger: float = 20.0
    low_hunger: float = 50.0
    critical_energy: float = 20.0
    low_energy: float = 40.0
    low_balance: float = 50.0
    min_energy_to_move: float = 5.0
    min_energy_to_work: float = 15.0
    min_energy_to_forage: float = 1.0
    food_search_distance: int = 10


def workable_employment(observation: Observation) -> Optional[EmploymentView]:
    for employment in observation.active_employments:
        if (
            employment.role == "worker"
            and employment.status == "active"
            and employment.ticks_worked < employment.ticks_required
        ):
            return employment
    return None


def spawns_here(observation: Observation, resource_type: Optional[str] = None) -> list[NearbySpawn]:
    me = observation.agent
    return [
        s
        for s in observation.nearby_resource_spawns
        if s.x == me.x and s.y == me.y and s.current_amount > 0
        and (resource_type is None or s.resource_type == resource_type)
    ]


def nearest_spawn(observation: Observation, resource_type: Optional[str] = None) -> Optional[NearbySpawn]:
    candidates = [
        s
        for s in observation.nearby_resource_spawns
        if s.current_amount > 0 and (resource_type is None or s.resource_type == resource_type)
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda s: s.distance)


class RuleBasedStrategy(BaselineStrategy):
    """Survive first, then earn, then explore.

    Priority ladder:
      1. Critical hunger: eat, gather food here, buy food at a shelter, head for food,
         or forage when no food source is in sight
      2. Critical energy: sleep
      3. Low hunger: eat, gather food here, or head for food within range
      4. Low energy: sleep (shorter when sheltered)
      5. Gather whatever spawn is underfoot
      6. Low balance: work an active contract, accept a visible job offer, or do
         public works at a shelter
      7. Explore toward the nearest stocked spawn, else wander
      8. Sleep
    """

    name = "rule_based"

    def __init__(
        self,
        rng: Optional[RandomService] = None,
        *,
        thresholds: Optional[RuleThresholds] = None,
        food_price: float = 10.0,
    ):
        super().__init__(rng)
        self.thresholds = thresholds or RuleThresholds()
        self.food_price = food_price

    def decide(self, observation: Observation) -> Decision:
        t = self.thresholds
        me = observation.agent
        here = (me.x, me.y)
        has_food = observation.item_quantity("food") > 0

        if me.hunger < t.critical_hunger:
            if has_food:
                return Decision(action="consume", params={"item_type": "food"}, reasoning="Critical hunger - eating food")
            food_here = spawns_here(observation, "food")
            if food_here:
                return self._gather(food_here[0], 3, "Critical hunger - gathering food")
            if self._at_shelter(observation) and me.balance >= self.food_price:
                return Decision(
                    action="buy", params={"item_type": "food", "quantity": 1}, reasoning="Critical hunger - buying food"
                )
            food = nearest_spawn(observation, "food")
            if food is not None and me.energy >= t.min_energy_to_move:
                return move_decision(
                    step_toward(here, (food.x, food.y), observation.world_size),
                    "Critical hunger - moving to food source",
                )
            if food is None and me.energy >= t.min_energy_to_forage:
                return Decision(action="forage", params={}, reasoning="Critical hunger - foraging for scraps")

        if me.energy < t.critical_energy:
            duration = 5 if me.energy < 10 else 3
            return Decision(action="sleep", params={"duration": duration}, reasoning="Critical energy - must rest")

        if me.hunger < t.low_hunger:
            if has_food:
                return Decision(action="consume", params={"item_type": "food"}, reasoning="Low hunger - eating")
            food_here = spawns_here(observation, "food")
            if food_here:
                return self._gather(food_here[0], 2, "Low hunger - gathering food")
            food = nearest_spawn(observation, "food")
            if food is not None and food.distance <= t.food_search_distance and me.energy >= t.min_energy_to_move:
                return move_decision(
                    step_toward(here, (food.x, food.y), observation.world_size), "Low hunger - seeking food"
                )

        if me.energy < t.low_energy:
            duration = 2 if self._at_shelter(observation) else 3
            return Decision(action="sleep", params={"duration": duration}, reasoning="Low energy - resting")

        stocked_here = spawns_here(observation)
        if stocked_here:
            return self._gather(stocked_here[0], 2, "Opportunistic gathering")

        if me.balance < t.low_balance and me.energy >= t.min_energy_to_work:
            employment = workable_employment(observation)
            if employment is not None:
                return Decision(
                    action="work", params={"employment_id": employment.id}, reasoning="Low balance - working"
                )
            if observation.nearby_job_offers and "accept_job" in observation.available_actions:
                offer = max(observation.nearby_job_offers, key=lambda o: o.salary)
                return Decision(
                    action="accept_job",
                    params={"job_offer_id": offer.id},
                    reasoning="Low balance - taking the best paying job in sight",
                )
            if self._at_shelter(observation):
                return Decision(action="public_work", params={}, reasoning="Low balance - public works at the shelter")

        if me.energy >= t.min_energy_to_move:
            target = nearest_spawn(observation)
            if target is not None:
                return move_decision(
                    step_toward(here, (target.x, target.y), observation.world_size), "Exploring toward resources"
                )
            rng = self.stream(observation)
            return move_decision(random_step(here, observation.world_size, rng), "Exploring randomly")

        return Decision(action="sleep", params={"duration": 1}, reasoning="Default rest")

    @staticmethod
    def _at_shelter(observation: Observation) -> bool:
        me = observation.agent
        return any(s.x == me.x and s.y == me.y for s in observation.nearby_shelters)

    @staticmethod
    def _gather(spawn: NearbySpawn, cap: int, reasoning: str) -> Decision:
        return Decision(
            action="gather",
            params={"resource_type": spawn.resource_type, "quantity": min(cap, spawn.current_amount)},
            reasoning=reasoning,
        )
