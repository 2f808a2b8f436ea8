"""Tabular Q-learning baseline.

The observation is discretised into a small state key and the agent picks one
of a handful of abstract behaviours (seek food, gather, sleep...). Rewards are
derived from the change in the agent's own vitals and balance between two
consecutive observations, so the table learns online while the simulation runs.
One table is shared by every agent driven by the same strategy instance.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ..context import RandomService
from ..schemas import Decision, Observation, SelfView
from .base import BaselineStrategy, move_decision, random_step, step_toward
from .rule_based import nearest_spawn, spawns_here, workable_employment

BEHAVIOURS = ("seek_food", "seek_resource", "explore", "gather", "consume", "sleep", "work")


@dataclass
class QLearningParams:
    learning_rate: float = 0.1
    discount: float = 0.95
    epsilon: float = 0.3
    epsilon_decay: float = 0.999
    min_epsilon: float = 0.05


def _level(value: float) -> int:
    if value < 20:
        return 0
    if value < 50:
        return 1
    return 2


def discretise(observation: Observation) -> str:
    me = observation.agent
    parts = (
        f"h{_level(me.hunger)}",
        f"e{_level(me.energy)}",
        f"f{int(observation.item_quantity('food') > 0)}",
        f"s{int(bool(spawns_here(observation)))}",
        f"v{int(nearest_spawn(observation, 'food') is not None)}",
        f"j{int(workable_employment(observation) is not None)}",
    )
    return "|".join(parts)


def reward_between(before: SelfView, after: SelfView) -> float:
    return (
        (after.hunger - before.hunger)
        + (after.energy - before.energy)
        + 2.0 * (after.health - before.health)
        + 0.5 * (after.balance - before.balance)
    ) / 10.0


class QLearningStrategy(BaselineStrategy):
    name = "qlearning"

    def __init__(self, rng: Optional[RandomService] = None, *, params: Optional[QLearningParams] = None):
        super().__init__(rng)
        self.params = params or QLearningParams()
        self.epsilon = self.params.epsilon
        self.q_table: Dict[str, Dict[str, float]] = defaultdict(lambda: {b: 0.0 for b in BEHAVIOURS})
        self._last: Dict[str, Tuple[str, str, SelfView]] = {}
        self.updates = 0
        self.explorations = 0

    def decide(self, observation: Observation) -> Decision:
        rng = self.stream(observation)
        state = discretise(observation)
        agent_id = observation.agent.id

        previous = self._last.get(agent_id)
        if previous is not None:
            prev_state, prev_behaviour, prev_view = previous
            self._learn(prev_state, prev_behaviour, reward_between(prev_view, observation.agent), state)

        if rng.random() < self.epsilon:
            behaviour = rng.choice(BEHAVIOURS)
            self.explorations += 1
        else:
            values = self.q_table[state]
            best = max(values.values())
            behaviour = rng.choice([b for b in BEHAVIOURS if values[b] == best])

        self.epsilon = max(self.params.min_epsilon, self.epsilon * self.params.epsilon_decay)
        self._last[agent_id] = (state, behaviour, observation.agent)
        return self._to_decision(behaviour, observation, rng)

    def _learn(self, state: str, behaviour: str, reward: float, next_state: str) -> None:
        p = self.params
        current = self.q_table[state][behaviour]
        target = reward + p.discount * max(self.q_table[next_state].values())
        self.q_table[state][behaviour] = current + p.learning_rate * (target - current)
        self.updates += 1

    def _to_decision(self, behaviour: str, observation: Observation, rng) -> Decision:
        me = observation.agent
        here = (me.x, me.y)
        size = observation.world_size
        reasoning = f"Q-learning: {behaviour} (epsilon={self.epsilon:.3f})"

        if behaviour in ("seek_food", "seek_resource"):
            target = nearest_spawn(observation, "food" if behaviour == "seek_food" else None)
            if target is not None:
                return move_decision(step_toward(here, (target.x, target.y), size), reasoning)
            return move_decision(random_step(here, size, rng), reasoning)
        if behaviour == "explore":
            return move_decision(random_step(here, size, rng), reasoning)
        if behaviour == "gather":
            stocked = spawns_here(observation)
            params: Dict[str, Any] = {"quantity": 1}
            if stocked:
                params = {"resource_type": stocked[0].resource_type, "quantity": min(3, stocked[0].current_amount)}
            return Decision(action="gather", params=params, reasoning=reasoning)
        if behaviour == "consume":
            return Decision(action="consume", params={"item_type": "food"}, reasoning=reasoning)
        if behaviour == "work":
            employment = workable_employment(observation)
            params = {"employment_id": employment.id} if employment is not None else {}
            return Decision(action="work", params=params, reasoning=reasoning)
        return Decision(action="sleep", params={"duration": 2}, reasoning=reasoning)

    # -- inspection -----------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        return {
            "states": len(self.q_table),
            "updates": self.updates,
            "explorations": self.explorations,
            "epsilon": self.epsilon,
            "tracked_agents": len(self._last),
        }

    def export_q_table(self) -> Dict[str, Dict[str, float]]:
        return {state: dict(values) for state, values in self.q_table.items()}

    def reset(self) -> None:
        """Forget everything learned and restore the initial exploration rate."""
        self.q_table.clear()
        self._last.clear()
        self.epsilon = self.params.epsilon
        self.updates = 0
        self.explorations = 0
