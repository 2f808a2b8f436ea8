"""Random baseline: uniformly picks one of the currently valid actions."""

from __future__ import annotations

from ..actions.social import INFO_TYPES
from ..schemas import Decision, Observation
from .base import BaselineStrategy, move_decision, random_step
from .rule_based import spawns_here, workable_employment

CONSUMABLES = ("food", "water", "medicine", "battery")
TRADE_GOODS = ("food", "energy", "material", "money")
HARM_INTENSITIES = ("light", "moderate", "severe")


class RandomStrategy(BaselineStrategy):
    """Null-hypothesis baseline.

    Only a bare survival override is applied (eat or nap when health is nearly
    gone); everything else is a uniform draw over the valid actions with
    random parameters.
    """

    name = "random"

    def decide(self, observation: Observation) -> Decision:
        rng = self.stream(observation)
        me = observation.agent
        here = (me.x, me.y)
        has_food = observation.item_quantity("food") > 0

        if me.health < 10:
            if me.hunger < 10 and has_food:
                return Decision(action="consume", params={"item_type": "food"}, reasoning="Survival: eating")
            if me.energy < 10:
                return Decision(action="sleep", params={"duration": 1}, reasoning="Survival: resting")

        in_reach = [a for a in observation.nearby_agents if 1 <= a.distance <= 3]
        adjacent = [a for a in in_reach if a.distance == 1]
        consumables = [i.type for i in observation.inventory if i.type in CONSUMABLES and i.quantity > 0]
        goods = [i for i in observation.inventory if i.quantity > 0]
        stocked = spawns_here(observation)

        valid = ["move", "sleep"]
        if consumables:
            valid.append("consume")
        if workable_employment(observation) is not None:
            valid.append("work")
        if stocked:
            valid.append("gather")
        if in_reach:
            valid.extend(["harm", "share_info"])
            if goods:
                valid.append("trade")
        if adjacent:
            valid.append("steal")

        action = rng.choice(valid)

        if action == "move":
            return move_decision(random_step(here, observation.world_size, rng), "Random move")
        if action == "sleep":
            return Decision(action="sleep", params={"duration": rng.randint(1, 5)}, reasoning="Random sleep")
        if action == "consume":
            return Decision(action="consume", params={"item_type": rng.choice(consumables)}, reasoning="Random consume")
        if action == "work":
            return Decision(action="work", params={}, reasoning="Random work")
        if action == "gather":
            spawn = rng.choice(stocked)
            return Decision(
                action="gather",
                params={
                    "resource_type": spawn.resource_type,
                    "quantity": rng.randint(1, min(3, spawn.current_amount)),
                },
                reasoning="Random gather",
            )
        if action == "trade":
            target = rng.choice(in_reach)
            offered = rng.choice(goods)
            return Decision(
                action="trade",
                params={
                    "target_agent_id": target.id,
                    "offering_item_type": offered.type,
                    "offering_quantity": rng.randint(1, min(2, offered.quantity)),
                    "requesting_item_type": rng.choice(TRADE_GOODS),
                    "requesting_quantity": rng.randint(1, 2),
                },
                reasoning="Random trade",
            )
        if action == "harm":
            target = rng.choice(adjacent or in_reach)
            return Decision(
                action="harm",
                params={"target_agent_id": target.id, "intensity": rng.choice(HARM_INTENSITIES)},
                reasoning="Random harm",
            )
        if action == "steal":
            target = rng.choice(adjacent)
            return Decision(
                action="steal",
                params={
                    "target_agent_id": target.id,
                    "item_type": rng.choice(TRADE_GOODS),
                    "quantity": rng.randint(1, 2),
                },
                reasoning="Random steal",
            )

        target = rng.choice(in_reach)
        subjects = [a.id for a in observation.nearby_agents if a.id != target.id]
        subjects = subjects or [k.agent_id for k in observation.known_agents if k.agent_id != target.id]
        subject = rng.choice(subjects) if subjects else target.id
        return Decision(
            action="share_info",
            params={
                "target_agent_id": target.id,
                "subject_agent_id": subject,
                "info_type": rng.choice(INFO_TYPES),
                "sentiment": rng.randint(-100, 100),
            },
            reasoning="Random share",
        )
