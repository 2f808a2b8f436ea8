"""Tests for the baseline decision strategies."""

import pytest

from agentcity.cognition import (
    BASELINES,
    BaselineDecisionSource,
    QLearningParams,
    QLearningStrategy,
    RandomStrategy,
    RuleBasedStrategy,
    SugarscapeStrategy,
    create_baseline,
)
from agentcity.cognition.base import step_toward
from agentcity.cognition.qlearning import BEHAVIOURS, discretise, reward_between
from agentcity.context import RandomService
from agentcity.schemas import (
    EmploymentView,
    InventoryView,
    JobOfferView,
    NearbyAgent,
    NearbyShelter,
    NearbySpawn,
    Observation,
    SelfView,
)


def make_spawn(spawn_id: str, x: int, y: int, amount: int, resource_type: str = "food") -> NearbySpawn:
    return NearbySpawn(
        id=spawn_id,
        x=x,
        y=y,
        resource_type=resource_type,
        current_amount=amount,
        max_amount=10,
        distance=abs(x - 10) + abs(y - 10),
    )


def make_observation(tick: int = 1, inventory=None, spawns=(), shelters=(), employments=(), **vitals) -> Observation:
    me = {
        "id": "alice",
        "x": 10,
        "y": 10,
        "hunger": 80.0,
        "energy": 80.0,
        "health": 100.0,
        "balance": 100.0,
        "state": "idle",
    }
    me.update(vitals)
    return Observation(
        tick=tick,
        world_size=30,
        agent=SelfView(**me),
        inventory=[InventoryView(type=k, quantity=v) for k, v in (inventory or {}).items()],
        nearby_resource_spawns=list(spawns),
        nearby_shelters=list(shelters),
        active_employments=list(employments),
    )


SHELTER_HERE = NearbyShelter(id="inn", x=10, y=10, can_sleep=True, distance=0)


def make_employment() -> EmploymentView:
    return EmploymentView(
        id="job-1",
        role="worker",
        counterpart_id="bob",
        payment_type="per_tick",
        salary=30.0,
        ticks_worked=1,
        ticks_required=3,
        amount_paid=10.0,
        escrow_held=0.0,
        status="active",
    )


# ---------------------------------------------------------------------------
# Rule-based ladder
# ---------------------------------------------------------------------------


def test_rule_based_eats_when_starving():
    strategy = RuleBasedStrategy(RandomService(1))
    decision = strategy.decide(make_observation(hunger=10.0, inventory={"food": 1}))
    assert decision.action == "consume"
    assert decision.params == {"item_type": "food"}


def test_rule_based_gathers_then_buys_then_walks_to_food():
    strategy = RuleBasedStrategy(RandomService(1))

    gather = strategy.decide(make_observation(hunger=10.0, spawns=[make_spawn("farm", 10, 10, 5)]))
    assert gather.action == "gather"
    assert gather.params == {"resource_type": "food", "quantity": 3}

    buy = strategy.decide(make_observation(hunger=10.0, shelters=[SHELTER_HERE]))
    assert buy.action == "buy"
    assert buy.params == {"item_type": "food", "quantity": 1}

    walk = strategy.decide(make_observation(hunger=10.0, spawns=[make_spawn("farm", 13, 12, 5)]))
    assert walk.action == "move"
    assert walk.params == {"to_x": 11, "to_y": 10}


def test_rule_based_rests_when_exhausted():
    strategy = RuleBasedStrategy(RandomService(1))
    assert strategy.decide(make_observation(energy=8.0)).params == {"duration": 5}
    assert strategy.decide(make_observation(energy=15.0)).params == {"duration": 3}
    assert strategy.decide(make_observation(energy=30.0)).params == {"duration": 3}
    assert strategy.decide(make_observation(energy=30.0, shelters=[SHELTER_HERE])).params == {"duration": 2}


def test_rule_based_gathers_whatever_is_underfoot():
    strategy = RuleBasedStrategy(RandomService(1))
    decision = strategy.decide(make_observation(spawns=[make_spawn("well", 10, 10, 1, "energy")]))
    assert decision.action == "gather"
    assert decision.params == {"resource_type": "energy", "quantity": 1}


def test_rule_based_works_when_money_is_low():
    strategy = RuleBasedStrategy(RandomService(1))
    decision = strategy.decide(make_observation(balance=20.0, employments=[make_employment()]))
    assert decision.action == "work"
    assert decision.params == {"employment_id": "job-1"}

    observation = make_observation(balance=20.0)
    offers = [
        JobOfferView(
            id=offer_id,
            employer_id="bob",
            salary=salary,
            duration_ticks=2,
            payment_type="upfront",
            escrow_amount=salary,
            description="",
            expires_at_tick=50,
        )
        for offer_id, salary in (("cheap", 10.0), ("rich", 40.0))
    ]
    observation = observation.model_copy(update={"nearby_job_offers": offers, "available_actions": ["accept_job"]})
    decision = strategy.decide(observation)
    assert decision.action == "accept_job"
    assert decision.params == {"job_offer_id": "rich"}


def test_rule_based_forages_or_does_public_work_without_other_options():
    strategy = RuleBasedStrategy(RandomService(1))

    starving = strategy.decide(make_observation(hunger=10.0, balance=0.0))
    assert starving.action == "forage"
    assert starving.params == {}

    broke = strategy.decide(make_observation(balance=20.0, shelters=[SHELTER_HERE]))
    assert broke.action == "public_work"

    comfortable = strategy.decide(make_observation(shelters=[SHELTER_HERE]))
    assert comfortable.action == "move"


def test_rule_based_exploration_is_deterministic_per_seed():
    observation = make_observation()
    first = RuleBasedStrategy(RandomService(42)).decide(observation)
    second = RuleBasedStrategy(RandomService(42)).decide(observation)

    assert first == second
    assert first.action == "move"
    assert abs(first.params["to_x"] - 10) + abs(first.params["to_y"] - 10) == 1


def test_step_toward_axis_choice():
    assert step_toward((0, 0), (1, 5), 10) == (1, 0)
    assert step_toward((0, 0), (1, 5), 10, larger_gap_first=True) == (0, 1)
    assert step_toward((3, 3), (3, 3), 10) == (3, 3)


# ---------------------------------------------------------------------------
# Sugarscape
# ---------------------------------------------------------------------------


def test_sugarscape_moves_toward_richest_spawn_in_vision():
    strategy = SugarscapeStrategy(RandomService(2))
    spawns = [
        make_spawn("near", 12, 10, 2, "energy"),
        make_spawn("rich", 10, 13, 5, "material"),
        make_spawn("far", 10, 20, 9, "food"),
    ]
    decision = strategy.decide(make_observation(spawns=spawns))
    assert decision.action == "move"
    assert decision.params == {"to_x": 10, "to_y": 11}


def test_sugarscape_prefers_food_when_hungry():
    strategy = SugarscapeStrategy(RandomService(2))
    spawns = [make_spawn("snack", 12, 10, 2, "food"), make_spawn("rich", 10, 13, 5, "material")]
    decision = strategy.decide(make_observation(hunger=40.0, spawns=spawns))
    assert decision.params == {"to_x": 11, "to_y": 10}

    here = [make_spawn("ore", 10, 10, 4, "material"), make_spawn("berries", 10, 10, 1, "food")]
    harvest = strategy.decide(make_observation(hunger=40.0, spawns=here))
    assert harvest.action == "gather"
    assert harvest.params == {"resource_type": "food", "quantity": 1}


def test_sugarscape_survival_overrides():
    strategy = SugarscapeStrategy(RandomService(2))
    assert strategy.decide(make_observation(hunger=5.0, inventory={"food": 2})).action == "consume"
    assert strategy.decide(make_observation(energy=10.0)).action == "sleep"


# ---------------------------------------------------------------------------
# Q-learning
# ---------------------------------------------------------------------------


def test_state_key_and_reward():
    observation = make_observation(hunger=10.0, energy=60.0, employments=[make_employment()])
    assert discretise(observation) == "h0|e2|f0|s0|v0|j1"

    before = observation.agent
    after = before.model_copy(update={"hunger": 30.0, "energy": 50.0, "health": 95.0, "balance": 120.0})
    assert reward_between(before, after) == pytest.approx((20.0 - 10.0 - 10.0 + 10.0) / 10.0)


def test_qlearning_learns_online_and_can_be_reset():
    strategy = QLearningStrategy(
        RandomService(9), params=QLearningParams(epsilon=0.3, epsilon_decay=0.5, min_epsilon=0.05)
    )
    first = strategy.decide(make_observation(tick=1))
    assert first.reasoning.startswith("Q-learning: ")
    assert strategy.stats()["updates"] == 0
    assert strategy.epsilon == pytest.approx(0.15)

    strategy.decide(make_observation(tick=2, hunger=70.0))
    strategy.decide(make_observation(tick=3, hunger=60.0))
    stats = strategy.stats()
    assert stats["updates"] == 2
    assert stats["tracked_agents"] == 1
    assert strategy.epsilon == pytest.approx(0.05)

    table = strategy.export_q_table()
    assert set(table["h2|e2|f0|s0|v0|j0"]) == set(BEHAVIOURS)
    table["h2|e2|f0|s0|v0|j0"]["sleep"] = 99.0
    assert strategy.q_table["h2|e2|f0|s0|v0|j0"]["sleep"] != 99.0

    strategy.reset()
    assert strategy.stats() == {
        "states": 0,
        "updates": 0,
        "explorations": 0,
        "epsilon": 0.3,
        "tracked_agents": 0,
    }


def test_qlearning_exploits_the_best_known_behaviour():
    strategy = QLearningStrategy(RandomService(4), params=QLearningParams(epsilon=0.0))
    observation = make_observation()
    strategy.q_table[discretise(observation)]["sleep"] = 5.0
    decision = strategy.decide(observation)
    assert decision.action == "sleep"
    assert strategy.stats()["explorations"] == 0


# ---------------------------------------------------------------------------
# Random and the registry
# ---------------------------------------------------------------------------


def test_random_only_picks_valid_actions():
    observation = make_observation()
    for seed in range(20):
        decision = RandomStrategy(RandomService(seed)).decide(observation)
        assert decision.action in {"move", "sleep"}

    crowded = make_observation(inventory={"food": 2}).model_copy(
        update={
            "nearby_agents": [NearbyAgent(id="bob", x=11, y=10, state="idle", distance=1, direction="east")]
        }
    )
    allowed = {"move", "sleep", "consume", "harm", "share_info", "trade", "steal"}
    for seed in range(30):
        decision = RandomStrategy(RandomService(seed)).decide(crowded)
        assert decision.action in allowed
        if decision.action in {"harm", "steal", "trade", "share_info"}:
            assert decision.params["target_agent_id"] == "bob"


def test_random_is_reproducible():
    observation = make_observation(inventory={"food": 1})
    assert RandomStrategy(RandomService(5)).decide(observation) == RandomStrategy(RandomService(5)).decide(observation)


def test_create_baseline():
    assert set(BASELINES) == {"random", "rule_based", "sugarscape", "qlearning"}
    assert isinstance(create_baseline("sugarscape", RandomService(1)), SugarscapeStrategy)
    with pytest.raises(ValueError, match="Unknown baseline 'genius'"):
        create_baseline("genius")


@pytest.mark.asyncio
async def test_baseline_source_adapter():
    source = BaselineDecisionSource(RuleBasedStrategy(RandomService(1)))
    assert source.name == "rule_based"
    assert source.is_available()
    decision = await source.decide(make_observation(hunger=10.0, inventory={"food": 1}))
    assert decision.action == "consume"
