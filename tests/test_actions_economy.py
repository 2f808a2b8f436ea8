"""Tests for trade, public works and the employment lifecycle, including escrow accounting."""

import random

from agentcity.actions import ActionResolver, ResolutionContext
from agentcity.config import SimulationConfig
from agentcity.schemas import ActionIntent, ActionType, Agent, Shelter
from agentcity.world import World, apply_result


def make_world() -> World:
    world = World(tick=0, size=20)
    world.agents["boss"] = Agent(id="boss", x=5, y=5)
    world.agents["worker"] = Agent(id="worker", x=6, y=5)
    world.agents["stranger"] = Agent(id="stranger", x=15, y=15)
    return world


def act(world: World, agent_id: str, action: ActionType, params: dict, tick: int = 1):
    """Resolve one intent and apply it if it succeeded, like the scheduler does."""
    intent = ActionIntent(agent_id=agent_id, type=action, params=params, tick=tick)
    ctx = ResolutionContext(
        world=world, config=SimulationConfig(), tick=tick, rng=random.Random(f"{agent_id}:{tick}")
    )
    result = ActionResolver().resolve(intent, world.agents[agent_id], ctx)
    if result.success:
        apply_result(world, agent_id, result, tick=tick)
    return result


def total_money(world: World) -> float:
    held = sum(o.escrow_amount for o in world.job_offers.values())
    held += sum(e.escrow_held for e in world.employments.values())
    return sum(a.balance for a in world.agents.values()) + held


def post_job(world: World, tick: int = 1, **params) -> str:
    body = {"salary": 30, "duration": 2, "payment_type": "on_completion"}
    body.update(params)
    result = act(world, "boss", ActionType.OFFER_JOB, body, tick=tick)
    assert result.success, result.error
    return result.events[0].payload["jobOfferId"]


def accept(world: World, offer_id: str, tick: int = 2) -> str:
    result = act(world, "worker", ActionType.ACCEPT_JOB, {"job_offer_id": offer_id}, tick=tick)
    assert result.success, result.error
    return result.events[0].payload["employmentId"]


def test_trade_swaps_goods_and_builds_trust():
    world = make_world()
    world.inventories["boss"] = {"food": 3}
    world.inventories["worker"] = {"material": 2}

    result = act(
        world,
        "boss",
        ActionType.TRADE,
        {
            "target_agent_id": "worker",
            "offering_item_type": "food",
            "offering_quantity": 2,
            "requesting_item_type": "material",
            "requesting_quantity": 1,
        },
    )
    assert result.success
    assert world.inventories["boss"] == {"food": 1, "material": 1}
    assert world.inventories["worker"] == {"material": 1, "food": 2}
    assert world.trust("boss", "worker") == 5.0
    assert world.trust("worker", "boss") == 5.0


def test_trade_validation():
    world = make_world()
    world.inventories["boss"] = {"food": 1}
    params = {
        "target_agent_id": "worker",
        "offering_item_type": "food",
        "offering_quantity": 2,
        "requesting_item_type": "material",
        "requesting_quantity": 1,
    }
    assert act(world, "boss", ActionType.TRADE, params).error == "Not enough food to offer (have: 1, need: 2)"
    params["offering_quantity"] = 1
    assert act(world, "boss", ActionType.TRADE, params).error == (
        "Target agent doesn't have enough material (have: 0, need: 1)"
    )
    params["target_agent_id"] = "stranger"
    assert act(world, "boss", ActionType.TRADE, params).error.startswith("Target agent is too far")


def test_offer_job_moves_salary_into_escrow():
    world = make_world()
    offer_id = post_job(world, escrow_percent=50)
    offer = world.job_offers[offer_id]

    assert offer.escrow_amount == 15.0
    assert offer.expires_at_tick == 51
    assert world.agents["boss"].balance == 85.0
    assert total_money(world) == 300.0


def test_offer_job_validation():
    world = make_world()
    base = {"salary": 30, "duration": 2, "payment_type": "on_completion"}
    assert act(world, "boss", ActionType.OFFER_JOB, {**base, "salary": 0}).error == (
        "Invalid salary: must be between 1 and 1000 CITY"
    )
    assert act(world, "boss", ActionType.OFFER_JOB, {**base, "duration": 101}).error == (
        "Invalid duration: must be between 1 and 100 ticks"
    )
    assert act(world, "boss", ActionType.OFFER_JOB, {**base, "payment_type": "barter"}).error.startswith(
        "Invalid payment type"
    )
    assert act(world, "boss", ActionType.OFFER_JOB, {**base, "salary": 500}).error == (
        "Insufficient balance: need 500 CITY, have 100 CITY"
    )


def test_on_completion_contract_paid_by_employer():
    world = make_world()
    offer_id = post_job(world)
    employment_id = accept(world, offer_id)

    employment = world.employments[employment_id]
    assert employment.escrow_held == 30.0
    assert world.job_offers[offer_id].status == "accepted"
    assert world.job_offers[offer_id].escrow_amount == 0.0

    act(world, "worker", ActionType.WORK, {}, tick=3)
    finished = act(world, "worker", ActionType.WORK, {"employment_id": employment_id}, tick=4)
    assert finished.events[0].payload["isComplete"]

    employment = world.employments[employment_id]
    assert employment.status == "active"
    assert employment.completed_at_tick == 4
    assert world.agents["worker"].state == "working"

    paid = act(world, "boss", ActionType.PAY_WORKER, {"employment_id": employment_id}, tick=5)
    assert paid.success
    employment = world.employments[employment_id]
    assert employment.status == "completed"
    assert employment.escrow_held == 0.0
    assert world.agents["worker"].balance == 130.0
    assert world.agents["boss"].balance == 70.0
    assert total_money(world) == 300.0

    again = act(world, "boss", ActionType.PAY_WORKER, {"employment_id": employment_id}, tick=6)
    assert again.error == "This contract has already been paid"


def test_worker_claims_escrow_after_grace_period():
    world = make_world()
    employment_id = accept(world, post_job(world, duration=1))
    act(world, "worker", ActionType.WORK, {}, tick=3)

    early = act(world, "worker", ActionType.CLAIM_ESCROW, {"employment_id": employment_id}, tick=8)
    assert early.error == "Must wait 5 more ticks before claiming escrow. Employer may still pay."

    claimed = act(world, "worker", ActionType.CLAIM_ESCROW, {"employment_id": employment_id}, tick=13)
    assert claimed.success
    employment = world.employments[employment_id]
    assert employment.status == "unpaid"
    assert employment.escrow_held == 0.0
    assert employment.amount_paid == 30.0
    assert world.agents["worker"].balance == 130.0
    assert world.trust("worker", "boss") == 5.0 + 10.0 - 30.0
    assert total_money(world) == 300.0

    twice = act(world, "worker", ActionType.CLAIM_ESCROW, {"employment_id": employment_id}, tick=14)
    assert twice.error == "No escrow was deposited for this contract"


def test_per_tick_contract_pays_every_tick_and_exact_remainder():
    world = make_world()
    offer_id = post_job(world, salary=10, duration=3, payment_type="per_tick", escrow_percent=0)
    employment_id = accept(world, offer_id)

    for tick in (3, 4, 5):
        assert act(world, "worker", ActionType.WORK, {}, tick=tick).success

    employment = world.employments[employment_id]
    assert employment.status == "completed"
    assert abs(employment.amount_paid - 10.0) < 1e-9
    assert abs(world.agents["worker"].balance - 110.0) < 1e-9
    assert abs(world.agents["boss"].balance - 90.0) < 1e-9


def test_per_tick_employer_default_releases_escrow():
    world = make_world()
    employment_id = accept(world, post_job(world, salary=60, duration=2, payment_type="per_tick", escrow_percent=50))
    # Boss has 70 left after escrow; drain it so the first payment bounces.
    world.agents["boss"] = world.agents["boss"].model_copy(update={"balance": 0.0})

    result = act(world, "worker", ActionType.WORK, {}, tick=3)
    assert result.events[0].type == "employer_defaulted"
    employment = world.employments[employment_id]
    assert employment.status == "unpaid"
    assert world.agents["worker"].balance == 130.0


def test_per_tick_default_releases_only_the_payment_due():
    world = make_world()
    world.agents["boss"] = world.agents["boss"].model_copy(update={"balance": 150.0})
    employment_id = accept(world, post_job(world, salary=100, duration=4, payment_type="per_tick", escrow_percent=100))
    assert world.agents["boss"].balance == 50.0

    assert act(world, "worker", ActionType.WORK, {}, tick=3).success
    assert act(world, "worker", ActionType.WORK, {}, tick=4).success
    assert world.agents["boss"].balance == 0.0

    result = act(world, "worker", ActionType.WORK, {}, tick=5)
    assert result.events[0].type == "employer_defaulted"
    assert result.events[0].payload["escrowReleased"] == 25.0
    assert result.events[0].payload["escrowRefunded"] == 75.0

    employment = world.employments[employment_id]
    assert employment.status == "unpaid"
    assert employment.escrow_held == 0.0
    assert employment.amount_paid == 75.0
    assert employment.amount_paid <= employment.salary
    assert world.agents["worker"].balance == 175.0
    assert world.agents["boss"].balance == 75.0
    assert total_money(world) == 350.0

    after = act(world, "worker", ActionType.WORK, {}, tick=6)
    assert after.error == "No active employment. Accept a job offer first (use accept_job action)."


def test_upfront_contract_pays_on_acceptance():
    world = make_world()
    employment_id = accept(world, post_job(world, salary=20, duration=1, payment_type="upfront"))
    assert world.agents["worker"].balance == 120.0
    assert world.agents["boss"].balance == 80.0
    assert world.employments[employment_id].escrow_held == 0.0

    act(world, "worker", ActionType.WORK, {}, tick=3)
    assert world.employments[employment_id].status == "completed"
    assert total_money(world) == 300.0


def test_quit_refunds_escrow_and_costs_trust():
    world = make_world()
    employment_id = accept(world, post_job(world))
    result = act(world, "worker", ActionType.QUIT_JOB, {"employment_id": employment_id}, tick=3)

    assert result.success
    assert world.employments[employment_id].status == "quit"
    assert world.agents["boss"].balance == 100.0
    assert world.trust("boss", "worker") == 5.0 - 10.0
    assert total_money(world) == 300.0


def test_cancel_offer_refunds_escrow():
    world = make_world()
    offer_id = post_job(world)
    assert act(world, "worker", ActionType.CANCEL_JOB_OFFER, {"job_offer_id": offer_id}).error == (
        "Only the employer can cancel this job offer"
    )
    assert act(world, "boss", ActionType.CANCEL_JOB_OFFER, {"job_offer_id": offer_id}).success
    assert world.agents["boss"].balance == 100.0
    assert world.job_offers[offer_id].status == "cancelled"

    late = act(world, "worker", ActionType.ACCEPT_JOB, {"job_offer_id": offer_id}, tick=2)
    assert late.error == "Job offer is no longer available (status: cancelled)"


def test_accept_job_rules():
    world = make_world()
    offer_id = post_job(world, expires_in=2)
    assert act(world, "boss", ActionType.ACCEPT_JOB, {"job_offer_id": offer_id}).error == (
        "Cannot accept your own job offer"
    )
    assert act(world, "worker", ActionType.ACCEPT_JOB, {"job_offer_id": offer_id}, tick=4).error == (
        "Job offer has expired"
    )
    assert act(world, "worker", ActionType.ACCEPT_JOB, {"job_offer_id": "nope"}).error == (
        "Job offer not found: nope"
    )


def test_work_without_contract_fails():
    world = make_world()
    result = act(world, "worker", ActionType.WORK, {})
    assert result.error == "No active employment. Accept a job offer first (use accept_job action)."


def test_fire_worker_pays_pro_rated_salary_from_escrow():
    world = make_world()
    employment_id = accept(world, post_job(world))
    act(world, "worker", ActionType.WORK, {}, tick=3)

    assert act(world, "worker", ActionType.FIRE_WORKER, {"employment_id": employment_id}, tick=4).error == (
        "Only the employer can fire from this contract"
    )
    result = act(world, "boss", ActionType.FIRE_WORKER, {"employment_id": employment_id}, tick=4)
    assert result.success
    payload = result.events[0].payload
    assert payload["severancePaid"] == 15.0
    assert payload["escrowReturned"] == 15.0

    employment = world.employments[employment_id]
    assert employment.status == "fired"
    assert employment.escrow_held == 0.0
    assert employment.amount_paid == 15.0
    assert world.agents["worker"].balance == 115.0
    assert world.agents["boss"].balance == 85.0
    assert world.trust("boss", "worker") == 5.0 - 20.0
    assert world.trust("worker", "boss") == 5.0 - 15.0
    assert total_money(world) == 300.0

    again = act(world, "boss", ActionType.FIRE_WORKER, {"employment_id": employment_id}, tick=5)
    assert again.error == "Cannot fire - contract status is: fired"


def test_firing_a_dead_worker_returns_the_escrow():
    world = make_world()
    employment_id = accept(world, post_job(world))
    act(world, "worker", ActionType.WORK, {}, tick=3)
    world.agents["worker"] = world.agents["worker"].model_copy(update={"state": "dead", "health": 0.0})

    result = act(world, "boss", ActionType.FIRE_WORKER, {"employment_id": employment_id}, tick=4)
    assert result.success
    assert result.events[0].payload["severancePaid"] == 0.0
    assert world.agents["boss"].balance == 100.0
    assert world.employments[employment_id].status == "fired"
    assert world.trust("boss", "worker") == 5.0


def test_public_work_pays_after_a_full_task_at_a_shelter():
    world = make_world()
    assert act(world, "boss", ActionType.PUBLIC_WORK, {}).error == (
        "Must be at a shelter to do public work. Find a shelter first."
    )
    world.shelters["hall"] = Shelter(id="hall", x=5, y=5)
    assert act(world, "boss", ActionType.PUBLIC_WORK, {"task_type": "juggling"}).error.startswith(
        "Unknown public task type: juggling"
    )

    first = act(world, "boss", ActionType.PUBLIC_WORK, {"taskType": "shelter_cleanup"}, tick=1)
    assert first.events[0].payload["isComplete"] is False
    assert world.agents["boss"].public_work_ticks == 1
    assert world.agents["boss"].state == "working"
    act(world, "boss", ActionType.PUBLIC_WORK, {}, tick=2)
    assert world.agents["boss"].balance == 100.0

    done = act(world, "boss", ActionType.PUBLIC_WORK, {}, tick=3)
    payload = done.events[0].payload
    assert payload["isComplete"] is True
    assert payload["nearbyWorkers"] == 1
    assert payload["cooperationBonus"] == 20
    assert payload["payment"] == 12.0
    assert done.events[1].type == "balance_changed"

    boss = world.agents["boss"]
    assert boss.balance == 112.0
    assert boss.energy == 94.0
    assert boss.public_work_ticks == 0
