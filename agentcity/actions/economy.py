"""
Economy actions: bilateral trade, public works and the employment lifecycle.

Escrow model:
- ``offer_job`` debits the escrow from the employer and parks it on the offer
- ``accept_job`` moves it onto the Employment as ``escrow_held`` (upfront
  contracts release it to the worker immediately)
- every later payout from escrow reduces ``escrow_held`` by exactly the amount
  paid, so held funds can be released at most once

Contract shapes:
- upfront: paid in full at acceptance, completes when the work is done
- per_tick: the employer pays ``salary / ticks_required`` on every work tick
  (the last tick pays the exact remainder); escrow returns to the employer on
  completion
- on_completion: work finishing leaves the contract active until the employer
  runs ``pay_worker`` or, after the grace period, the worker runs ``claim_escrow``

An employer may ``fire_worker`` an active contract: the worker gets the pro-rated
salary for ticks already worked (escrow first, then the employer's balance) and
the rest of the escrow returns to the employer.
"""

from __future__ import annotations

import math
from typing import List, Optional

from ..environment import manhattan_distance
from ..schemas import (
    ActionIntent,
    ActionResult,
    Agent,
    Employment,
    EmploymentUpsert,
    InventoryChange,
    JobOffer,
    JobOfferUpsert,
    WorldEvent,
)
from .base import (
    ResolutionContext,
    balance_event,
    event,
    find_target,
    parse_params,
    remember,
    trust,
    update,
)
from .params import (
    EmploymentRefParams,
    JobOfferRefParams,
    OfferJobParams,
    PublicWorkParams,
    TradeParams,
    WorkParams,
)

PAYMENT_TYPES = ("upfront", "on_completion", "per_tick")


def short(agent_id: str) -> str:
    return agent_id[:8]


# ============================================================================
# Trade
# ============================================================================


def handle_trade(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(TradeParams, intent)
    if isinstance(params, ActionResult):
        return params

    if params.offering_quantity < 1 or params.requesting_quantity < 1:
        return ActionResult.failure("Trade quantities must be at least 1")

    target, error = find_target(
        ctx,
        agent,
        params.target_agent_id,
        max_distance=ctx.actions.trade.max_distance,
        self_error="Cannot trade with yourself",
        dead_error="Cannot trade with a dead agent",
    )
    if error:
        return ActionResult.failure(error)

    have = ctx.world.item_quantity(agent.id, params.offering_item_type)
    if have < params.offering_quantity:
        return ActionResult.failure(
            f"Not enough {params.offering_item_type} to offer "
            f"(have: {have}, need: {params.offering_quantity})"
        )
    theirs = ctx.world.item_quantity(target.id, params.requesting_item_type)
    if theirs < params.requesting_quantity:
        return ActionResult.failure(
            f"Target agent doesn't have enough {params.requesting_item_type} "
            f"(have: {theirs}, need: {params.requesting_quantity})"
        )

    gain = ctx.actions.trade.trust_gain_on_success
    gave = f"{params.offering_quantity}x {params.offering_item_type}"
    got = f"{params.requesting_quantity}x {params.requesting_item_type}"
    return ActionResult(
        success=True,
        events=[
            event(
                ctx,
                "agent_traded",
                agent.id,
                targetAgentId=target.id,
                offered={"itemType": params.offering_item_type, "quantity": params.offering_quantity},
                received={"itemType": params.requesting_item_type, "quantity": params.requesting_quantity},
            ),
            event(
                ctx,
                "agent_received_trade",
                target.id,
                fromAgentId=agent.id,
                received={"itemType": params.offering_item_type, "quantity": params.offering_quantity},
                gave={"itemType": params.requesting_item_type, "quantity": params.requesting_quantity},
            ),
        ],
        effects=[
            InventoryChange(agent_id=agent.id, item_type=params.offering_item_type, delta=-params.offering_quantity),
            InventoryChange(agent_id=target.id, item_type=params.offering_item_type, delta=params.offering_quantity),
            InventoryChange(agent_id=target.id, item_type=params.requesting_item_type, delta=-params.requesting_quantity),
            InventoryChange(agent_id=agent.id, item_type=params.requesting_item_type, delta=params.requesting_quantity),
            trust(agent.id, target.id, gain, "Successful trade"),
            trust(target.id, agent.id, gain, "Successful trade"),
            remember(
                ctx, agent, f"Traded {gave} to {short(target.id)} for {got}.",
                memory_type="interaction", importance=5, valence=0.3, involved=[target.id],
            ),
            remember(
                ctx, target, f"{short(agent.id)} traded me {gave} for my {got}.",
                memory_type="interaction", importance=5, valence=0.3, involved=[agent.id],
            ),
        ],
    )


# ============================================================================
# Job offers
# ============================================================================


def handle_offer_job(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(OfferJobParams, intent)
    if isinstance(params, ActionResult):
        return params

    cfg = ctx.actions.employment
    if params.salary < 1 or params.salary > cfg.max_salary:
        return ActionResult.failure(f"Invalid salary: must be between 1 and {cfg.max_salary:g} CITY")
    if params.duration < 1 or params.duration > cfg.max_duration:
        return ActionResult.failure(f"Invalid duration: must be between 1 and {cfg.max_duration} ticks")
    if params.payment_type not in PAYMENT_TYPES:
        return ActionResult.failure("Invalid payment type: must be 'upfront', 'on_completion', or 'per_tick'")
    if params.escrow_percent < 0 or params.escrow_percent > 100:
        return ActionResult.failure("Invalid escrow percent: must be between 0 and 100")
    expires_in = params.expires_in if params.expires_in is not None else cfg.default_offer_ttl
    if expires_in < 1:
        return ActionResult.failure("Offer must stay open for at least 1 tick")

    if params.payment_type == "upfront":
        escrow = params.salary
    else:
        escrow = params.salary * params.escrow_percent / 100.0
    if agent.balance < escrow:
        return ActionResult.failure(f"Insufficient balance: need {escrow:g} CITY, have {agent.balance:g} CITY")

    offer = JobOffer(
        id=ctx.rng_uuid(),
        employer_id=agent.id,
        salary=params.salary,
        duration_ticks=params.duration,
        payment_type=params.payment_type,
        escrow_percent=params.escrow_percent,
        escrow_amount=escrow,
        description=params.description,
        created_at_tick=ctx.tick,
        expires_at_tick=ctx.tick + expires_in,
    )
    new_balance = agent.balance - escrow
    events: List[WorldEvent] = [
        event(
            ctx,
            "job_offered",
            agent.id,
            jobOfferId=offer.id,
            salary=offer.salary,
            duration=offer.duration_ticks,
            paymentType=offer.payment_type,
            escrowAmount=escrow,
            description=offer.description,
            expiresAtTick=offer.expires_at_tick,
        )
    ]
    if escrow > 0:
        events.append(balance_event(ctx, agent.id, agent.balance, new_balance, "Job offer escrow"))
    return ActionResult(
        success=True,
        changes={"balance": new_balance},
        events=events,
        effects=[
            JobOfferUpsert(offer=offer),
            remember(
                ctx,
                agent,
                f"Posted a job: {offer.salary:g} CITY for {offer.duration_ticks} ticks ({offer.payment_type}). "
                f"Escrow {escrow:g} CITY.",
                importance=4,
                valence=0.1,
            ),
        ],
    )


def handle_accept_job(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(JobOfferRefParams, intent)
    if isinstance(params, ActionResult):
        return params

    offer = ctx.world.job_offers.get(params.job_offer_id)
    if offer is None:
        return ActionResult.failure(f"Job offer not found: {params.job_offer_id}")
    if offer.status != "open":
        return ActionResult.failure(f"Job offer is no longer available (status: {offer.status})")
    if ctx.tick > offer.expires_at_tick:
        return ActionResult.failure("Job offer has expired")
    if offer.employer_id == agent.id:
        return ActionResult.failure("Cannot accept your own job offer")
    employer = ctx.world.agent(offer.employer_id)
    if employer is None or not employer.is_alive:
        return ActionResult.failure("Employer is no longer available")

    upfront = offer.payment_type == "upfront"
    employment = Employment(
        id=ctx.rng_uuid(),
        offer_id=offer.id,
        employer_id=employer.id,
        worker_id=agent.id,
        salary=offer.salary,
        payment_type=offer.payment_type,
        ticks_required=offer.duration_ticks,
        amount_paid=offer.escrow_amount if upfront else 0.0,
        escrow_held=0.0 if upfront else offer.escrow_amount,
        started_at_tick=ctx.tick,
    )
    gain = ctx.actions.employment.trust_gain_on_accept
    events = [
        event(
            ctx,
            "job_accepted",
            agent.id,
            jobOfferId=offer.id,
            employmentId=employment.id,
            employerId=employer.id,
            salary=offer.salary,
            paymentType=offer.payment_type,
            ticksRequired=offer.duration_ticks,
        )
    ]
    changes = {}
    if upfront and offer.escrow_amount > 0:
        changes["balance"] = agent.balance + offer.escrow_amount
        events.append(balance_event(ctx, agent.id, agent.balance, changes["balance"], "Upfront salary"))

    return ActionResult(
        success=True,
        changes=changes or None,
        events=events,
        effects=[
            JobOfferUpsert(offer=offer.model_copy(update={"status": "accepted", "accepted_by": agent.id, "escrow_amount": 0.0})),
            EmploymentUpsert(employment=employment),
            trust(agent.id, employer.id, gain, "Accepted job"),
            trust(employer.id, agent.id, gain, "Job accepted"),
            remember(
                ctx, agent, f"Accepted a job from {short(employer.id)}: {offer.salary:g} CITY for {offer.duration_ticks} ticks.",
                memory_type="interaction", importance=5, valence=0.3, involved=[employer.id],
            ),
            remember(
                ctx, employer, f"{short(agent.id)} accepted my job offer.",
                memory_type="interaction", importance=4, valence=0.3, involved=[agent.id],
            ),
        ],
    )


def handle_cancel_job_offer(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(JobOfferRefParams, intent)
    if isinstance(params, ActionResult):
        return params

    offer = ctx.world.job_offers.get(params.job_offer_id)
    if offer is None:
        return ActionResult.failure(f"Job offer not found: {params.job_offer_id}")
    if offer.employer_id != agent.id:
        return ActionResult.failure("Only the employer can cancel this job offer")
    if offer.status != "open":
        return ActionResult.failure(f"Cannot cancel - offer status is: {offer.status}")

    refund = offer.escrow_amount
    new_balance = agent.balance + refund
    events = [event(ctx, "job_offer_cancelled", agent.id, jobOfferId=offer.id, refundedEscrow=refund)]
    if refund > 0:
        events.append(balance_event(ctx, agent.id, agent.balance, new_balance, "Job offer escrow refund"))
    return ActionResult(
        success=True,
        changes={"balance": new_balance} if refund > 0 else None,
        events=events,
        effects=[
            JobOfferUpsert(offer=offer.model_copy(update={"status": "cancelled", "escrow_amount": 0.0})),
            remember(ctx, agent, f"Cancelled my job offer and recovered {refund:g} CITY.", importance=3),
        ],
    )


# ============================================================================
# Employment
# ============================================================================


def _find_employment(ctx: ResolutionContext, employment_id: str) -> Optional[Employment]:
    return ctx.world.employments.get(employment_id)


def _workable(ctx: ResolutionContext, agent: Agent, employment_id: Optional[str]) -> Optional[Employment]:
    if employment_id is not None:
        employment = _find_employment(ctx, employment_id)
        if employment and employment.worker_id == agent.id and employment.status == "active" and not employment.work_complete:
            return employment
        return None
    for employment in ctx.world.employments_for(agent.id):
        if employment.worker_id == agent.id and not employment.work_complete:
            return employment
    return None


def handle_work(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    """One tick of work on the oldest unfinished contract (or ``employment_id``)."""
    params = parse_params(WorkParams, intent)
    if isinstance(params, ActionResult):
        return params

    cfg = ctx.actions.employment
    if agent.state == "sleeping":
        return ActionResult.failure("Agent is sleeping and cannot work")
    if agent.energy < cfg.work_energy_cost:
        return ActionResult.failure(f"Not enough energy: need {cfg.work_energy_cost:g}, have {agent.energy}")

    employment = _workable(ctx, agent, params.employment_id)
    if employment is None:
        return ActionResult.failure("No active employment. Accept a job offer first (use accept_job action).")

    employer = ctx.world.agent(employment.employer_id)
    if employer is None or not employer.is_alive:
        return _abandon(ctx, agent, employment)

    payment = 0.0
    if employment.payment_type == "per_tick":
        if employment.ticks_worked + 1 >= employment.ticks_required:
            payment = employment.salary - employment.amount_paid
        else:
            payment = employment.salary / employment.ticks_required
        if employer.balance < payment:
            return _employer_cannot_pay(ctx, agent, employer, employment, payment)

    ticks_worked = employment.ticks_worked + 1
    amount_paid = employment.amount_paid + payment
    complete = ticks_worked >= employment.ticks_required
    new_energy = agent.energy - cfg.work_energy_cost
    new_hunger = max(0.0, agent.hunger - cfg.work_hunger_cost)
    new_balance = agent.balance + payment
    employer_balance = employer.balance - payment

    contract = {"ticks_worked": ticks_worked, "amount_paid": amount_paid}
    effects = []
    if complete:
        contract["completed_at_tick"] = ctx.tick
        if employment.payment_type != "on_completion":
            contract["status"] = "completed"
            # Unused escrow goes back to the employer.
            employer_balance += employment.escrow_held
            contract["escrow_held"] = 0.0
        gain = cfg.trust_gain_on_complete
        effects += [
            trust(agent.id, employer.id, gain, "Completed job successfully"),
            trust(employer.id, agent.id, gain, "Worker completed job"),
        ]
    if employer_balance != employer.balance:
        effects.append(update(employer.id, balance=employer_balance))
    effects.append(EmploymentUpsert(employment=employment.model_copy(update=contract)))

    status = (
        f"Completed contract with {short(employer.id)}!"
        if complete
        else f"Worked tick {ticks_worked}/{employment.ticks_required} for {short(employer.id)}."
    )
    earned = f" Earned {payment:.1f} CITY." if payment > 0 else ""
    effects += [
        remember(
            ctx, agent, status + earned,
            importance=6 if complete else 3, valence=0.5 if complete else 0.2, involved=[employer.id],
        ),
        remember(
            ctx, employer,
            f"{short(agent.id)} worked: {ticks_worked}/{employment.ticks_required} ticks."
            + (" Contract completed!" if complete else ""),
            memory_type="interaction", importance=5 if complete else 2,
            valence=0.4 if complete else 0.1, involved=[agent.id],
        ),
    ]

    events = [
        event(
            ctx,
            "agent_worked",
            agent.id,
            employmentId=employment.id,
            employerId=employer.id,
            ticksWorked=ticks_worked,
            ticksRequired=employment.ticks_required,
            paymentThisTick=payment,
            paymentType=employment.payment_type,
            isComplete=complete,
            energyCost=cfg.work_energy_cost,
            hungerCost=cfg.work_hunger_cost,
            newEnergy=new_energy,
            newHunger=new_hunger,
        )
    ]
    changes = {"energy": new_energy, "hunger": new_hunger, "state": "working"}
    if payment > 0:
        changes["balance"] = new_balance
        events.append(
            balance_event(ctx, agent.id, agent.balance, new_balance, f"Work payment from {short(employer.id)}")
        )
        events.append(
            balance_event(ctx, employer.id, employer.balance, employer_balance, f"Paid worker {short(agent.id)}")
        )
    if complete and employment.payment_type != "on_completion":
        events.append(
            event(
                ctx,
                "employment_completed",
                agent.id,
                employmentId=employment.id,
                employerId=employer.id,
                workerId=agent.id,
                totalPaid=amount_paid,
                salary=employment.salary,
                paymentType=employment.payment_type,
            )
        )
    return ActionResult(success=True, changes=changes, events=events, effects=effects)


def _abandon(ctx: ResolutionContext, agent: Agent, employment: Employment) -> ActionResult:
    """Employer died: the contract is abandoned and held escrow goes to the worker."""
    released = employment.escrow_held
    new_balance = agent.balance + released
    events = [
        event(
            ctx,
            "employment_abandoned",
            agent.id,
            employmentId=employment.id,
            employerId=employment.employer_id,
            escrowReleased=released,
        )
    ]
    if released > 0:
        events.append(balance_event(ctx, agent.id, agent.balance, new_balance, "Escrow from abandoned contract"))
    return ActionResult(
        success=True,
        changes={"balance": new_balance} if released > 0 else None,
        events=events,
        effects=[
            EmploymentUpsert(
                employment=employment.model_copy(
                    update={
                        "status": "abandoned",
                        "escrow_held": 0.0,
                        "amount_paid": employment.amount_paid + released,
                        "completed_at_tick": ctx.tick,
                    }
                )
            ),
            remember(
                ctx, agent,
                f"My employer {short(employment.employer_id)} is gone. Contract abandoned"
                + (f", received {released:g} CITY from escrow." if released > 0 else "."),
                importance=6, valence=-0.3, involved=[employment.employer_id],
            ),
        ],
    )


def _employer_cannot_pay(
    ctx: ResolutionContext,
    agent: Agent,
    employer: Agent,
    employment: Employment,
    payment: float,
) -> ActionResult:
    """Per-tick employer ran dry: the contract becomes unpaid.

    Held escrow covers at most the payment due for this tick; whatever is left
    goes back to the employer, so ``amount_paid`` never exceeds the salary.
    """
    cfg = ctx.actions.employment
    released = min(employment.escrow_held, payment)
    refund = employment.escrow_held - released
    new_balance = agent.balance + released
    events = [
        event(
            ctx,
            "employer_defaulted",
            agent.id,
            employmentId=employment.id,
            employerId=employer.id,
            paymentDue=payment,
            escrowReleased=released,
            escrowRefunded=refund,
        )
    ]
    if released > 0:
        events.append(balance_event(ctx, agent.id, agent.balance, new_balance, "Escrow from unpaid contract"))
    effects = []
    if refund > 0:
        effects.append(update(employer.id, balance=employer.balance + refund))
        events.append(
            balance_event(ctx, employer.id, employer.balance, employer.balance + refund, "Unused escrow returned")
        )
    return ActionResult(
        success=True,
        changes={"balance": new_balance} if released > 0 else None,
        events=events,
        effects=effects + [
            EmploymentUpsert(
                employment=employment.model_copy(
                    update={
                        "status": "unpaid",
                        "escrow_held": 0.0,
                        "amount_paid": employment.amount_paid + released,
                        "completed_at_tick": ctx.tick,
                    }
                )
            ),
            trust(agent.id, employer.id, cfg.trust_penalty_unpaid_worker, "Employer failed to pay"),
            trust(employer.id, agent.id, cfg.trust_penalty_unpaid_employer, "Could not pay worker"),
            remember(
                ctx, agent,
                f"{short(employer.id)} could not pay {payment:.1f} CITY. Contract terminated.",
                memory_type="interaction", importance=7, valence=-0.6, involved=[employer.id],
            ),
        ],
    )


def handle_quit_job(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(EmploymentRefParams, intent)
    if isinstance(params, ActionResult):
        return params

    employment = _find_employment(ctx, params.employment_id)
    if employment is None:
        return ActionResult.failure(f"Employment not found: {params.employment_id}")
    if employment.worker_id != agent.id:
        return ActionResult.failure("Only the worker can quit this contract")
    if employment.status != "active":
        return ActionResult.failure(f"Cannot quit - contract status is: {employment.status}")

    refund = employment.escrow_held
    effects = [
        EmploymentUpsert(
            employment=employment.model_copy(
                update={"status": "quit", "escrow_held": 0.0, "completed_at_tick": ctx.tick}
            )
        ),
        trust(employment.employer_id, agent.id, ctx.actions.employment.trust_penalty_quit, "Worker abandoned contract"),
        remember(
            ctx, agent, f"Quit my job with {short(employment.employer_id)}.",
            importance=4, valence=-0.1, involved=[employment.employer_id],
        ),
    ]
    events = [
        event(
            ctx,
            "job_quit",
            agent.id,
            employmentId=employment.id,
            employerId=employment.employer_id,
            ticksWorked=employment.ticks_worked,
            ticksRequired=employment.ticks_required,
            escrowRefunded=refund,
        )
    ]
    employer = ctx.world.agent(employment.employer_id)
    if employer is not None:
        if refund > 0:
            effects.append(update(employer.id, balance=employer.balance + refund))
            events.append(
                balance_event(ctx, employer.id, employer.balance, employer.balance + refund, "Escrow returned")
            )
        effects.append(
            remember(
                ctx, employer, f"{short(agent.id)} quit before finishing the job.",
                memory_type="interaction", importance=5, valence=-0.4, involved=[agent.id],
            )
        )
    return ActionResult(success=True, events=events, effects=effects)


def handle_pay_worker(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(EmploymentRefParams, intent)
    if isinstance(params, ActionResult):
        return params

    employment = _find_employment(ctx, params.employment_id)
    if employment is None:
        return ActionResult.failure(f"Employment not found: {params.employment_id}")
    if employment.employer_id != agent.id:
        return ActionResult.failure("Only the employer can pay for this contract")
    if employment.payment_type != "on_completion":
        return ActionResult.failure(
            f"This contract uses {employment.payment_type} payment. Manual payment not required."
        )
    if not employment.work_complete:
        return ActionResult.failure(
            f"Work not complete: {employment.ticks_worked}/{employment.ticks_required} ticks done"
        )
    if employment.status == "completed":
        return ActionResult.failure("This contract has already been paid")
    if employment.status != "active":
        return ActionResult.failure(f"Contract already resolved with status: {employment.status}")
    worker = ctx.world.agent(employment.worker_id)
    if worker is None:
        return ActionResult.failure("Worker not found")

    remaining = employment.salary - employment.amount_paid
    available = agent.balance + employment.escrow_held
    if available < remaining:
        return ActionResult.failure(
            f"Insufficient funds: need {remaining:.1f} CITY, have {available:.1f} CITY"
        )

    new_balance = available - remaining
    worker_balance = worker.balance + remaining
    gain = ctx.actions.employment.trust_gain_on_payment
    return ActionResult(
        success=True,
        changes={"balance": new_balance},
        events=[
            event(
                ctx,
                "worker_paid",
                agent.id,
                employmentId=employment.id,
                workerId=worker.id,
                amount=remaining,
                escrowReturned=employment.escrow_held,
            ),
            balance_event(ctx, agent.id, agent.balance, new_balance, f"Paid worker {short(worker.id)}"),
            balance_event(ctx, worker.id, worker.balance, worker_balance, f"Salary from {short(agent.id)}"),
            event(
                ctx,
                "employment_completed",
                agent.id,
                employmentId=employment.id,
                employerId=agent.id,
                workerId=worker.id,
                totalPaid=employment.salary,
                salary=employment.salary,
                paymentType=employment.payment_type,
            ),
        ],
        effects=[
            update(worker.id, balance=worker_balance),
            EmploymentUpsert(
                employment=employment.model_copy(
                    update={"status": "completed", "amount_paid": employment.salary, "escrow_held": 0.0}
                )
            ),
            trust(agent.id, worker.id, gain, "Paid worker as promised"),
            trust(worker.id, agent.id, gain, "Employer paid as promised"),
            remember(
                ctx, agent, f"Paid {short(worker.id)} {remaining:.1f} CITY for completed work.",
                importance=5, valence=0.3, involved=[worker.id],
            ),
            remember(
                ctx, worker, f"{short(agent.id)} paid me {remaining:.1f} CITY as promised.",
                memory_type="interaction", importance=6, valence=0.6, involved=[agent.id],
            ),
        ],
    )


def handle_claim_escrow(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(EmploymentRefParams, intent)
    if isinstance(params, ActionResult):
        return params

    cfg = ctx.actions.employment
    employment = _find_employment(ctx, params.employment_id)
    if employment is None:
        return ActionResult.failure(f"Employment not found: {params.employment_id}")
    if employment.worker_id != agent.id:
        return ActionResult.failure("Only the worker can claim escrow for this contract")
    if employment.payment_type != "on_completion":
        return ActionResult.failure(
            f"This contract uses {employment.payment_type} payment. Escrow claim not applicable."
        )
    if employment.escrow_held <= 0:
        return ActionResult.failure("No escrow was deposited for this contract")
    if not employment.work_complete:
        return ActionResult.failure(
            f"Work not complete: {employment.ticks_worked}/{employment.ticks_required} ticks done"
        )
    if employment.status != "active":
        return ActionResult.failure(f"Contract already resolved with status: {employment.status}")
    finished = employment.completed_at_tick if employment.completed_at_tick is not None else employment.started_at_tick
    waited = ctx.tick - finished
    if waited < cfg.escrow_grace_ticks:
        return ActionResult.failure(
            f"Must wait {cfg.escrow_grace_ticks - waited} more ticks before claiming escrow. Employer may still pay."
        )

    claimed = employment.escrow_held
    new_balance = agent.balance + claimed
    employer_id = employment.employer_id
    effects = [
        EmploymentUpsert(
            employment=employment.model_copy(
                update={
                    "status": "unpaid",
                    "escrow_held": 0.0,
                    "amount_paid": employment.amount_paid + claimed,
                }
            )
        ),
        trust(agent.id, employer_id, cfg.trust_penalty_default_worker, "Failed to pay for completed work"),
        trust(employer_id, agent.id, cfg.trust_penalty_default_employer, "Did not pay worker"),
        remember(
            ctx, agent, f"Claimed {claimed:g} CITY escrow after {short(employer_id)} failed to pay.",
            importance=6, valence=-0.2, involved=[employer_id],
        ),
    ]
    employer = ctx.world.agent(employer_id)
    if employer is not None:
        effects.append(
            remember(
                ctx, employer, f"{short(agent.id)} claimed the escrow because I did not pay.",
                memory_type="interaction", importance=6, valence=-0.5, involved=[agent.id],
            )
        )
    return ActionResult(
        success=True,
        changes={"balance": new_balance},
        events=[
            event(ctx, "escrow_claimed", agent.id, employmentId=employment.id, employerId=employer_id, amount=claimed),
            balance_event(ctx, agent.id, agent.balance, new_balance, "Escrow claim"),
            event(
                ctx,
                "employer_defaulted",
                employer_id,
                employmentId=employment.id,
                workerId=agent.id,
                unpaidAmount=employment.salary - employment.amount_paid,
            ),
        ],
        effects=effects,
    )


def handle_fire_worker(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(EmploymentRefParams, intent)
    if isinstance(params, ActionResult):
        return params

    employment = _find_employment(ctx, params.employment_id)
    if employment is None:
        return ActionResult.failure(f"Employment not found: {params.employment_id}")
    if employment.employer_id != agent.id:
        return ActionResult.failure("Only the employer can fire from this contract")
    if employment.status != "active":
        return ActionResult.failure(f"Cannot fire - contract status is: {employment.status}")

    cfg = ctx.actions.employment
    worker = ctx.world.agent(employment.worker_id)
    owed = 0.0
    if worker is not None and worker.is_alive:
        earned = employment.salary * employment.ticks_worked / employment.ticks_required
        owed = max(0.0, earned - employment.amount_paid)
    from_escrow = min(employment.escrow_held, owed)
    from_balance = min(agent.balance, owed - from_escrow)
    severance = from_escrow + from_balance
    escrow_returned = employment.escrow_held - from_escrow
    new_balance = agent.balance - from_balance + escrow_returned

    events = [
        event(
            ctx,
            "worker_fired",
            agent.id,
            employmentId=employment.id,
            workerId=employment.worker_id,
            employerId=agent.id,
            ticksWorked=employment.ticks_worked,
            ticksRequired=employment.ticks_required,
            severancePaid=severance,
            escrowReturned=escrow_returned,
        )
    ]
    effects = [
        EmploymentUpsert(
            employment=employment.model_copy(
                update={
                    "status": "fired",
                    "escrow_held": 0.0,
                    "amount_paid": employment.amount_paid + severance,
                    "completed_at_tick": ctx.tick,
                }
            )
        )
    ]
    if new_balance != agent.balance:
        events.append(
            balance_event(ctx, agent.id, agent.balance, new_balance, f"Fired worker {short(employment.worker_id)}")
        )

    if worker is None or not worker.is_alive:
        return ActionResult(
            success=True,
            changes={"balance": new_balance} if new_balance != agent.balance else None,
            events=events,
            effects=effects,
        )

    progress = round(employment.ticks_worked / employment.ticks_required * 100)
    if severance > 0:
        effects.append(update(worker.id, balance=worker.balance + severance))
        events.append(
            balance_event(ctx, worker.id, worker.balance, worker.balance + severance, f"Severance from {short(agent.id)}")
        )
    severance_note = f" {severance:.1f} CITY severance." if severance > 0 else ""
    effects += [
        trust(agent.id, worker.id, cfg.trust_penalty_fire_employer, "Fired worker before contract complete"),
        trust(worker.id, agent.id, cfg.trust_penalty_fire_worker, "Was fired from job"),
        remember(
            ctx, agent,
            f"Fired {short(worker.id)} at {progress}% complete." + (f" Paid{severance_note}" if severance > 0 else ""),
            importance=6, valence=-0.2, involved=[worker.id],
        ),
        remember(
            ctx, worker,
            f"Was fired by {short(agent.id)} at {progress}% complete."
            + (f" Received{severance_note}" if severance > 0 else ""),
            memory_type="interaction", importance=7, valence=-0.5, involved=[agent.id],
        ),
    ]
    return ActionResult(
        success=True,
        changes={"balance": new_balance} if new_balance != agent.balance else None,
        events=events,
        effects=effects,
    )


# ============================================================================
# Public works
# ============================================================================


def handle_public_work(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    """One tick of public works at a shelter; every ``ticks_per_task`` ticks pay out.

    The payment is new money, so agents can earn before anyone offers a job.
    Each other living agent within ``nearby_worker_radius`` adds a bonus.
    """
    params = parse_params(PublicWorkParams, intent)
    if isinstance(params, ActionResult):
        return params

    cfg = ctx.actions.public_work
    if not cfg.enabled:
        return ActionResult.failure("Public works program is currently disabled.")
    if agent.state == "sleeping":
        return ActionResult.failure("Cannot work while sleeping.")
    if not ctx.world.shelters_at(agent.x, agent.y):
        return ActionResult.failure("Must be at a shelter to do public work. Find a shelter first.")
    task_type = params.task_type or cfg.task_types[0]
    if task_type not in cfg.task_types:
        return ActionResult.failure(f"Unknown public task type: {task_type}. Use one of: {', '.join(cfg.task_types)}")
    if agent.energy < cfg.energy_cost_per_tick:
        return ActionResult.failure(f"Not enough energy: need {cfg.energy_cost_per_tick:g}, have {agent.energy}")

    ticks_worked = agent.public_work_ticks + 1
    complete = ticks_worked >= cfg.ticks_per_task
    new_energy = agent.energy - cfg.energy_cost_per_tick
    changes = {"energy": new_energy, "state": "working", "public_work_ticks": 0 if complete else ticks_worked}

    payment = 0.0
    nearby_workers = 0
    bonus = 0.0
    events: List[WorldEvent] = []
    if complete:
        nearby_workers = sum(
            1
            for other in ctx.world.living_agents()
            if other.id != agent.id and manhattan_distance(agent.position, other.position) <= cfg.nearby_worker_radius
        )
        bonus = min(nearby_workers * cfg.bonus_per_nearby_worker, cfg.max_cooperation_bonus)
        payment = float(math.floor(cfg.payment_per_task * (1.0 + bonus)))
        changes["balance"] = agent.balance + payment
        events.append(
            balance_event(ctx, agent.id, agent.balance, agent.balance + payment, f"Public works payment: {task_type}")
        )
        bonus_note = f" (cooperation bonus: +{round(bonus * 100)}% from {nearby_workers} nearby)" if bonus > 0 else ""
        memory = remember(
            ctx, agent,
            f"Completed public work task ({task_type}) at shelter. Earned {payment:g} CITY{bonus_note}.",
            importance=5, valence=0.6 if nearby_workers else 0.4,
        )
    else:
        memory = remember(
            ctx, agent,
            f"Working on public task ({task_type}): {ticks_worked}/{cfg.ticks_per_task} ticks.",
            importance=2, valence=0.1,
        )

    events.insert(
        0,
        event(
            ctx,
            "agent_public_work",
            agent.id,
            taskType=task_type,
            ticksWorked=ticks_worked,
            ticksRequired=cfg.ticks_per_task,
            isComplete=complete,
            payment=payment,
            energyCost=cfg.energy_cost_per_tick,
            newEnergy=new_energy,
            nearbyWorkers=nearby_workers,
            cooperationBonus=round(bonus * 100),
        ),
    )
    return ActionResult(success=True, changes=changes, events=events, effects=[memory])
