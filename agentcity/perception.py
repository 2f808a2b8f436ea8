"""
Observation construction: the bounded view of the world an agent decides from.

Observations are built from the tick-start snapshot, never from the working
copy, so no decision ever sees another agent's same-tick writes. Partial
observability is enforced here:

- other agents are visible inside ``visibility_radius`` (Manhattan)
- spawns, shelters, claims and place names inside ``item_visibility_radius``
  (Chebyshev box)
- scents only on the agent's own and adjacent cells, never its own traces
- signals from the previous tick, only when the listener is inside their range
- relationships only for agents currently in view
- recent events only when the agent took part in them

Usage:
    observation = await build_observation(
        snapshot, "alice", tick=12, scent_store=scents,
        recent_events=last_tick_events, config=config, catalogue=resolver.catalogue,
    )
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from .config import SimulationConfig
from .environment import (
    adjacent_positions,
    compass_direction,
    manhattan_distance,
    parse_cell_key,
    visible_agents,
    within_box,
)
from .knowledge import known_agents_for_observer
from .naming import consensus_name
from .schemas import (
    Agent,
    ClaimView,
    EmploymentView,
    InventoryView,
    JobOffer,
    JobOfferView,
    LocationNameView,
    NameUsage,
    NearbyAgent,
    NearbyShelter,
    NearbySpawn,
    Observation,
    RelationshipView,
    ScentView,
    SelfView,
    SignalView,
    WorldEvent,
)
from .stigmergy import ScentStore
from .world import World

# Payload keys that name the other party of an event.
_INVOLVED_KEYS = (
    "targetId",
    "targetAgentId",
    "fromAgentId",
    "workerId",
    "employerId",
    "partnerId",
    "killerId",
)

SOCIAL_ACTIONS = frozenset(
    {"trade", "harm", "steal", "deceive", "share_info", "spread_gossip", "issue_credential"}
)


def _short(agent_id: Optional[str]) -> str:
    return (agent_id or "someone")[:8]


def _involves(event: WorldEvent, agent_id: str) -> bool:
    if event.agent_id == agent_id:
        return True
    return any(event.payload.get(key) == agent_id for key in _INVOLVED_KEYS)


def format_event(event: WorldEvent, viewer_id: str) -> str:
    """Render an event as one line of text from ``viewer_id``'s point of view."""
    p = event.payload
    mine = event.agent_id == viewer_id
    actor = "You" if mine else f"Agent {_short(event.agent_id)}"

    if event.type == "action_failed":
        return f"ACTION FAILED: {p.get('action')} - {p.get('error')}"
    if event.type == "agent_moved":
        to = p.get("to", {})
        return f"{actor} moved to ({to.get('x')}, {to.get('y')}), {p.get('remainingDistance', 0)} steps from destination"
    if event.type == "agent_gathered":
        return f"{actor} gathered {p.get('quantity')} {p.get('resourceType')}"
    if event.type == "agent_consumed":
        return f"{actor} consumed {p.get('itemType')}"
    if event.type == "agent_harmed":
        if mine:
            return f"You attacked agent {_short(p.get('targetId'))} ({p.get('intensity')}, {p.get('damage')} damage)"
        return f"Agent {_short(event.agent_id)} attacked you ({p.get('intensity')}, {p.get('damage')} damage)"
    if event.type == "agent_stole":
        if mine:
            return f"You stole {p.get('quantity')} {p.get('itemType')} from agent {_short(p.get('targetId'))}"
        return f"Agent {_short(event.agent_id)} stole {p.get('quantity')} {p.get('itemType')} from you"
    if event.type == "agent_steal_failed":
        if mine:
            return f"You were caught trying to steal from agent {_short(p.get('targetId'))}"
        return f"Agent {_short(event.agent_id)} tried to steal from you and was caught"
    if event.type == "agent_traded":
        return f"{actor} traded with agent {_short(p.get('targetAgentId'))}"
    if event.type == "agent_received_trade":
        received = p.get("received", {})
        return f"You received {received.get('quantity')} {received.get('itemType')} in a trade with agent {_short(p.get('fromAgentId'))}"
    if event.type == "balance_changed":
        return f"Balance {p.get('previousBalance')} -> {p.get('newBalance')} ({p.get('reason')})"
    if event.type == "agent_died":
        return f"{actor} died ({p.get('cause')})"
    if event.type == "agent_deceived" and not mine:
        return f"Agent {_short(event.agent_id)} told you something ({p.get('claimType')})"
    if event.type == "agent_shared_info" and not mine:
        return f"Agent {_short(event.agent_id)} told you about agent {_short(p.get('subjectId'))}"
    if event.type == "gossip_spread" and not mine:
        return f"Agent {_short(event.agent_id)} gossiped to you about agent {_short(p.get('subjectId'))}"

    details = ", ".join(f"{k}={v}" for k, v in p.items() if not isinstance(v, (dict, list)))
    label = event.type.replace("_", " ")
    return f"{actor}: {label}" + (f" ({details})" if details else "")


def available_actions(
    world: World,
    agent: Agent,
    catalogue: Sequence[str],
    nearby: Sequence[Agent],
    nearby_offers: Sequence[JobOffer],
) -> List[str]:
    """Filter the catalogue down to actions whose basic preconditions hold now."""
    inventory = world.inventories.get(agent.id, {})
    employments = world.employments_for(agent.id)
    as_worker = [e for e in employments if e.worker_id == agent.id]
    as_employer = [e for e in employments if e.employer_id == agent.id]
    own_open_offers = any(o.employer_id == agent.id and o.status == "open" for o in world.job_offers.values())
    issued = any(c.issuer_id == agent.id and not c.revoked for c in world.credentials.values())
    at_spawn = any(s.current_amount > 0 for s in world.spawns_at(agent.x, agent.y))
    at_shelter = bool(world.shelters_at(agent.x, agent.y))

    checks: Dict[str, bool] = {
        "consume": bool(inventory),
        "gather": at_spawn,
        "buy": at_shelter,
        "public_work": at_shelter,
        "work": bool(as_worker),
        "quit_job": bool(as_worker),
        "claim_escrow": any(e.payment_type == "on_completion" and e.work_complete for e in as_worker),
        "pay_worker": any(e.payment_type == "on_completion" and e.work_complete for e in as_employer),
        "fire_worker": bool(as_employer),
        "accept_job": bool(nearby_offers),
        "cancel_job_offer": own_open_offers,
        "revoke_credential": issued,
        "sleep": agent.state != "sleeping",
    }
    result = []
    for name in catalogue:
        if name in SOCIAL_ACTIONS and not nearby:
            continue
        if not checks.get(name, True):
            continue
        result.append(name)
    return result


def _offer_view(offer: JobOffer) -> JobOfferView:
    return JobOfferView(
        id=offer.id,
        employer_id=offer.employer_id,
        salary=offer.salary,
        duration_ticks=offer.duration_ticks,
        payment_type=offer.payment_type,
        escrow_amount=offer.escrow_amount,
        description=offer.description,
        expires_at_tick=offer.expires_at_tick,
    )


def _signals_heard(agent: Agent, events: Iterable[WorldEvent], tick: int, loud_intensity: int) -> List[SignalView]:
    heard = []
    for event in events:
        if event.type != "agent_signaled" or event.tick != tick - 1 or event.agent_id == agent.id:
            continue
        origin = (event.payload["x"], event.payload["y"])
        distance = manhattan_distance(agent.position, origin)
        if distance > event.payload.get("range", 0):
            continue
        intensity = int(event.payload.get("intensity", 1))
        heard.append(
            SignalView(
                from_agent_id=event.agent_id,
                message=event.payload.get("message", ""),
                intensity=intensity,
                direction=compass_direction(agent.position, origin),
                distance=distance,
                loud=intensity >= loud_intensity,
            )
        )
    heard.sort(key=lambda s: (s.distance, s.from_agent_id))
    return heard


async def build_observation(
    world: World,
    agent_id: str,
    tick: int,
    scent_store: Optional[ScentStore],
    recent_events: Sequence[WorldEvent],
    config: SimulationConfig,
    catalogue: Sequence[str],
) -> Observation:
    """Build ``agent_id``'s observation for ``tick`` from a tick-start snapshot.

    Raises:
        KeyError: ``agent_id`` is not in ``world`` (caller bug)
    """
    agent = world.agents[agent_id]
    origin = agent.position

    nearby = visible_agents(agent, world.agents.values(), config.visibility_radius)
    nearby_ids = {other.id for other in nearby}
    item_radius = config.item_visibility_radius

    spawns = [
        NearbySpawn(
            id=s.id,
            x=s.x,
            y=s.y,
            resource_type=s.resource_type,
            current_amount=s.current_amount,
            max_amount=s.max_amount,
            distance=manhattan_distance(origin, s.position),
        )
        for s in within_box(origin, world.spawns.values(), item_radius)
    ]
    shelters = [
        NearbyShelter(
            id=s.id,
            x=s.x,
            y=s.y,
            can_sleep=s.can_sleep,
            owner_id=s.owner_id,
            distance=manhattan_distance(origin, s.position),
        )
        for s in within_box(origin, world.shelters.values(), item_radius)
    ]
    claims = [
        ClaimView(
            id=c.id,
            agent_id=c.agent_id,
            x=c.x,
            y=c.y,
            claim_type=c.claim_type,
            strength=c.strength,
            description=c.description,
        )
        for c in within_box(origin, world.claims.values(), item_radius)
    ]

    names: List[LocationNameView] = []
    for key in sorted(world.location_names):
        x, y = parse_cell_key(key)
        entries = world.location_names[key]
        if not entries or max(abs(x - origin[0]), abs(y - origin[1])) > item_radius:
            continue
        names.append(
            LocationNameView(
                x=x,
                y=y,
                names=[NameUsage(name=n.name, usage_count=n.usage_count) for n in entries],
                consensus=consensus_name(entries),
            )
        )

    scents: List[ScentView] = []
    if scent_store is not None and scent_store.enabled:
        cells = [origin, *adjacent_positions(origin, world.size)]
        for trace in await scent_store.scents_at(cells):
            if trace.agent_id == agent.id:
                continue
            scents.append(
                ScentView(x=trace.x, y=trace.y, agent_id=trace.agent_id, strength=scent_store.strength_of(trace, tick))
            )

    relationships = [
        RelationshipView(agent_id=rel.other_id, trust_score=rel.trust_score, interaction_count=rel.interaction_count)
        for other_id, rel in sorted(world.relationships.get(agent.id, {}).items())
        if other_id in nearby_ids
    ]

    open_offers = sorted(
        (o for o in world.job_offers.values() if o.status == "open" and o.expires_at_tick >= tick),
        key=lambda o: (o.created_at_tick, o.id),
    )
    nearby_offers = [o for o in open_offers if o.employer_id in nearby_ids]
    my_offers = [o for o in open_offers if o.employer_id == agent.id]

    employments = [
        EmploymentView(
            id=e.id,
            role="worker" if e.worker_id == agent.id else "employer",
            counterpart_id=e.employer_id if e.worker_id == agent.id else e.worker_id,
            payment_type=e.payment_type,
            salary=e.salary,
            ticks_worked=e.ticks_worked,
            ticks_required=e.ticks_required,
            amount_paid=e.amount_paid,
            escrow_held=e.escrow_held,
            status=e.status,
        )
        for e in world.employments_for(agent.id)
    ]

    memories = world.memories.get(agent.id, [])
    recent_memories = [m.content for m in memories[-config.recent_memories_limit:]] if config.recent_memories_limit else []

    event_lines = [format_event(e, agent.id) for e in recent_events if _involves(e, agent.id)]

    return Observation(
        tick=tick,
        world_size=world.size,
        agent=SelfView(
            id=agent.id,
            x=agent.x,
            y=agent.y,
            hunger=agent.hunger,
            energy=agent.energy,
            health=agent.health,
            balance=agent.balance,
            state=agent.state,
            personality=agent.personality,
        ),
        nearby_agents=[
            NearbyAgent(
                id=other.id,
                name=other.name,
                x=other.x,
                y=other.y,
                state=other.state,
                distance=manhattan_distance(origin, other.position),
                direction=compass_direction(origin, other.position),
            )
            for other in nearby
        ],
        nearby_resource_spawns=spawns,
        nearby_shelters=shelters,
        inventory=[
            InventoryView(type=item, quantity=qty)
            for item, qty in sorted(world.inventories.get(agent.id, {}).items())
        ],
        recent_memories=recent_memories,
        relationships=relationships,
        known_agents=known_agents_for_observer(world, agent.id, tick, config.known_agents_limit),
        nearby_claims=claims,
        nearby_location_names=names,
        scents=scents,
        signals=_signals_heard(agent, recent_events, tick, config.actions.signal.loud_intensity),
        nearby_job_offers=[_offer_view(o) for o in nearby_offers],
        active_employments=employments,
        my_job_offers=[_offer_view(o) for o in my_offers],
        available_actions=available_actions(world, agent, catalogue, nearby, nearby_offers),
        recent_events=event_lines,
    )
