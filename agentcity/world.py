"""
Authoritative world state and the single place where it is mutated.

``World`` aggregates every keyed collection the simulation owns. Handlers only
read it; the scheduler applies their ``ActionResult`` through ``apply_result``,
which validates the whole result first and then applies it, so a rejected
result leaves the world untouched.

Records flatten to ``{collection: {key: json-ready dict}}`` for persistence
(``to_records``/``from_records``).
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .environment import cell_key
from .knowledge import record_referral
from .schemas import (
    IMMUTABLE_AGENT_FIELDS,
    ActionResult,
    Agent,
    AgentUpdate,
    ClaimUpsert,
    Credential,
    CredentialUpsert,
    Employment,
    EmploymentUpsert,
    InventoryChange,
    JobOffer,
    JobOfferUpsert,
    KnowledgeRecord,
    KnowledgeReferral,
    LocationClaim,
    LocationName,
    LocationNamesSet,
    Memory,
    MemoryWrite,
    Relationship,
    Reproduction,
    ReproductionUpsert,
    ResourceSpawn,
    ScentDeposit,
    Shelter,
    SpawnAmountChange,
    TrustChange,
)

TRUST_MIN = -100.0
TRUST_MAX = 100.0
VITAL_FIELDS = ("hunger", "energy", "health")

COLLECTIONS: Tuple[str, ...] = (
    "agents",
    "resource_spawns",
    "shelters",
    "inventories",
    "memories",
    "relationships",
    "knowledge",
    "location_names",
    "claims",
    "job_offers",
    "employments",
    "credentials",
    "reproductions",
)


class InvalidDeltaError(ValueError):
    """Raised when a handler returns a delta that would break a world invariant."""


class World(BaseModel):
    """Every piece of mutable simulation state, keyed by id."""

    tick: int = 0
    size: int = 100
    agents: Dict[str, Agent] = Field(default_factory=dict)
    spawns: Dict[str, ResourceSpawn] = Field(default_factory=dict)
    shelters: Dict[str, Shelter] = Field(default_factory=dict)
    # agent_id -> item_type -> quantity
    inventories: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    # agent_id -> memories, oldest first
    memories: Dict[str, List[Memory]] = Field(default_factory=dict)
    # observer_id -> other_id -> relationship
    relationships: Dict[str, Dict[str, Relationship]] = Field(default_factory=dict)
    # observer_id -> known_id -> record
    knowledge: Dict[str, Dict[str, KnowledgeRecord]] = Field(default_factory=dict)
    # "x:y" -> names in insertion order
    location_names: Dict[str, List[LocationName]] = Field(default_factory=dict)
    claims: Dict[str, LocationClaim] = Field(default_factory=dict)
    job_offers: Dict[str, JobOffer] = Field(default_factory=dict)
    employments: Dict[str, Employment] = Field(default_factory=dict)
    credentials: Dict[str, Credential] = Field(default_factory=dict)
    reproductions: Dict[str, Reproduction] = Field(default_factory=dict)

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def agent(self, agent_id: str) -> Optional[Agent]:
        return self.agents.get(agent_id)

    def living_agents(self) -> List[Agent]:
        """Living agents in ascending id order (the resolution order)."""
        return [self.agents[a] for a in sorted(self.agents) if self.agents[a].is_alive]

    def item_quantity(self, agent_id: str, item_type: str) -> int:
        return self.inventories.get(agent_id, {}).get(item_type, 0)

    def relationship(self, observer_id: str, other_id: str) -> Optional[Relationship]:
        return self.relationships.get(observer_id, {}).get(other_id)

    def trust(self, observer_id: str, other_id: str) -> float:
        rel = self.relationship(observer_id, other_id)
        return rel.trust_score if rel else 0.0

    def knowledge_of(self, observer_id: str, known_id: str) -> Optional[KnowledgeRecord]:
        return self.knowledge.get(observer_id, {}).get(known_id)

    def names_at(self, x: int, y: int) -> List[LocationName]:
        return self.location_names.get(cell_key(x, y), [])

    def spawns_at(self, x: int, y: int) -> List[ResourceSpawn]:
        return [s for s in self.spawns.values() if s.x == x and s.y == y]

    def shelters_at(self, x: int, y: int) -> List[Shelter]:
        return [s for s in self.shelters.values() if s.x == x and s.y == y]

    def claims_at(self, x: int, y: int) -> List[LocationClaim]:
        return [c for c in self.claims.values() if c.x == x and c.y == y]

    def active_reproduction(self, agent_id: str) -> Optional[Reproduction]:
        for record in self.reproductions.values():
            if record.parent_id == agent_id and record.status == "gestating":
                return record
        return None

    def employments_for(self, agent_id: str, status: Optional[str] = "active") -> List[Employment]:
        found = [
            e
            for e in self.employments.values()
            if agent_id in (e.worker_id, e.employer_id) and (status is None or e.status == status)
        ]
        found.sort(key=lambda e: (e.started_at_tick, e.id))
        return found

    def snapshot(self) -> "World":
        """Deep copy. Later mutation of either copy never leaks into the other."""
        return self.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Persistence flattening
    # ------------------------------------------------------------------

    def to_records(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Flatten into ``{collection: {key: record}}`` with JSON-ready values."""
        records: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in COLLECTIONS}
        for agent_id, agent in self.agents.items():
            records["agents"][agent_id] = agent.model_dump(mode="json")
        for spawn_id, spawn in self.spawns.items():
            records["resource_spawns"][spawn_id] = spawn.model_dump(mode="json")
        for shelter_id, shelter in self.shelters.items():
            records["shelters"][shelter_id] = shelter.model_dump(mode="json")
        for agent_id, items in self.inventories.items():
            records["inventories"][agent_id] = {"agent_id": agent_id, "items": dict(items)}
        for agent_id, entries in self.memories.items():
            records["memories"][agent_id] = {
                "agent_id": agent_id,
                "entries": [m.model_dump(mode="json") for m in entries],
            }
        for observer_id, rels in self.relationships.items():
            for other_id, rel in rels.items():
                records["relationships"][f"{observer_id}:{other_id}"] = rel.model_dump(mode="json")
        for observer_id, known in self.knowledge.items():
            for known_id, record in known.items():
                records["knowledge"][f"{observer_id}:{known_id}"] = record.model_dump(mode="json")
        for key, names in self.location_names.items():
            records["location_names"][key] = {"names": [n.model_dump(mode="json") for n in names]}
        for name, collection in (
            ("claims", self.claims),
            ("job_offers", self.job_offers),
            ("employments", self.employments),
            ("credentials", self.credentials),
            ("reproductions", self.reproductions),
        ):
            for record_id, record in collection.items():
                records[name][record_id] = record.model_dump(mode="json")
        return records

    @classmethod
    def from_records(
        cls,
        records: Dict[str, Dict[str, Dict[str, Any]]],
        *,
        tick: int,
        size: int,
    ) -> "World":
        """Rebuild a world from ``to_records`` output."""
        world = cls(tick=tick, size=size)
        for key, data in records.get("agents", {}).items():
            world.agents[key] = Agent.model_validate(data)
        for key, data in records.get("resource_spawns", {}).items():
            world.spawns[key] = ResourceSpawn.model_validate(data)
        for key, data in records.get("shelters", {}).items():
            world.shelters[key] = Shelter.model_validate(data)
        for key, data in records.get("inventories", {}).items():
            world.inventories[key] = {item: int(qty) for item, qty in data["items"].items()}
        for key, data in records.get("memories", {}).items():
            world.memories[key] = [Memory.model_validate(m) for m in data["entries"]]
        for data in records.get("relationships", {}).values():
            rel = Relationship.model_validate(data)
            world.relationships.setdefault(rel.observer_id, {})[rel.other_id] = rel
        for data in records.get("knowledge", {}).values():
            rec = KnowledgeRecord.model_validate(data)
            world.knowledge.setdefault(rec.observer_id, {})[rec.known_id] = rec
        for key, data in records.get("location_names", {}).items():
            world.location_names[key] = [LocationName.model_validate(n) for n in data["names"]]
        for name, model, target in (
            ("claims", LocationClaim, world.claims),
            ("job_offers", JobOffer, world.job_offers),
            ("employments", Employment, world.employments),
            ("credentials", Credential, world.credentials),
            ("reproductions", Reproduction, world.reproductions),
        ):
            for key, data in records.get(name, {}).items():
                target[key] = model.model_validate(data)
        return world


# ============================================================================
# Mutation
# ============================================================================


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def apply_agent_changes(world: World, agent_id: str, changes: Dict[str, Any]) -> None:
    """Apply a partial update to one agent, clamping vitals into [0, 100]."""
    agent = world.agents[agent_id]
    update = dict(changes)
    for name in VITAL_FIELDS:
        if name in update:
            update[name] = _clamp(float(update[name]), 0.0, 100.0)
    if "state" in update and update["state"] != "sleeping" and "sleep_until_tick" not in update:
        update["sleep_until_tick"] = None
    world.agents[agent_id] = agent.model_copy(update=update)


def change_trust(world: World, observer_id: str, subject_id: str, delta: float, tick: int) -> None:
    rels = world.relationships.setdefault(observer_id, {})
    rel = rels.get(subject_id) or Relationship(observer_id=observer_id, other_id=subject_id)
    rels[subject_id] = rel.model_copy(
        update={
            "trust_score": _clamp(rel.trust_score + delta, TRUST_MIN, TRUST_MAX),
            "interaction_count": rel.interaction_count + 1,
            "last_interaction_tick": tick,
        }
    )


def add_memory(world: World, memory: Memory, retention: int) -> None:
    stream = world.memories.setdefault(memory.agent_id, [])
    stream.append(memory)
    if retention > 0 and len(stream) > retention:
        del stream[: len(stream) - retention]


def change_inventory(world: World, agent_id: str, item_type: str, delta: int) -> None:
    items = world.inventories.setdefault(agent_id, {})
    quantity = items.get(item_type, 0) + delta
    if quantity > 0:
        items[item_type] = quantity
    else:
        items.pop(item_type, None)


def validate_result(world: World, agent_id: str, result: ActionResult) -> None:
    """Reject deltas that would break invariants, before anything is applied.

    Raises:
        InvalidDeltaError: immutable field touched, unknown record referenced,
            negative balance or negative inventory.
    """
    updates: List[Tuple[str, Dict[str, Any]]] = []
    if result.changes:
        updates.append((agent_id, result.changes))
    inventory_deltas: Dict[Tuple[str, str], int] = {}

    for effect in result.effects:
        if isinstance(effect, AgentUpdate):
            updates.append((effect.agent_id, effect.changes))
        elif isinstance(effect, InventoryChange):
            key = (effect.agent_id, effect.item_type)
            inventory_deltas[key] = inventory_deltas.get(key, 0) + effect.delta
        elif isinstance(effect, SpawnAmountChange) and effect.spawn_id not in world.spawns:
            raise InvalidDeltaError(f"Unknown resource spawn {effect.spawn_id}")

    for target_id, changes in updates:
        if target_id not in world.agents:
            raise InvalidDeltaError(f"Unknown agent {target_id}")
        touched = IMMUTABLE_AGENT_FIELDS.intersection(changes)
        if touched:
            raise InvalidDeltaError(f"Cannot change immutable agent fields: {sorted(touched)}")
        if "balance" in changes and changes["balance"] < 0:
            raise InvalidDeltaError(f"Balance of {target_id} would become negative")

    for (target_id, item_type), delta in inventory_deltas.items():
        if world.item_quantity(target_id, item_type) + delta < 0:
            raise InvalidDeltaError(f"Inventory of {target_id} would hold negative {item_type}")


def apply_result(
    world: World,
    agent_id: str,
    result: ActionResult,
    *,
    tick: int,
    memory_retention: int = 200,
) -> List[ScentDeposit]:
    """Validate and apply one successful result to ``world``.

    Returns the scent deposits, which live outside the world (TTL store) and are
    written by the scheduler once the tick commits.
    """
    validate_result(world, agent_id, result)

    if result.changes:
        apply_agent_changes(world, agent_id, result.changes)

    scents: List[ScentDeposit] = []

    def _agent_update(effect: AgentUpdate) -> None:
        apply_agent_changes(world, effect.agent_id, effect.changes)

    def _inventory(effect: InventoryChange) -> None:
        change_inventory(world, effect.agent_id, effect.item_type, effect.delta)

    def _memory(effect: MemoryWrite) -> None:
        add_memory(world, effect.memory, memory_retention)

    def _trust(effect: TrustChange) -> None:
        change_trust(world, effect.observer_id, effect.subject_id, effect.delta, tick)

    def _spawn(effect: SpawnAmountChange) -> None:
        spawn = world.spawns[effect.spawn_id]
        amount = int(_clamp(spawn.current_amount + effect.delta, 0, spawn.max_amount))
        world.spawns[effect.spawn_id] = spawn.model_copy(update={"current_amount": amount})

    def _referral(effect: KnowledgeReferral) -> None:
        record_referral(world, effect.observer_id, effect.known_id, effect.referrer_id, effect.shared_info, tick)

    def _names(effect: LocationNamesSet) -> None:
        world.location_names[cell_key(effect.x, effect.y)] = list(effect.names)

    def _claim(effect: ClaimUpsert) -> None:
        world.claims[effect.claim.id] = effect.claim

    def _offer(effect: JobOfferUpsert) -> None:
        world.job_offers[effect.offer.id] = effect.offer

    def _employment(effect: EmploymentUpsert) -> None:
        world.employments[effect.employment.id] = effect.employment

    def _credential(effect: CredentialUpsert) -> None:
        world.credentials[effect.credential.id] = effect.credential

    def _reproduction(effect: ReproductionUpsert) -> None:
        world.reproductions[effect.reproduction.id] = effect.reproduction

    def _scent(effect: ScentDeposit) -> None:
        scents.append(effect)

    appliers: Dict[str, Callable[[Any], None]] = {
        "agent_update": _agent_update,
        "inventory_change": _inventory,
        "memory_write": _memory,
        "trust_change": _trust,
        "spawn_amount_change": _spawn,
        "knowledge_referral": _referral,
        "location_names_set": _names,
        "claim_upsert": _claim,
        "job_offer_upsert": _offer,
        "employment_upsert": _employment,
        "credential_upsert": _credential,
        "reproduction_upsert": _reproduction,
        "scent_deposit": _scent,
    }
    for effect in result.effects:
        appliers[effect.kind](effect)
    return scents
