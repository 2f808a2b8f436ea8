"""
Pydantic schemas for the AgentCity simulation system.

All data structures exchanged between the scheduler, the action resolver,
decision sources and persistence are defined here.

Design Philosophy:
- Records are plain pydantic models keyed by stable string ids
- Handlers never mutate records; they return ``ActionResult`` deltas plus typed effects
- Events are frozen once constructed (append-only audit log)
- Observations are the only view of the world a decision source ever receives
"""

import time
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


Position = Tuple[int, int]

AgentState = Literal["idle", "walking", "working", "sleeping", "dead"]
ResourceType = Literal["food", "energy", "material"]
MemoryType = Literal["action", "interaction", "observation"]

PERSONALITY_TRAITS = ("aggressive", "cooperative", "cautious", "explorer", "social", "neutral")

# Agent fields a delta may never touch. Identity is fixed and personality is
# immutable once assigned.
IMMUTABLE_AGENT_FIELDS = frozenset({"id", "personality", "parent_ids", "born_at_tick"})


class ActionType(str, Enum):
    """Closed catalogue of actions an agent may request."""

    MOVE = "move"
    GATHER = "gather"
    SLEEP = "sleep"
    CONSUME = "consume"
    BUY = "buy"
    WORK = "work"
    TRADE = "trade"
    HARM = "harm"
    STEAL = "steal"
    DECEIVE = "deceive"
    SHARE_INFO = "share_info"
    SPREAD_GOSSIP = "spread_gossip"
    SIGNAL = "signal"
    CLAIM = "claim"
    NAME_LOCATION = "name_location"
    OFFER_JOB = "offer_job"
    ACCEPT_JOB = "accept_job"
    CANCEL_JOB_OFFER = "cancel_job_offer"
    QUIT_JOB = "quit_job"
    PAY_WORKER = "pay_worker"
    CLAIM_ESCROW = "claim_escrow"
    ISSUE_CREDENTIAL = "issue_credential"
    REVOKE_CREDENTIAL = "revoke_credential"
    SPAWN_OFFSPRING = "spawn_offspring"
    FORAGE = "forage"
    PUBLIC_WORK = "public_work"
    FIRE_WORKER = "fire_worker"


def new_id() -> str:
    return str(uuid4())


def now_ms() -> float:
    return time.time() * 1000.0


# ============================================================================
# World records
# ============================================================================


class Agent(BaseModel):
    """A living (or dead) inhabitant of the grid.

    Vital signs live in [0, 100]; ``hunger`` of 100 means fully fed and drains
    toward 0. ``balance`` is never negative. ``state`` transitions to ``dead``
    when health reaches 0 and never leaves it.
    """

    id: str
    name: str = ""
    x: int
    y: int
    hunger: float = Field(100.0, ge=0, le=100)
    energy: float = Field(100.0, ge=0, le=100)
    health: float = Field(100.0, ge=0, le=100)
    balance: float = Field(100.0, ge=0)
    state: AgentState = "idle"
    personality: Optional[str] = None
    # Key into the run's decision-source table; None uses the fallback strategy.
    decision_source: Optional[str] = None
    sleep_until_tick: Optional[int] = None
    # Consecutive ticks spent below critical hunger.
    hunger_grace_ticks: int = 0
    # Ticks put into the current public-works task.
    public_work_ticks: int = 0
    # "x:y" -> tick of this agent's last forage there, pruned once cooled down.
    forage_log: Dict[str, int] = Field(default_factory=dict)
    parent_ids: List[str] = Field(default_factory=list)
    born_at_tick: int = 0
    died_at_tick: Optional[int] = None
    cause_of_death: Optional[str] = None

    @property
    def position(self) -> Position:
        return (self.x, self.y)

    @property
    def is_alive(self) -> bool:
        return self.state != "dead"


class ResourceSpawn(BaseModel):
    """A refillable resource node. Depleted by gathering, never destroyed."""

    id: str
    x: int
    y: int
    resource_type: ResourceType
    current_amount: int = Field(..., ge=0)
    max_amount: int = Field(..., ge=0)
    regen_rate: int = 1

    @property
    def position(self) -> Position:
        return (self.x, self.y)


class Shelter(BaseModel):
    """A place to rest and buy goods. Immutable after spawn except ownership."""

    id: str
    x: int
    y: int
    can_sleep: bool = True
    owner_id: Optional[str] = None

    @property
    def position(self) -> Position:
        return (self.x, self.y)


class Memory(BaseModel):
    """One entry in an agent's memory stream."""

    id: str = Field(default_factory=new_id)
    agent_id: str
    tick: int
    memory_type: MemoryType = "action"
    content: str
    importance: int = Field(5, ge=1, le=10)
    emotional_valence: float = Field(0.0, ge=-1.0, le=1.0)
    involved_agent_ids: List[str] = Field(default_factory=list)
    x: Optional[int] = None
    y: Optional[int] = None


class Relationship(BaseModel):
    """How much ``observer_id`` trusts ``other_id`` (-100..100)."""

    observer_id: str
    other_id: str
    trust_score: float = 0.0
    interaction_count: int = 0
    last_interaction_tick: Optional[int] = None


class ReputationClaim(BaseModel):
    sentiment: int
    claim: str


class SharedInfo(BaseModel):
    """Facts one agent holds about another. Every field is independently nullable."""

    last_known_position: Optional[Position] = None
    reputation_claim: Optional[ReputationClaim] = None
    danger_warning: Optional[str] = None
    trade_info: Optional[str] = None
    skills: Optional[List[str]] = None
    last_seen_tick: Optional[int] = None


class KnowledgeRecord(BaseModel):
    """What ``observer_id`` knows about ``known_id`` and how it learned it."""

    observer_id: str
    known_id: str
    discovery_type: Literal["direct", "referral"]
    referred_by_id: Optional[str] = None
    referral_depth: int = 0
    shared_info: SharedInfo = Field(default_factory=SharedInfo)
    # Tick of the most recent update, not an age.
    information_age: int
    discovered_at_tick: int


class LocationName(BaseModel):
    x: int
    y: int
    name: str
    usage_count: int = 1
    proposed_by: str
    first_used_tick: int
    last_used_tick: int


ClaimType = Literal["territory", "home", "resource", "danger", "meeting_point"]


class LocationClaim(BaseModel):
    id: str
    agent_id: str
    x: int
    y: int
    claim_type: ClaimType
    description: Optional[str] = None
    strength: int = 1
    claimed_at_tick: int
    last_reinforced_tick: int


PaymentType = Literal["upfront", "on_completion", "per_tick"]


class JobOffer(BaseModel):
    id: str
    employer_id: str
    salary: float
    duration_ticks: int
    payment_type: PaymentType
    escrow_percent: float = 100.0
    # Funds debited from the employer and held until acceptance or refund.
    escrow_amount: float = 0.0
    description: str = ""
    status: Literal["open", "accepted", "cancelled", "expired"] = "open"
    created_at_tick: int
    expires_at_tick: int
    accepted_by: Optional[str] = None


class Employment(BaseModel):
    """An accepted job contract.

    ``escrow_held`` is the amount still held by the system for this contract.
    Every payout from escrow reduces it by exactly the paid amount, so it can
    never be claimed twice or beyond what was deposited.
    """

    id: str
    offer_id: str
    employer_id: str
    worker_id: str
    salary: float
    payment_type: PaymentType
    ticks_required: int
    ticks_worked: int = 0
    amount_paid: float = 0.0
    escrow_held: float = 0.0
    status: Literal["active", "completed", "unpaid", "abandoned", "quit", "fired"] = "active"
    started_at_tick: int
    completed_at_tick: Optional[int] = None

    @property
    def work_complete(self) -> bool:
        return self.ticks_worked >= self.ticks_required


CredentialClaimType = Literal["skill", "experience", "membership", "character", "custom"]


class Credential(BaseModel):
    id: str
    issuer_id: str
    subject_id: str
    claim_type: CredentialClaimType
    description: str
    evidence: Optional[str] = None
    level: Optional[int] = None
    signature: str
    issued_at_tick: int
    expires_at_tick: Optional[int] = None
    revoked: bool = False
    revoked_at_tick: Optional[int] = None


class Reproduction(BaseModel):
    id: str
    parent_id: str
    partner_id: Optional[str] = None
    gestation_start_tick: int
    gestation_ticks: int
    status: Literal["gestating", "born"] = "gestating"
    child_id: Optional[str] = None
    inherit_personality: bool = True
    mutation_intensity: float = 0.1
    # Funds set aside for the child at birth.
    endowment: float = 0.0

    @property
    def due_tick(self) -> int:
        return self.gestation_start_tick + self.gestation_ticks


# ============================================================================
# Events
# ============================================================================


class WorldEvent(BaseModel):
    """Append-only record of something that happened. Never mutated after emission."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    type: str
    tick: int
    timestamp: float = Field(default_factory=now_ms)
    agent_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Effects (typed world mutations returned by handlers, applied by the scheduler)
# ============================================================================


class AgentUpdate(BaseModel):
    kind: Literal["agent_update"] = "agent_update"
    agent_id: str
    changes: Dict[str, Any]


class InventoryChange(BaseModel):
    kind: Literal["inventory_change"] = "inventory_change"
    agent_id: str
    item_type: str
    delta: int


class MemoryWrite(BaseModel):
    kind: Literal["memory_write"] = "memory_write"
    memory: Memory


class TrustChange(BaseModel):
    kind: Literal["trust_change"] = "trust_change"
    observer_id: str
    subject_id: str
    delta: float
    reason: str = ""


class SpawnAmountChange(BaseModel):
    kind: Literal["spawn_amount_change"] = "spawn_amount_change"
    spawn_id: str
    delta: int


class KnowledgeReferral(BaseModel):
    kind: Literal["knowledge_referral"] = "knowledge_referral"
    observer_id: str
    known_id: str
    referrer_id: str
    shared_info: SharedInfo


class LocationNamesSet(BaseModel):
    kind: Literal["location_names_set"] = "location_names_set"
    x: int
    y: int
    names: List[LocationName]


class ClaimUpsert(BaseModel):
    kind: Literal["claim_upsert"] = "claim_upsert"
    claim: LocationClaim


class JobOfferUpsert(BaseModel):
    kind: Literal["job_offer_upsert"] = "job_offer_upsert"
    offer: JobOffer


class EmploymentUpsert(BaseModel):
    kind: Literal["employment_upsert"] = "employment_upsert"
    employment: Employment


class CredentialUpsert(BaseModel):
    kind: Literal["credential_upsert"] = "credential_upsert"
    credential: Credential


class ReproductionUpsert(BaseModel):
    kind: Literal["reproduction_upsert"] = "reproduction_upsert"
    reproduction: Reproduction


class ScentDeposit(BaseModel):
    kind: Literal["scent_deposit"] = "scent_deposit"
    x: int
    y: int
    agent_id: str


Effect = Annotated[
    Union[
        AgentUpdate,
        InventoryChange,
        MemoryWrite,
        TrustChange,
        SpawnAmountChange,
        KnowledgeReferral,
        LocationNamesSet,
        ClaimUpsert,
        JobOfferUpsert,
        EmploymentUpsert,
        CredentialUpsert,
        ReproductionUpsert,
        ScentDeposit,
    ],
    Field(discriminator="kind"),
]


# ============================================================================
# Intents, results and decisions
# ============================================================================


class ActionIntent(BaseModel):
    """An agent's requested action for a tick. The only input the resolver accepts."""

    agent_id: str
    type: ActionType
    params: Dict[str, Any] = Field(default_factory=dict)
    tick: int
    timestamp: float = Field(default_factory=now_ms)


class ActionResult(BaseModel):
    """Universal output of every handler.

    ``changes`` is a partial update of the acting agent; ``effects`` carry every
    other mutation. Validation failures are ``success=False`` with ``error`` set.
    """

    success: bool
    changes: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    events: List[WorldEvent] = Field(default_factory=list)
    effects: List[Effect] = Field(default_factory=list)

    @classmethod
    def failure(cls, error: str) -> "ActionResult":
        return cls(success=False, error=error)


class Decision(BaseModel):
    """What a decision source wants its agent to do this tick."""

    action: str
    params: Dict[str, Any] = Field(default_factory=dict)
    reasoning: str = ""


# ============================================================================
# Observation payload
# ============================================================================


class SelfView(BaseModel):
    id: str
    x: int
    y: int
    hunger: float
    energy: float
    health: float
    balance: float
    state: AgentState
    personality: Optional[str] = None


class NearbyAgent(BaseModel):
    id: str
    name: str = ""
    x: int
    y: int
    state: AgentState
    distance: int
    direction: str


class NearbySpawn(BaseModel):
    id: str
    x: int
    y: int
    resource_type: ResourceType
    current_amount: int
    max_amount: int
    distance: int


class NearbyShelter(BaseModel):
    id: str
    x: int
    y: int
    can_sleep: bool
    owner_id: Optional[str] = None
    distance: int


class InventoryView(BaseModel):
    type: str
    quantity: int


class RelationshipView(BaseModel):
    agent_id: str
    trust_score: float
    interaction_count: int


class KnownAgentView(BaseModel):
    agent_id: str
    discovery_type: Literal["direct", "referral"]
    referral_depth: int
    referred_by_id: Optional[str] = None
    shared_info: SharedInfo
    # Ticks since the record was last updated.
    information_age: int


class ClaimView(BaseModel):
    id: str
    agent_id: str
    x: int
    y: int
    claim_type: ClaimType
    strength: int
    description: Optional[str] = None


class NameUsage(BaseModel):
    name: str
    usage_count: int


class LocationNameView(BaseModel):
    x: int
    y: int
    names: List[NameUsage]
    consensus: Optional[str] = None


class ScentView(BaseModel):
    x: int
    y: int
    agent_id: str
    strength: Literal["strong", "weak", "faint"]


class SignalView(BaseModel):
    from_agent_id: str
    message: str
    intensity: int
    direction: str
    distance: int
    loud: bool


class JobOfferView(BaseModel):
    id: str
    employer_id: str
    salary: float
    duration_ticks: int
    payment_type: PaymentType
    escrow_amount: float
    description: str
    expires_at_tick: int


class EmploymentView(BaseModel):
    id: str
    role: Literal["worker", "employer"]
    counterpart_id: str
    payment_type: PaymentType
    salary: float
    ticks_worked: int
    ticks_required: int
    amount_paid: float
    escrow_held: float
    status: str


class Observation(BaseModel):
    """Everything a decision source is allowed to know this tick."""

    tick: int
    world_size: int
    agent: SelfView
    nearby_agents: List[NearbyAgent] = Field(default_factory=list)
    nearby_resource_spawns: List[NearbySpawn] = Field(default_factory=list)
    nearby_shelters: List[NearbyShelter] = Field(default_factory=list)
    inventory: List[InventoryView] = Field(default_factory=list)
    recent_memories: List[str] = Field(default_factory=list)
    relationships: List[RelationshipView] = Field(default_factory=list)
    known_agents: List[KnownAgentView] = Field(default_factory=list)
    nearby_claims: List[ClaimView] = Field(default_factory=list)
    nearby_location_names: List[LocationNameView] = Field(default_factory=list)
    scents: List[ScentView] = Field(default_factory=list)
    signals: List[SignalView] = Field(default_factory=list)
    nearby_job_offers: List[JobOfferView] = Field(default_factory=list)
    active_employments: List[EmploymentView] = Field(default_factory=list)
    my_job_offers: List[JobOfferView] = Field(default_factory=list)
    available_actions: List[str] = Field(default_factory=list)
    recent_events: List[str] = Field(default_factory=list)

    def item_quantity(self, item_type: str) -> int:
        for item in self.inventory:
            if item.type == item_type:
                return item.quantity
        return 0
