"""
AgentCity Configuration

Loads configuration from environment variables with sensible defaults.

Two layers:
- ``Config``: process-level settings read once from the environment (and a
  ``.env`` file if present). Used by hosts, examples and ``SimulationConfig.from_env``.
- ``SimulationConfig``: the pydantic model injected into a single simulation run.
  The engine never reads ``Config`` during a tick; every tunable it needs lives here.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env file if it exists
load_dotenv()


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


class Config:
    """Application configuration loaded from environment variables."""

    # LLM Provider Configuration (used by LLMDecisionSource only)
    LLM_PROVIDER: str | None = os.getenv("LLM_PROVIDER")
    LLM_MODEL: str | None = os.getenv("LLM_MODEL")

    # API Keys
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")

    # Persistence Configuration
    PERSISTENCE_BACKEND: str = os.getenv("AGENTCITY_PERSISTENCE", "memory")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://localhost/agentcity")
    JSON_STORE_DIR: Path = Path(os.getenv("AGENTCITY_JSON_DIR", "simulation_runs"))

    # World Configuration
    WORLD_SIZE: int = int(os.getenv("AGENTCITY_WORLD_SIZE", "100"))
    TICK_INTERVAL_MS: int = int(os.getenv("AGENTCITY_TICK_INTERVAL_MS", "10000"))
    SEED: Optional[int] = _optional_int("AGENTCITY_SEED")

    # Decision Dispatch
    MAX_CONCURRENT_DECISIONS: int = int(os.getenv("AGENTCITY_MAX_CONCURRENT_DECISIONS", "8"))
    DECISION_TIMEOUT_SECONDS: float = float(os.getenv("AGENTCITY_DECISION_TIMEOUT_SECONDS", "30"))
    FALLBACK_STRATEGY: str = os.getenv("AGENTCITY_FALLBACK_STRATEGY", "rule_based")

    # Perception / Stigmergy
    VISIBILITY_RADIUS: int = int(os.getenv("AGENTCITY_VISIBILITY_RADIUS", "10"))
    SCENT_DURATION_TICKS: int = int(os.getenv("AGENTCITY_SCENT_DURATION_TICKS", "10"))

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if values are inconsistent."""
        if cls.WORLD_SIZE < 2:
            raise ValueError("AGENTCITY_WORLD_SIZE must be at least 2")

        if cls.MAX_CONCURRENT_DECISIONS < 1:
            raise ValueError(
                "AGENTCITY_MAX_CONCURRENT_DECISIONS must be >= 1. "
                "Lower it to respect provider rate limits, but never to zero."
            )

        if cls.DECISION_TIMEOUT_SECONDS <= 0:
            raise ValueError("AGENTCITY_DECISION_TIMEOUT_SECONDS must be positive")

        if cls.PERSISTENCE_BACKEND not in {"memory", "json", "postgres"}:
            raise ValueError(
                f"Unknown AGENTCITY_PERSISTENCE '{cls.PERSISTENCE_BACKEND}'. "
                "Use one of: memory, json, postgres."
            )

        if cls.FALLBACK_STRATEGY not in {"random", "rule_based", "sugarscape", "qlearning"}:
            raise ValueError(
                f"Unknown AGENTCITY_FALLBACK_STRATEGY '{cls.FALLBACK_STRATEGY}'. "
                "Use one of: random, rule_based, sugarscape, qlearning."
            )

        if cls.LLM_PROVIDER == "anthropic" and not cls.ANTHROPIC_API_KEY:
            raise ValueError(
                "ANTHROPIC_API_KEY is required when using the 'anthropic' provider"
            )

        if cls.LLM_PROVIDER == "openai" and not cls.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY is required when using the 'openai' provider"
            )

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "AgentCity Configuration:",
            f"  LLM Provider: {cls.LLM_PROVIDER or '(baselines only)'}",
            f"  LLM Model: {cls.LLM_MODEL or '-'}",
            f"  Persistence: {cls.PERSISTENCE_BACKEND}",
            f"  World Size: {cls.WORLD_SIZE}x{cls.WORLD_SIZE}",
            f"  Tick Interval: {cls.TICK_INTERVAL_MS}ms",
            f"  Decisions: max {cls.MAX_CONCURRENT_DECISIONS} in flight, {cls.DECISION_TIMEOUT_SECONDS}s deadline",
            f"  Seed: {cls.SEED if cls.SEED is not None else '(random)'}",
        ]
        return "\n".join(lines)


# ============================================================================
# Per-action tuning
# ============================================================================


class MoveConfig(BaseModel):
    energy_cost: float = 1.0
    hunger_cost: float = 0.5
    consecutive_penalty: float = 0.5


class VitalsPenaltyConfig(BaseModel):
    """Thresholds for the low-vitals cost multiplier."""

    low_threshold: float = 30.0
    critical_threshold: float = 10.0
    low_penalty: float = 0.25
    critical_penalty: float = 0.5


class DeceiveConfig(BaseModel):
    energy_cost: float = 2.0
    max_distance: int = 3


class GatherConfig(BaseModel):
    max_per_action: int = 5
    energy_cost_per_unit: float = 1.0
    hunger_cost_per_unit: float = 0.3


class ForageConfig(BaseModel):
    energy_cost: float = 1.0
    success_rate: float = 0.3
    food_yield: int = 1
    # Per agent and cell.
    cooldown_ticks: int = 3


class PublicWorkConfig(BaseModel):
    """Shelter-based odd jobs that pay out of thin air, for agents with no employer."""

    enabled: bool = True
    energy_cost_per_tick: float = 2.0
    ticks_per_task: int = 3
    payment_per_task: float = 10.0
    task_types: List[str] = Field(
        default_factory=lambda: ["road_maintenance", "resource_survey", "shelter_cleanup"]
    )
    nearby_worker_radius: int = 3
    bonus_per_nearby_worker: float = 0.2
    max_cooperation_bonus: float = 0.6


class SleepConfig(BaseModel):
    max_duration: int = 10
    energy_per_tick: float = 5.0


class TradeConfig(BaseModel):
    max_distance: int = 3
    trust_gain_on_success: float = 5.0


class HarmConfig(BaseModel):
    max_distance: int = 1
    damage: Dict[str, float] = Field(
        default_factory=lambda: {"light": 5.0, "moderate": 15.0, "severe": 30.0}
    )
    energy_cost: Dict[str, float] = Field(
        default_factory=lambda: {"light": 2.0, "moderate": 5.0, "severe": 10.0}
    )
    trust_penalty: Dict[str, float] = Field(
        default_factory=lambda: {"light": -10.0, "moderate": -25.0, "severe": -50.0}
    )


class StealConfig(BaseModel):
    max_distance: int = 1
    max_per_action: int = 5
    energy_cost: float = 3.0
    success_probability: float = 0.6
    trust_penalty_success: float = -20.0
    trust_penalty_caught: float = -35.0


class ShareInfoConfig(BaseModel):
    max_distance: int = 3
    energy_cost: float = 1.0
    trust_gain_positive: float = 2.0
    trust_penalty_negative: float = -1.0


class GossipConfig(BaseModel):
    max_distance: int = 3
    energy_cost: float = 1.0
    trust_gain_positive: float = 2.0
    trust_penalty_negative: float = -3.0


class SignalConfig(BaseModel):
    max_intensity: int = 5
    energy_cost_per_intensity: float = 1.0
    range_multiplier: int = 10
    loud_intensity: int = 4


class ClaimConfig(BaseModel):
    max_distance: int = 1
    max_strength: int = 10
    energy_cost: float = 1.0


class NameLocationConfig(BaseModel):
    max_distance: int = 1
    max_names_per_cell: int = 10
    min_length: int = 2
    max_length: int = 50


class EmploymentConfig(BaseModel):
    max_salary: float = 1000.0
    max_duration: int = 100
    default_offer_ttl: int = 50
    work_energy_cost: float = 2.0
    work_hunger_cost: float = 0.5
    escrow_grace_ticks: int = 10
    trust_gain_on_accept: float = 5.0
    trust_gain_on_complete: float = 10.0
    trust_gain_on_payment: float = 15.0
    trust_penalty_unpaid_worker: float = -20.0
    trust_penalty_unpaid_employer: float = -10.0
    trust_penalty_default_worker: float = -30.0
    trust_penalty_default_employer: float = -10.0
    trust_penalty_quit: float = -10.0
    trust_penalty_fire_employer: float = -20.0
    trust_penalty_fire_worker: float = -15.0


class CredentialConfig(BaseModel):
    max_distance: int = 3
    energy_cost: float = 1.0
    trust_gain_on_issue: float = 5.0


class SpawnOffspringConfig(BaseModel):
    min_balance: float = 100.0
    min_energy: float = 50.0
    min_health: float = 50.0
    balance_cost: float = 50.0
    energy_cost: float = 30.0
    gestation_ticks: int = 10
    max_partner_distance: int = 2
    min_partner_trust: float = 20.0
    trust_gain_on_reproduction: float = 10.0


class ActionsConfig(BaseModel):
    """Tuning for every handler in the action catalogue."""

    move: MoveConfig = Field(default_factory=MoveConfig)
    vitals_penalty: VitalsPenaltyConfig = Field(default_factory=VitalsPenaltyConfig)
    deceive: DeceiveConfig = Field(default_factory=DeceiveConfig)
    gather: GatherConfig = Field(default_factory=GatherConfig)
    forage: ForageConfig = Field(default_factory=ForageConfig)
    public_work: PublicWorkConfig = Field(default_factory=PublicWorkConfig)
    sleep: SleepConfig = Field(default_factory=SleepConfig)
    trade: TradeConfig = Field(default_factory=TradeConfig)
    harm: HarmConfig = Field(default_factory=HarmConfig)
    steal: StealConfig = Field(default_factory=StealConfig)
    share_info: ShareInfoConfig = Field(default_factory=ShareInfoConfig)
    gossip: GossipConfig = Field(default_factory=GossipConfig)
    signal: SignalConfig = Field(default_factory=SignalConfig)
    claim: ClaimConfig = Field(default_factory=ClaimConfig)
    name_location: NameLocationConfig = Field(default_factory=NameLocationConfig)
    employment: EmploymentConfig = Field(default_factory=EmploymentConfig)
    credential: CredentialConfig = Field(default_factory=CredentialConfig)
    spawn_offspring: SpawnOffspringConfig = Field(default_factory=SpawnOffspringConfig)
    item_prices: Dict[str, float] = Field(
        default_factory=lambda: {"food": 10.0, "water": 5.0, "medicine": 20.0, "tool": 30.0}
    )
    item_effects: Dict[str, Dict[str, float]] = Field(
        default_factory=lambda: {
            "food": {"hunger": 30.0},
            "water": {"energy": 10.0},
            "battery": {"energy": 20.0},
            "medicine": {"health": 30.0},
        }
    )


class NeedsConfig(BaseModel):
    """Per-tick needs drain applied during maintenance."""

    hunger_decay: float = 1.0
    energy_decay: float = 0.5
    # state -> (hunger multiplier, energy multiplier)
    state_multipliers: Dict[str, tuple[float, float]] = Field(
        default_factory=lambda: {
            "idle": (1.0, 1.0),
            "walking": (1.5, 1.2),
            "working": (1.3, 1.0),
            "sleeping": (0.5, 0.0),
            "dead": (0.0, 0.0),
        }
    )
    low_hunger: float = 20.0
    critical_hunger: float = 10.0
    starvation_grace_ticks: int = 3
    starvation_damage: float = 2.0
    low_hunger_energy_drain: float = 1.0
    low_energy: float = 20.0
    critical_energy: float = 10.0
    exhaustion_damage: float = 1.0
    sleep_auto_eat_hunger: float = 20.0
    regen_threshold: float = 70.0
    health_regen: float = 0.2


class CurrencyDecayConfig(BaseModel):
    enabled: bool = False
    interval_ticks: int = 10
    threshold: float = 100.0
    rate: float = 0.02


class SimulationConfig(BaseModel):
    """Every tunable a simulation run reads. Injected into the scheduler."""

    world_size: int = 100
    tick_interval_ms: int = 10000
    seed: Optional[int] = None
    max_concurrent_decisions: int = 8
    decision_timeout_seconds: float = 30.0
    visibility_radius: int = 10
    item_visibility_radius: int = 10
    scent_duration_ticks: int = 10
    knowledge_max_age: int = 1000
    known_agents_limit: int = 10
    recent_memories_limit: int = 5
    memory_retention: int = 200
    recent_event_ticks: int = 1
    actions: ActionsConfig = Field(default_factory=ActionsConfig)
    needs: NeedsConfig = Field(default_factory=NeedsConfig)
    currency_decay: CurrencyDecayConfig = Field(default_factory=CurrencyDecayConfig)

    @classmethod
    def from_env(cls, **overrides) -> "SimulationConfig":
        """Build a config from ``Config`` (environment) values plus overrides."""
        values = {
            "world_size": Config.WORLD_SIZE,
            "tick_interval_ms": Config.TICK_INTERVAL_MS,
            "seed": Config.SEED,
            "max_concurrent_decisions": Config.MAX_CONCURRENT_DECISIONS,
            "decision_timeout_seconds": Config.DECISION_TIMEOUT_SECONDS,
            "visibility_radius": Config.VISIBILITY_RADIUS,
            "scent_duration_ticks": Config.SCENT_DURATION_TICKS,
        }
        values.update(overrides)
        return cls(**values)
