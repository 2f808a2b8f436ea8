"""Parameter models for every action.

Both snake_case and camelCase keys are accepted (``to_x`` / ``toX``) since
decision sources emit either. Range checks with domain-specific messages live
in the handlers; these models only guarantee presence and type.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ActionParams(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class PositionParam(ActionParams):
    x: int
    y: int


class MoveParams(ActionParams):
    to_x: int
    to_y: int


class GatherParams(ActionParams):
    resource_type: Optional[str] = None
    quantity: int = 1


class SleepParams(ActionParams):
    duration: int


class ConsumeParams(ActionParams):
    item_type: str


class BuyParams(ActionParams):
    item_type: str
    quantity: int = 1


class WorkParams(ActionParams):
    employment_id: Optional[str] = None


class TradeParams(ActionParams):
    target_agent_id: str
    offering_item_type: str
    offering_quantity: int
    requesting_item_type: str
    requesting_quantity: int


class HarmParams(ActionParams):
    target_agent_id: str
    intensity: str = "light"


class StealParams(ActionParams):
    target_agent_id: str
    item_type: str
    quantity: int = 1


class DeceiveParams(ActionParams):
    target_agent_id: str
    claim: str
    claim_type: str


class ShareInfoParams(ActionParams):
    target_agent_id: str
    subject_agent_id: str
    info_type: str
    claim: Optional[str] = None
    sentiment: Optional[int] = None
    position: Optional[PositionParam] = None


class SpreadGossipParams(ActionParams):
    target_agent_id: str
    subject_agent_id: str
    topic: str
    claim: str
    sentiment: int = 0


class SignalParams(ActionParams):
    message: str
    intensity: int = 1


class ClaimParams(ActionParams):
    claim_type: str
    x: Optional[int] = None
    y: Optional[int] = None
    description: Optional[str] = None


class NameLocationParams(ActionParams):
    name: str
    x: Optional[int] = None
    y: Optional[int] = None


class OfferJobParams(ActionParams):
    salary: float
    duration: int
    payment_type: str = "on_completion"
    escrow_percent: float = 100.0
    description: str = ""
    expires_in: Optional[int] = None


class JobOfferRefParams(ActionParams):
    job_offer_id: str


class EmploymentRefParams(ActionParams):
    employment_id: str


class IssueCredentialParams(ActionParams):
    subject_agent_id: str
    claim_type: str
    description: str
    evidence: Optional[str] = None
    level: Optional[int] = None
    expires_at_tick: Optional[int] = None


class RevokeCredentialParams(ActionParams):
    credential_id: str


class SpawnOffspringParams(ActionParams):
    partner_id: Optional[str] = None
    inherit_personality: bool = True
    mutation_intensity: float = 0.1


class ForageParams(ActionParams):
    pass


class PublicWorkParams(ActionParams):
    task_type: Optional[str] = None
