"""The action resolver: a closed ActionType -> handler table."""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from ..schemas import ActionIntent, ActionResult, ActionType, Agent
from .base import Handler, ResolutionContext
from .conflict import handle_deceive, handle_harm, handle_steal
from .economy import (
    handle_accept_job,
    handle_cancel_job_offer,
    handle_claim_escrow,
    handle_fire_worker,
    handle_offer_job,
    handle_pay_worker,
    handle_public_work,
    handle_quit_job,
    handle_trade,
    handle_work,
)
from .lifecycle import handle_spawn_offspring
from .movement import handle_move
from .social import (
    handle_issue_credential,
    handle_revoke_credential,
    handle_share_info,
    handle_signal,
    handle_spread_gossip,
)
from .survival import handle_buy, handle_consume, handle_forage, handle_gather, handle_sleep
from .territory import handle_claim, handle_name_location

DEFAULT_HANDLERS: Dict[ActionType, Handler] = {
    ActionType.MOVE: handle_move,
    ActionType.GATHER: handle_gather,
    ActionType.SLEEP: handle_sleep,
    ActionType.CONSUME: handle_consume,
    ActionType.BUY: handle_buy,
    ActionType.WORK: handle_work,
    ActionType.TRADE: handle_trade,
    ActionType.HARM: handle_harm,
    ActionType.STEAL: handle_steal,
    ActionType.DECEIVE: handle_deceive,
    ActionType.SHARE_INFO: handle_share_info,
    ActionType.SPREAD_GOSSIP: handle_spread_gossip,
    ActionType.SIGNAL: handle_signal,
    ActionType.CLAIM: handle_claim,
    ActionType.NAME_LOCATION: handle_name_location,
    ActionType.OFFER_JOB: handle_offer_job,
    ActionType.ACCEPT_JOB: handle_accept_job,
    ActionType.CANCEL_JOB_OFFER: handle_cancel_job_offer,
    ActionType.QUIT_JOB: handle_quit_job,
    ActionType.PAY_WORKER: handle_pay_worker,
    ActionType.CLAIM_ESCROW: handle_claim_escrow,
    ActionType.ISSUE_CREDENTIAL: handle_issue_credential,
    ActionType.REVOKE_CREDENTIAL: handle_revoke_credential,
    ActionType.SPAWN_OFFSPRING: handle_spawn_offspring,
    ActionType.FORAGE: handle_forage,
    ActionType.PUBLIC_WORK: handle_public_work,
    ActionType.FIRE_WORKER: handle_fire_worker,
}


class ActionResolver:
    """Validates an intent and dispatches it to its handler.

    Args:
        enabled: Restrict the catalogue to these action types (default: all).
            Intents for anything else fail with ``Unknown action type``.
    """

    def __init__(self, enabled: Optional[Iterable[ActionType]] = None):
        if enabled is None:
            self._handlers = dict(DEFAULT_HANDLERS)
        else:
            self._handlers = {ActionType(t): DEFAULT_HANDLERS[ActionType(t)] for t in enabled}

    @property
    def catalogue(self) -> list[str]:
        """Enabled action names, in declaration order."""
        return [t.value for t in ActionType if t in self._handlers]

    def supports(self, action: str) -> bool:
        """Whether ``action`` names an enabled action type."""
        return any(t.value == action for t in self._handlers)

    def resolve(self, intent: ActionIntent, agent: Agent, context: ResolutionContext) -> ActionResult:
        """Resolve one intent. Validation failures are returned, never raised."""
        handler = self._handlers.get(intent.type)
        if handler is None:
            return ActionResult.failure(f"Unknown action type: {intent.type.value}")
        if not agent.is_alive:
            return ActionResult.failure("Agent is dead")
        return handler(intent, agent, context)
