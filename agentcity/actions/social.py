"""Communication: share_info, spread_gossip, signal and verifiable credentials."""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from ..environment import manhattan_distance
from ..schemas import (
    ActionIntent,
    ActionResult,
    Agent,
    Credential,
    CredentialUpsert,
    KnowledgeReferral,
    ReputationClaim,
    SharedInfo,
)
from .base import ResolutionContext, event, find_target, parse_params, remember, trust
from .params import (
    IssueCredentialParams,
    RevokeCredentialParams,
    ShareInfoParams,
    SignalParams,
    SpreadGossipParams,
)

INFO_TYPES = ("location", "reputation", "warning", "recommendation")
GOSSIP_TOPICS = ("skill", "behavior", "transaction", "warning", "recommendation")
CREDENTIAL_CLAIM_TYPES = ("skill", "experience", "membership", "character", "custom")
GOSSIP_SENTIMENT_THRESHOLD = 20
SIGNAL_MAX_LENGTH = 50
TEXT_MIN_LENGTH = 5
TEXT_MAX_LENGTH = 500


def _truncate(text: str, limit: int = 80) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _check_trio(agent_id: str, target_id: str, subject_id: str, verb: str) -> Optional[str]:
    if target_id == agent_id:
        return f"Cannot {verb} with yourself" if verb == "share info" else f"Cannot {verb} to yourself"
    if subject_id == agent_id:
        return f"Cannot {verb} about yourself"
    if subject_id == target_id:
        return f"Cannot {verb} about someone to themselves"
    return None


def sign_credential(issuer_id: str, subject_id: str, description: str, tick: int) -> str:
    """HMAC-SHA256 over ``issuer:subject:description:tick`` keyed by the issuer id."""
    payload = f"{issuer_id}:{subject_id}:{description}:{tick}"
    return hmac.new(issuer_id.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_credential(credential: Credential) -> bool:
    expected = sign_credential(
        credential.issuer_id, credential.subject_id, credential.description, credential.issued_at_tick
    )
    return hmac.compare_digest(expected, credential.signature)


def handle_share_info(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    """Tell a nearby agent what you know about a third agent.

    The listener records a referral one hop further from the subject than the
    sharer is. Sharing requires actually knowing the subject.
    """
    params = parse_params(ShareInfoParams, intent)
    if isinstance(params, ActionResult):
        return params

    if params.info_type not in INFO_TYPES:
        return ActionResult.failure(f"Invalid info type. Must be one of: {', '.join(INFO_TYPES)}")
    error = _check_trio(agent.id, params.target_agent_id, params.subject_agent_id, "share info")
    if error:
        return ActionResult.failure(error)
    sentiment = params.sentiment
    if sentiment is not None and (sentiment < -100 or sentiment > 100):
        return ActionResult.failure("Sentiment must be between -100 and 100")

    cfg = ctx.actions.share_info
    target, error = find_target(
        ctx,
        agent,
        params.target_agent_id,
        max_distance=cfg.max_distance,
        dead_error="Cannot communicate with dead agent",
        distance_error="Target too far for communication",
    )
    if error:
        return ActionResult.failure(error)
    if ctx.world.agent(params.subject_agent_id) is None:
        return ActionResult.failure("Subject agent not found")
    if agent.energy < cfg.energy_cost:
        return ActionResult.failure(f"Not enough energy (have: {agent.energy}, need: {cfg.energy_cost:g})")

    knowledge = ctx.world.knowledge_of(agent.id, params.subject_agent_id)
    if knowledge is None:
        return ActionResult.failure("You do not know this agent and cannot share information about them")

    shared = SharedInfo(last_seen_tick=knowledge.shared_info.last_seen_tick)
    if params.position is not None:
        shared.last_known_position = (params.position.x, params.position.y)
    else:
        shared.last_known_position = knowledge.shared_info.last_known_position
    claim = params.claim
    if params.info_type == "reputation" and sentiment is not None:
        tone = "positive" if sentiment > 0 else "negative" if sentiment < 0 else "neutral"
        shared.reputation_claim = ReputationClaim(
            sentiment=sentiment, claim=claim or f"Shared opinion ({tone})"
        )
    elif params.info_type == "warning":
        shared.danger_warning = claim or "Be careful around this agent"
    elif claim:
        shared.trade_info = claim

    positive = sentiment is not None and sentiment > 0
    negative = sentiment is not None and sentiment < 0
    effects = [
        KnowledgeReferral(
            observer_id=target.id,
            known_id=params.subject_agent_id,
            referrer_id=agent.id,
            shared_info=shared,
        )
    ]
    if positive:
        effects.append(trust(target.id, agent.id, cfg.trust_gain_positive, "Shared positive info about another agent"))
    elif negative:
        effects.append(trust(target.id, agent.id, cfg.trust_penalty_negative, "Shared negative info about another agent"))
    details = f'"{_truncate(claim)}"' if claim else "no details"
    effects += [
        remember(
            ctx, agent, f"Shared {params.info_type} about another agent with someone ({details})",
            importance=4, valence=0.2 if positive else -0.1 if negative else 0.0,
            involved=[target.id, params.subject_agent_id],
        ),
        remember(
            ctx, target,
            f"Was told {params.info_type} about another agent" + (f': "{_truncate(claim)}"' if claim else ""),
            memory_type="interaction", importance=5, valence=0.1 if positive else -0.1 if negative else 0.0,
            involved=[agent.id, params.subject_agent_id],
        ),
    ]
    return ActionResult(
        success=True,
        changes={"energy": max(0.0, agent.energy - cfg.energy_cost)},
        events=[
            event(
                ctx,
                "agent_shared_info",
                agent.id,
                sharerId=agent.id,
                targetId=target.id,
                subjectId=params.subject_agent_id,
                infoType=params.info_type,
                sentiment=sentiment or 0,
                referralDepth=knowledge.referral_depth + 1,
                hasPosition=shared.last_known_position is not None,
                position={"x": agent.x, "y": agent.y},
            )
        ],
        effects=effects,
    )


def handle_spread_gossip(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(SpreadGossipParams, intent)
    if isinstance(params, ActionResult):
        return params

    if params.topic not in GOSSIP_TOPICS:
        return ActionResult.failure(f"Invalid topic. Must be one of: {', '.join(GOSSIP_TOPICS)}")
    if params.sentiment < -100 or params.sentiment > 100:
        return ActionResult.failure("Sentiment must be between -100 and 100")
    if len(params.claim) < TEXT_MIN_LENGTH or len(params.claim) > TEXT_MAX_LENGTH:
        return ActionResult.failure("Claim must be between 5 and 500 characters")
    error = _check_trio(agent.id, params.target_agent_id, params.subject_agent_id, "spread gossip")
    if error:
        return ActionResult.failure(error)

    cfg = ctx.actions.gossip
    target, error = find_target(
        ctx,
        agent,
        params.target_agent_id,
        max_distance=cfg.max_distance,
        dead_error="Cannot communicate with dead agent",
        distance_error="Target too far for communication",
    )
    if error:
        return ActionResult.failure(error)
    if ctx.world.agent(params.subject_agent_id) is None:
        return ActionResult.failure("Subject agent not found")
    if agent.energy < cfg.energy_cost:
        return ActionResult.failure(f"Not enough energy (have: {agent.energy}, need: {cfg.energy_cost:g})")

    sentiment = params.sentiment
    positive = sentiment > GOSSIP_SENTIMENT_THRESHOLD
    negative = sentiment < -GOSSIP_SENTIMENT_THRESHOLD
    tone = "positive" if positive else "negative" if negative else "neutral"

    effects = [
        KnowledgeReferral(
            observer_id=target.id,
            known_id=params.subject_agent_id,
            referrer_id=agent.id,
            shared_info=SharedInfo(reputation_claim=ReputationClaim(sentiment=sentiment, claim=params.claim)),
        )
    ]
    if positive:
        effects.append(trust(target.id, agent.id, cfg.trust_gain_positive, "Shared positive gossip about another agent"))
    elif negative:
        effects.append(trust(target.id, agent.id, cfg.trust_penalty_negative, "Spread negative gossip about another agent"))

    if tone == "neutral":
        heard = f'Heard neutral info about another agent: "{_truncate(params.claim)}"'
    else:
        heard = f'Heard {tone} gossip about another agent: "{_truncate(params.claim)}" (sentiment: {sentiment})'
    effects += [
        remember(
            ctx, target, heard, memory_type="interaction",
            importance=7 if negative else 5 if positive else 4, valence=sentiment / 200,
            involved=[agent.id, params.subject_agent_id],
        ),
        remember(
            ctx, agent, f"Spread {tone} gossip about another agent",
            importance=3, valence=-0.1 if negative else 0.1,
            involved=[target.id, params.subject_agent_id],
        ),
    ]
    return ActionResult(
        success=True,
        changes={"energy": max(0.0, agent.energy - cfg.energy_cost)},
        events=[
            event(
                ctx,
                "gossip_spread",
                agent.id,
                sourceId=agent.id,
                targetId=target.id,
                subjectId=params.subject_agent_id,
                topic=params.topic,
                sentiment=sentiment,
                position={"x": agent.x, "y": agent.y},
            )
        ],
        effects=effects,
    )


def handle_signal(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    """Broadcast a short message. Louder signals carry further and cost more."""
    params = parse_params(SignalParams, intent)
    if isinstance(params, ActionResult):
        return params

    cfg = ctx.actions.signal
    if params.intensity < 1 or params.intensity > cfg.max_intensity:
        return ActionResult.failure(f"Invalid intensity: must be between 1 and {cfg.max_intensity}")
    if not params.message or len(params.message) > SIGNAL_MAX_LENGTH:
        return ActionResult.failure(f"Message must be 1-{SIGNAL_MAX_LENGTH} characters")

    energy_cost = cfg.energy_cost_per_intensity * params.intensity
    if agent.energy < energy_cost:
        return ActionResult.failure(
            f"Not enough energy for signal intensity {params.intensity}: need {energy_cost:g}, have {agent.energy}"
        )
    signal_range = params.intensity * cfg.range_multiplier
    return ActionResult(
        success=True,
        changes={"energy": agent.energy - energy_cost},
        events=[
            event(
                ctx,
                "agent_signaled",
                agent.id,
                message=params.message,
                intensity=params.intensity,
                range=signal_range,
                x=agent.x,
                y=agent.y,
            )
        ],
    )


def handle_issue_credential(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(IssueCredentialParams, intent)
    if isinstance(params, ActionResult):
        return params

    if params.claim_type not in CREDENTIAL_CLAIM_TYPES:
        return ActionResult.failure(
            f"Invalid claim type. Must be one of: {', '.join(CREDENTIAL_CLAIM_TYPES)}"
        )
    if params.subject_agent_id == agent.id:
        return ActionResult.failure("Cannot issue a credential to yourself")
    if params.level is not None and (params.level < 1 or params.level > 10):
        return ActionResult.failure("Credential level must be between 1 and 10")
    if len(params.description) < TEXT_MIN_LENGTH or len(params.description) > TEXT_MAX_LENGTH:
        return ActionResult.failure("Description must be between 5 and 500 characters")

    cfg = ctx.actions.credential
    subject = ctx.world.agent(params.subject_agent_id)
    if subject is None:
        return ActionResult.failure("Subject agent not found")
    if not subject.is_alive:
        return ActionResult.failure("Cannot issue credential to a dead agent")
    distance = manhattan_distance(agent.position, subject.position)
    if distance > cfg.max_distance:
        return ActionResult.failure(
            f"Subject agent is too far (distance: {distance}, max: {cfg.max_distance})"
        )
    if agent.energy < cfg.energy_cost:
        return ActionResult.failure(f"Not enough energy (have: {agent.energy}, need: {cfg.energy_cost:g})")

    signature = sign_credential(agent.id, subject.id, params.description, ctx.tick)
    credential = Credential(
        id=ctx.rng_uuid(),
        issuer_id=agent.id,
        subject_id=subject.id,
        claim_type=params.claim_type,
        description=params.description,
        evidence=params.evidence,
        level=params.level,
        signature=signature,
        issued_at_tick=ctx.tick,
        expires_at_tick=params.expires_at_tick,
    )
    return ActionResult(
        success=True,
        changes={"energy": max(0.0, agent.energy - cfg.energy_cost)},
        events=[
            event(
                ctx,
                "credential_issued",
                agent.id,
                credentialId=credential.id,
                issuerId=agent.id,
                subjectId=subject.id,
                claimType=params.claim_type,
                level=params.level,
                signature=signature[:16] + "...",
            )
        ],
        effects=[
            CredentialUpsert(credential=credential),
            trust(subject.id, agent.id, cfg.trust_gain_on_issue, "Issued me a credential"),
            remember(
                ctx, agent,
                f'Issued a {params.claim_type} credential to another agent: "{_truncate(params.description)}"',
                importance=4, valence=0.2, involved=[subject.id],
            ),
            remember(
                ctx, subject,
                f'Received a {params.claim_type} credential from another agent: "{_truncate(params.description)}"',
                memory_type="interaction", importance=6, valence=0.4, involved=[agent.id],
            ),
        ],
    )


def handle_revoke_credential(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(RevokeCredentialParams, intent)
    if isinstance(params, ActionResult):
        return params

    credential = ctx.world.credentials.get(params.credential_id)
    if credential is None:
        return ActionResult.failure("Credential not found")
    if credential.issuer_id != agent.id:
        return ActionResult.failure("Only the issuer can revoke a credential")
    if credential.revoked:
        return ActionResult.failure("Credential is already revoked")

    effects = [
        CredentialUpsert(credential=credential.model_copy(update={"revoked": True, "revoked_at_tick": ctx.tick})),
        remember(
            ctx, agent, f'Revoked a {credential.claim_type} credential: "{_truncate(credential.description)}"',
            importance=4, valence=-0.1, involved=[credential.subject_id],
        ),
    ]
    subject = ctx.world.agent(credential.subject_id)
    if subject is not None and subject.is_alive:
        effects.append(
            remember(
                ctx, subject,
                f'A {credential.claim_type} credential I held was revoked: "{_truncate(credential.description)}"',
                memory_type="interaction", importance=5, valence=-0.3, involved=[agent.id],
            )
        )
    return ActionResult(
        success=True,
        events=[
            event(
                ctx,
                "credential_revoked",
                agent.id,
                credentialId=credential.id,
                subjectId=credential.subject_id,
                claimType=credential.claim_type,
            )
        ],
        effects=effects,
    )
