"""
Knowledge graph: who knows about whom, and how they found out.

Agents learn about each other two ways:
- direct: the other agent was inside their visibility radius (depth 0)
- referral: someone told them (depth = the referrer's depth + 1)

A record keeps the shortest referral chain ever seen, while every shared fact
is refreshed independently whenever newer information arrives.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from .schemas import KnownAgentView, KnowledgeRecord, Position, SharedInfo

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .world import World


SHARED_INFO_FIELDS = tuple(SharedInfo.model_fields)


def merge_shared_info(existing: SharedInfo, incoming: SharedInfo) -> SharedInfo:
    """Field-wise merge: any non-null incoming value replaces the stored one."""
    updates = {
        name: getattr(incoming, name)
        for name in SHARED_INFO_FIELDS
        if getattr(incoming, name) is not None
    }
    return existing.model_copy(update=updates)


def merge_knowledge(existing: Optional[KnowledgeRecord], incoming: KnowledgeRecord) -> KnowledgeRecord:
    """Combine a stored record with new information about the same agent.

    - discovery type, referrer and depth change only for a strictly shorter chain
    - shared info is merged field by field
    - ``information_age`` always moves to the incoming tick

    Merging the same record twice is a no-op beyond the first merge.
    """
    if existing is None:
        return incoming.model_copy(deep=True)

    update = {
        "shared_info": merge_shared_info(existing.shared_info, incoming.shared_info),
        "information_age": incoming.information_age,
    }
    if incoming.referral_depth < existing.referral_depth:
        update["discovery_type"] = incoming.discovery_type
        update["referred_by_id"] = incoming.referred_by_id
        update["referral_depth"] = incoming.referral_depth
    return existing.model_copy(update=update)


def _store(world: "World", record: KnowledgeRecord) -> KnowledgeRecord:
    bucket = world.knowledge.setdefault(record.observer_id, {})
    merged = merge_knowledge(bucket.get(record.known_id), record)
    bucket[record.known_id] = merged
    return merged


def record_direct_discovery(
    world: "World",
    observer_id: str,
    known_id: str,
    tick: int,
    position: Optional[Position] = None,
) -> Optional[KnowledgeRecord]:
    """Record that ``observer_id`` saw ``known_id`` with its own eyes."""
    if observer_id == known_id:
        return None
    record = KnowledgeRecord(
        observer_id=observer_id,
        known_id=known_id,
        discovery_type="direct",
        referral_depth=0,
        shared_info=SharedInfo(last_known_position=position, last_seen_tick=tick),
        information_age=tick,
        discovered_at_tick=tick,
    )
    return _store(world, record)


def record_referral(
    world: "World",
    observer_id: str,
    known_id: str,
    referrer_id: str,
    shared_info: SharedInfo,
    tick: int,
) -> Optional[KnowledgeRecord]:
    """Record that ``referrer_id`` told ``observer_id`` about ``known_id``."""
    if observer_id == known_id:
        return None
    referrer_record = world.knowledge_of(referrer_id, known_id)
    referrer_depth = referrer_record.referral_depth if referrer_record else 0
    record = KnowledgeRecord(
        observer_id=observer_id,
        known_id=known_id,
        discovery_type="referral",
        referred_by_id=referrer_id,
        referral_depth=referrer_depth + 1,
        shared_info=shared_info,
        information_age=tick,
        discovered_at_tick=tick,
    )
    return _store(world, record)


def known_agents_for_observer(
    world: "World",
    observer_id: str,
    current_tick: int,
    limit: int = 10,
) -> List[KnownAgentView]:
    """Most recently updated knowledge first, with ages relative to ``current_tick``."""
    records = sorted(
        world.knowledge.get(observer_id, {}).values(),
        key=lambda r: (-r.information_age, r.known_id),
    )
    return [
        KnownAgentView(
            agent_id=r.known_id,
            discovery_type=r.discovery_type,
            referral_depth=r.referral_depth,
            referred_by_id=r.referred_by_id,
            shared_info=r.shared_info,
            information_age=max(0, current_tick - r.information_age),
        )
        for r in records[:limit]
    ]


def prune_stale_knowledge(world: "World", current_tick: int, max_age: int = 1000) -> int:
    """Drop records not refreshed in ``max_age`` ticks. Returns the number removed."""
    removed = 0
    for observer_id in list(world.knowledge):
        bucket = world.knowledge[observer_id]
        for known_id in [k for k, r in bucket.items() if current_tick - r.information_age > max_age]:
            del bucket[known_id]
            removed += 1
        if not bucket:
            del world.knowledge[observer_id]
    return removed
