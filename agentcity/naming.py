"""Emergent place names: agents propose names for cells, usage decides the winner."""

from __future__ import annotations

import re
from typing import List, Optional

from .schemas import LocationName

_WHITESPACE = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    """Trim and collapse internal whitespace. Case is preserved for display."""
    return _WHITESPACE.sub(" ", name).strip()


def find_name(names: List[LocationName], name: str) -> Optional[LocationName]:
    """Case-insensitive lookup of ``name`` among a cell's names."""
    wanted = normalize_name(name).casefold()
    for entry in names:
        if entry.name.casefold() == wanted:
            return entry
    return None


def propose_name(
    names: List[LocationName],
    x: int,
    y: int,
    name: str,
    agent_id: str,
    tick: int,
    max_names: int = 10,
) -> Optional[List[LocationName]]:
    """Return the cell's updated name list after ``agent_id`` uses ``name``.

    An existing name (compared case-insensitively) gains one usage; a new name
    is appended with a count of one. Returns None when the name is new and the
    cell already holds ``max_names`` names. The input list is not modified.
    """
    clean = normalize_name(name)
    existing = find_name(names, clean)
    if existing is not None:
        return [
            entry.model_copy(update={"usage_count": entry.usage_count + 1, "last_used_tick": tick})
            if entry is existing
            else entry
            for entry in names
        ]
    if len(names) >= max_names:
        return None
    created = LocationName(
        x=x,
        y=y,
        name=clean,
        usage_count=1,
        proposed_by=agent_id,
        first_used_tick=tick,
        last_used_tick=tick,
    )
    return [*names, created]


def consensus_name(names: List[LocationName]) -> Optional[str]:
    """The most used name; ties go to whichever name was proposed first."""
    best: Optional[LocationName] = None
    for entry in names:
        if best is None or entry.usage_count > best.usage_count:
            best = entry
    return best.name if best else None
