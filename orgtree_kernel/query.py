"""
Org-Tree Kernel — Query Surface v1.0

Read-only lookups consumed by the CLI, report and HTTP layers.
Nothing here mutates the store.
"""

from __future__ import annotations

import difflib
from typing import Callable, List, Optional, Tuple

from .constants import DEFAULT_FUZZY_CUTOFF
from .domain_types import Member, TEXT_FIELDS
from .graph import ancestor_chain as _ancestor_chain
from .graph import orphan_ids
from .store import EntityStore


def list_members(store: EntityStore) -> List[Member]:
    """All members, ordered by (level, name, id)."""
    return sorted(store.all(), key=lambda m: (m.level, m.name.lower(), m.id))


def direct_reports(store: EntityStore, member_id: str) -> List[Member]:
    store.require(member_id)
    return store.direct_reports_of(member_id)


def ancestor_chain(store: EntityStore, member_id: str) -> List[Member]:
    """Managers ordered root -> member, the member itself last."""
    store.require(member_id)
    return _ancestor_chain(store, member_id)


def orphans(store: EntityStore) -> List[Member]:
    return [store.get(oid) for oid in orphan_ids(store)]


# ── Search ────────────────────────────────────────────────────

def search(store: EntityStore, predicate: Callable[[str], bool]) -> List[Member]:
    """Members where *predicate* holds for at least one of the six text fields."""
    return [
        m for m in list_members(store)
        if any(predicate(getattr(m, f)) for f in TEXT_FIELDS)
    ]


def text_search(store: EntityStore, query: str) -> List[Member]:
    """Case-insensitive substring match over the text fields."""
    needle = query.strip().lower()
    if not needle:
        return []
    return search(store, lambda value: needle in value.lower())


def fuzzy_search(
    store: EntityStore, query: str, cutoff: float = DEFAULT_FUZZY_CUTOFF,
    limit: Optional[int] = None,
) -> List[Tuple[Member, float]]:
    """
    Rank members by their best SequenceMatcher ratio over the text fields.

    A field containing the query as a substring scores 1.0, so partial
    names ("ali" -> "Alice Smith") still surface. Results below *cutoff*
    are dropped; ties break on name.
    """
    needle = query.strip().lower()
    if not needle:
        return []

    scored: List[Tuple[Member, float]] = []
    for member in store.all():
        best = 0.0
        for fname in TEXT_FIELDS:
            value = getattr(member, fname).lower()
            if not value:
                continue
            if needle in value:
                best = 1.0
                break
            best = max(best, difflib.SequenceMatcher(None, needle, value).ratio())
        if best >= cutoff:
            scored.append((member, round(best, 4)))

    scored.sort(key=lambda pair: (-pair[1], pair[0].name.lower(), pair[0].id))
    return scored[:limit] if limit else scored
