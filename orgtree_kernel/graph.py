"""
Org-Tree Kernel — Graph Utilities v1.0

Pure traversal over the entity store. No mutation except level
recomputation, which only touches the ``level`` field.

All identity comparisons are by id, never by object: members rebuilt
from a snapshot are new instances carrying the same ids.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Set, Tuple

from .domain_types import Member
from .store import EntityStore


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------

def walk(
    store: EntityStore, start_id: Optional[str] = None,
) -> Iterator[Tuple[Member, int]]:
    """
    Lazily yield ``(member, depth)`` pairs in depth-first pre-order.

    Starts at *start_id* (depth 0) or at the root when omitted. Each call
    returns a fresh generator; there is no shared cursor.
    """
    start = store.root if start_id is None else store.get(start_id)
    if start is None:
        return
    stack: List[Tuple[Member, int]] = [(start, 0)]
    seen: Set[str] = set()
    while stack:
        member, depth = stack.pop()
        if member.id in seen:
            continue
        seen.add(member.id)
        yield member, depth
        reports = store.direct_reports_of(member.id)
        for report in reversed(reports):
            stack.append((report, depth + 1))


def iter_descendants(store: EntityStore, member_id: str) -> Iterator[Member]:
    """Yield every member below *member_id* (the member itself excluded)."""
    for member, depth in walk(store, member_id):
        if depth > 0:
            yield member


def is_descendant(store: EntityStore, ancestor_id: str, candidate_id: str) -> bool:
    """
    Descendant-reachability test: DFS over direct reports from
    *ancestor_id*, True as soon as *candidate_id* is met.
    """
    return any(m.id == candidate_id for m in iter_descendants(store, ancestor_id))


# ---------------------------------------------------------------------------
# Levels
# ---------------------------------------------------------------------------

def recompute_levels(store: EntityStore, member_id: str, level: int) -> int:
    """
    Set *member_id* to *level* and every descendant to its depth below it.
    Returns the number of members whose level actually changed.
    """
    changed = 0
    for member, depth in walk(store, member_id):
        new_level = level + depth
        if member.level != new_level:
            member.level = new_level
            changed += 1
    return changed


# ---------------------------------------------------------------------------
# Ancestry
# ---------------------------------------------------------------------------

def ancestor_chain(store: EntityStore, member_id: str) -> List[Member]:
    """
    Managers from the top of the chain down to *member_id* (inclusive).

    Stops if a member repeats, so a corrupted (cyclic) store cannot loop
    forever; invariants.py reports the cycle itself.
    """
    chain: List[Member] = []
    seen: Set[str] = set()
    current = store.get(member_id)
    while current is not None and current.id not in seen:
        seen.add(current.id)
        chain.append(current)
        current = store.get(current.manager_id)
    chain.reverse()
    return chain


def orphan_ids(store: EntityStore) -> List[str]:
    """Non-root members with no manager."""
    return [
        m.id for m in store.all()
        if m.manager_id is None and m.id != store.root_id
    ]


# ---------------------------------------------------------------------------
# Cycle detection (manager pointers)
# ---------------------------------------------------------------------------

def detect_manager_cycles(store: EntityStore) -> List[List[str]]:
    """
    Follow manager_id from every member and collect any cycle found.
    Uses explicit colour tracking; each member is visited once.
    """
    WHITE, GREY, BLACK = 0, 1, 2
    colour: Dict[str, int] = {mid: WHITE for mid in store.ids()}
    cycles: List[List[str]] = []

    for start in store.ids():
        if colour[start] != WHITE:
            continue
        path: List[str] = []
        current: Optional[str] = start
        while current is not None and colour.get(current, BLACK) == WHITE:
            colour[current] = GREY
            path.append(current)
            member = store.get(current)
            current = member.manager_id if member else None
        if current is not None and colour.get(current) == GREY:
            idx = path.index(current)
            cycles.append(path[idx:] + [current])
        for mid in path:
            colour[mid] = BLACK

    return cycles
