"""
Org-Tree Kernel — Invariant Checks v1.0

Hard-fail validation. Every check raises InvariantViolationError on
failure. A violation here means internal corruption, never a user
mistake, so it is not converted into a MutationResult.
"""

from __future__ import annotations

from .domain_types import MEMBER_ID_PATTERN
from .graph import detect_manager_cycles, orphan_ids
from .store import EntityStore


class InvariantViolationError(Exception):
    """Raised when an org-tree invariant is violated."""

    def __init__(self, rule: str, detail: str) -> None:
        self.rule = rule
        self.detail = detail
        super().__init__(f"[INVARIANT:{rule}] {detail}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_invariants(store: EntityStore, allow_orphans: bool = True) -> None:
    """
    Run all checks. Raises InvariantViolationError on the first failure.

    With ``allow_orphans`` (the engine's mode) non-root members without a
    manager are accepted; they are the explicit orphan state left by a
    remove without reassignment. Pass False to demand a single tree.
    """
    _check_member_id_format(store)
    _check_single_root(store, allow_orphans)
    _check_manager_refs(store)
    _check_acyclic(store)
    _check_levels(store)
    _check_report_index(store)


# ---------------------------------------------------------------------------
# Individual checks (private)
# ---------------------------------------------------------------------------

def _check_member_id_format(store: EntityStore) -> None:
    for mid in store.ids():
        if not MEMBER_ID_PATTERN.match(mid):
            raise InvariantViolationError(
                "member_id_format",
                f"Member ID {mid!r} must match [a-zA-Z0-9_-]+"
            )


def _check_single_root(store: EntityStore, allow_orphans: bool) -> None:
    """Exactly one member has no manager (the root), or the store is empty."""
    if store.is_empty():
        if store.root_id is not None:
            raise InvariantViolationError(
                "single_root",
                f"Empty store still names root {store.root_id!r}"
            )
        return
    root = store.root
    if root is None:
        raise InvariantViolationError(
            "single_root",
            f"Root {store.root_id!r} is not a member of a non-empty store"
        )
    if root.manager_id is not None:
        raise InvariantViolationError(
            "single_root",
            f"Root {root.id!r} has manager {root.manager_id!r}"
        )
    if not allow_orphans:
        extra = orphan_ids(store)
        if extra:
            raise InvariantViolationError(
                "single_root",
                f"{len(extra)} member(s) besides the root have no manager: "
                f"{', '.join(sorted(extra))}"
            )


def _check_manager_refs(store: EntityStore) -> None:
    """Every non-null manager_id refers to an existing member."""
    for member in store.all():
        if member.manager_id is not None and member.manager_id not in store:
            raise InvariantViolationError(
                "manager_refs",
                f"Member {member.id!r} references missing manager "
                f"{member.manager_id!r}"
            )


def _check_acyclic(store: EntityStore) -> None:
    cycles = detect_manager_cycles(store)
    if cycles:
        raise InvariantViolationError(
            "acyclic",
            f"Manager cycle detected: {' -> '.join(cycles[0])}"
        )


def _check_levels(store: EntityStore) -> None:
    """level == 0 iff no manager, otherwise manager.level + 1."""
    for member in store.all():
        if member.manager_id is None:
            expected = 0
        else:
            expected = store.get(member.manager_id).level + 1
        if member.level != expected:
            raise InvariantViolationError(
                "level",
                f"Member {member.id!r} has level {member.level}, expected {expected}"
            )


def _check_report_index(store: EntityStore) -> None:
    """The maintained report index agrees with the manager_id fields."""
    by_manager: dict = {}
    for member in store.all():
        if member.manager_id is not None:
            by_manager.setdefault(member.manager_id, []).append(member.id)
    for member in store.all():
        indexed = sorted(r.id for r in store.direct_reports_of(member.id))
        scanned = sorted(by_manager.get(member.id, []))
        if indexed != scanned:
            raise InvariantViolationError(
                "report_index",
                f"Report index for {member.id!r} is {indexed}, "
                f"manager fields say {scanned}"
            )
