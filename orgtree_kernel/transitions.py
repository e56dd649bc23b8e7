"""
Org-Tree Kernel — Centralized Transition Logic v1.0

ALL structural mutation logic lives here.

Every handler checks all of its preconditions before touching the
store, so a handler that raises an OrgTreeError leaves the store
exactly as it found it.
"""

from __future__ import annotations

import logging
from typing import Optional

from .domain_types import (
    Member, MutationResult, OPTIONAL_FIELDS, REQUIRED_FIELDS, TEXT_FIELDS,
    new_member_id, validate_member_id,
)
from .errors import (
    CannotMoveRootError,
    CannotRemoveRootError,
    CycleError,
    DuplicateIdError,
    InvalidMemberError,
    NoRootError,
    RootExistsError,
)
from .events import BaseEvent
from .graph import is_descendant, recompute_levels
from .store import EntityStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public dispatcher
# ---------------------------------------------------------------------------

def apply_event(store: EntityStore, event: BaseEvent) -> MutationResult:
    """
    Apply *event* to *store* in place and return the result.
    Raises OrgTreeError (store untouched) when a precondition fails.
    """
    etype = event.event_type

    if etype == "set_root":
        return _apply_set_root(store, event)
    elif etype == "add_member":
        return _apply_add_member(store, event)
    elif etype == "edit_member":
        return _apply_edit_member(store, event)
    elif etype == "remove_member":
        return _apply_remove_member(store, event)
    elif etype == "move_subtree":
        return _apply_move_subtree(store, event)
    else:
        raise ValueError(f"Unknown event type: {etype}")


# ---------------------------------------------------------------------------
# Individual transition handlers (private)
# ---------------------------------------------------------------------------

def _apply_set_root(store: EntityStore, event: BaseEvent) -> MutationResult:
    p = event.payload
    reset = p.get("reset", False)
    if reset is None:
        reset = False
    if not isinstance(reset, bool):
        raise InvalidMemberError(f"'reset' must be a boolean, got {reset!r}")
    if not store.is_empty() and not reset:
        raise RootExistsError(store.root_id or "")

    member = _build_member(p, existing=None if reset else store)
    member.manager_id = None
    member.level = 0

    if reset:
        store.clear()
    store.put(member)
    store.root_id = member.id
    return MutationResult(event_type="set_root", success=True, member_id=member.id)


def _apply_add_member(store: EntityStore, event: BaseEvent) -> MutationResult:
    p = event.payload
    root = store.root
    if root is None:
        raise NoRootError()

    member = _build_member(p, existing=store)

    # Unknown or omitted manager falls back to the root
    manager = store.get(_ref(p, "manager_id")) or root
    member.manager_id = manager.id
    member.level = manager.level + 1
    store.put(member)
    return MutationResult(event_type="add_member", success=True, member_id=member.id)


def _apply_edit_member(store: EntityStore, event: BaseEvent) -> MutationResult:
    p = event.payload
    member = store.require(_ref(p, "member_id"))
    patch = p.get("patch")
    if patch is None:
        patch = {}
    if not isinstance(patch, dict):
        raise InvalidMemberError(f"'patch' must be an object, got {type(patch).__name__}")

    changed = []
    for fname in TEXT_FIELDS:
        value = patch.get(fname)
        if not isinstance(value, str):
            continue
        value = value.strip()
        # Blank input keeps the current value; it is not a clear
        if value and value != getattr(member, fname):
            setattr(member, fname, value)
            changed.append(fname)

    return MutationResult(
        event_type="edit_member",
        success=True,
        member_id=member.id,
        changed_fields=tuple(changed),
    )


def _apply_remove_member(store: EntityStore, event: BaseEvent) -> MutationResult:
    p = event.payload
    member_id = _ref(p, "member_id")
    if member_id is not None and member_id == store.root_id:
        raise CannotRemoveRootError(member_id)
    member = store.require(member_id)

    target: Optional[Member] = None
    reassign_to = _ref(p, "reassign_to")
    if reassign_to:
        target = store.get(reassign_to)
        if target is None:
            logger.warning(
                "Reassignment target %r not found; reports of %r become orphans",
                reassign_to, member.id,
            )
        elif target.id == member.id or is_descendant(store, member.id, target.id):
            raise CycleError(member.id, target.id)

    reports = store.direct_reports_of(member.id)
    relevelled = 0
    for report in reports:
        if target is not None:
            report.manager_id = target.id
            store.put(report)
            relevelled += recompute_levels(store, report.id, target.level + 1)
        else:
            report.manager_id = None
            store.put(report)
            relevelled += recompute_levels(store, report.id, 0)

    store.delete(member.id)

    report_ids = tuple(r.id for r in reports)
    if target is None and report_ids:
        logger.warning(
            "Removed %r left %d orphaned report(s): %s",
            member.id, len(report_ids), ", ".join(report_ids),
        )
    return MutationResult(
        event_type="remove_member",
        success=True,
        member_id=member.id,
        relevelled=relevelled,
        reassigned=report_ids if target is not None else (),
        orphaned=report_ids if target is None else (),
    )


def _apply_move_subtree(store: EntityStore, event: BaseEvent) -> MutationResult:
    p = event.payload
    member = store.require(_ref(p, "member_id"))
    new_manager = store.require(_ref(p, "new_manager_id"), role="manager")

    if member.id == store.root_id:
        raise CannotMoveRootError(member.id)
    # Cycle guard: target may be neither the member nor below it
    if new_manager.id == member.id or is_descendant(store, member.id, new_manager.id):
        raise CycleError(member.id, new_manager.id)

    member.manager_id = new_manager.id
    store.put(member)
    relevelled = recompute_levels(store, member.id, new_manager.level + 1)
    return MutationResult(
        event_type="move_subtree",
        success=True,
        member_id=member.id,
        relevelled=relevelled,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _build_member(p: dict, existing: Optional[EntityStore]) -> Member:
    """Validate required fields and an optional caller-supplied id."""
    values = {}
    for fname in REQUIRED_FIELDS:
        value = p.get(fname)
        value = value.strip() if isinstance(value, str) else ""
        if not value:
            raise InvalidMemberError(f"Field {fname!r} is required and cannot be blank")
        values[fname] = value
    for fname in OPTIONAL_FIELDS:
        value = p.get(fname)
        values[fname] = value.strip() if isinstance(value, str) else ""

    member_id = p.get("id")
    if member_id:
        try:
            validate_member_id(member_id)
        except ValueError as exc:
            raise InvalidMemberError(str(exc)) from exc
        if existing is not None and member_id in existing:
            raise DuplicateIdError(member_id)
    else:
        member_id = new_member_id()

    return Member(id=member_id, **values)


def _ref(p: dict, key: str) -> Optional[str]:
    """A member reference from the payload: a string or None."""
    value = p.get(key)
    if value is not None and not isinstance(value, str):
        raise InvalidMemberError(f"{key!r} must be a string, got {type(value).__name__}")
    return value
