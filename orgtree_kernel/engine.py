"""
Org-Tree Kernel — Engine v1.0

Top-level orchestrator. Delegates mutation to transitions.py,
records history via history.py, validates via invariants.py.

Every public mutation is snapshot-then-mutate:
  1. Capture the current tree
  2. Apply the transition (raises OrgTreeError before touching anything)
  3. Validate invariants on the new tree (corruption is fatal)
  4. Commit the captured snapshot to history

Expected failures come back as MutationResult(success=False); they are
never raised to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from .domain_types import ImportReport, MutationResult, TreeConstants
from .errors import ImportParseError, OrgTreeError
from .events import (
    AddMemberEvent,
    BaseEvent,
    EditMemberEvent,
    MoveSubtreeEvent,
    RemoveMemberEvent,
    SetRootEvent,
)
from .history import HistoryManager
from .invariants import validate_invariants
from .snapshot import from_portable, to_portable
from .store import EntityStore
from .transitions import apply_event as _transition_apply
from .diagnostics import compute_diagnostics

logger = logging.getLogger(__name__)


class OrgEngine:
    """
    Stateful engine that owns one tree and its history.

    Single-threaded: callers serialize access; there is no locking.
    """

    def __init__(self, constants: Optional[TreeConstants] = None) -> None:
        self.constants = constants or TreeConstants()
        self._store = EntityStore()
        self._history = HistoryManager(limit=self.constants.history_limit)

    # -- State access -------------------------------------------------------

    @property
    def tree(self) -> EntityStore:
        return self._store

    @property
    def history(self) -> HistoryManager:
        return self._history

    # -- Mutations ----------------------------------------------------------

    def apply_event(self, event: BaseEvent, record: bool = True) -> MutationResult:
        """
        Apply a single mutation event.

        ``record=False`` skips the history snapshot; the bulk loader uses it
        after taking one snapshot for the whole import.
        """
        if event.event_type == "set_root":
            return self._apply_set_root(event)

        pending = self._history.capture(self._store) if record else None
        try:
            result = _transition_apply(self._store, event)
        except OrgTreeError as exc:
            return self._failure(event.event_type, exc)

        validate_invariants(self._store)
        if pending is not None:
            self._history.commit(pending)
        logger.debug("%s committed for %s", event.event_type, result.member_id)
        return result

    def _apply_set_root(self, event: BaseEvent) -> MutationResult:
        try:
            result = _transition_apply(self._store, event)
        except OrgTreeError as exc:
            return self._failure(event.event_type, exc)
        validate_invariants(self._store)
        # The root-only tree is the initial history entry
        self._history.reset(self._store)
        logger.debug("set_root committed for %s", result.member_id)
        return result

    def set_root(
        self, name: str, title: str, reset: bool = False, **fields: Any,
    ) -> MutationResult:
        payload = dict(fields, name=name, title=title, reset=reset)
        return self.apply_event(SetRootEvent(payload=payload))

    def add_member(
        self, name: str, title: str, manager_id: Optional[str] = None, **fields: Any,
    ) -> MutationResult:
        payload = dict(fields, name=name, title=title, manager_id=manager_id)
        return self.apply_event(AddMemberEvent(payload=payload))

    def edit_member(
        self, member_id: str, patch: Optional[Dict[str, Any]] = None, **fields: Any,
    ) -> MutationResult:
        merged = dict(patch or {})
        merged.update(fields)
        return self.apply_event(
            EditMemberEvent(payload={"member_id": member_id, "patch": merged})
        )

    def remove_member(
        self, member_id: str, reassign_to: Optional[str] = None,
    ) -> MutationResult:
        return self.apply_event(
            RemoveMemberEvent(payload={"member_id": member_id, "reassign_to": reassign_to})
        )

    def move_subtree(self, member_id: str, new_manager_id: str) -> MutationResult:
        return self.apply_event(
            MoveSubtreeEvent(
                payload={"member_id": member_id, "new_manager_id": new_manager_id}
            )
        )

    # -- History ------------------------------------------------------------

    def undo(self) -> bool:
        previous = self._history.undo(self._store)
        if previous is None:
            return False
        self._store = previous
        return True

    def redo(self) -> bool:
        restored = self._history.redo(self._store)
        if restored is None:
            return False
        self._store = restored
        return True

    # -- Persistence --------------------------------------------------------

    def export_document(self) -> Optional[Dict[str, Any]]:
        """Portable nested document of the current tree (None when empty)."""
        return to_portable(self._store)

    def import_document(self, doc: Any) -> MutationResult:
        """
        Replace the whole tree with *doc*.

        The document is fully parsed before anything is replaced; a parse
        failure leaves the current tree untouched. Importing over an
        existing tree is undoable; importing into an empty engine starts a
        fresh history.
        """
        try:
            if doc is None:
                raise ImportParseError("Document is empty")
            loaded = from_portable(doc)
        except OrgTreeError as exc:
            return self._failure("import_document", exc)
        return self.replace_tree(loaded)

    def replace_tree(self, store: EntityStore, record: bool = True) -> MutationResult:
        """Swap in an already-built store (validated here)."""
        validate_invariants(store)
        if self._store.is_empty() or not record:
            self._store = store
            self._history.reset(self._store)
        else:
            pending = self._history.capture(self._store)
            self._store = store
            self._history.commit(pending)
        logger.info("Tree replaced: %d member(s)", len(store))
        return MutationResult(
            event_type="import_document", success=True, member_id=store.root_id or "",
        )

    def bulk_import(
        self, records: Iterable[Dict[str, Any]], manager_match: Optional[str] = None,
    ) -> ImportReport:
        """Materialize unordered flat records; see bulk_loader.load_records."""
        from .bulk_loader import load_records
        return load_records(
            self, records, manager_match=manager_match or self.constants.manager_match,
        )

    def import_csv_text(self, text: str, manager_match: Optional[str] = None) -> ImportReport:
        """Bulk import from CSV text. ImportParseError leaves the tree untouched."""
        from .bulk_loader import parse_csv
        return self.bulk_import(parse_csv(text), manager_match=manager_match)

    # -- Diagnostics --------------------------------------------------------

    def get_diagnostics(self) -> dict:
        return compute_diagnostics(self._store, self.constants)

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _failure(event_type: str, exc: OrgTreeError) -> MutationResult:
        logger.debug("%s rejected: %s", event_type, exc)
        return MutationResult(
            event_type=event_type,
            success=False,
            error=exc.code,
            reason=str(exc),
        )
