# file: orgtree_runtime/session.py
"""
Chart Session — orchestrates engine + persistence.

Apply-before-persist order:
  1. engine mutation              — failures come back as results
  2. repository.save_snapshot()   — only if step 1 succeeded
  3. saved_version updated        — only if step 2 succeeded

The repository therefore only ever holds documents the engine accepted.
Undo and redo are persisted the same way: the saved document always
mirrors the live tree.
"""

from __future__ import annotations

import logging
import pathlib
from typing import Any, Dict, Iterable, Optional

from orgtree_kernel.bulk_loader import import_csv_file as _import_csv_file
from orgtree_kernel.domain_types import ImportReport, MutationResult
from orgtree_kernel.engine import OrgEngine
from orgtree_kernel.errors import OrgTreeError, PersistenceIOError
from orgtree_kernel.events import BaseEvent
from orgtree_kernel.hashing import canonical_hash
from orgtree_kernel.snapshot import export_to_file, import_from_file

from .drift import compare_documents
from .snapshot_repository import SnapshotRepository

logger = logging.getLogger(__name__)


class ChartSession:
    """
    Owns one OrgEngine for one chart id, plus optional autosave.

    Single-threaded like the engine: the caller serializes access.
    """

    def __init__(
        self,
        chart_id: str,
        engine: Optional[OrgEngine] = None,
        repository: Optional[SnapshotRepository] = None,
        autosave: bool = True,
    ) -> None:
        self._chart_id = chart_id
        self._engine = engine or OrgEngine()
        self._repository = repository
        self._autosave = autosave
        self._current_file: Optional[pathlib.Path] = None
        self._saved_version: int = 0

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize(self) -> bool:
        """
        Restore the latest saved version, if any.

        The restored tree becomes the initial history entry. Returns True
        when a saved document was loaded.
        """
        if self._repository is None:
            return False
        latest = self._repository.load_latest_snapshot(self._chart_id)
        if latest is None:
            return False
        version, document = latest
        self._saved_version = version
        if document is None:
            return False
        result = self._engine.import_document(document)
        if not result.success:
            raise PersistenceIOError(
                f"Saved version {version} of chart {self._chart_id!r} is unreadable: "
                f"{result.reason}"
            )
        self._engine.history.reset(self._engine.tree)
        logger.info(
            "Restored chart %s v%d (%d members)",
            self._chart_id, version, len(self._engine.tree),
        )
        return True

    # ------------------------------------------------------------------
    # Mutations (apply-before-persist)
    # ------------------------------------------------------------------

    def apply_event(self, event: BaseEvent) -> MutationResult:
        return self._track(self._engine.apply_event(event))

    def set_root(self, name: str, title: str, reset: bool = False, **fields: Any) -> MutationResult:
        return self._track(self._engine.set_root(name, title, reset=reset, **fields))

    def add_member(
        self, name: str, title: str, manager_id: Optional[str] = None, **fields: Any,
    ) -> MutationResult:
        return self._track(self._engine.add_member(name, title, manager_id, **fields))

    def edit_member(self, member_id: str, patch: Optional[Dict[str, Any]] = None) -> MutationResult:
        return self._track(self._engine.edit_member(member_id, patch))

    def remove_member(self, member_id: str, reassign_to: Optional[str] = None) -> MutationResult:
        return self._track(self._engine.remove_member(member_id, reassign_to))

    def move_subtree(self, member_id: str, new_manager_id: str) -> MutationResult:
        return self._track(self._engine.move_subtree(member_id, new_manager_id))

    def undo(self) -> bool:
        done = self._engine.undo()
        if done:
            self._persist()
        return done

    def redo(self) -> bool:
        done = self._engine.redo()
        if done:
            self._persist()
        return done

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def import_document(self, document: Any) -> MutationResult:
        return self._track(self._engine.import_document(document))

    def bulk_import(
        self, records: Iterable[Dict[str, Any]], manager_match: Optional[str] = None,
    ) -> ImportReport:
        report = self._engine.bulk_import(records, manager_match=manager_match)
        if report.imported:
            self._persist()
        return report

    def import_csv_text(self, text: str, manager_match: Optional[str] = None) -> ImportReport:
        """Raises ImportParseError for a malformed table; nothing changes then."""
        report = self._engine.import_csv_text(text, manager_match=manager_match)
        if report.imported:
            self._persist()
        return report

    def import_csv_file(self, path: pathlib.Path, manager_match: Optional[str] = None) -> ImportReport:
        report = _import_csv_file(self._engine, path, manager_match=manager_match)
        if report.imported:
            self._persist()
        return report

    def save_to_file(self, path: Optional[pathlib.Path] = None) -> pathlib.Path:
        """
        Write the tree as JSON to *path*, or to the current file when
        omitted. The written path becomes the current file.
        """
        target = pathlib.Path(path) if path is not None else self._current_file
        if target is None:
            raise PersistenceIOError("No file selected; pass a path")
        export_to_file(self._engine.tree, target)
        self._current_file = target
        logger.info("Saved chart %s to %s", self._chart_id, target)
        return target

    def load_from_file(self, path: pathlib.Path) -> MutationResult:
        """
        Replace the tree with a JSON file. A failed read or parse leaves
        the current tree untouched and comes back as a failed result.
        """
        try:
            store = import_from_file(path)
        except OrgTreeError as exc:
            logger.warning("Load from %s failed: %s", path, exc)
            return MutationResult(
                event_type="import_document", success=False,
                error=exc.code, reason=str(exc),
            )
        if store.is_empty():
            return MutationResult(
                event_type="import_document", success=False,
                error="ImportParseError", reason=f"{path} holds an empty document",
            )
        result = self._track(self._engine.replace_tree(store))
        self._current_file = pathlib.Path(path)
        return result

    def export_document(self) -> Optional[dict]:
        return self._engine.export_document()

    # ------------------------------------------------------------------
    # Drift / observability
    # ------------------------------------------------------------------

    def diff_against_saved(self, version: Optional[int] = None) -> dict:
        """Diff the saved document (latest, or *version*) against the live tree."""
        saved = None
        if self._repository is not None:
            if version is None:
                latest = self._repository.load_latest_snapshot(self._chart_id)
                saved = latest[1] if latest else None
            else:
                saved = self._repository.load_snapshot_at(self._chart_id, version)
        return compare_documents(saved, self._engine.export_document())

    def get_metrics(self) -> "SessionMetrics":
        """Collect metrics from the current session."""
        from .observability import collect_metrics
        return collect_metrics(self)

    # ------------------------------------------------------------------
    # Delegates
    # ------------------------------------------------------------------

    def get_diagnostics(self) -> dict:
        return self._engine.get_diagnostics()

    @property
    def engine(self) -> OrgEngine:
        return self._engine

    @property
    def chart_id(self) -> str:
        return self._chart_id

    @property
    def current_file(self) -> Optional[pathlib.Path]:
        return self._current_file

    @property
    def saved_version(self) -> int:
        return self._saved_version

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _track(self, result: MutationResult) -> MutationResult:
        if result.success:
            self._persist()
        return result

    def _persist(self) -> None:
        if not self._autosave or self._repository is None:
            return
        self._saved_version = self._repository.save_snapshot(
            self._chart_id,
            self._engine.export_document(),
            canonical_hash(self._engine.tree),
        )
