"""
Org-Tree Kernel — History Manager v1.0

Linear undo/redo over full-tree snapshots.

  history: snapshots taken BEFORE each committed mutation. history[0] is
           the initial state (right after set_root or a first import)
           and is never popped.
  future:  snapshots of undone states, most recent last.

Owned by one engine. Never a module-level singleton, so independent
trees never share history.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .snapshot import decode_flat, encode_flat
from .store import EntityStore

logger = logging.getLogger(__name__)


class HistoryManager:
    """Two ordered snapshot sequences: history (undo) and future (redo)."""

    def __init__(self, limit: int = 0) -> None:
        self._history: List[str] = []
        self._future: List[str] = []
        self._limit = limit

    # -- Recording ----------------------------------------------------------

    def reset(self, store: EntityStore) -> None:
        """Start a fresh history whose initial entry is *store*."""
        self._history = [encode_flat(store)]
        self._future = []

    def capture(self, store: EntityStore) -> str:
        """Serialize *store* without recording it yet."""
        return encode_flat(store)

    def commit(self, snapshot: str) -> None:
        """
        Push a captured pre-mutation snapshot and drop any redo states.
        A new mutation after an undo discards the undone branch.
        """
        self._history.append(snapshot)
        self._future = []
        if self._limit and len(self._history) > self._limit + 1:
            # Keep the initial entry; drop the oldest undoable one
            del self._history[1]

    def snapshot(self, store: EntityStore) -> None:
        """Capture and commit in one step."""
        self.commit(self.capture(store))

    # -- Undo / Redo --------------------------------------------------------

    def undo(self, current: EntityStore) -> Optional[EntityStore]:
        """
        Return the tree as it was before the last mutation, or None when
        only the initial entry is left.
        """
        if len(self._history) < 2:
            return None
        previous = decode_flat(self._history[-1])
        self._future.append(encode_flat(current))
        self._history.pop()
        logger.info("Undo: %d undo / %d redo left", self.undo_depth, self.redo_depth)
        return previous

    def redo(self, current: EntityStore) -> Optional[EntityStore]:
        """Return the most recently undone tree, or None when nothing was undone."""
        if not self._future:
            return None
        restored = decode_flat(self._future[-1])
        self._history.append(encode_flat(current))
        self._future.pop()
        logger.info("Redo: %d undo / %d redo left", self.undo_depth, self.redo_depth)
        return restored

    # -- Introspection ------------------------------------------------------

    @property
    def undo_depth(self) -> int:
        return max(len(self._history) - 1, 0)

    @property
    def redo_depth(self) -> int:
        return len(self._future)

    def can_undo(self) -> bool:
        return self.undo_depth > 0

    def can_redo(self) -> bool:
        return self.redo_depth > 0

    def clear(self) -> None:
        self._history = []
        self._future = []
