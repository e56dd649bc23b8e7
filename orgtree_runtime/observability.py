# file: orgtree_runtime/observability.py
"""
Observability — In-process metrics collection.

No external dependencies. Uses compute_diagnostics + timing.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .session import ChartSession


@dataclass(frozen=True)
class SessionMetrics:
    """Snapshot of observable session metrics."""

    reload_latency_ms: float      # one full serialize -> deserialize cycle
    member_count: int
    depth: int
    orphan_count: int
    undo_depth: int
    redo_depth: int
    saved_version: int
    last_tree_hash: str
    warnings: list


def collect_metrics(session: "ChartSession") -> SessionMetrics:
    """
    Collect metrics from a live session.

    Times the same encode/decode cycle undo and redo perform, so the
    latency reflects what one history step costs at the current size.
    """
    from orgtree_kernel.hashing import canonical_hash
    from orgtree_kernel.snapshot import decode_flat, encode_flat

    engine = session.engine

    start = time.perf_counter()
    decode_flat(encode_flat(engine.tree))
    elapsed_ms = (time.perf_counter() - start) * 1000.0

    diagnostics = session.get_diagnostics()

    return SessionMetrics(
        reload_latency_ms=round(elapsed_ms, 2),
        member_count=diagnostics["member_count"],
        depth=diagnostics["depth"],
        orphan_count=len(diagnostics["orphans"]),
        undo_depth=engine.history.undo_depth,
        redo_depth=engine.history.redo_depth,
        saved_version=session.saved_version,
        last_tree_hash=canonical_hash(engine.tree),
        warnings=diagnostics["warnings"],
    )
