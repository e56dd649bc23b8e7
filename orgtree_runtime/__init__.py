"""
Org-Tree Runtime — Persistence Layer v1

Session and versioned sqlite storage around the Org-Tree Kernel.
"""

from .snapshot_repository import SnapshotRepository
from .session import ChartSession
from .drift import compare_documents
from .observability import SessionMetrics, collect_metrics

__all__ = [
    "SnapshotRepository",
    "ChartSession",
    "compare_documents",
    "SessionMetrics",
    "collect_metrics",
]
