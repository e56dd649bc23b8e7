"""
Org-Tree Kernel — Diagnostics v1.0

Compute a diagnostic snapshot of the current tree.
"""

from __future__ import annotations

from typing import Optional

from .domain_types import TreeConstants
from .graph import orphan_ids
from .store import EntityStore


def compute_diagnostics(store: EntityStore, constants: Optional[TreeConstants] = None) -> dict:
    """
    Return a diagnostic dict summarising the tree's shape and health.
    Empty tree -> zero counts and no warnings.
    """
    constants = constants or TreeConstants()
    members = store.all()
    total = len(members)

    by_level: dict = {}
    for m in members:
        by_level[m.level] = by_level.get(m.level, 0) + 1
    depth = max(by_level) + 1 if by_level else 0

    managers = [m for m in members if store.report_count(m.id) > 0]
    contributors = total - len(managers)
    avg_span = round((total - 1) / len(managers), 2) if managers else 0.0

    widest = None
    if managers:
        top = max(managers, key=lambda m: (store.report_count(m.id), m.name))
        widest = {
            "id": top.id, "name": top.name, "title": top.title,
            "reports": store.report_count(top.id),
        }

    orphaned = orphan_ids(store)

    warnings: list[str] = []

    if orphaned:
        warnings.append(
            f"{len(orphaned)} orphaned member(s) without a manager: {', '.join(orphaned)}"
        )
    for m in sorted(managers, key=lambda m: m.id):
        span = store.report_count(m.id)
        if span > constants.wide_span_threshold:
            warnings.append(
                f"Wide span of control: {m.name} ({m.id}) has {span} direct reports"
            )
    if depth > constants.deep_org_threshold:
        warnings.append(
            f"Deep hierarchy: {depth} levels (threshold {constants.deep_org_threshold})"
        )

    return {
        "member_count": total,
        "depth": depth,
        "manager_count": len(managers),
        "average_span": avg_span,
        "members_by_level": {lvl: by_level[lvl] for lvl in sorted(by_level)},
        "widest_manager": widest,
        "individual_contributors": contributors,
        "individual_contributor_pct": round(100.0 * contributors / total, 1) if total else 0.0,
        "orphans": orphaned,
        "warnings": warnings,
    }
