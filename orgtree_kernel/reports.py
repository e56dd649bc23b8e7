"""
Org-Tree Kernel — Text Reports v1.0

Tree rendering, directory and statistics reports as lists of lines.
Nothing here prints or writes files; the caller decides where the
lines go.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from .graph import orphan_ids
from .store import EntityStore

_BRANCH = "├── "
_LAST = "└── "
_PIPE = "│   "
_SPACE = "    "


def _label(member, with_titles: bool) -> str:
    return f"{member.name} ({member.title})" if with_titles else member.name


def render_tree(
    store: EntityStore, start_id: Optional[str] = None, with_titles: bool = True,
) -> List[str]:
    """
    Box-drawing lines for the subtree at *start_id* (the root when omitted).

    Rendering the whole tree also renders any detached subtrees after the
    root's, each marked as detached.
    """
    start = store.root if start_id is None else store.require(start_id)
    if start is None:
        return []

    lines = _render_subtree(store, start.id, with_titles)
    if start_id is None:
        for oid in orphan_ids(store):
            sub = _render_subtree(store, oid, with_titles)
            sub[0] += " [detached]"
            lines.extend(sub)
    return lines


def _render_subtree(store: EntityStore, member_id: str, with_titles: bool) -> List[str]:
    lines: List[str] = []
    # (member id, prefix, is_last)
    stack: List[Tuple[str, str, bool]] = [(member_id, "", True)]
    while stack:
        mid, prefix, is_last = stack.pop()
        member = store.get(mid)
        lines.append(f"{prefix}{_LAST if is_last else _BRANCH}{_label(member, with_titles)}")
        child_prefix = prefix + (_SPACE if is_last else _PIPE)
        reports = store.direct_reports_of(mid)
        for idx in range(len(reports) - 1, -1, -1):
            stack.append((reports[idx].id, child_prefix, idx == len(reports) - 1))
    return lines


def subtree_lines(store: EntityStore, member_id: str) -> List[str]:
    """Plain subtree view headed by the member's name."""
    member = store.require(member_id)
    header = f"Subtree of {member.name} ({member.title})"
    return [header, "=" * len(header), ""] + render_tree(store, member_id)


def directory_lines(store: EntityStore, generated_at: Optional[str] = None) -> List[str]:
    """Employee directory sorted by name."""
    lines = ["EMPLOYEE DIRECTORY", "==================", ""]
    members = sorted(store.all(), key=lambda m: (m.name.lower(), m.id))
    for idx, m in enumerate(members, start=1):
        lines.append(f"{idx}. {m.name} ({m.title}) [ID: {m.id}]")
        lines.append(f"   LOB: {m.lob}")
        lines.append(f"   Division: {m.division}")
        lines.append(f"   Department: {m.dept}")
        lines.append(f"   Email: {m.email}")
        manager = store.get(m.manager_id)
        if manager is not None:
            lines.append(f"   Reports to: {manager.name} ({manager.title})")
        elif m.id == store.root_id:
            lines.append("   Reports to: None (root)")
        else:
            lines.append("   Reports to: None (detached)")
        count = store.report_count(m.id)
        lines.append(f"   Direct reports: {count or 'None'}")
        lines.append("")
    lines.append(f"Total Employees: {len(members)}")
    if generated_at:
        lines.append(f"Generated on: {generated_at}")
    return lines


def statistics_lines(diagnostics: dict, generated_at: Optional[str] = None) -> List[str]:
    """Statistics report built from compute_diagnostics() output."""
    total = diagnostics["member_count"]
    if not total:
        return ["No employees to generate statistics on."]

    lines = ["ORGANIZATION STATISTICS REPORT", "==============================", ""]
    lines.append(f"Total Employees: {total}")
    lines.append(f"Organization Depth: {diagnostics['depth']} levels")
    lines.append(f"Total Managers: {diagnostics['manager_count']}")
    lines.append(f"Average Span of Control: {diagnostics['average_span']:.2f}")
    lines.append("")

    lines.append("Employees by Level:")
    for level, count in diagnostics["members_by_level"].items():
        suffix = " (root level)" if level == 0 else ""
        lines.append(f"  Level {level}: {count} employee(s){suffix}")
    lines.append("")

    widest = diagnostics.get("widest_manager")
    if widest:
        lines.append("Manager with most direct reports:")
        lines.append(f"  {widest['name']} ({widest['title']}) => {widest['reports']} reports")
        lines.append("")

    lines.append(
        f"Individual Contributors: {diagnostics['individual_contributors']} "
        f"({diagnostics['individual_contributor_pct']:.1f}% of org)"
    )

    if diagnostics.get("warnings"):
        lines.append("")
        lines.append("Warnings:")
        lines.extend(f"  - {w}" for w in diagnostics["warnings"])

    if generated_at:
        lines.append("")
        lines.append(f"Generated on: {generated_at}")
    return lines
