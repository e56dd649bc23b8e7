# file: orgtree_runtime/drift.py
"""
Drift Comparator — pure function, no side effects.

Computes a structured diff between two portable documents (as produced
by OrgEngine.export_document). No Engine dependency: both documents are
flattened directly into id -> (fields, manager, level) tables.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

_TEXT_FIELDS = ("name", "title", "lob", "division", "dept", "email")


def compare_documents(doc_a: Optional[dict], doc_b: Optional[dict]) -> dict:
    """
    Compare two documents and return a structured diff.

    Either side may be None (empty tree).

    Returns dict with:
        member_count_a/b/delta, depth_a/b/delta, added, removed,
        moved (manager changed), edited (id -> changed field names),
        level_changed
    """
    flat_a = _flatten(doc_a)
    flat_b = _flatten(doc_b)

    ids_a: Set[str] = set(flat_a)
    ids_b: Set[str] = set(flat_b)

    added = sorted(ids_b - ids_a)
    removed = sorted(ids_a - ids_b)

    moved: List[str] = []
    level_changed: List[str] = []
    edited: Dict[str, List[str]] = {}
    for mid in sorted(ids_a & ids_b):
        a = flat_a[mid]
        b = flat_b[mid]
        if a["manager_id"] != b["manager_id"]:
            moved.append(mid)
        if a["level"] != b["level"]:
            level_changed.append(mid)
        changed = [f for f in _TEXT_FIELDS if a.get(f, "") != b.get(f, "")]
        if changed:
            edited[mid] = changed

    depth_a = _depth(flat_a)
    depth_b = _depth(flat_b)

    return {
        "member_count_a": len(flat_a),
        "member_count_b": len(flat_b),
        "member_count_delta": len(flat_b) - len(flat_a),
        "depth_a": depth_a,
        "depth_b": depth_b,
        "depth_delta": depth_b - depth_a,
        "added": added,
        "removed": removed,
        "moved": moved,
        "edited": edited,
        "level_changed": level_changed,
    }


def _flatten(doc: Optional[dict]) -> Dict[str, Dict[str, Any]]:
    """
    id -> {text fields, manager_id, level}. Levels are taken from the
    nesting depth, not from the stored value.
    """
    flat: Dict[str, Dict[str, Any]] = {}
    if not doc:
        return flat
    stack = [(doc, None, 0)]
    for detached in doc.get("detached", []):
        stack.append((detached, None, 0))
    while stack:
        node, manager_id, level = stack.pop()
        entry = {f: node.get(f, "") for f in _TEXT_FIELDS}
        entry["manager_id"] = manager_id
        entry["level"] = level
        flat[node["id"]] = entry
        for child in node.get("reports", []):
            stack.append((child, node["id"], level + 1))
    return flat


def _depth(flat: Dict[str, Dict[str, Any]]) -> int:
    if not flat:
        return 0
    return max(e["level"] for e in flat.values()) + 1
