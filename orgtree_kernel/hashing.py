"""
Org-Tree Kernel — Canonical Hashing v1.0

Deterministic canonical serialization + SHA-256 hashing.

Two views of a tree:
  - canonical_serialize / canonical_hash: IDENTITY. Members sorted by id,
    fields in fixed order, manager edge and level included. Two trees
    hash equal iff they hold the same members with the same edges.
  - canonical_shape: ISOMORPHISM. Ids dropped, children sorted, so two
    imports of the same data with generated ids compare equal.

UTF-8 JSON, no whitespace, no float.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, List, Optional, Tuple

from .domain_types import TEXT_FIELDS
from .graph import orphan_ids, walk
from .store import EntityStore


def canonical_serialize(store: EntityStore) -> bytes:
    """
    Canonical serialization of the tree to UTF-8 JSON bytes.
    No whitespace. Deterministic field order.
    """
    obj = _build_canonical_dict(store)
    return json.dumps(obj, ensure_ascii=True, separators=(",", ":"), sort_keys=False).encode("utf-8")


def canonical_hash(store: EntityStore) -> str:
    """SHA-256 of canonical serialization. Lowercase hex string."""
    return hashlib.sha256(canonical_serialize(store)).hexdigest()


def _build_canonical_dict(store: EntityStore) -> Dict[str, Any]:
    """Build the canonical dict in strict field order."""
    members_list: List[Dict[str, Any]] = []
    for mid in sorted(store.ids()):
        m = store.get(mid)
        entry: Dict[str, Any] = {"id": m.id}
        for fname in TEXT_FIELDS:
            entry[fname] = getattr(m, fname)
        entry["manager_id"] = m.manager_id
        entry["level"] = m.level
        entry["reports"] = [r.id for r in store.direct_reports_of(m.id)]
        members_list.append(entry)

    return {
        "kernel_version": 1,
        "root_id": store.root_id,
        "members": members_list,
    }


# ── Shape (id-free) ───────────────────────────────────────────

def canonical_shape(store: EntityStore) -> Optional[Dict[str, Any]]:
    """
    Id-free nested structure with children in sorted order.
    None for an empty tree. Orphaned subtrees appear under ``detached``.
    """
    root = store.root
    if root is None:
        return None
    shape, _ = _shape_of(store, root.id)
    detached = sorted(
        (_shape_of(store, oid) for oid in orphan_ids(store)), key=lambda pair: pair[1],
    )
    if detached:
        shape["detached"] = [node for node, _ in detached]
    return shape


def _shape_of(store: EntityStore, member_id: str) -> Tuple[Dict[str, Any], str]:
    """
    Shape of the subtree at *member_id* plus its sort key.

    Built bottom-up without recursion; each key is its node's own fields
    followed by its children's keys, so deep chains never nest a json call.
    """
    nodes: Dict[str, Dict[str, Any]] = {}
    keys: Dict[str, str] = {}
    # Reversed pre-order visits every member after all of its descendants
    for member, _ in reversed(list(walk(store, member_id))):
        children = sorted(
            ((nodes.pop(r.id), keys.pop(r.id)) for r in store.direct_reports_of(member.id)),
            key=lambda pair: pair[1],
        )
        own: Dict[str, Any] = {f: getattr(member, f) for f in TEXT_FIELDS}
        own["level"] = member.level
        keys[member.id] = (
            json.dumps(own, sort_keys=True, ensure_ascii=True)
            + "[" + ",".join(key for _, key in children) + "]"
        )
        own["reports"] = [node for node, _ in children]
        nodes[member.id] = own
    return nodes[member_id], keys[member_id]
