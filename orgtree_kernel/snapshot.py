"""
Org-Tree Kernel — Serializer v1.0

Converts the tree to and from the portable nested document:

    { id, name, title, lob, division, dept, email, level,
      reports: [ <same shape>, ... ] }

Rules:
  - Root first; children in direct-report order.
  - Orphaned subtrees (left by a remove without reassignment) are listed
    under an optional top-level ``detached`` key; omitted when empty.
  - On load, ids and fields are kept; levels are RECOMPUTED from parent
    edges. A stored level that disagrees is ignored and logged.
  - Unknown fields are rejected. No silent repair.
  - Decoding builds a brand-new store; a failed decode leaves nothing
    half-loaded.

The nested document is what files, the HTTP API and saved versions carry.
Its JSON nesting grows with the reporting chain, so the json module caps
it at a few hundred levels. History entries use the flat encoding
(encode_flat / decode_flat), which has no such limit.
"""

from __future__ import annotations

import hashlib
import json
import logging
import pathlib
from typing import Any, Dict, List, Optional, Tuple

from .domain_types import (
    Member, OPTIONAL_FIELDS, REQUIRED_FIELDS, TEXT_FIELDS, validate_member_id,
)
from .errors import ImportParseError, NoRootError, PersistenceIOError
from .graph import orphan_ids, walk
from .store import EntityStore

logger = logging.getLogger(__name__)


# -- Field whitelists --

_NODE_FIELDS = frozenset(TEXT_FIELDS) | {"id", "level", "reports"}
_ROOT_FIELDS = _NODE_FIELDS | {"detached"}


# ══════════════════════════════════════════════════════════════
# Encoder
# ══════════════════════════════════════════════════════════════

def to_portable(store: EntityStore) -> Optional[Dict[str, Any]]:
    """Build the nested document. None for an empty tree."""
    root = store.root
    if root is None:
        return None
    doc = _serialize_subtree(store, root.id)
    detached = [_serialize_subtree(store, oid) for oid in orphan_ids(store)]
    if detached:
        doc["detached"] = detached
    return doc


def _serialize_subtree(store: EntityStore, member_id: str) -> Dict[str, Any]:
    """Nested node for *member_id*, built from a pre-order walk."""
    nodes: Dict[str, Dict[str, Any]] = {}
    for member, depth in walk(store, member_id):
        node = {
            "id": member.id,
            "name": member.name,
            "title": member.title,
            "lob": member.lob,
            "division": member.division,
            "dept": member.dept,
            "email": member.email,
            "level": member.level,
            "reports": [],
        }
        nodes[member.id] = node
        if depth > 0:
            nodes[member.manager_id]["reports"].append(node)
    return nodes[member_id]


def encode_snapshot(store: EntityStore) -> str:
    """
    Serialize the tree into a compact JSON string.
    Byte-for-byte identical output for identical trees.
    """
    return json.dumps(
        to_portable(store),
        ensure_ascii=False,
        separators=(",", ":"),
        sort_keys=True,
    )


# ══════════════════════════════════════════════════════════════
# Decoder
# ══════════════════════════════════════════════════════════════

def from_portable(doc: Optional[Dict[str, Any]]) -> EntityStore:
    """
    Rebuild a store from a nested document.

    Fails with ImportParseError on wrong types, missing or unknown
    fields, malformed or duplicate ids.
    """
    store = EntityStore()
    if doc is None:
        return store
    if not isinstance(doc, dict):
        raise ImportParseError(
            f"Top-level document must be an object, got {type(doc).__name__}"
        )
    _check_fields(doc, _ROOT_FIELDS, "root")

    mismatches = _load_subtree(store, doc, None, "$", root_doc=True)
    store.root_id = doc["id"]

    detached = doc.get("detached", [])
    if not isinstance(detached, list):
        raise ImportParseError("'detached' must be an array")
    for i, node in enumerate(detached):
        mismatches += _load_subtree(store, node, None, f"$.detached[{i}]")

    if mismatches:
        logger.warning(
            "Ignored %d stored level(s) that disagree with the reporting chain",
            mismatches,
        )
    return store


def _load_subtree(
    store: EntityStore, node: Any, manager: Optional[Member], path: str,
    root_doc: bool = False,
) -> int:
    """Iterative pre-order load. Returns the number of level mismatches."""
    mismatches = 0
    stack: List[Tuple[Any, Optional[Member], str]] = [(node, manager, path)]
    while stack:
        raw, parent, where = stack.pop()
        member, stored_level, reports = _decode_node(raw, where, root_doc and where == path)
        if member.id in store:
            raise ImportParseError(f"Duplicate member ID {member.id!r} at {where}")

        member.manager_id = parent.id if parent else None
        member.level = parent.level + 1 if parent else 0
        if stored_level is not None and stored_level != member.level:
            mismatches += 1
        store.put(member)

        for i in range(len(reports) - 1, -1, -1):
            stack.append((reports[i], member, f"{where}.reports[{i}]"))
    return mismatches


def _decode_node(raw: Any, where: str, top: bool) -> Tuple[Member, Optional[int], list]:
    if not isinstance(raw, dict):
        raise ImportParseError(f"Node at {where} must be an object")
    _check_fields(raw, _ROOT_FIELDS if top else _NODE_FIELDS, where)

    member_id = raw.get("id")
    try:
        validate_member_id(member_id)
    except ValueError as exc:
        raise ImportParseError(f"{exc} at {where}") from exc

    values = {}
    for fname in REQUIRED_FIELDS:
        value = raw.get(fname)
        if not isinstance(value, str) or not value.strip():
            raise ImportParseError(f"Missing or blank {fname!r} at {where}")
        values[fname] = value
    for fname in OPTIONAL_FIELDS:
        value = raw.get(fname, "")
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise ImportParseError(
                f"Field {fname!r} at {where} must be string, got {type(value).__name__}"
            )
        values[fname] = value

    level = raw.get("level")
    if level is not None and (isinstance(level, bool) or not isinstance(level, int)):
        raise ImportParseError(f"'level' at {where} must be an integer")

    reports = raw.get("reports", [])
    if reports is None:
        reports = []
    if not isinstance(reports, list):
        raise ImportParseError(f"'reports' at {where} must be an array")

    return Member(id=member_id, **values), level, reports


def decode_snapshot(json_str: str) -> EntityStore:
    """Parse a JSON snapshot string and rebuild the store."""
    try:
        raw = json.loads(json_str)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ImportParseError(f"Invalid JSON: {exc}") from exc
    return from_portable(raw)


# ══════════════════════════════════════════════════════════════
# Flat entries (history)
# ══════════════════════════════════════════════════════════════

def encode_flat(store: EntityStore) -> str:
    """
    Compact flat JSON: root id plus one row per member in pre-order.

    Nesting depth is constant however deep the reporting chain is, so
    history snapshots never hit the json module's recursion limit.
    """
    order: List[str] = []
    if store.root_id is not None:
        order.extend(m.id for m, _ in walk(store))
    for oid in orphan_ids(store):
        order.extend(m.id for m, _ in walk(store, oid))
    rows = []
    for mid in order:
        m = store.get(mid)
        rows.append([m.id, *(getattr(m, f) for f in TEXT_FIELDS), m.manager_id])
    return json.dumps(
        {"root_id": store.root_id, "members": rows},
        ensure_ascii=False,
        separators=(",", ":"),
    )


def decode_flat(text: str) -> EntityStore:
    """Rebuild a store from encode_flat output; levels follow the rows' order."""
    try:
        raw = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ImportParseError(f"Invalid JSON: {exc}") from exc
    store = EntityStore()
    for row in raw["members"]:
        member_id, *values, manager_id = row
        member = Member(id=member_id, **dict(zip(TEXT_FIELDS, values)))
        member.manager_id = manager_id
        member.level = store.get(manager_id).level + 1 if manager_id else 0
        store.put(member)
    store.root_id = raw["root_id"]
    return store


# ══════════════════════════════════════════════════════════════
# File I/O
# ══════════════════════════════════════════════════════════════

def export_to_file(store: EntityStore, path: pathlib.Path) -> None:
    """Write the portable document as indented UTF-8 JSON."""
    doc = to_portable(store)
    if doc is None:
        raise NoRootError()
    try:
        pathlib.Path(path).write_text(
            json.dumps(doc, ensure_ascii=False, indent=2), encoding="utf-8",
        )
    except OSError as exc:
        raise PersistenceIOError(f"Failed to write {path}: {exc}") from exc


def import_from_file(path: pathlib.Path) -> EntityStore:
    """Read a portable document from disk. Fails if unreadable or malformed."""
    try:
        text = pathlib.Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise PersistenceIOError(f"Failed to read {path}: {exc}") from exc
    return decode_snapshot(text)


# ══════════════════════════════════════════════════════════════
# Integrity Hash
# ══════════════════════════════════════════════════════════════

def snapshot_hash(store: EntityStore) -> str:
    """SHA-256 of the snapshot JSON bytes. Lowercase hex."""
    return hashlib.sha256(encode_snapshot(store).encode("utf-8")).hexdigest()


# ══════════════════════════════════════════════════════════════
# Internal Validation Helpers
# ══════════════════════════════════════════════════════════════

def _check_fields(data: dict, allowed: frozenset, context: str) -> None:
    """Fail if data has unknown fields or lacks a required one."""
    missing = {"id", *REQUIRED_FIELDS} - set(data.keys())
    unknown = set(data.keys()) - allowed
    if missing:
        raise ImportParseError(f"Missing fields in {context}: {sorted(missing)}")
    if unknown:
        raise ImportParseError(f"Unknown fields in {context}: {sorted(unknown)}")
