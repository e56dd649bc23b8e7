"""
Org-Tree Kernel — Core Domain Types v1.0

Pure data. No traversal, no mutation logic.

────────────────────────────────────────────────
DOMAIN GLOSSARY
────────────────────────────────────────────────

Member:
    One node in the org tree, keyed by an opaque, stable id.

Root:
    The unique member with no manager.

Orphan:
    A non-root member whose manager was removed without reassignment.
    It keeps its own subtree and sits at level 0 until it is moved.

Reparent / Move:
    Change a member's manager while preserving its own subtree.

────────────────────────────────────────────────
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .constants import (
    DEEP_ORG_THRESHOLD,
    DEFAULT_FUZZY_CUTOFF,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_MANAGER_MATCH,
    WIDE_SPAN_THRESHOLD,
)


# ── Field sets ────────────────────────────────────────────────
TEXT_FIELDS: Tuple[str, ...] = ("name", "title", "lob", "division", "dept", "email")
REQUIRED_FIELDS: Tuple[str, ...] = ("name", "title")
OPTIONAL_FIELDS: Tuple[str, ...] = ("lob", "division", "dept", "email")

MANAGER_MATCH_MODES: Tuple[str, ...] = ("name", "id", "auto")

# ── Member ID Validation ──────────────────────────────────────
MEMBER_ID_PATTERN = re.compile(r'^[a-zA-Z0-9_-]+$')


def validate_member_id(member_id: str) -> None:
    """Validate that member_id contains only ASCII [a-zA-Z0-9_-]. Hard fail."""
    if not isinstance(member_id, str) or not MEMBER_ID_PATTERN.match(member_id):
        raise ValueError(
            f"Invalid member ID {member_id!r}: must match [a-zA-Z0-9_-]+"
        )


def new_member_id() -> str:
    return str(uuid.uuid4())


# ── Core Domain Types ─────────────────────────────────────────

@dataclass(eq=False)
class Member:
    """
    A single organization participant.

    ``level`` is derived: 0 when ``manager_id`` is None, otherwise the
    manager's level + 1. Direct reports are never stored here; the
    entity store derives them from ``manager_id``.

    Equality and hashing use ``id`` only; names and titles are mutable.
    """

    id: str
    name: str
    title: str
    lob: str = ""
    division: str = ""
    dept: str = ""
    email: str = ""
    manager_id: Optional[str] = None
    level: int = 0

    def fields(self) -> dict:
        return {f: getattr(self, f) for f in TEXT_FIELDS}

    def to_dict(self) -> dict:
        d = {"id": self.id}
        d.update(self.fields())
        d["manager_id"] = self.manager_id
        d["level"] = self.level
        return d

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Member):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


@dataclass(frozen=True)
class TreeConstants:
    """
    Engine configuration — injected at construction, never mutated.
    """

    manager_match: str = DEFAULT_MANAGER_MATCH     # name | id | auto
    history_limit: int = DEFAULT_HISTORY_LIMIT     # 0 = unlimited
    fuzzy_cutoff: float = DEFAULT_FUZZY_CUTOFF
    wide_span_threshold: int = WIDE_SPAN_THRESHOLD
    deep_org_threshold: int = DEEP_ORG_THRESHOLD

    def __post_init__(self) -> None:
        if self.manager_match not in MANAGER_MATCH_MODES:
            raise ValueError(
                f"manager_match must be one of {MANAGER_MATCH_MODES}, "
                f"got {self.manager_match!r}"
            )
        if self.history_limit < 0:
            raise ValueError("history_limit must be >= 0")


@dataclass(frozen=True)
class MutationResult:
    """
    Structured, immutable outcome of a mutation.

    Expected business-rule violations come back as ``success=False``
    with the error code and a human-readable reason.
    """

    event_type: str = ""
    success: bool = True
    member_id: str = ""
    error: str = ""
    reason: str = ""
    relevelled: int = 0
    changed_fields: Tuple[str, ...] = ()
    reassigned: Tuple[str, ...] = ()
    orphaned: Tuple[str, ...] = ()


@dataclass
class RowFailure:
    """One bulk-import row that could not be materialized."""

    row: int
    name: str
    error: str
    reason: str

    def to_dict(self) -> dict:
        return {
            "row": self.row,
            "name": self.name,
            "error": self.error,
            "reason": self.reason,
        }


@dataclass
class ImportReport:
    """Outcome of a bulk import: counts plus per-row failures."""

    total_rows: int = 0
    imported: int = 0
    passes: int = 0
    root_id: str = ""
    member_ids: list = field(default_factory=list)
    failures: list = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict:
        return {
            "total_rows": self.total_rows,
            "imported": self.imported,
            "failed": self.failed,
            "passes": self.passes,
            "root_id": self.root_id,
            "member_ids": list(self.member_ids),
            "failures": [f.to_dict() for f in self.failures],
        }
