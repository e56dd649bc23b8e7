"""
Org-Tree Kernel — Mutation Event Definitions v1.0

Events are **pure data**. They carry intent and payload only.
They contain ZERO transition logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class BaseEvent:
    """Base for all mutation events — pure data container."""

    event_type: str = ""
    timestamp: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type,
            "timestamp": self.timestamp,
            "payload": dict(self.payload),
        }


@dataclass
class SetRootEvent(BaseEvent):
    """Start a tree with a root member. Only legal on an empty tree or a reset."""

    event_type: str = "set_root"
    # payload keys: name, title, lob, division, dept, email, id (optional),
    #               reset (bool)


@dataclass
class AddMemberEvent(BaseEvent):
    """Add a member under a manager (falls back to the root)."""

    event_type: str = "add_member"
    # payload keys: name, title, manager_id, lob, division, dept, email,
    #               id (optional)


@dataclass
class EditMemberEvent(BaseEvent):
    """Patch text fields. Blank values keep the current value."""

    event_type: str = "edit_member"
    # payload keys: member_id, patch (dict over name/title/lob/division/dept/email)


@dataclass
class RemoveMemberEvent(BaseEvent):
    """Remove a member, reassigning or orphaning its direct reports."""

    event_type: str = "remove_member"
    # payload keys: member_id, reassign_to (optional)


@dataclass
class MoveSubtreeEvent(BaseEvent):
    """Reparent a member together with its whole subtree."""

    event_type: str = "move_subtree"
    # payload keys: member_id, new_manager_id


# Strict event-type → class mapping.
EVENT_CLASS_MAP = {
    "set_root": SetRootEvent,
    "add_member": AddMemberEvent,
    "edit_member": EditMemberEvent,
    "remove_member": RemoveMemberEvent,
    "move_subtree": MoveSubtreeEvent,
}


def reconstruct_event(event_dict: dict) -> BaseEvent:
    """
    Reconstruct a typed event instance from a plain dict.

    Raises ValueError for unknown types — never silently degrades.
    """
    etype = event_dict.get("event_type")
    cls = EVENT_CLASS_MAP.get(etype)
    if cls is None:
        raise ValueError(
            f"Unknown event_type {etype!r}. "
            f"Known types: {sorted(EVENT_CLASS_MAP)}"
        )
    return cls(
        timestamp=event_dict.get("timestamp", ""),
        payload=dict(event_dict.get("payload") or {}),
    )
