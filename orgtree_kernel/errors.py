"""
Org-Tree Kernel — Error Taxonomy v1.0

Every expected failure of a mutation, import or persistence call is an
OrgTreeError. The engine converts these into failed MutationResults;
they never reach the caller as exceptions from a mutation.

InvariantViolationError (invariants.py) is deliberately NOT part of this
hierarchy: it means internal corruption and always propagates.
"""

from __future__ import annotations


class OrgTreeError(Exception):
    """Base exception for all recoverable org-tree failures."""

    @property
    def code(self) -> str:
        return type(self).__name__


class NotFoundError(OrgTreeError):
    """An unknown member id was referenced."""

    def __init__(self, member_id: str, role: str = "member") -> None:
        self.member_id = member_id
        super().__init__(f"{role.capitalize()} {member_id!r} not found")


class NoRootError(OrgTreeError):
    """A mutation was attempted before a root exists."""

    def __init__(self) -> None:
        super().__init__("No root exists. Create a new org chart first.")


class RootExistsError(OrgTreeError):
    """set_root on a non-empty tree without asking for a reset."""

    def __init__(self, root_id: str) -> None:
        self.root_id = root_id
        super().__init__(
            f"Tree already has a root ({root_id!r}); pass reset=True to start over"
        )


class CannotRemoveRootError(OrgTreeError):
    def __init__(self, member_id: str) -> None:
        self.member_id = member_id
        super().__init__(f"Cannot remove the root {member_id!r}")


class CannotMoveRootError(OrgTreeError):
    def __init__(self, member_id: str) -> None:
        self.member_id = member_id
        super().__init__(f"Cannot move the root {member_id!r}")


class CycleError(OrgTreeError):
    """Reparent target is the member itself or one of its descendants."""

    def __init__(self, member_id: str, target_id: str) -> None:
        self.member_id = member_id
        self.target_id = target_id
        if member_id == target_id:
            msg = f"Cannot place {member_id!r} under itself"
        else:
            msg = (
                f"Cannot place {member_id!r} under {target_id!r}: "
                f"{target_id!r} is in its subtree"
            )
        super().__init__(msg)


class DuplicateNameError(OrgTreeError):
    """A name-keyed manager reference matches more than one member."""

    def __init__(self, name: str, matches: list) -> None:
        self.name = name
        self.matches = list(matches)
        super().__init__(
            f"Manager name {name!r} is ambiguous: matches {len(self.matches)} members"
        )


class DuplicateIdError(OrgTreeError):
    def __init__(self, member_id: str) -> None:
        self.member_id = member_id
        super().__init__(f"Member ID collision: {member_id!r} already exists")


class InvalidMemberError(OrgTreeError):
    """Required field missing or blank, or a malformed id."""


class ImportParseError(OrgTreeError):
    """Malformed input document or table."""


class PersistenceIOError(OrgTreeError):
    """Read or write failure against the filesystem."""
