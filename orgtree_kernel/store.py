"""
Org-Tree Kernel — Entity Store v1.0

Owns the members keyed by id, plus the root id.

Direct reports are an index derived from each member's manager_id and
maintained on every put/delete, so there is a single source of truth
for the reporting edge. No validation here: callers enforce invariants.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional

from .domain_types import Member
from .errors import NotFoundError


class EntityStore:
    """id -> Member mapping with a maintained manager -> reports index."""

    def __init__(self) -> None:
        self._members: Dict[str, Member] = {}
        self._reports: Dict[Optional[str], List[str]] = {}
        self._indexed_manager: Dict[str, Optional[str]] = {}
        self.root_id: Optional[str] = None

    # -- Lookup -------------------------------------------------------------

    def get(self, member_id: Optional[str]) -> Optional[Member]:
        if member_id is None:
            return None
        return self._members.get(member_id)

    def require(self, member_id: Optional[str], role: str = "member") -> Member:
        """Like get(), but raises NotFoundError for unknown ids."""
        member = self.get(member_id)
        if member is None:
            raise NotFoundError(str(member_id), role)
        return member

    def all(self) -> List[Member]:
        return list(self._members.values())

    def ids(self) -> List[str]:
        return list(self._members.keys())

    def direct_reports_of(self, member_id: str) -> List[Member]:
        return [self._members[rid] for rid in self._reports.get(member_id, [])]

    def report_count(self, member_id: str) -> int:
        return len(self._reports.get(member_id, []))

    @property
    def root(self) -> Optional[Member]:
        return self.get(self.root_id)

    def is_empty(self) -> bool:
        return not self._members

    # -- Write --------------------------------------------------------------

    def put(self, member: Member) -> None:
        """
        Insert or replace a member and re-index its reporting edge.

        A member whose manager_id changed since it was last put moves to
        the end of its new manager's report list.
        """
        mid = member.id
        if mid in self._indexed_manager:
            old = self._indexed_manager[mid]
            if old != member.manager_id:
                self._unindex(mid, old)
                self._index(mid, member.manager_id)
        else:
            self._index(mid, member.manager_id)
        self._members[mid] = member

    def delete(self, member_id: str) -> Member:
        member = self._members.pop(member_id, None)
        if member is None:
            raise NotFoundError(member_id)
        self._unindex(member_id, self._indexed_manager.pop(member_id, None))
        self._reports.pop(member_id, None)
        if self.root_id == member_id:
            self.root_id = None
        return member

    def clear(self) -> None:
        self._members.clear()
        self._reports.clear()
        self._indexed_manager.clear()
        self.root_id = None

    # -- Internal -----------------------------------------------------------

    def _index(self, member_id: str, manager_id: Optional[str]) -> None:
        self._indexed_manager[member_id] = manager_id
        if manager_id is not None:
            self._reports.setdefault(manager_id, []).append(member_id)

    def _unindex(self, member_id: str, manager_id: Optional[str]) -> None:
        if manager_id is None:
            return
        siblings = self._reports.get(manager_id)
        if siblings and member_id in siblings:
            siblings.remove(member_id)
            if not siblings:
                del self._reports[manager_id]

    # -- Dunder -------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, member_id: object) -> bool:
        return member_id in self._members

    def __iter__(self) -> Iterator[Member]:
        return iter(list(self._members.values()))
