"""
Org-Tree Kernel v1.0
In-memory, single-root organization tree with invariant-checked
mutations, snapshot undo/redo and dependency-ordered bulk import.
"""

from .domain_types import (
    Member, TreeConstants, MutationResult, ImportReport, RowFailure,
    TEXT_FIELDS, validate_member_id,
)
from .errors import (
    OrgTreeError,
    NotFoundError,
    NoRootError,
    RootExistsError,
    CannotRemoveRootError,
    CannotMoveRootError,
    CycleError,
    DuplicateNameError,
    DuplicateIdError,
    InvalidMemberError,
    ImportParseError,
    PersistenceIOError,
)
from .events import (
    BaseEvent,
    SetRootEvent,
    AddMemberEvent,
    EditMemberEvent,
    RemoveMemberEvent,
    MoveSubtreeEvent,
    reconstruct_event,
)
from .store import EntityStore
from .engine import OrgEngine
from .history import HistoryManager
from .invariants import InvariantViolationError, validate_invariants
from .hashing import canonical_serialize, canonical_hash, canonical_shape
from .snapshot import (
    to_portable,
    from_portable,
    encode_snapshot,
    decode_snapshot,
    export_to_file,
    import_from_file,
    snapshot_hash,
)
from .bulk_loader import parse_csv, normalize_records, load_records, import_csv_file
from .graph import walk
from .diagnostics import compute_diagnostics

__all__ = [
    "Member",
    "TreeConstants",
    "MutationResult",
    "ImportReport",
    "RowFailure",
    "TEXT_FIELDS",
    "validate_member_id",
    "OrgTreeError",
    "NotFoundError",
    "NoRootError",
    "RootExistsError",
    "CannotRemoveRootError",
    "CannotMoveRootError",
    "CycleError",
    "DuplicateNameError",
    "DuplicateIdError",
    "InvalidMemberError",
    "ImportParseError",
    "PersistenceIOError",
    "BaseEvent",
    "SetRootEvent",
    "AddMemberEvent",
    "EditMemberEvent",
    "RemoveMemberEvent",
    "MoveSubtreeEvent",
    "reconstruct_event",
    "EntityStore",
    "OrgEngine",
    "HistoryManager",
    "InvariantViolationError",
    "validate_invariants",
    "canonical_serialize",
    "canonical_hash",
    "canonical_shape",
    "to_portable",
    "from_portable",
    "encode_snapshot",
    "decode_snapshot",
    "export_to_file",
    "import_from_file",
    "snapshot_hash",
    "parse_csv",
    "normalize_records",
    "load_records",
    "import_csv_file",
    "walk",
    "compute_diagnostics",
]
