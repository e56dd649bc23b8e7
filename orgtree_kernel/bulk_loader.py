"""
Org-Tree Kernel — Bulk Loader v1.0

Materializes an unordered list of flat records into a linked tree.

Each record names its own manager (by name, by id, or either) and may
reference a manager that appears later in the input. Resolution is a
multi-pass fixed point:

  1. Normalize every record; rows missing name/title fail immediately.
  2. Each pass walks the pending rows in input order:
       - empty manager column -> root (if none yet) or under the root
       - resolvable manager   -> add_member under it
       - otherwise            -> stays pending
  3. Stop when pending is empty or a pass adds nothing.
  4. Rows still pending are reported as failed, never raised.

The whole import is ONE undo step. Rows are applied with record=False
and a single pre-import snapshot is committed at the end, and only if
at least one row materialized.
"""

from __future__ import annotations

import csv
import io
import logging
import pathlib
from collections import Counter
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

from .constants import CSV_COLUMN_ALIASES, CSV_OPTIONAL_COLUMNS, CSV_REQUIRED_COLUMNS
from .domain_types import ImportReport, MANAGER_MATCH_MODES, Member, RowFailure
from .errors import (
    DuplicateNameError,
    ImportParseError,
    InvalidMemberError,
    NotFoundError,
    OrgTreeError,
    PersistenceIOError,
)
from .events import AddMemberEvent, SetRootEvent

if TYPE_CHECKING:
    from .engine import OrgEngine

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = CSV_REQUIRED_COLUMNS + CSV_OPTIONAL_COLUMNS


# ══════════════════════════════════════════════════════════════
# Parsing
# ══════════════════════════════════════════════════════════════

def _canonical_column(header: Any) -> Any:
    if not isinstance(header, str):
        return header
    key = header.strip().lower()
    return CSV_COLUMN_ALIASES.get(key, key)


def parse_csv(text: str) -> List[Dict[str, str]]:
    """
    Parse CSV text with one header row into raw records.

    Header names are trimmed, case-folded and aliased (``managerName`` ->
    ``manager``). A UTF-8 BOM is stripped. Fails with ImportParseError on
    an empty table or when ``name``/``title`` columns are missing.
    """
    text = text.lstrip("\ufeff")
    if not text.strip():
        raise ImportParseError("CSV input is empty")

    reader = csv.DictReader(io.StringIO(text))
    try:
        header = reader.fieldnames
    except csv.Error as exc:
        raise ImportParseError(f"Malformed CSV header: {exc}") from exc
    if not header:
        raise ImportParseError("CSV input has no header row")

    reader.fieldnames = [_canonical_column(h) for h in header]
    missing = [c for c in CSV_REQUIRED_COLUMNS if c not in reader.fieldnames]
    if missing:
        raise ImportParseError(f"CSV is missing required column(s): {missing}")

    try:
        rows = [
            row for row in reader
            if any(isinstance(v, str) and v.strip() for v in row.values())
        ]
    except csv.Error as exc:
        raise ImportParseError(f"Malformed CSV at line {reader.line_num}: {exc}") from exc
    return rows


def normalize_records(records: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Trim every value and keep only the known columns.
    Missing columns become empty strings; unknown ones are dropped.
    """
    normalized = []
    for raw in records:
        row = {col: "" for col in _RECORD_COLUMNS}
        for key, value in (raw or {}).items():
            col = _canonical_column(key)
            if col not in row:
                continue
            row[col] = value.strip() if isinstance(value, str) else ""
        normalized.append(row)
    return normalized


# ══════════════════════════════════════════════════════════════
# Resolution
# ══════════════════════════════════════════════════════════════

class _ManagerResolver:
    """Looks up a row's manager reference among materialized members."""

    def __init__(self, engine: "OrgEngine", rows: List[Dict[str, str]], mode: str):
        self._engine = engine
        self._mode = mode
        self._by_name: Dict[str, List[str]] = {}
        for member in engine.tree.all():
            self.register(member)
        # Names declared in the tree or by rows that may still materialize
        self._declared = Counter(m.name.lower() for m in engine.tree.all())
        self._declared.update(r["name"].lower() for r in rows)

    def register(self, member: Member) -> None:
        self._by_name.setdefault(member.name.lower(), []).append(member.id)

    def withdraw(self, row: Dict[str, str]) -> None:
        """Forget a row that failed; it no longer makes its name ambiguous."""
        self._declared[row["name"].lower()] -= 1

    def resolve(self, ref: str) -> Optional[Member]:
        """Return the manager, None if not materialized yet, or raise."""
        store = self._engine.tree
        if self._mode in ("id", "auto"):
            found = store.get(ref)
            if found is not None or self._mode == "id":
                return found
        key = ref.lower()
        matches = self._by_name.get(key, [])
        if len(matches) > 1:
            raise DuplicateNameError(ref, matches)
        if self._declared[key] > len(matches):
            # Another row with this name may still materialize
            return None
        return store.get(matches[0]) if matches else None

    def matches(self, ref: str) -> List[str]:
        return list(self._by_name.get(ref.lower(), []))

    def waiting(self, ref: str) -> bool:
        """True while *ref* is blocked only by pending rows sharing its name."""
        if self._mode == "id" or (self._mode == "auto" and ref in self._engine.tree):
            return False
        key = ref.lower()
        return self._declared[key] > 1 and self._declared[key] > len(self._by_name.get(key, []))


def load_records(
    engine: "OrgEngine",
    records: Iterable[Dict[str, Any]],
    manager_match: str = "name",
) -> ImportReport:
    """Run the multi-pass import against *engine*. Never raises for bad rows."""
    if manager_match not in MANAGER_MATCH_MODES:
        raise ValueError(
            f"manager_match must be one of {MANAGER_MATCH_MODES}, got {manager_match!r}"
        )
    rows = normalize_records(records)
    report = ImportReport(total_rows=len(rows))
    started_empty = engine.tree.is_empty()

    pending: List[Tuple[int, Dict[str, str]]] = []
    for number, row in enumerate(rows, start=1):
        if not row["name"] or not row["title"]:
            missing = "name" if not row["name"] else "title"
            _fail(report, number, row, InvalidMemberError(f"Missing required {missing!r}"))
        else:
            pending.append((number, row))

    resolver = _ManagerResolver(engine, [r for _, r in pending], manager_match)
    pre_import: Optional[str] = None

    while pending:
        report.passes += 1
        still_pending = []
        for number, row in pending:
            ref = row["manager"]
            manager = None
            if ref:
                try:
                    manager = resolver.resolve(ref)
                except OrgTreeError as exc:
                    _fail(report, number, row, exc)
                    resolver.withdraw(row)
                    continue
                if manager is None:
                    still_pending.append((number, row))
                    continue

            if engine.tree.is_empty():
                # First manager-less row founds the tree
                result = engine.apply_event(SetRootEvent(payload=_payload(row)))
            else:
                if pre_import is None and not started_empty:
                    pre_import = engine.history.capture(engine.tree)
                payload = _payload(row)
                payload["manager_id"] = manager.id if manager else engine.tree.root_id
                result = engine.apply_event(AddMemberEvent(payload=payload), record=False)

            if not result.success:
                report.failures.append(RowFailure(number, row["name"], result.error, result.reason))
                logger.warning("Row %d (%s) failed: %s", number, row["name"], result.reason)
                resolver.withdraw(row)
                continue
            resolver.register(engine.tree.get(result.member_id))
            report.imported += 1
            report.member_ids.append(result.member_id)

        progressed = len(still_pending) < len(pending)
        pending = still_pending
        if not progressed:
            # Fail the truly unresolvable rows; their names may unblock others
            stuck = [(n, r) for n, r in pending if not resolver.waiting(r["manager"])]
            if not stuck:
                break
            for number, row in stuck:
                _fail(report, number, row, NotFoundError(row["manager"], role="manager"))
                resolver.withdraw(row)
            failed = {n for n, _ in stuck}
            pending = [(n, r) for n, r in pending if n not in failed]

    for number, row in pending:
        ref = row["manager"]
        _fail(report, number, row, DuplicateNameError(ref, resolver.matches(ref)))

    if started_empty:
        if not engine.tree.is_empty():
            engine.history.reset(engine.tree)
    elif pre_import is not None and report.imported:
        engine.history.commit(pre_import)

    report.root_id = engine.tree.root_id or ""
    logger.info(
        "Bulk import: %d/%d row(s) imported in %d pass(es), %d failed",
        report.imported, report.total_rows, report.passes, report.failed,
    )
    return report


def _payload(row: Dict[str, str]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "name": row["name"],
        "title": row["title"],
        "lob": row["lob"],
        "division": row["division"],
        "dept": row["dept"],
        "email": row["email"],
    }
    if row["id"]:
        payload["id"] = row["id"]
    return payload


def _fail(report: ImportReport, number: int, row: Dict[str, str], exc: OrgTreeError) -> None:
    report.failures.append(RowFailure(number, row.get("name", ""), exc.code, str(exc)))
    logger.warning("Row %d (%s) failed: %s", number, row.get("name", ""), exc)


# ══════════════════════════════════════════════════════════════
# Entry points
# ══════════════════════════════════════════════════════════════

def import_csv_file(
    engine: "OrgEngine", path: pathlib.Path, manager_match: Optional[str] = None,
) -> ImportReport:
    try:
        text = pathlib.Path(path).read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise PersistenceIOError(f"Failed to read {path}: {exc}") from exc
    return engine.import_csv_text(text, manager_match=manager_match)
