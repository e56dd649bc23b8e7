# file: backend/main.py
"""
FastAPI Backend — Org-Tree API v1.

One ChartSession per chart id, kept in memory between requests and
autosaved to sqlite after every committed change. A chart that is not
in memory yet is restored from its latest saved version on first use.
Requests are serialized by one lock, since handlers run on a threadpool.

Endpoints (all chart-scoped under /charts/{chart_id}):
  POST   /root                          — start (or reset) a chart
  POST   /members                       — add a member
  PATCH  /members/{member_id}           — edit text fields
  DELETE /members/{member_id}           — remove (optional reassign_to)
  POST   /members/{member_id}/move      — reparent with subtree
  POST   /events                        — apply a raw mutation event
  POST   /undo, /redo
  GET    /tree, /members, /members/{id}, /members/{id}/ancestors,
         /members/{id}/reports, /search, /diagnostics, /reports/{kind},
         /export, /drift
  POST   /import, /import-csv
"""
from __future__ import annotations

import dataclasses
import logging
import os
import sys
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from dotenv import load_dotenv

env_path = os.path.join(os.path.dirname(__file__), ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

# Add project root to path for kernel imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from orgtree_kernel.domain_types import Member, MutationResult, TreeConstants
from orgtree_kernel.engine import OrgEngine
from orgtree_kernel.errors import ImportParseError, NotFoundError
from orgtree_kernel.events import reconstruct_event
from orgtree_kernel.hashing import canonical_hash
from orgtree_kernel.invariants import InvariantViolationError
from orgtree_kernel.query import (
    ancestor_chain,
    direct_reports,
    fuzzy_search,
    list_members,
    text_search,
)
from orgtree_kernel.reports import (
    directory_lines,
    render_tree,
    statistics_lines,
    subtree_lines,
)

from orgtree_runtime.session import ChartSession
from orgtree_runtime.snapshot_repository import SnapshotRepository

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DB_PATH = os.environ.get("ORGTREE_DB_PATH", "orgtree.db")
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")
MANAGER_MATCH = os.environ.get("ORGTREE_MANAGER_MATCH", "name")
HISTORY_LIMIT = int(os.environ.get("ORGTREE_HISTORY_LIMIT", "0"))

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="OrgTree API",
    version="1.0.0",
    description="Org-tree engine — invariant-checked mutations with undo/redo",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        FRONTEND_URL,
        "http://localhost:3000",
        "http://localhost:3001",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvariantViolationError)
def _invariant_violation(request: Request, exc: InvariantViolationError):
    logger.error("Invariant violation on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc), "rule": exc.rule})


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------


class MemberFields(BaseModel):
    lob: str = ""
    division: str = ""
    dept: str = ""
    email: str = ""
    id: Optional[str] = None


class SetRootRequest(MemberFields):
    name: str
    title: str
    reset: bool = False


class AddMemberRequest(MemberFields):
    name: str
    title: str
    manager_id: Optional[str] = None


class EditMemberRequest(BaseModel):
    name: Optional[str] = None
    title: Optional[str] = None
    lob: Optional[str] = None
    division: Optional[str] = None
    dept: Optional[str] = None
    email: Optional[str] = None


class MoveRequest(BaseModel):
    new_manager_id: str


class EventRequest(BaseModel):
    event_type: str
    payload: Dict[str, Any] = {}
    timestamp: str = ""


class ImportDocumentRequest(BaseModel):
    document: Dict[str, Any]


class ImportCsvRequest(BaseModel):
    csv: str
    manager_match: Optional[str] = None


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

# Handlers run on a threadpool; sessions and the shared sqlite connection
# are only touched while holding this lock.
_LOCK = threading.RLock()
_SESSIONS: Dict[str, ChartSession] = {}
_REPO: Optional[SnapshotRepository] = None


def _get_repo() -> SnapshotRepository:
    global _REPO
    if _REPO is None:
        _REPO = SnapshotRepository(DB_PATH)
        logger.info("Opened snapshot store at %s", DB_PATH)
    return _REPO


def _get_session(chart_id: str) -> ChartSession:
    session = _SESSIONS.get(chart_id)
    if session is None:
        constants = TreeConstants(manager_match=MANAGER_MATCH, history_limit=HISTORY_LIMIT)
        session = ChartSession(chart_id, OrgEngine(constants), repository=_get_repo())
        session.initialize()
        _SESSIONS[chart_id] = session
    return session


@contextmanager
def _chart_session(chart_id: str) -> Iterator[ChartSession]:
    """Hold the lock for the whole request and yield the chart's session."""
    with _LOCK:
        yield _get_session(chart_id)


# ---------------------------------------------------------------------------
# Core helpers
# ---------------------------------------------------------------------------


def _status_for(error: str) -> int:
    if error == "NotFoundError":
        return 404
    if error == "ImportParseError":
        return 422
    return 400


def _member_dict(session: ChartSession, member: Member) -> dict:
    d = member.to_dict()
    d["report_count"] = session.engine.tree.report_count(member.id)
    return d


def _summary(session: ChartSession) -> dict:
    engine = session.engine
    return {
        "chart_id": session.chart_id,
        "member_count": len(engine.tree),
        "root_id": engine.tree.root_id,
        "tree_hash": canonical_hash(engine.tree),
        "undo_depth": engine.history.undo_depth,
        "redo_depth": engine.history.redo_depth,
        "saved_version": session.saved_version,
    }


def _mutation_response(session: ChartSession, result: MutationResult) -> dict:
    """Raise HTTPException for a failed result, else result + chart summary."""
    if not result.success:
        raise HTTPException(
            status_code=_status_for(result.error),
            detail={"error": result.error, "reason": result.reason},
        )
    body = {"result": dataclasses.asdict(result), "chart": _summary(session)}
    member = session.engine.tree.get(result.member_id)
    if member is not None:
        body["member"] = _member_dict(session, member)
    return body


def _require_member(session: ChartSession, member_id: str) -> Member:
    member = session.engine.tree.get(member_id)
    if member is None:
        raise HTTPException(status_code=404, detail=f"Member {member_id!r} not found")
    return member


# ---------------------------------------------------------------------------
# Endpoints: charts
# ---------------------------------------------------------------------------


@app.get("/charts")
def list_charts():
    """Every saved chart with its latest version."""
    with _LOCK:
        return _get_repo().list_charts()


@app.delete("/charts/{chart_id}")
def delete_chart(chart_id: str):
    with _LOCK:
        _SESSIONS.pop(chart_id, None)
        removed = _get_repo().delete_chart(chart_id)
    if not removed:
        raise HTTPException(status_code=404, detail=f"Chart {chart_id!r} not found")
    return {"chart_id": chart_id, "deleted_versions": removed}


# ---------------------------------------------------------------------------
# Endpoints: mutations
# ---------------------------------------------------------------------------


@app.post("/charts/{chart_id}/root")
def set_root(chart_id: str, req: SetRootRequest):
    fields = req.model_dump(exclude={"name", "title", "reset"}, exclude_none=True)
    with _chart_session(chart_id) as session:
        return _mutation_response(
            session, session.set_root(req.name, req.title, reset=req.reset, **fields),
        )


@app.post("/charts/{chart_id}/members")
def add_member(chart_id: str, req: AddMemberRequest):
    fields = req.model_dump(exclude={"name", "title", "manager_id"}, exclude_none=True)
    with _chart_session(chart_id) as session:
        return _mutation_response(
            session, session.add_member(req.name, req.title, req.manager_id, **fields),
        )


@app.patch("/charts/{chart_id}/members/{member_id}")
def edit_member(chart_id: str, member_id: str, req: EditMemberRequest):
    patch = req.model_dump(exclude_none=True)
    with _chart_session(chart_id) as session:
        return _mutation_response(session, session.edit_member(member_id, patch))


@app.delete("/charts/{chart_id}/members/{member_id}")
def remove_member(chart_id: str, member_id: str, reassign_to: Optional[str] = None):
    with _chart_session(chart_id) as session:
        return _mutation_response(session, session.remove_member(member_id, reassign_to))


@app.post("/charts/{chart_id}/members/{member_id}/move")
def move_subtree(chart_id: str, member_id: str, req: MoveRequest):
    with _chart_session(chart_id) as session:
        return _mutation_response(session, session.move_subtree(member_id, req.new_manager_id))


@app.post("/charts/{chart_id}/events")
def apply_event(chart_id: str, req: EventRequest):
    """Apply a raw event (same shape as BaseEvent.to_dict())."""
    try:
        event = reconstruct_event(req.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    with _chart_session(chart_id) as session:
        return _mutation_response(session, session.apply_event(event))


@app.post("/charts/{chart_id}/undo")
def undo(chart_id: str):
    with _chart_session(chart_id) as session:
        return {"done": session.undo(), "chart": _summary(session)}


@app.post("/charts/{chart_id}/redo")
def redo(chart_id: str):
    with _chart_session(chart_id) as session:
        return {"done": session.redo(), "chart": _summary(session)}


# ---------------------------------------------------------------------------
# Endpoints: queries
# ---------------------------------------------------------------------------


@app.get("/charts/{chart_id}/tree")
def get_tree(chart_id: str):
    with _chart_session(chart_id) as session:
        return {"chart": _summary(session), "document": session.export_document()}


@app.get("/charts/{chart_id}/members")
def get_members(chart_id: str):
    with _chart_session(chart_id) as session:
        return [_member_dict(session, m) for m in list_members(session.engine.tree)]


@app.get("/charts/{chart_id}/members/{member_id}")
def get_member(chart_id: str, member_id: str):
    with _chart_session(chart_id) as session:
        return _member_dict(session, _require_member(session, member_id))


@app.get("/charts/{chart_id}/members/{member_id}/ancestors")
def get_ancestors(chart_id: str, member_id: str):
    with _chart_session(chart_id) as session:
        try:
            chain = ancestor_chain(session.engine.tree, member_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        return [_member_dict(session, m) for m in chain]


@app.get("/charts/{chart_id}/members/{member_id}/reports")
def get_reports(chart_id: str, member_id: str):
    with _chart_session(chart_id) as session:
        try:
            reports = direct_reports(session.engine.tree, member_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        return [_member_dict(session, m) for m in reports]


@app.get("/charts/{chart_id}/search")
def search_members(
    chart_id: str,
    q: str = Query(..., min_length=1, description="Search text"),
    fuzzy: bool = Query(False, description="Rank by similarity instead of substring"),
    limit: Optional[int] = Query(None, ge=1),
):
    with _chart_session(chart_id) as session:
        tree = session.engine.tree
        if fuzzy:
            hits = fuzzy_search(tree, q, cutoff=session.engine.constants.fuzzy_cutoff, limit=limit)
            return [dict(_member_dict(session, m), score=score) for m, score in hits]
        hits = text_search(tree, q)
        if limit:
            hits = hits[:limit]
        return [_member_dict(session, m) for m in hits]


@app.get("/charts/{chart_id}/diagnostics")
def get_diagnostics(chart_id: str):
    with _chart_session(chart_id) as session:
        return session.get_diagnostics()


@app.get("/charts/{chart_id}/reports/{kind}")
def get_report(chart_id: str, kind: str, member_id: Optional[str] = None):
    """Text reports as lines: tree, subtree, directory, statistics."""
    if kind not in ("tree", "subtree", "directory", "statistics"):
        raise HTTPException(
            status_code=404,
            detail=f"Unknown report {kind!r}; use tree, subtree, directory or statistics",
        )
    if kind == "subtree" and not member_id:
        raise HTTPException(status_code=400, detail="member_id is required")
    with _chart_session(chart_id) as session:
        tree = session.engine.tree
        try:
            if kind == "tree":
                lines = render_tree(tree, member_id)
            elif kind == "subtree":
                lines = subtree_lines(tree, member_id)
            elif kind == "directory":
                lines = directory_lines(tree)
            else:
                lines = statistics_lines(session.get_diagnostics())
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
    return {"kind": kind, "lines": lines}


@app.get("/charts/{chart_id}/drift")
def get_drift(chart_id: str, version: Optional[int] = Query(None, ge=1)):
    """Diff a saved version (latest by default) against the live tree."""
    with _chart_session(chart_id) as session:
        return session.diff_against_saved(version)


# ---------------------------------------------------------------------------
# Endpoints: import / export
# ---------------------------------------------------------------------------


@app.get("/charts/{chart_id}/export")
def export_chart(chart_id: str):
    with _chart_session(chart_id) as session:
        document = session.export_document()
    if document is None:
        raise HTTPException(status_code=404, detail=f"Chart {chart_id!r} is empty")
    return document


@app.post("/charts/{chart_id}/import")
def import_chart(chart_id: str, req: ImportDocumentRequest):
    """Replace the chart with a portable document (undoable)."""
    with _chart_session(chart_id) as session:
        return _mutation_response(session, session.import_document(req.document))


@app.post("/charts/{chart_id}/import-csv")
def import_csv(chart_id: str, req: ImportCsvRequest):
    """Bulk import CSV rows in any order; failed rows are reported, not fatal."""
    with _chart_session(chart_id) as session:
        try:
            report = session.import_csv_text(req.csv, manager_match=req.manager_match)
        except ImportParseError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {"report": report.to_dict(), "chart": _summary(session)}


@app.get("/health")
def health():
    return {"status": "ok", "version": "1.0.0"}
