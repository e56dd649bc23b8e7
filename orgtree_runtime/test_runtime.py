# file: orgtree_runtime/test_runtime.py
"""
Org-Tree Runtime v1 -- Integration Tests

Scenario coverage:
  - Autosave: every committed change becomes a new version
  - Restart: a new session restores the latest version
  - Failed mutations and failed loads persist nothing
  - File save/load with a current file
  - CSV import through the session
  - Drift between saved versions and the live tree
  - Observability metrics

Exit 0 on success, 1 on failure.
"""

from __future__ import annotations

import os
import pathlib
import sys
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from orgtree_kernel.errors import PersistenceIOError
from orgtree_kernel.hashing import canonical_hash

from orgtree_runtime.drift import compare_documents
from orgtree_runtime.session import ChartSession
from orgtree_runtime.snapshot_repository import SnapshotRepository


_pass = 0
_fail = 0


def _test(name, fn):
    global _pass, _fail
    try:
        fn()
        print(f"  [PASS] {name}")
        _pass += 1
    except Exception as exc:
        print(f"  [FAIL] {name}: {exc}")
        _fail += 1


def _with_repo(fn):
    """Run fn(repo, tmpdir) against a throwaway sqlite file."""
    with tempfile.TemporaryDirectory() as tmp:
        repo = SnapshotRepository(pathlib.Path(tmp) / "orgtree.db")
        try:
            fn(repo, pathlib.Path(tmp))
        finally:
            repo.close()


def _seed(session: ChartSession) -> dict:
    ids = {}
    ids["ada"] = session.set_root("Ada", "CEO", id="ada").member_id
    ids["ben"] = session.add_member("Ben", "VP", "ada", id="ben").member_id
    ids["cy"] = session.add_member("Cy", "Engineer", "ben", id="cy").member_id
    return ids


# ---------------------------------------------------------------------------
# Autosave / restart
# ---------------------------------------------------------------------------

def test_autosave_versions():
    def body(repo, _tmp):
        session = ChartSession("acme", repository=repo)
        assert not session.initialize()
        _seed(session)
        assert session.saved_version == 3
        assert repo.count_snapshots("acme") == 3
        latest = repo.load_latest_snapshot("acme")
        assert latest[0] == 3
        assert latest[1] == session.export_document()
    _with_repo(body)


def test_restart_restores_latest():
    def body(repo, _tmp):
        first = ChartSession("acme", repository=repo)
        _seed(first)
        first.edit_member("cy", {"title": "Staff Engineer"})

        second = ChartSession("acme", repository=repo)
        assert second.initialize()
        assert canonical_hash(second.engine.tree) == canonical_hash(first.engine.tree)
        assert second.engine.tree.get("cy").title == "Staff Engineer"
        assert not second.engine.undo()
        assert second.saved_version == 4
    _with_repo(body)


def test_failed_mutation_not_persisted():
    def body(repo, _tmp):
        session = ChartSession("acme", repository=repo)
        _seed(session)
        r = session.move_subtree("ben", "cy")
        assert not r.success and r.error == "CycleError"
        assert repo.count_snapshots("acme") == 3
    _with_repo(body)


def test_undo_redo_persisted():
    def body(repo, _tmp):
        session = ChartSession("acme", repository=repo)
        _seed(session)
        assert session.undo()
        assert repo.load_latest_snapshot("acme")[1]["reports"][0]["reports"] == []
        assert session.redo()
        assert repo.count_snapshots("acme") == 5
        assert not session.diff_against_saved()["added"]
    _with_repo(body)


def test_charts_are_independent():
    def body(repo, _tmp):
        a = ChartSession("a", repository=repo)
        b = ChartSession("b", repository=repo)
        _seed(a)
        b.set_root("Solo", "Owner")
        charts = {c["chart_id"]: c for c in repo.list_charts()}
        assert charts["a"]["latest_version"] == 3
        assert charts["a"]["member_count"] == 3
        assert charts["b"]["member_count"] == 1
        assert repo.delete_chart("a") == 3
        assert [c["chart_id"] for c in repo.list_charts()] == ["b"]
    _with_repo(body)


def test_autosave_disabled():
    def body(repo, _tmp):
        session = ChartSession("quiet", repository=repo, autosave=False)
        _seed(session)
        assert repo.count_snapshots("quiet") == 0
        assert session.saved_version == 0
    _with_repo(body)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------

def test_save_and_load_file():
    def body(repo, tmp):
        session = ChartSession("acme", repository=repo)
        _seed(session)
        try:
            session.save_to_file()
            raise AssertionError("Expected PersistenceIOError")
        except PersistenceIOError:
            pass
        path = session.save_to_file(tmp / "acme.json")
        assert session.current_file == path

        other = ChartSession("copy", repository=repo)
        other.set_root("Temp", "Placeholder")
        r = other.load_from_file(path)
        assert r.success, r.reason
        assert canonical_hash(other.engine.tree) == canonical_hash(session.engine.tree)
        assert other.current_file == path
        assert other.engine.undo()
        assert other.engine.tree.root.name == "Temp"
    _with_repo(body)


def test_failed_load_leaves_tree():
    def body(repo, tmp):
        session = ChartSession("acme", repository=repo)
        _seed(session)
        bad = tmp / "bad.json"
        bad.write_text("{oops", encoding="utf-8")
        before = canonical_hash(session.engine.tree)
        r = session.load_from_file(bad)
        assert not r.success and r.error == "ImportParseError"
        r = session.load_from_file(tmp / "missing.json")
        assert r.error == "PersistenceIOError"
        assert canonical_hash(session.engine.tree) == before
        assert repo.count_snapshots("acme") == 3
        assert session.current_file is None
    _with_repo(body)


def test_csv_import_through_session():
    def body(repo, tmp):
        path = tmp / "org.csv"
        path.write_text(
            "name,title,managerName\nCy,Engineer,Ben\nBen,VP,Ada\nAda,CEO,\nZed,Ghost,Nobody\n",
            encoding="utf-8",
        )
        session = ChartSession("csv", repository=repo)
        report = session.import_csv_file(path)
        assert report.imported == 3 and report.failed == 1
        assert repo.count_snapshots("csv") == 1
    _with_repo(body)


# ---------------------------------------------------------------------------
# Drift / metrics
# ---------------------------------------------------------------------------

def test_drift_between_versions():
    def body(repo, _tmp):
        session = ChartSession("acme", repository=repo)
        _seed(session)
        session.add_member("Di", "Designer", "ada", id="di")
        session.move_subtree("cy", "ada")
        session.edit_member("ben", {"title": "SVP"})

        diff = session.diff_against_saved(version=3)
        assert diff["added"] == ["di"]
        assert diff["removed"] == []
        assert diff["moved"] == ["cy"]
        assert diff["level_changed"] == ["cy"]
        assert diff["edited"] == {"ben": ["title"]}
        assert diff["member_count_delta"] == 1
        assert diff["depth_delta"] == -1
    _with_repo(body)


def test_compare_documents_with_empty_side():
    diff = compare_documents(None, {"id": "a", "name": "A", "title": "T", "reports": []})
    assert diff["added"] == ["a"]
    assert diff["depth_a"] == 0 and diff["depth_b"] == 1


def test_metrics():
    def body(repo, _tmp):
        session = ChartSession("acme", repository=repo)
        _seed(session)
        session.remove_member("ben")
        m = session.get_metrics()
        assert m.member_count == 2
        assert m.orphan_count == 1
        assert m.undo_depth == 3
        assert m.redo_depth == 0
        assert m.saved_version == 4
        assert m.last_tree_hash == canonical_hash(session.engine.tree)
        assert m.reload_latency_ms >= 0.0
        assert m.warnings
    _with_repo(body)


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

def main():
    tests = [
        ("Autosave versions", test_autosave_versions),
        ("Restart restores latest", test_restart_restores_latest),
        ("Failed mutation not persisted", test_failed_mutation_not_persisted),
        ("Undo/redo persisted", test_undo_redo_persisted),
        ("Independent charts", test_charts_are_independent),
        ("Autosave disabled", test_autosave_disabled),
        ("Save / load file", test_save_and_load_file),
        ("Failed load", test_failed_load_leaves_tree),
        ("CSV import", test_csv_import_through_session),
        ("Drift between versions", test_drift_between_versions),
        ("Drift with empty side", test_compare_documents_with_empty_side),
        ("Metrics", test_metrics),
    ]

    print(f"\nRunning {len(tests)} tests...\n")
    for name, fn in tests:
        _test(name, fn)

    print(f"\n{'='*60}")
    print(f"  {_pass} passed, {_fail} failed out of {_pass + _fail}")
    print(f"{'='*60}")

    if _fail > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
