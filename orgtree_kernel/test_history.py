"""
Org-Tree Kernel — History Manager Tests

Undo restores the exact pre-mutation document, redo the exact
post-mutation one; a new mutation discards redo; limits drop the
oldest entries; reporting chains deeper than the json module can
nest still undo and redo.

Run:  python -m orgtree_kernel.test_history
"""

from __future__ import annotations

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from orgtree_kernel.domain_types import TreeConstants
from orgtree_kernel.engine import OrgEngine
from orgtree_kernel.history import HistoryManager
from orgtree_kernel.hashing import canonical_hash, canonical_shape
from orgtree_kernel.snapshot import decode_flat, encode_flat, encode_snapshot, to_portable
from orgtree_kernel.store import EntityStore
from orgtree_kernel.domain_types import Member


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


def _engine(constants=None):
    engine = OrgEngine(constants)
    root = engine.set_root("Ada", "CEO").member_id
    vp = engine.add_member("Ben", "VP", root).member_id
    engine.add_member("Cy", "Engineer", vp)
    return engine, root, vp


def test_undo_redo_roundtrip_every_operation():
    engine, root, vp = _engine()
    cy = engine.tree.direct_reports_of(vp)[0].id
    mutations = [
        lambda: engine.add_member("Di", "Designer", vp),
        lambda: engine.edit_member(cy, title="Lead Engineer"),
        lambda: engine.move_subtree(cy, root),
        lambda: engine.remove_member(vp),
        lambda: engine.remove_member(cy, reassign_to=root),
    ]
    for mutate in mutations:
        pre = encode_snapshot(engine.tree)
        result = mutate()
        assert result.success, result.reason
        post = encode_snapshot(engine.tree)
        assert engine.undo()
        assert encode_snapshot(engine.tree) == pre
        assert engine.redo()
        assert encode_snapshot(engine.tree) == post


def test_undo_stops_at_initial_state():
    engine, _, _ = _engine()
    assert engine.undo()
    assert engine.undo()
    assert not engine.undo()
    assert len(engine.tree) == 1
    assert engine.tree.root.name == "Ada"


def test_redo_without_undo_fails():
    engine, _, _ = _engine()
    assert not engine.redo()


def test_new_mutation_clears_redo():
    engine, root, _ = _engine()
    assert engine.undo()
    assert engine.history.can_redo()
    engine.add_member("Eve", "CFO", root)
    assert not engine.history.can_redo()
    assert not engine.redo()


def test_multiple_undo_then_redo_all():
    engine, _, _ = _engine()
    final = encode_snapshot(engine.tree)
    while engine.undo():
        pass
    assert engine.history.redo_depth == 2
    while engine.redo():
        pass
    assert encode_snapshot(engine.tree) == final


def test_history_limit_drops_oldest():
    engine = OrgEngine(TreeConstants(history_limit=2))
    root = engine.set_root("Ada", "CEO").member_id
    for i in range(4):
        engine.add_member(f"M{i}", "Staff", root)
    assert engine.history.undo_depth == 2
    assert engine.undo()
    assert engine.undo()
    assert not engine.undo()
    assert len(engine.tree) == 3


def test_undo_restores_orphans():
    engine, _, vp = _engine()
    engine.remove_member(vp)
    orphaned = encode_snapshot(engine.tree)
    engine.add_member("Di", "Designer")
    assert engine.undo()
    assert encode_snapshot(engine.tree) == orphaned
    assert len(engine.tree) == 2


def test_undo_returns_fresh_members():
    engine, _, vp = _engine()
    before = engine.tree.get(vp)
    engine.edit_member(vp, title="SVP")
    engine.undo()
    after = engine.tree.get(vp)
    assert after is not before
    assert after.id == before.id
    assert after.title == "VP"


def _chain_depth(node):
    depth = 0
    while node["reports"]:
        node = node["reports"][0]
        depth += 1
    return depth


def test_deep_chain_keeps_history():
    engine = OrgEngine()
    engine.set_root("Head", "CEO", id="c0")
    depth = 1200
    for i in range(1, depth + 1):
        r = engine.add_member(f"Person {i}", "Manager", f"c{i - 1}", id=f"c{i}")
        assert r.success, r.reason
    assert engine.tree.get(f"c{depth}").level == depth

    before = canonical_hash(engine.tree)
    assert engine.add_member("Tail", "IC", f"c{depth}", id="tail").success
    assert engine.undo()
    assert canonical_hash(engine.tree) == before
    assert engine.redo()
    assert engine.tree.get("tail").level == depth + 1

    assert decode_flat(encode_flat(engine.tree)).get("tail").level == depth + 1
    assert _chain_depth(to_portable(engine.tree)) == depth + 1
    assert _chain_depth(canonical_shape(engine.tree)) == depth + 1


def test_manager_standalone():
    store = EntityStore()
    store.put(Member(id="a", name="A", title="Boss"))
    store.root_id = "a"
    history = HistoryManager()
    history.reset(store)
    assert not history.can_undo()

    history.snapshot(store)
    store.put(Member(id="b", name="B", title="Report", manager_id="a", level=1))
    restored = history.undo(store)
    assert restored is not None
    assert len(restored) == 1
    assert history.redo_depth == 1
    again = history.redo(restored)
    assert "b" in again

    history.clear()
    assert history.undo_depth == 0 and history.redo_depth == 0


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

def main():
    tests = [
        ("Round trip: every operation", test_undo_redo_roundtrip_every_operation),
        ("Undo stops at initial state", test_undo_stops_at_initial_state),
        ("Redo without undo", test_redo_without_undo_fails),
        ("New mutation clears redo", test_new_mutation_clears_redo),
        ("Undo all / redo all", test_multiple_undo_then_redo_all),
        ("History limit", test_history_limit_drops_oldest),
        ("Undo restores orphans", test_undo_restores_orphans),
        ("Undo returns fresh members", test_undo_returns_fresh_members),
        ("Deep chain keeps history", test_deep_chain_keeps_history),
        ("HistoryManager standalone", test_manager_standalone),
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
