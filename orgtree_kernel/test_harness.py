"""
Org-Tree Kernel v1.0 — Seeded Mutation Harness

Seeded random mutation generator (default seed=42).
Generates mixed streams of add / edit / remove / move events against a
live engine and checks, after every step:
  - invariants 1-4 hold (orphans allowed)
  - every level equals the length of its manager chain
  - moves are rejected exactly when the target is the member or below it
  - undo reproduces the pre-mutation document, redo the post-mutation one
  - serialize -> deserialize reproduces the tree

Ids are assigned by the harness, so the final canonical hash is a pure
function of (seed, n_events).

Run:  python -m orgtree_kernel.test_harness
"""

from __future__ import annotations

import json
import os
import random
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from orgtree_kernel.engine import OrgEngine
from orgtree_kernel.graph import ancestor_chain, is_descendant
from orgtree_kernel.hashing import canonical_hash
from orgtree_kernel.invariants import validate_invariants
from orgtree_kernel.snapshot import decode_snapshot, encode_snapshot

_TITLES = ["Engineer", "Manager", "Director", "Analyst", "Designer", "Recruiter"]
_DEPTS = ["Platform", "Sales", "Finance", "People", "Research"]


def _check_levels(engine: OrgEngine) -> None:
    for member in engine.tree.all():
        chain = ancestor_chain(engine.tree, member.id)
        assert member.level == len(chain) - 1, (
            f"{member.id}: level {member.level}, chain length {len(chain)}"
        )


def _random_mutation(engine: OrgEngine, rng: random.Random, counter: int):
    """Pick and apply one mutation. Returns (kind, result, expected_success)."""
    tree = engine.tree
    ids = sorted(tree.ids())
    non_root = [i for i in ids if i != tree.root_id]
    action = rng.choice(["add", "add", "add", "edit", "move", "move", "remove"])

    if action == "add" or not non_root:
        manager = rng.choice(ids)
        result = engine.add_member(
            f"Member {counter}", rng.choice(_TITLES), manager,
            id=f"m{counter}", dept=rng.choice(_DEPTS),
        )
        return "add", result, True

    if action == "edit":
        target = rng.choice(ids)
        patch = {"title": rng.choice(_TITLES), "name": rng.choice(["", f"Renamed {counter}"])}
        return "edit", engine.edit_member(target, patch), True

    if action == "move":
        member_id = rng.choice(non_root)
        new_manager = rng.choice(ids)
        expected = not (
            new_manager == member_id or is_descendant(tree, member_id, new_manager)
        )
        return "move", engine.move_subtree(member_id, new_manager), expected

    member_id = rng.choice(non_root)
    reassign = rng.choice([None, rng.choice(ids)])
    expected = reassign is None or reassign not in tree or not (
        reassign == member_id or is_descendant(tree, member_id, reassign)
    )
    return "remove", engine.remove_member(member_id, reassign_to=reassign), expected


def run_stream(seed: int = 42, n_events: int = 60, check_history: bool = True) -> dict:
    """Drive one seeded stream through a fresh engine, asserting as it goes."""
    rng = random.Random(seed)
    engine = OrgEngine()
    engine.set_root("Root", "CEO", id="m0")

    counts = {"add": 0, "edit": 0, "move": 0, "remove": 0, "rejected": 0}
    for counter in range(1, n_events + 1):
        before = encode_snapshot(engine.tree)
        kind, result, expected = _random_mutation(engine, rng, counter)
        assert result.success == expected, (
            f"seed={seed} step={counter} {kind}: success={result.success} "
            f"expected={expected} ({result.reason})"
        )

        validate_invariants(engine.tree)
        _check_levels(engine)

        if not result.success:
            counts["rejected"] += 1
            assert encode_snapshot(engine.tree) == before
            continue
        counts[kind] += 1

        after = encode_snapshot(engine.tree)
        assert encode_snapshot(decode_snapshot(after)) == after
        if check_history:
            assert engine.undo()
            assert encode_snapshot(engine.tree) == before
            assert engine.redo()
            assert encode_snapshot(engine.tree) == after

    return {
        "seed": seed,
        "n_events": n_events,
        "member_count": len(engine.tree),
        "undo_depth": engine.history.undo_depth,
        "counts": counts,
        "canonical_hash": canonical_hash(engine.tree),
    }


def test_stream_seed_42():
    summary = run_stream(seed=42, n_events=60)
    assert summary["member_count"] >= 1
    assert summary["undo_depth"] == 60 - summary["counts"]["rejected"]


def test_stream_is_deterministic():
    a = run_stream(seed=7, n_events=40, check_history=False)
    b = run_stream(seed=7, n_events=40, check_history=False)
    assert a == b


def test_different_seeds_differ():
    a = run_stream(seed=1, n_events=40, check_history=False)
    b = run_stream(seed=2, n_events=40, check_history=False)
    assert a["canonical_hash"] != b["canonical_hash"]


def run_harness(seed: int = 42, n_events: int = 60) -> None:
    print(f"Generating stream: seed={seed}, n_events={n_events}")
    summary = run_stream(seed, n_events)
    print(json.dumps(summary, indent=2))
    print(f"\n[OK] Harness complete. Hash: {summary['canonical_hash']}")


def main() -> None:
    run_harness(seed=42, n_events=60)
    run_harness(seed=42, n_events=60)  # Must produce identical hash
    run_harness(seed=99, n_events=45)


if __name__ == "__main__":
    main()
