"""
Tests for Line Delta — mapping line numbers through a file diff

These tests validate:
- Identity, pure insertions, pure deletions
- Explicit moves take precedence over rank placement
- compute_delta and undo_delta are inverses on surviving lines
- Line numbers below 1 are rejected
"""

import random

import pytest

from tourist.core.delta import FileChanges, compute_delta, undo_delta
from tourist.errors import OperationInputError


def random_edit(rng: random.Random, size: int):
    """
    Apply a random edit script to a file of `size` lines.

    Returns (changes, survivors) where survivors maps each surviving
    source line to its target line.
    """
    target = []        # entries: source line number, or None for inserted
    for src in range(1, size + 1):
        while rng.random() < 0.2:
            target.append(None)
        if rng.random() < 0.25:
            continue
        target.append(src)
    while rng.random() < 0.2:
        target.append(None)

    additions = {i for i, src in enumerate(target, 1) if src is None}
    survivors = {src: i for i, src in enumerate(target, 1) if src is not None}
    deletions = set(range(1, size + 1)) - set(survivors)
    # A diff lists only some surviving lines (context); the rest are placed by rank
    moves = {src: dst for src, dst in survivors.items() if rng.random() < 0.3}
    return FileChanges(additions=additions, deletions=deletions, moves=moves, name="f"), survivors


class TestFileChanges:
    """FileChanges value object."""

    def test_unchanged_is_identity(self):
        changes = FileChanges.unchanged("a.py")
        assert changes.is_identity
        assert changes.name == "a.py"

    def test_moves_that_shift_are_not_identity(self):
        assert not FileChanges(moves={1: 2}).is_identity

    def test_rejects_line_deleted_and_moved(self):
        with pytest.raises(ValueError):
            FileChanges(deletions={3}, moves={3: 3})

    def test_inverted_moves(self):
        assert FileChanges(moves={1: 2, 5: 7}).inverted_moves() == {2: 1, 7: 5}


class TestComputeDelta:
    """Forward mapping source -> target."""

    def test_identity(self):
        changes = FileChanges.unchanged("f")
        assert [compute_delta(changes, n) for n in (1, 2, 100)] == [1, 2, 100]

    def test_line_inserted_before(self):
        """A line added above shifts the stop down by one."""
        changes = FileChanges(additions={1, 3}, moves={1: 2}, name="hello.txt")
        assert compute_delta(changes, 1) == 2

    def test_insertion_shifts_later_lines_only(self):
        changes = FileChanges(additions={5})
        assert compute_delta(changes, 4) == 4
        assert compute_delta(changes, 5) == 6
        assert compute_delta(changes, 9) == 10

    def test_deleted_line_is_none(self):
        changes = FileChanges(deletions={3})
        assert compute_delta(changes, 3) is None

    def test_deletion_shifts_later_lines_up(self):
        changes = FileChanges(deletions={2, 3})
        assert compute_delta(changes, 1) == 1
        assert compute_delta(changes, 4) == 2

    def test_move_wins_over_rank(self):
        changes = FileChanges(additions={1}, moves={10: 42})
        assert compute_delta(changes, 10) == 42

    def test_line_beyond_hunks(self):
        changes = FileChanges(additions={2, 3}, deletions={1})
        assert compute_delta(changes, 50) == 51

    @pytest.mark.parametrize("bad", [0, -1])
    def test_rejects_non_positive_line(self, bad):
        with pytest.raises(OperationInputError):
            compute_delta(FileChanges(), bad)


class TestUndoDelta:
    """Backward mapping target -> source."""

    def test_added_line_is_none(self):
        changes = FileChanges(additions={1, 3}, moves={1: 2})
        assert undo_delta(changes, 1) is None
        assert undo_delta(changes, 3) is None

    def test_moved_line(self):
        changes = FileChanges(additions={1, 3}, moves={1: 2})
        assert undo_delta(changes, 2) == 1

    def test_shift_past_deletions(self):
        changes = FileChanges(deletions={2})
        assert undo_delta(changes, 2) == 3

    def test_rejects_zero(self):
        with pytest.raises(OperationInputError):
            undo_delta(FileChanges(), 0)


class TestInverseLaw:
    """compute_delta and undo_delta undo each other on every surviving line."""

    @pytest.mark.parametrize("seed", range(40))
    def test_random_edit_scripts(self, seed):
        rng = random.Random(seed)
        changes, survivors = random_edit(rng, rng.randint(1, 40))

        for src, dst in survivors.items():
            assert compute_delta(changes, src) == dst
            assert undo_delta(changes, dst) == src
        for src in changes.deletions:
            assert compute_delta(changes, src) is None
        for dst in changes.additions:
            assert undo_delta(changes, dst) is None
