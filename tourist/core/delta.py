"""
Line Delta — Map line numbers through a file diff

A diff of one file is held as three collections rather than hunks:
- additions: target line numbers that did not exist in the source
- deletions: source line numbers removed in the target
- moves: source -> target for lines present on both sides

Lines the diff does not mention (outside every hunk) are placed by rank:
the n-th surviving source line is the n-th non-added target line.
compute_delta and undo_delta are exact inverses on surviving lines.

Usage:
    from tourist.core.delta import FileChanges, compute_delta, undo_delta

    changes = FileChanges(additions={1, 3}, moves={1: 2}, name="hello.txt")
    compute_delta(changes, 1)   # 2
    undo_delta(changes, 2)      # 1
    undo_delta(changes, 3)      # None (added line)
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from ..errors import OperationInputError


@dataclass(frozen=True)
class FileChanges:
    """How one file's lines map between two points in time."""
    additions: FrozenSet[int] = frozenset()
    deletions: FrozenSet[int] = frozenset()
    moves: Mapping[int, int] = field(default_factory=dict)
    name: str = ""          # Path in the target (differs from source on rename)

    def __post_init__(self):
        object.__setattr__(self, "additions", frozenset(self.additions))
        object.__setattr__(self, "deletions", frozenset(self.deletions))
        object.__setattr__(self, "moves", dict(self.moves))
        overlap = self.deletions.intersection(self.moves)
        if overlap:
            raise ValueError(f"Lines both deleted and moved: {sorted(overlap)}")

    @classmethod
    def unchanged(cls, name: str) -> 'FileChanges':
        """Identity diff for a file that did not change."""
        return cls(name=name)

    @property
    def is_identity(self) -> bool:
        return (not self.additions and not self.deletions
                and all(src == dst for src, dst in self.moves.items()))

    def inverted_moves(self) -> Dict[int, int]:
        return {dst: src for src, dst in self.moves.items()}


def _check_line(line: int) -> None:
    if isinstance(line, bool) or not isinstance(line, int) or line < 1:
        raise OperationInputError(f"Line numbers are 1-indexed, got {line!r}", line=line)


def _shift(line: int, removed: Iterable[int], inserted: Iterable[int]) -> int:
    """Drop lines removed before `line`, then slide past lines inserted at or before it."""
    position = line - sum(1 for r in removed if r < line)
    for ins in sorted(inserted):
        if ins <= position:
            position += 1
        else:
            break
    return position


def compute_delta(changes: FileChanges, line: int) -> Optional[int]:
    """
    Map a source line number to the target numbering.

    Returns None when the line was deleted.

    Raises:
        OperationInputError: line < 1
    """
    _check_line(line)
    if line in changes.deletions:
        return None
    if line in changes.moves:
        return changes.moves[line]
    return _shift(line, changes.deletions, changes.additions)


def undo_delta(changes: FileChanges, line: int) -> Optional[int]:
    """
    Map a target line number back to the source numbering.

    Returns None when the line was added (it has no source).

    Raises:
        OperationInputError: line < 1
    """
    _check_line(line)
    if line in changes.additions:
        return None
    inverted = changes.inverted_moves()
    if line in inverted:
        return inverted[line]
    return _shift(line, changes.additions, changes.deletions)
