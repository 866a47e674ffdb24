"""
Repository Index — Absolute <-> repository-relative path translation

Stops are persisted relative to a named repository so a tour can be
shared between machines with different checkouts. The index maps each
repository name to its local root.

Matching rules:
- Longest root wins when several roots contain a path (nested repos)
- Roots are compared with a trailing separator, so a root of
  /src/repo never claims /src/repository/file.txt
- Relative paths are stored with forward slashes on every platform
- Roots and looked-up paths are compared with symlinks resolved
"""

import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class RelativePath:
    """A file path inside a named repository."""
    repository: str
    path: str               # Forward-slash separated, relative to the repo root

    def __post_init__(self):
        object.__setattr__(self, "path", self.path.replace("\\", "/"))

    def __str__(self) -> str:
        return f"{self.repository}:{self.path}"


def _normalize_root(root: PathLike) -> str:
    return os.path.realpath(os.path.expanduser(os.fspath(root)))


class RepositoryIndex:
    """
    Mapping from repository name to absolute filesystem root.

    Supplied by configuration; never persisted in a tour file.
    """

    def __init__(self, roots: Optional[Mapping[str, PathLike]] = None):
        self._roots: Dict[str, str] = {}
        for name, root in (roots or {}).items():
            self.map(name, root)

    def map(self, repository: str, root: PathLike) -> None:
        """Map (or remap) a repository name to a root directory."""
        self._roots[repository] = _normalize_root(root)

    def unmap(self, repository: str) -> bool:
        return self._roots.pop(repository, None) is not None

    def root(self, repository: str) -> Optional[Path]:
        root = self._roots.get(repository)
        return Path(root) if root is not None else None

    def __contains__(self, repository: str) -> bool:
        return repository in self._roots

    def __iter__(self) -> Iterator[str]:
        return iter(self._roots)

    def __len__(self) -> int:
        return len(self._roots)

    def items(self) -> Iterator[Tuple[str, Path]]:
        for name, root in self._roots.items():
            yield name, Path(root)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._roots)

    def to_relative(self, absolute: PathLike) -> Optional[RelativePath]:
        """
        Find the repository containing an absolute path.

        Returns None when no mapped root contains the path.
        """
        target = _normalize_root(absolute)
        best: Optional[Tuple[str, str]] = None
        for name, root in self._roots.items():
            prefix = root if root.endswith(os.sep) else root + os.sep
            if not target.startswith(prefix):
                continue
            if best is None or len(root) > len(best[1]):
                best = (name, root)

        if best is None:
            return None

        name, root = best
        relative = os.path.relpath(target, root)
        return RelativePath(name, PurePosixPath(*Path(relative).parts).as_posix())

    def to_absolute(self, relative: RelativePath) -> Optional[Path]:
        """Join a repository-relative path onto its mapped root."""
        root = self._roots.get(relative.repository)
        if root is None:
            return None
        return Path(root).joinpath(*PurePosixPath(relative.path).parts)
