"""
Version Adapters — Repository versions and per-file diffs

The tour store never talks to a version-control system directly. It asks a
VersionAdapter for:
- the repository's current version (e.g. the checked-out commit)
- FileChanges between a recorded version and the current commit
- FileChanges between a recorded version and the working copy (dirty)

Backends form a closed set (VersionBackend). Each RepositoryVersion records
the backend that produced it, so a tour file knows which adapter can
interpret each binding without a string-keyed plugin registry.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from ..core.delta import FileChanges
from ..errors import InvalidTourError

if TYPE_CHECKING:
    from .diff_cache import DiffSession


class VersionBackend(Enum):
    """Version-control backends a binding can be tracked against."""
    GIT = "git"
    UNVERSIONED = "unversioned"   # Plain directories: every diff is identity


@dataclass(frozen=True)
class RepositoryVersion:
    """Opaque, backend-tagged repository version. Immutable."""
    backend: VersionBackend
    commit: Optional[str] = None

    @classmethod
    def git(cls, commit: str) -> 'RepositoryVersion':
        return cls(VersionBackend.GIT, commit)

    @classmethod
    def unversioned(cls) -> 'RepositoryVersion':
        return cls(VersionBackend.UNVERSIONED)

    def to_dict(self) -> Dict[str, Any]:
        if self.backend is VersionBackend.GIT:
            return {"kind": self.backend.value, "commit": self.commit}
        return {"kind": self.backend.value}

    @classmethod
    def from_dict(cls, data: Any) -> 'RepositoryVersion':
        if not isinstance(data, dict):
            raise InvalidTourError("Repository version must be an object")
        kind = data.get("kind")
        try:
            backend = VersionBackend(kind)
        except ValueError:
            raise InvalidTourError(f"Unknown version kind: {kind!r}") from None

        if backend is VersionBackend.GIT:
            commit = data.get("commit")
            if not isinstance(commit, str) or not commit:
                raise InvalidTourError("Git version requires a 'commit' string")
            return cls.git(commit)
        return cls.unversioned()

    def __str__(self) -> str:
        if self.backend is VersionBackend.GIT:
            return f"git:{(self.commit or '')[:12]}"
        return self.backend.value


# Parsed diff of a whole tree, keyed by source path
TreeChanges = Dict[str, FileChanges]


class VersionAdapter(ABC):
    """Contract between the tour store and a version-control backend."""

    backend: VersionBackend

    @abstractmethod
    def get_current_version(self, repo_root: Path) -> RepositoryVersion:
        """
        Report the repository's current version.

        Raises:
            ExternalStateError: backend cannot report a version
        """

    @abstractmethod
    def compute_tree_changes(
        self,
        version: RepositoryVersion,
        repo_root: Path,
        dirty: bool
    ) -> TreeChanges:
        """
        Diff every file between `version` and the current commit (or the
        working copy when `dirty`). Files absent from the result are unchanged.

        Raises:
            ExternalStateError: backend cannot produce the diff
        """

    @abstractmethod
    def exists_at(self, version: RepositoryVersion, relative_path: str, repo_root: Path) -> bool:
        """Whether the file is part of the repository at `version`."""

    def tree_changes(
        self,
        version: RepositoryVersion,
        repo_root: Path,
        dirty: bool,
        session: Optional['DiffSession'] = None
    ) -> TreeChanges:
        if session is None:
            return self.compute_tree_changes(version, repo_root, dirty)
        return session.tree_changes(self, version, repo_root, dirty)

    def get_changes_for_file(
        self,
        version: RepositoryVersion,
        relative_path: str,
        repo_root: Path,
        session: Optional['DiffSession'] = None
    ) -> Optional[FileChanges]:
        """Committed changes to one file since `version`; None when unchanged."""
        return self.tree_changes(version, repo_root, False, session).get(relative_path)

    def get_dirty_changes_for_file(
        self,
        version: RepositoryVersion,
        relative_path: str,
        repo_root: Path,
        session: Optional['DiffSession'] = None
    ) -> Optional[FileChanges]:
        """Changes to one file since `version`, uncommitted edits included."""
        return self.tree_changes(version, repo_root, True, session).get(relative_path)

    def find_dirty_source(
        self,
        version: RepositoryVersion,
        relative_path: str,
        repo_root: Path,
        session: Optional['DiffSession'] = None
    ) -> Optional[Tuple[str, FileChanges]]:
        """
        Find the dirty diff whose target is `relative_path`.

        Returns (source_path, changes), which differ from the target when the
        file was renamed in the working copy. None when the file is unchanged.
        """
        for source, changes in self.tree_changes(version, repo_root, True, session).items():
            if changes.name == relative_path:
                return source, changes
        return None


class UnversionedAdapter(VersionAdapter):
    """Adapter for plain directories. Files never move."""

    backend = VersionBackend.UNVERSIONED

    def get_current_version(self, repo_root: Path) -> RepositoryVersion:
        return RepositoryVersion.unversioned()

    def compute_tree_changes(
        self,
        version: RepositoryVersion,
        repo_root: Path,
        dirty: bool
    ) -> TreeChanges:
        return {}

    def exists_at(self, version: RepositoryVersion, relative_path: str, repo_root: Path) -> bool:
        return True


def adapter_for(backend: VersionBackend) -> VersionAdapter:
    """Construct the adapter implementing a backend."""
    if backend is VersionBackend.GIT:
        from .git import GitAdapter
        return GitAdapter()
    if backend is VersionBackend.UNVERSIONED:
        return UnversionedAdapter()
    raise ValueError(f"Unsupported version backend: {backend}")
