"""
Services — Version-control integration for tours

Contains:
- Versions: backend-tagged repository versions and the adapter contract
- Git: git command-line adapter and unified diff parser
- DiffSession: caller-scoped memoization of tree diffs
"""

from .versions import (
    RepositoryVersion, VersionAdapter, VersionBackend, UnversionedAdapter, adapter_for
)
from .git import GitAdapter, parse_unified_diff
from .diff_cache import DiffSession

__all__ = [
    # Versions
    "RepositoryVersion", "VersionAdapter", "VersionBackend", "UnversionedAdapter", "adapter_for",
    # Git
    "GitAdapter", "parse_unified_diff",
    # Diff cache
    "DiffSession",
]
