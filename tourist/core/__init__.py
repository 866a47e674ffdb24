"""
Core — Data layer for tours

Contains the foundational pieces:
- Delta: line-number mapping through a file diff
- Paths: repository index (absolute <-> repository-relative paths)
- Tour: persisted tour model and JSON codec
- Store: structural edits, refresh, resolve and check
"""

from .delta import FileChanges, compute_delta, undo_delta
from .paths import RelativePath, RepositoryIndex

__all__ = [
    # Delta
    "FileChanges", "compute_delta", "undo_delta",
    # Paths
    "RelativePath", "RepositoryIndex",
]
