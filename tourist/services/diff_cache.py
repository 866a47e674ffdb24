"""
DiffSession — Memoized tree diffs for one logical operation

A resolve or refresh over N stops in the same repository needs the same
diff N times. A DiffSession computes it once per
(backend, version, repo_root, dirty) key and shares the result.

Sessions are created by the caller and dropped when the operation ends.
There is no process-wide cache: two tours resolved concurrently never
see each other's results, and a new session always sees the current
working copy.

Thread safety:
- The first caller for a key computes; later callers wait on its future
- A failed computation is not cached, so the next caller retries
"""

import logging
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Tuple

if TYPE_CHECKING:
    from .versions import RepositoryVersion, TreeChanges, VersionAdapter

logger = logging.getLogger(__name__)

SessionKey = Tuple[str, 'RepositoryVersion', str, bool]


class DiffSession:
    """Caller-scoped cache of parsed tree diffs."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[SessionKey, Future] = {}
        self.hits = 0
        self.misses = 0

    def __enter__(self) -> 'DiffSession':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for f in self._entries.values() if f.done() and f.exception() is None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def tree_changes(
        self,
        adapter: 'VersionAdapter',
        version: 'RepositoryVersion',
        repo_root: Path,
        dirty: bool
    ) -> 'TreeChanges':
        """Return the cached diff for the key, computing it on first request."""
        key = (adapter.backend.value, version, str(repo_root), dirty)

        with self._lock:
            future = self._entries.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._entries[key] = future
                self.misses += 1
            else:
                self.hits += 1

        if not owner:
            logger.debug("Diff cache hit: %s %s dirty=%s", repo_root, version, dirty)
            return future.result()

        logger.debug("Diff cache miss: %s %s dirty=%s", repo_root, version, dirty)
        try:
            result = adapter.compute_tree_changes(version, repo_root, dirty)
        except BaseException as exc:
            with self._lock:
                self._entries.pop(key, None)
            future.set_exception(exc)
            raise
        future.set_result(result)
        return result
