"""
TourStore — Structural edits, refresh and resolution of tours

Keeps a TourFile consistent while it is edited:
- every stop's repository has exactly one RepositoryBinding
- bindings nobody references are pruned
- stop lines are relative to their binding's version; changing the
  version (refresh) translates every affected line
- stop ids are unique and survive reorders and moves

Mutations validate everything before touching the tour, so a failed
operation leaves it unchanged. resolve() and check() are read-only and
report per-stop problems as data instead of raising.

Usage:
    from tourist.core.store import TourStore
    from tourist.core.paths import RepositoryIndex
    from tourist.core.tour import StopPosition

    store = TourStore(RepositoryIndex({"app": "/src/app"}))
    tour = store.init("Request lifecycle")
    stop_id = store.add(tour, StopPosition("/src/app/server.py", 42), "Entry point")
    resolved = store.resolve(tour)
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar, Union

import xxhash

from ..errors import (
    ExternalStateError,
    InputValidationError,
    InternalStateError,
    OperationInputError,
    TouristError,
    VersionMismatchError,
)
from ..services.diff_cache import DiffSession
from ..services.versions import RepositoryVersion, VersionAdapter, VersionBackend, adapter_for
from .delta import compute_delta, undo_delta
from .paths import RelativePath, RepositoryIndex
from .tour import (
    UNMAPPED_LINE,
    BrokenReason,
    BrokenStop,
    ChildStopRef,
    LocatedStop,
    RepositoryBinding,
    ResolvedStop,
    ResolvedTour,
    StopPosition,
    TourFile,
    TourStop,
)

logger = logging.getLogger(__name__)

StopRef = Union[int, str]   # Stop index or stop id

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class RefreshReport:
    """Outcome of advancing one repository binding."""
    repository: str
    previous: RepositoryVersion
    current: RepositoryVersion
    remapped: List[str] = field(default_factory=list)   # Stop ids whose path or line changed
    unmapped: List[str] = field(default_factory=list)   # Stop ids whose line was deleted

    @property
    def changed(self) -> bool:
        return self.previous != self.current


@dataclass
class _Capture:
    """A working-copy position abstracted onto a repository version."""
    repository: str
    relative_path: str
    line: int
    new_binding: Optional[RepositoryBinding]


def generate_tour_id(title: str) -> str:
    """Generate a tour id using xxhash."""
    seed = f"{datetime.now(timezone.utc).isoformat()}|{title}|{os.urandom(8).hex()}"
    return xxhash.xxh64(seed.encode()).hexdigest()[:12]


def count_lines(path: Path) -> int:
    """
    Number of lines in a file, split on newlines only, as git does.

    A trailing newline does not start a new line; a lone carriage return
    never ends one.
    """
    data = path.read_bytes()
    return data.count(b"\n") + (1 if data and not data.endswith(b"\n") else 0)


class TourStore:
    """
    Operations over TourFile aggregates.

    Holds no tour state itself: callers own the TourFile and must not run
    two structural edits on the same tour concurrently.
    """

    def __init__(
        self,
        index: RepositoryIndex,
        adapters: Optional[Mapping[VersionBackend, VersionAdapter]] = None,
        default_backend: VersionBackend = VersionBackend.GIT,
        workers: int = 4
    ):
        """
        Args:
            index: Repository name -> local root
            adapters: Adapter per backend (constructed on demand when absent)
            default_backend: Backend for repositories the tour has no binding for yet
            workers: Parallel per-stop lookups during resolve/refresh
        """
        self.index = index
        self.default_backend = default_backend
        self.workers = max(1, workers)
        self._adapters: Dict[VersionBackend, VersionAdapter] = dict(adapters or {})

    def adapter(self, backend: VersionBackend) -> VersionAdapter:
        if backend not in self._adapters:
            self._adapters[backend] = adapter_for(backend)
        return self._adapters[backend]

    # =========================================================================
    # Lookup helpers
    # =========================================================================

    def _root(self, repository: str) -> Path:
        root = self.index.root(repository)
        if root is None:
            raise ExternalStateError(
                f"Repository '{repository}' is not mapped to a local path",
                repository=repository,
            )
        return root

    def _stop_index(self, tour: TourFile, ref: StopRef) -> int:
        if isinstance(ref, bool):
            raise OperationInputError(f"Invalid stop reference: {ref!r}")
        if isinstance(ref, int):
            if 0 <= ref < len(tour.stops):
                return ref
            raise OperationInputError(
                f"Stop index {ref} out of range (tour has {len(tour.stops)} stops)",
                index=ref,
            )
        for i, stop in enumerate(tour.stops):
            if stop.id == ref:
                return i
        raise OperationInputError(f"No stop with id '{ref}'", stop_id=ref)

    def get_stop(self, tour: TourFile, ref: StopRef) -> TourStop:
        return tour.stops[self._stop_index(tour, ref)]

    def _next_stop_id(self, tour: TourFile) -> Tuple[str, int]:
        taken = set(tour.stop_ids())
        counter = tour.stop_counter
        while True:
            counter += 1
            stop_id = xxhash.xxh32(f"{tour.id}:{counter}".encode()).hexdigest()
            if stop_id not in taken:
                return stop_id, counter

    @staticmethod
    def _prune_bindings(tour: TourFile) -> None:
        used = {s.repository for s in tour.stops}
        pruned = [b.repository for b in tour.repositories if b.repository not in used]
        if pruned:
            logger.debug("Pruning unused bindings: %s", ", ".join(pruned))
        tour.repositories = [b for b in tour.repositories if b.repository in used]

    def _map_ordered(self, fn: Callable[[T], R], items: Sequence[T]) -> List[R]:
        """Apply fn to every item, possibly in parallel, keeping input order."""
        if self.workers == 1 or len(items) <= 1:
            return [fn(item) for item in items]
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="tourist-") as pool:
            return list(pool.map(fn, items))

    # =========================================================================
    # Capture: working-copy position -> repository-relative stop
    # =========================================================================

    def _capture(
        self,
        tour: TourFile,
        position: StopPosition,
        session: DiffSession
    ) -> _Capture:
        path = position.absolute_path
        try:
            total = count_lines(path)
        except OSError as e:
            raise InputValidationError(f"Cannot read {path}: {e}", path=path) from e
        if not 1 <= position.line <= total:
            raise InputValidationError(
                f"Line {position.line} is not in {path} ({total} lines)",
                path=path,
                line=position.line,
            )

        rel = self.index.to_relative(path)
        if rel is None:
            raise ExternalStateError(f"No mapped repository contains {path}", path=path)
        root = self._root(rel.repository)

        existing = tour.binding(rel.repository)
        backend = existing.version.backend if existing else self.default_backend
        adapter = self.adapter(backend)
        current = adapter.get_current_version(root)

        if existing is not None and existing.version != current:
            raise VersionMismatchError(rel.repository, existing.version, current)

        relative_path = rel.path
        line = position.line
        found = adapter.find_dirty_source(current, rel.path, root, session)
        if found is not None:
            relative_path, changes = found
            line = undo_delta(changes, position.line)
            if line is None:
                raise InputValidationError(
                    f"Line {position.line} of {path} only exists in uncommitted changes",
                    repository=rel.repository,
                    path=path,
                    line=position.line,
                )

        if not adapter.exists_at(current, relative_path, root):
            raise InputValidationError(
                f"{path} is not part of {rel.repository} at {current}; commit it first",
                repository=rel.repository,
                path=path,
                line=position.line,
            )

        return _Capture(
            repository=rel.repository,
            relative_path=relative_path,
            line=line,
            new_binding=None if existing else RepositoryBinding(rel.repository, current),
        )

    # =========================================================================
    # Structural operations
    # =========================================================================

    def init(self, title: str, description: str = "") -> TourFile:
        """Create an empty tour."""
        tour = TourFile(id=generate_tour_id(title), title=title, description=description)
        logger.info("Initialized tour %s (%s)", tour.id, title)
        return tour

    def add(
        self,
        tour: TourFile,
        position: StopPosition,
        title: str,
        body: str = "",
        index: Optional[int] = None
    ) -> str:
        """
        Add a stop at a working-copy position.

        Args:
            tour: Tour to modify
            position: Absolute path and 1-indexed line in the working copy
            title: Stop title
            body: Stop body
            index: Insert position (clamped to the stop list; None appends)

        Returns:
            The new stop's id

        Raises:
            InputValidationError: file unreadable, line not in file, or file
                not yet committed at the bound version
            ExternalStateError: no repository contains the file, backend failure
            VersionMismatchError: repository moved away from the tour's binding
        """
        with DiffSession() as session:
            captured = self._capture(tour, position, session)

        stop_id, counter = self._next_stop_id(tour)
        stop = TourStop(
            id=stop_id,
            title=title,
            body=body,
            repository=captured.repository,
            relative_path=captured.relative_path,
            line=captured.line,
        )
        at = len(tour.stops) if index is None else max(0, min(index, len(tour.stops)))

        tour.stops.insert(at, stop)
        tour.stop_counter = counter
        if captured.new_binding is not None:
            tour.repositories.append(captured.new_binding)

        logger.info("Added stop %s at %s:%s:%d", stop_id, stop.repository,
                    stop.relative_path, stop.line)
        return stop_id

    def remove(self, tour: TourFile, ref: StopRef) -> TourStop:
        """Remove a stop and prune its binding if nothing else uses it."""
        i = self._stop_index(tour, ref)
        stop = tour.stops.pop(i)
        self._prune_bindings(tour)
        logger.info("Removed stop %s", stop.id)
        return stop

    def edit(
        self,
        tour: TourFile,
        ref: StopRef,
        title: Optional[str] = None,
        body: Optional[str] = None
    ) -> TourStop:
        """Update a stop's title and/or body in place."""
        stop = self.get_stop(tour, ref)
        if title is not None:
            stop.title = title
        if body is not None:
            stop.body = body
        return stop

    def move(self, tour: TourFile, ref: StopRef, position: StopPosition) -> TourStop:
        """
        Point an existing stop at a new working-copy position.

        Validated like add() followed by remove(), so moving into another
        repository binds that repository and prunes the old one when unused.
        The stop keeps its id, title, body and child links.
        """
        i = self._stop_index(tour, ref)
        old = tour.stops[i]
        with DiffSession() as session:
            captured = self._capture(tour, position, session)

        moved = TourStop(
            id=old.id,
            title=old.title,
            body=old.body,
            repository=captured.repository,
            relative_path=captured.relative_path,
            line=captured.line,
            child_stops=list(old.child_stops),
        )
        tour.stops[i] = moved
        if captured.new_binding is not None:
            tour.repositories.append(captured.new_binding)
        self._prune_bindings(tour)

        logger.info("Moved stop %s to %s:%s:%d", moved.id, moved.repository,
                    moved.relative_path, moved.line)
        return moved

    def scramble(self, tour: TourFile, indices: Sequence[int]) -> None:
        """
        Replace the stop list with stops[i] for each i in indices.

        Indices may omit stops (they are dropped) but may not repeat.

        Raises:
            OperationInputError: any index out of range or repeated
        """
        count = len(tour.stops)
        bad = [i for i in indices
               if isinstance(i, bool) or not isinstance(i, int) or not 0 <= i < count]
        if bad:
            raise OperationInputError(
                f"Indices out of range for {count} stops: {bad}",
                indices=bad,
            )
        if len(set(indices)) != len(indices):
            raise OperationInputError(f"Repeated stop indices: {list(indices)}", indices=list(indices))

        tour.stops = [tour.stops[i] for i in indices]
        self._prune_bindings(tour)

    reorder = scramble

    def link(self, tour: TourFile, ref: StopRef, child: ChildStopRef) -> TourStop:
        """Append a link to a stop in another tour."""
        if child.stop_index < 0:
            raise OperationInputError(f"Child stop index must be >= 0, got {child.stop_index}")
        stop = self.get_stop(tour, ref)
        stop.child_stops.append(child)
        return stop

    def unlink(self, tour: TourFile, ref: StopRef, child_index: int) -> ChildStopRef:
        """Remove a child link by its position in the stop's link list."""
        stop = self.get_stop(tour, ref)
        if not 0 <= child_index < len(stop.child_stops):
            raise OperationInputError(
                f"Child link {child_index} out of range (stop has {len(stop.child_stops)})",
                stop_id=stop.id,
                index=child_index,
            )
        return stop.child_stops.pop(child_index)

    # =========================================================================
    # Refresh: advance bindings, translating lines
    # =========================================================================

    def refresh(self, tour: TourFile, repository: Optional[str] = None) -> List[RefreshReport]:
        """
        Advance repository bindings to their current versions.

        Every stop in a refreshed repository is carried through the committed
        diff. Stops whose line was deleted are kept at UNMAPPED_LINE (they
        resolve as broken) rather than dropped.

        Args:
            tour: Tour to modify
            repository: Repository to refresh (None refreshes every binding)

        Raises:
            InternalStateError: the repository has no binding in this tour
            ExternalStateError: repository unmapped or backend failure
        """
        if repository is not None:
            targets = [repository]
        else:
            targets = [b.repository for b in tour.repositories]

        planned: List[Tuple[RepositoryBinding, RefreshReport, Dict[int, TourStop]]] = []
        with DiffSession() as session:
            for name in targets:
                binding = tour.binding(name)
                if binding is None:
                    raise InternalStateError(
                        f"Tour has no binding for repository '{name}'",
                        repository=name,
                    )
                report, replacements = self._plan_refresh(tour, binding, session)
                planned.append((binding, report, replacements))

        # Apply only once every repository has been planned
        for binding, report, replacements in planned:
            for i, stop in replacements.items():
                tour.stops[i] = stop
            binding.version = report.current
            if report.changed:
                logger.info("Refreshed %s: %s -> %s (%d remapped, %d unmapped)",
                            report.repository, report.previous, report.current,
                            len(report.remapped), len(report.unmapped))
        return [report for _, report, _ in planned]

    def _plan_refresh(
        self,
        tour: TourFile,
        binding: RepositoryBinding,
        session: DiffSession
    ) -> Tuple[RefreshReport, Dict[int, TourStop]]:
        root = self._root(binding.repository)
        adapter = self.adapter(binding.version.backend)
        current = adapter.get_current_version(root)
        report = RefreshReport(binding.repository, binding.version, current)
        if not report.changed:
            return report, {}

        members = [(i, s) for i, s in enumerate(tour.stops) if s.repository == binding.repository]

        def translate(item: Tuple[int, TourStop]) -> Tuple[int, TourStop]:
            i, stop = item
            changes = adapter.get_changes_for_file(binding.version, stop.relative_path, root, session)
            if changes is None:
                return i, stop
            line = stop.line
            if not stop.is_unmapped:
                line = compute_delta(changes, stop.line)
            translated = TourStop(
                id=stop.id,
                title=stop.title,
                body=stop.body,
                repository=stop.repository,
                relative_path=changes.name or stop.relative_path,
                line=UNMAPPED_LINE if line is None else line,
                child_stops=list(stop.child_stops),
            )
            return i, translated

        replacements: Dict[int, TourStop] = {}
        for i, stop in self._map_ordered(translate, members):
            original = tour.stops[i]
            if stop.line == UNMAPPED_LINE and not original.is_unmapped:
                report.unmapped.append(stop.id)
            elif (stop.line, stop.relative_path) != (original.line, original.relative_path):
                report.remapped.append(stop.id)
            replacements[i] = stop
        return report, replacements

    # =========================================================================
    # Resolve and check (read-only)
    # =========================================================================

    def resolve(self, tour: TourFile) -> ResolvedTour:
        """
        Locate every stop in the working copy.

        Uncommitted edits are taken into account, so stops follow live edits.
        Never raises for per-stop problems: those stops come back as BrokenStop.
        """
        with DiffSession() as session:
            stops = self._map_ordered(lambda s: self._resolve_stop(tour, s, session), tour.stops)
        return ResolvedTour(id=tour.id, title=tour.title, description=tour.description, stops=stops)

    def _resolve_stop(self, tour: TourFile, stop: TourStop, session: DiffSession) -> ResolvedStop:
        def broken(*reasons: BrokenReason) -> BrokenStop:
            return BrokenStop(id=stop.id, title=stop.title, body=stop.body,
                              reasons=list(reasons), child_stops=list(stop.child_stops))

        binding = tour.binding(stop.repository)
        if binding is None:
            return broken(BrokenReason.MISSING_BINDING)
        root = self.index.root(stop.repository)
        if root is None:
            return broken(BrokenReason.REPOSITORY_UNMAPPED)

        adapter = self.adapter(binding.version.backend)
        try:
            changes = adapter.get_dirty_changes_for_file(
                binding.version, stop.relative_path, root, session
            )
        except ExternalStateError as e:
            logger.debug("Cannot diff %s for stop %s: %s", stop.repository, stop.id, e)
            return broken(BrokenReason.VERSION_UNAVAILABLE)

        relative_path = stop.relative_path
        line: Optional[int] = None if stop.is_unmapped else stop.line
        if changes is not None:
            relative_path = changes.name or relative_path
            if line is not None:
                line = compute_delta(changes, line)

        absolute = self.index.to_absolute(RelativePath(stop.repository, relative_path))
        try:
            total = count_lines(absolute)
        except OSError:
            if line is None:
                return broken(BrokenReason.FILE_NOT_FOUND, BrokenReason.LINE_NOT_FOUND)
            return broken(BrokenReason.FILE_NOT_FOUND)
        if line is None or line > total:
            return broken(BrokenReason.LINE_NOT_FOUND)

        return LocatedStop(
            id=stop.id,
            title=stop.title,
            body=stop.body,
            absolute_path=absolute,
            line=line,
            child_stops=list(stop.child_stops),
        )

    def check(self, tour: TourFile) -> List[TouristError]:
        """
        Report every problem with a tour without raising.

        Covers invariant violations (missing, duplicate or unused bindings,
        duplicate stop ids), unmapped repositories, repositories checked out
        at a version other than their binding, and stops that do not resolve.
        """
        errors: List[TouristError] = []

        seen_ids = set()
        for stop in tour.stops:
            if stop.id in seen_ids:
                errors.append(InternalStateError(f"Duplicate stop id '{stop.id}'", stop_id=stop.id))
            seen_ids.add(stop.id)

        referenced = {s.repository for s in tour.stops}
        seen_bindings = set()
        for binding in tour.repositories:
            name = binding.repository
            if name in seen_bindings:
                errors.append(InternalStateError(
                    f"Repository '{name}' is bound more than once", repository=name))
                continue
            seen_bindings.add(name)
            if name not in referenced:
                errors.append(InternalStateError(
                    f"Repository '{name}' is bound but no stop uses it", repository=name))
            errors.extend(self._check_binding(binding))

        unusable = {e.repository for e in errors
                    if isinstance(e, ExternalStateError) and not isinstance(e, VersionMismatchError)}
        with DiffSession() as session:
            for stop in tour.stops:
                if stop.repository not in seen_bindings:
                    errors.append(InternalStateError(
                        f"Stop '{stop.title}' references unbound repository '{stop.repository}'",
                        repository=stop.repository,
                        stop_id=stop.id,
                    ))
                    continue
                if stop.repository in unusable:
                    continue
                errors.extend(self._check_stop(tour, stop, session))
        return errors

    def _check_binding(self, binding: RepositoryBinding) -> List[TouristError]:
        name = binding.repository
        root = self.index.root(name)
        if root is None:
            return [ExternalStateError(
                f"Repository '{name}' is not mapped to a local path", repository=name)]
        try:
            current = self.adapter(binding.version.backend).get_current_version(root)
        except TouristError as e:
            return [ExternalStateError(
                f"Cannot read the current version of '{name}': {e}", repository=name)]
        if current != binding.version:
            return [VersionMismatchError(name, binding.version, current)]
        return []

    def _check_stop(self, tour: TourFile, stop: TourStop, session: DiffSession) -> List[TouristError]:
        try:
            resolved = self._resolve_stop(tour, stop, session)
        except (TouristError, OSError) as e:
            return [ExternalStateError(f"Stop '{stop.title}' could not be resolved: {e}",
                                       repository=stop.repository, stop_id=stop.id)]
        if isinstance(resolved, LocatedStop):
            return []

        errors: List[TouristError] = []
        for reason in resolved.reasons:
            if reason is BrokenReason.VERSION_UNAVAILABLE:
                errors.append(ExternalStateError(
                    f"Stop '{stop.title}': cannot diff '{stop.repository}' against its bound version",
                    repository=stop.repository, stop_id=stop.id))
            elif reason is BrokenReason.FILE_NOT_FOUND:
                errors.append(InputValidationError(
                    f"Stop '{stop.title}': file {stop.relative_path} not found",
                    repository=stop.repository, path=stop.relative_path, stop_id=stop.id))
            elif reason is BrokenReason.LINE_NOT_FOUND:
                errors.append(InputValidationError(
                    f"Stop '{stop.title}': line {stop.line} of {stop.relative_path} no longer exists",
                    repository=stop.repository, path=stop.relative_path,
                    line=stop.line, stop_id=stop.id))
            else:
                errors.append(ExternalStateError(
                    f"Stop '{stop.title}' cannot be located ({reason.value})",
                    repository=stop.repository, stop_id=stop.id))
        return errors
