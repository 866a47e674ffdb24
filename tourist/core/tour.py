"""
Tour — Persisted tour file model and its JSON form

A TourFile is an ordered list of stops plus one RepositoryBinding per
repository the stops reference. Stop lines are only meaningful relative
to the version recorded in their repository's binding.

Persisted form (JSON, camelCase):
    {
      "id": "...", "title": "...", "description": "...", "version": "1.0.0",
      "stopCounter": 3,
      "repositories": [{"repository": "app", "version": {"kind": "git", "commit": "..."}}],
      "stops": [{"id": "...", "title": "...", "body": "...", "repository": "app",
                 "relativePath": "src/main.py", "line": 12,
                 "childStops": [{"tourId": "...", "stopIndex": 0}]}]
    }

Deserialization checks structure, and that stop paths stay inside their
repository (no absolute paths, no ".." components). Cross-references (a stop whose
repository has no binding) are reported by TourStore.check().
"""

import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Any, Dict, List, Optional, Union

import orjson

from ..errors import InputValidationError, InvalidTourError, MalformedTourError
from ..services.versions import RepositoryVersion

SCHEMA_VERSION = "1.0.0"

# Line recorded for a stop whose tracked line was deleted by a refresh
UNMAPPED_LINE = 0


@dataclass(frozen=True)
class ChildStopRef:
    """Link from a stop to a stop in another tour."""
    tour_id: str
    stop_index: int

    def to_dict(self) -> Dict[str, Any]:
        return {"tourId": self.tour_id, "stopIndex": self.stop_index}

    @classmethod
    def from_dict(cls, data: Any) -> 'ChildStopRef':
        _expect_object(data, "child stop")
        return cls(
            tour_id=_require(data, "tourId", str, "child stop"),
            stop_index=_require_int(data, "stopIndex", "child stop", minimum=0),
        )


@dataclass
class TourStop:
    """One annotated location, relative to its repository's bound version."""
    id: str
    title: str
    body: str
    repository: str
    relative_path: str
    line: int
    child_stops: List[ChildStopRef] = field(default_factory=list)

    @property
    def is_unmapped(self) -> bool:
        return self.line == UNMAPPED_LINE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "repository": self.repository,
            "relativePath": self.relative_path,
            "line": self.line,
            "childStops": [c.to_dict() for c in self.child_stops],
        }

    @classmethod
    def from_dict(cls, data: Any) -> 'TourStop':
        _expect_object(data, "stop")
        children = data.get("childStops", [])
        if not isinstance(children, list):
            raise InvalidTourError("Field 'childStops' of stop must be a list")
        return cls(
            id=_require(data, "id", str, "stop"),
            title=_require(data, "title", str, "stop"),
            body=_require(data, "body", str, "stop"),
            repository=_require(data, "repository", str, "stop"),
            relative_path=_require_relative_path(data, "relativePath", "stop"),
            line=_require_int(data, "line", "stop", minimum=UNMAPPED_LINE),
            child_stops=[ChildStopRef.from_dict(c) for c in children],
        )


@dataclass
class RepositoryBinding:
    """The version a tour's stops in one repository are tracked against."""
    repository: str
    version: RepositoryVersion

    def to_dict(self) -> Dict[str, Any]:
        return {"repository": self.repository, "version": self.version.to_dict()}

    @classmethod
    def from_dict(cls, data: Any) -> 'RepositoryBinding':
        _expect_object(data, "repository binding")
        if "version" not in data:
            raise InvalidTourError("Missing field 'version' in repository binding")
        return cls(
            repository=_require(data, "repository", str, "repository binding"),
            version=RepositoryVersion.from_dict(data["version"]),
        )


@dataclass
class TourFile:
    """The tour aggregate. Serialized and deserialized as a unit."""
    id: str
    title: str
    description: str = ""
    stops: List[TourStop] = field(default_factory=list)
    repositories: List[RepositoryBinding] = field(default_factory=list)
    version: str = SCHEMA_VERSION
    stop_counter: int = 0

    def binding(self, repository: str) -> Optional[RepositoryBinding]:
        for b in self.repositories:
            if b.repository == repository:
                return b
        return None

    def stop_ids(self) -> List[str]:
        return [s.id for s in self.stops]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "version": self.version,
            "stopCounter": self.stop_counter,
            "repositories": [b.to_dict() for b in self.repositories],
            "stops": [s.to_dict() for s in self.stops],
        }

    @classmethod
    def from_dict(cls, data: Any) -> 'TourFile':
        _expect_object(data, "tour")
        version = _require(data, "version", str, "tour")
        if version.split(".")[0] != SCHEMA_VERSION.split(".")[0]:
            raise InvalidTourError(f"Unsupported tour schema version: {version}")

        repositories = _require(data, "repositories", list, "tour")
        stops = _require(data, "stops", list, "tour")
        counter = data.get("stopCounter", 0)
        if isinstance(counter, bool) or not isinstance(counter, int) or counter < 0:
            raise InvalidTourError("Field 'stopCounter' of tour must be a non-negative integer")

        return cls(
            id=_require(data, "id", str, "tour"),
            title=_require(data, "title", str, "tour"),
            description=_require(data, "description", str, "tour"),
            stops=[TourStop.from_dict(s) for s in stops],
            repositories=[RepositoryBinding.from_dict(r) for r in repositories],
            version=version,
            stop_counter=counter,
        )


# =============================================================================
# Resolved (absolute, working-copy relative) form
# =============================================================================

class BrokenReason(Enum):
    """Why a stop could not be located in the working copy."""
    FILE_NOT_FOUND = "file_not_found"
    LINE_NOT_FOUND = "line_not_found"
    REPOSITORY_UNMAPPED = "repository_unmapped"
    MISSING_BINDING = "missing_binding"
    VERSION_UNAVAILABLE = "version_unavailable"


@dataclass(frozen=True)
class StopPosition:
    """An absolute location in the working copy."""
    absolute_path: Path
    line: int

    def __post_init__(self):
        object.__setattr__(self, "absolute_path", Path(self.absolute_path))


@dataclass
class LocatedStop:
    """A stop found at a concrete working-copy location."""
    id: str
    title: str
    body: str
    absolute_path: Path
    line: int
    child_stops: List[ChildStopRef] = field(default_factory=list)


@dataclass
class BrokenStop:
    """A stop whose file or line no longer exists in the working copy."""
    id: str
    title: str
    body: str
    reasons: List[BrokenReason]
    child_stops: List[ChildStopRef] = field(default_factory=list)


ResolvedStop = Union[LocatedStop, BrokenStop]


@dataclass
class ResolvedTour:
    """A tour with every stop located (or marked broken) for display."""
    id: str
    title: str
    description: str
    stops: List[ResolvedStop]

    @property
    def broken(self) -> List[BrokenStop]:
        return [s for s in self.stops if isinstance(s, BrokenStop)]


# =============================================================================
# Serialization
# =============================================================================

def serialize(tour: TourFile) -> str:
    """Encode a tour as indented JSON text."""
    return orjson.dumps(tour.to_dict(), option=orjson.OPT_INDENT_2).decode("utf-8")


def deserialize(text: Union[str, bytes]) -> TourFile:
    """
    Decode a tour from JSON text.

    Raises:
        MalformedTourError: text is not valid JSON
        InvalidTourError: JSON does not describe a tour
    """
    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError as e:
        raise MalformedTourError(f"Tour file is not valid JSON: {e}") from e
    return TourFile.from_dict(data)


def load_tour(path: Union[str, os.PathLike]) -> TourFile:
    """Read a tour file from disk."""
    path = Path(path)
    try:
        text = path.read_bytes()
    except OSError as e:
        raise InputValidationError(f"Cannot read tour file {path}: {e}", path=path) from e
    return deserialize(text)


def save_tour(path: Union[str, os.PathLike], tour: TourFile) -> None:
    """Write a tour file atomically (temp file + replace)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(serialize(tour))
            f.write("\n")
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


# =============================================================================
# Field validation helpers
# =============================================================================

def _expect_object(data: Any, what: str) -> None:
    if not isinstance(data, dict):
        raise InvalidTourError(f"Expected {what} to be an object, got {type(data).__name__}")


def _require(data: Dict[str, Any], key: str, expected: type, what: str) -> Any:
    if key not in data:
        raise InvalidTourError(f"Missing field '{key}' in {what}")
    value = data[key]
    if not isinstance(value, expected):
        raise InvalidTourError(
            f"Field '{key}' of {what} must be {expected.__name__}, got {type(value).__name__}"
        )
    return value


def _require_int(data: Dict[str, Any], key: str, what: str, minimum: int) -> int:
    value = _require(data, key, int, what)
    if isinstance(value, bool) or value < minimum:
        raise InvalidTourError(f"Field '{key}' of {what} must be an integer >= {minimum}")
    return value


def _require_relative_path(data: Dict[str, Any], key: str, what: str) -> str:
    """A forward-slash path that stays inside its repository root."""
    value = _require(data, key, str, what)
    path = PurePosixPath(value.replace("\\", "/"))
    if (not value or path.is_absolute() or PureWindowsPath(value).drive
            or ".." in path.parts):
        raise InvalidTourError(
            f"Field '{key}' of {what} must be a path inside the repository, got {value!r}"
        )
    return value
