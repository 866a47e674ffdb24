"""
Errors — Typed failure taxonomy for tour operations

Every failure belongs to one ErrorKind:
- OPERATION_INPUT: index/id out of bounds, bad reorder indices
- INPUT_VALIDATION: target file unreadable, target line not present
- EXTERNAL_STATE: repository unmapped, backend unavailable, version mismatch
- INTERNAL_STATE: a binding that should exist does not (a bug)
- SERIALIZATION: malformed JSON, structurally invalid tour file

Errors carry structured context (repository, path, line, stop_id, index)
so callers can render them without parsing the message.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Closed set of failure categories."""
    OPERATION_INPUT = "operation_input"
    INPUT_VALIDATION = "input_validation"
    EXTERNAL_STATE = "external_state"
    INTERNAL_STATE = "internal_state"
    SERIALIZATION = "serialization"


class TouristError(Exception):
    """Base class for all tour failures."""

    kind: ErrorKind = ErrorKind.INTERNAL_STATE

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "error": type(self).__name__,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
        }

    @property
    def repository(self) -> Optional[str]:
        return self.context.get("repository")

    @property
    def stop_id(self) -> Optional[str]:
        return self.context.get("stop_id")


class OperationInputError(TouristError):
    """Index or id out of bounds, or otherwise unusable operation arguments."""
    kind = ErrorKind.OPERATION_INPUT


class InputValidationError(TouristError):
    """Target file or line does not exist in the working copy."""
    kind = ErrorKind.INPUT_VALIDATION


class ExternalStateError(TouristError):
    """Filesystem, configuration or version-control state prevents the operation."""
    kind = ErrorKind.EXTERNAL_STATE


class VersionMismatchError(ExternalStateError):
    """Repository is checked out at a version other than the tour's binding."""

    def __init__(self, repository: str, expected: Any, actual: Any):
        super().__init__(
            f"Repository '{repository}' is at {actual}, but the tour is bound to {expected}",
            repository=repository,
            expected=expected,
            actual=actual,
        )


class InternalStateError(TouristError):
    """Tour invariants were violated; signals a bug or a hand-edited tour file."""
    kind = ErrorKind.INTERNAL_STATE


class SerializationError(TouristError):
    """Tour file could not be decoded."""
    kind = ErrorKind.SERIALIZATION


class MalformedTourError(SerializationError):
    """Tour text is not valid JSON."""


class InvalidTourError(SerializationError):
    """Tour JSON is well-formed but does not have the expected structure."""


class ConfigError(ExternalStateError):
    """An explicitly requested configuration file cannot be used."""
