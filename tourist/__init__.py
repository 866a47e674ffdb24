"""
Tourist — Code tours that survive edits

A tour is an ordered list of stops, each an annotated line in a repository.
Stops are stored relative to a recorded repository version and carried
across edits with line diffs, so they keep pointing at the same code.

Layers:
- core: line-delta engine, paths, tour model, TourStore operations
- services: version adapters (git, unversioned), per-operation diff cache
- commands: CLI command modules

Usage:
    tourist init "Request lifecycle"
    tourist map app ~/src/app
    tourist add ~/src/app/server.py 42 --title "Entry point"
    tourist refresh
    tourist resolve
    tourist check
"""

__version__ = "0.1.0"

# Core layer
from .core.delta import FileChanges, compute_delta, undo_delta
from .core.paths import RelativePath, RepositoryIndex
from .core.tour import (
    BrokenReason, BrokenStop, ChildStopRef, LocatedStop, RepositoryBinding,
    ResolvedTour, StopPosition, TourFile, TourStop,
    deserialize, load_tour, save_tour, serialize,
)
from .core.store import RefreshReport, TourStore

# Services layer
from .services.versions import RepositoryVersion, VersionAdapter, VersionBackend, adapter_for
from .services.diff_cache import DiffSession

# Errors and configuration
from .errors import (
    ErrorKind, TouristError, OperationInputError, InputValidationError,
    ExternalStateError, VersionMismatchError, InternalStateError,
    SerializationError, MalformedTourError, InvalidTourError, ConfigError,
)
from .config import Config, ConfigManager, get_config

__all__ = [
    "__version__",
    "FileChanges", "compute_delta", "undo_delta",
    "RelativePath", "RepositoryIndex",
    "BrokenReason", "BrokenStop", "ChildStopRef", "LocatedStop", "RepositoryBinding",
    "ResolvedTour", "StopPosition", "TourFile", "TourStop",
    "deserialize", "load_tour", "save_tour", "serialize",
    "RefreshReport", "TourStore",
    "RepositoryVersion", "VersionAdapter", "VersionBackend", "adapter_for",
    "DiffSession",
    "ErrorKind", "TouristError", "OperationInputError", "InputValidationError",
    "ExternalStateError", "VersionMismatchError", "InternalStateError",
    "SerializationError", "MalformedTourError", "InvalidTourError", "ConfigError",
    "Config", "ConfigManager", "get_config",
]
