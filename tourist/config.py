"""
Configuration — Repository index and runtime settings

Config hierarchy (highest to lowest priority):
  1. Environment variables (TOURIST_BACKEND, TOURIST_LOG_LEVEL)
  2. Explicit config file (--config or TOURIST_CONFIG)
  3. Project config (.tourist/config.yaml)
  4. User config (~/.tourist/config.yaml)
  5. Defaults

The repository index (name -> local checkout) lives here, never in tour
files, so the same tour works on every machine that maps its repositories.

Example config.yaml:
    repositories:
      app: ~/src/app
      docs: ~/src/docs
    backend: git
    workers: 4
    log_level: INFO
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .core.paths import RepositoryIndex
from .errors import ConfigError
from .services.versions import VersionBackend

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class Config:
    """Application configuration."""
    repositories: Dict[str, str] = field(default_factory=dict)
    backend: str = VersionBackend.GIT.value
    workers: int = 4
    log_level: str = "WARNING"

    def validate(self) -> Optional[str]:
        """Validate config. Returns error message or None if valid."""
        valid_backends = [b.value for b in VersionBackend]
        if self.backend not in valid_backends:
            return f"Unknown backend '{self.backend}'. Valid: {', '.join(valid_backends)}"
        if self.workers < 1:
            return f"workers must be at least 1, got {self.workers}"
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            return f"Unknown log level '{self.log_level}'. Valid: {', '.join(VALID_LOG_LEVELS)}"
        for name, path in self.repositories.items():
            if not os.path.isabs(os.path.expanduser(path)):
                return f"Repository '{name}' must map to an absolute path, got '{path}'"
        return None

    @property
    def version_backend(self) -> VersionBackend:
        return VersionBackend(self.backend)

    def repository_index(self) -> RepositoryIndex:
        return RepositoryIndex({
            name: os.path.expanduser(path) for name, path in self.repositories.items()
        })

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "repositories": dict(self.repositories),
            "backend": self.backend,
            "workers": self.workers,
            "log_level": self.log_level,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create from dictionary."""
        repositories = data.get("repositories") or {}
        return cls(
            repositories={str(k): str(v) for k, v in repositories.items()},
            backend=str(data.get("backend", VersionBackend.GIT.value)),
            workers=int(data.get("workers", 4)),
            log_level=str(data.get("log_level", "WARNING")).upper(),
        )


class ConfigManager:
    """
    Manages configuration loading and persistence.

    Hierarchy:
      1. Environment overrides
      2. Explicit file (argument or TOURIST_CONFIG)
      3. Project config (.tourist/config.yaml)
      4. User config (~/.tourist/config.yaml)
      5. Defaults
    """

    USER_CONFIG_DIR = Path.home() / ".tourist"
    USER_CONFIG_FILE = USER_CONFIG_DIR / "config.yaml"
    PROJECT_CONFIG_DIR = ".tourist"
    PROJECT_CONFIG_FILE = "config.yaml"

    def __init__(self, project_dir: Optional[Path] = None, config_file: Optional[Path] = None):
        self.project_dir = Path(project_dir) if project_dir else Path.cwd()
        explicit = config_file or os.environ.get("TOURIST_CONFIG")
        self.config_file = Path(explicit).expanduser() if explicit else None
        self._config: Optional[Config] = None

    @property
    def project_config_path(self) -> Path:
        return self.project_dir / self.PROJECT_CONFIG_DIR / self.PROJECT_CONFIG_FILE

    @property
    def user_config_path(self) -> Path:
        return self.USER_CONFIG_FILE

    def _read_layer(self, path: Path) -> Dict[str, Any]:
        """Read one optional config file, skipping it when malformed."""
        if not path.exists():
            return {}
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Ignoring unreadable config %s: %s", path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring config %s: top level must be a mapping", path)
            return {}
        return data

    def load(self) -> Config:
        """Load configuration from all sources."""
        if self._config is not None:
            return self._config

        config_data: Dict[str, Any] = {}
        config_data = self._merge(config_data, self._read_layer(self.user_config_path))
        config_data = self._merge(config_data, self._read_layer(self.project_config_path))

        if self.config_file is not None:
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    explicit = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"Cannot read config {self.config_file}: {e}",
                                  path=self.config_file) from e
            if not isinstance(explicit, dict):
                raise ConfigError(f"Config {self.config_file} must be a mapping",
                                  path=self.config_file)
            config_data = self._merge(config_data, explicit)

        if os.environ.get("TOURIST_BACKEND"):
            config_data["backend"] = os.environ["TOURIST_BACKEND"]
        if os.environ.get("TOURIST_LOG_LEVEL"):
            config_data["log_level"] = os.environ["TOURIST_LOG_LEVEL"]

        try:
            config = Config.from_dict(config_data)
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
        error = config.validate()
        if error:
            raise ConfigError(error)

        self._config = config
        return self._config

    def reload(self) -> Config:
        """Discard the cached config and load again."""
        self._config = None
        return self.load()

    def save_project(self, config: Config):
        """Save configuration to project config file."""
        self.project_config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.project_config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False)
        self._config = None

    def map_repository(self, name: str, path: Path) -> None:
        """Map a repository name to a local checkout in the project config."""
        project = Config.from_dict(self._read_layer(self.project_config_path))
        project.repositories[name] = str(Path(path).expanduser().resolve())
        self.save_project(project)

    def unmap_repository(self, name: str) -> bool:
        """Remove a repository mapping from the project config."""
        project = Config.from_dict(self._read_layer(self.project_config_path))
        if project.repositories.pop(name, None) is None:
            return False
        self.save_project(project)
        return True

    def _merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dicts, override wins."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge(result[key], value)
            else:
                result[key] = value
        return result

    def display(self) -> str:
        """Format config for display."""
        config = self.load()
        lines = ["Configuration:", "", "Repositories:"]
        if config.repositories:
            for name, path in sorted(config.repositories.items()):
                lines.append(f"  {name}: {path}")
        else:
            lines.append("  (none mapped)")
        lines.extend([
            "",
            f"Backend: {config.backend}",
            f"Workers: {config.workers}",
            f"Log level: {config.log_level}",
            "",
            "Config files:",
            f"  User: {self.user_config_path}",
            f"  Project: {self.project_config_path}",
        ])
        if self.config_file is not None:
            lines.append(f"  Explicit: {self.config_file}")
        return "\n".join(lines)


def get_config(project_dir: Optional[Path] = None) -> Config:
    """Load configuration for a project."""
    return ConfigManager(project_dir).load()
