"""
Shared pytest fixtures for the tourist test suite.

Provides:
- MockAdapter: a scriptable VersionAdapter (no git needed)
- repo fixtures: mapped directories under tmp_path
- git helpers and the requires_git marker for end-to-end tests

Usage in tests:
    def test_something(store, repo, mock_adapter):
        write(repo / "a.py", "x\\n")
        tour = store.init("t")
        store.add(tour, StopPosition(repo / "a.py", 1), "stop")
"""

import subprocess
from pathlib import Path
from typing import Dict

import pytest

from tourist.core.paths import RepositoryIndex
from tourist.core.store import TourStore
from tourist.errors import ExternalStateError
from tourist.services.versions import RepositoryVersion, TreeChanges, VersionAdapter, VersionBackend


# ============================================================================
# MOCK ADAPTER
# ============================================================================

class MockAdapter(VersionAdapter):
    """
    VersionAdapter whose versions and diffs are set by the test.

    committed[(commit, root)] and dirty[(commit, root)] hold TreeChanges;
    anything unset is an empty (identity) diff.
    """

    backend = VersionBackend.GIT

    def __init__(self, commit: str = "c1"):
        self.commits: Dict[str, str] = {}
        self.default_commit = commit
        self.committed: Dict[tuple, TreeChanges] = {}
        self.dirty: Dict[tuple, TreeChanges] = {}
        self.failing_roots = set()
        self.uncommitted = set()      # Relative paths absent from every version
        self.calls = 0

    def set_commit(self, root: Path, commit: str) -> None:
        self.commits[str(root)] = commit

    def get_current_version(self, repo_root: Path) -> RepositoryVersion:
        if str(repo_root) in self.failing_roots:
            raise ExternalStateError(f"backend unavailable for {repo_root}")
        return RepositoryVersion.git(self.commits.get(str(repo_root), self.default_commit))

    def compute_tree_changes(self, version, repo_root, dirty) -> TreeChanges:
        self.calls += 1
        if str(repo_root) in self.failing_roots:
            raise ExternalStateError(f"backend unavailable for {repo_root}")
        table = self.dirty if dirty else self.committed
        return dict(table.get((version.commit, str(repo_root)), {}))

    def exists_at(self, version, relative_path, repo_root) -> bool:
        return relative_path not in self.uncommitted


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def numbered(count: int, prefix: str = "line") -> str:
    return "".join(f"{prefix} {i}\n" for i in range(1, count + 1))


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def repo(tmp_path):
    """A mapped repository directory named 'app'."""
    root = tmp_path / "app"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def other_repo(tmp_path):
    """A second mapped repository directory named 'lib'."""
    root = tmp_path / "lib"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def index(repo, other_repo):
    return RepositoryIndex({"app": repo, "lib": other_repo})


@pytest.fixture
def mock_adapter():
    return MockAdapter()


@pytest.fixture
def store(index, mock_adapter):
    """TourStore over the mock adapter (single worker for determinism)."""
    return TourStore(index, adapters={VersionBackend.GIT: mock_adapter}, workers=1)


# ============================================================================
# GIT HELPERS
# ============================================================================

def git_is_available() -> bool:
    """Check if git is installed and working."""
    try:
        result = subprocess.run(["git", "--version"], capture_output=True, text=True, timeout=5)
        return result.returncode == 0
    except (subprocess.SubprocessError, FileNotFoundError, OSError):
        return False


# Decorator for tests that require git
requires_git = pytest.mark.skipif(
    not git_is_available(),
    reason="Git is not installed or not available"
)


def git(repo: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=repo, capture_output=True, text=True, check=True)
    return result.stdout


def commit_all(repo: Path, message: str = "commit") -> str:
    git(repo, "add", "-A")
    git(repo, "commit", "-q", "-m", message)
    return git(repo, "rev-parse", "HEAD").strip()


@pytest.fixture
def git_repo(tmp_path):
    """An initialized git repository with identity configured, no commits."""
    if not git_is_available():
        pytest.skip("Git is not available")
    root = (tmp_path / "gitrepo")
    root.mkdir()
    try:
        git(root, "init", "-q")
        git(root, "config", "user.email", "test@test.com")
        git(root, "config", "user.name", "Test User")
        git(root, "config", "commit.gpgsign", "false")
    except subprocess.CalledProcessError:
        pytest.skip("Could not create git repository")
    return root.resolve()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from the real user config and TOURIST_* variables."""
    from tourist.config import ConfigManager

    for var in ("TOURIST_CONFIG", "TOURIST_BACKEND", "TOURIST_LOG_LEVEL", "TOURIST_PROJECT_PATH"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(ConfigManager, "USER_CONFIG_FILE", tmp_path / "home" / ".tourist" / "config.yaml")
