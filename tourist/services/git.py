"""
Git Adapter — Versions and line diffs from a git checkout

Implements VersionAdapter by shelling out to `git`:
- Current version: `git rev-parse --verify HEAD`
- Committed diff: `git diff <commit> HEAD`
- Dirty diff: `git diff <commit>` (working copy, uncommitted edits included)

Diffs run with rename detection (-M), --minimal and --ignore-space-at-eol,
scoped to the repository root with --relative so a repository may be mapped
to a subdirectory of a larger checkout. The unified diff is parsed into one
FileChanges per source path.
"""

import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

from ..core.delta import FileChanges
from ..errors import ExternalStateError
from .versions import RepositoryVersion, TreeChanges, VersionAdapter, VersionBackend

logger = logging.getLogger(__name__)

DIFF_ARGS: List[str] = [
    "diff",
    "--no-color",
    "--no-ext-diff",
    "--minimal",
    "--ignore-space-at-eol",
    "-M",
    "--relative",
    "--src-prefix=a/",
    "--dst-prefix=b/",
]

HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")

NULL_PATH = "/dev/null"

_ESCAPES = {"a": "\a", "b": "\b", "f": "\f", "n": "\n", "r": "\r",
            "t": "\t", "v": "\v", "\\": "\\", '"': '"'}


def _unquote(path: str) -> str:
    """Undo git's C-style quoting of unusual file names."""
    if not (len(path) >= 2 and path.startswith('"') and path.endswith('"')):
        return path
    body = path[1:-1]
    out = bytearray()
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\" or i + 1 >= len(body):
            out.extend(ch.encode("utf-8"))
            i += 1
            continue
        nxt = body[i + 1]
        if nxt in "01234567" and i + 4 <= len(body):
            out.append(int(body[i + 1:i + 4], 8))
            i += 4
        else:
            out.extend(_ESCAPES.get(nxt, nxt).encode("utf-8"))
            i += 2
    return out.decode("utf-8", errors="replace")


def _strip_prefix(path: str, prefix: str) -> Optional[str]:
    path = _unquote(path.rstrip("\t"))
    if path == NULL_PATH:
        return None
    if path.startswith(prefix):
        return path[len(prefix):]
    return path


def _header_path(rest: str) -> Optional[str]:
    """Best-effort path from `diff --git a/P b/P` when both sides match."""
    if rest.startswith('"'):
        return None
    half = (len(rest) - 1) // 2
    if len(rest) % 2 == 1 and rest[half] == " ":
        old, new = rest[:half], rest[half + 1:]
        if old.startswith("a/") and new.startswith("b/") and old[2:] == new[2:]:
            return old[2:]
    return None


@dataclass
class _FilePatch:
    """Accumulates one file's section of a unified diff."""
    old_path: Optional[str] = None
    new_path: Optional[str] = None
    header_path: Optional[str] = None
    saw_old: bool = False
    saw_new: bool = False
    additions: Set[int] = field(default_factory=set)
    deletions: Set[int] = field(default_factory=set)
    moves: Dict[int, int] = field(default_factory=dict)

    def source(self) -> Optional[str]:
        if self.saw_old:
            return self.old_path
        return self.old_path or self.header_path

    def target(self) -> Optional[str]:
        if self.saw_new:
            return self.new_path
        return self.new_path or self.header_path

    def to_changes(self) -> FileChanges:
        return FileChanges(
            additions=self.additions,
            deletions=self.deletions,
            moves=self.moves,
            name=self.target() or self.source() or "",
        )


def parse_unified_diff(text: str) -> TreeChanges:
    """
    Parse `git diff` output into FileChanges keyed by source path.

    Files created by the diff (no source) are omitted: no stop can
    reference a line of them at the older version.
    """
    result: TreeChanges = {}
    patch: Optional[_FilePatch] = None
    old_line = new_line = 0
    old_left = new_left = 0

    def flush():
        if patch is None:
            return
        source = patch.source()
        if source is not None:
            result[source] = patch.to_changes()

    for raw in text.split("\n"):
        if old_left > 0 or new_left > 0:
            marker = raw[:1]
            if marker == "\\":
                continue
            if marker == "+":
                patch.additions.add(new_line)
                new_line += 1
                new_left -= 1
            elif marker == "-":
                patch.deletions.add(old_line)
                old_line += 1
                old_left -= 1
            else:
                # Context line (some tools strip the leading space of blank lines)
                patch.moves[old_line] = new_line
                old_line += 1
                new_line += 1
                old_left -= 1
                new_left -= 1
            continue

        if raw.startswith("diff --git "):
            flush()
            patch = _FilePatch(header_path=_header_path(raw[len("diff --git "):]))
            continue

        if patch is None:
            continue

        if raw.startswith("rename from "):
            patch.old_path = _unquote(raw[len("rename from "):])
        elif raw.startswith("rename to "):
            patch.new_path = _unquote(raw[len("rename to "):])
        elif raw.startswith("--- "):
            patch.old_path = _strip_prefix(raw[4:], "a/")
            patch.saw_old = True
        elif raw.startswith("+++ "):
            patch.new_path = _strip_prefix(raw[4:], "b/")
            patch.saw_new = True
        else:
            match = HUNK_HEADER.match(raw)
            if match:
                old_line = int(match.group(1))
                old_left = int(match.group(2)) if match.group(2) is not None else 1
                new_line = int(match.group(3))
                new_left = int(match.group(4)) if match.group(4) is not None else 1
                # A zero-length side starts *after* the given line number
                if old_left == 0:
                    old_line += 1
                if new_left == 0:
                    new_line += 1

    flush()
    return result


class GitAdapter(VersionAdapter):
    """VersionAdapter backed by the `git` command line."""

    backend = VersionBackend.GIT

    def __init__(self, git_executable: str = "git"):
        self.git_executable = git_executable

    def _invoke(self, repo_root: Path, args: List[str]) -> subprocess.CompletedProcess:
        """Run a git command in repo_root, capturing raw bytes."""
        command = [self.git_executable, "-c", "core.quotepath=false"] + args
        logger.debug("git %s (cwd=%s)", " ".join(args), repo_root)
        try:
            return subprocess.run(command, cwd=repo_root, capture_output=True)
        except (OSError, subprocess.SubprocessError) as e:
            raise ExternalStateError(
                f"Could not run git in {repo_root}: {e}",
                path=repo_root,
            ) from e

    def _run_git(self, repo_root: Path, args: List[str]) -> str:
        """
        Run a git command in repo_root and return stdout.

        Output is decoded without newline translation: a lone carriage
        return inside a line stays part of that line, as it does for git.
        """
        result = self._invoke(repo_root, args)
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise ExternalStateError(
                f"git {args[0]} failed in {repo_root}: {stderr}",
                path=repo_root,
            )
        return result.stdout.decode("utf-8", errors="replace")

    def get_current_version(self, repo_root: Path) -> RepositoryVersion:
        try:
            commit = self._run_git(repo_root, ["rev-parse", "--verify", "HEAD"]).strip()
        except ExternalStateError as e:
            raise ExternalStateError(
                f"Cannot determine the checked-out commit of {repo_root}",
                path=repo_root,
            ) from e
        if not commit:
            raise ExternalStateError(f"No commit checked out in {repo_root}", path=repo_root)
        return RepositoryVersion.git(commit)

    def compute_tree_changes(
        self,
        version: RepositoryVersion,
        repo_root: Path,
        dirty: bool
    ) -> TreeChanges:
        if version.backend is not VersionBackend.GIT or not version.commit:
            raise ExternalStateError(
                f"Git cannot diff against a {version.backend.value} version",
                path=repo_root,
            )

        args = DIFF_ARGS + [version.commit]
        if not dirty:
            args.append("HEAD")
        args += ["--", "."]

        changes = parse_unified_diff(self._run_git(repo_root, args))
        logger.debug("Parsed %d changed file(s) since %s (dirty=%s)", len(changes), version, dirty)
        return changes

    def exists_at(self, version: RepositoryVersion, relative_path: str, repo_root: Path) -> bool:
        if not version.commit:
            return False
        # "./" makes the path relative to repo_root, which may be a subdirectory
        result = self._invoke(repo_root, ["cat-file", "-e", f"{version.commit}:./{relative_path}"])
        return result.returncode == 0
