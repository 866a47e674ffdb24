"""
Tests for Git Adapter — unified diff parsing and end-to-end tracking

These tests validate:
- parse_unified_diff builds additions/deletions/moves per source file
- Renames, deleted files, new files and quoted names
- A stop follows its line through working-copy edits and commits

SKIP CONDITIONS:
- Tests marked 'requires_git' skip if git is not installed
- Parser tests always run (pure Python logic)
"""

import pytest

from conftest import commit_all, git, requires_git, write
from tourist.core.paths import RepositoryIndex
from tourist.core.store import TourStore
from tourist.core.tour import UNMAPPED_LINE, BrokenReason, BrokenStop, LocatedStop, StopPosition
from tourist.errors import ExternalStateError, InputValidationError
from tourist.services.git import GitAdapter, parse_unified_diff
from tourist.services.versions import RepositoryVersion, VersionBackend


# ============================================================================
# PARSER TESTS (No git needed)
# ============================================================================

HELLO_DIFF = """\
diff --git a/hello.txt b/hello.txt
index 1234567..89abcde 100644
--- a/hello.txt
+++ b/hello.txt
@@ -1 +1,3 @@
+Line before
 Hello, world!
+Line after
"""

MULTI_HUNK_DIFF = """\
diff --git a/src/a.py b/src/a.py
index 1111111..2222222 100644
--- a/src/a.py
+++ b/src/a.py
@@ -2,3 +2,2 @@ def f():
 one
-two
 three
@@ -10,0 +10,2 @@
+ten a
+ten b
diff --git a/gone.txt b/gone.txt
deleted file mode 100644
index 3333333..0000000
--- a/gone.txt
+++ /dev/null
@@ -1,2 +0,0 @@
-x
-y
diff --git a/fresh.txt b/fresh.txt
new file mode 100644
index 0000000..4444444
--- /dev/null
+++ b/fresh.txt
@@ -0,0 +1 @@
+new
"""

RENAME_DIFF = """\
diff --git a/old/name.py b/new/name.py
similarity index 100%
rename from old/name.py
rename to new/name.py
diff --git a/mod.py b/moved.py
similarity index 80%
rename from mod.py
rename to moved.py
index 5555555..6666666 100644
--- a/mod.py
+++ b/moved.py
@@ -1,2 +1,2 @@
-a
+A
 b
"""


class TestParseUnifiedDiff:
    """Unified diff -> FileChanges."""

    def test_insertions_around_line(self):
        changes = parse_unified_diff(HELLO_DIFF)["hello.txt"]
        assert changes.additions == {1, 3}
        assert changes.deletions == set()
        assert changes.moves == {1: 2}
        assert changes.name == "hello.txt"

    def test_multiple_hunks(self):
        changes = parse_unified_diff(MULTI_HUNK_DIFF)["src/a.py"]
        assert changes.deletions == {3}
        assert changes.moves == {2: 2, 4: 3}
        assert changes.additions == {10, 11}

    def test_deleted_file(self):
        changes = parse_unified_diff(MULTI_HUNK_DIFF)["gone.txt"]
        assert changes.deletions == {1, 2}

    def test_new_file_omitted(self):
        assert "fresh.txt" not in parse_unified_diff(MULTI_HUNK_DIFF)

    def test_pure_rename(self):
        changes = parse_unified_diff(RENAME_DIFF)["old/name.py"]
        assert changes.name == "new/name.py"
        assert changes.is_identity

    def test_rename_with_edits(self):
        changes = parse_unified_diff(RENAME_DIFF)["mod.py"]
        assert changes.name == "moved.py"
        assert changes.deletions == {1}
        assert changes.additions == {1}
        assert changes.moves == {2: 2}

    def test_quoted_names(self):
        diff = (
            'diff --git "a/caf\\303\\251.txt" "b/caf\\303\\251.txt"\n'
            '--- "a/caf\\303\\251.txt"\n'
            '+++ "b/caf\\303\\251.txt"\n'
            "@@ -1 +1 @@\n"
            "-x\n"
            "+y\n"
        )
        assert "café.txt" in parse_unified_diff(diff)

    def test_no_newline_marker_ignored(self):
        diff = (
            "diff --git a/f b/f\n--- a/f\n+++ b/f\n"
            "@@ -1 +1 @@\n-x\n\\ No newline at end of file\n+y\n"
        )
        changes = parse_unified_diff(diff)["f"]
        assert (changes.deletions, changes.additions) == ({1}, {1})

    def test_empty(self):
        assert parse_unified_diff("") == {}


# ============================================================================
# ADAPTER TESTS (Requires git)
# ============================================================================

@pytest.fixture
def git_store(git_repo):
    index = RepositoryIndex({"repo": git_repo})
    return TourStore(index, adapters={VersionBackend.GIT: GitAdapter()}, workers=1)


@requires_git
class TestGitAdapter:
    """Reading versions from a checkout."""

    def test_current_version(self, git_repo):
        write(git_repo / "a.txt", "a\n")
        commit = commit_all(git_repo)
        assert GitAdapter().get_current_version(git_repo) == RepositoryVersion.git(commit)

    def test_no_commits(self, git_repo):
        with pytest.raises(ExternalStateError):
            GitAdapter().get_current_version(git_repo)

    def test_not_a_repository(self, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        with pytest.raises(ExternalStateError):
            GitAdapter().get_current_version(plain)

    def test_missing_executable(self, git_repo):
        with pytest.raises(ExternalStateError):
            GitAdapter("definitely-not-git").get_current_version(git_repo)

    def test_committed_and_dirty_diffs(self, git_repo):
        write(git_repo / "a.txt", "one\ntwo\n")
        first = RepositoryVersion.git(commit_all(git_repo))
        write(git_repo / "a.txt", "zero\none\ntwo\n")

        adapter = GitAdapter()
        assert adapter.compute_tree_changes(first, git_repo, dirty=False) == {}
        dirty = adapter.compute_tree_changes(first, git_repo, dirty=True)
        assert dirty["a.txt"].additions == {1}


# ============================================================================
# END-TO-END TRACKING (Requires git)
# ============================================================================

@requires_git
class TestTracking:
    """Stops follow their lines through edits and commits."""

    def test_hello_world_refresh(self, git_store, git_repo):
        write(git_repo / "hello.txt", "Hello, world!\n")
        first = commit_all(git_repo, "A")
        tour = git_store.init("hello")
        stop_id = git_store.add(tour, StopPosition(git_repo / "hello.txt", 1), "Greeting")

        write(git_repo / "hello.txt", "Line before\nHello, world!\nLine after\n")
        resolved = git_store.resolve(tour)
        assert isinstance(resolved.stops[0], LocatedStop)
        assert resolved.stops[0].line == 2
        assert git_store.get_stop(tour, stop_id).line == 1

        second = commit_all(git_repo, "B")
        git_store.refresh(tour)
        assert git_store.get_stop(tour, stop_id).line == 2
        assert tour.binding("repo").version == RepositoryVersion.git(second)
        assert second != first
        assert git_store.resolve(tour).stops[0].line == 2

    def test_deleted_line_breaks_stop(self, git_store, git_repo):
        write(git_repo / "abc.txt", "a\nb\nc\n")
        commit_all(git_repo)
        tour = git_store.init("abc")
        git_store.add(tour, StopPosition(git_repo / "abc.txt", 2), "B")
        git_store.add(tour, StopPosition(git_repo / "abc.txt", 3), "C")

        write(git_repo / "abc.txt", "a\nc\n")
        resolved = git_store.resolve(tour)
        assert isinstance(resolved.stops[0], BrokenStop)
        assert resolved.stops[0].reasons == [BrokenReason.LINE_NOT_FOUND]
        assert resolved.stops[1].line == 2

        commit_all(git_repo)
        # Committed but not yet refreshed: the binding still names the old commit
        resolved = git_store.resolve(tour)
        assert isinstance(resolved.stops[0], BrokenStop)
        assert resolved.stops[0].reasons == [BrokenReason.LINE_NOT_FOUND]
        assert resolved.stops[1].line == 2

        git_store.refresh(tour)
        assert tour.stops[0].line == UNMAPPED_LINE
        assert tour.stops[1].line == 2
        assert isinstance(git_store.resolve(tour).stops[0], BrokenStop)

    def test_rename_is_followed(self, git_store, git_repo):
        write(git_repo / "old.txt", "first\nsecond\n")
        commit_all(git_repo)
        tour = git_store.init("rename")
        stop_id = git_store.add(tour, StopPosition(git_repo / "old.txt", 2), "Second")

        git(git_repo, "mv", "old.txt", "new.txt")
        commit_all(git_repo)
        git_store.refresh(tour)

        stop = git_store.get_stop(tour, stop_id)
        assert (stop.relative_path, stop.line) == ("new.txt", 2)
        assert git_store.resolve(tour).stops[0].absolute_path == git_repo / "new.txt"

    def test_add_on_dirty_copy(self, git_store, git_repo):
        write(git_repo / "f.txt", "x\ny\n")
        commit_all(git_repo)
        write(git_repo / "f.txt", "new\nx\ny\n")
        tour = git_store.init("dirty")
        stop_id = git_store.add(tour, StopPosition(git_repo / "f.txt", 3), "Y")
        assert git_store.get_stop(tour, stop_id).line == 2
        assert git_store.resolve(tour).stops[0].line == 3

    def test_carriage_return_inside_line(self, git_store, git_repo):
        """A lone CR is part of a line for git, so it must not shift numbering."""
        (git_repo / "cr.txt").write_bytes(b"x\ny\rz\nw\n")
        commit_all(git_repo)
        tour = git_store.init("cr")
        stop_id = git_store.add(tour, StopPosition(git_repo / "cr.txt", 3), "W")

        (git_repo / "cr.txt").write_bytes(b"x\nq\nw\n")
        assert git_store.resolve(tour).stops[0].line == 3

        commit_all(git_repo)
        git_store.refresh(tour)
        assert git_store.get_stop(tour, stop_id).line == 3

    def test_untracked_file_rejected(self, git_store, git_repo):
        write(git_repo / "base.txt", "base\n")
        commit_all(git_repo)
        write(git_repo / "new.txt", "a\nb\n")
        tour = git_store.init("untracked")
        with pytest.raises(InputValidationError, match="commit it first"):
            git_store.add(tour, StopPosition(git_repo / "new.txt", 2), "B")
        assert tour.stops == []

    def test_staged_file_rejected(self, git_store, git_repo):
        write(git_repo / "base.txt", "base\n")
        commit_all(git_repo)
        write(git_repo / "new.txt", "a\nb\n")
        git(git_repo, "add", "new.txt")
        tour = git_store.init("staged")
        with pytest.raises(InputValidationError):
            git_store.add(tour, StopPosition(git_repo / "new.txt", 2), "B")

    def test_exists_at_subdirectory_root(self, git_repo):
        """A repository mapped to a subdirectory looks paths up relative to it."""
        write(git_repo / "pkg" / "mod.py", "x\n")
        version = RepositoryVersion.git(commit_all(git_repo))
        adapter = GitAdapter()
        assert adapter.exists_at(version, "mod.py", git_repo / "pkg") is True
        assert adapter.exists_at(version, "other.py", git_repo / "pkg") is False
