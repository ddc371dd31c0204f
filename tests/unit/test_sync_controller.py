"""Unit tests for SyncController."""

import tempfile
from datetime import datetime
from pathlib import Path
from unittest.mock import Mock

import pytest

from gitshare.protocols import CommandResult
from gitshare.schemas import ErrorKind, MergeOutcome, SessionState, User
from gitshare.services.changelog_parser import LOG_FORMAT_ARGS
from gitshare.services.sync_controller import SyncController
from tests.unit.fake_git import FakeGit, FakeProcess

REMOTE_URL = "ssh://git@example.com/shared.git"

OK = CommandResult(0, "", "")

LOG_OUTPUT = (
    "commit 0123456789abcdef\n"
    "Author: Bob <bob@example.com>\n"
    "Date:   2024-03-05 09:00:00 +0000\n"
    "\n"
    "    + ‘a.txt’\n"
    "\n"
    ":000000 100644 0000000 1111111 A\ta.txt\n"
)


class TestSyncController:
    """Test cases for SyncController class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        (self.root / ".git").mkdir()
        self.merge_head = self.root / ".git" / "MERGE_HEAD"

        self.git = FakeGit(self.root)
        self.git.respond("rev-parse", "--abbrev-ref", "HEAD", stdout="main\n")

        self.session = SessionState(
            user=User(name="Alice", email="alice@example.com"),
            remote_url=REMOTE_URL,
        )
        self.on_conflict_resolved = Mock()
        self.controller = self._controller()

    def teardown_method(self):
        self.temp_dir.cleanup()

    def _controller(self, session=None, **options):
        controller = SyncController(
            self.git,
            session or self.session,
            on_conflict_resolved=self.on_conflict_resolved,
            **options,
        )
        controller.resolver.clock = lambda: datetime(2024, 3, 5, 14, 7)
        return controller

    def _simulate_conflict(self, resolvable: bool = True):
        """Make `merge FETCH_HEAD` leave notes.txt conflicted."""

        @self.git.on("merge", "FETCH_HEAD")
        def merge(args):
            self.merge_head.write_text("feedface")
            (self.root / "notes.txt").write_text("ours")
            return CommandResult(1, "CONFLICT (content): Merge conflict in notes.txt", "")

        @self.git.on("status", "--porcelain")
        def status(args):
            return CommandResult(0, "UU notes.txt\n" if self.merge_head.exists() else "", "")

        @self.git.on("checkout", "--theirs")
        def checkout_theirs(args):
            (self.root / args[-1]).write_text("theirs")
            return OK

        @self.git.on("commit", "--message")
        def commit(args):
            if resolvable:
                self.merge_head.unlink(missing_ok=True)
            return OK

    # sync up

    def test_sync_up_commits_and_pushes(self):
        reported = []
        self.git.respond("status", "--porcelain", stdout="?? new.txt\n")
        self.git.streams["push"] = FakeProcess(
            [
                "Writing objects:  50% (1/2)",
                "Writing objects: 100% (2/2), 1.00 KiB | 1.00 KiB/s, done.",
                "To ssh://git@example.com/shared.git",
            ]
        )

        assert self.controller.sync_up(on_progress=reported.append) is True

        assert self.controller.error == ErrorKind.NONE
        assert (
            "commit", "--all",
            "--message", "+ ‘new.txt’",
            "--author", "Alice <alice@example.com>",
        ) in self.git.calls
        assert ("push", "--progress", REMOTE_URL, "main") in self.git.calls
        assert [p.percentage for p in reported] == [pytest.approx(60.0), pytest.approx(100.0)]
        assert self.controller.has_unsynced_changes is False
        assert (self.root / ".git" / "info" / "size").exists()

    def test_sync_up_uses_given_message(self):
        self.git.respond("status", "--porcelain", stdout=" M notes.txt\n")

        assert self.controller.sync_up(message="Weekly notes") is True
        assert self.git.called("commit", "--all", "--message", "Weekly notes")

    def test_sync_up_without_changes_does_not_commit(self):
        assert self.controller.sync_up() is True

        assert not self.git.called("commit")
        assert self.git.called("push")

    def test_sync_up_stops_on_first_error_line(self):
        process = FakeProcess(
            [
                "Permission denied (publickey).",
                "fatal: Could not read from remote repository.",
            ]
        )
        self.git.respond("status", "--porcelain", stdout=" M notes.txt\n")
        self.git.streams["push"] = process

        assert self.controller.sync_up() is False

        assert self.controller.error == ErrorKind.AUTHENTICATION_FAILED
        assert process.terminated is True
        assert self.controller.has_unsynced_changes is True

    def test_sync_up_failed_push_without_diagnostics(self):
        self.git.streams["push"] = FakeProcess([], status=128)

        assert self.controller.sync_up() is False
        assert self.controller.error == ErrorKind.HOST_UNREACHABLE

    def test_sync_up_unreadable_files(self):
        self.git.respond("add", "--all", status=128, stderr="error: open(\"locked.db\"): Permission denied")

        assert self.controller.sync_up() is False

        assert self.controller.error == ErrorKind.UNREADABLE_FILES
        assert not self.git.called("push")

    def test_sync_up_resets_previous_error(self):
        self.controller.error = ErrorKind.HOST_UNREACHABLE

        assert self.controller.sync_up() is True
        assert self.controller.error == ErrorKind.NONE

    def test_sync_up_finishes_interrupted_merge_first(self):
        self._simulate_conflict()
        self.merge_head.write_text("feedface")
        (self.root / "notes.txt").write_text("<<<<<<< HEAD\nours\n=======\ntheirs\n>>>>>>> feedface\n")

        assert self.controller.sync_up() is True

        calls = self.git.calls
        resolution = calls.index(("commit", "--message", "Conflict resolution"))
        assert resolution < calls.index(("push", "--progress", REMOTE_URL, "main"))
        assert not self.git.called("commit", "--all")
        assert (self.root / "notes.txt").read_text() == "theirs"
        assert self.controller.merge_outcome == MergeOutcome.CONFLICTS_RESOLVED

    def test_sync_up_refuses_unresolved_merge(self):
        controller = self._controller(conflict_retry_limit=2)
        self._simulate_conflict(resolvable=False)
        self.merge_head.write_text("feedface")
        (self.root / "notes.txt").write_text("<<<<<<< HEAD\nours\n=======\ntheirs\n>>>>>>> feedface\n")

        assert controller.sync_up() is False

        assert controller.merge_outcome == MergeOutcome.GAVE_UP
        assert not self.git.called("commit", "--all")
        assert not self.git.called("push")

    # sync down and merge

    def test_sync_down_finishes_interrupted_merge_first(self):
        self._simulate_conflict()
        self.merge_head.write_text("feedface")
        (self.root / "notes.txt").write_text("ours")

        assert self.controller.sync_down() is True

        calls = self.git.calls
        assert calls.index(("commit", "--message", "Conflict resolution")) < calls.index(
            ("fetch", "--progress", REMOTE_URL, "main")
        )

    def test_sync_down_reports_gave_up(self):
        controller = self._controller(conflict_retry_limit=3)
        self._simulate_conflict(resolvable=False)

        assert controller.sync_down() is False

        assert controller.merge_outcome == MergeOutcome.GAVE_UP
        assert controller.error == ErrorKind.NONE

    def test_sync_down_fetches_and_merges(self):
        self.git.streams["fetch"] = FakeProcess(["Receiving objects: 100% (3/3), done."])

        assert self.controller.sync_down() is True

        assert ("fetch", "--progress", REMOTE_URL, "main") in self.git.calls
        calls = self.git.calls
        assert (
            calls.index(("config", "core.ignorecase", "true"))
            < calls.index(("merge", "FETCH_HEAD"))
            < calls.index(("config", "core.ignorecase", "false"))
        )

    def test_sync_down_fetch_error_skips_merge(self):
        self.git.streams["fetch"] = FakeProcess(
            ["fatal: 'shared.git' does not appear to be a git repository"], status=128
        )

        assert self.controller.sync_down() is False

        assert self.controller.error == ErrorKind.NOT_FOUND
        assert not self.git.called("merge")

    def test_merge_commits_local_changes_first(self):
        self.git.respond("status", "--porcelain", stdout=" M notes.txt\n")

        assert self.controller.merge() == MergeOutcome.MERGED

        calls = self.git.calls
        commit = next(i for i, c in enumerate(calls) if c[:2] == ("commit", "--all"))
        assert calls[commit][3] == "/ ‘notes.txt’"
        assert commit < calls.index(("merge", "FETCH_HEAD"))

    def test_merge_aborts_stale_merge(self):
        self.merge_head.write_text("feedface")

        assert self.controller.merge() == MergeOutcome.STALE_MERGE_ABORTED

        assert ("merge", "--abort") in self.git.calls
        assert not self.git.called("merge", "FETCH_HEAD")
        assert not self.git.called("commit")

    def test_sync_down_fails_on_stale_merge(self):
        self.merge_head.write_text("feedface")

        assert self.controller.sync_down() is False
        assert self.controller.merge_outcome == MergeOutcome.STALE_MERGE_ABORTED

    def test_merge_unreadable_files(self):
        self.git.respond(
            "merge", "FETCH_HEAD",
            status=1,
            stderr="error: cannot stat 'photos/cat.jpg': Permission denied\n",
        )

        assert self.controller.merge() == MergeOutcome.UNREADABLE_FILES

        assert self.controller.error == ErrorKind.UNREADABLE_FILES
        assert ("merge", "--abort") in self.git.calls
        assert self.git.calls[-1] == ("config", "core.ignorecase", "false")

    def test_merge_resolves_conflicts(self):
        self._simulate_conflict()

        assert self.controller.merge() == MergeOutcome.CONFLICTS_RESOLVED

        assert (self.root / "notes.txt").read_text() == "theirs"
        assert (self.root / "notes (Alice, Mar 5 14h07).txt").read_text() == "ours"
        assert not self.controller.in_merge
        self.on_conflict_resolved.assert_called_once()
        assert self.git.calls[-1] == ("config", "core.ignorecase", "false")

    def test_merge_gives_up_after_retry_limit(self):
        controller = self._controller(conflict_retry_limit=3)
        self._simulate_conflict(resolvable=False)

        assert controller.merge() == MergeOutcome.GAVE_UP

        passes = [c for c in self.git.calls if c[:2] == ("commit", "--message")]
        assert len(passes) == 3
        assert MergeOutcome.GAVE_UP.succeeded is False

    def test_merge_retries_after_transient_failure(self):
        self._simulate_conflict()
        attempts = []

        def flaky_resolve():
            attempts.append(1)
            if len(attempts) == 1:
                raise OSError("file is busy")
            self.merge_head.unlink()
            return True

        self.controller.resolver.resolve = flaky_resolve

        assert self.controller.merge() == MergeOutcome.CONFLICTS_RESOLVED
        assert len(attempts) == 2

    def test_ensure_clean_without_merge(self):
        assert self.controller.ensure_clean() == MergeOutcome.MERGED
        assert self.git.calls == []

    def test_ensure_clean_finishes_interrupted_merge(self):
        self._simulate_conflict()
        self.merge_head.write_text("feedface")
        (self.root / "notes.txt").write_text("ours")

        assert self.controller.ensure_clean() == MergeOutcome.CONFLICTS_RESOLVED
        assert not self.controller.in_merge

    # history

    def test_change_sets_fall_back_to_recent_commits(self):
        self.git.respond("log", "--since=1.month", stdout="")
        self.git.respond("log", "-n", "75", stdout=LOG_OUTPUT)

        change_sets = self.controller.get_change_sets()

        assert len(change_sets) == 1
        assert change_sets[0].user.name == "Bob"
        assert change_sets[0].remote_url == REMOTE_URL
        assert ("log", "-n", "75", *LOG_FORMAT_ARGS) in self.git.calls

    def test_change_sets_within_window(self):
        self.git.respond("log", "--since=1.month", stdout=LOG_OUTPUT)

        assert len(self.controller.get_change_sets()) == 1
        assert not self.git.called("log", "-n")

    def test_change_sets_for_path(self):
        self.git.respond("log", *LOG_FORMAT_ARGS, "--", "docs/a.txt", stdout=LOG_OUTPUT)

        change_sets = self.controller.get_change_sets("docs\\a.txt")

        assert len(change_sets) == 1
        assert ("log", *LOG_FORMAT_ARGS, "--", "docs/a.txt") in self.git.calls

    # restore

    def test_restore_file(self):
        self.git.blobs[("show", "abc123:docs/a.txt")] = b"old content\n"
        destination = self.root / "restored.txt"

        assert self.controller.restore_file("docs/a.txt", "abc123", destination) is True
        assert destination.read_bytes() == b"old content\n"

    def test_restore_file_unknown_revision(self):
        assert self.controller.restore_file("a.txt", "deadbeef", self.root / "out.txt") is False

    def test_restore_file_requires_arguments(self):
        with pytest.raises(ValueError):
            self.controller.restore_file(None, "abc123", self.root / "out.txt")
        with pytest.raises(ValueError):
            self.controller.restore_file("a.txt", None, self.root / "out.txt")

    def test_restore_file_encrypted(self):
        controller = self._controller(
            session=SessionState(user=self.session.user, remote_url=REMOTE_URL, encrypted=True)
        )

        @self.git.on("checkout", "abc123")
        def checkout(args):
            (self.root / args[-1]).write_text("decrypted")
            return OK

        destination = self.root / "restored.txt"

        assert controller.restore_file("a.txt", "abc123", destination) is True
        assert destination.read_text() == "decrypted"
        assert self.git.calls[-1] == ("checkout", "HEAD", "--", "a.txt")

    # working copy state

    def test_has_remote_changes(self):
        self.git.respond("rev-parse", "HEAD", stdout="a" * 40 + "\n")
        self.git.respond("ls-remote", stdout="b" * 40 + "\trefs/heads/main\n")
        self.git.respond("merge-base", status=1)

        assert self.controller.has_remote_changes() is True

    def test_no_remote_changes_when_heads_match(self):
        self.git.respond("rev-parse", "HEAD", stdout="a" * 40 + "\n")
        self.git.respond("ls-remote", stdout="a" * 40 + "\trefs/heads/main\n")

        assert self.controller.has_remote_changes() is False

    def test_remote_head_already_merged(self):
        self.git.respond("rev-parse", "HEAD", stdout="a" * 40 + "\n")
        self.git.respond("ls-remote", stdout="b" * 40 + "\trefs/heads/main\n")

        assert self.controller.has_remote_changes() is False

    def test_unreachable_remote_has_no_changes(self):
        self.git.respond("ls-remote", status=128)

        assert self.controller.has_remote_changes() is False

    def test_current_revision(self):
        self.git.respond("rev-parse", "HEAD", stdout="c" * 40 + "\n")
        assert self.controller.current_revision() == "c" * 40

    def test_current_revision_of_empty_repository(self):
        self.git.respond("rev-parse", "HEAD", status=128, stderr="fatal: ambiguous argument 'HEAD'")
        assert self.controller.current_revision() is None

    def test_has_local_changes_fills_empty_directories(self):
        (self.root / "photos").mkdir()

        assert self.controller.has_local_changes() is False
        assert (self.root / "photos" / ".empty").exists()

    def test_unsynced_changes_marker(self):
        assert self.controller.has_unsynced_changes is False

        self.controller.has_unsynced_changes = True
        assert (self.root / ".git" / "has_unsynced_changes").exists()

        self.controller.has_unsynced_changes = False
        assert self.controller.has_unsynced_changes is False

    def test_sizes(self):
        assert self.controller.size == 0
        (self.root / "a.txt").write_text("hello")

        self.controller.update_sizes()

        assert self.controller.size == 5
        assert self.controller.history_size >= 0

    def test_unsynced_changes_list_files_in_new_directories(self):
        self.git.respond("status", "--porcelain", stdout="?? photos/cat.jpg\n?? empty/\n")

        changes = self.controller.unsynced_changes()

        assert ("status", "--porcelain", "--untracked-files=all") in self.git.calls
        assert [(c.path, c.is_folder) for c in changes] == [("photos/cat.jpg", False), ("empty", True)]

    def test_exclude_paths(self):
        assert self.controller.exclude_paths == [".git"]
