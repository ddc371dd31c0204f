"""Keeps a working copy and its remote in sync through git."""

import logging
import shutil
from pathlib import Path
from typing import Callable, List, Optional

from git.exc import GitCommandError

from ..protocols import GitCommandProtocol
from ..schemas import (
    Change,
    ChangeSet,
    ErrorKind,
    MergeOutcome,
    SessionState,
    SyncProgress,
)
from .changelog_parser import DEFAULT_MAX_CHANGES, LOG_FORMAT_ARGS, ChangeLogParser
from .conflict_resolver import ConflictResolver
from .error_classifier import classify
from .file_utils import calculate_size, fill_empty_directories
from .progress_parser import ProgressParser
from .status_parser import format_commit_message, parse_status

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[SyncProgress], None]


class SyncController:
    """Synchronizes a git working copy with its remote.

    Expected failures never raise: operations return False (or a failed
    MergeOutcome) and leave the reason in ``error``.
    """

    def __init__(
        self,
        git: GitCommandProtocol,
        session: SessionState,
        history_window: str = "1.month",
        history_fallback_limit: int = 75,
        max_changes: int = DEFAULT_MAX_CHANGES,
        conflict_retry_limit: int = 10,
        on_progress: Optional[ProgressCallback] = None,
        on_conflict_resolved: Optional[Callable[[], None]] = None,
    ):
        self.git = git
        self.session = session
        self.history_window = history_window
        self.history_fallback_limit = history_fallback_limit
        self.conflict_retry_limit = conflict_retry_limit
        self.on_progress = on_progress
        self.on_conflict_resolved = on_conflict_resolved
        self.error = ErrorKind.NONE
        self.merge_outcome: Optional[MergeOutcome] = None

        self.resolver = ConflictResolver(
            git, session.user, on_conflict_resolved=self._conflict_resolved
        )
        self.changelog_parser = ChangeLogParser(
            remote_url=session.remote_url, max_changes=max_changes
        )

    @property
    def local_path(self) -> Path:
        return self.git.working_dir

    @property
    def name(self) -> str:
        return self.local_path.name

    @property
    def git_dir(self) -> Path:
        return self.local_path / ".git"

    @property
    def exclude_paths(self) -> List[str]:
        return [".git"]

    @property
    def in_merge(self) -> bool:
        """True while an unresolved merge is in progress."""
        return (self.git_dir / "MERGE_HEAD").exists()

    @property
    def has_unsynced_changes(self) -> bool:
        return self._unsynced_marker.exists()

    @has_unsynced_changes.setter
    def has_unsynced_changes(self, value: bool) -> None:
        if value:
            self._unsynced_marker.write_text("")
        else:
            self._unsynced_marker.unlink(missing_ok=True)

    @property
    def _unsynced_marker(self) -> Path:
        return self.git_dir / "has_unsynced_changes"

    @property
    def size(self) -> float:
        """Cached size of the working copy in bytes."""
        return self._read_size("size")

    @property
    def history_size(self) -> float:
        """Cached size of the history in bytes."""
        return self._read_size("history_size")

    def current_branch(self) -> str:
        return self.git.invoke("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def current_revision(self) -> Optional[str]:
        result = self.git.invoke("rev-parse", "HEAD")
        if result.status != 0:
            return None
        return result.stdout.strip()

    def has_local_changes(self) -> bool:
        fill_empty_directories(self.local_path)
        return bool(self.git.invoke("status", "--porcelain").stdout.strip())

    def has_remote_changes(self) -> bool:
        logger.info("%s | Checking for remote changes...", self.name)
        current_revision = self.current_revision()

        result = self.git.invoke(
            "ls-remote", "--heads", "--exit-code",
            self.session.remote_url, self.current_branch(),
        )
        if result.status != 0:
            return False

        remote_revision = result.stdout[:40]
        if remote_revision == current_revision:
            logger.info("%s | No remote changes, local+remote: %s", self.name, current_revision)
            return False

        if self.git.invoke("merge-base", "--is-ancestor", remote_revision, "HEAD").status == 0:
            logger.info("%s | Remote %s is already in our history", self.name, remote_revision)
            return False

        logger.info(
            "%s | Remote changes found, local: %s, remote: %s",
            self.name, current_revision, remote_revision,
        )
        self.error = ErrorKind.NONE
        return True

    def unsynced_changes(self) -> List[Change]:
        # List files inside untracked directories instead of the directory itself
        output = self.git.invoke("status", "--porcelain", "--untracked-files=all").stdout
        return parse_status(output)

    def sync_up(self, message: Optional[str] = None, on_progress: Optional[ProgressCallback] = None) -> bool:
        """Commit local changes and push them to the remote."""
        self.error = ErrorKind.NONE
        self.merge_outcome = None

        # Committing now would conclude the merge with conflict markers in it
        if self.in_merge and not self.ensure_clean().succeeded:
            return False

        if not self._add():
            self.error = ErrorKind.UNREADABLE_FILES
            logger.info("%s | Error status changed to %s", self.name, self.error.value)
            return False

        changes = self.unsynced_changes()
        if changes:
            self.has_unsynced_changes = True
            self._commit(message or format_commit_message(changes))

        if not self._transfer(
            ("push", "--progress", self.session.remote_url, self.current_branch()),
            on_progress,
        ):
            return False

        self.has_unsynced_changes = False
        return True

    def sync_down(self, on_progress: Optional[ProgressCallback] = None) -> bool:
        """Fetch remote changes and merge them into the working copy."""
        self.error = ErrorKind.NONE
        self.merge_outcome = None

        if self.in_merge and not self.ensure_clean().succeeded:
            return False

        if not self._transfer(
            ("fetch", "--progress", self.session.remote_url, self.current_branch()),
            on_progress,
        ):
            return False

        return self.merge().succeeded

    def merge(self) -> MergeOutcome:
        """Merge FETCH_HEAD, resolving conflicts when git can't.

        The outcome is also kept in ``merge_outcome``.
        """
        self.merge_outcome = self._merge()
        return self.merge_outcome

    def ensure_clean(self) -> MergeOutcome:
        """Finish a merge that was interrupted before its conflicts were resolved."""
        if not self.in_merge:
            return MergeOutcome.MERGED

        self._set_ignore_case(True)
        try:
            self.merge_outcome = self._resolve_conflicts()
        finally:
            self._set_ignore_case(False)
        return self.merge_outcome

    def _merge(self) -> MergeOutcome:
        # A merge left over from an earlier failure: back out, retry on the next pull
        if self.in_merge:
            logger.info("%s | Aborting stale merge", self.name)
            self.git.invoke("merge", "--abort")
            return MergeOutcome.STALE_MERGE_ABORTED

        # Local changes take part in the merge as a commit of their own
        changes = self.unsynced_changes()
        if changes:
            self._add()
            self._commit(format_commit_message(changes))

        # Ignore case while merging, so renames that only change case don't conflict
        self._set_ignore_case(True)
        try:
            result = self.git.invoke("merge", "FETCH_HEAD")
            if result.status == 0:
                return MergeOutcome.MERGED

            # error: cannot stat 'filename': Permission denied
            if "error: cannot stat" in result.stderr or "Permission denied" in result.stderr:
                self.error = ErrorKind.UNREADABLE_FILES
                logger.info("%s | Error status changed to %s", self.name, self.error.value)
                self.git.invoke("merge", "--abort")
                return MergeOutcome.UNREADABLE_FILES

            logger.info("%s | %s", self.name, result.stderr.strip() or result.stdout.strip())
            logger.info("%s | Conflict detected, trying to get out...", self.name)
            return self._resolve_conflicts()
        finally:
            self._set_ignore_case(False)

    def get_change_sets(self, path: Optional[str] = None) -> List[ChangeSet]:
        """Recent history, grouped per user and day, or the history of one path."""
        if path is not None:
            path = path.replace("\\", "/")
            output = self.git.invoke("log", *LOG_FORMAT_ARGS, "--", path).stdout
            return self.changelog_parser.parse(output, path)

        output = self.git.invoke("log", f"--since={self.history_window}", *LOG_FORMAT_ARGS).stdout
        if not output.strip():
            output = self.git.invoke(
                "log", "-n", str(self.history_fallback_limit), *LOG_FORMAT_ARGS
            ).stdout

        return self.changelog_parser.parse(output)

    def restore_file(self, path: str, revision: str, destination: Path) -> bool:
        """Write the content `path` had at `revision` to `destination`."""
        if path is None:
            raise ValueError("path is required")
        if revision is None:
            raise ValueError("revision is required")

        logger.info('%s | Restoring "%s" (revision %s)', self.name, path, revision)
        destination = Path(destination)

        # git show can't decrypt, so go through the working copy instead
        if self.session.encrypted:
            self.git.invoke("checkout", revision, "--", path)
            try:
                shutil.move(str(self.local_path / path), str(destination))
            except OSError:
                logger.info('%s | Could not move "%s" to "%s"', self.name, path, destination)
            self.git.invoke("checkout", "HEAD", "--", path)
            return destination.exists()

        try:
            content = self.git.invoke_bytes("show", f"{revision}:{path}")
        except GitCommandError as e:
            logger.warning("%s | Could not read %s at %s: %s", self.name, path, revision, e)
            return False

        destination.write_bytes(content)
        return True

    def update_sizes(self) -> None:
        size = calculate_size(self.local_path)
        history_size = calculate_size(self.git_dir)

        info_dir = self.git_dir / "info"
        try:
            info_dir.mkdir(parents=True, exist_ok=True)
            (info_dir / "size").write_text(str(size))
            (info_dir / "history_size").write_text(str(history_size))
        except OSError as e:
            logger.warning("%s | Could not store sizes: %s", self.name, e)

    def _read_size(self, file_name: str) -> float:
        try:
            return float((self.git_dir / "info" / file_name).read_text())
        except (OSError, ValueError):
            return 0

    def _add(self) -> bool:
        return self.git.invoke("add", "--all").status == 0

    def _commit(self, message: Optional[str]) -> None:
        if not message:
            return
        user = self.session.user
        self.git.invoke(
            "commit", "--all",
            "--message", message,
            "--author", f"{user.name} <{user.email}>",
        )

    def _set_ignore_case(self, value: bool) -> None:
        self.git.invoke("config", "core.ignorecase", "true" if value else "false")

    def _transfer(self, args: tuple, on_progress: Optional[ProgressCallback]) -> bool:
        """Run push or fetch, routing each diagnostic line to progress or error handling."""
        process = self.git.invoke_streamed(*args)
        parser = ProgressParser(on_progress or self.on_progress)

        for line in process.lines():
            if parser.feed(line):
                continue

            logger.info("%s | %s", self.name, line)
            self.error = classify(line)
            if self.error != ErrorKind.NONE:
                logger.info("%s | Error status changed to %s", self.name, self.error.value)
                process.terminate()
                return False

        status = process.wait()
        self.update_sizes()

        if status == 0:
            return True

        self.error = ErrorKind.HOST_UNREACHABLE
        return False

    def _resolve_conflicts(self) -> MergeOutcome:
        passes = 0

        while passes < self.conflict_retry_limit:
            if not (self.in_merge and self.has_local_changes()):
                break
            passes += 1
            try:
                self.resolver.resolve()
            except (OSError, GitCommandError) as e:
                logger.info(
                    "%s | Failed to resolve conflict (pass %d/%d), trying again: %s",
                    self.name, passes, self.conflict_retry_limit, e,
                )
        else:
            if self.in_merge and self.has_local_changes():
                logger.error(
                    "%s | Gave up resolving conflicts after %d passes",
                    self.name, self.conflict_retry_limit,
                )
                return MergeOutcome.GAVE_UP

        logger.info("%s | Conflict resolved", self.name)
        return MergeOutcome.CONFLICTS_RESOLVED if passes else MergeOutcome.MERGED

    def _conflict_resolved(self) -> None:
        if self.on_conflict_resolved:
            self.on_conflict_resolved()
