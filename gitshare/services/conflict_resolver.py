"""Resolves the paths left unmerged by `git merge`.

Conflict status codes and how they are handled:

    DD  both deleted          -> nothing to do
    AU  added by us           -> use theirs, keep ours as a timestamped copy
    UA  added by them         -> use theirs, keep ours as a timestamped copy
    AA  both added            -> use theirs, keep ours as a timestamped copy
    UU  both modified         -> use theirs, keep ours as a timestamped copy
    DU  deleted by us         -> stage their version
    UD  deleted by them       -> check out their (deleted) state
    ??  untracked             -> staged with everything else

Placeholder and marker files always keep the local copy.
"""

import logging
import shutil
from datetime import datetime
from pathlib import PurePosixPath
from typing import Callable, Optional

from ..protocols import GitCommandProtocol
from ..schemas import User
from .file_utils import hide_file
from .path_codec import is_reserved
from .status_parser import parse_status_entry

logger = logging.getLogger(__name__)

CONTENT_CONFLICT_CODES = ("UU", "AA", "AU", "UA")

COMMIT_MESSAGE = "Conflict resolution"


class ConflictResolver:
    """Runs one resolution pass over the current status of a working copy."""

    def __init__(
        self,
        git: GitCommandProtocol,
        user: User,
        on_conflict_resolved: Optional[Callable[[], None]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.git = git
        self.user = user
        self.on_conflict_resolved = on_conflict_resolved
        self.clock = clock

    @property
    def name(self) -> str:
        return self.git.working_dir.name

    def resolve(self) -> bool:
        """Resolve every listed path and commit; returns True if a real conflict was handled.

        OSError and git failures propagate so the caller can retry the pass.
        """
        status = self.git.invoke("status", "--porcelain")
        conflict_handled = False

        for line in status.stdout.splitlines():
            if not line.strip():
                continue

            try:
                code, paths = parse_status_entry(line)
            except ValueError as e:
                logger.info("%s | Can't read status line %r: %s", self.name, line, e)
                continue

            logger.info("%s | Conflict type: %s", self.name, line)
            if self.resolve_path(code, paths[-1]):
                conflict_handled = True

        self.git.invoke("add", "--all")
        self.git.invoke("commit", "--message", COMMIT_MESSAGE)

        if conflict_handled and self.on_conflict_resolved:
            self.on_conflict_resolved()

        return conflict_handled

    def resolve_path(self, code: str, path: str) -> bool:
        """Apply the resolution for one status code; True for a content conflict."""
        if is_reserved(path):
            logger.info("%s | Ignoring conflict in special file: %s", self.name, path)
            self.git.invoke("checkout", "--ours", "--", path)
            hide_file(self.git.working_dir / path)
            return False

        logger.info("%s | Resolving: %s", self.name, path)

        if code in CONTENT_CONFLICT_CODES:
            self._keep_both(path)
            return True

        if code == "DU":
            self.git.invoke("add", "--", path)
        elif code == "UD":
            self.git.invoke("checkout", "--theirs", "--", path)
        elif code == "DD":
            logger.info("%s | No need to resolve: %s", self.name, path)
        elif code == "??":
            logger.info("%s | Found new file, no need to resolve: %s", self.name, path)
        else:
            logger.info("%s | Don't know what to do with: %s %s", self.name, code, path)

        return False

    def conflict_copy_name(self, file_name: str) -> str:
        """Name for the local copy, e.g. `notes (Alice, Mar 5 14h07).txt`."""
        # No colons, Windows doesn't allow them in file names
        now = self.clock()
        stamp = f"{now:%b} {now.day} {now.hour}h{now:%M}"
        name = PurePosixPath(file_name)
        return f"{name.stem} ({self.user.name}, {stamp}){name.suffix}"

    def _keep_both(self, path: str) -> None:
        self.git.invoke("checkout", "--ours", "--", path)

        ours = self.git.working_dir / path
        copy = ours.with_name(self.conflict_copy_name(ours.name))

        if ours.exists() and not copy.exists():
            try:
                shutil.move(str(ours), str(copy))
            except OSError as e:
                logger.warning("%s | Could not keep local copy of %s: %s", self.name, path, e)

        self.git.invoke("checkout", "--theirs", "--", path)
