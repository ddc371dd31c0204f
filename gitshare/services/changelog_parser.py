"""Parses `git log --raw` output into changesets grouped per user and day."""

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Iterator, List, Optional

from ..schemas import Change, ChangeSet, ChangeType, User
from .path_codec import MARKER_NAME, decode_path, split_placeholder

logger = logging.getLogger(__name__)

# Arguments that produce the format this parser reads
LOG_FORMAT_ARGS = (
    "--raw",
    "--find-renames",
    "--date=iso",
    "--format=medium",
    "--no-color",
    "--no-merges",
)

DEFAULT_MAX_CHANGES = 250

_COMMIT_PREFIX = "commit "
_AUTHOR_PREFIX = "Author:"
_DATE_PREFIX = "Date:"
_MERGE_PREFIX = "Merge:"
_RECORD_PREFIX = ":"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S %z"

_TYPE_LETTERS = {
    "M": ChangeType.EDITED,
    "D": ChangeType.DELETED,
    "R": ChangeType.MOVED,
}


class ChangeLogParser:
    """Turns raw commit history into ChangeSet records.

    The text is read as a sequence of commit blocks:

        commit <revision>
        Author: <name> <<email>>
        Date:   <YYYY-MM-DD HH:MM:SS +HHMM>

            <message>

        :<mode> <mode> <blob> <blob> <status>\t<path>[\t<path>]

    Only the first ``max_changes`` file records of a block are kept, so an
    unusually large commit can't exhaust memory.
    """

    def __init__(
        self,
        remote_url: str = "",
        max_changes: int = DEFAULT_MAX_CHANGES,
        local_offset: Optional[timedelta] = None,
    ):
        self.remote_url = remote_url
        self.max_changes = max_changes
        self.local_offset = local_offset

    def parse(self, output: str, path: Optional[str] = None) -> List[ChangeSet]:
        """Parse log output.

        Without a path, consecutive commits by the same user on the same day
        are merged. With a path, removals and moves of that path are left out
        so its revision list only shows content changes.
        """
        local_zone = self._local_zone()
        if path is not None:
            path = path.replace("\\", "/")

        change_sets: List[ChangeSet] = []

        for block in self._split_blocks(output):
            change_set = self._parse_block(block, local_zone)
            if change_set is None:
                continue

            if path is None:
                _append_grouped(change_sets, change_set)
            else:
                change_set.changes = [
                    change
                    for change in change_set.changes
                    if not (
                        change.type in (ChangeType.DELETED, ChangeType.MOVED)
                        and change.path == path
                    )
                ]
                change_sets.append(change_set)

        return change_sets

    def _local_zone(self) -> tzinfo:
        if self.local_offset is not None:
            return timezone(self.local_offset)
        return timezone(datetime.now().astimezone().utcoffset())

    def _split_blocks(self, output: str) -> Iterator[List[str]]:
        block: List[str] = []
        records = 0

        for line in output.splitlines():
            if line.startswith(_COMMIT_PREFIX):
                if block:
                    yield block
                block = [line]
                records = 0
                continue

            if not block:
                continue

            if line.startswith(_RECORD_PREFIX):
                records += 1
                if records > self.max_changes:
                    continue

            block.append(line)

        if block:
            yield block

    def _parse_block(self, lines: List[str], local_zone: tzinfo) -> Optional[ChangeSet]:
        revision = lines[0][len(_COMMIT_PREFIX) :].split()[:1]
        user = None
        timestamp = None
        records = []

        for line in lines[1:]:
            if line.startswith(_AUTHOR_PREFIX):
                user = _parse_author(line[len(_AUTHOR_PREFIX) :])
            elif line.startswith(_DATE_PREFIX):
                timestamp = _parse_date(line[len(_DATE_PREFIX) :], local_zone)
            elif line.startswith(_RECORD_PREFIX):
                records.append(line)
            # Merge: lines, message lines and blank lines carry nothing we keep

        if user is None or timestamp is None:
            logger.info("Skipping unreadable log entry: %r", lines[0])
            return None

        change_set = ChangeSet(
            revision=revision[0] if revision else "",
            user=user,
            timestamp=timestamp,
            remote_url=self.remote_url,
        )

        for record in records:
            change = _parse_record(record, timestamp)
            if change is not None:
                change_set.changes.append(change)

        return change_set


def _append_grouped(change_sets: List[ChangeSet], change_set: ChangeSet) -> None:
    if change_sets:
        last = change_sets[-1]
        if (
            last.timestamp.date() == change_set.timestamp.date()
            and last.user.name == change_set.user.name
        ):
            last.changes.extend(change_set.changes)
            if last.timestamp <= change_set.timestamp:
                last.first_timestamp = last.first_timestamp or last.timestamp
                last.timestamp = change_set.timestamp
                last.revision = change_set.revision
            else:
                last.first_timestamp = change_set.timestamp
            return

    change_sets.append(change_set)


def _parse_author(text: str) -> User:
    text = text.strip()
    name, separator, email = text.rpartition(" <")
    if not separator:
        return User(name=text)
    return User(name=name, email=email.rstrip(">"))


def _parse_date(text: str, local_zone: tzinfo) -> Optional[datetime]:
    try:
        committed = datetime.strptime(text.strip(), _DATE_FORMAT)
    except ValueError:
        logger.info("Error parsing date %r", text)
        return None
    return committed.astimezone(local_zone)


def _parse_record(line: str, timestamp: datetime) -> Optional[Change]:
    # Escaped DEL characters mark paths we can't show
    if "\\177" in line:
        return None

    meta, tab, paths = line.partition("\t")
    fields = meta.split()
    if not tab or len(fields) < 5:
        logger.info("Skipping malformed change record %r", line)
        return None

    letter = fields[4][:1]
    try:
        decoded = [decode_path(token) for token in paths.split("\t")]
    except ValueError as e:
        logger.info("Error parsing file name %r: %s", paths, e)
        return None

    if all(path == MARKER_NAME for path in decoded):
        return None

    change_type = _TYPE_LETTERS.get(letter, ChangeType.ADDED)

    if change_type == ChangeType.MOVED and len(decoded) >= 2:
        path, from_folder = split_placeholder(decoded[0])
        moved_to_path, to_folder = split_placeholder(decoded[1])
        return Change(
            path=path,
            moved_to_path=moved_to_path,
            type=ChangeType.MOVED,
            is_folder=from_folder or to_folder,
            timestamp=timestamp,
        )

    if change_type == ChangeType.MOVED:
        change_type = ChangeType.ADDED

    path, is_folder = split_placeholder(decoded[-1])
    return Change(path=path, type=change_type, is_folder=is_folder, timestamp=timestamp)
