"""Parses `git status --porcelain` output into pending changes."""

import logging
from typing import Iterable, List, Optional, Tuple

from ..schemas import Change, ChangeType
from .path_codec import decode_path, split_placeholder

logger = logging.getLogger(__name__)

RENAME_ARROW = " -> "

_TYPE_LETTERS = {
    "M": ChangeType.EDITED,
    "D": ChangeType.DELETED,
    "R": ChangeType.MOVED,
}

_MESSAGE_PREFIXES = {
    ChangeType.ADDED: "+",
    ChangeType.EDITED: "/",
    ChangeType.DELETED: "-",
}


def parse_status_entry(line: str) -> Tuple[str, List[str]]:
    """Split a status line into its two-letter code and decoded paths.

    Rename lines yield two paths, every other line one.
    Raises ValueError for lines that don't follow the porcelain format.
    """
    line = line.rstrip("\r\n")
    if len(line) < 4 or line[2] != " ":
        raise ValueError(f"Malformed status line: {line!r}")

    code, rest = line[:2], line[3:]
    return code, [decode_path(token) for token in split_rename(rest)]


def split_rename(text: str) -> List[str]:
    """Split `<old> -> <new>` into raw path tokens, honouring quoted paths."""
    tokens = []
    rest = text

    while rest:
        if rest.startswith('"'):
            end = _closing_quote(rest)
            tokens.append(rest[: end + 1])
            rest = rest[end + 1 :]
            if rest.startswith(RENAME_ARROW):
                rest = rest[len(RENAME_ARROW) :]
            elif rest:
                raise ValueError(f"Unexpected text after quoted path: {text!r}")
        else:
            token, _, rest = rest.partition(RENAME_ARROW)
            tokens.append(token)

    return tokens


def parse_status_line(line: str) -> Change:
    code, paths = parse_status_entry(line)
    letter = code.strip()[:1]
    change_type = _TYPE_LETTERS.get(letter, ChangeType.ADDED)

    if change_type == ChangeType.MOVED and len(paths) == 2:
        path, from_folder = split_placeholder(paths[0])
        moved_to_path, to_folder = split_placeholder(paths[1])
        return Change(
            path=path,
            moved_to_path=moved_to_path,
            type=ChangeType.MOVED,
            is_folder=from_folder or to_folder,
        )

    if change_type == ChangeType.MOVED:
        change_type = ChangeType.ADDED

    path, is_folder = split_placeholder(paths[-1])
    # Untracked directories are listed as "dir/"
    if path.endswith("/"):
        path, is_folder = path.rstrip("/"), True
    return Change(path=path, type=change_type, is_folder=is_folder)


def parse_status(output: str) -> List[Change]:
    """Parse every status line, skipping (and logging) lines that can't be read."""
    changes = []

    for line in output.splitlines():
        if not line.strip():
            continue
        try:
            changes.append(parse_status_line(line))
        except ValueError as e:
            logger.warning("Skipping status line %r: %s", line, e)

    return changes


def format_commit_message(changes: Iterable[Change]) -> Optional[str]:
    """Create a readable commit message listing what has changed."""
    lines = []

    for change in changes:
        if change.type == ChangeType.MOVED:
            lines.append(f"< ‘{change.path}’")
            lines.append(f"> ‘{change.moved_to_path}’")
        else:
            lines.append(f"{_MESSAGE_PREFIXES[change.type]} ‘{change.path}’")

    if not lines:
        return None
    return "\n".join(lines)


def _closing_quote(text: str) -> int:
    i = 1
    while i < len(text):
        if text[i] == "\\":
            i += 2
            continue
        if text[i] == '"':
            return i
        i += 1
    raise ValueError(f"Unterminated quoted path: {text!r}")
