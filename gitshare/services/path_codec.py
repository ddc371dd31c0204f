"""Decoding and encoding of the quoted paths git prints.

Git wraps a path in double quotes when it contains special characters and
writes every byte outside printable ASCII as a three digit octal escape, so a
single non-ASCII character can span several consecutive escapes.
"""

from typing import Tuple

# Hidden file that stands in for an otherwise empty directory
PLACEHOLDER_NAME = ".empty"

# Hidden bookkeeping file at the root of every shared folder
MARKER_NAME = ".gitshare"

_OCTAL_DIGITS = "01234567"

_UNESCAPES = {
    '"': '"',
    "\\": "\\",
    "a": "\a",
    "b": "\b",
    "t": "\t",
    "n": "\n",
    "v": "\v",
    "f": "\f",
    "r": "\r",
}
_ESCAPES = {value: key for key, value in _UNESCAPES.items()}


def decode_path(path: str) -> str:
    """Return the real path for a possibly quoted path from git output.

    Raises ValueError (UnicodeDecodeError) when the escaped bytes are not
    valid UTF-8.
    """
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        return unescape(path[1:-1])
    return path


def unescape(text: str) -> str:
    """Resolve C-style escapes, joining runs of octal escapes into UTF-8 text."""
    parts = []
    pending = bytearray()
    i = 0

    while i < len(text):
        char = text[i]

        if char == "\\" and _is_octal(text[i + 1 : i + 4]):
            pending.append(int(text[i + 1 : i + 4], 8))
            i += 4
            continue

        if pending:
            parts.append(pending.decode("utf-8"))
            pending.clear()

        if char == "\\" and text[i + 1 : i + 2] in _UNESCAPES:
            parts.append(_UNESCAPES[text[i + 1]])
            i += 2
            continue

        parts.append(char)
        i += 1

    if pending:
        parts.append(pending.decode("utf-8"))

    return "".join(parts)


def encode_path(path: str) -> str:
    """Quote a path the way git does when core.quotePath is enabled."""
    quoted = False
    parts = []

    for byte in path.encode("utf-8"):
        char = chr(byte)
        if char in _ESCAPES:
            parts.append("\\" + _ESCAPES[char])
            quoted = True
        elif byte < 0x20 or byte >= 0x7F:
            parts.append("\\%03o" % byte)
            quoted = True
        else:
            parts.append(char)

    if not quoted:
        return path
    return '"' + "".join(parts) + '"'


def is_reserved(path: str) -> bool:
    """True for placeholder and marker files that are never shown as conflicts."""
    name = path.rstrip("/").rsplit("/", 1)[-1]
    return name in (PLACEHOLDER_NAME, MARKER_NAME)


def split_placeholder(path: str) -> Tuple[str, bool]:
    """Strip a trailing placeholder name, returning (path, is_folder)."""
    name = path.rsplit("/", 1)[-1]
    if name != PLACEHOLDER_NAME:
        return path, False
    return path[: -len(PLACEHOLDER_NAME)].rstrip("/"), True


def _is_octal(digits: str) -> bool:
    return len(digits) == 3 and all(digit in _OCTAL_DIGITS for digit in digits)
