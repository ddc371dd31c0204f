"""Maps a diagnostic line from git or ssh to an ErrorKind."""

from ..schemas import ErrorKind

_HOST_IDENTITY_WARNINGS = (
    "WARNING: REMOTE HOST IDENTIFICATION HAS CHANGED!",
    "WARNING: POSSIBLE DNS SPOOFING DETECTED!",
)

_AUTHENTICATION_PREFIXES = (
    "Permission denied",
    "ssh_exchange_identification: Connection closed by remote host",
    "The authenticity of host",
)

_NOT_FOUND_SUFFIX = "does not appear to be a git repository"

_INCOMPATIBLE_SUFFIX = "expected old/new/ref, got 'shallow"

_DISK_SPACE_PREFIX = "error: Disk space exceeded"
_DISK_SPACE_SUFFIXES = (
    "No space left on device",
    "file write error (Disk quota exceeded)",
)


def classify(line: str) -> ErrorKind:
    """Return the error a single line reports, ErrorKind.NONE if it reports none."""
    line = line.rstrip()

    if any(warning in line for warning in _HOST_IDENTITY_WARNINGS):
        return ErrorKind.HOST_IDENTITY_CHANGED

    if line.startswith(_AUTHENTICATION_PREFIXES):
        return ErrorKind.AUTHENTICATION_FAILED

    if line.endswith(_NOT_FOUND_SUFFIX):
        return ErrorKind.NOT_FOUND

    if line.endswith(_INCOMPATIBLE_SUFFIX):
        return ErrorKind.INCOMPATIBLE_CLIENT_SERVER

    if line.startswith(_DISK_SPACE_PREFIX) or line.endswith(_DISK_SPACE_SUFFIXES):
        return ErrorKind.DISK_SPACE_EXCEEDED

    return ErrorKind.NONE
