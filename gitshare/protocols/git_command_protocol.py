"""Git command protocol interface."""

from pathlib import Path
from typing import Iterator, NamedTuple, Protocol, runtime_checkable


class CommandResult(NamedTuple):
    """Exit status and captured output of a finished git command."""

    status: int
    stdout: str
    stderr: str


@runtime_checkable
class StreamedProcessProtocol(Protocol):
    """A running git command whose diagnostics are read while it runs."""

    def lines(self) -> Iterator[str]:
        """Yield diagnostic lines as they are written."""
        ...

    def wait(self) -> int:
        """Wait for the command to finish and return its exit status."""
        ...

    def terminate(self) -> None:
        """Stop the command if it is still running."""
        ...


@runtime_checkable
class GitCommandProtocol(Protocol):
    """Protocol for invoking git inside a working copy."""

    @property
    def working_dir(self) -> Path:
        """Working copy the commands run in."""
        ...

    def invoke(self, *args: str) -> CommandResult:
        """Run git with the given arguments and wait for it."""
        ...

    def invoke_bytes(self, *args: str) -> bytes:
        """Run git and return its raw standard output."""
        ...

    def invoke_streamed(self, *args: str) -> StreamedProcessProtocol:
        """Start git and return a handle to its diagnostic stream."""
        ...
