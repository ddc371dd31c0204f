"""In-memory stand-in for GitCommand used by controller and resolver tests."""

from pathlib import Path
from typing import Callable, Dict, Iterable, List, Tuple, Union

from git.exc import GitCommandError

from gitshare.protocols import CommandResult

Response = Union[CommandResult, Callable[[tuple], CommandResult]]


class FakeProcess:
    """Scripted transfer whose diagnostics are replayed line by line."""

    def __init__(self, lines: Iterable[str] = (), status: int = 0):
        self._lines = list(lines)
        self.status = status
        self.terminated = False

    def lines(self):
        for line in self._lines:
            if self.terminated:
                return
            yield line

    def wait(self) -> int:
        return self.status

    def terminate(self) -> None:
        self.terminated = True


class FakeGit:
    """Records every command and answers from responses keyed by argument prefix."""

    def __init__(self, working_dir: Path):
        self._working_dir = Path(working_dir)
        self.calls: List[tuple] = []
        self.responses: Dict[tuple, Response] = {}
        self.streams: Dict[str, FakeProcess] = {}
        self.blobs: Dict[Tuple[str, ...], bytes] = {}

    @property
    def working_dir(self) -> Path:
        return self._working_dir

    def respond(self, *args: str, status: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.responses[args] = CommandResult(status, stdout, stderr)

    def on(self, *args: str):
        """Register a callable response: ``git.on("commit")(handler)``."""

        def register(handler: Callable[[tuple], CommandResult]):
            self.responses[args] = handler
            return handler

        return register

    def invoke(self, *args: str) -> CommandResult:
        self.calls.append(args)
        for key in sorted(self.responses, key=len, reverse=True):
            if args[: len(key)] == key:
                response = self.responses[key]
                return response(args) if callable(response) else response
        return CommandResult(0, "", "")

    def invoke_bytes(self, *args: str) -> bytes:
        self.calls.append(args)
        if args in self.blobs:
            return self.blobs[args]
        raise GitCommandError(["git", *args], 128, b"fatal: invalid object name")

    def invoke_streamed(self, *args: str) -> FakeProcess:
        self.calls.append(args)
        return self.streams.get(args[0], FakeProcess())

    def called(self, *args: str) -> bool:
        """True if some recorded command starts with the given arguments."""
        return any(call[: len(args)] == args for call in self.calls)
