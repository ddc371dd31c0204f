"""Runs git in a working copy through GitPython's command layer."""

import io
import logging
from pathlib import Path
from typing import Iterator, Optional

from git import Git
from git.exc import GitCommandError

from ..protocols import CommandResult

logger = logging.getLogger(__name__)

# English diagnostics for the error classifier, no credential prompts
_ENVIRONMENT = {"LC_ALL": "C", "GIT_TERMINAL_PROMPT": "0"}


class StreamedProcess:
    """Wraps a running git process and reads its stderr line by line."""

    def __init__(self, process: Git.AutoInterrupt):
        self._process = process
        self._stream: Optional[io.TextIOWrapper] = None

    def lines(self) -> Iterator[str]:
        # Universal newlines: progress updates are separated by carriage returns
        self._stream = io.TextIOWrapper(
            self._process.stderr, encoding="utf-8", errors="replace", newline=None
        )
        for line in self._stream:
            yield line.rstrip("\n")

    def wait(self) -> int:
        try:
            return self._process.wait()
        except GitCommandError as e:
            return e.status if isinstance(e.status, int) else 1

    def terminate(self) -> None:
        proc = self._process.proc
        if proc is not None and proc.poll() is None:
            proc.terminate()
            proc.wait()


class GitCommand:
    """Invokes git with typed argument lists, never through a shell."""

    def __init__(self, working_dir: Path):
        self._working_dir = Path(working_dir)
        self._git = Git(str(self._working_dir))
        self._git.update_environment(**_ENVIRONMENT)

    @property
    def working_dir(self) -> Path:
        return self._working_dir

    def _command(self, args: tuple) -> list:
        return [Git.GIT_PYTHON_GIT_EXECUTABLE or "git", *args]

    def invoke(self, *args: str) -> CommandResult:
        logger.debug("Running git %s", " ".join(args))
        status, stdout, stderr = self._git.execute(
            self._command(args),
            with_extended_output=True,
            with_exceptions=False,
        )
        return CommandResult(status, stdout, stderr)

    def invoke_bytes(self, *args: str) -> bytes:
        logger.debug("Running git %s", " ".join(args))
        return self._git.execute(
            self._command(args),
            stdout_as_string=False,
            strip_newline_in_stdout=False,
        )

    def invoke_streamed(self, *args: str) -> StreamedProcess:
        logger.debug("Starting git %s", " ".join(args))
        process = self._git.execute(self._command(args), as_process=True)
        return StreamedProcess(process)
