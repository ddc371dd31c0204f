"""Unit tests for the GitPython-backed command runner."""

import io
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
from git import Git
from git.exc import GitCommandError

from gitshare.protocols import CommandResult, GitCommandProtocol
from gitshare.services.git_command import GitCommand, StreamedProcess


class TestGitCommand:
    """Test cases for GitCommand class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.git = GitCommand(Path("/tmp/shared"))

    def test_satisfies_protocol(self):
        assert isinstance(self.git, GitCommandProtocol)
        assert self.git.working_dir == Path("/tmp/shared")

    def test_environment_forces_plain_diagnostics(self):
        env = self.git._git.environment()
        assert env["LC_ALL"] == "C"
        assert env["GIT_TERMINAL_PROMPT"] == "0"

    def test_invoke_returns_result_without_raising(self):
        with patch.object(Git, "execute", return_value=(1, "", "fatal: oops")) as execute:
            result = self.git.invoke("merge", "FETCH_HEAD")

        assert result == CommandResult(1, "", "fatal: oops")
        command = execute.call_args.args[0]
        assert command[1:] == ["merge", "FETCH_HEAD"]
        assert execute.call_args.kwargs["with_exceptions"] is False

    def test_invoke_bytes_keeps_raw_output(self):
        with patch.object(Git, "execute", return_value=b"\x00bin\n") as execute:
            assert self.git.invoke_bytes("show", "HEAD:a.bin") == b"\x00bin\n"

        assert execute.call_args.kwargs["stdout_as_string"] is False


class TestStreamedProcess:
    """Test cases for StreamedProcess class."""

    def test_lines_split_on_carriage_returns(self):
        process = Mock()
        process.stderr = io.BytesIO(
            "Writing objects:  50% (1/2)\rWriting objects: 100% (2/2)\r\nTo ‘remote’\n".encode()
        )

        lines = list(StreamedProcess(process).lines())

        assert lines == ["Writing objects:  50% (1/2)", "Writing objects: 100% (2/2)", "To ‘remote’"]

    def test_wait_returns_failed_status(self):
        process = Mock()
        process.wait.side_effect = GitCommandError(["git", "push"], 128)

        assert StreamedProcess(process).wait() == 128

    def test_terminate_running_process(self):
        process = Mock()
        process.proc.poll.return_value = None

        StreamedProcess(process).terminate()

        process.proc.terminate.assert_called_once()
        process.proc.wait.assert_called_once()

    @pytest.mark.parametrize("exit_code", [0, 1])
    def test_terminate_finished_process(self, exit_code):
        process = Mock()
        process.proc.poll.return_value = exit_code

        StreamedProcess(process).terminate()

        process.proc.terminate.assert_not_called()
