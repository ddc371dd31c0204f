"""Protocols for collaborators."""

from .git_command_protocol import (
    CommandResult,
    GitCommandProtocol,
    StreamedProcessProtocol,
)

__all__ = ["CommandResult", "GitCommandProtocol", "StreamedProcessProtocol"]
