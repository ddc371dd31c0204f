"""Services for the application."""

from .changelog_parser import ChangeLogParser
from .conflict_resolver import ConflictResolver
from .error_classifier import classify
from .git_command import GitCommand
from .progress_parser import ProgressParser
from .status_parser import format_commit_message, parse_status
from .sync_controller import SyncController
from .sync_controller_factory import (
    create_sync_controller,
    create_sync_controller_from_settings,
    open_session,
)

__all__ = [
    "ChangeLogParser",
    "ConflictResolver",
    "GitCommand",
    "ProgressParser",
    "SyncController",
    "classify",
    "create_sync_controller",
    "create_sync_controller_from_settings",
    "format_commit_message",
    "open_session",
    "parse_status",
]
