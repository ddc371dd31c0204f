"""Schemas for the application."""

from .changes import Change, ChangeSet, ChangeType, User
from .sync import ErrorKind, MergeOutcome, SessionState, SyncProgress, SyncResult

__all__ = [
    "Change",
    "ChangeSet",
    "ChangeType",
    "ErrorKind",
    "MergeOutcome",
    "SessionState",
    "SyncProgress",
    "SyncResult",
    "User",
]
