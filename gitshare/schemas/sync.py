from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .changes import User


class ErrorKind(str, Enum):
    """Closed set of errors a sync operation can end with."""

    NONE = "none"
    UNREADABLE_FILES = "unreadable_files"
    HOST_UNREACHABLE = "host_unreachable"
    HOST_IDENTITY_CHANGED = "host_identity_changed"
    AUTHENTICATION_FAILED = "authentication_failed"
    NOT_FOUND = "not_found"
    INCOMPATIBLE_CLIENT_SERVER = "incompatible_client_server"
    DISK_SPACE_EXCEEDED = "disk_space_exceeded"


class MergeOutcome(str, Enum):
    """How a merge of fetched changes ended."""

    MERGED = "merged"
    CONFLICTS_RESOLVED = "conflicts_resolved"
    STALE_MERGE_ABORTED = "stale_merge_aborted"
    UNREADABLE_FILES = "unreadable_files"
    GAVE_UP = "gave_up"

    @property
    def succeeded(self) -> bool:
        return self in (MergeOutcome.MERGED, MergeOutcome.CONFLICTS_RESOLVED)


class SyncProgress(BaseModel):
    percentage: float = Field(default=0.0, ge=0, le=100)
    speed: float = Field(default=0.0, ge=0)  # bytes per second


class SessionState(BaseModel):
    """Per-repository facts established once when a session is opened."""

    model_config = ConfigDict(frozen=True)

    user: User
    remote_url: str
    encrypted: bool = False


class SyncResult(BaseModel):
    """Outcome of a sync operation as reported to API clients."""

    success: bool
    error: ErrorKind = ErrorKind.NONE
    merge_outcome: Optional[MergeOutcome] = None
