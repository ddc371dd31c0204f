"""Change and changeset records built from git's textual output."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class ChangeType(str, Enum):
    """Enum for file change types."""

    ADDED = "added"
    EDITED = "edited"
    DELETED = "deleted"
    MOVED = "moved"


class Change(BaseModel):
    """A single file-level modification."""

    path: str
    type: ChangeType = ChangeType.ADDED
    moved_to_path: Optional[str] = None  # Only for moved files
    is_folder: bool = False
    timestamp: Optional[datetime] = None

    @model_validator(mode="after")
    def _moved_needs_target(self) -> "Change":
        if self.type == ChangeType.MOVED and self.moved_to_path is None:
            raise ValueError("a moved change needs moved_to_path")
        return self


class User(BaseModel):
    name: str
    email: str = ""


class ChangeSet(BaseModel):
    """Changes made by one user, possibly coalesced over one day."""

    revision: str = ""
    user: User
    timestamp: datetime
    first_timestamp: Optional[datetime] = None
    remote_url: str = ""
    changes: List[Change] = Field(default_factory=list)
