from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from tomo.authz.policy import Visibility


def duration_minutes(start_time: datetime, end_time: datetime) -> int:
    """Whole minutes between two instants, truncated."""
    return int((end_time - start_time).total_seconds() // 60)


class User(BaseModel):
    """
    Application principal.

    `id` is the only identity used in tokens and ownership fields. An account
    authenticates with a password, a Google id, or both once linked.
    """

    id: int
    email: str
    username: Optional[str] = None
    password_hash: Optional[str] = Field(default=None, exclude=True)
    google_id: Optional[str] = Field(default=None, exclude=True)
    display_name: Optional[str] = None
    picture_url: Optional[str] = None
    created_at: datetime

    def public_profile(self) -> dict:
        # No email or google id on the public view.
        return self.model_dump(mode="json", include={"id", "username", "display_name", "picture_url", "created_at"})


class FocusSession(BaseModel):
    id: int
    user_id: int
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    created_at: datetime

    @property
    def owner_id(self) -> int:
        return self.user_id

    @property
    def resource_visibility(self) -> Optional[Visibility]:
        return None


class SessionStats(BaseModel):
    total_minutes: int
    session_count: int
    total_hours: float


class Post(BaseModel):
    id: int
    user_id: int
    session_id: Optional[int] = None
    post_type: str  # session|general
    content: Optional[str] = None
    title: Optional[str] = None
    mood_rating: Optional[int] = None  # 1-5
    visibility: Visibility
    tags: List[str] = Field(default_factory=list)
    created_at: datetime

    @property
    def owner_id(self) -> int:
        return self.user_id

    @property
    def resource_visibility(self) -> Optional[Visibility]:
        return self.visibility


class PostMedia(BaseModel):
    """Media attached to a post; readers are governed by the parent post."""

    id: int
    post_id: int
    user_id: int
    media_type: str  # image|video
    file_url: str
    position: int
    original_filename: Optional[str] = None
    created_at: datetime

    @property
    def owner_id(self) -> int:
        return self.user_id

    @property
    def resource_visibility(self) -> Optional[Visibility]:
        return None
