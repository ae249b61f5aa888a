from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from tomo.authz.policy import Visibility
from tomo.models import FocusSession, Post, PostMedia, SessionStats, User


class Store(Protocol):
    """
    Storage contract used by the API.

    Implementations enforce unique email / username / google id and raise
    `tomo.errors.UniqueViolation(field)` when a write collides. Getters return
    None for missing rows. Deleting a user removes everything they own;
    deleting a post removes its media and tag links.
    """

    # ---- users ----
    def create_user(
        self,
        *,
        email: str,
        username: Optional[str],
        password_hash: Optional[str],
        google_id: Optional[str] = None,
    ) -> User: ...

    def get_user(self, user_id: int) -> Optional[User]: ...

    def get_user_by_email(self, email: str) -> Optional[User]: ...

    def get_user_by_username(self, username: str) -> Optional[User]: ...

    def get_user_by_google_id(self, google_id: str) -> Optional[User]: ...

    def email_exists(self, email: str) -> bool: ...

    def username_exists(self, username: str) -> bool: ...

    def update_profile(
        self,
        user_id: int,
        *,
        username: Optional[str],
        display_name: Optional[str],
        picture_url: Optional[str],
    ) -> Optional[User]: ...

    def delete_user(self, user_id: int) -> bool: ...

    # ---- focus sessions ----
    def create_session(self, user_id: int, start_time: datetime, end_time: datetime) -> FocusSession: ...

    def get_session(self, session_id: int) -> Optional[FocusSession]: ...

    def list_sessions(self, user_id: int, *, limit: int, offset: int) -> List[FocusSession]: ...

    def session_stats(self, user_id: int) -> SessionStats: ...

    def delete_session(self, session_id: int) -> bool: ...

    # ---- posts ----
    def create_post(
        self,
        *,
        user_id: int,
        session_id: Optional[int],
        post_type: str,
        content: Optional[str],
        title: Optional[str],
        mood_rating: Optional[int],
        visibility: Visibility,
        tags: List[str],
    ) -> Post: ...

    def get_post(self, post_id: int) -> Optional[Post]: ...

    def list_posts(self, user_id: int, *, limit: int, offset: int) -> List[Post]: ...

    def update_post(
        self,
        post_id: int,
        *,
        content: Optional[str],
        title: Optional[str],
        mood_rating: Optional[int],
        visibility: Visibility,
    ) -> Optional[Post]: ...

    def delete_post(self, post_id: int) -> bool: ...

    # ---- media ----
    def add_media(
        self,
        *,
        post_id: int,
        user_id: int,
        media_type: str,
        file_url: str,
        original_filename: Optional[str],
        max_items: int,
    ) -> Optional[PostMedia]:
        """Attach at the next position, or return None if the post is missing or already holds `max_items`."""
        ...

    def get_media(self, media_id: int) -> Optional[PostMedia]: ...

    def list_media(self, post_id: int) -> List[PostMedia]: ...

    def list_user_media(self, user_id: int) -> List[PostMedia]: ...

    def count_media(self, post_id: int) -> int: ...

    def delete_media(self, media_id: int) -> bool: ...
