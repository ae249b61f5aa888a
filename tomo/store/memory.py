"""In-process store for development and tests (fallback when Postgres is not configured)."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

from tomo.authz.policy import Visibility
from tomo.errors import UniqueViolation
from tomo.models import FocusSession, Post, PostMedia, SessionStats, User, duration_minutes


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryStore:
    """
    Dict-backed implementation of the `Store` protocol.

    A single lock serialises writes so unique checks and inserts are atomic,
    matching what the database constraints give the Postgres store. Models
    are copied on the way in and out so callers never share state.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids: Dict[str, int] = {}
        self._users: Dict[int, User] = {}
        self._sessions: Dict[int, FocusSession] = {}
        self._posts: Dict[int, Post] = {}
        self._media: Dict[int, PostMedia] = {}
        # (user_id, name) -> tag id, and post id -> tag ids
        self._tags: Dict[Tuple[int, str], int] = {}
        self._post_tags: Dict[int, Set[int]] = {}

    def _next_id(self, table: str) -> int:
        self._ids[table] = self._ids.get(table, 0) + 1
        return self._ids[table]

    def _check_unique(self, user_id: Optional[int], **fields: Optional[str]) -> None:
        for name, value in fields.items():
            if value is None:
                continue
            for u in self._users.values():
                if u.id != user_id and getattr(u, name) == value:
                    raise UniqueViolation(name)

    def _tag_names(self, post_id: int) -> List[str]:
        ids = self._post_tags.get(post_id, set())
        return sorted(name for (_uid, name), tid in self._tags.items() if tid in ids)

    def _post_out(self, post: Post) -> Post:
        return post.model_copy(update={"tags": self._tag_names(post.id)})

    # ---- users ----

    def create_user(
        self,
        *,
        email: str,
        username: Optional[str],
        password_hash: Optional[str],
        google_id: Optional[str] = None,
    ) -> User:
        with self._lock:
            self._check_unique(None, email=email, username=username, google_id=google_id)
            user = User(
                id=self._next_id("users"),
                email=email,
                username=username,
                password_hash=password_hash,
                google_id=google_id,
                created_at=_utcnow(),
            )
            self._users[user.id] = user
            return user.model_copy()

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    def _find_user(self, **match: str) -> Optional[User]:
        with self._lock:
            for u in self._users.values():
                if all(getattr(u, k) == v for k, v in match.items()):
                    return u.model_copy()
        return None

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._find_user(email=email)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._find_user(username=username)

    def get_user_by_google_id(self, google_id: str) -> Optional[User]:
        return self._find_user(google_id=google_id)

    def email_exists(self, email: str) -> bool:
        return self.get_user_by_email(email) is not None

    def username_exists(self, username: str) -> bool:
        return self.get_user_by_username(username) is not None

    def update_profile(
        self,
        user_id: int,
        *,
        username: Optional[str],
        display_name: Optional[str],
        picture_url: Optional[str],
    ) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            self._check_unique(user_id, username=username)
            updated = user.model_copy(
                update={"username": username, "display_name": display_name, "picture_url": picture_url}
            )
            self._users[user_id] = updated
            return updated.model_copy()

    def delete_user(self, user_id: int) -> bool:
        with self._lock:
            if self._users.pop(user_id, None) is None:
                return False
            self._sessions = {k: v for k, v in self._sessions.items() if v.user_id != user_id}
            for pid in [k for k, v in self._posts.items() if v.user_id == user_id]:
                self._drop_post(pid)
            self._media = {k: v for k, v in self._media.items() if v.user_id != user_id}
            self._tags = {k: v for k, v in self._tags.items() if k[0] != user_id}
            return True

    # ---- focus sessions ----

    def create_session(self, user_id: int, start_time: datetime, end_time: datetime) -> FocusSession:
        with self._lock:
            session = FocusSession(
                id=self._next_id("focus_sessions"),
                user_id=user_id,
                start_time=start_time,
                end_time=end_time,
                duration_minutes=duration_minutes(start_time, end_time),
                created_at=_utcnow(),
            )
            self._sessions[session.id] = session
            return session.model_copy()

    def get_session(self, session_id: int) -> Optional[FocusSession]:
        with self._lock:
            s = self._sessions.get(session_id)
            return s.model_copy() if s else None

    def list_sessions(self, user_id: int, *, limit: int, offset: int) -> List[FocusSession]:
        with self._lock:
            mine = [s for s in self._sessions.values() if s.user_id == user_id]
        mine.sort(key=lambda s: (s.start_time, s.id), reverse=True)
        return [s.model_copy() for s in mine[offset : offset + limit]]

    def session_stats(self, user_id: int) -> SessionStats:
        with self._lock:
            minutes = [s.duration_minutes for s in self._sessions.values() if s.user_id == user_id]
        total = sum(minutes)
        return SessionStats(total_minutes=total, session_count=len(minutes), total_hours=total / 60.0)

    def delete_session(self, session_id: int) -> bool:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                return False
            for pid, p in self._posts.items():
                if p.session_id == session_id:
                    self._posts[pid] = p.model_copy(update={"session_id": None})
            return True

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
    ) -> Post:
        with self._lock:
            post = Post(
                id=self._next_id("posts"),
                user_id=user_id,
                session_id=session_id,
                post_type=post_type,
                content=content,
                title=title,
                mood_rating=mood_rating,
                visibility=visibility,
                created_at=_utcnow(),
            )
            self._posts[post.id] = post
            linked = self._post_tags.setdefault(post.id, set())
            for name in tags:
                key = (user_id, name)
                if key not in self._tags:
                    self._tags[key] = self._next_id("tags")
                linked.add(self._tags[key])
            return self._post_out(post)

    def get_post(self, post_id: int) -> Optional[Post]:
        with self._lock:
            post = self._posts.get(post_id)
            return self._post_out(post) if post else None

    def list_posts(self, user_id: int, *, limit: int, offset: int) -> List[Post]:
        with self._lock:
            mine = [p for p in self._posts.values() if p.user_id == user_id]
            mine.sort(key=lambda p: (p.created_at, p.id), reverse=True)
            return [self._post_out(p) for p in mine[offset : offset + limit]]

    def update_post(
        self,
        post_id: int,
        *,
        content: Optional[str],
        title: Optional[str],
        mood_rating: Optional[int],
        visibility: Visibility,
    ) -> Optional[Post]:
        with self._lock:
            post = self._posts.get(post_id)
            if post is None:
                return None
            updated = post.model_copy(
                update={"content": content, "title": title, "mood_rating": mood_rating, "visibility": visibility}
            )
            self._posts[post_id] = updated
            return self._post_out(updated)

    def _drop_post(self, post_id: int) -> None:
        self._posts.pop(post_id, None)
        self._post_tags.pop(post_id, None)
        self._media = {k: v for k, v in self._media.items() if v.post_id != post_id}

    def delete_post(self, post_id: int) -> bool:
        with self._lock:
            if post_id not in self._posts:
                return False
            self._drop_post(post_id)
            return True

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
        with self._lock:
            if post_id not in self._posts:
                return None
            siblings = [m for m in self._media.values() if m.post_id == post_id]
            if len(siblings) >= max_items:
                return None
            media = PostMedia(
                id=self._next_id("post_media"),
                post_id=post_id,
                user_id=user_id,
                media_type=media_type,
                file_url=file_url,
                position=max((m.position for m in siblings), default=-1) + 1,
                original_filename=original_filename,
                created_at=_utcnow(),
            )
            self._media[media.id] = media
            return media.model_copy()

    def get_media(self, media_id: int) -> Optional[PostMedia]:
        with self._lock:
            m = self._media.get(media_id)
            return m.model_copy() if m else None

    def list_media(self, post_id: int) -> List[PostMedia]:
        with self._lock:
            items = [m for m in self._media.values() if m.post_id == post_id]
        items.sort(key=lambda m: (m.position, m.id))
        return [m.model_copy() for m in items]

    def list_user_media(self, user_id: int) -> List[PostMedia]:
        with self._lock:
            return [m.model_copy() for m in sorted(self._media.values(), key=lambda m: m.id) if m.user_id == user_id]

    def count_media(self, post_id: int) -> int:
        with self._lock:
            return sum(1 for m in self._media.values() if m.post_id == post_id)

    def delete_media(self, media_id: int) -> bool:
        with self._lock:
            return self._media.pop(media_id, None) is not None
