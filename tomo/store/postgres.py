from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

import psycopg
from psycopg.rows import dict_row

from tomo.authz.policy import Visibility
from tomo.errors import StoreError, UniqueViolation
from tomo.models import FocusSession, Post, PostMedia, SessionStats, User, duration_minutes

logger = logging.getLogger(__name__)

_USER_COLS = "id, email, username, password_hash, google_id, display_name, picture_url, created_at"
_SESSION_COLS = "id, user_id, start_time, end_time, duration_minutes, created_at"
_POST_COLS = "id, user_id, session_id, post_type, content, title, mood_rating, visibility, created_at"
_MEDIA_COLS = "id, post_id, user_id, media_type, file_url, position, original_filename, created_at"

# Constraint name -> field reported in UniqueViolation.
_UNIQUE_FIELDS = {
    "users_email_key": "email",
    "users_username_key": "username",
    "users_google_id_key": "google_id",
}


def unique_field(err: Any) -> str:
    """Field name for a unique-violation error, from the constraint the server reported."""
    constraint = getattr(getattr(err, "diag", None), "constraint_name", None) or ""
    return _UNIQUE_FIELDS.get(constraint, constraint or "unknown")


class PostgresStore:
    """
    psycopg-backed store. One short-lived connection per operation; each
    connection carries a connect timeout and a statement_timeout so no call
    blocks indefinitely.
    """

    def __init__(self, dsn: str, *, connect_timeout: int = 5, statement_timeout_ms: int = 10000) -> None:
        self._dsn = dsn
        self._connect_timeout = connect_timeout
        self._statement_timeout_ms = statement_timeout_ms

    @contextmanager
    def _conn(self) -> Iterator[psycopg.Connection]:
        try:
            conn = psycopg.connect(
                self._dsn,
                connect_timeout=self._connect_timeout,
                options=f"-c statement_timeout={self._statement_timeout_ms}",
                row_factory=dict_row,
            )
        except psycopg.OperationalError as e:
            raise StoreError(f"database unavailable: {e}") from e
        try:
            with conn:
                yield conn
        except psycopg.errors.UniqueViolation as e:
            raise UniqueViolation(unique_field(e)) from e
        except psycopg.Error as e:
            logger.error("Database error: %s", type(e).__name__)
            raise StoreError(str(e)) from e

    def _one(self, sql: str, params: tuple) -> Optional[Dict[str, Any]]:
        with self._conn() as conn:
            return conn.execute(sql, params).fetchone()

    # ---- users ----

    def create_user(
        self,
        *,
        email: str,
        username: Optional[str],
        password_hash: Optional[str],
        google_id: Optional[str] = None,
    ) -> User:
        row = self._one(
            f"""
            INSERT INTO users (email, username, password_hash, google_id, created_at)
            VALUES (%s, %s, %s, %s, NOW())
            RETURNING {_USER_COLS}
            """,
            (email, username, password_hash, google_id),
        )
        if not row:
            raise StoreError("Failed to create user")
        return User(**row)

    def get_user(self, user_id: int) -> Optional[User]:
        row = self._one(f"SELECT {_USER_COLS} FROM users WHERE id = %s", (user_id,))
        return User(**row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        row = self._one(f"SELECT {_USER_COLS} FROM users WHERE email = %s", (email,))
        return User(**row) if row else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        row = self._one(f"SELECT {_USER_COLS} FROM users WHERE username = %s", (username,))
        return User(**row) if row else None

    def get_user_by_google_id(self, google_id: str) -> Optional[User]:
        row = self._one(f"SELECT {_USER_COLS} FROM users WHERE google_id = %s", (google_id,))
        return User(**row) if row else None

    def email_exists(self, email: str) -> bool:
        row = self._one("SELECT EXISTS(SELECT 1 FROM users WHERE email = %s) AS found", (email,))
        return bool(row and row["found"])

    def username_exists(self, username: str) -> bool:
        row = self._one("SELECT EXISTS(SELECT 1 FROM users WHERE username = %s) AS found", (username,))
        return bool(row and row["found"])

    def update_profile(
        self,
        user_id: int,
        *,
        username: Optional[str],
        display_name: Optional[str],
        picture_url: Optional[str],
    ) -> Optional[User]:
        row = self._one(
            f"""
            UPDATE users
            SET username = %s, display_name = %s, picture_url = %s
            WHERE id = %s
            RETURNING {_USER_COLS}
            """,
            (username, display_name, picture_url, user_id),
        )
        return User(**row) if row else None

    def delete_user(self, user_id: int) -> bool:
        with self._conn() as conn:
            return conn.execute("DELETE FROM users WHERE id = %s", (user_id,)).rowcount > 0

    # ---- focus sessions ----

    def create_session(self, user_id: int, start_time: datetime, end_time: datetime) -> FocusSession:
        row = self._one(
            f"""
            INSERT INTO focus_sessions (user_id, start_time, end_time, duration_minutes, created_at)
            VALUES (%s, %s, %s, %s, NOW())
            RETURNING {_SESSION_COLS}
            """,
            (user_id, start_time, end_time, duration_minutes(start_time, end_time)),
        )
        if not row:
            raise StoreError("Failed to create session")
        return FocusSession(**row)

    def get_session(self, session_id: int) -> Optional[FocusSession]:
        row = self._one(f"SELECT {_SESSION_COLS} FROM focus_sessions WHERE id = %s", (session_id,))
        return FocusSession(**row) if row else None

    def list_sessions(self, user_id: int, *, limit: int, offset: int) -> List[FocusSession]:
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT {_SESSION_COLS}
                FROM focus_sessions
                WHERE user_id = %s
                ORDER BY start_time DESC
                LIMIT %s OFFSET %s
                """,
                (user_id, limit, offset),
            ).fetchall()
        return [FocusSession(**r) for r in rows]

    def session_stats(self, user_id: int) -> SessionStats:
        row = self._one(
            """
            SELECT COALESCE(SUM(duration_minutes), 0) AS total_minutes, COUNT(*) AS session_count
            FROM focus_sessions
            WHERE user_id = %s
            """,
            (user_id,),
        )
        total = int(row["total_minutes"]) if row else 0
        count = int(row["session_count"]) if row else 0
        return SessionStats(total_minutes=total, session_count=count, total_hours=total / 60.0)

    def delete_session(self, session_id: int) -> bool:
        with self._conn() as conn:
            return conn.execute("DELETE FROM focus_sessions WHERE id = %s", (session_id,)).rowcount > 0

    # ---- posts ----

    @staticmethod
    def _tags_for(conn: psycopg.Connection, post_id: int) -> List[str]:
        rows = conn.execute(
            """
            SELECT t.name
            FROM tags t
            JOIN post_tags pt ON t.id = pt.tag_id
            WHERE pt.post_id = %s
            ORDER BY t.name
            """,
            (post_id,),
        ).fetchall()
        return [r["name"] for r in rows]

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
        with self._conn() as conn:
            row = conn.execute(
                f"""
                INSERT INTO posts (user_id, session_id, post_type, content, title, mood_rating, visibility, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, NOW())
                RETURNING {_POST_COLS}
                """,
                (user_id, session_id, post_type, content, title, mood_rating, visibility.value),
            ).fetchone()
            if not row:
                raise StoreError("Failed to create post")
            for name in tags:
                tag = conn.execute(
                    """
                    INSERT INTO tags (user_id, name)
                    VALUES (%s, %s)
                    ON CONFLICT (user_id, name) DO UPDATE SET name = EXCLUDED.name
                    RETURNING id
                    """,
                    (user_id, name),
                ).fetchone()
                conn.execute(
                    "INSERT INTO post_tags (post_id, tag_id) VALUES (%s, %s) ON CONFLICT DO NOTHING",
                    (row["id"], tag["id"]),
                )
            return Post(**row, tags=self._tags_for(conn, row["id"]))

    def get_post(self, post_id: int) -> Optional[Post]:
        with self._conn() as conn:
            row = conn.execute(f"SELECT {_POST_COLS} FROM posts WHERE id = %s", (post_id,)).fetchone()
            if not row:
                return None
            return Post(**row, tags=self._tags_for(conn, post_id))

    def list_posts(self, user_id: int, *, limit: int, offset: int) -> List[Post]:
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT {_POST_COLS}
                FROM posts
                WHERE user_id = %s
                ORDER BY created_at DESC
                LIMIT %s OFFSET %s
                """,
                (user_id, limit, offset),
            ).fetchall()
            return [Post(**r, tags=self._tags_for(conn, r["id"])) for r in rows]

    def update_post(
        self,
        post_id: int,
        *,
        content: Optional[str],
        title: Optional[str],
        mood_rating: Optional[int],
        visibility: Visibility,
    ) -> Optional[Post]:
        with self._conn() as conn:
            row = conn.execute(
                f"""
                UPDATE posts
                SET content = %s, title = %s, mood_rating = %s, visibility = %s
                WHERE id = %s
                RETURNING {_POST_COLS}
                """,
                (content, title, mood_rating, visibility.value, post_id),
            ).fetchone()
            if not row:
                return None
            return Post(**row, tags=self._tags_for(conn, post_id))

    def delete_post(self, post_id: int) -> bool:
        # post_media and post_tags rows cascade.
        with self._conn() as conn:
            return conn.execute("DELETE FROM posts WHERE id = %s", (post_id,)).rowcount > 0

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
        with self._conn() as conn:
            # Locks the post row: concurrent attaches count and insert one at a time.
            if conn.execute("SELECT id FROM posts WHERE id = %s FOR UPDATE", (post_id,)).fetchone() is None:
                return None
            slots = conn.execute(
                "SELECT COUNT(*) AS n, COALESCE(MAX(position) + 1, 0) AS next FROM post_media WHERE post_id = %s",
                (post_id,),
            ).fetchone()
            if slots["n"] >= max_items:
                return None
            row = conn.execute(
                f"""
                INSERT INTO post_media (post_id, user_id, media_type, file_url, original_filename, position, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, NOW())
                RETURNING {_MEDIA_COLS}
                """,
                (post_id, user_id, media_type, file_url, original_filename, slots["next"]),
            ).fetchone()
        if not row:
            raise StoreError("Failed to add media")
        return PostMedia(**row)

    def get_media(self, media_id: int) -> Optional[PostMedia]:
        row = self._one(f"SELECT {_MEDIA_COLS} FROM post_media WHERE id = %s", (media_id,))
        return PostMedia(**row) if row else None

    def list_media(self, post_id: int) -> List[PostMedia]:
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT {_MEDIA_COLS} FROM post_media WHERE post_id = %s ORDER BY position ASC",
                (post_id,),
            ).fetchall()
        return [PostMedia(**r) for r in rows]

    def list_user_media(self, user_id: int) -> List[PostMedia]:
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT {_MEDIA_COLS} FROM post_media WHERE user_id = %s ORDER BY id ASC",
                (user_id,),
            ).fetchall()
        return [PostMedia(**r) for r in rows]

    def count_media(self, post_id: int) -> int:
        row = self._one("SELECT COUNT(*) AS n FROM post_media WHERE post_id = %s", (post_id,))
        return int(row["n"]) if row else 0

    def delete_media(self, media_id: int) -> bool:
        with self._conn() as conn:
            return conn.execute("DELETE FROM post_media WHERE id = %s", (media_id,)).rowcount > 0
