"""
Reflection posts.

Private posts are owner-only; public posts can be read by anyone, including
anonymous callers. A `session` post must reference a focus session the caller owns.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from tomo.api.deps import get_media, get_store
from tomo.api.schemas import CreatePostRequest, UpdatePostRequest
from tomo.auth.gate import optional_caller, require_caller
from tomo.auth.models import CallerIdentity
from tomo.authz.policy import (
    Visibility,
    authorize_parent,
    authorize_read,
    authorize_write,
    require_found,
    require_self,
)
from tomo.errors import MalformedRequest
from tomo.media import MediaStorage
from tomo.models import Post
from tomo.store.base import Store

logger = logging.getLogger(__name__)

router = APIRouter()

POST_TYPES = ("session", "general")
TAG_MAX_LENGTH = 50


def parse_visibility(value: str) -> Visibility:
    try:
        return Visibility((value or "").strip().lower())
    except ValueError:
        raise MalformedRequest("visibility must be 'private' or 'public'") from None


def check_mood(mood_rating: Optional[int]) -> None:
    if mood_rating is not None and not 1 <= mood_rating <= 5:
        raise MalformedRequest("mood_rating must be between 1 and 5")


def clean_tags(tags: List[str]) -> List[str]:
    out: List[str] = []
    for raw in tags:
        name = (raw or "").strip().lower()
        if not name or name in out:
            continue
        if len(name) > TAG_MAX_LENGTH:
            raise MalformedRequest(f"tags must be at most {TAG_MAX_LENGTH} characters")
        out.append(name)
    return out


def post_details(store: Store, post: Post) -> Dict[str, Any]:
    data = post.model_dump(mode="json")
    data["media"] = [m.model_dump(mode="json") for m in store.list_media(post.id)]
    return data


@router.post("/posts", status_code=201)
def create_post(
    body: CreatePostRequest,
    caller: CallerIdentity = Depends(require_caller),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    post_type = (body.post_type or "").strip().lower()
    if post_type not in POST_TYPES:
        raise MalformedRequest("post_type must be 'session' or 'general'")
    visibility = parse_visibility(body.visibility)
    check_mood(body.mood_rating)
    tags = clean_tags(body.tags)

    if post_type == "session" and body.session_id is None:
        raise MalformedRequest("session_id is required for session posts")
    if body.session_id is not None:
        session = require_found(store.get_session(body.session_id), "session")
        authorize_parent(caller, session, "session")

    post = store.create_post(
        user_id=caller.subject_id,
        session_id=body.session_id,
        post_type=post_type,
        content=body.content,
        title=body.title,
        mood_rating=body.mood_rating,
        visibility=visibility,
        tags=tags,
    )
    return post_details(store, post)


@router.get("/posts/user/{user_id}")
def list_user_posts(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    caller: CallerIdentity = Depends(require_caller),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    require_self(caller, user_id, "posts")
    posts = store.list_posts(user_id, limit=limit, offset=offset)
    return {"posts": [post_details(store, p) for p in posts], "count": len(posts)}


@router.get("/posts/{post_id}")
def get_post(
    post_id: int,
    caller: Optional[CallerIdentity] = Depends(optional_caller),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    post = require_found(store.get_post(post_id), "post")
    authorize_read(caller, post, "post")
    return post_details(store, post)


@router.patch("/posts/{post_id}")
def update_post(
    post_id: int,
    body: UpdatePostRequest,
    caller: CallerIdentity = Depends(require_caller),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    post = require_found(store.get_post(post_id), "post")
    authorize_write(caller, post, "post")

    fields = body.model_dump(exclude_unset=True)
    visibility = post.visibility
    if fields.get("visibility") is not None:
        visibility = parse_visibility(fields["visibility"])
    mood_rating = fields["mood_rating"] if "mood_rating" in fields else post.mood_rating
    check_mood(mood_rating)

    updated = store.update_post(
        post_id,
        content=fields["content"] if "content" in fields else post.content,
        title=fields["title"] if "title" in fields else post.title,
        mood_rating=mood_rating,
        visibility=visibility,
    )
    return post_details(store, require_found(updated, "post"))


@router.delete("/posts/{post_id}")
def delete_post(
    post_id: int,
    caller: CallerIdentity = Depends(require_caller),
    store: Store = Depends(get_store),
    media: MediaStorage = Depends(get_media),
) -> Dict[str, Any]:
    post = require_found(store.get_post(post_id), "post")
    authorize_write(caller, post, "post")

    attached = store.list_media(post_id)
    store.delete_post(post_id)
    for item in attached:
        delete_media_object(media, item.file_url)
    return {"message": "post deleted"}


def delete_media_object(media: MediaStorage, url: str) -> None:
    """Remove a stored object after its row is gone; failures only leave an orphan behind."""
    if not media.owns(url):
        return
    try:
        media.delete(url)
    except Exception as e:
        logger.warning("Failed to delete media object %s: %s", url, str(e))
