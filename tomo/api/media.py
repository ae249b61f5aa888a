"""
Media attached to posts.

Media has no visibility of its own: reads follow the parent post, writes
require owning the parent post. At most three items per post.
"""
from __future__ import annotations

import logging
import mimetypes
import os
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, UploadFile

from tomo.api.deps import get_media, get_store
from tomo.api.posts import delete_media_object
from tomo.api.schemas import AddMediaRequest
from tomo.auth.gate import optional_caller, require_caller
from tomo.auth.models import CallerIdentity
from tomo.authz.policy import authorize_read, authorize_write, require_found
from tomo.errors import InternalError, MalformedRequest
from tomo.media import MediaStorage
from tomo.models import Post, PostMedia
from tomo.store.base import Store

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_MEDIA_PER_POST = 3
MEDIA_LIMIT_MESSAGE = f"maximum {MAX_MEDIA_PER_POST} media items per post"
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
FILE_URL_MAX = 500

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})
VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".avi", ".webm"})
MEDIA_TYPES = ("image", "video")


def media_type_for(filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext in VIDEO_EXTENSIONS:
        return "video"
    raise MalformedRequest("unsupported file type")


def _writable_post(store: Store, caller: CallerIdentity, post_id: int) -> Post:
    post = require_found(store.get_post(post_id), "post")
    authorize_write(caller, post, "post")
    # Early answer before an upload; the store enforces the cap atomically.
    if store.count_media(post_id) >= MAX_MEDIA_PER_POST:
        raise MalformedRequest(MEDIA_LIMIT_MESSAGE)
    return post


def _attach(store: Store, caller: CallerIdentity, post_id: int, **fields: Any) -> PostMedia:
    item = store.add_media(post_id=post_id, user_id=caller.subject_id, max_items=MAX_MEDIA_PER_POST, **fields)
    if item is None:
        require_found(store.get_post(post_id), "post")
        raise MalformedRequest(MEDIA_LIMIT_MESSAGE)
    return item


@router.post("/posts/{post_id}/media", status_code=201)
def add_media(
    post_id: int,
    body: AddMediaRequest,
    caller: CallerIdentity = Depends(require_caller),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    _writable_post(store, caller, post_id)

    media_type = (body.media_type or "").strip().lower()
    if media_type not in MEDIA_TYPES:
        raise MalformedRequest("media_type must be 'image' or 'video'")
    file_url = (body.file_url or "").strip()
    if not file_url:
        raise MalformedRequest("file_url is required")
    if len(file_url) > FILE_URL_MAX:
        raise MalformedRequest(f"file_url must be at most {FILE_URL_MAX} characters")

    item = _attach(
        store, caller, post_id, media_type=media_type, file_url=file_url, original_filename=body.original_filename
    )
    return item.model_dump(mode="json")


@router.post("/posts/{post_id}/media/upload", status_code=201)
def upload_media(
    post_id: int,
    file: UploadFile = File(...),
    caller: CallerIdentity = Depends(require_caller),
    store: Store = Depends(get_store),
    media: MediaStorage = Depends(get_media),
) -> Dict[str, Any]:
    _writable_post(store, caller, post_id)

    filename = file.filename or ""
    if not filename:
        raise MalformedRequest("file is required")
    media_type = media_type_for(filename)

    data = file.file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise MalformedRequest("file too large (max 10MB)")
    if not data:
        raise MalformedRequest("file is empty")

    content_type = file.content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
    try:
        url = media.store(data, filename, content_type)
    except Exception as e:
        logger.exception("Media upload failed for post %s: %s", post_id, str(e))
        raise InternalError("failed to upload media") from e

    try:
        item = _attach(store, caller, post_id, media_type=media_type, file_url=url, original_filename=filename)
    except Exception:
        delete_media_object(media, url)
        raise
    return item.model_dump(mode="json")


@router.get("/posts/{post_id}/media")
def list_media(
    post_id: int,
    caller: Optional[CallerIdentity] = Depends(optional_caller),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    post = require_found(store.get_post(post_id), "post")
    authorize_read(caller, post, "post")
    items = store.list_media(post_id)
    return {"media": [m.model_dump(mode="json") for m in items], "count": len(items)}


@router.delete("/media/{media_id}")
def delete_media(
    media_id: int,
    caller: CallerIdentity = Depends(require_caller),
    store: Store = Depends(get_store),
    media: MediaStorage = Depends(get_media),
) -> Dict[str, Any]:
    item = require_found(store.get_media(media_id), "media")
    authorize_write(caller, item, "media")
    store.delete_media(media_id)
    delete_media_object(media, item.file_url)
    return {"message": "media deleted"}
