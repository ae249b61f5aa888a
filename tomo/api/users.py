from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from tomo.api.auth import validate_username
from tomo.api.deps import get_media, get_store
from tomo.api.posts import delete_media_object
from tomo.api.schemas import UpdateProfileRequest
from tomo.auth.gate import require_caller
from tomo.auth.models import CallerIdentity
from tomo.authz.policy import conflict_on_unique, require_found
from tomo.errors import Conflict, MalformedRequest, NotFound
from tomo.media import MediaStorage
from tomo.store.base import Store

logger = logging.getLogger(__name__)

router = APIRouter()

DISPLAY_NAME_MAX = 50
PICTURE_URL_MAX = 500


@router.get("/me")
def get_me(caller: CallerIdentity = Depends(require_caller), store: Store = Depends(get_store)) -> Dict[str, Any]:
    # The token may outlive the account.
    user = require_found(store.get_user(caller.subject_id), "user")
    return user.model_dump(mode="json")


@router.patch("/me")
def update_me(
    body: UpdateProfileRequest,
    caller: CallerIdentity = Depends(require_caller),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    user = require_found(store.get_user(caller.subject_id), "user")
    fields = body.model_dump(exclude_unset=True)

    username = user.username
    if "username" in fields:
        username = validate_username(fields["username"] or "")
        taken = store.get_user_by_username(username)
        if taken is not None and taken.id != user.id:
            raise Conflict("username already taken")

    display_name = user.display_name
    if "display_name" in fields:
        display_name = (fields["display_name"] or "").strip() or None
        if display_name and len(display_name) > DISPLAY_NAME_MAX:
            raise MalformedRequest(f"display_name must be at most {DISPLAY_NAME_MAX} characters")

    picture_url = user.picture_url
    if "picture_url" in fields:
        picture_url = (fields["picture_url"] or "").strip() or None
        if picture_url and len(picture_url) > PICTURE_URL_MAX:
            raise MalformedRequest(f"picture_url must be at most {PICTURE_URL_MAX} characters")

    with conflict_on_unique({"username": "username already taken"}):
        updated = store.update_profile(
            user.id, username=username, display_name=display_name, picture_url=picture_url
        )
    updated = require_found(updated, "user")
    return updated.model_dump(mode="json")


@router.delete("/me")
def delete_me(
    caller: CallerIdentity = Depends(require_caller),
    store: Store = Depends(get_store),
    media: MediaStorage = Depends(get_media),
) -> Dict[str, Any]:
    # Collected first: the rows go with the account, the stored objects do not.
    urls = [m.file_url for m in store.list_user_media(caller.subject_id)]
    if not store.delete_user(caller.subject_id):
        raise NotFound("user not found")
    logger.info("Deleted user id=%s (%d media objects)", caller.subject_id, len(urls))
    for url in urls:
        delete_media_object(media, url)
    return {"message": "user deleted"}


@router.get("/users/{username}")
def get_user_by_username(username: str, store: Store = Depends(get_store)) -> Dict[str, Any]:
    user = require_found(store.get_user_by_username(username), "user")
    return user.public_profile()

