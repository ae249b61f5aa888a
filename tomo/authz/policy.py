"""
Ownership and visibility rules applied by every resource operation.

All checks are pure functions of (caller, resource). Handlers call them in a
fixed order: fetch, `require_found`, then the ownership/visibility check, so a
missing resource is always 404 regardless of who asks.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional, Protocol, TypeVar

from tomo.auth.models import CallerIdentity
from tomo.errors import Conflict, Forbidden, NotFound, Unauthenticated, UniqueViolation

logger = logging.getLogger(__name__)


class Visibility(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"


class OwnedResource(Protocol):
    @property
    def owner_id(self) -> int: ...

    @property
    def resource_visibility(self) -> Optional[Visibility]: ...


R = TypeVar("R")


def require_found(resource: Optional[R], what: str) -> R:
    if resource is None:
        raise NotFound(f"{what} not found")
    return resource


def is_owner(caller: Optional[CallerIdentity], resource: OwnedResource) -> bool:
    return caller is not None and resource.owner_id == caller.subject_id


def authorize_write(caller: CallerIdentity, resource: OwnedResource, what: str = "resource") -> None:
    """Only the owner may update or delete."""
    if not is_owner(caller, resource):
        logger.debug("Denied write on %s owned by %s to caller %s", what, resource.owner_id, caller.subject_id)
        raise Forbidden()


def authorize_read(caller: Optional[CallerIdentity], resource: OwnedResource, what: str = "resource") -> None:
    """
    Public resources are readable by anyone; everything else only by its owner.

    Resources without a visibility flag are owner-only. An anonymous caller
    asking for a non-public resource is Unauthenticated rather than Forbidden.
    """
    if resource.resource_visibility == Visibility.PUBLIC:
        return
    if caller is None:
        raise Unauthenticated("missing Authorization header")
    if not is_owner(caller, resource):
        logger.debug("Denied read on %s owned by %s to caller %s", what, resource.owner_id, caller.subject_id)
        raise Forbidden()


def authorize_parent(caller: CallerIdentity, parent: OwnedResource, what: str) -> None:
    """A child may only be attached to a parent the same caller owns."""
    if not is_owner(caller, parent):
        raise Forbidden(f"forbidden: {what} does not belong to you")


def require_self(caller: CallerIdentity, user_id: int, what: str = "resources") -> None:
    """Collections scoped to a user id are only served to that user."""
    if user_id != caller.subject_id:
        raise Forbidden(f"forbidden: can only view your own {what}")


@contextmanager
def conflict_on_unique(messages: dict, default: str = "already exists") -> Iterator[None]:
    """
    Convert a storage unique-constraint failure into a client-facing Conflict.

    Pre-checks give nicer messages but race with concurrent writers; the
    storage constraint is the final authority.
    """
    try:
        yield
    except UniqueViolation as e:
        raise Conflict(messages.get(e.field, default)) from e
