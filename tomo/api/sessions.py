from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from tomo.api.deps import get_store
from tomo.api.schemas import CreateSessionRequest
from tomo.auth.gate import require_caller
from tomo.auth.models import CallerIdentity
from tomo.authz.policy import authorize_read, authorize_write, require_found
from tomo.errors import MalformedRequest
from tomo.models import duration_minutes
from tomo.store.base import Store

router = APIRouter()

MAX_SESSION_MINUTES = 24 * 60


def _as_utc(value: datetime) -> datetime:
    # Timestamps without an offset are taken to be UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@router.post("/sessions", status_code=201)
def create_session(
    body: CreateSessionRequest,
    caller: CallerIdentity = Depends(require_caller),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    start = _as_utc(body.start_time)
    end = _as_utc(body.end_time)
    if end <= start:
        raise MalformedRequest("end_time must be after start_time")
    minutes = duration_minutes(start, end)
    if minutes < 1:
        raise MalformedRequest("session must be at least 1 minute long")
    if minutes > MAX_SESSION_MINUTES:
        raise MalformedRequest("session cannot exceed 24 hours")

    session = store.create_session(caller.subject_id, start, end)
    return session.model_dump(mode="json")


@router.get("/sessions")
def list_sessions(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    caller: CallerIdentity = Depends(require_caller),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    sessions = store.list_sessions(caller.subject_id, limit=limit, offset=offset)
    stats = store.session_stats(caller.subject_id)
    return {
        "sessions": [s.model_dump(mode="json") for s in sessions],
        "stats": stats.model_dump(mode="json"),
    }


@router.get("/sessions/{session_id}")
def get_session(
    session_id: int,
    caller: CallerIdentity = Depends(require_caller),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    session = require_found(store.get_session(session_id), "session")
    authorize_read(caller, session, "session")
    return session.model_dump(mode="json")


@router.delete("/sessions/{session_id}")
def delete_session(
    session_id: int,
    caller: CallerIdentity = Depends(require_caller),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    session = require_found(store.get_session(session_id), "session")
    authorize_write(caller, session, "session")
    store.delete_session(session_id)
    return {"message": "session deleted"}
