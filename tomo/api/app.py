"""
Tomo API server.

Serves password and Google sign-in, profiles, focus sessions, reflection posts
and their media. Every protected route receives the caller from the
authentication gate dependency; ownership and visibility checks happen in the
route after the resource has been loaded.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tomo.api import auth as auth_routes
from tomo.api import media as media_routes
from tomo.api import posts as post_routes
from tomo.api import sessions as session_routes
from tomo.api import users as user_routes
from tomo.auth.config import AuthConfig, load_auth_config
from tomo.auth.google import GoogleTokenVerifier
from tomo.auth.tokens import SessionTokenService
from tomo.errors import StoreError, TomoError
from tomo.media import MediaStorage, get_media_storage
from tomo.store import get_store_from_env
from tomo.store.base import Store

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid request"
    first = errors[0]
    if first.get("type") == "json_invalid":
        return "invalid request body"
    loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path")]
    if not loc:
        return "invalid request body"
    return f"{'.'.join(loc)}: {first.get('msg', 'invalid value')}"


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(TomoError)
    async def _tomo_error(request: Request, exc: TomoError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s - %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(400, _validation_message(exc))

    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError) -> JSONResponse:
        logger.error("%s %s - storage failure: %s", request.method, request.url.path, str(exc))
        return _error(500, "internal server error")

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        # Already logged with its traceback by the request middleware.
        return _error(500, "internal server error")


def create_app(
    config: Optional[AuthConfig] = None,
    store: Optional[Store] = None,
    media: Optional[MediaStorage] = None,
    verifier: Optional[GoogleTokenVerifier] = None,
) -> FastAPI:
    """
    Build the application.

    Collaborators default to the environment-configured ones. A missing
    JWT_SECRET raises ConfigError here, so the process never serves requests
    without a signing key.
    """
    cfg = config or load_auth_config()
    tokens = SessionTokenService(cfg.require_jwt_secret(), ttl_seconds=cfg.session_ttl_seconds)
    use_env_store = store is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if use_env_store:
            # Optional dev behavior: DB_AUTO_MIGRATE=1 applies pending migrations.
            # Never prevents the server from starting; failures are logged.
            try:
                from tomo.store.migrate import maybe_auto_migrate

                did_attempt, msg = maybe_auto_migrate()
                if did_attempt:
                    logger.info("DB migrations: %s", msg)
            except Exception as e:
                logger.warning("DB migrations: startup auto-migrate failed: %s", str(e))
        logger.info(
            "Tomo API ready: session_ttl=%ss google_enabled=%s store=%s media=%s",
            cfg.session_ttl_seconds,
            app.state.google.enabled,
            type(app.state.store).__name__,
            type(app.state.media).__name__,
        )
        yield

    app = FastAPI(title="Tomo API", lifespan=lifespan)
    app.state.config = cfg
    app.state.tokens = tokens
    app.state.store = store if store is not None else get_store_from_env()
    app.state.media = media if media is not None else get_media_storage()
    app.state.google = verifier if verifier is not None else GoogleTokenVerifier.from_config(cfg)

    _install_error_handlers(app)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming HTTP requests."""
        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception:
            process_time = time.time() - start_time
            logger.exception("%s %s - ERROR after %.3fs", request.method, request.url.path, process_time)
            raise
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response

    # Bearer tokens travel in a header, never in cookies, so credentials stay off.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_allowed_origins or ["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True}

    app.include_router(auth_routes.router)
    app.include_router(user_routes.router)
    app.include_router(session_routes.router)
    app.include_router(post_routes.router)
    app.include_router(media_routes.router)
    return app
