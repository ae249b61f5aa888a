from __future__ import annotations

from fastapi import Request

from tomo.auth.google import GoogleTokenVerifier
from tomo.auth.tokens import SessionTokenService
from tomo.media import MediaStorage
from tomo.store.base import Store


# Collaborators are built once by create_app and shared read-only by every request.


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_media(request: Request) -> MediaStorage:
    return request.app.state.media


def get_tokens(request: Request) -> SessionTokenService:
    return request.app.state.tokens


def get_google(request: Request) -> GoogleTokenVerifier:
    return request.app.state.google


def get_bcrypt_rounds(request: Request) -> int:
    return request.app.state.config.bcrypt_rounds
