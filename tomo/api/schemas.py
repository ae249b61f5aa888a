"""Request bodies. Field rules that need client-facing messages are checked in the handlers."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    email: str = ""
    username: str = ""
    password: str = ""


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class GoogleAuthRequest(BaseModel):
    id_token: str = ""


class UpdateProfileRequest(BaseModel):
    # Omitted fields keep their current value; explicit null clears display_name/picture_url.
    username: Optional[str] = None
    display_name: Optional[str] = None
    picture_url: Optional[str] = None


class CreateSessionRequest(BaseModel):
    start_time: datetime
    end_time: datetime


class CreatePostRequest(BaseModel):
    post_type: str
    session_id: Optional[int] = None
    content: Optional[str] = None
    title: Optional[str] = None
    mood_rating: Optional[int] = None
    visibility: str = "private"
    tags: List[str] = Field(default_factory=list)


class UpdatePostRequest(BaseModel):
    content: Optional[str] = None
    title: Optional[str] = None
    mood_rating: Optional[int] = None
    visibility: Optional[str] = None


class AddMediaRequest(BaseModel):
    media_type: str
    file_url: str
    original_filename: Optional[str] = None
