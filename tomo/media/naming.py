from __future__ import annotations

import os
import re
import uuid

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def object_name(original: str) -> str:
    """
    Unique, path-safe object name that keeps the original extension.

    Two uploads of `photo.jpg` must not overwrite each other.
    """
    base = os.path.basename(original or "") or "file"
    stem, ext = os.path.splitext(base)
    stem = _UNSAFE.sub("-", stem).strip("-.") or "file"
    ext = _UNSAFE.sub("", ext.lower())
    return f"{uuid.uuid4().hex}-{stem[:64]}{ext}"
