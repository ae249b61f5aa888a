"""Local filesystem media storage for development (fallback when S3 not configured)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

from tomo.media.naming import object_name


@dataclass
class LocalMediaStorage:
    """Local filesystem storage compatible with S3MediaStorage interface."""

    base_dir: str = "./media"

    def __post_init__(self) -> None:
        """Ensure base directory exists."""
        self.base_dir = os.path.abspath(self.base_dir)
        Path(self.base_dir).mkdir(parents=True, exist_ok=True)

    def store(self, data: bytes, name: str, content_type: str) -> str:
        path = Path(self.base_dir) / object_name(name)
        path.write_bytes(data)
        return path.as_uri()

    def owns(self, url: str) -> bool:
        parsed = urlparse(url or "")
        if parsed.scheme != "file":
            return False
        return Path(self.base_dir) in Path(os.path.normpath(unquote(parsed.path))).parents

    def delete(self, url: str) -> None:
        if not self.owns(url):
            raise ValueError(f"not a local media URL: {url}")
        path = Path(unquote(urlparse(url).path))
        path.unlink(missing_ok=True)
