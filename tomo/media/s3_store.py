"""S3 storage for post media."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import unquote, urlparse

from tomo.media.naming import object_name

logger = logging.getLogger(__name__)

_s3_client = None
_s3_client_lock = threading.Lock()

# Bounds every S3 call; the upload request fails rather than hangs.
_S3_TIMEOUT_SECONDS = 20


def _get_s3_client(region: Optional[str]):
    """Return a cached boto3 S3 client (thread-safe lazy init)."""
    global _s3_client
    if _s3_client is not None:
        return _s3_client
    with _s3_client_lock:
        if _s3_client is not None:
            return _s3_client
        import boto3
        from botocore.config import Config

        _s3_client = boto3.client(
            "s3",
            region_name=region,
            config=Config(connect_timeout=_S3_TIMEOUT_SECONDS, read_timeout=_S3_TIMEOUT_SECONDS),
        )
        return _s3_client


def key_from_url(url: str) -> str:
    """
    Object key from a public S3 URL.

    `https://bucket.s3.region.amazonaws.com/uploads/file.jpg` -> `uploads/file.jpg`
    """
    key = unquote(urlparse(url).path).lstrip("/")
    if not key:
        raise ValueError("S3 URL path component is empty")
    return key


@dataclass
class S3MediaStorage:
    bucket: str
    region: Optional[str] = None
    prefix: str = "uploads"
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.prefix = (self.prefix or "").strip("/")
        # Uses ambient AWS auth (instance role, env credentials locally, etc.)
        if self.client is None:
            self.client = _get_s3_client(self.region)

    def key(self, name: str) -> str:
        name = name.lstrip("/")
        if self.prefix:
            return f"{self.prefix}/{name}"
        return name

    def public_url(self, key: str) -> str:
        if self.region:
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def store(self, data: bytes, name: str, content_type: str) -> str:
        key = self.key(object_name(name))
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            ACL="public-read",
        )
        logger.info("Stored media object s3://%s/%s (%d bytes)", self.bucket, key, len(data))
        return self.public_url(key)

    def owns(self, url: str) -> bool:
        parsed = urlparse(url or "")
        hosts = {f"{self.bucket}.s3.amazonaws.com"}
        if self.region:
            hosts.add(f"{self.bucket}.s3.{self.region}.amazonaws.com")
        if parsed.scheme != "https" or parsed.netloc not in hosts:
            return False
        key = unquote(parsed.path).lstrip("/")
        return bool(key) and (not self.prefix or key.startswith(self.prefix + "/"))

    def delete(self, url: str) -> None:
        if not self.owns(url):
            raise ValueError(f"not an object in bucket {self.bucket}: {url}")
        key = key_from_url(url)
        self.client.delete_object(Bucket=self.bucket, Key=key)
        logger.info("Deleted media object s3://%s/%s", self.bucket, key)
