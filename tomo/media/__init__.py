"""Object storage for uploaded media (S3 in production, local directory in development)."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Protocol


logger = logging.getLogger(__name__)


class MediaStorage(Protocol):
    def store(self, data: bytes, name: str, content_type: str) -> str:
        """Persist bytes and return the public URL."""

    def owns(self, url: str) -> bool:
        """True when `url` points at an object this storage wrote."""

    def delete(self, url: str) -> None:
        """Remove the object behind a URL returned by `store`."""


@dataclass(frozen=True)
class MediaConfig:
    s3_bucket: Optional[str]
    aws_region: Optional[str]
    prefix: str
    local_dir: str


@lru_cache(maxsize=1)
def load_media_config() -> MediaConfig:
    return MediaConfig(
        s3_bucket=(os.getenv("S3_BUCKET_NAME") or "").strip() or None,
        aws_region=(os.getenv("AWS_REGION") or "").strip() or None,
        prefix=(os.getenv("MEDIA_PREFIX") or "uploads").strip().strip("/") or "uploads",
        local_dir=(os.getenv("MEDIA_LOCAL_DIR") or "./media").strip(),
    )


def get_media_storage(cfg: Optional[MediaConfig] = None) -> MediaStorage:
    cfg = cfg or load_media_config()
    if cfg.s3_bucket:
        from tomo.media.s3_store import S3MediaStorage

        return S3MediaStorage(bucket=cfg.s3_bucket, region=cfg.aws_region, prefix=cfg.prefix)

    from tomo.media.local_store import LocalMediaStorage

    logger.info("S3_BUCKET_NAME not set; storing media under %s", cfg.local_dir)
    return LocalMediaStorage(base_dir=cfg.local_dir)
