"""Persistence adapters (Postgres, in-process) behind the `Store` protocol."""
from __future__ import annotations

import logging
from typing import Optional

from tomo.store.base import Store
from tomo.store.config import DbConfig, build_postgres_dsn, load_db_config

logger = logging.getLogger(__name__)


def get_store_from_env(cfg: Optional[DbConfig] = None) -> Store:
    """
    Return a Postgres-backed store when configured, else the in-process store.

    The in-process store is for local development only: data is lost on restart.
    """
    cfg = cfg or load_db_config()
    dsn = build_postgres_dsn(cfg)
    if dsn:
        from tomo.store.postgres import PostgresStore

        return PostgresStore(
            dsn,
            connect_timeout=cfg.connect_timeout_seconds,
            statement_timeout_ms=cfg.statement_timeout_ms,
        )

    from tomo.store.memory import MemoryStore

    logger.warning("Postgres not configured (POSTGRES_DSN / POSTGRES_*); using in-memory store")
    return MemoryStore()
