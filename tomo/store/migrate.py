"""
Ordered SQL migrations for the Postgres store.

Files live in `migrations/` as `<version>_<name>.sql` and are applied in
version order, each in its own transaction, under a session advisory lock so
replicas starting together never race. The checksum of every applied file is
recorded; editing a migration after it shipped stops the run before anything
new is applied.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from tomo.store.config import DbConfig, build_postgres_dsn, load_db_config

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

MIGRATION_LOCK_KEY = 417731190263  # bigint, shared by every tomo replica

_SCHEMA_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
  version    text PRIMARY KEY,
  checksum   text NOT NULL,
  applied_at timestamptz NOT NULL DEFAULT now()
)
"""


class MigrationError(RuntimeError):
    pass


@dataclass(frozen=True)
class Migration:
    version: str
    name: str
    sql: str

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()


def discover(directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    found: Dict[str, Migration] = {}
    for path in sorted(directory.glob("*.sql")):
        version, _, name = path.stem.partition("_")
        if version in found:
            raise MigrationError(f"duplicate migration version {version}: {found[version].name}, {name}")
        found[version] = Migration(version=version, name=name or version, sql=path.read_text(encoding="utf-8"))
    return [found[v] for v in sorted(found)]


def plan(migrations: Iterable[Migration], applied: Dict[str, str]) -> List[Migration]:
    """
    Migrations still to apply, in order.

    Raises MigrationError if a migration already applied has changed on disk.
    """
    pending: List[Migration] = []
    known = set()
    for m in migrations:
        known.add(m.version)
        recorded = applied.get(m.version)
        if recorded is None:
            pending.append(m)
        elif recorded != m.checksum:
            raise MigrationError(
                f"migration {m.version} changed after it was applied: db={recorded[:12]} file={m.checksum[:12]}"
            )
    for version in sorted(set(applied) - known):
        logger.warning("Database has migration %s which is not present in this build", version)
    return pending


def migrate(
    dsn: str,
    *,
    connect_timeout: int = 5,
    migrations: Optional[Iterable[Migration]] = None,
    dry_run: bool = False,
) -> List[str]:
    """Apply (or with `dry_run`, only list) pending migrations. Returns their versions."""
    import psycopg

    available = list(migrations) if migrations is not None else discover()
    with psycopg.connect(dsn, connect_timeout=connect_timeout, autocommit=True) as conn:
        conn.execute("SELECT pg_advisory_lock(%s)", (MIGRATION_LOCK_KEY,))
        try:
            conn.execute(_SCHEMA_TABLE_DDL)
            rows = conn.execute("SELECT version, checksum FROM schema_migrations").fetchall()
            pending = plan(available, {str(v): str(c) for v, c in rows})
            if dry_run:
                return [m.version for m in pending]

            for m in pending:
                with conn.transaction():
                    conn.execute(m.sql)
                    conn.execute(
                        "INSERT INTO schema_migrations (version, checksum) VALUES (%s, %s)",
                        (m.version, m.checksum),
                    )
                logger.info("Applied migration %s (%s)", m.version, m.name)
        finally:
            conn.execute("SELECT pg_advisory_unlock(%s)", (MIGRATION_LOCK_KEY,))
    return [m.version for m in pending]


def maybe_auto_migrate(cfg: Optional[DbConfig] = None) -> Tuple[bool, str]:
    """
    Auto-migrate on startup when DB_AUTO_MIGRATE=1 and Postgres is configured.

    Returns: (did_attempt, message)
    """
    cfg = cfg or load_db_config()
    if not cfg.db_auto_migrate:
        return False, "DB_AUTO_MIGRATE is disabled"
    dsn = build_postgres_dsn(cfg)
    if not dsn:
        return False, "Postgres DSN not configured"
    versions = migrate(dsn, connect_timeout=cfg.connect_timeout_seconds)
    if versions:
        return True, f"Applied {len(versions)} migration(s): {', '.join(versions)}"
    return True, "No pending migrations"
