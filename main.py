#!/usr/bin/env python3
"""
Tomo - focus sessions and reflection journal API.

  python main.py serve [--host 0.0.0.0] [--port 8080]
  python main.py migrate
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

logger = logging.getLogger("tomo")

#
# NOTE: Keep tomo imports lazy (inside functions) so `migrate` does not pull in
# the web stack and `serve` does not pull in migration tooling.
#


def configure_logging() -> str:
    """Configure root logging from LOG_LEVEL and return the normalized level name."""
    log_level = (os.getenv("LOG_LEVEL") or "info").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    return log_level


def serve(host: str, port: int, log_level: str) -> None:
    import uvicorn

    from tomo.api.app import create_app

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    # Build eagerly: a missing JWT_SECRET must stop the process before it binds.
    app = create_app()
    logger.info("Starting Tomo API on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)


def migrate(dry_run: bool = False) -> int:
    from tomo.store.config import build_postgres_dsn, load_db_config
    from tomo.store.migrate import migrate as run_migrations

    cfg = load_db_config()
    dsn = build_postgres_dsn(cfg)
    if not dsn:
        print("Postgres not configured (set POSTGRES_DSN or POSTGRES_HOST/DB/USER/PASSWORD)", file=sys.stderr)
        return 2
    versions = run_migrations(dsn, connect_timeout=cfg.connect_timeout_seconds, dry_run=dry_run)
    if versions:
        verb = "Pending" if dry_run else "Applied"
        print(f"{verb} {len(versions)} migration(s): {', '.join(versions)}")
    else:
        print("No pending migrations")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Tomo API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the API (JWT_SECRET is required)
  JWT_SECRET=... python main.py serve --port 8080

  # Apply pending database migrations
  POSTGRES_DSN=postgresql://... python main.py migrate
        """,
    )
    sub = parser.add_subparsers(dest="command")

    serve_p = sub.add_parser("serve", help="Run the HTTP API server")
    serve_p.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    serve_p.add_argument("--port", type=int, default=8080, help="Listen port (default: 8080)")

    migrate_p = sub.add_parser("migrate", help="Apply pending Postgres migrations and exit")
    migrate_p.add_argument("--dry-run", action="store_true", help="List pending migrations without applying them")

    args = parser.parse_args(argv)
    log_level = configure_logging()

    if args.command == "serve":
        serve(args.host, args.port, log_level)
        return 0

    if args.command == "migrate":
        return migrate(dry_run=args.dry_run)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
