"""
Release phase: migrate the schema, then seed the lookup rows.

Refuses to run without DATABASE_URL, and refuses SQLite when ENV=production.
Seeding is idempotent and never overwrites an existing admin password.

Usage:
  python scripts/release.py
  python scripts/release.py --revision 0001_initial --skip-seed
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("Missing required environment variable DATABASE_URL.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to run release on sqlite DATABASE_URL in production. Set DATABASE_URL to Postgres.")
    return db_url


def migrate(db_url: str, revision: str = "head") -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, revision)


def run_release(*, revision: str = "head", seed: bool = True) -> None:
    db_url = _database_url()
    print("=== AliveChMS release start ===", flush=True)
    print(f"Upgrading schema to {revision}...", flush=True)
    migrate(db_url, revision)
    print("Migrations complete.", flush=True)

    if seed:
        from scripts import init_db

        print("Seeding permissions, roles, admin user and lookups...", flush=True)
        init_db.seed_only(database_url=db_url)
    print("=== AliveChMS release done ===", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run migrations and seed data.")
    parser.add_argument("--revision", default="head", help="Alembic revision to upgrade to.")
    parser.add_argument("--skip-seed", action="store_true", help="Only migrate.")
    args = parser.parse_args()
    run_release(revision=args.revision, seed=not args.skip_seed)


if __name__ == "__main__":
    main()
