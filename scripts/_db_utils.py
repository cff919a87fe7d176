from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.chms.db import create_db_engine, make_sessionmaker

DEFAULT_DATABASE_URL = "sqlite:///chms.db"


def resolve_database_url(database_url: str | None = None) -> str:
    """Explicit URL, else DATABASE_URL, else the local SQLite file."""
    return (database_url or os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL).strip()


@contextmanager
def script_session(db_url: str | None = None) -> Iterator[Session]:
    """One-off session for CLI scripts without an app: commits on success, always disposes the engine."""
    engine = create_db_engine(resolve_database_url(db_url))
    s = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
