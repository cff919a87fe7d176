import logging

from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.chms.db import db_session

bp = Blueprint("routes", __name__)
logger = logging.getLogger(__name__)


@bp.get("/")
def index():
    return {"name": "AliveChMS", "status": "ok", "api": "/admin", "auth": "/auth"}


@bp.get("/health")
def health():
    """Liveness plus a one-row database round trip; 503 when the database is unreachable."""
    try:
        db_session().execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check database error: %s", e)
        return {"ok": False, "database": "unavailable"}, 503
    return {"ok": True, "database": "ok", "env": current_app.config.get("ENV")}


@bp.get("/healthz")
def healthz():
    # Container probe: no database access.
    return "ok", 200
