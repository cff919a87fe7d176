from __future__ import annotations

import uuid
from datetime import datetime

from flask import Blueprint, abort, current_app, g, request, session
from sqlalchemy import select
from werkzeug.security import check_password_hash

from app.chms.audit import log_login, record_event
from app.chms.db import db_session
from app.chms.models import User
from app.chms.rate_limiter import rate_limiter_from_config
from app.chms.rbac import login_required, permission_keys
from app.chms.security import rotate_csrf_token
from app.chms.utils import json_payload

bp = Blueprint("auth", __name__)


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        abort(401)
    return u


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            g.current_user = None
            return
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


def _user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "member_id": user.member_id,
        "roles": [r.key for r in user.roles],
        "permissions": sorted(permission_keys(user)),
    }


@bp.post("/login")
def login_post():
    payload = json_payload()
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    limiter = rate_limiter_from_config(current_app.config)
    limiter_key = f"login:{ip}"
    limiter.enforce(
        limiter_key,
        current_app.config.get("LOGIN_RATE_LIMIT", 5),
        current_app.config.get("LOGIN_RATE_WINDOW", 300),
    )

    try:
        s = db_session()
        user = s.scalars(select(User).where(User.username == username)).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            log_login(s, username=username, success=False)
            s.commit()
            current_app.logger.info("Failed login for %r from %s", username, ip)
            return {"status": "error", "message": "Invalid credentials.", "code": 401}, 401

        session.clear()
        session["user_id"] = user.id
        session.permanent = True
        token = rotate_csrf_token()
        limiter.clear(limiter_key)
        user.last_login_at = datetime.utcnow()
        log_login(s, username=username, success=True, user=user)
        s.commit()
        return {"status": "success", "user": _user_payload(user), "csrf_token": token}
    except Exception:
        current_app.logger.exception("Login POST crashed (username=%s request_id=%s)", username, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=user.id)
        s.commit()
    session.clear()
    return {"status": "success", "message": "Logged out."}


@bp.get("/me")
@login_required
def me():
    return {"status": "success", "user": _user_payload(current_user())}
