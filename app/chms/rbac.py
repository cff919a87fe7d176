"""
Role-based access checks for the JSON API.

A user holds roles; each role grants permission keys such as ``members.view``.
Routes declare what they need with ``require_permission``; signed-out callers
get 401 and signed-in callers without the key get 403.
"""
from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g

from app.chms.models import User


def permission_keys(user: User | None) -> set[str]:
    if not user or not user.is_active:
        return set()
    return {perm.key for role in user.roles for perm in role.permissions}


def _signed_in_user() -> User:
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        abort(401)
    return user


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Any active signed-in user; object-level checks stay in the service."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        _signed_in_user()
        return fn(*args, **kwargs)

    return wrapped


def require_permission(*keys: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Every listed key is required."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            granted = permission_keys(_signed_in_user())
            missing = [k for k in keys if k not in granted]
            if missing:
                g.missing_permission = ",".join(missing)
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
