from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.chms.models import AuditLog, LoginLog, User
from app.chms.orm import Page, paginate

logger = logging.getLogger(__name__)


def _client_info() -> tuple[str | None, str | None]:
    if not has_request_context():
        return None, None
    ua = request.headers.get("User-Agent")
    return request.remote_addr, (ua[:512] if ua else None)


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | int | None = None,
    reason: str | None = None,
    changes: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditLog:
    """
    Append-only audit event helper.
    """
    rid = request_id or (getattr(g, "request_id", None) if has_request_context() else None)
    ip, ua = _client_info()
    ev = AuditLog(
        request_id=rid,
        actor_user_id=actor.id if actor else None,
        actor_username=actor.username if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        reason=reason,
        changes_json=json.dumps(changes, sort_keys=True, default=str) if changes else None,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        ip_address=ip,
        user_agent=ua,
    )
    s.add(ev)
    return ev


def log_member(s: Session, *, actor: User | None, action: str, member_id: int, changes: dict | None = None) -> AuditLog:
    return record_event(s, actor=actor, action=f"member.{action}", entity_type="Member", entity_id=member_id, changes=changes)


def log_financial(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str,
    entity_id: int,
    amount: Any = None,
    changes: dict | None = None,
) -> AuditLog:
    metadata: dict[str, Any] = {"category": "financial"}
    if amount is not None:
        metadata["amount"] = str(amount)
    return record_event(
        s,
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        changes=changes,
        metadata=metadata,
    )


def log_approval(
    s: Session,
    *,
    actor: User | None,
    entity_type: str,
    entity_id: int,
    approved: bool,
    remarks: str | None = None,
) -> AuditLog:
    verb = "approve" if approved else "reject"
    return record_event(
        s,
        actor=actor,
        action=f"{entity_type.lower()}.{verb}",
        entity_type=entity_type,
        entity_id=entity_id,
        reason=remarks,
        metadata={"category": "approval", "approved": approved},
    )


def log_login(s: Session, *, username: str, success: bool, user: User | None = None) -> LoginLog:
    ip, ua = _client_info()
    row = LoginLog(username=username, success=success, ip_address=ip, user_agent=ua)
    s.add(row)
    record_event(
        s,
        actor=user if success else None,
        action="auth.login" if success else "auth.login_failed",
        entity_type="User",
        entity_id=user.id if user else username,
        reason=None if success else "Invalid credentials",
    )
    return row


def entity_logs(s: Session, entity_type: str, entity_id: str | int, limit: int = 50) -> list[AuditLog]:
    stmt = (
        select(AuditLog)
        .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == str(entity_id))
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
    )
    return list(s.scalars(stmt))


def user_activity(s: Session, user_id: int, limit: int = 100) -> list[AuditLog]:
    stmt = (
        select(AuditLog)
        .where(AuditLog.actor_user_id == user_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
    )
    return list(s.scalars(stmt))


def search(s: Session, filters: dict[str, Any], page: int = 1, limit: int = 50) -> Page:
    """
    Filters: action (prefix match), entity_type, entity_id, actor_user_id, date_from, date_to.
    """
    stmt = select(AuditLog)
    action = (filters.get("action") or "").strip()
    if action:
        stmt = stmt.where(AuditLog.action.like(f"{action}%"))
    if filters.get("entity_type"):
        stmt = stmt.where(AuditLog.entity_type == filters["entity_type"])
    if filters.get("entity_id") is not None and filters.get("entity_id") != "":
        stmt = stmt.where(AuditLog.entity_id == str(filters["entity_id"]))
    if filters.get("actor_user_id"):
        stmt = stmt.where(AuditLog.actor_user_id == int(filters["actor_user_id"]))
    date_from: date | None = filters.get("date_from")
    date_to: date | None = filters.get("date_to")
    if date_from:
        stmt = stmt.where(AuditLog.created_at >= datetime.combine(date_from, datetime.min.time()))
    if date_to:
        stmt = stmt.where(AuditLog.created_at < datetime.combine(date_to + timedelta(days=1), datetime.min.time()))
    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    return paginate(s, stmt, page, limit)


def cleanup(s: Session, days_to_keep: int = 365) -> dict[str, int]:
    """Drop audit and login rows older than the retention window."""
    cutoff = datetime.utcnow() - timedelta(days=days_to_keep)
    audit_rows = s.execute(delete(AuditLog).where(AuditLog.created_at < cutoff)).rowcount or 0
    login_rows = s.execute(delete(LoginLog).where(LoginLog.created_at < cutoff)).rowcount or 0
    logger.info("Audit cleanup: removed %s audit rows, %s login rows older than %s days", audit_rows, login_rows, days_to_keep)
    return {"audit_log": audit_rows, "login_log": login_rows}


def audit_to_dict(ev: AuditLog) -> dict[str, Any]:
    d = ev.to_dict()
    d["changes"] = json.loads(ev.changes_json) if ev.changes_json else None
    d["metadata"] = json.loads(ev.metadata_json) if ev.metadata_json else None
    d.pop("changes_json", None)
    d.pop("metadata_json", None)
    return d
