from __future__ import annotations

from flask import Blueprint, current_app, request
from sqlalchemy import func, select, text

from app.chms.audit import audit_to_dict, entity_logs, record_event, search, user_activity
from app.chms.auth import current_user
from app.chms.db import db_session
from app.chms.errors import ConflictError, ValidationError
from app.chms.models import Branch
from app.chms.modules.members.models import Member
from app.chms.orm import exists, page_args
from app.chms.rbac import require_permission
from app.chms.utils import clean_str, json_payload, parse_date

bp = Blueprint("admin", __name__)


@bp.get("/")
@require_permission("admin.view")
def index():
    s = db_session()
    status = {
        "env": current_app.config.get("ENV"),
        "db_connected": False,
        "db_error": None,
        "storage_backend": current_app.config.get("STORAGE_BACKEND"),
        "sms_provider": current_app.config.get("SMS_PROVIDER"),
        "members": None,
    }
    try:
        s.execute(text("SELECT 1"))
        status["db_connected"] = True
        status["members"] = s.scalar(select(func.count()).select_from(Member).where(Member.is_deleted.is_(False)))
    except Exception as e:
        status["db_error"] = str(e)
        current_app.logger.error("Admin status DB check failed: %s", e)
    return {"status": "success", "data": status}


# ---------- Branches ----------
@bp.get("/branches")
@require_permission("admin.view")
def branches_list():
    s = db_session()
    rows = s.scalars(select(Branch).order_by(Branch.name.asc())).all()
    return {"status": "success", "data": [b.to_dict() for b in rows]}


@bp.post("/branches")
@require_permission("branches.manage")
def branches_create():
    s = db_session()
    payload = json_payload()
    name = clean_str(payload.get("name"))
    if not name:
        raise ValidationError.from_errors(["Branch name is required."])
    if exists(s, Branch, name=name):
        raise ConflictError("Branch name already exists.")
    branch = Branch(name=name, address=clean_str(payload.get("address")))
    s.add(branch)
    s.flush()
    record_event(s, actor=current_user(), action="branch.create", entity_type="Branch", entity_id=branch.id, metadata={"name": name})
    s.commit()
    return {"status": "success", "branch_id": branch.id}, 201


# ---------- Audit log ----------
@bp.get("/audit")
@require_permission("audit.view")
def audit_search():
    s = db_session()
    try:
        filters = {
            "action": request.args.get("action"),
            "entity_type": request.args.get("entity_type"),
            "entity_id": request.args.get("entity_id"),
            "actor_user_id": request.args.get("actor_user_id", type=int),
            "date_from": parse_date(request.args.get("date_from")),
            "date_to": parse_date(request.args.get("date_to")),
        }
    except ValueError:
        raise ValidationError.from_errors(["Dates must be YYYY-MM-DD."])
    page, limit = page_args(request.args.get("page"), request.args.get("limit"), default_limit=50)
    result = search(s, filters, page, limit)
    return {"status": "success", **result.to_dict(audit_to_dict)}


@bp.get("/audit/<entity_type>/<entity_id>")
@require_permission("audit.view")
def audit_entity(entity_type: str, entity_id: str):
    s = db_session()
    rows = entity_logs(s, entity_type, entity_id)
    return {"status": "success", "data": [audit_to_dict(r) for r in rows]}


@bp.get("/audit/users/<int:user_id>")
@require_permission("audit.view")
def audit_user(user_id: int):
    s = db_session()
    rows = user_activity(s, user_id)
    return {"status": "success", "data": [audit_to_dict(r) for r in rows]}
