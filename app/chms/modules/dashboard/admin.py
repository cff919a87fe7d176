from __future__ import annotations

from flask import Blueprint, request

from app.chms.auth import current_user
from app.chms.db import db_session
from app.chms.modules.dashboard.service import overview
from app.chms.modules.members.models import Member
from app.chms.rbac import require_permission

bp = Blueprint("dashboard", __name__)


@bp.get("/dashboard")
@require_permission("dashboard.view")
def dashboard_overview():
    s = db_session()
    branch_id = request.args.get("branch_id", type=int)
    if branch_id is None:
        # Default to the signed-in member's branch; staff accounts fall back to the main branch.
        user = current_user()
        member = s.get(Member, user.member_id) if user and user.member_id else None
        branch_id = member.branch_id if member else 1
    return {"status": "success", "data": overview(s, branch_id)}
