from __future__ import annotations

from flask import Blueprint, request

from app.chms.db import db_session
from app.chms.modules.engagement.service import engagement_report
from app.chms.rbac import require_permission

bp = Blueprint("engagement", __name__)


@bp.get("/members/<int:member_id>/engagement")
@require_permission("engagement.view")
def member_engagement(member_id: int):
    s = db_session()
    filters = {"start_date": request.args.get("start_date"), "end_date": request.args.get("end_date")}
    return {"status": "success", "data": engagement_report(s, member_id, filters)}
