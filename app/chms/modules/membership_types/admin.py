from __future__ import annotations

from flask import Blueprint, request

from app.chms.auth import current_user
from app.chms.db import db_session
from app.chms.modules.membership_types.service import (
    assign_type,
    create_type,
    delete_type,
    get_type,
    list_types,
    member_assignments,
    update_assignment,
    update_type,
)
from app.chms.orm import page_args
from app.chms.rbac import require_permission
from app.chms.utils import json_payload

bp = Blueprint("membership_types", __name__)


@bp.get("/membership-types")
@require_permission("membership_types.view")
def membership_types_list():
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"))
    return {"status": "success", **list_types(s, page, limit, request.args.get("name"))}


@bp.post("/membership-types")
@require_permission("membership_types.manage")
def membership_types_create():
    s = db_session()
    mt = create_type(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "type_id": mt.id}, 201


@bp.get("/membership-types/<int:type_id>")
@require_permission("membership_types.view")
def membership_type_detail(type_id: int):
    s = db_session()
    return {"status": "success", "data": get_type(s, type_id)}


@bp.put("/membership-types/<int:type_id>")
@require_permission("membership_types.manage")
def membership_type_update(type_id: int):
    s = db_session()
    mt = update_type(s, type_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "type_id": mt.id}


@bp.delete("/membership-types/<int:type_id>")
@require_permission("membership_types.manage")
def membership_type_delete(type_id: int):
    s = db_session()
    delete_type(s, type_id, current_user())
    s.commit()
    return {"status": "success", "message": "Membership type deleted."}


# ---------- Assignments ----------
@bp.get("/members/<int:member_id>/membership-types")
@require_permission("membership_types.view")
def member_membership_types(member_id: int):
    s = db_session()
    filters = {
        "active": request.args.get("active"),
        "start_date": request.args.get("start_date"),
        "end_date": request.args.get("end_date"),
    }
    return {"status": "success", "data": member_assignments(s, member_id, filters)}


@bp.post("/members/<int:member_id>/membership-types")
@require_permission("membership_types.manage")
def member_membership_type_assign(member_id: int):
    s = db_session()
    assignment = assign_type(s, member_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "assignment_id": assignment.id}, 201


@bp.put("/membership-assignments/<int:assignment_id>")
@require_permission("membership_types.manage")
def membership_assignment_update(assignment_id: int):
    s = db_session()
    assignment = update_assignment(s, assignment_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "assignment_id": assignment.id}
