from __future__ import annotations

from flask import Blueprint, request

from app.chms.auth import current_user
from app.chms.db import db_session
from app.chms.modules.volunteers.service import (
    assign,
    assignments_for_member,
    complete,
    confirm,
    create_role,
    get_by_event,
    get_roles,
    remove,
)
from app.chms.orm import page_args
from app.chms.rbac import login_required, require_permission
from app.chms.utils import json_payload

bp = Blueprint("volunteers", __name__)


# ---------- Roles ----------
@bp.get("/volunteer-roles")
@require_permission("volunteers.view")
def volunteer_roles_list():
    s = db_session()
    return {"status": "success", "data": [r.to_dict() for r in get_roles(s)]}


@bp.post("/volunteer-roles")
@require_permission("volunteers.manage")
def volunteer_roles_create():
    s = db_session()
    role = create_role(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "role_id": role.id}, 201


# ---------- Assignments ----------
@bp.get("/events/<int:event_id>/volunteers")
@require_permission("volunteers.view")
def event_volunteers(event_id: int):
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"), default_limit=50)
    return {"status": "success", **get_by_event(s, event_id, page, limit)}


@bp.post("/events/<int:event_id>/volunteers")
@require_permission("volunteers.manage")
def event_volunteers_assign(event_id: int):
    s = db_session()
    counts = assign(s, event_id, json_payload().get("volunteers"), current_user())
    s.commit()
    return {"status": "success", "message": "Volunteers assigned.", **counts}, 201


@bp.post("/volunteers/<int:assignment_id>/respond")
@login_required
def volunteer_respond(assignment_id: int):
    s = db_session()
    assignment = confirm(s, assignment_id, json_payload().get("action"), current_user())
    s.commit()
    return {"status": "success", "new_status": assignment.status}


@bp.post("/volunteers/<int:assignment_id>/complete")
@require_permission("volunteers.manage")
def volunteer_complete(assignment_id: int):
    s = db_session()
    complete(s, assignment_id, current_user())
    s.commit()
    return {"status": "success", "message": "Volunteer service completed."}


@bp.delete("/volunteers/<int:assignment_id>")
@require_permission("volunteers.manage")
def volunteer_remove(assignment_id: int):
    s = db_session()
    remove(s, assignment_id, current_user())
    s.commit()
    return {"status": "success", "message": "Volunteer removed from event."}


@bp.get("/members/<int:member_id>/volunteering")
@require_permission("volunteers.view")
def member_volunteering(member_id: int):
    s = db_session()
    return {"status": "success", "data": assignments_for_member(s, member_id)}
