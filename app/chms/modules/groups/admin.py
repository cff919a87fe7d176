from __future__ import annotations

from flask import Blueprint, request

from app.chms.auth import current_user
from app.chms.db import db_session
from app.chms.errors import raise_for_errors
from app.chms.modules.groups.service import (
    add_group_member,
    create_group,
    create_group_type,
    delete_group,
    get_group,
    get_group_members,
    get_group_messages,
    list_group_types,
    list_groups,
    remove_group_member,
    send_group_message,
    update_group,
)
from app.chms.orm import page_args
from app.chms.rbac import require_permission
from app.chms.utils import json_payload, required_int

bp = Blueprint("groups", __name__)


# ---------- Group types ----------
@bp.get("/group-types")
@require_permission("groups.view")
def group_types_list():
    s = db_session()
    return {"status": "success", "data": [gt.to_dict() for gt in list_group_types(s)]}


@bp.post("/group-types")
@require_permission("groups.manage")
def group_types_create():
    s = db_session()
    gt = create_group_type(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "type_id": gt.id}, 201


# ---------- Groups ----------
@bp.get("/groups")
@require_permission("groups.view")
def groups_list():
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"))
    filters = {
        "type_id": request.args.get("type_id", type=int),
        "branch_id": request.args.get("branch_id", type=int),
        "name": request.args.get("name"),
    }
    return {"status": "success", **list_groups(s, page, limit, filters)}


@bp.post("/groups")
@require_permission("groups.manage")
def groups_create():
    s = db_session()
    group = create_group(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "group_id": group.id}, 201


@bp.get("/groups/<int:group_id>")
@require_permission("groups.view")
def group_detail(group_id: int):
    s = db_session()
    return {"status": "success", "data": get_group(s, group_id)}


@bp.put("/groups/<int:group_id>")
@require_permission("groups.manage")
def group_update(group_id: int):
    s = db_session()
    group = update_group(s, group_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "group_id": group.id}


@bp.delete("/groups/<int:group_id>")
@require_permission("groups.manage")
def group_delete(group_id: int):
    s = db_session()
    delete_group(s, group_id, current_user())
    s.commit()
    return {"status": "success", "message": "Group deleted."}


# ---------- Members ----------
@bp.get("/groups/<int:group_id>/members")
@require_permission("groups.view")
def group_members(group_id: int):
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"))
    return {"status": "success", **get_group_members(s, group_id, page, limit)}


@bp.post("/groups/<int:group_id>/members")
@require_permission("groups.manage")
def group_member_add(group_id: int):
    s = db_session()
    errors: list[str] = []
    member_id = required_int(json_payload(), "member_id", "Member", errors)
    raise_for_errors(errors)
    add_group_member(s, group_id, member_id, current_user())
    s.commit()
    return {"status": "success", "message": "Member added to group."}, 201


@bp.delete("/groups/<int:group_id>/members/<int:member_id>")
@require_permission("groups.manage")
def group_member_remove(group_id: int, member_id: int):
    s = db_session()
    remove_group_member(s, group_id, member_id, current_user())
    s.commit()
    return {"status": "success", "message": "Member removed from group."}


# ---------- Messages ----------
@bp.get("/groups/<int:group_id>/messages")
@require_permission("groups.view")
def group_messages(group_id: int):
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"))
    return {"status": "success", **get_group_messages(s, group_id, page, limit)}


@bp.post("/groups/<int:group_id>/messages")
@require_permission("groups.message")
def group_message_send(group_id: int):
    s = db_session()
    comm, queued = send_group_message(s, group_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "message_id": comm.id, "deliveries_queued": queued}, 201
