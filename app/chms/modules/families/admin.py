from __future__ import annotations

from flask import Blueprint, request

from app.chms.auth import current_user
from app.chms.db import db_session
from app.chms.modules.families.service import (
    add_family_member,
    create_family,
    delete_family,
    get_family,
    list_families,
    remove_family_member,
    update_family,
    update_family_member_role,
)
from app.chms.orm import page_args
from app.chms.rbac import require_permission
from app.chms.utils import json_payload

bp = Blueprint("families", __name__)


@bp.get("/families")
@require_permission("families.view")
def families_list():
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"))
    filters = {"branch_id": request.args.get("branch_id", type=int), "name": request.args.get("name")}
    return {"status": "success", **list_families(s, page, limit, filters)}


@bp.post("/families")
@require_permission("families.manage")
def families_create():
    s = db_session()
    family = create_family(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "family_id": family.id}, 201


@bp.get("/families/<int:family_id>")
@require_permission("families.view")
def family_detail(family_id: int):
    s = db_session()
    return {"status": "success", "data": get_family(s, family_id)}


@bp.put("/families/<int:family_id>")
@require_permission("families.manage")
def family_update(family_id: int):
    s = db_session()
    family = update_family(s, family_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "family_id": family.id}


@bp.delete("/families/<int:family_id>")
@require_permission("families.manage")
def family_delete(family_id: int):
    s = db_session()
    delete_family(s, family_id, current_user())
    s.commit()
    return {"status": "success"}


# ---------- Family members ----------
@bp.post("/families/<int:family_id>/members")
@require_permission("families.manage")
def family_member_add(family_id: int):
    s = db_session()
    link = add_family_member(s, family_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "family_id": family_id, "member_id": link.member_id}, 201


@bp.delete("/families/<int:family_id>/members/<int:member_id>")
@require_permission("families.manage")
def family_member_remove(family_id: int, member_id: int):
    s = db_session()
    remove_family_member(s, family_id, member_id, current_user())
    s.commit()
    return {"status": "success", "family_id": family_id, "member_id": member_id}


@bp.put("/families/<int:family_id>/members/<int:member_id>")
@require_permission("families.manage")
def family_member_role(family_id: int, member_id: int):
    s = db_session()
    update_family_member_role(s, family_id, member_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "family_id": family_id, "member_id": member_id}
