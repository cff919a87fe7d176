from __future__ import annotations

import mimetypes

from flask import Blueprint, abort, current_app, request, send_file

from app.chms.auth import current_user
from app.chms.db import db_session
from app.chms.errors import ValidationError
from app.chms.modules.members.service import (
    add_phone,
    delete_member,
    delete_phone,
    get_member,
    get_member_or_404,
    get_phones,
    list_members,
    register_member,
    update_member,
    update_phone,
    upload_photo,
)
from app.chms.orm import page_args
from app.chms.rbac import require_permission
from app.chms.storage import storage_from_config
from app.chms.utils import json_payload

bp = Blueprint("members", __name__)


# ---------- List ----------
@bp.get("/members")
@require_permission("members.view")
def members_list():
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"))
    filters = {
        "name": request.args.get("name"),
        "branch_id": request.args.get("branch_id", type=int),
        "status": request.args.get("status"),
    }
    return {"status": "success", **list_members(s, page, limit, filters)}


# ---------- Register ----------
@bp.post("/members")
@require_permission("members.create")
def members_register():
    s = db_session()
    member = register_member(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "member_id": member.id}, 201


# ---------- Detail ----------
@bp.get("/members/<int:member_id>")
@require_permission("members.view")
def member_detail(member_id: int):
    s = db_session()
    return {"status": "success", "data": get_member(s, member_id)}


@bp.put("/members/<int:member_id>")
@require_permission("members.edit")
def member_update(member_id: int):
    s = db_session()
    member = update_member(s, member_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "member_id": member.id}


@bp.delete("/members/<int:member_id>")
@require_permission("members.delete")
def member_delete(member_id: int):
    s = db_session()
    delete_member(s, member_id, current_user())
    s.commit()
    return {"status": "success", "message": "Member deleted."}


# ---------- Phones ----------
@bp.get("/members/<int:member_id>/phones")
@require_permission("members.view")
def member_phones(member_id: int):
    s = db_session()
    return {"status": "success", "data": [p.to_dict() for p in get_phones(s, member_id)]}


@bp.post("/members/<int:member_id>/phones")
@require_permission("members.edit")
def member_phone_add(member_id: int):
    s = db_session()
    phone = add_phone(s, member_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "phone_id": phone.id}, 201


@bp.put("/members/phones/<int:phone_id>")
@require_permission("members.edit")
def member_phone_update(phone_id: int):
    s = db_session()
    phone = update_phone(s, phone_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "phone_id": phone.id}


@bp.delete("/members/phones/<int:phone_id>")
@require_permission("members.edit")
def member_phone_delete(phone_id: int):
    s = db_session()
    delete_phone(s, phone_id, current_user())
    s.commit()
    return {"status": "success"}


# ---------- Photo ----------
@bp.post("/members/<int:member_id>/photo")
@require_permission("members.edit")
def member_photo_upload(member_id: int):
    s = db_session()
    f = request.files.get("file")
    if not f or not f.filename:
        raise ValidationError("Photo file is required.")
    key = upload_photo(
        s,
        member_id,
        file_bytes=f.read(),
        filename=f.filename,
        content_type=f.mimetype,
        storage=storage_from_config(current_app.config),
        actor=current_user(),
    )
    s.commit()
    return {"status": "success", "photo_storage_key": key}, 201


@bp.get("/members/<int:member_id>/photo")
@require_permission("members.view")
def member_photo(member_id: int):
    s = db_session()
    member = get_member_or_404(s, member_id)
    if not member.photo_storage_key:
        abort(404)
    storage = storage_from_config(current_app.config)
    if not storage.exists(member.photo_storage_key):
        abort(404)
    mimetype = mimetypes.guess_type(member.photo_storage_key)[0] or "application/octet-stream"
    return send_file(storage.open(member.photo_storage_key), mimetype=mimetype)
