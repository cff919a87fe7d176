from __future__ import annotations

from flask import Blueprint, request

from app.chms.auth import current_user
from app.chms.db import db_session
from app.chms.errors import raise_for_errors
from app.chms.modules.permissions.service import (
    assign_permission,
    assign_role,
    create_permission,
    create_role,
    delete_permission,
    get_permission,
    list_permissions,
    list_roles,
    remove_role,
    revoke_permission,
    role_to_dict,
    update_permission,
)
from app.chms.orm import page_args
from app.chms.rbac import require_permission
from app.chms.utils import json_payload, required_int

bp = Blueprint("permissions", __name__)


# ---------- Permissions ----------
@bp.get("/permissions")
@require_permission("permissions.view")
def permissions_list():
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"))
    return {"status": "success", **list_permissions(s, page, limit, request.args.get("name"))}


@bp.post("/permissions")
@require_permission("permissions.manage")
def permissions_create():
    s = db_session()
    perm = create_permission(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "permission_id": perm.id}, 201


@bp.get("/permissions/<int:permission_id>")
@require_permission("permissions.view")
def permission_detail(permission_id: int):
    s = db_session()
    return {"status": "success", "data": get_permission(s, permission_id)}


@bp.put("/permissions/<int:permission_id>")
@require_permission("permissions.manage")
def permission_update(permission_id: int):
    s = db_session()
    perm = update_permission(s, permission_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "permission_id": perm.id}


@bp.delete("/permissions/<int:permission_id>")
@require_permission("permissions.manage")
def permission_delete(permission_id: int):
    s = db_session()
    delete_permission(s, permission_id, current_user())
    s.commit()
    return {"status": "success", "message": "Permission deleted."}


# ---------- Roles ----------
@bp.get("/roles")
@require_permission("permissions.view")
def roles_list():
    s = db_session()
    return {"status": "success", "data": [role_to_dict(r) for r in list_roles(s)]}


@bp.post("/roles")
@require_permission("permissions.manage")
def roles_create():
    s = db_session()
    role = create_role(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "role_id": role.id}, 201


@bp.post("/roles/<int:role_id>/permissions")
@require_permission("permissions.manage")
def role_permission_assign(role_id: int):
    s = db_session()
    errors: list[str] = []
    permission_id = required_int(json_payload(), "permission_id", "Permission", errors)
    raise_for_errors(errors)
    assign_permission(s, role_id, permission_id, current_user())
    s.commit()
    return {"status": "success"}, 201


@bp.delete("/roles/<int:role_id>/permissions/<int:permission_id>")
@require_permission("permissions.manage")
def role_permission_revoke(role_id: int, permission_id: int):
    s = db_session()
    revoke_permission(s, role_id, permission_id, current_user())
    s.commit()
    return {"status": "success"}


@bp.post("/users/<int:user_id>/roles")
@require_permission("permissions.manage")
def user_role_assign(user_id: int):
    s = db_session()
    errors: list[str] = []
    role_id = required_int(json_payload(), "role_id", "Role", errors)
    raise_for_errors(errors)
    assign_role(s, user_id, role_id, current_user())
    s.commit()
    return {"status": "success"}, 201


@bp.delete("/users/<int:user_id>/roles/<int:role_id>")
@require_permission("permissions.manage")
def user_role_remove(user_id: int, role_id: int):
    s = db_session()
    remove_role(s, user_id, role_id, current_user())
    s.commit()
    return {"status": "success"}
