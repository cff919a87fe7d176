from __future__ import annotations

import re
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.chms.audit import record_event
from app.chms.errors import ConflictError, NotFoundError, ValidationError
from app.chms.models import Permission, Role, RolePermission, User, UserRole
from app.chms.modules.communications.service import notify
from app.chms.orm import exists, paginate
from app.chms.utils import clean_str

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

_KEY_RE = re.compile(r"^[a-z0-9_.]+$")
KEY_MAX = 128
NAME_MAX = 128


def _validated_key(value, label: str, max_len: int) -> str:
    key = clean_str(value)
    if not key:
        raise ValidationError(f"{label} key is required.")
    if len(key) > max_len:
        raise ValidationError(f"{label} key must be at most {max_len} characters.")
    if not _KEY_RE.match(key):
        raise ValidationError(f"{label} key may only contain lowercase letters, digits, '_' and '.'.")
    return key


def _display_name(payload: dict, fallback: str) -> str:
    name = clean_str(payload.get("name")) or fallback
    if len(name) > NAME_MAX:
        raise ValidationError(f"Name must be at most {NAME_MAX} characters.")
    return name


# ---------- Permissions ----------
def get_permission_or_404(s: "Session", permission_id: int) -> Permission:
    perm = s.get(Permission, permission_id)
    if not perm:
        raise NotFoundError("Permission not found.")
    return perm


def permission_to_dict(perm: Permission) -> dict:
    d = perm.to_dict()
    d["roles"] = [{"id": r.id, "key": r.key, "name": r.name} for r in perm.roles]
    return d


def create_permission(s: "Session", payload: dict, user: User | None) -> Permission:
    key = _validated_key(payload.get("key"), "Permission", KEY_MAX)
    name = _display_name(payload, key)
    if exists(s, Permission, key=key):
        raise ConflictError("Permission already exists.")
    perm = Permission(key=key, name=name)
    s.add(perm)
    s.flush()
    notify(
        s,
        title="New Permission Created",
        message=f"Permission '{key}' has been created.",
        sent_by_member_id=user.member_id if user else None,
        sent_by_user=user,
    )
    record_event(s, actor=user, action="permission.create", entity_type="Permission", entity_id=perm.id, metadata={"key": key})
    return perm


def update_permission(s: "Session", permission_id: int, payload: dict, user: User | None) -> Permission:
    perm = get_permission_or_404(s, permission_id)
    key = _validated_key(payload.get("key", perm.key), "Permission", KEY_MAX)
    name = _display_name(payload, perm.name)
    if exists(s, Permission, Permission.id != perm.id, key=key):
        raise ConflictError("Permission already exists.")
    changes: dict[str, dict] = {}
    for attr, new in (("key", key), ("name", name)):
        old = getattr(perm, attr)
        if old != new:
            changes[attr] = {"old": old, "new": new}
            setattr(perm, attr, new)
    s.flush()
    notify(
        s,
        title="Permission Updated",
        message=f"Permission '{key}' has been updated.",
        sent_by_member_id=user.member_id if user else None,
        sent_by_user=user,
    )
    record_event(s, actor=user, action="permission.update", entity_type="Permission", entity_id=perm.id, changes=changes)
    return perm


def delete_permission(s: "Session", permission_id: int, user: User | None) -> None:
    perm = get_permission_or_404(s, permission_id)
    if exists(s, RolePermission, permission_id=perm.id):
        raise ConflictError("Cannot delete permission assigned to roles.")
    key = perm.key
    s.delete(perm)
    s.flush()
    record_event(s, actor=user, action="permission.delete", entity_type="Permission", entity_id=permission_id, metadata={"key": key})


def get_permission(s: "Session", permission_id: int) -> dict:
    return permission_to_dict(get_permission_or_404(s, permission_id))


def list_permissions(s: "Session", page: int, limit: int, name: str | None = None) -> dict:
    stmt = select(Permission)
    name = clean_str(name)
    if name:
        like = f"%{name}%"
        stmt = stmt.where(Permission.key.ilike(like) | Permission.name.ilike(like))
    stmt = stmt.order_by(Permission.key.asc())
    return paginate(s, stmt, page, limit).to_dict(permission_to_dict)


# ---------- Roles ----------
def get_role_or_404(s: "Session", role_id: int) -> Role:
    role = s.get(Role, role_id)
    if not role:
        raise NotFoundError("Role not found.")
    return role


def role_to_dict(role: Role) -> dict:
    d = role.to_dict()
    d["permissions"] = sorted(p.key for p in role.permissions)
    d["user_count"] = len(role.users)
    return d


def create_role(s: "Session", payload: dict, user: User | None) -> Role:
    key = _validated_key(payload.get("key"), "Role", 64)
    name = _display_name(payload, key)
    if exists(s, Role, key=key):
        raise ConflictError("Role already exists.")
    role = Role(key=key, name=name)
    s.add(role)
    s.flush()
    record_event(s, actor=user, action="role.create", entity_type="Role", entity_id=role.id, metadata={"key": key})
    return role


def list_roles(s: "Session") -> list[Role]:
    return list(s.scalars(select(Role).order_by(Role.key.asc())))


def assign_permission(s: "Session", role_id: int, permission_id: int, user: User | None) -> None:
    role = get_role_or_404(s, role_id)
    perm = get_permission_or_404(s, permission_id)
    if perm in role.permissions:
        raise ConflictError("Permission already assigned to role.")
    role.permissions.append(perm)
    s.flush()
    record_event(
        s,
        actor=user,
        action="role.permission_assign",
        entity_type="Role",
        entity_id=role.id,
        metadata={"permission": perm.key},
    )


def revoke_permission(s: "Session", role_id: int, permission_id: int, user: User | None) -> None:
    role = get_role_or_404(s, role_id)
    perm = get_permission_or_404(s, permission_id)
    if perm not in role.permissions:
        raise ValidationError("Permission not assigned to role.")
    role.permissions.remove(perm)
    s.flush()
    record_event(
        s,
        actor=user,
        action="role.permission_revoke",
        entity_type="Role",
        entity_id=role.id,
        metadata={"permission": perm.key},
    )


def assign_role(s: "Session", user_id: int, role_id: int, actor: User | None) -> None:
    target = s.get(User, user_id)
    if not target or not target.is_active:
        raise ValidationError("Invalid or inactive user.")
    role = get_role_or_404(s, role_id)
    if exists(s, UserRole, user_id=target.id, role_id=role.id):
        raise ConflictError("Role already assigned to user.")
    target.roles.append(role)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="user.role_assign",
        entity_type="User",
        entity_id=target.id,
        metadata={"role": role.key},
    )


def remove_role(s: "Session", user_id: int, role_id: int, actor: User | None) -> None:
    target = s.get(User, user_id)
    if not target:
        raise ValidationError("Invalid user.")
    role = get_role_or_404(s, role_id)
    if role not in target.roles:
        raise ValidationError("Role not assigned to user.")
    target.roles.remove(role)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="user.role_remove",
        entity_type="User",
        entity_id=target.id,
        metadata={"role": role.key},
    )
