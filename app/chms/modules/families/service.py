from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.chms.audit import record_event
from app.chms.constants import FAMILY_ROLE_HEAD, FAMILY_ROLES
from app.chms.errors import ConflictError, NotFoundError, ValidationError, raise_for_errors
from app.chms.models import Branch, User
from app.chms.modules.families.models import Family, FamilyMember
from app.chms.modules.members.service import require_active_member
from app.chms.orm import exists, first_where, paginate
from app.chms.utils import clean_str, field_int, required_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

NAME_MAX = 100


def get_family_or_404(s: "Session", family_id: int) -> Family:
    family = s.get(Family, family_id)
    if not family:
        raise NotFoundError("Family not found.")
    return family


def validate_family_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    name = clean_str(payload.get("name"))
    if not name:
        errors.append("Family name is required.")
    elif len(name) > NAME_MAX:
        errors.append(f"Family name must be at most {NAME_MAX} characters.")
    required_int(payload, "head_id", "Head of household", errors)
    required_int(payload, "branch_id", "Branch", errors)
    return errors


def create_family(s: "Session", payload: dict, user: User | None) -> Family:
    """Create a family and its Head link in one transaction."""
    raise_for_errors(validate_family_payload(payload))
    name = clean_str(payload.get("name"))
    head_id = int(payload["head_id"])
    branch_id = int(payload["branch_id"])

    head = require_active_member(s, head_id, "or inactive head of household")
    if not s.get(Branch, branch_id):
        raise ValidationError("Invalid branch.")
    if head.branch_id != branch_id:
        raise ValidationError("Head of household must belong to the selected branch.")
    if exists(s, Family, name=name):
        raise ConflictError("Family name already exists.")
    if exists(s, FamilyMember, member_id=head.id):
        raise ConflictError("Head of household is already assigned to a family.")

    now = datetime.utcnow()
    family = Family(name=name, head_id=head.id, branch_id=branch_id, created_at=now, updated_at=now)
    family.members.append(FamilyMember(member_id=head.id, role=FAMILY_ROLE_HEAD, joined_at=now))
    s.add(family)
    s.flush()

    record_event(
        s,
        actor=user,
        action="family.create",
        entity_type="Family",
        entity_id=family.id,
        metadata={"name": name, "head_id": head.id},
    )
    return family


def update_family(s: "Session", family_id: int, payload: dict, user: User | None) -> Family:
    family = get_family_or_404(s, family_id)
    changes: dict[str, dict] = {}

    name = clean_str(payload.get("name"))
    if name:
        if len(name) > NAME_MAX:
            raise ValidationError(f"Family name must be at most {NAME_MAX} characters.")
        if exists(s, Family, Family.id != family.id, name=name):
            raise ConflictError("Family name already exists.")
        if name != family.name:
            changes["name"] = {"old": family.name, "new": name}
            family.name = name

    errors: list[str] = []
    branch_id = field_int(payload, "branch_id", "Branch", errors)
    raise_for_errors(errors)
    if branch_id:
        if not s.get(Branch, branch_id):
            raise ValidationError("Invalid branch.")
        if branch_id != family.branch_id:
            changes["branch_id"] = {"old": family.branch_id, "new": branch_id}
            family.branch_id = branch_id

    if changes:
        family.updated_at = datetime.utcnow()
        record_event(s, actor=user, action="family.update", entity_type="Family", entity_id=family.id, changes=changes)
    return family


def delete_family(s: "Session", family_id: int, user: User | None) -> None:
    family = get_family_or_404(s, family_id)
    if len(family.members) > 1:
        raise ConflictError("Cannot delete family with multiple members.")
    name = family.name
    s.delete(family)
    s.flush()
    record_event(s, actor=user, action="family.delete", entity_type="Family", entity_id=family_id, metadata={"name": name})


def family_to_dict(family: Family, *, with_members: bool = True) -> dict:
    d = family.to_dict()
    d["head"] = {"id": family.head.id, "first_name": family.head.first_name, "family_name": family.head.family_name}
    d["member_count"] = len(family.members)
    if with_members:
        d["members"] = [
            {
                "member_id": fm.member_id,
                "first_name": fm.member.first_name,
                "family_name": fm.member.family_name,
                "gender": fm.member.gender,
                "date_of_birth": fm.member.date_of_birth.isoformat() if fm.member.date_of_birth else None,
                "role": fm.role,
                "joined_at": fm.joined_at.isoformat(),
            }
            for fm in family.members
        ]
    return d


def get_family(s: "Session", family_id: int) -> dict:
    family = get_family_or_404(s, family_id)
    d = family_to_dict(family)
    branch = s.get(Branch, family.branch_id)
    d["branch_name"] = branch.name if branch else None
    return d


def list_families(s: "Session", page: int, limit: int, filters: dict | None = None) -> dict:
    filters = filters or {}
    stmt = select(Family)
    if filters.get("branch_id"):
        stmt = stmt.where(Family.branch_id == int(filters["branch_id"]))
    name = clean_str(filters.get("name"))
    if name:
        stmt = stmt.where(Family.name.ilike(f"%{name}%"))
    stmt = stmt.order_by(Family.name.asc())
    result = paginate(s, stmt, page, limit)
    return result.to_dict(lambda f: family_to_dict(f, with_members=False))


def _validate_role(payload: dict) -> str:
    role = clean_str(payload.get("role"))
    if not role or role not in FAMILY_ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(FAMILY_ROLES)}")
    return role


def add_family_member(s: "Session", family_id: int, payload: dict, user: User | None) -> FamilyMember:
    errors: list[str] = []
    member_id = required_int(payload, "member_id", "Member", errors)
    raise_for_errors(errors)
    role = _validate_role(payload)

    family = get_family_or_404(s, family_id)
    member = require_active_member(s, member_id, "or inactive member")
    if role == FAMILY_ROLE_HEAD:
        raise ValidationError("Cannot assign Head role; a family has exactly one head.")
    link = first_where(s, FamilyMember, member_id=member.id)
    if link and link.family_id != family.id:
        raise ConflictError("Member already belongs to another family.")
    if link:
        raise ConflictError("Member already in family.")

    fm = FamilyMember(family_id=family.id, member_id=member.id, role=role, joined_at=datetime.utcnow())
    s.add(fm)
    s.flush()
    s.expire(family, ["members"])
    record_event(
        s,
        actor=user,
        action="family.member_add",
        entity_type="Family",
        entity_id=family.id,
        metadata={"member_id": member.id, "role": role},
    )
    return fm


def _family_link(s: "Session", family: Family, member_id: int) -> FamilyMember:
    link = first_where(s, FamilyMember, family_id=family.id, member_id=member_id)
    if not link:
        raise ValidationError("Member not in family.")
    return link


def remove_family_member(s: "Session", family_id: int, member_id: int, user: User | None) -> None:
    family = get_family_or_404(s, family_id)
    if member_id == family.head_id:
        raise ValidationError("Cannot remove head of household.")
    link = _family_link(s, family, member_id)
    s.delete(link)
    s.flush()
    s.expire(family, ["members"])
    record_event(
        s,
        actor=user,
        action="family.member_remove",
        entity_type="Family",
        entity_id=family.id,
        metadata={"member_id": member_id},
    )


def update_family_member_role(s: "Session", family_id: int, member_id: int, payload: dict, user: User | None) -> FamilyMember:
    role = _validate_role(payload)
    family = get_family_or_404(s, family_id)
    if member_id == family.head_id and role != FAMILY_ROLE_HEAD:
        raise ValidationError("Head of household role cannot be changed.")
    if member_id != family.head_id and role == FAMILY_ROLE_HEAD:
        raise ValidationError("Cannot assign Head role; a family has exactly one head.")
    link = _family_link(s, family, member_id)
    old = link.role
    link.role = role
    record_event(
        s,
        actor=user,
        action="family.member_role",
        entity_type="Family",
        entity_id=family.id,
        changes={"role": {"old": old, "new": role}},
        metadata={"member_id": member_id},
    )
    return link

