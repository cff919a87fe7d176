from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import or_, select

from app.chms.audit import log_member, record_event
from app.chms.errors import ConflictError, NotFoundError, ValidationError, raise_for_errors
from app.chms.models import User
from app.chms.modules.communications.service import notify
from app.chms.modules.members.models import Member
from app.chms.modules.members.service import require_active_member
from app.chms.modules.membership_types.models import MemberMembershipType, MembershipType
from app.chms.orm import exists, paginate
from app.chms.utils import clean_str, field_date, required_date, required_int, truthy

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

NAME_MAX = 100


def _sender(user: User | None) -> int | None:
    return user.member_id if user else None


def get_type_or_404(s: "Session", type_id: int) -> MembershipType:
    mt = s.get(MembershipType, type_id)
    if not mt:
        raise NotFoundError("Membership type not found.")
    return mt


def _validated_name(payload: dict) -> str:
    name = clean_str(payload.get("name"))
    if not name:
        raise ValidationError("Membership type name is required.")
    if len(name) > NAME_MAX:
        raise ValidationError(f"Membership type name must be at most {NAME_MAX} characters.")
    return name


def create_type(s: "Session", payload: dict, user: User | None) -> MembershipType:
    name = _validated_name(payload)
    if exists(s, MembershipType, name=name):
        raise ConflictError("Membership type name already exists.")
    now = datetime.utcnow()
    mt = MembershipType(name=name, description=clean_str(payload.get("description")), created_at=now, updated_at=now)
    s.add(mt)
    s.flush()
    notify(
        s,
        title="New Membership Type Created",
        message=f"Membership type '{name}' has been created.",
        sent_by_member_id=_sender(user),
        sent_by_user=user,
    )
    record_event(s, actor=user, action="membership_type.create", entity_type="MembershipType", entity_id=mt.id, metadata={"name": name})
    return mt


def update_type(s: "Session", type_id: int, payload: dict, user: User | None) -> MembershipType:
    mt = get_type_or_404(s, type_id)
    name = _validated_name(payload)
    if exists(s, MembershipType, MembershipType.id != mt.id, name=name):
        raise ConflictError("Membership type name already exists.")
    changes: dict[str, dict] = {}
    description = clean_str(payload.get("description"))
    for key, new in (("name", name), ("description", description)):
        old = getattr(mt, key)
        if old != new:
            changes[key] = {"old": old, "new": new}
            setattr(mt, key, new)
    mt.updated_at = datetime.utcnow()
    s.flush()
    notify(
        s,
        title="Membership Type Updated",
        message=f"Membership type '{name}' has been updated.",
        sent_by_member_id=_sender(user),
        sent_by_user=user,
    )
    record_event(s, actor=user, action="membership_type.update", entity_type="MembershipType", entity_id=mt.id, changes=changes)
    return mt


def delete_type(s: "Session", type_id: int, user: User | None) -> None:
    mt = get_type_or_404(s, type_id)
    if exists(s, MemberMembershipType, membership_type_id=mt.id):
        raise ConflictError("Cannot delete membership type with assignments.")
    name = mt.name
    s.delete(mt)
    s.flush()
    record_event(s, actor=user, action="membership_type.delete", entity_type="MembershipType", entity_id=type_id, metadata={"name": name})


def get_type(s: "Session", type_id: int) -> dict:
    return get_type_or_404(s, type_id).to_dict()


def list_types(s: "Session", page: int, limit: int, name: str | None = None) -> dict:
    stmt = select(MembershipType)
    name = clean_str(name)
    if name:
        stmt = stmt.where(MembershipType.name.ilike(f"%{name}%"))
    stmt = stmt.order_by(MembershipType.name.asc())
    return paginate(s, stmt, page, limit).to_dict(lambda mt: mt.to_dict())


# ---------- Assignments ----------
def assign_type(s: "Session", member_id: int, payload: dict, user: User | None) -> MemberMembershipType:
    """
    Open a new assignment starting `start_date`. Rejected while the member has an
    open assignment or any assignment (of any type) still running on or after
    the start date.
    """
    errors: list[str] = []
    type_id = required_int(payload, "type_id", "Membership type", errors)
    start_date = required_date(payload, "start_date", "Start date", errors)
    raise_for_errors(errors)

    member = require_active_member(s, member_id, "or inactive member")
    mt = get_type_or_404(s, type_id)

    if exists(s, MemberMembershipType, member_id=member.id, end_date=None):
        raise ConflictError("Member already has an active membership type.")
    if exists(s, MemberMembershipType, MemberMembershipType.end_date >= start_date, member_id=member.id):
        raise ConflictError("Overlapping membership type assignment exists.")

    assignment = MemberMembershipType(member_id=member.id, membership_type_id=mt.id, start_date=start_date, end_date=None)
    s.add(assignment)
    s.flush()
    notify(
        s,
        title="Membership Type Assigned",
        message=f"You have been assigned the membership type '{mt.name}' starting {start_date.isoformat()}.",
        sent_by_member_id=_sender(user),
        sent_by_user=user,
        target_member_id=member.id,
    )
    log_member(
        s,
        actor=user,
        action="membership_type_assign",
        member_id=member.id,
        changes={"membership_type_id": {"old": None, "new": mt.id}, "start_date": {"old": None, "new": start_date.isoformat()}},
    )
    return assignment


def update_assignment(s: "Session", assignment_id: int, payload: dict, user: User | None) -> MemberMembershipType:
    assignment = s.get(MemberMembershipType, assignment_id)
    if not assignment:
        raise NotFoundError("Membership type assignment not found.")
    errors: list[str] = []
    end_date = field_date(payload, "end_date", "End date", errors)
    raise_for_errors(errors)
    if "end_date" not in payload:
        return assignment
    if end_date is not None and end_date < assignment.start_date:
        raise ValidationError("End date cannot be before start date.")
    if end_date is None and exists(
        s,
        MemberMembershipType,
        MemberMembershipType.id != assignment.id,
        or_(MemberMembershipType.end_date.is_(None), MemberMembershipType.end_date >= assignment.start_date),
        member_id=assignment.member_id,
    ):
        raise ConflictError("Overlapping membership type assignment exists.")

    old = assignment.end_date
    assignment.end_date = end_date
    s.flush()
    notify(
        s,
        title="Membership Type Assignment Updated",
        message=f"Your membership type '{assignment.membership_type.name}' assignment has been updated.",
        sent_by_member_id=_sender(user),
        sent_by_user=user,
        target_member_id=assignment.member_id,
    )
    log_member(
        s,
        actor=user,
        action="membership_type_update",
        member_id=assignment.member_id,
        changes={"end_date": {"old": old.isoformat() if old else None, "new": end_date.isoformat() if end_date else None}},
    )
    return assignment


def member_assignments(s: "Session", member_id: int, filters: dict | None = None) -> list[dict]:
    """Filters: active (open only), start_date (starts on/after), end_date (ends on/before)."""
    filters = filters or {}
    member = s.get(Member, member_id)
    if not member or member.is_deleted:
        raise ValidationError("Invalid member.")
    errors: list[str] = []
    start_date = field_date(filters, "start_date", "Start date", errors)
    end_date = field_date(filters, "end_date", "End date", errors)
    raise_for_errors(errors)

    stmt = select(MemberMembershipType).where(MemberMembershipType.member_id == member.id)
    if truthy(filters.get("active")):
        stmt = stmt.where(MemberMembershipType.end_date.is_(None))
    if start_date:
        stmt = stmt.where(MemberMembershipType.start_date >= start_date)
    if end_date:
        stmt = stmt.where(MemberMembershipType.end_date <= end_date)
    stmt = stmt.order_by(MemberMembershipType.start_date.desc())

    out = []
    for a in s.scalars(stmt):
        d = a.to_dict()
        d["type_name"] = a.membership_type.name
        out.append(d)
    return out
