from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from app.chms.audit import record_event
from app.chms.constants import VOLUNTEER_COMPLETED, VOLUNTEER_CONFIRMED, VOLUNTEER_DECLINED, VOLUNTEER_PENDING
from app.chms.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError, raise_for_errors
from app.chms.models import User, to_json_value
from app.chms.modules.communications.service import notify
from app.chms.modules.events.models import Event
from app.chms.modules.events.service import get_event_or_404
from app.chms.modules.members.models import Member
from app.chms.modules.members.service import require_active_member
from app.chms.modules.volunteers.models import EventVolunteer, VolunteerRole
from app.chms.orm import build_select, exists, get_all, paginate
from app.chms.utils import clean_str, field_int, required_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

ROLE_NAME_MAX = 100
TEXT_MAX = 500


# ---------- Roles ----------
def get_roles(s: "Session") -> list[VolunteerRole]:
    return sorted(get_all(s, VolunteerRole), key=lambda r: r.name.lower())


def create_role(s: "Session", payload: dict, user: User | None) -> VolunteerRole:
    name = clean_str(payload.get("name"))
    if not name:
        raise ValidationError("Role name is required.")
    if len(name) > ROLE_NAME_MAX:
        raise ValidationError(f"Role name must be at most {ROLE_NAME_MAX} characters.")
    description = clean_str(payload.get("description"))
    if description and len(description) > TEXT_MAX:
        raise ValidationError(f"Description must be at most {TEXT_MAX} characters.")
    if exists(s, VolunteerRole, name=name):
        raise ConflictError("Volunteer role already exists.")
    role = VolunteerRole(name=name, description=description)
    s.add(role)
    s.flush()
    record_event(s, actor=user, action="volunteer_role.create", entity_type="VolunteerRole", entity_id=role.id, metadata={"name": name})
    return role


# ---------- Assignments ----------
def _validated_entry(s: "Session", entry: Any, index: int) -> tuple[Member, int | None, str | None]:
    if not isinstance(entry, dict):
        raise ValidationError(f"Volunteer #{index}: entry must be an object.")
    errors: list[str] = []
    member_id = required_int(entry, "member_id", f"Volunteer #{index}: member_id", errors)
    role_id = field_int(entry, "role_id", f"Volunteer #{index}: role_id", errors)
    notes = clean_str(entry.get("notes"))
    if notes and len(notes) > TEXT_MAX:
        errors.append(f"Volunteer #{index}: notes must be at most {TEXT_MAX} characters.")
    raise_for_errors(errors)
    member = require_active_member(s, member_id, f"or inactive member: {member_id}")
    if role_id is not None and not s.get(VolunteerRole, role_id):
        raise ValidationError(f"Invalid role: {role_id}.")
    return member, role_id, notes


def assign(s: "Session", event_id: int, volunteers: Any, user: User | None) -> dict[str, int]:
    """
    Assign a batch of volunteers to an event. Members already on the event are
    skipped; any invalid entry raises and the whole batch is rolled back.
    """
    event = get_event_or_404(s, event_id)
    if not volunteers or not isinstance(volunteers, list):
        raise ValidationError("volunteers array is required.")

    entries = [_validated_entry(s, entry, i) for i, entry in enumerate(volunteers, start=1)]

    assigned = skipped = 0
    seen: set[int] = set()
    for member, role_id, notes in entries:
        if member.id in seen or exists(s, EventVolunteer, event_id=event.id, member_id=member.id):
            skipped += 1
            continue
        seen.add(member.id)
        s.add(
            EventVolunteer(
                event_id=event.id,
                member_id=member.id,
                role_id=role_id,
                notes=notes,
                status=VOLUNTEER_PENDING,
                assigned_by_user_id=user.id if user else None,
                assigned_at=datetime.utcnow(),
            )
        )
        notify(
            s,
            title="Volunteer Assignment",
            message=f"You have been assigned to volunteer at '{event.name}' on {event.event_date.isoformat()}.",
            sent_by_member_id=user.member_id if user else None,
            sent_by_user=user,
            target_member_id=member.id,
        )
        assigned += 1
    s.flush()
    record_event(
        s,
        actor=user,
        action="volunteer.assign",
        entity_type="Event",
        entity_id=event.id,
        metadata={"assigned": assigned, "skipped": skipped},
    )
    return {"assigned": assigned, "skipped": skipped}


def get_assignment_or_404(s: "Session", assignment_id: int) -> EventVolunteer:
    assignment = s.get(EventVolunteer, assignment_id)
    if not assignment:
        raise NotFoundError("Assignment not found.")
    return assignment


def confirm(s: "Session", assignment_id: int, action: Any, user: User | None) -> EventVolunteer:
    """The assigned member answers their own assignment (confirm or decline)."""
    action = clean_str(action)
    if action not in ("confirm", "decline"):
        raise ValidationError("Action must be 'confirm' or 'decline'.")
    assignment = get_assignment_or_404(s, assignment_id)
    if not user or user.member_id != assignment.member_id:
        raise ForbiddenError("You can only respond to your own assignment.")
    if assignment.status == VOLUNTEER_COMPLETED:
        raise ConflictError("Assignment is already completed.")

    old = assignment.status
    assignment.status = VOLUNTEER_CONFIRMED if action == "confirm" else VOLUNTEER_DECLINED
    assignment.responded_at = datetime.utcnow()
    s.flush()
    record_event(
        s,
        actor=user,
        action=f"volunteer.{action}",
        entity_type="EventVolunteer",
        entity_id=assignment.id,
        changes={"status": {"old": old, "new": assignment.status}},
    )
    return assignment


def complete(s: "Session", assignment_id: int, user: User | None) -> EventVolunteer:
    assignment = get_assignment_or_404(s, assignment_id)
    if assignment.status != VOLUNTEER_CONFIRMED:
        raise ConflictError("Only confirmed assignments can be completed.")
    assignment.status = VOLUNTEER_COMPLETED
    assignment.completed_at = datetime.utcnow()
    s.flush()
    record_event(
        s,
        actor=user,
        action="volunteer.complete",
        entity_type="EventVolunteer",
        entity_id=assignment.id,
        changes={"status": {"old": VOLUNTEER_CONFIRMED, "new": VOLUNTEER_COMPLETED}},
    )
    return assignment


def get_by_event(s: "Session", event_id: int, page: int, limit: int) -> dict:
    event = get_event_or_404(s, event_id)
    stmt = build_select(
        EventVolunteer,
        fields=(
            EventVolunteer.id.label("assignment_id"),
            EventVolunteer.member_id,
            EventVolunteer.status,
            EventVolunteer.notes,
            EventVolunteer.assigned_at,
            Member.first_name,
            Member.family_name,
            Member.email_address,
            VolunteerRole.name.label("role_name"),
        ),
        joins=(
            (Member, Member.id == EventVolunteer.member_id),
            (VolunteerRole, VolunteerRole.id == EventVolunteer.role_id, "left"),
        ),
        conditions=[EventVolunteer.event_id == event.id],
        order_by=[EventVolunteer.assigned_at.desc(), EventVolunteer.id.desc()],
    )
    result = paginate(s, stmt, page, limit, mappings=True)
    return result.to_dict(lambda row: {k: to_json_value(v) for k, v in row.items()})


def remove(s: "Session", assignment_id: int, user: User | None) -> None:
    assignment = get_assignment_or_404(s, assignment_id)
    meta = {"event_id": assignment.event_id, "member_id": assignment.member_id}
    s.delete(assignment)
    s.flush()
    record_event(s, actor=user, action="volunteer.remove", entity_type="EventVolunteer", entity_id=assignment_id, metadata=meta)


def assignments_for_member(s: "Session", member_id: int) -> list[dict]:
    stmt = (
        select(EventVolunteer, Event)
        .join(Event, Event.id == EventVolunteer.event_id)
        .where(EventVolunteer.member_id == member_id)
        .order_by(Event.event_date.desc())
    )
    out = []
    for assignment, event in s.execute(stmt):
        d = assignment.to_dict()
        d["event_name"] = event.name
        d["event_date"] = event.event_date.isoformat()
        d["role_name"] = assignment.role.name if assignment.role else None
        out.append(d)
    return out
