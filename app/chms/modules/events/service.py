from __future__ import annotations

from datetime import datetime, time
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.chms.audit import record_event
from app.chms.constants import ATTENDANCE_PRESENT, ATTENDANCE_STATUSES
from app.chms.errors import ConflictError, NotFoundError, ValidationError, raise_for_errors
from app.chms.models import Branch, User, to_json_value
from app.chms.modules.communications.service import notify
from app.chms.modules.events.models import Event, EventAttendance
from app.chms.modules.members.models import Member
from app.chms.modules.members.service import require_active_member
from app.chms.orm import exists, paginate
from app.chms.utils import clean_str, field_date, required_date, required_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def _parse_time(value, errors: list[str]) -> time | None:
    raw = clean_str(value)
    if not raw:
        return None
    try:
        return time.fromisoformat(raw)
    except ValueError:
        errors.append("Time must be HH:MM.")
        return None


def get_event_or_404(s: "Session", event_id: int) -> Event:
    event = s.get(Event, event_id)
    if not event:
        raise NotFoundError("Event not found.")
    return event


def create_event(s: "Session", payload: dict, user: User | None) -> Event:
    errors: list[str] = []
    name = clean_str(payload.get("name"))
    if not name:
        errors.append("Event name is required.")
    elif len(name) > 150:
        errors.append("Event name must be at most 150 characters.")
    event_date = required_date(payload, "date", "Date", errors)
    event_time = _parse_time(payload.get("time"), errors)
    branch_id = required_int(payload, "branch_id", "Branch", errors)
    raise_for_errors(errors)
    branch = s.get(Branch, branch_id)
    if not branch:
        raise ValidationError("Invalid branch.")

    now = datetime.utcnow()
    location = clean_str(payload.get("location"))
    event = Event(
        name=name,
        description=clean_str(payload.get("description")),
        event_date=event_date,
        event_time=event_time,
        location=location,
        branch_id=branch.id,
        created_by_member_id=user.member_id if user else None,
        created_by_user_id=user.id if user else None,
        created_at=now,
        updated_at=now,
    )
    s.add(event)
    s.flush()
    where = f" at {location}" if location else ""
    notify(
        s,
        title="New Event Created",
        message=f"New event '{name}' scheduled for {event_date.isoformat()}{where}.",
        sent_by_member_id=user.member_id if user else None,
        sent_by_user=user,
    )
    record_event(s, actor=user, action="event.create", entity_type="Event", entity_id=event.id, metadata={"name": name})
    return event


def event_to_dict(s: "Session", event: Event) -> dict:
    d = event.to_dict()
    branch = s.get(Branch, event.branch_id)
    d["branch_name"] = branch.name if branch else None
    return d


def get_event(s: "Session", event_id: int) -> dict:
    return event_to_dict(s, get_event_or_404(s, event_id))


def list_events(s: "Session", page: int, limit: int, filters: dict | None = None) -> dict:
    """Filters: branch_id, date_from, date_to. Soonest first."""
    filters = filters or {}
    errors: list[str] = []
    date_from = field_date(filters, "date_from", "date_from", errors)
    date_to = field_date(filters, "date_to", "date_to", errors)
    raise_for_errors(errors)

    stmt = select(Event)
    if filters.get("branch_id"):
        stmt = stmt.where(Event.branch_id == int(filters["branch_id"]))
    if date_from:
        stmt = stmt.where(Event.event_date >= date_from)
    if date_to:
        stmt = stmt.where(Event.event_date <= date_to)
    stmt = stmt.order_by(Event.event_date.asc(), Event.id.asc())
    return paginate(s, stmt, page, limit).to_dict(lambda e: event_to_dict(s, e))


# ---------- Attendance ----------
def record_attendance(s: "Session", event_id: int, payload: dict, user: User | None) -> EventAttendance:
    """One row per (event, member, date); the member is notified."""
    event = get_event_or_404(s, event_id)
    errors: list[str] = []
    member_id = required_int(payload, "member_id", "Member", errors)
    attendance_date = required_date(payload, "attendance_date", "Attendance date", errors)
    status = clean_str(payload.get("status")) or ATTENDANCE_PRESENT
    if status not in ATTENDANCE_STATUSES:
        errors.append(f"Status must be one of: {', '.join(ATTENDANCE_STATUSES)}.")
    raise_for_errors(errors)
    member = require_active_member(s, member_id)
    if exists(s, EventAttendance, event_id=event.id, member_id=member.id, attendance_date=attendance_date):
        raise ConflictError("Attendance already recorded.")

    row = EventAttendance(
        event_id=event.id,
        member_id=member.id,
        attendance_date=attendance_date,
        status=status,
        recorded_by_user_id=user.id if user else None,
        created_at=datetime.utcnow(),
    )
    s.add(row)
    s.flush()
    notify(
        s,
        title="Event Attendance Recorded",
        message=f"Your attendance at '{event.name}' on {attendance_date.isoformat()} has been recorded.",
        sent_by_member_id=user.member_id if user else None,
        sent_by_user=user,
        target_member_id=member.id,
    )
    record_event(
        s,
        actor=user,
        action="attendance.record",
        entity_type="Event",
        entity_id=event.id,
        metadata={"member_id": member.id, "attendance_date": attendance_date.isoformat(), "status": status},
    )
    return row


def list_attendance(s: "Session", event_id: int, page: int, limit: int) -> dict:
    event = get_event_or_404(s, event_id)
    stmt = (
        select(
            EventAttendance.id,
            EventAttendance.member_id,
            EventAttendance.attendance_date,
            EventAttendance.status,
            Member.first_name,
            Member.family_name,
        )
        .select_from(EventAttendance)
        .join(Member, Member.id == EventAttendance.member_id)
        .where(EventAttendance.event_id == event.id)
        .order_by(EventAttendance.attendance_date.desc(), Member.family_name.asc(), Member.first_name.asc())
    )
    result = paginate(s, stmt, page, limit, mappings=True)
    return result.to_dict(lambda row: {k: to_json_value(v) for k, v in row.items()})
