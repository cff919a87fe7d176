from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.chms.errors import raise_for_errors
from app.chms.models import to_json_value
from app.chms.modules.contributions.models import Contribution, ContributionType
from app.chms.modules.events.models import Event, EventAttendance
from app.chms.modules.finance.reports import money
from app.chms.modules.groups.models import ChurchGroup, GroupMember
from app.chms.modules.members.service import get_member_or_404
from app.chms.modules.volunteers.models import EventVolunteer, VolunteerRole
from app.chms.utils import field_date

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def _between(stmt, column, start_date: date | None, end_date: date | None):
    if start_date:
        stmt = stmt.where(column >= start_date)
    if end_date:
        stmt = stmt.where(column <= end_date)
    return stmt


def _rows(s: "Session", stmt) -> list[dict]:
    return [{k: to_json_value(v) for k, v in row.items()} for row in s.execute(stmt).mappings()]


def engagement_report(s: "Session", member_id: int, filters: dict | None = None) -> dict:
    """
    Activity of one member, optionally limited to [start_date, end_date].

    Each section filters on its own date: when the member joined the group,
    the attendance date, the event date of a volunteer assignment and the
    contribution date. Soft-deleted contributions are left out.
    """
    member = get_member_or_404(s, member_id)
    filters = filters or {}
    errors: list[str] = []
    start_date = field_date(filters, "start_date", "Start date", errors)
    end_date = field_date(filters, "end_date", "End date", errors)
    if start_date and end_date and start_date > end_date:
        errors.append("Start date must be on or before end date.")
    raise_for_errors(errors)

    groups_stmt = (
        select(GroupMember.group_id, ChurchGroup.name.label("group_name"), GroupMember.joined_at)
        .select_from(GroupMember)
        .join(ChurchGroup, ChurchGroup.id == GroupMember.group_id)
        .where(GroupMember.member_id == member.id)
        .order_by(ChurchGroup.name.asc())
    )
    groups = _rows(s, _between(groups_stmt, func.date(GroupMember.joined_at), start_date, end_date))

    attendance_stmt = (
        select(EventAttendance.event_id, Event.name.label("event_name"), EventAttendance.attendance_date, EventAttendance.status)
        .select_from(EventAttendance)
        .join(Event, Event.id == EventAttendance.event_id)
        .where(EventAttendance.member_id == member.id)
        .order_by(EventAttendance.attendance_date.desc())
    )
    attendance = _rows(s, _between(attendance_stmt, EventAttendance.attendance_date, start_date, end_date))

    volunteering_stmt = (
        select(
            EventVolunteer.id.label("assignment_id"),
            EventVolunteer.event_id,
            Event.name.label("event_name"),
            Event.event_date,
            EventVolunteer.status,
            VolunteerRole.name.label("role_name"),
        )
        .select_from(EventVolunteer)
        .join(Event, Event.id == EventVolunteer.event_id)
        .outerjoin(VolunteerRole, VolunteerRole.id == EventVolunteer.role_id)
        .where(EventVolunteer.member_id == member.id)
        .order_by(Event.event_date.desc())
    )
    volunteering = _rows(s, _between(volunteering_stmt, Event.event_date, start_date, end_date))

    contributions_stmt = (
        select(
            Contribution.id,
            Contribution.amount,
            Contribution.contribution_date,
            ContributionType.name.label("contribution_type"),
        )
        .select_from(Contribution)
        .join(ContributionType, ContributionType.id == Contribution.contribution_type_id)
        .where(Contribution.member_id == member.id, Contribution.is_deleted.is_(False))
        .order_by(Contribution.contribution_date.desc(), Contribution.id.desc())
    )
    contribution_rows = list(
        s.execute(_between(contributions_stmt, Contribution.contribution_date, start_date, end_date)).mappings()
    )
    total = sum((Decimal(str(r["amount"])) for r in contribution_rows), Decimal("0"))
    contributions = [
        {**{k: to_json_value(v) for k, v in r.items()}, "amount": str(money(r["amount"]))} for r in contribution_rows
    ]

    return {
        "member_id": member.id,
        "member_name": f"{member.first_name} {member.family_name}",
        "start_date": start_date.isoformat() if start_date else None,
        "end_date": end_date.isoformat() if end_date else None,
        "groups_count": len(groups),
        "events_attended": len(attendance),
        "volunteer_instances": len(volunteering),
        "contributions_count": len(contributions),
        "contributions_total": str(money(total)),
        "details": {
            "groups": groups,
            "attendance": attendance,
            "volunteering": volunteering,
            "contributions": contributions,
        },
    }
