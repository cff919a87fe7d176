from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import case, func, select

from app.chms.constants import (
    ATTENDANCE_PRESENT,
    BUDGET_SUBMITTED,
    EXPENSE_APPROVED,
    EXPENSE_PENDING,
    FISCAL_YEAR_ACTIVE,
    MEMBER_STATUS_ACTIVE,
)
from app.chms.errors import NotFoundError
from app.chms.models import Branch
from app.chms.modules.budgets.models import Budget
from app.chms.modules.contributions.models import Contribution
from app.chms.modules.events.models import Event, EventAttendance
from app.chms.modules.finance.models import Expense, FiscalYear
from app.chms.modules.finance.reports import money
from app.chms.modules.members.models import Member

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

SUNDAY = 6
UPCOMING_DAYS = 7
UPCOMING_LIMIT = 5
SUNDAYS_SHOWN = 4


def _membership(s: "Session", branch_id: int, today: date) -> dict:
    def registered_since(day: date):
        return func.coalesce(func.sum(case((Member.registration_date >= day, 1), else_=0)), 0)

    row = s.execute(
        select(
            func.count(Member.id).label("total"),
            registered_since(today).label("new_today"),
            registered_since(today.replace(day=1)).label("new_this_month"),
            registered_since(today.replace(month=1, day=1)).label("new_this_year"),
        ).where(
            Member.branch_id == branch_id,
            Member.is_deleted.is_(False),
            Member.membership_status == MEMBER_STATUS_ACTIVE,
        )
    ).one()
    return {k: int(getattr(row, k)) for k in ("total", "new_today", "new_this_month", "new_this_year")}


def _finance(s: "Session", branch_id: int, today: date) -> dict:
    fy = s.scalars(
        select(FiscalYear)
        .where(
            FiscalYear.branch_id == branch_id,
            FiscalYear.status == FISCAL_YEAR_ACTIVE,
            FiscalYear.start_date <= today,
            FiscalYear.end_date >= today,
        )
        .order_by(FiscalYear.start_date.desc())
        .limit(1)
    ).first()
    if fy is None:
        return {"fiscal_year_id": None, "income": "0.00", "expenses": "0.00", "net": "0.00"}
    income = money(
        s.scalar(
            select(func.coalesce(func.sum(Contribution.amount), 0)).where(
                Contribution.fiscal_year_id == fy.id, Contribution.is_deleted.is_(False)
            )
        )
    )
    expenses = money(
        s.scalar(
            select(func.coalesce(func.sum(Expense.amount), 0)).where(
                Expense.fiscal_year_id == fy.id, Expense.status == EXPENSE_APPROVED
            )
        )
    )
    return {"fiscal_year_id": fy.id, "income": str(income), "expenses": str(expenses), "net": str(income - expenses)}


def _sunday_attendance(s: "Session", branch_id: int, today: date) -> list[dict]:
    """Present count for the most recent Sunday events, oldest first."""
    present = func.coalesce(func.sum(case((EventAttendance.status == ATTENDANCE_PRESENT, 1), else_=0)), 0)
    stmt = (
        select(Event.event_date, present.label("present"))
        .select_from(Event)
        .outerjoin(EventAttendance, EventAttendance.event_id == Event.id)
        .where(Event.branch_id == branch_id, Event.event_date <= today)
        .group_by(Event.event_date)
        .order_by(Event.event_date.desc())
    )
    out: list[dict] = []
    for row in s.execute(stmt):
        if row.event_date.weekday() != SUNDAY:
            continue
        out.append({"date": row.event_date.isoformat(), "present": int(row.present)})
        if len(out) == SUNDAYS_SHOWN:
            break
    return list(reversed(out))


def _upcoming_events(s: "Session", branch_id: int, today: date) -> list[dict]:
    stmt = (
        select(Event)
        .where(Event.branch_id == branch_id, Event.event_date.between(today, today + timedelta(days=UPCOMING_DAYS)))
        .order_by(Event.event_date.asc(), Event.event_time.asc(), Event.id.asc())
        .limit(UPCOMING_LIMIT)
    )
    return [
        {
            "id": e.id,
            "name": e.name,
            "event_date": e.event_date.isoformat(),
            "event_time": e.event_time.isoformat() if e.event_time else None,
            "location": e.location,
        }
        for e in s.scalars(stmt)
    ]


def _pending_approvals(s: "Session", branch_id: int) -> dict:
    budgets = s.scalar(
        select(func.count(Budget.id)).where(Budget.branch_id == branch_id, Budget.status == BUDGET_SUBMITTED)
    )
    expenses = s.scalar(
        select(func.count(Expense.id))
        .select_from(Expense)
        .join(FiscalYear, FiscalYear.id == Expense.fiscal_year_id)
        .where(FiscalYear.branch_id == branch_id, Expense.status == EXPENSE_PENDING)
    )
    return {"budgets": int(budgets or 0), "expenses": int(expenses or 0)}


def overview(s: "Session", branch_id: int, today: date | None = None) -> dict:
    """Membership, current fiscal year finances, attendance, upcoming events and pending approvals for one branch."""
    branch = s.get(Branch, branch_id)
    if not branch:
        raise NotFoundError("Branch not found.")
    today = today or date.today()
    return {
        "branch_id": branch.id,
        "branch_name": branch.name,
        "membership": _membership(s, branch.id, today),
        "finance": _finance(s, branch.id, today),
        "attendance_last_4_sundays": _sunday_attendance(s, branch.id, today),
        "upcoming_events": _upcoming_events(s, branch.id, today),
        "pending_approvals": _pending_approvals(s, branch.id),
        "generated_at": datetime.utcnow().isoformat(),
    }
