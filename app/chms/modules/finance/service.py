from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.chms.audit import log_approval, log_financial, record_event
from app.chms.constants import (
    EXPENSE_APPROVED,
    EXPENSE_PENDING,
    EXPENSE_REJECTED,
    FISCAL_YEAR_ACTIVE,
    FISCAL_YEAR_CLOSED,
)
from app.chms.errors import ConflictError, NotFoundError, ValidationError, raise_for_errors
from app.chms.models import Branch, User
from app.chms.modules.communications.service import notify
from app.chms.modules.finance.models import Expense, ExpenseCategory, FiscalYear
from app.chms.modules.members.models import Member
from app.chms.orm import exists, paginate
from app.chms.utils import clean_str, field_date, required_date, required_decimal, required_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

FISCAL_YEAR_STATUSES = (FISCAL_YEAR_ACTIVE, FISCAL_YEAR_CLOSED)
EXPENSE_STATUSES = (EXPENSE_PENDING, EXPENSE_APPROVED, EXPENSE_REJECTED)


def _sender(user: User | None) -> int | None:
    return user.member_id if user else None


# ---------- Fiscal years ----------
def get_fiscal_year_or_404(s: "Session", fiscal_year_id: int) -> FiscalYear:
    fy = s.get(FiscalYear, fiscal_year_id)
    if not fy:
        raise NotFoundError("Fiscal year not found.")
    return fy


def require_active_fiscal_year(s: "Session", fiscal_year_id: int) -> FiscalYear:
    fy = s.get(FiscalYear, fiscal_year_id)
    if not fy or fy.status != FISCAL_YEAR_ACTIVE:
        raise ValidationError("Selected fiscal year is not active.")
    return fy


def create_fiscal_year(s: "Session", payload: dict, user: User | None) -> FiscalYear:
    errors: list[str] = []
    start_date = required_date(payload, "start_date", "Start date", errors)
    end_date = required_date(payload, "end_date", "End date", errors)
    branch_id = required_int(payload, "branch_id", "Branch", errors)
    raise_for_errors(errors)
    if start_date >= end_date:
        raise ValidationError("Start date must be before end date.")
    branch = s.get(Branch, branch_id)
    if not branch:
        raise ValidationError("Invalid branch.")

    # Closed ranges overlap when each starts before the other ends.
    if exists(
        s,
        FiscalYear,
        FiscalYear.start_date <= end_date,
        FiscalYear.end_date >= start_date,
        branch_id=branch.id,
        status=FISCAL_YEAR_ACTIVE,
    ):
        raise ConflictError("Fiscal year overlaps with an existing active fiscal year.")

    fy = FiscalYear(start_date=start_date, end_date=end_date, branch_id=branch.id, status=FISCAL_YEAR_ACTIVE)
    s.add(fy)
    s.flush()
    notify(
        s,
        title="New Fiscal Year Created",
        message=f"Fiscal year {start_date.isoformat()} to {end_date.isoformat()} created for branch {branch.name}.",
        sent_by_member_id=_sender(user),
        sent_by_user=user,
    )
    log_financial(s, actor=user, action="fiscal_year.create", entity_type="FiscalYear", entity_id=fy.id)
    return fy


def close_fiscal_year(s: "Session", fiscal_year_id: int, user: User | None) -> FiscalYear:
    fy = get_fiscal_year_or_404(s, fiscal_year_id)
    if fy.status == FISCAL_YEAR_CLOSED:
        raise ConflictError("Fiscal year is already closed.")
    fy.status = FISCAL_YEAR_CLOSED
    fy.closed_at = datetime.utcnow()
    s.flush()
    log_financial(
        s,
        actor=user,
        action="fiscal_year.close",
        entity_type="FiscalYear",
        entity_id=fy.id,
        changes={"status": {"old": FISCAL_YEAR_ACTIVE, "new": FISCAL_YEAR_CLOSED}},
    )
    return fy


def fiscal_year_to_dict(s: "Session", fy: FiscalYear) -> dict:
    d = fy.to_dict()
    branch = s.get(Branch, fy.branch_id)
    d["branch_name"] = branch.name if branch else None
    return d


def list_fiscal_years(s: "Session", page: int, limit: int, filters: dict | None = None) -> dict:
    filters = filters or {}
    stmt = select(FiscalYear)
    if filters.get("branch_id"):
        stmt = stmt.where(FiscalYear.branch_id == int(filters["branch_id"]))
    status = clean_str(filters.get("status"))
    if status:
        if status not in FISCAL_YEAR_STATUSES:
            raise ValidationError("Invalid status filter.")
        stmt = stmt.where(FiscalYear.status == status)
    stmt = stmt.order_by(FiscalYear.start_date.desc(), FiscalYear.id.desc())
    return paginate(s, stmt, page, limit).to_dict(lambda fy: fiscal_year_to_dict(s, fy))


# ---------- Expense categories ----------
def create_expense_category(s: "Session", payload: dict, user: User | None) -> ExpenseCategory:
    name = clean_str(payload.get("name"))
    if not name:
        raise ValidationError("Category name is required.")
    if len(name) > 100:
        raise ValidationError("Category name must be at most 100 characters.")
    if exists(s, ExpenseCategory, name=name):
        raise ConflictError("Expense category already exists.")
    category = ExpenseCategory(name=name, description=clean_str(payload.get("description")))
    s.add(category)
    s.flush()
    record_event(s, actor=user, action="expense_category.create", entity_type="ExpenseCategory", entity_id=category.id, metadata={"name": name})
    return category


def list_expense_categories(s: "Session") -> list[ExpenseCategory]:
    return list(s.scalars(select(ExpenseCategory).order_by(ExpenseCategory.name.asc())))


# ---------- Expenses ----------
def get_expense_or_404(s: "Session", expense_id: int) -> Expense:
    expense = s.get(Expense, expense_id)
    if not expense:
        raise NotFoundError("Expense not found.")
    return expense


def create_expense(s: "Session", payload: dict, user: User | None) -> Expense:
    """Record a spend request; it stays Pending until reviewed."""
    errors: list[str] = []
    title = clean_str(payload.get("title"))
    if not title:
        errors.append("Title is required.")
    amount = required_decimal(payload, "amount", "Amount", errors)
    category_id = required_int(payload, "category_id", "Expense category", errors)
    fiscal_year_id = required_int(payload, "fiscal_year_id", "Fiscal year", errors)
    member_id = required_int(payload, "member_id", "Member", errors)
    expense_date = field_date(payload, "date", "Date", errors)
    raise_for_errors(errors)
    if amount <= 0:
        raise ValidationError("Expense amount must be positive.")

    fy = require_active_fiscal_year(s, fiscal_year_id)
    if not s.get(ExpenseCategory, category_id):
        raise ValidationError("Invalid expense category.")
    member = s.get(Member, member_id)
    if not member or member.is_deleted:
        raise ValidationError("Invalid member.")
    expense_date = expense_date or date.today()
    if not fy.covers(expense_date):
        raise ValidationError("Expense date must fall within the fiscal year.")

    expense = Expense(
        title=title,
        purpose=clean_str(payload.get("purpose")),
        amount=amount,
        expense_date=expense_date,
        status=EXPENSE_PENDING,
        member_id=member.id,
        fiscal_year_id=fy.id,
        category_id=category_id,
        created_by_user_id=user.id if user else None,
    )
    s.add(expense)
    s.flush()
    notify(
        s,
        title="New Expense Submitted",
        message=f"Expense '{title}' for {amount} submitted by {member.first_name} {member.family_name} requires approval.",
        sent_by_member_id=member.id,
        sent_by_user=user,
    )
    log_financial(s, actor=user, action="expense.create", entity_type="Expense", entity_id=expense.id, amount=amount)
    return expense


def review_expense(s: "Session", expense_id: int, payload: dict, user: User | None) -> Expense:
    expense = get_expense_or_404(s, expense_id)
    action = clean_str(payload.get("action"))
    if action not in ("approve", "reject"):
        raise ValidationError("Action must be 'approve' or 'reject'.")
    if expense.status != EXPENSE_PENDING:
        raise ConflictError("Only pending expenses can be reviewed.")

    approved = action == "approve"
    remarks = clean_str(payload.get("remarks"))
    expense.status = EXPENSE_APPROVED if approved else EXPENSE_REJECTED
    expense.reviewed_by_user_id = user.id if user else None
    expense.reviewed_at = datetime.utcnow()
    expense.review_remarks = remarks
    s.flush()
    notify(
        s,
        title="Expense Approved" if approved else "Expense Rejected",
        message=f"Your expense '{expense.title}' has been {'approved' if approved else 'rejected'}.",
        sent_by_member_id=_sender(user),
        sent_by_user=user,
        target_member_id=expense.member_id,
    )
    log_approval(s, actor=user, entity_type="Expense", entity_id=expense.id, approved=approved, remarks=remarks)
    return expense


def expense_to_dict(expense: Expense) -> dict:
    d = expense.to_dict()
    d["category_name"] = expense.category.name
    return d


def list_expenses(s: "Session", page: int, limit: int, filters: dict | None = None) -> dict:
    filters = filters or {}
    stmt = select(Expense)
    for key in ("fiscal_year_id", "category_id", "member_id"):
        if filters.get(key):
            stmt = stmt.where(getattr(Expense, key) == int(filters[key]))
    status = clean_str(filters.get("status"))
    if status:
        if status not in EXPENSE_STATUSES:
            raise ValidationError("Invalid status filter.")
        stmt = stmt.where(Expense.status == status)
    stmt = stmt.order_by(Expense.expense_date.desc(), Expense.id.desc())
    return paginate(s, stmt, page, limit).to_dict(expense_to_dict)
