"""
Financial reports over one fiscal year.

Contributions count only while not deleted; expenses count only once Approved.
Amounts are returned as strings with two decimals so totals stay exact in JSON.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from app.chms.constants import EXPENSE_APPROVED
from app.chms.errors import ValidationError
from app.chms.modules.contributions.models import Contribution, ContributionType, PaymentOption
from app.chms.modules.finance.models import Expense, ExpenseCategory
from app.chms.modules.finance.service import get_fiscal_year_or_404
from app.chms.orm import run_query

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

_CENT = Decimal("0.01")


def money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(_CENT)


def _window(date_from: date | None, date_to: date | None) -> None:
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from must be on or before date_to.")


def income_statement(
    s: "Session",
    fiscal_year_id: int,
    date_from: date | None = None,
    date_to: date | None = None,
) -> dict:
    fy = get_fiscal_year_or_404(s, fiscal_year_id)
    _window(date_from, date_to)

    income_stmt = (
        select(
            ContributionType.name.label("name"),
            func.sum(Contribution.amount).label("total"),
            func.count(Contribution.id).label("count"),
        )
        .select_from(Contribution)
        .join(ContributionType, ContributionType.id == Contribution.contribution_type_id)
        .where(Contribution.fiscal_year_id == fy.id, Contribution.is_deleted.is_(False))
        .group_by(ContributionType.name)
        .order_by(ContributionType.name)
    )
    expense_stmt = (
        select(
            ExpenseCategory.name.label("name"),
            func.sum(Expense.amount).label("total"),
            func.count(Expense.id).label("count"),
        )
        .select_from(Expense)
        .join(ExpenseCategory, ExpenseCategory.id == Expense.category_id)
        .where(Expense.fiscal_year_id == fy.id, Expense.status == EXPENSE_APPROVED)
        .group_by(ExpenseCategory.name)
        .order_by(ExpenseCategory.name)
    )
    if date_from:
        income_stmt = income_stmt.where(Contribution.contribution_date >= date_from)
        expense_stmt = expense_stmt.where(Expense.expense_date >= date_from)
    if date_to:
        income_stmt = income_stmt.where(Contribution.contribution_date <= date_to)
        expense_stmt = expense_stmt.where(Expense.expense_date <= date_to)

    income = [{"name": r.name, "total": money(r.total), "count": r.count} for r in s.execute(income_stmt)]
    expenses = [{"name": r.name, "total": money(r.total), "count": r.count} for r in s.execute(expense_stmt)]
    total_income = sum((row["total"] for row in income), Decimal("0"))
    total_expenses = sum((row["total"] for row in expenses), Decimal("0"))

    return {
        "fiscal_year_id": fy.id,
        "date_from": date_from.isoformat() if date_from else None,
        "date_to": date_to.isoformat() if date_to else None,
        "income": [{**row, "total": str(row["total"])} for row in income],
        "total_income": str(money(total_income)),
        "expenses": [{**row, "total": str(row["total"])} for row in expenses],
        "total_expenses": str(money(total_expenses)),
        "net_income": str(money(total_income - total_expenses)),
    }


_BUDGET_VS_ACTUAL_SQL = """
SELECT b.id AS budget_id,
       b.category_id AS category_id,
       ec.name AS category_name,
       b.branch_id AS branch_id,
       b.status AS status,
       b.amount AS budget_amount,
       COALESCE(SUM(e.amount), 0) AS actual_amount,
       COUNT(e.id) AS expense_count
FROM budgets b
JOIN expense_categories ec ON ec.id = b.category_id
LEFT JOIN expenses e ON e.category_id = b.category_id
    AND e.fiscal_year_id = b.fiscal_year_id
    AND e.status = :approved
WHERE b.fiscal_year_id = :fiscal_year_id
GROUP BY b.id, b.category_id, ec.name, b.branch_id, b.status, b.amount
ORDER BY ec.name
"""


def budget_vs_actual(s: "Session", fiscal_year_id: int) -> dict:
    fy = get_fiscal_year_or_404(s, fiscal_year_id)
    rows = run_query(s, _BUDGET_VS_ACTUAL_SQL, {"fiscal_year_id": fy.id, "approved": EXPENSE_APPROVED})
    lines = []
    for row in rows:
        budget = money(row["budget_amount"])
        actual = money(row["actual_amount"])
        lines.append(
            {
                "budget_id": row["budget_id"],
                "category_id": row["category_id"],
                "category_name": row["category_name"],
                "branch_id": row["branch_id"],
                "status": row["status"],
                "budget_amount": str(budget),
                "actual_amount": str(actual),
                "variance": str(budget - actual),
                "expense_count": int(row["expense_count"]),
            }
        )
    return {"fiscal_year_id": fy.id, "data": lines}


def expense_summary(s: "Session", fiscal_year_id: int) -> dict:
    """Expense totals per category and status."""
    fy = get_fiscal_year_or_404(s, fiscal_year_id)
    stmt = (
        select(
            ExpenseCategory.name.label("category_name"),
            Expense.status,
            func.sum(Expense.amount).label("total"),
            func.count(Expense.id).label("count"),
        )
        .select_from(Expense)
        .join(ExpenseCategory, ExpenseCategory.id == Expense.category_id)
        .where(Expense.fiscal_year_id == fy.id)
        .group_by(ExpenseCategory.name, Expense.status)
        .order_by(ExpenseCategory.name, Expense.status)
    )
    by_status: dict[str, Decimal] = {}
    data = []
    for r in s.execute(stmt):
        total = money(r.total)
        by_status[r.status] = by_status.get(r.status, Decimal("0")) + total
        data.append({"category_name": r.category_name, "status": r.status, "total": str(total), "count": r.count})
    return {
        "fiscal_year_id": fy.id,
        "data": data,
        "totals_by_status": {k: str(money(v)) for k, v in sorted(by_status.items())},
    }


def contribution_summary(s: "Session", fiscal_year_id: int) -> dict:
    """Contribution totals by type and by payment option."""
    fy = get_fiscal_year_or_404(s, fiscal_year_id)
    live = (Contribution.fiscal_year_id == fy.id, Contribution.is_deleted.is_(False))

    def grouped(name_col, join_target, onclause) -> list[dict]:
        stmt = (
            select(name_col.label("name"), func.sum(Contribution.amount).label("total"), func.count(Contribution.id).label("count"))
            .select_from(Contribution)
            .join(join_target, onclause)
            .where(*live)
            .group_by(name_col)
            .order_by(name_col)
        )
        return [{"name": r.name, "total": str(money(r.total)), "count": r.count} for r in s.execute(stmt)]

    total = s.scalar(select(func.coalesce(func.sum(Contribution.amount), 0)).where(*live))
    contributors = s.scalar(select(func.count(func.distinct(Contribution.member_id))).where(*live))
    return {
        "fiscal_year_id": fy.id,
        "by_type": grouped(ContributionType.name, ContributionType, ContributionType.id == Contribution.contribution_type_id),
        "by_payment_option": grouped(PaymentOption.name, PaymentOption, PaymentOption.id == Contribution.payment_option_id),
        "total": str(money(total)),
        "contributors": int(contributors or 0),
    }
