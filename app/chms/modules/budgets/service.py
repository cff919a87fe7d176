from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.chms.audit import log_approval, log_financial
from app.chms.constants import BUDGET_APPROVED, BUDGET_DRAFT, BUDGET_REJECTED, BUDGET_SUBMITTED
from app.chms.errors import ConflictError, NotFoundError, ValidationError, raise_for_errors
from app.chms.models import Branch, User
from app.chms.modules.budgets.models import Budget
from app.chms.modules.finance.models import ExpenseCategory
from app.chms.modules.finance.service import require_active_fiscal_year
from app.chms.orm import exists, paginate
from app.chms.utils import clean_str, required_decimal, required_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

BUDGET_STATUSES = (BUDGET_DRAFT, BUDGET_SUBMITTED, BUDGET_APPROVED, BUDGET_REJECTED)


def get_budget_or_404(s: "Session", budget_id: int) -> Budget:
    budget = s.get(Budget, budget_id)
    if not budget:
        raise NotFoundError("Budget not found.")
    return budget


def create_budget(s: "Session", payload: dict, user: User | None) -> Budget:
    errors: list[str] = []
    fiscal_year_id = required_int(payload, "fiscal_year_id", "Fiscal year", errors)
    category_id = required_int(payload, "category_id", "Expense category", errors)
    branch_id = required_int(payload, "branch_id", "Branch", errors)
    amount = required_decimal(payload, "amount", "Amount", errors)
    raise_for_errors(errors)
    if amount <= 0:
        raise ValidationError("Budget amount must be positive.")

    fy = require_active_fiscal_year(s, fiscal_year_id)
    if not s.get(ExpenseCategory, category_id):
        raise ValidationError("Invalid expense category.")
    if not s.get(Branch, branch_id):
        raise ValidationError("Invalid branch.")
    if branch_id != fy.branch_id:
        raise ValidationError("Budget branch must match the fiscal year's branch.")
    if exists(s, Budget, fiscal_year_id=fy.id, category_id=category_id, branch_id=branch_id):
        raise ConflictError("A budget for this category already exists in the fiscal year and branch.")

    now = datetime.utcnow()
    budget = Budget(
        fiscal_year_id=fy.id,
        category_id=category_id,
        branch_id=branch_id,
        amount=amount,
        description=clean_str(payload.get("description")),
        status=BUDGET_DRAFT,
        created_by_user_id=user.id if user else None,
        created_at=now,
        updated_at=now,
    )
    s.add(budget)
    s.flush()
    log_financial(s, actor=user, action="budget.create", entity_type="Budget", entity_id=budget.id, amount=amount)
    return budget


def update_budget(s: "Session", budget_id: int, payload: dict, user: User | None) -> Budget:
    budget = get_budget_or_404(s, budget_id)
    if budget.status == BUDGET_APPROVED:
        raise ConflictError("Approved budgets cannot be modified.")
    errors: list[str] = []
    amount = required_decimal(payload, "amount", "Amount", errors)
    raise_for_errors(errors)
    if amount <= 0:
        raise ValidationError("Budget amount must be positive.")

    changes: dict[str, dict] = {}
    if budget.amount != amount:
        changes["amount"] = {"old": str(budget.amount), "new": str(amount)}
        budget.amount = amount
    if "description" in payload:
        description = clean_str(payload.get("description"))
        if description != budget.description:
            changes["description"] = {"old": budget.description, "new": description}
            budget.description = description
    budget.updated_at = datetime.utcnow()
    s.flush()
    log_financial(s, actor=user, action="budget.update", entity_type="Budget", entity_id=budget.id, amount=amount, changes=changes)
    return budget


def delete_budget(s: "Session", budget_id: int, user: User | None) -> None:
    budget = get_budget_or_404(s, budget_id)
    if budget.status == BUDGET_APPROVED:
        raise ConflictError("Cannot delete an approved budget.")
    amount = budget.amount
    s.delete(budget)
    s.flush()
    log_financial(s, actor=user, action="budget.delete", entity_type="Budget", entity_id=budget_id, amount=amount)


def submit_budget(s: "Session", budget_id: int, user: User | None) -> Budget:
    budget = get_budget_or_404(s, budget_id)
    if budget.status not in (BUDGET_DRAFT, BUDGET_REJECTED):
        raise ConflictError(f"Cannot submit a budget that is {budget.status}.")
    old = budget.status
    budget.status = BUDGET_SUBMITTED
    budget.submitted_at = datetime.utcnow()
    budget.updated_at = budget.submitted_at
    s.flush()
    log_financial(
        s,
        actor=user,
        action="budget.submit",
        entity_type="Budget",
        entity_id=budget.id,
        amount=budget.amount,
        changes={"status": {"old": old, "new": BUDGET_SUBMITTED}},
    )
    return budget


def review_budget(s: "Session", budget_id: int, payload: dict, user: User | None) -> Budget:
    budget = get_budget_or_404(s, budget_id)
    action = clean_str(payload.get("action"))
    if action not in ("approve", "reject"):
        raise ValidationError("Action must be 'approve' or 'reject'.")
    if budget.status != BUDGET_SUBMITTED:
        raise ConflictError("Only submitted budgets can be reviewed.")
    approved = action == "approve"
    remarks = clean_str(payload.get("remarks"))
    budget.status = BUDGET_APPROVED if approved else BUDGET_REJECTED
    budget.reviewed_by_user_id = user.id if user else None
    budget.reviewed_at = datetime.utcnow()
    budget.review_remarks = remarks
    budget.updated_at = budget.reviewed_at
    s.flush()
    log_approval(s, actor=user, entity_type="Budget", entity_id=budget.id, approved=approved, remarks=remarks)
    return budget


def budget_to_dict(s: "Session", budget: Budget) -> dict:
    d = budget.to_dict()
    d["category_name"] = budget.category.name
    d["fiscal_year"] = {
        "start_date": budget.fiscal_year.start_date.isoformat(),
        "end_date": budget.fiscal_year.end_date.isoformat(),
        "status": budget.fiscal_year.status,
    }
    branch = s.get(Branch, budget.branch_id)
    d["branch_name"] = branch.name if branch else None
    return d


def get_budget(s: "Session", budget_id: int) -> dict:
    return budget_to_dict(s, get_budget_or_404(s, budget_id))


def list_budgets(s: "Session", page: int, limit: int, filters: dict | None = None) -> dict:
    filters = filters or {}
    stmt = select(Budget)
    if filters.get("fiscal_year_id"):
        stmt = stmt.where(Budget.fiscal_year_id == int(filters["fiscal_year_id"]))
    if filters.get("branch_id"):
        stmt = stmt.where(Budget.branch_id == int(filters["branch_id"]))
    status = clean_str(filters.get("status"))
    if status:
        if status not in BUDGET_STATUSES:
            raise ValidationError("Invalid status filter.")
        stmt = stmt.where(Budget.status == status)
    stmt = stmt.order_by(Budget.created_at.desc(), Budget.id.desc())
    return paginate(s, stmt, page, limit).to_dict(lambda b: budget_to_dict(s, b))
