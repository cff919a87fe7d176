from __future__ import annotations

from flask import Blueprint, request

from app.chms.auth import current_user
from app.chms.db import db_session
from app.chms.errors import raise_for_errors
from app.chms.modules.finance.reports import budget_vs_actual, contribution_summary, expense_summary, income_statement
from app.chms.modules.finance.service import (
    close_fiscal_year,
    create_expense,
    create_expense_category,
    create_fiscal_year,
    expense_to_dict,
    fiscal_year_to_dict,
    get_expense_or_404,
    get_fiscal_year_or_404,
    list_expense_categories,
    list_expenses,
    list_fiscal_years,
    review_expense,
)
from app.chms.orm import page_args
from app.chms.rbac import require_permission
from app.chms.utils import field_date, json_payload

bp = Blueprint("finance", __name__)


# ---------- Fiscal years ----------
@bp.get("/fiscal-years")
@require_permission("finance.view")
def fiscal_years_list():
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"))
    filters = {"branch_id": request.args.get("branch_id", type=int), "status": request.args.get("status")}
    return {"status": "success", **list_fiscal_years(s, page, limit, filters)}


@bp.post("/fiscal-years")
@require_permission("finance.manage")
def fiscal_years_create():
    s = db_session()
    fy = create_fiscal_year(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "fiscal_year_id": fy.id}, 201


@bp.get("/fiscal-years/<int:fiscal_year_id>")
@require_permission("finance.view")
def fiscal_year_detail(fiscal_year_id: int):
    s = db_session()
    return {"status": "success", "data": fiscal_year_to_dict(s, get_fiscal_year_or_404(s, fiscal_year_id))}


@bp.post("/fiscal-years/<int:fiscal_year_id>/close")
@require_permission("finance.manage")
def fiscal_year_close(fiscal_year_id: int):
    s = db_session()
    fy = close_fiscal_year(s, fiscal_year_id, current_user())
    s.commit()
    return {"status": "success", "fiscal_year_id": fy.id, "fiscal_year_status": fy.status}


# ---------- Expense categories ----------
@bp.get("/expense-categories")
@require_permission("finance.view")
def expense_categories_list():
    s = db_session()
    return {"status": "success", "data": [c.to_dict() for c in list_expense_categories(s)]}


@bp.post("/expense-categories")
@require_permission("finance.manage")
def expense_categories_create():
    s = db_session()
    category = create_expense_category(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "category_id": category.id}, 201


# ---------- Expenses ----------
@bp.get("/expenses")
@require_permission("finance.view")
def expenses_list():
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"))
    filters = {
        "fiscal_year_id": request.args.get("fiscal_year_id", type=int),
        "category_id": request.args.get("category_id", type=int),
        "member_id": request.args.get("member_id", type=int),
        "status": request.args.get("status"),
    }
    return {"status": "success", **list_expenses(s, page, limit, filters)}


@bp.post("/expenses")
@require_permission("expenses.create")
def expenses_create():
    s = db_session()
    expense = create_expense(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "expense_id": expense.id}, 201


@bp.get("/expenses/<int:expense_id>")
@require_permission("finance.view")
def expense_detail(expense_id: int):
    s = db_session()
    return {"status": "success", "data": expense_to_dict(get_expense_or_404(s, expense_id))}


@bp.post("/expenses/<int:expense_id>/review")
@require_permission("expenses.approve")
def expense_review(expense_id: int):
    s = db_session()
    expense = review_expense(s, expense_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "expense_id": expense.id, "expense_status": expense.status}


# ---------- Reports ----------
@bp.get("/reports/income-statement/<int:fiscal_year_id>")
@require_permission("reports.view")
def report_income_statement(fiscal_year_id: int):
    s = db_session()
    errors: list[str] = []
    date_from = field_date(request.args, "date_from", "date_from", errors)
    date_to = field_date(request.args, "date_to", "date_to", errors)
    raise_for_errors(errors)
    return {"status": "success", "data": income_statement(s, fiscal_year_id, date_from, date_to)}


@bp.get("/reports/budget-vs-actual/<int:fiscal_year_id>")
@require_permission("reports.view")
def report_budget_vs_actual(fiscal_year_id: int):
    s = db_session()
    return {"status": "success", **budget_vs_actual(s, fiscal_year_id)}


@bp.get("/reports/expenses/<int:fiscal_year_id>")
@require_permission("reports.view")
def report_expense_summary(fiscal_year_id: int):
    s = db_session()
    return {"status": "success", **expense_summary(s, fiscal_year_id)}


@bp.get("/reports/contributions/<int:fiscal_year_id>")
@require_permission("reports.view")
def report_contribution_summary(fiscal_year_id: int):
    s = db_session()
    return {"status": "success", **contribution_summary(s, fiscal_year_id)}
