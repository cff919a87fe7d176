from __future__ import annotations

from flask import Blueprint, request

from app.chms.auth import current_user
from app.chms.db import db_session
from app.chms.modules.budgets.service import (
    create_budget,
    delete_budget,
    get_budget,
    list_budgets,
    review_budget,
    submit_budget,
    update_budget,
)
from app.chms.orm import page_args
from app.chms.rbac import require_permission
from app.chms.utils import json_payload

bp = Blueprint("budgets", __name__)


@bp.get("/budgets")
@require_permission("budgets.view")
def budgets_list():
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"))
    filters = {
        "fiscal_year_id": request.args.get("fiscal_year_id", type=int),
        "branch_id": request.args.get("branch_id", type=int),
        "status": request.args.get("status"),
    }
    return {"status": "success", **list_budgets(s, page, limit, filters)}


@bp.post("/budgets")
@require_permission("budgets.create")
def budgets_create():
    s = db_session()
    budget = create_budget(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "budget_id": budget.id}, 201


@bp.get("/budgets/<int:budget_id>")
@require_permission("budgets.view")
def budget_detail(budget_id: int):
    s = db_session()
    return {"status": "success", "data": get_budget(s, budget_id)}


@bp.put("/budgets/<int:budget_id>")
@require_permission("budgets.edit")
def budget_update(budget_id: int):
    s = db_session()
    budget = update_budget(s, budget_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "budget_id": budget.id}


@bp.delete("/budgets/<int:budget_id>")
@require_permission("budgets.delete")
def budget_delete(budget_id: int):
    s = db_session()
    delete_budget(s, budget_id, current_user())
    s.commit()
    return {"status": "success", "message": "Budget deleted."}


@bp.post("/budgets/<int:budget_id>/submit")
@require_permission("budgets.edit")
def budget_submit(budget_id: int):
    s = db_session()
    budget = submit_budget(s, budget_id, current_user())
    s.commit()
    return {"status": "success", "budget_id": budget.id, "budget_status": budget.status}


@bp.post("/budgets/<int:budget_id>/review")
@require_permission("budgets.approve")
def budget_review(budget_id: int):
    s = db_session()
    budget = review_budget(s, budget_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "budget_id": budget.id, "budget_status": budget.status}
