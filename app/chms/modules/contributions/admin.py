from __future__ import annotations

from flask import Blueprint, request

from app.chms.auth import current_user
from app.chms.db import db_session
from app.chms.modules.contributions.service import (
    create_contribution,
    create_contribution_type,
    create_payment_option,
    delete_contribution,
    get_contribution,
    list_contribution_types,
    list_contributions,
    list_payment_options,
    restore_contribution,
    total_contributions,
    update_contribution,
)
from app.chms.orm import page_args
from app.chms.rbac import require_permission
from app.chms.utils import json_payload

bp = Blueprint("contributions", __name__)


def _filters() -> dict:
    return {
        "contribution_type_id": request.args.get("contribution_type_id", type=int),
        "member_id": request.args.get("member_id", type=int),
        "fiscal_year_id": request.args.get("fiscal_year_id", type=int),
        "start_date": request.args.get("start_date"),
        "end_date": request.args.get("end_date"),
    }


# ---------- Lookups ----------
@bp.get("/contribution-types")
@require_permission("contributions.view")
def contribution_types_list():
    s = db_session()
    return {"status": "success", "data": [ct.to_dict() for ct in list_contribution_types(s)]}


@bp.post("/contribution-types")
@require_permission("finance.manage")
def contribution_types_create():
    s = db_session()
    ct = create_contribution_type(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "type_id": ct.id}, 201


@bp.get("/payment-options")
@require_permission("contributions.view")
def payment_options_list():
    s = db_session()
    return {"status": "success", "data": [po.to_dict() for po in list_payment_options(s)]}


@bp.post("/payment-options")
@require_permission("finance.manage")
def payment_options_create():
    s = db_session()
    po = create_payment_option(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "payment_option_id": po.id}, 201


# ---------- Contributions ----------
@bp.get("/contributions")
@require_permission("contributions.view")
def contributions_list():
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"))
    return {"status": "success", **list_contributions(s, page, limit, _filters())}


@bp.get("/contributions/total")
@require_permission("contributions.view")
def contributions_total():
    s = db_session()
    return {"status": "success", "total_contribution": str(total_contributions(s, _filters()))}


@bp.post("/contributions")
@require_permission("contributions.create")
def contributions_create():
    s = db_session()
    contribution = create_contribution(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "contribution_id": contribution.id}, 201


@bp.get("/contributions/<int:contribution_id>")
@require_permission("contributions.view")
def contribution_detail(contribution_id: int):
    s = db_session()
    return {"status": "success", "data": get_contribution(s, contribution_id)}


@bp.put("/contributions/<int:contribution_id>")
@require_permission("contributions.edit")
def contribution_update(contribution_id: int):
    s = db_session()
    contribution = update_contribution(s, contribution_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "contribution_id": contribution.id}


@bp.delete("/contributions/<int:contribution_id>")
@require_permission("contributions.delete")
def contribution_delete(contribution_id: int):
    s = db_session()
    delete_contribution(s, contribution_id, current_user())
    s.commit()
    return {"status": "success", "message": "Contribution deleted."}


@bp.post("/contributions/<int:contribution_id>/restore")
@require_permission("contributions.delete")
def contribution_restore(contribution_id: int):
    s = db_session()
    restore_contribution(s, contribution_id, current_user())
    s.commit()
    return {"status": "success", "message": "Contribution restored."}
