from __future__ import annotations

from flask import Blueprint, request

from app.chms.auth import current_user
from app.chms.db import db_session
from app.chms.modules.events.service import create_event, get_event, list_attendance, list_events, record_attendance
from app.chms.orm import page_args
from app.chms.rbac import require_permission
from app.chms.utils import json_payload

bp = Blueprint("events", __name__)


@bp.get("/events")
@require_permission("events.view")
def events_list():
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"))
    filters = {
        "branch_id": request.args.get("branch_id", type=int),
        "date_from": request.args.get("date_from"),
        "date_to": request.args.get("date_to"),
    }
    return {"status": "success", **list_events(s, page, limit, filters)}


@bp.post("/events")
@require_permission("events.manage")
def events_create():
    s = db_session()
    event = create_event(s, json_payload(), current_user())
    s.commit()
    return {"status": "success", "event_id": event.id}, 201


@bp.get("/events/<int:event_id>")
@require_permission("events.view")
def event_detail(event_id: int):
    s = db_session()
    return {"status": "success", "data": get_event(s, event_id)}


@bp.post("/events/<int:event_id>/attendance")
@require_permission("attendance.record")
def attendance_record(event_id: int):
    s = db_session()
    row = record_attendance(s, event_id, json_payload(), current_user())
    s.commit()
    return {"status": "success", "attendance_id": row.id}, 201


@bp.get("/events/<int:event_id>/attendance")
@require_permission("events.view")
def attendance_list(event_id: int):
    s = db_session()
    page, limit = page_args(request.args.get("page"), request.args.get("limit"), default_limit=50)
    return {"status": "success", **list_attendance(s, event_id, page, limit)}
