from __future__ import annotations

from flask import Blueprint, current_app, request

from app.chms.audit import record_event
from app.chms.auth import current_user
from app.chms.db import db_session
from app.chms.modules.communications.email_gateway import email_gateway_from_config
from app.chms.modules.communications.service import deliver_pending
from app.chms.modules.communications.sms_gateway import sms_gateway_from_config
from app.chms.rbac import require_permission

bp = Blueprint("communications", __name__)


@bp.post("/communications/dispatch")
@require_permission("communications.send")
def communications_dispatch():
    """Admin-triggered run of the delivery queue (same work as the cron script)."""
    s = db_session()
    limit = max(1, min(500, request.args.get("limit", default=100, type=int)))
    counts = deliver_pending(
        s,
        email_gateway=email_gateway_from_config(current_app.config),
        sms_gateway=sms_gateway_from_config(current_app.config),
        limit=limit,
    )
    record_event(s, actor=current_user(), action="communications.dispatch", entity_type="Communication", metadata=counts)
    s.commit()
    return {"status": "success", **counts}
