from __future__ import annotations

import html
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.chms.constants import (
    CHANNEL_EMAIL,
    CHANNEL_IN_APP,
    CHANNEL_SMS,
    CHANNELS,
    DELIVERY_FAILED,
    DELIVERY_PENDING,
    DELIVERY_SENT,
)
from app.chms.errors import ValidationError
from app.chms.modules.communications.models import Communication, CommunicationDelivery
from app.chms.modules.members.models import Member

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.chms.models import User
    from app.chms.modules.communications.email_gateway import EmailGateway
    from app.chms.modules.communications.sms_gateway import SmsGateway

logger = logging.getLogger(__name__)

EMAIL_SUBJECT = "Message from Alive Church"


def validate_channels(channels: Iterable[str] | None) -> list[str]:
    chosen = list(channels or [])
    bad = [c for c in chosen if c not in CHANNELS]
    if bad:
        raise ValidationError(f"Invalid channel(s): {', '.join(map(str, bad))}. Must be one of: {', '.join(CHANNELS)}")
    # keep request order, drop repeats
    return list(dict.fromkeys(chosen))


def notify(
    s: "Session",
    *,
    title: str,
    message: str,
    sent_by_member_id: int | None = None,
    sent_by_user: "User | None" = None,
    target_group_id: int | None = None,
    target_member_id: int | None = None,
) -> Communication:
    comm = Communication(
        title=title,
        message=message,
        sent_by_member_id=sent_by_member_id,
        sent_by_user_id=sent_by_user.id if sent_by_user else None,
        target_group_id=target_group_id,
        target_member_id=target_member_id,
        created_at=datetime.utcnow(),
    )
    s.add(comm)
    s.flush()
    return comm


def queue_deliveries(s: "Session", comm: Communication, member_ids: Iterable[int], channels: Iterable[str]) -> int:
    """One Pending delivery per (recipient, channel)."""
    count = 0
    for member_id in dict.fromkeys(member_ids):
        for channel in channels:
            s.add(CommunicationDelivery(communication_id=comm.id, member_id=member_id, channel=channel, status=DELIVERY_PENDING))
            count += 1
    s.flush()
    return count


def _sms_number(member: Member) -> str | None:
    primary = next((p for p in member.phones if p.is_primary), None)
    if primary:
        return primary.phone_number
    return member.phones[0].phone_number if member.phones else None


def _deliver(
    delivery: CommunicationDelivery,
    comm: Communication,
    member: Member,
    email_gateway: "EmailGateway",
    sms_gateway: "SmsGateway",
) -> str | None:
    """Send one delivery. Returns None when sent, else the failure reason."""
    if delivery.channel == CHANNEL_SMS:
        number = _sms_number(member)
        if not number:
            return "Member has no phone number"
        if sms_gateway.send(number, comm.message):
            return None
        return sms_gateway.provider.last_error or "Gateway failed"
    if delivery.channel == CHANNEL_EMAIL:
        if not member.email_address:
            return "Member has no email address"
        body = html.escape(comm.message).replace("\n", "<br>\n")
        return None if email_gateway.send(member.email_address, EMAIL_SUBJECT, body) else "Gateway failed"
    if delivery.channel == CHANNEL_IN_APP:
        return None
    return f"Unknown channel {delivery.channel}"


def deliver_pending(
    s: "Session",
    *,
    email_gateway: "EmailGateway",
    sms_gateway: "SmsGateway",
    limit: int = 100,
) -> dict[str, int]:
    """
    Drain up to `limit` Pending deliveries through the gateways, marking each Sent or Failed.
    InApp deliveries are complete as soon as they are processed. A gateway that raises
    fails only its own delivery.
    """
    rows = s.execute(
        select(CommunicationDelivery, Communication, Member)
        .join(Communication, Communication.id == CommunicationDelivery.communication_id)
        .join(Member, Member.id == CommunicationDelivery.member_id)
        .where(CommunicationDelivery.status == DELIVERY_PENDING)
        .order_by(CommunicationDelivery.id.asc())
        .limit(limit)
    ).all()

    counts = {"processed": 0, "sent": 0, "failed": 0}
    for delivery, comm, member in rows:
        try:
            error = _deliver(delivery, comm, member, email_gateway, sms_gateway)
        except Exception as e:
            logger.exception("Delivery %s (%s) raised", delivery.id, delivery.channel)
            error = f"{type(e).__name__}: {e}"
        ok = error is None

        delivery.status = DELIVERY_SENT if ok else DELIVERY_FAILED
        delivery.delivered_at = datetime.utcnow() if ok else None
        delivery.error_message = None if ok else error[:512]
        counts["processed"] += 1
        counts["sent" if ok else "failed"] += 1

    s.flush()
    if counts["processed"]:
        logger.info("Delivered communications: %s", counts)
    return counts


def communication_to_dict(comm: Communication) -> dict:
    d = comm.to_dict()
    d["deliveries"] = {
        "total": len(comm.deliveries),
        "pending": sum(1 for x in comm.deliveries if x.status == DELIVERY_PENDING),
        "sent": sum(1 for x in comm.deliveries if x.status == DELIVERY_SENT),
        "failed": sum(1 for x in comm.deliveries if x.status == DELIVERY_FAILED),
    }
    return d
