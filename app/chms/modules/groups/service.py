from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.chms.audit import record_event
from app.chms.constants import CHANNEL_IN_APP, MEMBER_STATUS_ACTIVE
from app.chms.errors import ConflictError, NotFoundError, ValidationError, raise_for_errors
from app.chms.models import Branch, User, to_json_value
from app.chms.modules.communications.models import Communication
from app.chms.modules.communications.service import communication_to_dict, notify, queue_deliveries, validate_channels
from app.chms.modules.groups.models import ChurchGroup, GroupMember, GroupType
from app.chms.modules.members.models import Member
from app.chms.modules.members.service import require_active_member
from app.chms.orm import count_where, delete_where, exists, first_where, paginate
from app.chms.utils import clean_str, required_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

NAME_MAX = 100


# ---------- Group types ----------
def create_group_type(s: "Session", payload: dict, user: User | None) -> GroupType:
    name = clean_str(payload.get("name"))
    if not name:
        raise ValidationError("Group type name is required.")
    if len(name) > NAME_MAX:
        raise ValidationError(f"Group type name must be at most {NAME_MAX} characters.")
    if exists(s, GroupType, name=name):
        raise ConflictError("Group type name already exists.")
    gt = GroupType(name=name, description=clean_str(payload.get("description")))
    s.add(gt)
    s.flush()
    record_event(s, actor=user, action="group_type.create", entity_type="GroupType", entity_id=gt.id, metadata={"name": name})
    return gt


def list_group_types(s: "Session") -> list[GroupType]:
    return list(s.scalars(select(GroupType).order_by(GroupType.name.asc())))


# ---------- Groups ----------
def get_group_or_404(s: "Session", group_id: int) -> ChurchGroup:
    group = s.get(ChurchGroup, group_id)
    if not group:
        raise NotFoundError("Group not found.")
    return group


def validate_group_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    name = clean_str(payload.get("name"))
    if not name:
        errors.append("Group name is required.")
    elif len(name) > NAME_MAX:
        errors.append(f"Group name must be at most {NAME_MAX} characters.")
    required_int(payload, "leader_id", "Leader", errors)
    required_int(payload, "type_id", "Group type", errors)
    return errors


def _check_group_refs(s: "Session", payload: dict, *, exclude_id: int | None = None) -> tuple[Member, GroupType, str]:
    leader = require_active_member(s, int(payload["leader_id"]), "or inactive leader")
    group_type = s.get(GroupType, int(payload["type_id"]))
    if not group_type:
        raise ValidationError("Invalid group type.")
    name = clean_str(payload.get("name")) or ""
    criteria = [ChurchGroup.id != exclude_id] if exclude_id is not None else []
    if exists(s, ChurchGroup, *criteria, name=name):
        raise ConflictError("Group name already exists.")
    return leader, group_type, name


def create_group(s: "Session", payload: dict, user: User | None) -> ChurchGroup:
    raise_for_errors(validate_group_payload(payload))
    leader, group_type, name = _check_group_refs(s, payload)

    now = datetime.utcnow()
    group = ChurchGroup(
        name=name,
        leader_id=leader.id,
        type_id=group_type.id,
        description=clean_str(payload.get("description")),
        created_at=now,
        updated_at=now,
    )
    s.add(group)
    s.flush()
    notify(
        s,
        title="New Group Created",
        message=f"Group '{name}' has been created.",
        sent_by_member_id=(user.member_id if user and user.member_id else leader.id),
        sent_by_user=user,
        target_group_id=group.id,
    )
    record_event(s, actor=user, action="group.create", entity_type="ChurchGroup", entity_id=group.id, metadata={"name": name})
    return group


def update_group(s: "Session", group_id: int, payload: dict, user: User | None) -> ChurchGroup:
    group = get_group_or_404(s, group_id)
    raise_for_errors(validate_group_payload(payload))
    leader, group_type, name = _check_group_refs(s, payload, exclude_id=group.id)

    changes: dict[str, dict] = {}
    description = clean_str(payload.get("description")) if "description" in payload else group.description
    for key, new in (("name", name), ("leader_id", leader.id), ("type_id", group_type.id), ("description", description)):
        old = getattr(group, key)
        if old != new:
            changes[key] = {"old": old, "new": new}
            setattr(group, key, new)
    group.updated_at = datetime.utcnow()
    s.flush()
    notify(
        s,
        title="Group Updated",
        message=f"Group '{name}' has been updated.",
        sent_by_member_id=(user.member_id if user and user.member_id else leader.id),
        sent_by_user=user,
        target_group_id=group.id,
    )
    record_event(s, actor=user, action="group.update", entity_type="ChurchGroup", entity_id=group.id, changes=changes)
    return group


def delete_group(s: "Session", group_id: int, user: User | None) -> None:
    """Blocked while the group has members; its communications go with it."""
    group = get_group_or_404(s, group_id)
    if exists(s, GroupMember, group_id=group.id):
        raise ConflictError("Cannot delete group with members.")
    name = group.name
    removed = delete_where(s, Communication, target_group_id=group.id)
    s.delete(group)
    s.flush()
    record_event(
        s,
        actor=user,
        action="group.delete",
        entity_type="ChurchGroup",
        entity_id=group_id,
        metadata={"name": name, "communications_removed": removed},
    )


def _group_dict(s: "Session", group: ChurchGroup, member_count: int | None = None) -> dict:
    d = group.to_dict()
    d["leader_name"] = f"{group.leader.first_name} {group.leader.family_name}"
    d["type_name"] = group.group_type.name
    branch = s.get(Branch, group.leader.branch_id)
    d["branch_name"] = branch.name if branch else None
    d["member_count"] = member_count if member_count is not None else count_where(s, GroupMember, group_id=group.id)
    return d


def get_group(s: "Session", group_id: int) -> dict:
    return _group_dict(s, get_group_or_404(s, group_id))


def list_groups(s: "Session", page: int, limit: int, filters: dict | None = None) -> dict:
    """Filters: type_id, branch_id (the leader's branch), name (partial)."""
    filters = filters or {}
    stmt = select(ChurchGroup).join(Member, Member.id == ChurchGroup.leader_id)
    if filters.get("type_id"):
        stmt = stmt.where(ChurchGroup.type_id == int(filters["type_id"]))
    if filters.get("branch_id"):
        stmt = stmt.where(Member.branch_id == int(filters["branch_id"]))
    name = clean_str(filters.get("name"))
    if name:
        stmt = stmt.where(ChurchGroup.name.ilike(f"%{name}%"))
    stmt = stmt.order_by(ChurchGroup.name.asc())
    result = paginate(s, stmt, page, limit)

    ids = [g.id for g in result.items]
    counts: dict[int, int] = {}
    if ids:
        counts = dict(
            s.execute(
                select(GroupMember.group_id, func.count()).where(GroupMember.group_id.in_(ids)).group_by(GroupMember.group_id)
            ).all()
        )
    return result.to_dict(lambda g: _group_dict(s, g, counts.get(g.id, 0)))


# ---------- Group members ----------
def add_group_member(s: "Session", group_id: int, member_id: int, user: User | None) -> GroupMember:
    group = get_group_or_404(s, group_id)
    member = require_active_member(s, member_id, "or inactive member")
    if exists(s, GroupMember, group_id=group.id, member_id=member.id):
        raise ConflictError("Member is already in the group.")
    gm = GroupMember(group_id=group.id, member_id=member.id, joined_at=datetime.utcnow())
    s.add(gm)
    s.flush()
    notify(
        s,
        title="Added to Group",
        message=f"You have been added to group '{group.name}'.",
        sent_by_member_id=group.leader_id,
        sent_by_user=user,
        target_group_id=group.id,
        target_member_id=member.id,
    )
    record_event(s, actor=user, action="group.member_add", entity_type="ChurchGroup", entity_id=group.id, metadata={"member_id": member.id})
    return gm


def remove_group_member(s: "Session", group_id: int, member_id: int, user: User | None) -> None:
    group = get_group_or_404(s, group_id)
    member = s.get(Member, member_id)
    if not member or member.is_deleted:
        raise ValidationError("Invalid member.")
    link = first_where(s, GroupMember, group_id=group.id, member_id=member.id)
    if not link:
        raise ValidationError("Member is not in the group.")
    if group.leader_id == member.id:
        raise ConflictError("Cannot remove group leader as a member.")
    s.delete(link)
    s.flush()
    notify(
        s,
        title="Removed from Group",
        message=f"You have been removed from group '{group.name}'.",
        sent_by_member_id=group.leader_id,
        sent_by_user=user,
        target_group_id=group.id,
        target_member_id=member.id,
    )
    record_event(s, actor=user, action="group.member_remove", entity_type="ChurchGroup", entity_id=group.id, metadata={"member_id": member.id})


def send_group_message(s: "Session", group_id: int, payload: dict, user: User | None) -> tuple[Communication, int]:
    """
    Store the message and queue one delivery per active group member per channel
    (default InApp). Returns (communication, deliveries queued).
    """
    errors: list[str] = []
    title = clean_str(payload.get("title"))
    message = clean_str(payload.get("message"))
    if not title:
        errors.append("Title is required.")
    if not message:
        errors.append("Message is required.")
    sent_by = required_int(payload, "sent_by", "Sender", errors)
    raise_for_errors(errors)
    channels = validate_channels(payload.get("channels") or [CHANNEL_IN_APP])

    group = get_group_or_404(s, group_id)
    sender = require_active_member(s, sent_by, "or inactive sender")

    comm = notify(s, title=title, message=message, sent_by_member_id=sender.id, sent_by_user=user, target_group_id=group.id)
    recipient_ids = s.scalars(
        select(GroupMember.member_id)
        .join(Member, Member.id == GroupMember.member_id)
        .where(
            GroupMember.group_id == group.id,
            Member.is_deleted.is_(False),
            Member.membership_status == MEMBER_STATUS_ACTIVE,
        )
        .order_by(GroupMember.member_id)
    ).all()
    queued = queue_deliveries(s, comm, recipient_ids, channels)
    record_event(
        s,
        actor=user,
        action="group.message",
        entity_type="ChurchGroup",
        entity_id=group.id,
        metadata={"communication_id": comm.id, "channels": channels, "deliveries": queued},
    )
    return comm, queued


def get_group_messages(s: "Session", group_id: int, page: int, limit: int) -> dict:
    group = get_group_or_404(s, group_id)
    stmt = (
        select(Communication)
        .where(Communication.target_group_id == group.id)
        .order_by(Communication.created_at.desc(), Communication.id.desc())
    )
    return paginate(s, stmt, page, limit).to_dict(communication_to_dict)


def get_group_members(s: "Session", group_id: int, page: int, limit: int) -> dict:
    group = get_group_or_404(s, group_id)
    stmt = (
        select(
            Member.id.label("member_id"),
            Member.first_name,
            Member.family_name,
            Member.email_address,
            GroupMember.joined_at,
        )
        .select_from(GroupMember)
        .join(Member, Member.id == GroupMember.member_id)
        .where(GroupMember.group_id == group.id)
        .order_by(Member.family_name.asc(), Member.first_name.asc())
    )
    result = paginate(s, stmt, page, limit, mappings=True)
    return result.to_dict(lambda row: {k: to_json_value(v) for k, v in row.items()})
