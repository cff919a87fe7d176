from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_, select
from werkzeug.security import generate_password_hash
from werkzeug.utils import secure_filename

from app.chms.audit import log_member
from app.chms.constants import FAMILY_ROLE_HEAD, MEMBER_STATUS_ACTIVE, MEMBER_STATUS_INACTIVE, PHONE_TYPES
from app.chms.errors import ConflictError, NotFoundError, ValidationError, raise_for_errors
from app.chms.models import Branch, Role, User
from app.chms.modules.members.models import Member, MemberPhone
from app.chms.orm import Page, exists, first_where, paginate, soft_delete, update_where
from app.chms.utils import clean_str, field_date, field_int, is_valid_email, is_valid_phone, truthy

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.chms.storage import Storage

logger = logging.getLogger(__name__)

ALLOWED_PHOTO_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp"})
VALID_GENDERS = ("Male", "Female")


def normalize_phone_input(value: Any) -> str:
    return re.sub(r"[\s\-]", "", str(value or ""))


def get_member_or_404(s: "Session", member_id: int) -> Member:
    m = s.get(Member, member_id)
    if not m or m.is_deleted:
        raise NotFoundError("Member not found.")
    return m


def require_active_member(s: "Session", member_id: Any, label: str = "member") -> Member:
    """Foreign-key style check used by other modules: exists, not deleted, Active."""
    m = s.get(Member, member_id) if member_id else None
    if not m or m.is_deleted or m.membership_status != MEMBER_STATUS_ACTIVE:
        raise ValidationError(f"Invalid {label}.")
    return m


def validate_member_payload(payload: dict, *, registering: bool) -> list[str]:
    """Validate member registration/update payload. Returns list of errors."""
    errors: list[str] = []
    if not clean_str(payload.get("first_name")):
        errors.append("First name is required.")
    if not clean_str(payload.get("family_name")):
        errors.append("Family name is required.")
    email = clean_str(payload.get("email_address"))
    if not email:
        errors.append("Email address is required.")
    elif not is_valid_email(email):
        errors.append("Email address is invalid.")
    if registering:
        if not clean_str(payload.get("username")):
            errors.append("Username is required.")
        if not payload.get("password"):
            errors.append("Password is required.")
    gender = clean_str(payload.get("gender"))
    if gender and gender not in VALID_GENDERS:
        errors.append(f"Invalid gender. Must be one of: {', '.join(VALID_GENDERS)}")
    status = clean_str(payload.get("membership_status"))
    if status and status not in (MEMBER_STATUS_ACTIVE, MEMBER_STATUS_INACTIVE):
        errors.append("Membership status must be Active or Inactive.")
    field_date(payload, "date_of_birth", "Date of birth", errors)
    field_int(payload, "branch_id", "Branch", errors)
    phones = payload.get("phone_numbers")
    if phones is not None:
        if not isinstance(phones, list):
            errors.append("Phone numbers must be a list.")
        else:
            for p in phones:
                if not is_valid_phone(str(p or "")):
                    errors.append(f"Invalid phone number: {p}")
    return errors


def _phone_list(payload: dict) -> list[str] | None:
    raw = payload.get("phone_numbers")
    if raw is None:
        return None
    numbers = [normalize_phone_input(p) for p in raw]
    if len(set(numbers)) != len(numbers):
        raise ValidationError("Duplicate phone numbers in request.")
    return numbers


def _check_phones_free(s: "Session", numbers: list[str], member_id: int | None = None) -> None:
    if not numbers:
        return
    criteria = [MemberPhone.phone_number.in_(numbers)]
    if member_id is not None:
        criteria.append(MemberPhone.member_id != member_id)
    taken = s.scalars(select(MemberPhone.phone_number).where(*criteria)).all()
    if taken:
        raise ConflictError(f"Phone number already exists: {', '.join(sorted(taken))}")


def _require_branch(s: "Session", branch_id: int) -> None:
    if not s.get(Branch, branch_id):
        raise ValidationError("Invalid branch.")


def register_member(s: "Session", payload: dict, actor: User | None) -> Member:
    """Create member + login account + phones. The first phone becomes primary."""
    errors = validate_member_payload(payload, registering=True)
    raise_for_errors(errors)

    username = clean_str(payload.get("username"))
    if exists(s, User, username=username):
        raise ConflictError("Username already exists.")
    numbers = _phone_list(payload) or []
    _check_phones_free(s, numbers)

    branch_id = int(payload.get("branch_id") or 1)
    _require_branch(s, branch_id)

    now = datetime.utcnow()
    member = Member(
        first_name=clean_str(payload.get("first_name")),
        family_name=clean_str(payload.get("family_name")),
        other_names=clean_str(payload.get("other_names")),
        gender=clean_str(payload.get("gender")) or "Male",
        email_address=clean_str(payload.get("email_address")),
        address=clean_str(payload.get("address")),
        date_of_birth=field_date(payload, "date_of_birth", "Date of birth", []),
        occupation=clean_str(payload.get("occupation")) or "Not Applicable",
        registration_date=date.today(),
        membership_status=MEMBER_STATUS_ACTIVE,
        branch_id=branch_id,
        created_at=now,
        updated_at=now,
    )
    for i, number in enumerate(numbers):
        member.phones.append(MemberPhone(phone_number=number, phone_type="Mobile", is_primary=(i == 0)))
    s.add(member)
    s.flush()

    account = User(
        username=username,
        email=member.email_address,
        password_hash=generate_password_hash(payload["password"]),
        is_active=True,
        member_id=member.id,
    )
    member_role = first_where(s, Role, key="member")
    if member_role:
        account.roles.append(member_role)
    s.add(account)
    s.flush()

    log_member(s, actor=actor, action="create", member_id=member.id, changes={"username": username})
    logger.info("Registered member %s (%s)", member.id, username)
    return member


def update_member(s: "Session", member_id: int, payload: dict, actor: User | None) -> Member:
    member = get_member_or_404(s, member_id)
    errors = validate_member_payload(payload, registering=False)
    raise_for_errors(errors)

    branch_id = int(payload.get("branch_id") or member.branch_id)
    if branch_id != member.branch_id:
        _require_branch(s, branch_id)
    numbers = _phone_list(payload)
    if numbers is not None:
        _check_phones_free(s, numbers, member_id=member.id)

    new_values = {
        "first_name": clean_str(payload.get("first_name")),
        "family_name": clean_str(payload.get("family_name")),
        "other_names": clean_str(payload.get("other_names")),
        "gender": clean_str(payload.get("gender")) or member.gender,
        "email_address": clean_str(payload.get("email_address")),
        "address": clean_str(payload.get("address")),
        "date_of_birth": field_date(payload, "date_of_birth", "Date of birth", []),
        "occupation": clean_str(payload.get("occupation")) or member.occupation,
        "membership_status": clean_str(payload.get("membership_status")) or member.membership_status,
        "branch_id": branch_id,
    }
    changes: dict[str, dict] = {}
    for key, new in new_values.items():
        old = getattr(member, key)
        if old != new:
            changes[key] = {"old": str(old) if old is not None else None, "new": str(new) if new is not None else None}
            setattr(member, key, new)

    if numbers is not None:
        old_numbers = [p.phone_number for p in member.phones]
        if old_numbers != numbers:
            member.phones.clear()
            s.flush()
            for i, number in enumerate(numbers):
                member.phones.append(MemberPhone(phone_number=number, phone_type="Mobile", is_primary=(i == 0)))
            changes["phone_numbers"] = {"old": old_numbers, "new": numbers}

    member.updated_at = datetime.utcnow()
    s.flush()
    log_member(s, actor=actor, action="update", member_id=member.id, changes=changes)
    return member


def delete_member(s: "Session", member_id: int, actor: User | None) -> None:
    """Soft delete; blocked while the member heads a family or leads a group."""
    from app.chms.modules.families.models import FamilyMember
    from app.chms.modules.groups.models import ChurchGroup

    member = get_member_or_404(s, member_id)
    if exists(s, FamilyMember, member_id=member.id, role=FAMILY_ROLE_HEAD):
        raise ConflictError("Member is the head of a family; assign a new head or delete the family first.")
    if exists(s, ChurchGroup, leader_id=member.id):
        raise ConflictError("Member leads a group; assign a new leader first.")

    soft_delete(s, Member, member.id)
    update_where(s, User, {"is_active": False}, member_id=member.id)
    s.expire(member)
    log_member(s, actor=actor, action="delete", member_id=member.id)


def member_to_dict(m: Member, family: dict | None = None) -> dict:
    d = m.to_dict()
    d["full_name"] = m.full_name
    d["phones"] = [p.to_dict() for p in m.phones]
    d["family"] = family
    return d


def _families_for(s: "Session", member_ids: list[int]) -> dict[int, dict]:
    from app.chms.modules.families.models import Family, FamilyMember

    if not member_ids:
        return {}
    rows = s.execute(
        select(FamilyMember.member_id, FamilyMember.role, Family.id, Family.name)
        .join(Family, Family.id == FamilyMember.family_id)
        .where(FamilyMember.member_id.in_(member_ids))
    ).all()
    return {mid: {"id": fid, "name": fname, "role": role} for mid, role, fid, fname in rows}


def get_member(s: "Session", member_id: int) -> dict:
    m = get_member_or_404(s, member_id)
    return member_to_dict(m, _families_for(s, [m.id]).get(m.id))


def list_members(s: "Session", page: int, limit: int, filters: dict | None = None) -> dict:
    """Filters: name (partial, any name part), branch_id, status."""
    filters = filters or {}
    stmt = select(Member).where(Member.is_deleted.is_(False))
    name = clean_str(filters.get("name"))
    if name:
        like = f"%{name}%"
        stmt = stmt.where(or_(Member.first_name.ilike(like), Member.family_name.ilike(like), Member.other_names.ilike(like)))
    if filters.get("branch_id"):
        stmt = stmt.where(Member.branch_id == int(filters["branch_id"]))
    if filters.get("status"):
        stmt = stmt.where(Member.membership_status == filters["status"])
    stmt = stmt.order_by(Member.family_name.asc(), Member.first_name.asc(), Member.id.asc())
    result: Page = paginate(s, stmt, page, limit)
    families = _families_for(s, [m.id for m in result.items])
    return result.to_dict(lambda m: member_to_dict(m, families.get(m.id)))


# ---------- Phones ----------
def _validate_phone_payload(payload: dict, *, partial: bool) -> list[str]:
    errors: list[str] = []
    number = payload.get("phone_number")
    if number is None and not partial:
        errors.append("Phone number is required.")
    elif number is not None and not is_valid_phone(str(number)):
        errors.append("Phone number is invalid.")
    phone_type = payload.get("phone_type")
    if phone_type is None and not partial:
        errors.append("Phone type is required.")
    elif phone_type is not None and phone_type not in PHONE_TYPES:
        errors.append(f"Invalid phone type. Must be one of: {', '.join(PHONE_TYPES)}")
    return errors


def add_phone(s: "Session", member_id: int, payload: dict, actor: User | None) -> MemberPhone:
    raise_for_errors(_validate_phone_payload(payload, partial=False))
    member = s.get(Member, member_id)
    if not member or member.is_deleted:
        raise ValidationError("Invalid member.")
    number = normalize_phone_input(payload["phone_number"])
    if exists(s, MemberPhone, phone_number=number):
        raise ConflictError("Phone number already exists.")

    make_primary = truthy(payload.get("is_primary")) or not exists(s, MemberPhone, member_id=member.id, is_primary=True)
    if make_primary:
        update_where(s, MemberPhone, {"is_primary": False}, member_id=member.id)
    phone = MemberPhone(member_id=member.id, phone_number=number, phone_type=payload["phone_type"], is_primary=make_primary)
    s.add(phone)
    s.flush()
    s.expire(member, ["phones"])
    log_member(s, actor=actor, action="phone.add", member_id=member.id, changes={"phone_number": number})
    return phone


def update_phone(s: "Session", phone_id: int, payload: dict, actor: User | None) -> MemberPhone:
    raise_for_errors(_validate_phone_payload(payload, partial=True))
    phone = s.get(MemberPhone, phone_id)
    if not phone:
        raise NotFoundError("Phone number not found.")

    changes: dict[str, Any] = {}
    if payload.get("phone_number") is not None:
        number = normalize_phone_input(payload["phone_number"])
        if exists(s, MemberPhone, MemberPhone.id != phone.id, phone_number=number):
            raise ConflictError("Phone number already exists.")
        if number != phone.phone_number:
            changes["phone_number"] = {"old": phone.phone_number, "new": number}
            phone.phone_number = number
    if payload.get("phone_type") is not None and payload["phone_type"] != phone.phone_type:
        changes["phone_type"] = {"old": phone.phone_type, "new": payload["phone_type"]}
        phone.phone_type = payload["phone_type"]
    if truthy(payload.get("is_primary")) and not phone.is_primary:
        update_where(s, MemberPhone, {"is_primary": False}, MemberPhone.id != phone.id, member_id=phone.member_id)
        phone.is_primary = True
        changes["is_primary"] = {"old": False, "new": True}
    s.flush()
    log_member(s, actor=actor, action="phone.update", member_id=phone.member_id, changes=changes)
    return phone


def delete_phone(s: "Session", phone_id: int, actor: User | None) -> None:
    phone = s.get(MemberPhone, phone_id)
    if not phone:
        raise NotFoundError("Phone number not found.")
    if phone.is_primary:
        raise ConflictError("Cannot delete primary phone number.")
    member_id = phone.member_id
    s.delete(phone)
    s.flush()
    log_member(s, actor=actor, action="phone.delete", member_id=member_id, changes={"phone_number": phone.phone_number})


def get_phones(s: "Session", member_id: int) -> list[MemberPhone]:
    member = s.get(Member, member_id)
    if not member or member.is_deleted:
        raise ValidationError("Invalid member.")
    return list(s.scalars(select(MemberPhone).where(MemberPhone.member_id == member.id).order_by(MemberPhone.id)))


# ---------- Photo ----------
def build_photo_storage_key(member_id: int, filename: str) -> str:
    safe_filename = secure_filename(filename) or "photo.jpg"
    return f"members/{member_id}/photo/{date.today().isoformat()}/{safe_filename}"


def upload_photo(
    s: "Session",
    member_id: int,
    *,
    file_bytes: bytes,
    filename: str,
    content_type: str | None,
    storage: "Storage",
    actor: User | None,
) -> str:
    member = get_member_or_404(s, member_id)
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in ALLOWED_PHOTO_EXTENSIONS:
        raise ValidationError(f"Photo must be one of: {', '.join(sorted(ALLOWED_PHOTO_EXTENSIONS))}")
    if not file_bytes:
        raise ValidationError("Photo file is empty.")

    key = build_photo_storage_key(member.id, filename)
    storage.put_bytes(key, file_bytes, content_type=content_type or "application/octet-stream")
    old_key = member.photo_storage_key
    member.photo_storage_key = key
    member.updated_at = datetime.utcnow()
    if old_key and old_key != key:
        try:
            storage.delete(old_key)
        except Exception as e:
            logger.warning("Could not delete old member photo %s: %s", old_key, e)
    log_member(s, actor=actor, action="photo.upload", member_id=member.id, changes={"photo_storage_key": {"old": old_key, "new": key}})
    return key
