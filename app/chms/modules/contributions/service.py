from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from app.chms.audit import log_financial, record_event
from app.chms.errors import ConflictError, NotFoundError, ValidationError, raise_for_errors
from app.chms.models import User, to_json_value
from app.chms.modules.contributions.models import Contribution, ContributionType, PaymentOption
from app.chms.modules.finance.models import FiscalYear
from app.chms.modules.finance.service import require_active_fiscal_year
from app.chms.modules.members.models import Member
from app.chms.modules.members.service import require_active_member
from app.chms.orm import build_select, exists, paginate, select_with_join, soft_delete, update_where
from app.chms.utils import clean_str, field_date, field_decimal, field_int, required_date, required_decimal, required_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

DESCRIPTION_MAX = 500


# ---------- Lookups ----------
def _lookup_name(payload: dict, label: str) -> str:
    name = clean_str(payload.get("name"))
    if not name:
        raise ValidationError(f"{label} name is required.")
    if len(name) > 100:
        raise ValidationError(f"{label} name must be at most 100 characters.")
    return name


def create_contribution_type(s: "Session", payload: dict, user: User | None) -> ContributionType:
    name = _lookup_name(payload, "Contribution type")
    if exists(s, ContributionType, name=name):
        raise ConflictError("Contribution type already exists.")
    ct = ContributionType(name=name, description=clean_str(payload.get("description")))
    s.add(ct)
    s.flush()
    record_event(s, actor=user, action="contribution_type.create", entity_type="ContributionType", entity_id=ct.id, metadata={"name": name})
    return ct


def list_contribution_types(s: "Session") -> list[ContributionType]:
    return list(s.scalars(select(ContributionType).order_by(ContributionType.name.asc())))


def create_payment_option(s: "Session", payload: dict, user: User | None) -> PaymentOption:
    name = _lookup_name(payload, "Payment option")
    if exists(s, PaymentOption, name=name):
        raise ConflictError("Payment option already exists.")
    po = PaymentOption(name=name)
    s.add(po)
    s.flush()
    record_event(s, actor=user, action="payment_option.create", entity_type="PaymentOption", entity_id=po.id, metadata={"name": name})
    return po


def list_payment_options(s: "Session") -> list[PaymentOption]:
    return list(s.scalars(select(PaymentOption).order_by(PaymentOption.name.asc())))


# ---------- Contributions ----------
def _check_date(day: date, fy: FiscalYear) -> None:
    if day > date.today():
        raise ValidationError("Contribution date cannot be in the future.")
    if not fy.covers(day):
        raise ValidationError("Contribution date must fall within the fiscal year.")


def _check_description(payload: dict) -> str | None:
    description = clean_str(payload.get("description"))
    if description and len(description) > DESCRIPTION_MAX:
        raise ValidationError(f"Description must be at most {DESCRIPTION_MAX} characters.")
    return description


def create_contribution(s: "Session", payload: dict, user: User | None) -> Contribution:
    errors: list[str] = []
    amount = required_decimal(payload, "amount", "Amount", errors)
    contribution_date = required_date(payload, "date", "Date", errors)
    type_id = required_int(payload, "contribution_type_id", "Contribution type", errors)
    member_id = required_int(payload, "member_id", "Member", errors)
    payment_option_id = required_int(payload, "payment_option_id", "Payment option", errors)
    fiscal_year_id = required_int(payload, "fiscal_year_id", "Fiscal year", errors)
    raise_for_errors(errors)
    if amount <= 0:
        raise ValidationError("Contribution amount must be greater than zero.")
    description = _check_description(payload)

    member = require_active_member(s, member_id, "or inactive member")
    if not s.get(ContributionType, type_id):
        raise ValidationError("Invalid contribution type.")
    if not s.get(PaymentOption, payment_option_id):
        raise ValidationError("Invalid payment option.")
    fy = require_active_fiscal_year(s, fiscal_year_id)
    _check_date(contribution_date, fy)

    contribution = Contribution(
        amount=amount,
        contribution_date=contribution_date,
        contribution_type_id=type_id,
        payment_option_id=payment_option_id,
        member_id=member.id,
        fiscal_year_id=fy.id,
        description=description,
        recorded_by_user_id=user.id if user else None,
        is_deleted=False,
    )
    s.add(contribution)
    s.flush()
    log_financial(s, actor=user, action="contribution.create", entity_type="Contribution", entity_id=contribution.id, amount=amount)
    logger.info("Contribution recorded id=%s amount=%s member=%s", contribution.id, amount, member.id)
    return contribution


def get_contribution_or_404(s: "Session", contribution_id: int) -> Contribution:
    contribution = s.get(Contribution, contribution_id)
    if not contribution or contribution.is_deleted:
        raise NotFoundError("Contribution not found.")
    return contribution


def update_contribution(s: "Session", contribution_id: int, payload: dict, user: User | None) -> Contribution:
    """Partial update: only the fields present in the payload are checked and changed."""
    contribution = get_contribution_or_404(s, contribution_id)
    errors: list[str] = []
    amount = field_decimal(payload, "amount", "Amount", errors)
    contribution_date = field_date(payload, "date", "Date", errors)
    type_id = field_int(payload, "contribution_type_id", "Contribution type", errors)
    payment_option_id = field_int(payload, "payment_option_id", "Payment option", errors)
    raise_for_errors(errors)

    values: dict[str, Any] = {}
    if amount is not None:
        if amount <= 0:
            raise ValidationError("Contribution amount must be greater than zero.")
        values["amount"] = amount
    if contribution_date is not None:
        _check_date(contribution_date, s.get(FiscalYear, contribution.fiscal_year_id))
        values["contribution_date"] = contribution_date
    if type_id is not None:
        if not s.get(ContributionType, type_id):
            raise ValidationError("Invalid contribution type.")
        values["contribution_type_id"] = type_id
    if payment_option_id is not None:
        if not s.get(PaymentOption, payment_option_id):
            raise ValidationError("Invalid payment option.")
        values["payment_option_id"] = payment_option_id
    if "description" in payload:
        values["description"] = _check_description(payload)

    changes: dict[str, dict] = {}
    for key, new in values.items():
        old = getattr(contribution, key)
        if old != new:
            changes[key] = {"old": str(old) if old is not None else None, "new": str(new) if new is not None else None}
            setattr(contribution, key, new)
    s.flush()
    if changes:
        log_financial(
            s,
            actor=user,
            action="contribution.update",
            entity_type="Contribution",
            entity_id=contribution.id,
            amount=contribution.amount,
            changes=changes,
        )
    return contribution


def delete_contribution(s: "Session", contribution_id: int, user: User | None) -> None:
    if not soft_delete(s, Contribution, contribution_id):
        raise NotFoundError("Contribution not found or already deleted.")
    log_financial(s, actor=user, action="contribution.delete", entity_type="Contribution", entity_id=contribution_id)


def restore_contribution(s: "Session", contribution_id: int, user: User | None) -> None:
    rows = update_where(
        s,
        Contribution,
        {"is_deleted": False, "deleted_at": None},
        Contribution.id == contribution_id,
        is_deleted=True,
    )
    if not rows:
        raise NotFoundError("Contribution not found or not deleted.")
    log_financial(s, actor=user, action="contribution.restore", entity_type="Contribution", entity_id=contribution_id)


_LIST_FIELDS = (
    Contribution.id,
    Contribution.amount,
    Contribution.contribution_date,
    Contribution.description,
    Contribution.member_id,
    Contribution.fiscal_year_id,
    Member.first_name,
    Member.family_name,
    ContributionType.name.label("contribution_type"),
    PaymentOption.name.label("payment_option"),
)
_LIST_JOINS = (
    (Member, Member.id == Contribution.member_id),
    (ContributionType, ContributionType.id == Contribution.contribution_type_id),
    (PaymentOption, PaymentOption.id == Contribution.payment_option_id),
)


def _row(row: dict) -> dict:
    return {k: to_json_value(v) for k, v in row.items()}


def get_contribution(s: "Session", contribution_id: int) -> dict:
    rows = select_with_join(
        s,
        Contribution,
        fields=_LIST_FIELDS + (Contribution.contribution_type_id, Contribution.payment_option_id, Contribution.recorded_at),
        joins=_LIST_JOINS,
        conditions=[Contribution.id == contribution_id, Contribution.is_deleted.is_(False)],
        limit=1,
    )
    if not rows:
        raise NotFoundError("Contribution not found.")
    return _row(rows[0])


def _filter_conditions(filters: dict) -> list:
    errors: list[str] = []
    start_date = field_date(filters, "start_date", "Start date", errors)
    end_date = field_date(filters, "end_date", "End date", errors)
    raise_for_errors(errors)
    conditions = [Contribution.is_deleted.is_(False)]
    for key in ("contribution_type_id", "member_id", "fiscal_year_id"):
        if filters.get(key):
            conditions.append(getattr(Contribution, key) == int(filters[key]))
    if start_date:
        conditions.append(Contribution.contribution_date >= start_date)
    if end_date:
        conditions.append(Contribution.contribution_date <= end_date)
    return conditions


def list_contributions(s: "Session", page: int, limit: int, filters: dict | None = None) -> dict:
    stmt = build_select(
        Contribution,
        fields=_LIST_FIELDS,
        joins=_LIST_JOINS,
        conditions=_filter_conditions(filters or {}),
        order_by=[Contribution.contribution_date.desc(), Contribution.id.desc()],
    )
    return paginate(s, stmt, page, limit, mappings=True).to_dict(_row)


def total_contributions(s: "Session", filters: dict | None = None) -> Decimal:
    stmt = select(func.coalesce(func.sum(Contribution.amount), 0)).where(*_filter_conditions(filters or {}))
    return Decimal(str(s.scalar(stmt) or 0)).quantize(Decimal("0.01"))
