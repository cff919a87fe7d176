"""
Thin query helpers shared by every module.

Each module keeps its own SQLAlchemy models; these helpers cover the
repetitive lookups (existence checks, conditional updates, soft deletes,
joined selects and paging) so service functions stay short. Transactions are
the session's own: routes commit on success, the app's error handlers roll
back on any raised error.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import Select, delete, func, select, text, update
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def _conditions(model: type, conditions: dict[str, Any]) -> list:
    clauses = []
    for key, value in conditions.items():
        column = getattr(model, key)
        clauses.append(column.is_(None) if value is None else column == value)
    return clauses


def get_all(s: Session, model: type[T]) -> list[T]:
    return list(s.scalars(select(model)))


def get_by_id(s: Session, model: type[T], id_: Any) -> T | None:
    return s.get(model, id_)


def get_where(s: Session, model: type[T], *criteria, **conditions: Any) -> list[T]:
    stmt = select(model).where(*criteria, *_conditions(model, conditions))
    return list(s.scalars(stmt))


def first_where(s: Session, model: type[T], *criteria, **conditions: Any) -> T | None:
    stmt = select(model).where(*criteria, *_conditions(model, conditions)).limit(1)
    return s.scalars(stmt).first()


def count_where(s: Session, model: type, *criteria, **conditions: Any) -> int:
    stmt = select(func.count()).select_from(model).where(*criteria, *_conditions(model, conditions))
    return int(s.scalar(stmt) or 0)


def exists(s: Session, model: type, *criteria, **conditions: Any) -> bool:
    return count_where(s, model, *criteria, **conditions) > 0


def insert(s: Session, model: type[T], **values: Any) -> T:
    """Add a row and flush so its primary key is available."""
    obj = model(**values)
    s.add(obj)
    s.flush()
    return obj


def update_where(s: Session, model: type, values: dict[str, Any], *criteria, **conditions: Any) -> int:
    """UPDATE ... WHERE; returns the number of rows affected."""
    stmt = update(model).where(*criteria, *_conditions(model, conditions)).values(**values)
    return s.execute(stmt).rowcount or 0


def delete_where(s: Session, model: type, *criteria, **conditions: Any) -> int:
    stmt = delete(model).where(*criteria, *_conditions(model, conditions))
    return s.execute(stmt).rowcount or 0


def soft_delete(s: Session, model: type, value: Any, column: str = "id") -> int:
    """Flag a row as deleted instead of removing it (model needs is_deleted/deleted_at)."""
    rows = update_where(
        s,
        model,
        {"is_deleted": True, "deleted_at": datetime.utcnow()},
        getattr(model, column) == value,
        is_deleted=False,
    )
    logger.info("Soft-deleted %s %s=%s (rows=%s)", model.__name__, column, value, rows)
    return rows


def run_query(s: Session, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
    """Parameterized raw SQL for the odd report query."""
    return [dict(row) for row in s.execute(text(sql), params or {}).mappings()]


def build_select(
    base: Any,
    *,
    fields: Sequence[Any] = (),
    joins: Iterable[tuple] = (),
    conditions: Iterable[Any] = (),
    order_by: Iterable[Any] = (),
    group_by: Iterable[Any] = (),
) -> Select:
    """
    Joins are (target, onclause) or (target, onclause, "left").
    """
    stmt = select(*fields) if fields else select(base)
    stmt = stmt.select_from(base)
    for join in joins:
        target, onclause, *rest = join
        stmt = stmt.join(target, onclause, isouter=bool(rest) and rest[0] == "left")
    conditions = list(conditions)
    if conditions:
        stmt = stmt.where(*conditions)
    group_by = list(group_by)
    if group_by:
        stmt = stmt.group_by(*group_by)
    order_by = list(order_by)
    if order_by:
        stmt = stmt.order_by(*order_by)
    return stmt


def select_with_join(
    s: Session,
    base: Any,
    *,
    fields: Sequence[Any],
    joins: Iterable[tuple] = (),
    conditions: Iterable[Any] = (),
    order_by: Iterable[Any] = (),
    group_by: Iterable[Any] = (),
    limit: int = 0,
    offset: int = 0,
) -> list[dict[str, Any]]:
    stmt = build_select(base, fields=fields, joins=joins, conditions=conditions, order_by=order_by, group_by=group_by)
    if limit > 0:
        stmt = stmt.limit(limit)
        if offset > 0:
            stmt = stmt.offset(offset)
    return [dict(row) for row in s.execute(stmt).mappings()]


@dataclass
class Page:
    items: list
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self, serialize: Callable[[Any], Any] | None = None) -> dict:
        data = [serialize(i) for i in self.items] if serialize else list(self.items)
        return {
            "data": data,
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "pages": self.pages,
            },
        }


def page_args(page: Any = None, limit: Any = None, *, default_limit: int = DEFAULT_LIMIT) -> tuple[int, int]:
    """Clamp user-supplied paging input to page >= 1 and 1 <= limit <= 100."""
    try:
        p = int(page or 1)
    except (TypeError, ValueError):
        p = 1
    try:
        n = int(limit or default_limit)
    except (TypeError, ValueError):
        n = default_limit
    return max(1, p), max(1, min(MAX_LIMIT, n))


def paginate(s: Session, stmt: Select, page: int, limit: int, *, mappings: bool = False) -> Page:
    """
    Run `stmt` for one page. The total is counted from the same statement, so it
    always reflects the same filters as the page rows.
    """
    total = s.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    rows_stmt = stmt.limit(limit).offset((page - 1) * limit)
    if mappings:
        items: list = [dict(row) for row in s.execute(rows_stmt).mappings()]
    else:
        items = list(s.scalars(rows_stmt))
    return Page(items=items, page=page, limit=limit, total=int(total))
