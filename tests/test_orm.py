"""Tests for the shared query helpers."""
from sqlalchemy import select

from app.chms.db import session_scope
from app.chms.models import Branch
from app.chms.modules.groups.models import GroupType
from app.chms.modules.members.models import Member
from app.chms.orm import (
    build_select,
    count_where,
    delete_where,
    exists,
    first_where,
    page_args,
    paginate,
    run_query,
    select_with_join,
    soft_delete,
    update_where,
)
from conftest import make_member


def test_page_args_clamps_input():
    assert page_args() == (1, 10)
    assert page_args("3", "25") == (3, 25)
    assert page_args("0", "500") == (1, 100)
    assert page_args("-2", "0") == (1, 1)
    assert page_args("abc", "xyz", default_limit=50) == (1, 50)


def test_paginate_counts_the_filtered_statement(app):
    with session_scope(app) as s:
        s.add_all([Branch(name=f"Branch {i}") for i in range(2, 9)])

    with session_scope(app) as s:
        stmt = select(Branch).where(Branch.name.like("Branch %")).order_by(Branch.name)
        page = paginate(s, stmt, page=3, limit=3)
        assert page.total == 7
        assert page.pages == 3
        assert [b.name for b in page.items] == ["Branch 8"]

        out = paginate(s, stmt, page=1, limit=2).to_dict(lambda b: b.name)
        assert out == {"data": ["Branch 2", "Branch 3"], "pagination": {"page": 1, "limit": 2, "total": 7, "pages": 4}}


def test_lookup_helpers(app):
    with session_scope(app) as s:
        assert exists(s, GroupType, name="Choir")
        assert not exists(s, GroupType, name="Choir", description="x")
        assert count_where(s, GroupType, GroupType.name.like("%ship")) == 1
        assert first_where(s, Branch, name="Main").id == 1
        assert update_where(s, GroupType, {"description": "Sings"}, name="Choir") == 1
        assert first_where(s, GroupType, description="Sings").name == "Choir"
        assert delete_where(s, GroupType, name="Bible Study") == 1

    with session_scope(app) as s:
        rows = run_query(s, "SELECT name FROM group_types WHERE description IS NULL ORDER BY name")
        assert rows == [{"name": "Fellowship"}, {"name": "Ministry"}]


def test_soft_delete_only_flags_live_rows(api, app):
    member_id = make_member(api, "Soft", "Delete")
    with session_scope(app) as s:
        assert soft_delete(s, Member, member_id) == 1
        assert soft_delete(s, Member, member_id) == 0

    with session_scope(app) as s:
        member = s.get(Member, member_id)
        assert member.is_deleted is True
        assert member.deleted_at is not None


def test_joined_select(api, app):
    a = make_member(api, "Join", "Left", branch_id=1)
    with session_scope(app) as s:
        stmt = build_select(
            Member,
            fields=(Member.id, Member.first_name, Branch.name.label("branch_name")),
            joins=((Branch, Branch.id == Member.branch_id, "left"),),
            conditions=[Member.id == a],
        )
        assert "LEFT OUTER JOIN" in str(stmt)
        rows = select_with_join(
            s,
            Member,
            fields=(Member.id, Branch.name.label("branch_name")),
            joins=((Branch, Branch.id == Member.branch_id),),
            conditions=[Member.id == a],
            limit=1,
        )
        assert rows == [{"id": a, "branch_name": "Main"}]


def test_error_after_flush_rolls_back_request(app, client):
    from app.chms.db import db_session
    from app.chms.errors import ConflictError

    def flush_then_fail():
        s = db_session()
        s.add(Branch(name="Half Written"))
        s.flush()
        raise ConflictError("Second step failed.")

    app.add_url_rule("/half-written", view_func=flush_then_fail)
    r = client.get("/half-written")
    assert r.status_code == 409
    assert r.json["message"] == "Second step failed."

    with session_scope(app) as s:
        assert not exists(s, Branch, name="Half Written")
