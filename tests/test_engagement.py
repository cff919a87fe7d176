"""Tests for attendance, member engagement and the branch dashboard."""
from datetime import date, timedelta

from app.chms.db import session_scope
from app.chms.modules.communications.models import Communication
from conftest import make_member


def _event(api, name="Sunday Service", day="2025-03-02"):
    r = api.post("/admin/events", json={"name": name, "date": day, "branch_id": 1})
    assert r.status_code == 201, r.json
    return r.json["event_id"]


def _attend(api, event_id, member_id, day="2025-03-02", **extra):
    return api.post(f"/admin/events/{event_id}/attendance", json={"member_id": member_id, "attendance_date": day, **extra})


def test_record_attendance(api, app):
    event_id = _event(api)
    member_id = make_member(api, "Abena", "Sarpong")

    r = api.post(f"/admin/events/{event_id}/attendance", json={})
    assert r.status_code == 400
    assert set(r.json["errors"]) == {"Member is required.", "Attendance date is required."}
    assert _attend(api, event_id, 999).status_code == 400
    assert _attend(api, event_id, member_id, status="Sleeping").status_code == 400
    assert _attend(api, 999, member_id).status_code == 404

    r = _attend(api, event_id, member_id)
    assert r.status_code == 201
    assert _attend(api, event_id, member_id).status_code == 409
    assert _attend(api, event_id, member_id, day="2025-03-09").status_code == 201

    rows = api.get(f"/admin/events/{event_id}/attendance").json["data"]
    assert [row["attendance_date"] for row in rows] == ["2025-03-09", "2025-03-02"]
    assert rows[0]["status"] == "Present"
    assert rows[0]["first_name"] == "Abena"

    with session_scope(app) as s:
        notes = s.query(Communication).filter(Communication.target_member_id == member_id).all()
        assert [n.title for n in notes] == ["Event Attendance Recorded"] * 2
        assert "'Sunday Service' on 2025-03-02" in notes[0].message


def test_engagement_report(api):
    member_id = make_member(api, "Kojo", "Antwi")
    leader = make_member(api, "Lead", "Antwi")
    group_id = api.post("/admin/groups", json={"name": "Men's Fellowship", "leader_id": leader, "type_id": 2}).json["group_id"]
    api.post(f"/admin/groups/{group_id}/members", json={"member_id": member_id})

    march = _event(api, "Palm Sunday", "2025-03-30")
    june = _event(api, "Youth Rally", "2025-06-14")
    _attend(api, march, member_id, day="2025-03-30")
    _attend(api, june, member_id, day="2025-06-14", status="Excused")
    api.post(f"/admin/events/{june}/volunteers", json={"volunteers": [{"member_id": member_id}]})

    fy = api.post("/admin/fiscal-years", json={"start_date": "2020-01-01", "end_date": "2030-12-31", "branch_id": 1}).json["fiscal_year_id"]
    base = {"contribution_type_id": 1, "payment_option_id": 1, "member_id": member_id, "fiscal_year_id": fy}
    api.post("/admin/contributions", json={**base, "amount": "50", "date": "2025-03-30"})
    api.post("/admin/contributions", json={**base, "amount": "25.50", "date": "2025-06-15"})
    deleted = api.post("/admin/contributions", json={**base, "amount": "999", "date": "2025-06-15"}).json["contribution_id"]
    api.delete(f"/admin/contributions/{deleted}")

    r = api.get(f"/admin/members/{member_id}/engagement")
    assert r.status_code == 200
    data = r.json["data"]
    assert data["member_name"] == "Kojo Antwi"
    assert data["groups_count"] == 1
    assert data["details"]["groups"][0]["group_name"] == "Men's Fellowship"
    assert data["events_attended"] == 2
    assert data["volunteer_instances"] == 1
    assert data["details"]["volunteering"][0]["event_name"] == "Youth Rally"
    assert data["contributions_count"] == 2
    assert data["contributions_total"] == "75.50"
    assert [c["amount"] for c in data["details"]["contributions"]] == ["25.50", "50.00"]

    window = {"start_date": "2025-06-01", "end_date": "2025-06-30"}
    data = api.get(f"/admin/members/{member_id}/engagement", query_string=window).json["data"]
    assert data["events_attended"] == 1
    assert data["details"]["attendance"][0]["status"] == "Excused"
    assert data["contributions_total"] == "25.50"
    # joined today, outside the window
    assert data["groups_count"] == 0

    bad = {"start_date": "2025-07-01", "end_date": "2025-06-01"}
    assert api.get(f"/admin/members/{member_id}/engagement", query_string=bad).status_code == 400
    assert api.get("/admin/members/999/engagement").status_code == 404


def test_dashboard_overview(api):
    today = date.today()
    last_sunday = today - timedelta(days=(today.weekday() + 1) % 7)
    member_id = make_member(api, "Yaa", "Asante")
    other_id = make_member(api, "Kwesi", "Asante")

    empty = api.get("/admin/dashboard").json["data"]
    assert empty["branch_name"] == "Main"
    assert empty["membership"]["total"] == 2
    assert empty["membership"]["new_today"] == 2
    assert empty["membership"]["new_this_year"] == 2
    assert empty["finance"] == {"fiscal_year_id": None, "income": "0.00", "expenses": "0.00", "net": "0.00"}

    fy = api.post("/admin/fiscal-years", json={"start_date": "2020-01-01", "end_date": "2030-12-31", "branch_id": 1}).json["fiscal_year_id"]
    category = api.post("/admin/expense-categories", json={"name": "Utilities"}).json["category_id"]
    api.post(
        "/admin/contributions",
        json={
            "amount": "80",
            "date": today.isoformat(),
            "contribution_type_id": 1,
            "payment_option_id": 1,
            "member_id": member_id,
            "fiscal_year_id": fy,
        },
    )
    expense = {"title": "Water bill", "category_id": category, "fiscal_year_id": fy, "member_id": member_id}
    approved = api.post("/admin/expenses", json={**expense, "amount": "30"}).json["expense_id"]
    api.post(f"/admin/expenses/{approved}/review", json={"action": "approve"})
    api.post("/admin/expenses", json={**expense, "amount": "10"})
    budget = api.post("/admin/budgets", json={"fiscal_year_id": fy, "category_id": category, "branch_id": 1, "amount": "500"}).json["budget_id"]
    api.post(f"/admin/budgets/{budget}/submit")

    sunday = _event(api, "Sunday Service", last_sunday.isoformat())
    _attend(api, sunday, member_id, day=last_sunday.isoformat())
    _attend(api, sunday, other_id, day=last_sunday.isoformat(), status="Absent")
    _event(api, "Evening Prayer", (today + timedelta(days=1)).isoformat())
    _event(api, "Far Future Crusade", (today + timedelta(days=30)).isoformat())

    data = api.get("/admin/dashboard", query_string={"branch_id": 1}).json["data"]
    assert data["finance"] == {"fiscal_year_id": fy, "income": "80.00", "expenses": "30.00", "net": "50.00"}
    assert data["attendance_last_4_sundays"] == [{"date": last_sunday.isoformat(), "present": 1}]
    names = [e["name"] for e in data["upcoming_events"]]
    assert "Evening Prayer" in names
    assert "Far Future Crusade" not in names
    assert data["pending_approvals"] == {"budgets": 1, "expenses": 1}

    assert api.get("/admin/dashboard", query_string={"branch_id": 42}).status_code == 404
