"""Tests for contribution recording, editing and soft deletion."""
from datetime import date, timedelta

from conftest import make_member


def _fiscal_year(api):
    r = api.post("/admin/fiscal-years", json={"start_date": "2020-01-01", "end_date": "2030-12-31", "branch_id": 1})
    return r.json["fiscal_year_id"]


def _contribution(api, fy, member, amount="50.00", day="2024-01-07", type_id=1, option_id=1):
    r = api.post(
        "/admin/contributions",
        json={
            "amount": amount,
            "date": day,
            "contribution_type_id": type_id,
            "payment_option_id": option_id,
            "member_id": member,
            "fiscal_year_id": fy,
            "description": "Sunday service",
        },
    )
    assert r.status_code == 201, r.json
    return r.json["contribution_id"]


def test_lookups(api):
    names = [t["name"] for t in api.get("/admin/contribution-types").json["data"]]
    assert "Tithe" in names
    assert api.post("/admin/contribution-types", json={"name": "Building Fund"}).status_code == 201
    assert api.post("/admin/contribution-types", json={"name": "Tithe"}).status_code == 409
    assert api.post("/admin/contribution-types", json={}).status_code == 400

    assert api.post("/admin/payment-options", json={"name": "Crypto"}).status_code == 201
    assert api.post("/admin/payment-options", json={"name": "Cash"}).status_code == 409
    names = [p["name"] for p in api.get("/admin/payment-options").json["data"]]
    assert names == sorted(names)


def test_create_validation(api):
    fy = _fiscal_year(api)
    member = make_member(api, "Abena", "Owusu")

    r = api.post("/admin/contributions", json={})
    assert r.status_code == 400
    assert len(r.json["errors"]) == 6

    base = {"date": "2024-01-07", "contribution_type_id": 1, "payment_option_id": 1, "member_id": member, "fiscal_year_id": fy}
    assert api.post("/admin/contributions", json={**base, "amount": "0"}).status_code == 400
    assert api.post("/admin/contributions", json={**base, "amount": "5", "contribution_type_id": 99}).status_code == 400
    assert api.post("/admin/contributions", json={**base, "amount": "5", "payment_option_id": 99}).status_code == 400
    assert api.post("/admin/contributions", json={**base, "amount": "5", "member_id": 999}).status_code == 400
    assert api.post("/admin/contributions", json={**base, "amount": "5", "description": "x" * 501}).status_code == 400

    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    r = api.post("/admin/contributions", json={**base, "amount": "5", "date": tomorrow})
    assert r.status_code == 400
    assert r.json["message"] == "Contribution date cannot be in the future."

    r = api.post("/admin/contributions", json={**base, "amount": "5", "date": "2019-06-01"})
    assert r.status_code == 400
    assert r.json["message"] == "Contribution date must fall within the fiscal year."


def test_detail_update_and_audit(api):
    fy = _fiscal_year(api)
    member = make_member(api, "Abena", "Owusu")
    contribution_id = _contribution(api, fy, member)

    data = api.get(f"/admin/contributions/{contribution_id}").json["data"]
    assert data["amount"] == 50.0
    assert data["contribution_type"] == "Tithe"
    assert data["payment_option"] == "Cash"
    assert data["first_name"] == "Abena"

    r = api.put(f"/admin/contributions/{contribution_id}", json={"amount": "75.5", "payment_option_id": 2})
    assert r.status_code == 200
    data = api.get(f"/admin/contributions/{contribution_id}").json["data"]
    assert data["amount"] == 75.5
    assert data["payment_option"] == "Mobile Money"
    assert data["contribution_type"] == "Tithe"

    assert api.put(f"/admin/contributions/{contribution_id}", json={"amount": "-1"}).status_code == 400
    assert api.put(f"/admin/contributions/{contribution_id}", json={"date": "2031-01-01"}).status_code == 400
    assert api.put("/admin/contributions/999", json={"amount": "1"}).status_code == 404

    entries = api.get("/admin/audit", query_string={"entity_type": "Contribution", "action": "contribution.update"}).json["data"]
    assert entries[0]["changes"]["amount"] == {"old": "50.00", "new": "75.5"}


def test_soft_delete_and_restore(api):
    fy = _fiscal_year(api)
    member = make_member(api, "Kojo", "Owusu")
    keep = _contribution(api, fy, member, amount="10")
    drop = _contribution(api, fy, member, amount="20")

    assert api.delete(f"/admin/contributions/{drop}").status_code == 200
    assert api.delete(f"/admin/contributions/{drop}").status_code == 404
    assert api.get(f"/admin/contributions/{drop}").status_code == 404
    assert api.put(f"/admin/contributions/{drop}", json={"amount": "1"}).status_code == 404

    r = api.get("/admin/contributions", query_string={"member_id": member})
    assert [c["id"] for c in r.json["data"]] == [keep]
    assert api.get("/admin/contributions/total", query_string={"member_id": member}).json["total_contribution"] == "10.00"

    assert api.post(f"/admin/contributions/{drop}/restore").status_code == 200
    assert api.post(f"/admin/contributions/{drop}/restore").status_code == 404
    assert api.get("/admin/contributions/total", query_string={"member_id": member}).json["total_contribution"] == "30.00"


def test_list_filters_and_paging(api):
    fy = _fiscal_year(api)
    a = make_member(api, "Efua", "Sarpong")
    b = make_member(api, "Kwesi", "Sarpong")
    _contribution(api, fy, a, day="2024-01-07")
    _contribution(api, fy, a, day="2024-02-04", type_id=2)
    _contribution(api, fy, b, day="2024-03-03")

    r = api.get("/admin/contributions", query_string={"limit": 2})
    assert r.json["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert [c["contribution_date"] for c in r.json["data"]] == ["2024-03-03", "2024-02-04"]

    r = api.get("/admin/contributions", query_string={"start_date": "2024-02-01", "end_date": "2024-02-28"})
    assert [c["member_id"] for c in r.json["data"]] == [a]
    r = api.get("/admin/contributions", query_string={"contribution_type_id": 2})
    assert r.json["pagination"]["total"] == 1
    assert api.get("/admin/contributions", query_string={"start_date": "Jan 1"}).status_code == 400

    total = api.get("/admin/contributions/total", query_string={"fiscal_year_id": fy}).json["total_contribution"]
    assert total == "150.00"
