"""Tests for budget drafting, submission and review."""


def _setup(api):
    fy = api.post("/admin/fiscal-years", json={"start_date": "2024-01-01", "end_date": "2024-12-31", "branch_id": 1}).json["fiscal_year_id"]
    category = api.post("/admin/expense-categories", json={"name": "Outreach"}).json["category_id"]
    return fy, category


def _budget(api, fy, category, amount="1500.00"):
    r = api.post("/admin/budgets", json={"fiscal_year_id": fy, "category_id": category, "branch_id": 1, "amount": amount, "description": "Q1"})
    assert r.status_code == 201, r.json
    return r.json["budget_id"]


def test_create_validation_and_uniqueness(api):
    fy, category = _setup(api)
    r = api.post("/admin/budgets", json={})
    assert r.status_code == 400
    assert set(r.json["errors"]) == {
        "Fiscal year is required.",
        "Expense category is required.",
        "Branch is required.",
        "Amount is required.",
    }
    base = {"fiscal_year_id": fy, "category_id": category, "branch_id": 1}
    assert api.post("/admin/budgets", json={**base, "amount": "-5"}).status_code == 400
    assert api.post("/admin/budgets", json={**base, "amount": "5", "branch_id": 99}).status_code == 400
    assert api.post("/admin/budgets", json={**base, "amount": "5", "category_id": 99}).status_code == 400

    budget_id = _budget(api, fy, category)
    assert api.post("/admin/budgets", json={**base, "amount": "10"}).status_code == 409

    data = api.get(f"/admin/budgets/{budget_id}").json["data"]
    assert data["status"] == "Draft"
    assert data["category_name"] == "Outreach"
    assert data["fiscal_year"]["start_date"] == "2024-01-01"
    assert data["branch_name"] == "Main"


def test_closed_fiscal_year_rejects_budgets(api):
    fy, category = _setup(api)
    api.post(f"/admin/fiscal-years/{fy}/close")
    r = api.post("/admin/budgets", json={"fiscal_year_id": fy, "category_id": category, "branch_id": 1, "amount": "10"})
    assert r.status_code == 400


def test_submit_review_flow(api):
    fy, category = _setup(api)
    budget_id = _budget(api, fy, category)

    # Only submitted budgets can be reviewed
    assert api.post(f"/admin/budgets/{budget_id}/review", json={"action": "approve"}).status_code == 409

    r = api.post(f"/admin/budgets/{budget_id}/submit")
    assert r.json["budget_status"] == "Submitted"
    assert api.post(f"/admin/budgets/{budget_id}/submit").status_code == 409

    r = api.post(f"/admin/budgets/{budget_id}/review", json={"action": "reject", "remarks": "Too high"})
    assert r.json["budget_status"] == "Rejected"
    assert api.get(f"/admin/budgets/{budget_id}").json["data"]["review_remarks"] == "Too high"

    # Rejected budgets can be revised and resubmitted
    assert api.put(f"/admin/budgets/{budget_id}", json={"amount": "1200"}).status_code == 200
    assert api.post(f"/admin/budgets/{budget_id}/submit").json["budget_status"] == "Submitted"
    r = api.post(f"/admin/budgets/{budget_id}/review", json={"action": "approve"})
    assert r.json["budget_status"] == "Approved"

    assert api.put(f"/admin/budgets/{budget_id}", json={"amount": "1"}).status_code == 409
    assert api.delete(f"/admin/budgets/{budget_id}").status_code == 409


def test_update_delete_and_list(api):
    fy, category = _setup(api)
    budget_id = _budget(api, fy, category)

    assert api.put(f"/admin/budgets/{budget_id}", json={}).status_code == 400
    assert api.put(f"/admin/budgets/{budget_id}", json={"amount": "0"}).status_code == 400
    assert api.put(f"/admin/budgets/{budget_id}", json={"amount": "2000", "description": "Revised"}).status_code == 200
    data = api.get(f"/admin/budgets/{budget_id}").json["data"]
    assert data["amount"] == 2000.0
    assert data["description"] == "Revised"

    rows = api.get("/admin/budgets", query_string={"fiscal_year_id": fy, "status": "Draft"}).json["data"]
    assert [b["id"] for b in rows] == [budget_id]
    assert api.get("/admin/budgets", query_string={"status": "Pending"}).status_code == 400

    assert api.delete(f"/admin/budgets/{budget_id}").status_code == 200
    assert api.get(f"/admin/budgets/{budget_id}").status_code == 404
