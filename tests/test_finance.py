"""Tests for fiscal years, expenses and the financial reports."""
from conftest import make_member


def _fiscal_year(api, start="2020-01-01", end="2030-12-31", branch_id=1):
    r = api.post("/admin/fiscal-years", json={"start_date": start, "end_date": end, "branch_id": branch_id})
    assert r.status_code == 201, r.json
    return r.json["fiscal_year_id"]


def _category(api, name="Utilities"):
    r = api.post("/admin/expense-categories", json={"name": name})
    assert r.status_code == 201, r.json
    return r.json["category_id"]


def _expense(api, fy, category, member, amount="100.00", date="2024-03-15", title="Electricity bill"):
    r = api.post(
        "/admin/expenses",
        json={"title": title, "amount": amount, "category_id": category, "fiscal_year_id": fy, "member_id": member, "date": date},
    )
    assert r.status_code == 201, r.json
    return r.json["expense_id"]


def test_fiscal_year_rules(api):
    r = api.post("/admin/fiscal-years", json={"start_date": "2024-12-31", "end_date": "2024-01-01", "branch_id": 1})
    assert r.status_code == 400
    r = api.post("/admin/fiscal-years", json={})
    assert r.status_code == 400

    fy = _fiscal_year(api, "2024-01-01", "2024-12-31")
    r = api.post("/admin/fiscal-years", json={"start_date": "2024-06-01", "end_date": "2025-05-31", "branch_id": 1})
    assert r.status_code == 409

    data = api.get(f"/admin/fiscal-years/{fy}").json["data"]
    assert data["status"] == "Active"
    assert data["branch_name"] == "Main"

    r = api.post(f"/admin/fiscal-years/{fy}/close")
    assert r.json["fiscal_year_status"] == "Closed"
    assert api.post(f"/admin/fiscal-years/{fy}/close").status_code == 409

    # A closed year no longer blocks an overlapping one
    _fiscal_year(api, "2024-06-01", "2025-05-31")
    rows = api.get("/admin/fiscal-years", query_string={"status": "Closed"}).json["data"]
    assert [r["id"] for r in rows] == [fy]
    assert api.get("/admin/fiscal-years", query_string={"status": "Open"}).status_code == 400
    assert api.get("/admin/fiscal-years/999").status_code == 404


def test_expense_categories(api):
    _category(api, "Utilities")
    assert api.post("/admin/expense-categories", json={"name": "Utilities"}).status_code == 409
    assert api.post("/admin/expense-categories", json={"name": ""}).status_code == 400
    names = [c["name"] for c in api.get("/admin/expense-categories").json["data"]]
    assert names == ["Utilities"]


def test_expense_validation(api):
    fy = _fiscal_year(api)
    category = _category(api)
    member = make_member(api, "Yaw", "Boateng")

    r = api.post("/admin/expenses", json={})
    assert r.status_code == 400
    assert {"Title is required.", "Amount is required.", "Expense category is required."} <= set(r.json["errors"])

    base = {"title": "Chairs", "category_id": category, "fiscal_year_id": fy, "member_id": member}
    assert api.post("/admin/expenses", json={**base, "amount": "0"}).status_code == 400
    assert api.post("/admin/expenses", json={**base, "amount": "abc"}).status_code == 400
    assert api.post("/admin/expenses", json={**base, "amount": "10", "date": "2019-12-31"}).status_code == 400
    assert api.post("/admin/expenses", json={**base, "amount": "10", "category_id": 999}).status_code == 400

    api.post(f"/admin/fiscal-years/{fy}/close")
    r = api.post("/admin/expenses", json={**base, "amount": "10"})
    assert r.status_code == 400
    assert r.json["message"] == "Selected fiscal year is not active."


def test_expense_review_flow(api):
    fy = _fiscal_year(api)
    category = _category(api)
    member = make_member(api, "Yaw", "Boateng")
    expense_id = _expense(api, fy, category, member)

    data = api.get(f"/admin/expenses/{expense_id}").json["data"]
    assert data["status"] == "Pending"
    assert data["category_name"] == "Utilities"

    assert api.post(f"/admin/expenses/{expense_id}/review", json={"action": "maybe"}).status_code == 400
    r = api.post(f"/admin/expenses/{expense_id}/review", json={"action": "approve", "remarks": "ok"})
    assert r.json["expense_status"] == "Approved"
    assert api.post(f"/admin/expenses/{expense_id}/review", json={"action": "reject"}).status_code == 409

    rows = api.get("/admin/expenses", query_string={"status": "Approved", "member_id": member}).json["data"]
    assert [e["id"] for e in rows] == [expense_id]
    assert api.get("/admin/expenses", query_string={"status": "Paid"}).status_code == 400


def test_expense_date_defaults_to_today(api):
    fy = _fiscal_year(api)
    category = _category(api)
    member = make_member(api)
    r = api.post("/admin/expenses", json={"title": "Water", "amount": "5", "category_id": category, "fiscal_year_id": fy, "member_id": member})
    assert r.status_code == 201
    data = api.get(f"/admin/expenses/{r.json['expense_id']}").json["data"]
    assert data["expense_date"] is not None


def test_income_statement_and_summaries(api):
    fy = _fiscal_year(api)
    utilities = _category(api, "Utilities")
    repairs = _category(api, "Repairs")
    member = make_member(api, "Kofi", "Annan")

    for amount, type_id in (("250.50", 1), ("100", 1), ("50.25", 2)):
        r = api.post(
            "/admin/contributions",
            json={"amount": amount, "date": "2024-02-04", "contribution_type_id": type_id, "member_id": member, "payment_option_id": 1, "fiscal_year_id": fy},
        )
        assert r.status_code == 201, r.json

    approved = _expense(api, fy, utilities, member, amount="120.00")
    api.post(f"/admin/expenses/{approved}/review", json={"action": "approve"})
    _expense(api, fy, repairs, member, amount="999.99")  # pending, not counted
    rejected = _expense(api, fy, repairs, member, amount="40")
    api.post(f"/admin/expenses/{rejected}/review", json={"action": "reject"})

    data = api.get(f"/admin/reports/income-statement/{fy}").json["data"]
    assert data["total_income"] == "400.75"
    assert data["total_expenses"] == "120.00"
    assert data["net_income"] == "280.75"
    assert [row["name"] for row in data["expenses"]] == ["Utilities"]
    assert sum(row["count"] for row in data["income"]) == 3

    # Window before any activity
    data = api.get(f"/admin/reports/income-statement/{fy}", query_string={"date_to": "2023-12-31"}).json["data"]
    assert data["total_income"] == "0.00"
    r = api.get(f"/admin/reports/income-statement/{fy}", query_string={"date_from": "2024-05-01", "date_to": "2024-01-01"})
    assert r.status_code == 400

    summary = api.get(f"/admin/reports/expenses/{fy}").json
    assert summary["totals_by_status"] == {"Approved": "120.00", "Pending": "999.99", "Rejected": "40.00"}

    contributions = api.get(f"/admin/reports/contributions/{fy}").json
    assert contributions["total"] == "400.75"
    assert contributions["contributors"] == 1
    assert sum(row["count"] for row in contributions["by_payment_option"]) == 3

    assert api.get("/admin/reports/income-statement/999").status_code == 404


def test_budget_vs_actual(api):
    fy = _fiscal_year(api)
    utilities = _category(api, "Utilities")
    member = make_member(api)
    r = api.post("/admin/budgets", json={"fiscal_year_id": fy, "category_id": utilities, "branch_id": 1, "amount": "500"})
    assert r.status_code == 201
    expense_id = _expense(api, fy, utilities, member, amount="175.25")
    api.post(f"/admin/expenses/{expense_id}/review", json={"action": "approve"})

    lines = api.get(f"/admin/reports/budget-vs-actual/{fy}").json["data"]
    assert len(lines) == 1
    line = lines[0]
    assert line["category_name"] == "Utilities"
    assert line["budget_amount"] == "500.00"
    assert line["actual_amount"] == "175.25"
    assert line["variance"] == "324.75"
    assert line["expense_count"] == 1


def test_budget_vs_actual_counts_each_expense_once(api):
    fy = _fiscal_year(api)
    utilities = _category(api, "Utilities")
    member = make_member(api)
    west = api.post("/admin/branches", json={"name": "West"}).json["branch_id"]

    base = {"fiscal_year_id": fy, "category_id": utilities, "amount": "200"}
    assert api.post("/admin/budgets", json={**base, "branch_id": 1}).status_code == 201
    r = api.post("/admin/budgets", json={**base, "branch_id": west})
    assert r.status_code == 400
    assert r.json["message"] == "Budget branch must match the fiscal year's branch."

    expense_id = _expense(api, fy, utilities, member, amount="100")
    api.post(f"/admin/expenses/{expense_id}/review", json={"action": "approve"})

    lines = api.get(f"/admin/reports/budget-vs-actual/{fy}").json["data"]
    assert [line["actual_amount"] for line in lines] == ["100.00"]
    assert lines[0]["variance"] == "100.00"
