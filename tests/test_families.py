"""Tests for the Families module."""
from conftest import make_member


def _family(api, name="Mensah Household", head_id=None):
    head_id = head_id or make_member(api, "Kofi", "Mensah")
    r = api.post("/admin/families", json={"name": name, "head_id": head_id, "branch_id": 1})
    assert r.status_code == 201, r.json
    return r.json["family_id"], head_id


def test_create_family_links_head(api):
    family_id, head_id = _family(api)
    data = api.get(f"/admin/families/{family_id}").json["data"]
    assert data["head"]["id"] == head_id
    assert data["branch_name"] == "Main"
    assert data["members"] == [
        {
            "member_id": head_id,
            "first_name": "Kofi",
            "family_name": "Mensah",
            "gender": "Male",
            "date_of_birth": None,
            "role": "Head",
            "joined_at": data["members"][0]["joined_at"],
        }
    ]


def test_create_family_validation(api):
    r = api.post("/admin/families", json={"name": ""})
    assert r.status_code == 400
    assert set(r.json["errors"]) == {"Family name is required.", "Head of household is required.", "Branch is required."}

    r = api.post("/admin/families", json={"name": "X", "head_id": 9999, "branch_id": 1})
    assert r.status_code == 400


def test_family_name_and_head_unique(api):
    family_id, head_id = _family(api, "Asare")
    other = make_member(api, "Yaa", "Asare")
    r = api.post("/admin/families", json={"name": "Asare", "head_id": other, "branch_id": 1})
    assert r.status_code == 409
    r = api.post("/admin/families", json={"name": "Asare Two", "head_id": head_id, "branch_id": 1})
    assert r.status_code == 409


def test_add_remove_and_change_role(api):
    family_id, head_id = _family(api)
    spouse = make_member(api, "Akua", "Mensah")

    r = api.post(f"/admin/families/{family_id}/members", json={"member_id": spouse, "role": "Spouse"})
    assert r.status_code == 201

    # One family per member
    other_family, _ = _family(api, "Other House")
    r = api.post(f"/admin/families/{other_family}/members", json={"member_id": spouse, "role": "Other"})
    assert r.status_code == 409

    # A second head is never allowed
    child = make_member(api, "Kwesi", "Mensah")
    r = api.post(f"/admin/families/{family_id}/members", json={"member_id": child, "role": "Head"})
    assert r.status_code == 400

    assert api.put(f"/admin/families/{family_id}/members/{spouse}", json={"role": "Other"}).status_code == 200
    assert api.put(f"/admin/families/{family_id}/members/{head_id}", json={"role": "Child"}).status_code == 400

    # The head stays; other members can leave
    assert api.delete(f"/admin/families/{family_id}/members/{head_id}").status_code == 400
    assert api.delete(f"/admin/families/{family_id}/members/{spouse}").status_code == 200
    assert api.get(f"/admin/families/{family_id}").json["data"]["member_count"] == 1


def test_delete_family_rules(api):
    family_id, _ = _family(api)
    extra = make_member(api, "Adwoa", "Mensah")
    api.post(f"/admin/families/{family_id}/members", json={"member_id": extra, "role": "Child"})

    assert api.delete(f"/admin/families/{family_id}").status_code == 409
    api.delete(f"/admin/families/{family_id}/members/{extra}")
    assert api.delete(f"/admin/families/{family_id}").status_code == 200
    assert api.get(f"/admin/families/{family_id}").status_code == 404


def test_list_and_update_family(api):
    family_id, _ = _family(api, "Boakye")
    _family(api, "Addo")
    r = api.get("/admin/families", query_string={"name": "boa"})
    assert [f["name"] for f in r.json["data"]] == ["Boakye"]

    assert api.put(f"/admin/families/{family_id}", json={"name": "Addo"}).status_code == 409
    assert api.put(f"/admin/families/{family_id}", json={"name": "Boakye-Yiadom"}).status_code == 200
    assert api.get(f"/admin/families/{family_id}").json["data"]["name"] == "Boakye-Yiadom"
