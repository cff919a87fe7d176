"""Tests for the Groups module."""
from conftest import make_member


def _group(api, name="Youth Ministry", leader_id=None, type_id=1):
    leader_id = leader_id or make_member(api, "Leader", "Adjei")
    r = api.post("/admin/groups", json={"name": name, "leader_id": leader_id, "type_id": type_id, "description": "Fridays"})
    assert r.status_code == 201, r.json
    return r.json["group_id"], leader_id


def test_group_types(api):
    names = [t["name"] for t in api.get("/admin/group-types").json["data"]]
    assert "Choir" in names
    assert api.post("/admin/group-types", json={"name": "Ushers"}).status_code == 201
    assert api.post("/admin/group-types", json={"name": "Ushers"}).status_code == 409


def test_create_group_validation_and_uniqueness(api):
    r = api.post("/admin/groups", json={})
    assert r.status_code == 400
    assert set(r.json["errors"]) == {"Group name is required.", "Leader is required.", "Group type is required."}

    _, leader_id = _group(api)
    r = api.post("/admin/groups", json={"name": "Youth Ministry", "leader_id": leader_id, "type_id": 1})
    assert r.status_code == 409
    r = api.post("/admin/groups", json={"name": "Other", "leader_id": leader_id, "type_id": 999})
    assert r.status_code == 400


def test_group_detail_and_list(api):
    group_id, leader_id = _group(api)
    _group(api, "Choir A")
    data = api.get(f"/admin/groups/{group_id}").json["data"]
    assert data["leader_id"] == leader_id
    assert data["leader_name"] == "Leader Adjei"
    assert data["member_count"] == 0

    r = api.get("/admin/groups", query_string={"name": "youth"})
    assert [g["name"] for g in r.json["data"]] == ["Youth Ministry"]
    r = api.get("/admin/groups", query_string={"branch_id": 1})
    assert r.json["pagination"]["total"] == 2


def test_membership_and_notifications(api):
    group_id, leader_id = _group(api)
    member_id = make_member(api, "Ato", "Kumi")

    assert api.post(f"/admin/groups/{group_id}/members", json={"member_id": member_id}).status_code == 201
    assert api.post(f"/admin/groups/{group_id}/members", json={"member_id": member_id}).status_code == 409

    members = api.get(f"/admin/groups/{group_id}/members").json["data"]
    assert [m["member_id"] for m in members] == [member_id]

    titles = [m["title"] for m in api.get(f"/admin/groups/{group_id}/messages").json["data"]]
    assert titles[0] == "Added to Group"

    assert api.delete(f"/admin/groups/{group_id}/members/{member_id}").status_code == 200
    assert api.delete(f"/admin/groups/{group_id}/members/{member_id}").status_code == 400


def test_leader_cannot_be_removed(api):
    group_id, leader_id = _group(api)
    api.post(f"/admin/groups/{group_id}/members", json={"member_id": leader_id})
    r = api.delete(f"/admin/groups/{group_id}/members/{leader_id}")
    assert r.status_code == 409


def test_delete_group_blocked_by_members(api):
    group_id, _ = _group(api)
    member_id = make_member(api, "Afua", "Nyarko")
    api.post(f"/admin/groups/{group_id}/members", json={"member_id": member_id})

    assert api.delete(f"/admin/groups/{group_id}").status_code == 409
    api.delete(f"/admin/groups/{group_id}/members/{member_id}")
    assert api.delete(f"/admin/groups/{group_id}").status_code == 200
    assert api.get(f"/admin/groups/{group_id}").status_code == 404


def test_update_group(api):
    group_id, leader_id = _group(api)
    _group(api, "Men's Fellowship")
    r = api.put(f"/admin/groups/{group_id}", json={"name": "Men's Fellowship", "leader_id": leader_id, "type_id": 1})
    assert r.status_code == 409
    r = api.put(f"/admin/groups/{group_id}", json={"name": "Youth Choir", "leader_id": leader_id, "type_id": 3})
    assert r.status_code == 200
    assert api.get(f"/admin/groups/{group_id}").json["data"]["name"] == "Youth Choir"


def test_group_message_queues_deliveries(api):
    group_id, leader_id = _group(api)
    a = make_member(api, "Ebo", "Taylor")
    b = make_member(api, "Esi", "Taylor")
    for m in (a, b):
        api.post(f"/admin/groups/{group_id}/members", json={"member_id": m})
    api.put(f"/admin/members/{b}", json={"first_name": "Esi", "family_name": "Taylor", "email_address": "esi@example.com", "membership_status": "Inactive"})

    r = api.post(
        f"/admin/groups/{group_id}/messages",
        json={"title": "Rehearsal", "message": "Saturday 4pm", "sent_by": leader_id, "channels": ["InApp", "Email"]},
    )
    assert r.status_code == 201
    # Only the active member receives it, once per channel
    assert r.json["deliveries_queued"] == 2

    latest = api.get(f"/admin/groups/{group_id}/messages").json["data"][0]
    assert latest["title"] == "Rehearsal"
    assert latest["deliveries"]["total"] == 2

    r = api.post(f"/admin/groups/{group_id}/messages", json={"title": "x", "message": "y", "sent_by": leader_id, "channels": ["Fax"]})
    assert r.status_code == 400
