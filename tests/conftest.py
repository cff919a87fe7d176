import itertools

import pytest
from werkzeug.security import generate_password_hash

from app.chms import create_app
from app.chms.constants import DEFAULT_CONTRIBUTION_TYPES, DEFAULT_GROUP_TYPES, DEFAULT_PAYMENT_OPTIONS, PERMISSIONS
from app.chms.db import session_scope
from app.chms.models import Base, Branch, Permission, Role, User
from app.chms.modules.contributions.models import ContributionType, PaymentOption
from app.chms.modules.groups.models import GroupType

_seq = itertools.count(1)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("RATE_LIMIT_DIR", str(tmp_path / "rate_limits"))
    monkeypatch.setenv("SMS_PROVIDER", "hubtel")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        perms = [Permission(key=key, name=name) for key, name in PERMISSIONS]
        admin_role = Role(key="admin", name="Administrator")
        admin_role.permissions.extend(perms)
        member_role = Role(key="member", name="Member")
        u = User(username="admin", email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        u.roles.append(admin_role)
        s.add_all([*perms, admin_role, member_role, u, Branch(name="Main")])
        s.add_all([ContributionType(name=n) for n in DEFAULT_CONTRIBUTION_TYPES])
        s.add_all([PaymentOption(name=n) for n in DEFAULT_PAYMENT_OPTIONS])
        s.add_all([GroupType(name=n) for n in DEFAULT_GROUP_TYPES])

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


class Api:
    """Signed-in JSON client that sends the CSRF header on every write."""

    def __init__(self, client, csrf_token: str):
        self.client = client
        self.csrf_token = csrf_token

    def get(self, url, **kw):
        return self.client.get(url, **kw)

    def post(self, url, json=None, **kw):
        return self.client.post(url, json=json, headers={"X-CSRF-Token": self.csrf_token}, **kw)

    def put(self, url, json=None):
        return self.client.put(url, json=json, headers={"X-CSRF-Token": self.csrf_token})

    def delete(self, url):
        return self.client.delete(url, headers={"X-CSRF-Token": self.csrf_token})


def login(client, username="admin", password="pw") -> Api:
    r = client.post("/auth/login", json={"username": username, "password": password})
    assert r.status_code == 200, r.json
    return Api(client, r.json["csrf_token"])


@pytest.fixture()
def api(client):
    return login(client)


def make_member(api: Api, first_name="Ama", family_name="Mensah", *, password="pw", **extra) -> int:
    n = next(_seq)
    payload = {
        "first_name": first_name,
        "family_name": family_name,
        "email_address": f"{first_name.lower()}{n}@example.com",
        "username": f"{first_name.lower()}{n}",
        "password": password,
        "branch_id": 1,
    }
    payload.update(extra)
    r = api.post("/admin/members", json=payload)
    assert r.status_code == 201, r.json
    return r.json["member_id"]


def member_username(app, member_id: int) -> str:
    with session_scope(app) as s:
        return s.query(User).filter(User.member_id == member_id).one().username
