"""Tests for outbound email/SMS gateways and the delivery queue."""
import json
from urllib.parse import parse_qs

from app.chms.db import session_scope
from app.chms.modules.communications import admin as communications_admin
from app.chms.modules.communications.email_gateway import EmailGateway, html_to_text
from app.chms.modules.communications.models import CommunicationDelivery
from app.chms.modules.communications.service import deliver_pending
from app.chms.modules.communications.sms_gateway import (
    GenericHttpProvider,
    HubtelProvider,
    TextMeProvider,
    normalize_phone,
    parse_header_lines,
    sms_gateway_from_config,
)
from conftest import make_member


class FakeTransport:
    def __init__(self, status=200, text="ok"):
        self.status = status
        self.text = text
        self.calls = []

    def __call__(self, url, method, body, headers, timeout):
        self.calls.append({"url": url, "method": method, "body": body, "headers": headers})
        return self.status, self.text


class FakeSMTP:
    sent = []
    fail = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        pass

    def login(self, user, password):
        pass

    def send_message(self, msg):
        if FakeSMTP.fail:
            raise OSError("connection refused")
        FakeSMTP.sent.append(msg)


def test_normalize_phone():
    assert normalize_phone("024 123 4567") == "233241234567"
    assert normalize_phone("+233-24-123-4567") == "233241234567"
    assert normalize_phone("12345") == "12345"


def test_hubtel_posts_form_and_rejects_bad_numbers():
    transport = FakeTransport()
    provider = HubtelProvider(transport=transport, sender="Church", client_id="id", client_secret="secret")
    assert provider.send("0241234567", "Hello") is True
    body = parse_qs(transport.calls[0]["body"].decode())
    assert body["to"] == ["233241234567"]
    assert body["from"] == ["Church"]
    assert body["content"] == ["Hello"]

    assert provider.send("555", "Hello") is False
    assert "Invalid Ghana phone number" in provider.last_error
    assert len(transport.calls) == 1


def test_textme_reports_failure():
    provider = TextMeProvider(transport=FakeTransport(status=500, text="boom"), api_key="k")
    assert provider.send("0241234567", "Hi") is False
    assert "Code: 500" in provider.last_error


def test_generic_provider_fills_json_template_safely():
    transport = FakeTransport(status=201)
    provider = GenericHttpProvider(
        transport=transport,
        url="https://sms.example.com/send",
        headers="Authorization: Bearer abc\nX-Empty",
        body_template='{"dest": "{to}", "text": "{message}", "from": "{sender}"}',
        sender="Alive",
    )
    assert provider.send("233241234567", 'He said "hi"') is True
    call = transport.calls[0]
    assert call["headers"] == {"Authorization": "Bearer abc"}
    assert json.loads(call["body"]) == {"dest": "233241234567", "text": 'He said "hi"', "from": "Alive"}


def test_generic_provider_requires_url():
    provider = GenericHttpProvider(transport=FakeTransport())
    assert provider.send("1", "x") is False
    assert provider.last_error == "GENERIC_SMS_URL not configured"


def test_gateway_factory_selects_provider():
    gw = sms_gateway_from_config({"SMS_PROVIDER": "TextMe"}, transport=FakeTransport())
    assert isinstance(gw.provider, TextMeProvider)
    gw = sms_gateway_from_config({}, transport=FakeTransport())
    assert isinstance(gw.provider, HubtelProvider)
    assert parse_header_lines("A: 1\n\nB:2") == {"A": "1", "B": "2"}


def test_email_gateway_sends_multipart(monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail = False
    monkeypatch.setattr("smtplib.SMTP", FakeSMTP)
    gw = EmailGateway(host="smtp.test", port=587, username="u", password="p", from_email="church@example.com")
    assert gw.send("ama@example.com", "Welcome", "<p>Hello<br>there</p>") is True
    msg = FakeSMTP.sent[0]
    assert msg["To"] == "ama@example.com"
    assert "church@example.com" in msg["From"]
    assert msg.get_body(("plain",)).get_content().strip() == "Hello\nthere"

    FakeSMTP.fail = True
    assert gw.send("ama@example.com", "Welcome", "<p>x</p>") is False


def test_html_to_text():
    assert html_to_text("a<br/>b &amp; <b>c</b>") == "a\nb & c"


def test_dispatch_delivers_pending_queue(api, app, monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail = False
    monkeypatch.setattr("smtplib.SMTP", FakeSMTP)
    transport = FakeTransport()
    monkeypatch.setattr(
        communications_admin,
        "sms_gateway_from_config",
        lambda config: sms_gateway_from_config(config, transport=transport),
    )

    leader = make_member(api, "Lead", "Ansah")
    with_phone = make_member(api, "Kwabena", "Ansah", phone_numbers=["0241112222"])
    no_phone = make_member(api, "Adjoa", "Ansah")
    group_id = api.post("/admin/groups", json={"name": "Ushers", "leader_id": leader, "type_id": 1}).json["group_id"]
    for m in (with_phone, no_phone):
        api.post(f"/admin/groups/{group_id}/members", json={"member_id": m})

    r = api.post(
        f"/admin/groups/{group_id}/messages",
        json={"title": "Reminder", "message": "Service at 9", "sent_by": leader, "channels": ["SMS", "Email", "InApp"]},
    )
    assert r.json["deliveries_queued"] == 6

    r = api.post("/admin/communications/dispatch")
    assert r.status_code == 200
    assert r.json["processed"] == 6
    assert r.json["sent"] == 5
    assert r.json["failed"] == 1
    assert len(transport.calls) == 1
    assert len(FakeSMTP.sent) == 2

    with session_scope(app) as s:
        failed = s.query(CommunicationDelivery).filter(CommunicationDelivery.status == "Failed").one()
        assert failed.member_id == no_phone
        assert failed.error_message == "Member has no phone number"

    # Nothing left to send
    assert api.post("/admin/communications/dispatch").json["processed"] == 0


class BrokenEmailGateway:
    def send(self, to, subject, html_body):
        raise ValueError("Header values may not contain linefeed")


def test_gateway_exception_fails_only_that_delivery(api, app):
    leader = make_member(api, "Lead", "Owusu")
    member = make_member(api, "Efua", "Owusu")
    group_id = api.post("/admin/groups", json={"name": "Choir", "leader_id": leader, "type_id": 1}).json["group_id"]
    api.post(f"/admin/groups/{group_id}/members", json={"member_id": member})
    r = api.post(
        f"/admin/groups/{group_id}/messages",
        json={"title": "Practice", "message": "Thursday 6pm", "sent_by": leader, "channels": ["Email", "InApp"]},
    )
    assert r.json["deliveries_queued"] == 2

    with session_scope(app) as s:
        counts = deliver_pending(s, email_gateway=BrokenEmailGateway(), sms_gateway=None)
    assert counts == {"processed": 2, "sent": 1, "failed": 1}

    with session_scope(app) as s:
        rows = {d.channel: d for d in s.query(CommunicationDelivery).all()}
        assert rows["InApp"].status == "Sent"
        assert rows["Email"].status == "Failed"
        assert rows["Email"].error_message == "ValueError: Header values may not contain linefeed"
