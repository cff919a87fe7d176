"""Tests for the file-backed rate limiter and the audit trail."""
import time
from datetime import datetime, timedelta

import pytest

from app.chms import audit
from app.chms.db import session_scope
from app.chms.errors import RateLimitExceeded
from app.chms.models import AuditLog, LoginLog
from app.chms.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_check_fills_window_then_frees_up(tmp_path):
    clock = FakeClock()
    limiter = RateLimiter(root=tmp_path, clock=clock)

    for _ in range(3):
        assert limiter.check("login:1.2.3.4", max_attempts=3, window_seconds=60) is True
        clock.now += 1
    assert limiter.check("login:1.2.3.4", max_attempts=3, window_seconds=60) is False
    assert limiter.remaining("login:1.2.3.4", max_attempts=3, window_seconds=60) == 0
    # Oldest attempt was 3s ago, so it expires in 57s
    assert limiter.reset_time("login:1.2.3.4", window_seconds=60) == 57

    # Other identifiers are independent
    assert limiter.remaining("login:5.6.7.8", max_attempts=3, window_seconds=60) == 3

    clock.now += 57
    assert limiter.remaining("login:1.2.3.4", max_attempts=3, window_seconds=60) == 1
    assert limiter.check("login:1.2.3.4", max_attempts=3, window_seconds=60) is True


def test_clear_and_reset_time_when_unused(tmp_path):
    limiter = RateLimiter(root=tmp_path, clock=FakeClock())
    assert limiter.reset_time("nobody") == 0
    limiter.check("someone")
    limiter.clear("someone")
    assert limiter.remaining("someone") == 5


def test_enforce_raises_with_retry_after(tmp_path):
    clock = FakeClock()
    limiter = RateLimiter(root=tmp_path, clock=clock)
    limiter.enforce("x", max_attempts=1, window_seconds=300)
    with pytest.raises(RateLimitExceeded) as exc:
        limiter.enforce("x", max_attempts=1, window_seconds=300)
    assert exc.value.retry_after == 300
    assert "5 minute(s)" in exc.value.message


def test_unreadable_state_file_is_ignored(tmp_path):
    limiter = RateLimiter(root=tmp_path, clock=FakeClock())
    limiter.check("y")
    limiter._path("y").write_text("not json", encoding="utf-8")
    assert limiter.remaining("y") == 5


def test_cleanup_removes_stale_files(tmp_path):
    limiter = RateLimiter(root=tmp_path, clock=FakeClock(time.time()))
    limiter.check("a")
    limiter.check("b")
    assert limiter.cleanup(max_age=3600) == 0

    later = RateLimiter(root=tmp_path, clock=FakeClock(time.time() + 7200))
    assert later.cleanup(max_age=3600) == 2
    assert sorted(p.suffix for p in tmp_path.iterdir()) == [".lock", ".lock"]
    assert later.remaining("a") == 5
    assert RateLimiter(root=tmp_path / "missing").cleanup() == 0


def test_audit_search_and_cleanup(app):
    with session_scope(app) as s:
        audit.record_event(s, actor=None, action="member.create", entity_type="Member", entity_id=1)
        audit.record_event(s, actor=None, action="member.update", entity_type="Member", entity_id=1, changes={"phone": {"old": "1", "new": "2"}})
        audit.record_event(s, actor=None, action="group.create", entity_type="ChurchGroup", entity_id=7)
        old = audit.record_event(s, actor=None, action="member.delete", entity_type="Member", entity_id=2)
        old.created_at = datetime.utcnow() - timedelta(days=400)
        s.add(LoginLog(username="ghost", success=False, created_at=datetime.utcnow() - timedelta(days=400)))

    with session_scope(app) as s:
        page = audit.search(s, {"action": "member."})
        assert page.total == 3
        assert [e.action for e in page.items][:2] == ["member.update", "member.create"]
        assert audit.search(s, {"entity_type": "ChurchGroup", "entity_id": 7}).total == 1
        assert audit.search(s, {"date_from": (datetime.utcnow() - timedelta(days=1)).date()}).total == 3

        history = audit.entity_logs(s, "Member", 1)
        assert audit.audit_to_dict(history[0])["changes"] == {"phone": {"old": "1", "new": "2"}}

        assert audit.cleanup(s, days_to_keep=365) == {"audit_log": 1, "login_log": 1}

    with session_scope(app) as s:
        assert s.query(AuditLog).filter(AuditLog.action == "member.delete").count() == 0


def test_audit_route_lists_login_events(api):
    r = api.get("/admin/audit", query_string={"action": "auth."})
    assert r.status_code == 200
    assert r.json["data"][0]["action"] == "auth.login"
    assert r.json["data"][0]["actor_username"] == "admin"
