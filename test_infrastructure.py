# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false

"""
Tests for the infrastructure layer: chat dispatch, Redis cache, retry, logging,
the state lock and the audited repositories.
"""

import json
import logging
import threading
from datetime import date
from unittest.mock import MagicMock

import httpx
import pytest
import redis
from sqlalchemy.exc import OperationalError

from conftest import pt, seed_rotation
from oncall_rotation.core.cache import RedisCache
from oncall_rotation.core.dependencies import Container
from oncall_rotation.core.errors import InvalidSprintEditError, StateLockTimeoutError
from oncall_rotation.core.locking import StateLock
from oncall_rotation.core.logging import (
    JSONFormatter,
    RequestContextFilter,
    bind_request_id,
    current_request_id,
    reset_request_id,
)
from oncall_rotation.core.retry import is_retryable_db_error, with_retry
from oncall_rotation.models.domain import CurrentState, Sprint
from oncall_rotation.repositories.roster_repository import CACHE_KEY, RosterRepository
from oncall_rotation.services.slack_dispatch import TOPIC_TEMPLATE, SlackDispatcher


class FakeSlack:
    """Scripted Web API: each method pops its next response, default ok."""

    def __init__(self, scripted=None):
        self.scripted = {k: list(v) for k, v in (scripted or {}).items()}
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        self.calls.append((method, json.loads(request.content or b"{}")))
        queue = self.scripted.get(method)
        if queue:
            return queue.pop(0)
        if method == "conversations.open":
            return httpx.Response(200, json={"ok": True, "channel": {"id": "D123"}})
        return httpx.Response(200, json={"ok": True})

    def methods(self):
        return [m for m, _ in self.calls]


def html_page(status):
    return httpx.Response(status, text="<html><body>Not Found</body></html>", headers={"content-type": "text/html"})


def make_dispatcher(fake, **kwargs):
    options = {
        "token": "xoxb-test",
        "base_url": "https://chat.test/api",
        "admin_channel_id": "CADMIN",
        "triage_channel_id": "CTRIAGE",
        "usergroup_id": "SGROUP",
        "backoff": 0.0,
        "transport": httpx.MockTransport(fake),
    }
    options.update(kwargs)
    return SlackDispatcher(**options)


# ============================================
# Chat dispatch
# ============================================
class TestSlackDispatcher:
    def test_direct_message_opens_conversation_then_posts(self):
        fake = FakeSlack()
        assert make_dispatcher(fake).send_direct_message("UA", "hello")
        assert fake.methods() == ["conversations.open", "chat.postMessage"]
        assert fake.calls[1][1] == {"channel": "D123", "text": "hello"}

    def test_retries_rate_limit(self):
        fake = FakeSlack({"chat.postMessage": [httpx.Response(429), httpx.Response(503)]})
        assert make_dispatcher(fake).send_direct_message("UA", "hello")
        assert fake.methods().count("chat.postMessage") == 3

    def test_gives_up_after_max_retries(self):
        fake = FakeSlack({"conversations.open": [httpx.Response(500)] * 5})
        dispatcher = make_dispatcher(fake, max_retries=2, admin_channel_id="")
        assert dispatcher.send_direct_message("UA", "hello") is False
        assert fake.methods() == ["conversations.open", "conversations.open"]

    def test_api_error_not_retried_and_reported(self):
        fake = FakeSlack({"conversations.open": [httpx.Response(200, json={"ok": False, "error": "user_not_found"})]})
        assert make_dispatcher(fake).send_direct_message("UA", "hello") is False
        assert fake.methods() == ["conversations.open", "chat.postMessage"]
        report = fake.calls[-1][1]
        assert report["channel"] == "CADMIN"
        assert report["text"].startswith("[ERROR]")
        assert "user_not_found" in report["text"]

    def test_missing_user_is_noop(self):
        fake = FakeSlack()
        assert make_dispatcher(fake).send_direct_message(None, "hello") is False
        assert fake.calls == []

    def test_no_token_never_raises(self):
        fake = FakeSlack()
        dispatcher = make_dispatcher(fake, token="")
        assert dispatcher.send_direct_message("UA", "hello") is False
        dispatcher.notify_admins("anything")
        assert fake.calls == []

    def test_group_sync_sends_member_list(self):
        fake = FakeSlack()
        assert make_dispatcher(fake).sync_group_membership(["UA", None, "UB"])
        assert fake.calls == [("usergroups.users.update", {"usergroup": "SGROUP", "users": "UA,UB"})]

    def test_group_sync_refuses_empty_set(self):
        fake = FakeSlack()
        assert make_dispatcher(fake).sync_group_membership([]) is False
        assert fake.calls == []

    def test_topic_mentions_on_call_users(self):
        fake = FakeSlack()
        assert make_dispatcher(fake).sync_channel_topic(["UA", "UB"])
        method, body = fake.calls[0]
        assert method == "conversations.setTopic"
        assert body["topic"] == TOPIC_TEMPLATE.format(mentions="<@UA>, <@UB>")

    def test_notify_rotation_changes_counts_delivered(self):
        fake = FakeSlack()
        sent = make_dispatcher(fake).notify_rotation_changes([
            {"role": "po", "old_user": "UA", "new_user": "UB"},
            {"role": "beEng", "old_user": None, "new_user": "UX"},
        ])
        assert sent == 3

    def test_admin_report_carries_severity(self):
        fake = FakeSlack()
        make_dispatcher(fake).notify_admins("carry-over", severity="INFO")
        assert fake.calls[0][1]["text"] == "[INFO] carry-over"

    def test_html_error_page_is_a_failed_call(self):
        fake = FakeSlack({"conversations.open": [html_page(404)], "chat.postMessage": [html_page(404)]})
        dispatcher = make_dispatcher(fake)
        assert dispatcher.send_direct_message("UA", "hello") is False
        # the admin report hit the same proxy page and was dropped
        assert fake.methods() == ["conversations.open", "chat.postMessage"]

    def test_non_object_json_is_a_failed_call(self):
        fake = FakeSlack({"usergroups.users.update": [httpx.Response(200, json=["ok"])]})
        assert make_dispatcher(fake).sync_group_membership(["UA"]) is False
        assert fake.methods()[-1] == "chat.postMessage"

    def test_check_survives_unparseable_chat_replies(self, engine):
        dispatcher = make_dispatcher(lambda request: html_page(404))
        container = seed_rotation(Container(engine, dispatcher))
        result = container.scheduler.run_start_of_day_check(pt(2026, 1, 14, 9))
        assert result["outcome"] == "transitioned"
        assert result["notifications_sent"] == 0
        assert container.state_service.read().sprint_index == 11


# ============================================
# Redis cache
# ============================================
class TestRedisCache:
    def test_unconfigured_is_permanent_miss(self):
        cache = RedisCache(url="")
        assert not cache.enabled
        assert cache.get_json("k") is None
        assert cache.set_json("k", {"a": 1}) is False

    def test_round_trip_through_client(self):
        cache = RedisCache(url="redis://cache:6379/0", prefix="rot:", ttl=60)
        client = MagicMock()
        cache._client = client
        assert cache.set_json("k", {"a": 1})
        client.setex.assert_called_once_with("rot:k", 60, json.dumps({"a": 1}))
        client.get.return_value = b'{"a": 1}'
        assert cache.get_json("k") == {"a": 1}

    def test_failing_redis_fails_open(self):
        cache = RedisCache(url="redis://cache:6379/0")
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("down")
        client.setex.side_effect = redis.ConnectionError("down")
        client.delete.side_effect = redis.ConnectionError("down")
        cache._client = client
        assert cache.get_json("k") is None
        assert cache.set_json("k", 1) is False
        cache.delete("k")

    def test_undecodable_entry_is_a_miss(self):
        cache = RedisCache(url="redis://cache:6379/0")
        cache._client = MagicMock(get=MagicMock(return_value=b"{nope"))
        assert cache.get_json("k") is None

    def test_roster_reads_through_and_invalidates(self, engine):
        cache = MagicMock()
        cache.get_json.return_value = None
        roster = RosterRepository(engine, cache=cache)
        roster.add_member("po", "UA")
        cache.delete.assert_called_with(CACHE_KEY)
        lists = roster.get_rotation_lists(["po"])
        assert [m.user_id for m in lists["po"].members] == ["UA"]
        cache.set_json.assert_called_once()

    def test_roster_served_from_cache(self, engine):
        cache = MagicMock()
        cache.get_json.return_value = {"po": [{"user_id": "UCACHED", "display_name": "", "active": True}]}
        lists = RosterRepository(engine, cache=cache).get_rotation_lists(["po"])
        assert lists["po"].members[0].user_id == "UCACHED"


# ============================================
# Retry & locking
# ============================================
class TestRetry:
    def test_transient_error_retried(self):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))
            return "ok"

        assert with_retry(flaky, attempts=3, backoff=0, context="test", sleep=lambda s: None) == "ok"
        assert len(attempts) == 3

    def test_permanent_error_raised_immediately(self):
        attempts = []

        def broken():
            attempts.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            with_retry(broken, attempts=5, backoff=0, context="test", sleep=lambda s: None)
        assert len(attempts) == 1

    def test_classification(self):
        assert is_retryable_db_error(OperationalError("x", {}, Exception("connection refused")))
        assert not is_retryable_db_error(OperationalError("x", {}, Exception("syntax error")))
        assert not is_retryable_db_error(KeyError("x"))


class TestLogging:
    def _format(self, record):
        RequestContextFilter().filter(record)
        return json.loads(JSONFormatter().format(record))

    def _record(self, **extra):
        record = logging.LogRecord("oncall_rotation.test", logging.INFO, __file__, 1, "hello %s", ("x",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_line_fields(self):
        data = self._format(self._record(trigger_id="cron-1"))
        assert data["message"] == "hello x"
        assert data["level"] == "INFO"
        assert data["logger"] == "oncall_rotation.test"
        assert data["trigger_id"] == "cron-1"
        assert "request_id" not in data

    def test_bound_request_id_stamped(self):
        token = bind_request_id("req-9")
        try:
            assert self._format(self._record())["request_id"] == "req-9"
        finally:
            reset_request_id(token)
        assert current_request_id() is None

    def test_explicit_request_id_wins(self):
        token = bind_request_id("req-9")
        try:
            assert self._format(self._record(request_id="req-explicit"))["request_id"] == "req-explicit"
        finally:
            reset_request_id(token)


class TestStateLock:
    def test_reentrant(self):
        lock = StateLock(timeout=0.1)
        with lock.hold("outer"):
            with lock.hold("inner"):
                pass

    def test_timeout_raises(self):
        lock = StateLock(timeout=0.05)
        acquired = threading.Event()
        release = threading.Event()

        def holder():
            with lock.hold("holder"):
                acquired.set()
                release.wait(2)

        thread = threading.Thread(target=holder)
        thread.start()
        acquired.wait(2)
        try:
            with pytest.raises(StateLockTimeoutError):
                with lock.hold("contender"):
                    pass
        finally:
            release.set()
            thread.join()


# ============================================
# Repositories
# ============================================
class TestSprintRepository:
    def test_create_and_list_in_order(self, container):
        repo = container.sprint_repo
        repo.upsert(Sprint(index=2, name="S2", start_date=date(2026, 1, 15), end_date=date(2026, 1, 28)))
        repo.upsert(Sprint(index=1, name="S1", start_date=date(2026, 1, 1), end_date=date(2026, 1, 14)))
        assert [s.index for s in repo.list_ordered()] == [1, 2]
        assert repo.get_next(1).index == 2
        assert repo.get_next(2) is None

    def test_edit_without_reason_rejected(self, container):
        repo = container.sprint_repo
        repo.upsert(Sprint(index=1, name="S1", start_date=date(2026, 1, 1), end_date=date(2026, 1, 14)))
        with pytest.raises(InvalidSprintEditError):
            repo.upsert(Sprint(index=1, name="S1", start_date=date(2026, 1, 1), end_date=date(2026, 1, 15)))
        assert str(repo.get(1).end_date) == "2026-01-14"

    def test_edit_audits_old_and_new(self, container):
        repo = container.sprint_repo
        repo.upsert(Sprint(index=1, name="S1", start_date=date(2026, 1, 1), end_date=date(2026, 1, 14)))
        repo.upsert(
            Sprint(index=1, name="S1b", start_date=date(2026, 1, 1), end_date=date(2026, 1, 15)),
            reason="extended", changed_by="UADMIN",
        )
        event = container.history_repo.get_all(event_type="sprint_updated")[0]
        assert event["changed_by"] == "UADMIN"
        assert event["details"]["old"]["name"] == "S1"
        assert event["details"]["new"]["end_date"] == "2026-01-15"
        assert event["details"]["reason"] == "extended"


class TestStateRepository:
    def test_empty_state(self, container):
        assert container.state_repo.read() == CurrentState()

    def test_write_replaces_whole_record(self, container):
        repo = container.state_repo
        repo.write(CurrentState(sprint_index=1, assignments={"po": "UA", "beEng": "UX"}))
        repo.write(CurrentState(sprint_index=2, assignments={"po": "UB"}))
        state = repo.read()
        assert state.sprint_index == 2
        assert state.assignments == {"po": "UB"}
        assert state.updated_at is not None

    def test_write_is_audited(self, container):
        repo = container.state_repo
        repo.write(CurrentState(sprint_index=1, assignments={"po": "UA"}), changed_by="UADMIN", reason="manual")
        event = container.history_repo.get_all(event_type="current_state_written")[0]
        assert event["details"]["old"] is None
        assert event["details"]["new"]["sprint_index"] == 1
        assert event["details"]["reason"] == "manual"
