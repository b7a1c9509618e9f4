# Overview: Pytest coverage for notifier sessions and the notify helper.

import httpx
import pytest

from refpoints.models import NotificationLog
from refpoints.services import notification_service
from refpoints.services.notifier import HttpNotifier, LogNotifier, build_notifier


def _gateway(handler):
    notifier = HttpNotifier("https://sms.example.test/send", token="s3cret", transport=httpx.MockTransport(handler))
    notifier.connect()
    return notifier


class TestHttpNotifier:
    def test_posts_json_with_bearer_token(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = request.read()
            return httpx.Response(200, json={"messageId": "m-1"})

        notifier = _gateway(handler)
        result = notifier.send("5550001111", "Hello")
        notifier.disconnect()

        assert result.success
        assert result.message_id == "m-1"
        assert seen["auth"] == "Bearer s3cret"
        assert b'"phone"' in seen["body"] and b'"5550001111"' in seen["body"]

    def test_http_error_is_a_failed_result(self):
        notifier = _gateway(lambda request: httpx.Response(500))
        result = notifier.send("5550001111", "Hello")
        assert not result.success
        assert "500" in result.error

    def test_transport_error_is_a_failed_result(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        result = _gateway(handler).send("5550001111", "Hello")
        assert not result.success

    def test_empty_body_is_fine(self):
        result = _gateway(lambda request: httpx.Response(204)).send("5550001111", "Hello")
        assert result.success
        assert result.message_id is None

    def test_send_before_connect(self):
        notifier = HttpNotifier("https://sms.example.test/send")
        assert not notifier.send("5550001111", "Hello").success

    def test_requires_url(self):
        with pytest.raises(ValueError):
            HttpNotifier("")


class TestBuildNotifier:
    def test_log_backend(self):
        assert isinstance(build_notifier({"NOTIFIER_BACKEND": "log"}), LogNotifier)

    def test_http_backend(self):
        notifier = build_notifier({"NOTIFIER_BACKEND": "http", "NOTIFIER_URL": "https://sms.example.test"})
        assert isinstance(notifier, HttpNotifier)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_notifier({"NOTIFIER_BACKEND": "pigeon"})

    def test_log_notifier_ids(self):
        notifier = LogNotifier()
        notifier.connect()
        assert notifier.send("5550001111", "a").message_id == "log-1"
        assert notifier.send("5550001111", "b").message_id == "log-2"


class TestNotify:
    def test_records_success(self, db_session, tenant, notifier):
        result = notification_service.notify(notifier, tenant.id, "5550001111", "Hi", "broadcast")

        assert result.success
        log = db_session.query(NotificationLog).one()
        assert log.status == "sent"
        assert log.provider_message_id == result.message_id

    def test_never_raises(self, db_session, tenant, notifier):
        notifier.raising.add("5550001111")
        result = notification_service.notify(notifier, tenant.id, "5550001111", "Hi", "broadcast")

        assert not result.success
        assert db_session.query(NotificationLog).one().status == "failed"

    def test_without_notifier(self, db_session, tenant):
        result = notification_service.notify(None, tenant.id, "5550001111", "Hi", "broadcast")
        assert not result.success
