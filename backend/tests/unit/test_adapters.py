"""Unit tests for provider adapters."""
import base64
import json
from email import message_from_bytes, policy
from urllib.parse import parse_qs

import httpx
import pytest

from mailer.core.exceptions import AuthExpiredError, EmailSendError
from mailer.core.security import sign_qstash_body, verify_cron_secret, verify_qstash_signature
from mailer.services.adapters.dispatch import DisabledDispatcher, get_dispatcher
from mailer.services.adapters.dispatch.mock import MockDispatcher
from mailer.services.adapters.dispatch.qstash import QStashDispatcher
from mailer.services.adapters.email_sending.gmail import GmailAdapter
from mailer.services.adapters.email_sending.mock import MockEmailSendAdapter
from mailer.services.address_list import parse_address_list


def _decode_raw(request: httpx.Request):
    raw = json.loads(request.content)["raw"]
    return message_from_bytes(base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)), policy=policy.default)


class TestMockEmailSendAdapter:
    """Tests for MockEmailSendAdapter."""

    def test_test_connection(self):
        """Test connection reflects the simulated auth state."""
        assert MockEmailSendAdapter().test_connection() is True
        assert MockEmailSendAdapter(auth_expired=True).test_connection() is False

    def test_batch_counts_once_at_provider(self):
        adapter = MockEmailSendAdapter()
        adapter.send_confidential_batch(bcc=["a@example.com", "b@example.com"], subject="S", html_body="<p>x</p>")
        assert adapter.get_sent_today_count() == 1
        assert adapter.get_sent_batches()[0]["bcc"] == ["a@example.com", "b@example.com"]

        adapter.clear_sent_batches()
        assert adapter.get_sent_batches() == []

    def test_single_send_goes_to_visible_recipient(self):
        adapter = MockEmailSendAdapter()
        adapter.send_email("me@example.com", "[TEST] S", "<p>x</p>")
        batch = adapter.get_sent_batches()[0]
        assert batch["to"] == "me@example.com"
        assert batch["bcc"] == []

    def test_failure_modes(self):
        with pytest.raises(EmailSendError):
            MockEmailSendAdapter(fail_with="nope").send_confidential_batch(["a@example.com"], "S", "b")
        with pytest.raises(AuthExpiredError):
            MockEmailSendAdapter(auth_expired=True).get_sent_today_count()


class TestGmailAdapter:
    """Tests for GmailAdapter against a fake Gmail API."""

    def _adapter(self, handler):
        return GmailAdapter(
            access_token="old-token",
            refresh_token="refresh",
            client_id="cid",
            client_secret="secret",
            transport=httpx.MockTransport(handler),
        )

    def test_send_posts_raw_message(self):
        sent = []

        def handler(request):
            if request.url.path.endswith("/profile"):
                return httpx.Response(200, json={"emailAddress": "owner@example.com"})
            if request.url.path.endswith("/messages/send"):
                sent.append(request)
                return httpx.Response(200, json={"id": "msg-1"})
            return httpx.Response(404)

        message_id = self._adapter(handler).send_confidential_batch(
            bcc=["a@example.com", "b@example.com"], subject="Hi", html_body="<p>x</p>"
        )

        assert message_id == "msg-1"
        assert sent[0].headers["Authorization"] == "Bearer old-token"
        message = _decode_raw(sent[0])
        assert message["To"] == "owner@example.com"
        assert message["Bcc"] == "a@example.com, b@example.com"

    def test_refreshes_once_on_401(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            if request.url.host == "oauth2.googleapis.com":
                form = parse_qs(request.content.decode())
                assert form["grant_type"] == ["refresh_token"]
                return httpx.Response(200, json={"access_token": "new-token"})
            if request.headers["Authorization"] == "Bearer old-token":
                return httpx.Response(401, json={"error": {"message": "expired"}})
            return httpx.Response(200, json={"emailAddress": "owner@example.com"})

        adapter = self._adapter(handler)

        assert adapter.get_sender_address() == "owner@example.com"
        assert adapter.access_token == "new-token"
        assert calls == ["/gmail/v1/users/me/profile", "/token", "/gmail/v1/users/me/profile"]

    def test_refreshed_token_is_handed_over(self):
        stored = []

        def handler(request):
            if request.url.host == "oauth2.googleapis.com":
                return httpx.Response(200, json={"access_token": "new-token"})
            if request.headers["Authorization"] == "Bearer old-token":
                return httpx.Response(401)
            return httpx.Response(200, json={"emailAddress": "owner@example.com"})

        adapter = GmailAdapter(
            access_token="old-token",
            refresh_token="refresh",
            transport=httpx.MockTransport(handler),
            on_token_refresh=stored.append,
        )
        adapter.get_sender_address()

        assert stored == ["new-token"]

    def test_factory_persists_refreshed_token(self, monkeypatch, db_session, session_factory, credentials):
        from mailer.db import base
        from mailer.db.models import UserToken
        from mailer.services.adapters.email_sending import get_email_sender
        from mailer.services.adapters.email_sending import gmail

        monkeypatch.setattr(gmail.settings, "EMAIL_SEND_MODE", "gmail")
        monkeypatch.setattr(base, "SessionLocal", session_factory)

        def handler(request):
            if request.url.host == "oauth2.googleapis.com":
                return httpx.Response(200, json={"access_token": "fresh-token"})
            if request.headers["Authorization"] == "Bearer access":
                return httpx.Response(401)
            return httpx.Response(200, json={"emailAddress": "owner@example.com"})

        adapter = get_email_sender(credentials)
        adapter._transport = httpx.MockTransport(handler)
        adapter.get_sender_address()

        db_session.expire_all()
        assert db_session.get(UserToken, "owner@example.com").access_token == "fresh-token"

    def test_token_store_failure_does_not_block_the_call(self):
        def handler(request):
            if request.url.host == "oauth2.googleapis.com":
                return httpx.Response(200, json={"access_token": "new-token"})
            if request.headers["Authorization"] == "Bearer old-token":
                return httpx.Response(401)
            return httpx.Response(200, json={"emailAddress": "owner@example.com"})

        def broken_store(token):
            raise RuntimeError("database is locked")

        adapter = GmailAdapter(
            access_token="old-token",
            refresh_token="refresh",
            transport=httpx.MockTransport(handler),
            on_token_refresh=broken_store,
        )

        assert adapter.get_sender_address() == "owner@example.com"

    def test_rejected_refresh_is_auth_expired(self):
        def handler(request):
            if request.url.host == "oauth2.googleapis.com":
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(401)

        with pytest.raises(AuthExpiredError):
            self._adapter(handler).get_sent_today_count()

    def test_second_401_is_auth_expired(self):
        def handler(request):
            if request.url.host == "oauth2.googleapis.com":
                return httpx.Response(200, json={"access_token": "still-bad"})
            return httpx.Response(401)

        with pytest.raises(AuthExpiredError):
            self._adapter(handler).get_sender_address()

    def test_api_error_is_send_error(self):
        def handler(request):
            if request.url.path.endswith("/profile"):
                return httpx.Response(200, json={"emailAddress": "owner@example.com"})
            return httpx.Response(429, json={"error": {"message": "Daily sending limit exceeded"}})

        with pytest.raises(EmailSendError, match="Daily sending limit exceeded"):
            self._adapter(handler).send_confidential_batch(["a@example.com"], "S", "b")

    def test_sent_today_count_pages(self):
        queries = []

        def handler(request):
            queries.append(dict(request.url.params))
            if "pageToken" not in request.url.params:
                return httpx.Response(200, json={"messages": [{"id": "1"}, {"id": "2"}], "nextPageToken": "p2"})
            return httpx.Response(200, json={"messages": [{"id": "3"}]})

        assert self._adapter(handler).get_sent_today_count() == 3
        assert queries[0]["q"].startswith("in:sent after:")
        assert queries[1]["pageToken"] == "p2"


class TestQStashDispatcher:
    """Tests for QStashDispatcher."""

    def test_publishes_delayed_callback(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(201, json={"messageId": "msg_123"})

        dispatcher = QStashDispatcher(
            token="qstash-token",
            base_url="https://qstash.example.com",
            site_url="https://mailer.example.com",
            transport=httpx.MockTransport(handler),
        )

        assert dispatcher.schedule_callback("abc", 60) == "msg_123"
        request = requests[0]
        assert str(request.url) == (
            "https://qstash.example.com/v2/publish/https://mailer.example.com/api/campaigns/abc/process"
        )
        assert request.headers["Authorization"] == "Bearer qstash-token"
        assert request.headers["Upstash-Delay"] == "60s"
        assert json.loads(request.content) == {"campaign_id": "abc"}

    def test_immediate_trigger_has_zero_delay(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(201, json={"messageId": "m"})

        dispatcher = QStashDispatcher(token="t", site_url="https://x.example.com", transport=httpx.MockTransport(handler))
        dispatcher.trigger_immediate("abc")
        assert requests[0].headers["Upstash-Delay"] == "0s"

    def test_unconfigured_token_skips(self):
        assert QStashDispatcher(token="", site_url="https://x.example.com").schedule_callback("abc", 10) is None

    def test_api_error_raises(self):
        dispatcher = QStashDispatcher(
            token="t", site_url="https://x.example.com",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        with pytest.raises(httpx.HTTPStatusError):
            dispatcher.schedule_callback("abc", 10)


class TestOtherDispatchers:

    def test_disabled_returns_none(self):
        assert DisabledDispatcher().schedule_callback("abc", 10) is None

    def test_factory_follows_dispatch_mode(self):
        # tests run with DISPATCH_MODE=disabled
        assert isinstance(get_dispatcher(), DisabledDispatcher)

    def test_mock_records(self):
        dispatcher = MockDispatcher()
        dispatcher.schedule_callback("a", 5)
        dispatcher.schedule_callback("b", 0)
        assert [s["delay_seconds"] for s in dispatcher.for_campaign("a")] == [5]


class TestSignatures:
    """Tests for callback signature and cron secret checks."""

    def test_valid_signature_with_current_key(self):
        body = b'{"campaign_id": "abc"}'
        assert verify_qstash_signature(sign_qstash_body(body, "sig_current_test_key"), body) is True

    def test_next_key_accepted(self):
        body = b"{}"
        assert verify_qstash_signature(sign_qstash_body(body, "sig_next_test_key"), body) is True

    def test_tampered_body_rejected(self):
        token = sign_qstash_body(b'{"campaign_id": "abc"}', "sig_current_test_key")
        assert verify_qstash_signature(token, b'{"campaign_id": "xyz"}') is False

    def test_unknown_key_or_expired_rejected(self):
        body = b"{}"
        assert verify_qstash_signature(sign_qstash_body(body, "wrong-key"), body) is False
        assert verify_qstash_signature(sign_qstash_body(body, "sig_current_test_key", expires_in=-60), body) is False
        assert verify_qstash_signature(None, body) is False

    def test_cron_secret(self):
        assert verify_cron_secret("Bearer test-cron-secret") is True
        assert verify_cron_secret("Bearer nope") is False
        assert verify_cron_secret(None) is False


class TestAddressList:
    """Tests for recipient list parsing."""

    def test_normalise_dedupe_validate(self):
        parsed = parse_address_list([" Ann@Example.com ", "ann@example.com", "", "bad@", "bob@example.org"])

        assert parsed.valid == ["ann@example.com", "bob@example.org"]
        assert parsed.duplicates == ["ann@example.com"]
        assert [i["email"] for i in parsed.invalid] == ["bad@"]

    def test_overlong_address(self):
        address = "a" * 250 + "@example.com"
        parsed = parse_address_list([address])
        assert parsed.valid == []
        assert "too long" in parsed.invalid[0]["reason"]


class TestLocalDispatcher:
    """Tests for the in-process APScheduler dispatcher."""

    def test_without_scheduler_skips(self, monkeypatch):
        from mailer.services import scheduler
        from mailer.services.adapters.dispatch.local import LocalDispatcher

        monkeypatch.setattr(scheduler, "_scheduler", None)
        assert LocalDispatcher().schedule_callback("abc", 10) is None

    def test_schedules_one_job_per_campaign(self, monkeypatch):
        from apscheduler.schedulers.background import BackgroundScheduler
        from mailer.services import scheduler
        from mailer.services.adapters.dispatch.local import LocalDispatcher

        background = BackgroundScheduler(timezone="UTC")
        background.start(paused=True)
        monkeypatch.setattr(scheduler, "_scheduler", background)
        try:
            dispatcher = LocalDispatcher()
            assert dispatcher.schedule_callback("abc", 60) == "campaign_batch_abc"
            dispatcher.schedule_callback("abc", 120)

            jobs = background.get_jobs()
            assert [job.id for job in jobs] == ["campaign_batch_abc"]
            assert jobs[0].args == ("abc",)
        finally:
            background.shutdown(wait=False)
