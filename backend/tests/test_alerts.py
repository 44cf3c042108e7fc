"""
Unit tests for high-emission alerts.

SMTP and Twilio are never contacted: SMTP delivery is patched and Twilio is
served by an httpx MockTransport.
"""
import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from app.services.notifications import alerts as alerts_module
from app.services.notifications.alerts import (
    AlertDispatcher,
    EmailSender,
    HighEmissionAlert,
    SmsSender,
    get_manager_email,
    get_manager_phone,
)

ALERT = HighEmissionAlert(
    department="Forging",
    scope=1,
    value=0.75,
    timestamp=datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc),
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "MANAGER_MAP", "ALERT_DEFAULT_TO", "MANAGER_PHONE_MAP", "SMS_DEFAULT_TO",
        "SMTP_HOST", "SMTP_PORT", "SMTP_USER", "SMTP_PASS", "SMTP_SECURE", "MAIL_FROM",
        "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM", "REPORT_ORG_NAME",
    ):
        monkeypatch.delenv(name, raising=False)


class TestRecipients:
    """Recipient lookup by department."""

    def test_department_mapping_wins(self, monkeypatch):
        monkeypatch.setenv("MANAGER_MAP", json.dumps({"Forging": "forge@example.com"}))
        monkeypatch.setenv("ALERT_DEFAULT_TO", "ops@example.com")

        assert get_manager_email("Forging") == "forge@example.com"
        assert get_manager_email("Casting") == "ops@example.com"

    def test_invalid_map_falls_back_to_default(self, monkeypatch):
        monkeypatch.setenv("MANAGER_PHONE_MAP", "{not json")
        monkeypatch.setenv("SMS_DEFAULT_TO", "+15550001111")

        assert get_manager_phone("Forging") == "+15550001111"

    def test_unresolved(self):
        assert get_manager_email("Forging") is None
        assert get_manager_phone("Forging") is None


class TestEmail:
    """SMTP channel."""

    @pytest.mark.asyncio
    async def test_skipped_when_unconfigured(self, monkeypatch):
        sender = EmailSender()
        monkeypatch.setattr(sender, "_send_blocking", lambda msg, to: pytest.fail("sent"))

        await sender.send(ALERT)

    @pytest.mark.asyncio
    async def test_sends_to_manager(self, monkeypatch):
        monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
        monkeypatch.setenv("SMTP_PORT", "587")
        monkeypatch.setenv("MAIL_FROM", "alerts@example.com")
        monkeypatch.setenv("MANAGER_MAP", json.dumps({"Forging": "forge@example.com"}))
        monkeypatch.setenv("REPORT_ORG_NAME", "Acme Metals")
        sender = EmailSender()
        sent = []
        monkeypatch.setattr(sender, "_send_blocking", lambda msg, to: sent.append((msg, to)))

        await sender.send(ALERT)

        assert len(sent) == 1
        msg, to = sent[0]
        assert to == "forge@example.com"
        assert msg["From"] == "alerts@example.com"
        assert "Acme Metals" in msg["Subject"]
        assert "Forging" in msg["Subject"]


class TestSms:
    """Twilio channel."""

    def _configure(self, monkeypatch, sender="+15550002222", to="+15550003333"):
        monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
        monkeypatch.setenv("TWILIO_AUTH_TOKEN", "token")
        monkeypatch.setenv("TWILIO_FROM", sender)
        monkeypatch.setenv("SMS_DEFAULT_TO", to)

    def _mock_twilio(self, monkeypatch, status=201):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(status, json={"sid": "SM1"})

        real_client = httpx.AsyncClient
        transport = httpx.MockTransport(handler)
        monkeypatch.setattr(
            alerts_module.httpx,
            "AsyncClient",
            lambda **kwargs: real_client(transport=transport, **kwargs),
        )
        return requests

    @pytest.mark.asyncio
    async def test_posts_message(self, monkeypatch):
        self._configure(monkeypatch)
        requests = self._mock_twilio(monkeypatch)

        await SmsSender().send(ALERT)

        assert len(requests) == 1
        request = requests[0]
        assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
        body = request.content.decode()
        assert "From=%2B15550002222" in body
        assert "To=%2B15550003333" in body
        assert request.headers["Authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_invalid_number_is_skipped(self, monkeypatch):
        self._configure(monkeypatch, to="555-0003")
        requests = self._mock_twilio(monkeypatch)

        await SmsSender().send(ALERT)

        assert requests == []

    @pytest.mark.asyncio
    async def test_provider_error_raises(self, monkeypatch):
        self._configure(monkeypatch)
        self._mock_twilio(monkeypatch, status=400)

        with pytest.raises(httpx.HTTPStatusError):
            await SmsSender().send(ALERT)

    def test_body(self):
        body = SmsSender().build_body(ALERT)
        assert "Dept: Forging" in body
        assert "CO2: 0.750000 kg" in body


class FailingChannel:
    channel = "failing"

    async def send(self, alert):
        raise RuntimeError("smtp down")


class RecordingChannel:
    channel = "recording"

    def __init__(self):
        self.alerts = []

    async def send(self, alert):
        self.alerts.append(alert)


class TestDispatcher:
    """Fire-and-forget delivery."""

    @pytest.mark.asyncio
    async def test_channel_failure_does_not_stop_other_channels(self):
        recording = RecordingChannel()
        dispatcher = AlertDispatcher(channels=[FailingChannel(), recording])

        task = dispatcher.submit(ALERT)
        assert task is not None
        await task

        assert recording.alerts == [ALERT]
        assert task.exception() is None

    @pytest.mark.asyncio
    async def test_tasks_are_released_when_done(self):
        dispatcher = AlertDispatcher(channels=[RecordingChannel()])

        task = dispatcher.submit(ALERT)
        assert dispatcher.pending == 1
        await task
        await asyncio.sleep(0)

        assert dispatcher.pending == 0

    def test_submit_without_event_loop_is_dropped(self):
        dispatcher = AlertDispatcher(channels=[RecordingChannel()])

        assert dispatcher.submit(ALERT) is None
