import asyncio
import base64
import json
import logging
from urllib.parse import parse_qs

from app.integrations import sms
from app.integrations.sms import (
    LoggingNotifier,
    TwilioSmsNotifier,
    build_notifier,
    mask_address,
)


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def read(self):
        return json.dumps(self.payload).encode("utf-8")

    def __enter__(self):
        return self

    def __exit__(self, *_args):
        return False


def _notifier():
    return TwilioSmsNotifier(account_sid="AC123", auth_token="secret", from_number="+15555550000")


def test_build_notifier_uses_twilio_when_configured(monkeypatch):
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "secret")
    monkeypatch.setenv("TWILIO_FROM_NUMBER", "+15555550000")

    notifier = build_notifier()

    assert isinstance(notifier, TwilioSmsNotifier)
    assert notifier.from_number == "+15555550000"


def test_build_notifier_falls_back_to_logging(monkeypatch):
    monkeypatch.delenv("TWILIO_ACCOUNT_SID", raising=False)
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "secret")

    assert isinstance(build_notifier(), LoggingNotifier)


def test_twilio_send_posts_form_with_basic_auth(monkeypatch):
    captured = {}

    def fake_urlopen(req, timeout):
        captured["url"] = req.full_url
        captured["auth"] = req.get_header("Authorization")
        captured["form"] = parse_qs(req.data.decode("utf-8"))
        captured["timeout"] = timeout
        return FakeResponse({"sid": "SM1", "status": "queued"})

    monkeypatch.setattr(sms.request, "urlopen", fake_urlopen)

    outcome = asyncio.run(_notifier().send("+15555550101", "Room booked"))

    assert outcome.delivered is True
    assert captured["url"] == "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"
    assert captured["auth"] == "Basic " + base64.b64encode(b"AC123:secret").decode("ascii")
    assert captured["form"] == {
        "To": ["+15555550101"],
        "From": ["+15555550000"],
        "Body": ["Room booked"],
    }
    assert captured["timeout"] == 15


def test_twilio_transport_error_is_a_failed_outcome(monkeypatch):
    def fake_urlopen(_req, timeout):
        raise OSError("network unreachable")

    monkeypatch.setattr(sms.request, "urlopen", fake_urlopen)

    outcome = asyncio.run(_notifier().send("+15555550101", "Room booked"))

    assert outcome.delivered is False
    assert outcome.reason == "transport error"


def test_twilio_error_payload_is_a_failed_outcome(monkeypatch):
    monkeypatch.setattr(
        sms.request,
        "urlopen",
        lambda _req, timeout: FakeResponse({"error_code": 21610, "message": "unsubscribed"}),
    )

    outcome = asyncio.run(_notifier().send("+15555550101", "Room booked"))

    assert outcome.delivered is False
    assert outcome.reason == "twilio error 21610"


def test_missing_address_is_not_sent(monkeypatch):
    def fail_urlopen(*_args, **_kwargs):
        raise AssertionError("should not be called")

    monkeypatch.setattr(sms.request, "urlopen", fail_urlopen)

    assert asyncio.run(_notifier().send("", "Room booked")).delivered is False
    assert asyncio.run(LoggingNotifier().send("", "Room booked")).delivered is False


def test_mask_address_keeps_last_four_digits():
    assert mask_address("+15555550101") == "***0101"
    assert mask_address("123") == "***"


def test_phone_numbers_are_masked_in_logs(monkeypatch, caplog):
    def _refuse(_req, timeout):
        raise OSError("connection refused")

    monkeypatch.setattr(sms.request, "urlopen", _refuse)
    caplog.set_level(logging.INFO, logger="roombooking.integrations.sms")

    asyncio.run(_notifier().send("+15555550101", "hi"))
    asyncio.run(LoggingNotifier().send("+15555550102", "hi"))

    assert "+15555550101" not in caplog.text
    assert "+15555550102" not in caplog.text
    assert "***0101" in caplog.text
    assert "***0102" in caplog.text
