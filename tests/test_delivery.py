"""Test module for OTP delivery providers."""

import pytest
import requests
from twilio.base.exceptions import TwilioRestException

from conftest import DESTINATION
from marketplace_otp import delivery as delivery_module
from marketplace_otp.delivery import (
    LogDeliveryMethod,
    MSG91DeliveryMethod,
    TwilioDeliveryMethod,
    get_delivery_method,
)
from marketplace_otp.types import Channel


class FakeMessages:
    def __init__(self, status="queued", error=None):
        self.status = status
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return type("Message", (), {"status": self.status})()


class FakeTwilioClient:
    def __init__(self, messages):
        self.messages = messages


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


def make_twilio(messages):
    return TwilioDeliveryMethod(
        phone_number="+15005550006",
        whatsapp_number="+14155238886",
        client=FakeTwilioClient(messages),
    )


def test_twilio_sms():
    messages = FakeMessages()
    success, message = make_twilio(messages).send(DESTINATION, "123456", Channel.SMS)

    assert success is True
    assert "OTP sent" in message
    assert messages.calls[0]["to"] == DESTINATION
    assert messages.calls[0]["from_"] == "+15005550006"
    assert "123456" in messages.calls[0]["body"]


def test_twilio_whatsapp_addresses():
    messages = FakeMessages()
    success, _ = make_twilio(messages).send(DESTINATION, "123456", Channel.WHATSAPP)

    assert success is True
    assert messages.calls[0]["to"] == f"whatsapp:{DESTINATION}"
    assert messages.calls[0]["from_"] == "whatsapp:+14155238886"


def test_twilio_failed_status():
    success, _ = make_twilio(FakeMessages(status="failed")).send(
        DESTINATION, "123456", Channel.SMS
    )
    assert success is False


def test_twilio_rest_error():
    error = TwilioRestException(400, "https://api.twilio.com", msg="Invalid number")
    success, message = make_twilio(FakeMessages(error=error)).send(
        DESTINATION, "123456", Channel.SMS
    )

    assert success is False
    assert "Failed to send OTP" in message


def test_twilio_timeout():
    error = requests.exceptions.Timeout("timed out")
    success, _ = make_twilio(FakeMessages(error=error)).send(
        DESTINATION, "123456", Channel.SMS
    )
    assert success is False


def test_msg91_success(monkeypatch):
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        return FakeResponse({"type": "success", "message": "sent"})

    monkeypatch.setattr(delivery_module.requests, "post", fake_post)
    method = MSG91DeliveryMethod(
        api_url="https://msg91.test/flow/", auth_key="key", flow_id="flow", timeout=5
    )

    success, _ = method.send(DESTINATION, "654321", Channel.WHATSAPP)

    assert success is True
    assert calls[0]["json"]["mobiles"] == "919876543210"
    assert calls[0]["json"]["VAR1"] == "654321"
    assert calls[0]["json"]["VAR2"] == "10"
    assert calls[0]["headers"]["authkey"] == "key"
    assert calls[0]["timeout"] == 5


def test_msg91_error_payload(monkeypatch):
    monkeypatch.setattr(
        delivery_module.requests,
        "post",
        lambda *args, **kwargs: FakeResponse({"type": "error", "message": "bad flow"}),
    )
    method = MSG91DeliveryMethod(auth_key="key", flow_id="flow")

    success, _ = method.send(DESTINATION, "654321", Channel.SMS)
    assert success is False


def test_msg91_request_error(monkeypatch):
    def fake_post(*args, **kwargs):
        raise requests.exceptions.ConnectionError("unreachable")

    monkeypatch.setattr(delivery_module.requests, "post", fake_post)
    method = MSG91DeliveryMethod(auth_key="key", flow_id="flow")

    success, _ = method.send(DESTINATION, "654321", Channel.SMS)
    assert success is False


def test_msg91_not_configured():
    method = MSG91DeliveryMethod(auth_key="", flow_id="")
    method.auth_key = None

    success, message = method.send(DESTINATION, "654321", Channel.SMS)
    assert success is False
    assert "unavailable" in message


def test_log_delivery():
    success, _ = LogDeliveryMethod().send(DESTINATION, "123456", Channel.SMS)
    assert success is True


def test_get_delivery_method():
    assert isinstance(get_delivery_method("log"), LogDeliveryMethod)
    assert isinstance(get_delivery_method("MSG91"), MSG91DeliveryMethod)

    with pytest.raises(ValueError, match="Unsupported delivery provider"):
        get_delivery_method("pigeon")


def test_message_quotes_configured_expiry(monkeypatch):
    messages = FakeMessages()
    method = TwilioDeliveryMethod(
        phone_number="+15005550006",
        client=FakeTwilioClient(messages),
        expiry_minutes=5,
    )
    method.send(DESTINATION, "123456", Channel.SMS)
    assert "expires in 5 minutes" in messages.calls[0]["body"]

    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append(json)
        return FakeResponse({"type": "success"})

    monkeypatch.setattr(delivery_module.requests, "post", fake_post)
    MSG91DeliveryMethod(auth_key="key", flow_id="flow", expiry_minutes=5).send(
        DESTINATION, "123456", Channel.SMS
    )
    assert calls[0]["VAR2"] == "5"

    assert get_delivery_method("log", expiry_minutes=7).expiry_minutes == 7
