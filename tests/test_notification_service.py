import os
from types import SimpleNamespace

import pytest

from reminder_engine.services import notification_service
from reminder_engine.services.notification_service import (
    EmailSender, SMSSender, WhatsAppSender, build_senders
)
from reminder_engine.utils.config import config


class FakeMessages:
    def __init__(self, error=None):
        self.error = error
        self.created = []

    def create(self, body, from_, to):
        if self.error is not None:
            raise self.error
        self.created.append({"body": body, "from_": from_, "to": to})
        return SimpleNamespace(sid=f"SM{len(self.created):032d}")


@pytest.fixture
def twilio_client():
    return SimpleNamespace(messages=FakeMessages())


def test_sms_normalizes_local_number(twilio_client):
    sender = SMSSender("AC123", "token", "+15550001111", client=twilio_client, country_code="254")

    result = sender.send("0700 000 000", "Your appointment is tomorrow")

    assert result.success
    assert result.provider_message_id.startswith("SM")
    assert twilio_client.messages.created == [{
        "body": "Your appointment is tomorrow",
        "from_": "+15550001111",
        "to": "+254700000000",
    }]


def test_whatsapp_adds_channel_prefix(twilio_client):
    sender = WhatsAppSender("AC123", "token", "+15550002222", client=twilio_client, country_code="254")

    result = sender.send("+254700000000", "Hello")

    assert result.success
    created = twilio_client.messages.created[0]
    assert created["to"] == "whatsapp:+254700000000"
    assert created["from_"] == "whatsapp:+15550002222"


def test_provider_exception_becomes_failure():
    client = SimpleNamespace(messages=FakeMessages(error=RuntimeError("21211 invalid 'To' number")))
    sender = SMSSender("AC123", "token", "+15550001111", client=client)

    result = sender.send("0700000000", "Hello")

    assert not result.success
    assert "invalid" in result.error


def test_unconfigured_sender_fails():
    result = SMSSender(None, None, None).send("0700000000", "Hello")

    assert not result.success
    assert "not configured" in result.error


def test_missing_address_fails(twilio_client):
    sender = SMSSender("AC123", "token", "+15550001111", client=twilio_client)

    assert not sender.send("", "Hello").success
    assert twilio_client.messages.created == []


def test_simulation_logs_instead_of_sending():
    sender = WhatsAppSender(None, None, None, simulate=True)

    result = sender.send("0700000000", "Simulated reminder")

    assert result.success
    assert result.simulated
    with open(os.path.join(config.LOGS_PATH, "notifications.log"), encoding="utf-8") as f:
        assert "WHATSAPP SIMULATION" in f.read()


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.sent = []
        self.logged_in = None
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, msg):
        self.sent.append(msg)


def test_email_sent_over_smtp(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(notification_service.smtplib, "SMTP", FakeSMTP)
    sender = EmailSender("smtp.example.com", 587, "clinic@example.com", "secret", timeout=5)

    result = sender.send("amina@example.com", "See you tomorrow", subject="Appointment Reminder")

    assert result.success
    smtp = FakeSMTP.instances[0]
    assert (smtp.host, smtp.port, smtp.timeout) == ("smtp.example.com", 587, 5)
    assert smtp.logged_in == ("clinic@example.com", "secret")
    msg = smtp.sent[0]
    assert msg["To"] == "amina@example.com"
    assert msg["Subject"] == "Appointment Reminder"


def test_invalid_email_address_fails(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(notification_service.smtplib, "SMTP", FakeSMTP)
    sender = EmailSender("smtp.example.com", 587, "clinic@example.com", "secret")

    result = sender.send("not-an-email", "Hello")

    assert not result.success
    assert FakeSMTP.instances == []


def test_build_senders_respects_enabled_channels(monkeypatch):
    monkeypatch.setattr(config, "ENABLED_CHANNELS", ["sms", "email"])

    senders = build_senders(config)

    assert set(senders) == {"sms", "email"}
    assert isinstance(senders["sms"], SMSSender)


def test_invalid_phone_is_not_sent(twilio_client):
    sender = SMSSender("AC123", "token", "+15550001111", client=twilio_client)

    result = sender.send("12", "Hello")

    assert not result.success
    assert "invalid phone number" in result.error
    assert twilio_client.messages.created == []


def test_unwritable_audit_log_keeps_delivery_result(twilio_client, tmp_path, monkeypatch):
    blocked = tmp_path / "not-a-directory"
    blocked.write_text("")
    monkeypatch.setattr(config, "LOGS_PATH", str(blocked))
    sender = SMSSender("AC123", "token", "+15550001111", client=twilio_client)

    result = sender.send("0700000000", "Hello")

    assert result.success
    assert len(twilio_client.messages.created) == 1
