import pytest

from reminder_engine.models.reply import InboundReply
from reminder_engine.services.reminder_service import ReminderService
from reminder_engine.services.response_service import ResponseService

from conftest import FakeSender, local


@pytest.fixture
def reminder_service(reminder_db, appointment_db, contact_db, senders, clock):
    return ReminderService(reminder_db, appointment_db, contact_db, senders, clock=clock, remind_doctors=False)


@pytest.fixture
def service(reminder_db, appointment_db, senders, clock):
    return ResponseService(reminder_db, appointment_db, senders, clock=clock)


@pytest.fixture
def sent_reminder(reminder_service, reminder_db, make_appointment, clock):
    """Appointment on 10 March 14:00 whose 24h confirmation request went out"""
    appointment = make_appointment(local(2025, 3, 10, 14, 0))
    reminder_service.create_reminder_set(appointment)
    clock.now = local(2025, 3, 9, 14, 0)
    reminder_service.run_dispatch_pass()
    clock.now = local(2025, 3, 9, 14, 20)
    sent = [r for r in reminder_db.get_reminders_by_appointment(appointment.appointment_id) if r.status == "sent"]
    assert len(sent) == 1
    return sent[0]


def test_yes_confirms_reminder_and_appointment(service, sent_reminder, reminder_db, appointment_db, senders):
    senders["whatsapp"].calls.clear()

    outcome = service.handle_reply(InboundReply(from_address="+254700000000", body_text="yes"))

    assert outcome.action == "confirmed"
    assert outcome.reminder_id == sent_reminder.reminder_id
    assert outcome.acknowledged
    reminder = reminder_db.get_reminder_by_id(sent_reminder.reminder_id)
    assert reminder.status == "confirmed"
    assert reminder.response == "YES"
    assert reminder.response_at == local(2025, 3, 9, 14, 20)
    assert appointment_db.get_appointment_by_id(sent_reminder.appointment_id).status == "confirmed"
    assert len(senders["whatsapp"].calls) == 1
    assert senders["whatsapp"].calls[0]["address"] == "+254700000000"
    assert "confirming" in senders["whatsapp"].calls[0]["body"]


def test_unknown_reply_changes_nothing(service, sent_reminder, reminder_db, appointment_db, senders):
    senders["whatsapp"].calls.clear()

    outcome = service.handle_reply(InboundReply(from_address="+254700000000", body_text="MAYBE"))

    assert outcome.action == "ignored"
    assert reminder_db.get_reminder_by_id(sent_reminder.reminder_id).status == "sent"
    assert appointment_db.get_appointment_by_id(sent_reminder.appointment_id).status == "scheduled"
    assert senders["whatsapp"].calls == []


def test_no_cancels_appointment(service, sent_reminder, reminder_db, appointment_db):
    outcome = service.handle_reply(InboundReply(from_address="+254700000000", body_text=" No "))

    assert outcome.action == "cancelled"
    assert reminder_db.get_reminder_by_id(sent_reminder.reminder_id).status == "cancelled"
    assert appointment_db.get_appointment_by_id(sent_reminder.appointment_id).status == "cancelled"


def test_reschedule_request(service, sent_reminder, reminder_db, appointment_db):
    outcome = service.handle_reply(InboundReply(from_address="+254700000000", body_text="reschedule"))

    assert outcome.action == "reschedule_requested"
    assert reminder_db.get_reminder_by_id(sent_reminder.reminder_id).status == "reschedule_requested"
    assert appointment_db.get_appointment_by_id(sent_reminder.appointment_id).status == "reschedule_requested"


def test_twilio_whatsapp_webhook_matches_local_number(service, sent_reminder):
    reply = InboundReply.from_twilio({"From": "whatsapp:+254700000000", "Body": "Yes"})

    outcome = service.handle_reply(reply)

    assert reply.from_address == "+254700000000"
    assert outcome.action == "confirmed"


def test_reply_without_sent_reminder(service, sent_reminder, reminder_db, senders):
    senders["whatsapp"].calls.clear()

    outcome = service.handle_reply(InboundReply(from_address="+254711111111", body_text="YES"))

    assert outcome.action == "no_reminder"
    assert reminder_db.get_reminder_by_id(sent_reminder.reminder_id).status == "sent"
    assert senders["whatsapp"].calls == []


def test_answered_reminder_never_moves_again(service, reminder_service, sent_reminder, reminder_db, clock):
    service.handle_reply(InboundReply(from_address="+254700000000", body_text="YES"))

    second = service.handle_reply(InboundReply(from_address="+254700000000", body_text="NO"))
    clock.now = local(2025, 3, 9, 15, 0)
    reminder_service.run_dispatch_pass()

    assert second.action == "no_reminder"
    assert reminder_db.get_reminder_by_id(sent_reminder.reminder_id).status == "confirmed"
    assert not reminder_db.update_status(sent_reminder.reminder_id, "cancelled", "NO")
    assert not reminder_db.mark_failed(sent_reminder.reminder_id, "late failure")
    assert reminder_db.get_reminder_by_id(sent_reminder.reminder_id).status == "confirmed"


def test_illegal_appointment_transition_still_records_reply(service, sent_reminder, reminder_db, appointment_db):
    appointment_db.update_status(sent_reminder.appointment_id, "cancelled")

    outcome = service.handle_reply(InboundReply(from_address="+254700000000", body_text="YES"))

    assert outcome.action == "confirmed"
    assert reminder_db.get_reminder_by_id(sent_reminder.reminder_id).status == "confirmed"
    assert appointment_db.get_appointment_by_id(sent_reminder.appointment_id).status == "cancelled"


def test_acknowledgement_failure_is_not_raised(service, sent_reminder, reminder_db, senders):
    senders["whatsapp"] = FakeSender("whatsapp", raises=ConnectionError("network down"))

    outcome = service.handle_reply(InboundReply(from_address="+254700000000", body_text="YES"))

    assert outcome.action == "confirmed"
    assert not outcome.acknowledged
    assert reminder_db.get_reminder_by_id(sent_reminder.reminder_id).status == "confirmed"


def test_doctor_reply_does_not_touch_appointment(reminder_db, appointment_db, contact_db, senders, clock,
                                                 make_appointment):
    reminders = ReminderService(reminder_db, appointment_db, contact_db, senders, clock=clock, remind_doctors=True)
    service = ResponseService(reminder_db, appointment_db, senders, clock=clock)
    appointment = make_appointment(local(2025, 3, 10, 14, 0))
    reminders.create_reminder_set(appointment)
    clock.now = local(2025, 3, 9, 14, 0)
    reminders.run_dispatch_pass()
    senders["sms"].calls.clear()

    outcome = service.handle_reply(InboundReply(from_address="+254722000111", body_text="no"))

    assert outcome.action == "no_reminder"
    assert appointment_db.get_appointment_by_id(appointment.appointment_id).status == "scheduled"
    doctor_sent = [r for r in reminder_db.get_reminders_by_appointment(appointment.appointment_id)
                   if r.recipient_role == "doctor" and r.status == "sent"]
    assert len(doctor_sent) == 1
    assert senders["sms"].calls == []
