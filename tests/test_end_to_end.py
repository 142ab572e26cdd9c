from reminder_engine.models.reply import InboundReply
from reminder_engine.scheduler import build_services

from conftest import local


def test_booking_to_follow_up(db_path, make_appointment, appointment_db, reminder_db, senders, clock):
    services = build_services(db_path, senders=senders, clock=clock)

    # booked for 10 March 14:00, reminders at 24h and 1h
    appointment = make_appointment(local(2025, 3, 10, 14, 0))
    reminders = services["reminders"].create_reminder_set(appointment)
    assert sorted(r.scheduled_for for r in reminders) == [local(2025, 3, 9, 14, 0), local(2025, 3, 10, 13, 0)]

    clock.now = local(2025, 3, 9, 14, 0)
    assert services["reminders"].run_dispatch_pass().sent == 1

    outcome = services["responses"].handle_reply(InboundReply(from_address="+254700000000", body_text="yes"))
    assert outcome.action == "confirmed"
    assert appointment_db.get_appointment_by_id(appointment.appointment_id).status == "confirmed"

    clock.now = local(2025, 3, 10, 13, 0)
    assert services["reminders"].run_dispatch_pass().sent == 1
    assert {r.status for r in reminder_db.get_reminders_by_appointment(appointment.appointment_id)} == {
        "confirmed", "sent"
    }

    appointment_db.update_status(appointment.appointment_id, "completed", local(2025, 3, 10, 15, 0))

    clock.now = local(2025, 3, 13, 9, 0)
    assert services["follow_ups"].run_follow_up_pass().sent == 1
    clock.now = local(2025, 3, 14, 9, 0)
    assert services["follow_ups"].run_follow_up_pass().processed == 0

    # 24h confirmation, acknowledgement, 1h reminder, follow-up
    assert len(senders["whatsapp"].calls) == 4
