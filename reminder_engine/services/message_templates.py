"""
Message templates for reminders, follow-ups and reply acknowledgements.

Reminder templates are keyed by (purpose, recipient role). Rendering is
deterministic: the same appointment and contacts always give the same text.
"""
from datetime import datetime
from typing import Optional

from ..models.appointment import Appointment
from ..models.contact import Doctor, Hospital, User
from ..models.status import CANCELLED, CONFIRMED, RESCHEDULE_REQUESTED
from ..utils.config import config
from ..utils.date_utils import format_date_for_display, format_time_for_display

REPLY_INSTRUCTIONS = (
    "Please reply with:\n"
    "YES to confirm\n"
    "NO to cancel\n"
    "RESCHEDULE to request a new time"
)

ACKNOWLEDGEMENTS = {
    CONFIRMED: "Thank you for confirming your appointment.",
    CANCELLED: "Your appointment has been cancelled.",
    RESCHEDULE_REQUESTED: "We have received your reschedule request. We will contact you shortly.",
}


def _hours_phrase(offset_hours: int) -> str:
    if offset_hours % 24 == 0:
        days = offset_hours // 24
        return "24 hours" if days == 1 else f"{days} days"
    return "1 hour" if offset_hours == 1 else f"{offset_hours} hours"


def _location(hospital: Optional[Hospital]) -> str:
    if not hospital:
        return ""
    if hospital.address:
        return f"Location: {hospital.name}, {hospital.address}\n"
    return f"Location: {hospital.name}\n"


def _patient_reminder(appointment, patient, doctor, hospital, offset_hours, confirmation):
    text = f"""Hello {patient.name},

This is a reminder that you have an appointment with {doctor.display_name} in {_hours_phrase(offset_hours)}.

Date: {format_date_for_display(appointment.start_time)}
Time: {format_time_for_display(appointment.start_time)}
{_location(hospital)}Type: {appointment.appointment_type}
"""
    if confirmation:
        text += f"\n{REPLY_INSTRUCTIONS}\n"
    else:
        text += "\nPlease arrive 15 minutes early. If you need to reschedule, please contact us as soon as possible.\n"
    return text + f"\n{config.CLINIC_NAME}"


def _doctor_reminder(appointment, patient, doctor, hospital, offset_hours):
    return f"""Hello {doctor.display_name},

You have an appointment with {patient.name} in {_hours_phrase(offset_hours)}.

Date: {format_date_for_display(appointment.start_time)}
Time: {format_time_for_display(appointment.start_time)}
{_location(hospital)}Reason: {appointment.reason or 'Not specified'}

{config.CLINIC_NAME}"""


TEMPLATES = {
    ("confirmation", "patient"): lambda *args: _patient_reminder(*args, confirmation=True),
    ("reminder", "patient"): lambda *args: _patient_reminder(*args, confirmation=False),
    ("confirmation", "doctor"): _doctor_reminder,
    ("reminder", "doctor"): _doctor_reminder,
}


def render_reminder(purpose: str, role: str, appointment: Appointment, patient: User, doctor: Doctor,
                    hospital: Optional[Hospital], offset_hours: int) -> str:
    template = TEMPLATES[(purpose, role)]
    return template(appointment, patient, doctor, hospital, offset_hours)


def reminder_subject(role: str, offset_hours: int, patient: User) -> str:
    if role == "doctor":
        return f"Upcoming Appointment Reminder: {patient.name} in {_hours_phrase(offset_hours)}"
    return f"Appointment Reminder: Your appointment is in {_hours_phrase(offset_hours)}"


def notes_excerpt(notes: Optional[str], limit: int) -> Optional[str]:
    if not notes or not notes.strip():
        return None
    notes = notes.strip()
    return notes if len(notes) <= limit else notes[:limit] + "..."


def render_follow_up(patient: User, doctor: Doctor, appointment: Appointment,
                     follow_up_date: Optional[datetime], excerpt: Optional[str]) -> str:
    text = f"""Hello {patient.name},

We're following up on your recent appointment with {doctor.display_name} on {format_date_for_display(appointment.start_time)}.
"""
    if excerpt:
        text += f"\n{doctor.display_name}'s notes: {excerpt}\n"
    if follow_up_date:
        text += f"\nYour next follow-up appointment is scheduled for {format_date_for_display(follow_up_date)}. If this date does not work for you, please contact us to reschedule.\n"
    else:
        text += "\nPlease let us know if you would like to schedule a follow-up appointment.\n"
    return text + f"\nHow are you feeling? If you have any questions or concerns, please don't hesitate to contact us.\n\n{config.CLINIC_NAME}"


def render_doctor_follow_up_notice(patient: User, doctor: Doctor, appointment: Appointment,
                                   follow_up_date: Optional[datetime]) -> str:
    date_text = format_date_for_display(appointment.start_time)
    if follow_up_date:
        next_step = f"They were reminded of their follow-up on {format_date_for_display(follow_up_date)}."
    else:
        next_step = "No follow-up appointment has been scheduled."
    return f"Hello {doctor.display_name}, a follow-up message was sent to {patient.name} about their appointment on {date_text}. {next_step}"


def follow_up_subject(appointment: Appointment) -> str:
    return f"Follow-up for your appointment on {format_date_for_display(appointment.start_time)}"


def render_acknowledgement(status: str) -> str:
    return ACKNOWLEDGEMENTS[status]
