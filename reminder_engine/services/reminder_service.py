import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional
import logging

from pydantic import BaseModel

from ..database.appointment_db import AppointmentDB
from ..database.contact_db import ContactDB
from ..database.reminder_db import ReminderDB
from ..exceptions import RepositoryError
from ..models.appointment import Appointment
from ..models.contact import NotificationPreferences
from ..models.reminder import ChannelSnapshot, Reminder
from ..models.status import INACTIVE_APPOINTMENT_STATUSES
from ..utils.config import config
from ..utils.date_utils import get_current_time, get_reminder_times
from .channel_selection import select_channels
from .message_templates import render_reminder, reminder_subject
from .notification_service import ChannelSender, SendResult

logger = logging.getLogger(__name__)


class DispatchSummary(BaseModel):
    processed: int = 0
    sent: int = 0
    failed: int = 0
    aborted: bool = False


class ReminderService:
    """Builds reminder sets at booking time and dispatches due reminders on every tick"""

    def __init__(self, reminder_db: ReminderDB, appointment_db: AppointmentDB, contact_db: ContactDB,
                 senders: Dict[str, ChannelSender], clock: Callable[[], datetime] = get_current_time,
                 remind_doctors: Optional[bool] = None):
        self.reminder_db = reminder_db
        self.appointment_db = appointment_db
        self.contact_db = contact_db
        self.senders = senders
        self.clock = clock
        self.remind_doctors = config.REMIND_DOCTORS if remind_doctors is None else remind_doctors

    def create_reminder_set(self, appointment: Appointment,
                            preferences: Optional[NotificationPreferences] = None,
                            doctor_preferences: Optional[NotificationPreferences] = None) -> List[Reminder]:
        """
        Create one pending reminder per (recipient x hour offset x channel) for a
        freshly booked appointment. The largest offset asks the patient to confirm.
        """
        patient = self.contact_db.get_user_by_id(appointment.patient_id)
        if not patient:
            logger.error(f"Patient {appointment.patient_id} not found; no reminders for {appointment.appointment_id}")
            return []

        recipients = [("patient", patient.user_id, patient, preferences or patient.preferences)]

        if doctor_preferences is not None or self.remind_doctors:
            doctor = self.contact_db.get_doctor_by_id(appointment.doctor_id)
            if doctor:
                recipients.append(("doctor", doctor.doctor_id, doctor, doctor_preferences or doctor.preferences))
            else:
                logger.warning(f"Doctor {appointment.doctor_id} not found; skipping doctor reminders")

        now = self.clock()
        reminders = []
        for role, recipient_id, contact, prefs in recipients:
            channels = select_channels(contact, prefs, available=self.senders.keys())
            if not channels:
                logger.warning(f"No contact channel for {role} {recipient_id}; no reminders created")
                continue

            snapshot = ChannelSnapshot(sms=prefs.sms, whatsapp=prefs.whatsapp, email=prefs.email)
            reminder_times = get_reminder_times(appointment.start_time, prefs.intervals)
            confirmation_offset = max(hours for hours, _ in reminder_times)

            for offset_hours, scheduled_for in reminder_times:
                for channel in channels:
                    reminders.append(Reminder(
                        reminder_id=f"R{uuid.uuid4().hex[:8]}",
                        appointment_id=appointment.appointment_id,
                        recipient_id=recipient_id,
                        recipient_role=role,
                        channel=channel,
                        address=contact.address_for(channel),
                        purpose="confirmation" if offset_hours == confirmation_offset else "reminder",
                        offset_hours=offset_hours,
                        scheduled_for=scheduled_for,
                        preferences=snapshot,
                        created_at=now
                    ))

        self.reminder_db.create_reminders(reminders)
        logger.info(f"Created {len(reminders)} reminders for appointment {appointment.appointment_id}")
        return reminders

    def run_dispatch_pass(self) -> DispatchSummary:
        """Send every pending reminder whose time has come; one attempt each"""
        summary = DispatchSummary()
        try:
            due = self.reminder_db.find_pending(self.clock())
            if due:
                logger.info(f"Processing {len(due)} due reminders")

            for reminder in due:
                summary.processed += 1
                if self._dispatch(reminder):
                    summary.sent += 1
                else:
                    summary.failed += 1

        except RepositoryError as e:
            summary.aborted = True
            logger.error(f"Dispatch pass aborted: {e}", exc_info=True)

        if summary.processed or summary.aborted:
            logger.info(
                f"Dispatch pass finished: processed={summary.processed} sent={summary.sent} "
                f"failed={summary.failed} aborted={summary.aborted}"
            )
        return summary

    def _fail(self, reminder: Reminder, reason: str, message: Optional[str] = None) -> bool:
        logger.error(f"Reminder {reminder.reminder_id} failed: {reason}")
        self.reminder_db.mark_failed(reminder.reminder_id, reason, message)
        return False

    def _dispatch(self, reminder: Reminder) -> bool:
        appointment = self.appointment_db.get_appointment_by_id(reminder.appointment_id)
        if not appointment:
            return self._fail(reminder, f"appointment {reminder.appointment_id} not found")

        if appointment.status in INACTIVE_APPOINTMENT_STATUSES:
            return self._fail(reminder, f"appointment is {appointment.status}")

        patient = self.contact_db.get_user_by_id(appointment.patient_id)
        doctor = self.contact_db.get_doctor_by_id(appointment.doctor_id)
        if not patient or not doctor:
            return self._fail(reminder, "patient or doctor not found")

        hospital = None
        if appointment.hospital_id:
            hospital = self.contact_db.get_hospital_by_id(appointment.hospital_id)

        sender = self.senders.get(reminder.channel)
        if sender is None:
            return self._fail(reminder, f"no sender configured for channel '{reminder.channel}'")

        try:
            message = render_reminder(
                reminder.purpose, reminder.recipient_role, appointment,
                patient, doctor, hospital, reminder.offset_hours
            )
            subject = reminder_subject(reminder.recipient_role, reminder.offset_hours, patient)
        except Exception as e:
            return self._fail(reminder, f"cannot render message: {e}")

        try:
            result = sender.send(reminder.address, message, subject=subject)
        except Exception as e:
            result = SendResult(success=False, error=str(e))

        if not result.success:
            return self._fail(reminder, result.error or "delivery failed", message)

        self.reminder_db.mark_sent(reminder.reminder_id, message, self.clock())
        logger.info(f"Sent {reminder.purpose} reminder {reminder.reminder_id} via {reminder.channel}")
        return True

    def get_upcoming_reminders(self, recipient_id: str) -> List[Reminder]:
        """Pending reminders for a patient or doctor that are still in the future"""
        return self.reminder_db.find_upcoming_for_recipient(recipient_id, self.clock())

    def get_delivery_stats(self) -> Dict[str, int]:
        return self.reminder_db.count_by_status()
