from datetime import datetime, timedelta
from typing import Callable, Dict, Optional
import logging

from pydantic import BaseModel

from ..database.appointment_db import AppointmentDB
from ..database.contact_db import ContactDB
from ..exceptions import RepositoryError
from ..models.appointment import Appointment
from ..models.contact import Doctor, User
from ..utils.config import config
from ..utils.date_utils import get_current_time
from .channel_selection import select_channels
from .message_templates import (
    follow_up_subject, notes_excerpt, render_doctor_follow_up_notice, render_follow_up
)
from .notification_service import ChannelSender, SendResult

logger = logging.getLogger(__name__)


class FollowUpSummary(BaseModel):
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    aborted: bool = False


class FollowUpService:
    """Sends one wellness/follow-up message per completed appointment"""

    def __init__(self, appointment_db: AppointmentDB, contact_db: ContactDB,
                 senders: Dict[str, ChannelSender], clock: Callable[[], datetime] = get_current_time,
                 window_days: Optional[int] = None, notes_excerpt_length: Optional[int] = None):
        self.appointment_db = appointment_db
        self.contact_db = contact_db
        self.senders = senders
        self.clock = clock
        self.window_days = config.FOLLOWUP_WINDOW_DAYS if window_days is None else window_days
        self.notes_excerpt_length = (
            config.NOTES_EXCERPT_LENGTH if notes_excerpt_length is None else notes_excerpt_length
        )

    def run_follow_up_pass(self) -> FollowUpSummary:
        summary = FollowUpSummary()
        try:
            since = self.clock() - timedelta(days=self.window_days)
            candidates = self.appointment_db.find_completed_needing_follow_up(since)
            if candidates:
                logger.info(f"Found {len(candidates)} completed appointments needing follow-up")

            for appointment in candidates:
                summary.processed += 1
                outcome = self._follow_up(appointment)
                if outcome is None:
                    summary.skipped += 1
                elif outcome:
                    summary.sent += 1
                else:
                    summary.failed += 1

        except RepositoryError as e:
            summary.aborted = True
            logger.error(f"Follow-up pass aborted: {e}", exc_info=True)

        if summary.processed or summary.aborted:
            logger.info(
                f"Follow-up pass finished: processed={summary.processed} sent={summary.sent} "
                f"failed={summary.failed} skipped={summary.skipped} aborted={summary.aborted}"
            )
        return summary

    def _send(self, contact, body: str, subject: Optional[str]) -> SendResult:
        channels = select_channels(contact, contact.preferences, available=self.senders.keys())
        if not channels:
            return SendResult(success=False, error="no usable contact channel")
        channel = channels[0]
        try:
            return self.senders[channel].send(contact.address_for(channel), body, subject=subject)
        except Exception as e:
            return SendResult(success=False, error=str(e))

    def _follow_up(self, appointment: Appointment) -> Optional[bool]:
        """Returns None when skipped, else whether the patient message went out"""
        patient = self.contact_db.get_user_by_id(appointment.patient_id)
        doctor = self.contact_db.get_doctor_by_id(appointment.doctor_id)
        if not patient or not doctor:
            logger.error(f"Missing patient or doctor for follow-up of appointment {appointment.appointment_id}")
            return None

        follow_up = self.appointment_db.find_follow_up_for(appointment.appointment_id)
        follow_up_date = follow_up.start_time if follow_up else None
        excerpt = notes_excerpt(appointment.notes, self.notes_excerpt_length)

        result = self._send(
            patient,
            render_follow_up(patient, doctor, appointment, follow_up_date, excerpt),
            follow_up_subject(appointment)
        )
        if result.success:
            logger.info(f"Sent follow-up for appointment {appointment.appointment_id} to {patient.user_id}")
        else:
            logger.warning(f"Follow-up for appointment {appointment.appointment_id} not delivered: {result.error}")

        # at most one attempt per appointment, whatever the outcome
        self.appointment_db.mark_follow_up_sent(appointment.appointment_id, self.clock())

        self._notify_doctor(patient, doctor, appointment, follow_up_date)
        return result.success

    def _notify_doctor(self, patient: User, doctor: Doctor, appointment: Appointment,
                       follow_up_date: Optional[datetime]):
        try:
            result = self._send(
                doctor,
                render_doctor_follow_up_notice(patient, doctor, appointment, follow_up_date),
                f"Follow-up sent: {patient.name}"
            )
        except Exception as e:
            logger.error(f"Doctor notice for appointment {appointment.appointment_id} failed: {e}")
            return
        if not result.success:
            logger.warning(f"Doctor notice for appointment {appointment.appointment_id} not delivered: {result.error}")
