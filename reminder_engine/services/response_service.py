from datetime import datetime
from typing import Callable, Dict
import logging

from ..database.appointment_db import AppointmentDB
from ..database.reminder_db import ReminderDB
from ..models.reminder import Reminder
from ..models.reply import InboundReply, ReplyOutcome
from ..models.status import reply_target
from ..utils.date_utils import get_current_time
from ..utils.validation import normalize_reply
from .message_templates import render_acknowledgement
from .notification_service import ChannelSender

logger = logging.getLogger(__name__)


class ResponseService:
    """Applies YES / NO / RESCHEDULE replies to the reminder they answer"""

    def __init__(self, reminder_db: ReminderDB, appointment_db: AppointmentDB,
                 senders: Dict[str, ChannelSender], clock: Callable[[], datetime] = get_current_time):
        self.reminder_db = reminder_db
        self.appointment_db = appointment_db
        self.senders = senders
        self.clock = clock

    def handle_reply(self, reply: InboundReply) -> ReplyOutcome:
        reminder = self.reminder_db.find_most_recent_sent_by_address(reply.from_address)
        if not reminder:
            logger.info(f"No sent reminder found for {reply.from_address}; reply ignored")
            return ReplyOutcome(action="no_reminder")

        text = normalize_reply(reply.body_text)
        target = reply_target(text)
        if target is None:
            logger.info(f"Unrecognized reply '{text}' to reminder {reminder.reminder_id}")
            return ReplyOutcome(
                action="ignored",
                reminder_id=reminder.reminder_id,
                appointment_id=reminder.appointment_id
            )

        now = self.clock()
        if not self.reminder_db.update_status(reminder.reminder_id, target, text, now):
            # answered concurrently by another handler
            return ReplyOutcome(
                action="ignored",
                reminder_id=reminder.reminder_id,
                appointment_id=reminder.appointment_id
            )

        if not self.appointment_db.update_status(reminder.appointment_id, target, now):
            logger.warning(
                f"Appointment {reminder.appointment_id} left unchanged after '{text}' reply; "
                f"reminder {reminder.reminder_id} recorded the response"
            )
        else:
            logger.info(f"Appointment {reminder.appointment_id} moved to '{target}' by patient reply")

        return ReplyOutcome(
            action=target,
            reminder_id=reminder.reminder_id,
            appointment_id=reminder.appointment_id,
            acknowledged=self._acknowledge(reminder, reply.from_address, target)
        )

    def _acknowledge(self, reminder: Reminder, address: str, status: str) -> bool:
        sender = self.senders.get(reminder.channel)
        if sender is None:
            logger.warning(f"No sender for channel '{reminder.channel}'; acknowledgement not sent")
            return False
        try:
            result = sender.send(address, render_acknowledgement(status), subject="Appointment update")
        except Exception as e:
            logger.error(f"Acknowledgement for reminder {reminder.reminder_id} failed: {e}")
            return False
        if not result.success:
            logger.warning(f"Acknowledgement for reminder {reminder.reminder_id} not delivered: {result.error}")
        return result.success
