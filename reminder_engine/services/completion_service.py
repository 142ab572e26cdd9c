from datetime import datetime, timedelta
from typing import Callable, Optional
import logging

from pydantic import BaseModel

from ..database.appointment_db import AppointmentDB
from ..exceptions import RepositoryError
from ..models.status import COMPLETED, CONFIRMED, SCHEDULED
from ..utils.config import config
from ..utils.date_utils import get_current_time

logger = logging.getLogger(__name__)


class CompletionSummary(BaseModel):
    processed: int = 0
    completed: int = 0
    aborted: bool = False


class CompletionService:
    """
    Marks appointments as completed once their start time plus a grace
    period has passed. Completed appointments feed the follow-up pass.
    """

    def __init__(self, appointment_db: AppointmentDB, clock: Callable[[], datetime] = get_current_time,
                 grace_minutes: Optional[int] = None):
        self.appointment_db = appointment_db
        self.clock = clock
        self.grace_minutes = config.AUTO_COMPLETE_GRACE_MINUTES if grace_minutes is None else grace_minutes

    def run_completion_pass(self) -> CompletionSummary:
        summary = CompletionSummary()
        try:
            now = self.clock()
            cutoff = now - timedelta(minutes=self.grace_minutes)
            for appointment in self.appointment_db.find_due_for_completion(cutoff, (SCHEDULED, CONFIRMED)):
                summary.processed += 1
                if self.appointment_db.update_status(appointment.appointment_id, COMPLETED, now):
                    summary.completed += 1
                    logger.info(f"Appointment {appointment.appointment_id} marked completed")
        except RepositoryError as e:
            summary.aborted = True
            logger.error(f"Completion pass aborted: {e}", exc_info=True)
        return summary
