"""
Background worker driving the periodic passes.

Every job runs under an APScheduler IntervalTrigger with max_instances=1,
and additionally takes a non-blocking file lock so that two worker
processes sharing a database never run the same pass at the same time.
"""
import os
from typing import Callable, Dict, Optional
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger
from filelock import FileLock, Timeout

from .database.appointment_db import AppointmentDB
from .database.contact_db import ContactDB
from .database.reminder_db import ReminderDB
from .services.completion_service import CompletionService
from .services.followup_service import FollowUpService
from .services.notification_service import build_senders
from .services.reminder_service import ReminderService
from .services.response_service import ResponseService
from .utils.config import config
from .utils.date_utils import get_current_time, get_local_timezone

logger = logging.getLogger(__name__)

DISPATCH_JOB = "dispatch"
FOLLOW_UP_JOB = "follow-up"
COMPLETION_JOB = "complete"


class ReminderWorker:
    def __init__(self, reminder_service: ReminderService, follow_up_service: FollowUpService,
                 completion_service: Optional[CompletionService] = None,
                 lock_dir: Optional[str] = None,
                 dispatch_interval: Optional[int] = None,
                 follow_up_interval: Optional[int] = None,
                 auto_complete: Optional[bool] = None):
        self.reminder_service = reminder_service
        self.follow_up_service = follow_up_service
        self.completion_service = completion_service
        self.lock_dir = lock_dir or config.LOCK_DIR
        self.dispatch_interval = dispatch_interval or config.DISPATCH_INTERVAL_SECONDS
        self.follow_up_interval = follow_up_interval or config.FOLLOWUP_INTERVAL_SECONDS
        self.auto_complete = config.AUTO_COMPLETE_ENABLED if auto_complete is None else auto_complete
        self._scheduler = None

        os.makedirs(self.lock_dir, exist_ok=True)

        self.jobs: Dict[str, Callable] = {
            DISPATCH_JOB: self.reminder_service.run_dispatch_pass,
            FOLLOW_UP_JOB: self.follow_up_service.run_follow_up_pass,
        }
        if self.completion_service is not None:
            self.jobs[COMPLETION_JOB] = self.completion_service.run_completion_pass

    def _lock_path(self, job_name: str) -> str:
        return os.path.join(self.lock_dir, f"{job_name}.lock")

    def run_once(self, job_name: str):
        """Run a single pass under its file lock; returns None when another process holds it"""
        if job_name not in self.jobs:
            raise ValueError(f"Unknown job '{job_name}'. Choose from: {sorted(self.jobs)}")

        lock = FileLock(self._lock_path(job_name), timeout=0)
        try:
            with lock:
                return self.jobs[job_name]()
        except Timeout:
            logger.info(f"Skipping {job_name} pass: lock held by another worker")
            return None

    def _build_scheduler(self, blocking: bool):
        scheduler_cls = BlockingScheduler if blocking else BackgroundScheduler
        scheduler = scheduler_cls(timezone=get_local_timezone())

        intervals = [(DISPATCH_JOB, self.dispatch_interval), (FOLLOW_UP_JOB, self.follow_up_interval)]
        if self.auto_complete and COMPLETION_JOB in self.jobs:
            intervals.append((COMPLETION_JOB, self.dispatch_interval))

        for job_name, seconds in intervals:
            scheduler.add_job(
                self.run_once,
                IntervalTrigger(seconds=seconds),
                args=[job_name],
                id=job_name,
                name=f"{job_name} pass",
                replace_existing=True,
                max_instances=1,
                coalesce=True
            )
            logger.info(f"Scheduled {job_name} pass every {seconds}s")
        return scheduler

    def start(self, blocking: bool = True):
        if self._scheduler is not None:
            logger.warning("ReminderWorker already running")
            return

        self._scheduler = self._build_scheduler(blocking)
        logger.info("ReminderWorker starting")
        try:
            self._scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("ReminderWorker interrupted")
            self.stop()

    def stop(self):
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=True)
        self._scheduler = None
        logger.info("ReminderWorker stopped")


def build_services(db_path: Optional[str] = None, senders=None, clock=get_current_time):
    """Wire repositories, senders and services against one database file"""
    db_path = db_path or config.DB_PATH
    db_dir = os.path.dirname(db_path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)

    reminder_db = ReminderDB(db_path)
    appointment_db = AppointmentDB(db_path)
    contact_db = ContactDB(db_path)
    senders = build_senders() if senders is None else senders

    return {
        "appointments": appointment_db,
        "reminders": ReminderService(reminder_db, appointment_db, contact_db, senders, clock=clock),
        "follow_ups": FollowUpService(appointment_db, contact_db, senders, clock=clock),
        "completion": CompletionService(appointment_db, clock=clock),
        "responses": ResponseService(reminder_db, appointment_db, senders, clock=clock),
    }


def build_worker(services: Dict) -> ReminderWorker:
    return ReminderWorker(services["reminders"], services["follow_ups"], services["completion"])
