# reminder_engine/notifications.py
import os
import datetime
import logging

from .utils.config import config

logger = logging.getLogger(__name__)

NOTIFICATIONS_LOG = "notifications.log"


def log_notification(message: str, level: str = "INFO", logs_dir: str = None):
    """Append a delivery audit line to logs/notifications.log with timestamp."""
    logs_dir = logs_dir or config.LOGS_PATH
    ts = datetime.datetime.now().isoformat()
    try:
        os.makedirs(logs_dir, exist_ok=True)
        with open(os.path.join(logs_dir, NOTIFICATIONS_LOG), "a", encoding="utf-8") as f:
            f.write(f"[{ts}] [{level}] {message}\n")
    except OSError as e:
        # best-effort audit trail
        logger.warning(f"Cannot write notification audit log in {logs_dir}: {e}")
    logger.log(getattr(logging, level, logging.INFO), f"[NOTIFY] {message}")


def preview(body: str, length: int = 50) -> str:
    body = " ".join((body or "").split())
    return body if len(body) <= length else body[:length] + "..."
