from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple
from dateutil import parser
import pytz

from .config import config


def get_local_timezone():
    """Get the clinic timezone"""
    return pytz.timezone(config.TIMEZONE)


def get_current_time() -> datetime:
    """Get current datetime in the clinic timezone"""
    return datetime.now(get_local_timezone())


def ensure_aware(dt: datetime) -> datetime:
    """Attach the clinic timezone to naive datetimes"""
    if dt.tzinfo is None:
        return get_local_timezone().localize(dt)
    return dt


def to_db_time(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as a UTC ISO string so stored values sort lexically"""
    if dt is None:
        return None
    return ensure_aware(dt).astimezone(pytz.utc).isoformat()


def parse_db_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return ensure_aware(parser.isoparse(value))


def to_local(dt: datetime) -> datetime:
    return ensure_aware(dt).astimezone(get_local_timezone())


def format_date_for_display(dt: datetime) -> str:
    """Format date for user display, e.g. 'Monday, March 10, 2025'"""
    return to_local(dt).strftime("%A, %B %d, %Y")


def format_time_for_display(dt: datetime) -> str:
    """Format time for user display, e.g. '02:00 PM'"""
    return to_local(dt).strftime("%I:%M %p")


def normalize_intervals(intervals: Iterable[int]) -> List[int]:
    """Positive, de-duplicated hour offsets, largest first"""
    cleaned = {int(hours) for hours in intervals if int(hours) > 0}
    return sorted(cleaned, reverse=True)


def get_reminder_times(appointment_time: datetime, intervals: Iterable[int]) -> List[Tuple[int, datetime]]:
    """Calculate (offset_hours, scheduled_for) pairs for an appointment"""
    apt_dt = ensure_aware(appointment_time)
    return [(hours, apt_dt - timedelta(hours=hours)) for hours in normalize_intervals(intervals)]
