"""
Appointment and reminder status machines.

Repositories use the *_sources helpers to issue conditional updates
(UPDATE ... WHERE status IN (...)) so a row only ever moves forward.
"""
from typing import Dict, FrozenSet, Optional

# Appointment states
PENDING = "pending"
SCHEDULED = "scheduled"
CONFIRMED = "confirmed"
COMPLETED = "completed"
CANCELLED = "cancelled"
RESCHEDULE_REQUESTED = "reschedule_requested"

# Reminder-only states
SENT = "sent"
FAILED = "failed"

APPOINTMENT_STATUSES = (PENDING, SCHEDULED, CONFIRMED, COMPLETED, CANCELLED, RESCHEDULE_REQUESTED)
REMINDER_STATUSES = (PENDING, SENT, CONFIRMED, CANCELLED, RESCHEDULE_REQUESTED, FAILED)

APPOINTMENT_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PENDING: frozenset({SCHEDULED, CONFIRMED, CANCELLED, RESCHEDULE_REQUESTED}),
    SCHEDULED: frozenset({CONFIRMED, COMPLETED, CANCELLED, RESCHEDULE_REQUESTED}),
    CONFIRMED: frozenset({COMPLETED, CANCELLED, RESCHEDULE_REQUESTED}),
    RESCHEDULE_REQUESTED: frozenset({SCHEDULED, CANCELLED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}

REMINDER_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PENDING: frozenset({SENT, FAILED}),
    SENT: frozenset({CONFIRMED, CANCELLED, RESCHEDULE_REQUESTED}),
    CONFIRMED: frozenset(),
    CANCELLED: frozenset(),
    RESCHEDULE_REQUESTED: frozenset(),
    FAILED: frozenset(),
}

# Terminal appointment states: reminders for these are never dispatched
INACTIVE_APPOINTMENT_STATUSES = frozenset({COMPLETED, CANCELLED})

# Appointment states a follow-up booking can be in
OPEN_APPOINTMENT_STATUSES = (PENDING, SCHEDULED, CONFIRMED)

# Normalized reply text -> target status (same for reminder and appointment)
REPLY_TRANSITIONS: Dict[str, str] = {
    "YES": CONFIRMED,
    "NO": CANCELLED,
    "RESCHEDULE": RESCHEDULE_REQUESTED,
}


def can_transition_appointment(current: str, target: str) -> bool:
    return target in APPOINTMENT_TRANSITIONS.get(current, frozenset())


def can_transition_reminder(current: str, target: str) -> bool:
    return target in REMINDER_TRANSITIONS.get(current, frozenset())


def _sources(transitions: Dict[str, FrozenSet[str]], target: str) -> FrozenSet[str]:
    return frozenset(state for state, targets in transitions.items() if target in targets)


def appointment_sources(target: str) -> FrozenSet[str]:
    """States an appointment may be in to move to `target`"""
    return _sources(APPOINTMENT_TRANSITIONS, target)


def reminder_sources(target: str) -> FrozenSet[str]:
    """States a reminder may be in to move to `target`"""
    return _sources(REMINDER_TRANSITIONS, target)


def reply_target(normalized_reply: str) -> Optional[str]:
    return REPLY_TRANSITIONS.get(normalized_reply)
