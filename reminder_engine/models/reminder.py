from pydantic import BaseModel, validator
from typing import Optional
from datetime import datetime

from .status import REMINDER_STATUSES, PENDING
from ..utils.date_utils import ensure_aware

CHANNELS = ["sms", "whatsapp", "email"]
RECIPIENT_ROLES = ["patient", "doctor"]
PURPOSES = ["confirmation", "reminder"]


class ChannelSnapshot(BaseModel):
    """Channel preferences copied onto a reminder when it is created"""
    sms: bool = False
    whatsapp: bool = False
    email: bool = False


class Reminder(BaseModel):
    reminder_id: str
    appointment_id: str
    recipient_id: str
    recipient_role: str = "patient"
    channel: str  # sms, whatsapp, email
    address: str  # raw contact string at creation time
    purpose: str = "reminder"  # confirmation, reminder
    offset_hours: int
    scheduled_for: datetime
    status: str = PENDING
    message: Optional[str] = None
    sent_at: Optional[datetime] = None
    response: Optional[str] = None
    response_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    preferences: ChannelSnapshot = ChannelSnapshot()
    created_at: datetime

    @validator('scheduled_for', 'sent_at', 'response_at', 'created_at')
    def validate_timezone(cls, v):
        if v is None:
            return v
        return ensure_aware(v)

    @validator('channel')
    def validate_channel(cls, v):
        if v not in CHANNELS:
            raise ValueError(f'Channel must be one of: {CHANNELS}')
        return v

    @validator('recipient_role')
    def validate_role(cls, v):
        if v not in RECIPIENT_ROLES:
            raise ValueError(f'Recipient role must be one of: {RECIPIENT_ROLES}')
        return v

    @validator('purpose')
    def validate_purpose(cls, v):
        if v not in PURPOSES:
            raise ValueError(f'Purpose must be one of: {PURPOSES}')
        return v

    @validator('status')
    def validate_status(cls, v):
        if v not in REMINDER_STATUSES:
            raise ValueError(f'Status must be one of: {list(REMINDER_STATUSES)}')
        return v
