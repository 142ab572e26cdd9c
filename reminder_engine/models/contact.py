from pydantic import BaseModel, Field, validator
from typing import List, Optional
from datetime import datetime

from ..utils.config import config
from ..utils.date_utils import ensure_aware, normalize_intervals

USER_ROLES = ["patient", "doctor", "admin"]

# Priority used when a recipient has several channels enabled
CHANNEL_PRIORITY = ["whatsapp", "sms", "email"]


class NotificationPreferences(BaseModel):
    sms: bool = False
    whatsapp: bool = True
    email: bool = False
    intervals: List[int] = Field(default_factory=lambda: list(config.DEFAULT_REMINDER_INTERVALS))  # hours before the appointment

    @validator('intervals')
    def validate_intervals(cls, v):
        cleaned = normalize_intervals(v)
        if not cleaned:
            raise ValueError('At least one positive reminder interval is required')
        return cleaned

    def enabled_channels(self) -> List[str]:
        return [channel for channel in CHANNEL_PRIORITY if getattr(self, channel)]

    def preferred_channel(self) -> Optional[str]:
        channels = self.enabled_channels()
        return channels[0] if channels else None


class User(BaseModel):
    user_id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    role: str = "patient"
    preferences: NotificationPreferences = NotificationPreferences()
    created_at: datetime

    @validator('role')
    def validate_role(cls, v):
        if v not in USER_ROLES:
            raise ValueError(f'Role must be one of: {USER_ROLES}')
        return v

    @validator('created_at')
    def validate_timezone(cls, v):
        return ensure_aware(v)

    def address_for(self, channel: str) -> Optional[str]:
        """Contact string on file for a channel"""
        if channel == "email":
            return self.email or None
        return self.phone or None

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "name": self.name,
            "phone": self.phone or "",
            "email": self.email or "",
            "role": self.role,
            "notify_sms": int(self.preferences.sms),
            "notify_whatsapp": int(self.preferences.whatsapp),
            "notify_email": int(self.preferences.email),
            "reminder_intervals": ",".join(str(h) for h in self.preferences.intervals),
            "created_at": self.created_at.isoformat()
        }


class Doctor(BaseModel):
    """Doctor profile; always owned by a user account"""
    doctor_id: str
    user_id: str
    specialization: Optional[str] = None
    hospital_id: Optional[str] = None
    # resolved from the owning user
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    preferences: NotificationPreferences = NotificationPreferences()

    @property
    def display_name(self) -> str:
        name = self.name or "your doctor"
        return name if name.lower().startswith("dr") else f"Dr. {name}"

    def address_for(self, channel: str) -> Optional[str]:
        if channel == "email":
            return self.email or None
        return self.phone or None


class Hospital(BaseModel):
    hospital_id: str
    name: str
    address: Optional[str] = None
