from pydantic import BaseModel, validator
from typing import Optional
from datetime import datetime

from .status import APPOINTMENT_STATUSES, SCHEDULED
from ..utils.date_utils import ensure_aware

APPOINTMENT_TYPES = ["consultation", "follow-up", "emergency", "routine"]


class Appointment(BaseModel):
    appointment_id: str
    patient_id: str
    doctor_id: str
    hospital_id: Optional[str] = None
    start_time: datetime
    appointment_type: str = "consultation"
    reason: Optional[str] = None
    notes: Optional[str] = None
    status: str = SCHEDULED
    follow_up_sent: bool = False
    original_appointment_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @validator('start_time', 'created_at', 'updated_at')
    def validate_timezone(cls, v):
        if v is None:
            return v
        return ensure_aware(v)

    @validator('appointment_type')
    def validate_type(cls, v):
        if v not in APPOINTMENT_TYPES:
            raise ValueError(f'Appointment type must be one of: {APPOINTMENT_TYPES}')
        return v

    @validator('status')
    def validate_status(cls, v):
        if v not in APPOINTMENT_STATUSES:
            raise ValueError(f'Status must be one of: {list(APPOINTMENT_STATUSES)}')
        return v
