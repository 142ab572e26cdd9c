from pydantic import BaseModel
from typing import Dict, Optional

from ..utils.validation import strip_channel_prefix


class InboundReply(BaseModel):
    """Channel-agnostic inbound message, as handed over by a messaging webhook"""
    from_address: str
    body_text: str = ""

    @classmethod
    def from_twilio(cls, form: Dict[str, str]) -> "InboundReply":
        """Adapt a Twilio SMS/WhatsApp webhook form (From, Body)"""
        return cls(
            from_address=strip_channel_prefix(form.get("From", "")),
            body_text=form.get("Body", "") or ""
        )


class ReplyOutcome(BaseModel):
    action: str  # confirmed, cancelled, reschedule_requested, ignored, no_reminder
    reminder_id: Optional[str] = None
    appointment_id: Optional[str] = None
    acknowledged: bool = False
