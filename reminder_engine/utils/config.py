import os
import logging
from typing import List
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int_list(name: str, default: str) -> List[int]:
    raw = os.getenv(name, default)
    return [int(part) for part in raw.split(",") if part.strip()]


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


class Config:
    """Configuration management"""

    # Twilio (SMS + WhatsApp)
    TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
    TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")
    TWILIO_WHATSAPP_NUMBER = os.getenv("TWILIO_WHATSAPP_NUMBER")

    # Email Configuration
    SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    EMAIL_USER = os.getenv("EMAIL_USER")
    EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD")
    EMAIL_FROM = os.getenv("EMAIL_FROM", EMAIL_USER)

    # Database
    DB_PATH = os.getenv("DB_PATH", "data/appointments.db")

    # Scheduling
    TIMEZONE = os.getenv("TIMEZONE", "Africa/Nairobi")
    DISPATCH_INTERVAL_SECONDS = int(os.getenv("DISPATCH_INTERVAL_SECONDS", "60"))
    FOLLOWUP_INTERVAL_SECONDS = int(os.getenv("FOLLOWUP_INTERVAL_SECONDS", "3600"))
    DEFAULT_REMINDER_INTERVALS = _env_int_list("DEFAULT_REMINDER_INTERVALS", "24,1")
    REMIND_DOCTORS = _env_bool("REMIND_DOCTORS", False)
    FOLLOWUP_WINDOW_DAYS = int(os.getenv("FOLLOWUP_WINDOW_DAYS", "7"))
    NOTES_EXCERPT_LENGTH = int(os.getenv("NOTES_EXCERPT_LENGTH", "100"))
    AUTO_COMPLETE_ENABLED = _env_bool("AUTO_COMPLETE_ENABLED", False)
    AUTO_COMPLETE_GRACE_MINUTES = int(os.getenv("AUTO_COMPLETE_GRACE_MINUTES", "60"))

    # Delivery
    ENABLED_CHANNELS = _env_list("ENABLED_CHANNELS", "sms,whatsapp,email")
    SEND_TIMEOUT_SECONDS = int(os.getenv("SEND_TIMEOUT_SECONDS", "15"))
    DEFAULT_COUNTRY_CODE = os.getenv("DEFAULT_COUNTRY_CODE", "254")
    NOTIFICATIONS_SIMULATE = _env_bool("NOTIFICATIONS_SIMULATE", False)

    # Branding
    CLINIC_NAME = os.getenv("CLINIC_NAME", "Health AI Companion")

    # File Paths
    LOGS_PATH = os.getenv("LOGS_PATH", "logs")
    LOCK_DIR = os.getenv("LOCK_DIR", "data/locks")

    @classmethod
    def validate_config(cls) -> bool:
        """Validate provider credentials for the enabled channels"""
        required = {}
        if "sms" in cls.ENABLED_CHANNELS or "whatsapp" in cls.ENABLED_CHANNELS:
            required["TWILIO_ACCOUNT_SID"] = cls.TWILIO_ACCOUNT_SID
            required["TWILIO_AUTH_TOKEN"] = cls.TWILIO_AUTH_TOKEN
        if "sms" in cls.ENABLED_CHANNELS:
            required["TWILIO_PHONE_NUMBER"] = cls.TWILIO_PHONE_NUMBER
        if "whatsapp" in cls.ENABLED_CHANNELS:
            required["TWILIO_WHATSAPP_NUMBER"] = cls.TWILIO_WHATSAPP_NUMBER
        if "email" in cls.ENABLED_CHANNELS:
            required["EMAIL_USER"] = cls.EMAIL_USER
            required["EMAIL_PASSWORD"] = cls.EMAIL_PASSWORD

        missing = [name for name, value in required.items() if not value]
        if missing:
            logger.warning(f"Missing required environment variables: {', '.join(missing)}")
            return False

        return True

# Global config instance
config = Config()
