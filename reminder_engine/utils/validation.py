import re
from typing import Optional

from .config import config

WHATSAPP_PREFIX = "whatsapp:"


def validate_email(email: str) -> bool:
    """Validate email format"""
    if not email:
        return False
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email.strip()))


def strip_channel_prefix(address: str) -> str:
    address = (address or "").strip()
    if address.lower().startswith(WHATSAPP_PREFIX):
        return address[len(WHATSAPP_PREFIX):].strip()
    return address


def normalize_phone(phone: str, country_code: Optional[str] = None) -> str:
    """
    Normalize a stored phone number to E.164.
    Local numbers with a leading 0 get the default country code
    (0700000000 -> +254700000000).
    """
    country_code = (country_code or config.DEFAULT_COUNTRY_CODE).lstrip("+")
    clean_phone = re.sub(r'[\s\-\(\)\.]', '', strip_channel_prefix(phone))
    if not clean_phone:
        return ""
    if clean_phone.startswith("+"):
        return clean_phone
    if clean_phone.startswith("00"):
        return "+" + clean_phone[2:]
    if clean_phone.startswith("0"):
        return f"+{country_code}{clean_phone.lstrip('0')}"
    if clean_phone.startswith(country_code):
        return "+" + clean_phone
    return f"+{country_code}{clean_phone}"


def validate_phone(phone: str, country_code: Optional[str] = None) -> bool:
    """Validate phone number after E.164 normalization"""
    if not phone:
        return False
    return bool(re.match(r'^\+[1-9]\d{7,14}$', normalize_phone(phone, country_code)))


def address_key(address: str) -> str:
    """
    Canonical lookup key for a contact address so inbound replies match
    the address a reminder was sent to.
    """
    address = strip_channel_prefix(address)
    if "@" in address:
        return address.lower()
    return normalize_phone(address)


def normalize_reply(text: str) -> str:
    return (text or "").strip().upper()
