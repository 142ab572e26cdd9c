from typing import Iterable, List, Optional, Union

from ..models.contact import Doctor, NotificationPreferences, User

Contact = Union[User, Doctor]


def fallback_channel(contact: Contact, available: Optional[Iterable[str]] = None) -> Optional[str]:
    """Whatever contact is on file: phone -> sms, else email"""
    available = set(available) if available is not None else None
    for channel in ("sms", "email"):
        if contact.address_for(channel) and (available is None or channel in available):
            return channel
    return None


def select_channels(contact: Contact, preferences: NotificationPreferences,
                    available: Optional[Iterable[str]] = None) -> List[str]:
    """
    Enabled channels (priority order) for which the contact has an address,
    falling back to the contact on file when none qualifies.
    """
    available = set(available) if available is not None else None
    channels = [
        channel for channel in preferences.enabled_channels()
        if contact.address_for(channel) and (available is None or channel in available)
    ]
    if channels:
        return channels
    fallback = fallback_channel(contact, available)
    return [fallback] if fallback else []
