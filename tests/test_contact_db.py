import pytest

from reminder_engine.exceptions import ReferentialIntegrityError
from reminder_engine.models.contact import Doctor, NotificationPreferences, User

from conftest import local


def test_doctor_requires_existing_user(contact_db):
    with pytest.raises(ReferentialIntegrityError):
        contact_db.create_doctor(Doctor(doctor_id="D404", user_id="U404", specialization="Dermatology"))

    assert contact_db.get_doctor_by_id("D404") is None


def test_doctor_resolves_owner_contact_details(doctor):
    assert doctor.user_id == "U100"
    assert doctor.name == "Jane Mwangi"
    assert doctor.phone == "0722000111"
    assert doctor.display_name == "Dr. Jane Mwangi"
    assert doctor.preferences.enabled_channels() == ["sms"]


def test_user_preferences_round_trip(contact_db):
    contact_db.create_user(User(
        user_id="U200",
        name="Peter Kamau",
        email="peter@example.com",
        preferences=NotificationPreferences(whatsapp=False, email=True, intervals=[1, 48, 24, 24]),
        created_at=local(2025, 3, 1, 8, 0)
    ))

    user = contact_db.get_user_by_id("U200")

    assert user.preferences.intervals == [48, 24, 1]
    assert user.preferences.preferred_channel() == "email"
    assert user.address_for("sms") is None
    assert user.created_at == local(2025, 3, 1, 8, 0)


def test_intervals_must_be_positive():
    with pytest.raises(ValueError):
        NotificationPreferences(intervals=[0, -2])
