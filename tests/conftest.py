from datetime import datetime, timedelta

import pytest
import pytz

from reminder_engine.database.appointment_db import AppointmentDB
from reminder_engine.database.contact_db import ContactDB
from reminder_engine.database.reminder_db import ReminderDB
from reminder_engine.models.appointment import Appointment
from reminder_engine.models.contact import Doctor, Hospital, NotificationPreferences, User
from reminder_engine.services.notification_service import SendResult
from reminder_engine.utils.config import config

NAIROBI = pytz.timezone("Africa/Nairobi")


def local(*args) -> datetime:
    return NAIROBI.localize(datetime(*args))


class FakeSender:
    """Records every send; can be told to fail or raise"""

    def __init__(self, channel: str, succeed: bool = True, raises: Exception = None):
        self.channel = channel
        self.succeed = succeed
        self.raises = raises
        self.calls = []

    def send(self, address, body, subject=None):
        self.calls.append({"address": address, "body": body, "subject": subject})
        if self.raises is not None:
            raise self.raises
        if self.succeed:
            return SendResult(success=True, provider_message_id=f"SM{len(self.calls)}")
        return SendResult(success=False, error="provider rejected message")


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def isolated_paths(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "LOGS_PATH", str(tmp_path / "logs"))
    monkeypatch.setattr(config, "LOCK_DIR", str(tmp_path / "locks"))
    monkeypatch.setattr(config, "TIMEZONE", "Africa/Nairobi")
    monkeypatch.setattr(config, "DEFAULT_COUNTRY_CODE", "254")


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "appointments.db")


@pytest.fixture
def reminder_db(db_path):
    return ReminderDB(db_path)


@pytest.fixture
def appointment_db(db_path):
    return AppointmentDB(db_path)


@pytest.fixture
def contact_db(db_path):
    return ContactDB(db_path)


@pytest.fixture
def clock():
    return FakeClock(local(2025, 3, 9, 9, 0))


@pytest.fixture
def senders():
    return {
        "whatsapp": FakeSender("whatsapp"),
        "sms": FakeSender("sms"),
        "email": FakeSender("email"),
    }


@pytest.fixture
def hospital(contact_db):
    return contact_db.create_hospital(Hospital(
        hospital_id="H001", name="Nairobi West Hospital", address="Gandhi Avenue, Nairobi"
    ))


@pytest.fixture
def patient(contact_db, clock):
    return contact_db.create_user(User(
        user_id="U001",
        name="Amina Otieno",
        phone="0700000000",
        email="amina@example.com",
        role="patient",
        preferences=NotificationPreferences(whatsapp=True, sms=False, email=False, intervals=[24, 1]),
        created_at=clock()
    ))


@pytest.fixture
def doctor(contact_db, hospital, clock):
    contact_db.create_user(User(
        user_id="U100",
        name="Jane Mwangi",
        phone="0722000111",
        email="jane.mwangi@example.com",
        role="doctor",
        preferences=NotificationPreferences(whatsapp=False, sms=True, email=False),
        created_at=clock()
    ))
    contact_db.create_doctor(Doctor(
        doctor_id="D001", user_id="U100", specialization="Cardiology", hospital_id=hospital.hospital_id
    ))
    return contact_db.get_doctor_by_id("D001")


@pytest.fixture
def make_appointment(appointment_db, patient, doctor, hospital, clock):
    counter = {"n": 0}

    def _make(start_time, status="scheduled", **kwargs):
        counter["n"] += 1
        appointment = Appointment(
            appointment_id=kwargs.pop("appointment_id", f"A{counter['n']:03d}"),
            patient_id=kwargs.pop("patient_id", patient.user_id),
            doctor_id=kwargs.pop("doctor_id", doctor.doctor_id),
            hospital_id=kwargs.pop("hospital_id", hospital.hospital_id),
            start_time=start_time,
            status=status,
            created_at=clock(),
            **kwargs
        )
        return appointment_db.create_appointment(appointment)

    return _make
