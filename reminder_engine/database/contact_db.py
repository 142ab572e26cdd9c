import sqlite3
import os
from typing import Optional
from ..exceptions import ReferentialIntegrityError, RepositoryError
from ..models.contact import Doctor, Hospital, NotificationPreferences, User
from ..utils.config import config
from ..utils.date_utils import parse_db_time, to_db_time
import logging

logger = logging.getLogger(__name__)


def _parse_intervals(raw: Optional[str]):
    if not raw:
        return list(config.DEFAULT_REMINDER_INTERVALS)
    return [int(part) for part in raw.split(",") if part.strip()]


class ContactDB:
    """Users (patients and doctor accounts), doctor profiles and hospitals"""

    def __init__(self, db_path: str = "data/appointments.db"):
        self.db_path = db_path
        if os.path.dirname(db_path):
            os.makedirs(os.path.dirname(db_path), exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self):
        """Initialize users, doctors and hospitals tables"""
        try:
            conn = self._connect()
            try:
                conn.executescript("""
                    CREATE TABLE IF NOT EXISTS users (
                        user_id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        phone TEXT,
                        email TEXT,
                        role TEXT NOT NULL DEFAULT 'patient',
                        notify_sms INTEGER DEFAULT 0,
                        notify_whatsapp INTEGER DEFAULT 1,
                        notify_email INTEGER DEFAULT 0,
                        reminder_intervals TEXT DEFAULT '24,1',
                        created_at TEXT NOT NULL
                    );
                    CREATE TABLE IF NOT EXISTS hospitals (
                        hospital_id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        address TEXT
                    );
                    CREATE TABLE IF NOT EXISTS doctors (
                        doctor_id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL UNIQUE REFERENCES users (user_id),
                        specialization TEXT,
                        hospital_id TEXT
                    );
                """)
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error initializing contact tables: {e}")
            raise RepositoryError(f"Cannot initialize contact tables: {e}") from e

    def _fetch_one(self, sql: str, params: tuple) -> Optional[sqlite3.Row]:
        try:
            conn = self._connect()
            try:
                return conn.execute(sql, params).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error querying contacts: {e}")
            raise RepositoryError(f"Contact query failed: {e}") from e

    @staticmethod
    def _preferences_from_row(row: sqlite3.Row) -> NotificationPreferences:
        return NotificationPreferences(
            sms=bool(row['notify_sms']),
            whatsapp=bool(row['notify_whatsapp']),
            email=bool(row['notify_email']),
            intervals=_parse_intervals(row['reminder_intervals'])
        )

    def create_user(self, user: User) -> User:
        """Create a new user account"""
        data = user.to_dict()
        try:
            conn = self._connect()
            try:
                with conn:
                    conn.execute("""
                        INSERT INTO users
                        (user_id, name, phone, email, role, notify_sms, notify_whatsapp,
                         notify_email, reminder_intervals, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """, (
                        user.user_id, user.name, user.phone, user.email, user.role,
                        data['notify_sms'], data['notify_whatsapp'], data['notify_email'],
                        data['reminder_intervals'], to_db_time(user.created_at)
                    ))
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error creating user: {e}")
            raise RepositoryError(f"Cannot create user {user.user_id}: {e}") from e
        return user

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID"""
        row = self._fetch_one("SELECT * FROM users WHERE user_id = ?", (user_id,))
        if not row:
            return None
        return User(
            user_id=row['user_id'],
            name=row['name'],
            phone=row['phone'],
            email=row['email'],
            role=row['role'],
            preferences=self._preferences_from_row(row),
            created_at=parse_db_time(row['created_at'])
        )

    def create_doctor(self, doctor: Doctor) -> Doctor:
        """
        Create a doctor profile. The owning user must already exist; the
        check and the insert share one transaction.
        """
        try:
            conn = self._connect()
            try:
                with conn:
                    owner = conn.execute(
                        "SELECT user_id FROM users WHERE user_id = ?", (doctor.user_id,)
                    ).fetchone()
                    if owner is None:
                        raise ReferentialIntegrityError(
                            f"Doctor {doctor.doctor_id} references unknown user {doctor.user_id}"
                        )
                    conn.execute("""
                        INSERT INTO doctors (doctor_id, user_id, specialization, hospital_id)
                        VALUES (?, ?, ?, ?)
                    """, (doctor.doctor_id, doctor.user_id, doctor.specialization, doctor.hospital_id))
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error creating doctor: {e}")
            raise RepositoryError(f"Cannot create doctor {doctor.doctor_id}: {e}") from e
        return doctor

    def get_doctor_by_id(self, doctor_id: str) -> Optional[Doctor]:
        """Get doctor profile joined with the owning user's contact details"""
        row = self._fetch_one("""
            SELECT d.doctor_id, d.user_id, d.specialization, d.hospital_id,
                   u.name, u.phone, u.email, u.notify_sms, u.notify_whatsapp,
                   u.notify_email, u.reminder_intervals
            FROM doctors d
            JOIN users u ON u.user_id = d.user_id
            WHERE d.doctor_id = ?
        """, (doctor_id,))
        if not row:
            return None
        return Doctor(
            doctor_id=row['doctor_id'],
            user_id=row['user_id'],
            specialization=row['specialization'],
            hospital_id=row['hospital_id'],
            name=row['name'],
            phone=row['phone'],
            email=row['email'],
            preferences=self._preferences_from_row(row)
        )

    def create_hospital(self, hospital: Hospital) -> Hospital:
        try:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(
                        "INSERT INTO hospitals (hospital_id, name, address) VALUES (?, ?, ?)",
                        (hospital.hospital_id, hospital.name, hospital.address)
                    )
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error creating hospital: {e}")
            raise RepositoryError(f"Cannot create hospital {hospital.hospital_id}: {e}") from e
        return hospital

    def get_hospital_by_id(self, hospital_id: str) -> Optional[Hospital]:
        row = self._fetch_one("SELECT * FROM hospitals WHERE hospital_id = ?", (hospital_id,))
        if not row:
            return None
        return Hospital(hospital_id=row['hospital_id'], name=row['name'], address=row['address'])
