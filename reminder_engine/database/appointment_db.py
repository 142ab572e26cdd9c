import sqlite3
import os
from typing import Dict, List, Optional
from datetime import datetime
from ..exceptions import RepositoryError
from ..models.appointment import Appointment
from ..models.status import (
    APPOINTMENT_STATUSES, COMPLETED, OPEN_APPOINTMENT_STATUSES, appointment_sources
)
from ..utils.date_utils import parse_db_time, to_db_time
import logging

logger = logging.getLogger(__name__)


class AppointmentDB:
    def __init__(self, db_path: str = "data/appointments.db"):
        self.db_path = db_path
        if os.path.dirname(db_path):
            os.makedirs(os.path.dirname(db_path), exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize appointments table"""
        try:
            conn = self._connect()
            try:
                conn.executescript("""
                    CREATE TABLE IF NOT EXISTS appointments (
                        appointment_id TEXT PRIMARY KEY,
                        patient_id TEXT NOT NULL,
                        doctor_id TEXT NOT NULL,
                        hospital_id TEXT,
                        start_time TEXT NOT NULL,
                        appointment_type TEXT NOT NULL,
                        reason TEXT,
                        notes TEXT,
                        status TEXT DEFAULT 'scheduled',
                        follow_up_sent INTEGER DEFAULT 0,
                        original_appointment_id TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT
                    );
                    CREATE INDEX IF NOT EXISTS idx_appointments_status ON appointments (status, start_time);
                    CREATE INDEX IF NOT EXISTS idx_appointments_origin ON appointments (original_appointment_id);
                """)
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error initializing appointments table: {e}")
            raise RepositoryError(f"Cannot initialize appointments table: {e}") from e

    @staticmethod
    def _row_to_appointment(row: sqlite3.Row) -> Appointment:
        return Appointment(
            appointment_id=row['appointment_id'],
            patient_id=row['patient_id'],
            doctor_id=row['doctor_id'],
            hospital_id=row['hospital_id'],
            start_time=parse_db_time(row['start_time']),
            appointment_type=row['appointment_type'],
            reason=row['reason'],
            notes=row['notes'],
            status=row['status'],
            follow_up_sent=bool(row['follow_up_sent']),
            original_appointment_id=row['original_appointment_id'],
            created_at=parse_db_time(row['created_at']),
            updated_at=parse_db_time(row['updated_at'])
        )

    def _query(self, sql: str, params: tuple = ()) -> List[Appointment]:
        try:
            conn = self._connect()
            try:
                rows = conn.execute(sql, params).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error querying appointments: {e}")
            raise RepositoryError(f"Appointment query failed: {e}") from e
        return [self._row_to_appointment(row) for row in rows]

    def _execute(self, sql: str, params: tuple) -> int:
        try:
            conn = self._connect()
            try:
                with conn:
                    cursor = conn.execute(sql, params)
                    return cursor.rowcount
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error writing appointments: {e}")
            raise RepositoryError(f"Appointment write failed: {e}") from e

    def create_appointment(self, appointment: Appointment) -> Appointment:
        """Create a new appointment"""
        self._execute("""
            INSERT INTO appointments
            (appointment_id, patient_id, doctor_id, hospital_id, start_time,
             appointment_type, reason, notes, status, follow_up_sent,
             original_appointment_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            appointment.appointment_id, appointment.patient_id, appointment.doctor_id,
            appointment.hospital_id, to_db_time(appointment.start_time),
            appointment.appointment_type, appointment.reason, appointment.notes,
            appointment.status, int(appointment.follow_up_sent),
            appointment.original_appointment_id, to_db_time(appointment.created_at),
            to_db_time(appointment.updated_at)
        ))
        return appointment

    def get_appointment_by_id(self, appointment_id: str) -> Optional[Appointment]:
        """Get appointment by ID"""
        rows = self._query("SELECT * FROM appointments WHERE appointment_id = ?", (appointment_id,))
        return rows[0] if rows else None

    def find_completed_needing_follow_up(self, since: datetime) -> List[Appointment]:
        """Completed appointments since `since` without a follow-up, oldest first"""
        return self._query("""
            SELECT * FROM appointments
            WHERE status = ?
            AND start_time >= ?
            AND follow_up_sent = 0
            ORDER BY start_time ASC
        """, (COMPLETED, to_db_time(since)))

    def find_follow_up_for(self, original_appointment_id: str) -> Optional[Appointment]:
        """Open appointment booked as a follow-up of `original_appointment_id`"""
        placeholders = ", ".join("?" for _ in OPEN_APPOINTMENT_STATUSES)
        rows = self._query(f"""
            SELECT * FROM appointments
            WHERE original_appointment_id = ?
            AND status IN ({placeholders})
            ORDER BY start_time ASC
            LIMIT 1
        """, (original_appointment_id, *OPEN_APPOINTMENT_STATUSES))
        return rows[0] if rows else None

    def find_due_for_completion(self, started_before: datetime, statuses: tuple) -> List[Appointment]:
        placeholders = ", ".join("?" for _ in statuses)
        return self._query(f"""
            SELECT * FROM appointments
            WHERE status IN ({placeholders})
            AND start_time <= ?
            ORDER BY start_time ASC
        """, (*statuses, to_db_time(started_before)))

    def mark_follow_up_sent(self, appointment_id: str, now: Optional[datetime] = None) -> bool:
        """Set the follow-up flag; returns False if it was already set"""
        updated = self._execute("""
            UPDATE appointments SET follow_up_sent = 1, updated_at = ?
            WHERE appointment_id = ? AND follow_up_sent = 0
        """, (to_db_time(now or datetime.now().astimezone()), appointment_id))
        return updated == 1

    def update_status(self, appointment_id: str, status: str, now: Optional[datetime] = None) -> bool:
        """Move an appointment to `status` if the status machine allows it"""
        if status not in APPOINTMENT_STATUSES:
            raise ValueError(f"Unknown appointment status: {status}")
        sources = sorted(appointment_sources(status))
        if not sources:
            return False
        placeholders = ", ".join("?" for _ in sources)
        updated = self._execute(f"""
            UPDATE appointments SET status = ?, updated_at = ?
            WHERE appointment_id = ? AND status IN ({placeholders})
        """, (status, to_db_time(now or datetime.now().astimezone()), appointment_id, *sources))

        if updated != 1:
            logger.warning(f"Appointment {appointment_id} not moved to '{status}'")
        return updated == 1

    def count_by_status(self) -> Dict[str, int]:
        try:
            conn = self._connect()
            try:
                rows = conn.execute(
                    "SELECT status, COUNT(*) AS total FROM appointments GROUP BY status"
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error counting appointments: {e}")
            raise RepositoryError(f"Appointment stats query failed: {e}") from e

        counts = {status: 0 for status in APPOINTMENT_STATUSES}
        counts.update({row['status']: row['total'] for row in rows})
        return counts
