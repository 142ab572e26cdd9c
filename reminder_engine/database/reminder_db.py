import sqlite3
import os
from typing import Dict, List, Optional
from datetime import datetime
from ..exceptions import RepositoryError
from ..models.reminder import ChannelSnapshot, Reminder
from ..models.status import PENDING, SENT, FAILED, REMINDER_STATUSES, reminder_sources
from ..utils.date_utils import parse_db_time, to_db_time
from ..utils.validation import address_key
import logging

logger = logging.getLogger(__name__)


class ReminderDB:
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
        """Initialize reminders table"""
        try:
            conn = self._connect()
            try:
                conn.executescript("""
                    CREATE TABLE IF NOT EXISTS reminders (
                        reminder_id TEXT PRIMARY KEY,
                        appointment_id TEXT NOT NULL,
                        recipient_id TEXT NOT NULL,
                        recipient_role TEXT NOT NULL,
                        channel TEXT NOT NULL,
                        address TEXT NOT NULL,
                        address_key TEXT NOT NULL,
                        purpose TEXT NOT NULL,
                        offset_hours INTEGER NOT NULL,
                        scheduled_for TEXT NOT NULL,
                        status TEXT DEFAULT 'pending',
                        message TEXT,
                        sent_at TEXT,
                        response TEXT,
                        response_at TEXT,
                        failure_reason TEXT,
                        pref_sms INTEGER DEFAULT 0,
                        pref_whatsapp INTEGER DEFAULT 0,
                        pref_email INTEGER DEFAULT 0,
                        created_at TEXT NOT NULL
                    );
                    CREATE INDEX IF NOT EXISTS idx_reminders_due ON reminders (status, scheduled_for);
                    CREATE INDEX IF NOT EXISTS idx_reminders_appointment ON reminders (appointment_id);
                    CREATE INDEX IF NOT EXISTS idx_reminders_address ON reminders (address_key, status);
                """)
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error initializing reminders table: {e}")
            raise RepositoryError(f"Cannot initialize reminders table: {e}") from e

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        return Reminder(
            reminder_id=row['reminder_id'],
            appointment_id=row['appointment_id'],
            recipient_id=row['recipient_id'],
            recipient_role=row['recipient_role'],
            channel=row['channel'],
            address=row['address'],
            purpose=row['purpose'],
            offset_hours=row['offset_hours'],
            scheduled_for=parse_db_time(row['scheduled_for']),
            status=row['status'],
            message=row['message'],
            sent_at=parse_db_time(row['sent_at']),
            response=row['response'],
            response_at=parse_db_time(row['response_at']),
            failure_reason=row['failure_reason'],
            preferences=ChannelSnapshot(
                sms=bool(row['pref_sms']),
                whatsapp=bool(row['pref_whatsapp']),
                email=bool(row['pref_email'])
            ),
            created_at=parse_db_time(row['created_at'])
        )

    @staticmethod
    def _insert_values(reminder: Reminder) -> tuple:
        return (
            reminder.reminder_id, reminder.appointment_id, reminder.recipient_id,
            reminder.recipient_role, reminder.channel, reminder.address,
            address_key(reminder.address), reminder.purpose, reminder.offset_hours,
            to_db_time(reminder.scheduled_for), reminder.status, reminder.message,
            to_db_time(reminder.sent_at), reminder.response, to_db_time(reminder.response_at),
            reminder.failure_reason,
            int(reminder.preferences.sms), int(reminder.preferences.whatsapp),
            int(reminder.preferences.email), to_db_time(reminder.created_at)
        )

    def _query(self, sql: str, params: tuple = ()) -> List[Reminder]:
        try:
            conn = self._connect()
            try:
                rows = conn.execute(sql, params).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error querying reminders: {e}")
            raise RepositoryError(f"Reminder query failed: {e}") from e
        return [self._row_to_reminder(row) for row in rows]

    def create_reminder(self, reminder: Reminder) -> Reminder:
        """Create a new reminder"""
        return self.create_reminders([reminder])[0]

    def create_reminders(self, reminders: List[Reminder]) -> List[Reminder]:
        """Insert a batch of reminders in one transaction"""
        if not reminders:
            return []
        try:
            conn = self._connect()
            try:
                with conn:
                    conn.executemany("""
                        INSERT INTO reminders
                        (reminder_id, appointment_id, recipient_id, recipient_role, channel,
                         address, address_key, purpose, offset_hours, scheduled_for, status,
                         message, sent_at, response, response_at, failure_reason, pref_sms,
                         pref_whatsapp, pref_email, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """, [self._insert_values(r) for r in reminders])
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error creating reminders: {e}")
            raise RepositoryError(f"Cannot create reminders: {e}") from e
        return reminders

    def get_reminder_by_id(self, reminder_id: str) -> Optional[Reminder]:
        rows = self._query("SELECT * FROM reminders WHERE reminder_id = ?", (reminder_id,))
        return rows[0] if rows else None

    def get_reminders_by_appointment(self, appointment_id: str) -> List[Reminder]:
        """Get all reminders for an appointment"""
        return self._query("""
            SELECT * FROM reminders
            WHERE appointment_id = ?
            ORDER BY scheduled_for
        """, (appointment_id,))

    def find_pending(self, now: datetime) -> List[Reminder]:
        """Get reminders that need to be sent"""
        return self._query("""
            SELECT * FROM reminders
            WHERE status = ?
            AND scheduled_for <= ?
            ORDER BY scheduled_for
        """, (PENDING, to_db_time(now)))

    def find_upcoming_for_recipient(self, recipient_id: str, now: datetime) -> List[Reminder]:
        return self._query("""
            SELECT * FROM reminders
            WHERE recipient_id = ?
            AND status = ?
            AND scheduled_for >= ?
            ORDER BY scheduled_for
        """, (recipient_id, PENDING, to_db_time(now)))

    def find_most_recent_sent_by_address(self, address: str) -> Optional[Reminder]:
        """Latest sent patient reminder for an address; doctor reminders never ask for a reply"""
        rows = self._query("""
            SELECT * FROM reminders
            WHERE address_key = ?
            AND recipient_role = 'patient'
            AND status = ?
            ORDER BY sent_at DESC
            LIMIT 1
        """, (address_key(address), SENT))
        return rows[0] if rows else None

    def _update(self, reminder_id: str, target: str, fields: Dict) -> bool:
        """Conditional single-row update; only moves forward along the status machine"""
        sources = sorted(reminder_sources(target))
        set_clauses = ["status = ?"] + [f"{field} = ?" for field in fields]
        values = [target] + list(fields.values()) + [reminder_id] + sources
        query = (
            f"UPDATE reminders SET {', '.join(set_clauses)} "
            f"WHERE reminder_id = ? AND status IN ({', '.join('?' for _ in sources)})"
        )
        try:
            conn = self._connect()
            try:
                with conn:
                    cursor = conn.execute(query, values)
                    updated = cursor.rowcount == 1
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error updating reminder {reminder_id}: {e}")
            raise RepositoryError(f"Cannot update reminder {reminder_id}: {e}") from e

        if not updated:
            logger.warning(f"Reminder {reminder_id} not moved to '{target}' (missing or already final)")
        return updated

    def mark_sent(self, reminder_id: str, message: str, sent_at: datetime) -> bool:
        return self._update(reminder_id, SENT, {
            'message': message,
            'sent_at': to_db_time(sent_at)
        })

    def mark_failed(self, reminder_id: str, reason: Optional[str] = None, message: Optional[str] = None) -> bool:
        fields = {'failure_reason': reason}
        if message is not None:
            fields['message'] = message
        return self._update(reminder_id, FAILED, fields)

    def update_status(self, reminder_id: str, status: str, response_text: Optional[str] = None,
                      responded_at: Optional[datetime] = None) -> bool:
        """Move a reminder to `status`, recording the recipient's reply when given"""
        if status not in REMINDER_STATUSES:
            raise ValueError(f"Unknown reminder status: {status}")
        fields = {}
        if response_text is not None:
            fields['response'] = response_text
            fields['response_at'] = to_db_time(responded_at or datetime.now().astimezone())
        return self._update(reminder_id, status, fields)

    def count_by_status(self) -> Dict[str, int]:
        try:
            conn = self._connect()
            try:
                rows = conn.execute(
                    "SELECT status, COUNT(*) AS total FROM reminders GROUP BY status"
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error counting reminders: {e}")
            raise RepositoryError(f"Reminder stats query failed: {e}") from e

        counts = {status: 0 for status in REMINDER_STATUSES}
        counts.update({row['status']: row['total'] for row in rows})
        return counts
