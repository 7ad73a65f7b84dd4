# db_operations.py
# Load/save operations for the persisted collections and the activity log
import json
import logging
from typing import Any, List, Optional

from core.database import DatabaseConnection, USERS_KEY, HISTORY_KEY, DEATH_AUDITS_KEY, seed_admin_user
from core.models import WorksheetState, DeathAuditEntry, User, AuditEvent

logger = logging.getLogger(__name__)

# ========================================
# Key-value store
# ========================================

def load_value(key: str, default: Any = None) -> Any:
    """Read a JSON value; missing or unreadable keys give the default"""
    conn = DatabaseConnection.get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
        row = cursor.fetchone()
    finally:
        conn.close()

    if row is None:
        return default
    try:
        return json.loads(row[0])
    except json.JSONDecodeError as e:
        logger.warning("Stored value for '%s' is not valid JSON, using default: %s", key, e)
        return default

def save_value(key: str, value: Any) -> None:
    """Write a JSON value, replacing any previous one"""
    conn = DatabaseConnection.get_connection()
    try:
        conn.execute("""
            INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
        """, (key, json.dumps(value)))
        conn.commit()
    finally:
        conn.close()

def load_records(key: str) -> Optional[List[dict]]:
    """Read a JSON array of objects; None when the key is absent or holds another shape"""
    data = load_value(key)
    if data is None:
        return None
    if not isinstance(data, list):
        logger.warning("Stored value for '%s' is %s, not a list; ignoring it", key, type(data).__name__)
        return None
    records = [item for item in data if isinstance(item, dict)]
    if len(records) != len(data):
        logger.warning("Dropped %d non-object items stored under '%s'", len(data) - len(records), key)
    return records

# ========================================
# Users
# ========================================

def get_all_users() -> List[User]:
    """Registered users; a fresh store holds only the administrator"""
    data = load_records(USERS_KEY)
    if data is None:
        data = [seed_admin_user()]
    return [User.from_dict(u) for u in data]

def save_users(users: List[User]) -> None:
    save_value(USERS_KEY, [u.to_dict() for u in users])

# ========================================
# Report history
# ========================================

def get_report_history() -> List[WorksheetState]:
    return [WorksheetState.from_dict(r) for r in load_records(HISTORY_KEY) or []]

def save_report_history(history: List[WorksheetState]) -> None:
    save_value(HISTORY_KEY, [r.to_dict() for r in history])

# ========================================
# Death audits
# ========================================

def get_death_audits() -> List[DeathAuditEntry]:
    return [DeathAuditEntry.from_dict(a) for a in load_records(DEATH_AUDITS_KEY) or []]

def save_death_audits(audits: List[DeathAuditEntry]) -> None:
    save_value(DEATH_AUDITS_KEY, [a.to_dict() for a in audits])

# ========================================
# Activity Log Operations
# ========================================

def log_event(message: str, username: Optional[str] = None) -> int:
    """Record a user-visible action"""
    conn = DatabaseConnection.get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO audit_log (username, message)
            VALUES (?, ?)
        """, (username, message))
        conn.commit()
        return cursor.lastrowid
    finally:
        conn.close()

def get_recent_logs(limit: int = 50) -> List[AuditEvent]:
    """Get recent activity log entries, newest first"""
    conn = DatabaseConnection.get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT id, username, strftime('%Y-%m-%d %H:%M:%S', timestamp) as ts, message
            FROM audit_log
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
        """, (limit,))
        rows = cursor.fetchall()
    finally:
        conn.close()

    return [AuditEvent(ts=row[2], msg=row[3], id=row[0], username=row[1]) for row in rows]
