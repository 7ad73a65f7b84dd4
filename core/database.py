# database.py
# Database initialization and connection management
import json
import logging
import sqlite3

from core.config import DB_PATH, SEED_ADMIN_ID, ADMIN_USERNAME, ADMIN_PASSWORD, ALL_TABS

logger = logging.getLogger(__name__)

# Storage keys for the persisted collections
USERS_KEY = "app_users"
HISTORY_KEY = "hospital_history"
DEATH_AUDITS_KEY = "death_audits"

# SQL schema definitions
CREATE_KV_STORE_TABLE = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

CREATE_AUDIT_LOG_TABLE = """
CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT,
    timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    message TEXT NOT NULL
);
"""

class DatabaseConnection:
    """Database connection manager for Streamlit compatibility"""

    @classmethod
    def get_connection(cls) -> sqlite3.Connection:
        """Get a fresh database connection for each operation"""
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(DB_PATH),
            timeout=30.0,  # Wait up to 30 seconds for locks
            check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        # Enable WAL mode for better concurrency
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

def seed_admin_user() -> dict:
    """The administrator account that always exists"""
    return {
        "id": SEED_ADMIN_ID,
        "username": ADMIN_USERNAME,
        "password": ADMIN_PASSWORD,
        "role": "admin",
        "permissions": list(ALL_TABS),
    }

def init_database():
    """Initialize database schema and seed the admin account if needed"""
    conn = DatabaseConnection.get_connection()
    try:
        cursor = conn.cursor()

        # Create all tables (IF NOT EXISTS handles re-runs safely)
        cursor.execute(CREATE_KV_STORE_TABLE)
        cursor.execute(CREATE_AUDIT_LOG_TABLE)
        conn.commit()

        cursor.execute("SELECT COUNT(*) FROM kv_store WHERE key = ?", (USERS_KEY,))
        if cursor.fetchone()[0] == 0:
            seed_users(cursor)
            conn.commit()
    except sqlite3.OperationalError as e:
        # Locked by another session; tables already exist from a previous run
        logger.warning("Database initialization skipped: %s", e)
    finally:
        conn.close()

def seed_users(cursor):
    """Seed the user list with the administrator account"""
    cursor.execute(
        "INSERT INTO kv_store (key, value) VALUES (?, ?)",
        (USERS_KEY, json.dumps([seed_admin_user()]))
    )
    cursor.execute(
        "INSERT INTO audit_log (username, message) VALUES (?, ?)",
        (None, "Database initialized with administrator account")
    )
    logger.info("Seeded user store with administrator '%s'", ADMIN_USERNAME)
