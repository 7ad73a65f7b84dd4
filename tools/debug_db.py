#!/usr/bin/env python3
"""
Database debugging utility for the ward portal
Run: python3 tools/debug_db.py
"""
import json
import sqlite3
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import DB_PATH
from core.database import USERS_KEY, HISTORY_KEY, DEATH_AUDITS_KEY

def print_section(title):
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")

def _load(cursor, key):
    cursor.execute("SELECT value, updated_at FROM kv_store WHERE key = ?", (key,))
    row = cursor.fetchone()
    if row is None:
        return None, None
    try:
        return json.loads(row['value']), row['updated_at']
    except json.JSONDecodeError:
        print(f"  ✗ Stored value for '{key}' is not valid JSON")
        return None, row['updated_at']

def view_all_data():
    """View all data in the database"""
    conn = sqlite3.connect(str(DB_PATH))
    conn.row_factory = sqlite3.Row
    cursor = conn.cursor()

    # Users
    print_section("USERS")
    users, updated = _load(cursor, USERS_KEY)
    for user in users or []:
        print(f"  {user.get('id')}: {user.get('username')} ({user.get('role')})")
        print(f"    Permissions: {', '.join(user.get('permissions') or []) or 'none'}")
    if updated:
        print(f"  Updated: {updated}")

    # Report history
    print_section("REPORT HISTORY")
    history, updated = _load(cursor, HISTORY_KEY)
    if history:
        for report in history:
            metadata = report.get('metadata', {})
            entries = report.get('entries', [])
            admissions = sum(e.get('admissions_u5', 0) + e.get('admissions_o5', 0) for e in entries)
            deaths = sum(e.get('deaths_u5', 0) + e.get('deaths_o5', 0) for e in entries)
            print(f"  {report.get('id')}: {metadata.get('month')} {metadata.get('year')} - {metadata.get('ward_name')}")
            print(f"    Admissions: {admissions}, Deaths: {deaths}, Entries: {len(entries)}")
            print()
        print(f"  Updated: {updated}")
    else:
        print("  No reports yet")

    # Death audits
    print_section("DEATH AUDITS")
    audits, updated = _load(cursor, DEATH_AUDITS_KEY)
    if audits:
        for audit in audits:
            print(f"  {audit.get('id')}: {audit.get('patient_name') or 'Unnamed'} (serial {audit.get('serial_number') or 'N/A'})")
            print(f"    Died: {audit.get('death_date') or 'N/A'}, Age: {audit.get('age') or '?'}, Diagnosis: {audit.get('diagnosis') or 'N/A'}")
        print(f"  Updated: {updated}")
    else:
        print("  No death audits yet")

    # Activity Log (last 10)
    print_section("ACTIVITY LOG (Last 10 Events)")
    cursor.execute("""
        SELECT * FROM audit_log
        ORDER BY timestamp DESC, id DESC
        LIMIT 10
    """)
    for row in cursor.fetchall():
        who = f"[{row['username']}]" if row['username'] else "[System]"
        print(f"  {row['timestamp']} {who}: {row['message']}")

    conn.close()

def reset_database():
    """Reset database to the seeded administrator only"""
    if DB_PATH.exists():
        DB_PATH.unlink()
        print("✓ Database deleted")

    from core.database import init_database
    init_database()
    print("✓ Database recreated with the administrator account")

def run_custom_query(query):
    """Run a custom SQL query"""
    conn = sqlite3.connect(str(DB_PATH))
    conn.row_factory = sqlite3.Row
    cursor = conn.cursor()

    try:
        cursor.execute(query)

        if query.strip().upper().startswith("SELECT"):
            rows = cursor.fetchall()
            if rows:
                print("  " + " | ".join(rows[0].keys()))
                print("  " + "-" * 60)
                for row in rows:
                    print("  " + " | ".join(str(v) for v in row))
            else:
                print("  No results")
        else:
            conn.commit()
            print(f"  ✓ Query executed. Rows affected: {cursor.rowcount}")
    except sqlite3.Error as e:
        print(f"  ✗ Error: {e}")
    finally:
        conn.close()

def interactive_mode():
    """Interactive SQL console"""
    print("\n" + "="*60)
    print("  INTERACTIVE MODE")
    print("="*60)
    print("  Enter SQL queries (or 'exit' to quit)")
    print("  Examples:")
    print("    SELECT key, updated_at FROM kv_store;")
    print("    SELECT * FROM audit_log ORDER BY id DESC LIMIT 20;")
    print("="*60 + "\n")

    while True:
        try:
            query = input("SQL> ").strip()
            if query.lower() in ['exit', 'quit', 'q']:
                break
            if query:
                run_custom_query(query)
                print()
        except KeyboardInterrupt:
            print("\n✓ Exiting interactive mode")
            break
        except EOFError:
            break

def main():
    if not DB_PATH.exists():
        print(f"✗ Database not found at: {DB_PATH}")
        print("  Run the Streamlit app first to create it.")
        return

    print(f"Database: {DB_PATH}")

    if len(sys.argv) > 1:
        command = sys.argv[1]

        if command == "view":
            view_all_data()
        elif command == "reset":
            confirm = input("⚠️  Reset database? This will DELETE all reports, audits and users! (yes/no): ")
            if confirm.lower() == "yes":
                reset_database()
            else:
                print("Cancelled")
        elif command == "sql":
            interactive_mode()
        elif command == "query":
            if len(sys.argv) > 2:
                query = " ".join(sys.argv[2:])
                run_custom_query(query)
            else:
                print("Usage: python3 tools/debug_db.py query SELECT * FROM audit_log;")
        else:
            print(f"Unknown command: {command}")
            print_help()
    else:
        # Default: view all data
        view_all_data()

def print_help():
    print("""
Usage: python3 tools/debug_db.py [command]

Commands:
  (none)       View all data in database (default)
  view         View all data in database
  reset        Delete everything and re-seed the administrator
  sql          Interactive SQL console
  query SQL    Run a custom SQL query

Examples:
  python3 tools/debug_db.py
  python3 tools/debug_db.py reset
  python3 tools/debug_db.py query "SELECT key, updated_at FROM kv_store"
""")

if __name__ == "__main__":
    main()
