"""
Database module for the custody service.

Provides SQLite-based storage for registered users and sealed gene records.
Connections are thread-local and reused within a thread.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Optional, Union

DB_PATH = Path("data/genomicdao.db")

# Thread-local storage for connection pooling
_local = threading.local()


def configure(path: Union[str, Path]) -> None:
    """Point the module at a different database file."""
    global DB_PATH
    close_connection()
    DB_PATH = Path(path)


def _get_connection() -> sqlite3.Connection:
    """
    Get a thread-local database connection.
    A connection opened against a previous DB_PATH is replaced.
    """
    conn = getattr(_local, 'conn', None)
    if conn is None or getattr(_local, 'path', None) != DB_PATH:
        if conn is not None:
            conn.close()
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(DB_PATH), check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.row_factory = sqlite3.Row
        _local.conn = conn
        _local.path = DB_PATH
    return conn


@contextmanager
def _transaction():
    """
    Context manager for database transactions.
    Automatically commits on success, rolls back on failure.
    """
    conn = _get_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def init_db() -> None:
    """
    Initialize database schema.
    Safe to call multiple times (uses IF NOT EXISTS).
    """
    with _transaction() as conn:
        conn.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY,
            address TEXT NOT NULL UNIQUE,
            created_at INTEGER DEFAULT (strftime('%s', 'now'))
        );""")

        # Sealed artifacts are immutable once written.
        conn.execute("""
        CREATE TABLE IF NOT EXISTS gene_records (
            file_id TEXT PRIMARY KEY,
            owner_id INTEGER NOT NULL,
            content_hash BLOB NOT NULL,
            signature BLOB NOT NULL,
            sealed_data BLOB NOT NULL,
            created_at INTEGER DEFAULT (strftime('%s', 'now'))
        );""")
        conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_gene_records_owner
        ON gene_records(owner_id);""")


# ============================================================
# Users
# ============================================================

def insert_user(user_id: int, address: str) -> bool:
    """Insert a user. Returns False if the address is already registered."""
    try:
        with _transaction() as conn:
            conn.execute("INSERT INTO users(id, address) VALUES(?,?)", (user_id, address.lower()))
        return True
    except sqlite3.IntegrityError:
        return False


def find_user_id(address: str) -> Optional[int]:
    conn = _get_connection()
    cur = conn.execute("SELECT id FROM users WHERE address=?", (address.lower(),))
    row = cur.fetchone()
    return row['id'] if row else None


# ============================================================
# Gene records
# ============================================================

def insert_record(file_id: str, owner_id: int, content_hash: bytes, signature: bytes, sealed_data: bytes) -> None:
    with _transaction() as conn:
        conn.execute(
            "INSERT INTO gene_records(file_id, owner_id, content_hash, signature, sealed_data) "
            "VALUES(?,?,?,?,?)",
            (file_id, owner_id, content_hash, signature, sealed_data)
        )


def get_record(file_id: str) -> Optional[Dict[str, Any]]:
    conn = _get_connection()
    cur = conn.execute(
        "SELECT file_id, owner_id, content_hash, signature, sealed_data "
        "FROM gene_records WHERE file_id=?",
        (file_id,)
    )
    row = cur.fetchone()
    return dict(row) if row else None


def get_db_stats() -> Dict[str, int]:
    """Get database statistics for monitoring."""
    conn = _get_connection()
    stats = {}
    for table in ['users', 'gene_records']:
        cur = conn.execute(f"SELECT COUNT(*) as cnt FROM {table}")
        stats[f"{table}_count"] = cur.fetchone()['cnt']
    return stats


# ============================================================
# Test Support: Database Reset
# ============================================================

def reset_db() -> None:
    """
    Reset the database for test isolation.
    Clears all tables but preserves schema.
    """
    with _transaction() as conn:
        conn.execute("DELETE FROM users")
        conn.execute("DELETE FROM gene_records")


def close_connection() -> None:
    """Close the thread-local connection (for cleanup)."""
    conn = getattr(_local, 'conn', None)
    if conn is not None:
        conn.close()
        _local.conn = None
        _local.path = None
