from __future__ import annotations

import sqlite3


def create_sqlite_connection(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 5000")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def ensure_custody_schema(conn: sqlite3.Connection) -> None:
    # AUTOINCREMENT keeps ids monotonic and never reuses a cancelled id; the
    # first allocated id is 1, leaving 0 free as the "available" slot sentinel.
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS custody_tasks (
            task_id INTEGER PRIMARY KEY AUTOINCREMENT,
            partner_id INTEGER NOT NULL,
            deposit_address TEXT NOT NULL,
            state TEXT NOT NULL,
            timelock_end_time INTEGER NOT NULL,
            deadline INTEGER NOT NULL,
            amount TEXT NOT NULL,
            btc_address TEXT NOT NULL,
            btc_pubkey BLOB NOT NULL,
            funding_tx_hash BLOB,
            funding_tx_out INTEGER,
            timelock_tx_hash BLOB,
            timelock_tx_out INTEGER,
            witness_script BLOB,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_custody_tasks_state ON custody_tasks(state)"
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS custody_partner_tasks (
            partner_id INTEGER NOT NULL,
            task_id INTEGER NOT NULL,
            PRIMARY KEY (partner_id, task_id)
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS custody_address_slots (
            deposit_address TEXT PRIMARY KEY,
            task_id INTEGER NOT NULL DEFAULT 0,
            updated_at INTEGER NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS custody_task_events (
            event_id TEXT PRIMARY KEY,
            task_id INTEGER NOT NULL,
            seq INTEGER NOT NULL,
            event_type TEXT NOT NULL,
            ts INTEGER NOT NULL,
            actor TEXT NOT NULL,
            payload_json TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_custody_task_events_task
        ON custody_task_events(task_id, seq)
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS custody_reserve (
            state_id INTEGER PRIMARY KEY CHECK(state_id = 1),
            balance TEXT NOT NULL,
            retired_total TEXT NOT NULL,
            updated_at INTEGER NOT NULL
        )
        """
    )
