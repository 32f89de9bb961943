"""
Database loaders - schema setup, connections and idempotent quote upserts.
Thin IO layer with focus on data integrity and idempotence.
"""

import os
import sqlite3
from datetime import date
from pathlib import Path
from typing import Iterable, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


def init_database(conn: sqlite3.Connection) -> None:
    """
    Initialize database with required tables.
    Idempotent - safe to call multiple times.

    Args:
        conn: SQLite connection
    """
    conn.execute("PRAGMA foreign_keys = ON")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS exchanges (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS instruments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            isin TEXT NOT NULL UNIQUE,
            nsin TEXT,
            name TEXT NOT NULL,
            type TEXT NOT NULL CHECK(type IN ('stock', 'fund', 'etf', 'certificate'))
        )
    """)

    # One quote per calendar day and series; last write wins
    conn.execute("""
        CREATE TABLE IF NOT EXISTS quotes (
            instrument_id INTEGER NOT NULL REFERENCES instruments(id),
            exchange_id INTEGER NOT NULL REFERENCES exchanges(id),
            date DATE NOT NULL,
            price REAL NOT NULL,
            PRIMARY KEY (instrument_id, exchange_id, date)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS runs (
            run_id INTEGER PRIMARY KEY AUTOINCREMENT,
            job_name TEXT NOT NULL,
            started_at DATETIME NOT NULL,
            finished_at DATETIME,
            status TEXT NOT NULL CHECK(status IN ('running', 'completed', 'partial', 'failed')),
            series_in INTEGER,
            rows_out INTEGER,
            error_message TEXT
        )
    """)

    conn.execute("CREATE INDEX IF NOT EXISTS idx_quotes_date ON quotes(date)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_runs_status ON runs(status)")

    conn.commit()


def get_connection(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Get SQLite connection with proper configuration.

    The connection may be shared across worker threads; callers serialize
    access (see SeriesStore).

    Args:
        db_path: Path to SQLite database file (default: QUOTES_DB_PATH env)

    Returns:
        Configured SQLite connection
    """
    if db_path is None:
        db_path = os.getenv('QUOTES_DB_PATH', './data/quotes.db')

    if db_path != ':memory:':
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")  # Better concurrency
    return conn


def upsert_quotes(
    conn: sqlite3.Connection,
    instrument_id: int,
    exchange_id: int,
    points: Iterable[Tuple[date, float]]
) -> Tuple[int, int]:
    """
    Upsert (date, price) points for one series.
    Idempotent - can be called multiple times with same data.

    Each row is written with INSERT ... ON CONFLICT DO UPDATE, so a writer
    on another connection that stores the same date first turns this insert
    into an overwrite instead of a constraint error. Points are applied in
    order, so a date repeated within one batch ends up with its last price.
    The batch commits as a whole or rolls back on any error.

    Args:
        conn: SQLite connection
        instrument_id: Registry id of the instrument
        exchange_id: Registry id of the exchange
        points: Iterable of (date, price) pairs

    Returns:
        Tuple of (inserted_count, updated_count); under concurrent writers
        to the same date the split is a best effort, the stored price is not
    """
    points = list(points)
    if not points:
        return (0, 0)

    inserted = 0
    updated = 0

    with conn:
        for quote_date, price in points:
            day = quote_date.isoformat()

            # Only used for the inserted/updated split
            exists = conn.execute(
                "SELECT COUNT(*) FROM quotes WHERE instrument_id = ? AND exchange_id = ? AND date = ?",
                (instrument_id, exchange_id, day)
            ).fetchone()[0] > 0

            conn.execute("""
                INSERT INTO quotes (instrument_id, exchange_id, date, price)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(instrument_id, exchange_id, date) DO UPDATE SET price = excluded.price
            """, (instrument_id, exchange_id, day, float(price)))

            if exists:
                updated += 1
            else:
                inserted += 1

    return (inserted, updated)
