"""
Run registry - track ingestion and evaluation runs with status and row counts.
Thin IO layer for run lifecycle management.
"""

import sqlite3
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class RunStatus(str, Enum):
    """Enumeration of run statuses."""
    RUNNING = 'running'
    COMPLETED = 'completed'
    PARTIAL = 'partial'
    FAILED = 'failed'


class RunNotFoundError(Exception):
    """Raised when run ID is not found."""
    pass


def start_run(
    conn: sqlite3.Connection,
    job_name: str,
    started_at: Optional[datetime] = None
) -> int:
    """
    Start a new run and return its ID.

    Args:
        conn: SQLite connection
        job_name: Name of the job being run (e.g. 'performance', 'ingest_quotes')
        started_at: Start timestamp (defaults to now)

    Returns:
        Run ID for tracking this execution
    """
    if started_at is None:
        started_at = datetime.now()

    cursor = conn.execute(
        "INSERT INTO runs (job_name, started_at, status) VALUES (?, ?, ?)",
        (job_name, started_at.isoformat(), RunStatus.RUNNING.value)
    )
    conn.commit()
    return cursor.lastrowid


def finish_run(
    conn: sqlite3.Connection,
    run_id: int,
    status: RunStatus,
    finished_at: Optional[datetime] = None,
    series_in: Optional[int] = None,
    rows_out: Optional[int] = None,
    error_message: Optional[str] = None
) -> None:
    """
    Mark a run as finished with final status and counts.

    Args:
        conn: SQLite connection
        run_id: Run ID from start_run()
        status: Final status (COMPLETED, PARTIAL or FAILED)
        finished_at: End timestamp (defaults to now)
        series_in: Number of series (or raw rows) looked at
        rows_out: Number of result rows (or stored quotes) produced
        error_message: Error message if failed

    Raises:
        RunNotFoundError: If run_id doesn't exist
    """
    if finished_at is None:
        finished_at = datetime.now()

    cursor = conn.execute("SELECT run_id FROM runs WHERE run_id = ?", (run_id,))
    if cursor.fetchone() is None:
        raise RunNotFoundError(f"Run ID {run_id} not found")

    conn.execute("""
        UPDATE runs SET
            status = ?,
            finished_at = ?,
            series_in = ?,
            rows_out = ?,
            error_message = ?
        WHERE run_id = ?
    """, (RunStatus(status).value, finished_at.isoformat(), series_in, rows_out, error_message, run_id))

    conn.commit()


def get_run(conn: sqlite3.Connection, run_id: int) -> Dict[str, Any]:
    """
    Get status and counts for a run.

    Raises:
        RunNotFoundError: If run_id doesn't exist
    """
    cursor = conn.execute(f"SELECT {_COLUMNS} FROM runs WHERE run_id = ?", (run_id,))
    row = cursor.fetchone()
    if row is None:
        raise RunNotFoundError(f"Run ID {run_id} not found")

    return _row_to_run(row)


def list_recent_runs(
    conn: sqlite3.Connection,
    limit: int = 50,
    job_name: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    List recent runs, most recent first.

    Args:
        conn: SQLite connection
        limit: Maximum number of runs to return
        job_name: Filter by job name (optional)
    """
    if job_name:
        cursor = conn.execute(
            f"SELECT {_COLUMNS} FROM runs WHERE job_name = ? ORDER BY run_id DESC LIMIT ?",
            (job_name, limit)
        )
    else:
        cursor = conn.execute(
            f"SELECT {_COLUMNS} FROM runs ORDER BY run_id DESC LIMIT ?",
            (limit,)
        )

    return [_row_to_run(row) for row in cursor.fetchall()]


_COLUMNS = "run_id, job_name, started_at, finished_at, status, series_in, rows_out, error_message"


def _row_to_run(row: tuple) -> Dict[str, Any]:
    run_info = {
        'run_id': row[0],
        'job_name': row[1],
        'started_at': datetime.fromisoformat(row[2]) if row[2] else None,
        'finished_at': datetime.fromisoformat(row[3]) if row[3] else None,
        'status': RunStatus(row[4]),
        'series_in': row[5],
        'rows_out': row[6],
        'error_message': row[7]
    }

    if run_info['started_at'] and run_info['finished_at']:
        duration = run_info['finished_at'] - run_info['started_at']
        run_info['duration_seconds'] = duration.total_seconds()
    else:
        run_info['duration_seconds'] = None

    return run_info
