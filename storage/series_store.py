"""
Series store - date-ordered quote points per (instrument, exchange) key.
Point, range and nearest-date queries over the SQLite quotes table.
"""

import sqlite3
import threading
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Set, Tuple

import pandas as pd

from storage.loaders import upsert_quotes
from storage.registry import InstrumentType, SeriesKey


class SeriesNotFoundError(LookupError):
    """Raised when a series, or a date within it, has no data."""
    pass


@dataclass(frozen=True)
class QuotePoint:
    date: date
    price: float


@dataclass(frozen=True)
class SeriesInfo:
    """Descriptive attributes of a series, carried through for reporting."""
    key: SeriesKey
    isin: str
    name: str
    instrument_type: InstrumentType
    exchange_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isin': self.isin,
            'name': self.name,
            'instrument_type': self.instrument_type.value,
            'exchange': self.exchange_name
        }


class SeriesStore:
    """
    Quote storage keyed by SeriesKey.

    Each store holds its own lock, so calls made through the same store
    instance are serialized and one store can be shared by worker threads
    when the connection was opened with check_same_thread=False. The lock
    does not cover other stores or registry writes on the same connection.
    Writers on separate connections rely on SQLite locking and the upsert
    conflict clause instead.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._lock = threading.RLock()

    def upsert(self, key: SeriesKey, quote_date: date, price: float) -> None:
        """Insert or overwrite the price for (key, date)."""
        self.upsert_many(key, [(quote_date, price)])

    def upsert_many(self, key: SeriesKey, points: Iterable[Tuple[date, float]]) -> Tuple[int, int]:
        """
        Apply several upserts for one series.

        Returns:
            Tuple of (inserted_count, updated_count)
        """
        with self._lock:
            return upsert_quotes(self.conn, key.instrument_id, key.exchange_id, points)

    def latest_date(self, key: SeriesKey) -> date:
        """
        Return the newest date stored for the series.

        Raises:
            SeriesNotFoundError: If the series has no points
        """
        return self._bound(key, 'MAX')

    def earliest_date(self, key: SeriesKey) -> date:
        """
        Return the oldest date stored for the series.

        Raises:
            SeriesNotFoundError: If the series has no points
        """
        return self._bound(key, 'MIN')

    def latest_point(self, key: SeriesKey) -> QuotePoint:
        latest = self.latest_date(key)
        return QuotePoint(date=latest, price=self.price_at(key, latest))

    def date_on_or_before(self, key: SeriesKey, ref_date: date) -> date:
        """
        Return the largest stored date <= ref_date.

        Raises:
            SeriesNotFoundError: If every point is after ref_date or the series is empty
        """
        row = self._fetchone(
            "SELECT MAX(date) FROM quotes WHERE instrument_id = ? AND exchange_id = ? AND date <= ?",
            (key.instrument_id, key.exchange_id, ref_date.isoformat())
        )
        if row is None or row[0] is None:
            raise SeriesNotFoundError(f"No quote on or before {ref_date} for series {tuple(key)}")
        return date.fromisoformat(row[0])

    def price_at(self, key: SeriesKey, quote_date: date) -> float:
        """
        Return the price at an exact date.

        The date is expected to exist (e.g. obtained from date_on_or_before).

        Raises:
            SeriesNotFoundError: If no quote is stored for that date
        """
        row = self._fetchone(
            "SELECT price FROM quotes WHERE instrument_id = ? AND exchange_id = ? AND date = ?",
            (key.instrument_id, key.exchange_id, quote_date.isoformat())
        )
        if row is None:
            raise SeriesNotFoundError(f"No quote on {quote_date} for series {tuple(key)}")
        return row[0]

    def points_in_range(self, key: SeriesKey, from_date: date, to_date: date) -> List[QuotePoint]:
        """Return points with from_date <= date <= to_date, oldest first."""
        with self._lock:
            rows = self.conn.execute(
                """
                SELECT date, price FROM quotes
                WHERE instrument_id = ? AND exchange_id = ? AND date BETWEEN ? AND ?
                ORDER BY date ASC
                """,
                (key.instrument_id, key.exchange_id, from_date.isoformat(), to_date.isoformat())
            ).fetchall()
        return [QuotePoint(date=date.fromisoformat(d), price=p) for d, p in rows]

    def range_frame(self, key: SeriesKey, from_date: date, to_date: date) -> pd.DataFrame:
        """
        Same rows as points_in_range, as a DataFrame.

        Returns:
            DataFrame with columns 'date' (datetime64) and 'price', oldest first
        """
        with self._lock:
            df = pd.read_sql_query(
                """
                SELECT date, price FROM quotes
                WHERE instrument_id = ? AND exchange_id = ? AND date BETWEEN ? AND ?
                ORDER BY date ASC
                """,
                self.conn,
                params=[key.instrument_id, key.exchange_id, from_date.isoformat(), to_date.isoformat()]
            )
        df['date'] = pd.to_datetime(df['date'])
        return df

    def all_keys(self) -> Set[SeriesKey]:
        """Return every key that has at least one point."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT DISTINCT instrument_id, exchange_id FROM quotes"
            ).fetchall()
        return {SeriesKey(instrument_id=r[0], exchange_id=r[1]) for r in rows}

    def point_count(self, key: SeriesKey) -> int:
        row = self._fetchone(
            "SELECT COUNT(*) FROM quotes WHERE instrument_id = ? AND exchange_id = ?",
            (key.instrument_id, key.exchange_id)
        )
        return row[0]

    def describe(self, key: SeriesKey) -> SeriesInfo:
        """
        Return the descriptive attributes of a series.

        Raises:
            SeriesNotFoundError: If the instrument or exchange is not registered
        """
        row = self._fetchone(
            """
            SELECT i.isin, i.name, i.type, e.name
            FROM instruments AS i, exchanges AS e
            WHERE i.id = ? AND e.id = ?
            """,
            (key.instrument_id, key.exchange_id)
        )
        if row is None:
            raise SeriesNotFoundError(f"Unknown series {tuple(key)}")

        return SeriesInfo(
            key=key,
            isin=row[0],
            name=row[1],
            instrument_type=InstrumentType(row[2]),
            exchange_name=row[3]
        )

    def quote_counts(self) -> List[Dict[str, Any]]:
        """Return the number of stored quotes for every series."""
        with self._lock:
            rows = self.conn.execute("""
                SELECT i.isin, e.name, COUNT(*)
                FROM quotes AS q
                INNER JOIN instruments AS i ON q.instrument_id = i.id
                INNER JOIN exchanges AS e ON q.exchange_id = e.id
                GROUP BY q.instrument_id, q.exchange_id
                ORDER BY i.isin, e.name
            """).fetchall()
        return [{'isin': r[0], 'exchange': r[1], 'count': r[2]} for r in rows]

    def latest_dates(self) -> List[Dict[str, Any]]:
        """
        Return the most recent observation date for every series.

        Returns:
            List of dicts with isin, name, exchange_id, exchange and latest_date
        """
        with self._lock:
            rows = self.conn.execute("""
                SELECT i.isin, i.name, e.id, e.name, MAX(q.date)
                FROM quotes AS q
                INNER JOIN instruments AS i ON q.instrument_id = i.id
                INNER JOIN exchanges AS e ON q.exchange_id = e.id
                GROUP BY q.instrument_id, q.exchange_id
                ORDER BY i.isin, e.name
            """).fetchall()
        return [
            {
                'isin': r[0],
                'name': r[1],
                'exchange_id': r[2],
                'exchange': r[3],
                'latest_date': date.fromisoformat(r[4])
            }
            for r in rows
        ]

    def _bound(self, key: SeriesKey, func: str) -> date:
        row = self._fetchone(
            f"SELECT {func}(date) FROM quotes WHERE instrument_id = ? AND exchange_id = ?",
            (key.instrument_id, key.exchange_id)
        )
        if row is None or row[0] is None:
            raise SeriesNotFoundError(f"No quotes for series {tuple(key)}")
        return date.fromisoformat(row[0])

    def _fetchone(self, sql: str, params: tuple):
        with self._lock:
            return self.conn.execute(sql, params).fetchone()
