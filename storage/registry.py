"""
Instrument and exchange registry - keyed records with uniqueness constraints.
Resolves (ISIN, exchange name) pairs to stable series keys.
"""

import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import List, NamedTuple, Optional


class InstrumentType(str, Enum):
    """Enumeration of supported instrument types."""
    STOCK = 'stock'
    FUND = 'fund'
    ETF = 'etf'
    CERTIFICATE = 'certificate'


class SeriesKey(NamedTuple):
    """Identifies one price series: an instrument traded on an exchange."""
    instrument_id: int
    exchange_id: int


@dataclass(frozen=True)
class Instrument:
    id: int
    isin: str
    nsin: Optional[str]
    name: str
    type: InstrumentType


@dataclass(frozen=True)
class Exchange:
    id: int
    name: str


class RegistryError(ValueError):
    """Raised when a registration is invalid or violates uniqueness."""
    pass


class RegistryNotFoundError(LookupError):
    """Raised when an instrument or exchange is not registered."""
    pass


def register_exchange(conn: sqlite3.Connection, name: str) -> Exchange:
    """
    Register a new exchange.

    Args:
        conn: SQLite connection
        name: Unique exchange name

    Returns:
        The stored Exchange record

    Raises:
        RegistryError: If name is empty or already registered
    """
    if not name or not isinstance(name, str) or not name.strip():
        raise RegistryError("Exchange name must be non-empty string")

    name = name.strip()
    try:
        cursor = conn.execute("INSERT INTO exchanges (name) VALUES (?)", (name,))
    except sqlite3.IntegrityError:
        raise RegistryError(f"Exchange already registered: {name}")

    conn.commit()
    return Exchange(id=cursor.lastrowid, name=name)


def register_instrument(
    conn: sqlite3.Connection,
    isin: str,
    name: str,
    instrument_type: InstrumentType,
    nsin: Optional[str] = None
) -> Instrument:
    """
    Register a new instrument.

    Args:
        conn: SQLite connection
        isin: 12 character ISIN, unique across the registry
        name: Instrument name
        instrument_type: One of InstrumentType (enum or its value)
        nsin: National securities identifier (optional)

    Returns:
        The stored Instrument record

    Raises:
        RegistryError: If a field is invalid or the ISIN already exists
    """
    if not isinstance(isin, str) or len(isin) != 12:
        raise RegistryError("ISIN must be exactly 12 characters long")

    if not name or not isinstance(name, str):
        raise RegistryError("Instrument name must be non-empty string")

    try:
        instrument_type = InstrumentType(instrument_type)
    except ValueError:
        valid = ', '.join(t.value for t in InstrumentType)
        raise RegistryError(f"Unknown instrument type {instrument_type!r}, expected one of: {valid}")

    isin = isin.upper()
    try:
        cursor = conn.execute(
            "INSERT INTO instruments (isin, nsin, name, type) VALUES (?, ?, ?, ?)",
            (isin, nsin, name, instrument_type.value)
        )
    except sqlite3.IntegrityError:
        raise RegistryError(f"Instrument already registered: {isin}")

    conn.commit()
    return Instrument(
        id=cursor.lastrowid,
        isin=isin,
        nsin=nsin,
        name=name,
        type=instrument_type
    )


def get_instrument(conn: sqlite3.Connection, isin: str) -> Instrument:
    """
    Look up an instrument by ISIN.

    Raises:
        RegistryNotFoundError: If the ISIN is not registered
    """
    row = conn.execute(
        "SELECT id, isin, nsin, name, type FROM instruments WHERE isin = ?",
        (isin.upper(),)
    ).fetchone()

    if row is None:
        raise RegistryNotFoundError(f"Instrument not found: {isin}")

    return Instrument(id=row[0], isin=row[1], nsin=row[2], name=row[3], type=InstrumentType(row[4]))


def get_exchange(conn: sqlite3.Connection, name: str) -> Exchange:
    """
    Look up an exchange by name.

    Raises:
        RegistryNotFoundError: If the exchange is not registered
    """
    row = conn.execute("SELECT id, name FROM exchanges WHERE name = ?", (name,)).fetchone()

    if row is None:
        raise RegistryNotFoundError(f"Exchange not found: {name}")

    return Exchange(id=row[0], name=row[1])


def list_exchanges(conn: sqlite3.Connection) -> List[Exchange]:
    """Return all registered exchanges ordered by name."""
    rows = conn.execute("SELECT id, name FROM exchanges ORDER BY name").fetchall()
    return [Exchange(id=r[0], name=r[1]) for r in rows]


def resolve_series_key(conn: sqlite3.Connection, isin: str, exchange_name: str) -> SeriesKey:
    """
    Resolve an instrument/exchange pair to its series key.

    Args:
        conn: SQLite connection
        isin: Instrument ISIN
        exchange_name: Exchange name

    Returns:
        SeriesKey for the pair

    Raises:
        RegistryNotFoundError: If either side is unregistered
    """
    instrument = get_instrument(conn, isin)
    exchange = get_exchange(conn, exchange_name)
    return SeriesKey(instrument_id=instrument.id, exchange_id=exchange.id)
