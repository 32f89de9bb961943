"""
Normalizers for transforming raw quote rows to canonical shape.
Pure functions - no IO, network, or side effects.
Minimal normalization - only when necessary.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser


def normalize_quotes(raw_rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Transform raw quote rows to canonical {'date': date, 'price': float} rows.

    Minimal normalization:
    - Date strings and datetimes to date objects
    - Price strings to float
    - Deduplication by date (keep last to handle corrections)

    Values that cannot be converted are passed through unchanged so the
    validator can reject the row with a precise message.

    Args:
        raw_rows: List of dicts with 'date' and a price under 'price' or 'quote'

    Returns:
        List of canonical quote dictionaries in first-seen date order
    """
    if not raw_rows:
        return []

    seen_dates = {}

    for raw in raw_rows:
        row_date = _parse_date(raw.get('date'))
        price = raw.get('price', raw.get('quote'))

        canonical = {
            'date': row_date,
            'price': _parse_price(price),
        }

        # Justified: one quote per calendar day, later rows are corrections
        seen_dates[row_date if row_date is not None else id(raw)] = canonical

    return list(seen_dates.values())


def _parse_date(value: Any) -> Optional[Any]:
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
        try:
            return date_parser.parse(value.strip()).date()
        except (ValueError, OverflowError):
            return value

    return value


def _parse_price(value: Any) -> Any:
    if isinstance(value, bool):
        return value

    if isinstance(value, (int, float, Decimal)):
        return float(value)

    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return value

    return value
