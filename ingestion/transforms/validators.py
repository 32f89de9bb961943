"""
Core validators for canonical quote rows.
Pure functions - no IO, network, or side effects.
"""

import math
from datetime import date, datetime
from typing import Any, Dict, Optional


class ValidationError(ValueError):
    """Raised when data validation fails."""
    pass


def validate_quote_row(row: Dict[str, Any], today: Optional[date] = None) -> None:
    """
    Validate a canonical quote row.

    Args:
        row: Dictionary with 'date' and 'price'
        today: Reference date for the future-date check (defaults to today)

    Raises:
        ValidationError: If validation fails
    """
    required_keys = {'date', 'price'}

    missing = required_keys - set(row.keys())
    if missing:
        raise ValidationError(f"Missing required keys: {missing}")

    # datetime is a date subclass; quotes are one per calendar day
    quote_date = row['date']
    if isinstance(quote_date, datetime) or not isinstance(quote_date, date):
        raise ValidationError(f"date must be date, got {type(quote_date)} ({quote_date!r})")

    if today is None:
        today = date.today()

    if quote_date > today:
        raise ValidationError(f"date must not be in the future, got {quote_date}")

    price = row['price']
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        raise ValidationError(f"price must be numeric, got {type(price)} ({price!r})")

    if not math.isfinite(price):
        raise ValidationError(f"price must be finite, got {price}")

    if price <= 0:
        raise ValidationError(f"price must be positive, got {price}")
