"""
CSV quote source.
Reads provider-native quote rows from a CSV file; no transformation beyond parsing.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import pandas as pd

logger = logging.getLogger(__name__)

# Accepted spellings for the price column, first match wins
PRICE_COLUMNS = ('price', 'quote', 'close', 'Close', 'Price', 'Quote')
DATE_COLUMNS = ('date', 'Date')


class CsvSourceError(Exception):
    """Raised when a quote CSV cannot be read."""
    pass


def read_quotes_csv(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Read raw quote rows from CSV.

    The file needs a date column and a price column (see PRICE_COLUMNS).
    Values are returned as read; parsing dates is left to the normalizer.

    Args:
        path: CSV file path

    Returns:
        List of dicts with 'date' and 'price' keys

    Raises:
        CsvSourceError: If the file is missing, unreadable or lacks columns
    """
    csv_path = Path(path)
    if not csv_path.exists():
        raise CsvSourceError(f"Quote file not found: {csv_path}")

    try:
        df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise CsvSourceError(f"Failed to read {csv_path}: {e}")

    date_col = next((c for c in DATE_COLUMNS if c in df.columns), None)
    price_col = next((c for c in PRICE_COLUMNS if c in df.columns), None)

    if date_col is None or price_col is None:
        raise CsvSourceError(
            f"{csv_path} needs a date column and a price column, got {list(df.columns)}"
        )

    logger.info(f"Read {len(df)} rows from {csv_path}")
    return [
        {'date': d.strip(), 'price': p.strip()}
        for d, p in zip(df[date_col], df[price_col])
    ]
