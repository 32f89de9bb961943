"""
Quote ingestion DAG - orchestrates loading quotes for one series.
Composes: Resolve → Source → Transform → Validate → Store → Track.
"""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ingestion.providers.csv_adapter import read_quotes_csv
from ingestion.transforms.normalizers import normalize_quotes
from ingestion.transforms.validators import ValidationError, validate_quote_row
from storage.registry import SeriesKey, resolve_series_key
from storage.run_registry import RunStatus, finish_run, start_run
from storage.series_store import SeriesStore

logger = logging.getLogger(__name__)


@dataclass
class QuoteIngestionConfig:
    """Configuration for one quote ingestion run."""
    isin: str
    exchange: str
    source_path: Optional[Path] = None
    rows: Optional[List[Dict[str, Any]]] = None

    def __post_init__(self):
        if not self.isin or not isinstance(self.isin, str):
            raise ValueError("isin must be non-empty string")

        if not self.exchange or not isinstance(self.exchange, str):
            raise ValueError("exchange must be non-empty string")

        if (self.source_path is None) == (self.rows is None):
            raise ValueError("exactly one of source_path or rows must be given")

        if self.source_path is not None:
            self.source_path = Path(self.source_path)


def ingest_quotes(
    store: SeriesStore,
    key: SeriesKey,
    quotes: Iterable[Tuple[date, float]]
) -> Tuple[int, int]:
    """
    Apply quote upserts to a series.

    No cross-date validation: repeated or out-of-order dates are overwrites,
    the last one wins.

    Returns:
        Tuple of (inserted_count, updated_count)
    """
    return store.upsert_many(key, quotes)


def run_quote_ingestion(config: QuoteIngestionConfig, conn: sqlite3.Connection) -> Dict[str, Any]:
    """
    Run the complete quote ingestion pipeline.

    Pipeline stages:
    1. Start run tracking
    2. Resolve the series key
    3. Read raw rows (CSV file or given rows)
    4. Normalize to canonical format
    5. Validate each row
    6. Store valid rows
    7. Finish run tracking

    Args:
        config: Pipeline configuration
        conn: SQLite database connection

    Returns:
        Dictionary with run results
    """
    run_id = start_run(conn, 'ingest_quotes')
    start_time = datetime.now()

    result = {
        'isin': config.isin,
        'exchange': config.exchange,
        'run_id': run_id,
        'status': 'running',
        'rows_read': 0,
        'rows_stored': 0,
        'validation_warnings': 0,
        'error_message': None
    }

    try:
        key = resolve_series_key(conn, config.isin, config.exchange)

        if config.source_path is not None:
            raw_rows = read_quotes_csv(config.source_path)
        else:
            raw_rows = list(config.rows)

        result['rows_read'] = len(raw_rows)

        if not raw_rows:
            # Empty input is not an error
            finish_run(conn, run_id, RunStatus.COMPLETED, series_in=0, rows_out=0)
            result['status'] = 'completed'
            result['duration_seconds'] = (datetime.now() - start_time).total_seconds()
            return result

        normalized = normalize_quotes(raw_rows)

        valid_rows = []
        today = date.today()
        for row in normalized:
            try:
                validate_quote_row(row, today=today)
                valid_rows.append(row)
            except ValidationError as e:
                result['validation_warnings'] += 1
                logger.warning(f"Validation warning for {config.isin}@{config.exchange} {row.get('date')}: {e}")

        if not valid_rows:
            error_msg = f"All {len(normalized)} rows failed validation"
            finish_run(
                conn, run_id, RunStatus.FAILED,
                series_in=len(raw_rows), rows_out=0, error_message=error_msg
            )
            result['status'] = 'failed'
            result['error_message'] = error_msg
            result['duration_seconds'] = (datetime.now() - start_time).total_seconds()
            return result

        store = SeriesStore(conn)
        inserted, updated = ingest_quotes(store, key, [(r['date'], r['price']) for r in valid_rows])

        result['rows_stored'] = len(valid_rows)
        result['rows_inserted'] = inserted
        result['rows_updated'] = updated
        result['first_date'] = min(r['date'] for r in valid_rows)
        result['last_date'] = max(r['date'] for r in valid_rows)

        finish_run(conn, run_id, RunStatus.COMPLETED, series_in=len(raw_rows), rows_out=len(valid_rows))

        result['status'] = 'completed'
        result['duration_seconds'] = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Stored {len(valid_rows)} quotes for {config.isin}@{config.exchange} "
            f"({inserted} new, {updated} updated)"
        )
        return result

    except Exception as e:
        error_message = str(e)
        logger.error(f"Quote ingestion failed for {config.isin}@{config.exchange}: {error_message}")

        finish_run(
            conn, run_id, RunStatus.FAILED,
            series_in=result['rows_read'], rows_out=result['rows_stored'],
            error_message=error_message
        )

        result['status'] = 'failed'
        result['error_message'] = error_message
        result['duration_seconds'] = (datetime.now() - start_time).total_seconds()
        return result
