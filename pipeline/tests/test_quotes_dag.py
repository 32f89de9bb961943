"""
Tests for the quote ingestion DAG.
End-to-end over in-memory SQLite with CSV files and in-memory rows.
"""

import pytest
import sqlite3
from datetime import date

from pipeline.quotes_dag import QuoteIngestionConfig, ingest_quotes, run_quote_ingestion
from storage.loaders import init_database
from storage.registry import SeriesKey, register_exchange, register_instrument
from storage.run_registry import RunStatus, get_run
from storage.series_store import SeriesStore


@pytest.fixture
def conn():
    conn = sqlite3.connect(':memory:')
    init_database(conn)
    register_exchange(conn, 'XETRA')
    register_instrument(conn, 'DE0007164600', 'SAP SE', 'stock')
    return conn


@pytest.fixture
def key(conn):
    return SeriesKey(1, 1)


class TestQuoteIngestionConfig:

    def test_needs_exactly_one_source(self, tmp_path):
        with pytest.raises(ValueError, match='exactly one'):
            QuoteIngestionConfig(isin='DE0007164600', exchange='XETRA')

        with pytest.raises(ValueError, match='exactly one'):
            QuoteIngestionConfig(isin='DE0007164600', exchange='XETRA',
                                 source_path=tmp_path / 'q.csv', rows=[])

    def test_needs_isin_and_exchange(self):
        with pytest.raises(ValueError, match='isin'):
            QuoteIngestionConfig(isin='', exchange='XETRA', rows=[])

        with pytest.raises(ValueError, match='exchange'):
            QuoteIngestionConfig(isin='DE0007164600', exchange=None, rows=[])

    def test_source_path_coerced(self):
        config = QuoteIngestionConfig(isin='DE0007164600', exchange='XETRA', source_path='data/sap.csv')

        assert config.source_path.name == 'sap.csv'


class TestRunQuoteIngestion:

    def test_rows_stored(self, conn, key):
        config = QuoteIngestionConfig(isin='DE0007164600', exchange='XETRA', rows=[
            {'date': '2024-06-27', 'price': '184.10'},
            {'date': '2024-06-28', 'price': 185.40},
        ])

        result = run_quote_ingestion(config, conn)

        assert result['status'] == 'completed'
        assert result['rows_read'] == 2
        assert result['rows_stored'] == 2
        assert result['rows_inserted'] == 2
        assert result['first_date'] == date(2024, 6, 27)
        assert result['last_date'] == date(2024, 6, 28)
        assert SeriesStore(conn).price_at(key, date(2024, 6, 28)) == 185.40

        run = get_run(conn, result['run_id'])
        assert run['job_name'] == 'ingest_quotes'
        assert run['status'] is RunStatus.COMPLETED
        assert run['rows_out'] == 2

    def test_csv_source(self, conn, key, tmp_path):
        path = tmp_path / 'sap.csv'
        path.write_text("Date,Close\n2024-06-26,183.0\n2024-06-27,184.1\n2024-06-28,185.4\n")

        result = run_quote_ingestion(
            QuoteIngestionConfig(isin='de0007164600', exchange='XETRA', source_path=path), conn
        )

        assert result['status'] == 'completed'
        assert SeriesStore(conn).point_count(key) == 3

    def test_rerun_updates_instead_of_duplicating(self, conn, key):
        rows = [{'date': '2024-06-28', 'price': '185.40'}]
        run_quote_ingestion(QuoteIngestionConfig(isin='DE0007164600', exchange='XETRA', rows=rows), conn)

        corrected = [{'date': '2024-06-28', 'price': '185.90'}]
        result = run_quote_ingestion(
            QuoteIngestionConfig(isin='DE0007164600', exchange='XETRA', rows=corrected), conn
        )

        assert (result['rows_inserted'], result['rows_updated']) == (0, 1)
        assert SeriesStore(conn).price_at(key, date(2024, 6, 28)) == 185.90

    def test_invalid_rows_are_warnings(self, conn, key):
        config = QuoteIngestionConfig(isin='DE0007164600', exchange='XETRA', rows=[
            {'date': '2024-06-27', 'price': '-1'},
            {'date': 'yesterday-ish', 'price': '10'},
            {'date': '2024-06-28', 'price': '185.40'},
        ])

        result = run_quote_ingestion(config, conn)

        assert result['status'] == 'completed'
        assert result['validation_warnings'] == 2
        assert result['rows_stored'] == 1
        assert SeriesStore(conn).point_count(key) == 1

    def test_all_rows_invalid_fails(self, conn):
        config = QuoteIngestionConfig(isin='DE0007164600', exchange='XETRA', rows=[
            {'date': '2024-06-28', 'price': '0'},
        ])

        result = run_quote_ingestion(config, conn)

        assert result['status'] == 'failed'
        assert 'failed validation' in result['error_message']
        assert get_run(conn, result['run_id'])['status'] is RunStatus.FAILED

    def test_empty_input_completes(self, conn):
        result = run_quote_ingestion(QuoteIngestionConfig(isin='DE0007164600', exchange='XETRA', rows=[]), conn)

        assert result['status'] == 'completed'
        assert result['rows_stored'] == 0

    def test_unregistered_series_fails(self, conn):
        config = QuoteIngestionConfig(isin='DE0007164600', exchange='Tradegate', rows=[
            {'date': '2024-06-28', 'price': '185.40'},
        ])

        result = run_quote_ingestion(config, conn)

        assert result['status'] == 'failed'
        assert 'Tradegate' in result['error_message']
        assert get_run(conn, result['run_id'])['error_message'] == result['error_message']

    def test_missing_csv_fails(self, conn, tmp_path):
        config = QuoteIngestionConfig(isin='DE0007164600', exchange='XETRA', source_path=tmp_path / 'none.csv')

        result = run_quote_ingestion(config, conn)

        assert result['status'] == 'failed'
        assert 'not found' in result['error_message']


def test_ingest_quotes_last_write_wins(conn, key):
    store = SeriesStore(conn)

    inserted, updated = ingest_quotes(store, key, [
        (date(2024, 6, 28), 1.0),
        (date(2024, 6, 27), 2.0),
        (date(2024, 6, 28), 3.0),
    ])

    assert (inserted, updated) == (2, 1)
    assert store.price_at(key, date(2024, 6, 28)) == 3.0
