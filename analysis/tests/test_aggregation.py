"""
Tests for the batch aggregation pipeline.
"""

import pytest
import sqlite3
from datetime import date, timedelta
from unittest.mock import Mock

from analysis.aggregation import AggregationPipeline
from analysis.calculations.intervals import Interval, InvalidIntervalError
from storage.loaders import get_connection, init_database
from storage.registry import SeriesKey, register_exchange, register_instrument
from storage.series_store import SeriesStore

LATEST_FRIDAY = date(2024, 6, 28)


def seed(conn):
    """
    Three instruments on two exchanges:
      US0378331005 @ XETRA, @ Tradegate - one year of history
      DE0007164600 @ XETRA             - one year of history, 27 weekly closes
      LU0274208692 @ XETRA             - a single quote
    """
    store = SeriesStore(conn)
    xetra = register_exchange(conn, 'XETRA')
    tradegate = register_exchange(conn, 'Tradegate')
    apple = register_instrument(conn, 'US0378331005', 'Apple Inc.', 'stock')
    sap = register_instrument(conn, 'DE0007164600', 'SAP SE', 'stock')
    fund = register_instrument(conn, 'LU0274208692', 'Xtrackers MSCI World', 'fund')

    store.upsert_many(SeriesKey(apple.id, xetra.id), [(date(2023, 6, 28), 100.0), (LATEST_FRIDAY, 150.0)])
    store.upsert_many(SeriesKey(apple.id, tradegate.id), [(date(2023, 6, 28), 100.0), (LATEST_FRIDAY, 110.0)])

    sap_key = SeriesKey(sap.id, xetra.id)
    store.upsert(sap_key, date(2023, 6, 26), 50.0)
    store.upsert_many(sap_key, [(LATEST_FRIDAY - timedelta(weeks=i), 100.0) for i in range(27)])

    store.upsert(SeriesKey(fund.id, xetra.id), LATEST_FRIDAY, 80.0)
    return store


@pytest.fixture
def store():
    conn = get_connection(':memory:')
    init_database(conn)
    return seed(conn)


class TestPipelineConfig:

    def test_max_workers_from_env(self, store, monkeypatch):
        monkeypatch.setenv('AGGREGATION_MAX_WORKERS', '3')

        assert AggregationPipeline(store).max_workers == 3

    def test_deadline_from_env(self, store, monkeypatch):
        monkeypatch.setenv('AGGREGATION_DEADLINE_S', '2.5')

        assert AggregationPipeline(store).deadline_seconds == 2.5

    def test_rejects_zero_workers(self, store):
        with pytest.raises(ValueError):
            AggregationPipeline(store, max_workers=0)


class TestComputePerformance:

    def test_results_sorted_by_isin_then_exchange(self, store):
        results = AggregationPipeline(store, max_workers=1).compute_performance(Interval(1, 'year'))

        assert [(r.series.isin, r.series.exchange_name) for r in results] == [
            ('DE0007164600', 'XETRA'),
            ('US0378331005', 'Tradegate'),
            ('US0378331005', 'XETRA'),
        ]
        assert [r.performance for r in results] == pytest.approx([1.0, 0.1, 0.5])

    def test_skips_are_counted(self, store):
        outcome = AggregationPipeline(store, max_workers=1).run_performance('1Y')

        assert outcome.series_total == 4
        assert outcome.skipped == {'single_point': 1}
        assert outcome.skipped_total == 1
        assert outcome.partial is False

    def test_interval_longer_than_history(self, store):
        outcome = AggregationPipeline(store, max_workers=1).run_performance('5Y')

        assert outcome.results == []
        assert outcome.skipped == {'no_base_date': 3, 'single_point': 1}

    def test_invalid_interval_fails_before_reading_series(self):
        mock_store = Mock(spec=SeriesStore)
        pipeline = AggregationPipeline(mock_store, max_workers=1)

        with pytest.raises(InvalidIntervalError):
            pipeline.compute_performance({'count': 0, 'unit': 'day'})

        mock_store.all_keys.assert_not_called()

    def test_empty_store(self):
        conn = sqlite3.connect(':memory:')
        init_database(conn)

        outcome = AggregationPipeline(SeriesStore(conn)).run_performance('1M')

        assert outcome.results == []
        assert outcome.series_total == 0


class TestComputeRelativeStrengthLevy:

    def test_only_series_with_27_weeks(self, store):
        pipeline = AggregationPipeline(store, max_workers=1, complete_weeks_only=False)

        outcome = pipeline.run_relative_strength_levy()

        assert [r.series.isin for r in outcome.results] == ['DE0007164600']
        assert outcome.results[0].rsl_value == 1.0
        assert outcome.skipped == {'insufficient_history': 3}
        assert pipeline.compute_relative_strength_levy() == outcome.results


class TestConcurrency:

    def test_threaded_matches_sequential(self, store):
        sequential = AggregationPipeline(store, max_workers=1).compute_performance('1Y')
        threaded = AggregationPipeline(store, max_workers=4).compute_performance('1Y')

        assert threaded == sequential

    def test_deadline_returns_partial(self, store):
        outcome = AggregationPipeline(store, max_workers=1, deadline_seconds=0).run_performance('1Y')

        assert outcome.partial is True
        assert outcome.results == []
        assert outcome.skipped == {'deadline': 4}

    def test_generous_deadline_is_not_partial(self, store):
        outcome = AggregationPipeline(store, max_workers=2, deadline_seconds=60).run_performance('1Y')

        assert outcome.partial is False
        assert len(outcome.results) == 3
