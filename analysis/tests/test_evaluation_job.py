"""
Tests for the orchestrated evaluation job - SQLite to results JSON.
"""

import json
import pytest
from datetime import date, timedelta
from unittest.mock import Mock

from analysis.aggregation import AggregationPipeline
from analysis.calculations.intervals import Interval, InvalidIntervalError
from analysis.evaluation_job import EvaluationJobError, outcome_to_json, run_evaluation
from storage.loaders import get_connection, init_database
from storage.registry import SeriesKey, register_exchange, register_instrument
from storage.run_registry import RunStatus, get_run, list_recent_runs
from storage.series_store import SeriesStore

LATEST_FRIDAY = date(2024, 6, 28)


@pytest.fixture
def conn():
    conn = get_connection(':memory:')
    init_database(conn)

    store = SeriesStore(conn)
    exchange = register_exchange(conn, 'XETRA')
    sap = register_instrument(conn, 'DE0007164600', 'SAP SE', 'stock')
    etf = register_instrument(conn, 'IE00B4L5Y983', 'iShares Core MSCI World', 'etf')

    store.upsert_many(
        SeriesKey(sap.id, exchange.id),
        [(LATEST_FRIDAY - timedelta(weeks=i), 100.0) for i in range(54)]
    )
    store.upsert(SeriesKey(etf.id, exchange.id), LATEST_FRIDAY, 80.0)
    return conn


def pipeline(conn, **kwargs):
    return AggregationPipeline(SeriesStore(conn), max_workers=1, complete_weeks_only=False, **kwargs)


class TestRunEvaluation:

    def test_performance_writes_json(self, conn, tmp_path):
        output = tmp_path / 'processed' / 'perf.json'

        result = run_evaluation(conn, 'performance', output_path=output, interval='6M', pipeline=pipeline(conn))

        assert result['status'] == 'completed'
        assert result['results_count'] == 1
        assert result['series_total'] == 2
        assert result['skipped'] == {'single_point': 1}
        assert result['output_path'] == str(output)

        data = json.loads(output.read_text())
        assert data['job'] == 'performance'
        assert data['interval'] == {'count': 6, 'unit': 'month'}
        assert data['partial'] is False
        assert data['results'][0]['isin'] == 'DE0007164600'
        assert data['results'][0]['performance'] == 0.0

    def test_run_is_recorded(self, conn):
        result = run_evaluation(conn, 'rsl', pipeline=pipeline(conn))

        run = get_run(conn, result['run_id'])
        assert run['job_name'] == 'rsl'
        assert run['status'] is RunStatus.COMPLETED
        assert run['series_in'] == 2
        assert run['rows_out'] == 1

    def test_rsl_without_output(self, conn):
        result = run_evaluation(conn, 'rsl', pipeline=pipeline(conn))

        assert result['output_path'] is None
        assert result['outcome'].results[0].rsl_value == 1.0

    def test_default_pipeline(self, conn):
        result = run_evaluation(conn, 'performance', interval=Interval(1, 'year'))

        assert result['status'] == 'completed'
        assert result['results_count'] == 1

    def test_deadline_marks_run_partial(self, conn):
        result = run_evaluation(conn, 'rsl', pipeline=pipeline(conn, deadline_seconds=0))

        assert result['status'] == 'partial'
        assert get_run(conn, result['run_id'])['status'] is RunStatus.PARTIAL


class TestRunEvaluationErrors:

    def test_unknown_job(self, conn):
        with pytest.raises(EvaluationJobError, match='Unknown job'):
            run_evaluation(conn, 'volatility')

    def test_performance_needs_interval(self, conn):
        with pytest.raises(EvaluationJobError, match='interval'):
            run_evaluation(conn, 'performance')

    def test_invalid_interval_records_no_run(self, conn):
        with pytest.raises(InvalidIntervalError):
            run_evaluation(conn, 'performance', interval={'count': 0, 'unit': 'year'})

        assert list_recent_runs(conn) == []

    def test_pipeline_failure_recorded(self, conn):
        broken = Mock(spec=AggregationPipeline)
        broken.run_relative_strength_levy.side_effect = RuntimeError('database disk image is malformed')

        result = run_evaluation(conn, 'rsl', pipeline=broken)

        assert result['status'] == 'failed'
        assert 'malformed' in result['error_message']

        run = get_run(conn, result['run_id'])
        assert run['status'] is RunStatus.FAILED
        assert run['error_message'] == 'database disk image is malformed'


def test_outcome_to_json_without_interval(conn):
    outcome = pipeline(conn).run_relative_strength_levy()

    data = outcome_to_json(outcome)

    assert data['interval'] is None
    assert data['results'][0]['newest_weekly_close'] == '2024-06-28'
    assert data['skipped'] == {'insufficient_history': 1}
