"""
Orchestrated evaluation job - SQLite to results JSON.
Runs an aggregation, persists the rows and records the run.
"""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from analysis.aggregation import AggregationOutcome, AggregationPipeline
from analysis.calculations.intervals import Interval, as_interval
from storage.run_registry import RunStatus, finish_run, start_run
from storage.series_store import SeriesStore

logger = logging.getLogger(__name__)

JOBS = ('performance', 'rsl')


class EvaluationJobError(Exception):
    """Raised when an evaluation job is misconfigured."""
    pass


def run_evaluation(
    conn: sqlite3.Connection,
    job: str,
    output_path: Optional[Path] = None,
    interval: Optional[Union[Interval, Mapping[str, Any], str]] = None,
    pipeline: Optional[AggregationPipeline] = None
) -> Dict[str, Any]:
    """
    Run a batch evaluation and optionally save the results to JSON.

    Args:
        conn: SQLite database connection
        job: 'performance' or 'rsl'
        output_path: Where to write the results JSON (optional)
        interval: Lookback interval, required for 'performance'
        pipeline: Pipeline to use (default: one built on conn)

    Returns:
        Dictionary with job summary; 'outcome' holds the AggregationOutcome

    Raises:
        EvaluationJobError: If job is unknown or performance has no interval
        InvalidIntervalError: If the interval is invalid
    """
    if job not in JOBS:
        raise EvaluationJobError(f"Unknown job {job!r}, expected one of: {', '.join(JOBS)}")

    if job == 'performance':
        if interval is None:
            raise EvaluationJobError("performance job requires an interval")
        # Fails the request before a run is recorded
        interval = as_interval(interval)

    if pipeline is None:
        pipeline = AggregationPipeline(SeriesStore(conn))

    run_id = start_run(conn, job)
    start_time = datetime.now()

    try:
        if job == 'performance':
            outcome = pipeline.run_performance(interval)
        else:
            outcome = pipeline.run_relative_strength_levy()

        if output_path is not None:
            _write_results(output_path, outcome, interval)

    except Exception as e:
        logger.error(f"{job} run {run_id} failed: {e}")
        finish_run(conn, run_id, RunStatus.FAILED, error_message=str(e))
        return {
            'job': job,
            'run_id': run_id,
            'status': 'failed',
            'error_message': str(e),
            'output_path': None,
            'duration_seconds': (datetime.now() - start_time).total_seconds()
        }

    status = RunStatus.PARTIAL if outcome.partial else RunStatus.COMPLETED
    finish_run(
        conn,
        run_id,
        status,
        series_in=outcome.series_total,
        rows_out=len(outcome.results)
    )

    return {
        'job': job,
        'run_id': run_id,
        'status': status.value,
        'output_path': str(output_path) if output_path is not None else None,
        'series_total': outcome.series_total,
        'results_count': len(outcome.results),
        'skipped': outcome.skipped,
        'outcome': outcome,
        'duration_seconds': (datetime.now() - start_time).total_seconds()
    }


def outcome_to_json(outcome: AggregationOutcome, interval: Optional[Interval] = None) -> Dict[str, Any]:
    """Serializable view of an aggregation outcome."""
    return {
        'job': outcome.job,
        'interval': interval.to_dict() if interval is not None else None,
        'generated_at': datetime.now().isoformat(),
        'partial': outcome.partial,
        'series_total': outcome.series_total,
        'skipped': outcome.skipped,
        'results': [r.to_dict() for r in outcome.results]
    }


def _write_results(output_path: Path, outcome: AggregationOutcome, interval: Optional[Interval]) -> None:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w') as f:
        json.dump(outcome_to_json(outcome, interval), f, indent=2, default=str)

    logger.info(f"Wrote {len(outcome.results)} {outcome.job} rows to {output_path}")
