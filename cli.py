#!/usr/bin/env python3
"""
Main CLI for the quote analytics workbench.
Usage: python cli.py COMMAND [options]
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from analysis.aggregation import AggregationPipeline
from analysis.calculations.intervals import (
    IntervalConfigError,
    InvalidIntervalError,
    as_interval,
    load_interval_presets,
)
from analysis.evaluation_job import run_evaluation
from pipeline.quotes_dag import QuoteIngestionConfig, run_quote_ingestion
from storage.loaders import get_connection, init_database
from storage.registry import (
    InstrumentType,
    RegistryError,
    register_exchange,
    register_instrument,
)
from storage.run_registry import list_recent_runs
from storage.series_store import SeriesStore

load_dotenv()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Track exchange quotes and evaluate performance and RSL',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python cli.py register-exchange XETRA
  python cli.py register-instrument DE0007164600 "SAP SE" stock --nsin 716460
  python cli.py ingest DE0007164600 XETRA quotes/sap.csv
  python cli.py performance 1Y
  python cli.py performance --preset 6M --output data/processed/perf_6m.json
  python cli.py rsl
  python cli.py runs --job ingest_quotes
        """
    )
    parser.add_argument('--db-path',
                        default=os.getenv('QUOTES_DB_PATH', './data/quotes.db'),
                        help='Path to SQLite database (default: ./data/quotes.db)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('register-exchange', help='Register an exchange')
    p.add_argument('name')

    p = sub.add_parser('register-instrument', help='Register an instrument')
    p.add_argument('isin')
    p.add_argument('name')
    p.add_argument('type', choices=[t.value for t in InstrumentType])
    p.add_argument('--nsin')

    p = sub.add_parser('ingest', help='Load quotes for one series from CSV')
    p.add_argument('isin')
    p.add_argument('exchange')
    p.add_argument('csv_path', type=Path)

    p = sub.add_parser('performance', help='Performance of every series over an interval')
    p.add_argument('interval', nargs='?', help='Short form, e.g. 30D, 6M, 1Y')
    p.add_argument('--preset', help='Named interval from the presets file')
    p.add_argument('--output', type=Path, help='Write results JSON to this path')
    p.add_argument('--workers', type=int, help='Evaluate series on this many threads')

    p = sub.add_parser('rsl', help='Relative strength levy of every series')
    p.add_argument('--output', type=Path, help='Write results JSON to this path')
    p.add_argument('--workers', type=int, help='Evaluate series on this many threads')

    sub.add_parser('latest', help='Latest quote date per series')
    sub.add_parser('counts', help='Number of quotes per series')

    p = sub.add_parser('runs', help='Recent ingestion and evaluation runs')
    p.add_argument('--job', help='Only runs of this job, e.g. ingest_quotes, performance, rsl')
    p.add_argument('--limit', type=int, default=20)

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.verbose else _log_level(os.getenv('LOG_LEVEL', 'WARNING'))
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    conn = get_connection(args.db_path)
    init_database(conn)

    try:
        if args.command == 'register-exchange':
            exchange = register_exchange(conn, args.name)
            print(f"Registered exchange {exchange.name} (id {exchange.id})")

        elif args.command == 'register-instrument':
            instrument = register_instrument(conn, args.isin, args.name, args.type, nsin=args.nsin)
            print(f"Registered {instrument.type.value} {instrument.isin} {instrument.name} (id {instrument.id})")

        elif args.command == 'ingest':
            return _ingest(conn, args)

        elif args.command == 'performance':
            return _performance(conn, args)

        elif args.command == 'rsl':
            return _rsl(conn, args)

        elif args.command == 'latest':
            for row in SeriesStore(conn).latest_dates():
                print(f"{row['isin']}  {row['exchange']:<12} {row['latest_date']}  {row['name']}")

        elif args.command == 'counts':
            for row in SeriesStore(conn).quote_counts():
                print(f"{row['isin']}  {row['exchange']:<12} {row['count']:>6}")

        elif args.command == 'runs':
            _runs(conn, args)

        return 0

    except (RegistryError, InvalidIntervalError, IntervalConfigError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    finally:
        conn.close()


def _log_level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    if not isinstance(level, int):
        # Unknown names come back as 'Level <name>'
        return logging.WARNING
    return level


def _ingest(conn, args) -> int:
    config = QuoteIngestionConfig(isin=args.isin, exchange=args.exchange, source_path=args.csv_path)
    result = run_quote_ingestion(config, conn)

    if result['status'] != 'completed':
        print(f"ERROR: Ingestion failed: {result['error_message']}", file=sys.stderr)
        return 1

    print(f"Stored {result['rows_stored']} of {result['rows_read']} quotes "
          f"({result.get('rows_inserted', 0)} new, {result.get('rows_updated', 0)} updated)")
    if result['validation_warnings']:
        print(f"WARNING: {result['validation_warnings']} rows failed validation")
    return 0


def _performance(conn, args) -> int:
    if args.preset:
        presets = load_interval_presets()
        if args.preset not in presets:
            print(f"ERROR: Unknown preset {args.preset}, available: {', '.join(presets)}", file=sys.stderr)
            return 1
        interval = presets[args.preset]
    elif args.interval:
        interval = as_interval(args.interval)
    else:
        print("ERROR: give an interval (e.g. 1Y) or --preset NAME", file=sys.stderr)
        return 1

    result = _evaluate(conn, 'performance', args, interval)
    if result is None:
        return 1

    print(f"{'ISIN':<12}  {'Exchange':<12} {'Latest':<10}  {'Base':<10}  {'Perf':>9}  Name")
    for r in result['outcome'].results:
        print(f"{r.series.isin:<12}  {r.series.exchange_name:<12} {r.latest_date}  {r.base_date}  "
              f"{r.performance * 100:>+8.2f}%  {r.series.name}")
    _print_summary(result)
    return 0


def _rsl(conn, args) -> int:
    result = _evaluate(conn, 'rsl', args)
    if result is None:
        return 1

    print(f"{'ISIN':<12}  {'Exchange':<12} {'Week close':<10}  {'RSL':>7}  Name")
    for r in result['outcome'].results:
        print(f"{r.series.isin:<12}  {r.series.exchange_name:<12} {r.newest_weekly_close}  "
              f"{r.rsl_value:>7.4f}  {r.series.name}")
    _print_summary(result)
    return 0


def _evaluate(conn, job, args, interval=None):
    pipeline = AggregationPipeline(SeriesStore(conn), max_workers=args.workers)
    result = run_evaluation(conn, job, output_path=args.output, interval=interval, pipeline=pipeline)

    if result['status'] == 'failed':
        print(f"ERROR: {job} failed: {result['error_message']}", file=sys.stderr)
        return None
    return result


def _runs(conn, args) -> None:
    print(f"{'Run':>5}  {'Job':<14} {'Status':<10} {'Started':<19}  {'Rows':>6}  Error")
    for run in list_recent_runs(conn, limit=args.limit, job_name=args.job):
        started = run['started_at'].strftime('%Y-%m-%d %H:%M:%S') if run['started_at'] else ''
        rows = run['rows_out'] if run['rows_out'] is not None else ''
        print(f"{run['run_id']:>5}  {run['job_name']:<14} {run['status'].value:<10} {started:<19}  "
              f"{rows:>6}  {run['error_message'] or ''}")


def _print_summary(result) -> None:
    print()
    print(f"{result['results_count']} of {result['series_total']} series evaluated")
    if result['skipped']:
        reasons = ', '.join(f"{k}={v}" for k, v in sorted(result['skipped'].items()))
        print(f"Skipped: {reasons}")
    if result['status'] == 'partial':
        print("WARNING: deadline reached, results are partial")
    if result['output_path']:
        print(f"Results saved to: {result['output_path']}")


if __name__ == '__main__':
    sys.exit(main())
