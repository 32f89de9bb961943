"""
Aggregation pipeline - runs an evaluator over every known series.

Series without enough data are skipped and counted by reason; they never
fail the batch. An invalid interval fails the whole request before any
series is read.
"""

import logging
import os
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from dotenv import load_dotenv

from analysis.calculations.intervals import Interval, as_interval
from analysis.calculations.performance import PerformanceEvaluator, PerformanceResult
from analysis.calculations.rsl import RelativeStrengthLevyEvaluator, RSLevyResult
from analysis.calculations.weekly import WeeklyCloseExtractor
from analysis.date_indexer import DateIndexer
from analysis.skip_reasons import SkipReason
from storage.registry import SeriesKey
from storage.series_store import SeriesStore

load_dotenv()

logger = logging.getLogger(__name__)


@dataclass
class AggregationOutcome:
    """Results of one batch plus what was left out and why."""
    job: str
    results: List[Any]
    series_total: int
    skipped: Dict[str, int] = field(default_factory=dict)
    partial: bool = False

    @property
    def skipped_total(self) -> int:
        return sum(self.skipped.values())


class AggregationPipeline:
    """
    Batch entry point for performance and RSL evaluations.

    Args:
        store: Series store to read from (never written)
        max_workers: Thread pool size, 1 evaluates sequentially (default: AGGREGATION_MAX_WORKERS env)
        deadline_seconds: Stop evaluating further series after this many seconds and
            return what is done (default: AGGREGATION_DEADLINE_S env, unset = no deadline)
        complete_weeks_only: Ignore the in-progress week for RSL (default: RSL_COMPLETE_WEEKS_ONLY env)
    """

    def __init__(
        self,
        store: SeriesStore,
        max_workers: Optional[int] = None,
        deadline_seconds: Optional[float] = None,
        complete_weeks_only: Optional[bool] = None
    ):
        if max_workers is None:
            max_workers = int(os.getenv('AGGREGATION_MAX_WORKERS', '1'))

        if deadline_seconds is None and os.getenv('AGGREGATION_DEADLINE_S'):
            deadline_seconds = float(os.getenv('AGGREGATION_DEADLINE_S'))

        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")

        self.store = store
        self.max_workers = max_workers
        self.deadline_seconds = deadline_seconds

        self.indexer = DateIndexer(store)
        self.performance = PerformanceEvaluator(store, self.indexer)
        self.extractor = WeeklyCloseExtractor(store, complete_weeks_only=complete_weeks_only)
        self.rsl = RelativeStrengthLevyEvaluator(store, self.extractor)

    def compute_performance(
        self,
        interval: Union[Interval, Mapping[str, Any], str]
    ) -> List[PerformanceResult]:
        """
        Performance for every series with data old enough for the interval.

        Raises:
            InvalidIntervalError: If the interval is invalid (no series is evaluated)
        """
        return self.run_performance(interval).results

    def compute_relative_strength_levy(self) -> List[RSLevyResult]:
        """RSL for every series with at least 27 weekly closes."""
        return self.run_relative_strength_levy().results

    def run_performance(self, interval: Union[Interval, Mapping[str, Any], str]) -> AggregationOutcome:
        # Validate before touching any series
        interval = as_interval(interval)
        logger.info(f"Evaluating performance over {interval.count} {interval.unit.value}(s)")
        return self._run('performance', lambda key: self.performance.evaluate_or_skip(key, interval))

    def run_relative_strength_levy(self) -> AggregationOutcome:
        logger.info("Evaluating relative strength levy")
        return self._run('rsl', self.rsl.evaluate_or_skip)

    def _run(
        self,
        job: str,
        evaluate: Callable[[SeriesKey], Tuple[Optional[Any], Optional[SkipReason]]]
    ) -> AggregationOutcome:
        keys = sorted(self.store.all_keys())
        deadline = None
        if self.deadline_seconds is not None:
            deadline = time.monotonic() + self.deadline_seconds

        def guarded(key: SeriesKey):
            if deadline is not None and time.monotonic() >= deadline:
                return None, SkipReason.DEADLINE
            return evaluate(key)

        if self.max_workers > 1 and len(keys) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [executor.submit(guarded, key) for key in keys]
                evaluated = [future.result() for future in futures]
        else:
            evaluated = [guarded(key) for key in keys]

        results = []
        skipped = Counter()
        for result, reason in evaluated:
            if result is not None:
                results.append(result)
            else:
                skipped[reason.value] += 1

        results.sort(key=lambda r: (r.series.isin, r.series.exchange_name))
        partial = skipped.get(SkipReason.DEADLINE.value, 0) > 0

        logger.info(
            f"{job}: {len(results)} of {len(keys)} series evaluated"
            + (f", skipped {dict(skipped)}" if skipped else "")
        )
        if partial:
            logger.warning(f"{job}: deadline of {self.deadline_seconds}s reached, returning partial results")

        return AggregationOutcome(
            job=job,
            results=results,
            series_total=len(keys),
            skipped=dict(skipped),
            partial=partial
        )
