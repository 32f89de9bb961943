"""
Performance over a trailing calendar interval.
Compares the latest quote with the quote nearest on or before (latest - interval).
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from analysis.calculations.intervals import Interval, as_interval, subtract
from analysis.date_indexer import DateIndexer
from analysis.skip_reasons import SkipReason
from storage.registry import SeriesKey
from storage.series_store import SeriesInfo, SeriesStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerformanceResult:
    series: SeriesInfo
    interval: Interval
    latest_date: date
    latest_price: float
    base_date: date
    base_price: float
    performance: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.series.to_dict(),
            'interval': self.interval.label,
            'latest_date': self.latest_date.isoformat(),
            'latest_price': self.latest_price,
            'base_date': self.base_date.isoformat(),
            'base_price': self.base_price,
            'performance': self.performance
        }


def performance_ratio(latest_price: float, base_price: float) -> float:
    """
    Formula: latest / base - 1

    Returns:
        Performance as decimal (0.2 = +20%)
    """
    return latest_price / base_price - 1


class PerformanceEvaluator:
    """Evaluates one series at a time against a lookback interval."""

    def __init__(self, store: SeriesStore, indexer: Optional[DateIndexer] = None):
        self.store = store
        self.indexer = indexer or DateIndexer(store)

    def evaluate(
        self,
        key: SeriesKey,
        interval: Union[Interval, Mapping[str, Any], str]
    ) -> Optional[PerformanceResult]:
        """
        Compute performance for one series.

        Returns:
            PerformanceResult, or None when the series lacks data old enough

        Raises:
            InvalidIntervalError: If the interval count is < 1 or its unit unknown
        """
        result, _ = self.evaluate_or_skip(key, interval)
        return result

    def evaluate_or_skip(
        self,
        key: SeriesKey,
        interval: Union[Interval, Mapping[str, Any], str]
    ) -> Tuple[Optional[PerformanceResult], Optional[SkipReason]]:
        """Like evaluate, also returning the skip reason when there is no result."""
        interval = as_interval(interval)

        reason = self.indexer.check(key)
        if reason is not None:
            return self._skip(key, reason)

        latest = self.store.latest_point(key)
        target = subtract(latest.date, interval.count, interval.unit)

        base_date = self.indexer.on_or_before(key, target)
        if base_date is None:
            # Newly listed instrument, nothing as old as the target date
            return self._skip(key, SkipReason.NO_BASE_DATE)

        base_price = self.store.price_at(key, base_date)
        if base_price <= 0:
            return self._skip(key, SkipReason.INVALID_PRICE)

        result = PerformanceResult(
            series=self.store.describe(key),
            interval=interval,
            latest_date=latest.date,
            latest_price=latest.price,
            base_date=base_date,
            base_price=base_price,
            performance=performance_ratio(latest.price, base_price)
        )
        return result, None

    def _skip(self, key: SeriesKey, reason: SkipReason):
        logger.debug(f"Performance: skipping series {tuple(key)} ({reason.value})")
        return None, reason
