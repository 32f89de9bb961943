"""
Relative Strength Levy (RSL) indicator.

RSL = latest weekly close / mean of the trailing 27 weekly closes, which is
computed as (newest * 27) / sum(closes). A flat series scores exactly 1.0;
above 1 the latest close sits above its recent weekly average.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from analysis.calculations.weekly import WeeklyClose, WeeklyCloseExtractor
from analysis.skip_reasons import SkipReason
from storage.registry import SeriesKey
from storage.series_store import SeriesInfo, SeriesNotFoundError, SeriesStore

logger = logging.getLogger(__name__)

RSL_WEEKS = 27


class RSLError(Exception):
    """Raised when the RSL cannot be computed from the given closes."""
    pass


@dataclass(frozen=True)
class RSLevyResult:
    series: SeriesInfo
    newest_weekly_close: date
    rsl_value: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.series.to_dict(),
            'newest_weekly_close': self.newest_weekly_close.isoformat(),
            'rsl_value': self.rsl_value
        }


def rsl_value(prices: Sequence[float]) -> float:
    """
    Compute the RSL of weekly closes ordered newest first.

    Args:
        prices: Weekly closing prices, newest first

    Returns:
        prices[0] * len(prices) / sum(prices)

    Raises:
        RSLError: If prices is empty or sums to a non-positive value
    """
    if len(prices) == 0:
        raise RSLError("No weekly closes given")

    closes = np.asarray(prices, dtype=float)
    total = closes.sum()
    if total <= 0:
        raise RSLError(f"Weekly closes must sum to a positive value, got {total}")

    return float(closes[0] * len(closes) / total)


class RelativeStrengthLevyEvaluator:
    """Evaluates the RSL of one series from its newest weekly closes."""

    def __init__(
        self,
        store: SeriesStore,
        extractor: Optional[WeeklyCloseExtractor] = None,
        weeks: int = RSL_WEEKS
    ):
        self.store = store
        self.extractor = extractor or WeeklyCloseExtractor(store)
        self.weeks = weeks

    def evaluate(self, key: SeriesKey) -> Optional[RSLevyResult]:
        """Return the RSL result, or None if the series has fewer than 27 weekly closes."""
        result, _ = self.evaluate_or_skip(key)
        return result

    def evaluate_or_skip(self, key: SeriesKey) -> Tuple[Optional[RSLevyResult], Optional[SkipReason]]:
        try:
            closes: List[WeeklyClose] = self.extractor.extract(key)
        except SeriesNotFoundError:
            return self._skip(key, SkipReason.NOT_FOUND)

        if len(closes) < self.weeks:
            logger.debug(f"RSL: series {tuple(key)} has only {len(closes)} weekly closes, need {self.weeks}")
            return self._skip(key, SkipReason.INSUFFICIENT_HISTORY)

        newest = closes[:self.weeks]
        try:
            value = rsl_value([c.price for c in newest])
        except RSLError:
            return self._skip(key, SkipReason.INVALID_PRICE)

        result = RSLevyResult(
            series=self.store.describe(key),
            newest_weekly_close=newest[0].week_end_date,
            rsl_value=value
        )
        return result, None

    def _skip(self, key: SeriesKey, reason: SkipReason):
        logger.debug(f"RSL: skipping series {tuple(key)} ({reason.value})")
        return None, reason
