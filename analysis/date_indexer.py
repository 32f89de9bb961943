"""
Per-series date facts derived from the series store.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from analysis.skip_reasons import SkipReason
from storage.registry import SeriesKey
from storage.series_store import SeriesNotFoundError, SeriesStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeriesBounds:
    earliest: date
    latest: date
    points: int


class DateIndexer:
    """Earliest/latest date lookups used as precondition checks before evaluation."""

    def __init__(self, store: SeriesStore):
        self.store = store

    def bounds(self, key: SeriesKey) -> SeriesBounds:
        """
        Return earliest date, latest date and point count for a series.

        Raises:
            SeriesNotFoundError: If the series has no points
        """
        earliest = self.store.earliest_date(key)
        latest = self.store.latest_date(key)
        return SeriesBounds(earliest=earliest, latest=latest, points=self.store.point_count(key))

    def on_or_before(self, key: SeriesKey, ref_date: date) -> Optional[date]:
        """Nearest stored date at or before ref_date, None if there is none."""
        try:
            return self.store.date_on_or_before(key, ref_date)
        except SeriesNotFoundError:
            return None

    def check(self, key: SeriesKey, min_points: int = 2) -> Optional[SkipReason]:
        """
        Return why a series cannot be evaluated, or None if it has enough points.
        """
        try:
            bounds = self.bounds(key)
        except SeriesNotFoundError:
            return SkipReason.NOT_FOUND

        if bounds.points < min_points:
            return SkipReason.SINGLE_POINT
        return None
