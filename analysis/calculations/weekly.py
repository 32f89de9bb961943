"""
Weekly close extraction.
Buckets daily quotes into ISO 8601 weeks and keeps the last quote of each week.

Week convention: weeks start on Monday and week 1 is the week holding the
year's first Thursday (MySQL YEARWEEK(date, 3)). Near year ends a date can
belong to the neighbouring ISO year: 2024-12-30 is 2025-W01 and 2021-01-03
is 2020-W53.
"""

import logging
import os
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional, Tuple

import pandas as pd
from dotenv import load_dotenv

from analysis.calculations.intervals import subtract_weeks
from storage.registry import SeriesKey
from storage.series_store import SeriesStore

load_dotenv()

logger = logging.getLogger(__name__)

# Over-covers the 27 weeks the RSL needs
WINDOW_WEEKS = 28


def year_week(day: date) -> int:
    """ISO year and week as a single number, e.g. 202501."""
    iso = day.isocalendar()
    return iso[0] * 100 + iso[1]


def last_friday(day: date) -> date:
    """Most recent Friday on or before day."""
    return day - timedelta(days=(3 + day.weekday()) % 7)


@dataclass(frozen=True)
class WeeklyClose:
    week_end_date: date
    price: float

    @property
    def year_week(self) -> int:
        return year_week(self.week_end_date)


def weekly_closes(frame: pd.DataFrame) -> List[WeeklyClose]:
    """
    Reduce daily quotes to one close per ISO week.

    Args:
        frame: DataFrame with 'date' and 'price' columns, one row per date

    Returns:
        Weekly closes, newest first
    """
    if frame.empty:
        return []

    dates = pd.to_datetime(frame['date'])
    iso = dates.dt.isocalendar()

    work = pd.DataFrame({
        'date': dates,
        'price': frame['price'].astype(float),
        'iso_year': iso['year'],
        'iso_week': iso['week']
    })

    # Last trading day of each week
    last_idx = work.groupby(['iso_year', 'iso_week'])['date'].idxmax()
    closes = work.loc[last_idx].sort_values('date', ascending=False)

    return [
        WeeklyClose(week_end_date=ts.date(), price=float(price))
        for ts, price in zip(closes['date'], closes['price'])
    ]


class WeeklyCloseExtractor:
    """
    Produces the trailing weekly closes of a series from the store.

    With complete_weeks_only the window ends at the newest quote on or before
    the most recent Friday, so a week still in progress is ignored.
    """

    def __init__(
        self,
        store: SeriesStore,
        weeks: int = WINDOW_WEEKS,
        complete_weeks_only: Optional[bool] = None
    ):
        if complete_weeks_only is None:
            complete_weeks_only = os.getenv('RSL_COMPLETE_WEEKS_ONLY', 'false').lower() in ('1', 'true', 'yes')

        self.store = store
        self.weeks = weeks
        self.complete_weeks_only = complete_weeks_only

    def window(self, key: SeriesKey) -> Tuple[date, date]:
        """
        Return the inclusive (start, end) date window for a series.

        Raises:
            SeriesNotFoundError: If the series has no points (or none up to the last Friday)
        """
        end = self.store.latest_date(key)
        if self.complete_weeks_only:
            end = self.store.date_on_or_before(key, last_friday(end))

        return subtract_weeks(end, self.weeks), end

    def extract(self, key: SeriesKey) -> List[WeeklyClose]:
        """
        Return the weekly closes inside the window, newest first.

        Raises:
            SeriesNotFoundError: If the series has no points
        """
        start, end = self.window(key)
        frame = self.store.range_frame(key, start, end)
        closes = weekly_closes(frame)
        logger.debug(f"Series {tuple(key)}: {len(frame)} quotes in {start}..{end} -> {len(closes)} weekly closes")
        return closes
