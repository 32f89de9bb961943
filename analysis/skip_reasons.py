"""
Reasons a series is left out of a batch evaluation.
None of these are errors; batch results simply omit the series.
"""

from enum import Enum


class SkipReason(str, Enum):
    NOT_FOUND = 'not_found'
    SINGLE_POINT = 'single_point'
    NO_BASE_DATE = 'no_base_date'
    INSUFFICIENT_HISTORY = 'insufficient_history'
    INVALID_PRICE = 'invalid_price'
    DEADLINE = 'deadline'
