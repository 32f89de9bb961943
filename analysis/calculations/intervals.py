"""
Calendar interval arithmetic.
Pure functions for stepping back a count of days, months or years from a date.
"""

import numbers
import os
import re
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from dateutil.relativedelta import relativedelta
from dotenv import load_dotenv

load_dotenv()


class InvalidIntervalError(ValueError):
    """Raised when an interval count or unit is not usable as a lookback window."""
    pass


class IntervalConfigError(Exception):
    """Raised when the interval presets file cannot be loaded."""
    pass


class IntervalUnit(str, Enum):
    """Calendar units an interval can be expressed in."""
    DAY = 'day'
    MONTH = 'month'
    YEAR = 'year'


_SHORT_UNITS = {'D': IntervalUnit.DAY, 'M': IntervalUnit.MONTH, 'Y': IntervalUnit.YEAR}
_SHORT_FORM = re.compile(r'^\s*(\d+)\s*([DMY])\s*$', re.IGNORECASE)


@dataclass(frozen=True)
class Interval:
    """A lookback window such as 3 months or 1 year."""
    count: int
    unit: Union[IntervalUnit, str]

    def validate(self) -> 'Interval':
        """
        Check count and unit, returning a normalized interval.

        Raises:
            InvalidIntervalError: If count is not a positive integer or unit is unknown
        """
        return Interval(count=_check_count(self.count), unit=_check_unit(self.unit))

    @classmethod
    def parse(cls, text: str) -> 'Interval':
        """
        Parse the short form used on the command line: '30D', '6M', '1Y'.

        Raises:
            InvalidIntervalError: If text is not in short form or count < 1
        """
        match = _SHORT_FORM.match(text or '')
        if not match:
            raise InvalidIntervalError(f"Cannot parse interval {text!r}, expected e.g. 30D, 6M or 1Y")

        interval = cls(count=int(match.group(1)), unit=_SHORT_UNITS[match.group(2).upper()])
        return interval.validate()

    @property
    def label(self) -> str:
        unit = _check_unit(self.unit)
        short = {v: k for k, v in _SHORT_UNITS.items()}[unit]
        return f"{self.count}{short}"

    def to_dict(self) -> Dict[str, Any]:
        return {'count': self.count, 'unit': _check_unit(self.unit).value}


def subtract(ref_date: date, count: int, unit: Union[IntervalUnit, str]) -> date:
    """
    Step back count units from ref_date using calendar arithmetic.

    Month and year steps keep the day of month and clamp it to the last day
    of the target month, so 2024-03-31 minus 1 month is 2024-02-29 and
    2024-02-29 minus 1 year is 2023-02-28.

    Args:
        ref_date: Date to step back from
        count: Number of units, must be >= 1
        unit: 'day', 'month' or 'year'

    Returns:
        The target date

    Raises:
        InvalidIntervalError: If count < 1 or unit is unknown
    """
    count = _check_count(count)
    unit = _check_unit(unit)

    if unit is IntervalUnit.DAY:
        return ref_date - timedelta(days=count)
    if unit is IntervalUnit.MONTH:
        return ref_date - relativedelta(months=count)
    return ref_date - relativedelta(years=count)


def subtract_weeks(ref_date: date, weeks: int) -> date:
    """Step back whole calendar weeks (7 days each)."""
    return subtract(ref_date, weeks * 7, IntervalUnit.DAY)


def as_interval(
    value: Union[Interval, Mapping[str, Any], str],
    presets: Optional[Dict[str, Interval]] = None
) -> Interval:
    """
    Coerce an Interval, a {'count', 'unit'} mapping, a preset name or a
    short form string into a validated Interval.

    Raises:
        InvalidIntervalError: If the value does not describe a valid interval
    """
    if isinstance(value, Interval):
        return value.validate()

    if isinstance(value, Mapping):
        if 'count' not in value or 'unit' not in value:
            raise InvalidIntervalError(f"Interval mapping needs 'count' and 'unit', got {dict(value)}")
        return Interval(count=value['count'], unit=value['unit']).validate()

    if isinstance(value, str):
        if presets and value in presets:
            return presets[value].validate()
        return Interval.parse(value)

    raise InvalidIntervalError(f"Unsupported interval value: {value!r}")


def load_interval_presets(config_path: Optional[str] = None) -> Dict[str, Interval]:
    """
    Load named performance intervals from YAML.

    Expected layout:
        intervals:
          1M: {count: 1, unit: month}
          half-year: 6M

    Args:
        config_path: Path to presets file (default: PERFORMANCE_INTERVALS_PATH env)

    Returns:
        Dictionary mapping preset names to validated intervals

    Raises:
        IntervalConfigError: If the file is missing or malformed
        InvalidIntervalError: If a preset is not a valid interval
    """
    if config_path is None:
        config_path = os.getenv('PERFORMANCE_INTERVALS_PATH', './config/intervals.yml')

    config_file = Path(config_path)
    if not config_file.exists():
        raise IntervalConfigError(f"Interval presets file not found: {config_path}")

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise IntervalConfigError(f"Failed to load interval presets: {e}")

    if not isinstance(config, dict) or not isinstance(config.get('intervals'), dict):
        raise IntervalConfigError("Interval presets missing 'intervals' section")

    return {str(name): as_interval(value) for name, value in config['intervals'].items()}


def _check_count(count: Any) -> int:
    # bool is an int subclass, True would read as 1
    if isinstance(count, bool) or not isinstance(count, numbers.Integral):
        raise InvalidIntervalError(f"Interval count must be an integer, got {count!r}")
    if count < 1:
        raise InvalidIntervalError(f"Interval count must be positive, got {count}")
    return int(count)


def _check_unit(unit: Any) -> IntervalUnit:
    try:
        return IntervalUnit(unit)
    except ValueError:
        valid = ', '.join(u.value for u in IntervalUnit)
        raise InvalidIntervalError(f"Unknown interval unit {unit!r}, expected one of: {valid}")
