"""Holiday calendar consulted by business-day arithmetic.

Holds the static list of non-working dates (weekends are computed, never
stored). The list is loaded once from YAML; years the file does not cover can
optionally fall back to computed US federal holidays, which is the schedule
USPS follows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from functools import cached_property, lru_cache
from pathlib import Path
from typing import Iterable

import yaml

from dropsheet.models import DataFileError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Computed federal holidays
# ---------------------------------------------------------------------------

def _nth_weekday(year: int, month: int, weekday: int, n: int) -> date:
    """nth occurrence (1-based) of a weekday (0=Monday) in a month."""
    first_day = date(year, month, 1)
    days_ahead = (weekday - first_day.weekday()) % 7
    return first_day + timedelta(days=days_ahead, weeks=n - 1)


def _last_weekday(year: int, month: int, weekday: int) -> date:
    if month == 12:
        last_day = date(year, 12, 31)
    else:
        last_day = date(year, month + 1, 1) - timedelta(days=1)
    return last_day - timedelta(days=(last_day.weekday() - weekday) % 7)


def _observed(holiday: date) -> date:
    """Saturday holidays are observed Friday, Sunday holidays Monday."""
    if holiday.weekday() == 5:
        return holiday - timedelta(days=1)
    if holiday.weekday() == 6:
        return holiday + timedelta(days=1)
    return holiday


@lru_cache(maxsize=64)
def federal_holidays(year: int) -> dict[date, str]:
    """US federal holidays (observed dates) for one year."""
    return {
        _observed(date(year, 1, 1)): "New Year's Day",
        _nth_weekday(year, 1, 0, 3): "Martin Luther King Jr. Day",
        _nth_weekday(year, 2, 0, 3): "Presidents Day",
        _last_weekday(year, 5, 0): "Memorial Day",
        _observed(date(year, 6, 19)): "Juneteenth",
        _observed(date(year, 7, 4)): "Independence Day",
        _nth_weekday(year, 9, 0, 1): "Labor Day",
        _nth_weekday(year, 10, 0, 2): "Columbus Day",
        _observed(date(year, 11, 11)): "Veterans Day",
        _nth_weekday(year, 11, 3, 4): "Thanksgiving Day",
        _observed(date(year, 12, 25)): "Christmas Day",
    }


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

def _as_day(value) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class HolidayCalendar:
    """Immutable set of non-working dates in addition to Saturdays and Sundays."""

    dates: frozenset[date] = frozenset()
    names: dict[date, str] = field(default_factory=dict, compare=False, hash=False)
    fill_federal: bool = False

    @classmethod
    def empty(cls) -> HolidayCalendar:
        return cls()

    @classmethod
    def of(cls, days: Iterable[date | str]) -> HolidayCalendar:
        parsed = {d for d in (_as_day(v) for v in days) if d is not None}
        return cls(dates=frozenset(parsed))

    @classmethod
    def from_yaml(cls, path: str | Path) -> HolidayCalendar:
        """Load a holiday YAML file. A missing file gives an empty calendar."""
        path = Path(path)
        if not path.exists():
            logger.warning("Holiday file %s not found; using an empty calendar", path)
            return cls()
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise DataFileError(f"{path}: {e}") from e

        entries = data.get("holidays", []) if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise DataFileError(f"{path}: expected a list under 'holidays'")

        names: dict[date, str] = {}
        for entry in entries:
            raw, name = (entry.get("date"), entry.get("name", "")) if isinstance(entry, dict) else (entry, "")
            day = _as_day(raw)
            if day is None:
                raise DataFileError(f"{path}: not a date: {raw!r}")
            names[day] = name or ""
        logger.debug("Loaded %d holidays from %s", len(names), path)
        return cls(dates=frozenset(names), names=names)

    def with_federal_holidays(self) -> HolidayCalendar:
        """Copy that also treats computed federal holidays as non-working for
        years this calendar does not list."""
        return replace(self, fill_federal=True)

    @cached_property
    def years(self) -> frozenset[int]:
        return frozenset(d.year for d in self.dates)

    def is_holiday(self, value: date | datetime) -> bool:
        """True if the calendar day (time-of-day ignored) is a holiday."""
        day = _as_day(value)
        if day is None:
            return False
        if day in self.dates:
            return True
        return self.fill_federal and day.year not in self.years and day in federal_holidays(day.year)

    def name_of(self, value: date | datetime) -> str:
        day = _as_day(value)
        if day is None or not self.is_holiday(day):
            return ""
        return self.names.get(day) or federal_holidays(day.year).get(day, "")

    def holidays_in(self, year: int) -> list[date]:
        listed = sorted(d for d in self.dates if d.year == year)
        if listed or not self.fill_federal:
            return listed
        return sorted(federal_holidays(year))
