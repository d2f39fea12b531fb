from datetime import date, datetime

import pytest

from dropsheet.calendar.holidays import HolidayCalendar
from dropsheet.engine.dates import DateEngine

FIXED_NOW = datetime(2026, 1, 5, 9, 30)


@pytest.fixture
def engine():
    """Engine over an empty holiday calendar: only weekends are skipped."""
    return DateEngine(calendar=HolidayCalendar.empty())


@pytest.fixture
def holiday_engine():
    return DateEngine(calendar=HolidayCalendar.of(["2025-12-25", "2026-01-01"]))


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def core_chain(engine):
    # drop 2026-01-01, art due 2025-12-25, art submission 2025-11-27
    return engine.calculate_milestone_dates("2026-01-15", "Core/Newsletter")


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("DROPSHEET_DATA_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def today():
    return date(2025, 12, 1)
