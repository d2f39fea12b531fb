"""Application configuration loaded from environment variables."""

from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from dropsheet.engine.dates import DateEngine, LeadTimes

PACKAGE_DATA = Path(__file__).parent / "data"


class Settings(BaseSettings):
    """All configuration is loaded from .env or DROPSHEET_* environment variables."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "DROPSHEET_",
                    "extra": "ignore"}

    # Storage
    data_dir: str = "./data"

    # Reference data (empty = packaged file)
    holidays_file: str = ""
    include_federal_holidays: bool = False
    templates_file: str = ""

    # Application
    timezone: str = "America/New_York"
    log_level: str = "WARNING"

    # Lead times
    business_days_to_drop: int = 10
    business_days_to_art: int = 5
    core_art_submission_days: int = 35
    standard_art_submission_days: int = 28
    core_first_valid_offset_days: int = 14
    standard_first_valid_offset_days: int = 10

    @property
    def data_path(self) -> Path:
        p = Path(self.data_dir)
        p.mkdir(parents=True, exist_ok=True)
        return p

    @property
    def holidays_path(self) -> Path:
        return Path(self.holidays_file) if self.holidays_file else PACKAGE_DATA / "holidays.yaml"

    @property
    def templates_path(self) -> Path:
        return Path(self.templates_file) if self.templates_file else PACKAGE_DATA / "job_templates.yaml"

    def now(self) -> datetime:
        return datetime.now(ZoneInfo(self.timezone))

    def today(self) -> date:
        return self.now().date()

    def lead_times(self) -> LeadTimes:
        from dropsheet.engine.dates import LeadTimes

        return LeadTimes(
            business_days_to_drop=self.business_days_to_drop,
            business_days_to_art=self.business_days_to_art,
            core_art_submission_days=self.core_art_submission_days,
            standard_art_submission_days=self.standard_art_submission_days,
            core_first_valid_offset_days=self.core_first_valid_offset_days,
            standard_first_valid_offset_days=self.standard_first_valid_offset_days,
        )


def get_settings() -> Settings:
    return Settings()


def build_engine(settings: Settings) -> DateEngine:
    """Date engine over the configured holiday calendar and lead times."""
    from dropsheet.calendar.holidays import HolidayCalendar
    from dropsheet.engine.dates import DateEngine

    calendar = HolidayCalendar.from_yaml(settings.holidays_path)
    if settings.include_federal_holidays:
        calendar = calendar.with_federal_holidays()
    return DateEngine(calendar=calendar, lead_times=settings.lead_times())


def configure_logging(level: str = "WARNING", console: Console | None = None) -> None:
    """Route library logging through rich on stderr. Safe to call more than once."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    handler = RichHandler(console=console or Console(stderr=True), show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(level.upper())
