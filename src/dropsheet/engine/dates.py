"""Business-day date engine.

Derives a campaign's deadline chain from its in-home date and mail type:

    mail drop      = in-home  - 10 business days
    art submission = mail drop - 35 calendar days (core) / 28 (everything else)
    art due        = mail drop - 5 business days   (vendor handover)

Every function here is total: malformed or missing dates come back as None
(or False), never as an exception, because callers render incomplete jobs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Mapping

from dropsheet.calendar.holidays import HolidayCalendar
from dropsheet.models import DeadlineChain, InHomeChain, MailTypeClass, MilestoneKey, Milestones

logger = logging.getLogger(__name__)

CORE_MARKERS = ("core", "newsletter")


@dataclass(frozen=True)
class LeadTimes:
    business_days_to_drop: int = 10
    business_days_to_art: int = 5
    core_art_submission_days: int = 35
    standard_art_submission_days: int = 28
    core_first_valid_offset_days: int = 14
    standard_first_valid_offset_days: int = 10

    def art_submission_days(self, mail_class: MailTypeClass) -> int:
        if mail_class == MailTypeClass.CORE:
            return self.core_art_submission_days
        return self.standard_art_submission_days

    def first_valid_offset_days(self, mail_class: MailTypeClass) -> int:
        if mail_class == MailTypeClass.CORE:
            return self.core_first_valid_offset_days
        return self.standard_first_valid_offset_days


def parse_date(value: Any) -> date | None:
    """Calendar date from a date, datetime or ISO string; None if unusable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def classify_mail_type(mail_type: str | None) -> MailTypeClass:
    """Core class if the label mentions core or newsletter (any case)."""
    label = mail_type.lower() if isinstance(mail_type, str) else ""
    if any(marker in label for marker in CORE_MARKERS):
        return MailTypeClass.CORE
    return MailTypeClass.STANDARD


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def get_lag_days(target: date | datetime, actual: date | datetime) -> int | None:
    """Signed calendar days ``actual`` falls after ``target`` (negative = early)."""
    target, actual = parse_date(target), parse_date(actual)
    if target is None or actual is None:
        return None
    return (actual - target).days


def is_behind_schedule(milestones: Milestones | Mapping[str, Any] | None,
                       art_due_date: date | datetime | None,
                       today: date | datetime) -> bool:
    """Past the art deadline while data approval is still outstanding."""
    deadline = parse_date(art_due_date)
    current = parse_date(today)
    if deadline is None or current is None:
        return False
    return current > deadline and not Milestones.coerce(milestones).is_completed(MilestoneKey.DATA_APPROVED)


@dataclass(frozen=True)
class DateEngine:
    """Deadline arithmetic over an injected holiday calendar and lead times."""

    calendar: HolidayCalendar = field(default_factory=HolidayCalendar)
    lead_times: LeadTimes = field(default_factory=LeadTimes)

    def is_holiday(self, day: date | datetime) -> bool:
        return self.calendar.is_holiday(day)

    def is_business_day(self, day: date | datetime) -> bool:
        day = parse_date(day)
        return day is not None and not is_weekend(day) and not self.calendar.is_holiday(day)

    def subtract_business_days(self, start: date | datetime, days: int) -> date | None:
        """Step back one day at a time until ``days`` business days are used up.

        Weekends and holidays are passed over without counting. ``days <= 0``
        returns the start date unchanged.
        """
        current = parse_date(start)
        if current is None:
            return None
        remaining = days
        while remaining > 0:
            current -= timedelta(days=1)
            if self.is_business_day(current):
                remaining -= 1
        return current

    def calculate_milestone_dates(self, in_home_date: Any, mail_type: str | None = "") -> DeadlineChain:
        """Deadline chain for an in-home date; all fields None if it won't parse."""
        in_home = parse_date(in_home_date)
        if in_home is None:
            return DeadlineChain()

        mail_class = classify_mail_type(mail_type)
        lead = self.lead_times
        try:
            mail_drop = self.subtract_business_days(in_home, lead.business_days_to_drop)
            art_submission = mail_drop - timedelta(days=lead.art_submission_days(mail_class))
            art_due = self.subtract_business_days(mail_drop, lead.business_days_to_art)
        except OverflowError:
            logger.debug("In-home date %s is too close to the calendar limit", in_home)
            return DeadlineChain()

        return DeadlineChain(
            mail_drop_date=mail_drop,
            art_submission_due_date=art_submission,
            art_due_date=art_due,
        )

    def calculate_dates_from_first_valid(self, first_valid_date: Any,
                                         mail_type: str | None = "") -> InHomeChain | None:
        """Chain for a job planned from its first in-market date.

        In-home is first-valid minus 14 calendar days for core mail, 10 otherwise.
        """
        first_valid = parse_date(first_valid_date)
        if first_valid is None:
            return None

        offset = self.lead_times.first_valid_offset_days(classify_mail_type(mail_type))
        try:
            in_home = first_valid - timedelta(days=offset)
        except OverflowError:
            return None
        chain = self.calculate_milestone_dates(in_home, mail_type)
        return InHomeChain(in_home_date=in_home, **chain.model_dump())
