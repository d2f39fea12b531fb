"""Job-level operations: templates, postage, duplicates, month views, import/export."""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterable
from uuid import uuid4

import yaml
from pydantic import ValidationError

from dropsheet.engine.dates import DateEngine, parse_date
from dropsheet.models import DataFileError, MailJob, Postage

logger = logging.getLogger(__name__)

POSTAGE_RATES = {
    Postage.STANDARD.value: 0.35,
    Postage.FIRST_CLASS.value: 0.457,
}

SORT_FIELDS = ("in_home_date", "vendor_mail_date")


class InvalidImportError(ValueError):
    """Raised when an import payload is not a JSON array of jobs."""


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class JobTemplate:
    property: str
    category: str
    label: str
    name_pattern: str
    mail_type: str
    postage: str = Postage.STANDARD.value
    default_in_home_day: int = 15

    def campaign_name(self, year: int, month: int) -> str:
        return self.name_pattern.replace("{Month}", date(year, month, 1).strftime("%B"))

    def in_home_date(self, year: int, month: int) -> date:
        """Template day in the target month, clamped to the month's last day."""
        first_of_next = date(year + month // 12, month % 12 + 1, 1)
        last_day = (first_of_next - timedelta(days=1)).day
        return date(year, month, max(1, min(self.default_in_home_day, last_day)))


def load_templates(path: str | Path) -> list[JobTemplate]:
    """Load job templates keyed property -> category -> [template]."""
    path = Path(path)
    if not path.exists():
        return []
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise DataFileError(f"{path}: {e}") from e
    if not isinstance(data, dict):
        raise DataFileError(f"{path}: expected a mapping of properties")

    templates: list[JobTemplate] = []
    for prop, categories in data.items():
        for category, entries in (categories or {}).items():
            for entry in entries or []:
                try:
                    templates.append(JobTemplate(
                        property=str(prop),
                        category=str(category),
                        label=entry["label"],
                        name_pattern=entry.get("name_pattern", entry["label"]),
                        mail_type=entry.get("type", ""),
                        postage=entry.get("postage", Postage.STANDARD.value),
                        default_in_home_day=int(entry.get("default_in_home_day", 15)),
                    ))
                except (KeyError, TypeError, ValueError) as e:
                    raise DataFileError(f"{path}: bad template in {prop}/{category}: {e}") from e
    return templates


def find_template(templates: Iterable[JobTemplate], property: str, label: str) -> JobTemplate | None:
    for template in templates:
        if template.property.lower() == property.lower() and template.label.lower() == label.lower():
            return template
    return None


def build_job_from_template(template: JobTemplate, year: int, month: int, engine: DateEngine,
                            job_id: str | None = None, now: datetime | None = None) -> MailJob:
    """New job for ``template`` in the target month.

    The vendor mail date starts out as the computed mail drop date.
    """
    in_home = template.in_home_date(year, month)
    chain = engine.calculate_milestone_dates(in_home, template.mail_type)
    return MailJob(
        id=job_id or uuid4().hex,
        campaign_name=template.campaign_name(year, month),
        mail_type=template.mail_type,
        property=template.property,
        postage=template.postage,
        in_home_date=in_home.isoformat(),
        vendor_mail_date=chain.mail_drop_date.isoformat() if chain.mail_drop_date else None,
        created_at=(now or datetime.now()).isoformat(),
    )


# ---------------------------------------------------------------------------
# Postage
# ---------------------------------------------------------------------------

def estimate_postage(quantity: int, postage: str | None) -> float:
    """Postage cost for a drop; unknown classes are priced as Standard."""
    rate = POSTAGE_RATES.get(postage or "", POSTAGE_RATES[Postage.STANDARD.value])
    return round(max(quantity, 0) * rate, 2)


def postage_difference(quantity: int) -> float:
    """Extra cost of sending First Class instead of Standard."""
    return round(estimate_postage(quantity, Postage.FIRST_CLASS.value)
                 - estimate_postage(quantity, Postage.STANDARD.value), 2)


# ---------------------------------------------------------------------------
# Views over many jobs
# ---------------------------------------------------------------------------

def _duplicate_key(job: MailJob) -> str:
    return f"{(job.campaign_name or '').strip().lower()}|{job.property}|{job.in_home_date}"


def find_duplicates(jobs: Iterable[MailJob]) -> list[MailJob]:
    """Jobs sharing campaign name, property and in-home date with another job."""
    groups: dict[str, list[MailJob]] = defaultdict(list)
    for job in jobs:
        groups[_duplicate_key(job)].append(job)
    return [job for group in groups.values() if len(group) > 1 for job in group]


def jobs_in_month(jobs: Iterable[MailJob], year: int, month: int,
                  property: str | None = None) -> list[MailJob]:
    """Jobs whose in-home date falls in the month; jobs without one never match."""
    selected = []
    for job in jobs:
        if property and property != "All" and job.property != property:
            continue
        in_home = parse_date(job.in_home_date)
        if in_home is not None and (in_home.year, in_home.month) == (year, month):
            selected.append(job)
    return selected


def sort_jobs(jobs: Iterable[MailJob], field: str = "in_home_date",
              descending: bool = False) -> list[MailJob]:
    """Sort by a date field; jobs missing the date sort as earliest."""
    if field not in SORT_FIELDS:
        raise ValueError(f"Cannot sort by {field!r}; choose one of {', '.join(SORT_FIELDS)}")
    return sorted(jobs, key=lambda j: parse_date(getattr(j, field)) or date.min, reverse=descending)


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------

def export_jobs(jobs: Iterable[MailJob]) -> str:
    return json.dumps([job.to_export() for job in jobs], indent=2)


def import_jobs(payload: str | list[Any], existing_ids: Iterable[str] = (),
                id_factory: Callable[[], str] = lambda: uuid4().hex,
                now: Callable[[], datetime] = datetime.now) -> list[MailJob]:
    """Clean up an exported job list for re-import.

    Entries without a campaign name or property, or with values that do not
    fit a job record, are skipped and logged. Ids that already
    exist (or repeat within the payload) are replaced with fresh ones.
    """
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise InvalidImportError(f"Not valid JSON: {e}") from e
    if not isinstance(payload, list):
        raise InvalidImportError("Invalid JSON format: expected an array of jobs")

    taken = set(existing_ids)
    jobs: list[MailJob] = []
    for index, entry in enumerate(payload, 1):
        if not isinstance(entry, dict) or not entry.get("campaign_name") or not entry.get("property"):
            logger.info("Skipping import entry %d without campaign_name/property", index)
            continue
        try:
            job = MailJob(
                id=str(entry.get("id") or ""),
                job_number=entry.get("job_number") or None,
                campaign_name=entry["campaign_name"],
                mail_type=entry.get("mail_type") or "",
                property=entry["property"],
                job_submitted=bool(entry.get("job_submitted") or False),
                submitted_date=entry.get("submitted_date") or None,
                postage=entry.get("postage") or Postage.STANDARD.value,
                quantity=int(entry.get("quantity") or 0),
                in_home_date=entry.get("in_home_date") or None,
                first_valid_date=entry.get("first_valid_date") or None,
                vendor_mail_date=entry.get("vendor_mail_date") or None,
                milestones=entry.get("milestones") or {},
                created_at=entry.get("created_at") or now().isoformat(),
            )
        except (ValidationError, ValueError, TypeError) as e:
            logger.warning("Skipping import entry %d (%s): %s", index, entry.get("campaign_name"), e)
            continue
        if not job.id or job.id in taken:
            job = job.model_copy(update={"id": id_factory()})
        taken.add(job.id)
        jobs.append(job)
    return jobs
