"""Core data models for mail jobs, milestones, deadline chains and schedule health."""

from __future__ import annotations

import logging
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class MailTypeClass(str, Enum):
    CORE = "core"          # core booklets and newsletters
    STANDARD = "standard"  # postcards, folds, everything else


class MilestoneKey(str, Enum):
    OUTLINE_GIVEN = "outline_given"
    DATA_RECEIVED = "data_received"
    DATA_APPROVED = "data_approved"
    CREATIVE_RECEIVED = "creative_received"
    CREATIVE_APPROVED = "creative_approved"
    SENT_TO_VENDOR = "sent_to_vendor"  # kept for stored records, not tracked
    MAILED = "mailed"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


ACTIVE_MILESTONES: tuple[MilestoneKey, ...] = (
    MilestoneKey.OUTLINE_GIVEN,
    MilestoneKey.DATA_RECEIVED,
    MilestoneKey.DATA_APPROVED,
    MilestoneKey.CREATIVE_RECEIVED,
    MilestoneKey.CREATIVE_APPROVED,
    MilestoneKey.MAILED,
)


class MilestoneStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ScheduleHealth(str, Enum):
    COMPLETE = "complete"
    LATE = "late"
    BEHIND_SCHEDULE = "behind_schedule"
    ON_TRACK = "on_track"


class DeadlineUrgency(str, Enum):
    UPCOMING = "upcoming"
    DUE_SOON = "due_soon"  # within 3 days
    DUE_TODAY = "due_today"
    OVERDUE = "overdue"
    COMPLETE = "complete"
    UNSCHEDULED = "unscheduled"


class DeliveryState(str, Enum):
    NOT_MAILED = "not_mailed"
    IN_TRANSIT = "in_transit"
    IN_HOMES = "in_homes"


class Postage(str, Enum):
    STANDARD = "Standard"
    FIRST_CLASS = "First Class"


# ---------------------------------------------------------------------------
# Milestones
# ---------------------------------------------------------------------------

def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


class MilestoneState(BaseModel):
    """One milestone: Pending, InProgress, or Completed (optionally with a time)."""

    model_config = ConfigDict(frozen=True)

    status: MilestoneStatus = MilestoneStatus.PENDING
    completed_at: datetime | None = None

    @classmethod
    def pending(cls) -> MilestoneState:
        return cls()

    @classmethod
    def in_progress(cls) -> MilestoneState:
        return cls(status=MilestoneStatus.IN_PROGRESS)

    @classmethod
    def completed(cls, at: datetime | None) -> MilestoneState:
        return cls(status=MilestoneStatus.COMPLETED, completed_at=at)

    @property
    def is_completed(self) -> bool:
        return self.status == MilestoneStatus.COMPLETED


class Milestones(BaseModel):
    """Immutable map of milestone key -> state.

    Absent keys are pending. The persisted (wire) shape is the flat dict the
    job record stores::

        {"data_received": "2026-01-02T15:04:05.000Z", "data_received_status": "completed"}

    A stored timestamp always reads back as completed, whatever the tag says;
    a legacy record can carry a timestamp with no tag at all.
    """

    model_config = ConfigDict(frozen=True)

    states: dict[MilestoneKey, MilestoneState] = Field(default_factory=dict)

    @classmethod
    def coerce(cls, value: Milestones | Mapping[str, Any] | None) -> Milestones:
        if isinstance(value, Milestones):
            return value
        return cls.from_wire(value)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any] | None) -> Milestones:
        states: dict[MilestoneKey, MilestoneState] = {}
        if not isinstance(data, Mapping):
            return cls()
        for key in MilestoneKey:
            raw_stamp = data.get(key.value)
            raw_status = data.get(f"{key.value}_status")
            try:
                status = MilestoneStatus(raw_status) if raw_status else None
            except ValueError:
                status = None

            if raw_stamp:
                states[key] = MilestoneState.completed(_parse_timestamp(raw_stamp))
            elif status == MilestoneStatus.COMPLETED:
                states[key] = MilestoneState.completed(None)
            elif status == MilestoneStatus.IN_PROGRESS:
                states[key] = MilestoneState.in_progress()
        return cls(states=states)

    def to_wire(self) -> dict[str, str]:
        out: dict[str, str] = {}
        for key in MilestoneKey:
            state = self.states.get(key)
            if state is None or state.status == MilestoneStatus.PENDING:
                continue
            if state.completed_at is not None:
                out[key.value] = state.completed_at.isoformat()
            out[f"{key.value}_status"] = state.status.value
        return out

    def get(self, key: MilestoneKey) -> MilestoneState:
        return self.states.get(key, MilestoneState.pending())

    def status(self, key: MilestoneKey) -> MilestoneStatus:
        return self.get(key).status

    def is_completed(self, key: MilestoneKey) -> bool:
        return self.get(key).is_completed

    def with_state(self, key: MilestoneKey, state: MilestoneState) -> Milestones:
        """Return a copy with ``key`` replaced; pending removes the key."""
        states = dict(self.states)
        if state.status == MilestoneStatus.PENDING:
            states.pop(key, None)
        else:
            states[key] = state
        return Milestones(states=states)


# ---------------------------------------------------------------------------
# Engine results
# ---------------------------------------------------------------------------

class DeadlineChain(BaseModel):
    model_config = ConfigDict(frozen=True)

    mail_drop_date: date | None = None
    art_submission_due_date: date | None = None
    art_due_date: date | None = None

    @property
    def is_scheduled(self) -> bool:
        return self.mail_drop_date is not None


class InHomeChain(DeadlineChain):
    in_home_date: date


class ToggleResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    milestones: Milestones
    rejected_reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.rejected_reason is None


class HealthReport(BaseModel):
    """Primary schedule classification plus both raw signals."""

    model_config = ConfigDict(frozen=True)

    health: ScheduleHealth
    lag_days: int | None = None
    is_late: bool = False
    is_behind: bool = False


class NextDeadline(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str = ""
    due_date: date | None = None
    days_remaining: int | None = None
    urgency: DeadlineUrgency = DeadlineUrgency.UNSCHEDULED

    @property
    def message(self) -> str:
        if self.urgency == DeadlineUrgency.COMPLETE:
            return "Completed"
        if self.urgency == DeadlineUrgency.UNSCHEDULED:
            return "Pending Schedule"
        if self.urgency == DeadlineUrgency.OVERDUE:
            return f"{self.label} Overdue ({abs(self.days_remaining)}d)"
        if self.urgency == DeadlineUrgency.DUE_TODAY:
            return f"{self.label} Due Today"
        return f"{self.label} in {self.days_remaining} Days"


# ---------------------------------------------------------------------------
# Mail job (the stored record)
# ---------------------------------------------------------------------------

class MailJob(BaseModel):
    id: str
    job_number: str | None = None
    campaign_name: str
    mail_type: str = ""
    property: str  # Lincoln, Tiverton
    job_submitted: bool = False
    submitted_date: str | None = None
    postage: str = Postage.STANDARD.value
    quantity: int = 0

    # Dates as entered (YYYY-MM-DD); may be empty on incomplete jobs
    in_home_date: str | None = None
    first_valid_date: str | None = None
    vendor_mail_date: str | None = None

    milestones: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=lambda: datetime.now().isoformat())

    @property
    def milestone_map(self) -> Milestones:
        return Milestones.from_wire(self.milestones)

    def with_milestones(self, milestones: Milestones) -> MailJob:
        return self.model_copy(update={"milestones": milestones.to_wire()})

    def save(self, data_dir: Path) -> None:
        """Persist job to disk. Whoever saves last wins."""
        job_dir = data_dir / "jobs"
        job_dir.mkdir(parents=True, exist_ok=True)
        file_path = job_dir / f"{self.id}.json"
        file_path.write_text(self.model_dump_json(indent=2))

    @classmethod
    def load(cls, data_dir: Path, job_id: str) -> MailJob:
        """Load job from disk."""
        file_path = data_dir / "jobs" / f"{job_id}.json"
        if not file_path.exists():
            raise JobNotFoundError(job_id)
        return cls.model_validate_json(file_path.read_text())

    @classmethod
    def list_all(cls, data_dir: Path) -> list[MailJob]:
        """List all jobs. Files that do not parse as a job are logged and skipped."""
        job_dir = data_dir / "jobs"
        if not job_dir.exists():
            return []
        jobs = []
        for f in sorted(job_dir.glob("*.json")):
            try:
                jobs.append(cls.model_validate_json(f.read_text()))
            except ValidationError as e:
                logger.warning("Skipping unreadable job file %s (%d errors)", f.name, e.error_count())
        return jobs

    @classmethod
    def delete(cls, data_dir: Path, job_id: str) -> None:
        file_path = data_dir / "jobs" / f"{job_id}.json"
        if not file_path.exists():
            raise JobNotFoundError(job_id)
        file_path.unlink()

    def to_export(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class JobNotFoundError(KeyError):
    """Raised when a job id has no stored record."""


class DataFileError(ValueError):
    """Raised when a reference-data file exists but cannot be read as expected."""
