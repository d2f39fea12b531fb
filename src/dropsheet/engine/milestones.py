"""Milestone state machine: gating, toggling, and schedule health.

Each milestone cycles pending -> in_progress -> completed -> pending. A
milestone may only leave pending once everything it depends on is completed.
Completed is not terminal, so mistaken completions can be undone.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from types import MappingProxyType
from typing import Any, Callable, Mapping

from dropsheet.engine.dates import get_lag_days, is_behind_schedule, parse_date
from dropsheet.models import (
    ACTIVE_MILESTONES,
    DeadlineChain,
    DeadlineUrgency,
    DeliveryState,
    HealthReport,
    MilestoneKey,
    Milestones,
    MilestoneState,
    MilestoneStatus,
    NextDeadline,
    ScheduleHealth,
    ToggleResult,
)

logger = logging.getLogger(__name__)

DependencyGraph = Mapping[MilestoneKey, tuple[MilestoneKey, ...]]

DEPENDENCIES: DependencyGraph = MappingProxyType({
    MilestoneKey.OUTLINE_GIVEN: (),
    MilestoneKey.DATA_RECEIVED: (),
    MilestoneKey.DATA_APPROVED: (MilestoneKey.DATA_RECEIVED,),
    MilestoneKey.CREATIVE_RECEIVED: (),
    MilestoneKey.CREATIVE_APPROVED: (MilestoneKey.CREATIVE_RECEIVED,),
    MilestoneKey.SENT_TO_VENDOR: (),
    MilestoneKey.MAILED: (
        MilestoneKey.OUTLINE_GIVEN,
        MilestoneKey.DATA_APPROVED,
        MilestoneKey.CREATIVE_APPROVED,
    ),
})

DUE_SOON_DAYS = 3

MilestoneInput = Milestones | Mapping[str, Any] | None


def _key(step: MilestoneKey | str) -> MilestoneKey | None:
    try:
        return MilestoneKey(step)
    except ValueError:
        return None


def missing_dependencies(milestones: MilestoneInput, step: MilestoneKey | str,
                         graph: DependencyGraph = DEPENDENCIES) -> list[MilestoneKey]:
    """Dependencies of ``step`` that are not completed yet, in declared order."""
    ms = Milestones.coerce(milestones)
    key = _key(step)
    if key is None:
        return []
    declared = graph.get(key, graph.get(key.value, ()))
    deps = (_key(dep) for dep in declared)
    return [dep for dep in deps if dep is not None and not ms.is_completed(dep)]


def is_step_enabled(milestones: MilestoneInput, step: MilestoneKey | str,
                    graph: DependencyGraph = DEPENDENCIES) -> bool:
    """True when every dependency of ``step`` is completed."""
    return not missing_dependencies(milestones, step, graph)


def toggle_milestone(milestones: MilestoneInput, step: MilestoneKey | str,
                     graph: DependencyGraph = DEPENDENCIES,
                     now: Callable[[], datetime] = datetime.now) -> ToggleResult:
    """Advance one milestone a step around its cycle.

    Returns a new map; the input is never modified. Leaving pending with unmet
    dependencies is rejected: the map comes back unchanged together with a
    reason naming the first missing dependency.
    """
    ms = Milestones.coerce(milestones)
    key = _key(step)
    if key is None:
        logger.info("Rejected toggle of unknown milestone %r", step)
        return ToggleResult(milestones=ms, rejected_reason=f"Unknown milestone '{step}'.")

    current = ms.status(key)
    if current == MilestoneStatus.COMPLETED:
        return ToggleResult(milestones=ms.with_state(key, MilestoneState.pending()))
    if current == MilestoneStatus.IN_PROGRESS:
        return ToggleResult(milestones=ms.with_state(key, MilestoneState.completed(now())))

    missing = missing_dependencies(ms, key, graph)
    if missing:
        reason = f"Please complete '{missing[0].label}' first."
        logger.info("Rejected toggle of %s: %s", key.value, reason)
        return ToggleResult(milestones=ms, rejected_reason=reason)
    return ToggleResult(milestones=ms.with_state(key, MilestoneState.in_progress()))


def set_milestone_date(milestones: MilestoneInput, step: MilestoneKey | str,
                       day: date | str | None) -> Milestones:
    """Record a milestone as completed on ``day`` (at noon), or clear it.

    Manual corrections bypass dependency gating, as the edit form always has.
    """
    ms = Milestones.coerce(milestones)
    key = _key(step)
    if key is None:
        return ms
    parsed = parse_date(day)
    if parsed is None:
        return ms.with_state(key, MilestoneState.pending())
    return ms.with_state(key, MilestoneState.completed(datetime.combine(parsed, time(12, 0))))


def compute_schedule_health(milestones: MilestoneInput, chain: DeadlineChain,
                            vendor_mail_date: Any, today: date | datetime) -> HealthReport:
    """Classify a job as complete, late, behind schedule, or on track.

    ``health`` is the first match in that order; ``is_late`` and
    ``is_behind`` carry both underlying signals for callers that show both.
    Behind-schedule is measured against the art due date, falling back to
    the art submission date when only that is known.
    """
    ms = Milestones.coerce(milestones)

    lag = None
    vendor_mail = parse_date(vendor_mail_date)
    if vendor_mail is not None and chain.mail_drop_date is not None:
        lag = get_lag_days(chain.mail_drop_date, vendor_mail)
    is_late = lag is not None and lag > 0

    deadline = chain.art_due_date or chain.art_submission_due_date
    is_behind = is_behind_schedule(ms, deadline, today)

    if ms.is_completed(MilestoneKey.MAILED):
        health = ScheduleHealth.COMPLETE
    elif is_late:
        health = ScheduleHealth.LATE
    elif is_behind:
        health = ScheduleHealth.BEHIND_SCHEDULE
    else:
        health = ScheduleHealth.ON_TRACK

    return HealthReport(
        health=health,
        lag_days=lag if is_late else None,
        is_late=is_late,
        is_behind=is_behind,
    )


def next_deadline(milestones: MilestoneInput, chain: DeadlineChain,
                  today: date | datetime) -> NextDeadline:
    """The next date the team has to hit and how close it is."""
    ms = Milestones.coerce(milestones)
    if ms.is_completed(MilestoneKey.MAILED):
        return NextDeadline(urgency=DeadlineUrgency.COMPLETE)

    if not ms.is_completed(MilestoneKey.CREATIVE_RECEIVED) and chain.art_submission_due_date:
        label, due = "Submit Art", chain.art_submission_due_date
    elif chain.mail_drop_date:
        label, due = "Drop Mail", chain.mail_drop_date
    else:
        return NextDeadline()

    days_remaining = (due - parse_date(today)).days
    if days_remaining < 0:
        urgency = DeadlineUrgency.OVERDUE
    elif days_remaining == 0:
        urgency = DeadlineUrgency.DUE_TODAY
    elif days_remaining <= DUE_SOON_DAYS:
        urgency = DeadlineUrgency.DUE_SOON
    else:
        urgency = DeadlineUrgency.UPCOMING
    return NextDeadline(label=label, due_date=due, days_remaining=days_remaining, urgency=urgency)


def delivery_state(milestones: MilestoneInput, in_home_date: Any,
                   today: date | datetime) -> DeliveryState:
    ms = Milestones.coerce(milestones)
    if not ms.is_completed(MilestoneKey.MAILED):
        return DeliveryState.NOT_MAILED
    in_home = parse_date(in_home_date)
    if in_home is not None and parse_date(today) > in_home:
        return DeliveryState.IN_HOMES
    return DeliveryState.IN_TRANSIT


def progress(milestones: MilestoneInput) -> tuple[int, int]:
    """(completed, total) over the tracked milestones."""
    ms = Milestones.coerce(milestones)
    done = sum(1 for key in ACTIVE_MILESTONES if ms.is_completed(key))
    return done, len(ACTIVE_MILESTONES)
