"""Milestone gating, the toggle cycle, and schedule health."""

from datetime import date, datetime
from types import MappingProxyType

from dropsheet.engine.milestones import (
    DEPENDENCIES,
    compute_schedule_health,
    delivery_state,
    is_step_enabled,
    missing_dependencies,
    next_deadline,
    progress,
    set_milestone_date,
    toggle_milestone,
)
from dropsheet.models import (
    DeadlineChain,
    DeadlineUrgency,
    DeliveryState,
    MilestoneKey,
    Milestones,
    MilestoneStatus,
    ScheduleHealth,
)

FIXED_NOW = datetime(2026, 1, 5, 9, 30)
DONE = "2025-12-01T15:00:00+00:00"


def _done(*keys):
    wire = {}
    for key in keys:
        wire[key] = DONE
        wire[f"{key}_status"] = "completed"
    return wire


# ---------------------------------------------------------------------------
# Gating
# ---------------------------------------------------------------------------

def test_independent_steps_always_enabled():
    for key in ("outline_given", "data_received", "creative_received"):
        assert is_step_enabled({}, key)


def test_dependent_step_blocked_until_completed():
    assert not is_step_enabled({}, "data_approved")
    assert not is_step_enabled({"data_received_status": "in_progress"}, "data_approved")
    assert is_step_enabled({"data_received_status": "completed"}, "data_approved")


def test_timestamp_alone_satisfies_dependency():
    """Records with a date but no status tag count as completed."""
    assert is_step_enabled({"creative_received": DONE}, "creative_approved")


def test_mailed_needs_all_three():
    assert missing_dependencies(_done("outline_given"), "mailed") == [
        MilestoneKey.DATA_APPROVED,
        MilestoneKey.CREATIVE_APPROVED,
    ]
    assert is_step_enabled(_done("outline_given", "data_approved", "creative_approved"), "mailed")


def test_custom_graph():
    graph = MappingProxyType({**DEPENDENCIES, MilestoneKey.CREATIVE_RECEIVED: (MilestoneKey.OUTLINE_GIVEN,)})
    assert is_step_enabled({}, "creative_received")
    assert not is_step_enabled({}, "creative_received", graph)


def test_string_keyed_graph(clock):
    """Graphs written with plain strings gate the same way."""
    graph = {"data_received": (), "data_approved": ("data_received",)}
    result = toggle_milestone({}, "data_approved", graph, now=clock)
    assert not result.accepted
    assert result.rejected_reason == "Please complete 'data received' first."
    assert missing_dependencies({}, "data_approved", graph) == [MilestoneKey.DATA_RECEIVED]


def test_sparse_graph_leaves_unlisted_steps_enabled(clock):
    graph = {"data_approved": ("data_received",)}
    assert is_step_enabled({}, "outline_given", graph)
    result = toggle_milestone({}, "outline_given", graph, now=clock)
    assert result.accepted
    assert result.milestones.status(MilestoneKey.OUTLINE_GIVEN) == MilestoneStatus.IN_PROGRESS


# ---------------------------------------------------------------------------
# Toggle cycle
# ---------------------------------------------------------------------------

def test_three_toggles_close_the_cycle(clock):
    """pending -> in_progress -> completed -> pending, with no timestamp left."""
    first = toggle_milestone({}, "outline_given", now=clock)
    assert first.accepted
    assert first.milestones.status(MilestoneKey.OUTLINE_GIVEN) == MilestoneStatus.IN_PROGRESS

    second = toggle_milestone(first.milestones, "outline_given", now=clock)
    state = second.milestones.get(MilestoneKey.OUTLINE_GIVEN)
    assert state.status == MilestoneStatus.COMPLETED
    assert state.completed_at == FIXED_NOW

    third = toggle_milestone(second.milestones, "outline_given", now=clock)
    assert third.milestones == Milestones()
    assert third.milestones.to_wire() == {}


def test_completion_written_to_wire(clock):
    ms = toggle_milestone({"data_received_status": "in_progress"}, "data_received", now=clock).milestones
    assert ms.to_wire() == {
        "data_received": FIXED_NOW.isoformat(),
        "data_received_status": "completed",
    }


def test_toggle_does_not_mutate_input(clock):
    wire = {"outline_given_status": "in_progress"}
    before = Milestones.from_wire(wire)
    toggle_milestone(before, "outline_given", now=clock)
    toggle_milestone(wire, "outline_given", now=clock)
    assert wire == {"outline_given_status": "in_progress"}
    assert before.status(MilestoneKey.OUTLINE_GIVEN) == MilestoneStatus.IN_PROGRESS


def test_only_target_key_changes(clock):
    start = Milestones.from_wire({**_done("data_received"), "creative_received_status": "in_progress"})
    result = toggle_milestone(start, "outline_given", now=clock)
    assert result.milestones.get(MilestoneKey.DATA_RECEIVED) == start.get(MilestoneKey.DATA_RECEIVED)
    assert result.milestones.get(MilestoneKey.CREATIVE_RECEIVED) == start.get(MilestoneKey.CREATIVE_RECEIVED)


def test_blocked_toggle_is_rejected(clock):
    start = Milestones.from_wire({"outline_given_status": "in_progress"})
    result = toggle_milestone(start, "data_approved", now=clock)
    assert not result.accepted
    assert result.milestones == start
    assert "data received" in result.rejected_reason


def test_blocked_mailed_names_first_missing(clock):
    result = toggle_milestone(_done("outline_given", "creative_approved"), "mailed", now=clock)
    assert not result.accepted
    assert result.rejected_reason == "Please complete 'data approved' first."


def test_completed_can_revert_even_if_dependency_undone(clock):
    """Undoing a completion is always allowed."""
    result = toggle_milestone(_done("data_approved"), "data_approved", now=clock)
    assert result.accepted
    assert result.milestones.status(MilestoneKey.DATA_APPROVED) == MilestoneStatus.PENDING


def test_legacy_timestamp_toggles_back_to_pending(clock):
    result = toggle_milestone({"mailed": DONE}, "mailed", now=clock)
    assert result.milestones.to_wire() == {}


def test_unknown_milestone_rejected(clock):
    result = toggle_milestone(_done("outline_given"), "printed", now=clock)
    assert not result.accepted
    assert result.milestones == Milestones.from_wire(_done("outline_given"))


def test_set_milestone_date_bypasses_gating():
    ms = set_milestone_date({}, "mailed", "2026-01-02")
    state = ms.get(MilestoneKey.MAILED)
    assert state.status == MilestoneStatus.COMPLETED
    assert state.completed_at == datetime(2026, 1, 2, 12, 0)


def test_set_milestone_date_clears():
    assert set_milestone_date(_done("mailed"), "mailed", None) == Milestones()


# ---------------------------------------------------------------------------
# Schedule health
# ---------------------------------------------------------------------------

def test_mailed_is_complete_however_late(core_chain):
    report = compute_schedule_health(_done("mailed"), core_chain, "2026-03-01", date(2026, 3, 2))
    assert report.health == ScheduleHealth.COMPLETE
    assert report.is_late


def test_late_vendor_mail(core_chain):
    report = compute_schedule_health({}, core_chain, "2026-01-05", date(2025, 12, 1))
    assert report.health == ScheduleHealth.LATE
    assert report.lag_days == 4


def test_mailing_on_drop_date_is_not_late(core_chain):
    report = compute_schedule_health({}, core_chain, "2026-01-01", date(2025, 12, 1))
    assert report.health == ScheduleHealth.ON_TRACK
    assert report.lag_days is None


def test_early_vendor_mail_is_on_track(core_chain):
    report = compute_schedule_health({}, core_chain, "2025-12-29", date(2025, 12, 1))
    assert report.health == ScheduleHealth.ON_TRACK


def test_behind_schedule_after_art_due(core_chain):
    report = compute_schedule_health({}, core_chain, "", date(2025, 12, 26))
    assert report.health == ScheduleHealth.BEHIND_SCHEDULE
    assert report.is_behind and not report.is_late


def test_on_track_on_art_due_day(core_chain):
    report = compute_schedule_health({}, core_chain, None, date(2025, 12, 25))
    assert report.health == ScheduleHealth.ON_TRACK


def test_data_approved_clears_behind(core_chain):
    report = compute_schedule_health(_done("data_approved"), core_chain, None, date(2025, 12, 30))
    assert report.health == ScheduleHealth.ON_TRACK


def test_late_wins_over_behind_but_both_reported(core_chain):
    report = compute_schedule_health({}, core_chain, "2026-01-05", date(2026, 1, 10))
    assert report.health == ScheduleHealth.LATE
    assert report.is_late and report.is_behind


def test_behind_falls_back_to_art_submission_date():
    """Which deadline governs is unsettled; art due wins when both exist."""
    chain = DeadlineChain(mail_drop_date=date(2026, 1, 1), art_submission_due_date=date(2025, 11, 27))
    report = compute_schedule_health({}, chain, None, date(2025, 12, 1))
    assert report.health == ScheduleHealth.BEHIND_SCHEDULE


def test_unscheduled_job_is_on_track():
    report = compute_schedule_health({}, DeadlineChain(), "2026-01-05", date(2030, 1, 1))
    assert report.health == ScheduleHealth.ON_TRACK
    assert not report.is_late and not report.is_behind


def test_garbage_vendor_date_is_ignored(core_chain):
    report = compute_schedule_health({}, core_chain, "soon", date(2025, 12, 1))
    assert report.health == ScheduleHealth.ON_TRACK


# ---------------------------------------------------------------------------
# Next deadline, delivery, progress
# ---------------------------------------------------------------------------

def test_next_deadline_submit_art(core_chain):
    upcoming = next_deadline({}, core_chain, date(2025, 11, 20))
    assert upcoming.label == "Submit Art"
    assert upcoming.due_date == date(2025, 11, 27)
    assert upcoming.days_remaining == 7
    assert upcoming.urgency == DeadlineUrgency.UPCOMING
    assert upcoming.message == "Submit Art in 7 Days"


def test_next_deadline_urgency_levels(core_chain):
    assert next_deadline({}, core_chain, date(2025, 11, 25)).urgency == DeadlineUrgency.DUE_SOON
    assert next_deadline({}, core_chain, date(2025, 11, 27)).message == "Submit Art Due Today"
    overdue = next_deadline({}, core_chain, date(2025, 11, 30))
    assert overdue.urgency == DeadlineUrgency.OVERDUE
    assert overdue.message == "Submit Art Overdue (3d)"


def test_next_deadline_drop_mail_after_creative(core_chain):
    upcoming = next_deadline(_done("creative_received"), core_chain, date(2025, 12, 22))
    assert upcoming.label == "Drop Mail"
    assert upcoming.days_remaining == 10


def test_next_deadline_complete_and_unscheduled(core_chain):
    assert next_deadline(_done("mailed"), core_chain, date(2026, 1, 2)).message == "Completed"
    assert next_deadline({}, DeadlineChain(), date(2026, 1, 2)).message == "Pending Schedule"


def test_delivery_state():
    assert delivery_state({}, "2026-01-15", date(2026, 1, 20)) == DeliveryState.NOT_MAILED
    assert delivery_state(_done("mailed"), "2026-01-15", date(2026, 1, 15)) == DeliveryState.IN_TRANSIT
    assert delivery_state(_done("mailed"), "2026-01-15", date(2026, 1, 16)) == DeliveryState.IN_HOMES
    assert delivery_state(_done("mailed"), "", date(2026, 1, 16)) == DeliveryState.IN_TRANSIT


def test_progress_ignores_sent_to_vendor():
    assert progress({}) == (0, 6)
    assert progress(_done("outline_given", "sent_to_vendor", "data_received")) == (2, 6)
