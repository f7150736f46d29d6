"""Unit tests for schedule projection"""

import pytest
from datetime import date
from koperasi_gateway.domain.exceptions import InconsistentEventError, InvalidPlanError
from koperasi_gateway.domain.models import Direction, EventStatus, Plan, SlotState
from koperasi_gateway.domain.schedule import (
    contiguous_paid_slots,
    event_order_key,
    project_slots,
    summarize_balance,
    summarize_slots,
)


def test_empty_log_projects_every_slot_unpaid(plan_100k: Plan):
    slots = project_slots([], plan_100k)

    assert len(slots) == 12
    assert all(s.status == SlotState.UNPAID for s in slots)
    assert slots[0].remaining_amount == 100000
    assert slots[0].paid_percentage == 0.0


def test_approved_full_payment_is_paid(plan_100k: Plan, make_event):
    slots = project_slots([make_event(slot_index=1)], plan_100k)

    assert slots[0].status == SlotState.PAID
    assert slots[0].total_paid_approved == 100000
    assert slots[0].remaining_amount == 0
    assert slots[0].paid_percentage == 100.0


def test_two_partials_add_up_to_paid(plan_100k: Plan, make_event):
    events = [
        make_event(slot_index=1, amount_minor=60000),
        make_event(slot_index=1, amount_minor=40000, occurred_at=date(2025, 1, 20)),
    ]
    slots = project_slots(events, plan_100k)

    assert slots[0].status == SlotState.PAID
    assert [e.amount_minor for e in slots[0].contributing_events] == [40000, 60000]  # newest first


def test_partial_payment(plan_100k: Plan, make_event):
    slots = project_slots([make_event(slot_index=2, amount_minor=30000)], plan_100k)

    assert slots[1].status == SlotState.PARTIALLY_PAID
    assert slots[1].remaining_amount == 70000
    assert slots[1].paid_percentage == 30.0


def test_latest_rejected_masks_earlier_approved_partial(plan_100k: Plan, make_event):
    """Status label follows the latest attempt; the approved total stays visible"""
    events = [
        make_event(slot_index=1, amount_minor=50000),
        make_event(slot_index=1, amount_minor=50000, status=EventStatus.REJECTED, occurred_at=date(2025, 1, 12)),
    ]
    slot = project_slots(events, plan_100k)[0]

    assert slot.status == SlotState.REJECTED
    assert slot.total_paid_approved == 50000
    assert slot.has_rejections is True


def test_resubmission_after_rejection_is_paid(plan_100k: Plan, make_event):
    events = [
        make_event(slot_index=1, status=EventStatus.REJECTED),
        make_event(slot_index=1, occurred_at=date(2025, 1, 11)),
    ]
    slot = project_slots(events, plan_100k)[0]

    assert slot.status == SlotState.PAID
    assert slot.has_rejections is True


def test_rejected_then_pending_shows_pending(plan_100k: Plan, make_event):
    """Slots 1-2 approved; slot 3 rejected then resubmitted at 50,000 and still pending"""
    events = [
        make_event(slot_index=1),
        make_event(slot_index=2, occurred_at=date(2025, 2, 10)),
        make_event(slot_index=3, status=EventStatus.REJECTED, occurred_at=date(2025, 3, 10)),
        make_event(slot_index=3, amount_minor=50000, status=EventStatus.PENDING, occurred_at=date(2025, 3, 12)),
    ]
    slots = project_slots(events, plan_100k)

    assert slots[2].status == SlotState.PENDING
    assert slots[2].total_paid_approved == 0
    assert contiguous_paid_slots(slots) == 2


def test_same_day_events_ordered_by_numeric_id(plan_100k: Plan, make_event):
    """Event 10 is newer than event 9 even though '10' < '9' as text"""
    events = [make_event(slot_index=1, status=EventStatus.REJECTED) for _ in range(9)]
    events.append(make_event(slot_index=1))
    assert events[-1].id == "10"

    slot = project_slots(list(reversed(events)), plan_100k)[0]
    assert slot.status == SlotState.PAID
    assert event_order_key(events[-1]) > event_order_key(events[8])


def test_debits_and_bank_lines_do_not_feed_schedule(plan_100k: Plan, make_event):
    events = [
        make_event(slot_index=1, direction=Direction.DEBIT),
        make_event(slot_index=None),
    ]
    slots = project_slots(events, plan_100k)
    assert slots[0].status == SlotState.UNPAID


def test_upgrade_rate_applies_to_later_slots(upgrade_plans: list[Plan], make_event):
    events = [make_event(slot_index=4, amount_minor=50000, occurred_at=date(2025, 4, 3))]
    slots = project_slots(events, upgrade_plans)

    assert slots[2].required_amount == 50000
    assert slots[3].required_amount == 80000
    assert slots[3].status == SlotState.PARTIALLY_PAID


def test_open_ended_horizon_grows_with_events(make_event):
    plan = Plan(required_amount_per_slot=25000, effective_from=date(2025, 1, 1))

    assert len(project_slots([], plan)) == 12
    assert len(project_slots([make_event(slot_index=15, amount_minor=25000)], plan)) == 15


def test_up_to_slot_limits_projection(plan_100k: Plan):
    assert len(project_slots([], plan_100k, up_to_slot=3)) == 3

    with pytest.raises(InvalidPlanError):
        project_slots([], plan_100k, up_to_slot=13)
    with pytest.raises(InvalidPlanError):
        project_slots([], plan_100k, up_to_slot=0)


def test_slot_past_term_is_inconsistent(plan_100k: Plan, make_event):
    with pytest.raises(InconsistentEventError):
        project_slots([make_event(slot_index=13)], plan_100k)


def test_slot_below_one_is_inconsistent(plan_100k: Plan, make_event):
    with pytest.raises(InconsistentEventError):
        project_slots([make_event(slot_index=0)], plan_100k)


def test_projection_is_pure(plan_100k: Plan, make_event):
    events = [make_event(slot_index=1), make_event(slot_index=2, amount_minor=10)]
    assert project_slots(events, plan_100k) == project_slots(list(reversed(events)), plan_100k)


def test_contiguous_paid_stops_at_gap(plan_100k: Plan, make_event):
    events = [make_event(slot_index=1), make_event(slot_index=3)]
    assert contiguous_paid_slots(project_slots(events, plan_100k)) == 1


def test_summarize_slots(plan_100k: Plan, make_event):
    events = [
        make_event(slot_index=1),
        make_event(slot_index=2, amount_minor=40000),
        make_event(slot_index=3, status=EventStatus.PENDING),
        make_event(slot_index=4, status=EventStatus.REJECTED),
    ]
    summary = summarize_slots(project_slots(events, plan_100k))

    assert summary.paid == 1
    assert summary.partially_paid == 1
    assert summary.pending == 1
    assert summary.rejected == 1
    assert summary.unpaid == 8
    assert summary.slots_with_rejections == 1


def test_summarize_balance_counts_approved_only(make_event):
    events = [
        make_event(amount_minor=500000),
        make_event(amount_minor=200000, direction=Direction.DEBIT),
        make_event(amount_minor=70000, status=EventStatus.PENDING),
        make_event(amount_minor=90000, status=EventStatus.REJECTED),
    ]
    balance = summarize_balance(events)

    assert balance.total_credits_minor == 500000
    assert balance.total_debits_minor == 200000
    assert balance.balance_minor == 300000
