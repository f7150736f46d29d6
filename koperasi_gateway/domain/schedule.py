"""Schedule projection - turns the transaction log into per-slot payment status"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from koperasi_gateway.domain.exceptions import InconsistentEventError, InvalidPlanError
from koperasi_gateway.domain.models import (
    BalanceSummary,
    Direction,
    EventStatus,
    SlotState,
    SlotStatus,
    SlotSummary,
    TransactionEvent,
)
from koperasi_gateway.domain.plans import PlanHistory, PlanInput, as_plan_history


def event_order_key(event: TransactionEvent) -> tuple:
    """Chronological order of events; numeric ids compare as numbers"""
    if event.id.isdigit():
        return (event.occurred_at, 0, int(event.id), "")
    return (event.occurred_at, 1, 0, event.id)


def group_slot_events(
    events: Iterable[TransactionEvent],
    history: PlanHistory,
) -> Dict[int, List[TransactionEvent]]:
    """
    Group schedule payments by slot.

    Only credits carrying a slot index count toward a schedule; withdrawals
    and bank lines are ignored.

    Raises:
        InconsistentEventError: slot index below 1 or past the schedule's term
    """
    grouped: Dict[int, List[TransactionEvent]] = defaultdict(list)
    for event in events:
        if event.slot_index is None:
            continue
        if event.slot_index < 1:
            raise InconsistentEventError(f"Event {event.id} references slot {event.slot_index}")
        if event.direction != Direction.CREDIT:
            continue
        if history.total_slots is not None and event.slot_index > history.total_slots:
            raise InconsistentEventError(
                f"Event {event.id} references slot {event.slot_index} "
                f"but the schedule ends at slot {history.total_slots}"
            )
        grouped[event.slot_index].append(event)
    return grouped


def project_slot(slot: int, slot_events: List[TransactionEvent], required_amount: int) -> SlotStatus:
    """
    Derive the status of a single slot from its events.

    The most recent attempt decides what the slot shows: a rejected or
    pending latest attempt masks the status, while totals still count every
    approved payment made for the slot.
    """
    ordered = sorted(slot_events, key=event_order_key)
    total_paid = sum(e.amount_minor for e in ordered if e.status == EventStatus.APPROVED)

    if not ordered:
        status = SlotState.UNPAID
    else:
        latest = ordered[-1]
        if latest.status == EventStatus.REJECTED:
            status = SlotState.REJECTED
        elif latest.status == EventStatus.PENDING:
            status = SlotState.PENDING
        elif total_paid >= required_amount:
            status = SlotState.PAID
        elif total_paid > 0:
            status = SlotState.PARTIALLY_PAID
        else:
            status = SlotState.UNPAID

    return SlotStatus(
        slot=slot,
        status=status,
        total_paid_approved=total_paid,
        required_amount=required_amount,
        remaining_amount=max(0, required_amount - total_paid),
        contributing_events=list(reversed(ordered)),  # newest first
        has_rejections=any(e.status == EventStatus.REJECTED for e in ordered),
    )


def project_slots(
    events: Iterable[TransactionEvent],
    plans: PlanInput,
    up_to_slot: Optional[int] = None,
) -> List[SlotStatus]:
    """
    Project the payment status of every slot of a schedule.

    Requirements:
    - Slots 1..N where N is up_to_slot, the plan term, or for open-ended
      schedules max(highest slot paid into, floor)
    - Required amount comes from the plan effective at each slot's due date
    - Pure: same events and plans always give the same output

    Raises:
        InvalidPlanError: up_to_slot outside the plan term
        InconsistentEventError: event references an impossible slot
    """
    history = as_plan_history(plans)
    grouped = group_slot_events(events, history)

    if up_to_slot is None:
        horizon = history.horizon(max(grouped, default=0))
    else:
        if up_to_slot < 1:
            raise InvalidPlanError(f"Requested slot {up_to_slot} is before the first slot")
        if history.total_slots is not None and up_to_slot > history.total_slots:
            raise InvalidPlanError(
                f"Requested slot {up_to_slot} exceeds the plan term of {history.total_slots} slots"
            )
        horizon = up_to_slot

    return [
        project_slot(slot, grouped.get(slot, []), history.rate_for_slot(slot))
        for slot in range(1, horizon + 1)
    ]


def contiguous_paid_slots(slots: List[SlotStatus]) -> int:
    """Highest slot that is paid with every earlier slot also paid"""
    count = 0
    for status in slots:
        if status.status != SlotState.PAID:
            break
        count = status.slot
    return count


def summarize_slots(slots: List[SlotStatus]) -> SlotSummary:
    summary = SlotSummary()
    for status in slots:
        if status.status == SlotState.PAID:
            summary.paid += 1
        elif status.status == SlotState.PARTIALLY_PAID:
            summary.partially_paid += 1
        elif status.status == SlotState.PENDING:
            summary.pending += 1
        elif status.status == SlotState.REJECTED:
            summary.rejected += 1
        else:
            summary.unpaid += 1
        if status.has_rejections:
            summary.slots_with_rejections += 1
    return summary


def summarize_balance(events: Iterable[TransactionEvent]) -> BalanceSummary:
    """Approved deposits minus approved withdrawals across the whole log"""
    approved = [e for e in events if e.status == EventStatus.APPROVED]
    credits = sum(e.amount_minor for e in approved if e.direction == Direction.CREDIT)
    debits = sum(e.amount_minor for e in approved if e.direction == Direction.DEBIT)
    return BalanceSummary(
        total_credits_minor=credits,
        total_debits_minor=debits,
        balance_minor=credits - debits,
    )
