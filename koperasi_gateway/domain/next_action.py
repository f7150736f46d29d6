"""Next action resolution - which slot and amount a member should pay next"""

from typing import Iterable

from koperasi_gateway.domain.compensation import RETROACTIVE, compensation_for
from koperasi_gateway.domain.models import NextAction, SlotState, TransactionEvent
from koperasi_gateway.domain.plans import PlanInput, as_plan_history
from koperasi_gateway.domain.schedule import contiguous_paid_slots, project_slots


DEFAULT_DESCRIPTION_TEMPLATE = "Pembayaran Simpanan Periode - {slot}"


def next_action(
    events: Iterable[TransactionEvent],
    plans: PlanInput,
    policy: str = RETROACTIVE,
    description_template: str = DEFAULT_DESCRIPTION_TEMPLATE,
) -> NextAction:
    """
    Suggest the next payment for a schedule.

    Flow:
    1. Find the last slot paid in full with every earlier slot also paid;
       schedules fill in order, so a gap stops the scan
    2. A partially paid slot right after it is continued with its remaining
       amount, keeping the same slot index
    3. Otherwise suggest the following slot at its expected amount,
       including upgrade compensation where it applies
    4. Report rejected and pending slots for resubmission shortcuts

    A fully paid fixed-term schedule returns is_complete with no slot.
    """
    history = as_plan_history(plans)
    slots = project_slots(list(events), history)

    rejected_slots = [s.slot for s in slots if s.status == SlotState.REJECTED]
    pending_slots = [s.slot for s in slots if s.status == SlotState.PENDING]

    last_resolved = contiguous_paid_slots(slots)
    next_slot = last_resolved + 1

    if history.total_slots is not None and next_slot > history.total_slots:
        return NextAction(
            slot=None,
            suggested_amount=0,
            is_partial_continuation=False,
            is_upgrade_adjusted=False,
            description="",
            rejected_slots=rejected_slots,
            pending_slots=pending_slots,
            is_complete=True,
        )

    description = description_template.format(slot=next_slot)
    upcoming = slots[next_slot - 1] if next_slot <= len(slots) else None
    if upcoming is not None and upcoming.contributing_events:
        # Earlier attempts on this slot number the next one
        description = f"{description} (#{len(upcoming.contributing_events) + 1})"

    if upcoming is not None and upcoming.status == SlotState.PARTIALLY_PAID:
        return NextAction(
            slot=next_slot,
            suggested_amount=upcoming.remaining_amount,
            is_partial_continuation=True,
            is_upgrade_adjusted=False,
            description=description,
            rejected_slots=rejected_slots,
            pending_slots=pending_slots,
        )

    compensation = compensation_for(next_slot, history, completed_slots=last_resolved, policy=policy)
    return NextAction(
        slot=next_slot,
        suggested_amount=compensation.total_expected,
        is_partial_continuation=False,
        is_upgrade_adjusted=compensation.compensation_per_slot > 0,
        description=description,
        rejected_slots=rejected_slots,
        pending_slots=pending_slots,
    )
