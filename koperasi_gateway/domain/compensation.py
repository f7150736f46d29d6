"""Upgrade compensation - recovering the shortfall after a mid-schedule plan upgrade"""

from typing import Iterable, Optional

from koperasi_gateway.domain.exceptions import InvalidPlanError, NoRemainingSlotsError
from koperasi_gateway.domain.models import Compensation, TransactionEvent, UpgradeQuote
from koperasi_gateway.domain.plans import PlanInput, as_plan_history
from koperasi_gateway.domain.schedule import contiguous_paid_slots, project_slots


RETROACTIVE = "retroactive"
PROSPECTIVE = "prospective"
POLICIES = (RETROACTIVE, PROSPECTIVE)


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def _check_policy(policy: str) -> None:
    if policy not in POLICIES:
        raise ValueError(f"Unknown upgrade compensation policy: {policy}")


def compensation_for(
    slot: int,
    plans: PlanInput,
    completed_slots: Optional[int] = None,
    policy: str = RETROACTIVE,
) -> Compensation:
    """
    Expected amount for `slot`, including upgrade compensation.

    Requirements:
    - Only slots governed by an upgraded plan carry compensation
    - Retroactive policy: credited pre-upgrade slots count at the new rate,
      the shortfall is spread over the slots left from the upgrade slot to
      the end of the term, rounded up to the minor unit
    - Prospective policy: no compensation, the new rate applies from the
      upgrade onwards only
    - An upgrade on the last slot puts the whole shortfall on that slot
    - Open-ended schedules recover it by the open-ended floor slot; later
      slots pay the plain new rate

    Args:
        slot: Slot the expected amount is asked for
        plans: Plan history of the account
        completed_slots: Slots credited at upgrade time (default: every
            slot before the upgrade)
        policy: "retroactive" or "prospective"

    Example:
        50,000 -> 80,000 at slot 4 of 12, one credited slot:
        shortfall 30,000 over 9 slots -> 3,334 per slot, 83,334 expected

    Raises:
        NoRemainingSlotsError: slot or upgrade lies past the plan term
    """
    _check_policy(policy)
    history = as_plan_history(plans)
    total_slots = history.total_slots

    if slot < 1:
        raise InvalidPlanError(f"Slot {slot} is before the first slot")
    if total_slots is not None and slot > total_slots:
        raise NoRemainingSlotsError(f"Slot {slot} is past the plan term of {total_slots} slots")

    index = history.plan_index_for_slot(slot)
    base_amount = history.plans[index].required_amount_per_slot

    if index == 0 or policy == PROSPECTIVE:
        return Compensation(base_amount=base_amount, compensation_per_slot=0, total_expected=base_amount)

    upgrade_slot = history.upgrade_slot(index)
    credited = upgrade_slot - 1
    if completed_slots is not None:
        credited = max(0, min(completed_slots, credited))

    shortfall = sum(
        max(0, base_amount - history.rate_for_slot(s))
        for s in range(1, credited + 1)
    )

    # Open-ended: recovered by the floor slot, or on the upgrade slot when past the floor
    window_end = max(history.open_ended_floor, upgrade_slot) if total_slots is None else total_slots
    remaining = window_end - upgrade_slot + 1
    if remaining <= 0:
        raise NoRemainingSlotsError(
            f"Upgrade at slot {upgrade_slot} leaves no slot to absorb the compensation"
        )

    per_slot = _ceil_div(shortfall, remaining) if shortfall > 0 and slot <= window_end else 0
    return Compensation(
        base_amount=base_amount,
        compensation_per_slot=per_slot,
        total_expected=base_amount + per_slot,
        upgrade_slot=upgrade_slot,
        shortfall=shortfall,
        remaining_slots=remaining,
    )


def quote_upgrade(
    events: Iterable[TransactionEvent],
    plans: PlanInput,
    new_amount_per_slot: int,
    policy: str = RETROACTIVE,
) -> UpgradeQuote:
    """
    Preview an upgrade to a higher per-slot rate.

    The upgrade takes effect right after the slots paid in full so far; each
    of those is recovered at the rate difference over the remaining term.

    Raises:
        InvalidPlanError: new rate is not higher than the current one
        NoRemainingSlotsError: every slot of the term is already paid
    """
    _check_policy(policy)
    history = as_plan_history(plans)
    old_amount = history.current.required_amount_per_slot

    if new_amount_per_slot <= old_amount:
        raise InvalidPlanError("New plan must require more per slot than the current plan")

    events = list(events)
    slots = project_slots(events, history)
    total_slots = len(slots)
    completed = contiguous_paid_slots(slots)
    remaining = total_slots - completed
    if remaining <= 0:
        raise NoRemainingSlotsError("Every slot of the schedule is already paid")

    if policy == PROSPECTIVE:
        per_slot = 0
    else:
        per_slot = _ceil_div((new_amount_per_slot - old_amount) * completed, remaining)

    return UpgradeQuote(
        old_amount_per_slot=old_amount,
        new_amount_per_slot=new_amount_per_slot,
        completed_slots=completed,
        remaining_slots=remaining,
        total_slots=total_slots,
        compensation_per_slot=per_slot,
        new_payment_with_compensation=new_amount_per_slot + per_slot,
    )
