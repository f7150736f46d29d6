"""Plan history - which per-slot rate governs each installment period"""

from datetime import date
from typing import List, Optional, Sequence, Union

from koperasi_gateway.domain.exceptions import InvalidPlanError
from koperasi_gateway.domain.models import Plan
from koperasi_gateway.utils.date_utils import first_slot_on_or_after, slot_due_date


DEFAULT_OPEN_ENDED_FLOOR = 12


class PlanHistory:
    """
    Ordered sequence of plans for one account.

    Slot 1 falls on the first plan's effective date and every later slot
    follows `interval_months` after the previous one. A plan governs every
    slot whose nominal due date is on or after its effective date, until the
    next plan takes over.
    """

    def __init__(
        self,
        plans: Sequence[Plan],
        interval_months: int = 1,
        open_ended_floor: int = DEFAULT_OPEN_ENDED_FLOOR,
    ):
        if not plans:
            raise InvalidPlanError("Plan history is empty")
        if interval_months < 1:
            raise InvalidPlanError("Slot interval must be at least one month")

        ordered = sorted(plans, key=lambda p: p.effective_from)
        for plan in ordered:
            if plan.required_amount_per_slot <= 0:
                raise InvalidPlanError("Required amount per slot must be positive")
            if plan.total_slots is not None and plan.total_slots < 1:
                raise InvalidPlanError("Total slots must be at least 1")

        effective_dates = [p.effective_from for p in ordered]
        if len(set(effective_dates)) != len(effective_dates):
            raise InvalidPlanError("Two plans share the same effective date")

        self.plans: List[Plan] = ordered
        self.interval_months = interval_months
        self.open_ended_floor = open_ended_floor
        self._upgrade_slots = [1] + [
            first_slot_on_or_after(self.schedule_start, p.effective_from, interval_months)
            for p in ordered[1:]
        ]

    @property
    def schedule_start(self) -> date:
        return self.plans[0].effective_from

    @property
    def current(self) -> Plan:
        return self.plans[-1]

    @property
    def total_slots(self) -> Optional[int]:
        """Term of the schedule, governed by the most recent plan"""
        return self.current.total_slots

    @property
    def has_upgrades(self) -> bool:
        return len(self.plans) > 1

    def due_date(self, slot: int) -> date:
        return slot_due_date(self.schedule_start, slot, self.interval_months)

    def upgrade_slot(self, plan_index: int) -> int:
        """First slot governed by the plan at `plan_index`"""
        return self._upgrade_slots[plan_index]

    def plan_index_for_slot(self, slot: int) -> int:
        index = 0
        for i, first_slot in enumerate(self._upgrade_slots):
            if first_slot <= slot:
                index = i
        return index

    def plan_for_slot(self, slot: int) -> Plan:
        return self.plans[self.plan_index_for_slot(slot)]

    def rate_for_slot(self, slot: int) -> int:
        return self.plan_for_slot(slot).required_amount_per_slot

    def horizon(self, highest_event_slot: int = 0) -> int:
        """Number of slots to project; open-ended schedules fall back to a floor"""
        if self.total_slots is not None:
            return self.total_slots
        return max(highest_event_slot, self.open_ended_floor)


PlanInput = Union[Plan, Sequence[Plan], PlanHistory]


def as_plan_history(plans: PlanInput, **kwargs) -> PlanHistory:
    """Accept a single plan, a list of plans, or an existing history"""
    if isinstance(plans, PlanHistory):
        return plans
    if isinstance(plans, Plan):
        return PlanHistory([plans], **kwargs)
    return PlanHistory(list(plans), **kwargs)
