"""Unit tests for plan history resolution"""

import pytest
from datetime import date
from koperasi_gateway.domain.exceptions import InvalidPlanError
from koperasi_gateway.domain.models import Plan
from koperasi_gateway.domain.plans import PlanHistory, as_plan_history


def test_single_plan_governs_every_slot(plan_100k: Plan):
    history = PlanHistory([plan_100k])

    assert history.total_slots == 12
    assert history.has_upgrades is False
    assert history.rate_for_slot(1) == 100000
    assert history.rate_for_slot(12) == 100000


def test_upgrade_applies_from_its_effective_slot(upgrade_plans: list[Plan]):
    history = PlanHistory(upgrade_plans)

    assert history.has_upgrades is True
    assert history.upgrade_slot(1) == 4
    assert history.rate_for_slot(3) == 50000
    assert history.rate_for_slot(4) == 80000
    assert history.current.plan_id == "p80"


def test_plans_are_ordered_by_effective_date(upgrade_plans: list[Plan]):
    history = PlanHistory(list(reversed(upgrade_plans)))

    assert history.schedule_start == date(2025, 1, 1)
    assert history.rate_for_slot(1) == 50000


def test_due_date_follows_first_plan():
    history = PlanHistory([Plan(required_amount_per_slot=10000, effective_from=date(2025, 1, 15), total_slots=6)])
    assert history.due_date(1) == date(2025, 1, 15)
    assert history.due_date(6) == date(2025, 6, 15)


def test_open_ended_horizon_uses_floor():
    history = PlanHistory([Plan(required_amount_per_slot=25000, effective_from=date(2025, 1, 1))])

    assert history.total_slots is None
    assert history.horizon() == 12
    assert history.horizon(highest_event_slot=15) == 15


def test_fixed_horizon_ignores_events(plan_100k: Plan):
    assert PlanHistory([plan_100k]).horizon(highest_event_slot=3) == 12


@pytest.mark.parametrize(
    "plans",
    [
        [],
        [Plan(required_amount_per_slot=0, effective_from=date(2025, 1, 1), total_slots=12)],
        [Plan(required_amount_per_slot=10000, effective_from=date(2025, 1, 1), total_slots=0)],
        [
            Plan(required_amount_per_slot=10000, effective_from=date(2025, 1, 1)),
            Plan(required_amount_per_slot=20000, effective_from=date(2025, 1, 1)),
        ],
    ],
)
def test_invalid_plan_history(plans: list[Plan]):
    with pytest.raises(InvalidPlanError):
        PlanHistory(plans)


def test_as_plan_history_accepts_single_plan_and_history(plan_100k: Plan):
    history = as_plan_history(plan_100k)
    assert isinstance(history, PlanHistory)
    assert as_plan_history(history) is history
