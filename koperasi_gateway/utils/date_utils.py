"""Date manipulation utilities"""

from datetime import date
from dateutil.relativedelta import relativedelta


def add_months(from_date: date, months: int) -> date:
    """Add calendar months, clamping the day to the end of shorter months"""
    return from_date + relativedelta(months=months)


def slot_due_date(schedule_start: date, slot: int, interval_months: int = 1) -> date:
    """Nominal due date of a 1-based slot, slot 1 falls on schedule_start"""
    return schedule_start + relativedelta(months=(slot - 1) * interval_months)


def first_slot_on_or_after(schedule_start: date, when: date, interval_months: int = 1) -> int:
    """Smallest slot whose nominal due date is on or after `when`"""
    if when <= schedule_start:
        return 1
    elapsed = relativedelta(when, schedule_start)
    slot = (elapsed.years * 12 + elapsed.months) // interval_months + 1
    if slot_due_date(schedule_start, slot, interval_months) < when:
        slot += 1
    return slot
