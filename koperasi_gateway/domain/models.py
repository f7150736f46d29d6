"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional

from koperasi_gateway.domain.exceptions import InconsistentEventError


class Direction(str, Enum):
    """Money movement direction: Setoran (deposit) or Penarikan (withdrawal)"""

    CREDIT = "credit"
    DEBIT = "debit"


class EventStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SlotState(str, Enum):
    """Derived payment state of one installment period"""

    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PENDING = "pending"
    PAID = "paid"
    REJECTED = "rejected"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TransactionEvent:
    """One financial movement in the transaction log"""

    id: str
    account_ref: str
    amount_minor: int
    direction: Direction
    occurred_at: date
    status: EventStatus = EventStatus.PENDING
    slot_index: Optional[int] = None
    rejection_reason: Optional[str] = None
    description: str = ""
    resubmission_of: Optional[str] = None
    reconciled_in: Optional[str] = None

    def __post_init__(self):
        if self.amount_minor < 0:
            raise InconsistentEventError(f"Event {self.id} has a negative amount")
        if self.status == EventStatus.REJECTED and not self.rejection_reason:
            raise InconsistentEventError(f"Rejected event {self.id} has no rejection reason")
        if self.status != EventStatus.REJECTED and self.rejection_reason:
            raise InconsistentEventError(f"Event {self.id} carries a rejection reason but is {self.status.value}")

    @property
    def signed_amount_minor(self) -> int:
        """Amount with credits positive and debits negative"""
        return self.amount_minor if self.direction == Direction.CREDIT else -self.amount_minor


@dataclass(frozen=True)
class Plan:
    """Per-slot obligation a schedule is measured against"""

    required_amount_per_slot: int
    effective_from: date
    total_slots: Optional[int] = None
    plan_id: Optional[str] = None


@dataclass
class SlotStatus:
    """Derived status of one installment period - never persisted"""

    slot: int
    status: SlotState
    total_paid_approved: int
    required_amount: int
    remaining_amount: int
    contributing_events: List[TransactionEvent] = field(default_factory=list)
    has_rejections: bool = False

    @property
    def paid_percentage(self) -> float:
        if self.required_amount <= 0:
            return 0.0
        return round(self.total_paid_approved * 100 / self.required_amount, 2)


@dataclass
class Compensation:
    """Expected amount for a slot after a mid-schedule upgrade"""

    base_amount: int
    compensation_per_slot: int
    total_expected: int
    upgrade_slot: Optional[int] = None
    shortfall: int = 0
    remaining_slots: int = 0


@dataclass
class UpgradeQuote:
    """Preview of switching a schedule to a higher per-slot rate"""

    old_amount_per_slot: int
    new_amount_per_slot: int
    completed_slots: int
    remaining_slots: int
    total_slots: int
    compensation_per_slot: int
    new_payment_with_compensation: int


@dataclass
class NextAction:
    """Suggested next payment for a schedule"""

    slot: Optional[int]
    suggested_amount: int
    is_partial_continuation: bool
    is_upgrade_adjusted: bool
    description: str
    rejected_slots: List[int] = field(default_factory=list)
    pending_slots: List[int] = field(default_factory=list)
    is_complete: bool = False


@dataclass
class SlotSummary:
    """Count of slots per derived status"""

    paid: int = 0
    partially_paid: int = 0
    pending: int = 0
    rejected: int = 0
    unpaid: int = 0
    slots_with_rejections: int = 0


@dataclass
class BalanceSummary:
    """Approved deposits minus approved withdrawals"""

    total_credits_minor: int
    total_debits_minor: int
    balance_minor: int


@dataclass
class ReconciliationTotals:
    """Balances of a reconciliation session at one point in time"""

    matched_balance: int
    difference: int
    unmatched_count: int


