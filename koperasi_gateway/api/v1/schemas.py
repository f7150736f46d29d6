"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import List, Literal, Optional


class TransactionCreateRequest(BaseModel):
    """Request body for POST /v1/transactions"""

    account_ref: str = Field(..., min_length=1, description="Member+plan reference or bank account")
    amount_minor: int = Field(..., ge=0, description="Amount in minor currency units")
    direction: Literal["credit", "debit"] = "credit"
    occurred_at: date
    slot_index: Optional[int] = Field(None, ge=1, description="Installment period, absent for bank lines")
    description: str = Field("", max_length=500)
    resubmission_of: Optional[str] = Field(None, description="Transaction this one corrects")


class ApproveRequest(BaseModel):
    actor: Optional[str] = None


class RejectRequest(BaseModel):
    rejection_reason: str = Field(..., min_length=1)
    actor: Optional[str] = None


class TransactionSchema(BaseModel):
    """Single event in the transaction log"""

    transaction_id: str
    account_ref: str
    amount_minor: int
    direction: str
    occurred_at: date
    status: str
    slot_index: Optional[int] = None
    rejection_reason: Optional[str] = None
    description: str = ""
    resubmission_of: Optional[str] = None
    reconciled_in: Optional[str] = None


class SlotStatusSchema(BaseModel):
    slot: int
    due_date: date
    status: str
    total_paid_approved_minor: int
    required_amount_minor: int
    remaining_amount_minor: int
    paid_percentage: float
    has_rejections: bool
    transactions: List[TransactionSchema]


class NextActionSchema(BaseModel):
    slot: Optional[int] = None
    suggested_amount_minor: int
    is_partial_continuation: bool
    is_upgrade_adjusted: bool
    is_complete: bool
    description: str
    rejected_slots: List[int]
    pending_slots: List[int]


class SlotSummarySchema(BaseModel):
    paid: int
    partially_paid: int
    pending: int
    rejected: int
    unpaid: int
    slots_with_rejections: int


class BalanceSchema(BaseModel):
    total_credits_minor: int
    total_debits_minor: int
    balance_minor: int


class ScheduleStatusResponse(BaseModel):
    """Response for GET /v1/schedule-status/{account_ref}"""

    account_ref: str
    slots: List[SlotStatusSchema]
    next_action: NextActionSchema
    summary: SlotSummarySchema
    balance: BalanceSchema


class UpgradeQuoteRequest(BaseModel):
    new_amount_per_slot_minor: int = Field(..., gt=0)


class UpgradeQuoteResponse(BaseModel):
    account_ref: str
    old_amount_per_slot_minor: int
    new_amount_per_slot_minor: int
    completed_slots: int
    remaining_slots: int
    total_slots: int
    compensation_per_slot_minor: int
    new_payment_with_compensation_minor: int


class StartReconciliationRequest(BaseModel):
    """Request body for POST /v1/reconciliation/start"""

    account_ref: str = Field(..., min_length=1)
    statement_end_date: date
    closing_balance_minor: int


class ToggleMatchRequest(BaseModel):
    reconciliation_id: str
    transaction_id: str
    matched: Optional[bool] = Field(None, description="Set explicitly instead of flipping")


class UpdateClosingBalanceRequest(BaseModel):
    reconciliation_id: str
    closing_balance_minor: int


class RemoveItemsRequest(BaseModel):
    reconciliation_id: str
    transaction_ids: List[str] = Field(..., min_length=1)


class ReconciliationSchema(BaseModel):
    reconciliation_id: str
    account_ref: str
    statement_end_date: date
    starting_balance_minor: int
    closing_balance_minor: int
    status: str
    reconciled_on: Optional[datetime] = None


class ReconciliationTotalsResponse(BaseModel):
    reconciliation_id: str
    matched_balance_minor: int
    difference_minor: int
    unmatched_count: int
    is_matched: Optional[bool] = None


class ReconciliationLineSchema(TransactionSchema):
    is_matched: bool
    matched_at: Optional[datetime] = None


class ReconciliationProcessResponse(BaseModel):
    """Response for GET /v1/reconciliation/session/{id}"""

    reconciliation: ReconciliationSchema
    transactions: List[ReconciliationLineSchema]
    matched_balance_minor: int
    difference_minor: int
    unmatched_count: int


class ReconciliationOverviewResponse(BaseModel):
    """Response for GET /v1/reconciliation/{account_ref}"""

    account_ref: str
    active: Optional[ReconciliationSchema] = None
    history: List[ReconciliationSchema]
    starting_balance_minor: Optional[int] = None
