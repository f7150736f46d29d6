"""POST/GET /v1/transactions - append path of the transaction log"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from koperasi_gateway.api.dependencies import get_request_id
from koperasi_gateway.api.v1.errors import to_http_exception
from koperasi_gateway.api.v1.schemas import (
    ApproveRequest,
    RejectRequest,
    TransactionCreateRequest,
    TransactionSchema,
)
from koperasi_gateway.domain.exceptions import DomainException
from koperasi_gateway.domain.models import Direction, EventStatus, TransactionEvent
from koperasi_gateway.infrastructure.database.repositories import TransactionRepository
from koperasi_gateway.infrastructure.database.session import get_db
from koperasi_gateway.infrastructure.observability.metrics import transaction_counter

router = APIRouter()


def to_transaction_schema(event: TransactionEvent) -> TransactionSchema:
    return TransactionSchema(
        transaction_id=event.id,
        account_ref=event.account_ref,
        amount_minor=event.amount_minor,
        direction=event.direction.value,
        occurred_at=event.occurred_at,
        status=event.status.value,
        slot_index=event.slot_index,
        rejection_reason=event.rejection_reason,
        description=event.description,
        resubmission_of=event.resubmission_of,
        reconciled_in=event.reconciled_in,
    )


@router.post("/transactions", response_model=TransactionSchema, status_code=201)
def submit_transaction(
    request_body: TransactionCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Record a deposit, withdrawal, installment payment, or bank line as pending.

    A corrected payment is a new transaction with `resubmission_of` set;
    decided transactions are never edited.
    """
    request_id = get_request_id(request)
    try:
        event = TransactionRepository(db).append(
            account_ref=request_body.account_ref,
            amount_minor=request_body.amount_minor,
            direction=Direction(request_body.direction),
            occurred_at=request_body.occurred_at,
            slot_index=request_body.slot_index,
            description=request_body.description,
            resubmission_of=request_body.resubmission_of,
        )
        db.commit()
    except DomainException as e:
        db.rollback()
        logging.warning(f"Transaction rejected: {e}", extra={"request_id": request_id})
        raise to_http_exception(e)
    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    transaction_counter.labels(status=EventStatus.PENDING.value).inc()
    return to_transaction_schema(event)


@router.get("/transactions/{transaction_id}", response_model=TransactionSchema)
def get_transaction(transaction_id: str, db: Session = Depends(get_db)):
    try:
        event = TransactionRepository(db).get(transaction_id)
    except DomainException as e:
        raise to_http_exception(e)
    return to_transaction_schema(event)


def _decide(
    db: Session,
    request_id: str,
    transaction_id: str,
    status: EventStatus,
    reason: str | None,
    actor: str | None,
) -> TransactionSchema:
    try:
        event = TransactionRepository(db).record_status(transaction_id, status, reason=reason, actor=actor)
        db.commit()
    except DomainException as e:
        db.rollback()
        logging.warning(
            f"Status change refused: {e}",
            extra={"request_id": request_id, "transaction_id": transaction_id},
        )
        raise to_http_exception(e)

    transaction_counter.labels(status=status.value).inc()
    logging.info(
        f"Transaction {status.value}",
        extra={"request_id": request_id, "transaction_id": transaction_id, "actor": actor},
    )
    return to_transaction_schema(event)


@router.post("/transactions/{transaction_id}/approve", response_model=TransactionSchema)
def approve_transaction(
    transaction_id: str,
    request: Request,
    request_body: ApproveRequest | None = None,
    db: Session = Depends(get_db),
):
    """Approve a pending transaction; approval is final"""
    actor = request_body.actor if request_body else None
    return _decide(db, get_request_id(request), transaction_id, EventStatus.APPROVED, None, actor)


@router.post("/transactions/{transaction_id}/reject", response_model=TransactionSchema)
def reject_transaction(
    transaction_id: str,
    request_body: RejectRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Reject a pending transaction with a mandatory reason; rejection is final"""
    if not request_body.rejection_reason.strip():
        raise HTTPException(status_code=422, detail="Rejection reason is required")
    return _decide(
        db,
        get_request_id(request),
        transaction_id,
        EventStatus.REJECTED,
        request_body.rejection_reason,
        request_body.actor,
    )
