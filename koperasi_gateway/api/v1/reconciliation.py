"""/v1/reconciliation - bank reconciliation session endpoints"""

import logging
from typing import Dict, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from koperasi_gateway.api.dependencies import (
    get_ledger_client,
    get_master_data_client,
    get_matcher,
    get_request_id,
)
from koperasi_gateway.api.v1.errors import to_http_exception
from koperasi_gateway.api.v1.schemas import (
    ReconciliationLineSchema,
    ReconciliationOverviewResponse,
    ReconciliationProcessResponse,
    ReconciliationSchema,
    ReconciliationTotalsResponse,
    RemoveItemsRequest,
    StartReconciliationRequest,
    ToggleMatchRequest,
    UpdateClosingBalanceRequest,
)
from koperasi_gateway.api.v1.transactions import to_transaction_schema
from koperasi_gateway.domain.exceptions import (
    DomainException,
    MasterDataAPIError,
    SessionAlreadyActiveError,
    UnbalancedError,
)
from koperasi_gateway.domain.models import ReconciliationTotals
from koperasi_gateway.domain.reconciliation import ReconciliationSession
from koperasi_gateway.infrastructure.clients.ledger import LedgerClient
from koperasi_gateway.infrastructure.clients.master_data import MasterDataClient
from koperasi_gateway.infrastructure.database.session import get_db
from koperasi_gateway.infrastructure.observability.logging import log_reconciliation
from koperasi_gateway.infrastructure.observability.metrics import (
    master_data_failures_counter,
    reconciliation_toggle_counter,
    record_reconciliation,
)
from koperasi_gateway.services.reconciliation import ReconciliationMatcher

router = APIRouter()


def to_reconciliation_schema(session: ReconciliationSession) -> ReconciliationSchema:
    return ReconciliationSchema(
        reconciliation_id=session.id,
        account_ref=session.account_ref,
        statement_end_date=session.statement_end_date,
        starting_balance_minor=session.starting_balance,
        closing_balance_minor=session.closing_balance,
        status=session.status.value,
        reconciled_on=session.reconciled_on,
    )


def to_totals_response(
    session_id: str, totals: ReconciliationTotals, is_matched: Optional[bool] = None
) -> ReconciliationTotalsResponse:
    return ReconciliationTotalsResponse(
        reconciliation_id=session_id,
        matched_balance_minor=totals.matched_balance,
        difference_minor=totals.difference,
        unmatched_count=totals.unmatched_count,
        is_matched=is_matched,
    )


@router.get("/reconciliation/session/{reconciliation_id}", response_model=ReconciliationProcessResponse)
def get_reconciliation_session(
    reconciliation_id: str,
    matcher: ReconciliationMatcher = Depends(get_matcher),
):
    """
    Lines under review with their match state and running balances.

    Completed sessions show the lines they reconciled.
    """
    try:
        view = matcher.process_view(reconciliation_id)
    except DomainException as e:
        raise to_http_exception(e)

    lines = [
        ReconciliationLineSchema(
            **to_transaction_schema(event).model_dump(),
            is_matched=event.id in view.session.matched_transaction_ids,
            matched_at=view.matched_at.get(event.id),
        )
        for event in view.lines
    ]
    return ReconciliationProcessResponse(
        reconciliation=to_reconciliation_schema(view.session),
        transactions=lines,
        matched_balance_minor=view.totals.matched_balance,
        difference_minor=view.totals.difference,
        unmatched_count=view.totals.unmatched_count,
    )


@router.get("/reconciliation/{account_ref}", response_model=ReconciliationOverviewResponse)
async def get_reconciliation_overview(
    account_ref: str,
    request: Request,
    matcher: ReconciliationMatcher = Depends(get_matcher),
    master_data: MasterDataClient = Depends(get_master_data_client),
):
    """Active session, completed history, and the starting balance of the next session"""
    overview = matcher.overview(account_ref)

    if overview.last_completed is not None:
        starting_balance = overview.last_completed.closing_balance
    elif overview.active is not None:
        starting_balance = overview.active.starting_balance
    else:
        try:
            starting_balance = await master_data.get_opening_balance(account_ref)
        except MasterDataAPIError as e:
            master_data_failures_counter.inc()
            logging.error(f"Master data API error: {e}", extra={"request_id": get_request_id(request)})
            raise to_http_exception(e)

    return ReconciliationOverviewResponse(
        account_ref=account_ref,
        active=to_reconciliation_schema(overview.active) if overview.active else None,
        history=[to_reconciliation_schema(s) for s in overview.history],
        starting_balance_minor=starting_balance,
    )


@router.post("/reconciliation/start", response_model=ReconciliationSchema, status_code=201)
async def start_reconciliation(
    request_body: StartReconciliationRequest,
    request: Request,
    db: Session = Depends(get_db),
    matcher: ReconciliationMatcher = Depends(get_matcher),
    master_data: MasterDataClient = Depends(get_master_data_client),
):
    """
    Open a reconciliation session for a bank account.

    Flow:
    1. Refuse if the account already has an active session
    2. Carry the starting balance over from the last completed session, or
       fetch the account's opening balance for a first reconciliation
    3. Persist the session; candidates are every unreconciled line up to
       the statement end date
    """
    request_id = get_request_id(request)

    try:
        opening_balance = 0
        if matcher.needs_opening_balance(request_body.account_ref):
            opening_balance = await master_data.get_opening_balance(request_body.account_ref)

        session = matcher.start(
            account_ref=request_body.account_ref,
            statement_end_date=request_body.statement_end_date,
            closing_balance=request_body.closing_balance_minor,
            opening_balance=opening_balance,
        )
        db.commit()

    except MasterDataAPIError as e:
        master_data_failures_counter.inc()
        db.rollback()
        logging.error(f"Master data API error: {e}", extra={"request_id": request_id})
        raise to_http_exception(e)

    except SessionAlreadyActiveError as e:
        record_reconciliation("conflict")
        db.rollback()
        logging.warning(f"Reconciliation conflict: {e}", extra={"request_id": request_id})
        raise to_http_exception(e)

    except DomainException as e:
        db.rollback()
        raise to_http_exception(e)

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    record_reconciliation("started")
    log_reconciliation(request_id, session.id, session.account_ref, "started", session.closing_balance - session.starting_balance)
    return to_reconciliation_schema(session)


@router.post("/reconciliation/toggle-match", response_model=ReconciliationTotalsResponse)
def toggle_match(
    request_body: ToggleMatchRequest,
    request: Request,
    db: Session = Depends(get_db),
    matcher: ReconciliationMatcher = Depends(get_matcher),
):
    """Match or unmatch one statement line and return the new balances"""
    try:
        is_matched, totals = matcher.toggle_match(
            request_body.reconciliation_id,
            request_body.transaction_id,
            matched=request_body.matched,
        )
        db.commit()
    except DomainException as e:
        db.rollback()
        logging.warning(f"Toggle refused: {e}", extra={"request_id": get_request_id(request)})
        raise to_http_exception(e)

    reconciliation_toggle_counter.labels(matched=str(is_matched).lower()).inc()
    return to_totals_response(request_body.reconciliation_id, totals, is_matched)


@router.post("/reconciliation/update-closing-balance", response_model=ReconciliationTotalsResponse)
def update_closing_balance(
    request_body: UpdateClosingBalanceRequest,
    request: Request,
    db: Session = Depends(get_db),
    matcher: ReconciliationMatcher = Depends(get_matcher),
):
    try:
        totals = matcher.update_closing_balance(request_body.reconciliation_id, request_body.closing_balance_minor)
        db.commit()
    except DomainException as e:
        db.rollback()
        logging.warning(f"Closing balance update refused: {e}", extra={"request_id": get_request_id(request)})
        raise to_http_exception(e)

    return to_totals_response(request_body.reconciliation_id, totals)


@router.post("/reconciliation/remove-items", response_model=ReconciliationTotalsResponse)
def remove_items(
    request_body: RemoveItemsRequest,
    request: Request,
    db: Session = Depends(get_db),
    matcher: ReconciliationMatcher = Depends(get_matcher),
):
    """Take lines out of this session; the transactions themselves are kept"""
    try:
        totals = matcher.remove_items(request_body.reconciliation_id, request_body.transaction_ids)
        db.commit()
    except DomainException as e:
        db.rollback()
        logging.warning(f"Remove items refused: {e}", extra={"request_id": get_request_id(request)})
        raise to_http_exception(e)

    return to_totals_response(request_body.reconciliation_id, totals)


@router.post("/reconciliation/{reconciliation_id}/complete", response_model=ReconciliationSchema)
def complete_reconciliation(
    reconciliation_id: str,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    matcher: ReconciliationMatcher = Depends(get_matcher),
    ledger_client: LedgerClient = Depends(get_ledger_client),
):
    """
    Complete a balanced session.

    An unbalanced session answers 409 with the current difference and stays
    active so the operator can keep matching.
    """
    request_id = get_request_id(request)

    try:
        session = matcher.complete(reconciliation_id)
        db.commit()

    except UnbalancedError as e:
        record_reconciliation("unbalanced")
        db.rollback()
        logging.info(
            "Reconciliation not balanced",
            extra={"request_id": request_id, "reconciliation_id": reconciliation_id, "difference_minor": e.difference_minor},
        )
        raise to_http_exception(e)

    except DomainException as e:
        db.rollback()
        raise to_http_exception(e)

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    record_reconciliation("completed")
    log_reconciliation(request_id, session.id, session.account_ref, "completed", 0)

    payload: Dict[str, object] = {
        "event": "RECONCILIATION_COMPLETED",
        "reconciliation_id": session.id,
        "account_ref": session.account_ref,
        "statement_end_date": session.statement_end_date.isoformat(),
        "closing_balance_minor": session.closing_balance,
        "matched_transaction_ids": sorted(session.matched_transaction_ids),
    }
    background_tasks.add_task(ledger_client.send_event, payload)

    return to_reconciliation_schema(session)


@router.post("/reconciliation/{reconciliation_id}/cancel", response_model=ReconciliationSchema)
def cancel_reconciliation(
    reconciliation_id: str,
    request: Request,
    db: Session = Depends(get_db),
    matcher: ReconciliationMatcher = Depends(get_matcher),
):
    """Cancel a session; its lines become candidates again for the next one"""
    try:
        session = matcher.cancel(reconciliation_id)
        db.commit()
    except DomainException as e:
        db.rollback()
        raise to_http_exception(e)

    record_reconciliation("cancelled")
    log_reconciliation(get_request_id(request), session.id, session.account_ref, "cancelled")
    return to_reconciliation_schema(session)
