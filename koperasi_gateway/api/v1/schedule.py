"""GET /v1/schedule-status/{account_ref} - per-period payment status and next action"""

import time
import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from koperasi_gateway.api.dependencies import get_master_data_client, get_request_id
from koperasi_gateway.api.v1.errors import to_http_exception
from koperasi_gateway.api.v1.schemas import (
    BalanceSchema,
    NextActionSchema,
    ScheduleStatusResponse,
    SlotStatusSchema,
    SlotSummarySchema,
    UpgradeQuoteRequest,
    UpgradeQuoteResponse,
)
from koperasi_gateway.api.v1.transactions import to_transaction_schema
from koperasi_gateway.config import settings
from koperasi_gateway.domain.compensation import quote_upgrade
from koperasi_gateway.domain.exceptions import DomainException, MasterDataAPIError
from koperasi_gateway.domain.next_action import next_action
from koperasi_gateway.domain.plans import PlanHistory
from koperasi_gateway.domain.schedule import project_slots, summarize_balance, summarize_slots
from koperasi_gateway.infrastructure.clients.master_data import MasterDataClient
from koperasi_gateway.infrastructure.database.repositories import TransactionRepository
from koperasi_gateway.infrastructure.database.session import get_db
from koperasi_gateway.infrastructure.observability.logging import log_schedule_status
from koperasi_gateway.infrastructure.observability.metrics import master_data_failures_counter, record_next_action

router = APIRouter()


async def _load_plan_history(master_data: MasterDataClient, account_ref: str) -> PlanHistory:
    plans = await master_data.get_plan_history(account_ref)
    return PlanHistory(
        plans,
        interval_months=settings.slot_interval_months,
        open_ended_floor=settings.open_ended_slot_floor,
    )


@router.get("/schedule-status/{account_ref}", response_model=ScheduleStatusResponse)
async def get_schedule_status(
    account_ref: str,
    request: Request,
    db: Session = Depends(get_db),
    master_data: MasterDataClient = Depends(get_master_data_client),
):
    """
    Project the installment schedule of a member's plan.

    Flow:
    1. Fetch plan history (including upgrades) from master data
    2. Read the account's transaction log
    3. Derive per-slot status and the suggested next payment
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        history = await _load_plan_history(master_data, account_ref)
        events = TransactionRepository(db).list_for_account(account_ref)
        slots = project_slots(events, history)
        action = next_action(
            events,
            history,
            policy=settings.upgrade_compensation_policy,
            description_template=settings.payment_description_template,
        )

    except MasterDataAPIError as e:
        master_data_failures_counter.inc()
        logging.error(f"Master data API error: {e}", extra={"request_id": request_id})
        raise to_http_exception(e)

    except DomainException as e:
        logging.warning(f"Schedule projection refused: {e}", extra={"request_id": request_id})
        raise to_http_exception(e)

    duration_ms = (time.time() - start_time) * 1000
    record_next_action(action.is_complete, action.is_partial_continuation, action.is_upgrade_adjusted)
    log_schedule_status(request_id, account_ref, len(slots), action.slot, action.suggested_amount, duration_ms)

    summary = summarize_slots(slots)
    balance = summarize_balance(events)

    return ScheduleStatusResponse(
        account_ref=account_ref,
        slots=[
            SlotStatusSchema(
                slot=s.slot,
                due_date=history.due_date(s.slot),
                status=s.status.value,
                total_paid_approved_minor=s.total_paid_approved,
                required_amount_minor=s.required_amount,
                remaining_amount_minor=s.remaining_amount,
                paid_percentage=s.paid_percentage,
                has_rejections=s.has_rejections,
                transactions=[to_transaction_schema(e) for e in s.contributing_events],
            )
            for s in slots
        ],
        next_action=NextActionSchema(
            slot=action.slot,
            suggested_amount_minor=action.suggested_amount,
            is_partial_continuation=action.is_partial_continuation,
            is_upgrade_adjusted=action.is_upgrade_adjusted,
            is_complete=action.is_complete,
            description=action.description,
            rejected_slots=action.rejected_slots,
            pending_slots=action.pending_slots,
        ),
        summary=SlotSummarySchema(**vars(summary)),
        balance=BalanceSchema(**vars(balance)),
    )


@router.post("/schedule-status/{account_ref}/upgrade-quote", response_model=UpgradeQuoteResponse)
async def post_upgrade_quote(
    account_ref: str,
    request_body: UpgradeQuoteRequest,
    request: Request,
    db: Session = Depends(get_db),
    master_data: MasterDataClient = Depends(get_master_data_client),
):
    """Preview the compensation a switch to a higher per-slot rate would carry"""
    request_id = get_request_id(request)

    try:
        history = await _load_plan_history(master_data, account_ref)
        events = TransactionRepository(db).list_for_account(account_ref)
        quote = quote_upgrade(
            events,
            history,
            request_body.new_amount_per_slot_minor,
            policy=settings.upgrade_compensation_policy,
        )

    except MasterDataAPIError as e:
        master_data_failures_counter.inc()
        logging.error(f"Master data API error: {e}", extra={"request_id": request_id})
        raise to_http_exception(e)

    except DomainException as e:
        raise to_http_exception(e)

    return UpgradeQuoteResponse(
        account_ref=account_ref,
        old_amount_per_slot_minor=quote.old_amount_per_slot,
        new_amount_per_slot_minor=quote.new_amount_per_slot,
        completed_slots=quote.completed_slots,
        remaining_slots=quote.remaining_slots,
        total_slots=quote.total_slots,
        compensation_per_slot_minor=quote.compensation_per_slot,
        new_payment_with_compensation_minor=quote.new_payment_with_compensation,
    )
