"""Data access layer for the transaction log and reconciliation sessions"""

import uuid
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session
from koperasi_gateway.infrastructure.database.models import (
    ReconciliationItem,
    ReconciliationSessionRecord,
    TransactionEventRecord,
    TransactionStatusEntry,
)
from koperasi_gateway.domain.exceptions import (
    InconsistentEventError,
    InvalidStatusTransitionError,
    SessionNotFoundError,
    TransactionNotFoundError,
)
from koperasi_gateway.domain.models import Direction, EventStatus, SessionStatus, TransactionEvent
from koperasi_gateway.domain.reconciliation import ReconciliationSession


def _parse_sequence_id(value: str) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class TransactionRepository:
    """Repository for the append-only transaction log"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_domain(record: TransactionEventRecord) -> TransactionEvent:
        """Project a stored event onto its newest status entry"""
        latest = record.status_entries[-1] if record.status_entries else None
        status = EventStatus(latest.status) if latest else EventStatus.PENDING
        return TransactionEvent(
            id=str(record.id),
            account_ref=record.account_ref,
            amount_minor=record.amount_minor,
            direction=Direction(record.direction),
            occurred_at=record.occurred_at,
            status=status,
            slot_index=record.slot_index,
            rejection_reason=latest.reason if status == EventStatus.REJECTED else None,
            description=record.description or "",
            resubmission_of=str(record.resubmission_of) if record.resubmission_of else None,
            reconciled_in=str(record.reconciled_in) if record.reconciled_in else None,
        )

    def _get_record(self, transaction_id: str) -> TransactionEventRecord:
        record_id = _parse_sequence_id(transaction_id)
        record = self.db.get(TransactionEventRecord, record_id) if record_id is not None else None
        if record is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return record

    def append(
        self,
        account_ref: str,
        amount_minor: int,
        direction: Direction,
        occurred_at: date,
        slot_index: Optional[int] = None,
        description: str = "",
        resubmission_of: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> TransactionEvent:
        """
        Write a new pending event.

        A correction of a rejected payment is a resubmission: a new event
        pointing at the one it replaces, on the same account and slot.
        """
        if amount_minor < 0:
            raise InconsistentEventError("Amount cannot be negative")
        if slot_index is not None and slot_index < 1:
            raise InconsistentEventError(f"Slot index must be at least 1, got {slot_index}")

        previous_id = None
        if resubmission_of is not None:
            previous = self._get_record(resubmission_of)
            if previous.account_ref != account_ref or previous.slot_index != slot_index:
                raise InconsistentEventError(
                    f"Resubmission must target the same account and slot as transaction {resubmission_of}"
                )
            previous_id = previous.id

        record = TransactionEventRecord(
            account_ref=account_ref,
            amount_minor=amount_minor,
            direction=direction.value,
            occurred_at=occurred_at,
            slot_index=slot_index,
            description=description,
            resubmission_of=previous_id,
        )
        record.status_entries.append(TransactionStatusEntry(status=EventStatus.PENDING.value, actor=actor))
        self.db.add(record)
        self.db.flush()  # Get ID without committing
        return self.to_domain(record)

    def record_status(
        self,
        transaction_id: str,
        status: EventStatus,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> TransactionEvent:
        """
        Append an authorization decision to an event's status history.

        Raises:
            InvalidStatusTransitionError: event already approved or rejected
            InconsistentEventError: rejection without a reason
        """
        record = self._get_record(transaction_id)
        current = self.to_domain(record)
        if current.status != EventStatus.PENDING:
            raise InvalidStatusTransitionError(
                f"Transaction {transaction_id} is already {current.status.value}; submit a new transaction instead"
            )
        if status == EventStatus.PENDING:
            raise InvalidStatusTransitionError(f"Transaction {transaction_id} is already pending")
        if status == EventStatus.REJECTED and not (reason and reason.strip()):
            raise InconsistentEventError("Rejection reason is required")

        record.status_entries.append(
            TransactionStatusEntry(
                status=status.value,
                reason=reason.strip() if status == EventStatus.REJECTED else None,
                actor=actor,
            )
        )
        self.db.flush()
        return self.to_domain(record)

    def get(self, transaction_id: str) -> TransactionEvent:
        return self.to_domain(self._get_record(transaction_id))

    def list_for_account(self, account_ref: str) -> List[TransactionEvent]:
        """All events of an account, oldest first"""
        records = (
            self.db.query(TransactionEventRecord)
            .filter(TransactionEventRecord.account_ref == account_ref)
            .order_by(TransactionEventRecord.occurred_at, TransactionEventRecord.id)
            .all()
        )
        return [self.to_domain(r) for r in records]

    def list_until(self, account_ref: str, until: date) -> List[TransactionEvent]:
        """Events of an account dated on or before `until`"""
        records = (
            self.db.query(TransactionEventRecord)
            .filter(
                TransactionEventRecord.account_ref == account_ref,
                TransactionEventRecord.occurred_at <= until,
            )
            .order_by(TransactionEventRecord.occurred_at, TransactionEventRecord.id)
            .all()
        )
        return [self.to_domain(r) for r in records]

    def mark_reconciled(self, transaction_ids: Iterable[str], session_id: str) -> None:
        session_uuid = uuid.UUID(session_id)
        ids = [i for i in (_parse_sequence_id(t) for t in transaction_ids) if i is not None]
        if not ids:
            return
        (
            self.db.query(TransactionEventRecord)
            .filter(TransactionEventRecord.id.in_(ids))
            .update({TransactionEventRecord.reconciled_in: session_uuid}, synchronize_session="fetch")
        )


class ReconciliationRepository:
    """Repository for reconciliation sessions and their reviewed lines"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_domain(record: ReconciliationSessionRecord) -> ReconciliationSession:
        return ReconciliationSession(
            id=str(record.id),
            account_ref=record.account_ref,
            statement_end_date=record.statement_end_date,
            starting_balance=record.starting_balance_minor,
            closing_balance=record.closing_balance_minor,
            status=SessionStatus(record.status),
            matched_transaction_ids={str(i.transaction_id) for i in record.items if i.is_matched},
            removed_transaction_ids={str(i.transaction_id) for i in record.items if i.is_removed},
            reconciled_on=record.reconciled_on,
        )

    def create_session(
        self,
        account_ref: str,
        statement_end_date: date,
        starting_balance_minor: int,
        closing_balance_minor: int,
    ) -> ReconciliationSessionRecord:
        """Insert an active session; the partial unique index rejects a second one"""
        record = ReconciliationSessionRecord(
            account_ref=account_ref,
            statement_end_date=statement_end_date,
            starting_balance_minor=starting_balance_minor,
            closing_balance_minor=closing_balance_minor,
            status=SessionStatus.ACTIVE.value,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def get_record(self, session_id: str, for_update: bool = False) -> ReconciliationSessionRecord:
        """Fetch a session, optionally locking its row until commit"""
        session_uuid = _parse_uuid(session_id)
        record = None
        if session_uuid is not None:
            query = self.db.query(ReconciliationSessionRecord).filter(ReconciliationSessionRecord.id == session_uuid)
            if for_update:
                query = query.with_for_update()
            record = query.first()
        if record is None:
            raise SessionNotFoundError(f"Reconciliation {session_id} not found")
        return record

    def get_active(self, account_ref: str) -> Optional[ReconciliationSessionRecord]:
        return (
            self.db.query(ReconciliationSessionRecord)
            .filter(
                ReconciliationSessionRecord.account_ref == account_ref,
                ReconciliationSessionRecord.status == SessionStatus.ACTIVE.value,
            )
            .first()
        )

    def get_completed(self, account_ref: str, limit: int = 50) -> List[ReconciliationSessionRecord]:
        """Completed sessions, latest statement first"""
        return (
            self.db.query(ReconciliationSessionRecord)
            .filter(
                ReconciliationSessionRecord.account_ref == account_ref,
                ReconciliationSessionRecord.status == SessionStatus.COMPLETED.value,
            )
            .order_by(
                ReconciliationSessionRecord.statement_end_date.desc(),
                ReconciliationSessionRecord.reconciled_on.desc(),
            )
            .limit(limit)
            .all()
        )

    def latest_completed(self, account_ref: str) -> Optional[ReconciliationSessionRecord]:
        completed = self.get_completed(account_ref, limit=1)
        return completed[0] if completed else None

    def save_state(self, record: ReconciliationSessionRecord, session: ReconciliationSession) -> None:
        """
        Write the session's status, closing balance and line states back.

        Only the lines whose state changed are touched, so two operators
        reviewing different lines do not overwrite each other.
        """
        record.status = session.status.value
        record.closing_balance_minor = session.closing_balance
        record.reconciled_on = session.reconciled_on

        items = {str(i.transaction_id): i for i in record.items}
        touched = session.matched_transaction_ids | session.removed_transaction_ids | set(items)
        now = datetime.now(timezone.utc)

        for transaction_id in touched:
            matched = transaction_id in session.matched_transaction_ids
            removed = transaction_id in session.removed_transaction_ids
            item = items.get(transaction_id)
            if item is None:
                item = ReconciliationItem(transaction_id=int(transaction_id))
                record.items.append(item)
            elif item.is_matched == matched and item.is_removed == removed:
                continue
            if matched and not item.is_matched:
                item.matched_at = now
            elif not matched:
                item.matched_at = None
            item.is_matched = matched
            item.is_removed = removed

        self.db.flush()

    def matched_at(self, record: ReconciliationSessionRecord) -> dict:
        return {str(i.transaction_id): i.matched_at for i in record.items if i.is_matched}
