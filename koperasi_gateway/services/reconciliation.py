"""Reconciliation matcher - persistence-backed operations on reconciliation sessions"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from koperasi_gateway.config import settings
from koperasi_gateway.domain.exceptions import SessionAlreadyActiveError
from koperasi_gateway.domain.models import ReconciliationTotals, TransactionEvent
from koperasi_gateway.domain.reconciliation import ReconciliationSession
from koperasi_gateway.infrastructure.database.models import ReconciliationSessionRecord
from koperasi_gateway.infrastructure.database.repositories import (
    ReconciliationRepository,
    TransactionRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class SessionView:
    """A session together with the lines under review and its balances"""

    session: ReconciliationSession
    lines: List[TransactionEvent]
    totals: ReconciliationTotals
    matched_at: Dict[str, Optional[datetime]] = field(default_factory=dict)


@dataclass
class AccountOverview:
    active: Optional[ReconciliationSession]
    history: List[ReconciliationSession]
    last_completed: Optional[ReconciliationSession]


class ReconciliationMatcher:
    """
    Operations an operator performs while reconciling a bank account.

    Every mutation loads the session row with a lock, applies the change to
    the domain session, and writes back only the lines it touched. Callers
    own the transaction and commit after a successful call.
    """

    def __init__(self, db: Session, epsilon_minor: Optional[int] = None):
        self.db = db
        self.sessions = ReconciliationRepository(db)
        self.transactions = TransactionRepository(db)
        self.epsilon_minor = settings.reconciliation_epsilon_minor if epsilon_minor is None else epsilon_minor

    def _load(
        self, session_id: str, for_update: bool = False
    ) -> Tuple[ReconciliationSessionRecord, ReconciliationSession, List[TransactionEvent]]:
        record = self.sessions.get_record(session_id, for_update=for_update)
        session = self.sessions.to_domain(record)
        events = self.transactions.list_until(session.account_ref, session.statement_end_date)
        return record, session, session.candidates(events)

    def needs_opening_balance(self, account_ref: str) -> bool:
        """Whether a new session must start from the account's opening balance"""
        return self.sessions.latest_completed(account_ref) is None

    def start(
        self,
        account_ref: str,
        statement_end_date: date,
        closing_balance: int,
        opening_balance: int = 0,
    ) -> ReconciliationSession:
        """
        Open a session for an account.

        The starting balance carries over from the latest completed session,
        or is the account's opening balance for a first reconciliation.

        Raises:
            SessionAlreadyActiveError: account already has an active session
        """
        if self.sessions.get_active(account_ref) is not None:
            raise SessionAlreadyActiveError(f"There is already an active reconciliation for account {account_ref}")

        last_completed = self.sessions.latest_completed(account_ref)
        starting_balance = last_completed.closing_balance_minor if last_completed else opening_balance

        try:
            record = self.sessions.create_session(
                account_ref=account_ref,
                statement_end_date=statement_end_date,
                starting_balance_minor=starting_balance,
                closing_balance_minor=closing_balance,
            )
        except IntegrityError as e:
            # Another operator opened a session between the check and the insert
            self.db.rollback()
            raise SessionAlreadyActiveError(
                f"There is already an active reconciliation for account {account_ref}"
            ) from e

        return self.sessions.to_domain(record)

    def list_candidates(self, session_id: str) -> List[TransactionEvent]:
        """Lines an operator may match in this session, newest first"""
        _, _, candidates = self._load(session_id)
        return candidates

    def toggle_match(
        self, session_id: str, transaction_id: str, matched: Optional[bool] = None
    ) -> Tuple[bool, ReconciliationTotals]:
        """
        Flip a line's match, or set it explicitly when `matched` is given.

        Returns:
            (new match state, session totals)
        """
        record, session, candidates = self._load(session_id, for_update=True)
        if matched is None:
            is_matched = session.toggle_match(transaction_id, candidates)
        else:
            is_matched = session.set_match(transaction_id, matched, candidates)
        self.sessions.save_state(record, session)
        return is_matched, session.totals(candidates)

    def update_closing_balance(self, session_id: str, closing_balance: int) -> ReconciliationTotals:
        record, session, candidates = self._load(session_id, for_update=True)
        session.update_closing_balance(closing_balance)
        self.sessions.save_state(record, session)
        return session.totals(candidates)

    def remove_items(self, session_id: str, transaction_ids: Iterable[str]) -> ReconciliationTotals:
        """Drop lines from this session only; the events stay in the log"""
        record, session, candidates = self._load(session_id, for_update=True)
        session.remove_items(transaction_ids, candidates)
        self.sessions.save_state(record, session)
        remaining = [e for e in candidates if e.id not in session.removed_transaction_ids]
        return session.totals(remaining)

    def complete(self, session_id: str) -> ReconciliationSession:
        """
        Close a balanced session and stamp its matched lines as reconciled.

        Raises:
            UnbalancedError: difference exceeds epsilon; nothing is written
        """
        record, session, candidates = self._load(session_id, for_update=True)
        matched_ids = session.complete(candidates, epsilon_minor=self.epsilon_minor)
        self.sessions.save_state(record, session)
        self.transactions.mark_reconciled(matched_ids, session.id)
        logger.info(
            "Reconciliation completed",
            extra={"reconciliation_id": session.id, "matched_count": len(matched_ids)},
        )
        return session

    def cancel(self, session_id: str) -> ReconciliationSession:
        record, session, _ = self._load(session_id, for_update=True)
        session.cancel()
        self.sessions.save_state(record, session)
        return session

    def process_view(self, session_id: str) -> SessionView:
        """
        Lines under review with their match state and the running balances.

        A completed or cancelled session shows only the lines it matched.
        """
        record, session, candidates = self._load(session_id)
        if not session.is_active:
            candidates = [e for e in candidates if e.id in session.matched_transaction_ids]
        return SessionView(
            session=session,
            lines=candidates,
            totals=session.totals(candidates),
            matched_at=self.sessions.matched_at(record),
        )

    def overview(self, account_ref: str) -> AccountOverview:
        """Active session and completed history of an account"""
        active = self.sessions.get_active(account_ref)
        history = [self.sessions.to_domain(r) for r in self.sessions.get_completed(account_ref)]
        return AccountOverview(
            active=self.sessions.to_domain(active) if active else None,
            history=history,
            last_completed=history[0] if history else None,
        )
