"""Bank reconciliation session - matched balance and completion rules"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

from koperasi_gateway.domain.exceptions import (
    SessionNotActiveError,
    UnbalancedError,
    UnknownTransactionError,
)
from koperasi_gateway.domain.models import (
    EventStatus,
    ReconciliationTotals,
    SessionStatus,
    TransactionEvent,
)
from koperasi_gateway.domain.schedule import event_order_key


DEFAULT_EPSILON_MINOR = 1


@dataclass
class ReconciliationSession:
    """
    One bounded review of a bank account against a statement.

    Balances are integer minor units:
        matched_balance = starting_balance + matched credits - matched debits
        difference      = closing_balance - matched_balance

    Lifecycle: active -> completed, or active -> cancelled. Both ends are
    terminal; any mutation after that raises SessionNotActiveError.
    """

    id: str
    account_ref: str
    statement_end_date: date
    starting_balance: int
    closing_balance: int
    status: SessionStatus = SessionStatus.ACTIVE
    matched_transaction_ids: Set[str] = field(default_factory=set)
    removed_transaction_ids: Set[str] = field(default_factory=set)
    reconciled_on: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def ensure_active(self) -> None:
        if not self.is_active:
            raise SessionNotActiveError(f"Reconciliation {self.id} is {self.status.value}")

    def is_candidate(self, event: TransactionEvent) -> bool:
        """
        Whether a bank line may be reviewed in this session.

        Lines dated after the statement, already reconciled by another
        session, rejected, or removed from this session are excluded.
        """
        return (
            event.account_ref == self.account_ref
            and event.occurred_at <= self.statement_end_date
            and event.reconciled_in in (None, self.id)
            and event.status != EventStatus.REJECTED
            and event.id not in self.removed_transaction_ids
        )

    def candidates(self, events: Iterable[TransactionEvent]) -> List[TransactionEvent]:
        """Candidate lines, newest first"""
        eligible = [e for e in events if self.is_candidate(e)]
        return sorted(eligible, key=event_order_key, reverse=True)

    def matched_balance(self, candidates: Iterable[TransactionEvent]) -> int:
        return self.starting_balance + sum(
            e.signed_amount_minor for e in candidates if e.id in self.matched_transaction_ids
        )

    def difference(self, candidates: Iterable[TransactionEvent]) -> int:
        return self.closing_balance - self.matched_balance(candidates)

    def totals(self, candidates: Iterable[TransactionEvent]) -> ReconciliationTotals:
        candidates = list(candidates)
        matched_balance = self.matched_balance(candidates)
        return ReconciliationTotals(
            matched_balance=matched_balance,
            difference=self.closing_balance - matched_balance,
            unmatched_count=sum(1 for e in candidates if e.id not in self.matched_transaction_ids),
        )

    def set_match(self, transaction_id: str, matched: bool, candidates: Iterable[TransactionEvent]) -> bool:
        """Put a line in or out of the matched set; safe to retry"""
        self.ensure_active()
        if transaction_id not in _index(candidates):
            raise UnknownTransactionError(
                f"Transaction {transaction_id} is not a candidate of reconciliation {self.id}"
            )
        if matched:
            self.matched_transaction_ids.add(transaction_id)
        else:
            self.matched_transaction_ids.discard(transaction_id)
        return matched

    def toggle_match(self, transaction_id: str, candidates: Iterable[TransactionEvent]) -> bool:
        """Flip a line's membership in the matched set, returns the new state"""
        return self.set_match(transaction_id, transaction_id not in self.matched_transaction_ids, candidates)

    def update_closing_balance(self, closing_balance: int) -> None:
        self.ensure_active()
        self.closing_balance = closing_balance

    def remove_items(self, transaction_ids: Iterable[str], candidates: Iterable[TransactionEvent]) -> None:
        """
        Take lines out of this session without touching the events.

        Lines already removed are accepted again so a retried request
        succeeds.
        """
        self.ensure_active()
        known = _index(candidates)
        transaction_ids = list(transaction_ids)
        unknown = [
            t for t in transaction_ids
            if t not in known and t not in self.removed_transaction_ids
        ]
        if unknown:
            raise UnknownTransactionError(
                f"Transactions {', '.join(unknown)} are not candidates of reconciliation {self.id}"
            )
        for transaction_id in transaction_ids:
            self.matched_transaction_ids.discard(transaction_id)
            self.removed_transaction_ids.add(transaction_id)

    def complete(
        self,
        candidates: Iterable[TransactionEvent],
        epsilon_minor: int = DEFAULT_EPSILON_MINOR,
    ) -> Set[str]:
        """
        Close the session once the statement balances.

        Returns:
            Ids of the matched lines that are still candidates, to be
            stamped as reconciled. Stale matches are dropped.

        Raises:
            UnbalancedError: |difference| exceeds epsilon; session stays active
        """
        self.ensure_active()
        candidates = list(candidates)
        difference = self.difference(candidates)
        if abs(difference) > epsilon_minor:
            raise UnbalancedError(difference)
        reconciled = {e.id for e in candidates if e.id in self.matched_transaction_ids}
        self.matched_transaction_ids = reconciled
        self.status = SessionStatus.COMPLETED
        self.reconciled_on = datetime.now(timezone.utc)
        return set(reconciled)

    def cancel(self) -> None:
        """Discard matches; the underlying events stay available"""
        self.ensure_active()
        self.status = SessionStatus.CANCELLED
        self.matched_transaction_ids.clear()
        self.removed_transaction_ids.clear()


def _index(candidates: Iterable[TransactionEvent]) -> Dict[str, TransactionEvent]:
    return {e.id: e for e in candidates}
