"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class MasterDataAPIError(DomainException):
    """Member/plan master data API returned an error or is unavailable"""

    pass


class InvalidPlanError(DomainException):
    """Plan history is empty, malformed, or asked for a slot it does not have"""

    pass


class InconsistentEventError(DomainException):
    """Transaction event contradicts the log or the schedule it belongs to"""

    pass


class NoRemainingSlotsError(DomainException):
    """Schedule is exhausted, no slot is left to absorb upgrade compensation"""

    pass


class InvalidStatusTransitionError(DomainException):
    """Approved and rejected events are final; corrections are new events"""

    pass


class TransactionNotFoundError(DomainException):
    """Transaction event does not exist"""

    pass


class SessionNotFoundError(DomainException):
    """Reconciliation session does not exist"""

    pass


class SessionAlreadyActiveError(DomainException):
    """Account already has a reconciliation session in progress"""

    pass


class SessionNotActiveError(DomainException):
    """Reconciliation session is completed or cancelled"""

    pass


class UnknownTransactionError(DomainException):
    """Transaction is not a candidate of the reconciliation session"""

    pass


class UnbalancedError(DomainException):
    """Reconciliation cannot complete while the difference exceeds epsilon"""

    def __init__(self, difference_minor: int):
        super().__init__(f"Difference must be zero to complete, currently {difference_minor}")
        self.difference_minor = difference_minor
