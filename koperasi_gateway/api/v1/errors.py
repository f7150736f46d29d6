"""Mapping of domain exceptions onto HTTP responses"""

from fastapi import HTTPException

from koperasi_gateway.domain.exceptions import (
    DomainException,
    InconsistentEventError,
    InvalidPlanError,
    InvalidStatusTransitionError,
    MasterDataAPIError,
    NoRemainingSlotsError,
    SessionAlreadyActiveError,
    SessionNotActiveError,
    SessionNotFoundError,
    TransactionNotFoundError,
    UnbalancedError,
    UnknownTransactionError,
)

STATUS_CODES = {
    TransactionNotFoundError: 404,
    SessionNotFoundError: 404,
    SessionAlreadyActiveError: 409,
    SessionNotActiveError: 409,
    InvalidStatusTransitionError: 409,
    UnbalancedError: 409,
    InvalidPlanError: 422,
    InconsistentEventError: 422,
    NoRemainingSlotsError: 422,
    UnknownTransactionError: 422,
    MasterDataAPIError: 503,
}


def to_http_exception(error: DomainException) -> HTTPException:
    """Business errors are caller-visible and never retried by this service"""
    status_code = STATUS_CODES.get(type(error), 400)

    if isinstance(error, UnbalancedError):
        return HTTPException(
            status_code=status_code,
            detail={"message": str(error), "difference_minor": error.difference_minor},
        )
    if isinstance(error, MasterDataAPIError):
        return HTTPException(status_code=status_code, detail="Master data service unavailable")

    return HTTPException(status_code=status_code, detail=str(error))
