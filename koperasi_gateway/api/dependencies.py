"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from koperasi_gateway.infrastructure.clients.master_data import MasterDataClient
from koperasi_gateway.infrastructure.clients.ledger import LedgerClient
from koperasi_gateway.infrastructure.database.session import get_db
from koperasi_gateway.services.reconciliation import ReconciliationMatcher


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_master_data_client() -> MasterDataClient:
    """Provide member/plan master data client instance"""
    return MasterDataClient()


def get_ledger_client() -> LedgerClient:
    """Provide Ledger webhook client instance"""
    return LedgerClient()


def get_matcher(db: Session = Depends(get_db)) -> ReconciliationMatcher:
    """Provide reconciliation matcher bound to the request's database session"""
    return ReconciliationMatcher(db)
