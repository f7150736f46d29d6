"""Pytest fixtures for testing"""

import pytest
from datetime import date
from typing import Callable, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from koperasi_gateway.api.main import create_app
from koperasi_gateway.infrastructure.database.models import Base
from koperasi_gateway.infrastructure.database.session import get_db
from koperasi_gateway.domain.models import Direction, EventStatus, Plan, TransactionEvent


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def plan_100k() -> Plan:
    """Fixed-term savings plan: Rp 100,000 per month for 12 months"""
    return Plan(required_amount_per_slot=100000, effective_from=date(2025, 1, 1), total_slots=12)


@pytest.fixture
def upgrade_plans() -> list[Plan]:
    """Rp 50,000 per month, upgraded to Rp 80,000 from the fourth month of twelve"""
    return [
        Plan(required_amount_per_slot=50000, effective_from=date(2025, 1, 1), total_slots=12, plan_id="p50"),
        Plan(required_amount_per_slot=80000, effective_from=date(2025, 4, 1), total_slots=12, plan_id="p80"),
    ]


@pytest.fixture
def make_event() -> Callable[..., TransactionEvent]:
    """Factory for transaction events with sequential numeric ids"""
    counter = {"next": 1}

    def _make(
        slot_index: int | None = None,
        amount_minor: int = 100000,
        status: EventStatus = EventStatus.APPROVED,
        direction: Direction = Direction.CREDIT,
        occurred_at: date = date(2025, 1, 10),
        account_ref: str = "member_001",
        rejection_reason: str | None = None,
        reconciled_in: str | None = None,
    ) -> TransactionEvent:
        event_id = str(counter["next"])
        counter["next"] += 1
        if status == EventStatus.REJECTED and rejection_reason is None:
            rejection_reason = "Transfer proof unreadable"
        return TransactionEvent(
            id=event_id,
            account_ref=account_ref,
            amount_minor=amount_minor,
            direction=direction,
            occurred_at=occurred_at,
            status=status,
            slot_index=slot_index,
            rejection_reason=rejection_reason,
            reconciled_in=reconciled_in,
        )

    return _make
