"""SQLAlchemy ORM models for the transaction log and reconciliation sessions"""

import uuid
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
SequenceId = BigInteger().with_variant(Integer, "sqlite")


class TransactionEventRecord(Base):
    """Financial movement - never edited once written"""

    __tablename__ = "transaction_event"

    id = Column(SequenceId, primary_key=True, autoincrement=True)
    account_ref = Column(Text, nullable=False, index=True)
    amount_minor = Column(BigInteger, nullable=False)
    direction = Column(Text, nullable=False)
    occurred_at = Column(Date, nullable=False)
    slot_index = Column(Integer, nullable=True)
    description = Column(Text, nullable=False, default="")
    resubmission_of = Column(SequenceId, ForeignKey("transaction_event.id"), nullable=True)
    reconciled_in = Column(UUID(as_uuid=True), ForeignKey("reconciliation_session.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    status_entries = relationship(
        "TransactionStatusEntry",
        back_populates="transaction",
        order_by="TransactionStatusEntry.id",
        cascade="all, delete-orphan",
    )


class TransactionStatusEntry(Base):
    """Append-only status history; the newest entry is the current status"""

    __tablename__ = "transaction_status_entry"

    id = Column(SequenceId, primary_key=True, autoincrement=True)
    transaction_id = Column(SequenceId, ForeignKey("transaction_event.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Text, nullable=False)
    reason = Column(Text, nullable=True)
    actor = Column(Text, nullable=True)
    recorded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    transaction = relationship("TransactionEventRecord", back_populates="status_entries")


class ReconciliationSessionRecord(Base):
    """Bank reconciliation session; at most one active per account"""

    __tablename__ = "reconciliation_session"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_ref = Column(Text, nullable=False, index=True)
    statement_end_date = Column(Date, nullable=False)
    starting_balance_minor = Column(BigInteger, nullable=False, default=0)
    closing_balance_minor = Column(BigInteger, nullable=False)
    status = Column(Text, nullable=False, default="active")
    reconciled_on = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    items = relationship("ReconciliationItem", back_populates="session", cascade="all, delete-orphan")

    __table_args__ = (
        Index(
            "uq_reconciliation_session_active_account",
            "account_ref",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_reconciliation_session_account_end", "account_ref", "statement_end_date"),
    )


class ReconciliationItem(Base):
    """Per-line review state within a session: matched and/or removed"""

    __tablename__ = "reconciliation_item"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(UUID(as_uuid=True), ForeignKey("reconciliation_session.id", ondelete="CASCADE"), nullable=False)
    transaction_id = Column(SequenceId, ForeignKey("transaction_event.id"), nullable=False)
    is_matched = Column(Boolean, nullable=False, default=False)
    is_removed = Column(Boolean, nullable=False, default=False)
    matched_at = Column(DateTime(timezone=True), nullable=True)

    session = relationship("ReconciliationSessionRecord", back_populates="items")

    __table_args__ = (
        UniqueConstraint("session_id", "transaction_id", name="uq_reconciliation_item_line"),
    )
