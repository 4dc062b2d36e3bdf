"""Bonus ledger models: expiring point batches and the transaction log."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from bonuswheel_api.db.base import Base


class BonusTransactionKind(str, Enum):
    """Kinds of balance-affecting events recorded in the transaction log."""

    ACCRUAL = "accrual"
    REDEMPTION = "redemption"


class BonusTransaction(Base):
    """Immutable audit record of a single ledger mutation."""

    __tablename__ = "bonus_transactions"
    __table_args__ = (
        Index("ix_bonus_transactions_customer_created", "customer_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    counterparty_id = Column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )
    kind = Column(
        SqlEnum(
            BonusTransactionKind,
            name="bonus_transaction_kind",
            values_callable=lambda kinds: [kind.value for kind in kinds],
        ),
        nullable=False,
    )
    purchase_amount = Column(BigInteger, nullable=False, default=0, server_default="0")
    bonus_delta = Column(Integer, nullable=False)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    batch = relationship("BonusBatch", back_populates="source_transaction", uselist=False)


class BonusBatch(Base):
    """Points credited by one accrual, spendable until ``expires_at``."""

    __tablename__ = "bonus_batches"
    __table_args__ = (
        CheckConstraint(
            "amount_remaining >= 0 AND amount_remaining <= amount_issued",
            name="ck_bonus_batches_remaining_bounds",
        ),
        Index("ix_bonus_batches_customer_expiry", "customer_id", "expires_at", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    amount_issued = Column(Integer, nullable=False)
    amount_remaining = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)
    source_transaction_id = Column(
        UUID(as_uuid=True), ForeignKey("bonus_transactions.id"), nullable=True
    )

    source_transaction = relationship("BonusTransaction", back_populates="batch")
