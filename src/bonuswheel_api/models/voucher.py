from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, Index, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from bonuswheel_api.db.base import Base


class VoucherStatus(str, Enum):
    """Stored voucher states. Expiry is derived from ``expires_at`` at read time."""

    ACTIVE = "active"
    USED = "used"


class Voucher(Base):
    """Non-monetary prize issued by the reward wheel."""

    __tablename__ = "vouchers"
    __table_args__ = (
        Index("ix_vouchers_customer_status", "customer_id", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    prize_id = Column(UUID(as_uuid=True), ForeignKey("prizes.id"), nullable=False)
    status = Column(
        SqlEnum(
            VoucherStatus,
            name="voucher_status",
            values_callable=lambda statuses: [status.value for status in statuses],
        ),
        nullable=False,
        default=VoucherStatus.ACTIVE,
        server_default=VoucherStatus.ACTIVE.value,
    )
    issued_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
    used_by_operator_id = Column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )

    prize = relationship("Prize")
