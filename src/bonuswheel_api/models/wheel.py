"""Reward wheel catalog and spin history models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
    true,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from bonuswheel_api.db.base import Base


class WheelType(str, Enum):
    """Eligibility scopes, each with its own prize set."""

    WELCOME = "welcome"
    BIRTHDAY = "birthday"


class Prize(Base):
    """Weighted wheel prize. ``expiry_days == 0`` credits ``bonus_points`` instead of a voucher."""

    __tablename__ = "prizes"
    __table_args__ = (
        UniqueConstraint("wheel_type", "code", name="uq_prizes_wheel_code"),
        CheckConstraint("weight > 0", name="ck_prizes_weight_positive"),
        CheckConstraint("expiry_days >= 0", name="ck_prizes_expiry_days_non_negative"),
        Index("ix_prizes_wheel_position", "wheel_type", "position"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String, nullable=False)
    title = Column(String, nullable=False)
    wheel_type = Column(String(length=16), nullable=False)
    weight = Column(Integer, nullable=False)
    expiry_days = Column(Integer, nullable=False, default=14, server_default="14")
    bonus_points = Column(Integer, nullable=False, default=0, server_default="0")
    position = Column(Integer, nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def is_bonus_credit(self) -> bool:
        return int(self.expiry_days or 0) == 0


class WheelSpin(Base):
    """One row per spin. Its existence is what makes the customer ineligible."""

    __tablename__ = "wheel_spins"
    __table_args__ = (
        Index(
            "ux_wheel_spins_welcome_once",
            "customer_id",
            "wheel_type",
            unique=True,
            sqlite_where=text("wheel_type = 'welcome'"),
            postgresql_where=text("wheel_type = 'welcome'"),
        ),
        Index(
            "ux_wheel_spins_birthday_once_per_year",
            "customer_id",
            "wheel_type",
            "year",
            unique=True,
            sqlite_where=text("wheel_type = 'birthday'"),
            postgresql_where=text("wheel_type = 'birthday'"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    wheel_type = Column(String(length=16), nullable=False)
    prize_id = Column(UUID(as_uuid=True), ForeignKey("prizes.id"), nullable=False)
    year = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    prize = relationship("Prize")
