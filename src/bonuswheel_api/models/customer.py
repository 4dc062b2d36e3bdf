from enum import Enum
from uuid import uuid4

from sqlalchemy import BigInteger, Column, Date, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from bonuswheel_api.db.base import Base


class CustomerRoleEnum(str, Enum):
    CUSTOMER = "customer"
    CASHIER = "cashier"
    ADMIN = "admin"


class Customer(Base):
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    external_id = Column(BigInteger, nullable=False, unique=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    phone = Column(String(32), nullable=False, unique=True, index=True)
    birth_date = Column(Date, nullable=True)
    role = Column(
        String(length=16),
        nullable=False,
        default=CustomerRoleEnum.CUSTOMER.value,
        server_default=CustomerRoleEnum.CUSTOMER.value,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def is_staff(self) -> bool:
        return self.role in {CustomerRoleEnum.CASHIER.value, CustomerRoleEnum.ADMIN.value}
