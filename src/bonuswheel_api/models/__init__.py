"""SQLAlchemy models package."""

from .customer import Customer, CustomerRoleEnum  # noqa: F401
from .ledger import BonusBatch, BonusTransaction, BonusTransactionKind  # noqa: F401
from .voucher import Voucher, VoucherStatus  # noqa: F401
from .wheel import Prize, WheelSpin, WheelType  # noqa: F401
