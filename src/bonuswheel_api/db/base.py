from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Check constraints are named explicitly on each model.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Declarative base shared by ledger, voucher and wheel models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
