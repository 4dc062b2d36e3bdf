from __future__ import annotations

import re
from datetime import date, datetime, timezone

from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bonuswheel_api.core.settings import settings
from bonuswheel_api.models.customer import Customer, CustomerRoleEnum
from bonuswheel_api.services.errors import (
    CustomerAlreadyRegisteredError,
    CustomerNotFoundError,
    InvalidAmountError,
)

_NON_DIGITS = re.compile(r"\D+")


def normalize_phone(raw: str) -> str:
    """Reduce a phone number to ``+`` followed by its digits."""

    digits = _NON_DIGITS.sub("", raw or "")
    if not digits:
        raise InvalidAmountError("Phone number must contain digits")
    return f"+{digits}"


class CustomerService:
    """Customer directory used by registration and cashier lookups."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def register_customer(
        self,
        *,
        external_id: int,
        first_name: str,
        last_name: str,
        phone: str,
        birth_date: date | None = None,
    ) -> Customer:
        normalized = normalize_phone(phone)
        existing = await self._db.scalar(
            select(Customer.id).where(
                or_(Customer.external_id == external_id, Customer.phone == normalized)
            )
        )
        if existing is not None:
            raise CustomerAlreadyRegisteredError("Customer with this identifier or phone already exists")

        role = (
            CustomerRoleEnum.CASHIER.value
            if external_id in settings.staff_external_ids
            else CustomerRoleEnum.CUSTOMER.value
        )
        now = datetime.now(timezone.utc)
        customer = Customer(
            external_id=external_id,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            phone=normalized,
            birth_date=birth_date,
            role=role,
            created_at=now,
            updated_at=now,
        )
        self._db.add(customer)
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            raise CustomerAlreadyRegisteredError(
                "Customer with this identifier or phone already exists"
            ) from exc

        logger.info(
            "Registered customer",
            customer_id=str(customer.id),
            external_id=external_id,
            role=role,
        )
        return customer

    async def get_by_external_id(self, external_id: int) -> Customer:
        customer = await self._db.scalar(select(Customer).where(Customer.external_id == external_id))
        if customer is None:
            raise CustomerNotFoundError(f"Customer {external_id} not found")
        return customer

    async def find_by_contact(self, phone: str) -> Customer:
        """Resolve a customer from a phone number typed or scanned at the counter."""

        customer = await self._db.scalar(
            select(Customer).where(Customer.phone == normalize_phone(phone))
        )
        if customer is None:
            raise CustomerNotFoundError("No customer registered with this phone")
        return customer


__all__ = ["CustomerService", "normalize_phone"]
