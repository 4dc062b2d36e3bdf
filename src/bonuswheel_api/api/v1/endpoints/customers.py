"""Customer registration, lookup and profile summary endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from bonuswheel_api.api.dependencies.customers import require_customer
from bonuswheel_api.api.dependencies.errors import to_http_exception
from bonuswheel_api.api.dependencies.security import require_operator_api_key
from bonuswheel_api.db.session import get_session
from bonuswheel_api.models.customer import Customer
from bonuswheel_api.services.customers import CustomerService
from bonuswheel_api.services.errors import LedgerError
from bonuswheel_api.services.ledger import LedgerService
from bonuswheel_api.services.vouchers import VoucherService
from bonuswheel_api.services.wheel import WheelService


router = APIRouter(prefix="/customers", tags=["Customers"])


class CustomerRegisterRequest(BaseModel):
    externalId: int = Field(..., description="Trusted identifier supplied by the registration channel")
    firstName: str = Field(..., min_length=1, max_length=120)
    lastName: str = Field(..., min_length=1, max_length=120)
    phone: str = Field(..., min_length=3, max_length=32)
    birthDate: Optional[date] = None


class CustomerResponse(BaseModel):
    id: UUID
    externalId: int
    firstName: str
    lastName: str
    phone: str
    birthDate: Optional[date]
    role: str
    createdAt: datetime


class ActiveVoucherSummary(BaseModel):
    voucherId: UUID
    code: str
    title: str
    expiresAt: Optional[datetime]


class CustomerSummaryResponse(BaseModel):
    customer: CustomerResponse
    balance: int
    activeVouchers: List[ActiveVoucherSummary]
    welcomeUsed: bool
    birthdayAvailable: bool


def serialize_customer(customer: Customer) -> CustomerResponse:
    return CustomerResponse(
        id=customer.id,
        externalId=customer.external_id,
        firstName=customer.first_name,
        lastName=customer.last_name,
        phone=customer.phone,
        birthDate=customer.birth_date,
        role=customer.role,
        createdAt=customer.created_at,
    )


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def register_customer(
    payload: CustomerRegisterRequest,
    db: AsyncSession = Depends(get_session),
) -> CustomerResponse:
    """Register a customer from an already verified channel identity."""

    service = CustomerService(db)
    try:
        customer = await service.register_customer(
            external_id=payload.externalId,
            first_name=payload.firstName,
            last_name=payload.lastName,
            phone=payload.phone,
            birth_date=payload.birthDate,
        )
    except LedgerError as error:
        raise to_http_exception(error) from error
    return serialize_customer(customer)


@router.get(
    "/lookup",
    response_model=CustomerResponse,
    dependencies=[Depends(require_operator_api_key)],
)
async def lookup_customer(
    phone: str = Query(..., min_length=3, description="Phone number as typed at the counter"),
    db: AsyncSession = Depends(get_session),
) -> CustomerResponse:
    try:
        customer = await CustomerService(db).find_by_contact(phone)
    except LedgerError as error:
        raise to_http_exception(error) from error
    return serialize_customer(customer)


@router.get("/{external_id}", response_model=CustomerSummaryResponse)
async def get_customer_summary(
    customer: Customer = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> CustomerSummaryResponse:
    """Profile card: balance, usable vouchers and wheel availability."""

    balance = await LedgerService(db).get_balance(customer)
    vouchers = await VoucherService(db).list_active_vouchers(customer)
    eligibility = await WheelService(db).eligibility(customer)
    return CustomerSummaryResponse(
        customer=serialize_customer(customer),
        balance=balance,
        activeVouchers=[
            ActiveVoucherSummary(
                voucherId=voucher.voucher_id,
                code=voucher.prize_code,
                title=voucher.title,
                expiresAt=voucher.expires_at,
            )
            for voucher in vouchers
        ],
        welcomeUsed=not eligibility["welcome"],
        birthdayAvailable=eligibility["birthday"],
    )
