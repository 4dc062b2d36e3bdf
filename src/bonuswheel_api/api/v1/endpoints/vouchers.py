"""Customer voucher listing, cashier lookup and voucher use endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from bonuswheel_api.api.dependencies.customers import require_customer, resolve_operator
from bonuswheel_api.api.dependencies.errors import to_http_exception
from bonuswheel_api.api.dependencies.security import require_operator_api_key
from bonuswheel_api.db.session import get_session
from bonuswheel_api.models.customer import Customer
from bonuswheel_api.models.voucher import Voucher, VoucherStatus
from bonuswheel_api.services.errors import LedgerError
from bonuswheel_api.services.vouchers import VoucherService


router = APIRouter(tags=["Vouchers"])


class ActiveVoucherResponse(BaseModel):
    voucherId: UUID
    code: str
    title: str
    issuedAt: datetime
    expiresAt: Optional[datetime]


class VoucherResponse(BaseModel):
    id: UUID
    customerId: UUID
    code: str
    title: str
    status: str
    issuedAt: datetime
    expiresAt: Optional[datetime]
    usedAt: Optional[datetime]
    usedByOperatorId: Optional[UUID]


class VoucherUseRequest(BaseModel):
    operatorId: Optional[int] = None


def _serialize_voucher(voucher: Voucher) -> VoucherResponse:
    voucher_status = voucher.status
    return VoucherResponse(
        id=voucher.id,
        customerId=voucher.customer_id,
        code=voucher.prize.code,
        title=voucher.prize.title,
        status=voucher_status.value if isinstance(voucher_status, VoucherStatus) else str(voucher_status),
        issuedAt=voucher.issued_at,
        expiresAt=voucher.expires_at,
        usedAt=voucher.used_at,
        usedByOperatorId=voucher.used_by_operator_id,
    )


@router.get("/customers/{external_id}/vouchers", response_model=List[ActiveVoucherResponse])
async def list_active_vouchers(
    customer: Customer = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> List[ActiveVoucherResponse]:
    """Usable vouchers, newest first."""

    vouchers = await VoucherService(db).list_active_vouchers(customer)
    return [
        ActiveVoucherResponse(
            voucherId=voucher.voucher_id,
            code=voucher.prize_code,
            title=voucher.title,
            issuedAt=voucher.issued_at,
            expiresAt=voucher.expires_at,
        )
        for voucher in vouchers
    ]


@router.get(
    "/vouchers/{voucher_id}",
    response_model=VoucherResponse,
    dependencies=[Depends(require_operator_api_key)],
)
async def get_voucher(
    voucher_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> VoucherResponse:
    try:
        voucher = await VoucherService(db).get_voucher(voucher_id)
    except LedgerError as error:
        raise to_http_exception(error) from error
    return _serialize_voucher(voucher)


@router.post(
    "/vouchers/{voucher_id}/use",
    response_model=VoucherResponse,
    dependencies=[Depends(require_operator_api_key)],
)
async def use_voucher(
    voucher_id: UUID,
    payload: Optional[VoucherUseRequest] = None,
    db: AsyncSession = Depends(get_session),
) -> VoucherResponse:
    """Redeem a voucher at the counter. A second attempt fails with ``not_usable``."""

    operator = await resolve_operator(db, payload.operatorId if payload else None)
    try:
        voucher = await VoucherService(db).use_voucher(voucher_id, operator)
    except LedgerError as error:
        raise to_http_exception(error) from error
    return _serialize_voucher(voucher)
