"""Reward wheel catalog, eligibility and spin endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from bonuswheel_api.api.dependencies.customers import require_customer
from bonuswheel_api.api.dependencies.errors import to_http_exception
from bonuswheel_api.db.session import get_session
from bonuswheel_api.models.customer import Customer
from bonuswheel_api.models.wheel import Prize, WheelType
from bonuswheel_api.services.errors import LedgerError
from bonuswheel_api.services.wheel import PrizeCatalog, WheelService


router = APIRouter(tags=["Wheel"])


class PrizeResponse(BaseModel):
    id: UUID
    code: str
    title: str
    wheelType: str
    weight: int
    expiryDays: int
    bonusPoints: int


class WheelEligibilityResponse(BaseModel):
    welcome: bool
    birthday: bool
    welcomeUsed: bool


class SpinRequest(BaseModel):
    wheelType: WheelType = WheelType.WELCOME


class SpinResponse(BaseModel):
    spinId: UUID
    wheelType: str
    prize: PrizeResponse
    fulfillment: str
    targetAngle: float
    voucherId: Optional[UUID] = None
    voucherExpiresAt: Optional[datetime] = None
    transactionId: Optional[UUID] = None
    bonusAmount: int = 0


def _serialize_prize(prize: Prize) -> PrizeResponse:
    return PrizeResponse(
        id=prize.id,
        code=prize.code,
        title=prize.title,
        wheelType=prize.wheel_type,
        weight=prize.weight,
        expiryDays=prize.expiry_days,
        bonusPoints=prize.bonus_points,
    )


@router.get("/wheel/{wheel_type}/prizes", response_model=List[PrizeResponse])
async def list_wheel_prizes(
    wheel_type: WheelType,
    db: AsyncSession = Depends(get_session),
) -> List[PrizeResponse]:
    """Active prizes in wheel segment order."""

    prizes = await PrizeCatalog(db).list_active_prizes(wheel_type)
    return [_serialize_prize(prize) for prize in prizes]


@router.get("/customers/{external_id}/wheel", response_model=WheelEligibilityResponse)
async def get_wheel_eligibility(
    customer: Customer = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> WheelEligibilityResponse:
    eligibility = await WheelService(db).eligibility(customer)
    return WheelEligibilityResponse(
        welcome=eligibility[WheelType.WELCOME.value],
        birthday=eligibility[WheelType.BIRTHDAY.value],
        welcomeUsed=not eligibility[WheelType.WELCOME.value],
    )


@router.post(
    "/customers/{external_id}/wheel/spins",
    response_model=SpinResponse,
    status_code=status.HTTP_201_CREATED,
)
async def spin_wheel(
    payload: SpinRequest,
    customer: Customer = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> SpinResponse:
    """Spin a wheel once. Repeat attempts are rejected with ``already_spun``."""

    try:
        outcome = await WheelService(db).spin(customer, payload.wheelType)
    except LedgerError as error:
        raise to_http_exception(error) from error

    return SpinResponse(
        spinId=outcome.spin.id,
        wheelType=outcome.spin.wheel_type,
        prize=_serialize_prize(outcome.prize),
        fulfillment=outcome.fulfillment.value,
        targetAngle=outcome.target_angle,
        voucherId=outcome.voucher.id if outcome.voucher else None,
        voucherExpiresAt=outcome.voucher.expires_at if outcome.voucher else None,
        transactionId=outcome.transaction.id if outcome.transaction else None,
        bonusAmount=outcome.bonus_amount,
    )
