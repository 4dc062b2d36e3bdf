"""Reward wheel: eligibility, weighted draw and prize fulfillment."""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bonuswheel_api.core.settings import settings
from bonuswheel_api.db.session import atomic
from bonuswheel_api.models.customer import Customer
from bonuswheel_api.models.ledger import BonusTransaction
from bonuswheel_api.models.voucher import Voucher, VoucherStatus
from bonuswheel_api.models.wheel import Prize, WheelSpin, WheelType
from bonuswheel_api.observability.ledger import LedgerObservabilityStore, get_ledger_store
from bonuswheel_api.services.errors import AlreadySpunError, NoActivePrizesError
from bonuswheel_api.services.ledger import LedgerService

from .catalog import PrizeCatalog


class FulfillmentKind(str, Enum):
    BONUS = "bonus"
    VOUCHER = "voucher"


@dataclass
class SpinOutcome:
    """Everything a client needs to present a completed spin."""

    spin: WheelSpin
    prize: Prize
    fulfillment: FulfillmentKind
    target_angle: float
    voucher: Voucher | None = None
    transaction: BonusTransaction | None = None
    bonus_amount: int = 0


def draw_index(weights: Sequence[int], rng: random.Random) -> int:
    """Pick an index with probability proportional to its integer weight.

    A roll in ``[1, sum(weights)]`` selects the first position whose running
    total reaches it.
    """

    total = sum(int(weight) for weight in weights)
    if total <= 0:
        raise ValueError("At least one positive weight is required")
    roll = rng.randint(1, total)
    running = 0
    for index, weight in enumerate(weights):
        running += int(weight)
        if running >= roll:
            return index
    return len(weights) - 1  # pragma: no cover - unreachable with positive weights


def compute_target_angle(
    index: int,
    count: int,
    rng: random.Random,
    full_turns: int | None = None,
) -> float:
    """Rotation in degrees that lands segment ``index`` under a pointer at 0 degrees."""

    if count <= 0:
        raise ValueError("Wheel must have at least one segment")
    turns = settings.wheel_full_turns if full_turns is None else full_turns
    segment = 360.0 / count
    centre = index * segment + segment / 2
    jitter = rng.uniform(-0.35, 0.35) * segment
    return round(turns * 360.0 + (360.0 - centre) + jitter, 2)


class WheelService:
    """Runs wheel spins for customers."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        rng: random.Random | None = None,
        ledger: LedgerService | None = None,
        catalog: PrizeCatalog | None = None,
        observability: LedgerObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._rng = rng or random.Random()
        self._ledger = ledger or LedgerService(db_session)
        self._catalog = catalog or PrizeCatalog(db_session)
        self._observability = observability or get_ledger_store()

    async def eligibility(
        self, customer: Customer, *, now: datetime | None = None
    ) -> dict[str, bool]:
        """Return whether each wheel can still be spun by ``customer``."""

        now = now or datetime.now(timezone.utc)
        return {
            wheel_type.value: not await self._has_spun(customer.id, wheel_type, now.year)
            for wheel_type in WheelType
        }

    async def spin(
        self,
        customer: Customer,
        wheel_type: WheelType | str,
        *,
        now: datetime | None = None,
    ) -> SpinOutcome:
        """Draw a prize, persist the spin and fulfil the prize in one transaction."""

        wheel = WheelType(wheel_type)
        now = now or datetime.now(timezone.utc)
        year = now.year
        customer_id = customer.id

        if await self._has_spun(customer_id, wheel, year):
            self._observability.record_spin_rejected(wheel.value, AlreadySpunError.code)
            raise AlreadySpunError(wheel.value, year=self._scoped_year(wheel, year))

        prizes = await self._catalog.list_active_prizes(wheel)
        if not prizes:
            self._observability.record_spin_rejected(wheel.value, NoActivePrizesError.code)
            logger.error("Wheel has no active prizes", wheel_type=wheel.value)
            raise NoActivePrizesError(wheel.value)

        index = draw_index([prize.weight for prize in prizes], self._rng)
        prize = prizes[index]
        target_angle = compute_target_angle(index, len(prizes), self._rng)

        try:
            async with atomic(self._db):
                spin = WheelSpin(
                    customer_id=customer_id,
                    wheel_type=wheel.value,
                    prize_id=prize.id,
                    year=year,
                    created_at=now,
                )
                self._db.add(spin)
                await self._db.flush()
                outcome = await self._fulfil(customer, spin, prize, target_angle, now)
        except IntegrityError:
            # The rollback left nothing behind; only a concurrent spin on the
            # same eligibility key is reported as a domain error.
            if not await self._has_spun(customer_id, wheel, year):
                raise
            self._observability.record_spin_rejected(wheel.value, AlreadySpunError.code)
            logger.info(
                "Concurrent spin rejected by uniqueness constraint",
                customer_id=str(customer_id),
                wheel_type=wheel.value,
            )
            raise AlreadySpunError(wheel.value, year=self._scoped_year(wheel, year)) from None

        self._observability.record_spin(wheel.value, prize.code, outcome.fulfillment.value)
        logger.info(
            "Wheel spun",
            customer_id=str(customer_id),
            wheel_type=wheel.value,
            spin_id=str(outcome.spin.id),
            prize_code=prize.code,
            fulfillment=outcome.fulfillment.value,
        )
        return outcome

    async def _fulfil(
        self,
        customer: Customer,
        spin: WheelSpin,
        prize: Prize,
        target_angle: float,
        now: datetime,
    ) -> SpinOutcome:
        if prize.is_bonus_credit:
            amount = int(prize.bonus_points or 0)
            transaction, _ = await self._ledger.credit_bonus(
                customer,
                amount,
                expires_at=now + timedelta(days=settings.wheel_bonus_expiry_days),
                metadata={
                    "source": "wheel",
                    "wheel_type": spin.wheel_type,
                    "prize_code": prize.code,
                    "spin_id": str(spin.id),
                },
                now=now,
            )
            return SpinOutcome(
                spin=spin,
                prize=prize,
                fulfillment=FulfillmentKind.BONUS,
                target_angle=target_angle,
                transaction=transaction,
                bonus_amount=amount,
            )

        voucher = Voucher(
            customer_id=customer.id,
            prize_id=prize.id,
            status=VoucherStatus.ACTIVE,
            issued_at=now,
            expires_at=now + timedelta(days=int(prize.expiry_days)),
        )
        self._db.add(voucher)
        await self._db.flush()
        return SpinOutcome(
            spin=spin,
            prize=prize,
            fulfillment=FulfillmentKind.VOUCHER,
            target_angle=target_angle,
            voucher=voucher,
        )

    async def _has_spun(self, customer_id: UUID, wheel: WheelType, year: int) -> bool:
        stmt = select(WheelSpin.id).where(
            WheelSpin.customer_id == customer_id,
            WheelSpin.wheel_type == wheel.value,
        )
        if wheel is WheelType.BIRTHDAY:
            stmt = stmt.where(WheelSpin.year == year)
        result = await self._db.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    @staticmethod
    def _scoped_year(wheel: WheelType, year: int) -> int | None:
        return year if wheel is WheelType.BIRTHDAY else None


__all__ = [
    "FulfillmentKind",
    "SpinOutcome",
    "WheelService",
    "compute_target_angle",
    "draw_index",
]
