"""Voucher lookup and single-use redemption at the counter."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from loguru import logger
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bonuswheel_api.db.session import atomic
from bonuswheel_api.models.customer import Customer
from bonuswheel_api.models.voucher import Voucher, VoucherStatus
from bonuswheel_api.models.wheel import Prize
from bonuswheel_api.observability.ledger import LedgerObservabilityStore, get_ledger_store
from bonuswheel_api.services.errors import VoucherNotFoundError, VoucherNotUsableError


@dataclass
class ActiveVoucher:
    voucher_id: UUID
    prize_code: str
    title: str
    issued_at: datetime
    expires_at: datetime | None


class VoucherService:
    """Lists and consumes vouchers issued by the reward wheel."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        observability: LedgerObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._observability = observability or get_ledger_store()

    async def get_voucher(self, voucher_id: UUID) -> Voucher:
        stmt = (
            select(Voucher)
            .options(selectinload(Voucher.prize))
            .where(Voucher.id == voucher_id)
            .execution_options(populate_existing=True)
        )
        voucher = (await self._db.execute(stmt)).scalar_one_or_none()
        if voucher is None:
            raise VoucherNotFoundError(f"Voucher {voucher_id} not found")
        return voucher

    async def list_active_vouchers(
        self, customer: Customer, *, now: datetime | None = None
    ) -> list[ActiveVoucher]:
        """Return usable vouchers, newest first. Expired ones are filtered out."""

        now = now or datetime.now(timezone.utc)
        stmt = (
            select(Voucher.id, Prize.code, Prize.title, Voucher.issued_at, Voucher.expires_at)
            .join(Prize, Prize.id == Voucher.prize_id)
            .where(
                Voucher.customer_id == customer.id,
                Voucher.status == VoucherStatus.ACTIVE,
                or_(Voucher.expires_at.is_(None), Voucher.expires_at > now),
            )
            .order_by(Voucher.issued_at.desc(), Voucher.id.desc())
        )
        rows = (await self._db.execute(stmt)).all()
        return [
            ActiveVoucher(
                voucher_id=row.id,
                prize_code=row.code,
                title=row.title,
                issued_at=row.issued_at,
                expires_at=row.expires_at,
            )
            for row in rows
        ]

    async def use_voucher(
        self,
        voucher_id: UUID,
        operator: Customer | None = None,
        *,
        now: datetime | None = None,
    ) -> Voucher:
        """Mark a voucher used. Exactly one call can succeed per voucher."""

        now = now or datetime.now(timezone.utc)
        operator_id = operator.id if operator else None

        async with atomic(self._db):
            result = await self._db.execute(
                update(Voucher)
                .where(
                    Voucher.id == voucher_id,
                    Voucher.status == VoucherStatus.ACTIVE,
                    or_(Voucher.expires_at.is_(None), Voucher.expires_at > now),
                )
                .values(status=VoucherStatus.USED, used_at=now, used_by_operator_id=operator_id)
                .execution_options(synchronize_session=False)
            )
            used = result.rowcount == 1

        if not used:
            exists = await self._db.scalar(select(Voucher.id).where(Voucher.id == voucher_id))
            if exists is None:
                raise VoucherNotFoundError(f"Voucher {voucher_id} not found")
            self._observability.record_voucher_event("rejected")
            logger.info("Voucher use rejected", voucher_id=str(voucher_id))
            raise VoucherNotUsableError(f"Voucher {voucher_id} is already used or expired")

        self._observability.record_voucher_event("used")
        logger.info(
            "Voucher used",
            voucher_id=str(voucher_id),
            operator_id=str(operator_id) if operator_id else None,
        )
        return await self.get_voucher(voucher_id)


__all__ = ["ActiveVoucher", "VoucherService"]
