"""Bonus ledger: expiring point batches, FIFO redemption and the transaction log."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bonuswheel_api.core.settings import settings
from bonuswheel_api.db.session import atomic
from bonuswheel_api.models.customer import Customer
from bonuswheel_api.models.ledger import BonusBatch, BonusTransaction, BonusTransactionKind
from bonuswheel_api.observability.ledger import LedgerObservabilityStore, get_ledger_store
from bonuswheel_api.services.errors import InvalidAmountError


# A conditional debit only loses when another writer touched the batch
# between selection and update; each pass re-reads the batch list.
_MAX_DEBIT_PASSES = 5


@dataclass
class AccrualResult:
    """Outcome of crediting points to a customer."""

    transaction: BonusTransaction
    batch: BonusBatch | None
    bonus_amount: int
    new_balance: int


@dataclass
class RedemptionQuote:
    """How many points a purchase allows the customer to spend."""

    purchase_amount: int
    balance: int
    cap: int
    max_spendable: int


@dataclass
class BatchDebit:
    batch_id: UUID
    amount: int


@dataclass
class RedemptionResult:
    """Outcome of spending points against a purchase."""

    transaction: BonusTransaction
    requested: int
    spent: int
    new_balance: int
    debits: list[BatchDebit] = field(default_factory=list)


@dataclass
class LedgerReconciliation:
    """Transaction log totals compared with the batch ledger for one customer."""

    transaction_total: int
    accrued_total: int
    redeemed_total: int
    issued_total: int
    remaining_total: int
    live_balance: int

    @property
    def consistent(self) -> bool:
        return (
            self.accrued_total == self.issued_total
            and self.issued_total - self.remaining_total >= self.redeemed_total
            and self.transaction_total >= self.live_balance
        )


def _to_decimal(value: Any, field_name: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise InvalidAmountError(f"{field_name} must be numeric") from exc
    if not amount.is_finite():
        raise InvalidAmountError(f"{field_name} must be finite")
    if amount < 0:
        raise InvalidAmountError(f"{field_name} must not be negative")
    return amount


def _to_fraction(value: Any, field_name: str) -> Decimal:
    fraction = _to_decimal(value, field_name)
    if fraction > 1:
        raise InvalidAmountError(f"{field_name} must be between 0 and 1")
    return fraction


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


class LedgerService:
    """Records accruals and redemptions against a customer's bonus batches.

    Balances are never stored: they are the sum of ``amount_remaining`` over
    batches whose ``expires_at`` lies in the future. Public mutating
    operations run as one database transaction and commit before returning.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        evict_expired_on_read: bool | None = None,
        observability: LedgerObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        if evict_expired_on_read is None:
            evict_expired_on_read = settings.ledger_evict_expired_on_read
        self._evict_expired_on_read = evict_expired_on_read
        self._observability = observability or get_ledger_store()

    async def get_balance(self, customer: Customer, *, now: datetime | None = None) -> int:
        """Return the customer's spendable points."""

        now = now or datetime.now(timezone.utc)
        if self._evict_expired_on_read:
            evicted = await self._evict_expired(customer.id, now)
            if evicted:
                await self._db.commit()
        return await self._live_balance(customer.id, now)

    async def list_batches(
        self,
        customer: Customer,
        *,
        include_expired: bool = False,
        now: datetime | None = None,
    ) -> list[BonusBatch]:
        """Return batches in spend order (soonest expiry first)."""

        now = now or datetime.now(timezone.utc)
        stmt = (
            select(BonusBatch)
            .where(BonusBatch.customer_id == customer.id)
            .order_by(BonusBatch.expires_at.asc(), BonusBatch.created_at.asc())
        )
        if not include_expired:
            stmt = stmt.where(BonusBatch.expires_at > now, BonusBatch.amount_remaining > 0)
        result = await self._db.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def list_transactions(
        self,
        customer: Customer,
        *,
        limit: int = 50,
        kinds: Sequence[BonusTransactionKind] | None = None,
    ) -> list[BonusTransaction]:
        """Return the most recent transaction log entries for a customer."""

        bounded_limit = max(1, min(limit, 200))
        stmt = (
            select(BonusTransaction)
            .where(BonusTransaction.customer_id == customer.id)
            .order_by(BonusTransaction.created_at.desc(), BonusTransaction.id.desc())
            .limit(bounded_limit)
        )
        if kinds:
            stmt = stmt.where(BonusTransaction.kind.in_(list(kinds)))
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def accrue(
        self,
        customer: Customer,
        purchase_amount: Any,
        rate: Any = None,
        *,
        operator: Customer | None = None,
        metadata: dict[str, Any] | None = None,
        expires_in: timedelta | None = None,
        now: datetime | None = None,
    ) -> AccrualResult:
        """Credit ``floor(purchase_amount * rate)`` points as a new batch."""

        purchase = _to_decimal(purchase_amount, "purchase_amount")
        rate_value = _to_fraction(settings.accrual_rate if rate is None else rate, "rate")
        bonus_amount = _floor(purchase * rate_value)
        now = now or datetime.now(timezone.utc)

        # Audit keys are written last so caller metadata cannot replace them.
        entry_metadata = {
            **(metadata or {}),
            "source": "cashier" if operator else "api",
            "rate": str(rate_value),
        }

        async with atomic(self._db):
            await self._lock_customer(customer, now)
            transaction, batch = await self.credit_bonus(
                customer,
                bonus_amount,
                purchase_amount=_floor(purchase),
                expires_at=now + (expires_in or timedelta(days=settings.bonus_expiry_days)),
                operator=operator,
                metadata=entry_metadata,
                now=now,
            )
            new_balance = await self._live_balance(customer.id, now)

        self._observability.record_accrual(bonus_amount)
        logger.info(
            "Accrued bonus points",
            customer_id=str(customer.id),
            transaction_id=str(transaction.id),
            purchase_amount=_floor(purchase),
            bonus_amount=bonus_amount,
            new_balance=new_balance,
        )
        return AccrualResult(
            transaction=transaction,
            batch=batch,
            bonus_amount=bonus_amount,
            new_balance=new_balance,
        )

    async def credit_bonus(
        self,
        customer: Customer,
        amount: int,
        *,
        expires_at: datetime,
        purchase_amount: int = 0,
        operator: Customer | None = None,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> tuple[BonusTransaction, BonusBatch | None]:
        """Write an accrual transaction and its batch without committing.

        The caller owns the surrounding database transaction. A zero amount
        is logged but creates no batch.
        """

        if amount < 0:
            raise InvalidAmountError("Bonus credit must not be negative")

        now = now or datetime.now(timezone.utc)
        transaction = await self.record_transaction(
            customer,
            kind=BonusTransactionKind.ACCRUAL,
            bonus_delta=amount,
            purchase_amount=purchase_amount,
            operator=operator,
            metadata=metadata,
            now=now,
        )
        if amount == 0:
            return transaction, None

        batch = BonusBatch(
            customer_id=customer.id,
            amount_issued=amount,
            amount_remaining=amount,
            created_at=now,
            expires_at=expires_at,
            source_transaction_id=transaction.id,
        )
        self._db.add(batch)
        await self._db.flush()
        logger.debug(
            "Created bonus batch",
            customer_id=str(customer.id),
            batch_id=str(batch.id),
            amount=amount,
            expires_at=expires_at.isoformat(),
        )
        return transaction, batch

    async def quote_redemption(
        self,
        customer: Customer,
        purchase_amount: Any,
        cap_fraction: Any = None,
        *,
        now: datetime | None = None,
    ) -> RedemptionQuote:
        """Return the redemption ceiling for a purchase without spending anything."""

        purchase = _to_decimal(purchase_amount, "purchase_amount")
        fraction = _to_fraction(
            settings.redemption_cap_fraction if cap_fraction is None else cap_fraction,
            "cap_fraction",
        )
        now = now or datetime.now(timezone.utc)
        return await self._quote(customer.id, purchase, fraction, now)

    async def redeem(
        self,
        customer: Customer,
        purchase_amount: Any,
        requested_amount: Any,
        cap_fraction: Any = None,
        *,
        operator: Customer | None = None,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> RedemptionResult:
        """Spend up to ``requested_amount`` points, soonest-expiring batches first.

        The amount actually spent is capped by the purchase rule and by what
        the batches hold at debit time; a shortfall reduces ``spent`` rather
        than raising.
        """

        purchase = _to_decimal(purchase_amount, "purchase_amount")
        requested = _floor(_to_decimal(requested_amount, "requested_amount"))
        fraction = _to_fraction(
            settings.redemption_cap_fraction if cap_fraction is None else cap_fraction,
            "cap_fraction",
        )
        now = now or datetime.now(timezone.utc)

        async with atomic(self._db):
            await self._lock_customer(customer, now)
            quote = await self._quote(customer.id, purchase, fraction, now)
            target = min(requested, quote.max_spendable)
            debits = await self._debit_fifo(customer.id, target, now) if target > 0 else []
            spent = sum(debit.amount for debit in debits)

            entry_metadata: dict[str, Any] = {
                **(metadata or {}),
                "source": "cashier" if operator else "api",
                "requested": requested,
                "cap": quote.cap,
                "batches": [
                    {"batch_id": str(debit.batch_id), "amount": debit.amount} for debit in debits
                ],
            }
            transaction = await self.record_transaction(
                customer,
                kind=BonusTransactionKind.REDEMPTION,
                bonus_delta=-spent,
                purchase_amount=quote.purchase_amount,
                operator=operator,
                metadata=entry_metadata,
                now=now,
            )
            new_balance = await self._live_balance(customer.id, now)

        self._observability.record_redemption(requested=requested, spent=spent)
        if spent < target:
            logger.warning(
                "Redemption spent less than the quoted amount",
                customer_id=str(customer.id),
                target=target,
                spent=spent,
            )
        logger.info(
            "Redeemed bonus points",
            customer_id=str(customer.id),
            transaction_id=str(transaction.id),
            requested=requested,
            spent=spent,
            new_balance=new_balance,
        )
        return RedemptionResult(
            transaction=transaction,
            requested=requested,
            spent=spent,
            new_balance=new_balance,
            debits=debits,
        )

    async def record_transaction(
        self,
        customer: Customer,
        *,
        kind: BonusTransactionKind,
        bonus_delta: int,
        purchase_amount: int = 0,
        operator: Customer | None = None,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> BonusTransaction:
        """Append a transaction log entry. Never updated afterwards."""

        transaction = BonusTransaction(
            customer_id=customer.id,
            counterparty_id=operator.id if operator else None,
            kind=kind,
            purchase_amount=purchase_amount,
            bonus_delta=bonus_delta,
            metadata_json=metadata or {},
            created_at=now or datetime.now(timezone.utc),
        )
        self._db.add(transaction)
        await self._db.flush()
        return transaction

    async def reconcile(
        self, customer: Customer, *, now: datetime | None = None
    ) -> LedgerReconciliation:
        """Compare transaction log totals with the batch ledger."""

        now = now or datetime.now(timezone.utc)
        tx_stmt = select(
            func.coalesce(func.sum(BonusTransaction.bonus_delta), 0),
            func.coalesce(
                func.sum(
                    case(
                        (BonusTransaction.kind == BonusTransactionKind.ACCRUAL, BonusTransaction.bonus_delta),
                        else_=0,
                    )
                ),
                0,
            ),
            func.coalesce(
                func.sum(
                    case(
                        (BonusTransaction.kind == BonusTransactionKind.REDEMPTION, BonusTransaction.bonus_delta),
                        else_=0,
                    )
                ),
                0,
            ),
        ).where(BonusTransaction.customer_id == customer.id)
        transaction_total, accrued_total, redeemed_delta = (await self._db.execute(tx_stmt)).one()

        batch_stmt = select(
            func.coalesce(func.sum(BonusBatch.amount_issued), 0),
            func.coalesce(func.sum(BonusBatch.amount_remaining), 0),
        ).where(BonusBatch.customer_id == customer.id)
        issued_total, remaining_total = (await self._db.execute(batch_stmt)).one()

        return LedgerReconciliation(
            transaction_total=int(transaction_total),
            accrued_total=int(accrued_total),
            redeemed_total=-int(redeemed_delta),
            issued_total=int(issued_total),
            remaining_total=int(remaining_total),
            live_balance=await self._live_balance(customer.id, now),
        )

    async def _quote(
        self,
        customer_id: UUID,
        purchase: Decimal,
        fraction: Decimal,
        now: datetime,
    ) -> RedemptionQuote:
        balance = await self._live_balance(customer_id, now)
        cap = _floor(purchase * fraction)
        return RedemptionQuote(
            purchase_amount=_floor(purchase),
            balance=balance,
            cap=cap,
            max_spendable=max(min(cap, balance), 0),
        )

    async def _live_balance(self, customer_id: UUID, now: datetime) -> int:
        stmt = select(func.coalesce(func.sum(BonusBatch.amount_remaining), 0)).where(
            BonusBatch.customer_id == customer_id,
            BonusBatch.expires_at > now,
        )
        result = await self._db.execute(stmt)
        return max(int(result.scalar_one()), 0)

    async def _lock_customer(self, customer: Customer, now: datetime) -> None:
        """Serialize ledger writers for one customer.

        Touching the customer row takes a row lock on PostgreSQL and the
        database write lock on SQLite, held until commit.
        """

        await self._db.execute(
            update(Customer)
            .where(Customer.id == customer.id)
            .values(updated_at=now)
            .execution_options(synchronize_session=False)
        )

    async def _debit_fifo(self, customer_id: UUID, amount: int, now: datetime) -> list[BatchDebit]:
        debits: list[BatchDebit] = []
        outstanding = amount
        for _ in range(_MAX_DEBIT_PASSES):
            if outstanding <= 0:
                break
            stmt = (
                select(BonusBatch.id, BonusBatch.amount_remaining)
                .where(
                    BonusBatch.customer_id == customer_id,
                    BonusBatch.amount_remaining > 0,
                    BonusBatch.expires_at > now,
                )
                .order_by(BonusBatch.expires_at.asc(), BonusBatch.created_at.asc())
            )
            batches = (await self._db.execute(stmt)).all()
            if not batches:
                break

            conflicted = False
            for batch_id, remaining in batches:
                take = min(int(remaining), outstanding)
                debited = await self._db.execute(
                    update(BonusBatch)
                    .where(
                        BonusBatch.id == batch_id,
                        BonusBatch.amount_remaining >= take,
                        BonusBatch.expires_at > now,
                    )
                    .values(amount_remaining=BonusBatch.amount_remaining - take)
                    .execution_options(synchronize_session=False)
                )
                if debited.rowcount != 1:
                    logger.warning(
                        "Bonus batch changed during redemption, reloading",
                        customer_id=str(customer_id),
                        batch_id=str(batch_id),
                    )
                    conflicted = True
                    break
                debits.append(BatchDebit(batch_id=batch_id, amount=take))
                outstanding -= take
                if outstanding == 0:
                    break
            if not conflicted:
                break
        return debits

    async def _evict_expired(self, customer_id: UUID, now: datetime) -> int:
        """Zero out expired remainders. Storage hygiene only, never required."""

        stmt = select(BonusBatch.id).where(
            BonusBatch.customer_id == customer_id,
            BonusBatch.expires_at <= now,
            BonusBatch.amount_remaining > 0,
        )
        expired_ids = list((await self._db.execute(stmt)).scalars().all())
        if not expired_ids:
            return 0

        await self._db.execute(
            update(BonusBatch)
            .where(BonusBatch.id.in_(expired_ids), BonusBatch.expires_at <= now)
            .values(amount_remaining=0)
            .execution_options(synchronize_session=False)
        )
        logger.debug(
            "Evicted expired bonus batches",
            customer_id=str(customer_id),
            count=len(expired_ids),
        )
        return len(expired_ids)
