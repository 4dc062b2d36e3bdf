import random
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from bonuswheel_api.models.customer import CustomerRoleEnum
from bonuswheel_api.models.voucher import Voucher, VoucherStatus
from bonuswheel_api.models.wheel import Prize, WheelType
from bonuswheel_api.observability.ledger import get_ledger_store
from bonuswheel_api.services.errors import VoucherNotFoundError, VoucherNotUsableError
from bonuswheel_api.services.vouchers import VoucherService
from bonuswheel_api.services.wheel import WheelService


T0 = datetime(2025, 5, 10, 9, 30, tzinfo=timezone.utc)


async def _issue_voucher(session, customer, *, code="milk_tea_free", issued_at=T0, expiry_days=14):
    prize = Prize(
        code=code,
        title="Молочный чай бесплатно",
        wheel_type=WheelType.WELCOME.value,
        weight=10,
        expiry_days=expiry_days,
        position=0,
        is_active=True,
        created_at=issued_at,
    )
    session.add(prize)
    await session.flush()
    voucher = Voucher(
        customer_id=customer.id,
        prize_id=prize.id,
        status=VoucherStatus.ACTIVE,
        issued_at=issued_at,
        expires_at=issued_at + timedelta(days=expiry_days),
    )
    session.add(voucher)
    await session.commit()
    return voucher


@pytest.mark.asyncio
async def test_voucher_can_only_be_used_once(session_factory, make_customer) -> None:
    async with session_factory() as session:
        customer = await make_customer(session)
        cashier = await make_customer(session, role=CustomerRoleEnum.CASHIER.value)
        voucher = await _issue_voucher(session, customer)
        service = VoucherService(session)

        used = await service.use_voucher(voucher.id, cashier, now=T0 + timedelta(days=1))
        assert used.status == VoucherStatus.USED
        assert used.used_by_operator_id == cashier.id
        assert used.prize.code == "milk_tea_free"

        with pytest.raises(VoucherNotUsableError):
            await service.use_voucher(voucher.id, cashier, now=T0 + timedelta(days=1))

        assert get_ledger_store().snapshot().vouchers == {"used": 1, "rejected": 1}


@pytest.mark.asyncio
async def test_expired_voucher_is_unusable_and_hidden(session_factory, make_customer) -> None:
    async with session_factory() as session:
        customer = await make_customer(session)
        voucher = await _issue_voucher(session, customer, expiry_days=14)
        service = VoucherService(session)

        assert [item.voucher_id for item in await service.list_active_vouchers(customer, now=T0 + timedelta(days=13))] == [
            voucher.id
        ]
        assert await service.list_active_vouchers(customer, now=T0 + timedelta(days=14)) == []

        with pytest.raises(VoucherNotUsableError):
            await service.use_voucher(voucher.id, now=T0 + timedelta(days=15))

        stored = await service.get_voucher(voucher.id)
        assert stored.status == VoucherStatus.ACTIVE


@pytest.mark.asyncio
async def test_unknown_voucher_is_reported_as_not_found(session_factory) -> None:
    async with session_factory() as session:
        service = VoucherService(session)

        with pytest.raises(VoucherNotFoundError):
            await service.use_voucher(uuid4())
        with pytest.raises(VoucherNotFoundError):
            await service.get_voucher(uuid4())


@pytest.mark.asyncio
async def test_active_vouchers_are_listed_newest_first(session_factory, make_customer) -> None:
    async with session_factory() as session:
        customer = await make_customer(session)
        older = await _issue_voucher(session, customer, code="cookie_free", issued_at=T0)
        newer = await _issue_voucher(session, customer, code="coffee_free", issued_at=T0 + timedelta(days=2))

        vouchers = await VoucherService(session).list_active_vouchers(customer, now=T0 + timedelta(days=3))

        assert [item.voucher_id for item in vouchers] == [newer.id, older.id]
        assert [item.prize_code for item in vouchers] == ["coffee_free", "cookie_free"]


@pytest.mark.asyncio
async def test_wheel_voucher_round_trip(session_factory, make_customer) -> None:
    async with session_factory() as session:
        session.add(
            Prize(
                code="lemonade_free",
                title="Лимонад бесплатно",
                wheel_type=WheelType.WELCOME.value,
                weight=1,
                expiry_days=14,
                position=0,
                is_active=True,
                created_at=T0,
            )
        )
        await session.commit()
        customer = await make_customer(session)

        outcome = await WheelService(session, rng=random.Random(2)).spin(customer, WheelType.WELCOME, now=T0)
        service = VoucherService(session)

        active = await service.list_active_vouchers(customer, now=T0)
        assert [item.voucher_id for item in active] == [outcome.voucher.id]

        await service.use_voucher(outcome.voucher.id, now=T0 + timedelta(hours=1))
        assert await service.list_active_vouchers(customer, now=T0 + timedelta(hours=2)) == []
