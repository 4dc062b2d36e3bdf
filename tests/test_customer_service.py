from datetime import date

import pytest

from bonuswheel_api.core.settings import settings
from bonuswheel_api.models.customer import CustomerRoleEnum
from bonuswheel_api.services.customers import CustomerService, normalize_phone
from bonuswheel_api.services.errors import (
    CustomerAlreadyRegisteredError,
    CustomerNotFoundError,
    InvalidAmountError,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("+7 (999) 123-45-67", "+79991234567"),
        ("79991234567", "+79991234567"),
        (" 8 999 123 45 67 ", "+89991234567"),
    ],
)
def test_normalize_phone(raw: str, expected: str) -> None:
    assert normalize_phone(raw) == expected


def test_normalize_phone_requires_digits() -> None:
    with pytest.raises(InvalidAmountError):
        normalize_phone("call me")


@pytest.mark.asyncio
async def test_register_and_lookup_customer(session_factory) -> None:
    async with session_factory() as session:
        service = CustomerService(session)

        customer = await service.register_customer(
            external_id=555001,
            first_name=" Anna ",
            last_name="Petrova",
            phone="+7 (999) 000-11-22",
            birth_date=date(1999, 3, 15),
        )

        assert customer.first_name == "Anna"
        assert customer.phone == "+79990001122"
        assert customer.role == CustomerRoleEnum.CUSTOMER.value
        assert customer.is_staff is False

        found = await service.find_by_contact("79990001122")
        assert found.id == customer.id
        assert (await service.get_by_external_id(555001)).id == customer.id


@pytest.mark.asyncio
async def test_duplicate_registration_is_rejected(session_factory) -> None:
    async with session_factory() as session:
        service = CustomerService(session)
        await service.register_customer(
            external_id=555002, first_name="Ivan", last_name="Ivanov", phone="+79990002233"
        )

        with pytest.raises(CustomerAlreadyRegisteredError):
            await service.register_customer(
                external_id=555003, first_name="Other", last_name="Person", phone="7 (999) 000-22-33"
            )
        with pytest.raises(CustomerAlreadyRegisteredError):
            await service.register_customer(
                external_id=555002, first_name="Ivan", last_name="Ivanov", phone="+79990009999"
            )


@pytest.mark.asyncio
async def test_staff_ids_register_as_cashiers(session_factory, monkeypatch) -> None:
    monkeypatch.setattr(settings, "staff_external_ids", [777])
    async with session_factory() as session:
        cashier = await CustomerService(session).register_customer(
            external_id=777, first_name="Kira", last_name="Cash", phone="+79995550000"
        )

    assert cashier.role == CustomerRoleEnum.CASHIER.value
    assert cashier.is_staff


@pytest.mark.asyncio
async def test_unknown_customers_raise_not_found(session_factory) -> None:
    async with session_factory() as session:
        service = CustomerService(session)

        with pytest.raises(CustomerNotFoundError):
            await service.get_by_external_id(404)
        with pytest.raises(CustomerNotFoundError):
            await service.find_by_contact("+70000000000")
