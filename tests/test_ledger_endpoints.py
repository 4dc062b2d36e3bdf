from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from bonuswheel_api.core.settings import settings
from bonuswheel_api.models.customer import CustomerRoleEnum
from bonuswheel_api.models.wheel import Prize, WheelType
from bonuswheel_api.services.wheel import PrizeCatalog


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _seed(session_factory, make_customer, *, with_catalog: bool = True):
    async with session_factory() as session:
        if with_catalog:
            await PrizeCatalog(session).seed_default_catalog()
        customer = await make_customer(session)
        cashier = await make_customer(session, role=CustomerRoleEnum.CASHIER.value)
    return customer, cashier


@pytest.mark.asyncio
async def test_register_lookup_and_summary(app_with_db) -> None:
    app, _ = app_with_db
    payload = {
        "externalId": 9001,
        "firstName": "Anna",
        "lastName": "Petrova",
        "phone": "+7 (999) 123-00-01",
        "birthDate": "1999-03-15",
    }

    async with _client(app) as client:
        response = await client.post("/api/v1/customers", json=payload)
        assert response.status_code == 201
        body = response.json()
        assert body["phone"] == "+79991230001"
        assert body["role"] == "customer"

        duplicate = await client.post("/api/v1/customers", json=payload)
        assert duplicate.status_code == 409
        assert duplicate.json()["detail"]["code"] == "already_registered"

        lookup = await client.get("/api/v1/customers/lookup", params={"phone": "79991230001"})
        assert lookup.status_code == 200
        assert lookup.json()["externalId"] == 9001

        summary = await client.get("/api/v1/customers/9001")
        assert summary.status_code == 200
        summary_body = summary.json()
        assert summary_body["balance"] == 0
        assert summary_body["activeVouchers"] == []
        assert summary_body["welcomeUsed"] is False
        assert summary_body["birthdayAvailable"] is True


@pytest.mark.asyncio
async def test_accrual_quote_and_redemption_flow(app_with_db, make_customer) -> None:
    app, session_factory = app_with_db
    customer, cashier = await _seed(session_factory, make_customer, with_catalog=False)
    base = f"/api/v1/customers/{customer.external_id}"

    async with _client(app) as client:
        accrual = await client.post(
            f"{base}/accruals",
            json={"purchaseAmount": 2000, "operatorId": cashier.external_id},
        )
        assert accrual.status_code == 201
        accrual_body = accrual.json()
        assert accrual_body["bonusAmount"] == 100
        assert accrual_body["newBalance"] == 100
        assert accrual_body["transaction"]["kind"] == "accrual"
        assert accrual_body["transaction"]["operatorId"] == str(cashier.id)
        assert accrual_body["transaction"]["metadata"]["source"] == "cashier"
        assert accrual_body["batch"]["amountRemaining"] == 100

        quote = await client.post(f"{base}/redemptions/quote", json={"purchaseAmount": 100})
        assert quote.status_code == 200
        assert quote.json() == {"purchaseAmount": 100, "balance": 100, "cap": 30, "maxSpendable": 30}

        redemption = await client.post(
            f"{base}/redemptions",
            json={"purchaseAmount": 100, "requestedAmount": 50, "operatorId": cashier.external_id},
        )
        assert redemption.status_code == 201
        redemption_body = redemption.json()
        assert redemption_body["requested"] == 50
        assert redemption_body["spent"] == 30
        assert redemption_body["newBalance"] == 70
        assert redemption_body["transaction"]["bonusDelta"] == -30

        balance = await client.get(f"{base}/balance")
        assert balance.status_code == 200
        assert balance.json()["balance"] == 70
        assert [batch["amountRemaining"] for batch in balance.json()["batches"]] == [70]

        history = await client.get(f"{base}/transactions")
        assert [item["kind"] for item in history.json()] == ["redemption", "accrual"]

        redemptions_only = await client.get(f"{base}/transactions", params={"kind": "redemption"})
        assert [item["bonusDelta"] for item in redemptions_only.json()] == [-30]


@pytest.mark.asyncio
async def test_request_metadata_keeps_ledger_source(app_with_db, make_customer) -> None:
    app, session_factory = app_with_db
    customer, cashier = await _seed(session_factory, make_customer, with_catalog=False)

    async with _client(app) as client:
        response = await client.post(
            f"/api/v1/customers/{customer.external_id}/accruals",
            json={
                "purchaseAmount": 2000,
                "operatorId": cashier.external_id,
                "metadata": {"source": "wheel", "till": 3},
            },
        )

    assert response.status_code == 201
    metadata = response.json()["transaction"]["metadata"]
    assert metadata["source"] == "cashier"
    assert metadata["till"] == 3


@pytest.mark.asyncio
async def test_operator_must_be_staff(app_with_db, make_customer) -> None:
    app, session_factory = app_with_db
    customer, _ = await _seed(session_factory, make_customer, with_catalog=False)

    async with _client(app) as client:
        response = await client.post(
            f"/api/v1/customers/{customer.external_id}/accruals",
            json={"purchaseAmount": 500, "operatorId": customer.external_id},
        )

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "forbidden"


@pytest.mark.asyncio
async def test_negative_amounts_are_rejected(app_with_db, make_customer) -> None:
    app, session_factory = app_with_db
    customer, _ = await _seed(session_factory, make_customer, with_catalog=False)

    async with _client(app) as client:
        response = await client.post(
            f"/api/v1/customers/{customer.external_id}/redemptions",
            json={"purchaseAmount": 100, "requestedAmount": -1},
        )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_customer_returns_not_found(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.get("/api/v1/customers/424242/balance")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "not_found"


@pytest.mark.asyncio
async def test_operator_endpoints_require_api_key(app_with_db, make_customer, monkeypatch) -> None:
    app, session_factory = app_with_db
    customer, _ = await _seed(session_factory, make_customer, with_catalog=False)
    monkeypatch.setattr(settings, "operator_api_key", "counter-secret")
    url = f"/api/v1/customers/{customer.external_id}/accruals"

    async with _client(app) as client:
        missing = await client.post(url, json={"purchaseAmount": 100})
        assert missing.status_code == 401

        allowed = await client.post(
            url, json={"purchaseAmount": 100}, headers={"X-API-Key": "counter-secret"}
        )
        assert allowed.status_code == 201

        balance = await client.get(f"/api/v1/customers/{customer.external_id}/balance")
        assert balance.status_code == 200


@pytest.mark.asyncio
async def test_spin_once_then_conflict(app_with_db, make_customer) -> None:
    app, session_factory = app_with_db
    customer, _ = await _seed(session_factory, make_customer)
    base = f"/api/v1/customers/{customer.external_id}"

    async with _client(app) as client:
        before = await client.get(f"{base}/wheel")
        assert before.json() == {"welcome": True, "birthday": True, "welcomeUsed": False}

        spin = await client.post(f"{base}/wheel/spins", json={"wheelType": "welcome"})
        assert spin.status_code == 201
        body = spin.json()
        assert body["wheelType"] == "welcome"
        assert body["fulfillment"] in {"bonus", "voucher"}
        assert body["targetAngle"] >= 6 * 360
        if body["fulfillment"] == "bonus":
            assert body["bonusAmount"] == 100
            assert body["transactionId"] is not None
        else:
            assert body["voucherId"] is not None

        again = await client.post(f"{base}/wheel/spins", json={"wheelType": "welcome"})
        assert again.status_code == 409
        assert again.json()["detail"]["code"] == "already_spun"

        after = await client.get(f"{base}/wheel")
        assert after.json()["welcomeUsed"] is True


@pytest.mark.asyncio
async def test_spin_without_catalog_is_unavailable(app_with_db, make_customer) -> None:
    app, session_factory = app_with_db
    customer, _ = await _seed(session_factory, make_customer, with_catalog=False)

    async with _client(app) as client:
        response = await client.post(
            f"/api/v1/customers/{customer.external_id}/wheel/spins", json={"wheelType": "birthday"}
        )

    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "no_active_prizes"


@pytest.mark.asyncio
async def test_voucher_use_endpoint(app_with_db, make_customer) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        session.add(
            Prize(
                code="fruit_tea_free",
                title="Фруктовый чай бесплатно",
                wheel_type=WheelType.WELCOME.value,
                weight=10,
                expiry_days=14,
                position=0,
                is_active=True,
            )
        )
        await session.commit()
    customer, cashier = await _seed(session_factory, make_customer, with_catalog=False)
    base = f"/api/v1/customers/{customer.external_id}"

    async with _client(app) as client:
        spin = await client.post(f"{base}/wheel/spins", json={})
        assert spin.status_code == 201
        voucher_id = spin.json()["voucherId"]

        listed = await client.get(f"{base}/vouchers")
        assert [item["voucherId"] for item in listed.json()] == [voucher_id]
        assert listed.json()[0]["code"] == "fruit_tea_free"

        used = await client.post(
            f"/api/v1/vouchers/{voucher_id}/use", json={"operatorId": cashier.external_id}
        )
        assert used.status_code == 200
        assert used.json()["status"] == "used"
        assert used.json()["usedByOperatorId"] == str(cashier.id)

        again = await client.post(f"/api/v1/vouchers/{voucher_id}/use")
        assert again.status_code == 409
        assert again.json()["detail"]["code"] == "not_usable"

        missing = await client.post(f"/api/v1/vouchers/{uuid4()}/use")
        assert missing.status_code == 404

        listed_after = await client.get(f"{base}/vouchers")
        assert listed_after.json() == []


@pytest.mark.asyncio
async def test_wheel_catalog_endpoint(app_with_db, make_customer) -> None:
    app, session_factory = app_with_db
    await _seed(session_factory, make_customer)

    async with _client(app) as client:
        response = await client.get("/api/v1/wheel/birthday/prizes")
        assert response.status_code == 200
        prizes = response.json()
        assert len(prizes) == 9
        assert prizes[0]["code"] == "topping_free"
        assert sum(prize["weight"] for prize in prizes) == 100

        invalid = await client.get("/api/v1/wheel/anniversary/prizes")
        assert invalid.status_code == 422
