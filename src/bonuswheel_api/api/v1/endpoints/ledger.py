"""Balance, accrual and redemption endpoints used by customers and cashiers."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from bonuswheel_api.api.dependencies.customers import require_customer, resolve_operator
from bonuswheel_api.api.dependencies.errors import to_http_exception
from bonuswheel_api.api.dependencies.security import require_operator_api_key
from bonuswheel_api.db.session import get_session
from bonuswheel_api.models.customer import Customer
from bonuswheel_api.models.ledger import BonusBatch, BonusTransaction, BonusTransactionKind
from bonuswheel_api.services.errors import LedgerError
from bonuswheel_api.services.ledger import LedgerService


router = APIRouter(prefix="/customers", tags=["Ledger"])


class BatchResponse(BaseModel):
    id: UUID
    amountIssued: int
    amountRemaining: int
    createdAt: datetime
    expiresAt: datetime


class BalanceResponse(BaseModel):
    customerId: UUID
    externalId: int
    balance: int
    batches: List[BatchResponse]


class TransactionResponse(BaseModel):
    id: UUID
    kind: str
    purchaseAmount: int
    bonusDelta: int
    operatorId: Optional[UUID]
    metadata: dict[str, Any]
    createdAt: datetime


class AccrualRequest(BaseModel):
    purchaseAmount: Decimal = Field(..., ge=0, description="Purchase total in whole currency units")
    rate: Optional[Decimal] = Field(None, ge=0, le=1, description="Override for the accrual rate")
    operatorId: Optional[int] = Field(None, description="External id of the cashier recording the sale")
    metadata: Optional[dict[str, Any]] = None


class AccrualResponse(BaseModel):
    transaction: TransactionResponse
    bonusAmount: int
    newBalance: int
    batch: Optional[BatchResponse]


class RedemptionQuoteRequest(BaseModel):
    purchaseAmount: Decimal = Field(..., ge=0)
    capFraction: Optional[Decimal] = Field(None, ge=0, le=1)


class RedemptionQuoteResponse(BaseModel):
    purchaseAmount: int
    balance: int
    cap: int
    maxSpendable: int


class RedemptionRequest(BaseModel):
    purchaseAmount: Decimal = Field(..., ge=0)
    requestedAmount: int = Field(..., ge=0, description="Points the customer asked to spend")
    capFraction: Optional[Decimal] = Field(None, ge=0, le=1)
    operatorId: Optional[int] = None
    metadata: Optional[dict[str, Any]] = None


class RedemptionResponse(BaseModel):
    transaction: TransactionResponse
    requested: int
    spent: int
    newBalance: int


def _serialize_batch(batch: BonusBatch) -> BatchResponse:
    return BatchResponse(
        id=batch.id,
        amountIssued=batch.amount_issued,
        amountRemaining=batch.amount_remaining,
        createdAt=batch.created_at,
        expiresAt=batch.expires_at,
    )


def serialize_transaction(transaction: BonusTransaction) -> TransactionResponse:
    kind = transaction.kind
    return TransactionResponse(
        id=transaction.id,
        kind=kind.value if isinstance(kind, BonusTransactionKind) else str(kind),
        purchaseAmount=int(transaction.purchase_amount or 0),
        bonusDelta=transaction.bonus_delta,
        operatorId=transaction.counterparty_id,
        metadata=dict(transaction.metadata_json or {}),
        createdAt=transaction.created_at,
    )


@router.get("/{external_id}/balance", response_model=BalanceResponse)
async def get_balance(
    customer: Customer = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> BalanceResponse:
    """Spendable balance plus the live batches, soonest expiry first."""

    service = LedgerService(db)
    balance = await service.get_balance(customer)
    batches = await service.list_batches(customer)
    return BalanceResponse(
        customerId=customer.id,
        externalId=customer.external_id,
        balance=balance,
        batches=[_serialize_batch(batch) for batch in batches],
    )


@router.get("/{external_id}/transactions", response_model=List[TransactionResponse])
async def list_transactions(
    customer: Customer = Depends(require_customer),
    limit: int = Query(50, ge=1, le=200),
    kind: Optional[BonusTransactionKind] = Query(None),
    db: AsyncSession = Depends(get_session),
) -> List[TransactionResponse]:
    service = LedgerService(db)
    transactions = await service.list_transactions(
        customer, limit=limit, kinds=[kind] if kind else None
    )
    return [serialize_transaction(transaction) for transaction in transactions]


@router.post(
    "/{external_id}/accruals",
    response_model=AccrualResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_operator_api_key)],
)
async def accrue_points(
    payload: AccrualRequest,
    customer: Customer = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> AccrualResponse:
    """Credit points for a purchase recorded at the counter."""

    operator = await resolve_operator(db, payload.operatorId)
    service = LedgerService(db)
    try:
        result = await service.accrue(
            customer,
            payload.purchaseAmount,
            payload.rate,
            operator=operator,
            metadata=payload.metadata,
        )
    except LedgerError as error:
        raise to_http_exception(error) from error
    return AccrualResponse(
        transaction=serialize_transaction(result.transaction),
        bonusAmount=result.bonus_amount,
        newBalance=result.new_balance,
        batch=_serialize_batch(result.batch) if result.batch else None,
    )


@router.post(
    "/{external_id}/redemptions/quote",
    response_model=RedemptionQuoteResponse,
    dependencies=[Depends(require_operator_api_key)],
)
async def quote_redemption(
    payload: RedemptionQuoteRequest,
    customer: Customer = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> RedemptionQuoteResponse:
    service = LedgerService(db)
    try:
        quote = await service.quote_redemption(customer, payload.purchaseAmount, payload.capFraction)
    except LedgerError as error:
        raise to_http_exception(error) from error
    return RedemptionQuoteResponse(
        purchaseAmount=quote.purchase_amount,
        balance=quote.balance,
        cap=quote.cap,
        maxSpendable=quote.max_spendable,
    )


@router.post(
    "/{external_id}/redemptions",
    response_model=RedemptionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_operator_api_key)],
)
async def redeem_points(
    payload: RedemptionRequest,
    customer: Customer = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    """Spend points against a purchase. ``spent`` may be lower than requested."""

    operator = await resolve_operator(db, payload.operatorId)
    service = LedgerService(db)
    try:
        result = await service.redeem(
            customer,
            payload.purchaseAmount,
            payload.requestedAmount,
            payload.capFraction,
            operator=operator,
            metadata=payload.metadata,
        )
    except LedgerError as error:
        raise to_http_exception(error) from error
    return RedemptionResponse(
        transaction=serialize_transaction(result.transaction),
        requested=result.requested,
        spent=result.spent,
        newBalance=result.new_balance,
    )
