"""Path and body helpers that resolve customers by their external identifier."""

from __future__ import annotations

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from bonuswheel_api.db.session import get_session
from bonuswheel_api.models.customer import Customer
from bonuswheel_api.services.customers import CustomerService
from bonuswheel_api.services.errors import LedgerError

from .errors import to_http_exception


async def require_customer(
    external_id: int,
    db: AsyncSession = Depends(get_session),
) -> Customer:
    """Resolve the ``{external_id}`` path parameter to a customer."""

    try:
        return await CustomerService(db).get_by_external_id(external_id)
    except LedgerError as error:
        raise to_http_exception(error) from error


async def resolve_operator(db: AsyncSession, operator_external_id: int | None) -> Customer | None:
    """Load the staff member performing an operator action, if one was named."""

    if operator_external_id is None:
        return None
    try:
        operator = await CustomerService(db).get_by_external_id(operator_external_id)
    except LedgerError as error:
        raise to_http_exception(error) from error
    if not operator.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "forbidden", "message": "Operator is not a staff member"},
        )
    return operator
