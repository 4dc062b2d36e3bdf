from __future__ import annotations

from fastapi import HTTPException, status
from loguru import logger

from bonuswheel_api.services.errors import LedgerError


_STATUS_BY_CODE = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "already_spun": status.HTTP_409_CONFLICT,
    "already_registered": status.HTTP_409_CONFLICT,
    "not_usable": status.HTTP_409_CONFLICT,
    "invalid_amount": 422,
    "no_active_prizes": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(error: LedgerError) -> HTTPException:
    """Translate a domain error into a response carrying its stable ``code``."""

    status_code = _STATUS_BY_CODE.get(error.code, status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        logger.error("Ledger request failed", code=error.code, message=error.message)
    return HTTPException(
        status_code=status_code,
        detail={"code": error.code, "message": error.message},
    )
