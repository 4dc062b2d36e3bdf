import secrets

from fastapi import Header, HTTPException, status

from bonuswheel_api.core.settings import settings


async def require_operator_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    """Guard cashier-only routes. An empty ``OPERATOR_API_KEY`` leaves them open for local use."""

    expected = settings.operator_api_key
    if not expected:
        return

    if not secrets.compare_digest(x_api_key.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "invalid_api_key", "message": "Operator API key missing or invalid"},
        )
