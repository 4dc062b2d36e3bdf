from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bonuswheel_api.db.session import get_session
from bonuswheel_api.models.wheel import Prize, WheelType


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "degraded", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(session: AsyncSession = Depends(get_session)) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as error:
        logger.error("Database readiness probe failed", error=str(error))
        components["database"] = ComponentStatus(status="error", detail="Database unreachable")
        return ReadinessPayload(status="error", components=components)
    components["database"] = ComponentStatus(status="ready")

    status: Literal["ready", "degraded", "error"] = "ready"
    for wheel_type in WheelType:
        count = await session.scalar(
            select(func.count(Prize.id)).where(
                Prize.wheel_type == wheel_type.value, Prize.is_active.is_(True)
            )
        )
        if count:
            components[f"wheel_{wheel_type.value}"] = ComponentStatus(
                status="ready", detail=f"{count} active prizes"
            )
        else:
            status = "degraded"
            components[f"wheel_{wheel_type.value}"] = ComponentStatus(
                status="degraded", detail="No active prizes configured"
            )

    return ReadinessPayload(status=status, components=components)
