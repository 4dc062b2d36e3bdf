"""Prize catalog queries and the default wheel seed."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bonuswheel_api.models.wheel import Prize, WheelType


@dataclass(frozen=True, slots=True)
class PrizeDefinition:
    code: str
    title: str
    weight: int
    expiry_days: int
    bonus_points: int = 0


DEFAULT_PRIZES: tuple[PrizeDefinition, ...] = (
    PrizeDefinition("topping_free", "Бесплатный топпинг", 20, 14),
    PrizeDefinition("size_up_s_m", "Увеличение размера S → M", 20, 14),
    PrizeDefinition("bonus_100", "100 бонусов", 10, 0, bonus_points=100),
    PrizeDefinition("cookie_free", "Crumble cookies бесплатно", 10, 14),
    PrizeDefinition("fruit_tea_free", "Фруктовый чай бесплатно", 10, 14),
    PrizeDefinition("lemonade_free", "Лимонад бесплатно", 10, 14),
    PrizeDefinition("milk_tea_free", "Молочный чай бесплатно", 10, 14),
    PrizeDefinition("milkshake_free", "Молочный коктейль бесплатно", 5, 14),
    PrizeDefinition("coffee_free", "Кофе бесплатно", 5, 14),
)


class PrizeCatalog:
    """Read access to the active prizes of each wheel."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def list_active_prizes(self, wheel_type: WheelType | str) -> list[Prize]:
        """Return active prizes in their stable enumeration order."""

        stmt = (
            select(Prize)
            .where(Prize.wheel_type == WheelType(wheel_type).value, Prize.is_active.is_(True))
            .order_by(Prize.position.asc(), Prize.code.asc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def seed_default_catalog(
        self,
        definitions: Sequence[PrizeDefinition] = DEFAULT_PRIZES,
        wheel_types: Sequence[WheelType] = (WheelType.WELCOME, WheelType.BIRTHDAY),
    ) -> int:
        """Insert missing prizes for every wheel. Existing codes are left untouched."""

        created = 0
        now = datetime.now(timezone.utc)
        for wheel_type in wheel_types:
            existing = await self._db.execute(
                select(Prize.code).where(Prize.wheel_type == wheel_type.value)
            )
            known_codes = set(existing.scalars().all())
            for position, definition in enumerate(definitions):
                if definition.code in known_codes:
                    continue
                self._db.add(
                    Prize(
                        code=definition.code,
                        title=definition.title,
                        wheel_type=wheel_type.value,
                        weight=definition.weight,
                        expiry_days=definition.expiry_days,
                        bonus_points=definition.bonus_points,
                        position=position,
                        is_active=True,
                        created_at=now,
                    )
                )
                created += 1

        if created:
            await self._db.commit()
            logger.info("Seeded prize catalog", created=created)
        return created


__all__ = ["DEFAULT_PRIZES", "PrizeCatalog", "PrizeDefinition"]
