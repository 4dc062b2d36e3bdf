"""Reward wheel service exports."""

from .catalog import DEFAULT_PRIZES, PrizeCatalog, PrizeDefinition  # noqa: F401
from .wheel_service import (  # noqa: F401
    FulfillmentKind,
    SpinOutcome,
    WheelService,
    compute_target_angle,
    draw_index,
)
