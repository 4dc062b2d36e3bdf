"""Observability endpoints for ledger and wheel metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from bonuswheel_api.api.dependencies.security import require_operator_api_key
from bonuswheel_api.observability.ledger import get_ledger_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/ledger",
    dependencies=[Depends(require_operator_api_key)],
    summary="Ledger and wheel observability snapshot",
)
async def get_ledger_snapshot() -> dict[str, object]:
    return get_ledger_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} gauge",
        f"{name}{label_fragment} {value}",
    ]


_LEDGER_COUNTERS = (
    ("accruals", "bonuswheel_accruals_total", "Accrual transactions recorded"),
    ("points_accrued", "bonuswheel_points_accrued_total", "Points credited by accruals"),
    ("redemptions", "bonuswheel_redemptions_total", "Redemption transactions recorded"),
    ("points_redeemed", "bonuswheel_points_redeemed_total", "Points debited by redemptions"),
    ("redemptions_reduced", "bonuswheel_redemptions_reduced_total", "Redemptions that spent less than requested"),
    ("wheel_bonus", "bonuswheel_wheel_bonus_credits_total", "Wheel prizes fulfilled as bonus credits"),
    ("wheel_voucher", "bonuswheel_wheel_vouchers_issued_total", "Wheel prizes fulfilled as vouchers"),
)


@router.get(
    "/prometheus",
    dependencies=[Depends(require_operator_api_key)],
    summary="Prometheus-formatted observability metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_ledger_store().snapshot()
    lines: list[str] = []

    for key, name, description in _LEDGER_COUNTERS:
        lines.extend(_format_metric(name, description, snapshot.ledger.get(key, 0)))

    for wheel_type, count in sorted(snapshot.spins.get("by_wheel", {}).items()):
        lines.extend(
            _format_metric(
                "bonuswheel_spins_total",
                "Wheel spins completed",
                count,
                labels={"wheel_type": wheel_type},
            )
        )
    for key, count in sorted(snapshot.spins.get("by_prize", {}).items()):
        wheel_type, _, prize_code = key.partition(":")
        lines.extend(
            _format_metric(
                "bonuswheel_prizes_won_total",
                "Prizes drawn per wheel",
                count,
                labels={"wheel_type": wheel_type, "prize_code": prize_code},
            )
        )
    for key, count in sorted(snapshot.spins.get("rejected", {}).items()):
        wheel_type, _, reason = key.partition(":")
        lines.extend(
            _format_metric(
                "bonuswheel_spins_rejected_total",
                "Spin attempts rejected",
                count,
                labels={"wheel_type": wheel_type, "reason": reason},
            )
        )
    for event, count in sorted(snapshot.vouchers.items()):
        lines.extend(
            _format_metric(
                "bonuswheel_voucher_events_total",
                "Voucher use attempts by outcome",
                count,
                labels={"event": event},
            )
        )

    body = "\n".join(lines) + "\n"
    return PlainTextResponse(content=body, media_type="text/plain; version=0.0.4")
