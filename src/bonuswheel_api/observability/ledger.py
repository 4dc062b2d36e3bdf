from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class LedgerSnapshot:
    ledger: Dict[str, int]
    spins: Dict[str, Dict[str, int]]
    vouchers: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "ledger": dict(self.ledger),
            "spins": {key: dict(value) for key, value in self.spins.items()},
            "vouchers": dict(self.vouchers),
        }


class LedgerObservabilityStore:
    """Collect bonus ledger and reward wheel telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._ledger: Dict[str, int] = defaultdict(int)
        self._spins_by_wheel: Dict[str, int] = defaultdict(int)
        self._spins_by_prize: Dict[str, int] = defaultdict(int)
        self._spins_rejected: Dict[str, int] = defaultdict(int)
        self._vouchers: Dict[str, int] = defaultdict(int)

    def record_accrual(self, points: int) -> None:
        with self._lock:
            self._ledger["accruals"] += 1
            self._ledger["points_accrued"] += points

    def record_redemption(self, *, requested: int, spent: int) -> None:
        with self._lock:
            self._ledger["redemptions"] += 1
            self._ledger["points_redeemed"] += spent
            if spent < requested:
                self._ledger["redemptions_reduced"] += 1

    def record_spin(self, wheel_type: str, prize_code: str, fulfillment: str) -> None:
        with self._lock:
            self._spins_by_wheel[wheel_type] += 1
            self._spins_by_prize[f"{wheel_type}:{prize_code}"] += 1
            self._ledger[f"wheel_{fulfillment}"] += 1

    def record_spin_rejected(self, wheel_type: str, reason: str) -> None:
        with self._lock:
            self._spins_rejected[f"{wheel_type}:{reason}"] += 1

    def record_voucher_event(self, event: str) -> None:
        with self._lock:
            self._vouchers[event] += 1

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            ledger = dict(self._ledger)
            spins = {
                "by_wheel": dict(self._spins_by_wheel),
                "by_prize": dict(self._spins_by_prize),
                "rejected": dict(self._spins_rejected),
            }
            vouchers = dict(self._vouchers)
        return LedgerSnapshot(ledger=ledger, spins=spins, vouchers=vouchers)

    def reset(self) -> None:
        with self._lock:
            self._ledger.clear()
            self._spins_by_wheel.clear()
            self._spins_by_prize.clear()
            self._spins_rejected.clear()
            self._vouchers.clear()


_STORE = LedgerObservabilityStore()


def get_ledger_store() -> LedgerObservabilityStore:
    return _STORE


__all__ = ["get_ledger_store", "LedgerObservabilityStore", "LedgerSnapshot"]
