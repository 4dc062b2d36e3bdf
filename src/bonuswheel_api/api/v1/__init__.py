from fastapi import APIRouter

from .endpoints import (
    customers,
    health,
    ledger,
    observability,
    vouchers,
    wheel,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(customers.router)
router.include_router(ledger.router)
router.include_router(wheel.router)
router.include_router(vouchers.router)
router.include_router(observability.router)
