"""Bonus ledger service exports."""

from .ledger_service import (  # noqa: F401
    AccrualResult,
    BatchDebit,
    LedgerReconciliation,
    LedgerService,
    RedemptionQuote,
    RedemptionResult,
)
