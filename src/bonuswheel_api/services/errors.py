"""Domain errors surfaced to API callers with a stable ``code``."""

from __future__ import annotations


class LedgerError(RuntimeError):
    """Base exception for recoverable bonus ledger and wheel failures."""

    code = "ledger_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CustomerNotFoundError(LedgerError):
    """Raised when a customer identifier or contact is unknown."""

    code = "not_found"


class CustomerAlreadyRegisteredError(LedgerError):
    """Raised when registering an identifier or phone that already exists."""

    code = "already_registered"


class VoucherNotFoundError(LedgerError):
    code = "not_found"


class VoucherNotUsableError(LedgerError):
    """Raised when a voucher is already used or past its expiry."""

    code = "not_usable"


class AlreadySpunError(LedgerError):
    """Raised when the eligibility key for a wheel already has a spin."""

    code = "already_spun"

    def __init__(self, wheel_type: str, *, year: int | None = None) -> None:
        message = f"Wheel '{wheel_type}' already spun"
        if year is not None:
            message = f"{message} in {year}"
        super().__init__(message)
        self.wheel_type = wheel_type
        self.year = year


class NoActivePrizesError(LedgerError):
    """Raised when a wheel has no active prizes configured."""

    code = "no_active_prizes"

    def __init__(self, wheel_type: str) -> None:
        super().__init__(f"No active prizes configured for wheel '{wheel_type}'")
        self.wheel_type = wheel_type


class InvalidAmountError(LedgerError, ValueError):
    code = "invalid_amount"


__all__ = [
    "AlreadySpunError",
    "CustomerAlreadyRegisteredError",
    "CustomerNotFoundError",
    "InvalidAmountError",
    "LedgerError",
    "NoActivePrizesError",
    "VoucherNotFoundError",
    "VoucherNotUsableError",
]
