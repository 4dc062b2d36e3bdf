"""Customer directory exports."""

from .customer_service import CustomerService, normalize_phone  # noqa: F401
