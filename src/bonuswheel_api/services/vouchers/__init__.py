"""Voucher service exports."""

from .voucher_service import ActiveVoucher, VoucherService  # noqa: F401
