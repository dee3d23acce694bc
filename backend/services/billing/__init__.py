"""
Billing service - driver wallet ledger and subscription overtime.

This module handles:
    - Wallet debits/credits with append-only ledger entries
    - Hourly overtime charges during the post-expiry grace window
    - Grace window queries for subscription gating
"""

from .overtime import (
    OvertimeResult,
    GraceStatus,
    apply_overtime_billing,
    is_in_grace_period,
    drivers_with_billable_overtime,
    grace_period,
)
from .wallet import (
    get_or_create_wallet,
    get_wallet_balance,
    debit_wallet,
    credit_wallet,
)
from .exceptions import (
    InvalidWalletAmountError,
    GracePeriodEndedError,
)

__all__ = [
    # Overtime
    "OvertimeResult",
    "GraceStatus",
    "apply_overtime_billing",
    "is_in_grace_period",
    "drivers_with_billable_overtime",
    "grace_period",
    # Wallet
    "get_or_create_wallet",
    "get_wallet_balance",
    "debit_wallet",
    "credit_wallet",
    # Exceptions
    "InvalidWalletAmountError",
    "GracePeriodEndedError",
]
