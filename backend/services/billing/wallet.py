"""
Driver wallet primitives.

Every balance change goes through ``debit_wallet`` / ``credit_wallet`` so that
the wallet row and its ledger entry are written together under a row lock.
"""

import logging
from decimal import Decimal
from typing import Optional, Tuple

from django.db import transaction

from drivers.models import DriverWallet, DriverWalletTransaction
from .exceptions import InvalidWalletAmountError

logger = logging.getLogger(__name__)


def get_or_create_wallet(driver_id: int, lock: bool = False) -> DriverWallet:
    """Find the driver's wallet, creating an empty one if needed."""
    qs = DriverWallet.objects.select_for_update() if lock else DriverWallet.objects
    wallet, created = qs.get_or_create(driver_id=driver_id)
    if created:
        logger.info("Created wallet %s for driver %s", wallet.id, driver_id)
    return wallet


def get_wallet_balance(driver_id: int) -> Decimal:
    """Current balance without creating a wallet (zero when none exists)."""
    balance = (
        DriverWallet.objects.filter(driver_id=driver_id)
        .values_list('balance', flat=True)
        .first()
    )
    return balance if balance is not None else Decimal('0')


def _apply_entry(
    driver_id: int,
    entry_type: str,
    amount,
    description: str,
    reference_type: Optional[str],
    reference_id,
) -> Tuple[DriverWallet, DriverWalletTransaction]:
    amount = Decimal(amount)
    if amount <= 0:
        raise InvalidWalletAmountError(f"Wallet {entry_type} amount must be positive, got {amount}")

    wallet = get_or_create_wallet(driver_id, lock=True)
    balance_before = wallet.balance
    if entry_type == 'debit':
        balance_after = balance_before - amount
    else:
        balance_after = balance_before + amount

    wallet.balance = balance_after
    wallet.save(update_fields=['balance', 'updated_at'])

    entry = DriverWalletTransaction.objects.create(
        wallet=wallet,
        type=entry_type,
        amount=amount,
        balance_before=balance_before,
        balance_after=balance_after,
        description=description,
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
    )
    logger.info(
        "Wallet %s %s %s for driver %s (%s -> %s)",
        wallet.id, entry_type, amount, driver_id, balance_before, balance_after,
    )
    return wallet, entry


@transaction.atomic
def debit_wallet(
    driver_id: int,
    amount,
    description: str = "",
    reference_type: Optional[str] = None,
    reference_id=None,
) -> Tuple[DriverWallet, DriverWalletTransaction]:
    """
    Take ``amount`` from the driver's wallet. The balance may go negative.

    Returns:
        (wallet, transaction) after the debit
    """
    return _apply_entry(driver_id, 'debit', amount, description, reference_type, reference_id)


@transaction.atomic
def credit_wallet(
    driver_id: int,
    amount,
    description: str = "",
    reference_type: Optional[str] = None,
    reference_id=None,
) -> Tuple[DriverWallet, DriverWalletTransaction]:
    """Add ``amount`` to the driver's wallet."""
    return _apply_entry(driver_id, 'credit', amount, description, reference_type, reference_id)
