"""Wallet balance operations.

Every operation locks the wallet row for the rest of the surrounding
transaction and writes a ``WalletTransaction`` alongside the balance change.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from django.db import transaction  # type: ignore
from django.db.models import Sum  # type: ignore

from .domain.fees import quantize_money
from .models import Wallet, WalletTransaction

logger = logging.getLogger(__name__)


class InsufficientFundsError(Exception):
    def __init__(self, wallet_id: int, requested: Decimal, available: Decimal):
        self.wallet_id = wallet_id
        self.requested = requested
        self.available = available
        super().__init__(f"Wallet {wallet_id} has {available}, cannot move {requested}.")


def get_or_create_wallet(owner_type: str, user=None) -> Wallet:
    if owner_type == Wallet.OwnerType.PLATFORM:
        wallet, _ = Wallet.objects.get_or_create(owner_type=owner_type, user=None)
    else:
        wallet, _ = Wallet.objects.get_or_create(user=user, defaults={"owner_type": owner_type})
    return wallet


def get_platform_wallet() -> Wallet:
    return get_or_create_wallet(Wallet.OwnerType.PLATFORM)


def get_realtor_wallet(user) -> Wallet:
    return get_or_create_wallet(Wallet.OwnerType.REALTOR, user)


def _locked(wallet: Wallet) -> Wallet:
    return Wallet.objects.select_for_update().get(pk=wallet.pk)


def _positive(amount) -> Decimal:
    amount = quantize_money(amount)
    if amount <= 0:
        raise ValueError("Amount must be greater than zero.")
    return amount


@transaction.atomic
def credit_wallet(
    wallet: Wallet,
    amount,
    *,
    source: str,
    reference: str = "",
    booking=None,
    metadata: dict | None = None,
) -> WalletTransaction:
    amount = _positive(amount)
    locked = _locked(wallet)
    locked.balance_available += amount
    locked.save(update_fields=["balance_available", "updated_at"])
    wallet.balance_available = locked.balance_available
    logger.info(f"Wallet {locked.pk}: credit {amount} ({source}) ref={reference}")
    return WalletTransaction.objects.create(
        wallet=locked,
        type=WalletTransaction.Type.CREDIT,
        source=source,
        amount=amount,
        balance_after=locked.balance_available,
        reference=reference,
        booking=booking,
        metadata=metadata or {},
    )


@transaction.atomic
def debit_wallet(
    wallet: Wallet,
    amount,
    *,
    source: str,
    reference: str = "",
    booking=None,
    metadata: dict | None = None,
    allow_negative: bool = False,
) -> WalletTransaction:
    """Take money out of the available balance.

    ``allow_negative`` is for reversing an earlier credit the owner may
    already have withdrawn.
    """
    amount = _positive(amount)
    locked = _locked(wallet)
    if locked.balance_available < amount and not allow_negative:
        raise InsufficientFundsError(locked.pk, amount, locked.balance_available)
    locked.balance_available -= amount
    locked.save(update_fields=["balance_available", "updated_at"])
    wallet.balance_available = locked.balance_available
    logger.info(f"Wallet {locked.pk}: debit {amount} ({source}) ref={reference}")
    return WalletTransaction.objects.create(
        wallet=locked,
        type=WalletTransaction.Type.DEBIT,
        source=source,
        amount=amount,
        balance_after=locked.balance_available,
        reference=reference,
        booking=booking,
        metadata=metadata or {},
    )


@transaction.atomic
def lock_funds_for_withdrawal(wallet: Wallet, amount, *, reference: str = "") -> Wallet:
    """Move ``amount`` from available to pending."""
    amount = _positive(amount)
    locked = _locked(wallet)
    if locked.balance_available < amount:
        raise InsufficientFundsError(locked.pk, amount, locked.balance_available)
    locked.balance_available -= amount
    locked.balance_pending += amount
    locked.save(update_fields=["balance_available", "balance_pending", "updated_at"])
    logger.info(f"Wallet {locked.pk}: locked {amount} for withdrawal {reference}")
    return locked


@transaction.atomic
def release_locked_funds(wallet: Wallet, amount, *, reference: str = "") -> Wallet:
    """Return pending funds to the available balance."""
    amount = _positive(amount)
    locked = _locked(wallet)
    if locked.balance_pending < amount:
        raise InsufficientFundsError(locked.pk, amount, locked.balance_pending)
    locked.balance_pending -= amount
    locked.balance_available += amount
    locked.save(update_fields=["balance_available", "balance_pending", "updated_at"])
    logger.info(f"Wallet {locked.pk}: released {amount} from withdrawal {reference}")
    return locked


@transaction.atomic
def settle_locked_funds(wallet: Wallet, amount, *, reference: str = "", metadata: dict | None = None) -> WalletTransaction:
    """Pending funds leave the wallet for good."""
    amount = _positive(amount)
    locked = _locked(wallet)
    if locked.balance_pending < amount:
        raise InsufficientFundsError(locked.pk, amount, locked.balance_pending)
    locked.balance_pending -= amount
    locked.save(update_fields=["balance_pending", "updated_at"])
    logger.info(f"Wallet {locked.pk}: settled {amount} for withdrawal {reference}")
    return WalletTransaction.objects.create(
        wallet=locked,
        type=WalletTransaction.Type.DEBIT,
        source=WalletTransaction.Source.WITHDRAWAL,
        amount=amount,
        balance_after=locked.balance_available,
        reference=reference,
        metadata=metadata or {},
    )


def total_earned(wallet: Wallet) -> Decimal:
    total = wallet.transactions.filter(
        type=WalletTransaction.Type.CREDIT,
        status=WalletTransaction.Status.COMPLETED,
    ).aggregate(total=Sum("amount"))["total"]
    return total or Decimal("0.00")
