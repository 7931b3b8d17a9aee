"""Realtor withdrawals from wallet to bank account.

Requested funds are locked (available -> pending) until the gateway transfer
succeeds, when they are settled out of the wallet, or until the request is
cancelled, when they return to the available balance. A failed transfer keeps
the funds locked so it can be retried with the same ``wd_<id>`` reference.
A transfer reported as paid after its request was cancelled is only flagged
with ``needs_reconciliation``.
"""

from __future__ import annotations

import logging

from django.db import transaction  # type: ignore
from django.utils import timezone  # type: ignore

from shared.application.uow import DjangoUnitOfWork

from . import gateway
from .config import calculate_withdrawal_fee, get_max_withdrawal_retries, get_min_withdrawal_amount
from .domain.events import WithdrawalCompleted, WithdrawalFailed
from .domain.fees import quantize_money
from .models import WalletTransaction, WithdrawalRequest
from .wallets import (
    credit_wallet,
    get_platform_wallet,
    get_realtor_wallet,
    lock_funds_for_withdrawal,
    release_locked_funds,
    settle_locked_funds,
)

logger = logging.getLogger(__name__)


class WithdrawalError(Exception):
    pass


def request_withdrawal(realtor, amount) -> WithdrawalRequest:
    amount = quantize_money(amount)
    if not (hasattr(realtor, "is_approved_realtor") and realtor.is_approved_realtor()):
        raise WithdrawalError("Only approved realtors can withdraw funds.")
    profile = realtor.realtor_profile
    if not profile.payout_recipient_code:
        raise WithdrawalError("Add a payout bank account before withdrawing.")
    minimum = get_min_withdrawal_amount()
    if amount < minimum:
        raise WithdrawalError(f"The minimum withdrawal is {minimum}.")

    fee = calculate_withdrawal_fee(amount)
    wallet = get_realtor_wallet(realtor)
    with transaction.atomic():
        withdrawal = WithdrawalRequest.objects.create(
            realtor=realtor,
            wallet=wallet,
            amount=amount,
            fee=fee,
            net_amount=amount - fee,
        )
        withdrawal.reference = f"wd_{withdrawal.pk}"
        withdrawal.save(update_fields=["reference", "updated_at"])
        lock_funds_for_withdrawal(wallet, amount, reference=withdrawal.reference)

    logger.info(f"Withdrawal {withdrawal.reference} requested by realtor {realtor.pk}: {amount} (fee {fee})")
    return withdrawal


def _flag_paid_after_cancel(withdrawal: WithdrawalRequest, transfer_code: str) -> WithdrawalRequest:
    """
    The gateway paid out a request whose funds were already released.

    Nothing is settled: the funds went back to the available balance on
    cancel, and settling now would consume money locked for other requests.
    """
    withdrawal.needs_reconciliation = True
    withdrawal.transfer_code = transfer_code or withdrawal.transfer_code
    withdrawal.failure_reason = "Transfer succeeded after the request was cancelled."
    withdrawal.save(update_fields=["needs_reconciliation", "transfer_code", "failure_reason", "updated_at"])
    logger.error(
        f"Withdrawal {withdrawal.reference} was cancelled but the gateway paid {withdrawal.net_amount}; "
        f"wallet {withdrawal.wallet_id} needs manual reconciliation"
    )
    return withdrawal


def _complete(withdrawal: WithdrawalRequest, transfer_code: str = "") -> WithdrawalRequest:
    with DjangoUnitOfWork() as uow:
        locked = WithdrawalRequest.objects.select_for_update().get(pk=withdrawal.pk)
        if locked.status == WithdrawalRequest.Status.COMPLETED:
            return locked
        if locked.status == WithdrawalRequest.Status.CANCELLED:
            return _flag_paid_after_cancel(locked, transfer_code)
        settle_locked_funds(
            locked.wallet,
            locked.amount,
            reference=locked.reference,
            metadata={"fee": str(locked.fee), "net_amount": str(locked.net_amount)},
        )
        if locked.fee > 0:
            credit_wallet(
                get_platform_wallet(),
                locked.fee,
                source=WalletTransaction.Source.WITHDRAWAL,
                reference=f"{locked.reference}:fee",
            )
        locked.status = WithdrawalRequest.Status.COMPLETED
        locked.transfer_code = transfer_code or locked.transfer_code
        locked.failure_reason = ""
        locked.processed_at = timezone.now()
        locked.save(update_fields=["status", "transfer_code", "failure_reason", "processed_at", "updated_at"])
        uow.add_event(
            WithdrawalCompleted(
                aggregate_id=locked.pk,
                withdrawal_id=locked.pk,
                realtor_id=locked.realtor_id,
                net_amount=locked.net_amount,
            )
        )
    logger.info(f"Withdrawal {locked.reference} completed")
    return locked


def _fail(withdrawal: WithdrawalRequest, reason: str) -> WithdrawalRequest:
    with DjangoUnitOfWork() as uow:
        locked = WithdrawalRequest.objects.select_for_update().get(pk=withdrawal.pk)
        if locked.status in (WithdrawalRequest.Status.COMPLETED, WithdrawalRequest.Status.CANCELLED):
            return locked
        locked.status = WithdrawalRequest.Status.FAILED
        locked.failure_reason = reason
        locked.retry_count += 1
        locked.processed_at = timezone.now()
        locked.save(update_fields=["status", "failure_reason", "retry_count", "processed_at", "updated_at"])
        uow.add_event(
            WithdrawalFailed(
                aggregate_id=locked.pk,
                withdrawal_id=locked.pk,
                realtor_id=locked.realtor_id,
                reason=reason,
            )
        )
    logger.warning(f"Withdrawal {locked.reference} failed (attempt {locked.retry_count}): {reason}")
    return locked


def process_withdrawal(withdrawal: WithdrawalRequest) -> WithdrawalRequest:
    """Send the transfer. Completed and cancelled requests are returned unchanged."""
    with transaction.atomic():
        locked = WithdrawalRequest.objects.select_for_update().get(pk=withdrawal.pk)
        if locked.status in (
            WithdrawalRequest.Status.COMPLETED,
            WithdrawalRequest.Status.CANCELLED,
            WithdrawalRequest.Status.PROCESSING,
        ):
            logger.warning(f"Withdrawal {locked.reference} is {locked.status}; skipping")
            return locked
        locked.status = WithdrawalRequest.Status.PROCESSING
        locked.save(update_fields=["status", "updated_at"])

    profile = locked.realtor.realtor_profile
    try:
        response = gateway.initiate_transfer(
            amount=locked.net_amount,
            recipient_code=profile.payout_recipient_code,
            reference=locked.reference,
            reason=f"Stayza payout {locked.reference}",
            currency=locked.wallet.currency,
        )
    except gateway.PaymentGatewayError as exc:
        return _fail(locked, str(exc))

    transfer_status = response.get("status", "")
    if transfer_status == "success":
        return _complete(locked, response.get("transfer_code", ""))
    if transfer_status in ("failed", "reversed"):
        return _fail(locked, f"Transfer {transfer_status}")

    # Pending or OTP: the transfer webhook finishes it
    WithdrawalRequest.objects.filter(pk=locked.pk).update(transfer_code=response.get("transfer_code", ""))
    locked.refresh_from_db()
    logger.info(f"Withdrawal {locked.reference} submitted, gateway status {transfer_status}")
    return locked


def cancel_withdrawal(withdrawal: WithdrawalRequest, *, by_admin: bool = False) -> WithdrawalRequest:
    allowed = (WithdrawalRequest.Status.PENDING, WithdrawalRequest.Status.FAILED)
    if by_admin:
        allowed = allowed + (WithdrawalRequest.Status.PROCESSING,)
    with transaction.atomic():
        locked = WithdrawalRequest.objects.select_for_update().get(pk=withdrawal.pk)
        if locked.status not in allowed:
            raise WithdrawalError(f"A {locked.status} withdrawal cannot be cancelled.")
        release_locked_funds(locked.wallet, locked.amount, reference=locked.reference)
        locked.status = WithdrawalRequest.Status.CANCELLED
        locked.save(update_fields=["status", "updated_at"])
    logger.info(f"Withdrawal {locked.reference} cancelled")
    return locked


def retry_failed_withdrawals() -> dict:
    max_retries = get_max_withdrawal_retries()
    result = {"retried": 0, "completed": 0, "failed": 0}
    for withdrawal in WithdrawalRequest.objects.filter(
        status=WithdrawalRequest.Status.FAILED,
        retry_count__lt=max_retries,
    ).select_related("realtor", "realtor__realtor_profile", "wallet"):
        result["retried"] += 1
        try:
            processed = process_withdrawal(withdrawal)
        except Exception as exc:
            logger.error(f"Retry of withdrawal {withdrawal.reference} crashed: {exc}", exc_info=True)
            result["failed"] += 1
            continue
        if processed.status == WithdrawalRequest.Status.COMPLETED:
            result["completed"] += 1
        elif processed.status == WithdrawalRequest.Status.FAILED:
            result["failed"] += 1
    return result


def handle_transfer_event(event: str, reference: str, data: dict) -> bool:
    withdrawal = WithdrawalRequest.objects.filter(reference=reference).first()
    if withdrawal is None:
        logger.warning(f"Transfer webhook {event} for unknown reference {reference}")
        return False
    if event == "transfer.success":
        _complete(withdrawal, data.get("transfer_code", ""))
    elif event in ("transfer.failed", "transfer.reversed"):
        _fail(withdrawal, data.get("reason") or event)
    else:
        return False
    return True
