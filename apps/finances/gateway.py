"""Paystack-compatible payment gateway client.

Every call authenticates with the secret key as a bearer token and sends
JSON. Amounts cross the wire in minor units (kobo, cents). Responses have
the ``{"status": bool, "message": str, "data": {...}}`` envelope and this
module returns ``data``.

With ``DEBUG`` on, or when no secret key is configured, calls are emulated:
they succeed without leaving the process and log a warning. Emulated
verification reports ``amount=None`` so callers skip the amount check.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import uuid
from decimal import Decimal
from typing import Any

import requests
from django.conf import settings  # type: ignore

from shared.domain.value_objects import Money

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """A gateway call failed or returned an unsuccessful response."""

    def __init__(self, message: str, *, status_code: int | None = None, payload: Any = None):
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


def _secret_key() -> str:
    return getattr(settings, "PAYMENT_GATEWAY_SECRET_KEY", "") or ""


def is_emulated() -> bool:
    return bool(settings.DEBUG) or not _secret_key()


def to_minor_units(amount, currency: str = "NGN") -> int:
    return Money(amount=Decimal(str(amount)), currency=currency).to_minor_units()


def from_minor_units(value) -> Decimal | None:
    if value is None:
        return None
    return (Decimal(str(value)) / Decimal("100")).quantize(Decimal("0.01"))


def _request(method: str, path: str, payload: dict | None = None) -> dict:
    url = f"{settings.PAYMENT_GATEWAY_BASE_URL.rstrip('/')}/{path.lstrip('/')}"
    headers = {
        "Authorization": f"Bearer {_secret_key()}",
        "Content-Type": "application/json",
    }
    try:
        response = requests.request(
            method,
            url,
            json=payload,
            headers=headers,
            timeout=getattr(settings, "PAYMENT_GATEWAY_TIMEOUT", 30),
        )
    except requests.RequestException as exc:
        logger.error(f"Gateway {method} {path} failed: {exc}")
        raise PaymentGatewayError(f"Payment gateway unreachable: {exc}") from exc

    try:
        body = response.json()
    except ValueError:
        body = {}

    if response.status_code >= 400 or not body.get("status"):
        message = body.get("message") or f"HTTP {response.status_code}"
        logger.error(f"Gateway {method} {path} rejected: {message}")
        raise PaymentGatewayError(message, status_code=response.status_code, payload=body)

    return body.get("data") or {}


def initialize_transaction(
    *,
    email: str,
    amount,
    reference: str,
    currency: str = "NGN",
    metadata: dict | None = None,
) -> dict:
    """Start a checkout; returns ``authorization_url``, ``access_code`` and ``reference``."""
    if is_emulated():
        logger.warning(f"Emulating gateway initialize for {reference}")
        return {
            "authorization_url": f"{settings.FRONTEND_URL}/payments/emulated?reference={reference}",
            "access_code": f"emulated_{reference}",
            "reference": reference,
        }
    return _request(
        "POST",
        "/transaction/initialize",
        {
            "email": email,
            "amount": to_minor_units(amount, currency),
            "reference": reference,
            "currency": currency,
            "callback_url": settings.PAYMENT_GATEWAY_CALLBACK_URL,
            "metadata": metadata or {},
        },
    )


def verify_transaction(reference: str) -> dict:
    """
    Return the gateway's view of a transaction.

    ``status`` is the gateway's string (``success``, ``failed``, ``abandoned``)
    and ``amount`` is converted back to major units.
    """
    if is_emulated():
        logger.warning(f"Emulating gateway verify for {reference}")
        return {"status": "success", "reference": reference, "amount": None, "emulated": True}
    data = _request("GET", f"/transaction/verify/{reference}")
    data["amount"] = from_minor_units(data.get("amount"))
    return data


def refund_transaction(
    *,
    transaction_reference: str,
    amount,
    currency: str = "NGN",
    merchant_note: str = "",
) -> dict:
    if is_emulated():
        logger.warning(f"Emulating gateway refund of {amount} for {transaction_reference}")
        return {
            "status": "processed",
            "transaction_reference": transaction_reference,
            "amount": str(amount),
            "emulated": True,
        }
    return _request(
        "POST",
        "/refund",
        {
            "transaction": transaction_reference,
            "amount": to_minor_units(amount, currency),
            "currency": currency,
            "merchant_note": merchant_note,
        },
    )


def create_transfer_recipient(
    *,
    name: str,
    account_number: str,
    bank_code: str,
    currency: str = "NGN",
) -> dict:
    if is_emulated():
        logger.warning(f"Emulating transfer recipient for account ending {account_number[-4:]}")
        return {"recipient_code": f"RCP_emulated_{uuid.uuid4().hex[:12]}", "emulated": True}
    return _request(
        "POST",
        "/transferrecipient",
        {
            "type": "nuban",
            "name": name,
            "account_number": account_number,
            "bank_code": bank_code,
            "currency": currency,
        },
    )


def initiate_transfer(
    *,
    amount,
    recipient_code: str,
    reference: str,
    reason: str = "",
    currency: str = "NGN",
) -> dict:
    """Send a payout. The reference is stable per withdrawal so retries never pay twice."""
    if is_emulated():
        logger.warning(f"Emulating transfer {reference} of {amount}")
        return {
            "status": "success",
            "reference": reference,
            "transfer_code": f"TRF_emulated_{reference}",
            "emulated": True,
        }
    return _request(
        "POST",
        "/transfer",
        {
            "source": "balance",
            "amount": to_minor_units(amount, currency),
            "recipient": recipient_code,
            "reference": reference,
            "reason": reason,
            "currency": currency,
        },
    )


def verify_webhook_signature(raw_body: bytes, signature: str | None) -> bool:
    """Check the HMAC-SHA512 hex digest of the raw request body."""
    secret = _secret_key()
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature)
