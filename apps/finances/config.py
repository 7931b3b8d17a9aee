"""Finance configuration.

``settings.FINANCE_CONFIG`` is merged onto ``DEFAULT_FINANCE_CONFIG`` and
``settings.CANCELLATION_POLICY`` onto ``DEFAULT_CANCELLATION_POLICY``, tier
by tier. Each merged config is validated; in strict mode (``FINANCE_CONFIG_STRICT``) an
invalid config raises ``FinanceConfigError``, otherwise a warning is logged
and the defaults are used instead.
"""

from __future__ import annotations

import copy
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from django.conf import settings  # type: ignore

from .domain.fees import quantize_money

logger = logging.getLogger(__name__)

MAX_COMMISSION_RATE = Decimal("0.25")
MAX_WITHDRAWAL_FEE_RATE = Decimal("0.05")

DEFAULT_FINANCE_CONFIG: dict[str, Any] = {
    "SERVICE_FEE_RATE": "0.02",
    "PLATFORM_FEE_RATE": "0.10",
    "COMMISSION_TIERS": [
        {"min": 0, "max": 500000, "rate": "0.10"},
        {"min": 500001, "max": 2000000, "rate": "0.07"},
        {"min": 2000001, "max": None, "rate": "0.05"},
    ],
    "MONTHLY_DISCOUNTS": [
        {"threshold": 5000000, "rate": "0.005"},
        {"threshold": 10000000, "rate": "0.01"},
        {"threshold": 20000000, "rate": "0.015"},
    ],
    "MAX_MONTHLY_DISCOUNT": "0.02",
    "WITHDRAWAL_FEE_RATE": "0.003",
    "WITHDRAWAL_FEE_CAP": "3000",
    "MIN_WITHDRAWAL_AMOUNT": "1000",
    "MAX_WITHDRAWAL_RETRIES": 3,
}

DEFAULT_CANCELLATION_POLICY: dict[str, Any] = {
    "EARLY_HOURS": 72,
    "MEDIUM_HOURS": 24,
    "TIERS": {
        "early": {"customer": "0.90", "realtor": "0.07", "platform": "0.03"},
        "medium": {"customer": "0.70", "realtor": "0.20", "platform": "0.10"},
        "late": {"customer": "0.00", "realtor": "0.80", "platform": "0.20"},
    },
}

CANCELLATION_TIERS = ("early", "medium", "late")
SHARE_PARTIES = ("customer", "realtor", "platform")


class FinanceConfigError(Exception):
    """Raised in strict mode when the finance configuration is invalid."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Invalid finance configuration: " + "; ".join(errors))


def _decimal(value) -> Decimal:
    return Decimal(str(value))


def validate_finance_config(config: dict[str, Any]) -> list[str]:
    """Return a list of human readable problems; empty when the config is valid."""
    errors: list[str] = []

    try:
        for key in ("SERVICE_FEE_RATE", "PLATFORM_FEE_RATE"):
            rate = _decimal(config[key])
            if not Decimal("0") <= rate <= MAX_COMMISSION_RATE:
                errors.append(f"{key} must be between 0 and {MAX_COMMISSION_RATE}.")

        tiers = config.get("COMMISSION_TIERS") or []
        if not tiers:
            errors.append("COMMISSION_TIERS must not be empty.")
        previous_max = None
        for index, tier in enumerate(tiers):
            tier_min = int(tier["min"])
            tier_max = tier.get("max")
            if index == 0 and tier_min != 0:
                errors.append("The first commission tier must start at 0.")
            if index > 0:
                if previous_max is None:
                    errors.append("Only the last commission tier may be open-ended.")
                elif tier_min != previous_max + 1:
                    errors.append(
                        f"Commission tier {index} must start at {previous_max + 1}, not {tier_min}."
                    )
            if tier_max is not None and int(tier_max) < tier_min:
                errors.append(f"Commission tier {index} has max below min.")
            rate = _decimal(tier["rate"])
            if not Decimal("0") <= rate <= MAX_COMMISSION_RATE:
                errors.append(f"Commission tier {index} rate must be between 0 and {MAX_COMMISSION_RATE}.")
            previous_max = int(tier_max) if tier_max is not None else None

        max_discount = _decimal(config["MAX_MONTHLY_DISCOUNT"])
        previous_threshold = None
        for index, discount in enumerate(config.get("MONTHLY_DISCOUNTS") or []):
            threshold = _decimal(discount["threshold"])
            if previous_threshold is not None and threshold <= previous_threshold:
                errors.append("MONTHLY_DISCOUNTS thresholds must be ascending.")
            previous_threshold = threshold
            rate = _decimal(discount["rate"])
            if not Decimal("0") <= rate <= max_discount:
                errors.append(f"Monthly discount {index} rate must be between 0 and {max_discount}.")

        withdrawal_rate = _decimal(config["WITHDRAWAL_FEE_RATE"])
        if not Decimal("0") <= withdrawal_rate <= MAX_WITHDRAWAL_FEE_RATE:
            errors.append(f"WITHDRAWAL_FEE_RATE must be between 0 and {MAX_WITHDRAWAL_FEE_RATE}.")
        if _decimal(config["WITHDRAWAL_FEE_CAP"]) < 0:
            errors.append("WITHDRAWAL_FEE_CAP cannot be negative.")
        if _decimal(config["MIN_WITHDRAWAL_AMOUNT"]) <= 0:
            errors.append("MIN_WITHDRAWAL_AMOUNT must be greater than 0.")
    except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
        errors.append(f"Malformed finance configuration: {exc!r}")

    return errors


def load_finance_config() -> dict[str, Any]:
    config = copy.deepcopy(DEFAULT_FINANCE_CONFIG)
    config.update(getattr(settings, "FINANCE_CONFIG", {}) or {})

    errors = validate_finance_config(config)
    if errors:
        if getattr(settings, "FINANCE_CONFIG_STRICT", False):
            raise FinanceConfigError(errors)
        logger.warning(f"Invalid FINANCE_CONFIG, falling back to defaults: {errors}")
        config = copy.deepcopy(DEFAULT_FINANCE_CONFIG)
    return config


def validate_cancellation_policy(policy: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    try:
        if int(policy["EARLY_HOURS"]) <= int(policy["MEDIUM_HOURS"]):
            errors.append("EARLY_HOURS must be greater than MEDIUM_HOURS.")
        if int(policy["MEDIUM_HOURS"]) < 0:
            errors.append("MEDIUM_HOURS cannot be negative.")
        for name in CANCELLATION_TIERS:
            shares = policy["TIERS"].get(name)
            if shares is None:
                errors.append(f"Missing cancellation tier '{name}'.")
                continue
            values = [_decimal(shares[party]) for party in SHARE_PARTIES]
            if any(value < 0 for value in values):
                errors.append(f"Shares of tier '{name}' cannot be negative.")
            total = sum(values, Decimal("0"))
            if total != Decimal("1"):
                errors.append(f"Shares of tier '{name}' sum to {total}, expected 1.")
    except (KeyError, TypeError, ValueError, AttributeError, InvalidOperation) as exc:
        errors.append(f"Malformed cancellation policy: {exc!r}")
    return errors


def _merged_cancellation_policy() -> dict[str, Any]:
    policy = copy.deepcopy(DEFAULT_CANCELLATION_POLICY)
    for key, value in (getattr(settings, "CANCELLATION_POLICY", {}) or {}).items():
        if key == "TIERS" and isinstance(value, dict):
            for name, shares in value.items():
                if isinstance(shares, dict):
                    policy["TIERS"][name] = {**policy["TIERS"].get(name, {}), **shares}
                else:
                    policy["TIERS"][name] = shares
        else:
            policy[key] = value
    return policy


def load_cancellation_policy() -> dict[str, Any]:
    policy = _merged_cancellation_policy()
    errors = validate_cancellation_policy(policy)
    if errors:
        if getattr(settings, "FINANCE_CONFIG_STRICT", False):
            raise FinanceConfigError(errors)
        logger.warning(f"Invalid CANCELLATION_POLICY, falling back to defaults: {errors}")
        policy = copy.deepcopy(DEFAULT_CANCELLATION_POLICY)
    return policy


def get_service_fee_rate() -> Decimal:
    return _decimal(load_finance_config()["SERVICE_FEE_RATE"])


def get_platform_fee_rate() -> Decimal:
    return _decimal(load_finance_config()["PLATFORM_FEE_RATE"])


def get_commission_tier_rate(monthly_volume, config: dict[str, Any] | None = None) -> Decimal:
    config = config or load_finance_config()
    volume = _decimal(monthly_volume)
    tiers = config["COMMISSION_TIERS"]
    for tier in tiers:
        upper = tier.get("max")
        if upper is None or volume <= _decimal(upper):
            return _decimal(tier["rate"])
    return _decimal(tiers[-1]["rate"])


def get_monthly_discount(monthly_volume, config: dict[str, Any] | None = None) -> Decimal:
    config = config or load_finance_config()
    volume = _decimal(monthly_volume)
    discount = Decimal("0")
    for entry in config.get("MONTHLY_DISCOUNTS") or []:
        if volume >= _decimal(entry["threshold"]):
            discount = _decimal(entry["rate"])
    return min(discount, _decimal(config["MAX_MONTHLY_DISCOUNT"]))


def get_effective_commission_rate(monthly_volume) -> Decimal:
    """Tier rate for the realtor's monthly volume, minus the volume discount, floored at 0."""
    config = load_finance_config()
    rate = get_commission_tier_rate(monthly_volume, config) - get_monthly_discount(monthly_volume, config)
    return max(rate, Decimal("0"))


def calculate_withdrawal_fee(amount) -> Decimal:
    config = load_finance_config()
    fee = quantize_money(_decimal(amount) * _decimal(config["WITHDRAWAL_FEE_RATE"]))
    return min(fee, quantize_money(config["WITHDRAWAL_FEE_CAP"]))


def get_min_withdrawal_amount() -> Decimal:
    return quantize_money(load_finance_config()["MIN_WITHDRAWAL_AMOUNT"])


def get_max_withdrawal_retries() -> int:
    return int(load_finance_config()["MAX_WITHDRAWAL_RETRIES"])


def describe_finance_config() -> dict[str, Any]:
    """Effective config plus validation errors of the configured overrides, for the admin API."""
    merged = copy.deepcopy(DEFAULT_FINANCE_CONFIG)
    merged.update(getattr(settings, "FINANCE_CONFIG", {}) or {})
    errors = validate_finance_config(merged)
    policy = _merged_cancellation_policy()
    policy_errors = validate_cancellation_policy(policy)
    return {
        "effective": merged if not errors else copy.deepcopy(DEFAULT_FINANCE_CONFIG),
        "cancellation_policy": policy if not policy_errors else copy.deepcopy(DEFAULT_CANCELLATION_POLICY),
        "errors": errors + policy_errors,
        "strict": bool(getattr(settings, "FINANCE_CONFIG_STRICT", False)),
    }
