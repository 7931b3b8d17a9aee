from __future__ import annotations

from decimal import Decimal

import pytest
from django.test import override_settings

from apps.finances.config import (
    DEFAULT_CANCELLATION_POLICY,
    DEFAULT_FINANCE_CONFIG,
    FinanceConfigError,
    calculate_withdrawal_fee,
    describe_finance_config,
    get_effective_commission_rate,
    load_cancellation_policy,
    load_finance_config,
    validate_cancellation_policy,
    validate_finance_config,
)
from apps.finances.domain.fees import calculate_fee_breakdown, split_room_fee
from apps.finances.domain.refund_policy import (
    RefundTier,
    calculate_cancellation_refund,
    determine_refund_tier,
)

BROKEN_TIERS = {
    "COMMISSION_TIERS": [
        {"min": 0, "max": 1000, "rate": "0.10"},
        {"min": 5000, "max": None, "rate": "0.05"},
    ]
}


class TestFeeBreakdown:
    def test_two_night_stay(self):
        fees = calculate_fee_breakdown(
            Decimal("10000"),
            2,
            Decimal("2000"),
            Decimal("5000"),
            service_fee_rate=Decimal("0.02"),
            platform_fee_rate=Decimal("0.10"),
        )

        assert fees.room_fee == Decimal("20000.00")
        assert fees.service_fee == Decimal("440.00")
        assert fees.platform_fee == Decimal("2000.00")
        assert fees.total == Decimal("27440.00")
        assert fees.room_fee_split_realtor == Decimal("18000.00")
        assert fees.as_dict()["realtor_payout"] == "20000.00"

    def test_service_fee_rounds_half_up(self):
        fees = calculate_fee_breakdown("33.33", 1, service_fee_rate="0.015", platform_fee_rate="0.10")
        # 33.33 * 0.015 = 0.49995
        assert fees.service_fee == Decimal("0.50")

    def test_zero_nights_is_rejected(self):
        with pytest.raises(ValueError):
            calculate_fee_breakdown(10000, 0, service_fee_rate="0.02", platform_fee_rate="0.10")

    def test_negative_amounts_are_rejected(self):
        with pytest.raises(ValueError, match="cleaning_fee"):
            calculate_fee_breakdown(10000, 1, -1, service_fee_rate="0.02", platform_fee_rate="0.10")

    def test_split_always_sums_to_room_fee(self):
        realtor, platform = split_room_fee(Decimal("333.33"), Decimal("0.07"))
        assert platform == Decimal("23.33")
        assert realtor + platform == Decimal("333.33")


class TestFinanceConfig:
    def test_defaults_are_valid(self):
        assert validate_finance_config(DEFAULT_FINANCE_CONFIG) == []

    def test_tier_gap_is_reported(self):
        config = {**DEFAULT_FINANCE_CONFIG, **BROKEN_TIERS}
        errors = validate_finance_config(config)
        assert any("must start at 1001" in error for error in errors)

    def test_missing_key_is_reported(self):
        config = dict(DEFAULT_FINANCE_CONFIG)
        del config["WITHDRAWAL_FEE_RATE"]
        assert validate_finance_config(config)

    @override_settings(FINANCE_CONFIG=BROKEN_TIERS, FINANCE_CONFIG_STRICT=True)
    def test_strict_mode_raises(self):
        with pytest.raises(FinanceConfigError) as excinfo:
            load_finance_config()
        assert excinfo.value.errors

    @override_settings(FINANCE_CONFIG=BROKEN_TIERS, FINANCE_CONFIG_STRICT=False)
    def test_lenient_mode_falls_back_to_defaults(self):
        config = load_finance_config()
        assert config["COMMISSION_TIERS"] == DEFAULT_FINANCE_CONFIG["COMMISSION_TIERS"]

        described = describe_finance_config()
        assert described["errors"]
        assert described["strict"] is False
        assert described["effective"]["COMMISSION_TIERS"] == DEFAULT_FINANCE_CONFIG["COMMISSION_TIERS"]

    @override_settings(FINANCE_CONFIG={"SERVICE_FEE_RATE": "0.03"})
    def test_overrides_are_merged(self):
        assert load_finance_config()["SERVICE_FEE_RATE"] == "0.03"
        assert load_finance_config()["PLATFORM_FEE_RATE"] == DEFAULT_FINANCE_CONFIG["PLATFORM_FEE_RATE"]

    @pytest.mark.parametrize(
        "volume, expected",
        [
            (0, Decimal("0.10")),
            (500000, Decimal("0.10")),
            (500001, Decimal("0.07")),
            (2000001, Decimal("0.05")),
            (5000000, Decimal("0.045")),
            (25000000, Decimal("0.035")),
        ],
    )
    def test_effective_commission_rate(self, volume, expected):
        assert get_effective_commission_rate(volume) == expected

    def test_withdrawal_fee_is_capped(self):
        assert calculate_withdrawal_fee(Decimal("10000")) == Decimal("30.00")
        assert calculate_withdrawal_fee(Decimal("5000000")) == Decimal("3000.00")


class TestRefundPolicy:
    @pytest.mark.parametrize(
        "hours, tier",
        [(100, RefundTier.EARLY), (72, RefundTier.EARLY), (71.9, RefundTier.MEDIUM), (24, RefundTier.MEDIUM), (2, RefundTier.LATE)],
    )
    def test_tier_boundaries(self, hours, tier):
        assert determine_refund_tier(hours) == tier

    def test_unpaid_booking_has_no_refund(self):
        assert determine_refund_tier(200, paid=False) == RefundTier.NONE
        refund = calculate_cancellation_refund(RefundTier.NONE, 20000, 2000, 440, 5000)
        assert refund.total_refund == Decimal("0.00")

    def test_early_tier_shares(self):
        refund = calculate_cancellation_refund(RefundTier.EARLY, 20000, 2000, 440, 5000)

        assert refund.customer_room_refund == Decimal("18000.00")
        assert refund.realtor_share == Decimal("1400.00")
        assert refund.platform_share == Decimal("600.00")
        assert refund.total_refund == Decimal("23000.00")

    def test_full_refund_returns_everything(self):
        refund = calculate_cancellation_refund(RefundTier.FULL, 20000, 2000, 440, 5000)
        assert refund.total_refund == Decimal("27440.00")
        assert refund.realtor_share == refund.platform_share == Decimal("0.00")

    def test_shares_cover_room_fee_after_rounding(self):
        refund = calculate_cancellation_refund(RefundTier.MEDIUM, "333.33", 0, 0, 0)
        total = refund.customer_room_refund + refund.realtor_share + refund.platform_share
        assert total == Decimal("333.33")

    def test_policy_validation(self):
        assert validate_cancellation_policy(DEFAULT_CANCELLATION_POLICY) == []
        broken = {
            "EARLY_HOURS": 24,
            "MEDIUM_HOURS": 24,
            "TIERS": {**DEFAULT_CANCELLATION_POLICY["TIERS"], "late": {"customer": "0", "realtor": "0.5", "platform": "0.2"}},
        }
        errors = validate_cancellation_policy(broken)
        assert len(errors) == 2

    @override_settings(CANCELLATION_POLICY={"TIERS": {"late": {"customer": "0.10", "realtor": "0.70"}}})
    def test_tier_overrides_merge_per_tier(self):
        policy = load_cancellation_policy()

        assert policy["TIERS"]["late"] == {"customer": "0.10", "realtor": "0.70", "platform": "0.20"}
        assert policy["TIERS"]["early"] == DEFAULT_CANCELLATION_POLICY["TIERS"]["early"]
        refund = calculate_cancellation_refund(RefundTier.LATE, 20000, 2000, 440, 5000)
        assert refund.customer_room_refund == Decimal("2000.00")
        assert refund.platform_share == Decimal("4000.00")

    @override_settings(
        CANCELLATION_POLICY={"TIERS": {"late": {"customer": "0.50"}}},
        FINANCE_CONFIG_STRICT=True,
    )
    def test_invalid_policy_raises_in_strict_mode(self):
        with pytest.raises(FinanceConfigError) as excinfo:
            determine_refund_tier(2)
        assert "late" in excinfo.value.errors[0]

    @override_settings(
        CANCELLATION_POLICY={"EARLY_HOURS": 12, "TIERS": {"early": {"customer": "1.5"}}},
        FINANCE_CONFIG_STRICT=False,
    )
    def test_invalid_policy_falls_back_to_defaults(self):
        assert load_cancellation_policy() == DEFAULT_CANCELLATION_POLICY
        assert determine_refund_tier(48) == RefundTier.MEDIUM

        described = describe_finance_config()
        assert len(described["errors"]) == 2
        assert described["cancellation_policy"] == DEFAULT_CANCELLATION_POLICY

    @override_settings(CANCELLATION_POLICY={"TIERS": {"early": "all of it"}})
    def test_malformed_policy_is_reported(self):
        assert validate_cancellation_policy(describe_finance_config()["cancellation_policy"]) == []
        assert any("Malformed" in error for error in describe_finance_config()["errors"])
