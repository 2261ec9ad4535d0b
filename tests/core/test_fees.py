"""Unit Tests for the Fee Engine

Pure computation: task-count tiers, value tiers, min-of-both, rounding.
"""

from decimal import Decimal

import pytest

from taskescrow.core.exceptions import ValidationError
from taskescrow.core.fees import (
    DEFAULT_SCHEDULE,
    FeeSchedule,
    TaskTier,
    ValueTier,
    compute_fee,
)

# ============================================================================
# Tier Lookup
# ============================================================================


class TestTaskTiers:
    @pytest.mark.parametrize(
        "completed,expected",
        [
            (0, "20"),
            (11, "20"),
            (12, "15"),
            (49, "15"),
            (50, "12.5"),
            (199, "12.5"),
            (200, "12"),
            (10_000, "12"),
        ],
    )
    def test_step_boundaries(self, completed, expected):
        assert DEFAULT_SCHEDULE.task_tier_percent(completed) == Decimal(expected)


class TestValueTiers:
    @pytest.mark.parametrize(
        "gross,expected",
        [
            (1, None),
            (19_999, None),
            (20_000, "10"),
            (46_999, "10"),
            (47_000, "8"),
            (122_999, "8"),
            (123_000, "6.5"),
            (499_999, "6.5"),
            (500_000, "4"),
        ],
    )
    def test_band_boundaries(self, gross, expected):
        percent = DEFAULT_SCHEDULE.value_tier_percent(gross)
        assert percent == (Decimal(expected) if expected else None)


# ============================================================================
# compute_fee
# ============================================================================


class TestComputeFee:
    def test_value_tier_beats_task_tier(self):
        breakdown = compute_fee(50_000, 5)

        assert breakdown.task_tier_fee_percent == Decimal("20")
        assert breakdown.value_tier_fee_percent == Decimal("8")
        assert breakdown.applied_fee_percent == Decimal("8")
        assert breakdown.platform_fee == 4_000
        assert breakdown.net_payout == 46_000

    def test_custom_value_tiers(self):
        schedule = FeeSchedule(value_tiers=[ValueTier(min_amount=20_000, percent=Decimal("10"))])

        breakdown = compute_fee(50_000, 5, schedule)

        assert breakdown.applied_fee_percent == Decimal("10")
        assert breakdown.platform_fee == 5_000
        assert breakdown.net_payout == 45_000

    def test_small_amount_uses_task_tier(self):
        breakdown = compute_fee(1_000, 0)

        assert breakdown.value_tier_fee_percent is None
        assert breakdown.applied_fee_percent == Decimal("20")
        assert breakdown.platform_fee == 200

    def test_task_tier_beats_value_tier(self):
        breakdown = compute_fee(20_000, 300)

        assert breakdown.applied_fee_percent == Decimal("10")
        assert breakdown.platform_fee == 2_000

    def test_fractional_percent(self):
        breakdown = compute_fee(123_000, 60)

        assert breakdown.applied_fee_percent == Decimal("6.5")
        assert breakdown.platform_fee == 7_995
        assert breakdown.net_payout == 115_005

    def test_rounds_half_up(self):
        # 12.5% of 4 is exactly 0.5
        assert compute_fee(4, 100).platform_fee == 1
        # 12.5% of 12 is exactly 1.5
        assert compute_fee(12, 100).platform_fee == 2
        # 20% of 1002 is 200.4
        assert compute_fee(1_002, 0).platform_fee == 200

    def test_fee_plus_net_equals_gross(self):
        for gross in (1, 7, 99, 1_001, 19_999, 20_000, 47_123, 123_457, 500_001, 9_999_999):
            for completed in (0, 11, 12, 50, 199, 200, 5_000):
                b = compute_fee(gross, completed)
                assert b.platform_fee + b.net_payout == gross
                assert 0 <= b.platform_fee <= gross
                assert b.applied_fee_percent <= b.task_tier_fee_percent
                if b.value_tier_fee_percent is not None:
                    assert b.applied_fee_percent <= b.value_tier_fee_percent

    def test_more_experience_never_costs_more(self):
        for gross in (500, 25_000, 60_000, 200_000, 750_000):
            fees = [compute_fee(gross, n).platform_fee for n in range(0, 260, 3)]
            assert fees == sorted(fees, reverse=True)

    def test_to_dict_serializes_percents_as_strings(self):
        data = compute_fee(50_000, 5).to_dict()

        assert data == {
            "gross_amount": 50_000,
            "tasks_completed": 5,
            "task_tier_fee_percent": "20",
            "value_tier_fee_percent": "8",
            "applied_fee_percent": "8",
            "platform_fee": 4_000,
            "net_payout": 46_000,
        }

    @pytest.mark.parametrize("gross", [0, -1, 1.5, True, "100"])
    def test_rejects_bad_gross(self, gross):
        with pytest.raises(ValidationError):
            compute_fee(gross, 0)

    @pytest.mark.parametrize("completed", [-1, 2.0, None])
    def test_rejects_bad_completed_count(self, completed):
        with pytest.raises(ValidationError):
            compute_fee(1_000, completed)


# ============================================================================
# Schedule Validation
# ============================================================================


class TestFeeSchedule:
    def test_value_tiers_sorted_highest_first(self):
        schedule = FeeSchedule(
            value_tiers=[
                ValueTier(min_amount=20_000, percent=Decimal("10")),
                ValueTier(min_amount=500_000, percent=Decimal("4")),
            ]
        )
        assert [t.min_amount for t in schedule.value_tiers] == [500_000, 20_000]

    def test_requires_catch_all_last(self):
        with pytest.raises(ValueError):
            FeeSchedule(task_tiers=[TaskTier(below=10, percent=Decimal("20"))])

    def test_rejects_catch_all_in_the_middle(self):
        with pytest.raises(ValueError):
            FeeSchedule(
                task_tiers=[
                    TaskTier(below=None, percent=Decimal("20")),
                    TaskTier(below=None, percent=Decimal("10")),
                ]
            )

    def test_rejects_unordered_bounds(self):
        with pytest.raises(ValueError):
            FeeSchedule(
                task_tiers=[
                    TaskTier(below=50, percent=Decimal("20")),
                    TaskTier(below=12, percent=Decimal("15")),
                    TaskTier(below=None, percent=Decimal("12")),
                ]
            )

    def test_rejects_increasing_task_percent(self):
        with pytest.raises(ValueError):
            FeeSchedule(
                task_tiers=[
                    TaskTier(below=12, percent=Decimal("10")),
                    TaskTier(below=None, percent=Decimal("15")),
                ]
            )

    def test_rejects_percent_out_of_range(self):
        with pytest.raises(ValueError):
            FeeSchedule(task_tiers=[TaskTier(below=None, percent=Decimal("101"))])

    def test_rejects_value_percent_that_grows_with_threshold(self):
        with pytest.raises(ValueError):
            FeeSchedule(
                value_tiers=[
                    ValueTier(min_amount=20_000, percent=Decimal("5")),
                    ValueTier(min_amount=500_000, percent=Decimal("8")),
                ]
            )
