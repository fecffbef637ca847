"""
Tests for plan classification.
"""

import pytest

from billing.services.plan_classifier import classify_plan, plan_for_price


class TestClassifyPlan:
    @pytest.mark.parametrize(
        "interval,expected",
        [
            ("year", "yearly"),
            ("month", "monthly"),
            (None, "monthly"),
            ("week", "monthly"),
            ("", "monthly"),
        ],
    )
    def test_interval_decides_without_metadata(self, interval, expected):
        assert classify_plan(interval) == expected

    def test_metadata_yearly_overrides_monthly_interval(self):
        assert classify_plan("month", "yearly") == "yearly"

    def test_metadata_monthly_overrides_yearly_interval(self):
        assert classify_plan("year", "monthly") == "monthly"

    def test_metadata_is_case_insensitive(self):
        assert classify_plan("month", "  YEARLY ") == "yearly"

    def test_unrecognised_metadata_is_ignored(self):
        assert classify_plan("year", "weekly") == "yearly"
        assert classify_plan("month", "premium") == "monthly"


class TestPlanForPrice:
    def test_mapped_price(self):
        assert plan_for_price("price_yearly") == "yearly"
        assert plan_for_price("price_monthly") == "monthly"

    def test_unmapped_price(self):
        assert plan_for_price("price_unknown") is None
        assert plan_for_price(None) is None

    def test_invalid_mapping_value_is_ignored(self, settings):
        settings.STRIPE_PRICE_PLAN_MAP = {"price_odd": "weekly"}
        assert plan_for_price("price_odd") is None
