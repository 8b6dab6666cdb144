"""
Tests for alert rule helpers — day arithmetic and tiering.

Covers:
  - days until ship (rounded up) / days since update (rounded down)
  - Payment priority tiers
  - Due-soon / overdue tier selection
  - Stuck thresholds per status
  - Low-stock priority
"""

from datetime import datetime, timedelta

from alerts.rules import (
    DUE_SOON,
    OVERDUE,
    classify_low_stock_priority,
    classify_payment_priority,
    classify_ship_tier,
    days_since,
    days_until,
    stuck_threshold_days,
)

NOW = datetime(2026, 3, 2, 12, 0, 0)


# ── Day arithmetic ─────────────────────────────────────────────────────


class TestDayArithmetic:
    def test_exact_days_until(self):
        assert days_until(NOW + timedelta(days=3), NOW) == 3

    def test_partial_day_rounds_up(self):
        assert days_until(NOW + timedelta(days=2, hours=1), NOW) == 3

    def test_ship_date_now_is_zero(self):
        assert days_until(NOW, NOW) == 0

    def test_past_ship_date_is_negative(self):
        assert days_until(NOW - timedelta(days=2), NOW) == -2

    def test_a_few_hours_past_rounds_toward_zero(self):
        assert days_until(NOW - timedelta(hours=5), NOW) == 0

    def test_days_since_rounds_down(self):
        assert days_since(NOW - timedelta(days=6, hours=23), NOW) == 6

    def test_days_since_exact(self):
        assert days_since(NOW - timedelta(days=7), NOW) == 7


# ── Payment tiers ──────────────────────────────────────────────────────


class TestPaymentPriority:
    def test_ship_date_today_is_high(self):
        assert classify_payment_priority(0) == "high"

    def test_past_due_is_high(self):
        assert classify_payment_priority(-4) == "high"

    def test_one_day_is_medium(self):
        assert classify_payment_priority(1) == "medium"

    def test_three_days_is_medium(self):
        assert classify_payment_priority(3) == "medium"

    def test_four_days_is_low(self):
        assert classify_payment_priority(4) == "low"

    def test_seven_days_is_low(self):
        assert classify_payment_priority(7) == "low"

    def test_eight_days_is_out_of_window(self):
        assert classify_payment_priority(8) is None


# ── Ship tiers ─────────────────────────────────────────────────────────


class TestShipTier:
    def test_within_three_days_is_due_soon(self):
        assert classify_ship_tier(3) is DUE_SOON
        assert classify_ship_tier(1) is DUE_SOON

    def test_past_is_overdue(self):
        assert classify_ship_tier(-1) is OVERDUE

    def test_day_zero_is_neither(self):
        assert classify_ship_tier(0) is None

    def test_far_out_is_neither(self):
        assert classify_ship_tier(4) is None


# ── Stuck thresholds ───────────────────────────────────────────────────


class TestStuckThresholds:
    def test_thresholds_per_status(self):
        assert stuck_threshold_days("received") == 7
        assert stuck_threshold_days("sentToFactory") == 14
        assert stuck_threshold_days("inProduction") == 21

    def test_delivered_never_applies(self):
        assert stuck_threshold_days("delivered") is None


# ── Low stock ──────────────────────────────────────────────────────────


class TestLowStockPriority:
    def test_half_threshold_is_high(self):
        assert classify_low_stock_priority(5, 10) == "high"

    def test_above_half_is_medium(self):
        assert classify_low_stock_priority(6, 10) == "medium"

    def test_zero_stock_is_high(self):
        assert classify_low_stock_priority(0, 10) == "high"
