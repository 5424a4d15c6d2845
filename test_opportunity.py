"""
Tests for opportunity windows, urgency escalation and recommended actions.

Run with: pytest test_opportunity.py -v
"""

from datetime import timedelta

from conftest import NOW
from trend_intel.schemas.base import Urgency
from trend_intel.trends.opportunity import (
    URGENCY_RANK, base_urgency, bump_urgency, calculate_window, escalate, recommended_actions,
)


# ════════════════════════════════════════════════════════════════════
# Window arithmetic
# ════════════════════════════════════════════════════════════════════

class TestWindow:

    def test_bounds(self):
        peak = NOW + timedelta(days=3)
        window = calculate_window(peak, velocity=0, now=NOW)
        assert window.start == peak - timedelta(days=5)
        assert window.end == peak + timedelta(days=1)
        assert window.days_remaining == 4
        assert window.urgency == Urgency.MEDIUM

    def test_peak_today_is_critical(self):
        window = calculate_window(NOW, velocity=0, now=NOW)
        assert window.days_remaining == 1
        assert window.urgency == Urgency.CRITICAL

    def test_past_window_clamps_to_zero(self):
        window = calculate_window(NOW - timedelta(days=10), velocity=0, now=NOW)
        assert window.days_remaining == 0
        assert window.urgency == Urgency.CRITICAL

    def test_partial_days_floor(self):
        window = calculate_window(NOW + timedelta(days=2, hours=20), velocity=0, now=NOW)
        assert window.days_remaining == 3
        assert window.urgency == Urgency.HIGH

    def test_far_peak_is_low(self):
        window = calculate_window(NOW + timedelta(days=10), velocity=0, now=NOW)
        assert window.days_remaining == 11
        assert window.urgency == Urgency.LOW

    def test_base_urgency_thresholds(self):
        assert [base_urgency(d) for d in (0, 1, 2, 3, 4, 5, 6)] == [
            Urgency.CRITICAL, Urgency.CRITICAL, Urgency.HIGH, Urgency.HIGH,
            Urgency.MEDIUM, Urgency.MEDIUM, Urgency.LOW,
        ]


# ════════════════════════════════════════════════════════════════════
# Escalation
# ════════════════════════════════════════════════════════════════════

class TestEscalation:

    def test_high_velocity_bumps_one_level(self):
        window = calculate_window(NOW + timedelta(days=3), velocity=25, now=NOW)
        assert window.base_urgency == Urgency.MEDIUM
        assert window.urgency == Urgency.HIGH

    def test_threshold_is_exclusive(self):
        window = calculate_window(NOW + timedelta(days=10), velocity=20, now=NOW)
        assert window.urgency == Urgency.LOW

    def test_capped_at_critical(self):
        window = calculate_window(NOW, velocity=100, now=NOW)
        assert window.urgency == Urgency.CRITICAL
        assert bump_urgency(Urgency.CRITICAL) == Urgency.CRITICAL

    def test_idempotent(self):
        window = calculate_window(NOW + timedelta(days=10), velocity=0, now=NOW)
        once = escalate(window, 30)
        twice = escalate(once, 30)
        assert once.urgency == Urgency.MEDIUM
        assert twice == once

    def test_ladder(self):
        assert bump_urgency(Urgency.LOW) == Urgency.MEDIUM
        assert bump_urgency(Urgency.MEDIUM) == Urgency.HIGH
        assert bump_urgency(Urgency.HIGH) == Urgency.CRITICAL

    def test_rank_orders_most_urgent_first(self):
        ordered = sorted(Urgency, key=URGENCY_RANK.get)
        assert ordered == [Urgency.CRITICAL, Urgency.HIGH, Urgency.MEDIUM, Urgency.LOW]


# ════════════════════════════════════════════════════════════════════
# Recommended actions
# ════════════════════════════════════════════════════════════════════

class TestActions:

    def test_critical_with_core_service(self):
        actions = recommended_actions(Urgency.CRITICAL, {"core-service"})
        assert actions[0].startswith("URGENT")
        assert len(actions) == 4
        assert "core offerings" in actions[-1]

    def test_pillar_actions_in_stable_order(self):
        actions = recommended_actions(Urgency.LOW, {"technology", "sustainability"})
        assert actions[-2] == "Emphasize eco-friendly practices in content"
        assert actions[-1].startswith("Highlight tech innovations")

    def test_general_pillar_adds_nothing(self):
        assert len(recommended_actions(Urgency.MEDIUM, {"general"})) == 3
