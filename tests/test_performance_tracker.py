"""Tests for the rolling paradigm performance windows."""

from __future__ import annotations

import pytest

from hybrid_cognition.agents.performance_tracker import PerformanceTracker
from hybrid_cognition.agents.shared_types import ReasoningParadigm

RULE = ReasoningParadigm.RULE_BASED
PLANNING = ReasoningParadigm.PLANNING


class TestPerformanceTracker:
    def test_unused_paradigm_has_neutral_multiplier(self):
        tracker = PerformanceTracker([RULE])

        assert tracker.multiplier(RULE) == 0.75
        assert tracker.multiplier(PLANNING) == 0.75

    def test_record_updates_means_and_usage(self):
        tracker = PerformanceTracker([RULE])
        tracker.record(RULE, confidence=0.9, reasoning_time_ms=100.0)
        perf = tracker.record(RULE, confidence=0.5, reasoning_time_ms=300.0)

        assert perf.success_rate == pytest.approx(0.7)
        assert perf.average_time == pytest.approx(200.0)
        assert perf.usage_count == 2
        assert perf.last_used is not None
        assert tracker.multiplier(RULE) == pytest.approx(0.85)

    def test_window_keeps_most_recent_samples(self):
        tracker = PerformanceTracker([RULE], window=20)
        for _ in range(5):
            tracker.record(RULE, confidence=0.0, reasoning_time_ms=1.0)
        for _ in range(20):
            tracker.record(RULE, confidence=1.0, reasoning_time_ms=1.0)

        perf = tracker.get(RULE)
        assert len(perf.recent_performances) == 20
        assert perf.success_rate == 1.0
        assert perf.usage_count == 25

    def test_efficiency_decays_with_time(self):
        tracker = PerformanceTracker([RULE])
        tracker.record(RULE, confidence=0.5, reasoning_time_ms=5000.0)
        tracker.record(RULE, confidence=0.5, reasoning_time_ms=20000.0)

        fast, slow = tracker.get(RULE).recent_performances
        assert fast.efficiency == pytest.approx(0.5)
        assert slow.efficiency == 0.0

    def test_unregistered_paradigm_is_tracked_on_first_record(self):
        tracker = PerformanceTracker([RULE])
        tracker.record(PLANNING, confidence=0.4, reasoning_time_ms=10.0)

        assert tracker.get(PLANNING).usage_count == 1

    def test_summary(self):
        tracker = PerformanceTracker([RULE, PLANNING])
        tracker.record(RULE, confidence=0.8, reasoning_time_ms=12.0)
        summary = tracker.summary()

        assert set(summary) == {"rule_based", "planning"}
        assert summary["rule_based"]["usage_count"] == 1
        assert summary["rule_based"]["success_rate"] == pytest.approx(0.8)
        assert summary["planning"]["last_used"] is None
