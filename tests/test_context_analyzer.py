"""Tests for context feature extraction."""

from __future__ import annotations

import time

import pytest

from hybrid_cognition.agents.context_analyzer import ContextAnalyzer
from hybrid_cognition.agents.shared_types import AgentEvent, MemoryRecord, ThoughtContext


class TestContextAnalyzer:
    """Feature heuristics."""

    def test_all_features_within_unit_interval(self, question_context, goal_context, empty_context):
        """Every feature stays in [0, 1] for a range of contexts."""
        analyzer = ContextAnalyzer()
        busy = ThoughtContext(
            events=[AgentEvent(type=f"kind_{i}", data={"message": "urgent? maybe now"}) for i in range(30)],
            goal="first do this then that; finally " + "word " * 100,
            memories=[MemoryRecord(content="word") for _ in range(30)],
        )
        for context in (question_context, goal_context, empty_context, busy):
            for value in analyzer.analyze(context).as_dict().values():
                assert 0.0 <= value <= 1.0

    def test_question_scenario_features(self, question_context):
        """A single question raises rules_applicable and keeps uncertainty low."""
        analysis = ContextAnalyzer().analyze(question_context)

        assert analysis.rules_applicable == 0.6
        assert analysis.uncertainty == 0.3
        assert analysis.goal_oriented == 0.2
        assert analysis.complexity < 0.3

    def test_long_goal_is_complex_and_goal_oriented(self, goal_context):
        analysis = ContextAnalyzer().analyze(goal_context)

        assert analysis.goal_oriented == 0.8
        assert analysis.complexity > 0.7
        assert analysis.time_constraint == 0.0

    def test_urgent_words_raise_time_constraint(self):
        context = ThoughtContext(goal="reply to the client immediately")
        assert ContextAnalyzer().analyze(context).time_constraint == 0.9

    def test_uncertain_words_raise_probabilistic_nature(self):
        context = ThoughtContext(events=[AgentEvent(type="chat", data={"message": "maybe it will rain"})])
        assert ContextAnalyzer().analyze(context).probabilistic_nature == 0.8

    def test_command_event_type_raises_rules_applicable(self):
        context = ThoughtContext(events=[AgentEvent(type="system.command", data={})])
        assert ContextAnalyzer().analyze(context).rules_applicable == pytest.approx(0.7)

    def test_novel_event_types_raise_adaptation(self):
        context = ThoughtContext(events=[
            AgentEvent(type="sensor.unknown"),
            AgentEvent(type="chat"),
        ])
        analysis = ContextAnalyzer().analyze(context)
        assert analysis.adaptation_needed == pytest.approx(1.0)

    def test_relevant_memories_raise_knowledge(self):
        context = ThoughtContext(
            goal="summarize weather reports",
            memories=[MemoryRecord(content="weather reports are published daily")],
        )
        analysis = ContextAnalyzer().analyze(context)
        assert analysis.knowledge_available > 0.7

    def test_old_events_do_not_count_as_recent(self):
        now = time.time()
        context = ThoughtContext(events=[AgentEvent(type="chat", timestamp=now - 3600)])
        assert ContextAnalyzer().analyze(context, now=now).time_constraint == 0.0

    def test_to_key_buckets(self, question_context):
        key = ContextAnalyzer().analyze(question_context).to_key()

        assert "rules_applicable:m" in key
        assert "goal_oriented:l" in key
        assert key.count("|") == 7
