"""Tests for the Bayesian network and the probabilistic engine."""

from __future__ import annotations

import pytest

from hybrid_cognition.agents.shared_types import (
    ActionCategory,
    AgentEvent,
    AgentStateVector,
    Decision,
    ThoughtContext,
)
from hybrid_cognition.config import ProbabilisticConfig
from hybrid_cognition.exceptions import ConfigurationError, NoViableOptionError
from hybrid_cognition.reasoning.bayesian_network import (
    BayesianNetwork,
    BayesianNode,
    ProbabilisticEngine,
    build_default_network,
    classify_message,
)


def _node(node_id, parents=None, children=None, cpt=None):
    return BayesianNode(
        id=node_id,
        name=node_id,
        states=["true", "false"],
        parents=list(parents or []),
        children=list(children or []),
        conditional_probabilities=dict(cpt or {}),
    )


class TestNetworkStructure:
    """Graph maintenance."""

    def test_default_network_is_consistent(self):
        network = build_default_network()

        assert len(network.nodes) == 8
        assert network.is_consistent()
        assert network.nodes["context_clear"].children == ["should_respond", "confidence_level"]
        assert network.nodes["should_respond"].parents == ["context_clear", "message_type"]

    def test_add_node_links_both_directions(self):
        network = BayesianNetwork()
        network.add_node(_node("child", parents=["parent"]))
        network.add_node(_node("parent"))

        assert network.nodes["parent"].children == ["child"]
        assert network.is_consistent()

    def test_add_edge_keeps_lists_in_sync(self):
        network = BayesianNetwork()
        network.add_node(_node("a"))
        network.add_node(_node("b"))
        network.add_edge("a", "b")

        assert network.nodes["a"].children == ["b"]
        assert network.nodes["b"].parents == ["a"]
        assert network.topological_order() == ["a", "b"]

    def test_add_edge_rejects_cycle(self):
        network = BayesianNetwork()
        for node_id in ("a", "b", "c"):
            network.add_node(_node(node_id))
        network.add_edge("a", "b")
        network.add_edge("b", "c")

        with pytest.raises(ConfigurationError):
            network.add_edge("c", "a")
        with pytest.raises(ConfigurationError):
            network.add_edge("a", "a")
        assert network.nodes["a"].parents == []

    def test_add_node_rejects_cycle_and_rolls_back(self):
        network = BayesianNetwork()
        network.add_node(_node("a", children=["b"]))
        network.add_node(_node("b"))

        with pytest.raises(ConfigurationError):
            network.add_node(_node("c", parents=["b"], children=["a"]))

        assert "c" not in network.nodes
        assert network.nodes["b"].children == []
        assert network.nodes["a"].parents == []
        assert network.is_consistent()

    def test_duplicate_node_and_unknown_edge(self):
        network = BayesianNetwork()
        network.add_node(_node("a"))

        with pytest.raises(ConfigurationError):
            network.add_node(_node("a"))
        with pytest.raises(ConfigurationError):
            network.add_edge("a", "ghost")


class TestInference:
    """query() semantics."""

    def test_question_with_clear_context_should_respond(self):
        """Observed question + clear context reads the 0.9 CPT entry."""
        probabilities = build_default_network().query({"message_type": "question", "context_clear": "true"})

        assert probabilities["should_respond"] >= 0.9
        assert probabilities["message_type"] == 1.0
        assert probabilities["context_clear"] == 1.0

    def test_condition_key_follows_parent_order(self):
        network = build_default_network()
        key = network.condition_key("should_respond", {"message_type": "request", "context_clear": "false"})

        assert key == "context_clear=false,message_type=request"

    def test_missing_cpt_entry_defaults_to_half(self):
        probabilities = build_default_network().query({"message_type": "statement", "context_clear": "true"})

        assert probabilities["should_respond"] == 0.5

    def test_unobserved_parents_use_most_likely_state(self):
        probabilities = build_default_network().query({})

        # context_clear prior 0.7 -> "true"; confidence_level reads the "true" row
        assert probabilities["confidence_level"] == pytest.approx(0.8)
        # message_type prior 0.3 -> second state "statement"
        assert probabilities["response_urgency"] == pytest.approx(0.3)


class TestLearning:
    """CPT learning from samples."""

    def test_learning_replaces_entry_with_frequency(self):
        network = build_default_network()
        sample = {"context_clear": "true", "message_type": "question"}
        network.learn([
            {**sample, "should_respond": "true"},
            {**sample, "should_respond": "true"},
            {**sample, "should_respond": "true"},
            {**sample, "should_respond": "false"},
        ])

        assert network.query(sample)["should_respond"] == pytest.approx(0.75)

    def test_counts_accumulate_across_calls(self):
        network = build_default_network()
        sample = {"context_clear": "false", "message_type": "greeting"}
        network.learn([{**sample, "should_respond": "false"}])
        network.learn([{**sample, "should_respond": "true"}])

        assert network.query(sample)["should_respond"] == pytest.approx(0.5)
        network.learn([{**sample, "should_respond": "true"}])
        assert network.query(sample)["should_respond"] == pytest.approx(2 / 3)

    def test_prior_weight_smooths_toward_existing_value(self):
        network = build_default_network(prior_weight=2.0)
        sample = {"context_clear": "true", "message_type": "question"}
        network.learn([{**sample, "should_respond": "false"}, {**sample, "should_respond": "false"}])

        # (0 + 2 * 0.9) / (2 + 2)
        assert network.query(sample)["should_respond"] == pytest.approx(0.45)

    def test_samples_without_parents_are_skipped_for_child(self):
        network = build_default_network()
        network.learn([{"should_respond": "false"}])

        assert network.query({"context_clear": "true", "message_type": "question"})["should_respond"] == 0.9

    def test_export_and_load_round_trip_keeps_learning(self):
        network = build_default_network()
        sample = {"context_clear": "true", "message_type": "request"}
        network.learn([{**sample, "should_respond": "false"}])

        restored = build_default_network()
        restored.load_state(network.export_state())
        restored.learn([{**sample, "should_respond": "true"}])

        assert restored.query(sample)["should_respond"] == pytest.approx(0.5)


class TestProbabilisticEngine:
    """Engine surface."""

    @pytest.mark.asyncio
    async def test_question_produces_response_action(self, question_context):
        engine = ProbabilisticEngine()
        result = await engine.think(question_context)

        categories = [a.type for a in result.actions]
        assert ActionCategory.COMMUNICATION in categories
        response = next(a for a in result.actions if a.action == "probabilistic_response")
        assert response.parameters["confidence"] >= 0.9
        assert 0.0 <= result.confidence <= 1.0
        assert result.metadata["probabilities"]["should_respond"] == pytest.approx(0.9)

    def test_decisions_skip_observed_variables(self):
        engine = ProbabilisticEngine(ProbabilisticConfig(confidence_threshold=0.6))
        decisions = engine.make_decisions(
            {"context_clear": 1.0, "should_respond": 0.9, "response_quality": 0.3, "action_type": 0.5},
            {"context_clear": "true"},
        )

        assert decisions == [
            {"variable": "should_respond", "decision": True, "confidence": 0.9},
            {"variable": "response_quality", "decision": False, "confidence": pytest.approx(0.7)},
        ]

    def test_overall_confidence_is_mean_distance_from_half(self):
        assert ProbabilisticEngine.overall_confidence({"a": 1.0, "b": 0.5}) == pytest.approx(0.5)
        assert ProbabilisticEngine.overall_confidence({}) == 0.5

    @pytest.mark.parametrize("message,expected", [
        ("Is it raining?", "question"),
        ("Please send the report", "request"),
        ("hello friend", "greeting"),
        ("The build passed", "statement"),
    ])
    def test_classify_message(self, message, expected):
        assert classify_message(message) == expected

    @pytest.mark.asyncio
    async def test_plan_has_chained_steps(self, empty_context):
        plan = await ProbabilisticEngine().plan(empty_context, "answer the customer")

        assert plan.steps[0].action == "analyze_goal"
        assert len(plan.steps) >= 2
        for previous, step in zip(plan.steps, plan.steps[1:]):
            assert step.preconditions == [previous.id]

    @pytest.mark.asyncio
    async def test_decide_returns_an_input_option(self, empty_context):
        engine = ProbabilisticEngine()
        options = [
            Decision(id="a", description="Can you help?", confidence=0.9),
            Decision(id="b", description="ignore", confidence=0.1),
        ]

        chosen = await engine.decide(empty_context, options)

        assert chosen is options[0]
        with pytest.raises(NoViableOptionError):
            await engine.decide(empty_context, [])

    @pytest.mark.asyncio
    async def test_learning_from_experience_updates_cpt(self, make_experience):
        engine = ProbabilisticEngine()
        state = AgentStateVector(event_count=0.1, has_message=1.0, message_is_question=1.0)
        for _ in range(3):
            await engine.learn(make_experience(-0.8, state=state))

        evidence = {"context_clear": "true", "message_type": "question"}
        assert engine.network.query(evidence)["should_respond"] == pytest.approx(0.0)
        assert engine.get_stats()["samples_learned"] == 3

    def test_experience_to_sample(self, make_experience):
        state = AgentStateVector(event_count=0.0, has_message=1.0, message_is_question=0.0)
        sample = ProbabilisticEngine.experience_to_sample(
            make_experience(-0.5, action="rl_wait", category=ActionCategory.PROCESSING, state=state)
        )

        assert sample == {"context_clear": "false", "message_type": "statement", "should_respond": "true"}

    @pytest.mark.asyncio
    async def test_evidence_ignores_unknown_variables(self):
        context = ThoughtContext(events=[AgentEvent(type="chat", data={"message": "hi"})], goal="greet")
        evidence = ProbabilisticEngine.extract_evidence(context)

        assert evidence["message_type"] == "greeting"
        assert evidence["has_goal"] == "true"
        result = await ProbabilisticEngine().think(context)
        assert "has_goal" not in result.metadata["probabilities"]
