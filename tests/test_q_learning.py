"""Tests for tabular Q-learning and the RL engine."""

from __future__ import annotations

import pytest

from hybrid_cognition.agents.shared_types import (
    ActionCategory,
    AgentAction,
    AgentEvent,
    AgentStateVector,
    AgentStatus,
    Decision,
    RewardSignal,
    RewardType,
    ThoughtContext,
)
from hybrid_cognition.config import LearningConfig
from hybrid_cognition.reasoning.q_learning import (
    QLearningAgent,
    RLEngine,
    StateRepresentation,
    action_key,
    shape_reward,
)


class TestQLearningAgent:
    """Update rule and action selection."""

    def test_repeated_update_converges_to_discounted_return(self):
        """Q(s,a) -> r / (1 - gamma) when s' == s and a is the only action."""
        agent = QLearningAgent(learning_rate=0.5, discount_factor=0.5, seed=0)
        for _ in range(200):
            agent.update("s", "a", 1.0, "s", ["a"])

        assert agent.get_q_value("s", "a") == pytest.approx(2.0, abs=1e-6)

    def test_terminal_update_does_not_bootstrap(self):
        agent = QLearningAgent(learning_rate=1.0, discount_factor=0.9)
        agent.q_table["next"] = {"a": 10.0}

        assert agent.update("s", "a", 1.0, "next", ["a"], done=True) == 1.0
        assert agent.update("t", "a", 1.0, "next", ["a"], done=False) == pytest.approx(10.0)

    def test_best_action_ties_go_to_first(self):
        agent = QLearningAgent()

        assert agent.best_action("unknown", ["respond", "analyze", "wait"]) == "respond"
        agent.q_table["s"] = {"analyze": 0.4, "wait": 0.4}
        assert agent.best_action("s", ["respond", "analyze", "wait"]) == "analyze"

    def test_select_action_greedy_and_exploring(self):
        actions = ["respond", "analyze", "plan"]
        greedy = QLearningAgent(exploration_rate=0.0, seed=1)
        greedy.q_table["s"] = {"plan": 1.0}
        explorer = QLearningAgent(exploration_rate=1.0, seed=1)

        assert greedy.select_action("s", actions) == ("plan", False)
        action, explored = explorer.select_action("s", actions)
        assert explored is True
        assert action in actions

    def test_seeded_exploration_is_reproducible(self):
        actions = ["respond", "analyze", "plan", "wait"]
        first = QLearningAgent(exploration_rate=1.0, seed=7)
        second = QLearningAgent(exploration_rate=1.0, seed=7)

        assert [first.select_action("s", actions) for _ in range(10)] == [
            second.select_action("s", actions) for _ in range(10)
        ]

    def test_exploration_decays_to_floor(self):
        agent = QLearningAgent(exploration_rate=0.5, min_exploration_rate=0.05, exploration_decay=0.5)
        for _ in range(20):
            agent.decay_exploration()

        assert agent.exploration_rate == 0.05

    def test_normalized_value(self):
        agent = QLearningAgent()
        actions = ["a", "b", "c"]

        assert agent.normalized_value("s", "a", actions) == 0.5
        agent.q_table["s"] = {"a": 1.0, "b": 0.0, "c": 0.5}
        assert agent.normalized_value("s", "a", actions) == 1.0
        assert agent.normalized_value("s", "c", actions) == 0.5
        assert agent.get_policy() == {"s": "a"}


class TestStateRepresentation:
    """Context discretization."""

    def test_from_context_and_key(self):
        context = ThoughtContext(
            events=[AgentEvent(type="chat", data={"message": "Can you check the logs?"})],
            goal="check logs",
            status=AgentStatus.IDLE,
        )
        state = StateRepresentation.from_context(context, now=0.0)

        assert state.agent_status == 0.5
        assert state.has_goal == 1.0
        assert state.event_count == pytest.approx(0.1)
        assert state.message_is_question == 1.0
        assert state.message_length == pytest.approx(0.23)

        key = StateRepresentation.to_key(state)
        assert key.startswith("agent_status:0.5|has_goal:1.0|event_count:0.1|")
        assert "message_length:0.2" in key

    def test_string_status_is_coerced(self):
        context = ThoughtContext(status="paused")
        assert StateRepresentation.from_context(context).agent_status == 0.2

    def test_available_actions(self):
        base = StateRepresentation.available_actions(AgentStateVector())
        full = StateRepresentation.available_actions(AgentStateVector(has_goal=1.0, has_message=1.0))

        assert base == ["respond", "analyze", "plan", "wait"]
        assert full[-2:] == ["work_on_goal", "process_message"]


class TestRewardShaping:
    @pytest.mark.parametrize("reward_type,value,expected", [
        (RewardType.POSITIVE, -0.4, 0.4),
        (RewardType.NEGATIVE, 0.7, -0.7),
        (RewardType.CURIOSITY, 0.6, 0.3),
        (RewardType.ACHIEVEMENT, 0.9, 1.0),
        (RewardType.NEUTRAL, -3.0, -1.0),
    ])
    def test_shape_reward(self, reward_type, value, expected):
        assert shape_reward(RewardSignal(type=reward_type, value=value)) == pytest.approx(expected)

    def test_action_key_maps_engine_actions(self):
        assert action_key(AgentAction(type=ActionCategory.COMMUNICATION, action="rl_response")) == "respond"
        assert action_key(AgentAction(type=ActionCategory.COMMUNICATION, action="probabilistic_response")) == "respond"
        assert action_key(AgentAction(type=ActionCategory.PROCESSING, action="custom")) == "custom"


class TestRLEngine:
    """Engine surface."""

    @pytest.mark.asyncio
    async def test_think_proposes_one_action(self, question_context):
        engine = RLEngine(LearningConfig(exploration_rate=0.0, seed=3))
        result = await engine.think(question_context)

        assert len(result.actions) == 1
        assert result.actions[0].action == "rl_response"
        assert result.confidence == 0.5
        assert result.metadata["explored"] is False
        assert engine.stats["exploitations"] == 1

    @pytest.mark.asyncio
    async def test_learning_shifts_greedy_choice(self, question_context, make_experience):
        engine = RLEngine(LearningConfig(exploration_rate=0.0, min_exploration_rate=0.0, seed=3))
        state = StateRepresentation.from_context(question_context)

        for _ in range(3):
            await engine.learn(make_experience(
                1.0, action="rl_analysis", category=ActionCategory.PROCESSING, state=state, next_state=state,
            ))
        result = await engine.think(question_context)

        assert result.actions[0].action == "rl_analysis"
        assert result.confidence == 1.0

    @pytest.mark.asyncio
    async def test_learn_updates_q_and_decays_epsilon(self, make_experience):
        engine = RLEngine(LearningConfig(learning_rate=0.1, exploration_rate=0.5, exploration_decay=0.5,
                                         min_exploration_rate=0.1))
        await engine.learn(make_experience(1.0, action="rl_response"))

        key = StateRepresentation.to_key(AgentStateVector())
        assert engine.agent.get_q_value(key, "respond") == pytest.approx(0.1)
        assert engine.agent.exploration_rate == pytest.approx(0.25)

        for _ in range(10):
            await engine.learn(make_experience(1.0, action="rl_response"))
        assert engine.agent.exploration_rate == 0.1

    @pytest.mark.asyncio
    async def test_experience_buffer_is_bounded(self, make_experience):
        engine = RLEngine(LearningConfig(experience_buffer_size=3))
        for i in range(5):
            await engine.learn(make_experience(0.1 * i))

        assert len(engine.experience_buffer) == 3
        assert engine.experience_buffer[0].reward.value == pytest.approx(0.2)

    @pytest.mark.asyncio
    async def test_plan_uses_default_rollout_without_experience(self, empty_context):
        plan = await RLEngine().plan(empty_context, "finish the report")

        assert [s.action for s in plan.steps] == ["analyze", "plan", "work_on_goal"]
        for previous, step in zip(plan.steps, plan.steps[1:]):
            assert step.preconditions == [previous.id]

    @pytest.mark.asyncio
    async def test_plan_never_repeats_an_action(self, empty_context):
        """A learned first step is not repeated by the rollout that follows it"""
        engine = RLEngine()
        state = StateRepresentation.from_context(empty_context)
        state.has_goal = 1.0
        engine.agent.q_table[StateRepresentation.to_key(state)] = {"analyze": 1.0}

        plan = await engine.plan(empty_context, "finish the report")
        actions = [s.action for s in plan.steps]

        assert actions == ["analyze", "plan", "work_on_goal"]
        assert len(actions) == len(set(actions))

    @pytest.mark.asyncio
    async def test_decide_prefers_higher_q_plus_confidence(self, empty_context):
        engine = RLEngine()
        key = StateRepresentation.to_key(StateRepresentation.from_context(empty_context))
        engine.agent.q_table[key] = {"analyze": 0.9}
        options = [
            Decision(id="reply", description="reply", confidence=0.6,
                     action=AgentAction(type=ActionCategory.COMMUNICATION, action="rl_response")),
            Decision(id="look", description="look", confidence=0.5,
                     action=AgentAction(type=ActionCategory.PROCESSING, action="rl_analysis")),
        ]

        assert await engine.decide(empty_context, options) is options[1]
        assert await engine.decide(empty_context, options[:1]) is options[0]

    def test_export_and_load_state(self):
        engine = RLEngine()
        engine.agent.q_table["s"] = {"respond": 0.4}
        engine.agent.exploration_rate = 0.02

        restored = RLEngine()
        restored.load_state(engine.export_state())

        assert restored.agent.get_q_value("s", "respond") == 0.4
        assert restored.agent.exploration_rate == 0.02
