"""Shared fixtures for the hybrid cognition test suite."""

from __future__ import annotations

import time

import pytest

from hybrid_cognition.agents.shared_types import (
    ActionCategory,
    AgentAction,
    AgentEvent,
    AgentStateVector,
    Experience,
    RewardSignal,
    RewardType,
    ThoughtContext,
)

LONG_GOAL = (
    "First collect the quarterly sales figures from every regional office and "
    "store them in the shared archive, then compare each region against the "
    "targets that the board approved in the spring meeting, then write a short "
    "summary of the largest gaps for the finance team, and finally prepare a "
    "set of slides that explain the trends so the directors can review them "
    "before the annual budget session begins next month"
)


@pytest.fixture
def question_context() -> ThoughtContext:
    """One incoming question, no goal."""
    return ThoughtContext(
        events=[
            AgentEvent(
                type="communication.message",
                source="user",
                timestamp=time.time(),
                data={"message": "What's the weather?"},
            )
        ],
        agent_id="agent-a",
    )


@pytest.fixture
def long_goal() -> str:
    return LONG_GOAL


@pytest.fixture
def goal_context() -> ThoughtContext:
    """A long multi-step goal with no events."""
    return ThoughtContext(goal=LONG_GOAL, agent_id="agent-b")


@pytest.fixture
def empty_context() -> ThoughtContext:
    return ThoughtContext(agent_id="agent-empty")


@pytest.fixture
def make_experience():
    """Factory for experiences tied to an agent action."""

    def _make(
        reward: float,
        action: str = "respond",
        category: ActionCategory = ActionCategory.COMMUNICATION,
        reward_type: RewardType | None = None,
        parameters: dict | None = None,
        state: AgentStateVector | None = None,
        next_state: AgentStateVector | None = None,
        done: bool = False,
        context: dict | None = None,
    ) -> Experience:
        if reward_type is None:
            if reward > 0:
                reward_type = RewardType.POSITIVE
            elif reward < 0:
                reward_type = RewardType.NEGATIVE
            else:
                reward_type = RewardType.NEUTRAL
        return Experience(
            state=state or AgentStateVector(),
            action=AgentAction(type=category, action=action, parameters=parameters or {}),
            reward=RewardSignal(type=reward_type, value=reward, context=context or {}),
            next_state=next_state or AgentStateVector(),
            done=done,
        )

    return _make
