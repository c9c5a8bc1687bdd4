#!/usr/bin/env python3
"""
Reinforcement Learning Engine
=============================
Tabular Q-learning over discretized agent state vectors.

- StateRepresentation: context -> AgentStateVector -> "feature:value|..." key
- QLearningAgent: epsilon-greedy selection and the Q-learning update
- RLEngine: reasoning paradigm wrapping both, with reward shaping
"""

import logging
import time
from collections import deque
from datetime import datetime
from typing import Dict, Any, List, Optional, Tuple

import numpy as np

from ..agents.shared_types import (
    ThoughtContext, ThoughtResult, Plan, PlanStep, Decision, Experience,
    AgentAction, ActionCategory, AgentStateVector, AgentStatus, EmotionState,
    MemoryRecord, MemoryType, RewardSignal, RewardType, ReasoningParadigm
)
from ..config import LearningConfig
from .base import ReasoningEngine, LearningCapable, Deadline

logger = logging.getLogger(__name__)

STATUS_ENCODING = {
    AgentStatus.ACTIVE: 1.0,
    AgentStatus.IDLE: 0.5,
    AgentStatus.THINKING: 0.8,
    AgentStatus.PAUSED: 0.2,
    AgentStatus.ERROR: 0.0,
}

BASE_ACTIONS = ("respond", "analyze", "plan", "wait")

# policy action -> (category, agent action name)
ACTION_MAP = {
    "respond": (ActionCategory.COMMUNICATION, "rl_response"),
    "analyze": (ActionCategory.PROCESSING, "rl_analysis"),
    "plan": (ActionCategory.PROCESSING, "rl_planning"),
    "work_on_goal": (ActionCategory.PROCESSING, "rl_goal_work"),
    "process_message": (ActionCategory.COMMUNICATION, "rl_message_processing"),
    "wait": (ActionCategory.PROCESSING, "rl_wait"),
}

# agent action names produced by any engine -> policy action
ACTION_ALIASES = {name: key for key, (_, name) in ACTION_MAP.items()}
ACTION_ALIASES.update({
    "probabilistic_response": "respond",
    "probabilistic_analysis": "analyze",
    "create_plan": "plan",
    "update_knowledge": "analyze",
})

ACTION_DESCRIPTIONS = {
    "respond": "Generate a response",
    "analyze": "Analyze the situation",
    "plan": "Create a detailed plan",
    "work_on_goal": "Work towards the goal",
    "process_message": "Process incoming message",
    "wait": "Wait for more information",
}

# simulated outcome labels for policy rollouts
ROLLOUT_TRANSITIONS = {
    "analyze": "analyzed",
    "plan": "planned",
    "respond": "responded",
    "work_on_goal": "goal_reached",
}
DEFAULT_ROLLOUT = ("analyze", "plan", "work_on_goal")


class StateRepresentation:
    """Context -> numeric state vector -> hashable key"""

    @staticmethod
    def from_context(context: ThoughtContext, now: Optional[float] = None) -> AgentStateVector:
        now = time.time() if now is None else now
        messages = context.message_events
        first_message = messages[0].message if messages else ""
        seconds_today = now - datetime.fromtimestamp(now).replace(
            hour=0, minute=0, second=0, microsecond=0
        ).timestamp()

        return AgentStateVector(
            agent_status=STATUS_ENCODING.get(context.status, 0.5),
            has_goal=1.0 if context.goal else 0.0,
            event_count=min(1.0, len(context.events) / 10),
            memory_count=min(1.0, len(context.memories) / 10),
            has_message=1.0 if messages else 0.0,
            message_is_question=1.0 if any("?" in m.message for m in messages) else 0.0,
            message_length=min(1.0, len(first_message) / 100),
            emotion_intensity=context.emotion.intensity if context.emotion else 0.0,
            time_of_day=seconds_today / 86400,
            recent_activity=min(1.0, sum(1 for e in context.events if now - e.timestamp < 60) / 10),
        )

    @staticmethod
    def to_key(state: AgentStateVector) -> str:
        parts = []
        for name, value in state.as_dict().items():
            rounded = round(value, 1) + 0.0  # folds -0.0 into 0.0
            parts.append(f"{name}:{rounded}")
        return "|".join(parts)

    @staticmethod
    def available_actions(state: AgentStateVector) -> List[str]:
        actions = list(BASE_ACTIONS)
        if state.has_goal > 0:
            actions.append("work_on_goal")
        if state.has_message > 0:
            actions.append("process_message")
        return actions


class QLearningAgent:
    """Q-table with epsilon-greedy action selection"""

    def __init__(self, learning_rate: float = 0.1, discount_factor: float = 0.95,
                 exploration_rate: float = 0.1, min_exploration_rate: float = 0.01,
                 exploration_decay: float = 0.995, seed: Optional[int] = None):
        self.learning_rate = learning_rate
        self.discount_factor = discount_factor
        self.exploration_rate = exploration_rate
        self.min_exploration_rate = min_exploration_rate
        self.exploration_decay = exploration_decay
        self.q_table: Dict[str, Dict[str, float]] = {}
        self.rng = np.random.default_rng(seed)

    def get_q_value(self, state: str, action: str) -> float:
        return self.q_table.get(state, {}).get(action, 0.0)

    def update(self, state: str, action: str, reward: float, next_state: str,
               next_actions: List[str], done: bool = False) -> float:
        """Q(s,a) <- Q(s,a) + alpha * [r + gamma * max Q(s',.) - Q(s,a)]"""
        current = self.get_q_value(state, action)
        if done or not next_actions:
            target = reward
        else:
            target = reward + self.discount_factor * max(self.get_q_value(next_state, a) for a in next_actions)
        updated = current + self.learning_rate * (target - current)
        self.q_table.setdefault(state, {})[action] = updated
        return updated

    def best_action(self, state: str, actions: List[str]) -> str:
        """Greedy choice; ties go to the first action listed"""
        q_values = np.array([self.get_q_value(state, a) for a in actions])
        return actions[int(np.argmax(q_values))]

    def select_action(self, state: str, actions: List[str]) -> Tuple[str, bool]:
        """Returns (action, explored)"""
        if self.rng.random() < self.exploration_rate:
            return actions[int(self.rng.integers(len(actions)))], True
        return self.best_action(state, actions), False

    def decay_exploration(self):
        self.exploration_rate = max(self.min_exploration_rate, self.exploration_rate * self.exploration_decay)

    def normalized_value(self, state: str, action: str, actions: List[str]) -> float:
        """Min-max rank of Q(state, action) among the available actions (0.5 when all tie)"""
        q_values = np.array([self.get_q_value(state, a) for a in actions])
        q_max, q_min = float(q_values.max()), float(q_values.min())
        if q_max == q_min:
            return 0.5
        return (self.get_q_value(state, action) - q_min) / (q_max - q_min)

    def get_policy(self) -> Dict[str, str]:
        policy = {}
        for state, actions in self.q_table.items():
            if actions:
                names = list(actions)
                policy[state] = names[int(np.argmax([actions[n] for n in names]))]
        return policy


def shape_reward(reward: RewardSignal) -> float:
    value = reward.value
    if reward.type == RewardType.POSITIVE:
        value = abs(value)
    elif reward.type == RewardType.NEGATIVE:
        value = -abs(value)
    elif reward.type == RewardType.CURIOSITY:
        value = value * 0.5
    elif reward.type == RewardType.ACHIEVEMENT:
        value = abs(value) * 1.5
    return max(-1.0, min(1.0, value))


def action_key(action: AgentAction) -> str:
    return ACTION_ALIASES.get(action.action, action.action)


class RLEngine(ReasoningEngine, LearningCapable):
    """Q-learning reasoning paradigm"""

    paradigm = ReasoningParadigm.REINFORCEMENT_LEARNING

    def __init__(self, config: Optional[LearningConfig] = None):
        self.config = config or LearningConfig()
        self.agent = QLearningAgent(
            learning_rate=self.config.learning_rate,
            discount_factor=self.config.discount_factor,
            exploration_rate=self.config.exploration_rate,
            min_exploration_rate=self.config.min_exploration_rate,
            exploration_decay=self.config.exploration_decay,
            seed=self.config.seed,
        )
        self.experience_buffer: deque = deque(maxlen=self.config.experience_buffer_size)
        self.episode_count = 0
        self.last_choice: Optional[Tuple[str, str]] = None
        self.stats = {
            'explorations': 0,
            'exploitations': 0,
            'updates': 0,
        }
        logger.info(f"RLEngine initialized (α={self.config.learning_rate}, "
                    f"γ={self.config.discount_factor}, ε={self.config.exploration_rate})")

    async def think(self, context: ThoughtContext, deadline: Optional[Deadline] = None) -> ThoughtResult:
        state = StateRepresentation.from_context(context)
        key = StateRepresentation.to_key(state)
        actions = StateRepresentation.available_actions(state)

        selected, explored = self.agent.select_action(key, actions)
        self.stats['explorations' if explored else 'exploitations'] += 1
        self.last_choice = (key, selected)
        self.episode_count += 1

        category, name = ACTION_MAP[selected]
        confidence = self.agent.normalized_value(key, selected, actions)
        q_value = self.agent.get_q_value(key, selected)

        if confidence > 0.7:
            mood = "confident"
        elif confidence > 0.4:
            mood = "curious"
        else:
            mood = "exploring"

        return ThoughtResult(
            thoughts=[
                f"RL state: {key}",
                f"Possible actions: {', '.join(actions)}",
                f"Selected action: {selected} (ε={self.agent.exploration_rate:.3f}"
                f"{', exploring' if explored else ''})",
            ],
            actions=[AgentAction(
                type=category,
                action=name,
                parameters={
                    "rl_action": selected,
                    "q_value": q_value,
                    "exploration_rate": self.agent.exploration_rate,
                },
                agent_id=context.agent_id,
                priority=0.5 + 0.5 * confidence,
            )],
            emotions=EmotionState(current=mood, intensity=confidence, triggers=["reinforcement_learning"]),
            memories=[MemoryRecord(
                content=f"RL decision: {selected} in state {key}",
                type=MemoryType.EXPERIENCE,
                agent_id=context.agent_id,
                importance=0.5,
                tags=["reasoning", "reinforcement_learning", selected],
                metadata={"state": state.as_dict(), "action": selected, "q_value": q_value},
            )],
            confidence=confidence,
            paradigm=self.paradigm,
            metadata={"state_key": key, "explored": explored},
        )

    async def plan(self, context: ThoughtContext, goal: str, deadline: Optional[Deadline] = None) -> Plan:
        state = StateRepresentation.from_context(context)
        state.has_goal = 1.0
        key = StateRepresentation.to_key(state)
        actions = StateRepresentation.available_actions(state)

        steps: List[PlanStep] = []
        taken = set()
        for index in range(1, 6):
            # each action appears at most once in a plan
            remaining = [a for a in actions if a not in taken]
            known = self.agent.q_table.get(key)
            if known and any(a in known for a in remaining):
                action = self.agent.best_action(key, remaining)
            else:
                action = next((a for a in DEFAULT_ROLLOUT if a not in taken), "work_on_goal")
            taken.add(action)
            steps.append(PlanStep(
                id=f"step_{index}",
                action=action,
                description=ACTION_DESCRIPTIONS.get(action, f"Execute {action}"),
                parameters={"q_value": self.agent.get_q_value(key, action), "step": index, "goal": goal},
                preconditions=[steps[-1].id] if steps else [],
                effects=[f"{action}_completed"],
            ))
            if action == "work_on_goal":
                break
            key = f"{key}>{ROLLOUT_TRANSITIONS.get(action, action)}"

        return Plan(
            goal=goal,
            steps=steps,
            priority=0.7,
            estimated_duration=len(steps) * 30_000,
            confidence=self.agent.normalized_value(
                StateRepresentation.to_key(state), steps[0].action, actions
            ),
            metadata={"paradigm": self.paradigm.value},
        )

    async def decide(self, context: ThoughtContext, options: List[Decision],
                     deadline: Optional[Deadline] = None) -> Decision:
        self._require_options(options)
        if len(options) == 1:
            return options[0]

        key = StateRepresentation.to_key(StateRepresentation.from_context(context))
        scores = []
        for option in options:
            option_key = action_key(option.action) if option.action is not None else option.id
            scores.append(self.agent.get_q_value(key, option_key) + option.confidence)
        return options[int(np.argmax(scores))]

    async def learn(self, experience: Experience):
        self.experience_buffer.append(experience)

        state_key = StateRepresentation.to_key(experience.state)
        next_key = StateRepresentation.to_key(experience.next_state)
        act = action_key(experience.action)
        reward = shape_reward(experience.reward)

        q_value = self.agent.update(
            state_key, act, reward, next_key,
            StateRepresentation.available_actions(experience.next_state),
            done=experience.done,
        )
        self.agent.decay_exploration()
        self.stats['updates'] += 1
        logger.debug(f"RL learned: Q({act}) = {q_value:.3f} (reward {reward:+.2f}, "
                     f"ε={self.agent.exploration_rate:.3f})")

    def export_state(self) -> Dict[str, Any]:
        return {
            "q_table": {s: dict(a) for s, a in self.agent.q_table.items()},
            "exploration_rate": self.agent.exploration_rate,
            "episode_count": self.episode_count,
        }

    def load_state(self, state: Dict[str, Any]):
        self.agent.q_table = {s: {a: float(q) for a, q in acts.items()}
                              for s, acts in state.get("q_table", {}).items()}
        self.agent.exploration_rate = float(state.get("exploration_rate", self.agent.exploration_rate))
        self.episode_count = int(state.get("episode_count", self.episode_count))

    def get_stats(self) -> Dict[str, Any]:
        recent = [e.reward.value for e in list(self.experience_buffer)[-50:]]
        return {
            **self.stats,
            'episode_count': self.episode_count,
            'exploration_rate': self.agent.exploration_rate,
            'average_reward': float(np.mean(recent)) if recent else 0.0,
            'q_table_size': len(self.agent.q_table),
            'buffer_size': len(self.experience_buffer),
        }
