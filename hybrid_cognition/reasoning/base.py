#!/usr/bin/env python3
"""
Reasoning Engine Interfaces
===========================
Common surface implemented by every reasoning paradigm:
- ReasoningEngine: think / plan / decide coroutines
- LearningCapable: explicit capability for engines that learn from experience
- Deadline: cooperative wall-clock budget polled by long-running loops
- LearningPersistence: external collaborator that stores learned state
"""

import re
import time
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Protocol

from ..agents.shared_types import (
    ThoughtContext, ThoughtResult, Plan, Decision, Experience, ReasoningParadigm
)
from ..exceptions import NoViableOptionError, ParadigmTimeoutError


class Deadline:
    """Wall-clock budget. Never preempts; callers poll expired()."""

    def __init__(self, budget_ms: float, label: str = "reasoning"):
        self.budget_ms = budget_ms
        self.label = label
        self._start = time.monotonic()

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self._start) * 1000.0

    @property
    def remaining_ms(self) -> float:
        return max(0.0, self.budget_ms - self.elapsed_ms)

    def expired(self) -> bool:
        return self.elapsed_ms >= self.budget_ms

    def check(self):
        """Raise ParadigmTimeoutError once the budget is spent"""
        if self.expired():
            raise ParadigmTimeoutError(self.label, self.elapsed_ms, self.budget_ms)


class ReasoningEngine(ABC):
    """Base class for a reasoning paradigm"""

    paradigm: ReasoningParadigm

    @abstractmethod
    async def think(self, context: ThoughtContext, deadline: Optional[Deadline] = None) -> ThoughtResult:
        """Reason about the context and propose actions"""

    @abstractmethod
    async def plan(self, context: ThoughtContext, goal: str, deadline: Optional[Deadline] = None) -> Plan:
        """Produce an ordered plan for the goal"""

    @abstractmethod
    async def decide(self, context: ThoughtContext, options: List[Decision],
                     deadline: Optional[Deadline] = None) -> Decision:
        """Pick one of the options and return it unchanged"""

    def export_state(self) -> Dict[str, Any]:
        """Opaque snapshot of learned state (empty when nothing is learned)"""
        return {}

    def load_state(self, state: Dict[str, Any]):
        """Restore a snapshot produced by export_state()"""

    def get_stats(self) -> Dict[str, Any]:
        return {}

    @staticmethod
    def _require_options(options: List[Decision]):
        if not options:
            raise NoViableOptionError()


class LearningCapable(ABC):
    """Engines that adapt from executed-action feedback"""

    @abstractmethod
    async def learn(self, experience: Experience):
        """Update internal state from one experience"""


class LearningPersistence(Protocol):
    """Stores learned state across restarts (implemented by the host runtime)"""

    async def save(self, agent_id: str, state: Dict[str, Any]) -> None:
        ...

    async def load(self, agent_id: str) -> Optional[Dict[str, Any]]:
        ...


def goal_slug(goal: str, max_words: int = 6) -> str:
    """Stable identifier fragment for a goal string"""
    words = re.findall(r"[a-z0-9]+", goal.lower())
    return "_".join(words[:max_words]) or "goal"
