#!/usr/bin/env python3
"""
Context Analyzer - scores a ThoughtContext on eight features in [0, 1]
Pure and deterministic; the coefficients are heuristics, not contracts
"""

import re
import time
from typing import List, Optional, Set

from .shared_types import ThoughtContext, ContextAnalysis

URGENT_WORDS = ("urgent", "urgently", "immediate", "immediately", "now", "quickly", "asap", "emergency")
UNCERTAIN_WORDS = ("maybe", "possibly", "might", "could", "uncertain", "perhaps", "probably", "unsure")
MULTI_STEP_WORDS = ("then", "after", "first", "finally", "next", "afterwards")
COMMAND_EVENT_MARKERS = ("command", "action", "request")
NOVELTY_MARKERS = ("new", "unknown", "unfamiliar")

_WORD_RE = re.compile(r"[a-z0-9']+")


def _words(text: str) -> List[str]:
    return _WORD_RE.findall(text.lower())


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _type_tokens(event_type: str) -> Set[str]:
    return set(re.split(r"[._:\-/\s]+", event_type.lower()))


class ContextAnalyzer:
    """Feature extraction used for paradigm scoring"""

    def __init__(self, recent_window_seconds: float = 60.0):
        self.recent_window_seconds = recent_window_seconds

    def analyze(self, context: ThoughtContext, now: Optional[float] = None) -> ContextAnalysis:
        now = time.time() if now is None else now
        messages = [e.message for e in context.message_events]
        text = " ".join(([context.goal] if context.goal else []) + messages)
        words = set(_words(text))

        return ContextAnalysis(
            complexity=self._complexity(context),
            uncertainty=self._uncertainty(context),
            time_constraint=self._time_constraint(context, words, now),
            knowledge_available=self._knowledge(context, messages),
            adaptation_needed=self._adaptation(context),
            goal_oriented=0.8 if context.goal else 0.2,
            probabilistic_nature=0.8 if words & set(UNCERTAIN_WORDS) else 0.3,
            rules_applicable=self._rules_applicable(context, messages),
        )

    @staticmethod
    def _complexity(context: ThoughtContext) -> float:
        score = min(1.0, len(context.events) / 10)
        if context.goal:
            goal_words = _words(context.goal)
            score += min(0.6, len(goal_words) / 20)
            if set(goal_words) & set(MULTI_STEP_WORDS) or ";" in context.goal:
                score += 0.15
        distinct_types = {e.type for e in context.events}
        score += min(0.3, len(distinct_types) / 10)
        return _clamp(score)

    @staticmethod
    def _uncertainty(context: ThoughtContext) -> float:
        score = 0.3
        if not context.message_events:
            score += 0.2
        types = [e.type for e in context.events]
        if len(types) > 1 and len(set(types)) == len(types):
            score += 0.2
        if not context.goal and not context.events:
            score += 0.3
        return _clamp(score)

    def _time_constraint(self, context: ThoughtContext, words: Set[str], now: float) -> float:
        if words & set(URGENT_WORDS):
            return 0.9
        recent = sum(1 for e in context.events if now - e.timestamp < self.recent_window_seconds)
        return min(0.8, recent / 5)

    @staticmethod
    def _knowledge(context: ThoughtContext, messages: List[str]) -> float:
        score = 0.5 + min(0.3, len(context.memories) / 10)
        topic = {w for w in _words(" ".join(([context.goal] if context.goal else []) + messages)) if len(w) > 3}
        if topic and any(topic & set(_words(m.content)) for m in context.memories):
            score += 0.2
        return _clamp(score)

    @staticmethod
    def _adaptation(context: ThoughtContext) -> float:
        types = [e.type for e in context.events]
        novelty = (len(set(types)) - 1) / (len(types) - 1) if len(types) > 1 else 0.0
        score = 0.2 + 0.5 * novelty
        if any(_type_tokens(t) & set(NOVELTY_MARKERS) for t in types):
            score += 0.3
        return _clamp(score)

    @staticmethod
    def _rules_applicable(context: ThoughtContext, messages: List[str]) -> float:
        score = 0.3
        if any("?" in m for m in messages) or (context.goal and "?" in context.goal):
            score += 0.3
        if any(_type_tokens(e.type) & set(COMMAND_EVENT_MARKERS) for e in context.events):
            score += 0.4
        return _clamp(score)
