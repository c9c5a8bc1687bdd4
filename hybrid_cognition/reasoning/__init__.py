"""Reasoning engines: rule-based, probabilistic, Q-learning and planning"""

from .base import ReasoningEngine, LearningCapable, LearningPersistence, Deadline
from .rule_engine import RuleEngine
from .bayesian_network import ProbabilisticEngine
from .q_learning import RLEngine
from .planning_engine import PlanningEngine

__all__ = [
    "ReasoningEngine",
    "LearningCapable",
    "LearningPersistence",
    "Deadline",
    "RuleEngine",
    "ProbabilisticEngine",
    "RLEngine",
    "PlanningEngine",
]
