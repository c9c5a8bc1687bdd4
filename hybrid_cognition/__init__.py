"""
Hybrid cognition core: a meta-reasoner that picks between rule-based,
probabilistic, reinforcement-learning and planning engines per request.
"""

from .agents.meta_reasoner import MetaReasoner, create_meta_reasoner, get_meta_reasoner
from .config import HybridReasoningConfig
from .exceptions import (
    CognitionError, ConfigurationError, NoViableOptionError, RuleActionError,
    ParadigmExecutionError, ParadigmTimeoutError, ExpressionError
)

__version__ = "0.1.0"

__all__ = [
    "MetaReasoner",
    "create_meta_reasoner",
    "get_meta_reasoner",
    "HybridReasoningConfig",
    "CognitionError",
    "ConfigurationError",
    "NoViableOptionError",
    "RuleActionError",
    "ParadigmExecutionError",
    "ParadigmTimeoutError",
    "ExpressionError",
]
