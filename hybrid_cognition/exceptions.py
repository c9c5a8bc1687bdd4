#!/usr/bin/env python3
"""
Error taxonomy for the hybrid reasoning core.

Hard exceptions are reserved for programmer errors (bad configuration,
empty option lists). Everything else is caught by the engines or the
meta-reasoner and turned into a low-confidence result.
"""

from typing import Any, Optional


class CognitionError(Exception):
    """Base class for all reasoning core errors"""


class ConfigurationError(CognitionError):
    """Missing or invalid paradigm/engine configuration (fatal at init)"""


class NoViableOptionError(CognitionError):
    """decide() was called without any options"""

    def __init__(self, message: str = "No options to decide between"):
        super().__init__(message)


class RuleActionError(CognitionError):
    """A rule action handler failed while a rule was firing"""

    def __init__(self, rule_id: str, target: str, reason: str):
        self.rule_id = rule_id
        self.target = target
        self.reason = reason
        super().__init__(f"Rule '{rule_id}' action '{target}' failed: {reason}")


class ParadigmExecutionError(CognitionError):
    """A selected reasoning engine raised while thinking/planning/deciding"""

    def __init__(self, paradigm: str, reason: str, cause: Optional[BaseException] = None):
        self.paradigm = paradigm
        self.reason = reason
        self.cause = cause
        super().__init__(f"Paradigm '{paradigm}' failed: {reason}")


class ParadigmTimeoutError(ParadigmExecutionError):
    """A reasoning engine finished after its deadline"""

    def __init__(self, paradigm: str, elapsed_ms: float, budget_ms: float, partial_result: Any = None):
        self.elapsed_ms = elapsed_ms
        self.budget_ms = budget_ms
        self.partial_result = partial_result  # result delivered after the deadline, if any
        super().__init__(
            paradigm,
            f"exceeded time budget ({elapsed_ms:.0f}ms > {budget_ms:.0f}ms)"
        )


class ExpressionError(CognitionError):
    """A rule condition expression uses a construct outside the allowed set"""
