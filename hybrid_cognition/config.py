#!/usr/bin/env python3
"""
Configuration for the hybrid reasoning core.

Every engine reads its own section of HybridReasoningConfig. Values can come
from a plain dict (from_dict) or from the environment (from_env), which loads
a .env file first the same way the coordinator does. Invalid values fail fast
with ConfigurationError.
"""

import logging
import os
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

from dotenv import load_dotenv

from .agents.shared_types import ReasoningParadigm
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFLICT_STRATEGIES = ("priority", "specificity", "recency")
META_STRATEGIES = ("single", "hybrid")
ANALYSIS_FEATURES = (
    "complexity",
    "uncertainty",
    "time_constraint",
    "knowledge_available",
    "adaptation_needed",
    "goal_oriented",
    "probabilistic_nature",
    "rules_applicable",
)


@dataclass
class RuleEngineConfig:
    """Forward-chaining rule engine settings"""
    conflict_resolution: str = "priority"
    max_iterations: int = 10
    learning_window_seconds: float = 60.0
    priority_step: float = 0.1
    confidence_step: float = 0.05
    history_limit: int = 500
    planning_rule_limit: int = 32  # goal-bound rules kept by plan(), oldest dropped first


@dataclass
class ProbabilisticConfig:
    """Bayesian network settings"""
    confidence_threshold: float = 0.6
    prior_weight: float = 0.0  # pseudo-counts given to the existing CPT entry when learning
    history_limit: int = 200


@dataclass
class LearningConfig:
    """Q-learning settings"""
    learning_rate: float = 0.1
    discount_factor: float = 0.95
    exploration_rate: float = 0.1
    min_exploration_rate: float = 0.01
    exploration_decay: float = 0.995
    experience_buffer_size: int = 1000
    seed: Optional[int] = None


@dataclass
class PlanningConfig:
    """HTN + PDDL planner settings"""
    max_plan_length: int = 10
    timeout_ms: float = 5000.0
    htn_max_depth: int = 5
    htn_max_tasks: int = 8
    htn_cache_size: int = 128
    yield_every: int = 64  # search expansions between cooperative yields


@dataclass
class ScoringProfile:
    """
    Linear paradigm score over context features.

    Features listed in `inverted` contribute (1 - value). The boost multiplier
    applies when `boost_feature` is strictly above `boost_threshold`.
    """
    weights: Dict[str, float]
    inverted: Tuple[str, ...] = ()
    boost_feature: Optional[str] = None
    boost_threshold: float = 1.0
    boost_multiplier: float = 1.0
    boost_reason: str = ""


def default_profiles() -> Dict[str, ScoringProfile]:
    """Default per-paradigm scoring profiles (tunable, not load-bearing)"""
    return {
        ReasoningParadigm.RULE_BASED.value: ScoringProfile(
            weights={"rules_applicable": 0.4, "uncertainty": 0.3, "knowledge_available": 0.3},
            inverted=("uncertainty",),
            boost_feature="time_constraint",
            boost_threshold=0.7,
            boost_multiplier=1.2,
            boost_reason="time pressure favors fast rule matching",
        ),
        ReasoningParadigm.PLANNING.value: ScoringProfile(
            weights={"goal_oriented": 0.5, "complexity": 0.3, "time_constraint": 0.2},
            inverted=("time_constraint",),
            boost_feature="goal_oriented",
            boost_threshold=0.7,
            boost_multiplier=1.3,
            boost_reason="goal-oriented task",
        ),
        ReasoningParadigm.PROBABILISTIC.value: ScoringProfile(
            weights={"probabilistic_nature": 0.4, "uncertainty": 0.4, "knowledge_available": 0.2},
            boost_feature="uncertainty",
            boost_threshold=0.6,
            boost_multiplier=1.2,
            boost_reason="high uncertainty",
        ),
        ReasoningParadigm.REINFORCEMENT_LEARNING.value: ScoringProfile(
            weights={"adaptation_needed": 0.4, "knowledge_available": 0.3, "complexity": 0.3},
            inverted=("knowledge_available",),
            boost_feature="adaptation_needed",
            boost_threshold=0.7,
            boost_multiplier=1.3,
            boost_reason="adaptation needed",
        ),
    }


@dataclass
class MetaReasonerConfig:
    """Paradigm selection and orchestration settings"""
    paradigms: List[str] = field(default_factory=lambda: [p.value for p in ReasoningParadigm])
    profiles: Dict[str, ScoringProfile] = field(default_factory=default_profiles)
    strategy: str = "single"
    max_fallbacks: int = 2
    failure_penalty: float = 0.8
    paradigm_timeout_ms: float = 10000.0
    decision_history_size: int = 100
    performance_window: int = 20
    pattern_boost: float = 1.1
    enable_deliberation: bool = True
    deliberation_min_complexity: float = 0.8
    deliberation_timeout_ms: float = 1000.0
    deliberation_penalty: float = 0.9


@dataclass
class HybridReasoningConfig:
    """Top-level configuration shared by the meta-reasoner and every engine"""
    rule_engine: RuleEngineConfig = field(default_factory=RuleEngineConfig)
    probabilistic: ProbabilisticConfig = field(default_factory=ProbabilisticConfig)
    learning: LearningConfig = field(default_factory=LearningConfig)
    planning: PlanningConfig = field(default_factory=PlanningConfig)
    meta: MetaReasonerConfig = field(default_factory=MetaReasonerConfig)

    def __post_init__(self):
        self.validate()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]] = None) -> "HybridReasoningConfig":
        """Build a config from nested dicts, e.g. {"planning": {"timeout_ms": 500}}"""
        data = data or {}
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            raise ConfigurationError(f"Unknown config sections: {sorted(unknown)}")

        meta_data = dict(data.get("meta", {}))
        profiles = meta_data.pop("profiles", None)
        meta = _build_section(MetaReasonerConfig, meta_data, "meta")
        if profiles is not None:
            meta.profiles = {
                name: p if isinstance(p, ScoringProfile) else _build_profile(name, p)
                for name, p in profiles.items()
            }

        return cls(
            rule_engine=_build_section(RuleEngineConfig, data.get("rule_engine", {}), "rule_engine"),
            probabilistic=_build_section(ProbabilisticConfig, data.get("probabilistic", {}), "probabilistic"),
            learning=_build_section(LearningConfig, data.get("learning", {}), "learning"),
            planning=_build_section(PlanningConfig, data.get("planning", {}), "planning"),
            meta=meta,
        )

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "HybridReasoningConfig":
        """
        Build a config from COGNITION_* environment variables.

        A .env file (explicit path, or ./.env when present) is loaded first;
        variables already set in the process environment win.
        """
        if env_file:
            if not Path(env_file).exists():
                raise ConfigurationError(f"Env file not found: {env_file}")
            load_dotenv(env_file)
        elif Path(".env").exists():
            load_dotenv(".env")

        data: Dict[str, Dict[str, Any]] = {}
        for var, (section, key, caster) in _ENV_MAPPING.items():
            raw = os.getenv(var)
            if raw is None or raw == "":
                continue
            try:
                value = caster(raw)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {var}: {raw!r} ({e})") from e
            data.setdefault(section, {})[key] = value

        if data:
            logger.info(f"Loaded cognition config overrides from environment: {sorted(data)}")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self):
        """Raise ConfigurationError on the first invalid value"""
        re_cfg = self.rule_engine
        if re_cfg.conflict_resolution not in CONFLICT_STRATEGIES:
            raise ConfigurationError(
                f"Unknown conflict resolution strategy '{re_cfg.conflict_resolution}' "
                f"(expected one of {CONFLICT_STRATEGIES})"
            )
        _require_positive("rule_engine.max_iterations", re_cfg.max_iterations)
        _require_positive("rule_engine.history_limit", re_cfg.history_limit)
        _require_positive("rule_engine.planning_rule_limit", re_cfg.planning_rule_limit)
        _require_non_negative("rule_engine.learning_window_seconds", re_cfg.learning_window_seconds)

        _require_unit("probabilistic.confidence_threshold", self.probabilistic.confidence_threshold)
        _require_non_negative("probabilistic.prior_weight", self.probabilistic.prior_weight)

        lr = self.learning
        _require_unit("learning.learning_rate", lr.learning_rate)
        _require_unit("learning.discount_factor", lr.discount_factor)
        _require_unit("learning.exploration_rate", lr.exploration_rate)
        _require_unit("learning.min_exploration_rate", lr.min_exploration_rate)
        _require_unit("learning.exploration_decay", lr.exploration_decay)
        if lr.discount_factor >= 1.0:
            raise ConfigurationError("learning.discount_factor must be < 1.0")
        _require_positive("learning.experience_buffer_size", lr.experience_buffer_size)

        pl = self.planning
        _require_positive("planning.max_plan_length", pl.max_plan_length)
        _require_positive("planning.timeout_ms", pl.timeout_ms)
        _require_positive("planning.htn_max_depth", pl.htn_max_depth)
        _require_positive("planning.htn_max_tasks", pl.htn_max_tasks)
        _require_positive("planning.yield_every", pl.yield_every)

        meta = self.meta
        if not meta.paradigms:
            raise ConfigurationError("meta.paradigms must name at least one paradigm")
        known = {p.value for p in ReasoningParadigm}
        for paradigm in meta.paradigms:
            if paradigm not in known:
                raise ConfigurationError(f"Unknown paradigm '{paradigm}' (expected one of {sorted(known)})")
            if paradigm not in meta.profiles:
                raise ConfigurationError(f"Missing scoring profile for paradigm '{paradigm}'")
        for name, profile in meta.profiles.items():
            _validate_profile(name, profile)
        if meta.strategy not in META_STRATEGIES:
            raise ConfigurationError(f"Unknown meta strategy '{meta.strategy}' (expected one of {META_STRATEGIES})")
        if meta.max_fallbacks < 0:
            raise ConfigurationError("meta.max_fallbacks must be >= 0")
        _require_unit("meta.failure_penalty", meta.failure_penalty)
        _require_unit("meta.deliberation_penalty", meta.deliberation_penalty)
        _require_unit("meta.deliberation_min_complexity", meta.deliberation_min_complexity)
        _require_positive("meta.paradigm_timeout_ms", meta.paradigm_timeout_ms)
        _require_positive("meta.deliberation_timeout_ms", meta.deliberation_timeout_ms)
        _require_positive("meta.decision_history_size", meta.decision_history_size)
        _require_positive("meta.performance_window", meta.performance_window)
        if meta.pattern_boost < 1.0:
            raise ConfigurationError("meta.pattern_boost must be >= 1.0")


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def _build_section(section_cls, values: Dict[str, Any], name: str):
    if isinstance(values, section_cls):
        return values
    allowed = {f.name for f in fields(section_cls)}
    unknown = set(values) - allowed
    if unknown:
        raise ConfigurationError(f"Unknown keys in '{name}' config: {sorted(unknown)}")
    try:
        return section_cls(**values)
    except TypeError as e:
        raise ConfigurationError(f"Invalid '{name}' config: {e}") from e


def _build_profile(name: str, values: Dict[str, Any]) -> ScoringProfile:
    if "weights" not in values:
        raise ConfigurationError(f"Scoring profile '{name}' has no weights")
    values = dict(values)
    values["inverted"] = tuple(values.get("inverted", ()))
    return _build_section(ScoringProfile, values, f"meta.profiles.{name}")


def _validate_profile(name: str, profile: ScoringProfile):
    if not profile.weights:
        raise ConfigurationError(f"Scoring profile '{name}' has no weights")
    referenced = list(profile.weights) + list(profile.inverted)
    if profile.boost_feature:
        referenced.append(profile.boost_feature)
    for feature in referenced:
        if feature not in ANALYSIS_FEATURES:
            raise ConfigurationError(f"Scoring profile '{name}' references unknown feature '{feature}'")
    if profile.boost_multiplier <= 0:
        raise ConfigurationError(f"Scoring profile '{name}' boost multiplier must be positive")


def _require_positive(name: str, value: float):
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive (got {value})")


def _require_non_negative(name: str, value: float):
    if value < 0:
        raise ConfigurationError(f"{name} must be >= 0 (got {value})")


def _require_unit(name: str, value: float):
    if not 0.0 <= value <= 1.0:
        raise ConfigurationError(f"{name} must be within [0, 1] (got {value})")


def _parse_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError("expected a boolean")


def _parse_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


_ENV_MAPPING = {
    "COGNITION_CONFLICT_RESOLUTION": ("rule_engine", "conflict_resolution", str),
    "COGNITION_RULE_MAX_ITERATIONS": ("rule_engine", "max_iterations", int),
    "COGNITION_PLANNING_RULE_LIMIT": ("rule_engine", "planning_rule_limit", int),
    "COGNITION_CONFIDENCE_THRESHOLD": ("probabilistic", "confidence_threshold", float),
    "COGNITION_LEARNING_RATE": ("learning", "learning_rate", float),
    "COGNITION_DISCOUNT_FACTOR": ("learning", "discount_factor", float),
    "COGNITION_EXPLORATION_RATE": ("learning", "exploration_rate", float),
    "COGNITION_EXPERIENCE_BUFFER_SIZE": ("learning", "experience_buffer_size", int),
    "COGNITION_RL_SEED": ("learning", "seed", int),
    "COGNITION_MAX_PLAN_LENGTH": ("planning", "max_plan_length", int),
    "COGNITION_PLAN_TIMEOUT_MS": ("planning", "timeout_ms", float),
    "COGNITION_PARADIGMS": ("meta", "paradigms", _parse_list),
    "COGNITION_STRATEGY": ("meta", "strategy", str),
    "COGNITION_PARADIGM_TIMEOUT_MS": ("meta", "paradigm_timeout_ms", float),
    "COGNITION_FAILURE_PENALTY": ("meta", "failure_penalty", float),
    "COGNITION_ENABLE_DELIBERATION": ("meta", "enable_deliberation", _parse_bool),
}
