"""Tests for configuration loading and validation."""

from __future__ import annotations

import os

import pytest

from hybrid_cognition.config import HybridReasoningConfig, ScoringProfile
from hybrid_cognition.exceptions import ConfigurationError


@pytest.fixture
def isolated_env(monkeypatch, tmp_path):
    """No COGNITION_* variables and no stray .env in the working directory."""
    for var in [v for v in os.environ if v.startswith("COGNITION_")]:
        monkeypatch.delenv(var)
    monkeypatch.chdir(tmp_path)
    yield tmp_path
    # load_dotenv writes straight into os.environ
    for var in [v for v in os.environ if v.startswith("COGNITION_")]:
        os.environ.pop(var)


class TestDefaults:
    def test_defaults_are_valid(self):
        config = HybridReasoningConfig()

        assert config.meta.paradigms == ["rule_based", "probabilistic", "reinforcement_learning", "planning"]
        assert set(config.meta.profiles) == set(config.meta.paradigms)
        assert config.meta.max_fallbacks == 2
        assert config.meta.failure_penalty == 0.8
        assert config.rule_engine.conflict_resolution == "priority"
        assert config.planning.max_plan_length == 10

    def test_to_dict(self):
        data = HybridReasoningConfig().to_dict()

        assert data["learning"]["discount_factor"] == 0.95
        assert data["meta"]["profiles"]["planning"]["boost_multiplier"] == 1.3


class TestFromDict:
    def test_overrides_sections(self):
        config = HybridReasoningConfig.from_dict({
            "planning": {"timeout_ms": 250},
            "meta": {"strategy": "hybrid"},
        })

        assert config.planning.timeout_ms == 250
        assert config.planning.max_plan_length == 10
        assert config.meta.strategy == "hybrid"

    def test_custom_profiles(self):
        config = HybridReasoningConfig.from_dict({"meta": {
            "paradigms": ["planning"],
            "profiles": {"planning": {"weights": {"goal_oriented": 1.0}, "inverted": ["goal_oriented"]}},
        }})

        profile = config.meta.profiles["planning"]
        assert isinstance(profile, ScoringProfile)
        assert profile.inverted == ("goal_oriented",)

    @pytest.mark.parametrize("data", [
        {"telemetry": {}},
        {"planning": {"depth": 3}},
        {"meta": {"profiles": {"planning": {"inverted": ["complexity"]}}}},
    ])
    def test_unknown_or_incomplete_sections(self, data):
        with pytest.raises(ConfigurationError):
            HybridReasoningConfig.from_dict(data)

    @pytest.mark.parametrize("data", [
        {"rule_engine": {"conflict_resolution": "random"}},
        {"rule_engine": {"max_iterations": 0}},
        {"rule_engine": {"planning_rule_limit": 0}},
        {"probabilistic": {"confidence_threshold": 1.5}},
        {"learning": {"discount_factor": 1.0}},
        {"learning": {"exploration_rate": -0.1}},
        {"planning": {"timeout_ms": 0}},
        {"meta": {"paradigms": []}},
        {"meta": {"paradigms": ["telepathy"]}},
        {"meta": {"strategy": "parallel"}},
        {"meta": {"max_fallbacks": -1}},
        {"meta": {"pattern_boost": 0.5}},
        {"meta": {"paradigms": ["planning"], "profiles": {"rule_based": {"weights": {"complexity": 1.0}}}}},
        {"meta": {"paradigms": ["planning"], "profiles": {"planning": {"weights": {"mood": 1.0}}}}},
    ])
    def test_invalid_values_fail_fast(self, data):
        with pytest.raises(ConfigurationError):
            HybridReasoningConfig.from_dict(data)


class TestFromEnv:
    def test_environment_overrides(self, isolated_env, monkeypatch):
        monkeypatch.setenv("COGNITION_STRATEGY", "hybrid")
        monkeypatch.setenv("COGNITION_PARADIGMS", "rule_based, planning")
        monkeypatch.setenv("COGNITION_ENABLE_DELIBERATION", "off")
        monkeypatch.setenv("COGNITION_RL_SEED", "42")

        config = HybridReasoningConfig.from_env()

        assert config.meta.strategy == "hybrid"
        assert config.meta.paradigms == ["rule_based", "planning"]
        assert config.meta.enable_deliberation is False
        assert config.learning.seed == 42

    def test_env_file_is_loaded_but_process_env_wins(self, isolated_env, monkeypatch):
        env_file = isolated_env / "cognition.env"
        env_file.write_text("COGNITION_PLAN_TIMEOUT_MS=250\nCOGNITION_MAX_PLAN_LENGTH=4\n")
        monkeypatch.setenv("COGNITION_MAX_PLAN_LENGTH", "6")

        config = HybridReasoningConfig.from_env(str(env_file))

        assert config.planning.timeout_ms == 250.0
        assert config.planning.max_plan_length == 6

    def test_dotenv_in_working_directory(self, isolated_env):
        (isolated_env / ".env").write_text("COGNITION_CONFLICT_RESOLUTION=recency\n")

        assert HybridReasoningConfig.from_env().rule_engine.conflict_resolution == "recency"

    def test_missing_env_file(self, isolated_env):
        with pytest.raises(ConfigurationError):
            HybridReasoningConfig.from_env(str(isolated_env / "missing.env"))

    @pytest.mark.parametrize("var,value", [
        ("COGNITION_RULE_MAX_ITERATIONS", "many"),
        ("COGNITION_ENABLE_DELIBERATION", "maybe"),
        ("COGNITION_STRATEGY", "parallel"),
    ])
    def test_bad_values(self, isolated_env, monkeypatch, var, value):
        monkeypatch.setenv(var, value)

        with pytest.raises(ConfigurationError):
            HybridReasoningConfig.from_env()
