#!/usr/bin/env python3
"""
Meta-Reasoner - selects and runs the reasoning paradigm for each request
========================================================================
For every think/plan/decide call:
- the context is scored on eight features (ContextAnalyzer)
- every registered paradigm gets a weighted linear score, boosted when its
  trigger feature crosses a threshold, scaled by recent performance
- the best paradigm runs under a deadline; failures and overruns fall back to
  the next-ranked paradigms; if all fail a degraded result is returned

Strategy "hybrid" runs the two best paradigms concurrently and merges their
results. Complex contexts in single mode also consult the runner-up under a
short deliberation deadline.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Dict, Any, List, Optional, Tuple, Callable, Awaitable

import numpy as np

from .shared_types import (
    ThoughtContext, ThoughtResult, Plan, PlanStatus, Decision, Experience,
    ReasoningParadigm, ContextAnalysis, MetaDecision, MemoryRecord, MemoryType,
    EmotionState, AgentAction, ParadigmPerformance
)
from .context_analyzer import ContextAnalyzer
from .performance_tracker import PerformanceTracker
from ..config import HybridReasoningConfig, ScoringProfile
from ..exceptions import (
    CognitionError, ConfigurationError, NoViableOptionError,
    ParadigmExecutionError, ParadigmTimeoutError
)
from ..reasoning.base import ReasoningEngine, LearningCapable, LearningPersistence, Deadline
from ..reasoning.rule_engine import RuleEngine
from ..reasoning.bayesian_network import ProbabilisticEngine
from ..reasoning.q_learning import RLEngine
from ..reasoning.planning_engine import PlanningEngine

logger = logging.getLogger(__name__)

DEGRADED_BASE_CONFIDENCE = 0.25
SELECTION_CONFIDENCE_WINDOW = 50

EngineCall = Callable[[ReasoningEngine, Deadline], Awaitable[Any]]


@dataclass
class ParadigmRegistration:
    paradigm: ReasoningParadigm
    engine: ReasoningEngine
    profile: ScoringProfile


def score_profile(profile: ScoringProfile, analysis: ContextAnalysis) -> Tuple[float, List[Tuple[str, float]], bool]:
    """Returns (score, per-feature contributions, boosted)"""
    contributions = []
    for feature, weight in profile.weights.items():
        value = analysis.feature(feature)
        if feature in profile.inverted:
            value = 1.0 - value
        contributions.append((feature, weight * value))
    score = sum(c for _, c in contributions)
    boosted = bool(profile.boost_feature) and analysis.feature(profile.boost_feature) > profile.boost_threshold
    if boosted:
        score *= profile.boost_multiplier
    return score, contributions, boosted


def merge_results(results: List[Tuple[ReasoningParadigm, ThoughtResult]]) -> ThoughtResult:
    """Confidence-weighted union of thoughts, actions and memories"""
    ordered = sorted(results, key=lambda r: r[1].confidence, reverse=True)
    thoughts: List[str] = []
    actions: List[AgentAction] = []
    seen_actions = set()
    memories: List[MemoryRecord] = []

    for paradigm, result in ordered:
        for thought in result.thoughts:
            if thought not in thoughts:
                thoughts.append(thought)
        for action in result.actions:
            if action.signature() not in seen_actions:
                seen_actions.add(action.signature())
                actions.append(action)
        memories.extend(result.memories)

    confidences = np.array([r.confidence for _, r in ordered], dtype=float)
    total = float(confidences.sum())
    confidence = float((confidences ** 2).sum() / total) if total > 0 else 0.0

    lead_paradigm, lead = ordered[0]
    return ThoughtResult(
        thoughts=thoughts,
        actions=actions,
        emotions=lead.emotions,
        memories=memories,
        confidence=confidence,
        paradigm=lead_paradigm,
        metadata={
            "merged_paradigms": [p.value for p, _ in ordered],
            "merged_confidences": [float(c) for c in confidences],
        },
    )


class MetaReasoner:
    """Paradigm selection, execution with fallbacks, and learning fan-out"""

    def __init__(self, config: Optional[HybridReasoningConfig] = None,
                 engines: Optional[Dict[ReasoningParadigm, ReasoningEngine]] = None,
                 persistence: Optional[LearningPersistence] = None,
                 agent_id: str = "agent"):
        self.config = config or HybridReasoningConfig()
        self.meta = self.config.meta
        self.agent_id = agent_id
        self.persistence = persistence

        paradigms = [ReasoningParadigm(p) for p in self.meta.paradigms]
        if engines is None:
            engines = self._build_engines(paradigms)

        self.analyzer = ContextAnalyzer()
        self.tracker = PerformanceTracker(paradigms, window=self.meta.performance_window)
        self.registry: Dict[ReasoningParadigm, ParadigmRegistration] = {}
        self._locks: Dict[ReasoningParadigm, asyncio.Lock] = {}
        for paradigm in paradigms:
            engine = engines.get(paradigm)
            if engine is None:
                raise ConfigurationError(f"No engine registered for paradigm '{paradigm.value}'")
            self.register_paradigm(paradigm, engine)

        self.decision_history: deque = deque(maxlen=self.meta.decision_history_size)
        self.meta_memories: deque = deque(maxlen=self.meta.decision_history_size)
        self.learned_patterns: Dict[str, ReasoningParadigm] = {}
        self._last_success: Optional[Tuple[str, ReasoningParadigm]] = None

        self.stats = {
            'total_decisions': 0,
            'fallbacks': 0,
            'degraded_results': 0,
            'timeouts': 0,
            'hybrid_merges': 0,
            'deliberations': 0,
            'deliberation_timeouts': 0,
            'experiences': 0,
        }

        logger.info(f"🧠 MetaReasoner initialized for '{agent_id}' with paradigms "
                    f"{[p.value for p in self.registry]} (strategy: {self.meta.strategy})")

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def _build_engines(self, paradigms: List[ReasoningParadigm]) -> Dict[ReasoningParadigm, ReasoningEngine]:
        factories = {
            ReasoningParadigm.RULE_BASED: lambda: RuleEngine(self.config.rule_engine),
            ReasoningParadigm.PROBABILISTIC: lambda: ProbabilisticEngine(self.config.probabilistic),
            ReasoningParadigm.REINFORCEMENT_LEARNING: lambda: RLEngine(self.config.learning),
            ReasoningParadigm.PLANNING: lambda: PlanningEngine(self.config.planning),
        }
        return {p: factories[p]() for p in paradigms}

    def register_paradigm(self, paradigm: ReasoningParadigm, engine: ReasoningEngine,
                          profile: Optional[ScoringProfile] = None):
        if not isinstance(engine, ReasoningEngine):
            raise ConfigurationError(f"Engine for '{paradigm.value}' does not implement ReasoningEngine")
        if profile is None:
            profile = self.meta.profiles.get(paradigm.value)
        if profile is None:
            raise ConfigurationError(f"Missing scoring profile for paradigm '{paradigm.value}'")
        self.registry[paradigm] = ParadigmRegistration(paradigm, engine, profile)
        self.tracker.performance.setdefault(paradigm, ParadigmPerformance(paradigm=paradigm))
        self._locks[paradigm] = asyncio.Lock()
        logger.debug(f"Registered {paradigm.value} -> {type(engine).__name__}")

    def engine(self, paradigm: ReasoningParadigm) -> ReasoningEngine:
        registration = self.registry.get(paradigm)
        if registration is None:
            raise ConfigurationError(f"Paradigm '{paradigm.value}' is not registered")
        return registration.engine

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_paradigm(self, context: ThoughtContext,
                        analysis: Optional[ContextAnalysis] = None) -> MetaDecision:
        """Rank registered paradigms for this context"""
        if not self.registry:
            raise ConfigurationError("No reasoning paradigms registered")
        analysis = analysis or self.analyzer.analyze(context)
        pattern_key = analysis.to_key()
        learned = self.learned_patterns.get(pattern_key)

        scores: Dict[ReasoningParadigm, float] = {}
        details: Dict[ReasoningParadigm, str] = {}
        drivers: Dict[ReasoningParadigm, List[Tuple[str, float]]] = {}
        for paradigm, registration in self.registry.items():
            base, contributions, boosted = score_profile(registration.profile, analysis)
            multiplier = self.tracker.multiplier(paradigm)
            score = base * multiplier
            line = f"{paradigm.value}: base {base:.2f} × performance {multiplier:.2f}"
            if boosted:
                line += f" (boost ×{registration.profile.boost_multiplier}: {registration.profile.boost_reason})"
            if learned == paradigm:
                score *= self.meta.pattern_boost
                line += f" × learned pattern {self.meta.pattern_boost}"
            scores[paradigm] = score
            details[paradigm] = f"{line} = {score:.2f}"
            drivers[paradigm] = sorted(contributions, key=lambda c: c[1], reverse=True)

        ranked = sorted(scores, key=lambda p: scores[p], reverse=True)
        primary = ranked[0]
        fallbacks = tuple(ranked[1:1 + self.meta.max_fallbacks])
        confidence = max(0.0, min(1.0, scores[primary]))

        top = ", ".join(f"{name} ({value:.2f})" for name, value in drivers[primary][:2])
        trail = [
            "Context: " + ", ".join(f"{k}={v:.2f}" for k, v in analysis.as_dict().items()),
            *(details[p] for p in ranked),
            f"Selected {primary.value} (confidence {confidence:.2f}), driven by {top}",
        ]
        if learned == primary:
            trail.append(f"Learned pattern favours {primary.value} for this kind of context")
        if fallbacks:
            trail.append(f"Fallbacks: {', '.join(p.value for p in fallbacks)}")

        return MetaDecision(
            selected_paradigm=primary,
            confidence=confidence,
            reasoning_trail=tuple(trail),
            fallback_paradigms=fallbacks,
            context_analysis=analysis,
            scores=tuple((p, scores[p]) for p in ranked),
        )

    def _new_decision(self, context: ThoughtContext, operation: str) -> MetaDecision:
        decision = replace(self.select_paradigm(context), operation=operation)
        self.decision_history.append(decision)
        self.stats['total_decisions'] += 1
        logger.debug(f"[{operation}] {decision.reasoning_trail[-1]}")
        return decision

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _invoke(self, paradigm: ReasoningParadigm, call: EngineCall,
                      budget_ms: Optional[float] = None) -> Tuple[Any, float]:
        """Run one engine call under its lock and deadline; returns (result, elapsed ms)"""
        budget_ms = budget_ms or self.meta.paradigm_timeout_ms
        engine = self.engine(paradigm)
        try:
            async with self._locks[paradigm]:
                # the budget covers the engine call, not the wait for the lock
                deadline = Deadline(budget_ms, label=paradigm.value)
                start = time.monotonic()
                result = await call(engine, deadline)
        except (ParadigmExecutionError, NoViableOptionError, ConfigurationError):
            raise
        except Exception as e:
            raise ParadigmExecutionError(paradigm.value, f"{type(e).__name__}: {e}", e) from e

        elapsed_ms = (time.monotonic() - start) * 1000
        if elapsed_ms > budget_ms:
            raise ParadigmTimeoutError(paradigm.value, elapsed_ms, budget_ms, partial_result=result)
        return result, elapsed_ms

    async def _run_with_fallbacks(self, decision: MetaDecision, call: EngineCall,
                                  candidates: Optional[List[ReasoningParadigm]] = None
                                  ) -> Tuple[Optional[ReasoningParadigm], Any, float, List[ParadigmExecutionError]]:
        if candidates is None:
            candidates = [decision.selected_paradigm, *decision.fallback_paradigms]
        errors: List[ParadigmExecutionError] = []
        for index, paradigm in enumerate(candidates):
            if index > 0:
                self.stats['fallbacks'] += 1
                logger.warning(f"Falling back to {paradigm.value}")
            try:
                result, elapsed_ms = await self._invoke(paradigm, call)
                return paradigm, result, elapsed_ms, errors
            except ParadigmExecutionError as e:
                if isinstance(e, ParadigmTimeoutError):
                    self.stats['timeouts'] += 1
                logger.error(f"{e}")
                errors.append(e)
        return None, None, 0.0, errors

    def _record_success(self, decision: MetaDecision, paradigm: ReasoningParadigm,
                        confidence: float, elapsed_ms: float, memory_usage: float = 0.0) -> MemoryRecord:
        self.tracker.record(paradigm, confidence, elapsed_ms, memory_usage)
        self._last_success = (decision.context_analysis.to_key(), paradigm)
        memory = MemoryRecord(
            content=f"Meta-reasoning: used {paradigm.value} for {decision.operation} "
                    f"(selection confidence {decision.confidence:.2f})",
            type=MemoryType.REASONING,
            agent_id=self.agent_id,
            importance=0.5,
            tags=["meta_reasoning", paradigm.value],
            metadata={
                "reasoning_trail": list(decision.reasoning_trail),
                "selected": decision.selected_paradigm.value,
                "executed": paradigm.value,
                "fallbacks": [p.value for p in decision.fallback_paradigms],
            },
        )
        self.meta_memories.append(memory)
        return memory

    # ------------------------------------------------------------------
    # think
    # ------------------------------------------------------------------

    async def think(self, context: ThoughtContext) -> ThoughtResult:
        decision = self._new_decision(context, "think")
        if self.meta.strategy == "hybrid":
            return await self._think_hybrid(context, decision)

        paradigm, result, elapsed_ms, errors = await self._run_with_fallbacks(
            decision, lambda engine, deadline: engine.think(context, deadline)
        )
        if paradigm is None:
            return self._degraded_thought(decision, errors)

        engine_confidence = result.confidence
        result.confidence = max(0.0, min(1.0, engine_confidence * decision.score_for(paradigm)))
        result.paradigm = paradigm
        result.memories.append(self._record_success(
            decision, paradigm, engine_confidence, elapsed_ms, len(result.memories)
        ))
        result.thoughts.insert(0, f"Meta-reasoner selected {paradigm.value} "
                                  f"(confidence {decision.score_for(paradigm):.2f})")
        if errors:
            result.thoughts.insert(1, f"Fell back to {paradigm.value} after: "
                                      f"{'; '.join(e.reason for e in errors)}")
        result.metadata["reasoning_trail"] = list(decision.reasoning_trail)

        if self._should_deliberate(decision, paradigm):
            result = await self._deliberate(context, decision, paradigm, result)
        return result

    def _should_deliberate(self, decision: MetaDecision, used: ReasoningParadigm) -> bool:
        if not self.meta.enable_deliberation:
            return False
        if decision.context_analysis.complexity < self.meta.deliberation_min_complexity:
            return False
        return any(p != used for p in decision.fallback_paradigms)

    async def _deliberate(self, context: ThoughtContext, decision: MetaDecision,
                          fast_paradigm: ReasoningParadigm, fast: ThoughtResult) -> ThoughtResult:
        """Consult the runner-up under the deliberation deadline"""
        slow_paradigm = next(p for p in decision.fallback_paradigms if p != fast_paradigm)
        self.stats['deliberations'] += 1
        try:
            slow, elapsed_ms = await self._invoke(
                slow_paradigm,
                lambda engine, deadline: engine.think(context, deadline),
                budget_ms=self.meta.deliberation_timeout_ms,
            )
        except ParadigmTimeoutError as e:
            self.stats['deliberation_timeouts'] += 1
            fast.confidence *= self.meta.deliberation_penalty
            fast.thoughts.append(f"Deliberation with {slow_paradigm.value} ran out of time "
                                 f"({e.elapsed_ms:.0f}ms); keeping fast result")
            logger.warning(f"Deliberation timeout: {e}")
            return fast
        except ParadigmExecutionError as e:
            fast.thoughts.append(f"Deliberation with {slow_paradigm.value} failed: {e.reason}")
            logger.error(f"Deliberation failed: {e}")
            return fast

        slow_confidence = slow.confidence
        slow.confidence = max(0.0, min(1.0, slow_confidence * decision.score_for(slow_paradigm)))
        self.tracker.record(slow_paradigm, slow_confidence, elapsed_ms, len(slow.memories))
        merged = merge_results([(fast_paradigm, fast), (slow_paradigm, slow)])
        merged.thoughts.append(f"Deliberation merged {fast_paradigm.value} with {slow_paradigm.value}")
        merged.metadata["reasoning_trail"] = list(decision.reasoning_trail)
        return merged

    async def _think_hybrid(self, context: ThoughtContext, decision: MetaDecision) -> ThoughtResult:
        """Run the two best paradigms concurrently and merge what succeeds"""
        pair = [decision.selected_paradigm, *decision.fallback_paradigms[:1]]
        call: EngineCall = lambda engine, deadline: engine.think(context, deadline)
        outcomes = await asyncio.gather(
            *(self._invoke(p, call) for p in pair), return_exceptions=True
        )

        successes: List[Tuple[ReasoningParadigm, ThoughtResult]] = []
        errors: List[ParadigmExecutionError] = []
        for paradigm, outcome in zip(pair, outcomes):
            if isinstance(outcome, ParadigmExecutionError):
                logger.error(f"{outcome}")
                errors.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result, elapsed_ms = outcome
                engine_confidence = result.confidence
                result.confidence = max(0.0, min(1.0, engine_confidence * decision.score_for(paradigm)))
                result.paradigm = paradigm
                self._record_success(decision, paradigm, engine_confidence, elapsed_ms, len(result.memories))
                successes.append((paradigm, result))

        if not successes:
            remaining = list(decision.fallback_paradigms[1:])
            paradigm, result, elapsed_ms, more_errors = await self._run_with_fallbacks(decision, call, remaining)
            errors.extend(more_errors)
            if paradigm is None:
                return self._degraded_thought(decision, errors)
            engine_confidence = result.confidence
            result.confidence = max(0.0, min(1.0, engine_confidence * decision.score_for(paradigm)))
            result.paradigm = paradigm
            result.memories.append(self._record_success(
                decision, paradigm, engine_confidence, elapsed_ms, len(result.memories)
            ))
            return result

        if len(successes) == 1:
            result = successes[0][1]
        else:
            self.stats['hybrid_merges'] += 1
            result = merge_results(successes)
        result.thoughts.insert(0, f"Hybrid reasoning with {' + '.join(p.value for p, _ in successes)}")
        result.memories.append(self.meta_memories[-1])
        result.metadata["reasoning_trail"] = list(decision.reasoning_trail)
        return result

    def _degraded_thought(self, decision: MetaDecision, errors: List[ParadigmExecutionError]) -> ThoughtResult:
        self.stats['degraded_results'] += 1
        partial = next(
            (e.partial_result for e in reversed(errors)
             if isinstance(e, ParadigmTimeoutError) and isinstance(e.partial_result, ThoughtResult)),
            None,
        )
        explanation = (f"All reasoning paradigms failed "
                       f"({'; '.join(f'{e.paradigm}: {e.reason}' for e in errors)})")
        logger.warning(f"Returning degraded result: {explanation}")

        if partial is not None:
            partial.confidence = max(0.0, min(1.0, partial.confidence * self.meta.failure_penalty))
            partial.thoughts.insert(0, explanation)
            partial.metadata["degraded"] = True
            return partial

        return ThoughtResult(
            thoughts=[explanation],
            actions=[],
            emotions=EmotionState(current="confused", intensity=0.2, triggers=["reasoning_failure"]),
            memories=[],
            confidence=DEGRADED_BASE_CONFIDENCE * self.meta.failure_penalty,
            paradigm=None,
            metadata={"degraded": True, "errors": [str(e) for e in errors]},
        )

    # ------------------------------------------------------------------
    # plan / decide
    # ------------------------------------------------------------------

    async def plan(self, context: ThoughtContext, goal: str) -> Plan:
        planning_context = context if context.goal == goal else replace(context, goal=goal)
        decision = self._new_decision(planning_context, "plan")

        paradigm, plan, elapsed_ms, errors = await self._run_with_fallbacks(
            decision, lambda engine, deadline: engine.plan(planning_context, goal, deadline)
        )
        if paradigm is None:
            self.stats['degraded_results'] += 1
            logger.warning(f"No paradigm could plan for '{goal[:50]}'")
            return Plan(
                goal=goal,
                steps=[],
                status=PlanStatus.FAILED,
                confidence=DEGRADED_BASE_CONFIDENCE * self.meta.failure_penalty,
                metadata={"degraded": True, "errors": [str(e) for e in errors]},
            )

        self._record_success(decision, paradigm, plan.confidence, elapsed_ms)
        plan.metadata.update({
            "paradigm": paradigm.value,
            "selection_confidence": decision.score_for(paradigm),
            "reasoning_trail": list(decision.reasoning_trail),
        })
        return plan

    async def decide(self, context: ThoughtContext, options: List[Decision]) -> Decision:
        """Return one of the options unchanged"""
        if not options:
            raise NoViableOptionError()
        if len(options) == 1:
            return options[0]

        decision = self._new_decision(context, "decide")

        async def call(engine: ReasoningEngine, deadline: Deadline) -> Decision:
            chosen = await engine.decide(context, list(options), deadline)
            if not any(chosen is option for option in options):
                raise ParadigmExecutionError(
                    deadline.label, "engine returned an option that was not offered"
                )
            return chosen

        paradigm, chosen, elapsed_ms, errors = await self._run_with_fallbacks(decision, call)
        if paradigm is None:
            self.stats['degraded_results'] += 1
            best = options[0]
            for option in options[1:]:
                if option.confidence > best.confidence:
                    best = option
            logger.warning(f"All paradigms failed to decide; picking highest-confidence option {best.id}")
            return best

        self._record_success(decision, paradigm, chosen.confidence, elapsed_ms)
        return chosen

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    async def learn(self, experience: Experience):
        """Fan the experience out to every learning-capable engine"""
        self.stats['experiences'] += 1
        for paradigm, registration in self.registry.items():
            engine = registration.engine
            if not isinstance(engine, LearningCapable):
                continue
            try:
                async with self._locks[paradigm]:
                    await engine.learn(experience)
            except Exception as e:
                logger.error(f"{paradigm.value} failed to learn: {type(e).__name__}: {e}")

        if experience.reward.value > 0.5 and self._last_success is not None:
            key, paradigm = self._last_success
            if self.learned_patterns.get(key) != paradigm:
                self.learned_patterns[key] = paradigm
                logger.info(f"Meta-learned: {paradigm.value} works for context pattern {key}")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_learning_state(self) -> Dict[str, Any]:
        return {
            "engines": {p.value: r.engine.export_state() for p, r in self.registry.items()},
            "patterns": {key: p.value for key, p in self.learned_patterns.items()},
        }

    def load_learning_state(self, state: Dict[str, Any]):
        for name, engine_state in state.get("engines", {}).items():
            try:
                paradigm = ReasoningParadigm(name)
            except ValueError:
                logger.warning(f"Ignoring learned state for unknown paradigm '{name}'")
                continue
            registration = self.registry.get(paradigm)
            if registration is not None:
                registration.engine.load_state(engine_state)
        for key, name in state.get("patterns", {}).items():
            try:
                self.learned_patterns[key] = ReasoningParadigm(name)
            except ValueError:
                logger.warning(f"Ignoring learned pattern for unknown paradigm '{name}'")

    async def save_learning_state(self) -> bool:
        if self.persistence is None:
            logger.warning("No learning persistence configured; state not saved")
            return False
        await self.persistence.save(self.agent_id, self.export_learning_state())
        logger.info(f"💾 Saved learning state for '{self.agent_id}'")
        return True

    async def restore_learning_state(self) -> bool:
        if self.persistence is None:
            return False
        state = await self.persistence.load(self.agent_id)
        if not state:
            return False
        self.load_learning_state(state)
        logger.info(f"Restored learning state for '{self.agent_id}'")
        return True

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        recent = [d.confidence for d in list(self.decision_history)[-SELECTION_CONFIDENCE_WINDOW:]]
        performance = self.tracker.summary()
        return {
            'paradigm_usage': {name: p['usage_count'] for name, p in performance.items()},
            'paradigm_performance': {name: p['success_rate'] for name, p in performance.items()},
            'paradigm_details': performance,
            'average_selection_confidence': float(np.mean(recent)) if recent else 0.0,
            'total_decisions': self.stats['total_decisions'],
            'learned_patterns': len(self.learned_patterns),
            'counters': dict(self.stats),
            'engines': {p.value: r.engine.get_stats() for p, r in self.registry.items()},
        }


# ============================================================================
# FACTORY
# ============================================================================

_meta_reasoners: Dict[str, MetaReasoner] = {}


def create_meta_reasoner(config: Optional[HybridReasoningConfig] = None,
                         agent_id: str = "agent",
                         persistence: Optional[LearningPersistence] = None) -> MetaReasoner:
    """Build a MetaReasoner with the default engine for every configured paradigm"""
    return MetaReasoner(config=config, persistence=persistence, agent_id=agent_id)


def get_meta_reasoner(agent_id: str, config: Optional[HybridReasoningConfig] = None) -> MetaReasoner:
    """Get or create the MetaReasoner owned by an agent (one per agent)"""
    if agent_id not in _meta_reasoners:
        _meta_reasoners[agent_id] = create_meta_reasoner(config, agent_id=agent_id)
    return _meta_reasoners[agent_id]
