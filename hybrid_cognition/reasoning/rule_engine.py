#!/usr/bin/env python3
"""
Rule-Based Reasoning Engine
===========================
Forward-chaining inference over a fact base:
- Context is projected into facts before every inference run
- Eligible rules (all conditions hold) compete through conflict resolution
  (priority, specificity or recency); exactly one fires per iteration
- A rule fires at most once per run and a run is capped at max_iterations
- Rule weights move with reward feedback from executed actions
"""

import asyncio
import fnmatch
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Union, Callable, Tuple

from ..agents.shared_types import (
    ThoughtContext, ThoughtResult, Plan, PlanStep, Decision, Experience,
    AgentAction, ActionCategory, EmotionState, MemoryRecord, MemoryType,
    ReasoningParadigm
)
from ..config import RuleEngineConfig
from ..exceptions import RuleActionError, ConfigurationError, ExpressionError
from .base import ReasoningEngine, LearningCapable, Deadline, goal_slug
from .expressions import Compare, Expression, FactRef, Literal, parse_expression, holds

logger = logging.getLogger(__name__)

RULE_WEIGHT_MIN = 0.1
RULE_WEIGHT_MAX = 1.0
GOAL_ACHIEVABLE_KEYWORDS = ("respond", "think", "analyze", "plan", "communicate")


def _clamp_weight(value: float) -> float:
    return max(RULE_WEIGHT_MIN, min(RULE_WEIGHT_MAX, value))


# ============================================================================
# FACTS
# ============================================================================

@dataclass
class Fact:
    """Atomic subject-predicate-object triple"""
    id: str
    subject: str
    predicate: str
    object: Any
    confidence: float = 1.0
    timestamp: float = field(default_factory=time.time)


class FactBase:
    """Mutable fact store keyed by fact id"""

    def __init__(self):
        self._facts: Dict[str, Fact] = {}

    def assert_fact(self, key: str, value: Any = True, subject: str = "agent",
                    confidence: float = 1.0) -> Fact:
        fact = Fact(id=key, subject=subject, predicate=key, object=value, confidence=confidence)
        self._facts[key] = fact
        logger.debug(f"Asserted fact: {key} = {value!r}")
        return fact

    def retract(self, key: str) -> bool:
        removed = self._facts.pop(key, None) is not None
        if removed:
            logger.debug(f"Retracted fact: {key}")
        return removed

    def get(self, key: str, default: Any = None) -> Any:
        fact = self._facts.get(key)
        return fact.object if fact is not None else default

    def get_fact(self, key: str) -> Optional[Fact]:
        return self._facts.get(key)

    def has(self, key: str) -> bool:
        """True when the fact exists and its value is truthy"""
        fact = self._facts.get(key)
        return fact is not None and bool(fact.object)

    def __contains__(self, key: str) -> bool:
        return key in self._facts

    def __len__(self) -> int:
        return len(self._facts)

    def query(self, pattern: str) -> List[Fact]:
        """Glob match on fact ids (case-insensitive)"""
        pattern = pattern.lower()
        return [f for key, f in self._facts.items() if fnmatch.fnmatchcase(key.lower(), pattern)]

    def all_facts(self) -> Dict[str, Any]:
        return {key: f.object for key, f in self._facts.items()}

    def snapshot(self) -> Dict[str, Fact]:
        return dict(self._facts)

    def restore(self, snapshot: Dict[str, Fact]):
        self._facts = dict(snapshot)


# ============================================================================
# RULES
# ============================================================================

@dataclass(frozen=True)
class FactCondition:
    """Holds when the fact exists with a truthy value"""
    fact_id: str


@dataclass(frozen=True)
class PatternCondition:
    """Holds when any fact matching the glob has a truthy value"""
    pattern: str


@dataclass(frozen=True)
class FunctionCondition:
    """Holds when the expression evaluates truthy against the fact base"""
    expression: Expression

    @classmethod
    def from_text(cls, text: str) -> "FunctionCondition":
        return cls(parse_expression(text))


@dataclass(frozen=True)
class TemporalCondition:
    """'recently': some rule fired within the window"""
    relation: str = "recently"
    window_seconds: float = 60.0


Condition = Union[FactCondition, PatternCondition, FunctionCondition, TemporalCondition]


@dataclass(frozen=True)
class AssertAction:
    target: str
    value: Any = True


@dataclass(frozen=True)
class RetractAction:
    target: str


@dataclass(frozen=True)
class ExecuteAction:
    target: str
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ModifyAction:
    """Merge `changes` into a dict-valued fact (created when absent)"""
    target: str
    changes: Dict[str, Any] = field(default_factory=dict)


RuleAction = Union[AssertAction, RetractAction, ExecuteAction, ModifyAction]


@dataclass
class Rule:
    id: str
    name: str
    conditions: List[Condition]
    actions: List[RuleAction]
    priority: float = 0.5
    confidence: float = 0.5

    def __post_init__(self):
        self.priority = _clamp_weight(self.priority)
        self.confidence = _clamp_weight(self.confidence)


@dataclass
class RuleFiring:
    """One attempted firing, successful or not"""
    rule_id: str
    success: bool
    timestamp: float = field(default_factory=time.time)
    error: Optional[str] = None


ActionHandler = Callable[[FactBase, Dict[str, Any], ThoughtContext], Any]


def default_rules() -> List[Rule]:
    return [
        Rule(
            id="respond_to_question",
            name="Respond to Questions",
            conditions=[FactCondition("message_contains_question")],
            actions=[ExecuteAction("generate_response", {"type": "answer"})],
            priority=0.8,
            confidence=0.9,
        ),
        Rule(
            id="pursue_goal",
            name="Pursue Active Goal",
            conditions=[FactCondition("has_active_goal"), FactCondition("goal_achievable")],
            actions=[ExecuteAction("work_on_goal")],
            priority=0.7,
            confidence=0.8,
        ),
        Rule(
            id="learn_from_failure",
            name="Learn from Failures",
            conditions=[FactCondition("action_failed"), FactCondition("failure_reason_known")],
            actions=[
                ExecuteAction("update_knowledge"),
                AssertAction("learned_from_failure"),
                RetractAction("action_failed"),
            ],
            priority=0.9,
            confidence=0.7,
        ),
    ]


# ============================================================================
# ENGINE
# ============================================================================

class RuleEngine(ReasoningEngine, LearningCapable):
    """Forward-chaining rule engine"""

    paradigm = ReasoningParadigm.RULE_BASED

    def __init__(self, config: Optional[RuleEngineConfig] = None, rules: Optional[List[Rule]] = None):
        self.config = config or RuleEngineConfig()
        self.facts = FactBase()
        self.rules: Dict[str, Rule] = {}
        self.history: deque = deque(maxlen=self.config.history_limit)
        self._context_keys: List[str] = []
        self._planning_rules: deque = deque()

        # target -> (handler, category of the agent action produced on success)
        self._handlers: Dict[str, Tuple[ActionHandler, Optional[ActionCategory]]] = {}
        self.register_action_handler("generate_response", self._generate_response, ActionCategory.COMMUNICATION)
        self.register_action_handler("work_on_goal", self._work_on_goal, ActionCategory.PROCESSING)
        self.register_action_handler("update_knowledge", self._update_knowledge, ActionCategory.LEARNING)
        self.register_action_handler("create_plan_steps", self._create_plan_steps, None)

        for rule in (rules if rules is not None else default_rules()):
            self.add_rule(rule)

        self.stats = {
            'inference_runs': 0,
            'rules_fired': 0,
            'failed_firings': 0,
            'learning_updates': 0,
            'iteration_cap_hits': 0,
        }

        logger.info(f"RuleEngine initialized ({len(self.rules)} rules, "
                    f"conflict resolution: {self.config.conflict_resolution})")

    # ------------------------------------------------------------------
    # Rule and handler management
    # ------------------------------------------------------------------

    def add_rule(self, rule: Rule):
        for condition in rule.conditions:
            if not isinstance(condition, (FactCondition, PatternCondition, FunctionCondition, TemporalCondition)):
                raise ConfigurationError(f"Rule '{rule.id}' has unsupported condition {condition!r}")
        for action in rule.actions:
            if not isinstance(action, (AssertAction, RetractAction, ExecuteAction, ModifyAction)):
                raise ConfigurationError(f"Rule '{rule.id}' has unsupported action {action!r}")
        self.rules[rule.id] = rule
        logger.debug(f"Added rule: {rule.name}")

    def remove_rule(self, rule_id: str) -> bool:
        removed = self.rules.pop(rule_id, None) is not None
        if removed:
            logger.debug(f"Removed rule: {rule_id}")
        return removed

    def register_action_handler(self, target: str, handler: ActionHandler,
                                category: Optional[ActionCategory] = ActionCategory.PROCESSING):
        """
        Register the handler for ExecuteAction(target). Handlers may be plain
        functions or coroutines. When `category` is set, every successful
        firing that executes `target` yields an agent action of that category.
        """
        self._handlers[target] = (handler, category)

    # ------------------------------------------------------------------
    # ReasoningEngine
    # ------------------------------------------------------------------

    async def think(self, context: ThoughtContext, deadline: Optional[Deadline] = None) -> ThoughtResult:
        start = time.monotonic()
        self._project_context(context)
        fired = await self._run_inference(context, deadline)

        thoughts = [f"Rule-based inference completed. Fired {len(fired)} rules."]
        actions: List[AgentAction] = []
        for rule in fired:
            rule_actions = self._actions_for_rule(rule, context)
            actions.extend(rule_actions)
            thoughts.append(f"Rule '{rule.name}' generated {len(rule_actions)} actions")

        memories = []
        if fired:
            memories.append(MemoryRecord(
                content=f"Rule-based reasoning: {', '.join(r.name for r in fired)}",
                type=MemoryType.REASONING,
                agent_id=context.agent_id,
                importance=0.7,
                tags=["reasoning", "rule_based", "inference"],
                metadata={
                    "rules_fired": [{"id": r.id, "name": r.name, "confidence": r.confidence} for r in fired],
                    "facts_used": self.facts.all_facts(),
                },
            ))

        confidence = self._confidence(fired)
        elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug(f"Rule inference: {len(fired)} fired, confidence {confidence:.2f}, {elapsed_ms:.1f}ms")

        return ThoughtResult(
            thoughts=thoughts,
            actions=actions,
            emotions=EmotionState(
                current="confident" if fired else "uncertain",
                intensity=confidence,
                triggers=[r.name for r in fired],
            ),
            memories=memories,
            confidence=confidence,
            paradigm=self.paradigm,
            metadata={"fired_rules": [r.id for r in fired], "reasoning_time_ms": elapsed_ms},
        )

    async def plan(self, context: ThoughtContext, goal: str, deadline: Optional[Deadline] = None) -> Plan:
        self.facts.assert_fact("current_goal", goal)
        self.facts.assert_fact("has_active_goal", True)
        self.facts.assert_fact("goal_achievable", self.assess_goal_achievability(goal))
        # Goal facts are context-scoped: the next think() retracts them
        for key in ("current_goal", "has_active_goal", "goal_achievable"):
            if key not in self._context_keys:
                self._context_keys.append(key)

        planning_rule_id = f"planning_{goal_slug(goal)}"
        existing = self.rules.get(planning_rule_id)
        # goals sharing a slug rebind the rule to the latest one
        if existing is None or existing.name != f"Planning for {goal}":
            self.add_rule(Rule(
                id=planning_rule_id,
                name=f"Planning for {goal}",
                conditions=[
                    FactCondition("has_active_goal"),
                    FactCondition("goal_achievable"),
                    # only eligible while this exact goal is the current one
                    FunctionCondition(Compare("==", FactRef("current_goal"), Literal(goal))),
                ],
                actions=[AssertAction("plan_created"), ExecuteAction("create_plan_steps")],
                priority=0.8,
                confidence=0.7,
            ))
            if planning_rule_id in self._planning_rules:
                self._planning_rules.remove(planning_rule_id)
            self._planning_rules.append(planning_rule_id)
            while len(self._planning_rules) > self.config.planning_rule_limit:
                self.remove_rule(self._planning_rules.popleft())

        specs = [
            ("analyze_goal", f"Analyze goal: {goal}", {"goal": goal}, ["goal_analyzed"]),
            ("gather_resources", "Gather required resources", {}, ["resources_gathered"]),
            ("execute_plan", "Execute the plan", {}, ["plan_executed"]),
        ]
        steps = []
        for i, (action, description, params, effects) in enumerate(specs, start=1):
            steps.append(PlanStep(
                id=f"step_{i}",
                action=action,
                description=description,
                parameters=params,
                preconditions=[steps[-1].id] if steps else [],
                effects=effects,
            ))

        return Plan(
            goal=goal,
            steps=steps,
            priority=0.8,
            estimated_duration=1_800_000,
            confidence=self.rules[planning_rule_id].confidence,
            metadata={"paradigm": self.paradigm.value, "planning_rule": planning_rule_id},
        )

    async def decide(self, context: ThoughtContext, options: List[Decision],
                     deadline: Optional[Deadline] = None) -> Decision:
        self._require_options(options)
        if len(options) == 1:
            return options[0]

        best, best_score = options[0], self._score_option(options[0])
        for option in options[1:]:
            score = self._score_option(option)
            if score > best_score:
                best, best_score = option, score
        logger.debug(f"Rule-based decision: {best.id} (score {best_score:.2f})")
        return best

    # ------------------------------------------------------------------
    # LearningCapable
    # ------------------------------------------------------------------

    async def learn(self, experience: Experience):
        reward = experience.reward.value
        if -0.5 <= reward <= 0.5:
            return

        now = time.time()
        window = self.config.learning_window_seconds
        recent = [f for f in self.history if now - f.timestamp < window]
        if reward > 0.5:
            targets = [f.rule_id for f in recent if f.success]
            direction = 1.0
        else:
            targets = [f.rule_id for f in recent]
            direction = -1.0
            self.facts.assert_fact("action_failed", True)
            reason = experience.reward.context.get("reason") or experience.action.parameters.get("error")
            self.facts.assert_fact("failure_reason_known", bool(reason))

        named = experience.action.parameters.get("rule_id")
        if named:
            targets.append(named)

        adjusted = []
        for rule_id in dict.fromkeys(targets):
            rule = self.rules.get(rule_id)
            if rule is None:
                continue
            rule.priority = _clamp_weight(rule.priority + direction * self.config.priority_step)
            rule.confidence = _clamp_weight(rule.confidence + direction * self.config.confidence_step)
            adjusted.append(rule_id)

        self.stats['learning_updates'] += 1
        logger.info(f"Rule learning: {experience.reward.type.value} reward {reward:+.2f}, adjusted {adjusted}")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_state(self) -> Dict[str, Any]:
        return {
            "rules": {
                rule_id: {"priority": r.priority, "confidence": r.confidence}
                for rule_id, r in self.rules.items()
            }
        }

    def load_state(self, state: Dict[str, Any]):
        for rule_id, weights in state.get("rules", {}).items():
            rule = self.rules.get(rule_id)
            if rule is None:
                continue
            rule.priority = _clamp_weight(float(weights.get("priority", rule.priority)))
            rule.confidence = _clamp_weight(float(weights.get("confidence", rule.confidence)))

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            'rule_count': len(self.rules),
            'fact_count': len(self.facts),
            'conflict_resolution': self.config.conflict_resolution,
        }

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def _project_context(self, context: ThoughtContext):
        for key in self._context_keys:
            self.facts.retract(key)

        projected: Dict[str, Any] = {
            "agent_id": context.agent_id,
            "agent_status": context.status.value,
            "event_count": len(context.events),
        }
        for event in context.events:
            message = event.message
            if message is not None:
                projected["has_message"] = True
                projected["last_message"] = message
                projected["message_contains_question"] = "?" in message
            if event.data.get("mentioned") or "mention" in event.type:
                projected["was_mentioned"] = True

        if context.goal:
            projected["current_goal"] = context.goal
            projected["has_active_goal"] = True
            projected["goal_achievable"] = self.assess_goal_achievability(context.goal)

        projected["has_memories"] = len(context.memories) > 0
        projected["memory_count"] = len(context.memories)

        for key, value in projected.items():
            self.facts.assert_fact(key, value)
        self._context_keys = list(projected)

    async def _run_inference(self, context: ThoughtContext, deadline: Optional[Deadline]) -> List[Rule]:
        self.stats['inference_runs'] += 1
        fired: List[Rule] = []
        attempted = set()

        for _ in range(self.config.max_iterations):
            if deadline is not None:
                deadline.check()
            eligible = [r for r in self.rules.values() if r.id not in attempted and self._conditions_hold(r)]
            selected = self.resolve_conflicts(eligible)
            if selected is None:
                break
            attempted.add(selected.id)
            if await self._fire(selected, context):
                fired.append(selected)
        else:
            self.stats['iteration_cap_hits'] += 1
            logger.debug(f"Inference stopped at max_iterations={self.config.max_iterations}")

        return fired

    def resolve_conflicts(self, rules: List[Rule]) -> Optional[Rule]:
        """Pick one eligible rule; ties keep the earliest-registered rule"""
        if not rules:
            return None
        strategy = self.config.conflict_resolution

        if strategy == "priority":
            key = lambda r: r.priority
        elif strategy == "specificity":
            key = lambda r: (len(r.conditions), r.priority)
        elif strategy == "recency":
            last_success = self._last_success_times()
            key = lambda r: (last_success.get(r.id, float("-inf")), r.priority)
        else:
            raise ConfigurationError(f"Unknown conflict resolution strategy '{strategy}'")

        best = rules[0]
        for rule in rules[1:]:
            if key(rule) > key(best):
                best = rule
        return best

    def _last_success_times(self) -> Dict[str, float]:
        times: Dict[str, float] = {}
        for firing in self.history:
            if firing.success:
                times[firing.rule_id] = max(times.get(firing.rule_id, float("-inf")), firing.timestamp)
        return times

    def _conditions_hold(self, rule: Rule) -> bool:
        return all(self._condition_holds(c) for c in rule.conditions)

    def _condition_holds(self, condition: Condition) -> bool:
        if isinstance(condition, FactCondition):
            return self.facts.has(condition.fact_id)
        elif isinstance(condition, PatternCondition):
            return any(bool(f.object) for f in self.facts.query(condition.pattern))
        elif isinstance(condition, FunctionCondition):
            try:
                return holds(condition.expression, self.facts.get)
            except (ExpressionError, TypeError) as e:
                logger.warning(f"Condition expression failed: {e}")
                return False
        elif isinstance(condition, TemporalCondition):
            if condition.relation == "recently":
                now = time.time()
                return any(now - f.timestamp < condition.window_seconds for f in self.history)
            return False
        raise TypeError(f"Unsupported condition: {condition!r}")

    async def _fire(self, rule: Rule, context: ThoughtContext) -> bool:
        """Apply every action of the rule; a failed firing leaves the fact base untouched"""
        snapshot = self.facts.snapshot()
        try:
            for action in rule.actions:
                await self._apply_action(rule, action, context)
        except RuleActionError as e:
            self.facts.restore(snapshot)
            self.history.append(RuleFiring(rule.id, success=False, error=str(e)))
            self.stats['failed_firings'] += 1
            logger.warning(f"Rule firing failed: {e}")
            return False

        self.history.append(RuleFiring(rule.id, success=True))
        self.stats['rules_fired'] += 1
        logger.debug(f"Fired rule: {rule.name}")
        return True

    async def _apply_action(self, rule: Rule, action: RuleAction, context: ThoughtContext):
        if isinstance(action, AssertAction):
            self.facts.assert_fact(action.target, action.value)
        elif isinstance(action, RetractAction):
            self.facts.retract(action.target)
        elif isinstance(action, ModifyAction):
            current = self.facts.get(action.target)
            merged = dict(current) if isinstance(current, dict) else {}
            merged.update(action.changes)
            self.facts.assert_fact(action.target, merged)
        elif isinstance(action, ExecuteAction):
            entry = self._handlers.get(action.target)
            if entry is None:
                raise RuleActionError(rule.id, action.target, "no handler registered")
            handler, _ = entry
            try:
                outcome = handler(self.facts, dict(action.parameters), context)
                if asyncio.iscoroutine(outcome):
                    await outcome
            except RuleActionError:
                raise
            except Exception as e:
                raise RuleActionError(rule.id, action.target, str(e)) from e
        else:
            raise TypeError(f"Unsupported rule action: {action!r}")

    def _actions_for_rule(self, rule: Rule, context: ThoughtContext) -> List[AgentAction]:
        actions = []
        for action in rule.actions:
            if not isinstance(action, ExecuteAction):
                continue
            _, category = self._handlers.get(action.target, (None, None))
            if category is None:
                continue
            params: Dict[str, Any] = {
                "rule_id": rule.id,
                "rule_name": rule.name,
                "confidence": rule.confidence,
            }
            params.update(action.parameters)
            if action.target == "work_on_goal":
                params["goal"] = self.facts.get("current_goal")
            actions.append(AgentAction(
                type=category,
                action="respond" if action.target == "generate_response" else action.target,
                parameters=params,
                agent_id=context.agent_id,
                priority=rule.priority,
            ))
        return actions

    @staticmethod
    def _confidence(fired: List[Rule]) -> float:
        if not fired:
            return 0.1
        return min(1.0, sum(r.confidence for r in fired) / len(fired))

    def _score_option(self, option: Decision) -> float:
        score = option.confidence or 0.5
        if self.facts.has("prefer_high_confidence"):
            score *= 1.2
        if self.facts.has("prefer_quick_actions") and option.metadata.get("quick"):
            score *= 1.1
        if (self.facts.has("message_contains_question") and option.action is not None
                and option.action.type == ActionCategory.COMMUNICATION):
            score *= 1.1
        return min(1.0, score)

    @staticmethod
    def assess_goal_achievability(goal: str) -> bool:
        lowered = goal.lower()
        return any(keyword in lowered for keyword in GOAL_ACHIEVABLE_KEYWORDS)

    # ------------------------------------------------------------------
    # Built-in execute handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _generate_response(facts: FactBase, parameters: Dict[str, Any], context: ThoughtContext):
        facts.assert_fact("response_generated", True)
        facts.assert_fact("response_type", parameters.get("type", "general"))

    @staticmethod
    def _work_on_goal(facts: FactBase, parameters: Dict[str, Any], context: ThoughtContext):
        facts.assert_fact("working_on_goal", True)

    @staticmethod
    def _update_knowledge(facts: FactBase, parameters: Dict[str, Any], context: ThoughtContext):
        facts.assert_fact("knowledge_updated", True)

    @staticmethod
    def _create_plan_steps(facts: FactBase, parameters: Dict[str, Any], context: ThoughtContext):
        facts.assert_fact("plan_steps_created", True)
