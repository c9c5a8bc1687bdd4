#!/usr/bin/env python3
"""
Planning Engine
===============
Two cooperating planners behind one reasoning paradigm:

1. HTN decomposition: a goal string selects decomposition methods by keyword,
   compound tasks expand recursively into primitive tasks (bounded depth and
   task count), results are cached per (goal, task budget).
2. STRIPS-style forward search: states are sets of ground predicate strings,
   actions carry typed precondition/effect trees, breadth-first search with
   duplicate-state pruning, a plan length cap and a polled deadline.

Action instantiation is best-effort: each schema yields at most one ground
instance per state (first consistent binding of its positive preconditions,
remaining parameters bound by object type or left as variables).
"""

import asyncio
import logging
import re
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple, Union, FrozenSet, Set

from ..agents.shared_types import (
    ThoughtContext, ThoughtResult, Plan, PlanStep, PlanStatus, Decision, Experience,
    AgentAction, ActionCategory, EmotionState, MemoryRecord, MemoryType,
    ReasoningParadigm
)
from ..config import PlanningConfig
from .base import ReasoningEngine, LearningCapable, Deadline, goal_slug

logger = logging.getLogger(__name__)

AGENT_OBJECT = "self"

_PREDICATE_RE = re.compile(r"^\s*([A-Za-z_][\w]*)\s*\((.*)\)\s*$")


# ============================================================================
# PDDL EXPRESSIONS
# ============================================================================

@dataclass(frozen=True)
class Atom:
    """predicate(arg, ...) where args are parameter names or constants"""
    predicate: str
    args: Tuple[str, ...] = ()

    def ground(self, binding: Dict[str, str]) -> str:
        return format_predicate(self.predicate, tuple(binding.get(a, a) for a in self.args))


@dataclass(frozen=True)
class Conjunction:
    operands: Tuple["PDDLExpression", ...]


@dataclass(frozen=True)
class Negation:
    operand: Atom


PDDLExpression = Union[Atom, Conjunction, Negation]


@dataclass(frozen=True)
class AddEffect:
    atom: Atom


@dataclass(frozen=True)
class DeleteEffect:
    atom: Atom


Effect = Union[AddEffect, DeleteEffect]


def format_predicate(name: str, args: Tuple[str, ...]) -> str:
    return f"{name}({', '.join(args)})"


def parse_predicate(text: str) -> Tuple[str, Tuple[str, ...]]:
    match = _PREDICATE_RE.match(text)
    if not match:
        return text.strip(), ()
    args = tuple(a.strip() for a in match.group(2).split(",") if a.strip())
    return match.group(1), args


def split_precondition(expr: PDDLExpression) -> Tuple[List[Atom], List[Atom]]:
    """Flatten into (positive atoms, negated atoms)"""
    if isinstance(expr, Atom):
        return [expr], []
    elif isinstance(expr, Negation):
        return [], [expr.operand]
    elif isinstance(expr, Conjunction):
        positives, negatives = [], []
        for operand in expr.operands:
            pos, neg = split_precondition(operand)
            positives.extend(pos)
            negatives.extend(neg)
        return positives, negatives
    raise TypeError(f"Unsupported PDDL expression: {expr!r}")


# ============================================================================
# PDDL DOMAIN / PROBLEM / PLAN
# ============================================================================

@dataclass
class PDDLAction:
    """Action schema"""
    name: str
    parameters: List[Tuple[str, str]]  # (name, type)
    precondition: PDDLExpression
    effects: List[Effect]
    cost: float = 1.0


@dataclass
class PDDLActionInstance:
    """Ground (or partially ground) action"""
    name: str
    parameters: Dict[str, str]
    preconditions: List[str]
    negative_preconditions: List[str]
    add_effects: List[str]
    delete_effects: List[str]
    cost: float = 1.0

    @property
    def effects(self) -> List[str]:
        return self.add_effects + [f"not {p}" for p in self.delete_effects]

    def applicable(self, state: FrozenSet[str]) -> bool:
        return all(p in state for p in self.preconditions) and not any(
            p in state for p in self.negative_preconditions
        )

    def apply(self, state: FrozenSet[str]) -> FrozenSet[str]:
        return frozenset((set(state) - set(self.delete_effects)) | set(self.add_effects))


@dataclass
class PDDLProblem:
    objects: Dict[str, str]  # object -> type
    initial_state: FrozenSet[str]
    goal: FrozenSet[str]
    name: str = "problem"


@dataclass
class PDDLPlan:
    actions: List[PDDLActionInstance] = field(default_factory=list)
    cost: float = 0.0
    length: int = 0
    valid: bool = False
    expanded: int = 0
    timed_out: bool = False


def default_domain() -> Dict[str, PDDLAction]:
    actions = [
        PDDLAction(
            name="move",
            parameters=[("agent", "agent"), ("from", "location"), ("to", "location")],
            precondition=Conjunction((Atom("at", ("agent", "from")), Atom("connected", ("from", "to")))),
            effects=[DeleteEffect(Atom("at", ("agent", "from"))), AddEffect(Atom("at", ("agent", "to")))],
        ),
        PDDLAction(
            name="communicate",
            parameters=[("agent", "agent"), ("message", "message")],
            precondition=Conjunction((Atom("knows", ("agent", "message")),)),
            effects=[AddEffect(Atom("communicated", ("agent", "message")))],
        ),
        PDDLAction(
            name="acquire_resource",
            parameters=[("agent", "agent"), ("resource", "resource")],
            precondition=Conjunction((Atom("available", ("resource",)),)),
            effects=[AddEffect(Atom("has", ("agent", "resource"))), DeleteEffect(Atom("available", ("resource",)))],
        ),
        PDDLAction(
            name="work_on_goal",
            parameters=[("agent", "agent"), ("goal", "goal")],
            precondition=Conjunction((Atom("has", ("agent", "knowledge")), Atom("has", ("agent", "tools")))),
            effects=[AddEffect(Atom("achieved", ("goal",)))],
        ),
    ]
    return {a.name: a for a in actions}


def default_initial_state() -> FrozenSet[str]:
    return frozenset({
        f"at({AGENT_OBJECT}, home)",
        "available(knowledge)",
        "available(tools)",
        "connected(home, workspace)",
        "connected(workspace, communication_channel)",
    })


def default_objects() -> Dict[str, str]:
    return {
        AGENT_OBJECT: "agent",
        "home": "location",
        "workspace": "location",
        "communication_channel": "location",
        "knowledge": "resource",
        "tools": "resource",
    }


def validate_plan(actions: List[PDDLActionInstance], initial_state: FrozenSet[str],
                  goal: FrozenSet[str]) -> bool:
    """True iff applying the actions' effects in order reaches a goal superset"""
    state = frozenset(initial_state)
    for action in actions:
        state = action.apply(state)
    return goal <= state


# ============================================================================
# HTN
# ============================================================================

@dataclass
class HTNTask:
    name: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    preconditions: List[str] = field(default_factory=list)
    effects: List[str] = field(default_factory=list)
    cost: float = 1.0
    subtasks: List[str] = field(default_factory=list)

    @property
    def primitive(self) -> bool:
        return not self.subtasks


# keyword -> decomposition of the root task
KEYWORD_METHODS: List[Tuple[Tuple[str, ...], List[str]]] = [
    (("respond", "reply", "answer"), ["analyze_request", "generate_response", "validate_response"]),
    (("learn", "research", "study"), ["gather_information", "analyze_information", "synthesize_knowledge"]),
    (("plan", "organize", "schedule"), ["analyze_goal", "identify_subgoals", "sequence_tasks", "allocate_resources"]),
    (("build", "create", "implement"), ["design_solution", "implement_solution", "test_solution", "deliver_result"]),
    (("communicate", "message", "report"), ["compose_message", "send_message", "await_acknowledgement"]),
]
DEFAULT_METHOD = ["analyze_goal", "execute_goal", "review_outcome"]

# compound task -> subtasks
COMPOUND_METHODS: Dict[str, List[str]] = {
    "gather_information": ["identify_sources", "collect_data"],
    "implement_solution": ["prepare_workspace", "construct_solution"],
    "deliver_result": ["package_result", "send_message"],
}


class HTNPlanner:
    """Keyword-dispatched hierarchical task decomposition with an LRU cache"""

    def __init__(self, max_depth: int = 5, max_tasks: int = 8, cache_size: int = 128):
        self.max_depth = max_depth
        self.max_tasks = max_tasks
        self.cache_size = cache_size
        self._cache: "OrderedDict[Tuple[str, int], List[HTNTask]]" = OrderedDict()
        self.cache_hits = 0

    def decompose(self, goal: str) -> List[HTNTask]:
        key = (goal.strip().lower(), self.max_tasks)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            self.cache_hits += 1
            return list(cached)

        root = HTNTask(name="achieve_goal", parameters={"goal": goal}, subtasks=self.select_method(goal))
        primitives: List[HTNTask] = []
        self._expand(root, 0, primitives, goal)
        tasks = primitives[:self.max_tasks]

        self._cache[key] = tasks
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        logger.debug(f"HTN decomposed '{goal[:40]}' into {len(tasks)} tasks")
        return list(tasks)

    @staticmethod
    def select_method(goal: str) -> List[str]:
        """Subtasks of every matching method, ordered by keyword position in the goal"""
        lowered = goal.lower()
        matches = []
        for keywords, subtasks in KEYWORD_METHODS:
            positions = [m.start() for kw in keywords for m in re.finditer(rf"\b{kw}", lowered)]
            if positions:
                matches.append((min(positions), subtasks))
        if not matches:
            return list(DEFAULT_METHOD)
        matches.sort(key=lambda m: m[0])
        ordered: List[str] = []
        for _, subtasks in matches:
            for name in subtasks:
                if name not in ordered:
                    ordered.append(name)
        return ordered

    def _expand(self, task: HTNTask, depth: int, out: List[HTNTask], goal: str):
        if len(out) >= self.max_tasks:
            return
        if task.primitive or depth >= self.max_depth:
            if all(t.name != task.name for t in out):
                out.append(HTNTask(name=task.name, parameters=task.parameters,
                                   effects=[f"{task.name}_completed"], cost=task.cost))
            return
        for name in task.subtasks:
            child = HTNTask(name=name, parameters={"goal": goal}, subtasks=list(COMPOUND_METHODS.get(name, [])))
            self._expand(child, depth + 1, out, goal)

    def clear_cache(self):
        self._cache.clear()


# ============================================================================
# FORWARD SEARCH
# ============================================================================

class ForwardSearchPlanner:
    """Breadth-first STRIPS search"""

    def __init__(self, domain: Dict[str, PDDLAction], max_plan_length: int = 10, yield_every: int = 64):
        self.domain = domain
        self.max_plan_length = max_plan_length
        self.yield_every = yield_every

    def instantiate(self, action: PDDLAction, state: FrozenSet[str],
                    objects: Dict[str, str]) -> Optional[PDDLActionInstance]:
        positives, negatives = split_precondition(action.precondition)
        param_names = {name for name, _ in action.parameters}
        facts = [parse_predicate(p) for p in sorted(state)]

        binding = self._bind(positives, 0, {}, facts, param_names)
        if binding is None:
            return None

        for name, type_ in action.parameters:
            if name not in binding:
                candidate = next((obj for obj, t in objects.items() if t == type_), None)
                if candidate is not None:
                    binding[name] = candidate

        instance = PDDLActionInstance(
            name=action.name,
            parameters={name: binding.get(name, name) for name, _ in action.parameters},
            preconditions=[a.ground(binding) for a in positives],
            negative_preconditions=[a.ground(binding) for a in negatives],
            add_effects=[e.atom.ground(binding) for e in action.effects if isinstance(e, AddEffect)],
            delete_effects=[e.atom.ground(binding) for e in action.effects if isinstance(e, DeleteEffect)],
            cost=action.cost,
        )
        return instance if instance.applicable(state) else None

    def _bind(self, atoms: List[Atom], index: int, binding: Dict[str, str],
              facts: List[Tuple[str, Tuple[str, ...]]], params: Set[str]) -> Optional[Dict[str, str]]:
        if index == len(atoms):
            return dict(binding)
        atom = atoms[index]
        for predicate, args in facts:
            if predicate != atom.predicate or len(args) != len(atom.args):
                continue
            extended = dict(binding)
            consistent = True
            for term, value in zip(atom.args, args):
                if term in params:
                    if extended.setdefault(term, value) != value:
                        consistent = False
                        break
                elif term != value:
                    consistent = False
                    break
            if consistent:
                result = self._bind(atoms, index + 1, extended, facts, params)
                if result is not None:
                    return result
        return None

    def successors(self, state: FrozenSet[str], objects: Dict[str, str]) -> List[PDDLActionInstance]:
        result = []
        for action in self.domain.values():
            instance = self.instantiate(action, state, objects)
            if instance is not None:
                result.append(instance)
        return result

    async def solve(self, problem: PDDLProblem, deadline: Deadline) -> PDDLPlan:
        initial = frozenset(problem.initial_state)
        queue = deque([(initial, [], 0.0)])
        visited = {initial}
        expanded = 0

        while queue:
            if deadline.expired():
                logger.warning(f"Forward search timed out after {expanded} expansions "
                               f"({deadline.elapsed_ms:.0f}ms)")
                return PDDLPlan(expanded=expanded, timed_out=True)

            state, path, cost = queue.popleft()
            if problem.goal <= state:
                return PDDLPlan(actions=path, cost=cost, length=len(path), valid=True, expanded=expanded)
            if len(path) >= self.max_plan_length:
                continue

            for instance in self.successors(state, problem.objects):
                next_state = instance.apply(state)
                if next_state in visited:
                    continue
                visited.add(next_state)
                queue.append((next_state, path + [instance], cost + instance.cost))

            expanded += 1
            if expanded % self.yield_every == 0:
                await asyncio.sleep(0)

        logger.debug(f"Forward search exhausted after {expanded} expansions")
        return PDDLPlan(expanded=expanded)


# ============================================================================
# ENGINE
# ============================================================================

ACTION_CATEGORIES = {
    "communicate": ActionCategory.COMMUNICATION,
    "move": ActionCategory.SYSTEM,
    "acquire_resource": ActionCategory.SYSTEM,
    "work_on_goal": ActionCategory.PROCESSING,
}


class PlanningEngine(ReasoningEngine, LearningCapable):
    """HTN + forward-search planning paradigm"""

    paradigm = ReasoningParadigm.PLANNING

    def __init__(self, config: Optional[PlanningConfig] = None):
        self.config = config or PlanningConfig()
        self.domain = default_domain()
        self.initial_state = default_initial_state()
        self.objects = default_objects()
        self.htn = HTNPlanner(
            max_depth=self.config.htn_max_depth,
            max_tasks=self.config.htn_max_tasks,
            cache_size=self.config.htn_cache_size,
        )
        self.search = ForwardSearchPlanner(
            self.domain,
            max_plan_length=self.config.max_plan_length,
            yield_every=self.config.yield_every,
        )
        self.planning_history: deque = deque(maxlen=100)
        self.stats = {
            'searches': 0,
            'plans_found': 0,
            'timeouts': 0,
            'nodes_expanded': 0,
        }
        logger.info(f"PlanningEngine initialized ({len(self.domain)} actions, "
                    f"max length {self.config.max_plan_length}, timeout {self.config.timeout_ms}ms)")

    # ------------------------------------------------------------------
    # Problems
    # ------------------------------------------------------------------

    def problem_from_context(self, context: ThoughtContext) -> PDDLProblem:
        objects = dict(self.objects)
        state = set(self.initial_state)
        if context.message_events:
            objects["response"] = "message"
            state.add(format_predicate("knows", (AGENT_OBJECT, "response")))

        if context.goal:
            slug = goal_slug(context.goal)
            objects[slug] = "goal"
            goal = frozenset({format_predicate("achieved", (slug,))})
        else:
            objects.setdefault("response", "message")
            goal = frozenset({format_predicate("communicated", (AGENT_OBJECT, "response"))})
        return PDDLProblem(objects=objects, initial_state=frozenset(state), goal=goal, name="context")

    def problem_for_goal(self, goal: str) -> PDDLProblem:
        slug = goal_slug(goal)
        objects = dict(self.objects)
        objects[slug] = "goal"
        return PDDLProblem(
            objects=objects,
            initial_state=self.initial_state,
            goal=frozenset({format_predicate("achieved", (slug,))}),
            name=slug,
        )

    async def solve(self, problem: PDDLProblem, deadline: Optional[Deadline] = None) -> PDDLPlan:
        budget = self.config.timeout_ms
        if deadline is not None:
            budget = min(budget, deadline.remaining_ms)
        plan = await self.search.solve(problem, Deadline(budget, label="planning"))

        self.stats['searches'] += 1
        self.stats['nodes_expanded'] += plan.expanded
        if plan.valid:
            self.stats['plans_found'] += 1
        if plan.timed_out:
            self.stats['timeouts'] += 1
        self.planning_history.append({"problem": problem.name, "valid": plan.valid, "length": plan.length})
        return plan

    # ------------------------------------------------------------------
    # ReasoningEngine
    # ------------------------------------------------------------------

    async def think(self, context: ThoughtContext, deadline: Optional[Deadline] = None) -> ThoughtResult:
        problem = self.problem_from_context(context)
        plan = await self.solve(problem, deadline)
        thoughts = [
            f"Generated planning problem with goal {sorted(problem.goal)}",
            f"Generated plan with {plan.length} steps" if plan.valid else
            f"No plan found ({'timed out' if plan.timed_out else 'search exhausted'})",
        ]

        actions = []
        if plan.valid:
            for instance in plan.actions:
                actions.append(AgentAction(
                    type=ACTION_CATEGORIES.get(instance.name, ActionCategory.PROCESSING),
                    action=instance.name,
                    parameters=dict(instance.parameters),
                    agent_id=context.agent_id,
                    priority=0.8,
                ))
            thoughts.append(f"Converted plan to {len(actions)} executable actions")

        if context.goal:
            tasks = self.htn.decompose(context.goal)
            thoughts.append(f"HTN decomposition: {' -> '.join(t.name for t in tasks)}")

        confidence = 0.8 if plan.valid else 0.3
        return ThoughtResult(
            thoughts=thoughts,
            actions=actions,
            emotions=EmotionState(
                current="confident" if plan.valid else "frustrated",
                intensity=confidence,
                triggers=["planning"],
            ),
            memories=[MemoryRecord(
                content=f"Planning: {'successful' if plan.valid else 'failed'} plan with {plan.length} steps",
                type=MemoryType.REASONING,
                agent_id=context.agent_id,
                importance=0.8 if plan.valid else 0.5,
                tags=["reasoning", "pddl", "planning"],
                metadata={"goal": sorted(problem.goal), "actions": [a.name for a in plan.actions]},
            )],
            confidence=confidence,
            paradigm=self.paradigm,
            metadata={"plan_valid": plan.valid, "expanded": plan.expanded},
        )

    async def plan(self, context: ThoughtContext, goal: str, deadline: Optional[Deadline] = None) -> Plan:
        problem = self.problem_for_goal(goal)
        pddl_plan = await self.solve(problem, deadline)
        tasks = self.htn.decompose(goal)

        steps: List[PlanStep] = []

        def add_step(action: str, description: str, parameters: Dict[str, Any], effects: List[str]):
            steps.append(PlanStep(
                id=f"step_{len(steps) + 1}",
                action=action,
                description=description,
                parameters=parameters,
                preconditions=[steps[-1].id] if steps else [],
                effects=effects,
            ))

        if pddl_plan.valid:
            for instance in pddl_plan.actions:
                add_step(
                    instance.name,
                    f"{instance.name} with parameters: {instance.parameters}",
                    {**instance.parameters, "source": "pddl"},
                    list(instance.add_effects),
                )
        for task in tasks:
            add_step(
                task.name,
                task.name.replace("_", " ").capitalize(),
                {**task.parameters, "source": "htn"},
                list(task.effects),
            )

        logger.info(f"Planned '{goal[:50]}': {len(steps)} steps "
                    f"(search {'ok' if pddl_plan.valid else 'failed'}, {len(tasks)} HTN tasks)")
        return Plan(
            goal=goal,
            steps=steps,
            priority=0.8,
            estimated_duration=len(steps) * 30_000,
            status=PlanStatus.PENDING,
            confidence=0.8 if pddl_plan.valid else 0.6,
            metadata={
                "paradigm": self.paradigm.value,
                "pddl_valid": pddl_plan.valid,
                "pddl_cost": pddl_plan.cost,
                "htn_tasks": [t.name for t in tasks],
            },
        )

    async def decide(self, context: ThoughtContext, options: List[Decision],
                     deadline: Optional[Deadline] = None) -> Decision:
        self._require_options(options)
        if len(options) == 1:
            return options[0]

        plans = await asyncio.gather(*(
            self.solve(self.problem_for_goal(option.description or option.id), deadline)
            for option in options
        ))
        scores = [self.score_plan(plan) + option.confidence for option, plan in zip(options, plans)]
        best = max(range(len(options)), key=lambda i: (scores[i], -i))
        return options[best]

    async def learn(self, experience: Experience):
        action = self.domain.get(experience.action.action)
        if action is None:
            return
        reward = experience.reward.value
        if reward > 0.5:
            action.cost = max(0.1, action.cost * 0.9)
        elif reward < -0.5:
            action.cost = action.cost * 1.1
        else:
            return
        logger.debug(f"Action '{action.name}' cost now {action.cost:.2f}")

    @staticmethod
    def score_plan(plan: PDDLPlan) -> float:
        if not plan.valid:
            return 0.0
        return (1 / (1 + plan.length) + 1 / (1 + plan.cost)) / 2

    def export_state(self) -> Dict[str, Any]:
        return {"action_costs": {name: a.cost for name, a in self.domain.items()}}

    def load_state(self, state: Dict[str, Any]):
        for name, cost in state.get("action_costs", {}).items():
            if name in self.domain:
                self.domain[name].cost = float(cost)

    def get_stats(self) -> Dict[str, Any]:
        return {**self.stats, 'htn_cache_hits': self.htn.cache_hits}
