"""Tests for HTN decomposition, forward search and the planning engine."""

from __future__ import annotations

import pytest

from hybrid_cognition.agents.shared_types import (
    ActionCategory,
    AgentEvent,
    Decision,
    PlanStatus,
    ThoughtContext,
)
from hybrid_cognition.config import PlanningConfig
from hybrid_cognition.reasoning.base import Deadline
from hybrid_cognition.reasoning.planning_engine import (
    AGENT_OBJECT,
    AddEffect,
    Atom,
    Conjunction,
    DeleteEffect,
    ForwardSearchPlanner,
    HTNPlanner,
    Negation,
    PDDLAction,
    PDDLProblem,
    PlanningEngine,
    default_domain,
    default_initial_state,
    default_objects,
    format_predicate,
    parse_predicate,
    validate_plan,
)


def _goal_problem(slug="ship_it"):
    objects = default_objects()
    objects[slug] = "goal"
    return PDDLProblem(
        objects=objects,
        initial_state=default_initial_state(),
        goal=frozenset({format_predicate("achieved", (slug,))}),
    )


class TestPredicates:
    def test_format_and_parse(self):
        text = format_predicate("at", (AGENT_OBJECT, "home"))

        assert text == "at(self, home)"
        assert parse_predicate(text) == ("at", ("self", "home"))
        assert parse_predicate("ready") == ("ready", ())


class TestHTNPlanner:
    """Hierarchical decomposition."""

    def test_respond_goal_uses_respond_method(self):
        tasks = HTNPlanner().decompose("respond to the support ticket")

        assert [t.name for t in tasks] == ["analyze_request", "generate_response", "validate_response"]
        assert all(t.primitive for t in tasks)
        assert tasks[0].effects == ["analyze_request_completed"]

    def test_unknown_goal_uses_default_method(self):
        tasks = HTNPlanner().decompose("ponder")
        assert [t.name for t in tasks] == ["analyze_goal", "execute_goal", "review_outcome"]

    def test_compound_tasks_expand_recursively(self):
        tasks = HTNPlanner(max_tasks=20).decompose("research the market")

        assert [t.name for t in tasks] == [
            "identify_sources", "collect_data", "analyze_information", "synthesize_knowledge",
        ]

    def test_depth_limit_keeps_compound_task(self):
        tasks = HTNPlanner(max_depth=1, max_tasks=20).decompose("research the market")
        assert tasks[0].name == "gather_information"

    def test_methods_follow_keyword_order_and_task_cap(self):
        planner = HTNPlanner(max_tasks=4)
        tasks = planner.decompose("plan the launch then build the site")

        assert len(tasks) == 4
        assert [t.name for t in tasks] == ["analyze_goal", "identify_subgoals", "sequence_tasks", "allocate_resources"]

    def test_decomposition_is_cached(self):
        planner = HTNPlanner(cache_size=2)
        first = planner.decompose("Respond to Alice")
        second = planner.decompose("respond to alice  ")

        assert [t.name for t in first] == [t.name for t in second]
        assert planner.cache_hits == 1

        planner.decompose("learn chess")
        planner.decompose("build a shed")
        planner.decompose("respond to alice")
        assert planner.cache_hits == 1


class TestForwardSearch:
    """STRIPS breadth-first search."""

    @pytest.mark.asyncio
    async def test_finds_valid_plan_for_goal(self):
        planner = ForwardSearchPlanner(default_domain())
        problem = _goal_problem()

        plan = await planner.solve(problem, Deadline(5000))

        assert plan.valid
        assert plan.length == 3
        assert [a.name for a in plan.actions] == ["acquire_resource", "acquire_resource", "work_on_goal"]
        assert validate_plan(plan.actions, problem.initial_state, problem.goal)

    @pytest.mark.asyncio
    async def test_valid_iff_effects_reach_goal(self):
        planner = ForwardSearchPlanner(default_domain())
        problem = _goal_problem()
        plan = await planner.solve(problem, Deadline(5000))

        assert validate_plan(plan.actions, problem.initial_state, problem.goal) is plan.valid
        assert not validate_plan(plan.actions[:-1], problem.initial_state, problem.goal)

    @pytest.mark.asyncio
    async def test_unreachable_goal_is_invalid_not_an_error(self):
        planner = ForwardSearchPlanner(default_domain())
        problem = PDDLProblem(
            objects=default_objects(),
            initial_state=default_initial_state(),
            goal=frozenset({"at(self, moon)"}),
        )

        plan = await planner.solve(problem, Deadline(5000))

        assert plan.valid is False
        assert plan.actions == []
        assert plan.timed_out is False

    @pytest.mark.asyncio
    async def test_plan_length_cap(self):
        planner = ForwardSearchPlanner(default_domain(), max_plan_length=2)
        plan = await planner.solve(_goal_problem(), Deadline(5000))

        assert plan.valid is False

    @pytest.mark.asyncio
    async def test_expired_deadline_stops_search(self):
        planner = ForwardSearchPlanner(default_domain())
        plan = await planner.solve(_goal_problem(), Deadline(0))

        assert plan.timed_out
        assert plan.valid is False

    def test_negative_preconditions_block_application(self):
        action = PDDLAction(
            name="enter",
            parameters=[("agent", "agent")],
            precondition=Conjunction((Atom("outside", ("agent",)), Negation(Atom("locked", ())))),
            effects=[DeleteEffect(Atom("outside", ("agent",))), AddEffect(Atom("inside", ("agent",)))],
        )
        planner = ForwardSearchPlanner({"enter": action})
        objects = {AGENT_OBJECT: "agent"}

        open_door = planner.instantiate(action, frozenset({"outside(self)"}), objects)
        assert open_door is not None
        assert open_door.apply(frozenset({"outside(self)"})) == frozenset({"inside(self)"})
        assert open_door.effects == ["inside(self)", "not outside(self)"]
        assert planner.instantiate(action, frozenset({"outside(self)", "locked()"}), objects) is None


class TestPlanningEngine:
    """Engine surface."""

    @pytest.mark.asyncio
    async def test_plan_combines_search_and_htn(self, goal_context, long_goal):
        engine = PlanningEngine()
        plan = await engine.plan(goal_context, long_goal)

        assert len(plan.steps) >= 3
        assert plan.steps[0].preconditions == []
        for previous, step in zip(plan.steps, plan.steps[1:]):
            assert step.preconditions == [previous.id]
        assert plan.metadata["pddl_valid"] is True
        assert plan.confidence == 0.8
        assert plan.status == PlanStatus.PENDING

    @pytest.mark.asyncio
    async def test_think_with_message_communicates(self):
        context = ThoughtContext(events=[AgentEvent(type="chat", data={"message": "hi"})])
        result = await PlanningEngine().think(context)

        assert result.metadata["plan_valid"] is True
        assert [a.type for a in result.actions] == [ActionCategory.COMMUNICATION]
        assert result.confidence == 0.8

    @pytest.mark.asyncio
    async def test_think_without_message_or_goal_fails_softly(self, empty_context):
        result = await PlanningEngine().think(empty_context)

        assert result.metadata["plan_valid"] is False
        assert result.actions == []
        assert result.confidence == 0.3

    @pytest.mark.asyncio
    async def test_outer_deadline_bounds_search(self, goal_context, long_goal):
        engine = PlanningEngine(PlanningConfig(timeout_ms=5000))
        plan = await engine.plan(goal_context, long_goal, Deadline(0))

        assert plan.metadata["pddl_valid"] is False
        assert plan.confidence == 0.6
        assert engine.stats["timeouts"] == 1
        assert len(plan.steps) >= 3

    @pytest.mark.asyncio
    async def test_decide_and_edge_cases(self, empty_context):
        engine = PlanningEngine()
        only = Decision(id="only", description="ship it")
        options = [
            Decision(id="a", description="ship it", confidence=0.4),
            Decision(id="b", description="ship it", confidence=0.5),
        ]

        assert await engine.decide(empty_context, [only]) is only
        assert await engine.decide(empty_context, options) is options[1]

    @pytest.mark.asyncio
    async def test_learning_adjusts_action_cost(self, make_experience):
        engine = PlanningEngine()
        await engine.learn(make_experience(0.9, action="work_on_goal", category=ActionCategory.PROCESSING))
        assert engine.domain["work_on_goal"].cost == pytest.approx(0.9)

        await engine.learn(make_experience(-0.9, action="move", category=ActionCategory.SYSTEM))
        assert engine.domain["move"].cost == pytest.approx(1.1)

        restored = PlanningEngine()
        restored.load_state(engine.export_state())
        assert restored.domain["work_on_goal"].cost == pytest.approx(0.9)
