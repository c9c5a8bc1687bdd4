#!/usr/bin/env python3
"""
Probabilistic Reasoning Engine
==============================
Discrete Bayesian network with conditional probability tables keyed by a
canonical "parent=state,..." string, plus the engine that turns context
evidence into thresholded decisions and agent actions.

Each CPT entry stores P(node is in its first state | parent states).
Learning accumulates counts per node and condition key and replaces the entry
with the observed frequency (optionally smoothed toward the existing value).
"""

import logging
import time
from collections import deque, defaultdict
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple

import numpy as np

from ..agents.shared_types import (
    ThoughtContext, ThoughtResult, Plan, PlanStep, Decision, Experience,
    AgentAction, ActionCategory, EmotionState, MemoryRecord, MemoryType,
    ReasoningParadigm
)
from ..config import ProbabilisticConfig
from ..exceptions import ConfigurationError
from .base import ReasoningEngine, LearningCapable, Deadline

logger = logging.getLogger(__name__)

DEFAULT_PROBABILITY = 0.5


@dataclass
class BayesianNode:
    """Discrete random variable"""
    id: str
    name: str
    states: List[str]
    parents: List[str] = field(default_factory=list)
    children: List[str] = field(default_factory=list)
    conditional_probabilities: Dict[str, float] = field(default_factory=dict)

    @property
    def positive_state(self) -> str:
        return self.states[0]


class BayesianNetwork:
    """Directed acyclic network of BayesianNodes"""

    def __init__(self, prior_weight: float = 0.0):
        self.nodes: Dict[str, BayesianNode] = {}
        self.prior_weight = prior_weight
        # node id -> condition key -> [positive count, total count]
        self._counts: Dict[str, Dict[str, List[int]]] = defaultdict(dict)
        # CPT value in place before the first observation of a key
        self._priors: Dict[str, Dict[str, float]] = defaultdict(dict)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def add_node(self, node: BayesianNode):
        """Add a node and link it with already-present parents and children"""
        if node.id in self.nodes:
            raise ConfigurationError(f"Bayesian node '{node.id}' already exists")
        if not node.states:
            raise ConfigurationError(f"Bayesian node '{node.id}' has no states")

        snapshot = {nid: (list(n.parents), list(n.children)) for nid, n in self.nodes.items()}
        snapshot[node.id] = (list(node.parents), list(node.children))
        self.nodes[node.id] = node

        for parent_id in node.parents:
            parent = self.nodes.get(parent_id)
            if parent is not None and node.id not in parent.children:
                parent.children.append(node.id)
        for child_id in node.children:
            child = self.nodes.get(child_id)
            if child is not None and node.id not in child.parents:
                child.parents.append(node.id)
        for other in self.nodes.values():
            if other.id == node.id:
                continue
            if node.id in other.parents and other.id not in node.children:
                node.children.append(other.id)
            if node.id in other.children and other.id not in node.parents:
                node.parents.append(other.id)

        if self._has_cycle():
            del self.nodes[node.id]
            for nid, (parents, children) in snapshot.items():
                if nid in self.nodes:
                    self.nodes[nid].parents, self.nodes[nid].children = parents, children
            node.parents, node.children = snapshot[node.id]
            raise ConfigurationError(f"Adding node '{node.id}' would create a cycle")

        logger.debug(f"Added Bayesian node: {node.name}")

    def add_edge(self, parent_id: str, child_id: str):
        """Add parent -> child, keeping both adjacency lists in sync"""
        if parent_id not in self.nodes or child_id not in self.nodes:
            raise ConfigurationError(f"Edge {parent_id} -> {child_id} references an unknown node")
        if parent_id == child_id or self._reaches(child_id, parent_id):
            raise ConfigurationError(f"Edge {parent_id} -> {child_id} would create a cycle")

        parent, child = self.nodes[parent_id], self.nodes[child_id]
        if child_id not in parent.children:
            parent.children.append(child_id)
        if parent_id not in child.parents:
            child.parents.append(parent_id)

    def is_consistent(self) -> bool:
        """Parent/child lists agree for every pair of present nodes"""
        for node in self.nodes.values():
            for parent_id in node.parents:
                if parent_id in self.nodes and node.id not in self.nodes[parent_id].children:
                    return False
            for child_id in node.children:
                if child_id in self.nodes and node.id not in self.nodes[child_id].parents:
                    return False
        return True

    def topological_order(self) -> List[str]:
        indegree = {
            nid: sum(1 for p in n.parents if p in self.nodes)
            for nid, n in self.nodes.items()
        }
        ready = [nid for nid, d in indegree.items() if d == 0]
        order = []
        while ready:
            nid = ready.pop(0)
            order.append(nid)
            for child_id in self.nodes[nid].children:
                if child_id in indegree:
                    indegree[child_id] -= 1
                    if indegree[child_id] == 0:
                        ready.append(child_id)
        return order

    def _has_cycle(self) -> bool:
        return len(self.topological_order()) != len(self.nodes)

    def _reaches(self, start: str, target: str) -> bool:
        stack, seen = [start], set()
        while stack:
            nid = stack.pop()
            if nid == target:
                return True
            if nid in seen or nid not in self.nodes:
                continue
            seen.add(nid)
            stack.extend(self.nodes[nid].children)
        return False

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def condition_key(self, node_id: str, assignment: Dict[str, str]) -> str:
        node = self.nodes[node_id]
        if not node.parents:
            return ""
        return ",".join(f"{p}={assignment.get(p, 'unknown')}" for p in node.parents)

    def query(self, evidence: Dict[str, str]) -> Dict[str, float]:
        """
        P(first state) for every node.

        Observed nodes are clamped to 1.0/0.0. Unobserved parents take their
        most likely state (first state above 0.5, second below, unknown at
        exactly 0.5) when building a child's condition key. Missing CPT
        entries read as 0.5.
        """
        results: Dict[str, float] = {}
        assignment: Dict[str, str] = {}

        for node_id in self.topological_order():
            node = self.nodes[node_id]
            observed = evidence.get(node_id)
            if observed is not None:
                observed = str(observed)
                results[node_id] = 1.0 if observed == node.positive_state else 0.0
                assignment[node_id] = observed
                continue

            key = self.condition_key(node_id, assignment)
            probability = node.conditional_probabilities.get(key, DEFAULT_PROBABILITY)
            results[node_id] = probability
            if probability > 0.5:
                assignment[node_id] = node.positive_state
            elif probability < 0.5 and len(node.states) > 1:
                assignment[node_id] = node.states[1]

        return results

    def learn(self, samples: List[Dict[str, str]]):
        """Update CPT entries from fully observed (node, parents) samples"""
        touched = set()
        for sample in samples:
            for node_id, value in sample.items():
                node = self.nodes.get(node_id)
                if node is None or any(p not in sample for p in node.parents):
                    continue
                key = self.condition_key(node_id, sample)
                counts = self._counts[node_id].setdefault(key, [0, 0])
                if key not in self._priors[node_id]:
                    self._priors[node_id][key] = node.conditional_probabilities.get(key, DEFAULT_PROBABILITY)
                counts[0] += 1 if str(value) == node.positive_state else 0
                counts[1] += 1
                touched.add((node_id, key))

        for node_id, key in touched:
            positives, total = self._counts[node_id][key]
            prior = self._priors[node_id][key]
            w = self.prior_weight
            self.nodes[node_id].conditional_probabilities[key] = (positives + w * prior) / (total + w)

        if touched:
            logger.debug(f"Bayesian network learned from {len(samples)} samples ({len(touched)} CPT entries)")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_state(self) -> Dict[str, Any]:
        return {
            "cpts": {nid: dict(n.conditional_probabilities) for nid, n in self.nodes.items()},
            "counts": {nid: {k: list(v) for k, v in c.items()} for nid, c in self._counts.items()},
            "priors": {nid: dict(p) for nid, p in self._priors.items()},
        }

    def load_state(self, state: Dict[str, Any]):
        for node_id, cpt in state.get("cpts", {}).items():
            if node_id in self.nodes:
                self.nodes[node_id].conditional_probabilities = {k: float(v) for k, v in cpt.items()}
        for node_id, counts in state.get("counts", {}).items():
            self._counts[node_id] = {k: [int(v[0]), int(v[1])] for k, v in counts.items()}
        for node_id, priors in state.get("priors", {}).items():
            self._priors[node_id] = {k: float(v) for k, v in priors.items()}


def build_default_network(prior_weight: float = 0.0) -> BayesianNetwork:
    """Agent response network"""
    network = BayesianNetwork(prior_weight=prior_weight)
    network.add_node(BayesianNode(
        id="context_clear", name="Context is Clear", states=["true", "false"],
        children=["should_respond", "confidence_level"],
        conditional_probabilities={"": 0.7},
    ))
    network.add_node(BayesianNode(
        id="message_type", name="Message Type", states=["question", "statement", "request", "greeting"],
        children=["should_respond", "response_urgency"],
        conditional_probabilities={"": 0.3},
    ))
    network.add_node(BayesianNode(
        id="should_respond", name="Should Respond", states=["true", "false"],
        parents=["context_clear", "message_type"], children=["action_type"],
        conditional_probabilities={
            "context_clear=true,message_type=question": 0.9,
            "context_clear=true,message_type=request": 0.95,
            "context_clear=true,message_type=greeting": 0.8,
            "context_clear=false,message_type=question": 0.6,
            "context_clear=false,message_type=request": 0.7,
            "context_clear=false,message_type=greeting": 0.5,
        },
    ))
    network.add_node(BayesianNode(
        id="confidence_level", name="Confidence Level", states=["high", "medium", "low"],
        parents=["context_clear"], children=["response_quality"],
        conditional_probabilities={"context_clear=true": 0.8, "context_clear=false": 0.3},
    ))
    network.add_node(BayesianNode(
        id="response_urgency", name="Response Urgency", states=["high", "medium", "low"],
        parents=["message_type"], children=["action_priority"],
        conditional_probabilities={
            "message_type=question": 0.7,
            "message_type=request": 0.8,
            "message_type=greeting": 0.4,
            "message_type=statement": 0.3,
        },
    ))
    network.add_node(BayesianNode(
        id="action_type", name="Action Type", states=["respond", "analyze", "plan", "wait"],
        parents=["should_respond"],
        conditional_probabilities={"should_respond=true": 0.8, "should_respond=false": 0.2},
    ))
    network.add_node(BayesianNode(
        id="response_quality", name="Response Quality", states=["excellent", "good", "poor"],
        parents=["confidence_level"],
        conditional_probabilities={
            "confidence_level=high": 0.8,
            "confidence_level=medium": 0.6,
            "confidence_level=low": 0.3,
        },
    ))
    network.add_node(BayesianNode(
        id="action_priority", name="Action Priority", states=["high", "medium", "low"],
        parents=["response_urgency"],
        conditional_probabilities={
            "response_urgency=high": 0.9,
            "response_urgency=medium": 0.6,
            "response_urgency=low": 0.3,
        },
    ))
    return network


def classify_message(message: str) -> str:
    lower = message.lower().strip()
    if "?" in lower:
        return "question"
    if "please" in lower or "can you" in lower:
        return "request"
    if lower.startswith(("hi", "hello", "hey")):
        return "greeting"
    return "statement"


# ============================================================================
# ENGINE
# ============================================================================

class ProbabilisticEngine(ReasoningEngine, LearningCapable):
    """Bayesian-network reasoning paradigm"""

    paradigm = ReasoningParadigm.PROBABILISTIC

    def __init__(self, config: Optional[ProbabilisticConfig] = None,
                 network: Optional[BayesianNetwork] = None):
        self.config = config or ProbabilisticConfig()
        self.network = network or build_default_network(self.config.prior_weight)
        self.evidence_history: deque = deque(maxlen=self.config.history_limit)
        self.stats = {
            'queries': 0,
            'actions_proposed': 0,
            'samples_learned': 0,
        }
        logger.info(f"ProbabilisticEngine initialized ({len(self.network.nodes)} nodes, "
                    f"threshold {self.config.confidence_threshold})")

    async def think(self, context: ThoughtContext, deadline: Optional[Deadline] = None) -> ThoughtResult:
        start = time.monotonic()
        evidence = self.extract_evidence(context)
        probabilities = self._query(evidence)
        decisions = self.make_decisions(probabilities, evidence)
        actions = self._generate_actions(context, decisions, probabilities)
        confidence = self.overall_confidence(probabilities)

        self.evidence_history.append({
            "evidence": evidence,
            "result": probabilities,
            "timestamp": time.time(),
        })
        self.stats['actions_proposed'] += len(actions)

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug(f"🎲 Probabilistic reasoning completed in {elapsed_ms:.1f}ms (confidence: {confidence:.2f})")

        if confidence > 0.7:
            mood = "confident"
        elif confidence > 0.4:
            mood = "uncertain"
        else:
            mood = "confused"

        return ThoughtResult(
            thoughts=[
                f"Extracted evidence: {len(evidence)} variables",
                f"Computed probabilities for {len(probabilities)} variables",
                f"Made {len(decisions)} probabilistic decisions",
            ],
            actions=actions,
            emotions=EmotionState(current=mood, intensity=confidence, triggers=["probabilistic_inference"]),
            memories=[MemoryRecord(
                content=(f"Probabilistic reasoning: {len(evidence)} evidence variables, "
                         f"{len(probabilities)} inferred probabilities"),
                type=MemoryType.REASONING,
                agent_id=context.agent_id,
                importance=0.6,
                tags=["reasoning", "probabilistic", "bayesian"],
                metadata={"evidence": evidence, "probabilities": probabilities},
            )],
            confidence=confidence,
            paradigm=self.paradigm,
            metadata={"probabilities": probabilities, "decisions": decisions, "reasoning_time_ms": elapsed_ms},
        )

    async def plan(self, context: ThoughtContext, goal: str, deadline: Optional[Deadline] = None) -> Plan:
        evidence = self.extract_evidence(context)
        evidence.setdefault("message_type", "request")
        evidence["context_clear"] = "true" if goal.strip() else evidence["context_clear"]
        probabilities = self._query(evidence)
        threshold = self.config.confidence_threshold

        specs: List[Tuple[str, str, Dict[str, Any], List[str]]] = [
            ("analyze_goal", f"Analyze goal: {goal}",
             {"goal": goal, "confidence": probabilities.get("confidence_level", 0.5)}, ["goal_analyzed"]),
        ]
        if probabilities.get("should_respond", 0.5) > threshold:
            specs.append(("prepare_response", "Prepare response strategy", {}, ["response_prepared"]))
        if probabilities.get("action_priority", 0.5) > 0.7:
            specs.append(("execute_with_priority", "Execute with high priority", {"priority": "high"}, ["goal_achieved"]))
        else:
            specs.append(("execute_standard", "Execute with standard approach", {"priority": "medium"}, ["goal_achieved"]))

        steps: List[PlanStep] = []
        for i, (action, description, params, effects) in enumerate(specs, start=1):
            steps.append(PlanStep(
                id=f"step_{i}",
                action=action,
                description=description,
                parameters=params,
                preconditions=[steps[-1].id] if steps else [],
                effects=effects,
            ))

        urgency_factor = 0.7 if probabilities.get("response_urgency", 0.5) > 0.7 else 1.0
        return Plan(
            goal=goal,
            steps=steps,
            priority=probabilities.get("action_priority", 0.5),
            estimated_duration=len(steps) * 20_000 * urgency_factor,
            confidence=self.overall_confidence(probabilities),
            metadata={"paradigm": self.paradigm.value, "probabilities": probabilities},
        )

    async def decide(self, context: ThoughtContext, options: List[Decision],
                     deadline: Optional[Deadline] = None) -> Decision:
        self._require_options(options)
        if len(options) == 1:
            return options[0]

        scores = []
        for option in options:
            evidence = {
                "context_clear": "true" if option.confidence >= 0.5 else "false",
                "message_type": classify_message(option.description or ""),
            }
            probabilities = self._query(evidence)
            utility = float(np.mean([
                probabilities.get("confidence_level", 0.5),
                probabilities.get("response_quality", 0.5),
                probabilities.get("action_priority", 0.5),
            ]))
            scores.append(0.5 * option.confidence + 0.5 * utility)

        best = int(np.argmax(scores))
        logger.debug(f"Probabilistic decision: {options[best].id} (expected utility {scores[best]:.2f})")
        return options[best]

    async def learn(self, experience: Experience):
        sample = self.experience_to_sample(experience)
        self.network.learn([sample])
        self.stats['samples_learned'] += 1
        logger.info(f"Learned from probabilistic experience: {experience.reward.type.value} "
                    f"({experience.reward.value:+.2f})")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _query(self, evidence: Dict[str, str]) -> Dict[str, float]:
        self.stats['queries'] += 1
        return self.network.query(evidence)

    @staticmethod
    def extract_evidence(context: ThoughtContext) -> Dict[str, str]:
        evidence = {
            "context_clear": "true" if context.events else "false",
            "has_goal": "true" if context.goal else "false",
            "agent_status": context.status.value,
        }
        message = context.latest_message
        if message is not None:
            evidence["message_type"] = classify_message(message)
        return evidence

    def make_decisions(self, probabilities: Dict[str, float],
                       evidence: Dict[str, str]) -> List[Dict[str, Any]]:
        """Threshold inferred (unobserved) variables into boolean outcomes"""
        threshold = self.config.confidence_threshold
        decisions = []
        for variable, probability in probabilities.items():
            if variable in evidence:
                continue
            if probability > threshold:
                decisions.append({"variable": variable, "decision": True, "confidence": probability})
            elif probability < 1 - threshold:
                decisions.append({"variable": variable, "decision": False, "confidence": 1 - probability})
        return decisions

    def _generate_actions(self, context: ThoughtContext, decisions: List[Dict[str, Any]],
                          probabilities: Dict[str, float]) -> List[AgentAction]:
        actions = []
        should_respond = next(
            (d for d in decisions if d["variable"] == "should_respond" and d["decision"]), None
        )
        if should_respond is not None:
            actions.append(AgentAction(
                type=ActionCategory.COMMUNICATION,
                action="probabilistic_response",
                parameters={
                    "confidence": should_respond["confidence"],
                    "response_quality": probabilities.get("response_quality", 0.5),
                },
                agent_id=context.agent_id,
                priority=probabilities.get("action_priority", 0.5),
            ))

        action_type = probabilities.get("action_type", 0.0)
        if action_type > 0.5:
            actions.append(AgentAction(
                type=ActionCategory.PROCESSING,
                action="probabilistic_analysis",
                parameters={"confidence": action_type},
                agent_id=context.agent_id,
                priority=0.6,
            ))
        return actions

    @staticmethod
    def overall_confidence(probabilities: Dict[str, float]) -> float:
        """Mean distance from 0.5, rescaled to [0, 1]"""
        if not probabilities:
            return 0.5
        values = np.array(list(probabilities.values()), dtype=float)
        return float(np.mean(np.abs(values - 0.5) * 2))

    @staticmethod
    def experience_to_sample(experience: Experience) -> Dict[str, str]:
        """
        The action was right to communicate when communicating earned a
        positive reward, or when a non-communicative action was punished.
        """
        state = experience.state
        sample = {"context_clear": "true" if state.event_count > 0 else "false"}
        if state.has_message > 0:
            sample["message_type"] = "question" if state.message_is_question > 0 else "statement"
        communicated = experience.action.type == ActionCategory.COMMUNICATION
        rewarded = experience.reward.value > 0
        sample["should_respond"] = "true" if communicated == rewarded else "false"
        return sample

    def export_state(self) -> Dict[str, Any]:
        return self.network.export_state()

    def load_state(self, state: Dict[str, Any]):
        self.network.load_state(state)

    def get_stats(self) -> Dict[str, Any]:
        return {**self.stats, 'nodes': len(self.network.nodes), 'history': len(self.evidence_history)}
