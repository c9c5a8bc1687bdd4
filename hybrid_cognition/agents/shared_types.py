#!/usr/bin/env python3
"""
Shared types and enums for the hybrid reasoning core
Data structures exchanged between the meta-reasoner and its engines
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple
from datetime import datetime
import uuid


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _now() -> float:
    return datetime.now().timestamp()


# ============================================================================
# CORE ENUMS
# ============================================================================

class ReasoningParadigm(Enum):
    """Registered reasoning paradigms"""
    RULE_BASED = "rule_based"
    PROBABILISTIC = "probabilistic"
    REINFORCEMENT_LEARNING = "reinforcement_learning"
    PLANNING = "planning"


class AgentStatus(Enum):
    """Lifecycle status reported by the owning agent"""
    ACTIVE = "active"
    IDLE = "idle"
    THINKING = "thinking"
    PAUSED = "paused"
    ERROR = "error"


class ActionCategory(Enum):
    """Action classification used by the action-execution collaborator"""
    COMMUNICATION = "communication"
    PROCESSING = "processing"
    LEARNING = "learning"
    OBSERVATION = "observation"
    SYSTEM = "system"


class ActionStatus(Enum):
    """Action execution status"""
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class PlanStatus(Enum):
    """Plan lifecycle status"""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class RewardType(Enum):
    """Reward signal classification"""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    CURIOSITY = "curiosity"
    ACHIEVEMENT = "achievement"


class MemoryType(Enum):
    """Kinds of memory records produced by reasoning"""
    EXPERIENCE = "experience"
    KNOWLEDGE = "knowledge"
    REASONING = "reasoning"


# ============================================================================
# INBOUND DATA
# ============================================================================

@dataclass
class AgentEvent:
    """Observed event (message, system notification, ...)"""
    type: str
    source: str = "unknown"
    timestamp: float = field(default_factory=_now)
    data: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: _new_id("event"))

    @property
    def message(self) -> Optional[str]:
        message = self.data.get("message")
        return message if isinstance(message, str) else None


@dataclass
class MemoryRecord:
    """Memory produced or recalled by the agent"""
    content: str
    type: MemoryType = MemoryType.EXPERIENCE
    agent_id: str = ""
    importance: float = 0.5
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=_now)
    id: str = field(default_factory=lambda: _new_id("memory"))


@dataclass
class EmotionState:
    """Current emotion of the agent (rendering is external)"""
    current: str = "neutral"
    intensity: float = 0.0
    triggers: List[str] = field(default_factory=list)


@dataclass
class ThoughtContext:
    """Everything an engine may look at while thinking"""
    events: List[AgentEvent] = field(default_factory=list)
    goal: Optional[str] = None
    memories: List[MemoryRecord] = field(default_factory=list)
    agent_id: str = "agent"
    status: AgentStatus = AgentStatus.ACTIVE
    emotion: Optional[EmotionState] = None

    def __post_init__(self):
        if isinstance(self.status, str):
            try:
                self.status = AgentStatus(self.status.lower())
            except ValueError:
                self.status = AgentStatus.ACTIVE

    @property
    def message_events(self) -> List[AgentEvent]:
        return [e for e in self.events if e.message is not None]

    @property
    def latest_message(self) -> Optional[str]:
        messages = self.message_events
        return messages[-1].message if messages else None


# ============================================================================
# OUTBOUND DATA
# ============================================================================

@dataclass
class AgentAction:
    """Action proposed by an engine"""
    type: ActionCategory
    action: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    agent_id: str = ""
    priority: float = 0.5
    status: ActionStatus = ActionStatus.PENDING
    timestamp: float = field(default_factory=_now)
    id: str = field(default_factory=lambda: _new_id("action"))

    def signature(self) -> Tuple[str, str]:
        """Identity used to de-duplicate merged results"""
        return (self.type.value, self.action)


@dataclass
class ThoughtResult:
    """Result of one think() call"""
    thoughts: List[str] = field(default_factory=list)
    actions: List[AgentAction] = field(default_factory=list)
    emotions: EmotionState = field(default_factory=EmotionState)
    memories: List[MemoryRecord] = field(default_factory=list)
    confidence: float = 0.5
    paradigm: Optional[ReasoningParadigm] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PlanStep:
    """Single ordered plan step"""
    id: str
    action: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    preconditions: List[str] = field(default_factory=list)
    effects: List[str] = field(default_factory=list)
    status: PlanStatus = PlanStatus.PENDING


@dataclass
class Plan:
    """Execution plan"""
    goal: str
    steps: List[PlanStep] = field(default_factory=list)
    priority: float = 0.5
    estimated_duration: float = 0.0  # milliseconds
    status: PlanStatus = PlanStatus.PENDING
    confidence: float = 0.5
    created_at: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: _new_id("plan"))


@dataclass
class Decision:
    """A candidate option handed to decide(); returned unchanged"""
    id: str
    description: str
    confidence: float = 0.5
    reasoning: str = ""
    action: Optional[AgentAction] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# LEARNING DATA
# ============================================================================

@dataclass
class RewardSignal:
    """Reward attached to an experience"""
    type: RewardType
    value: float
    source: str = "environment"
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentStateVector:
    """Numeric agent state used as the learning state (values mostly in [0, 1])"""
    agent_status: float = 1.0
    has_goal: float = 0.0
    event_count: float = 0.0
    memory_count: float = 0.0
    has_message: float = 0.0
    message_is_question: float = 0.0
    message_length: float = 0.0
    emotion_intensity: float = 0.0
    time_of_day: float = 0.0
    recent_activity: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return dict(self.__dict__)


@dataclass
class Experience:
    """Outcome of an executed action, pushed back for learning"""
    state: AgentStateVector
    action: AgentAction
    reward: RewardSignal
    next_state: AgentStateVector
    done: bool = False
    timestamp: float = field(default_factory=_now)
    id: str = field(default_factory=lambda: _new_id("exp"))


# ============================================================================
# META-REASONING DATA
# ============================================================================

@dataclass(frozen=True)
class ContextAnalysis:
    """Eight context features in [0, 1]"""
    complexity: float
    uncertainty: float
    time_constraint: float
    knowledge_available: float
    adaptation_needed: float
    goal_oriented: float
    probabilistic_nature: float
    rules_applicable: float

    def feature(self, name: str) -> float:
        return getattr(self, name)

    def as_dict(self) -> Dict[str, float]:
        return {
            "complexity": self.complexity,
            "uncertainty": self.uncertainty,
            "time_constraint": self.time_constraint,
            "knowledge_available": self.knowledge_available,
            "adaptation_needed": self.adaptation_needed,
            "goal_oriented": self.goal_oriented,
            "probabilistic_nature": self.probabilistic_nature,
            "rules_applicable": self.rules_applicable,
        }

    def to_key(self) -> str:
        """Coarse bucketing (low/mid/high) used to match similar situations"""
        parts = []
        for name, value in self.as_dict().items():
            bucket = "l" if value < 0.34 else ("m" if value < 0.67 else "h")
            parts.append(f"{name}:{bucket}")
        return "|".join(parts)


@dataclass(frozen=True)
class MetaDecision:
    """Archived paradigm selection (immutable)"""
    selected_paradigm: ReasoningParadigm
    confidence: float
    reasoning_trail: Tuple[str, ...]
    fallback_paradigms: Tuple[ReasoningParadigm, ...]
    context_analysis: ContextAnalysis
    scores: Tuple[Tuple[ReasoningParadigm, float], ...] = ()
    operation: str = "think"
    timestamp: float = field(default_factory=_now)

    def score_for(self, paradigm: ReasoningParadigm) -> float:
        """Clamped selection score of any ranked paradigm"""
        for p, score in self.scores:
            if p == paradigm:
                return max(0.0, min(1.0, score))
        return 0.0


@dataclass
class PerformanceSample:
    """One completed engine invocation"""
    accuracy: float
    efficiency: float
    confidence: float
    reasoning_time: float  # milliseconds
    memory_usage: float
    timestamp: float = field(default_factory=_now)


@dataclass
class ParadigmPerformance:
    """Rolling performance of one paradigm"""
    paradigm: ReasoningParadigm
    success_rate: float = 0.5
    average_time: float = 0.0
    average_confidence: float = 0.5
    recent_performances: List[PerformanceSample] = field(default_factory=list)
    usage_count: int = 0
    last_used: Optional[datetime] = None
