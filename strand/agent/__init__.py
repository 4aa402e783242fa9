"""The step state machine and the components it drives."""

from strand.agent.agent import Agent, RunResult, RunState, extract_code
from strand.agent.divergence import DivergenceLevel, DivergenceTracker, divergence_level, score_alignment
from strand.agent.early_yield import CallOutcome, EarlyYieldResult, execute_with_early_yield
from strand.agent.evaluation import EvaluationResult, EvaluationStatus, Evaluator, parse_evaluation
from strand.agent.execution_oracle import ErrorCategory, ExecutionFeedback, ExecutionOracle
from strand.agent.observation_router import (
    ModelRouter,
    ObservationRouter,
    PassThroughRouter,
    RoutedObservation,
    RoutingDecision,
    TruncatingRouter,
)
from strand.agent.planning import PlanContext, Planner, PlanState, extract_tool_mentions
from strand.agent.reflection import Reflection, ReflectionStore, reflect_on_error
from strand.agent.refinement import (
    RefineConfig,
    RefinementFeedback,
    RefinementResult,
    SelfRefiner,
    parse_critique,
)
from strand.agent.repetition import (
    RepetitionConfig,
    RepetitionDetector,
    RepetitionPattern,
    RepetitionResult,
    string_similarity,
)
from strand.agent.tool_handler import ToolHandlerMixin, ToolRoundResult

__all__ = [
    "Agent",
    "RunResult",
    "RunState",
    "extract_code",
    "DivergenceLevel",
    "DivergenceTracker",
    "divergence_level",
    "score_alignment",
    "CallOutcome",
    "EarlyYieldResult",
    "execute_with_early_yield",
    "EvaluationResult",
    "EvaluationStatus",
    "Evaluator",
    "parse_evaluation",
    "ErrorCategory",
    "ExecutionFeedback",
    "ExecutionOracle",
    "ModelRouter",
    "ObservationRouter",
    "PassThroughRouter",
    "RoutedObservation",
    "RoutingDecision",
    "TruncatingRouter",
    "PlanContext",
    "Planner",
    "PlanState",
    "extract_tool_mentions",
    "Reflection",
    "ReflectionStore",
    "reflect_on_error",
    "RefineConfig",
    "RefinementFeedback",
    "RefinementResult",
    "SelfRefiner",
    "parse_critique",
    "RepetitionConfig",
    "RepetitionDetector",
    "RepetitionPattern",
    "RepetitionResult",
    "string_similarity",
    "ToolHandlerMixin",
    "ToolRoundResult",
]
