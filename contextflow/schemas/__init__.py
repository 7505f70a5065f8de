"""Schema definitions for sessions and comparisons."""

from contextflow.schemas.comparison import (
    ComparisonRun,
    ComparisonStatus,
    ComparisonSummary,
    generate_comparison_id,
)
from contextflow.schemas.session import (
    ExecutionSession,
    ExecutionStep,
    SessionMetrics,
    SessionStatus,
    StepStatus,
    TokenUsage,
    generate_session_id,
)

__all__ = [
    "ComparisonRun",
    "ComparisonStatus",
    "ComparisonSummary",
    "ExecutionSession",
    "ExecutionStep",
    "SessionMetrics",
    "SessionStatus",
    "StepStatus",
    "TokenUsage",
    "generate_comparison_id",
    "generate_session_id",
]
