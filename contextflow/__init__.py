"""
contextflow - execution and comparison engine for LLM context pipelines.

Graphs of typed nodes (prompt templates, RAG retrievers, memory stores,
state trackers, output parsers) are scheduled topologically, executed
against live or mocked providers, and compared side by side.
"""

from contextflow.config import RuntimeConfig
from contextflow.errors import (
    CycleDetected,
    GraphNotFound,
    InvalidGraph,
    NodeExecutionError,
    PipelineError,
    ProviderError,
    SessionCancelled,
    TooManyComparisons,
)
from contextflow.graph.model import GraphEdge, GraphNode, NodeVariant, PipelineGraph
from contextflow.runtime.engine import PipelineEngine
from contextflow.runtime.event_bus import EventBus, EventType, ProgressEvent
from contextflow.schemas.comparison import ComparisonRun, ComparisonSummary
from contextflow.schemas.session import ExecutionSession, ExecutionStep, SessionStatus, StepStatus

__version__ = "0.1.0"

__all__ = [
    "ComparisonRun",
    "ComparisonSummary",
    "CycleDetected",
    "EventBus",
    "EventType",
    "ExecutionSession",
    "ExecutionStep",
    "GraphEdge",
    "GraphNode",
    "GraphNotFound",
    "InvalidGraph",
    "NodeExecutionError",
    "NodeVariant",
    "PipelineEngine",
    "PipelineError",
    "PipelineGraph",
    "ProgressEvent",
    "ProviderError",
    "RuntimeConfig",
    "SessionCancelled",
    "SessionStatus",
    "StepStatus",
    "TooManyComparisons",
]
