"""Graph model, scheduling, input resolution and node executors."""

from contextflow.graph.executors import (
    EXECUTORS,
    MemoryIntent,
    NodeExecutor,
    NodeOutcome,
    RuntimeContext,
    execute_node,
)
from contextflow.graph.inputs import ResolvedInput, resolve_input
from contextflow.graph.model import GraphEdge, GraphNode, NodeVariant, PipelineGraph
from contextflow.graph.parsers import parse_output
from contextflow.graph.scheduler import order, schedule

__all__ = [
    "EXECUTORS",
    "GraphEdge",
    "GraphNode",
    "MemoryIntent",
    "NodeExecutor",
    "NodeOutcome",
    "NodeVariant",
    "PipelineGraph",
    "ResolvedInput",
    "RuntimeContext",
    "execute_node",
    "order",
    "parse_output",
    "resolve_input",
    "schedule",
]
