"""Exception hierarchy for pipeline execution.

Structural errors (CycleDetected, InvalidGraph) and request validation errors
(TooManyComparisons) are raised before anything executes. NodeExecutionError
and ProviderError are recorded on the owning session instead of escaping it.
"""

from typing import Any


class PipelineError(Exception):
    """Base class for every error raised by contextflow."""


class InvalidGraph(PipelineError):
    """The graph is structurally invalid (duplicate ids, dangling edges)."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Invalid graph: {'; '.join(errors)}")


class CycleDetected(PipelineError):
    """No execution order exists because the graph contains a cycle."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Cycle detected in pipeline graph (involving node '{node_id}')")


class ProviderError(PipelineError):
    """A provider adapter call failed (non-2xx or transport failure)."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"Provider error {status}: {message}")


class NodeExecutionError(PipelineError):
    """A node executor failed. Fatal to its session only."""

    def __init__(self, node_id: str, cause: BaseException | str):
        self.node_id = node_id
        self.cause = cause
        super().__init__(f"Node '{node_id}' failed: {cause}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "error": str(self.cause),
            "error_type": type(self.cause).__name__ if isinstance(self.cause, BaseException) else "str",
        }


class TooManyComparisons(PipelineError):
    """More graphs were submitted for comparison than the configured limit."""

    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(f"Too many graphs for comparison ({count} > max {limit})")


class GraphNotFound(PipelineError):
    """The graph lookup collaborator has no graph with this id."""

    def __init__(self, graph_id: str):
        self.graph_id = graph_id
        super().__init__(f"Graph '{graph_id}' not found")


class SessionCancelled(PipelineError):
    """A session was cancelled at a node boundary."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' was cancelled")


class InvalidTransition(PipelineError):
    """A step or session was asked to leave a terminal status."""
