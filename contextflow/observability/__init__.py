"""
Observability: trace context propagation and structured logging.

- Trace context (trace_id, session_id, comparison_id, graph_id, node_id)
  propagates via ContextVar
- JSON logging for production, human-readable logging for development
"""

from contextflow.observability.logging import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)

__all__ = [
    "configure_logging",
    "get_trace_context",
    "set_trace_context",
    "clear_trace_context",
]
