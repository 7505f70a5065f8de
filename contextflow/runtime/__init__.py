"""Runtime: sessions, comparisons and progress events."""

from contextflow.runtime.comparison import ComparisonCoordinator, validate_comparison_request
from contextflow.runtime.engine import PipelineEngine
from contextflow.runtime.event_bus import (
    EventBus,
    EventSink,
    EventType,
    HttpEventSink,
    ProgressEvent,
)
from contextflow.runtime.session import SessionRunner, relevance_score

__all__ = [
    "ComparisonCoordinator",
    "EventBus",
    "EventSink",
    "EventType",
    "HttpEventSink",
    "PipelineEngine",
    "ProgressEvent",
    "SessionRunner",
    "relevance_score",
    "validate_comparison_request",
]
