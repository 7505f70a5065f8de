"""Comparison Schema - concurrent runs of several graphs on one input."""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from contextflow.schemas.session import ExecutionSession, SessionStatus


def generate_comparison_id() -> str:
    return f"comparison_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"


class ComparisonStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"


class ComparisonSummary(BaseModel):
    """Aggregates over member sessions. Numeric fields use Completed sessions only."""

    graph_count: int = 0
    succeeded_count: int = 0
    mean_execution_time_ms: float = 0.0
    total_cost_usd: float = 0.0

    @classmethod
    def from_sessions(cls, sessions: list[ExecutionSession]) -> "ComparisonSummary":
        completed = [s for s in sessions if s.status == SessionStatus.COMPLETED]
        times = [s.total_metrics.total_time_ms for s in completed]
        return cls(
            graph_count=len(sessions),
            succeeded_count=len(completed),
            mean_execution_time_ms=sum(times) / len(times) if times else 0.0,
            total_cost_usd=sum(s.total_metrics.total_cost for s in completed),
        )


class ComparisonRun(BaseModel):
    """Result of comparing several graphs against the same input."""

    comparison_id: str = Field(default_factory=generate_comparison_id)
    input: Any = None
    graph_ids: list[str] = Field(default_factory=list)
    sessions: dict[str, ExecutionSession] = Field(default_factory=dict)
    summary: ComparisonSummary = Field(default_factory=ComparisonSummary)
    status: ComparisonStatus = ComparisonStatus.RUNNING
    started_at: str = Field(default_factory=lambda: datetime.now().isoformat())
    completed_at: str | None = None

    def finish(self) -> None:
        """Compute the summary once every member session is terminal."""
        self.summary = ComparisonSummary.from_sessions(list(self.sessions.values()))
        self.status = ComparisonStatus.COMPLETED
        self.completed_at = datetime.now().isoformat()
