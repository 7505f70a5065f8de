"""
Execution Session Schema - step records and session state.

An ExecutionSession is created when a run starts, grows one ExecutionStep per
scheduled node and becomes terminal once Completed or Failed. Steps move
through ``pending -> running -> completed | failed`` and are immutable once
terminal.
"""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, computed_field

from contextflow.errors import InvalidTransition


def generate_session_id() -> str:
    """Format: session_YYYYMMDD_HHMMSS_{uuid_8char}"""
    return f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"


def _now() -> str:
    return datetime.now().isoformat()


class TokenUsage(BaseModel):
    """Token counts for one step or one session."""

    input: int = 0
    output: int = 0

    @computed_field
    @property
    def total(self) -> int:
        return self.input + self.output


class StepStatus(StrEnum):
    """Status of a single execution step."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED)


class ExecutionStep(BaseModel):
    """The record of one node's execution within a session."""

    step_id: str = Field(default_factory=lambda: f"step_{uuid.uuid4().hex[:12]}")
    node_id: str
    node_variant: str
    step_name: str
    input: Any = None
    output: Any = None
    status: StepStatus = StepStatus.PENDING
    execution_time_ms: int = 0
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    cost_usd: float = 0.0
    error: str | None = None
    annotations: dict[str, Any] = Field(default_factory=dict)
    relevance_score: float | None = None
    started_at: str | None = None
    completed_at: str | None = None

    def _require_open(self, target: StepStatus) -> None:
        if self.status.is_terminal:
            raise InvalidTransition(
                f"Step {self.step_id} ({self.node_id}) is {self.status}, cannot move to {target}"
            )

    def start(self, input_value: Any = None) -> None:
        self._require_open(StepStatus.RUNNING)
        self.status = StepStatus.RUNNING
        self.input = input_value
        self.started_at = _now()

    def complete(
        self,
        output: Any,
        execution_time_ms: int,
        tokens_in: int = 0,
        tokens_out: int = 0,
        cost_usd: float = 0.0,
        annotations: dict[str, Any] | None = None,
    ) -> None:
        self._require_open(StepStatus.COMPLETED)
        self.status = StepStatus.COMPLETED
        self.output = output
        self.execution_time_ms = execution_time_ms
        self.tokens = TokenUsage(input=tokens_in, output=tokens_out)
        self.cost_usd = cost_usd
        if annotations:
            self.annotations.update(annotations)
        self.completed_at = _now()

    def fail(self, error: str, execution_time_ms: int = 0) -> None:
        self._require_open(StepStatus.FAILED)
        self.status = StepStatus.FAILED
        self.error = error
        self.execution_time_ms = execution_time_ms
        self.completed_at = _now()


class SessionStatus(StrEnum):
    """Status of a session execution."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SessionMetrics(BaseModel):
    """Aggregate metrics across a session's steps."""

    total_tokens: int = 0
    total_cost: float = 0.0
    total_time_ms: int = 0
    step_count: int = 0
    average_relevance: float | None = None

    @classmethod
    def from_steps(cls, steps: list[ExecutionStep]) -> "SessionMetrics":
        """Sum tokens, cost and time over steps; relevance is averaged where scored."""
        scored = [s.relevance_score for s in steps if s.relevance_score is not None]
        return cls(
            total_tokens=sum(s.tokens.total for s in steps),
            total_cost=sum(s.cost_usd for s in steps),
            total_time_ms=sum(s.execution_time_ms for s in steps),
            step_count=len(steps),
            average_relevance=sum(scored) / len(scored) if scored else None,
        )


class ExecutionSession(BaseModel):
    """
    One end-to-end execution of a single graph against one input.

    Owned exclusively by the run that created it.
    """

    session_id: str = Field(default_factory=generate_session_id)
    graph_id: str | None = None
    graph_name: str = ""
    input: Any = None
    status: SessionStatus = SessionStatus.RUNNING
    steps: list[ExecutionStep] = Field(default_factory=list)
    final_output: Any = None
    total_metrics: SessionMetrics = Field(default_factory=SessionMetrics)
    error: str | None = None
    failed_node_id: str | None = None
    memory_intents: list[dict[str, Any]] = Field(default_factory=list)
    started_at: str = Field(default_factory=_now)
    completed_at: str | None = None

    model_config = {"extra": "allow"}

    @property
    def is_terminal(self) -> bool:
        return self.status != SessionStatus.RUNNING

    @property
    def completed_steps(self) -> list[ExecutionStep]:
        return [s for s in self.steps if s.status == StepStatus.COMPLETED]

    @property
    def failed_step(self) -> ExecutionStep | None:
        for step in self.steps:
            if step.status == StepStatus.FAILED:
                return step
        return None

    def add_step(self, step: ExecutionStep) -> ExecutionStep:
        if self.is_terminal:
            raise InvalidTransition(f"Session {self.session_id} is {self.status}")
        self.steps.append(step)
        return step

    def refresh_metrics(self) -> SessionMetrics:
        self.total_metrics = SessionMetrics.from_steps(self.steps)
        return self.total_metrics

    def mark_completed(self) -> None:
        if self.is_terminal:
            raise InvalidTransition(f"Session {self.session_id} is already {self.status}")
        self.status = SessionStatus.COMPLETED
        self.final_output = self.steps[-1].output if self.steps else self.input
        self.refresh_metrics()
        self.completed_at = _now()

    def mark_failed(self, error: str, node_id: str | None = None) -> None:
        """Fail the session, keeping the last good output as the partial result."""
        if self.is_terminal:
            raise InvalidTransition(f"Session {self.session_id} is already {self.status}")
        self.status = SessionStatus.FAILED
        self.error = error
        self.failed_node_id = node_id
        completed = self.completed_steps
        self.final_output = completed[-1].output if completed else None
        self.refresh_metrics()
        self.completed_at = _now()

    @classmethod
    def failure_placeholder(
        cls,
        graph_id: str | None,
        input_value: Any,
        error: str,
        session_id: str | None = None,
        graph_name: str = "",
    ) -> "ExecutionSession":
        """A failed session with no steps, for graphs that could not be resolved or scheduled."""
        session = cls(
            session_id=session_id or generate_session_id(),
            graph_id=graph_id,
            graph_name=graph_name,
            input=input_value,
        )
        session.mark_failed(error)
        return session

    def summary_dict(self) -> dict[str, Any]:
        """Compact view used in events and listings."""
        return {
            "session_id": self.session_id,
            "graph_id": self.graph_id,
            "graph_name": self.graph_name,
            "status": self.status,
            "step_count": len(self.steps),
            "total_metrics": self.total_metrics.model_dump(),
            "error": self.error,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }
