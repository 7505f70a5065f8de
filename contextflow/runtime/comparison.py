"""
Comparison Coordinator - runs several graphs concurrently on one input.

Every member session runs independently; a failure in one (lookup failure,
cycle, node error) is recorded as that member's failed session and never
cancels or affects its siblings. Each member gets a fresh memory backend,
so a MemoryStore write in one graph is never visible to another. ``compare``
itself only raises for an invalid request, before any session starts.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from contextflow.config import MAX_COMPARISON_GRAPHS
from contextflow.errors import PipelineError, TooManyComparisons
from contextflow.observability import set_trace_context
from contextflow.runtime.event_bus import EventBus, record_payload
from contextflow.runtime.session import SessionRunner
from contextflow.schemas.comparison import ComparisonRun
from contextflow.schemas.session import ExecutionSession, ExecutionStep, generate_session_id
from contextflow.storage.graph_store import GraphLookup
from contextflow.storage.memory_store import InMemoryMemoryBackend, MemoryBackend
from contextflow.storage.session_store import SessionStore

logger = logging.getLogger(__name__)


def validate_comparison_request(graph_ids: list[str], limit: int = MAX_COMPARISON_GRAPHS) -> None:
    """
    Reject a comparison request before anything runs.

    Raises:
        TooManyComparisons: more than ``limit`` graphs
        ValueError: empty list or duplicate graph ids
    """
    if not graph_ids:
        raise ValueError("At least one graph is required for comparison")
    if len(graph_ids) > limit:
        raise TooManyComparisons(len(graph_ids), limit)
    duplicates = sorted({g for g in graph_ids if graph_ids.count(g) > 1})
    if duplicates:
        raise ValueError(f"Duplicate graph ids in comparison: {', '.join(duplicates)}")


class ComparisonCoordinator:
    """
    Fan a single input out across several graphs.

    Example:
        coordinator = ComparisonCoordinator(runner, InMemoryGraphStore(graphs))
        run = await coordinator.compare(["rag-v1", "rag-v2"], "What is RAG?")
        run.summary.succeeded_count
    """

    def __init__(
        self,
        runner: SessionRunner,
        graphs: GraphLookup,
        event_bus: EventBus | None = None,
        session_store: SessionStore | None = None,
        max_graphs: int = MAX_COMPARISON_GRAPHS,
        memory_factory: Callable[[], MemoryBackend] = InMemoryMemoryBackend,
    ):
        self.runner = runner
        self.graphs = graphs
        self.event_bus = event_bus
        self.session_store = session_store
        self.max_graphs = max_graphs
        self.memory_factory = memory_factory

    async def compare(
        self,
        graph_ids: list[str],
        input_value: Any,
        comparison_id: str | None = None,
    ) -> ComparisonRun:
        """
        Run every graph concurrently against ``input_value``.

        Returns:
            ComparisonRun with one terminal session per graph id and the summary
        """
        graph_ids = list(graph_ids)
        validate_comparison_request(graph_ids, self.max_graphs)

        comparison = ComparisonRun(input=input_value, graph_ids=graph_ids)
        if comparison_id:
            comparison.comparison_id = comparison_id
        set_trace_context(comparison_id=comparison.comparison_id)
        logger.info(f"Comparison started across {len(graph_ids)} graphs")

        session_ids = {graph_id: generate_session_id() for graph_id in graph_ids}
        results = await asyncio.gather(
            *[
                self._run_member(comparison.comparison_id, graph_id, session_ids[graph_id], input_value)
                for graph_id in graph_ids
            ],
            return_exceptions=True,
        )

        for graph_id, result in zip(graph_ids, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(f"Comparison member {graph_id} crashed: {result}")
                result = ExecutionSession.failure_placeholder(
                    graph_id, input_value, str(result), session_id=session_ids[graph_id]
                )
            comparison.sessions[graph_id] = result

        comparison.finish()
        logger.info(
            f"Comparison completed: {comparison.summary.succeeded_count}/"
            f"{comparison.summary.graph_count} graphs succeeded",
            extra={"event": "comparison_completed"},
        )
        if self.event_bus:
            await self.event_bus.emit_comparison_completed(
                comparison.comparison_id, record_payload(comparison)
            )
        if self.session_store is not None:
            try:
                await self.session_store.write_comparison(comparison)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to persist comparison {comparison.comparison_id}: {e}")
        return comparison

    async def _run_member(
        self,
        comparison_id: str,
        graph_id: str,
        session_id: str,
        input_value: Any,
    ) -> ExecutionSession:
        """Resolve and run one member; lookup and structural failures become placeholders."""
        set_trace_context(graph_id=graph_id)
        try:
            graph = await self.graphs.resolve_graph(graph_id)
        except PipelineError as e:
            logger.warning(f"Graph {graph_id} could not be resolved: {e}")
            return ExecutionSession.failure_placeholder(
                graph_id, input_value, str(e), session_id=session_id
            )
        if graph.id is None:
            graph = graph.model_copy(update={"id": graph_id})

        async def forward_step(session: ExecutionSession, step: ExecutionStep, progress: float) -> None:
            if self.event_bus:
                await self.event_bus.emit_comparison_step(
                    comparison_id,
                    session.session_id,
                    graph_id,
                    graph.name,
                    record_payload(step),
                    progress,
                )

        try:
            return await self.runner.run(
                graph,
                input_value,
                session_id=session_id,
                on_step=forward_step,
                memory=self.memory_factory(),
            )
        except PipelineError as e:
            logger.warning(f"Graph {graph_id} could not be scheduled: {e}")
            return ExecutionSession.failure_placeholder(
                graph_id, input_value, str(e), session_id=session_id, graph_name=graph.name
            )
