"""
Session Runner - drives one graph through the scheduler and executors.

The runner:
1. Obtains the node order from the scheduler (structural errors raise here,
   before any event is published)
2. For each node, creates a step, resolves its input and dispatches it
3. Publishes a step_update on every step transition
4. Stops at the first failed step and fails the session
5. Sums metrics and publishes the terminal event

Steps never run in parallel within a session: node N may consume node N-1's
output.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from contextflow.errors import NodeExecutionError, SessionCancelled
from contextflow.graph.executors import NodeOutcome, RuntimeContext, execute_node
from contextflow.graph.inputs import as_text, resolve_input
from contextflow.graph.model import GraphNode, PipelineGraph
from contextflow.graph.scheduler import schedule
from contextflow.observability import set_trace_context
from contextflow.runtime.event_bus import EventBus, record_payload
from contextflow.schemas.session import ExecutionSession, ExecutionStep, generate_session_id
from contextflow.storage.memory_store import MemoryBackend
from contextflow.storage.session_store import SessionStore

logger = logging.getLogger(__name__)

StepCallback = Callable[[ExecutionSession, ExecutionStep, float], Awaitable[None]]

RELEVANCE_MIN_WORD_LENGTH = 3


def relevance_score(output: Any, context: Any) -> float:
    """
    Word-overlap relevance of ``output`` to ``context``.

    Counts output words longer than three characters that also occur in the
    context, divided by the number of context words, capped at 1.0.
    """
    output_text = as_text(output).lower()
    context_text = as_text(context).lower()
    if not output_text or not context_text:
        return 0.0
    context_words = context_text.split()
    vocabulary = set(context_words)
    common = [
        word
        for word in output_text.split()
        if len(word) > RELEVANCE_MIN_WORD_LENGTH and word in vocabulary
    ]
    return min(len(common) / max(len(context_words), 1), 1.0)


def _progress(done: int, total: int) -> float:
    return round(done / total * 100, 2) if total else 100.0


class SessionRunner:
    """
    Executes a single graph against one input.

    Example:
        runner = SessionRunner(RuntimeContext(chat=MockChatProvider(), search=MockSearchProvider()))
        session = await runner.run(graph, "What is RAG?")
    """

    def __init__(
        self,
        ctx: RuntimeContext,
        event_bus: EventBus | None = None,
        memory: MemoryBackend | None = None,
        session_store: SessionStore | None = None,
        score_relevance: bool = False,
    ):
        self.ctx = ctx
        self.event_bus = event_bus
        self.memory = memory
        self.session_store = session_store
        self.score_relevance = score_relevance

    async def run(
        self,
        graph: PipelineGraph,
        input_value: Any,
        session_id: str | None = None,
        cancel_event: asyncio.Event | None = None,
        on_step: StepCallback | None = None,
        memory: MemoryBackend | None = None,
    ) -> ExecutionSession:
        """
        Run ``graph`` to a terminal session.

        Node failures and cancellation are recorded on the returned session;
        only structural errors (InvalidGraph, CycleDetected) raise.

        Args:
            graph: Graph to execute
            input_value: Original session input
            session_id: Pre-generated session id (comparison mode)
            cancel_event: When set, the session stops before the next node
            on_step: Awaited after every step transition with (session, step, progress)
            memory: Memory backend for this run only, instead of the runner's
        """
        order = schedule(graph)

        session = ExecutionSession(
            session_id=session_id or generate_session_id(),
            graph_id=graph.id,
            graph_name=graph.name,
            input=input_value,
        )
        set_trace_context(session_id=session.session_id, graph_id=graph.id)
        logger.info(
            f"Session started with {len(order)} nodes",
            extra={"event": "simulation_started"},
        )
        if self.event_bus:
            await self.event_bus.emit_simulation_started(
                session.session_id, graph.id, input_value, len(order)
            )

        outputs: dict[str, Any] = {}
        total = len(order)
        for index, node_id in enumerate(order):
            if cancel_event is not None and cancel_event.is_set():
                await self._fail(session, str(SessionCancelled(session.session_id)), None)
                break

            node = graph.get_node(node_id)
            resolved = resolve_input(graph, node_id, outputs, input_value)
            step = session.add_step(
                ExecutionStep(
                    node_id=node_id,
                    node_variant=node.variant.value,
                    step_name=node.step_name,
                )
            )
            step.start(resolved.value)
            set_trace_context(node_id=node_id)
            await self._step_changed(session, step, _progress(index, total), on_step)

            started = time.perf_counter()
            try:
                outcome = await execute_node(node, resolved, self.ctx)
                await self._apply_memory(
                    node, outcome, session, memory if memory is not None else self.memory
                )
            except NodeExecutionError as e:
                elapsed = int((time.perf_counter() - started) * 1000)
                step.fail(str(e.cause), elapsed)
                logger.error(f"Node {node_id} failed: {e.cause}", extra={"node_id": node_id})
                await self._step_changed(session, step, _progress(index + 1, total), on_step)
                await self._fail(session, str(e), node_id)
                break

            elapsed = int((time.perf_counter() - started) * 1000)
            step.complete(
                outcome.output,
                execution_time_ms=elapsed,
                tokens_in=outcome.tokens_in,
                tokens_out=outcome.tokens_out,
                cost_usd=outcome.cost_usd,
                annotations=outcome.annotations,
            )
            if self.score_relevance:
                step.relevance_score = relevance_score(step.output, step.input)
            outputs[node_id] = outcome.output
            logger.info(
                f"Step {step.step_name} completed",
                extra={
                    "node_id": node_id,
                    "latency_ms": elapsed,
                    "tokens_used": outcome.total_tokens,
                    "cost_usd": outcome.cost_usd,
                },
            )
            await self._step_changed(session, step, _progress(index + 1, total), on_step)
        else:
            session.mark_completed()
            logger.info(
                f"Session completed: {session.total_metrics.total_tokens} tokens, "
                f"${session.total_metrics.total_cost:.6f}",
                extra={"event": "simulation_completed"},
            )
            if self.event_bus:
                await self.event_bus.emit_simulation_completed(
                    session.session_id, record_payload(session)
                )

        await self._persist(session)
        return session

    async def _apply_memory(
        self,
        node: GraphNode,
        outcome: NodeOutcome,
        session: ExecutionSession,
        memory: MemoryBackend | None,
    ) -> None:
        intent = outcome.memory_intent
        if intent is None:
            return
        session.memory_intents.append(intent.to_dict())
        if memory is None:
            return
        try:
            stored = await memory.apply(intent)
        except Exception as e:
            raise NodeExecutionError(node.id, e) from e
        outcome.annotations["memory"] = {**intent.to_dict(), "stored": stored}

    async def _step_changed(
        self,
        session: ExecutionSession,
        step: ExecutionStep,
        progress: float,
        on_step: StepCallback | None,
    ) -> None:
        if self.event_bus:
            await self.event_bus.emit_step_update(
                session.session_id, record_payload(step), progress
            )
        if on_step is not None:
            await on_step(session, step, progress)

    async def _fail(self, session: ExecutionSession, error: str, node_id: str | None) -> None:
        session.mark_failed(error, node_id)
        logger.warning(f"Session failed: {error}", extra={"event": "simulation_error"})
        if self.event_bus:
            await self.event_bus.emit_simulation_error(
                session.session_id, error, node_id, record_payload(session)
            )

    async def _persist(self, session: ExecutionSession) -> None:
        if self.session_store is None:
            return
        try:
            await self.session_store.write_session(session)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to persist session {session.session_id}: {e}")
