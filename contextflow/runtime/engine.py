"""
Pipeline Engine - top-level entry point for running and comparing graphs.

Wires configuration, provider adapters, the event bus and the persistence
collaborators into a SessionRunner and a ComparisonCoordinator.
"""

import asyncio
import logging
import uuid
from collections import OrderedDict
from pathlib import Path
from typing import Any

from contextflow.config import RuntimeConfig
from contextflow.graph.executors import RuntimeContext
from contextflow.graph.model import PipelineGraph
from contextflow.llm import build_providers
from contextflow.llm.pricing import RateTable
from contextflow.llm.provider import ChatProvider, SearchProvider
from contextflow.observability import set_trace_context
from contextflow.runtime.comparison import ComparisonCoordinator
from contextflow.runtime.event_bus import EventBus, HttpEventSink
from contextflow.runtime.session import SessionRunner
from contextflow.schemas.comparison import ComparisonRun
from contextflow.schemas.session import ExecutionSession
from contextflow.storage.graph_store import GraphLookup, InMemoryGraphStore
from contextflow.storage.memory_store import InMemoryMemoryBackend, MemoryBackend
from contextflow.storage.session_store import SessionStore

logger = logging.getLogger(__name__)

MAX_CACHED_SESSIONS = 100


class PipelineEngine:
    """
    Facade over the execution and comparison engine.

    Example:
        engine = PipelineEngine(RuntimeConfig(mock_mode=True))
        session = await engine.run(graph, "Summarize the quarterly report")
    """

    def __init__(
        self,
        config: RuntimeConfig | None = None,
        graphs: GraphLookup | None = None,
        event_bus: EventBus | None = None,
        chat: ChatProvider | None = None,
        search: SearchProvider | None = None,
        memory: MemoryBackend | None = None,
        storage_path: Path | None = None,
        max_cached_sessions: int = MAX_CACHED_SESSIONS,
    ):
        self.config = config or RuntimeConfig()
        self.graphs = graphs or InMemoryGraphStore()
        self.event_bus = event_bus or EventBus()
        broadcast_url = self.config.broadcast.get("url")
        if broadcast_url:
            self.event_bus.add_sink(
                HttpEventSink(broadcast_url, headers=self.config.broadcast.get("headers"))
            )
        self.memory = memory or InMemoryMemoryBackend()

        default_chat, default_search = build_providers(self.config)
        self.context = RuntimeContext(
            chat=chat or default_chat,
            search=search or default_search,
            rates=RateTable.from_config(self.config.pricing),
            provider=self.config.provider,
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            mock_mode=self.config.mock_mode,
        )

        path = storage_path or self.config.storage_path
        self.session_store = SessionStore(path) if path else None

        self._runner = SessionRunner(
            self.context,
            event_bus=self.event_bus,
            memory=self.memory,
            session_store=self.session_store,
        )
        self._coordinator = ComparisonCoordinator(
            SessionRunner(
                self.context,
                event_bus=self.event_bus,
                session_store=self.session_store,
                score_relevance=True,
            ),
            self.graphs,
            event_bus=self.event_bus,
            session_store=self.session_store,
            max_graphs=self.config.max_comparison_graphs,
        )
        # Most recently finished sessions; older ones are read back from the store
        self._sessions: OrderedDict[str, ExecutionSession] = OrderedDict()
        self._max_cached_sessions = max_cached_sessions

    async def run(
        self,
        graph: PipelineGraph | dict[str, Any],
        input_value: Any,
        session_id: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ExecutionSession:
        """Run one graph. Raises only for structural graph errors."""
        if isinstance(graph, dict):
            graph = PipelineGraph.model_validate(graph)
        set_trace_context(trace_id=uuid.uuid4().hex)
        session = await self._runner.run(
            graph, input_value, session_id=session_id, cancel_event=cancel_event
        )
        self._remember(session)
        return session

    async def run_graph_id(self, graph_id: str, input_value: Any) -> ExecutionSession:
        """Resolve a graph through the lookup collaborator and run it."""
        graph = await self.graphs.resolve_graph(graph_id)
        return await self.run(graph, input_value)

    async def compare(
        self,
        graph_ids: list[str],
        input_value: Any,
        comparison_id: str | None = None,
    ) -> ComparisonRun:
        """Run several graphs concurrently. Raises only for an invalid request."""
        set_trace_context(trace_id=uuid.uuid4().hex)
        comparison = await self._coordinator.compare(
            graph_ids, input_value, comparison_id=comparison_id
        )
        for session in comparison.sessions.values():
            self._remember(session)
        return comparison

    async def get_session(self, session_id: str) -> ExecutionSession | None:
        """Terminal state of a session, from memory or the session store."""
        session = self._sessions.get(session_id)
        if session is None and self.session_store is not None:
            session = await self.session_store.read_session(session_id)
        return session

    def _remember(self, session: ExecutionSession) -> None:
        self._sessions[session.session_id] = session
        self._sessions.move_to_end(session.session_id)
        while len(self._sessions) > self._max_cached_sessions:
            self._sessions.popitem(last=False)
