"""Tests for session records, graph lookup and memory backends."""

import json

import pytest

from contextflow.errors import GraphNotFound
from contextflow.graph.executors import MemoryIntent
from contextflow.graph.model import NodeVariant
from contextflow.schemas.comparison import ComparisonRun
from contextflow.schemas.session import ExecutionSession, ExecutionStep, SessionStatus
from contextflow.storage.graph_store import FileGraphStore, InMemoryGraphStore, load_graph_file
from contextflow.storage.memory_store import InMemoryMemoryBackend
from contextflow.storage.session_store import SessionStore

EDITOR_DOCUMENT = {
    "title": "Support bot",
    "nodes": [
        {"id": "in", "type": "input", "data": {"label": "Question"}},
        {"id": "rag", "type": "ragRetrieverNode", "data": {"label": "Docs", "topK": 2}},
    ],
    "edges": [{"id": "e1", "source": "in", "target": "rag", "sourceHandle": "out"}],
}


def _session(graph_id="g1", status=SessionStatus.COMPLETED) -> ExecutionSession:
    session = ExecutionSession(graph_id=graph_id, input="q")
    step = session.add_step(ExecutionStep(node_id="in", node_variant="input", step_name="in"))
    step.start("q")
    step.complete("q", execution_time_ms=1)
    if status == SessionStatus.COMPLETED:
        session.mark_completed()
    else:
        session.mark_failed("boom", "in")
    return session


class TestSessionStore:
    @pytest.mark.asyncio
    async def test_write_and_read(self, tmp_path):
        store = SessionStore(tmp_path)
        session = _session()

        await store.write_session(session)
        loaded = await store.read_session(session.session_id)

        assert (tmp_path / "sessions" / session.session_id / "state.json").exists()
        assert loaded.session_id == session.session_id
        assert loaded.steps[0].tokens.total == 0
        assert loaded.final_output == "q"

    @pytest.mark.asyncio
    async def test_missing_session(self, tmp_path):
        assert await SessionStore(tmp_path).read_session("session_20260101_000000_deadbeef") is None

    @pytest.mark.asyncio
    async def test_list_with_filters(self, tmp_path):
        store = SessionStore(tmp_path)
        for session in (_session("g1"), _session("g2"), _session("g1", SessionStatus.FAILED)):
            await store.write_session(session)

        assert len(await store.list_sessions()) == 3
        assert len(await store.list_sessions(graph_id="g1")) == 2
        failed = await store.list_sessions(status="failed")
        assert [s.error for s in failed] == ["boom"]
        assert len(await store.list_sessions(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_corrupt_file_is_skipped(self, tmp_path):
        store = SessionStore(tmp_path)
        await store.write_session(_session())
        bad = tmp_path / "sessions" / "session_bad" / "state.json"
        bad.parent.mkdir(parents=True)
        bad.write_text("{not json")

        assert len(await store.list_sessions()) == 1

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        store = SessionStore(tmp_path)
        session = _session()
        await store.write_session(session)

        assert await store.delete_session(session.session_id) is True
        assert await store.delete_session(session.session_id) is False

    @pytest.mark.asyncio
    async def test_path_traversal_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            await SessionStore(tmp_path).read_session("../escape")

    @pytest.mark.asyncio
    async def test_comparison_round_trip(self, tmp_path):
        store = SessionStore(tmp_path)
        comparison = ComparisonRun(input="q", graph_ids=["g1"], sessions={"g1": _session()})
        comparison.finish()

        await store.write_comparison(comparison)
        loaded = await store.read_comparison(comparison.comparison_id)

        assert loaded.summary.succeeded_count == 1
        assert await store.read_comparison("comparison_missing") is None


class TestGraphStores:
    @pytest.mark.asyncio
    async def test_in_memory_lookup(self):
        store = InMemoryGraphStore({"support": EDITOR_DOCUMENT})

        graph = await store.resolve_graph("support")

        assert graph.id == "support"
        assert graph.name == "Support bot"
        assert graph.nodes[1].variant == NodeVariant.RAG_RETRIEVER

        with pytest.raises(GraphNotFound):
            await store.resolve_graph("other")

    @pytest.mark.asyncio
    async def test_file_store(self, tmp_path):
        (tmp_path / "support.json").write_text(json.dumps(EDITOR_DOCUMENT))
        store = FileGraphStore(tmp_path)

        graph = await store.resolve_graph("support")

        assert graph.id == "support"
        assert graph.edges[0].source_handle == "out"
        assert store.list_ids() == ["support"]
        with pytest.raises(GraphNotFound):
            await store.resolve_graph("absent")

    @pytest.mark.asyncio
    async def test_save_then_resolve(self, tmp_path):
        graph = load_graph_file(_write(tmp_path / "src.json", EDITOR_DOCUMENT))
        graph.id = "copy"
        store = FileGraphStore(tmp_path / "graphs")

        await store.save_graph(graph)
        loaded = await store.resolve_graph("copy")

        assert loaded.nodes == graph.nodes
        assert loaded.edges[0].source_handle == "out"


def _write(path, document):
    path.write_text(json.dumps(document))
    return path


class TestMemoryBackend:
    @pytest.mark.asyncio
    async def test_store_append_retrieve_clear(self):
        memory = InMemoryMemoryBackend()

        assert await memory.apply(MemoryIntent("store", "k", "one")) == "one"
        assert await memory.apply(MemoryIntent("append", "k", "two")) == "one\ntwo"
        assert await memory.apply(MemoryIntent("retrieve", "k")) == "one\ntwo"
        assert await memory.apply(MemoryIntent("clear", "k")) is None
        assert await memory.get("k") is None

    @pytest.mark.asyncio
    async def test_append_to_empty_key(self):
        memory = InMemoryMemoryBackend()

        assert await memory.apply(MemoryIntent("append", "log", "first")) == "first"

    @pytest.mark.asyncio
    async def test_ttl_expiry(self):
        now = [100.0]
        memory = InMemoryMemoryBackend(clock=lambda: now[0])

        await memory.apply(MemoryIntent("store", "k", "v", ttl_seconds=10))
        now[0] = 105.0
        assert await memory.get("k") == "v"
        now[0] = 111.0
        assert await memory.get("k") is None
        assert memory.snapshot() == {}

    @pytest.mark.asyncio
    async def test_unsupported_operation(self):
        with pytest.raises(ValueError):
            await InMemoryMemoryBackend().apply(MemoryIntent("explode", "k"))
