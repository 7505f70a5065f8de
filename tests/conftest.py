"""Shared fixtures and fake collaborators."""

from typing import Any

import pytest

from contextflow.errors import ProviderError
from contextflow.graph.executors import RuntimeContext
from contextflow.graph.model import PipelineGraph
from contextflow.llm.mock import MockChatProvider, MockSearchProvider
from contextflow.llm.provider import (
    ChatProvider,
    ChatResponse,
    ChatUsage,
    SearchProvider,
    SearchResult,
)
from contextflow.observability import clear_trace_context


class FakeChatProvider(ChatProvider):
    """Records calls; fails when the user prompt contains ``fail_on``."""

    def __init__(
        self,
        content: str = "fake answer",
        usage: ChatUsage | None = ChatUsage(prompt_tokens=10, completion_tokens=5),
        fail_on: str | None = None,
        error: Exception | None = None,
    ):
        self.content = content
        self.usage = usage
        self.fail_on = fail_on
        self.error = error or ProviderError(500, "upstream exploded")
        self.calls: list[dict[str, Any]] = []

    async def complete(self, provider, model, messages, temperature=0.7, max_tokens=1024):
        self.calls.append(
            {
                "provider": provider,
                "model": model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        prompt = messages[-1]["content"]
        if self.fail_on is not None and self.fail_on in prompt:
            raise self.error
        return ChatResponse(content=self.content, model=f"{provider}/{model}", usage=self.usage)


class FakeSearchProvider(SearchProvider):
    """Returns fixed results without filtering them."""

    def __init__(self, results: list[SearchResult]):
        self.results = results
        self.queries: list[dict[str, Any]] = []

    async def search(self, query, top_k=5, score_threshold=0.0):
        self.queries.append({"query": query, "top_k": top_k, "score_threshold": score_threshold})
        return list(self.results)


def linear_graph(*nodes: dict[str, Any], graph_id: str | None = "graph-1", name: str = "") -> PipelineGraph:
    """Chain the given node documents in declaration order."""
    edges = [
        {"id": f"e{i}", "source": a["id"], "target": b["id"]}
        for i, (a, b) in enumerate(zip(nodes, nodes[1:]))
    ]
    return PipelineGraph.model_validate(
        {"id": graph_id, "name": name or (graph_id or ""), "nodes": list(nodes), "edges": edges}
    )


@pytest.fixture(autouse=True)
def _isolated_environment(tmp_path, monkeypatch):
    """Never read the developer's real configuration or leak trace context."""
    monkeypatch.setenv("CONTEXTFLOW_CONFIG", str(tmp_path / "no-config.json"))
    monkeypatch.delenv("CONTEXTFLOW_MOCK_MODE", raising=False)
    clear_trace_context()
    yield
    clear_trace_context()


@pytest.fixture
def mock_context() -> RuntimeContext:
    return RuntimeContext(chat=MockChatProvider(), search=MockSearchProvider(), mock_mode=True)


@pytest.fixture
def fake_chat() -> FakeChatProvider:
    return FakeChatProvider()


@pytest.fixture
def chain_graph() -> PipelineGraph:
    """Input -> PromptTemplate -> Output."""
    return linear_graph(
        {"id": "in", "type": "input", "data": {"label": "User input"}},
        {
            "id": "prompt",
            "type": "promptTemplateNode",
            "data": {"label": "Answer", "template": "Answer briefly: {prompt}", "variables": ["prompt"]},
        },
        {"id": "out", "type": "output", "data": {"label": "Result"}},
        graph_id="chain",
        name="Chain",
    )
