"""Tests for input resolution across incoming edges."""

from contextflow.graph.inputs import as_text, resolve_input
from contextflow.graph.model import PipelineGraph


def _graph(edges):
    node_ids = sorted({e["source"] for e in edges} | {e["target"] for e in edges} | {"root"})
    return PipelineGraph.model_validate(
        {"nodes": [{"id": n} for n in node_ids], "edges": edges}
    )


class TestResolveInput:
    def test_root_receives_session_input(self):
        graph = _graph([])

        resolved = resolve_input(graph, "root", {}, "What is RAG?")

        assert resolved.value == "What is RAG?"
        assert resolved.prompt == "What is RAG?"
        assert resolved.query == "What is RAG?"
        assert resolved.variables["input"] == "What is RAG?"

    def test_text_output_binds_prompt_and_query(self):
        graph = _graph([{"source": "a", "target": "b"}])

        resolved = resolve_input(graph, "b", {"a": "retrieved text"}, "original")

        assert resolved.value == "retrieved text"
        assert resolved.variables["prompt"] == "retrieved text"
        assert resolved.variables["query"] == "retrieved text"
        assert resolved.variables["a"] == "retrieved text"
        assert resolved.variables["input"] == "original"

    def test_structured_output_fields_are_merged(self):
        graph = _graph([{"source": "a", "target": "b"}])

        resolved = resolve_input(graph, "b", {"a": {"topic": "rag", "lang": "en"}}, "original")

        assert resolved.variables["topic"] == "rag"
        assert resolved.variables["lang"] == "en"
        assert resolved.value == {"topic": "rag", "lang": "en"}

    def test_target_handle_binding(self):
        graph = _graph([{"source": "a", "target": "b", "targetHandle": "context"}])

        resolved = resolve_input(graph, "b", {"a": "passages"}, "original")

        assert resolved.variables["context"] == "passages"

    def test_multiple_sources(self):
        graph = _graph([{"source": "a", "target": "c"}, {"source": "b", "target": "c"}])

        resolved = resolve_input(graph, "c", {"a": "first", "b": "second"}, "original")

        assert resolved.value == {"a": "first", "b": "second"}
        assert resolved.variables["prompt"] == "second"


class TestAsText:
    def test_values(self):
        assert as_text(None) == ""
        assert as_text("plain") == "plain"
        assert as_text({"a": 1}) == '{"a": 1}'
        assert as_text(["x", 2]) == '["x", 2]'
