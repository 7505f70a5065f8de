"""Tests for the contextflow command line."""

import json
import logging

import pytest

from contextflow.cli import main

CHAIN_DOCUMENT = {
    "id": "chain",
    "name": "Chain",
    "nodes": [
        {"id": "in", "type": "input", "data": {"label": "User input"}},
        {
            "id": "prompt",
            "type": "promptTemplateNode",
            "data": {"label": "Answer", "template": "Answer briefly: {prompt}", "variables": ["prompt"]},
        },
        {"id": "out", "type": "output", "data": {"label": "Result"}},
    ],
    "edges": [
        {"id": "e1", "source": "in", "target": "prompt"},
        {"id": "e2", "source": "prompt", "target": "out"},
    ],
}

CYCLE_DOCUMENT = {
    "name": "Loop",
    "nodes": [
        {"id": "a", "type": "promptTemplateNode", "data": {"template": "x"}},
        {"id": "b", "type": "promptTemplateNode", "data": {"template": "y"}},
    ],
    "edges": [
        {"id": "e1", "source": "a", "target": "b"},
        {"id": "e2", "source": "b", "target": "a"},
    ],
}


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


@pytest.fixture
def graph_file(tmp_path):
    def _write(name, document):
        path = tmp_path / f"{name}.json"
        path.write_text(json.dumps(document))
        return path

    return _write


def _run(argv) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


class TestValidate:
    def test_prints_order(self, graph_file, capsys):
        code = _run(["validate", str(graph_file("chain", CHAIN_DOCUMENT))])

        result = json.loads(capsys.readouterr().out)
        assert code == 0
        assert result == {"valid": True, "name": "Chain", "order": ["in", "prompt", "out"]}

    def test_cycle_is_invalid(self, graph_file, capsys):
        code = _run(["validate", str(graph_file("loop", CYCLE_DOCUMENT))])

        result = json.loads(capsys.readouterr().out)
        assert code == 1
        assert result["valid"] is False
        assert result["error"]

    def test_missing_file(self, tmp_path, capsys):
        code = _run(["validate", str(tmp_path / "absent.json")])

        assert code == 1
        assert json.loads(capsys.readouterr().out)["valid"] is False


class TestRun:
    def test_mock_run_prints_session(self, graph_file, capsys):
        code = _run(["run", str(graph_file("chain", CHAIN_DOCUMENT)), "--input", "What is RAG?", "--mock"])

        session = json.loads(capsys.readouterr().out)
        assert code == 0
        assert session["status"] == "completed"
        assert [step["node_id"] for step in session["steps"]] == ["in", "prompt", "out"]
        assert session["steps"][1]["input"] == "What is RAG?"

    def test_cycle_exits_with_error(self, graph_file, capsys):
        code = _run(["run", str(graph_file("loop", CYCLE_DOCUMENT)), "-i", "x", "--mock"])

        captured = capsys.readouterr()
        assert code == 1
        assert captured.out == ""
        assert "Error" in captured.err


class TestCompare:
    def test_compare_files(self, graph_file, capsys):
        first = graph_file("first", {**CHAIN_DOCUMENT, "id": "first"})
        second = graph_file("second", {**CHAIN_DOCUMENT, "id": "second"})

        code = _run(["compare", str(first), str(second), "--input", "hello", "--mock"])

        comparison = json.loads(capsys.readouterr().out)
        assert code == 0
        assert set(comparison["sessions"]) == {"first", "second"}
        assert comparison["summary"]["succeeded_count"] == 2

    def test_missing_graph_id_fails_member(self, tmp_path, graph_file, capsys):
        graph_file("present", {**CHAIN_DOCUMENT, "id": None})

        code = _run(
            ["compare", "present", "absent", "--graphs-dir", str(tmp_path), "-i", "hello", "--mock"]
        )

        comparison = json.loads(capsys.readouterr().out)
        assert code == 1
        assert comparison["sessions"]["present"]["status"] == "completed"
        assert comparison["sessions"]["absent"]["status"] == "failed"


class TestSessions:
    def test_requires_storage(self, capsys):
        assert _run(["sessions"]) == 1
        assert "storage" in capsys.readouterr().err

    def test_lists_stored_runs(self, tmp_path, graph_file, capsys):
        storage = tmp_path / "storage"
        _run(["run", str(graph_file("chain", CHAIN_DOCUMENT)), "-i", "hi", "--mock", "--storage", str(storage)])
        capsys.readouterr()

        code = _run(["sessions", "--storage", str(storage)])

        listed = json.loads(capsys.readouterr().out)
        assert code == 0
        assert len(listed) == 1
        assert listed[0]["graph_id"] == "chain"
