"""
Command-line interface for contextflow.

Usage:
    contextflow run graph.json --input "What is RAG?" --mock
    contextflow compare rag-v1 rag-v2 --graphs-dir graphs/ --input "What is RAG?"
    contextflow validate graph.json
    contextflow sessions --storage ~/.contextflow/storage

Results are printed as JSON on stdout. Exit code is 1 for a failed session,
an invalid graph or an invalid request.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from contextflow.config import RuntimeConfig
from contextflow.errors import PipelineError
from contextflow.graph.scheduler import schedule
from contextflow.observability import configure_logging
from contextflow.runtime.engine import PipelineEngine
from contextflow.schemas.session import SessionStatus
from contextflow.storage.graph_store import FileGraphStore, InMemoryGraphStore, load_graph_file
from contextflow.storage.session_store import SessionStore


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _runtime_config(args: argparse.Namespace) -> RuntimeConfig:
    config = RuntimeConfig()
    if getattr(args, "mock", False):
        config.mock_mode = True
    if getattr(args, "provider", None):
        config.provider = args.provider
    if getattr(args, "model", None):
        config.model = args.model
    if getattr(args, "storage", None):
        config.storage_path = Path(args.storage).expanduser()
    return config


def _add_engine_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--input", "-i", required=True, help="Input text for the pipeline")
    parser.add_argument("--mock", action="store_true", help="Use deterministic mock providers")
    parser.add_argument("--provider", help="Default LLM provider (e.g. openai, anthropic)")
    parser.add_argument("--model", help="Default model name")
    parser.add_argument("--storage", help="Directory to persist session records in")


def cmd_run(args: argparse.Namespace) -> int:
    """Run a single graph file."""
    try:
        graph = load_graph_file(Path(args.graph))
    except (OSError, ValueError) as e:
        print(f"Error: cannot load graph {args.graph}: {e}", file=sys.stderr)
        return 1

    engine = PipelineEngine(_runtime_config(args))
    try:
        session = asyncio.run(engine.run(graph, args.input))
    except PipelineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _print_json(session.model_dump(mode="json"))
    return 0 if session.status == SessionStatus.COMPLETED else 1


def cmd_compare(args: argparse.Namespace) -> int:
    """Compare graphs, given as files or as ids in --graphs-dir."""
    if args.graphs_dir:
        graphs = FileGraphStore(Path(args.graphs_dir))
        graph_ids = list(args.graphs)
    else:
        graphs = InMemoryGraphStore()
        graph_ids = []
        for path in args.graphs:
            try:
                graph = load_graph_file(Path(path))
            except (OSError, ValueError) as e:
                print(f"Error: cannot load graph {path}: {e}", file=sys.stderr)
                return 1
            graph_ids.append(graphs.add(graph, graph_id=graph.id or Path(path).stem))

    engine = PipelineEngine(_runtime_config(args), graphs=graphs)
    try:
        comparison = asyncio.run(engine.compare(graph_ids, args.input))
    except (PipelineError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _print_json(comparison.model_dump(mode="json"))
    return 0 if comparison.summary.succeeded_count == comparison.summary.graph_count else 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Print the execution order of a graph, or why it has none."""
    try:
        graph = load_graph_file(Path(args.graph))
        order = schedule(graph)
    except (OSError, ValueError, PipelineError) as e:
        _print_json({"valid": False, "error": str(e)})
        return 1

    _print_json({"valid": True, "name": graph.name, "order": order})
    return 0


def cmd_sessions(args: argparse.Namespace) -> int:
    """List stored sessions."""
    config = _runtime_config(args)
    if config.storage_path is None:
        print("Error: no storage path (use --storage or set storage_path)", file=sys.stderr)
        return 1

    store = SessionStore(config.storage_path)
    sessions = asyncio.run(
        store.list_sessions(status=args.status, graph_id=args.graph_id, limit=args.limit)
    )
    _print_json([s.summary_dict() for s in sessions])
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    run_parser = subparsers.add_parser("run", help="Run a pipeline graph")
    run_parser.add_argument("graph", help="Path to a graph JSON document")
    _add_engine_arguments(run_parser)
    run_parser.set_defaults(func=cmd_run)

    compare_parser = subparsers.add_parser("compare", help="Compare pipeline graphs")
    compare_parser.add_argument("graphs", nargs="+", help="Graph files, or graph ids with --graphs-dir")
    compare_parser.add_argument("--graphs-dir", help="Directory of {graph_id}.json documents")
    _add_engine_arguments(compare_parser)
    compare_parser.set_defaults(func=cmd_compare)

    validate_parser = subparsers.add_parser("validate", help="Check a graph and print its order")
    validate_parser.add_argument("graph", help="Path to a graph JSON document")
    validate_parser.set_defaults(func=cmd_validate)

    sessions_parser = subparsers.add_parser("sessions", help="List stored sessions")
    sessions_parser.add_argument("--storage", help="Storage directory")
    sessions_parser.add_argument("--status", help="Filter by status (completed, failed)")
    sessions_parser.add_argument("--graph-id", help="Filter by graph id")
    sessions_parser.add_argument("--limit", type=int, default=20, help="Maximum sessions to list")
    sessions_parser.set_defaults(func=cmd_sessions)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="contextflow",
        description="contextflow - run and compare LLM context pipelines",
    )
    parser.add_argument("--log-level", default="WARNING", help="Log level for stderr output")
    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level)

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
