"""
Graph lookup collaborators.

The engine only reads graphs: ``resolve_graph(graph_id)`` returns a
PipelineGraph or raises GraphNotFound.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from contextflow.errors import GraphNotFound
from contextflow.graph.model import PipelineGraph
from contextflow.utils.io import atomic_write, validate_key

logger = logging.getLogger(__name__)


def load_graph_document(document: dict[str, Any], graph_id: str | None = None) -> PipelineGraph:
    """Build a PipelineGraph from an editor document (``nodes``/``edges``/``name`` or ``title``)."""
    graph = PipelineGraph.model_validate(document)
    if graph_id and not graph.id:
        graph.id = graph_id
    return graph


def load_graph_file(path: Path) -> PipelineGraph:
    path = Path(path)
    with open(path, encoding="utf-8-sig") as f:
        document = json.load(f)
    return load_graph_document(document, graph_id=path.stem)


class GraphLookup(ABC):
    """Read-only source of graphs for comparison runs."""

    @abstractmethod
    async def resolve_graph(self, graph_id: str) -> PipelineGraph:
        """
        Resolve a graph id.

        Raises:
            GraphNotFound: if no graph has this id
        """


class InMemoryGraphStore(GraphLookup):
    """Graphs held in a dict, keyed by id."""

    def __init__(self, graphs: dict[str, PipelineGraph | dict[str, Any]] | None = None):
        self._graphs: dict[str, PipelineGraph] = {}
        for graph_id, graph in (graphs or {}).items():
            self.add(graph, graph_id=graph_id)

    def add(self, graph: PipelineGraph | dict[str, Any], graph_id: str | None = None) -> str:
        if isinstance(graph, dict):
            graph = load_graph_document(graph, graph_id=graph_id)
        key = graph_id or graph.id
        if not key:
            raise ValueError("Graph needs an id to be stored")
        if graph.id is None:
            graph = graph.model_copy(update={"id": key})
        self._graphs[key] = graph
        return key

    async def resolve_graph(self, graph_id: str) -> PipelineGraph:
        graph = self._graphs.get(graph_id)
        if graph is None:
            raise GraphNotFound(graph_id)
        return graph

    def list_ids(self) -> list[str]:
        return list(self._graphs)


class FileGraphStore(GraphLookup):
    """Graph documents stored as ``{directory}/{graph_id}.json``."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def get_path(self, graph_id: str) -> Path:
        validate_key(graph_id)
        return self.directory / f"{graph_id}.json"

    async def resolve_graph(self, graph_id: str) -> PipelineGraph:
        def _read():
            path = self.get_path(graph_id)
            if not path.exists():
                raise GraphNotFound(graph_id)
            return load_graph_file(path)

        return await asyncio.to_thread(_read)

    async def save_graph(self, graph: PipelineGraph) -> None:
        if not graph.id:
            raise ValueError("Graph needs an id to be stored")

        def _write():
            path = self.get_path(graph.id)
            path.parent.mkdir(parents=True, exist_ok=True)
            with atomic_write(path) as f:
                f.write(graph.model_dump_json(indent=2, by_alias=True))

        await asyncio.to_thread(_write)
        logger.debug(f"Saved graph {graph.id}")

    def list_ids(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))
