"""
Scheduler - deterministic execution order for a pipeline graph.

Kahn's algorithm. Among nodes that are ready at the same time the one
declared first in the graph wins, so identical graphs always produce
identical orders.
"""

import heapq
import logging
from collections.abc import Iterable

from contextflow.errors import CycleDetected, InvalidGraph
from contextflow.graph.model import GraphEdge, GraphNode, PipelineGraph

logger = logging.getLogger(__name__)


def order(nodes: Iterable[GraphNode], edges: Iterable[GraphEdge]) -> list[str]:
    """
    Compute a topological order of node ids.

    Edges whose endpoints are not among ``nodes`` are ignored.

    Raises:
        CycleDetected: if no valid order exists. The hint names the first
            declared node that could not be scheduled.
    """
    node_ids = [n.id for n in nodes]
    position = {node_id: i for i, node_id in enumerate(node_ids)}
    successors: dict[str, list[str]] = {node_id: [] for node_id in node_ids}
    in_degree: dict[str, int] = dict.fromkeys(node_ids, 0)

    for edge in edges:
        if edge.source not in position or edge.target not in position:
            continue
        successors[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    ready = [position[n] for n in node_ids if in_degree[n] == 0]
    heapq.heapify(ready)
    result: list[str] = []

    while ready:
        current = node_ids[heapq.heappop(ready)]
        result.append(current)
        for successor in successors[current]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                heapq.heappush(ready, position[successor])

    if len(result) < len(node_ids):
        scheduled = set(result)
        stuck = next(n for n in node_ids if n not in scheduled)
        logger.debug(f"Scheduled {len(result)}/{len(node_ids)} nodes; '{stuck}' is on a cycle")
        raise CycleDetected(stuck)

    return result


def schedule(graph: PipelineGraph) -> list[str]:
    """Validate a graph's structure, then order it."""
    errors = graph.validate_structure()
    if errors:
        raise InvalidGraph(errors)
    return order(graph.nodes, graph.edges)
