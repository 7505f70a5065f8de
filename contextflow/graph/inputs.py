"""Input resolution shared by every node executor.

A node's effective input is built from its incoming edges:

- text (any non-mapping) output of a source is bound to both the ``prompt``
  and ``query`` slots
- mapping output of a source has its fields merged into the variables
- each source output is also bound under the source node id and, when the
  edge carries a target handle label, under that label
- a node without incoming edges receives the session's original input

``input`` always refers to the session's original input, so templates can
reference it anywhere in the graph.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from contextflow.graph.model import PipelineGraph


def as_text(value: Any) -> str:
    """Render an opaque step value as text for prompts and queries."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


@dataclass
class ResolvedInput:
    """The value a node consumes plus the named variables around it."""

    value: Any
    variables: dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return as_text(self.value)

    @property
    def prompt(self) -> str:
        return as_text(self.variables.get("prompt", self.value))

    @property
    def query(self) -> str:
        return as_text(self.variables.get("query", self.value))


def _bind(value: Any) -> dict[str, Any]:
    if isinstance(value, Mapping):
        return {str(k): v for k, v in value.items()}
    return {"prompt": value, "query": value}


def resolve_input(
    graph: PipelineGraph,
    node_id: str,
    outputs: Mapping[str, Any],
    session_input: Any,
) -> ResolvedInput:
    """
    Build the effective input of ``node_id``.

    Args:
        graph: The graph being executed
        node_id: Node whose input is resolved
        outputs: Outputs of already completed steps, keyed by node id
        session_input: The original input of the session

    Returns:
        ResolvedInput with the primary value and template variables
    """
    variables: dict[str, Any] = {"input": session_input}
    incoming = graph.incoming(node_id)
    if not incoming:
        variables.update(_bind(session_input))
        return ResolvedInput(value=session_input, variables=variables)

    sources: dict[str, Any] = {}
    for edge in incoming:
        if edge.source not in outputs:
            continue
        output = outputs[edge.source]
        sources[edge.source] = output
        variables[edge.source] = output
        variables.update(_bind(output))
        if edge.target_handle:
            variables[edge.target_handle] = output

    if len(sources) == 1:
        value = next(iter(sources.values()))
    else:
        value = sources
    return ResolvedInput(value=value, variables=variables)
