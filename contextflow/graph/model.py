"""
Graph Model - typed nodes and edges of a context pipeline.

Graphs arrive from the visual editor as JSON documents. The editor stores
nodes as ``{"id", "type", "data": {"label", ...config}}`` with camelCase
keys, so the models here accept both that shape and the plain
``{"id", "variant", "label", "config"}`` shape.

Pure data: no execution behavior lives here.
"""

import re
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_TAG_NOISE = re.compile(r"[\s_\-]+")


class NodeVariant(StrEnum):
    """The typed role of a node in a pipeline graph."""

    INPUT = "input"
    OUTPUT = "output"
    PROMPT_TEMPLATE = "prompt_template"
    RAG_RETRIEVER = "rag_retriever"
    MEMORY_STORE = "memory_store"
    STATE_TRACKER = "state_tracker"
    OUTPUT_PARSER = "output_parser"
    PASSTHROUGH = "passthrough"

    @classmethod
    def parse(cls, tag: Any) -> "NodeVariant":
        """
        Map an editor type tag onto a variant.

        Matching ignores case, separators and a trailing ``Node`` suffix, so
        ``PromptTemplateNode``, ``promptTemplate`` and ``prompt-template`` are
        all PROMPT_TEMPLATE. Unknown tags become PASSTHROUGH.
        """
        if isinstance(tag, cls):
            return tag
        key = _TAG_NOISE.sub("", str(tag or "")).lower()
        if key.endswith("node") and len(key) > len("node"):
            key = key[: -len("node")]
        return _VARIANT_ALIASES.get(key, cls.PASSTHROUGH)


_VARIANT_ALIASES: dict[str, NodeVariant] = {
    **{v.value.replace("_", ""): v for v in NodeVariant},
    "llm": NodeVariant.PROMPT_TEMPLATE,
    "prompt": NodeVariant.PROMPT_TEMPLATE,
    "rag": NodeVariant.RAG_RETRIEVER,
    "retriever": NodeVariant.RAG_RETRIEVER,
    "memory": NodeVariant.MEMORY_STORE,
    "parser": NodeVariant.OUTPUT_PARSER,
}


class GraphNode(BaseModel):
    """
    A node in a pipeline graph.

    Examples:
        GraphNode(
            id="prompt-1",
            variant=NodeVariant.PROMPT_TEMPLATE,
            label="Answer question",
            config={"template": "Answer: {prompt}", "variables": ["prompt"]},
        )

        # Editor document shape
        GraphNode.model_validate(
            {"id": "rag", "type": "ragRetrieverNode", "data": {"label": "Docs", "topK": 3}}
        )
    """

    id: str
    variant: NodeVariant = NodeVariant.PASSTHROUGH
    label: str | None = None
    config: dict[str, Any] = Field(
        default_factory=dict,
        description="Variant-specific settings, e.g. template, topK, parserType",
    )
    type_tag: str = Field(default="", description="Raw type tag as sent by the editor")

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _from_editor_document(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        value = dict(value)
        if "variant" not in value and "type" in value:
            value["variant"] = value.pop("type")
        data = value.pop("data", None)
        if isinstance(data, dict):
            if value.get("label") is None and data.get("label") is not None:
                value["label"] = data["label"]
            if "config" not in value:
                config = data.get("config")
                if not isinstance(config, dict):
                    config = {k: v for k, v in data.items() if k != "label"}
                value["config"] = config
        if not value.get("type_tag"):
            raw = value.get("variant")
            value["type_tag"] = str(raw) if raw is not None else ""
        return value

    @field_validator("variant", mode="before")
    @classmethod
    def _parse_variant(cls, value: Any) -> NodeVariant:
        return NodeVariant.parse(value)

    @property
    def step_name(self) -> str:
        """Human label for the step this node produces."""
        return self.label or self.type_tag or self.variant.value


class GraphEdge(BaseModel):
    """A directed connection from ``source`` to ``target``."""

    id: str | None = None
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PipelineGraph(BaseModel):
    """A complete node/edge structure, the engine's unit of execution."""

    id: str | None = None
    name: str = ""
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _accept_title(cls, value: Any) -> Any:
        if isinstance(value, dict) and not value.get("name") and value.get("title"):
            value = {**value, "name": value["title"]}
        return value

    def validate_structure(self) -> list[str]:
        """
        Check structural invariants.

        Returns:
            List of error messages (empty if the graph is well formed)
        """
        errors = []
        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                errors.append(f"Duplicate node id '{node.id}'")
            seen.add(node.id)

        for edge in self.edges:
            if edge.source not in seen:
                errors.append(f"Edge source '{edge.source}' does not exist")
            if edge.target not in seen:
                errors.append(f"Edge target '{edge.target}' does not exist")
        return errors

    def get_node(self, node_id: str) -> GraphNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def incoming(self, node_id: str) -> list[GraphEdge]:
        """Incoming edges of a node, in declaration order."""
        return [e for e in self.edges if e.target == node_id]
