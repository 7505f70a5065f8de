"""
Node Executors - one handler per node variant.

Each executor consumes the node, its resolved input and the runtime context,
and returns a NodeOutcome (output, token counts, cost, annotations). Handlers
are looked up through a dispatch table built once at import; unknown variants
run as passthrough.

Executors never perform durable I/O. A MemoryStore node only records a
MemoryIntent on its outcome; the session applies it to the memory backend.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from contextflow.config import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_PROVIDER,
    DEFAULT_TEMPERATURE,
)
from contextflow.errors import NodeExecutionError
from contextflow.graph.inputs import ResolvedInput, as_text
from contextflow.graph.model import GraphNode, NodeVariant
from contextflow.graph.parsers import parse_output
from contextflow.llm import build_search_provider
from contextflow.llm.pricing import RateTable
from contextflow.llm.provider import ChatProvider, SearchProvider

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4

DEFAULT_RAG_PROMPT = "Context:\n{context}\n\nQuestion: {query}\n\nAnswer based on the context:"
DEFAULT_RAG_SYSTEM_PROMPT = "You are a helpful assistant. Answer based only on the provided context."

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def estimate_tokens(text: str) -> int:
    """Rough token estimate used when a provider reports no usage."""
    return len(text) // CHARS_PER_TOKEN


def config_value(config: dict[str, Any], *names: str, default: Any = None) -> Any:
    """First present key among ``names`` (accepts camelCase and snake_case spellings)."""
    for name in names:
        if name in config and config[name] is not None:
            return config[name]
    return default


def render_template(template: str, variables: dict[str, Any], declared: list[str] | None = None) -> str:
    """
    Substitute ``{name}`` placeholders.

    Known variables are replaced with their text value. Declared variables
    with no value become ``[name]``; any other placeholder is left as is.
    """
    declared_names = set(declared or [])

    def _sub(match: re.Match) -> str:
        name = match.group(1)
        if name in variables:
            return as_text(variables[name])
        if name in declared_names:
            return f"[{name}]"
        return match.group(0)

    return _PLACEHOLDER.sub(_sub, template)


@dataclass
class MemoryIntent:
    """A memory side effect recorded by a MemoryStore node."""

    operation: str
    key: str
    value: Any = None
    ttl_seconds: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "key": self.key,
            "value": self.value,
            "ttl_seconds": self.ttl_seconds,
        }


@dataclass
class NodeOutcome:
    """Result of executing one node."""

    output: Any
    tokens_in: int = 0
    tokens_out: int = 0
    cost_usd: float = 0.0
    annotations: dict[str, Any] = field(default_factory=dict)
    memory_intent: MemoryIntent | None = None

    @property
    def total_tokens(self) -> int:
        return self.tokens_in + self.tokens_out


@dataclass
class RuntimeContext:
    """Collaborators and defaults shared by every executor in a session."""

    chat: ChatProvider
    search: SearchProvider
    rates: RateTable = field(default_factory=RateTable)
    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    mock_mode: bool = False

    def search_for(self, node: GraphNode) -> SearchProvider:
        """Search adapter for a node; a node-level vector store descriptor wins outside mock mode."""
        descriptor = config_value(node.config, "vectorStore", "vector_store")
        if self.mock_mode or not isinstance(descriptor, dict):
            return self.search
        return build_search_provider(descriptor) or self.search


class NodeExecutor(ABC):
    """Handler for a single node variant."""

    @abstractmethod
    async def execute(
        self,
        node: GraphNode,
        resolved: ResolvedInput,
        ctx: RuntimeContext,
    ) -> NodeOutcome:
        """Execute ``node`` and return its outcome."""


class PassthroughExecutor(NodeExecutor):
    """Identity, zero cost. Used for Input, Output and unknown variants."""

    async def execute(self, node: GraphNode, resolved: ResolvedInput, ctx: RuntimeContext) -> NodeOutcome:
        return NodeOutcome(output=resolved.value)


class PromptTemplateExecutor(NodeExecutor):
    """Render the template and call the chat-completion capability."""

    async def execute(self, node: GraphNode, resolved: ResolvedInput, ctx: RuntimeContext) -> NodeOutcome:
        config = node.config
        template = config_value(config, "template", "prompt")
        declared = config_value(config, "variables", default=[]) or []
        if template:
            prompt = render_template(str(template), resolved.variables, list(declared))
        else:
            prompt = resolved.prompt
        system_prompt = config_value(config, "systemPrompt", "system_prompt")
        return await run_chat(ctx, config, prompt, system_prompt)


async def run_chat(
    ctx: RuntimeContext,
    config: dict[str, Any],
    prompt: str,
    system_prompt: str | None = None,
) -> NodeOutcome:
    """Call the chat adapter with per-node overrides and compute tokens and cost."""
    provider = config_value(config, "provider", default=ctx.provider)
    model = config_value(config, "model", default=ctx.model)
    temperature = float(config_value(config, "temperature", default=ctx.temperature))
    max_tokens = int(config_value(config, "maxTokens", "max_tokens", default=ctx.max_tokens))

    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})

    response = await ctx.chat.complete(
        provider=provider,
        model=model,
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
    )

    if response.usage is not None:
        tokens_in = response.usage.prompt_tokens
        tokens_out = response.usage.completion_tokens
    else:
        tokens_in = estimate_tokens("".join(m["content"] for m in messages))
        tokens_out = estimate_tokens(response.content)

    return NodeOutcome(
        output=response.content,
        tokens_in=tokens_in,
        tokens_out=tokens_out,
        cost_usd=ctx.rates.cost(provider, model, tokens_in, tokens_out),
        annotations={"model": response.model or f"{provider}/{model}", "prompt": prompt},
    )


class RAGRetrieverExecutor(NodeExecutor):
    """Semantic search, then either return the context or answer from it."""

    async def execute(self, node: GraphNode, resolved: ResolvedInput, ctx: RuntimeContext) -> NodeOutcome:
        config = node.config
        query = resolved.query
        top_k = int(config_value(config, "topK", "top_k", default=5))
        threshold = float(config_value(config, "scoreThreshold", "score_threshold", default=0.0))

        results = await ctx.search_for(node).search(query, top_k=top_k, score_threshold=threshold)
        passages = [r for r in results if r.score >= threshold]
        context = "\n\n".join(r.content for r in passages)
        annotations = {"passages": [r.to_dict() for r in passages]}

        prompt_template = config_value(config, "promptTemplate", "prompt_template")
        if not prompt_template:
            return NodeOutcome(output=context, annotations=annotations)

        if prompt_template is True:
            prompt_template = DEFAULT_RAG_PROMPT
        variables = {**resolved.variables, "context": context, "query": query}
        prompt = render_template(str(prompt_template), variables)
        system_prompt = config_value(
            config, "systemPrompt", "system_prompt", default=DEFAULT_RAG_SYSTEM_PROMPT
        )
        outcome = await run_chat(ctx, config, prompt, system_prompt)
        outcome.annotations.update(annotations)
        return outcome


class MemoryStoreExecutor(NodeExecutor):
    """Pass the input through and record a memory intent."""

    async def execute(self, node: GraphNode, resolved: ResolvedInput, ctx: RuntimeContext) -> NodeOutcome:
        config = node.config
        operation = str(config_value(config, "operation", default="store")).lower()
        key = str(config_value(config, "key", "memoryKey", "memory_key", default="default"))
        ttl = config_value(config, "ttl", "ttlSeconds", "ttl_seconds")
        max_tokens = config_value(config, "maxTokens", "max_tokens")

        value = resolved.value
        if max_tokens and isinstance(value, str):
            value = value[: int(max_tokens) * CHARS_PER_TOKEN]

        intent = MemoryIntent(
            operation=operation,
            key=key,
            value=value,
            ttl_seconds=float(ttl) if ttl is not None else None,
        )
        return NodeOutcome(
            output=resolved.value,
            annotations={"memory": intent.to_dict()},
            memory_intent=intent,
        )


def _condition_met(condition: dict[str, Any], value: str) -> bool:
    operator = condition.get("operator")
    expected = condition.get("value")
    if operator == "equals":
        return value == as_text(expected)
    if operator == "contains":
        return as_text(expected) in value
    if operator in ("greater_than", "less_than"):
        try:
            left, right = float(value), float(expected)
        except (TypeError, ValueError):
            return False
        return left > right if operator == "greater_than" else left < right
    return False


class StateTrackerExecutor(NodeExecutor):
    """Pass the input through and annotate the step with a state summary."""

    async def execute(self, node: GraphNode, resolved: ResolvedInput, ctx: RuntimeContext) -> NodeOutcome:
        conditions = config_value(node.config, "conditions", default=[]) or []
        transitions = config_value(node.config, "transitions", default=[]) or []

        current = "processed"
        text = resolved.text
        for condition in conditions:
            if isinstance(condition, dict) and _condition_met(condition, text):
                current = condition.get("targetState") or condition.get("target_state") or current
                break

        state = {
            "current": current,
            "conditions": len(conditions),
            "transitions": len(transitions),
        }
        return NodeOutcome(output=resolved.value, annotations={"state": state})


class OutputParserExecutor(NodeExecutor):
    """Deterministic parsing; never raises."""

    async def execute(self, node: GraphNode, resolved: ResolvedInput, ctx: RuntimeContext) -> NodeOutcome:
        parser_type = config_value(node.config, "parserType", "parser_type")
        schema = config_value(node.config, "schema")
        return NodeOutcome(output=parse_output(resolved.value, parser_type, schema))


_PASSTHROUGH = PassthroughExecutor()

EXECUTORS: dict[NodeVariant, NodeExecutor] = {
    NodeVariant.INPUT: _PASSTHROUGH,
    NodeVariant.OUTPUT: _PASSTHROUGH,
    NodeVariant.PASSTHROUGH: _PASSTHROUGH,
    NodeVariant.PROMPT_TEMPLATE: PromptTemplateExecutor(),
    NodeVariant.RAG_RETRIEVER: RAGRetrieverExecutor(),
    NodeVariant.MEMORY_STORE: MemoryStoreExecutor(),
    NodeVariant.STATE_TRACKER: StateTrackerExecutor(),
    NodeVariant.OUTPUT_PARSER: OutputParserExecutor(),
}


def executor_for(variant: NodeVariant) -> NodeExecutor:
    return EXECUTORS.get(variant, _PASSTHROUGH)


async def execute_node(node: GraphNode, resolved: ResolvedInput, ctx: RuntimeContext) -> NodeOutcome:
    """
    Dispatch ``node`` to its executor.

    Raises:
        NodeExecutionError: wrapping any failure of the executor
    """
    try:
        return await executor_for(node.variant).execute(node, resolved, ctx)
    except NodeExecutionError:
        raise
    except Exception as e:
        logger.debug("Node %s (%s) failed: %s", node.id, node.variant, e)
        raise NodeExecutionError(node.id, e) from e
