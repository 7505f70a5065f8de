"""Provider adapters: chat completion, semantic search and pricing."""

import logging

from contextflow.config import RuntimeConfig
from contextflow.llm.mock import MockChatProvider, MockSearchProvider
from contextflow.llm.pricing import DEFAULT_RATE, ModelRate, RateTable
from contextflow.llm.provider import (
    ChatProvider,
    ChatResponse,
    ChatUsage,
    ProviderError,
    SearchProvider,
    SearchResult,
    rank_results,
)
from contextflow.llm.search import InMemorySearchProvider, WeaviateSearchProvider

logger = logging.getLogger(__name__)

__all__ = [
    "ChatProvider",
    "ChatResponse",
    "ChatUsage",
    "ProviderError",
    "SearchProvider",
    "SearchResult",
    "rank_results",
    "RateTable",
    "ModelRate",
    "DEFAULT_RATE",
    "MockChatProvider",
    "MockSearchProvider",
    "InMemorySearchProvider",
    "WeaviateSearchProvider",
    "build_providers",
]


def build_search_provider(search_config: dict) -> SearchProvider | None:
    """Build a search adapter from a ``search``/``vectorStore`` descriptor, if possible."""
    provider = str(search_config.get("provider", "")).lower()
    endpoint = search_config.get("endpoint")
    class_name = search_config.get("class_name") or search_config.get("className")
    if provider == "weaviate" and endpoint and class_name:
        return WeaviateSearchProvider(
            endpoint=endpoint,
            class_name=class_name,
            api_key=search_config.get("api_key") or search_config.get("apiKey"),
            text_property=search_config.get("text_property", "text"),
        )
    documents = search_config.get("documents")
    if provider in ("memory", "in_memory") and documents:
        return InMemorySearchProvider(documents)
    return None


def build_providers(
    config: RuntimeConfig,
    mock: bool | None = None,
) -> tuple[ChatProvider, SearchProvider]:
    """
    Build the (chat, search) adapter pair for a configuration.

    In mock mode both adapters are replaced by deterministic mocks. Without a
    configured vector store, search falls back to the mock adapter.
    """
    use_mock = config.mock_mode if mock is None else mock
    if use_mock:
        return MockChatProvider(), MockSearchProvider()

    from contextflow.llm.litellm import LiteLLMChatProvider

    chat = LiteLLMChatProvider(api_key=config.api_key, api_base=config.api_base)
    search = build_search_provider(config.search)
    if search is None:
        logger.warning("No vector store configured; semantic search uses mock passages")
        search = MockSearchProvider()
    return chat, search
