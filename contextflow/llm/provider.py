"""Provider adapter abstractions for chat completion and semantic search.

Node executors reach language models and vector stores only through these
interfaces. Implementations must be stateless per call so a single instance
can be shared by concurrently running sessions.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from contextflow.errors import ProviderError

__all__ = [
    "ChatProvider",
    "ChatResponse",
    "ChatUsage",
    "ProviderError",
    "SearchProvider",
    "SearchResult",
    "rank_results",
]


@dataclass
class ChatUsage:
    """Token usage reported by a chat-completion provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class ChatResponse:
    """Response from a chat-completion call."""

    content: str
    model: str = ""
    usage: ChatUsage | None = None  # None when the provider cannot report usage
    raw_response: Any = None


@dataclass
class SearchResult:
    """A passage returned by semantic search."""

    content: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"content": self.content, "score": self.score, "metadata": self.metadata}


def rank_results(
    results: Iterable[SearchResult],
    top_k: int,
    score_threshold: float,
) -> list[SearchResult]:
    """Keep results scoring at least ``score_threshold``, best first, at most ``top_k``."""
    kept = [r for r in results if r.score >= score_threshold]
    kept.sort(key=lambda r: r.score, reverse=True)
    return kept[: max(top_k, 0)]


class ChatProvider(ABC):
    """
    Abstract chat-completion capability.

    Implementations should handle:
    - API authentication
    - Request/response formatting
    - Usage reporting (``usage=None`` if unavailable)
    - Raising ProviderError(status, message) on failure
    """

    @abstractmethod
    async def complete(
        self,
        provider: str,
        model: str,
        messages: list[dict[str, Any]],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> ChatResponse:
        """
        Generate a completion.

        Args:
            provider: Provider name, e.g. "openai", "anthropic", "xai"
            model: Model name within the provider
            messages: Conversation [{role: "system"|"user"|"assistant", content: str}]
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            ChatResponse with content and usage
        """


class SearchProvider(ABC):
    """Abstract semantic-search capability."""

    @abstractmethod
    async def search(
        self,
        query: str,
        top_k: int = 5,
        score_threshold: float = 0.0,
    ) -> list[SearchResult]:
        """
        Search for passages relevant to ``query``.

        Returns:
            Results with ``score >= score_threshold``, ordered by descending score
        """
