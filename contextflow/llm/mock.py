"""Mock provider adapters for mock mode.

Responses are synthetic and deterministic: the same prompt always yields the
same text and token counts, so pipelines can be exercised without network
access or cost.
"""

import asyncio
import random
import zlib
from typing import Any

from contextflow.llm.provider import (
    ChatProvider,
    ChatResponse,
    ChatUsage,
    SearchProvider,
    SearchResult,
    rank_results,
)

MOCK_MIN_TOKENS = 50
MOCK_MAX_TOKENS = 549


def _last_user_message(messages: list[dict[str, Any]]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            return str(message.get("content", ""))
    return str(messages[-1].get("content", "")) if messages else ""


class MockChatProvider(ChatProvider):
    """
    Synthetic chat completions.

    Content is ``"Mock response for: <prompt>"``; token counts are drawn
    from a generator seeded by the prompt and bounded to
    [MOCK_MIN_TOKENS, MOCK_MAX_TOKENS].
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay

    async def complete(
        self,
        provider: str,
        model: str,
        messages: list[dict[str, Any]],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> ChatResponse:
        if self.delay:
            await asyncio.sleep(self.delay)
        prompt = _last_user_message(messages)
        rng = random.Random(zlib.crc32(prompt.encode("utf-8")))
        usage = ChatUsage(
            prompt_tokens=rng.randint(MOCK_MIN_TOKENS, MOCK_MAX_TOKENS),
            completion_tokens=rng.randint(MOCK_MIN_TOKENS, MOCK_MAX_TOKENS),
        )
        return ChatResponse(
            content=f"Mock response for: {prompt}",
            model=f"mock/{model}" if model else "mock",
            usage=usage,
        )


class MockSearchProvider(SearchProvider):
    """Three synthetic passages scored 0.95, 0.87 and 0.76."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay

    async def search(
        self,
        query: str,
        top_k: int = 5,
        score_threshold: float = 0.0,
    ) -> list[SearchResult]:
        if self.delay:
            await asyncio.sleep(self.delay)
        results = [
            SearchResult(f"Relevant information about {query}", 0.95, {"source": "mock"}),
            SearchResult(f"Additional context for {query}", 0.87, {"source": "mock"}),
            SearchResult(f"Background details on {query}", 0.76, {"source": "mock"}),
        ]
        return rank_results(results, top_k, score_threshold)
