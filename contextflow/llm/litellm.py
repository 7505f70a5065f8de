"""LiteLLM-backed chat-completion adapter.

One adapter covers every provider LiteLLM routes to (OpenAI, Anthropic, xAI,
...). The model string sent to LiteLLM is ``"<provider>/<model>"``.
"""

import logging
import time
from typing import Any

import litellm

from contextflow.errors import ProviderError
from contextflow.llm.provider import ChatProvider, ChatResponse, ChatUsage

logger = logging.getLogger(__name__)


def _status_of(error: Exception) -> int:
    status = getattr(error, "status_code", None)
    try:
        return int(status) if status is not None else 500
    except (TypeError, ValueError):
        return 500


class LiteLLMChatProvider(ChatProvider):
    """
    Chat completion through ``litellm.acompletion``.

    API keys come from ``api_key`` when given, otherwise LiteLLM reads the
    provider's usual environment variable (OPENAI_API_KEY, ANTHROPIC_API_KEY, ...).

    Example:
        chat = LiteLLMChatProvider()
        response = await chat.complete(
            "openai", "gpt-4o-mini", [{"role": "user", "content": "Hi"}]
        )
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.api_base = api_base
        self.timeout = timeout

    @staticmethod
    def model_name(provider: str, model: str) -> str:
        if not provider or model.startswith(f"{provider}/"):
            return model
        return f"{provider}/{model}"

    async def complete(
        self,
        provider: str,
        model: str,
        messages: list[dict[str, Any]],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> ChatResponse:
        kwargs: dict[str, Any] = {
            "model": self.model_name(provider, model),
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "timeout": self.timeout,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        start = time.monotonic()
        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            status = _status_of(e)
            logger.warning(f"LiteLLM call to {kwargs['model']} failed with status {status}: {e}")
            raise ProviderError(status, str(e)) from e

        latency_ms = int((time.monotonic() - start) * 1000)
        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""

        usage = None
        raw_usage = getattr(response, "usage", None)
        if raw_usage is not None and getattr(raw_usage, "prompt_tokens", None) is not None:
            usage = ChatUsage(
                prompt_tokens=raw_usage.prompt_tokens or 0,
                completion_tokens=raw_usage.completion_tokens or 0,
            )

        logger.debug(
            f"LiteLLM completion from {kwargs['model']}",
            extra={
                "model": kwargs["model"],
                "latency_ms": latency_ms,
                "tokens_used": usage.total_tokens if usage else None,
            },
        )
        return ChatResponse(
            content=content,
            model=getattr(response, "model", None) or kwargs["model"],
            usage=usage,
            raw_response=response,
        )
