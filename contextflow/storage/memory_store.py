"""
Memory backends for MemoryStore nodes.

Executors only record intents; the session applies them here after the step
completes. Values may expire after a per-key TTL.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from contextflow.graph.executors import MemoryIntent

logger = logging.getLogger(__name__)

MEMORY_OPERATIONS = ("store", "append", "retrieve", "clear")


@dataclass
class _Entry:
    value: Any
    expires_at: float | None = None


class MemoryBackend(ABC):
    """Persistence collaborator for memory intents."""

    @abstractmethod
    async def apply(self, intent: MemoryIntent) -> Any:
        """
        Apply an intent and return the key's resulting value.

        Raises:
            ValueError: for an unsupported operation
        """

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Current value of ``key``, or None."""


class InMemoryMemoryBackend(MemoryBackend):
    """
    Process-local key/value memory with TTL expiry.

    Operations:
    - store: replace the value
    - append: join text values with a newline
    - retrieve: read only
    - clear: delete the key
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, _Entry] = {}
        self._clock = clock
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def _expiry(self, ttl_seconds: float | None) -> float | None:
        return self._clock() + ttl_seconds if ttl_seconds else None

    async def apply(self, intent: MemoryIntent) -> Any:
        async with self._lock:
            entry = self._live(intent.key)
            if intent.operation == "store":
                self._entries[intent.key] = _Entry(intent.value, self._expiry(intent.ttl_seconds))
            elif intent.operation == "append":
                previous = entry.value if entry else ""
                value = f"{previous}\n{intent.value}" if previous else intent.value
                self._entries[intent.key] = _Entry(value, self._expiry(intent.ttl_seconds))
            elif intent.operation == "clear":
                self._entries.pop(intent.key, None)
                return None
            elif intent.operation != "retrieve":
                raise ValueError(f"Unsupported memory operation: {intent.operation}")

            current = self._live(intent.key)
            logger.debug(f"Memory {intent.operation} on '{intent.key}'")
            return current.value if current else None

    async def get(self, key: str) -> Any:
        async with self._lock:
            entry = self._live(key)
            return entry.value if entry else None

    def snapshot(self) -> dict[str, Any]:
        """All live values, keyed by memory key."""
        return {key: self._entries[key].value for key in list(self._entries) if self._live(key)}
