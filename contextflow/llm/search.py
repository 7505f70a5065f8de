"""Semantic-search adapters.

- InMemorySearchProvider: word-overlap scoring over a local document list
- WeaviateSearchProvider: GraphQL ``nearText`` search over HTTP
"""

import json
import logging
import re
from collections.abc import Iterable
from typing import Any

import httpx

from contextflow.errors import ProviderError
from contextflow.llm.provider import SearchProvider, SearchResult, rank_results

logger = logging.getLogger(__name__)

_WORD = re.compile(r"\w+")


def _words(text: str) -> set[str]:
    return {w.lower() for w in _WORD.findall(text)}


class InMemorySearchProvider(SearchProvider):
    """
    Scores each document by Jaccard overlap between its words and the query's.

    Documents may be plain strings or ``{"content": ..., **metadata}`` dicts.
    """

    def __init__(self, documents: Iterable[str | dict[str, Any]]):
        self._documents: list[tuple[str, dict[str, Any]]] = []
        for doc in documents:
            if isinstance(doc, dict):
                meta = {k: v for k, v in doc.items() if k != "content"}
                self._documents.append((str(doc.get("content", "")), meta))
            else:
                self._documents.append((str(doc), {}))

    async def search(
        self,
        query: str,
        top_k: int = 5,
        score_threshold: float = 0.0,
    ) -> list[SearchResult]:
        query_words = _words(query)
        results = []
        for content, meta in self._documents:
            doc_words = _words(content)
            union = query_words | doc_words
            score = len(query_words & doc_words) / len(union) if union else 0.0
            results.append(SearchResult(content=content, score=round(score, 4), metadata=meta))
        return rank_results(results, top_k, score_threshold)


class WeaviateSearchProvider(SearchProvider):
    """
    Weaviate ``nearText`` search; score is ``_additional.certainty``.

    A fresh ``httpx.AsyncClient`` is opened per call unless one is injected.
    """

    def __init__(
        self,
        endpoint: str,
        class_name: str,
        api_key: str | None = None,
        text_property: str = "text",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.class_name = class_name
        self.api_key = api_key
        self.text_property = text_property
        self.timeout = timeout
        self._client = client

    def build_query(self, query: str, top_k: int) -> str:
        return (
            "{ Get { "
            f"{self.class_name}(nearText: {{concepts: [{json.dumps(query)}]}} limit: {int(top_k)}) "
            f"{{ {self.text_property} _additional {{ certainty }} }}"
            " } }"
        )

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        url = f"{self.endpoint}/v1/graphql"
        if self._client is not None:
            return await self._client.post(url, json=payload, headers=headers)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, json=payload, headers=headers)

    async def search(
        self,
        query: str,
        top_k: int = 5,
        score_threshold: float = 0.0,
    ) -> list[SearchResult]:
        try:
            response = await self._post({"query": self.build_query(query, top_k)})
        except httpx.HTTPError as e:
            raise ProviderError(503, f"Weaviate request failed: {e}") from e

        if not response.is_success:
            raise ProviderError(response.status_code, f"Weaviate query failed: {response.text}")

        data = response.json()
        if data.get("errors"):
            message = "; ".join(str(err.get("message", err)) for err in data["errors"])
            raise ProviderError(502, f"Weaviate query error: {message}")

        items = (data.get("data") or {}).get("Get", {}).get(self.class_name) or []
        results = [
            SearchResult(
                content=str(item.get(self.text_property, "")),
                score=float((item.get("_additional") or {}).get("certainty") or 0.0),
                metadata={k: v for k, v in item.items() if k != "_additional"},
            )
            for item in items
        ]
        return rank_results(results, top_k, score_threshold)
