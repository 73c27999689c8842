"""Jina rerank provider adapter.

Posts ``{model, query, documents, top_n}`` to the Jina rerank endpoint and
reads back ``results[{index, relevance_score}]``.  Uses ``httpx`` like the
rest of the HTTP-speaking adapters.
"""

from __future__ import annotations

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.rerank_provider import IRerankProvider, RerankResult
from src.utils.errors import (
    ProviderUnavailableError,
    RAGError,
    RateLimitError,
    ServiceTimeoutError,
)

logger = structlog.get_logger(logger_name=__name__)


class JinaRerankProvider(IRerankProvider):
    """Cross-encoder reranker backed by the Jina rerank API."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.jina_api_key
        self._model = settings.jina_rerank_model
        self._url = settings.jina_rerank_url
        self._timeout = max(1.0, float(settings.rerank_timeout_seconds))

    async def rerank(self, query: str, documents: list[str], top_n: int) -> list[RerankResult]:
        if not query.strip() or not documents:
            return []

        payload = {
            "model": self._model,
            "query": query,
            "documents": documents,
            "top_n": max(1, min(top_n, len(documents))),
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ServiceTimeoutError(
                message=f"Jina rerank timed out: {exc}", provider_name=self.get_provider_name()
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(
                message=f"Jina rerank request failed: {exc}", provider_name=self.get_provider_name()
            ) from exc

        if response.status_code == 429:
            raise RateLimitError(message="Jina rerank rate limited", provider_name=self.get_provider_name())
        if response.status_code >= 500:
            raise ProviderUnavailableError(
                message=f"Jina rerank HTTP {response.status_code}",
                provider_name=self.get_provider_name(),
            )
        if response.status_code != 200:
            raise RAGError(
                message=f"Jina rerank HTTP {response.status_code}: {response.text[:300]}",
                provider_name=self.get_provider_name(),
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise RAGError(
                message="Jina rerank returned invalid JSON", provider_name=self.get_provider_name()
            ) from exc
        rows = data.get("results") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise RAGError(
                message="Jina rerank response has no results list",
                provider_name=self.get_provider_name(),
            )

        results: list[RerankResult] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            index = row.get("index")
            if not isinstance(index, int) or not 0 <= index < len(documents):
                continue
            score = float(row.get("relevance_score", 0.0) or 0.0)
            results.append(RerankResult(index=index, relevance_score=min(1.0, max(0.0, score))))

        results.sort(key=lambda r: r.relevance_score, reverse=True)
        logger.debug("jina_rerank", candidates=len(documents), returned=len(results))
        return results[:top_n]

    def get_provider_name(self) -> str:
        return "jina_rerank"

    def is_available(self) -> bool:
        return bool(self._api_key and self._url and self._model)
