"""Abstract base class for reranking service providers.

Reranking is best effort: the retrieval engine falls back to its own merged
order whenever :meth:`IRerankProvider.rerank` raises.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RerankResult:
    """One reranked candidate: its position in the input and a 0–1 relevance."""

    index: int
    relevance_score: float


# Concrete implementation: JinaRerankProvider (src/providers/rerank/)
class IRerankProvider(ABC):
    """Contract for model-based rerankers."""

    @abstractmethod
    async def rerank(self, query: str, documents: list[str], top_n: int) -> list[RerankResult]:
        """Reorder *documents* by relevance to *query*.

        Returns
        -------
        list[RerankResult]
            At most *top_n* results, most relevant first.  ``index`` refers
            to the position in *documents*.

        Raises
        ------
        src.utils.errors.TransientServiceError
            On timeouts, rate limits and 5xx responses.
        src.utils.errors.RAGError
            On any other failure.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this reranker."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the reranker is configured."""
