"""Abstract base class for vector-store service providers.

Defines the contract for storing and querying embedded chunks.  Each course
has its own collection (``course_<course_id>``), so every call names the
collection it targets.  Implementations wrap ChromaDB; the interface keeps
the retrieval layer independent of the chosen backend.

Stored metadata per chunk (all scalar, as most stores require):

    document_id      str
    sequence_index   int
    keywords         str   comma-separated, sorted
    quality_score    float
    language         str
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.rag import EmbeddingRecord, SearchHit


# Concrete implementation: ChromaDBProvider (src/providers/vector_store/)
class IVectorStoreProvider(ABC):
    """Contract for vector-store services.

    All methods are async so network-backed stores never block the event
    loop.  ``filters`` is a flat ``{metadata_key: value}`` equality map.
    """

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        records: list[EmbeddingRecord],
        documents: list[str],
        metadatas: list[dict[str, Any]],
    ) -> int:
        """Insert or replace vectors with their text and metadata.

        Returns
        -------
        int
            Number of records written.

        Raises
        ------
        ValueError
            If the three lists differ in length.
        src.utils.errors.RAGError
            If the store rejects the write.
        """

    @abstractmethod
    async def query(
        self,
        collection: str,
        vector: list[float],
        k: int,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchHit]:
        """Return up to *k* hits ranked by cosine similarity (descending).

        Scores are similarities in [0, 1].  A missing collection yields an
        empty list.
        """

    @abstractmethod
    async def keyword_search(
        self,
        collection: str,
        terms: list[str],
        k: int,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchHit]:
        """Return up to *k* chunks whose text contains any of *terms*.

        Hits carry their stored vector (when the backend can return it) and
        a score of 0; the caller scores them.
        """

    @abstractmethod
    async def delete_by_document(self, collection: str, document_id: str) -> int:
        """Delete every chunk of *document_id*; returns the number deleted."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
