"""Embedding/Index client: a thin adapter over the embedding and vector-store providers.

Responsibilities are deliberately narrow:

    batching      — embed and upsert in batches of ``batch_size``
    time bounds   — every external call runs under ``asyncio.wait_for``
    retries       — ``tenacity.AsyncRetrying`` with jittered exponential
                    backoff, transient failures only
    translation   — timeouts become ServiceTimeoutError, any unknown
                    failure becomes RAGError

There is no caching here beyond what the store itself provides.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import Chunk, EmbeddingRecord, IndexAck, SearchHit
from src.utils.errors import CourseForgeError, RAGError, ServiceTimeoutError, TransientServiceError

logger = structlog.get_logger(logger_name=__name__)

T = TypeVar("T")

_INVALID_COLLECTION_CHARS = re.compile(r"[^a-zA-Z0-9._-]+")


def collection_name(course_id: str, prefix: str = "course") -> str:
    """Return the per-course collection name (``<prefix>_<course_id>``).

    Characters outside ``[a-zA-Z0-9._-]`` are replaced so the name is
    accepted by ChromaDB.
    """
    safe = _INVALID_COLLECTION_CHARS.sub("-", course_id).strip("-._") or "default"
    return f"{prefix}_{safe}"[:63]


def chunk_metadata(chunk: Chunk) -> dict[str, Any]:
    """Scalar metadata stored alongside each chunk vector."""
    return {
        "document_id": chunk.document_id,
        "sequence_index": chunk.sequence_index,
        "keywords": ",".join(sorted(chunk.keywords)),
        "quality_score": float(chunk.quality_score),
        "language": chunk.language,
    }


class IndexClient:
    """Index, search and delete course chunks through the injected providers.

    Parameters
    ----------
    embedding_provider:
        Produces vectors for chunk text and queries.
    vector_store:
        Stores and searches vectors, one collection per course.
    batch_size:
        Upper bound on texts per embedding call and records per upsert.
    timeout_seconds:
        Per-call time limit for every external call.
    max_attempts:
        Total attempts per external call (first try included).
    backoff_initial, backoff_max:
        Bounds for the jittered exponential wait between attempts.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        batch_size: int = 64,
        timeout_seconds: float = 30.0,
        max_attempts: int = 3,
        backoff_initial: float = 0.5,
        backoff_max: float = 8.0,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._batch_size = batch_size
        self._timeout = timeout_seconds
        self._max_attempts = max_attempts
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def index(self, collection: str, chunks: list[Chunk]) -> list[IndexAck]:
        """Embed and store *chunks*; returns one acknowledgement per chunk, in order."""
        acks: list[IndexAck] = []
        for start in range(0, len(chunks), self._batch_size):
            batch = chunks[start : start + self._batch_size]
            texts = [chunk.text for chunk in batch]

            vectors = await self._call(
                "embed", lambda texts=texts: self._embedding_provider.embed(texts)
            )
            if len(vectors) != len(batch):
                raise RAGError(
                    message=f"Embedding provider returned {len(vectors)} vectors for {len(batch)} texts",
                    provider_name=self._embedding_provider.get_provider_name(),
                )

            records = [
                EmbeddingRecord(chunk_id=chunk.id, vector=list(vector), collection=collection)
                for chunk, vector in zip(batch, vectors)
            ]
            metadatas = [chunk_metadata(chunk) for chunk in batch]
            await self._call(
                "upsert",
                lambda records=records, texts=texts, metadatas=metadatas: self._vector_store.upsert(
                    collection, records, texts, metadatas
                ),
            )
            acks.extend(IndexAck(chunk_id=chunk.id, collection=collection) for chunk in batch)

        logger.info("chunks_indexed", collection=collection, count=len(acks))
        return acks

    async def embed_query(self, text: str) -> list[float]:
        return await self._call("embed_query", lambda: self._embedding_provider.embed_single(text))

    async def search(
        self,
        collection: str,
        query_vector: list[float],
        k: int,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchHit]:
        """Return up to *k* hits ranked by vector similarity."""
        hits = await self._call(
            "search", lambda: self._vector_store.query(collection, query_vector, k, filters)
        )
        return sorted(hits, key=lambda h: h.score, reverse=True)[:k]

    async def keyword_candidates(
        self,
        collection: str,
        terms: list[str],
        k: int,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchHit]:
        """Return unscored chunks containing any of *terms* (lexical candidate feed)."""
        if not terms:
            return []
        return await self._call(
            "keyword_search",
            lambda: self._vector_store.keyword_search(collection, sorted(terms), k, filters),
        )

    async def delete(self, collection: str, document_id: str) -> int:
        deleted = await self._call(
            "delete", lambda: self._vector_store.delete_by_document(collection, document_id)
        )
        logger.info("document_deleted", collection=collection, document_id=document_id, count=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _call(self, operation: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Run one external call with timeout, retries and error translation.

        *factory* must build a fresh awaitable per attempt.
        """

        def _log_retry(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "index_call_retry",
                operation=operation,
                attempt=state.attempt_number,
                error=str(exc),
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential_jitter(
                initial=self._backoff_initial,
                max=self._backoff_max,
                jitter=self._backoff_initial,
            ),
            retry=retry_if_exception_type(TransientServiceError),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._attempt(operation, factory)
        raise RAGError(message=f"{operation} made no attempt")  # pragma: no cover

    async def _attempt(self, operation: str, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(factory(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise ServiceTimeoutError(
                message=f"{operation} exceeded {self._timeout}s",
                provider_name="index_client",
            ) from exc
        except CourseForgeError:
            raise
        except Exception as exc:
            raise RAGError(
                message=f"{operation} failed: {exc}",
                provider_name="index_client",
            ) from exc
