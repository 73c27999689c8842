"""ChromaDB vector store provider adapter.

Wraps `chromadb.PersistentClient` to implement :class:`IVectorStoreProvider`.
Every course gets its own collection, created lazily with cosine distance.
Fully local, free, and Python-native, so no external service is required.
"""

from __future__ import annotations

import os
from typing import Any

# Disable ChromaDB telemetry completely before importing chromadb.
# A version mismatch between ChromaDB's bundled PostHog client and the
# installed version causes "capture() takes 1 positional argument" errors.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import EmbeddingRecord, SearchHit
from src.utils.errors import RAGError

logger = structlog.get_logger(logger_name=__name__)

# ChromaDB rejects very large single writes; chunk upserts below this.
_UPSERT_BATCH = 500


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    Vectors are always computed by the IndexClient and passed explicitly,
    so ChromaDB's default ONNX model (~80 MB) is never needed.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "CourseForge uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store provider backed by ChromaDB with local persistence."""

    def __init__(self, persist_directory: str = "./data/chromadb") -> None:
        self._persist_directory = persist_directory
        self._client = chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._collections: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Collection handling
    # ------------------------------------------------------------------

    def _collection(self, name: str) -> Any:
        cached = self._collections.get(name)
        if cached is not None:
            return cached
        # Newer ChromaDB versions refuse an embedding function that differs
        # from the persisted one; reopen without it in that case.
        try:
            collection = self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            collection = self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
            )
        self._collections[name] = collection
        return collection

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def upsert(
        self,
        collection: str,
        records: list[EmbeddingRecord],
        documents: list[str],
        metadatas: list[dict[str, Any]],
    ) -> int:
        if not (len(records) == len(documents) == len(metadatas)):
            raise ValueError("records, documents and metadatas must have equal length")
        if not records:
            return 0

        try:
            target = self._collection(collection)
            for start in range(0, len(records), _UPSERT_BATCH):
                end = start + _UPSERT_BATCH
                batch = records[start:end]
                target.upsert(
                    ids=[r.chunk_id for r in batch],
                    embeddings=[r.vector for r in batch],
                    documents=documents[start:end],
                    metadatas=metadatas[start:end],
                )
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_upsert", collection=collection, count=len(records))
        return len(records)

    async def query(
        self,
        collection: str,
        vector: list[float],
        k: int,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchHit]:
        try:
            target = self._collection(collection)
            available = target.count()
            if available == 0 or k <= 0:
                return []

            kwargs: dict[str, Any] = {
                "query_embeddings": [vector],
                "n_results": min(k, available),
                "include": ["documents", "metadatas", "distances"],
            }
            where = self._translate_filters(filters)
            if where:
                kwargs["where"] = where
            results = target.query(**kwargs)
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results["ids"][0] if results.get("ids") else []
        docs = results["documents"][0] if results.get("documents") else []
        metas = results["metadatas"][0] if results.get("metadatas") else []
        dists = results["distances"][0] if results.get("distances") else []

        hits: list[SearchHit] = []
        for i, chunk_id in enumerate(ids):
            distance = float(dists[i]) if i < len(dists) else 1.0
            # Cosine distance lies in [0, 2]; similarity is clamped to [0, 1].
            similarity = min(1.0, max(0.0, 1.0 - distance))
            hits.append(
                self._to_hit(
                    chunk_id,
                    docs[i] if i < len(docs) else "",
                    metas[i] if i < len(metas) else {},
                    score=similarity,
                )
            )
        return hits

    async def keyword_search(
        self,
        collection: str,
        terms: list[str],
        k: int,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchHit]:
        """Substring lookup over stored chunk text.

        ChromaDB's ``$contains`` is case-sensitive; stored text is matched
        against the lowercase query terms as given.
        """
        if not terms or k <= 0:
            return []
        if len(terms) == 1:
            where_document: dict[str, Any] = {"$contains": terms[0]}
        else:
            where_document = {"$or": [{"$contains": term} for term in terms]}

        try:
            target = self._collection(collection)
            if target.count() == 0:
                return []
            kwargs: dict[str, Any] = {
                "where_document": where_document,
                "limit": k,
                "include": ["documents", "metadatas", "embeddings"],
            }
            where = self._translate_filters(filters)
            if where:
                kwargs["where"] = where
            results = target.get(**kwargs)
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB keyword search failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results.get("ids") or []
        docs = results.get("documents")
        metas = results.get("metadatas")
        embeddings = results.get("embeddings")

        hits: list[SearchHit] = []
        for i, chunk_id in enumerate(ids):
            vector = None
            if embeddings is not None and i < len(embeddings):
                vector = [float(x) for x in embeddings[i]]
            hits.append(
                self._to_hit(
                    chunk_id,
                    docs[i] if docs is not None and i < len(docs) else "",
                    metas[i] if metas is not None and i < len(metas) else {},
                    score=0.0,
                    vector=vector,
                )
            )
        return hits

    async def delete_by_document(self, collection: str, document_id: str) -> int:
        try:
            target = self._collection(collection)
            existing = target.get(where={"document_id": document_id}, include=[])
            count = len(existing["ids"]) if existing["ids"] else 0
            if count > 0:
                target.delete(where={"document_id": document_id})
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB delete_by_document failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "chromadb_delete_by_document",
            collection=collection,
            document_id=document_id,
            deleted_count=count,
        )
        return count

    def get_provider_name(self) -> str:
        return "chromadb"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_hit(
        chunk_id: str,
        text: str | None,
        meta: dict[str, Any] | None,
        score: float,
        vector: list[float] | None = None,
    ) -> SearchHit:
        meta = meta or {}
        keywords_raw = meta.get("keywords", "")
        keywords = [kw for kw in str(keywords_raw).split(",") if kw]
        return SearchHit(
            chunk_id=chunk_id,
            document_id=str(meta.get("document_id", "")),
            sequence_index=int(meta.get("sequence_index", 0)),
            text=text or "",
            keywords=keywords,
            quality_score=min(100.0, max(0.0, float(meta.get("quality_score", 0.0)))),
            score=score,
            vector=vector,
        )

    @staticmethod
    def _translate_filters(filters: dict[str, Any] | None) -> dict[str, Any] | None:
        """Translate a flat equality map into a ChromaDB ``where`` clause.

        ChromaDB requires ``$and`` once more than one key is constrained.
        """
        if not filters:
            return None
        clauses = [{key: value} for key, value in filters.items() if value is not None]
        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}
