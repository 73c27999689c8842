"""Hybrid retrieval engine: vector + lexical scoring, optional rerank, dedup, relationships.

# ─── HOW A RETRIEVAL CALL FLOWS ───────────────────────────────────────
#
#   query ─→ embed ─→ vector search (candidate_pool)  ─┐
#        └─→ terms ─→ keyword candidates (lexical_pool) ┴─→ merge by chunk id
#                                                            │
#        semantic × 0.7 + term overlap × 0.3  ←──────────────┘
#                           │
#            top 2×limit ─→ reranker (best effort) ─→ dedup ─→ top limit
#                                                               │
#                                        semantic / hierarchical edges
#
# Ordering is total: score desc, then document order, then chunk index.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from src.interfaces.rerank_provider import IRerankProvider
from src.models.course import CourseBrief
from src.models.rag import (
    ContextType,
    RetrievalContext,
    RetrievalScope,
    RetrievalTuning,
    SearchHit,
)
from src.services.index_client import IndexClient
from src.services.ingestion.keyword_extractor import extract_keywords, query_terms
from src.services.retrieval.lexical import clamp_unit, cosine_similarity, term_overlap
from src.services.retrieval.relationships import deduplicate, extract_relationships
from src.utils.errors import RAGError, RetrievalUnavailableError, TransientServiceError

logger = structlog.get_logger(logger_name=__name__)


@dataclass
class _Candidate:
    hit: SearchHit
    semantic: float
    lexical: float = 0.0
    merged: float = 0.0
    rerank: float | None = None

    @property
    def final(self) -> float:
        return self.rerank if self.rerank is not None else self.merged


class HybridRetrievalEngine:
    """Retrieve ranked, related contexts for a query from one course's index."""

    def __init__(
        self,
        index_client: IndexClient,
        reranker: IRerankProvider | None = None,
        tuning: RetrievalTuning | None = None,
        rerank_timeout_seconds: float = 8.0,
    ) -> None:
        self._index = index_client
        self._reranker = reranker
        self._tuning = tuning or RetrievalTuning()
        self._rerank_timeout = rerank_timeout_seconds

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def retrieve(
        self,
        query: str,
        scope: RetrievalScope,
        limit: int,
    ) -> list[RetrievalContext]:
        """Return at most *limit* contexts, best first, with relationships attached.

        Raises
        ------
        RetrievalUnavailableError
            If the index cannot be reached or its retries are exhausted.
        """
        if limit <= 0 or not query.strip():
            return []
        tuning = self._tuning
        terms = query_terms(query)

        try:
            vector = await self._index.embed_query(query)
            semantic_hits = await self._index.search(
                scope.collection, vector, tuning.candidate_pool, scope.filters
            )
            lexical_hits = (
                await self._index.keyword_candidates(
                    scope.collection, sorted(terms), tuning.lexical_pool, scope.filters
                )
                if tuning.lexical_pool > 0
                else []
            )
        except (TransientServiceError, RAGError) as exc:
            logger.error("retrieval_unavailable", collection=scope.collection, error=str(exc))
            raise RetrievalUnavailableError(
                message=f"Index unavailable for {scope.collection}: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

        candidates: dict[str, _Candidate] = {}
        for hit in semantic_hits:
            candidates[hit.chunk_id] = _Candidate(hit=hit, semantic=clamp_unit(hit.score))
        for hit in lexical_hits:
            if hit.chunk_id in candidates:
                continue
            semantic = cosine_similarity(vector, hit.vector) if hit.vector else 0.0
            candidates[hit.chunk_id] = _Candidate(hit=hit, semantic=semantic)

        for cand in candidates.values():
            cand.lexical = term_overlap(terms, cand.hit.text)
            cand.merged = clamp_unit(
                tuning.semantic_weight * cand.semantic + tuning.lexical_weight * cand.lexical
            )

        ranked = self._sort(
            [c for c in candidates.values() if c.merged > tuning.min_relevance], scope
        )
        shortlist = ranked[: tuning.rerank_factor * limit]
        shortlist = await self._rerank(query, shortlist, scope)

        contexts = deduplicate([self._to_context(c) for c in shortlist], tuning.dedup_window)[:limit]
        contexts = extract_relationships(contexts, tuning.hierarchy_window)

        logger.info(
            "retrieval_complete",
            collection=scope.collection,
            candidates=len(candidates),
            returned=len(contexts),
            reranked=any(c.rerank_score is not None for c in contexts),
        )
        return contexts

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _rerank(
        self,
        query: str,
        shortlist: list[_Candidate],
        scope: RetrievalScope,
    ) -> list[_Candidate]:
        if not shortlist or self._reranker is None or not self._reranker.is_available():
            return shortlist
        try:
            results = await asyncio.wait_for(
                self._reranker.rerank(query, [c.hit.text for c in shortlist], len(shortlist)),
                timeout=self._rerank_timeout,
            )
        except Exception as exc:
            # Reranking is best effort; the merged order stands.
            logger.warning(
                "rerank_fallback",
                provider=self._reranker.get_provider_name(),
                error=str(exc) or type(exc).__name__,
            )
            return shortlist
        if not results:
            logger.warning("rerank_fallback", provider=self._reranker.get_provider_name(), error="empty result")
            return shortlist

        reranked: list[_Candidate] = []
        seen: set[int] = set()
        for result in results:
            # Out-of-range and repeated indices are dropped.
            if not 0 <= result.index < len(shortlist) or result.index in seen:
                continue
            seen.add(result.index)
            cand = shortlist[result.index]
            cand.rerank = clamp_unit(result.relevance_score)
            reranked.append(cand)
        if not reranked:
            logger.warning(
                "rerank_fallback", provider=self._reranker.get_provider_name(), error="no valid indices"
            )
            return shortlist
        return self._sort(
            [c for c in reranked if c.final > self._tuning.min_relevance], scope
        )

    @staticmethod
    def _sort(candidates: list[_Candidate], scope: RetrievalScope) -> list[_Candidate]:
        unknown = len(scope.document_order)
        return sorted(
            candidates,
            key=lambda c: (
                -c.final,
                scope.document_order.get(c.hit.document_id, unknown),
                c.hit.document_id,
                c.hit.sequence_index,
            ),
        )

    @staticmethod
    def _to_context(cand: _Candidate) -> RetrievalContext:
        hit = cand.hit
        return RetrievalContext(
            id=hit.chunk_id,
            type=ContextType.CHUNK,
            content=hit.text,
            relevance_score=clamp_unit(cand.final),
            source_document=hit.document_id,
            source_chunk_id=hit.chunk_id,
            chunk_index=hit.sequence_index,
            extracted_concepts=hit.keywords or extract_keywords(hit.text),
            semantic_score=cand.semantic,
            lexical_score=cand.lexical,
            rerank_score=cand.rerank,
        )


def build_course_queries(course: CourseBrief) -> list[str]:
    """Retrieval queries for a course: three title queries, then objectives and topics.

    Duplicates (case-insensitive) are dropped, first occurrence wins.
    """
    title = course.title.strip()
    raw = [
        f"{title} fundamentals",
        f"{title} best practices",
        f"{title} learning objectives",
        *course.objectives,
        *course.topics,
    ]
    queries: list[str] = []
    seen: set[str] = set()
    for query in raw:
        text = query.strip()
        key = text.lower()
        if text and key not in seen:
            seen.add(key)
            queries.append(text)
    return queries


def merge_contexts(batches: list[list[RetrievalContext]]) -> list[RetrievalContext]:
    """Merge contexts from several queries by id, keeping each id's best-scored copy.

    The result is ordered by score (desc), then source document and chunk index.
    """
    best: dict[str, RetrievalContext] = {}
    for batch in batches:
        for ctx in batch:
            current = best.get(ctx.id)
            if current is None or ctx.relevance_score > current.relevance_score:
                best[ctx.id] = ctx
    return sorted(
        best.values(),
        key=lambda c: (-c.relevance_score, c.source_document, c.chunk_index or 0),
    )
