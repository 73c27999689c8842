"""Shared pytest fixtures and in-memory fakes for the CourseForge test suite."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import numpy as np
import pytest

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.persistence_provider import IPersistenceProvider
from src.interfaces.rerank_provider import IRerankProvider, RerankResult
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.course import CourseBrief, CourseDraft
from src.models.document import CourseResource, Document
from src.models.pipeline import GenerationConfig, GenerationJob
from src.models.quality import QualityThresholds
from src.models.rag import EmbeddingRecord, SearchHit
from src.services.course_assembler import CourseAssembler
from src.services.generation_service import GenerationService
from src.services.index_client import IndexClient
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.keyword_extractor import tokenize_terms
from src.services.retrieval import HybridRetrievalEngine

# ---------------------------------------------------------------------------
# Sample course material
# ---------------------------------------------------------------------------

SAMPLE_DOCUMENTS: dict[str, str] = {
    "doc-photosynthesis": (
        "Photosynthesis converts light energy into chemical energy stored in glucose. "
        "Chlorophyll molecules inside chloroplasts absorb red and blue light while "
        "reflecting green light, which is why leaves look green to our eyes.\n\n"
        "The light reactions take place in the thylakoid membranes. Water molecules are "
        "split, oxygen is released, and the energy carriers ATP and NADPH are produced "
        "for the next phase of the process.\n\n"
        "The Calvin cycle runs in the stroma. Carbon dioxide is fixed by the enzyme "
        "rubisco and, powered by ATP and NADPH, gradually rebuilt into sugar molecules "
        "that the plant uses for growth and storage."
    ),
    "doc-cellular-respiration": (
        "Cellular respiration releases the chemical energy stored in glucose. Cells break "
        "glucose down in glycolysis, which happens in the cytoplasm and yields pyruvate "
        "together with a small amount of ATP.\n\n"
        "Pyruvate enters the mitochondria, where the citric acid cycle strips electrons "
        "from carbon compounds and passes them to carrier molecules.\n\n"
        "The electron transport chain finally pumps protons across the inner membrane. "
        "The resulting gradient drives ATP synthase, producing most of the ATP a cell "
        "needs while oxygen accepts the spent electrons and forms water."
    ),
}


def make_course(
    course_id: str = "biology-101",
    documents: dict[str, str] | None = None,
    **overrides: Any,
) -> CourseBrief:
    docs = SAMPLE_DOCUMENTS if documents is None else documents
    fields: dict[str, Any] = {
        "course_id": course_id,
        "title": "Plant Energy",
        "description": "How plants capture and use energy.",
        "objectives": ["Explain photosynthesis", "Compare photosynthesis and respiration"],
        "topics": ["chlorophyll", "Calvin cycle"],
        "resources": [
            CourseResource(document=Document(id=doc_id, text=text, title=doc_id))
            for doc_id, text in docs.items()
        ],
    }
    fields.update(overrides)
    return CourseBrief(**fields)


def make_config(**overrides: Any) -> GenerationConfig:
    """Small chunks and zero backoff so pipeline tests run fast."""
    fields: dict[str, Any] = {
        "target_chunk_size": 40,
        "min_chunk_size": 15,
        "overlap_size": 5,
        "thresholds": QualityThresholds(minimum=50.0, recommended=70.0, premium=85.0),
        "stage_retry_limit": 3,
        "backoff_base_seconds": 0.0,
        "backoff_max_seconds": 0.0,
        "session_count": 2,
        "activities_per_session": 2,
        "retrieval_limit": 5,
    }
    fields.update(overrides)
    return GenerationConfig(**fields)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class VocabularyEmbedder(IEmbeddingProvider):
    """Bag-of-terms embedder: every distinct term gets its own axis.

    Texts sharing no terms get cosine similarity 0, which makes retrieval
    results predictable.  ``failures`` are raised (in order) before the
    next calls succeed.
    """

    def __init__(self, dimension: int = 1024) -> None:
        self._dimension = dimension
        self._axes: dict[str, int] = {}
        self.failures: list[Exception] = []
        self.calls = 0

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for term in tokenize_terms(text):
            axis = self._axes.setdefault(term, len(self._axes) % self._dimension)
            vector[axis] += 1.0
        return vector

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return [self._vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "vocabulary"

    def is_available(self) -> bool:
        return True


class InMemoryVectorStore(IVectorStoreProvider):
    """Dict-backed store with cosine search and term-based keyword search."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.fail_with: Exception | None = None

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def upsert(
        self,
        collection: str,
        records: list[EmbeddingRecord],
        documents: list[str],
        metadatas: list[dict[str, Any]],
    ) -> int:
        self._check()
        if not len(records) == len(documents) == len(metadatas):
            raise ValueError("records, documents and metadatas must have equal length")
        store = self.collections.setdefault(collection, {})
        for record, text, metadata in zip(records, documents, metadatas):
            store[record.chunk_id] = {"vector": record.vector, "text": text, "metadata": metadata}
        return len(records)

    async def query(
        self,
        collection: str,
        vector: list[float],
        k: int,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchHit]:
        self._check()
        query = np.asarray(vector, dtype=float)
        hits = []
        for chunk_id, row in self._rows(collection, filters):
            stored = np.asarray(row["vector"], dtype=float)
            denom = float(np.linalg.norm(query) * np.linalg.norm(stored))
            score = float(np.dot(query, stored)) / denom if denom else 0.0
            hits.append(self._hit(chunk_id, row, min(1.0, max(0.0, score))))
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:k]

    async def keyword_search(
        self,
        collection: str,
        terms: list[str],
        k: int,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchHit]:
        self._check()
        wanted = set(terms)
        hits = [
            self._hit(chunk_id, row, 0.0, with_vector=True)
            for chunk_id, row in self._rows(collection, filters)
            if wanted & set(tokenize_terms(row["text"]))
        ]
        return hits[:k]

    async def delete_by_document(self, collection: str, document_id: str) -> int:
        self._check()
        store = self.collections.get(collection, {})
        doomed = [cid for cid, row in store.items() if row["metadata"]["document_id"] == document_id]
        for cid in doomed:
            del store[cid]
        return len(doomed)

    def get_provider_name(self) -> str:
        return "memory"

    def _rows(self, collection: str, filters: dict[str, Any] | None):  # noqa: ANN202
        for chunk_id, row in self.collections.get(collection, {}).items():
            if filters and any(row["metadata"].get(key) != value for key, value in filters.items()):
                continue
            yield chunk_id, row

    @staticmethod
    def _hit(chunk_id: str, row: dict[str, Any], score: float, with_vector: bool = False) -> SearchHit:
        metadata = row["metadata"]
        return SearchHit(
            chunk_id=chunk_id,
            document_id=metadata["document_id"],
            sequence_index=metadata["sequence_index"],
            text=row["text"],
            keywords=[k for k in metadata.get("keywords", "").split(",") if k],
            quality_score=metadata.get("quality_score", 0.0),
            score=score,
            vector=list(row["vector"]) if with_vector else None,
        )


def outline_response(titles: list[str]) -> str:
    sessions = [
        {"title": title, "description": f"All about {title.lower()}", "topics": [title.lower(), "energy"]}
        for title in titles
    ]
    return "```json\n" + json.dumps({"sessions": sessions}) + "\n```"


def session_response(title: str, activities: int = 2) -> str:
    body = (
        "Chlorophyll absorbs light energy in the chloroplasts and the plant converts "
        "that energy into glucose through photosynthesis. Learners trace how carbon "
        "dioxide, water and sunlight combine, then compare the light reactions with "
        "the Calvin cycle and explain where oxygen comes from."
    )
    return json.dumps(
        {
            "title": title,
            "description": f"Session on {title}",
            "topics": [title.lower()],
            "activities": [
                {
                    "type": "lesson" if i % 2 == 0 else "exercise",
                    "title": f"{title} activity {i + 1}",
                    "description": "Guided walkthrough of the source material.",
                    "content": body,
                }
                for i in range(activities)
            ],
        }
    )


Responder = Callable[[str, str], Any]


class ScriptedLLM(ILLMProvider):
    """LLM fake answering outline and session prompts with canned JSON.

    ``script`` entries are consumed one per call before falling back to
    the default responses: an Exception is raised, a string is returned,
    and a callable is invoked with ``(system_prompt, user_prompt)``.
    ``on_session`` runs before every session response (used to trigger
    cancel/pause mid-stage).
    """

    def __init__(self, session_titles: list[str] | None = None) -> None:
        self.session_titles = session_titles or ["Light Reactions", "Calvin Cycle"]
        self.script: list[Exception | str | Responder] = []
        self.calls: list[tuple[str, str]] = []
        self.on_session: Callable[[int], None] | None = None
        self.delay = 0.0
        self._sessions_answered = 0

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        self.calls.append((system_prompt, user_prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.script:
            step = self.script.pop(0)
            if isinstance(step, Exception):
                raise step
            if callable(step):
                return step(system_prompt, user_prompt)
            return step
        if "instructional designer" in system_prompt:
            return outline_response(self.session_titles)
        if self.on_session is not None:
            self.on_session(self._sessions_answered)
        title = self.session_titles[self._sessions_answered % len(self.session_titles)]
        self._sessions_answered += 1
        return session_response(title)

    def get_provider_name(self) -> str:
        return "scripted"

    def is_available(self) -> bool:
        return True


class ReversingReranker(IRerankProvider):
    """Reranker that scores documents in reverse input order."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.fail_with = fail_with
        self.calls = 0

    async def rerank(self, query: str, documents: list[str], top_n: int) -> list[RerankResult]:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        n = len(documents)
        results = [RerankResult(index=i, relevance_score=(i + 1) / n) for i in range(n)]
        return sorted(results, key=lambda r: r.relevance_score, reverse=True)[:top_n]

    def get_provider_name(self) -> str:
        return "reversing"

    def is_available(self) -> bool:
        return True


class MemoryPersistence(IPersistenceProvider):
    def __init__(self) -> None:
        self.jobs: dict[str, GenerationJob] = {}
        self.job_history: list[GenerationJob] = []
        self.resources: list[tuple[str, str, float, int, int]] = []
        self.drafts: list[CourseDraft] = []
        self.fail_jobs = False

    async def initialize(self) -> None:
        return None

    async def save_job(self, job: GenerationJob) -> None:
        if self.fail_jobs:
            raise OSError("disk full")
        self.jobs[job.job_id] = job
        self.job_history.append(job)

    async def save_resource_record(
        self,
        course_id: str,
        document_id: str,
        quality_score: float,
        chunk_count: int,
        token_count: int,
    ) -> None:
        self.resources.append((course_id, document_id, quality_score, chunk_count, token_count))

    async def save_course_draft(self, draft: CourseDraft) -> None:
        self.drafts.append(draft)

    def get_provider_name(self) -> str:
        return "memory"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def embedder() -> VocabularyEmbedder:
    return VocabularyEmbedder()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def index_client(embedder: VocabularyEmbedder, vector_store: InMemoryVectorStore) -> IndexClient:
    return IndexClient(
        embedding_provider=embedder,
        vector_store=vector_store,
        batch_size=4,
        timeout_seconds=5.0,
        max_attempts=3,
        backoff_initial=0.0,
        backoff_max=0.0,
    )


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def persistence() -> MemoryPersistence:
    return MemoryPersistence()


@pytest.fixture
def generation_config() -> GenerationConfig:
    return make_config()


@pytest.fixture
def course() -> CourseBrief:
    return make_course()


@pytest.fixture
def pipeline_deps(index_client: IndexClient, llm: ScriptedLLM, persistence: MemoryPersistence):  # noqa: ANN201
    from src.pipeline.job_runner import PipelineDependencies

    return PipelineDependencies(
        chunker=TextChunker(),
        index_client=index_client,
        retriever=HybridRetrievalEngine(index_client=index_client),
        generator=GenerationService(llm_provider=llm, timeout_seconds=5.0),
        assembler=CourseAssembler(),
        persistence=persistence,
        max_concurrent_chunking=2,
    )
