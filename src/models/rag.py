"""RAG data models: chunks, index records, retrieval contexts and the
knowledge graph built from them.

Flow of these models through the system:

    Document ──Chunker──→ Chunk ──IndexClient──→ EmbeddingRecord (in the store)
                                        │
                         search / keyword_candidates
                                        ↓
                                    SearchHit ──HybridRetrievalEngine──→ RetrievalContext
                                                                            │
                                                                  build_knowledge_graph
                                                                            ↓
                                                                     KnowledgeGraph

Chunks are immutable and referenced downstream by id.  RetrievalContexts
are produced fresh per retrieval call and live only as long as the job
that asked for them.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.quality import QualityBand


# ---------------------------------------------------------------------------
# Chunk: the unit of indexing and retrieval.
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A bounded, overlapping span of a document's text.

    ``text`` is the exact slice ``document.text[char_start:char_end]``.
    The first ``overlap_chars`` characters repeat the tail of the previous
    chunk, so dropping them and concatenating all chunks in order gives
    back the original document.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Deterministic identifier derived from document id and index.")
    document_id: str
    sequence_index: int = Field(ge=0, description="Position within the document, from 0.")
    text: str
    char_start: int = Field(ge=0)
    char_end: int = Field(ge=0)
    token_count: int = Field(ge=0, description="Word-token count of the chunk.")
    # Overlap with the predecessor, in tokens and in characters of ``text``.
    overlap_tokens: int = Field(default=0, ge=0)
    overlap_chars: int = Field(default=0, ge=0)
    language: str = "unknown"
    language_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    quality_score: float = Field(default=0.0, ge=0.0, le=100.0)
    quality_band: QualityBand = QualityBand.BELOW_THRESHOLD
    quality_issues: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list, description="Extracted keyword set, sorted.")


class EmbeddingRecord(BaseModel):
    """A chunk's vector as stored in a collection."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    vector: list[float]
    collection: str


class IndexAck(BaseModel):
    """Per-chunk acknowledgement returned by ``IndexClient.index``."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    collection: str
    stored: bool = True


class SearchHit(BaseModel):
    """A ranked match returned from the vector store.

    ``vector`` is only populated by lexical candidate lookups so the
    retrieval engine can compute a semantic score for chunks the vector
    search did not surface.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    document_id: str
    sequence_index: int = 0
    text: str = ""
    keywords: list[str] = Field(default_factory=list)
    quality_score: float = Field(default=0.0, ge=0.0, le=100.0)
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    vector: list[float] | None = None


class RetrievalScope(BaseModel):
    """The course-side context a retrieval call runs against."""

    model_config = ConfigDict(frozen=True)

    course_id: str
    collection: str
    filters: dict[str, Any] | None = None
    # document_id -> position in the course's resource list; tie-breaker.
    document_order: dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Retrieval contexts and relationships
# ---------------------------------------------------------------------------
class ContextType(str, Enum):  # noqa: UP042
    CONCEPT = "concept"
    CHUNK = "chunk"
    DOCUMENT = "document"


class RelationshipType(str, Enum):  # noqa: UP042
    """Edge kinds between contexts.

    SEMANTIC      — the two contexts share extracted keywords.
    HIERARCHICAL  — same document, nearby chunk indices.
    CONTEXTUAL    — a concept node mentioned by a chunk (knowledge graph only).
    """

    SEMANTIC = "semantic"
    HIERARCHICAL = "hierarchical"
    CONTEXTUAL = "contextual"


class ContextRelationship(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    type: RelationshipType
    strength: float = Field(ge=0.0, le=1.0)


class RetrievalContext(BaseModel):
    """A scored, typed unit of retrieved content passed into generation."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: ContextType = ContextType.CHUNK
    content: str
    relevance_score: float = Field(ge=0.0, le=1.0)
    source_document: str
    source_chunk_id: str | None = None
    chunk_index: int | None = None
    extracted_concepts: list[str] = Field(default_factory=list)
    relationships: list[ContextRelationship] = Field(default_factory=list)
    # Component scores, kept for diagnostics and the rag_context events.
    semantic_score: float = Field(default=0.0, ge=0.0, le=1.0)
    lexical_score: float = Field(default=0.0, ge=0.0, le=1.0)
    rerank_score: float | None = Field(default=None, ge=0.0, le=1.0)


# ---------------------------------------------------------------------------
# Knowledge graph
# ---------------------------------------------------------------------------
class GraphNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    type: ContextType
    weight: float = Field(default=0.0, ge=0.0, le=1.0)


class GraphEdge(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    type: RelationshipType
    strength: float = Field(ge=0.0, le=1.0)


class KnowledgeGraph(BaseModel):
    """Concepts, documents and chunks linked by typed, weighted edges."""

    model_config = ConfigDict(frozen=True)

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Retrieval tuning (config.yaml ``retrieval:`` section)
# ---------------------------------------------------------------------------
class RetrievalTuning(BaseModel):
    """Weights and pool sizes of the hybrid retrieval engine."""

    model_config = ConfigDict(frozen=True)

    semantic_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    lexical_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    candidate_pool: int = Field(default=30, ge=1)
    lexical_pool: int = Field(default=15, ge=0)
    rerank_factor: int = Field(default=2, ge=1)
    dedup_window: int = Field(default=1, ge=0)
    hierarchy_window: int = Field(default=3, ge=0)
    # Contexts whose final score is not above this are discarded.
    min_relevance: float = Field(default=0.0, ge=0.0, le=1.0)
