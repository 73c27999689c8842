"""CourseForge domain models — re-exports all public model classes.

The models are organized by domain concern:
    - document.py  — source documents and course resource records
    - quality.py   — quality thresholds, bands and aggregate reports
    - rag.py       — chunks, index records, retrieval contexts, knowledge graph
    - course.py    — course brief (input) and the draft tree (output)
    - pipeline.py  — generation config and job snapshots
    - events.py    — event stream payloads
"""

from __future__ import annotations

from src.models.course import (
    ActivityDraft,
    ActivityType,
    CourseBrief,
    CourseDraft,
    CourseLevel,
    SessionDraft,
    SessionOutline,
    SessionStatus,
)
from src.models.document import CourseResource, Document, SourceType
from src.models.events import EventType, LogCategory, LogLevel, PipelineEvent
from src.models.pipeline import (
    STAGE_ORDER,
    GenerationConfig,
    GenerationJob,
    GenerationMetrics,
    GenerationStage,
    JobErrorDetail,
    JobStatus,
)
from src.models.quality import (
    QualityBand,
    QualityDistribution,
    QualityThresholds,
    ResourceQualityReport,
)
from src.models.rag import (
    Chunk,
    ContextRelationship,
    ContextType,
    EmbeddingRecord,
    GraphEdge,
    GraphNode,
    IndexAck,
    KnowledgeGraph,
    RelationshipType,
    RetrievalContext,
    RetrievalScope,
    RetrievalTuning,
    SearchHit,
)

__all__ = [
    "STAGE_ORDER",
    "ActivityDraft",
    "ActivityType",
    "Chunk",
    "ContextRelationship",
    "ContextType",
    "CourseBrief",
    "CourseDraft",
    "CourseLevel",
    "CourseResource",
    "Document",
    "EmbeddingRecord",
    "EventType",
    "GenerationConfig",
    "GenerationJob",
    "GenerationMetrics",
    "GenerationStage",
    "GraphEdge",
    "GraphNode",
    "IndexAck",
    "JobErrorDetail",
    "JobStatus",
    "KnowledgeGraph",
    "LogCategory",
    "LogLevel",
    "PipelineEvent",
    "QualityBand",
    "QualityDistribution",
    "QualityThresholds",
    "RelationshipType",
    "ResourceQualityReport",
    "RetrievalContext",
    "RetrievalScope",
    "RetrievalTuning",
    "SearchHit",
    "SessionDraft",
    "SessionOutline",
    "SessionStatus",
    "SourceType",
]
