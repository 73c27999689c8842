"""Hybrid retrieval: vector + lexical candidate scoring, reranking and relationships."""

from src.services.retrieval.hybrid_retriever import (
    HybridRetrievalEngine,
    build_course_queries,
    merge_contexts,
)
from src.services.retrieval.relationships import build_knowledge_graph

__all__ = [
    "HybridRetrievalEngine",
    "build_course_queries",
    "build_knowledge_graph",
    "merge_contexts",
]
