"""Deduplication, relationship extraction and knowledge-graph assembly.

All functions are pure: they take retrieval contexts and return new ones
(contexts are frozen models), so results are reproducible for a fixed
input order.
"""

from __future__ import annotations

from collections import Counter, defaultdict

from src.models.rag import (
    ContextRelationship,
    ContextType,
    GraphEdge,
    GraphNode,
    KnowledgeGraph,
    RelationshipType,
    RetrievalContext,
)


def jaccard(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def deduplicate(contexts: list[RetrievalContext], window: int) -> list[RetrievalContext]:
    """Drop chunks within *window* sequence indices of a better-ranked chunk of the same document.

    *contexts* must already be in ranking order; the first (best) of any
    overlapping group is kept.
    """
    kept: list[RetrievalContext] = []
    seen: dict[str, list[int]] = defaultdict(list)
    for ctx in contexts:
        index = ctx.chunk_index
        if index is not None and any(abs(index - other) <= window for other in seen[ctx.source_document]):
            continue
        kept.append(ctx)
        if index is not None:
            seen[ctx.source_document].append(index)
    return kept


def extract_relationships(
    contexts: list[RetrievalContext],
    hierarchy_window: int,
) -> list[RetrievalContext]:
    """Attach semantic and hierarchical edges between the given contexts.

    Every edge is recorded on both endpoints, with ``source`` set to the
    context that carries it.
    """
    edges: dict[str, list[ContextRelationship]] = {ctx.id: [] for ctx in contexts}

    for i, left in enumerate(contexts):
        left_concepts = set(left.extracted_concepts)
        for right in contexts[i + 1 :]:
            strength = jaccard(left_concepts, set(right.extracted_concepts))
            if strength > 0.0:
                _link(edges, left.id, right.id, RelationshipType.SEMANTIC, strength)

            if (
                left.source_document == right.source_document
                and left.chunk_index is not None
                and right.chunk_index is not None
            ):
                distance = abs(left.chunk_index - right.chunk_index)
                if 0 < distance <= hierarchy_window:
                    _link(edges, left.id, right.id, RelationshipType.HIERARCHICAL, 1.0 / distance)

    return [ctx.model_copy(update={"relationships": edges[ctx.id]}) for ctx in contexts]


def _link(
    edges: dict[str, list[ContextRelationship]],
    a: str,
    b: str,
    kind: RelationshipType,
    strength: float,
) -> None:
    strength = min(1.0, max(0.0, strength))
    edges[a].append(ContextRelationship(source=a, target=b, type=kind, strength=strength))
    edges[b].append(ContextRelationship(source=b, target=a, type=kind, strength=strength))


def build_knowledge_graph(contexts: list[RetrievalContext]) -> KnowledgeGraph:
    """Build a graph of chunk, document and shared-concept nodes.

    Nodes:
        chunk      one per context
        document   one per source document (weight = best chunk score)
        concept    keywords extracted from two or more contexts
    Edges:
        hierarchical  chunk → document
        contextual    concept → chunk
        plus every relationship already attached to the contexts
    """
    if not contexts:
        return KnowledgeGraph()

    nodes: dict[str, GraphNode] = {}
    graph_edges: dict[tuple[str, str, RelationshipType], GraphEdge] = {}

    doc_weight: dict[str, float] = {}
    for ctx in contexts:
        doc_weight[ctx.source_document] = max(doc_weight.get(ctx.source_document, 0.0), ctx.relevance_score)

    concept_counts: Counter[str] = Counter()
    for ctx in contexts:
        concept_counts.update(set(ctx.extracted_concepts))
    shared = {concept for concept, count in concept_counts.items() if count >= 2}

    for document_id, weight in doc_weight.items():
        doc_node = f"doc:{document_id}"
        nodes[doc_node] = GraphNode(id=doc_node, label=document_id, type=ContextType.DOCUMENT, weight=weight)

    for concept in sorted(shared):
        concept_node = f"concept:{concept}"
        nodes[concept_node] = GraphNode(
            id=concept_node,
            label=concept,
            type=ContextType.CONCEPT,
            weight=concept_counts[concept] / len(contexts),
        )

    context_ids = {ctx.id for ctx in contexts}
    for ctx in contexts:
        label = ctx.source_document if ctx.chunk_index is None else f"{ctx.source_document}#{ctx.chunk_index}"
        nodes[ctx.id] = GraphNode(id=ctx.id, label=label, type=ContextType.CHUNK, weight=ctx.relevance_score)

        doc_node = f"doc:{ctx.source_document}"
        graph_edges[(ctx.id, doc_node, RelationshipType.HIERARCHICAL)] = GraphEdge(
            source=ctx.id, target=doc_node, type=RelationshipType.HIERARCHICAL, strength=1.0
        )
        for concept in sorted(set(ctx.extracted_concepts) & shared):
            concept_node = f"concept:{concept}"
            graph_edges[(concept_node, ctx.id, RelationshipType.CONTEXTUAL)] = GraphEdge(
                source=concept_node,
                target=ctx.id,
                type=RelationshipType.CONTEXTUAL,
                strength=ctx.relevance_score,
            )
        for rel in ctx.relationships:
            # Symmetric edges are stored once, keyed by their sorted endpoints.
            lo, hi = sorted((rel.source, rel.target))
            key = (lo, hi, rel.type)
            if key not in graph_edges and rel.target in context_ids:
                graph_edges[key] = GraphEdge(source=lo, target=hi, type=rel.type, strength=rel.strength)

    return KnowledgeGraph(nodes=list(nodes.values()), edges=list(graph_edges.values()))
