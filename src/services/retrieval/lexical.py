"""Lexical and vector scoring helpers for hybrid retrieval."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from src.services.ingestion.keyword_extractor import tokenize_terms


def term_overlap(terms: set[str], text: str) -> float:
    """Fraction of query *terms* present in *text* (0.0 when there are no terms)."""
    if not terms:
        return 0.0
    present = terms.intersection(tokenize_terms(text))
    return len(present) / len(terms)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors, clamped to [0, 1]."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return clamp_unit(float(np.dot(va, vb)) / denom)


def clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, value))
