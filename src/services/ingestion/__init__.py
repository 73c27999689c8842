"""Document ingestion: chunking, keyword extraction and quality scoring.

1. **Chunk** (chunker.py / TextChunker) -- word-token windows with overlap,
   cut on sentence and paragraph boundaries.

2. **Keywords** (keyword_extractor.py) -- per-chunk keyword sets, also used
   to build lexical query terms at retrieval time.

3. **Score** (quality_scorer.py / QualityScorer) -- 0-100 quality per chunk
   plus the resource-level readiness report.
"""

from src.services.ingestion.chunker import TextChunker, document_quality, topic_coverage
from src.services.ingestion.quality_scorer import (
    QualityScorer,
    analyze_resource_quality,
    quality_recommendations,
)

__all__ = [
    "QualityScorer",
    "TextChunker",
    "analyze_resource_quality",
    "document_quality",
    "quality_recommendations",
    "topic_coverage",
]
