"""Text chunking with overlapping windows on sentence and paragraph boundaries.

Splits a :class:`~src.models.document.Document` into
:class:`~src.models.rag.Chunk` objects sized in word tokens and scores each
one for quality.

The algorithm walks the document one token (whitespace-delimited word) at a
time:

1. **Window** -- a chunk may grow to ``target_chunk_size`` tokens.
2. **Boundary** -- at the limit, the chunk closes at the nearest paragraph
   break or sentence end at or before it, provided the chunk keeps at least
   ``min_chunk_size`` tokens.  With no usable boundary it closes exactly at
   the limit, which is still between two words.
3. **Overlap** -- the next chunk opens ``overlap_size`` tokens before the
   previous chunk's end, so an idea spanning the cut is whole in at least
   one chunk.
4. **Tail absorption** -- when the text left after a cut would give the
   next chunk no more than ``min_chunk_size`` fresh tokens, it is folded into
   the current chunk instead.  The last chunk is therefore never shorter
   than the minimum unless it is the only one.

Chunk text is the exact document slice its tokens span, including the
whitespace up to the next chunk's first fresh token, so stripping each
chunk's ``overlap_chars`` prefix and concatenating gives back the document.

Sentence detection reuses the abbreviation list so "Dr. Smith" or
"approx. 40" never count as sentence ends.

The chunker is pure: no I/O and no shared state, so documents can be
chunked concurrently on worker threads.
"""

from __future__ import annotations

import re
import uuid

import structlog

from src.models.document import Document
from src.models.pipeline import GenerationConfig
from src.models.rag import Chunk
from src.services.ingestion.keyword_extractor import extract_keywords, key_phrases
from src.services.ingestion.quality_scorer import QualityScorer
from src.utils.errors import EmptyDocumentError

logger = structlog.get_logger(logger_name=__name__)

_CHUNK_NAMESPACE = uuid.UUID("6f1c7a52-58c4-4d1e-9a4b-2f0d3c1e8b77")

_TOKEN_RE = re.compile(r"\S+")
_SENTENCE_END_RE = re.compile(r"[.!?…][\"'”’)\]]*$")
_PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")

# Common abbreviations that should NOT end a sentence.
_ABBREVIATIONS = frozenset(
    {
        "dr",
        "mr",
        "mrs",
        "ms",
        "prof",
        "jr",
        "sr",
        "st",
        "vs",
        "etc",
        "approx",
        "dept",
        "est",
        "fig",
        "inc",
        "ltd",
        "co",
        "no",
        "vol",
        "e.g",
        "i.e",
    }
)


class TextChunker:
    """Splits documents into overlapping, quality-scored chunks.

    Stateless: every setting comes from the :class:`GenerationConfig`
    passed to :meth:`chunk`.
    """

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, document: Document, config: GenerationConfig) -> list[Chunk]:
        """Split *document* into ordered chunks.

        Parameters
        ----------
        document:
            The document to split.
        config:
            Supplies target / minimum / overlap sizes and quality thresholds.

        Returns
        -------
        list[Chunk]
            Chunks with contiguous ``sequence_index`` values starting at 0.

        Raises
        ------
        EmptyDocumentError
            If the document has no non-whitespace text.
        """
        text = document.text
        tokens = [(m.start(), m.end()) for m in _TOKEN_RE.finditer(text)]
        if not tokens:
            raise EmptyDocumentError(
                message=f"Document {document.id} contains no text to chunk"
            )

        boundaries = self._boundary_flags(text, tokens)
        spans = self._plan_spans(
            len(tokens),
            boundaries,
            target=config.target_chunk_size,
            minimum=config.min_chunk_size,
            overlap=config.overlap_size,
        )

        scorer = QualityScorer(
            config.thresholds,
            target_size=config.target_chunk_size,
            min_size=config.min_chunk_size,
        )

        chunks: list[Chunk] = []
        for index, (start, end) in enumerate(spans):
            char_start = 0 if index == 0 else tokens[start][0]
            char_end = len(text) if end == len(tokens) else tokens[end][0]
            overlap_tokens = 0 if index == 0 else spans[index - 1][1] - start
            overlap_chars = 0 if index == 0 else tokens[spans[index - 1][1]][0] - char_start
            chunk_text = text[char_start:char_end]
            token_count = end - start

            assessment = scorer.score(chunk_text, token_count)
            chunks.append(
                Chunk(
                    id=str(uuid.uuid5(_CHUNK_NAMESPACE, f"{document.id}:{index}")),
                    document_id=document.id,
                    sequence_index=index,
                    text=chunk_text,
                    char_start=char_start,
                    char_end=char_end,
                    token_count=token_count,
                    overlap_tokens=overlap_tokens,
                    overlap_chars=overlap_chars,
                    language=assessment.language,
                    language_confidence=assessment.language_confidence,
                    quality_score=assessment.score,
                    quality_band=assessment.band,
                    quality_issues=[issue.kind for issue in assessment.issues],
                    keywords=extract_keywords(chunk_text),
                )
            )

        logger.debug(
            "chunking_complete",
            document_id=document.id,
            num_chunks=len(chunks),
            total_tokens=len(tokens),
            avg_quality=round(sum(c.quality_score for c in chunks) / len(chunks), 2),
        )
        return chunks

    # ------------------------------------------------------------------
    # Boundary detection
    # ------------------------------------------------------------------

    @staticmethod
    def _boundary_flags(text: str, tokens: list[tuple[int, int]]) -> list[bool]:
        """``flags[i]`` is True when a chunk may end right after token ``i``."""
        flags: list[bool] = []
        for i, (start, end) in enumerate(tokens):
            if i + 1 < len(tokens):
                gap = text[end : tokens[i + 1][0]]
                if _PARAGRAPH_BREAK_RE.search(gap):
                    flags.append(True)
                    continue
            word = text[start:end]
            flags.append(_is_sentence_end(word))
        return flags

    # ------------------------------------------------------------------
    # Span planning
    # ------------------------------------------------------------------

    @staticmethod
    def _plan_spans(
        n_tokens: int,
        boundaries: list[bool],
        target: int,
        minimum: int,
        overlap: int,
    ) -> list[tuple[int, int]]:
        """Return ``(start, end)`` token ranges, end exclusive."""
        spans: list[tuple[int, int]] = []
        start = 0
        # A cut must leave the chunk at least this long (and longer than the
        # overlap, so every chunk contributes fresh tokens).
        shortest = max(minimum, overlap + 1)
        while True:
            limit = start + target
            if limit >= n_tokens:
                spans.append((start, n_tokens))
                break

            end = limit
            for candidate in range(limit, start + shortest - 1, -1):
                if boundaries[candidate - 1]:
                    end = candidate
                    break

            if n_tokens - end <= minimum:
                spans.append((start, n_tokens))
                break

            spans.append((start, end))
            start = end - overlap
        return spans


def _is_sentence_end(word: str) -> bool:
    if not _SENTENCE_END_RE.search(word):
        return False
    bare = word.rstrip("\"'”’)]").rstrip(".!?…").lower()
    return bare not in _ABBREVIATIONS


def document_quality(chunks: list[Chunk]) -> float:
    """Token-weighted mean quality of a document's chunks."""
    total = sum(max(1, c.token_count) for c in chunks)
    if not total:
        return 0.0
    weighted = sum(c.quality_score * max(1, c.token_count) for c in chunks)
    return round(max(0.0, min(100.0, weighted / total)), 2)


def topic_coverage(chunks: list[Chunk], limit: int = 20) -> list[str]:
    """The *limit* most common chunk keywords across *chunks*."""
    return key_phrases((c.keywords for c in chunks), limit=limit)
