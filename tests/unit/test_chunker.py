"""Unit tests for the TextChunker — overlapping, boundary-aware chunking."""

from __future__ import annotations

import pytest

from src.models.document import Document
from src.models.pipeline import GenerationConfig
from src.services.ingestion.chunker import TextChunker, document_quality, topic_coverage
from src.utils.errors import EmptyDocumentError, ValidationError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _numbered_words(count: int) -> str:
    return " ".join(f"w{i}" for i in range(count))


def _sentences(count: int, words_per_sentence: int = 10) -> str:
    vocabulary = [
        "plants", "capture", "light", "energy", "store", "sugar", "cells",
        "release", "oxygen", "water", "carbon", "leaves", "roots", "growth",
    ]
    sentences = []
    for s in range(count):
        words = [vocabulary[(s + w) % len(vocabulary)] for w in range(words_per_sentence)]
        sentences.append(" ".join(words).capitalize() + ".")
    return " ".join(sentences)


def _reconstruct(chunks) -> str:  # noqa: ANN001
    return "".join(chunk.text[chunk.overlap_chars :] for chunk in chunks)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestWindowing:
    """Default sizes: 1000-token target, 100 minimum, 50 overlap."""

    def test_three_thousand_tokens_give_three_chunks(self) -> None:
        document = Document(id="numbers", text=_numbered_words(3000))
        chunks = TextChunker().chunk(document, GenerationConfig())

        assert [c.token_count for c in chunks] == [1000, 1000, 1100]
        assert [c.sequence_index for c in chunks] == [0, 1, 2]

    def test_consecutive_chunks_share_overlap_tokens(self) -> None:
        document = Document(id="numbers", text=_numbered_words(3000))
        chunks = TextChunker().chunk(document, GenerationConfig())

        assert chunks[0].overlap_tokens == 0
        for previous, current in zip(chunks, chunks[1:]):
            assert current.overlap_tokens == 50
            assert previous.text.split()[-50:] == current.text.split()[:50]

    def test_text_is_exact_document_slice(self) -> None:
        document = Document(id="numbers", text=_numbered_words(2500))
        for chunk in TextChunker().chunk(document, GenerationConfig()):
            assert chunk.text == document.text[chunk.char_start : chunk.char_end]

    def test_dropping_overlap_reconstructs_document(self) -> None:
        document = Document(id="numbers", text=_numbered_words(3000))
        chunks = TextChunker().chunk(document, GenerationConfig())
        assert _reconstruct(chunks) == document.text

    def test_short_document_is_single_chunk(self) -> None:
        document = Document(id="short", text="Only a handful of words here.")
        chunks = TextChunker().chunk(document, GenerationConfig())

        assert len(chunks) == 1
        assert chunks[0].token_count == 6
        assert chunks[0].text == document.text

    def test_small_tail_is_absorbed(self) -> None:
        # 1080 tokens: the 80 left after the first cut are not enough for a chunk.
        document = Document(id="tail", text=_numbered_words(1080))
        chunks = TextChunker().chunk(document, GenerationConfig())

        assert len(chunks) == 1
        assert chunks[0].token_count == 1080


class TestBoundaries:
    def test_chunks_close_on_sentence_ends(self) -> None:
        document = Document(id="sentences", text=_sentences(12))
        config = GenerationConfig(target_chunk_size=45, min_chunk_size=15, overlap_size=5)
        chunks = TextChunker().chunk(document, config)

        assert len(chunks) == 3
        for chunk in chunks[:-1]:
            assert chunk.text.rstrip().endswith(".")
        assert _reconstruct(chunks) == document.text

    def test_paragraph_break_is_a_boundary(self) -> None:
        first = " ".join(["energy"] * 30)
        second = " ".join(["oxygen"] * 30)
        document = Document(id="paras", text=f"{first}\n\n{second}")
        config = GenerationConfig(target_chunk_size=40, min_chunk_size=10, overlap_size=0)
        chunks = TextChunker().chunk(document, config)

        assert chunks[0].token_count == 30
        assert set(chunks[0].text.split()) == {"energy"}

    def test_abbreviation_is_not_a_sentence_end(self) -> None:
        words = ["Consult"] * 19 + ["Dr."] + ["Smith"] * 20
        document = Document(id="abbr", text=" ".join(words))
        config = GenerationConfig(target_chunk_size=25, min_chunk_size=10, overlap_size=0)
        chunks = TextChunker().chunk(document, config)

        assert chunks[0].token_count == 25


class TestIdentityAndErrors:
    def test_ids_are_deterministic(self) -> None:
        document = Document(id="stable", text=_numbered_words(2200))
        first = TextChunker().chunk(document, GenerationConfig())
        second = TextChunker().chunk(document, GenerationConfig())

        assert [c.id for c in first] == [c.id for c in second]
        assert len({c.id for c in first}) == len(first)

    def test_ids_depend_on_document(self) -> None:
        a = TextChunker().chunk(Document(id="a", text="same text"), GenerationConfig())
        b = TextChunker().chunk(Document(id="b", text="same text"), GenerationConfig())
        assert a[0].id != b[0].id

    def test_empty_document_raises(self) -> None:
        with pytest.raises(EmptyDocumentError):
            TextChunker().chunk(Document(id="blank", text="  \n\t "), GenerationConfig())

    def test_empty_document_error_is_validation_error(self) -> None:
        assert issubclass(EmptyDocumentError, ValidationError)

    def test_overlap_must_be_smaller_than_minimum(self) -> None:
        with pytest.raises(ValueError):
            GenerationConfig(min_chunk_size=50, overlap_size=50)


class TestChunkAnnotations:
    def test_chunks_carry_scores_and_keywords(self) -> None:
        document = Document(id="prose", text=_sentences(30))
        config = GenerationConfig(target_chunk_size=100, min_chunk_size=20, overlap_size=10)
        chunks = TextChunker().chunk(document, config)

        for chunk in chunks:
            assert 0.0 <= chunk.quality_score <= 100.0
            assert chunk.keywords == sorted(chunk.keywords)
            assert chunk.quality_band == config.thresholds.band_for(chunk.quality_score)

    def test_document_quality_is_token_weighted(self) -> None:
        document = Document(id="prose", text=_sentences(30))
        config = GenerationConfig(target_chunk_size=100, min_chunk_size=20, overlap_size=10)
        chunks = TextChunker().chunk(document, config)

        expected = sum(c.quality_score * c.token_count for c in chunks) / sum(
            c.token_count for c in chunks
        )
        assert document_quality(chunks) == pytest.approx(expected, abs=0.01)
        assert document_quality([]) == 0.0

    def test_topic_coverage_limit(self) -> None:
        document = Document(id="prose", text=_sentences(30))
        chunks = TextChunker().chunk(document, GenerationConfig(target_chunk_size=100, min_chunk_size=20, overlap_size=10))
        topics = topic_coverage(chunks, limit=3)

        assert len(topics) == 3
        assert all(isinstance(t, str) for t in topics)
