"""Source document models.

A :class:`Document` is the raw extracted text of one uploaded course
resource.  Documents are immutable once ingested: a re-upload produces a
new Document (new id) that supersedes the old one, never an in-place edit.

:class:`CourseResource` pairs a Document with the resource record the
caller keeps for it (whether it was already chunked and indexed, and the
quality recorded at that time), so ``document_analysis`` only chunks what
is new.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SourceType(str, Enum):  # noqa: UP042: StrEnum requires Python 3.11+
    """Declared format the text was extracted from."""

    TEXT = "text"
    MARKDOWN = "markdown"
    PDF = "pdf"
    DOCX = "docx"
    HTML = "html"
    TRANSCRIPT = "transcript"
    OTHER = "other"


class Document(BaseModel):
    """Raw extracted text of a single resource."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Stable document identifier.")
    text: str = Field(description="Raw extracted text.")
    source_type: SourceType = SourceType.TEXT
    # UTF-8 byte length of ``text``; derived when not supplied.
    byte_length: int = Field(default=-1, ge=-1)
    title: str = ""

    @model_validator(mode="before")
    @classmethod
    def _derive_byte_length(cls, data: object) -> object:
        if isinstance(data, dict) and data.get("byte_length", -1) in (-1, None):
            text = data.get("text") or ""
            data = {**data, "byte_length": len(text.encode("utf-8"))}
        return data


class CourseResource(BaseModel):
    """A course's document plus the resource record held for it."""

    model_config = ConfigDict(frozen=True)

    document: Document
    # True when the document's chunks are already in the course collection.
    chunked: bool = False
    quality_score: float | None = Field(default=None, ge=0.0, le=100.0)
    chunk_count: int = Field(default=0, ge=0)
    token_count: int = Field(default=0, ge=0)

    @property
    def resource_id(self) -> str:
        return self.document.id
