"""Chunk and resource quality scoring.

A chunk's score (0–100) blends three signals:

    length adequacy   40%   1 - |tokens - target| / target, floored at 0
    lexical diversity 30%   distinct / total words, doubled and capped at 1
    language conf.    30%   top probability reported by langdetect

Detected content problems (mis-decoded characters, symbol soup, truncated
endings, repeated lines) subtract a severity-weighted penalty.  A chunk
shorter than the configured minimum is capped strictly below the
"recommended" threshold regardless of how clean it is: a fragment that
small cannot carry a lesson on its own.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field

import structlog
from langdetect import DetectorFactory, detect_langs
from langdetect.detector_factory import init_factory
from langdetect.lang_detect_exception import LangDetectException

from src.models.quality import (
    QualityBand,
    QualityDistribution,
    QualityThresholds,
    ResourceQualityReport,
)

logger = structlog.get_logger(logger_name=__name__)

# langdetect is probabilistic; a fixed seed makes repeated runs agree.
DetectorFactory.seed = 0

_LENGTH_WEIGHT = 40.0
_DIVERSITY_WEIGHT = 30.0
_LANGUAGE_WEIGHT = 30.0

# langdetect only needs a sample to be confident.
_LANGUAGE_SAMPLE_CHARS = 2000

_SEVERITY_PENALTY = {"high": 15.0, "medium": 10.0, "low": 5.0}

_WORD_RE = re.compile(r"\w+", re.UNICODE)
_SPECIAL_RE = re.compile(r"[^\w\s]", re.UNICODE)

# Profiles load lazily into a module global; guard the first load since
# chunking runs on several worker threads at once.
_factory_lock = threading.Lock()
_factory_ready = False


def _ensure_language_profiles() -> None:
    global _factory_ready
    if _factory_ready:
        return
    with _factory_lock:
        if not _factory_ready:
            init_factory()
            _factory_ready = True


@dataclass
class ContentIssue:
    kind: str
    severity: str
    message: str


@dataclass
class QualityAssessment:
    """Result of scoring one piece of text."""

    score: float
    band: QualityBand
    language: str = "unknown"
    language_confidence: float = 0.0
    length_adequacy: float = 0.0
    lexical_diversity: float = 0.0
    issues: list[ContentIssue] = field(default_factory=list)


def detect_language(text: str) -> tuple[str, float]:
    """Return ``(language code, confidence)`` for *text*.

    Text langdetect cannot read (no letters, e.g. only digits and symbols)
    reports ``("unknown", 0.0)``.
    """
    sample = text[:_LANGUAGE_SAMPLE_CHARS]
    if not sample.strip():
        return "unknown", 0.0
    _ensure_language_profiles()
    try:
        candidates = detect_langs(sample)
    except LangDetectException:
        return "unknown", 0.0
    if not candidates:
        return "unknown", 0.0
    best = candidates[0]
    return best.lang, float(best.prob)


def detect_content_errors(text: str) -> list[ContentIssue]:
    """Flag extraction artifacts that make a passage unreliable."""
    issues: list[ContentIssue] = []
    if not text:
        return issues

    if "�" in text:
        issues.append(ContentIssue("encoding", "high", "Replacement characters suggest a decoding error"))

    special_ratio = len(_SPECIAL_RE.findall(text)) / len(text)
    if special_ratio > 0.3:
        issues.append(ContentIssue("formatting", "low", "High ratio of special characters"))

    stripped = text.strip()
    if stripped.endswith("...") or stripped.endswith("…"):
        issues.append(ContentIssue("truncation", "high", "Content appears to be truncated"))

    seen: set[str] = set()
    duplicates = 0
    for line in text.split("\n"):
        if line in seen and len(line) > 50:
            duplicates += 1
        seen.add(line)
    if duplicates > 5:
        issues.append(ContentIssue("duplication", "medium", f"Found {duplicates} duplicate lines"))

    return issues


class QualityScorer:
    """Scores text spans against a target size and quality thresholds.

    Parameters
    ----------
    thresholds:
        Band cut-offs; the short-chunk cap sits just below ``recommended``.
    target_size:
        Token count considered ideal for a chunk.
    min_size:
        Token count under which the short-chunk cap applies.
    """

    def __init__(self, thresholds: QualityThresholds, target_size: int, min_size: int) -> None:
        self._thresholds = thresholds
        self._target_size = max(1, target_size)
        self._min_size = min_size

    def score(self, text: str, token_count: int) -> QualityAssessment:
        length_adequacy = max(0.0, 1.0 - abs(token_count - self._target_size) / self._target_size)

        words = [w.lower() for w in _WORD_RE.findall(text)]
        if words:
            lexical_diversity = min(1.0, 2.0 * len(set(words)) / len(words))
        else:
            lexical_diversity = 0.0

        language, confidence = detect_language(text)
        issues = detect_content_errors(text)

        raw = (
            _LENGTH_WEIGHT * length_adequacy
            + _DIVERSITY_WEIGHT * lexical_diversity
            + _LANGUAGE_WEIGHT * confidence
        )
        raw -= sum(_SEVERITY_PENALTY[issue.severity] for issue in issues)

        if token_count < self._min_size:
            raw = min(raw, self._short_chunk_cap())

        score = round(max(0.0, min(100.0, raw)), 2)
        return QualityAssessment(
            score=score,
            band=self._thresholds.band_for(score),
            language=language,
            language_confidence=max(0.0, min(1.0, confidence)),
            length_adequacy=length_adequacy,
            lexical_diversity=lexical_diversity,
            issues=issues,
        )

    def _short_chunk_cap(self) -> float:
        # Strictly below "recommended" even after rounding to two decimals.
        return max(0.0, self._thresholds.recommended - 1.0)


# ---------------------------------------------------------------------------
# Resource-level aggregation
# ---------------------------------------------------------------------------

def analyze_resource_quality(
    scored_resources: list[tuple[float, int]],
    thresholds: QualityThresholds,
    key_topics: list[str] | None = None,
) -> ResourceQualityReport:
    """Aggregate ``(score, token_count)`` pairs into a course readiness report.

    The readiness score is the token-weighted mean; resources with no
    recorded token count weigh as one token.
    """
    if not scored_resources:
        report = ResourceQualityReport(key_topics=key_topics or [])
        return report.model_copy(
            update={"recommendations": quality_recommendations(report, thresholds)}
        )

    scores = [score for score, _ in scored_resources]
    counts = {band: 0 for band in QualityBand}
    for score in scores:
        counts[thresholds.band_for(score)] += 1

    total_weight = sum(max(1, tokens) for _, tokens in scored_resources)
    readiness = sum(score * max(1, tokens) for score, tokens in scored_resources) / total_weight
    readiness = round(max(0.0, min(100.0, readiness)), 2)

    report = ResourceQualityReport(
        resource_count=len(scores),
        average_score=round(sum(scores) / len(scores), 2),
        highest_score=max(scores),
        lowest_score=min(scores),
        readiness_score=readiness,
        readiness_band=thresholds.band_for(readiness),
        distribution=QualityDistribution(
            premium=counts[QualityBand.PREMIUM],
            recommended=counts[QualityBand.RECOMMENDED],
            acceptable=counts[QualityBand.ACCEPTABLE],
            below_threshold=counts[QualityBand.BELOW_THRESHOLD],
        ),
        key_topics=key_topics or [],
    )
    return report.model_copy(
        update={"recommendations": quality_recommendations(report, thresholds)}
    )


def quality_recommendations(
    report: ResourceQualityReport,
    thresholds: QualityThresholds,
    min_resource_count: int = 5,
) -> list[str]:
    """Human-readable hints for improving a course's source material."""
    hints: list[str] = []
    if report.resource_count and report.average_score < thresholds.recommended:
        hints.append(
            "Consider adding more high-quality resources to improve course effectiveness."
        )
    if report.distribution.acceptable > report.distribution.premium:
        hints.append(
            "Course has more acceptable-quality content than premium. "
            "Consider upgrading key resources."
        )
    if report.resource_count and report.lowest_score < thresholds.minimum + 10:
        hints.append(
            f"Some resources are barely meeting quality standards "
            f"(lowest: {report.lowest_score:.1f}). Consider replacing or improving them."
        )
    if report.resource_count < min_resource_count:
        hints.append(
            "Course has limited resources. Consider adding more content for comprehensive coverage."
        )
    return hints
