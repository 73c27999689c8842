"""Unit tests for chunk scoring, content checks and resource readiness aggregation."""

from __future__ import annotations

import pytest

from src.models.quality import QualityBand, QualityThresholds
from src.services.ingestion.quality_scorer import (
    QualityScorer,
    analyze_resource_quality,
    detect_content_errors,
    detect_language,
    quality_recommendations,
)

_ENGLISH = (
    "Photosynthesis lets green plants turn sunlight, water and carbon dioxide into "
    "glucose and oxygen. The process happens inside chloroplasts, where chlorophyll "
    "absorbs light and drives a chain of reactions that store energy in sugar."
)


def _words(count: int) -> str:
    base = _ENGLISH.split()
    return " ".join(base[i % len(base)] for i in range(count))


class TestQualityScorer:
    @pytest.fixture()
    def scorer(self) -> QualityScorer:
        return QualityScorer(QualityThresholds(), target_size=1000, min_size=100)

    def test_chunk_below_minimum_is_capped_below_recommended(self, scorer: QualityScorer) -> None:
        assessment = scorer.score(_words(40), 40)

        assert assessment.score < 70.0
        assert assessment.band in (QualityBand.ACCEPTABLE, QualityBand.BELOW_THRESHOLD)

    def test_score_stays_in_range(self, scorer: QualityScorer) -> None:
        for tokens in (1, 50, 500, 1000, 3000):
            assessment = scorer.score(_words(tokens), tokens)
            assert 0.0 <= assessment.score <= 100.0

    def test_target_length_scores_best_on_length(self, scorer: QualityScorer) -> None:
        on_target = scorer.score(_words(1000), 1000)
        oversized = scorer.score(_words(1900), 1900)

        assert on_target.length_adequacy == pytest.approx(1.0)
        assert oversized.length_adequacy < on_target.length_adequacy

    def test_language_reported(self, scorer: QualityScorer) -> None:
        assessment = scorer.score(_ENGLISH, len(_ENGLISH.split()))
        assert assessment.language == "en"
        assert 0.0 < assessment.language_confidence <= 1.0

    def test_content_issues_lower_score(self, scorer: QualityScorer) -> None:
        clean = scorer.score(_words(200), 200)
        broken = scorer.score(_words(200) + " �� and then it stops...", 205)

        assert {i.kind for i in broken.issues} >= {"encoding", "truncation"}
        assert broken.score < clean.score

    def test_empty_text_scores_zero_diversity(self, scorer: QualityScorer) -> None:
        assessment = scorer.score("", 0)
        assert assessment.lexical_diversity == 0.0
        assert assessment.language == "unknown"


class TestContentChecks:
    def test_symbol_soup_flagged(self) -> None:
        issues = detect_content_errors("#$%^&*()!@#$%^&*() ab")
        assert [i.kind for i in issues] == ["formatting"]

    def test_repeated_lines_flagged(self) -> None:
        line = "This exact sentence is repeated many times throughout the document text."
        issues = detect_content_errors("\n".join([line] * 8))
        assert "duplication" in {i.kind for i in issues}

    def test_clean_text_has_no_issues(self) -> None:
        assert detect_content_errors(_ENGLISH) == []

    def test_language_of_symbols_is_unknown(self) -> None:
        assert detect_language("1234 5678 !!!") == ("unknown", 0.0)


class TestResourceQuality:
    def test_readiness_is_token_weighted(self) -> None:
        report = analyze_resource_quality([(90.0, 900), (40.0, 100)], QualityThresholds())

        assert report.resource_count == 2
        assert report.average_score == 65.0
        assert report.readiness_score == pytest.approx(85.0)
        assert report.readiness_band == QualityBand.PREMIUM
        assert report.highest_score == 90.0
        assert report.lowest_score == 40.0

    def test_distribution_counts_bands(self) -> None:
        report = analyze_resource_quality(
            [(95.0, 10), (75.0, 10), (60.0, 10), (20.0, 10)], QualityThresholds()
        )
        distribution = report.distribution
        assert (distribution.premium, distribution.recommended) == (1, 1)
        assert (distribution.acceptable, distribution.below_threshold) == (1, 1)

    def test_zero_token_resources_weigh_one(self) -> None:
        report = analyze_resource_quality([(80.0, 0), (60.0, 0)], QualityThresholds())
        assert report.readiness_score == pytest.approx(70.0)

    def test_no_resources(self) -> None:
        report = analyze_resource_quality([], QualityThresholds(), key_topics=["energy"])

        assert report.resource_count == 0
        assert report.readiness_score == 0.0
        assert report.key_topics == ["energy"]
        assert any("limited resources" in hint for hint in report.recommendations)

    def test_recommendations_for_weak_course(self) -> None:
        report = analyze_resource_quality([(55.0, 100), (58.0, 100)], QualityThresholds())
        hints = quality_recommendations(report, QualityThresholds())

        assert any("high-quality resources" in h for h in hints)
        assert any("barely meeting" in h for h in hints)

    def test_thresholds_must_ascend(self) -> None:
        with pytest.raises(ValueError):
            QualityThresholds(minimum=80.0, recommended=70.0, premium=90.0)

    def test_band_boundaries(self) -> None:
        thresholds = QualityThresholds()
        assert thresholds.band_for(85.0) == QualityBand.PREMIUM
        assert thresholds.band_for(70.0) == QualityBand.RECOMMENDED
        assert thresholds.band_for(50.0) == QualityBand.ACCEPTABLE
        assert thresholds.band_for(49.99) == QualityBand.BELOW_THRESHOLD
