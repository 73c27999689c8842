"""Quality scoring models.

Scores are on a 0–100 scale.  Three named thresholds split that scale into
bands the orchestrator uses to decide what to warn about; bands are
advisory, never hard validation gates.

    below_threshold  <  minimum  ≤  acceptable  <  recommended  ≤  recommended-band  <  premium  ≤  premium
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class QualityBand(str, Enum):  # noqa: UP042
    """Band a quality score falls into."""

    PREMIUM = "premium"
    RECOMMENDED = "recommended"
    ACCEPTABLE = "acceptable"
    BELOW_THRESHOLD = "below_threshold"


class QualityThresholds(BaseModel):
    """Minimum / recommended / premium cut-offs (ascending, within 0–100)."""

    model_config = ConfigDict(frozen=True)

    minimum: float = Field(default=50.0, ge=0.0, le=100.0)
    recommended: float = Field(default=70.0, ge=0.0, le=100.0)
    premium: float = Field(default=85.0, ge=0.0, le=100.0)

    @model_validator(mode="after")
    def _check_order(self) -> QualityThresholds:
        if not self.minimum <= self.recommended <= self.premium:
            raise ValueError(
                "quality thresholds must satisfy minimum <= recommended <= premium"
            )
        return self

    def band_for(self, score: float) -> QualityBand:
        """Return the band *score* falls into."""
        if score >= self.premium:
            return QualityBand.PREMIUM
        if score >= self.recommended:
            return QualityBand.RECOMMENDED
        if score >= self.minimum:
            return QualityBand.ACCEPTABLE
        return QualityBand.BELOW_THRESHOLD


class QualityDistribution(BaseModel):
    """Count of scored items per band."""

    model_config = ConfigDict(frozen=True)

    premium: int = 0
    recommended: int = 0
    acceptable: int = 0
    below_threshold: int = 0


class ResourceQualityReport(BaseModel):
    """Aggregate quality over a set of course resources.

    ``readiness_score`` is token-weighted so a short, poor resource does not
    drag down a course built mostly from long, good ones.
    """

    model_config = ConfigDict(frozen=True)

    resource_count: int = 0
    average_score: float = Field(default=0.0, ge=0.0, le=100.0)
    highest_score: float = Field(default=0.0, ge=0.0, le=100.0)
    lowest_score: float = Field(default=0.0, ge=0.0, le=100.0)
    readiness_score: float = Field(default=0.0, ge=0.0, le=100.0)
    readiness_band: QualityBand = QualityBand.BELOW_THRESHOLD
    distribution: QualityDistribution = Field(default_factory=QualityDistribution)
    recommendations: list[str] = Field(default_factory=list)
    key_topics: list[str] = Field(default_factory=list)
