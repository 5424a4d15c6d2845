"""
Trend analysis results: content gaps, cross-platform spread, sentiment,
correlations between trends and competitor adoption.

None of these are persisted; they are computed on request from the stored
TrendRecords.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════════════

class GapSeverity(str, Enum):
    SEVERE = "SEVERE"
    MODERATE = "MODERATE"
    MINOR = "MINOR"


GAP_RANK = {GapSeverity.SEVERE: 0, GapSeverity.MODERATE: 1, GapSeverity.MINOR: 2}


class EngagementLevel(str, Enum):
    VIRAL = "VIRAL"
    HIGH = "HIGH"
    MODERATE = "MODERATE"
    LOW = "LOW"


class SentimentLabel(str, Enum):
    VERY_NEGATIVE = "VERY_NEGATIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"
    POSITIVE = "POSITIVE"
    VERY_POSITIVE = "VERY_POSITIVE"


class AdoptionPosition(str, Enum):
    """Where we would land if we adopted the trend now."""
    LEADER = "LEADER"
    EARLY = "EARLY"
    MAJORITY = "MAJORITY"
    LAGGARD = "LAGGARD"
    NONE = "NONE"


# ══════════════════════════════════════════════════════════════════════════════
# RESULTS
# ══════════════════════════════════════════════════════════════════════════════

class ContentGap(BaseModel):
    """A relevant trend we have no content for yet."""
    keyword: str
    pillars: List[str] = Field(default_factory=list)
    relevance_score: int
    volume: int
    competition: float
    gap: GapSeverity
    reason: str
    suggested_content: List[str] = Field(default_factory=list)


class PlatformPerformance(BaseModel):
    platform: str
    volume: int
    growth_percent: float
    engagement: EngagementLevel


class CrossPlatformAnalysis(BaseModel):
    keyword: str
    platforms: List[PlatformPerformance]
    dominant_platform: str
    platform_strategy: str
    cross_platform_potential: int = Field(ge=0, le=100)


class SentimentAnalysis(BaseModel):
    keyword: str
    overall_sentiment: float = Field(ge=-1.0, le=1.0)
    sentiment_label: SentimentLabel
    positive_signals: List[str] = Field(default_factory=list)
    negative_signals: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)


class CorrelatedTrend(BaseModel):
    keyword: str
    correlation: float = Field(ge=0.0, le=1.0)
    relationship: str


class TrendCorrelation(BaseModel):
    primary_trend: str
    correlated_trends: List[CorrelatedTrend] = Field(default_factory=list)
    bundle_opportunity: bool = False
    suggested_bundles: List[str] = Field(default_factory=list)


class CompetitorAdoption(BaseModel):
    keyword: str
    adoption_rate: int = Field(ge=0, le=100)
    our_position: AdoptionPosition
    competitive_advantage: str


class ComprehensiveAnalysis(BaseModel):
    cross_platform: CrossPlatformAnalysis
    sentiment: SentimentAnalysis
    correlations: TrendCorrelation
    competitor_adoption: CompetitorAdoption
