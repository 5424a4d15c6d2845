"""
Trend models: raw signals, persisted trend records, velocity data, and
point-in-time predictions.
"""

import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from trend_intel.schemas.base import (
    Geography, LifecycleStage, Strategy, Urgency, ensure_utc, utcnow,
)
from trend_intel.trends.signals.lifecycle import classify_lifecycle
from trend_intel.trends.signals.viral import viral_coefficient

_MAX_RELATED_KEYWORDS = 10


def _new_id() -> str:
    return uuid.uuid4().hex


class RawSignal(BaseModel):
    """One sample from a SignalSource, before scoring."""
    source: str
    keyword: str
    volume: int = Field(ge=0, default=0)
    growth_percent: float = Field(default=0.0, allow_inf_nan=False)
    competition: float = Field(ge=0, le=100, default=0)
    geography: Geography = Field(default_factory=Geography)
    related_keywords: List[str] = Field(default_factory=list)
    top_content: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("keyword", mode="after")
    @classmethod
    def _strip_keyword(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("keyword must not be empty")
        return v


class OpportunityWindow(BaseModel):
    """Interval around a predicted peak in which acting pays off most.

    base_urgency comes from days_remaining alone; urgency is base_urgency
    after velocity escalation.
    """
    start: datetime
    end: datetime
    days_remaining: int = Field(ge=0)
    base_urgency: Urgency
    urgency: Urgency


class StoredOpportunity(OpportunityWindow):
    """Window as merged back onto the record, with the dynamics that produced it."""
    velocity: float = 0.0
    acceleration: float = 0.0
    confidence: int = 0


class TrendRecord(BaseModel):
    """One observation of a keyword from one source at one capture time."""
    id: str = Field(default_factory=_new_id)
    source: str
    keyword: str
    volume: int = Field(ge=0, default=0)
    growth_percent: float = Field(default=0.0, allow_inf_nan=False)
    competition: float = Field(ge=0, le=100, default=0)
    geography: Geography = Field(default_factory=Geography)
    lifecycle: LifecycleStage = LifecycleStage.EMERGING
    viral_coefficient: Optional[float] = Field(default=None, allow_inf_nan=False)
    sentiment: float = Field(ge=-1.0, le=1.0, default=0.0)
    relevance_score: int = Field(ge=0, le=100, default=0)
    pillars: Set[str] = Field(default_factory=set)
    related_keywords: List[str] = Field(default_factory=list)
    top_content: List[Dict[str, Any]] = Field(default_factory=list)
    captured_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    # Last-write-wins prediction fields
    peak_prediction: Optional[datetime] = None
    opportunity_window: Optional[StoredOpportunity] = None

    @field_validator("related_keywords", mode="after")
    @classmethod
    def _cap_related(cls, v: List[str]) -> List[str]:
        return v[:_MAX_RELATED_KEYWORDS]

    @field_validator("captured_at", "expires_at", "peak_prediction", mode="after")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @model_validator(mode="after")
    def _derived_fields(self) -> "TrendRecord":
        # viral coefficient is null exactly when DEAD or volume <= 0
        if self.lifecycle == LifecycleStage.DEAD or self.volume <= 0:
            self.viral_coefficient = None
        elif self.viral_coefficient is None:
            self.viral_coefficient = viral_coefficient(self.growth_percent, self.volume, self.lifecycle)
        if self.expires_at is None:
            self.expires_at = self.captured_at + timedelta(days=7)
        return self

    @classmethod
    def from_signal(
        cls,
        signal: RawSignal,
        relevance_score: int,
        pillars: Set[str],
        captured_at: datetime,
        ttl_days: int = 7,
        related_keywords: Optional[List[str]] = None,
    ) -> "TrendRecord":
        """Build a record from a scored signal. Lifecycle always comes from the classifier."""
        lifecycle = classify_lifecycle(signal.growth_percent, signal.volume)
        return cls(
            source=signal.source,
            keyword=signal.keyword,
            volume=signal.volume,
            growth_percent=signal.growth_percent,
            competition=signal.competition,
            geography=signal.geography,
            lifecycle=lifecycle,
            viral_coefficient=viral_coefficient(signal.growth_percent, signal.volume, lifecycle),
            relevance_score=relevance_score,
            pillars=pillars,
            related_keywords=related_keywords if related_keywords is not None else signal.related_keywords,
            top_content=signal.top_content,
            captured_at=captured_at,
            expires_at=captured_at + timedelta(days=ttl_days),
        )

    @property
    def capture_bucket(self) -> str:
        """Dedup window: one record per (source, keyword, capture day)."""
        return self.captured_at.date().isoformat()

    @property
    def dedup_key(self) -> Tuple[str, str, str]:
        return (self.source, self.keyword.lower(), self.capture_bucket)


class DataPoint(BaseModel):
    captured_at: datetime
    volume: int = 0
    growth: float = 0.0


class VelocityData(BaseModel):
    """Growth dynamics of one keyword over its trailing history window."""
    keyword: str
    data_points: List[DataPoint] = Field(default_factory=list)
    velocity: float = 0.0       # growth change per day
    acceleration: float = 0.0   # velocity change between consecutive points


class StrategyPrediction(BaseModel):
    """Uniform output of every peak prediction strategy."""
    predicted_peak_at: datetime
    days_until_peak: int = Field(ge=0)
    confidence: int = Field(ge=0, le=100)
    reasoning: str
    strategy: Strategy


class TrendPrediction(BaseModel):
    """Point-in-time forecast for one trend, merged back onto its record."""
    trend_id: str
    keyword: str
    current_lifecycle: LifecycleStage
    predicted_peak_at: datetime
    days_until_peak: int
    opportunity_window: OpportunityWindow
    velocity: float
    acceleration: float
    confidence: int = Field(ge=0, le=100)
    reasoning: str
    recommended_actions: List[str] = Field(default_factory=list)
    strategy: Strategy = Strategy.HEURISTIC

    @property
    def urgency(self) -> Urgency:
        return self.opportunity_window.urgency
