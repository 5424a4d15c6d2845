"""
Algorithm experiment models.

An experiment pairs the heuristic (control, strategy A) and model-based
(variant, strategy B) predictions for the same trend, then scores both
against the observed peak. RUNNING → COMPLETED is the only transition.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from trend_intel.schemas.base import ExperimentStatus, Strategy, ensure_utc, utcnow


class ExperimentArm(BaseModel):
    """One strategy's prediction inside an experiment."""
    strategy: Strategy
    days_until_peak: int = Field(ge=0)
    confidence: int = Field(ge=0, le=100)
    reasoning: str = ""


class ExperimentOutcome(BaseModel):
    """Scores for a completed experiment."""
    actual_days_until_peak: int
    control_accuracy: float
    variant_accuracy: float
    winner: Strategy
    improvement: float
    is_significant: bool
    learning: str
    recommendation: str


class AlgorithmExperiment(BaseModel):
    """Paired, outcome-scored comparison of two strategies for one trend."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    trend_id: str
    subject_keyword: str
    strategy_a: ExperimentArm
    strategy_b: ExperimentArm
    velocity: float = 0.0
    acceleration: float = 0.0
    days_difference: int = 0
    confidence_difference: int = 0

    # Before completion these hold each arm's confidence; after, its accuracy
    control_performance: float = 0.0
    variant_performance: float = 0.0

    status: ExperimentStatus = ExperimentStatus.RUNNING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    actual_peak_at: Optional[datetime] = None
    actual_days_until_peak: Optional[int] = None
    improvement: Optional[float] = None
    is_significant: Optional[bool] = None
    winner: Optional[Strategy] = None
    learning: str = "Experiment in progress - awaiting actual trend peak data"
    recommendation: str = ""

    @field_validator("started_at", "completed_at", "actual_peak_at", mode="after")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @property
    def is_running(self) -> bool:
        return self.status == ExperimentStatus.RUNNING

    def completed(self, outcome: ExperimentOutcome, completed_at: datetime,
                  actual_peak_at: datetime) -> "AlgorithmExperiment":
        """Copy of this experiment in the terminal COMPLETED state."""
        return self.model_copy(update={
            "status": ExperimentStatus.COMPLETED,
            "completed_at": ensure_utc(completed_at),
            "actual_peak_at": ensure_utc(actual_peak_at),
            "actual_days_until_peak": outcome.actual_days_until_peak,
            "control_performance": outcome.control_accuracy,
            "variant_performance": outcome.variant_accuracy,
            "improvement": outcome.improvement,
            "is_significant": outcome.is_significant,
            "winner": outcome.winner,
            "learning": outcome.learning,
            "recommendation": outcome.recommendation,
        })


class AlgorithmRecommendation(BaseModel):
    """Which strategy to prefer, from recent completed experiments."""
    strategy: Strategy
    avg_accuracy: float = 0.0
    experiment_count: int = 0
    recommendation: str = ""
