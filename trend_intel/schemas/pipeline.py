"""
Batch result models.

Batch operations return partial successes plus a per-item error list; one
item failing never aborts its siblings.
"""

from typing import Dict, List

from pydantic import BaseModel, Field

from trend_intel.schemas.experiments import AlgorithmExperiment
from trend_intel.schemas.trends import TrendPrediction


class ItemError(BaseModel):
    """One failed item inside a batch."""
    item: str                  # trend id, keyword or source name
    stage: str                 # fetch | score | persist | predict | experiment
    error_type: str
    message: str = ""

    @classmethod
    def from_exception(cls, item: str, stage: str, exc: BaseException) -> "ItemError":
        return cls(item=item, stage=stage, error_type=type(exc).__name__, message=str(exc)[:300])


class CollectionResult(BaseModel):
    collected: int = 0
    stored: int = 0
    by_source: Dict[str, int] = Field(default_factory=dict)
    errors: List[ItemError] = Field(default_factory=list)


class PredictionBatch(BaseModel):
    predictions: List[TrendPrediction] = Field(default_factory=list)
    errors: List[ItemError] = Field(default_factory=list)


class ExperimentBatch(BaseModel):
    experiments: List[AlgorithmExperiment] = Field(default_factory=list)
    errors: List[ItemError] = Field(default_factory=list)
