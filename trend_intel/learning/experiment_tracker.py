"""
Algorithm Experiment Tracker — which peak strategy should we trust?

Each experiment runs the heuristic (control, A) and the model-based strategy
(variant, B) on the same trend and velocity input, side by side. When the
real peak is observed, both are scored:

  actual_days = floor((actual_peak_at - started_at) / 1 day)
  error_X     = |predicted_X - actual_days|
  accuracy_X  = max(0, 100 - error_X / max(actual_days, 1) * 100)

The higher accuracy wins (ties go to the heuristic). improvement = |A - B|
and is_significant = improvement > 10. The threshold is a fixed heuristic,
not a statistical test.

The aggregate recommendation averages each strategy's accuracy over the last
N completed experiments: means within 5 points → HYBRID, else the better one.

Persistence is the caller's job; everything here is pure except run(), which
awaits the two strategies.
"""

import asyncio
import logging
import math
from datetime import datetime
from typing import Optional, Sequence, Tuple

import numpy as np

from trend_intel.config import Settings, get_settings
from trend_intel.errors import InvalidExperimentTransition
from trend_intel.schemas.base import ExperimentStatus, Strategy, ensure_utc
from trend_intel.schemas.experiments import (
    AlgorithmExperiment, AlgorithmRecommendation, ExperimentArm, ExperimentOutcome,
)
from trend_intel.schemas.trends import StrategyPrediction, TrendRecord, VelocityData
from trend_intel.trends.prediction import PeakStrategy

logger = logging.getLogger(__name__)

_LABELS = {
    Strategy.HEURISTIC: "Rule-based",
    Strategy.MODEL: "Model",
    Strategy.HYBRID: "Hybrid",
}


def accuracy(predicted_days: int, actual_days: int) -> float:
    """100 for a perfect prediction, falling linearly with relative error, floored at 0."""
    error = abs(predicted_days - actual_days)
    return max(0.0, 100.0 - error / max(actual_days, 1) * 100.0)


def actual_days_until_peak(started_at: datetime, actual_peak_at: datetime) -> int:
    delta = ensure_utc(actual_peak_at) - ensure_utc(started_at)
    return math.floor(delta.total_seconds() / 86400)


def creation_recommendation(control: StrategyPrediction, variant: StrategyPrediction) -> str:
    """Advice at experiment start, before any outcome is known."""
    days_diff = abs(variant.days_until_peak - control.days_until_peak)
    if days_diff <= 1 and variant.confidence > 70:
        return "Use model prediction - High confidence with low variance"
    if days_diff > 5:
        return "Significant variance detected - Monitor both predictions and wait for more data"
    if variant.confidence > control.confidence + 15:
        return "Use model prediction - Significantly higher confidence"
    if control.confidence > variant.confidence + 15:
        return "Use rule-based prediction - More confident in this case"
    return "Use average of both predictions for balanced approach"


class ExperimentTracker:
    """Runs, scores and aggregates paired strategy experiments."""

    def __init__(self, control: PeakStrategy, variant: PeakStrategy,
                 settings: Optional[Settings] = None):
        self.control = control
        self.variant = variant
        self.settings = settings or get_settings()

    async def run(self, trend: TrendRecord, velocity_data: VelocityData,
                  now: datetime) -> AlgorithmExperiment:
        """Run both strategies concurrently and build a RUNNING experiment."""
        control, variant = await asyncio.gather(
            self.control.predict(trend, velocity_data, now),
            self.variant.predict(trend, velocity_data, now),
        )
        experiment = AlgorithmExperiment(
            trend_id=trend.id,
            subject_keyword=trend.keyword,
            strategy_a=_arm(Strategy.HEURISTIC, control),
            strategy_b=_arm(Strategy.MODEL, variant),
            velocity=velocity_data.velocity,
            acceleration=velocity_data.acceleration,
            days_difference=abs(variant.days_until_peak - control.days_until_peak),
            confidence_difference=abs(variant.confidence - control.confidence),
            control_performance=control.confidence,
            variant_performance=variant.confidence,
            status=ExperimentStatus.RUNNING,
            started_at=now,
            recommendation=creation_recommendation(control, variant),
        )
        logger.info(
            f"Experiment {experiment.id} for '{trend.keyword}': rules {control.days_until_peak}d "
            f"vs model {variant.days_until_peak}d: {experiment.recommendation}"
        )
        return experiment

    def evaluate(self, experiment: AlgorithmExperiment, actual_peak_at: datetime) -> ExperimentOutcome:
        """Score a RUNNING experiment against the observed peak."""
        if experiment.status != ExperimentStatus.RUNNING:
            raise InvalidExperimentTransition(
                f"experiment {experiment.id} is {experiment.status.value}; only RUNNING can complete"
            )
        actual = actual_days_until_peak(experiment.started_at, actual_peak_at)
        return self.score(experiment.strategy_a.days_until_peak, experiment.strategy_b.days_until_peak, actual)

    def score(self, predicted_a: int, predicted_b: int, actual_days: int) -> ExperimentOutcome:
        acc_a = accuracy(predicted_a, actual_days)
        acc_b = accuracy(predicted_b, actual_days)
        return self.outcome_from_accuracies(acc_a, acc_b, actual_days)

    def outcome_from_accuracies(self, acc_a: float, acc_b: float, actual_days: int) -> ExperimentOutcome:
        winner = Strategy.MODEL if acc_b > acc_a else Strategy.HEURISTIC
        improvement = abs(acc_a - acc_b)
        winner_acc = acc_b if winner == Strategy.MODEL else acc_a
        label = _LABELS[winner]
        return ExperimentOutcome(
            actual_days_until_peak=actual_days,
            control_accuracy=acc_a,
            variant_accuracy=acc_b,
            winner=winner,
            improvement=improvement,
            is_significant=improvement > self.settings.significance_threshold,
            learning=(
                f"{label} algorithm won with {improvement:.1f}% better accuracy. "
                f"Model: {acc_b:.1f}%, Rule-based: {acc_a:.1f}%. "
                f"Actual peak was {actual_days} days from start."
            ),
            recommendation=(
                f"Prefer {label.lower()} predictions for similar trends "
                f"({math.floor(winner_acc)}% accurate)"
            ),
        )

    def recommend(self, completed: Sequence[AlgorithmExperiment]) -> AlgorithmRecommendation:
        """Aggregate recommendation over the most recent completed experiments."""
        window = list(completed)[: self.settings.experiment_window]
        if not window:
            return AlgorithmRecommendation(
                strategy=Strategy.HYBRID,
                avg_accuracy=0.0,
                experiment_count=0,
                recommendation="Not enough data - use hybrid approach (average of model and rule-based)",
            )

        rule_mean, model_mean = _means(window)
        if abs(model_mean - rule_mean) < self.settings.hybrid_margin:
            strategy = Strategy.HYBRID
            avg = (model_mean + rule_mean) / 2
            text = (
                f"Both algorithms perform similarly (Model: {model_mean:.1f}%, "
                f"Rule: {rule_mean:.1f}%). Use hybrid approach."
            )
        elif model_mean > rule_mean:
            strategy = Strategy.MODEL
            avg = model_mean
            text = (
                f"Model algorithm performs better ({model_mean:.1f}% vs {rule_mean:.1f}%). "
                f"Prefer model predictions."
            )
        else:
            strategy = Strategy.HEURISTIC
            avg = rule_mean
            text = (
                f"Rule-based algorithm performs better ({rule_mean:.1f}% vs {model_mean:.1f}%). "
                f"Prefer rule-based predictions."
            )

        logger.info(f"Best algorithm: {strategy.value} ({avg:.1f}% accuracy over {len(window)} experiments)")
        return AlgorithmRecommendation(
            strategy=strategy,
            avg_accuracy=round(avg, 2),
            experiment_count=len(window),
            recommendation=text,
        )


def _arm(strategy: Strategy, prediction: StrategyPrediction) -> ExperimentArm:
    return ExperimentArm(
        strategy=strategy,
        days_until_peak=prediction.days_until_peak,
        confidence=prediction.confidence,
        reasoning=prediction.reasoning,
    )


def _means(experiments: Sequence[AlgorithmExperiment]) -> Tuple[float, float]:
    """(heuristic mean, model mean) accuracy."""
    control = np.array([e.control_performance or 0.0 for e in experiments], dtype=float)
    variant = np.array([e.variant_performance or 0.0 for e in experiments], dtype=float)
    return float(control.mean()), float(variant.mean())
