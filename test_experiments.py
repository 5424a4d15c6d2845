"""
Tests for the algorithm experiment tracker: scoring, significance and the
aggregate strategy recommendation.

Run with: pytest test_experiments.py -v
"""

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, make_record
from trend_intel.errors import InvalidExperimentTransition
from trend_intel.learning.experiment_tracker import (
    ExperimentTracker, accuracy, actual_days_until_peak, creation_recommendation,
)
from trend_intel.schemas.base import ExperimentStatus, Strategy
from trend_intel.schemas.experiments import AlgorithmExperiment, ExperimentArm
from trend_intel.schemas.trends import StrategyPrediction, VelocityData
from trend_intel.trends.prediction import HeuristicStrategy, PeakStrategy


class FixedStrategy(PeakStrategy):
    strategy = Strategy.MODEL

    def __init__(self, days, confidence):
        self.days = days
        self.confidence = confidence

    async def predict(self, trend, velocity_data, now):
        return StrategyPrediction(
            predicted_peak_at=now + timedelta(days=self.days),
            days_until_peak=self.days,
            confidence=self.confidence,
            reasoning="fixed",
            strategy=self.strategy,
        )


def sp(days, confidence):
    return StrategyPrediction(
        predicted_peak_at=NOW + timedelta(days=days),
        days_until_peak=days,
        confidence=confidence,
        reasoning="",
        strategy=Strategy.MODEL,
    )


def completed(control, variant, hours_ago=0):
    return AlgorithmExperiment(
        trend_id="t1",
        subject_keyword="eco laundry",
        strategy_a=ExperimentArm(strategy=Strategy.HEURISTIC, days_until_peak=7, confidence=60),
        strategy_b=ExperimentArm(strategy=Strategy.MODEL, days_until_peak=5, confidence=70),
        status=ExperimentStatus.COMPLETED,
        started_at=NOW - timedelta(days=10),
        completed_at=NOW - timedelta(hours=hours_ago),
        control_performance=control,
        variant_performance=variant,
    )


@pytest.fixture
def tracker(settings):
    return ExperimentTracker(HeuristicStrategy(), FixedStrategy(5, 80), settings=settings)


# ════════════════════════════════════════════════════════════════════
# Accuracy
# ════════════════════════════════════════════════════════════════════

class TestAccuracy:

    def test_perfect_prediction(self):
        assert accuracy(5, 5) == 100.0

    def test_relative_error(self):
        assert accuracy(8, 5) == 40.0
        assert accuracy(4, 5) == 80.0

    def test_floored_at_zero(self):
        assert accuracy(20, 5) == 0.0

    def test_zero_actual_uses_one_day_denominator(self):
        assert accuracy(0, 0) == 100.0
        assert accuracy(3, 0) == 0.0

    def test_actual_days_floor(self):
        assert actual_days_until_peak(NOW, NOW + timedelta(days=5, hours=23)) == 5
        assert actual_days_until_peak(NOW, NOW) == 0


# ════════════════════════════════════════════════════════════════════
# Outcome scoring
# ════════════════════════════════════════════════════════════════════

class TestOutcome:

    def test_control_wins_significantly(self, tracker):
        outcome = tracker.outcome_from_accuracies(82.0, 65.0, 10)
        assert outcome.winner == Strategy.HEURISTIC
        assert outcome.improvement == pytest.approx(17.0)
        assert outcome.is_significant
        assert outcome.learning.startswith("Rule-based algorithm won with 17.0% better accuracy")
        assert outcome.recommendation == "Prefer rule-based predictions for similar trends (82% accurate)"

    def test_variant_wins(self, tracker):
        outcome = tracker.score(predicted_a=8, predicted_b=5, actual_days=5)
        assert outcome.winner == Strategy.MODEL
        assert outcome.control_accuracy == 40.0
        assert outcome.variant_accuracy == 100.0
        assert outcome.improvement == 60.0
        assert "Actual peak was 5 days from start." in outcome.learning

    def test_tie_goes_to_heuristic(self, tracker):
        outcome = tracker.score(4, 6, 5)
        assert outcome.control_accuracy == outcome.variant_accuracy
        assert outcome.winner == Strategy.HEURISTIC
        assert not outcome.is_significant

    def test_significance_is_strictly_greater(self, tracker):
        assert not tracker.outcome_from_accuracies(70.0, 60.0, 5).is_significant
        assert tracker.outcome_from_accuracies(70.5, 60.0, 5).is_significant

    def test_evaluate_running_experiment(self, tracker):
        experiment = asyncio.run(tracker.run(make_record(), VelocityData(keyword="eco laundry"), NOW))
        outcome = tracker.evaluate(experiment, NOW + timedelta(days=5))
        assert outcome.actual_days_until_peak == 5
        assert outcome.variant_accuracy == 100.0   # model said 5
        assert outcome.control_accuracy == 60.0    # rules said 7

    def test_evaluate_completed_raises(self, tracker):
        with pytest.raises(InvalidExperimentTransition):
            tracker.evaluate(completed(80, 60), NOW)


# ════════════════════════════════════════════════════════════════════
# Running experiments
# ════════════════════════════════════════════════════════════════════

class TestRun:

    def test_creates_running_experiment(self, tracker):
        experiment = asyncio.run(tracker.run(make_record(), VelocityData(keyword="eco laundry"), NOW))
        assert experiment.status == ExperimentStatus.RUNNING
        assert experiment.strategy_a.strategy == Strategy.HEURISTIC
        assert experiment.strategy_a.days_until_peak == 7
        assert experiment.strategy_b.days_until_peak == 5
        assert experiment.days_difference == 2
        assert experiment.confidence_difference == 20
        assert experiment.started_at == NOW
        assert experiment.learning.startswith("Experiment in progress")
        assert experiment.recommendation == "Use model prediction - Significantly higher confidence"

    @pytest.mark.parametrize("control, variant, expected", [
        (sp(5, 60), sp(5, 80), "Use model prediction - High confidence with low variance"),
        (sp(1, 60), sp(9, 60), "Significant variance detected - Monitor both predictions and wait for more data"),
        (sp(3, 60), sp(6, 80), "Use model prediction - Significantly higher confidence"),
        (sp(3, 90), sp(6, 60), "Use rule-based prediction - More confident in this case"),
        (sp(3, 65), sp(6, 70), "Use average of both predictions for balanced approach"),
    ])
    def test_creation_recommendation(self, control, variant, expected):
        assert creation_recommendation(control, variant) == expected


# ════════════════════════════════════════════════════════════════════
# Aggregate recommendation
# ════════════════════════════════════════════════════════════════════

class TestRecommend:

    def test_no_data_is_hybrid(self, tracker):
        rec = tracker.recommend([])
        assert rec.strategy == Strategy.HYBRID
        assert rec.avg_accuracy == 0.0
        assert rec.experiment_count == 0
        assert rec.recommendation.startswith("Not enough data")

    def test_heuristic_better(self, tracker):
        rec = tracker.recommend([completed(80, 60), completed(90, 70)])
        assert rec.strategy == Strategy.HEURISTIC
        assert rec.avg_accuracy == 85.0
        assert rec.experiment_count == 2

    def test_model_better(self, tracker):
        rec = tracker.recommend([completed(50, 90), completed(60, 80)])
        assert rec.strategy == Strategy.MODEL
        assert rec.avg_accuracy == 85.0

    def test_close_means_are_hybrid(self, tracker):
        rec = tracker.recommend([completed(80, 77), completed(70, 72)])
        # means 75 vs 74.5
        assert rec.strategy == Strategy.HYBRID
        assert rec.avg_accuracy == 74.75

    def test_window_limits_experiments(self, settings):
        settings.experiment_window = 2
        tracker = ExperimentTracker(HeuristicStrategy(), FixedStrategy(5, 80), settings=settings)
        rec = tracker.recommend([completed(90, 10), completed(90, 10), completed(0, 100)])
        assert rec.experiment_count == 2
        assert rec.strategy == Strategy.HEURISTIC
