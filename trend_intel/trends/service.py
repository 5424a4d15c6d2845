"""
Trend Intelligence Service — the engine's public façade.

Composes the collector, analyzer, velocity estimator, peak predictor,
opportunity window and experiment tracker over a TrendRepository. Every repository call
runs in a worker thread under repository_timeout_seconds; a timeout surfaces
as RepositoryError. Batch operations take their own max_concurrent.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from trend_intel.config import Settings, get_settings
from trend_intel.errors import NotFound, RepositoryError
from trend_intel.repository import TrendRepository
from trend_intel.schemas.analysis import (
    CompetitorAdoption, ComprehensiveAnalysis, ContentGap, CrossPlatformAnalysis, SentimentAnalysis,
    TrendCorrelation,
)
from trend_intel.schemas.base import ACTIVE_STAGES, EARLY_STAGES, Urgency, ensure_utc, utcnow
from trend_intel.schemas.experiments import AlgorithmExperiment, AlgorithmRecommendation
from trend_intel.schemas.pipeline import CollectionResult, ExperimentBatch, ItemError, PredictionBatch
from trend_intel.schemas.trends import StoredOpportunity, TrendPrediction, TrendRecord, VelocityData
from trend_intel.sources.base import SignalSource
from trend_intel.trends.analyzer import AnalysisAdvisor, TrendAnalyzer
from trend_intel.trends.collector import KeywordExpander, TrendCollector
from trend_intel.trends.opportunity import URGENCY_RANK, calculate_window, recommended_actions
from trend_intel.trends.prediction import PeakStrategy
from trend_intel.trends.relevance import RelevanceScorer
from trend_intel.trends.signals.temporal import estimate_velocity
from trend_intel.use_cases import use_case_for
from trend_intel.learning.experiment_tracker import ExperimentTracker

logger = logging.getLogger(__name__)

_URGENT = (Urgency.CRITICAL, Urgency.HIGH)


class TrendIntelligenceService:
    """Collect, predict and learn over trend signals."""

    def __init__(
        self,
        repository: TrendRepository,
        scorer: RelevanceScorer,
        predictor: PeakStrategy,
        tracker: ExperimentTracker,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        keyword_expander: Optional[KeywordExpander] = None,
        advisor: Optional[AnalysisAdvisor] = None,
    ):
        self.repository = repository
        self.scorer = scorer
        self.predictor = predictor
        self.tracker = tracker
        self.settings = settings or get_settings()
        self._clock = clock or utcnow
        self.collector = TrendCollector(
            scorer,
            persist=self._persist,
            settings=self.settings,
            keyword_expander=keyword_expander,
        )
        self.analyzer = TrendAnalyzer(
            repository,
            advisor=advisor,
            settings=self.settings,
            run_query=self._repo,
            clock=self.now,
        )

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    async def _repo(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a synchronous repository call off the event loop, bounded."""
        timeout = self.settings.repository_timeout_seconds
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise RepositoryError(f"{fn.__name__} timed out after {timeout}s") from e

    async def _persist(self, record: TrendRecord) -> bool:
        return await self._repo(self.repository.upsert, record)

    async def _get_trend(self, trend_id: str) -> TrendRecord:
        trend = await self._repo(self.repository.get_trend, trend_id)
        if trend is None:
            raise NotFound("Trend", trend_id)
        return trend

    # ══════════════════════════════════════════════════════════════════════════
    # COLLECTION
    # ══════════════════════════════════════════════════════════════════════════

    async def collect_and_score(
        self,
        sources: Sequence[SignalSource],
        params: Optional[Dict[str, Any]] = None,
        business_context: Optional[str] = None,
        max_concurrent: Optional[int] = None,
    ) -> CollectionResult:
        """Fetch every source, score and persist what passes the relevance threshold."""
        logger.info(f"[{use_case_for('collect_and_score')}] Collecting from {len(sources)} sources")
        return await self.collector.collect(
            sources,
            params=params,
            business_context=business_context,
            max_concurrent=max_concurrent,
            now=self.now(),
        )

    async def get_active_trends(self, min_relevance: Optional[int] = None) -> List[TrendRecord]:
        """Non-expired trends by viral coefficient, then relevance."""
        threshold = self.settings.active_min_relevance if min_relevance is None else min_relevance
        return await self._repo(
            self.repository.find_active,
            threshold, None, self.settings.active_trend_limit, self.now(),
        )

    async def get_trends_by_pillar(self, pillar: str) -> List[TrendRecord]:
        return await self._repo(
            self.repository.find_active,
            0, None, self.settings.pillar_trend_limit, self.now(), pillar,
        )

    # ══════════════════════════════════════════════════════════════════════════
    # ANALYSIS
    # ══════════════════════════════════════════════════════════════════════════

    async def analyze_content_gaps(self, existing_content: Optional[Sequence[str]] = None) -> List[ContentGap]:
        """Relevant trends no existing content covers, most severe first."""
        logger.info(f"[{use_case_for('analyze_content_gaps')}] Analyzing content gaps")
        return await self.analyzer.analyze_content_gaps(existing_content)

    async def analyze_cross_platform(self, keyword: str) -> CrossPlatformAnalysis:
        logger.info(f"[{use_case_for('analyze_cross_platform')}] Cross-platform analysis for '{keyword}'")
        return await self.analyzer.analyze_cross_platform(keyword)

    async def analyze_sentiment(self, keyword: str) -> SentimentAnalysis:
        logger.info(f"[{use_case_for('analyze_sentiment')}] Sentiment analysis for '{keyword}'")
        return await self.analyzer.analyze_sentiment(keyword)

    async def find_trend_correlations(self, keyword: str) -> TrendCorrelation:
        logger.info(f"[{use_case_for('find_trend_correlations')}] Correlations for '{keyword}'")
        return await self.analyzer.find_trend_correlations(keyword)

    async def analyze_competitor_adoption(self, keyword: str) -> CompetitorAdoption:
        logger.info(f"[{use_case_for('analyze_competitor_adoption')}] Competitor adoption for '{keyword}'")
        return await self.analyzer.analyze_competitor_adoption(keyword)

    async def get_comprehensive_analysis(self, keyword: str) -> ComprehensiveAnalysis:
        logger.info(f"[{use_case_for('get_comprehensive_analysis')}] Comprehensive analysis for '{keyword}'")
        return await self.analyzer.comprehensive_analysis(keyword)

    # ══════════════════════════════════════════════════════════════════════════
    # PREDICTION
    # ══════════════════════════════════════════════════════════════════════════

    async def predict_peak(self, trend_id: str) -> TrendPrediction:
        """Predict the peak of one trend and merge the result back onto its record."""
        trend = await self._get_trend(trend_id)
        logger.debug(f"[{use_case_for('predict_peak')}] Predicting '{trend.keyword}'")
        return await self._predict(trend)

    async def _velocity(self, trend: TrendRecord, now: datetime) -> VelocityData:
        window_days = self.settings.history_window_days
        history: List[TrendRecord] = await self._repo(
            self.repository.find_history, trend.keyword, now - timedelta(days=window_days),
        )
        if all(h.id != trend.id for h in history):
            history.append(trend)
        return estimate_velocity(trend.keyword, history, window_days=window_days, now=now)

    async def _predict(self, trend: TrendRecord) -> TrendPrediction:
        now = self.now()
        velocity_data = await self._velocity(trend, now)
        peak = await self.predictor.predict(trend, velocity_data, now)
        window = calculate_window(
            peak.predicted_peak_at,
            velocity_data.velocity,
            now,
            lead_days=self.settings.window_lead_days,
            tail_days=self.settings.window_tail_days,
            escalation_velocity=self.settings.escalation_velocity,
        )

        prediction = TrendPrediction(
            trend_id=trend.id,
            keyword=trend.keyword,
            current_lifecycle=trend.lifecycle,
            predicted_peak_at=peak.predicted_peak_at,
            days_until_peak=peak.days_until_peak,
            opportunity_window=window,
            velocity=velocity_data.velocity,
            acceleration=velocity_data.acceleration,
            confidence=peak.confidence,
            reasoning=peak.reasoning,
            recommended_actions=recommended_actions(window.urgency, trend.pillars),
            strategy=peak.strategy,
        )

        # Last-write-wins: the newest prediction replaces any earlier one
        stored = StoredOpportunity(
            **window.model_dump(),
            velocity=velocity_data.velocity,
            acceleration=velocity_data.acceleration,
            confidence=peak.confidence,
        )
        await self._repo(self.repository.upsert, trend.model_copy(update={
            "peak_prediction": peak.predicted_peak_at,
            "opportunity_window": stored,
        }))

        logger.info(
            f"Predicted '{trend.keyword}': peak in {peak.days_until_peak}d "
            f"({peak.confidence}% confidence, {window.urgency.value})"
        )
        return prediction

    async def predict_all_active(self, max_concurrent: Optional[int] = None) -> PredictionBatch:
        """Predict every non-expired EMERGING/GROWING/PEAK trend."""
        limit = self.settings.default_max_concurrent if max_concurrent is None else max_concurrent
        if limit < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {limit}")

        trends: List[TrendRecord] = await self._repo(
            self.repository.find_active,
            0, list(ACTIVE_STAGES), self.settings.active_trend_limit, self.now(),
        )
        logger.info(f"[{use_case_for('predict_all_active')}] Predicting peaks for {len(trends)} active trends...")

        semaphore = asyncio.Semaphore(limit)

        async def _predict_one(trend: TrendRecord) -> TrendPrediction:
            async with semaphore:
                return await self._predict(trend)

        results = await asyncio.gather(*[_predict_one(t) for t in trends], return_exceptions=True)

        batch = PredictionBatch()
        for trend, result in zip(trends, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to predict trend {trend.id}: {result}")
                batch.errors.append(ItemError.from_exception(trend.id, "predict", result))
            else:
                batch.predictions.append(result)

        logger.info(f"Generated {len(batch.predictions)} trend predictions ({len(batch.errors)} failed)")
        return batch

    async def get_urgent_opportunities(self, max_concurrent: Optional[int] = None) -> List[TrendPrediction]:
        """CRITICAL and HIGH predictions, most urgent first, then soonest window close."""
        batch = await self.predict_all_active(max_concurrent)
        urgent = [p for p in batch.predictions if p.urgency in _URGENT]
        return sorted(
            urgent,
            key=lambda p: (URGENCY_RANK[p.urgency], p.opportunity_window.days_remaining),
        )

    async def get_trends_by_urgency(
        self, urgency: Urgency, max_concurrent: Optional[int] = None,
    ) -> List[TrendPrediction]:
        batch = await self.predict_all_active(max_concurrent)
        return [p for p in batch.predictions if p.urgency == urgency]

    async def detect_early_signals(self, max_concurrent: Optional[int] = None) -> List[TrendPrediction]:
        """Trends 7-14 days before peak with confidence >= 60, most confident first."""
        batch = await self.predict_all_active(max_concurrent)
        low, high = self.settings.early_signal_min_days, self.settings.early_signal_max_days
        early = [
            p for p in batch.predictions
            if low <= p.days_until_peak <= high
            and p.confidence >= self.settings.early_signal_min_confidence
        ]
        return sorted(early, key=lambda p: p.confidence, reverse=True)

    # ══════════════════════════════════════════════════════════════════════════
    # EXPERIMENTS
    # ══════════════════════════════════════════════════════════════════════════

    async def run_experiment(self, trend_id: str) -> AlgorithmExperiment:
        """Run both strategies on one trend and persist a RUNNING experiment."""
        trend = await self._get_trend(trend_id)
        return await self._run_experiment(trend)

    async def _run_experiment(self, trend: TrendRecord) -> AlgorithmExperiment:
        now = self.now()
        velocity_data = await self._velocity(trend, now)
        experiment = await self.tracker.run(trend, velocity_data, now)
        await self._repo(self.repository.record_experiment, experiment)
        return experiment

    async def run_experiments_for_new_trends(
        self,
        limit: Optional[int] = None,
        max_concurrent: Optional[int] = None,
    ) -> ExperimentBatch:
        """Experiment on the newest EMERGING/GROWING trends."""
        concurrency = self.settings.default_max_concurrent if max_concurrent is None else max_concurrent
        if concurrency < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {concurrency}")

        trends: List[TrendRecord] = await self._repo(
            self.repository.find_recent,
            list(EARLY_STAGES), limit or self.settings.auto_experiment_limit, self.now(),
        )
        semaphore = asyncio.Semaphore(concurrency)

        async def _run_one(trend: TrendRecord) -> AlgorithmExperiment:
            async with semaphore:
                return await self._run_experiment(trend)

        results = await asyncio.gather(*[_run_one(t) for t in trends], return_exceptions=True)

        batch = ExperimentBatch()
        for trend, result in zip(trends, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to run experiment for trend {trend.id}: {result}")
                batch.errors.append(ItemError.from_exception(trend.id, "experiment", result))
            else:
                batch.experiments.append(result)

        logger.info(f"Created {len(batch.experiments)} algorithm experiments")
        return batch

    async def complete_experiment(self, experiment_id: str, actual_peak_at: datetime) -> None:
        """Score a RUNNING experiment against the observed peak and mark it COMPLETED."""
        experiment = await self._repo(self.repository.get_experiment, experiment_id)
        if experiment is None:
            raise NotFound("Experiment", experiment_id)

        outcome = self.tracker.evaluate(experiment, actual_peak_at)
        await self._repo(
            self.repository.complete_experiment,
            experiment_id, ensure_utc(actual_peak_at), outcome, self.now(),
        )
        logger.info(f"Experiment {experiment_id} completed: {outcome.learning}")

    async def get_best_algorithm_recommendation(self) -> AlgorithmRecommendation:
        completed = await self._repo(
            self.repository.find_completed_experiments, self.settings.experiment_window,
        )
        return self.tracker.recommend(completed)


def build_service(
    settings: Optional[Settings] = None,
    repository: Optional[TrendRepository] = None,
    mock_mode: Optional[bool] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> TrendIntelligenceService:
    """Wire the LLM-backed scorer, forecaster and analysis advisor over the SQL repository."""
    from trend_intel.database import get_database
    from trend_intel.trends.analyzer import LLMAnalysisAdvisor
    from trend_intel.tools.llm_service import LLMService
    from trend_intel.trends.prediction import HeuristicStrategy, LLMForecastModel, build_peak_predictor
    from trend_intel.trends.relevance import LLMRelevanceBackend

    settings = settings or get_settings()
    mock = settings.mock_mode if mock_mode is None else mock_mode
    llm = LLMService(settings=settings, mock_mode=mock)

    backend = LLMRelevanceBackend(llm)
    forecast_model = LLMForecastModel(llm)
    predictor = build_peak_predictor(forecast_model=forecast_model, settings=settings)
    tracker = ExperimentTracker(
        control=HeuristicStrategy(max_days=settings.max_forecast_days),
        variant=build_peak_predictor("model", forecast_model=forecast_model, settings=settings),
        settings=settings,
    )
    return TrendIntelligenceService(
        repository=repository or get_database(),
        scorer=RelevanceScorer(backend, settings=settings),
        predictor=predictor,
        tracker=tracker,
        settings=settings,
        clock=clock,
        keyword_expander=backend.related_keywords,
        advisor=LLMAnalysisAdvisor(llm, settings=settings),
    )
