"""
Peak prediction — interchangeable strategies behind one interface.

  PeakStrategy.predict(trend, velocity_data, now) -> StrategyPrediction

Strategies:
  HeuristicStrategy  deterministic, stage-conditioned rules; never fails
  ModelStrategy      external ForecastModel (LLM); raises on any failure
  HybridStrategy     average of heuristic and model

FallbackPeakPredictor composes an ordered chain of strategies. The first one
that answers wins; failures are logged and the next is tried. The last link
is always the heuristic, so callers always get a well-formed prediction. When
a fallback answers, its reasoning is prefixed with "Heuristic fallback (...)"
and nothing else about the shape changes.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, List, Optional, Sequence

from pydantic import ValidationError

from trend_intel.config import Settings, get_settings
from trend_intel.errors import ForecastUnavailable, MalformedExternalResponse
from trend_intel.schemas.base import LifecycleStage, Strategy
from trend_intel.schemas.llm_outputs import PeakForecastLLM
from trend_intel.schemas.trends import StrategyPrediction, TrendRecord, VelocityData
from trend_intel.tools.json_extract import extract_json_object

logger = logging.getLogger(__name__)

FALLBACK_PREFIX = "Heuristic fallback"

FORECAST_PROMPT = """You are a trend forecasting expert. Analyze this trend and predict when it will reach its peak.

Trend Data:
- Keyword: "{keyword}"
- Source: {source}
- Current Volume: {volume}
- Current Growth: {growth}%
- Current Lifecycle: {lifecycle}
- Competition: {competition}/100
- Velocity: {velocity} (rate of growth change per day)
- Acceleration: {acceleration} (rate of velocity change)

Historical Context:
{history}

Consider:
1. Current lifecycle stage
2. Velocity and acceleration patterns
3. Typical trend lifecycles for this type of content
4. Seasonality and external factors
5. Competition level

Provide your prediction in JSON format:
{{
  "daysUntilPeak": <number between 1-30>,
  "confidence": <number 0-100>,
  "reasoning": "<2-3 sentence explanation>"
}}

Return ONLY the JSON object."""


def _clamp(value: float, low: int, high: int) -> int:
    return int(min(high, max(low, round(value))))


def build_forecast_prompt(trend: TrendRecord, velocity_data: VelocityData) -> str:
    if velocity_data.data_points:
        growths = ", ".join(f"{p.growth:g}" for p in velocity_data.data_points)
        history = (
            f"- Data points collected: {len(velocity_data.data_points)}\n"
            f"- Growth trend: {growths}%"
        )
    else:
        history = "Limited historical data available"
    return FORECAST_PROMPT.format(
        keyword=trend.keyword,
        source=trend.source,
        volume=trend.volume,
        growth=f"{trend.growth_percent:g}",
        lifecycle=trend.lifecycle.value,
        competition=f"{trend.competition:g}",
        velocity=velocity_data.velocity,
        acceleration=velocity_data.acceleration,
        history=history,
    )


# ══════════════════════════════════════════════════════════════════════════════
# COLLABORATOR: external forecasting capability
# ══════════════════════════════════════════════════════════════════════════════

class ForecastModel(ABC):
    """Answers a forecasting prompt with {daysUntilPeak, confidence, reasoning}.

    May return a PeakForecastLLM, a dict, or raw JSON text. Anything that does
    not validate is a hard failure.
    """

    @abstractmethod
    async def forecast(self, prompt: str) -> Any:
        ...


class LLMForecastModel(ForecastModel):
    """Forecasts through the configured LLM chain with typed output."""

    def __init__(self, llm_service=None):
        if llm_service is None:
            from trend_intel.tools.llm_service import LLMService
            llm_service = LLMService()
        self.llm = llm_service

    async def forecast(self, prompt: str) -> PeakForecastLLM:
        return await self.llm.run_structured(prompt, output_type=PeakForecastLLM)


# ══════════════════════════════════════════════════════════════════════════════
# STRATEGIES
# ══════════════════════════════════════════════════════════════════════════════

class PeakStrategy(ABC):
    """Common capability of every peak prediction algorithm."""

    strategy: Strategy

    @abstractmethod
    async def predict(self, trend: TrendRecord, velocity_data: VelocityData,
                      now: datetime) -> StrategyPrediction:
        ...


class HeuristicStrategy(PeakStrategy):
    """Stage-conditioned rules.

      EMERGING   3d @70 if velocity > 10 and accelerating, else 7d @60
      GROWING    2d @75 if decelerating, else 5d @65
      PEAK       1d @90
      DECLINING  0d @95  (past peak)
      DEAD       0d @95
    """

    strategy = Strategy.HEURISTIC

    def __init__(self, max_days: int = 30):
        self.max_days = max_days

    def predict_now(self, trend: TrendRecord, velocity_data: VelocityData,
                    now: datetime) -> StrategyPrediction:
        velocity = velocity_data.velocity
        acceleration = velocity_data.acceleration
        stage = trend.lifecycle

        if stage == LifecycleStage.EMERGING:
            days, confidence = (3, 70) if velocity > 10 and acceleration > 0 else (7, 60)
        elif stage == LifecycleStage.GROWING:
            days, confidence = (2, 75) if acceleration < 0 else (5, 65)
        elif stage == LifecycleStage.PEAK:
            days, confidence = 1, 90
        else:
            days, confidence = 0, 95

        days = _clamp(days, 0, self.max_days)
        confidence = _clamp(confidence, 0, 100)
        return StrategyPrediction(
            predicted_peak_at=now + timedelta(days=days),
            days_until_peak=days,
            confidence=confidence,
            reasoning=f"Rule-based prediction: {stage.value} stage with velocity {velocity:.2f}/day",
            strategy=self.strategy,
        )

    async def predict(self, trend: TrendRecord, velocity_data: VelocityData,
                      now: datetime) -> StrategyPrediction:
        return self.predict_now(trend, velocity_data, now)


class ModelStrategy(PeakStrategy):
    """Delegates to an external ForecastModel, bounded by a timeout.

    Raises ForecastUnavailable (call failed / timed out) or
    MalformedExternalResponse (answer did not validate).
    """

    strategy = Strategy.MODEL

    def __init__(self, forecast_model: ForecastModel, timeout: float = 30.0, max_days: int = 30):
        self.forecast_model = forecast_model
        self.timeout = timeout
        self.max_days = max_days

    async def predict(self, trend: TrendRecord, velocity_data: VelocityData,
                      now: datetime) -> StrategyPrediction:
        prompt = build_forecast_prompt(trend, velocity_data)
        try:
            raw = await asyncio.wait_for(self.forecast_model.forecast(prompt), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ForecastUnavailable(f"forecast timed out after {self.timeout}s") from e
        except Exception as e:
            raise ForecastUnavailable(str(e) or type(e).__name__) from e

        forecast = self._validate(raw)
        days = _clamp(forecast.days_until_peak, 1, self.max_days)
        return StrategyPrediction(
            predicted_peak_at=now + timedelta(days=days),
            days_until_peak=days,
            confidence=_clamp(forecast.confidence, 0, 100),
            reasoning=forecast.reasoning,
            strategy=self.strategy,
        )

    @staticmethod
    def _validate(raw: Any) -> PeakForecastLLM:
        if isinstance(raw, PeakForecastLLM):
            return raw
        try:
            if isinstance(raw, str):
                # Only a complete object counts; a cut-off answer is never patched up
                block = extract_json_object(raw)
                if block is None:
                    raise MalformedExternalResponse(f"forecast is not a complete JSON object: {raw[:80]!r}")
                return PeakForecastLLM.model_validate_json(block)
            if isinstance(raw, dict):
                return PeakForecastLLM.model_validate(raw)
        except ValidationError as e:
            raise MalformedExternalResponse(f"forecast failed validation: {e.error_count()} error(s)") from e
        raise MalformedExternalResponse(f"forecast payload is {type(raw).__name__}, expected object")


class HybridStrategy(PeakStrategy):
    """Average of the heuristic and model predictions (days rounded)."""

    strategy = Strategy.HYBRID

    def __init__(self, heuristic: HeuristicStrategy, model: ModelStrategy):
        self.heuristic = heuristic
        self.model = model

    async def predict(self, trend: TrendRecord, velocity_data: VelocityData,
                      now: datetime) -> StrategyPrediction:
        rule = self.heuristic.predict_now(trend, velocity_data, now)
        model = await self.model.predict(trend, velocity_data, now)
        days = int(round((rule.days_until_peak + model.days_until_peak) / 2))
        confidence = int(round((rule.confidence + model.confidence) / 2))
        return StrategyPrediction(
            predicted_peak_at=now + timedelta(days=days),
            days_until_peak=days,
            confidence=confidence,
            reasoning=(
                f"Hybrid of model ({model.days_until_peak}d @{model.confidence}) and "
                f"rules ({rule.days_until_peak}d @{rule.confidence}). {model.reasoning}"
            ),
            strategy=self.strategy,
        )


# ══════════════════════════════════════════════════════════════════════════════
# FALLBACK CHAIN
# ══════════════════════════════════════════════════════════════════════════════

class FallbackPeakPredictor(PeakStrategy):
    """Tries each strategy in order; the heuristic always closes the chain."""

    def __init__(self, strategies: Sequence[PeakStrategy]):
        chain: List[PeakStrategy] = list(strategies)
        if not chain or not isinstance(chain[-1], HeuristicStrategy):
            chain.append(HeuristicStrategy())
        self.strategies = chain
        self.strategy = chain[0].strategy

    async def predict(self, trend: TrendRecord, velocity_data: VelocityData,
                      now: datetime) -> StrategyPrediction:
        reason: Optional[str] = None
        for position, strategy in enumerate(self.strategies):
            try:
                prediction = await strategy.predict(trend, velocity_data, now)
            except (ForecastUnavailable, MalformedExternalResponse) as e:
                reason = type(e).__name__
                logger.warning(
                    f"{strategy.strategy.value} prediction failed for '{trend.keyword}' "
                    f"({reason}: {e}), falling back"
                )
                continue
            if position == 0:
                return prediction
            return prediction.model_copy(update={
                "reasoning": f"{FALLBACK_PREFIX} ({reason}): {prediction.reasoning}",
            })
        # Unreachable: the heuristic closing the chain never raises
        raise ForecastUnavailable(f"no strategy produced a prediction for '{trend.keyword}'")


def build_peak_predictor(
    strategy: Optional[str] = None,
    forecast_model: Optional[ForecastModel] = None,
    settings: Optional[Settings] = None,
) -> FallbackPeakPredictor:
    """Assemble the chain for PREDICTION_STRATEGY.

    heuristic → [heuristic]
    model/auto → [model, heuristic]
    hybrid → [hybrid, heuristic]

    Without a forecast model every choice degrades to the heuristic.
    """
    settings = settings or get_settings()
    name = (strategy or settings.prediction_strategy).lower()
    heuristic = HeuristicStrategy(max_days=settings.max_forecast_days)

    if name == "heuristic" or forecast_model is None:
        if name != "heuristic":
            logger.info(f"No forecast model configured — '{name}' strategy runs heuristic only")
        return FallbackPeakPredictor([heuristic])

    model = ModelStrategy(
        forecast_model,
        timeout=settings.forecast_timeout_seconds,
        max_days=settings.max_forecast_days,
    )
    if name in ("model", "auto"):
        return FallbackPeakPredictor([model, heuristic])
    if name == "hybrid":
        return FallbackPeakPredictor([HybridStrategy(heuristic, model), heuristic])
    raise ValueError(f"Unknown prediction strategy: {name}")
