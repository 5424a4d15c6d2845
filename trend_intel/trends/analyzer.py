"""
Trend analysis — what the stored trends mean for content planning.

Deterministic parts work straight off the repository:
  - content gaps: relevant trends with no matching content, ranked by severity
  - cross-platform spread of one keyword (per-source volume/growth, potential)
  - correlation with other active trends (pillars, growth, related keywords)
  - competitor adoption, derived from the competition score

Free-text parts (content ideas, platform strategy, sentiment, bundle ideas)
go through an AnalysisAdvisor. Advisor calls are bounded by
analysis_timeout_seconds; on failure the analyzer logs a warning and uses a
rule-based fallback, so analysis never fails because the LLM did.

Cross-platform potential:
    consistency = max(0, 100 - stdev(volume) / mean(volume) * 100)
    diversity   = min(100, platforms / 4 * 100)
    potential   = round(0.6 * consistency + 0.4 * diversity)   (20 for one platform)

Correlation (0-1, 2 dp):
    0.4 * pillar overlap + 0.3 * growth similarity + 0.3 * related-keyword overlap
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import numpy as np

from trend_intel.config import Settings, get_settings
from trend_intel.errors import NotFound
from trend_intel.repository import TrendRepository
from trend_intel.schemas.analysis import (
    GAP_RANK, AdoptionPosition, CompetitorAdoption, ComprehensiveAnalysis, ContentGap,
    CorrelatedTrend, CrossPlatformAnalysis, EngagementLevel, GapSeverity, PlatformPerformance,
    SentimentAnalysis, SentimentLabel, TrendCorrelation,
)
from trend_intel.schemas.base import utcnow
from trend_intel.schemas.llm_outputs import ContentIdeasLLM, SentimentLLM
from trend_intel.schemas.trends import TrendRecord

logger = logging.getLogger(__name__)

RunQuery = Callable[..., Awaitable[Any]]

# Content gaps consider trends at or above this relevance
GAP_MIN_RELEVANCE = 60
# Correlation candidates must clear this relevance
CORRELATION_MIN_RELEVANCE = 50
CORRELATION_CANDIDATES = 10
CORRELATION_TOP = 5
BUNDLE_THRESHOLD = 0.7

_GAP_RULES = (
    # (min relevance, volume above, severity, reason)
    (80, 50_000, GapSeverity.SEVERE, "High relevance, high volume - critical gap"),
    (70, 20_000, GapSeverity.MODERATE, "Good relevance and volume - important gap"),
)

_ENGAGEMENT_RULES = (
    # (volume above, growth above, level)
    (100_000, 50, EngagementLevel.VIRAL),
    (50_000, 20, EngagementLevel.HIGH),
    (10_000, 0, EngagementLevel.MODERATE),
)

_SENTIMENT_BANDS = (
    (-0.6, SentimentLabel.VERY_NEGATIVE),
    (-0.2, SentimentLabel.NEGATIVE),
    (0.2, SentimentLabel.NEUTRAL),
    (0.6, SentimentLabel.POSITIVE),
)

_ADOPTION_BANDS = (
    (20, AdoptionPosition.LEADER),
    (40, AdoptionPosition.EARLY),
    (70, AdoptionPosition.MAJORITY),
    (90, AdoptionPosition.LAGGARD),
)

_ADVANTAGE = {
    AdoptionPosition.LEADER: "First-mover advantage: establish authority before competition intensifies",
    AdoptionPosition.EARLY: "Early advantage: join leaders before market saturation",
    AdoptionPosition.MAJORITY: "Proven trend: safe bet but requires unique angle to stand out",
    AdoptionPosition.LAGGARD: "Late entry: high competition, need strong differentiation",
    AdoptionPosition.NONE: "Market saturated: reconsider entry or find completely unique angle",
}


# ══════════════════════════════════════════════════════════════════════════════
# PURE RULES
# ══════════════════════════════════════════════════════════════════════════════

def classify_gap(relevance_score: int, volume: int) -> tuple:
    """(severity, reason) for a trend with no content yet."""
    for min_relevance, min_volume, severity, reason in _GAP_RULES:
        if relevance_score >= min_relevance and volume > min_volume:
            return severity, reason
    return GapSeverity.MINOR, "Lower priority opportunity"


def engagement_level(volume: int, growth_percent: float) -> EngagementLevel:
    for min_volume, min_growth, level in _ENGAGEMENT_RULES:
        if volume > min_volume and growth_percent > min_growth:
            return level
    return EngagementLevel.LOW


def cross_platform_potential(volumes: Sequence[int]) -> int:
    if len(volumes) <= 1:
        return 20
    values = np.asarray(volumes, dtype=float)
    mean = float(values.mean())
    # all-zero volumes are perfectly consistent
    consistency = 100.0 if mean == 0 else max(0.0, 100.0 - float(values.std()) / mean * 100.0)
    diversity = min(100.0, len(values) / 4 * 100.0)
    return int(round(consistency * 0.6 + diversity * 0.4))


def sentiment_label(sentiment: float) -> SentimentLabel:
    for upper, label in _SENTIMENT_BANDS:
        if sentiment <= upper:
            return label
    return SentimentLabel.VERY_POSITIVE


def adoption_position(adoption_rate: float) -> AdoptionPosition:
    for upper, position in _ADOPTION_BANDS:
        if adoption_rate < upper:
            return position
    return AdoptionPosition.NONE


def correlation(a: TrendRecord, b: TrendRecord) -> float:
    score = 0.0
    if a.pillars or b.pillars:
        score += len(a.pillars & b.pillars) / max(len(a.pillars), len(b.pillars)) * 0.4
    score += max(0.0, 1 - abs(a.growth_percent - b.growth_percent) / 200) * 0.3
    related_a = {k.lower() for k in a.related_keywords}
    related_b = {k.lower() for k in b.related_keywords}
    if related_a and related_b:
        score += len(related_a & related_b) / max(len(related_a), len(related_b)) * 0.3
    return round(min(1.0, score), 2)


def describe_relationship(a: TrendRecord, b: TrendRecord) -> str:
    common = sorted(a.pillars & b.pillars)
    if common:
        return f"Both trends in {common[0]} category"
    return "Related through audience overlap"


# ══════════════════════════════════════════════════════════════════════════════
# ADVISOR (free-text parts)
# ══════════════════════════════════════════════════════════════════════════════

CONTENT_IDEAS_PROMPT = """For {business_context}, suggest 3 specific content pieces related to this trend:

Trend: "{keyword}"
Content Pillars: {pillars}
Relevance Score: {relevance}/100

Consider:
- How this trend relates to the business and its services
- Educational or entertaining angles
- SEO and social media potential

Return JSON: {{"titles": ["Title 1", "Title 2", "Title 3"]}}"""

PLATFORM_STRATEGY_PROMPT = """Recommend a cross-platform strategy for this trend:

Keyword: "{keyword}"
Platform Performance:
{platforms}

Provide a 1-2 sentence strategy focusing on which platforms to prioritize and why.

Return ONLY the strategy text (no JSON, no formatting)."""

SENTIMENT_PROMPT = """Analyze the sentiment around this trending topic for {business_context}:

Keyword: "{keyword}"
Sources: {sources}
Growth: {growth}
Volume: {volume}

Return JSON:
{{"overallSentiment": <number from -1 to 1>, "positiveSignals": [...], "negativeSignals": [...],
"opportunities": [...], "risks": [...]}}"""

BUNDLE_PROMPT = """Suggest 3 content bundle ideas that combine these correlated trends for {business_context}:

Primary Trend: "{keyword}"
Related Trends: {related}

Return JSON with 3 content bundle titles: {{"titles": ["Bundle Title 1", "Bundle Title 2", "Bundle Title 3"]}}"""


class AnalysisAdvisor(ABC):
    """Free-text judgement the rules cannot make. Any method may raise."""

    @abstractmethod
    async def suggest_content(self, trend: TrendRecord) -> List[str]:
        ...

    @abstractmethod
    async def platform_strategy(self, keyword: str, platforms: List[PlatformPerformance]) -> str:
        ...

    @abstractmethod
    async def sentiment(self, keyword: str, records: List[TrendRecord]) -> SentimentLLM:
        ...

    @abstractmethod
    async def suggest_bundles(self, keyword: str, related: List[str]) -> List[str]:
        ...


class LLMAnalysisAdvisor(AnalysisAdvisor):
    """Asks the configured LLM chain."""

    def __init__(self, llm_service=None, settings: Optional[Settings] = None):
        if llm_service is None:
            from trend_intel.tools.llm_service import LLMService
            llm_service = LLMService(settings=settings)
        self.llm = llm_service
        self.business_context = (settings or get_settings()).business_context

    async def suggest_content(self, trend: TrendRecord) -> List[str]:
        prompt = CONTENT_IDEAS_PROMPT.format(
            business_context=self.business_context,
            keyword=trend.keyword,
            pillars=", ".join(sorted(trend.pillars)),
            relevance=trend.relevance_score,
        )
        result = await self.llm.run_structured(prompt, output_type=ContentIdeasLLM)
        return result.titles[:3]

    async def platform_strategy(self, keyword: str, platforms: List[PlatformPerformance]) -> str:
        lines = "\n".join(
            f"- {p.platform}: {p.volume} volume, {p.growth_percent:g}% growth, {p.engagement.value} engagement"
            for p in platforms
        )
        text = await self.llm.generate(PLATFORM_STRATEGY_PROMPT.format(keyword=keyword, platforms=lines))
        return text.strip()

    async def sentiment(self, keyword: str, records: List[TrendRecord]) -> SentimentLLM:
        prompt = SENTIMENT_PROMPT.format(
            business_context=self.business_context,
            keyword=keyword,
            sources=", ".join(r.source for r in records),
            growth=", ".join(f"{r.growth_percent:g}%" for r in records),
            volume=", ".join(str(r.volume) for r in records),
        )
        return await self.llm.run_structured(prompt, output_type=SentimentLLM)

    async def suggest_bundles(self, keyword: str, related: List[str]) -> List[str]:
        prompt = BUNDLE_PROMPT.format(
            business_context=self.business_context, keyword=keyword, related=", ".join(related),
        )
        result = await self.llm.run_structured(prompt, output_type=ContentIdeasLLM)
        return result.titles[:3]


# ══════════════════════════════════════════════════════════════════════════════
# ANALYZER
# ══════════════════════════════════════════════════════════════════════════════

async def _in_thread(fn: Callable[..., Any], *args: Any) -> Any:
    return await asyncio.to_thread(fn, *args)


class TrendAnalyzer:
    """Analyses over the stored trends. Unknown keywords raise NotFound."""

    def __init__(
        self,
        repository: TrendRepository,
        advisor: Optional[AnalysisAdvisor] = None,
        settings: Optional[Settings] = None,
        run_query: Optional[RunQuery] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.advisor = advisor
        self.settings = settings or get_settings()
        self.run_query = run_query or _in_thread
        self._clock = clock or utcnow

    # ── repository access ──

    async def _current_records(self, keyword: str, now: datetime) -> List[TrendRecord]:
        """Unexpired records of ``keyword`` across all sources, oldest first."""
        since = now - timedelta(days=self.settings.trend_ttl_days)
        history: List[TrendRecord] = await self.run_query(self.repository.find_history, keyword, since)
        current = [r for r in history if r.expires_at is None or r.expires_at > now]
        if not current:
            raise NotFound("Keyword", keyword)
        return current

    async def _advise(self, what: str, ask: Callable[[AnalysisAdvisor], Awaitable[Any]], fallback: Any) -> Any:
        if self.advisor is None:
            return fallback
        timeout = self.settings.analysis_timeout_seconds
        try:
            return await asyncio.wait_for(ask(self.advisor), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{what} timed out after {timeout}s, using rule-based fallback")
        except Exception as e:
            logger.warning(f"{what} failed ({type(e).__name__}: {e}), using rule-based fallback")
        return fallback

    # ── content gaps ──

    async def analyze_content_gaps(self, existing_content: Optional[Sequence[str]] = None) -> List[ContentGap]:
        """Relevant live trends that no existing content title mentions, most severe first."""
        now = self._clock()
        trends: List[TrendRecord] = await self.run_query(
            self.repository.find_active, GAP_MIN_RELEVANCE, None, self.settings.active_trend_limit, now,
        )
        titles = [t.lower() for t in existing_content or []]
        uncovered = [t for t in trends if not any(t.keyword.lower() in title for title in titles)]
        semaphore = asyncio.Semaphore(self.settings.default_max_concurrent)

        async def _bounded(trend: TrendRecord) -> ContentGap:
            async with semaphore:
                return await self._gap(trend)

        gaps = await asyncio.gather(*[_bounded(t) for t in uncovered])
        gaps = sorted(gaps, key=lambda g: (GAP_RANK[g.gap], -g.relevance_score))
        logger.info(f"Found {len(gaps)} content gaps among {len(trends)} relevant trends")
        return gaps

    async def _gap(self, trend: TrendRecord) -> ContentGap:
        severity, reason = classify_gap(trend.relevance_score, trend.volume)
        fallback = [
            f"How {trend.keyword} Impacts Your Routine",
            f"The Ultimate Guide to {trend.keyword}",
            f"Our Take on {trend.keyword}",
        ]
        suggestions = await self._advise(
            f"Content ideas for '{trend.keyword}'",
            lambda advisor: advisor.suggest_content(trend),
            fallback,
        )
        return ContentGap(
            keyword=trend.keyword,
            pillars=sorted(trend.pillars),
            relevance_score=trend.relevance_score,
            volume=trend.volume,
            competition=trend.competition,
            gap=severity,
            reason=reason,
            suggested_content=suggestions or fallback,
        )

    # ── cross-platform ──

    async def analyze_cross_platform(self, keyword: str) -> CrossPlatformAnalysis:
        records = await self._current_records(keyword, self._clock())
        latest: Dict[str, TrendRecord] = {}
        for record in records:  # oldest first, so the newest per source wins
            latest[record.source] = record
        platforms = sorted(
            (
                PlatformPerformance(
                    platform=r.source,
                    volume=r.volume,
                    growth_percent=r.growth_percent,
                    engagement=engagement_level(r.volume, r.growth_percent),
                )
                for r in latest.values()
            ),
            key=lambda p: (-p.volume, p.platform),
        )
        dominant = platforms[0]
        fallback = (
            f"Focus on {dominant.platform} with {dominant.engagement.value} engagement, "
            f"then expand to other platforms."
        )
        strategy = await self._advise(
            f"Platform strategy for '{keyword}'",
            lambda advisor: advisor.platform_strategy(keyword, platforms),
            fallback,
        )
        return CrossPlatformAnalysis(
            keyword=keyword,
            platforms=platforms,
            dominant_platform=dominant.platform,
            platform_strategy=strategy or fallback,
            cross_platform_potential=cross_platform_potential([p.volume for p in platforms]),
        )

    # ── sentiment ──

    async def analyze_sentiment(self, keyword: str) -> SentimentAnalysis:
        records = await self._current_records(keyword, self._clock())
        answer: Optional[SentimentLLM] = await self._advise(
            f"Sentiment for '{keyword}'",
            lambda advisor: advisor.sentiment(keyword, records),
            None,
        )
        if answer is None:
            # Average of what the sources reported
            stored = round(float(np.mean([r.sentiment for r in records])), 2)
            return SentimentAnalysis(keyword=keyword, overall_sentiment=stored,
                                     sentiment_label=sentiment_label(stored))
        overall = min(1.0, max(-1.0, answer.overall_sentiment))
        return SentimentAnalysis(
            keyword=keyword,
            overall_sentiment=overall,
            sentiment_label=sentiment_label(overall),
            positive_signals=answer.positive_signals,
            negative_signals=answer.negative_signals,
            opportunities=answer.opportunities,
            risks=answer.risks,
        )

    # ── correlations ──

    async def find_trend_correlations(self, keyword: str) -> TrendCorrelation:
        now = self._clock()
        records = await self._current_records(keyword, now)
        primary = max(records, key=lambda r: r.relevance_score)
        active: List[TrendRecord] = await self.run_query(
            self.repository.find_active,
            CORRELATION_MIN_RELEVANCE, None, self.settings.active_trend_limit, now,
        )
        candidates = [
            t for t in active
            if t.keyword.lower() != primary.keyword.lower() and t.pillars & primary.pillars
        ][:CORRELATION_CANDIDATES]

        correlated = sorted(
            (
                CorrelatedTrend(
                    keyword=t.keyword,
                    correlation=correlation(primary, t),
                    relationship=describe_relationship(primary, t),
                )
                for t in candidates
            ),
            key=lambda c: -c.correlation,
        )[:CORRELATION_TOP]

        bundle = any(c.correlation > BUNDLE_THRESHOLD for c in correlated)
        bundles: List[str] = []
        if bundle:
            related = [c.keyword for c in correlated]
            fallback = [
                f"{keyword} + {related[0]}: A Complete Guide",
                f"How {keyword} and {related[0]} Work Together",
                f"The {keyword} Strategy Bundle",
            ]
            bundles = await self._advise(
                f"Bundle ideas for '{keyword}'",
                lambda advisor: advisor.suggest_bundles(keyword, related),
                fallback,
            ) or fallback

        return TrendCorrelation(
            primary_trend=keyword,
            correlated_trends=correlated,
            bundle_opportunity=bundle,
            suggested_bundles=bundles,
        )

    # ── competitor adoption ──

    async def analyze_competitor_adoption(self, keyword: str) -> CompetitorAdoption:
        records = await self._current_records(keyword, self._clock())
        # Competition is the share of competitors already on the topic
        rate = int(round(min(100.0, max(r.competition for r in records))))
        position = adoption_position(rate)
        return CompetitorAdoption(
            keyword=keyword,
            adoption_rate=rate,
            our_position=position,
            competitive_advantage=_ADVANTAGE[position],
        )

    async def comprehensive_analysis(self, keyword: str) -> ComprehensiveAnalysis:
        # Fail fast on an unknown keyword instead of once per sub-analysis
        await self._current_records(keyword, self._clock())
        cross_platform, sentiment, correlations, adoption = await asyncio.gather(
            self.analyze_cross_platform(keyword),
            self.analyze_sentiment(keyword),
            self.find_trend_correlations(keyword),
            self.analyze_competitor_adoption(keyword),
        )
        return ComprehensiveAnalysis(
            cross_platform=cross_platform,
            sentiment=sentiment,
            correlations=correlations,
            competitor_adoption=adoption,
        )
