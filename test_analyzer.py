"""
Tests for trend analysis: content gaps, cross-platform spread, sentiment,
correlations and competitor adoption.

Run with: pytest test_analyzer.py -v
"""

import asyncio

import pytest

from conftest import NOW, days_ago, make_record
from trend_intel.errors import NotFound
from trend_intel.schemas.analysis import AdoptionPosition, EngagementLevel, GapSeverity, SentimentLabel
from trend_intel.schemas.llm_outputs import SentimentLLM
from trend_intel.trends.analyzer import (
    AnalysisAdvisor, TrendAnalyzer, adoption_position, classify_gap, correlation,
    cross_platform_potential, describe_relationship, engagement_level, sentiment_label,
)


class FixedAdvisor(AnalysisAdvisor):
    """Canned answers for every free-text question."""

    def __init__(self, sentiment=0.3):
        self._sentiment = sentiment

    async def suggest_content(self, trend):
        return [f"Idea for {trend.keyword}"]

    async def platform_strategy(self, keyword, platforms):
        return f"Start on {platforms[0].platform}."

    async def sentiment(self, keyword, records):
        return SentimentLLM(
            overall_sentiment=self._sentiment,
            positive_signals=["fans"],
            negative_signals=["price"],
            opportunities=["guides"],
            risks=["saturation"],
        )

    async def suggest_bundles(self, keyword, related):
        return [f"{keyword} x {related[0]}"]


class BrokenAdvisor(AnalysisAdvisor):
    async def suggest_content(self, trend):
        raise ConnectionError("llm offline")

    async def platform_strategy(self, keyword, platforms):
        raise ConnectionError("llm offline")

    async def sentiment(self, keyword, records):
        raise ConnectionError("llm offline")

    async def suggest_bundles(self, keyword, related):
        raise ConnectionError("llm offline")


class SlowAdvisor(BrokenAdvisor):
    async def platform_strategy(self, keyword, platforms):
        await asyncio.sleep(3600)
        return "never"


def analyzer(db, settings, advisor=None):
    return TrendAnalyzer(db, advisor=advisor, settings=settings, clock=lambda: NOW)


# ════════════════════════════════════════════════════════════════════
# Rules
# ════════════════════════════════════════════════════════════════════

class TestRules:

    @pytest.mark.parametrize("relevance, volume, expected", [
        (85, 60_000, GapSeverity.SEVERE),
        (80, 50_000, GapSeverity.MODERATE),   # volume must exceed 50k
        (75, 30_000, GapSeverity.MODERATE),
        (75, 20_000, GapSeverity.MINOR),
        (65, 90_000, GapSeverity.MINOR),
    ])
    def test_gap_severity(self, relevance, volume, expected):
        assert classify_gap(relevance, volume)[0] == expected

    @pytest.mark.parametrize("volume, growth, expected", [
        (150_000, 60, EngagementLevel.VIRAL),
        (150_000, 50, EngagementLevel.HIGH),
        (60_000, 25, EngagementLevel.HIGH),
        (20_000, 1, EngagementLevel.MODERATE),
        (20_000, 0, EngagementLevel.LOW),
        (5_000, 300, EngagementLevel.LOW),
    ])
    def test_engagement(self, volume, growth, expected):
        assert engagement_level(volume, growth) == expected

    @pytest.mark.parametrize("volumes, expected", [
        ([], 20),
        ([5000], 20),
        ([1000, 1000], 80),
        ([1000, 3000], 50),
        ([10, 10, 10, 10], 100),
        ([0, 0], 80),
    ])
    def test_cross_platform_potential(self, volumes, expected):
        assert cross_platform_potential(volumes) == expected

    @pytest.mark.parametrize("value, expected", [
        (-1.0, SentimentLabel.VERY_NEGATIVE),
        (-0.6, SentimentLabel.VERY_NEGATIVE),
        (-0.2, SentimentLabel.NEGATIVE),
        (0.0, SentimentLabel.NEUTRAL),
        (0.2, SentimentLabel.NEUTRAL),
        (0.6, SentimentLabel.POSITIVE),
        (0.61, SentimentLabel.VERY_POSITIVE),
    ])
    def test_sentiment_bands(self, value, expected):
        assert sentiment_label(value) == expected

    @pytest.mark.parametrize("rate, expected", [
        (0, AdoptionPosition.LEADER),
        (19, AdoptionPosition.LEADER),
        (20, AdoptionPosition.EARLY),
        (69, AdoptionPosition.MAJORITY),
        (89, AdoptionPosition.LAGGARD),
        (90, AdoptionPosition.NONE),
    ])
    def test_adoption_bands(self, rate, expected):
        assert adoption_position(rate) == expected

    def test_correlation_components(self):
        a = make_record(pillars={"sustainability", "core-service"}, growth_percent=100, related_keywords=["x", "y"])
        b = make_record(keyword="b", pillars={"core-service"}, growth_percent=100, related_keywords=["X", "z"])
        # 0.4 * 1/2 + 0.3 * 1 + 0.3 * 1/2
        assert correlation(a, b) == 0.65

    def test_correlation_without_related_keywords(self):
        a = make_record(pillars={"core-service"}, growth_percent=100)
        b = make_record(keyword="b", pillars={"core-service"}, growth_percent=500)
        assert correlation(a, b) == 0.4

    def test_relationship_text(self):
        a = make_record(pillars={"sustainability", "core-service"})
        b = make_record(keyword="b", pillars={"sustainability", "core-service"})
        c = make_record(keyword="c", pillars={"technology"})
        assert describe_relationship(a, b) == "Both trends in core-service category"
        assert describe_relationship(a, c) == "Related through audience overlap"


# ════════════════════════════════════════════════════════════════════
# Content gaps
# ════════════════════════════════════════════════════════════════════

class TestContentGaps:

    def _seed(self, db):
        db.upsert(make_record(keyword="green soap", relevance_score=65, volume=5_000))
        db.upsert(make_record(keyword="dry clean app", relevance_score=72, volume=30_000))
        db.upsert(make_record(keyword="eco laundry", relevance_score=85, volume=60_000))
        db.upsert(make_record(keyword="weak", relevance_score=50, volume=90_000))

    def test_ranked_by_severity(self, db, settings):
        self._seed(db)
        gaps = asyncio.run(analyzer(db, settings).analyze_content_gaps())
        assert [(g.keyword, g.gap) for g in gaps] == [
            ("eco laundry", GapSeverity.SEVERE),
            ("dry clean app", GapSeverity.MODERATE),
            ("green soap", GapSeverity.MINOR),
        ]
        assert all(len(g.suggested_content) == 3 for g in gaps)
        assert gaps[0].reason == "High relevance, high volume - critical gap"

    def test_existing_content_is_not_a_gap(self, db, settings):
        self._seed(db)
        gaps = asyncio.run(analyzer(db, settings).analyze_content_gaps(["Why Green Soap matters"]))
        assert "green soap" not in [g.keyword for g in gaps]

    def test_advisor_suggestions(self, db, settings):
        db.upsert(make_record())
        gaps = asyncio.run(analyzer(db, settings, FixedAdvisor()).analyze_content_gaps())
        assert gaps[0].suggested_content == ["Idea for eco laundry"]

    def test_advisor_failure_falls_back(self, db, settings, caplog):
        db.upsert(make_record())
        gaps = asyncio.run(analyzer(db, settings, BrokenAdvisor()).analyze_content_gaps())
        assert gaps[0].suggested_content[1] == "The Ultimate Guide to eco laundry"
        assert "ConnectionError" in caplog.text


# ════════════════════════════════════════════════════════════════════
# Cross-platform
# ════════════════════════════════════════════════════════════════════

class TestCrossPlatform:

    def _seed(self, db):
        db.upsert(make_record(source="reddit", volume=1_000, growth_percent=5, captured_at=days_ago(2)))
        db.upsert(make_record(source="reddit", volume=20_000, growth_percent=10))
        db.upsert(make_record(source="google_trends", volume=60_000, growth_percent=30))
        db.upsert(make_record(source="tiktok", volume=99_000, captured_at=days_ago(10)))  # expired

    def test_latest_record_per_platform(self, db, settings):
        self._seed(db)
        result = asyncio.run(analyzer(db, settings).analyze_cross_platform("Eco Laundry"))
        assert [(p.platform, p.volume, p.engagement) for p in result.platforms] == [
            ("google_trends", 60_000, EngagementLevel.HIGH),
            ("reddit", 20_000, EngagementLevel.MODERATE),
        ]
        assert result.dominant_platform == "google_trends"
        assert result.cross_platform_potential == 50
        assert result.platform_strategy == (
            "Focus on google_trends with HIGH engagement, then expand to other platforms."
        )

    def test_advisor_strategy(self, db, settings):
        self._seed(db)
        result = asyncio.run(analyzer(db, settings, FixedAdvisor()).analyze_cross_platform("eco laundry"))
        assert result.platform_strategy == "Start on google_trends."

    def test_slow_advisor_times_out(self, db, settings):
        settings.analysis_timeout_seconds = 0.05
        self._seed(db)
        result = asyncio.run(analyzer(db, settings, SlowAdvisor()).analyze_cross_platform("eco laundry"))
        assert result.platform_strategy.startswith("Focus on google_trends")

    def test_unknown_keyword(self, db, settings):
        with pytest.raises(NotFound):
            asyncio.run(analyzer(db, settings).analyze_cross_platform("nothing"))


# ════════════════════════════════════════════════════════════════════
# Sentiment
# ════════════════════════════════════════════════════════════════════

class TestSentiment:

    def test_fallback_averages_stored_sentiment(self, db, settings):
        db.upsert(make_record(source="reddit", sentiment=0.5))
        db.upsert(make_record(source="google_trends", sentiment=0.3))
        result = asyncio.run(analyzer(db, settings, BrokenAdvisor()).analyze_sentiment("eco laundry"))
        assert result.overall_sentiment == 0.4
        assert result.sentiment_label == SentimentLabel.POSITIVE
        assert result.risks == []

    def test_advisor_answer_is_clamped(self, db, settings):
        db.upsert(make_record())
        result = asyncio.run(analyzer(db, settings, FixedAdvisor(sentiment=1.7)).analyze_sentiment("eco laundry"))
        assert result.overall_sentiment == 1.0
        assert result.sentiment_label == SentimentLabel.VERY_POSITIVE
        assert result.negative_signals == ["price"]

    def test_unknown_keyword(self, db, settings):
        with pytest.raises(NotFound):
            asyncio.run(analyzer(db, settings).analyze_sentiment("nothing"))


# ════════════════════════════════════════════════════════════════════
# Correlations + competitor adoption
# ════════════════════════════════════════════════════════════════════

class TestCorrelations:

    def _seed(self, db):
        shared = {"core-service", "sustainability"}
        db.upsert(make_record(pillars=shared, growth_percent=100, related_keywords=["a", "b"]))
        db.upsert(make_record(source="reddit", pillars=shared, relevance_score=60))
        db.upsert(make_record(keyword="green detergent", pillars=shared, growth_percent=100,
                              related_keywords=["a", "b"]))
        db.upsert(make_record(keyword="laundry pickup", pillars={"core-service"}, growth_percent=300))
        db.upsert(make_record(keyword="solar roof", pillars={"technology"}))
        db.upsert(make_record(keyword="weak match", pillars=shared, relevance_score=45))

    def test_correlated_trends(self, db, settings):
        self._seed(db)
        result = asyncio.run(analyzer(db, settings).find_trend_correlations("eco laundry"))
        assert [(c.keyword, c.correlation) for c in result.correlated_trends] == [
            ("green detergent", 1.0),
            ("laundry pickup", 0.2),
        ]
        assert result.correlated_trends[0].relationship == "Both trends in core-service category"
        assert result.bundle_opportunity is True
        assert result.suggested_bundles[0] == "eco laundry + green detergent: A Complete Guide"

    def test_no_bundle_below_threshold(self, db, settings):
        db.upsert(make_record(pillars={"core-service"}, growth_percent=100))
        db.upsert(make_record(keyword="laundry pickup", pillars={"core-service"}, growth_percent=300))
        result = asyncio.run(analyzer(db, settings, FixedAdvisor()).find_trend_correlations("eco laundry"))
        assert result.bundle_opportunity is False
        assert result.suggested_bundles == []

    def test_advisor_bundles(self, db, settings):
        self._seed(db)
        result = asyncio.run(analyzer(db, settings, FixedAdvisor()).find_trend_correlations("eco laundry"))
        assert result.suggested_bundles == ["eco laundry x green detergent"]

    def test_competitor_adoption(self, db, settings):
        db.upsert(make_record(source="reddit", competition=20))
        db.upsert(make_record(source="google_trends", competition=35.4))
        result = asyncio.run(analyzer(db, settings).analyze_competitor_adoption("eco laundry"))
        assert result.adoption_rate == 35
        assert result.our_position == AdoptionPosition.EARLY
        assert result.competitive_advantage.startswith("Early advantage")

    def test_comprehensive(self, db, settings):
        db.upsert(make_record(competition=80))
        result = asyncio.run(analyzer(db, settings, FixedAdvisor()).comprehensive_analysis("eco laundry"))
        assert result.cross_platform.dominant_platform == "google_trends"
        assert result.sentiment.sentiment_label == SentimentLabel.POSITIVE
        assert result.correlations.correlated_trends == []
        assert result.competitor_adoption.our_position == AdoptionPosition.LAGGARD

    def test_comprehensive_unknown_keyword(self, db, settings):
        with pytest.raises(NotFound):
            asyncio.run(analyzer(db, settings).comprehensive_analysis("nothing"))


# ════════════════════════════════════════════════════════════════════
# Service wiring
# ════════════════════════════════════════════════════════════════════

def test_service_analysis_in_mock_mode(db, settings):
    from trend_intel.trends.service import build_service

    db.upsert(make_record(source="reddit", volume=20_000))
    db.upsert(make_record(source="google_trends", volume=60_000, growth_percent=30))
    service = build_service(settings=settings, repository=db, mock_mode=True, clock=lambda: NOW)

    analysis = asyncio.run(service.get_comprehensive_analysis("eco laundry"))
    assert analysis.cross_platform.dominant_platform == "google_trends"
    assert analysis.cross_platform.platform_strategy
    assert -1.0 <= analysis.sentiment.overall_sentiment <= 1.0

    gaps = asyncio.run(service.analyze_content_gaps())
    assert [g.keyword for g in gaps] == ["eco laundry", "eco laundry"]
    assert all(len(g.suggested_content) == 3 for g in gaps)
