"""
Shared fixtures: fixed clock, settings, in-memory database, record factory.
"""

from datetime import datetime, timedelta, timezone

import pytest

from trend_intel.config import Settings
from trend_intel.database import Database
from trend_intel.schemas.base import LifecycleStage
from trend_intel.schemas.trends import TrendRecord

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def make_record(keyword="eco laundry", source="google_trends", captured_at=NOW, **overrides) -> TrendRecord:
    fields = dict(
        source=source,
        keyword=keyword,
        volume=5000,
        growth_percent=250.0,
        lifecycle=LifecycleStage.EMERGING,
        relevance_score=80,
        pillars={"core-service"},
        captured_at=captured_at,
    )
    fields.update(overrides)
    return TrendRecord(**fields)


def days_ago(n: float) -> datetime:
    return NOW - timedelta(days=n)


@pytest.fixture
def settings():
    return Settings(
        mock_mode=True,
        database_url="sqlite://",
        repository_timeout_seconds=5.0,
        relevance_timeout_seconds=1.0,
        forecast_timeout_seconds=1.0,
    )


@pytest.fixture
def db():
    database = Database("sqlite://", min_relevance=40)
    database.create_tables()
    return database
