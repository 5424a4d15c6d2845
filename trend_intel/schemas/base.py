"""
Common enums and value objects used across the engine.

These define the vocabulary of the system: lifecycle stages, urgency levels,
experiment states, prediction strategies, and the geography value object.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC (SQLite drops tzinfo)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS - Classification Types
# ══════════════════════════════════════════════════════════════════════════════

class LifecycleStage(str, Enum):
    """Trend maturity. Only the classifier assigns a stage."""
    EMERGING = "EMERGING"
    GROWING = "GROWING"
    PEAK = "PEAK"
    DECLINING = "DECLINING"
    DEAD = "DEAD"


# Stages worth predicting / acting on
ACTIVE_STAGES = (LifecycleStage.EMERGING, LifecycleStage.GROWING, LifecycleStage.PEAK)
# Stages eligible for automatic strategy experiments
EARLY_STAGES = (LifecycleStage.EMERGING, LifecycleStage.GROWING)


class Urgency(str, Enum):
    """How soon the opportunity window closes."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# Ascending severity; index is the escalation ladder
URGENCY_LADDER = (Urgency.LOW, Urgency.MEDIUM, Urgency.HIGH, Urgency.CRITICAL)


class ExperimentStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"


class Strategy(str, Enum):
    """Peak prediction strategy."""
    HEURISTIC = "HEURISTIC"   # rule-based, always available
    MODEL = "MODEL"           # external forecasting model
    HYBRID = "HYBRID"         # average of both


# ══════════════════════════════════════════════════════════════════════════════
# VALUE OBJECTS
# ══════════════════════════════════════════════════════════════════════════════

class Geography(BaseModel):
    """Where a signal was observed."""
    level: str = Field(default="country", description="global, country, region or city")
    location: str = Field(default="US")

    model_config = {"frozen": True}
