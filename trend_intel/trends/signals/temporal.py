"""
Velocity and acceleration of a keyword's growth over its recent history.

SIGNALS:
  velocity:      Change in growth % per day between the two most recent
                 captures. +ve = growth is speeding up.
  acceleration:  Change in velocity between the two most recent velocity
                 samples. -ve = decelerating (peak is close).

Input records are read in strictly increasing captured_at order. Captures
less than a day apart use a 1-day denominator so same-day duplicates cannot
blow the velocity up.

Fewer than 2 points → velocity 0. Fewer than 3 points → acceleration 0.
Not an error: new keywords simply have no dynamics yet.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

import numpy as np

from trend_intel.schemas.base import ensure_utc, utcnow
from trend_intel.schemas.trends import DataPoint, TrendRecord, VelocityData

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86400.0


def ordered_points(history: Iterable[TrendRecord]) -> List[DataPoint]:
    """Sort by captured_at and keep one point per exact timestamp (last seen wins)."""
    by_time = {}
    for record in history:
        by_time[ensure_utc(record.captured_at)] = DataPoint(
            captured_at=ensure_utc(record.captured_at),
            volume=record.volume,
            growth=record.growth_percent,
        )
    return [by_time[t] for t in sorted(by_time)]


def velocity_series(points: List[DataPoint]) -> np.ndarray:
    """Δgrowth / max(Δdays, 1) for each consecutive pair."""
    if len(points) < 2:
        return np.zeros(0)
    growth = np.array([p.growth for p in points], dtype=float)
    seconds = np.array([p.captured_at.timestamp() for p in points], dtype=float)
    days = np.maximum(np.diff(seconds) / _SECONDS_PER_DAY, 1.0)
    return np.diff(growth) / days


def estimate_velocity(
    keyword: str,
    history: Iterable[TrendRecord],
    window_days: int = 30,
    now: Optional[datetime] = None,
) -> VelocityData:
    """
    Compute current velocity and acceleration for one keyword.

    Args:
        keyword: The keyword the history belongs to.
        history: Records for this keyword, any order.
        window_days: Trailing window; older captures are ignored.
        now: Reference time (defaults to current UTC).

    Returns:
        VelocityData with velocity/acceleration rounded to 2 dp.
    """
    now = ensure_utc(now) if now else utcnow()
    since = now - timedelta(days=window_days)
    points = [p for p in ordered_points(history) if p.captured_at >= since]

    if len(points) < 2:
        return VelocityData(keyword=keyword, data_points=points)

    velocities = velocity_series(points)
    velocity = float(velocities[-1])
    acceleration = float(np.diff(velocities)[-1]) if len(velocities) >= 2 else 0.0

    logger.debug(
        f"Velocity for '{keyword}': {velocity:.2f}/day, accel {acceleration:.2f} "
        f"({len(points)} points)"
    )
    return VelocityData(
        keyword=keyword,
        data_points=points,
        velocity=round(velocity, 2),
        acceleration=round(acceleration, 2),
    )
