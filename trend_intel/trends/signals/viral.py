"""
Viral coefficient: growth rate scaled by log reach.

  coefficient = (growth% / 100) * log10(volume / 1000), rounded to 2 dp

At volume <= 1,000 the log term is <= 0, so a high-growth trend with tiny
reach gets a suppressed (possibly negative) coefficient. Small samples are
noisy; this keeps them from topping the ranking.
"""

import math
from typing import Optional

from trend_intel.schemas.base import LifecycleStage


def viral_coefficient(
    growth_percent: float,
    volume: int,
    lifecycle: Optional[LifecycleStage] = None,
) -> Optional[float]:
    """Return the coefficient, or None for DEAD trends and non-positive volume."""
    if lifecycle == LifecycleStage.DEAD or volume <= 0:
        return None
    coefficient = (growth_percent / 100) * math.log10(volume / 1000)
    # Shrinking trends never score positive (negative growth x negative log)
    if growth_percent <= 0:
        coefficient = min(coefficient, 0.0)
    return round(coefficient, 2)
