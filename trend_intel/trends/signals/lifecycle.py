"""
Lifecycle classification from a single (growth %, volume) observation.

Ordered rule list, first match wins:

  1. growth > 200 and volume < 10,000      → EMERGING  (small but exploding)
  2. 50 < growth <= 200                    → GROWING
  3. -10 < growth <= 50 and volume > 50,000 → PEAK     (flat at high reach)
  4. growth <= -10                         → DECLINING
  5. otherwise                             → EMERGING  (fallback)

The fallback means some mid-growth, low-volume trends (e.g. +30% at 2,000
searches) land in EMERGING without satisfying rule 1.

DEAD is never produced here. It is a terminal stage assigned outside the
classifier (archived/imported records).
"""

from typing import Callable, List, Tuple

from trend_intel.schemas.base import LifecycleStage

_Rule = Tuple[str, Callable[[float, int], bool], LifecycleStage]

RULES: List[_Rule] = [
    ("breakout", lambda g, v: g > 200 and v < 10_000, LifecycleStage.EMERGING),
    ("growing", lambda g, v: 50 < g <= 200, LifecycleStage.GROWING),
    ("plateau", lambda g, v: -10 < g <= 50 and v > 50_000, LifecycleStage.PEAK),
    ("declining", lambda g, v: g <= -10, LifecycleStage.DECLINING),
    ("fallback", lambda g, v: True, LifecycleStage.EMERGING),
]


def matching_rule(growth_percent: float, volume: int) -> int:
    """Index of the first rule in RULES that fires."""
    for i, (_, predicate, _) in enumerate(RULES):
        if predicate(growth_percent, volume):
            return i
    return len(RULES) - 1


def classify_lifecycle(growth_percent: float, volume: int) -> LifecycleStage:
    return RULES[matching_rule(growth_percent, volume)][2]
