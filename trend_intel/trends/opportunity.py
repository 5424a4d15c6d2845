"""
Opportunity window and urgency.

  window_start   = predicted_peak - 5 days
  window_end     = predicted_peak + 1 day
  days_remaining = max(0, floor((window_end - now) / 1 day))

Base urgency from days_remaining:
  <= 1 → CRITICAL,  <= 3 → HIGH,  <= 5 → MEDIUM,  else LOW

Escalation: velocity > 20 bumps the BASE urgency exactly one level, capped
at CRITICAL. The escalated urgency is always derived from base_urgency, so
escalating an already-escalated window is a no-op.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from trend_intel.schemas.base import URGENCY_LADDER, Urgency, ensure_utc
from trend_intel.schemas.trends import OpportunityWindow

logger = logging.getLogger(__name__)

ESCALATION_VELOCITY = 20.0

# Sort key: most urgent first
URGENCY_RANK = {
    Urgency.CRITICAL: 0,
    Urgency.HIGH: 1,
    Urgency.MEDIUM: 2,
    Urgency.LOW: 3,
}


def base_urgency(days_remaining: int) -> Urgency:
    if days_remaining <= 1:
        return Urgency.CRITICAL
    if days_remaining <= 3:
        return Urgency.HIGH
    if days_remaining <= 5:
        return Urgency.MEDIUM
    return Urgency.LOW


def bump_urgency(urgency: Urgency) -> Urgency:
    """One level up the ladder, capped at CRITICAL."""
    idx = URGENCY_LADDER.index(urgency)
    return URGENCY_LADDER[min(idx + 1, len(URGENCY_LADDER) - 1)]


def escalate(
    window: OpportunityWindow,
    velocity: float,
    threshold: float = ESCALATION_VELOCITY,
) -> OpportunityWindow:
    """Apply velocity escalation to a window. Idempotent."""
    urgency = bump_urgency(window.base_urgency) if velocity > threshold else window.base_urgency
    if urgency == window.urgency:
        return window
    return window.model_copy(update={"urgency": urgency})


def calculate_window(
    predicted_peak_at: datetime,
    velocity: float,
    now: datetime,
    lead_days: int = 5,
    tail_days: int = 1,
    escalation_velocity: float = ESCALATION_VELOCITY,
) -> OpportunityWindow:
    """Opportunity window around a predicted peak, with escalated urgency."""
    peak = ensure_utc(predicted_peak_at)
    now = ensure_utc(now)
    start = peak - timedelta(days=lead_days)
    end = peak + timedelta(days=tail_days)
    days_remaining = max(0, math.floor((end - now).total_seconds() / 86400))
    base = base_urgency(days_remaining)
    window = OpportunityWindow(
        start=start,
        end=end,
        days_remaining=days_remaining,
        base_urgency=base,
        urgency=base,
    )
    return escalate(window, velocity, escalation_velocity)


# ══════════════════════════════════════════════════════════════════════════════
# RECOMMENDED ACTIONS
# ══════════════════════════════════════════════════════════════════════════════

_URGENCY_ACTIONS = {
    Urgency.CRITICAL: [
        "URGENT: Create content within 24 hours to catch this trend",
        "Publish immediately to social media platforms",
        "Consider paid promotion to amplify reach",
    ],
    Urgency.HIGH: [
        "HIGH PRIORITY: Schedule content creation this week",
        "Prepare social media posts and blog content",
        "Alert content team to prioritize this trend",
    ],
    Urgency.MEDIUM: [
        "Plan content strategy for this trend",
        "Research related keywords and angles",
        "Schedule content creation for next week",
    ],
    Urgency.LOW: [
        "Monitor trend development",
        "Add to content calendar for future consideration",
        "Track velocity changes for timing optimization",
    ],
}

# Checked in this order so the action list is stable
_PILLAR_ACTIONS = [
    ("core-service", "Create service-focused content highlighting our core offerings"),
    ("sustainability", "Emphasize eco-friendly practices in content"),
    ("technology", "Highlight tech innovations in laundry/dry cleaning"),
]


def recommended_actions(urgency: Urgency, pillars: Optional[Iterable[str]] = None) -> List[str]:
    """Urgency-tier actions followed by pillar-specific ones."""
    actions = list(_URGENCY_ACTIONS[urgency])
    tags = set(pillars or ())
    for pillar, action in _PILLAR_ACTIONS:
        if pillar in tags:
            actions.append(action)
    return actions
