"""
Content pillar categorization.

A pillar is a content category a trend can feed (sustainability, technology,
core-service ...). Assignment is substring matching on the lower-cased
keyword; a keyword can land in several pillars. Keywords matching nothing
go to "general".
"""

from typing import Dict, List, Optional, Set

from trend_intel.config import get_settings

GENERAL_PILLAR = "general"


def categorize_pillars(keyword: str, rules: Optional[Dict[str, List[str]]] = None) -> Set[str]:
    """Return the pillar tags for a keyword."""
    if rules is None:
        rules = get_settings().get_pillar_rules()
    lower = keyword.lower()
    pillars = {
        pillar for pillar, needles in rules.items()
        if any(needle in lower for needle in needles)
    }
    return pillars or {GENERAL_PILLAR}
