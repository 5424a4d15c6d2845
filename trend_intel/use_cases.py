"""
Business use-case identifiers for the public operations.

Plain lookup table used by job runners and audit logs; nothing here has
runtime behavior.
"""

from typing import Dict, Optional

USE_CASES: Dict[str, str] = {
    "collect_and_score": "UC070",
    "collect_google_trends": "UC071",
    "collect_twitter_trends": "UC072",
    "collect_reddit_trends": "UC073",
    "collect_tiktok_trends": "UC074",
    "get_active_trends": "UC075",
    "get_trends_by_pillar": "UC075",
    "analyze_content_gaps": "UC075",
    "analyze_cross_platform": "UC075",
    "analyze_sentiment": "UC075",
    "find_trend_correlations": "UC075",
    "analyze_competitor_adoption": "UC075",
    "get_comprehensive_analysis": "UC075",
    "predict_peak": "UC076",
    "predict_all_active": "UC076",
    "detect_early_signals": "UC077",
    "get_urgent_opportunities": "UC078",
    "get_trends_by_urgency": "UC078",
}

USE_CASE_TITLES: Dict[str, str] = {
    "UC070": "Collect Trends",
    "UC071": "Collect Google Trends",
    "UC072": "Collect Twitter Trends",
    "UC073": "Collect Reddit Trends",
    "UC074": "Collect TikTok Trends",
    "UC075": "Analyze Trend",
    "UC076": "Predict Trend",
    "UC077": "Detect Weak Signals",
    "UC078": "Get Trend Opportunities",
}


def use_case_for(operation: str) -> Optional[str]:
    return USE_CASES.get(operation)
