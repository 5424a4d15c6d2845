"""
Mock LLM responses for testing and development.

Provides deterministic responses based on prompt content hashing.
Designed to work with pydantic-ai's FunctionModel.
"""

import hashlib
import json
import logging
from typing import Any, Dict

from pydantic_ai.messages import ModelResponse, TextPart, ToolCallPart

logger = logging.getLogger(__name__)

_MOCK_FORECASTS = [
    {"daysUntilPeak": 4, "confidence": 72,
     "reasoning": "Growth is still accelerating but search volume is approaching category norms. Peak expected within the week."},
    {"daysUntilPeak": 9, "confidence": 64,
     "reasoning": "Early-stage interest with positive acceleration. Similar topics historically peak in one to two weeks."},
    {"daysUntilPeak": 2, "confidence": 81,
     "reasoning": "Velocity is decelerating from a high base, which typically precedes the peak by a few days."},
    {"daysUntilPeak": 12, "confidence": 58,
     "reasoning": "Slow but steady growth with low competition. Peak is likely further out."},
    {"daysUntilPeak": 6, "confidence": 68,
     "reasoning": "Moderate growth and stable acceleration point to a peak in about a week."},
]

_MOCK_RELATED = [
    ["eco friendly laundry", "green dry cleaning", "sustainable cleaning"],
    ["laundry pickup app", "on demand laundry", "wash and fold service"],
    ["small business marketing", "local business tips", "community business"],
]


_MOCK_SENTIMENTS = [
    {"overallSentiment": 0.55, "positiveSignals": ["Growing interest", "Shared across platforms"],
     "negativeSignals": [], "opportunities": ["Educational how-to content"], "risks": ["Crowded topic"]},
    {"overallSentiment": -0.3, "positiveSignals": ["High awareness"],
     "negativeSignals": ["Price complaints"], "opportunities": ["Address cost concerns"], "risks": ["Backlash"]},
]

_MOCK_TITLES = [
    ["A Beginner's Guide", "Five Myths, Busted", "What Our Customers Ask Most"],
    ["Behind the Scenes", "The Weekly Checklist", "Before and After"],
]


def _bucket(prompt: str, n: int) -> int:
    return int(hashlib.md5(prompt.encode()).hexdigest()[:8], 16) % n


def get_mock_payload(prompt: str) -> Dict[str, Any]:
    """Structured mock answer for JSON prompts."""
    prompt_lower = prompt.lower()
    if "related keywords" in prompt_lower:
        return {"keywords": _MOCK_RELATED[_bucket(prompt, len(_MOCK_RELATED))]}
    if "sentiment" in prompt_lower:
        return _MOCK_SENTIMENTS[_bucket(prompt, len(_MOCK_SENTIMENTS))]
    if "titles" in prompt_lower:
        return {"titles": _MOCK_TITLES[_bucket(prompt, len(_MOCK_TITLES))]}
    return _MOCK_FORECASTS[_bucket(prompt, len(_MOCK_FORECASTS))]


def get_mock_response(prompt: str, json_mode: bool = False) -> str:
    """Return mock response for testing.

    Args:
        prompt: The user prompt text.
        json_mode: Whether JSON output is expected.

    Returns:
        Deterministic mock response string.
    """
    prompt_lower = prompt.lower()
    if "rate the relevance" in prompt_lower:
        # Spread across the threshold so mock runs store some and drop some
        return str(35 + _bucket(prompt, 5) * 12)
    if "cross-platform strategy" in prompt_lower:
        return "Lead on the highest-volume platform while interest is rising, then repurpose for the others."
    if json_mode or "json" in prompt_lower:
        return json.dumps(get_mock_payload(prompt))
    return "Mock LLM response for testing purposes."


def get_mock_response_for_function_model(messages: list[Any], info: Any) -> ModelResponse:
    """Adapter for pydantic-ai FunctionModel.

    FunctionModel passes ModelMessage objects. We extract the user prompt
    text and delegate to the mock functions. Structured-output agents get a
    call to their output tool; text agents get plain text.
    """
    prompt = ""
    for msg in messages:
        for part in getattr(msg, "parts", []):
            content = getattr(part, "content", None)
            if isinstance(content, str) and "User" in type(part).__name__:
                prompt = content

    output_tools = getattr(info, "output_tools", None) or []
    if output_tools:
        return ModelResponse(parts=[
            ToolCallPart(tool_name=output_tools[0].name, args=get_mock_payload(prompt)),
        ])
    return ModelResponse(parts=[TextPart(content=get_mock_response(prompt))])
