"""
Relevance scoring — how useful a trending keyword is to the business.

RelevanceScorer is an adapter over a pluggable RelevanceBackend. It owns the
fallback policy: on backend failure, timeout or an unusable answer the score
is the neutral fallback (50) and a warning is logged. It never raises.

The persistence threshold (score >= 40) is checked with passes_threshold();
records below it are discarded before they reach the repository.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import List, Optional, Union

from trend_intel.config import Settings, get_settings
from trend_intel.errors import MalformedExternalResponse, ScorerUnavailable
from trend_intel.schemas.llm_outputs import RelatedKeywordsLLM
from trend_intel.tools.json_extract import parse_first_int

logger = logging.getLogger(__name__)

RELEVANCE_PROMPT = """Rate the relevance of this trending topic to {business_context} on a scale of 0-100.

Trending topic: "{keyword}"
Source: {source}

Consider:
- Direct relevance to the business and its services
- Indirect relevance (sustainability, local business, technology)
- Potential for content creation
- Audience overlap

Return ONLY a number between 0-100."""

RELATED_KEYWORDS_PROMPT = """Given the keyword "{keyword}", suggest 5 closely related keywords that someone might also search for. Focus on similar intent and topic.

Return JSON: {{"keywords": ["keyword1", "keyword2", ...]}}"""


class RelevanceBackend(ABC):
    """External scoring capability. May answer with an int or with free text."""

    @abstractmethod
    async def score_raw(self, keyword: str, source: str, context: str) -> Union[int, float, str]:
        ...


class LLMRelevanceBackend(RelevanceBackend):
    """Asks the configured LLM chain for a 0-100 rating."""

    def __init__(self, llm_service=None):
        if llm_service is None:
            from trend_intel.tools.llm_service import LLMService
            llm_service = LLMService()
        self.llm = llm_service

    async def score_raw(self, keyword: str, source: str, context: str) -> str:
        prompt = RELEVANCE_PROMPT.format(business_context=context, keyword=keyword, source=source)
        return await self.llm.generate(prompt, max_tokens=50)

    async def related_keywords(self, keyword: str) -> List[str]:
        """Up to 5 related search keywords; empty list on any failure."""
        try:
            result = await self.llm.run_structured(
                RELATED_KEYWORDS_PROMPT.format(keyword=keyword),
                output_type=RelatedKeywordsLLM,
            )
            return result.keywords[:5]
        except Exception as e:
            logger.warning(f"Related keyword expansion failed for '{keyword}': {e}")
            return []


class RelevanceScorer:
    """Bounded, never-failing relevance score in [0, 100]."""

    def __init__(self, backend: RelevanceBackend, settings: Optional[Settings] = None,
                 timeout: Optional[float] = None):
        self.backend = backend
        self.settings = settings or get_settings()
        self.timeout = timeout if timeout is not None else self.settings.relevance_timeout_seconds
        self.fallback_score = self.settings.relevance_fallback_score
        self.min_score = self.settings.min_relevance_score

    async def score(self, keyword: str, source: str, business_context: Optional[str] = None) -> int:
        context = business_context or self.settings.business_context
        try:
            raw = await self._call_backend(keyword, source, context)
            return self._normalize(raw)
        except (ScorerUnavailable, MalformedExternalResponse) as e:
            logger.warning(
                f"Relevance fallback {self.fallback_score} for '{keyword}' ({source}): "
                f"{type(e).__name__}: {e}"
            )
            return self.fallback_score

    def passes_threshold(self, score: int) -> bool:
        return score >= self.min_score

    async def _call_backend(self, keyword: str, source: str, context: str):
        try:
            return await asyncio.wait_for(
                self.backend.score_raw(keyword, source, context), timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ScorerUnavailable(f"timed out after {self.timeout}s") from e
        except Exception as e:
            raise ScorerUnavailable(str(e) or type(e).__name__) from e

    @staticmethod
    def _normalize(raw) -> int:
        if isinstance(raw, bool):
            raise MalformedExternalResponse(f"unexpected score type: {raw!r}")
        if isinstance(raw, (int, float)):
            if not math.isfinite(raw):
                raise MalformedExternalResponse(f"non-finite score: {raw!r}")
            value = int(round(raw))
        elif isinstance(raw, str):
            value = parse_first_int(raw)
            if value is None:
                raise MalformedExternalResponse(f"no number in response: {raw[:80]!r}")
        else:
            raise MalformedExternalResponse(f"unexpected score type: {type(raw).__name__}")
        return min(100, max(0, value))
