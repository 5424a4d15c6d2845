"""
Trend collection — fetch, score, classify and persist raw signals.

Pipeline per signal:
  RelevanceScorer → threshold filter → lifecycle + viral coefficient
  (TrendRecord.from_signal) → pillars → optional related-keyword expansion
  → persist

Sources are fetched concurrently (one task per source); signals are then
processed under an asyncio.Semaphore whose size the caller chooses. A failing
source or signal becomes an ItemError; siblings carry on.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from trend_intel.config import Settings, get_settings
from trend_intel.schemas.base import utcnow
from trend_intel.schemas.pipeline import CollectionResult, ItemError
from trend_intel.schemas.trends import RawSignal, TrendRecord
from trend_intel.sources.base import SignalSource
from trend_intel.trends.pillars import categorize_pillars
from trend_intel.trends.relevance import RelevanceScorer

logger = logging.getLogger(__name__)

Persist = Callable[[TrendRecord], Awaitable[bool]]
KeywordExpander = Callable[[str], Awaitable[List[str]]]


class TrendCollector:
    """Turns SignalSource output into stored TrendRecords."""

    def __init__(
        self,
        scorer: RelevanceScorer,
        persist: Persist,
        settings: Optional[Settings] = None,
        keyword_expander: Optional[KeywordExpander] = None,
    ):
        self.scorer = scorer
        self.persist = persist
        self.settings = settings or get_settings()
        self.keyword_expander = keyword_expander
        self.pillar_rules = self.settings.get_pillar_rules()

    async def collect(
        self,
        sources: Sequence[SignalSource],
        params: Optional[Dict[str, Any]] = None,
        business_context: Optional[str] = None,
        max_concurrent: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> CollectionResult:
        now = now or utcnow()
        limit = self.settings.default_max_concurrent if max_concurrent is None else max_concurrent
        if limit < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {limit}")

        result = CollectionResult()
        signals = await self._fetch_all(sources, params, result)
        result.collected = len(signals)
        logger.info(f"Collected {len(signals)} signals from {len(sources)} sources")
        if not signals:
            return result

        semaphore = asyncio.Semaphore(limit)

        async def _process_one(signal: RawSignal) -> Union[bool, ItemError]:
            async with semaphore:
                return await self._process(signal, business_context, now)

        outcomes = await asyncio.gather(*[_process_one(s) for s in signals], return_exceptions=True)

        filtered = 0
        for signal, outcome in zip(signals, outcomes):
            if isinstance(outcome, ItemError):
                result.errors.append(outcome)
            elif isinstance(outcome, Exception):
                result.errors.append(ItemError.from_exception(signal.keyword, "persist", outcome))
            elif outcome:
                result.stored += 1
            else:
                filtered += 1

        logger.info(
            f"Collection complete: {result.stored} stored, {filtered} below relevance threshold, "
            f"{len(result.errors)} errors"
        )
        return result

    async def _fetch_all(
        self,
        sources: Sequence[SignalSource],
        params: Optional[Dict[str, Any]],
        result: CollectionResult,
    ) -> List[RawSignal]:
        fetched = await asyncio.gather(
            *[source.fetch_signals(params) for source in sources],
            return_exceptions=True,
        )
        signals: List[RawSignal] = []
        for source, batch in zip(sources, fetched):
            if isinstance(batch, Exception):
                logger.warning(f"Source '{source.name}' failed: {type(batch).__name__}: {batch}")
                result.by_source[source.name] = 0
                result.errors.append(ItemError.from_exception(source.name, "fetch", batch))
                continue
            result.by_source[source.name] = len(batch)
            signals.extend(batch)
        return signals

    async def _process(
        self,
        signal: RawSignal,
        business_context: Optional[str],
        now: datetime,
    ) -> Union[bool, ItemError]:
        """Score → filter → build → persist. True if stored, False if filtered."""
        stage = "score"
        try:
            score = await self.scorer.score(signal.keyword, signal.source, business_context)
            if not self.scorer.passes_threshold(score):
                logger.debug(f"Filtered '{signal.keyword}' ({signal.source}): relevance {score}")
                return False

            related = signal.related_keywords
            if not related and self.keyword_expander and self.settings.expand_related_keywords:
                related = await self._expand(signal.keyword)

            stage = "persist"
            record = TrendRecord.from_signal(
                signal,
                relevance_score=score,
                pillars=categorize_pillars(signal.keyword, self.pillar_rules),
                captured_at=now,
                ttl_days=self.settings.trend_ttl_days,
                related_keywords=related[: self.settings.max_related_keywords],
            )
            return await self.persist(record)
        except Exception as e:
            logger.warning(f"Failed to process '{signal.keyword}' ({signal.source}) at {stage}: {e}")
            return ItemError.from_exception(signal.keyword, stage, e)

    async def _expand(self, keyword: str) -> List[str]:
        """Related keywords for ``keyword``; [] when the expander is slow or fails."""
        timeout = self.settings.relevance_timeout_seconds
        try:
            return await asyncio.wait_for(self.keyword_expander(keyword), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Keyword expansion for '{keyword}' timed out after {timeout}s, storing without")
        except Exception as e:
            logger.warning(f"Keyword expansion for '{keyword}' failed ({type(e).__name__}: {e}), storing without")
        return []
