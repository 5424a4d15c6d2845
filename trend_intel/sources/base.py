"""
Signal sources — one per external trend provider (search trends, social, forums).

Each provider client implements SignalSource. Network access lives in the
concrete clients, outside this package; the engine only sees RawSignals.

Every source is constructed with its OWN ApiUsageCounter. Counters are plain
instances handed in by the caller (never module globals), so tests can build
fresh ones and reset them deterministically.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from trend_intel.schemas.trends import RawSignal

logger = logging.getLogger(__name__)

_MINUTE = 60.0
_HOUR = 3600.0
_DAY = 86400.0


@dataclass
class RateLimit:
    requests_per_minute: int = 60
    requests_per_hour: Optional[int] = None
    requests_per_day: Optional[int] = None


@dataclass
class _RequestLog:
    timestamp: float
    endpoint: str
    success: bool


class ApiUsageCounter:
    """Sliding-window request log and rate limiter for one source.

    Usage:
        counter = ApiUsageCounter("reddit", RateLimit(requests_per_minute=10))
        await counter.check_rate_limit()
        try:
            data = await client.get(...)
            counter.record("/r/business/hot", success=True)
        except Exception:
            counter.record("/r/business/hot", success=False)
            raise
    """

    def __init__(self, source_name: str, limits: Optional[RateLimit] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Any] = asyncio.sleep):
        self.source_name = source_name
        self.limits = limits or RateLimit()
        self._clock = clock
        self._sleep = sleep
        self._logs: Deque[_RequestLog] = deque()

    def record(self, endpoint: str, success: bool = True) -> None:
        self._logs.append(_RequestLog(self._clock(), endpoint, success))

    def _prune(self, now: float) -> None:
        while self._logs and now - self._logs[0].timestamp >= _DAY:
            self._logs.popleft()

    def _within(self, now: float, seconds: float) -> List[_RequestLog]:
        return [log for log in self._logs if now - log.timestamp < seconds]

    def wait_seconds(self) -> float:
        """Seconds until another request fits every configured window (0 = go now)."""
        now = self._clock()
        self._prune(now)
        windows = [(_MINUTE, self.limits.requests_per_minute)]
        if self.limits.requests_per_hour:
            windows.append((_HOUR, self.limits.requests_per_hour))
        if self.limits.requests_per_day:
            windows.append((_DAY, self.limits.requests_per_day))

        wait = 0.0
        for seconds, limit in windows:
            recent = self._within(now, seconds)
            if limit and len(recent) >= limit:
                wait = max(wait, seconds - (now - recent[0].timestamp))
        return wait

    async def check_rate_limit(self) -> None:
        """Wait until the next request is within all limits."""
        wait = self.wait_seconds()
        while wait > 0:
            logger.warning(f"[{self.source_name}] Rate limit reached, waiting {wait:.1f}s")
            await self._sleep(wait)
            wait = self.wait_seconds()

    def usage_stats(self) -> Dict[str, float]:
        now = self._clock()
        self._prune(now)
        day = self._within(now, _DAY)
        successes = sum(1 for log in day if log.success)
        return {
            "last_24_hours": len(day),
            "last_hour": len(self._within(now, _HOUR)),
            "last_minute": len(self._within(now, _MINUTE)),
            "success_rate": successes / len(day) if day else 1.0,
        }

    def reset(self) -> None:
        self._logs.clear()


class SignalSource(ABC):
    """Abstract base for all trend signal providers."""

    def __init__(self, name: str, usage: Optional[ApiUsageCounter] = None):
        self.name = name
        self.usage = usage or ApiUsageCounter(name)

    @abstractmethod
    async def fetch_signals(self, params: Optional[Dict[str, Any]] = None) -> List[RawSignal]:
        """Fetch current signals. Raise on provider failure."""
        ...


class StaticSignalSource(SignalSource):
    """Replays a fixed list of signals (fixtures, backfills, offline runs)."""

    def __init__(self, name: str, signals: Iterable[RawSignal],
                 usage: Optional[ApiUsageCounter] = None):
        super().__init__(name, usage)
        self._signals = list(signals)

    async def fetch_signals(self, params: Optional[Dict[str, Any]] = None) -> List[RawSignal]:
        await self.usage.check_rate_limit()
        limit = (params or {}).get("limit")
        signals = self._signals[:limit] if limit else list(self._signals)
        self.usage.record("replay", success=True)
        return signals
