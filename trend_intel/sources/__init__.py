"""
Signal sources — platform-agnostic collection interface.

Concrete provider clients implement SignalSource and receive their own
ApiUsageCounter.
"""

from trend_intel.sources.base import ApiUsageCounter, RateLimit, SignalSource, StaticSignalSource
