"""
Error taxonomy for the trend engine.

Two families:
  - Surfaced to the caller: NotFound, RepositoryError, InvalidExperimentTransition.
  - Recovered locally (logged, never raised past the adapter that owns the
    fallback): ScorerUnavailable, ForecastUnavailable, MalformedExternalResponse.
"""


class TrendIntelError(Exception):
    """Base class for every error raised by trend_intel."""


class NotFound(TrendIntelError):
    """Unknown trend or experiment id."""

    def __init__(self, kind: str, ident: str):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} {ident} not found")


class RepositoryError(TrendIntelError):
    """Persistence failed. Never retried by the engine."""


class InvalidExperimentTransition(TrendIntelError):
    """Experiment is not RUNNING (COMPLETED is terminal)."""


class ScorerUnavailable(TrendIntelError):
    """Relevance backend failed or timed out."""


class ForecastUnavailable(TrendIntelError):
    """Forecast model failed or timed out."""


class MalformedExternalResponse(TrendIntelError):
    """An external capability answered with something we cannot use."""
