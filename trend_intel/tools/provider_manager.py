"""
LLM Provider Manager with cooldown-aware failover.

Builds pydantic-ai model instances and manages provider health.
Class-level cooldown state is shared across all instances, so a provider
that is rate-limited for relevance scoring is also skipped for forecasting.
"""

import logging
import re
import threading
import time
from typing import Dict, List, Optional, Tuple

from pydantic_ai.models import Model
from pydantic_ai.models.fallback import FallbackModel
from pydantic_ai.models.function import FunctionModel
from pydantic_ai.models.groq import GroqModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.groq import GroqProvider
from pydantic_ai.providers.openai import OpenAIProvider

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


class ProviderManager:
    """Manages LLM provider lifecycle with cooldown-based failover.

    Priority: OpenAI → Groq → Ollama (local). Mock mode returns a
    FunctionModel with deterministic answers and never touches the network.
    """

    _failed_providers: Dict[str, float] = {}
    _failure_counts: Dict[str, int] = {}   # For exponential backoff
    _FAILURE_COOLDOWN = 300.0    # Window during which a failed provider is skipped
    _RATELIMIT_COOLDOWN = 30.0   # Base 429 cooldown; actual = 30 * 2^(n-1), capped
    _billing_disabled: set = set()  # Providers with auth/billing issues, off for the session
    _lock = threading.Lock()

    def __init__(self, settings: Optional[Settings] = None, mock_mode: bool = False,
                 disabled_providers: Optional[List[str]] = None):
        self.settings = settings or get_settings()
        self.mock_mode = mock_mode
        self.disabled_providers = set(disabled_providers or [])
        self._provider_order: List[str] = []

    def get_model(self) -> Model:
        """Get current model with cooldown-aware failover.

        Returns FunctionModel for mock mode, FallbackModel for real providers.
        """
        if self.mock_mode:
            from . import mock_responses
            return FunctionModel(mock_responses.get_mock_response_for_function_model)

        available = self._get_available_providers()
        if not available:
            raise RuntimeError("No LLM providers available (all in cooldown or unconfigured)")
        if len(available) == 1:
            return available[0][1]

        models = [m for _, m in available]
        return FallbackModel(models[0], *models[1:], fallback_on=self._should_fallback)

    def get_provider_names(self) -> List[str]:
        """Get current provider order (set after get_model() call)."""
        return list(self._provider_order)

    def _is_provider_available(self, name: str, now: float) -> bool:
        if name in self.disabled_providers:
            return False
        return not self._is_cooling_down(name, now)

    def _get_available_providers(self) -> List[Tuple[str, Model]]:
        """Build ordered provider list, skipping cooled-down and disabled providers."""
        providers = []
        now = time.time()

        # 1. OpenAI: best structured output
        if self.settings.openai_api_key and self._is_provider_available("OpenAI", now):
            providers.append(("OpenAI", self._build_openai_model()))

        # 2. Groq: free tier, function calling
        if self.settings.groq_api_key and self._is_provider_available("Groq", now):
            providers.append(("Groq", self._build_groq_model()))

        # 3. Ollama: local fallback, no rate limits
        if self.settings.use_ollama and self._is_provider_available("Ollama", now):
            providers.append(("Ollama", self._build_ollama_model()))

        self._provider_order = [name for name, _ in providers]
        return providers

    def _should_fallback(self, exc: Exception) -> bool:
        """Always fall back; apply a cooldown first on hard failures."""
        error_str = str(exc)
        lowered = error_str.lower()
        is_hard_failure = (
            "429" in error_str or "rate limit" in lowered
            or "401" in error_str or "402" in error_str
            or "timeout" in lowered or "timed out" in lowered
        )
        if is_hard_failure:
            provider_name = self._infer_provider_from_error(exc)
            if provider_name != "unknown":
                self.record_failure(provider_name, exc)
            else:
                logger.warning(f"Hard failure (unknown provider): {error_str[:200]}")
        return True

    def record_failure(self, provider_name: str, error: Exception):
        """Record a provider failure with appropriate cooldown duration."""
        with self._lock:
            error_str = str(error)
            lowered = error_str.lower()
            now = time.time()

            if "401" in error_str or "402" in error_str:
                self._billing_disabled.add(provider_name)
                logger.warning(f"{provider_name}: Auth/billing failure — disabled for session")
                self._failed_providers[provider_name] = now
            elif "429" in error_str or "rate limit" in lowered:
                count = self._failure_counts.get(provider_name, 0) + 1
                self._failure_counts[provider_name] = count
                cooldown = min(
                    self._RATELIMIT_COOLDOWN * (2 ** (count - 1)),
                    self.settings.provider_ratelimit_max_seconds,
                )
                logger.info(f"{provider_name}: Rate limited — {int(cooldown)}s cooldown (#{count})")
                # Backdate so the generic window expires after `cooldown`
                self._failed_providers[provider_name] = now - (self._FAILURE_COOLDOWN - cooldown)
            elif "timeout" in lowered or "timed out" in lowered:
                logger.warning(f"{provider_name}: Timeout — skipped for this cycle")
                self._failed_providers[provider_name] = now - (self._FAILURE_COOLDOWN - self._RATELIMIT_COOLDOWN)
            else:
                logger.info(f"{provider_name}: Transient error (no cooldown): {error_str[:200]}")

    def _is_cooling_down(self, provider_name: str, now: float) -> bool:
        with self._lock:
            if provider_name in self._billing_disabled:
                return True
            if provider_name in self._failed_providers:
                if now - self._failed_providers[provider_name] < self._FAILURE_COOLDOWN:
                    return True
                del self._failed_providers[provider_name]
                self._failure_counts.pop(provider_name, None)
                logger.info(f"{provider_name} cooldown expired, re-enabling")
        return False

    def _infer_provider_from_error(self, exc: Exception) -> str:
        """Infer which provider an exception came from using model_name and URL."""
        err = str(exc)
        s = self.settings
        match = re.search(r'model_name:\s*([^,\s]+)', err)
        model_name = match.group(1) if match else ""

        if model_name == s.openai_model or "api.openai.com" in err:
            return "OpenAI"
        if model_name == s.groq_model or "api.groq.com" in err:
            return "Groq"
        if model_name == s.ollama_model or "localhost:11434" in err:
            return "Ollama"
        return "unknown"

    # --- Provider constructors ---

    def _build_openai_model(self):
        return OpenAIChatModel(
            model_name=self.settings.openai_model,
            provider=OpenAIProvider(api_key=self.settings.openai_api_key),
        )

    def _build_groq_model(self):
        return GroqModel(
            model_name=self.settings.groq_model,
            provider=GroqProvider(api_key=self.settings.groq_api_key),
        )

    def _build_ollama_model(self):
        """Ollama via OpenAI-compatible endpoint."""
        return OpenAIChatModel(
            model_name=self.settings.ollama_model,
            provider=OpenAIProvider(base_url=f"{self.settings.ollama_base_url}/v1"),
        )

    @classmethod
    def reset_cooldowns(cls):
        """Clear all cooldowns and failure counts."""
        with cls._lock:
            cls._failed_providers.clear()
            cls._billing_disabled.clear()
            cls._failure_counts.clear()
