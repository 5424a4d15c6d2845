"""
LLM Service — pydantic-ai backed access to the configured providers.

Two call shapes:
  - run_structured(): typed output validated by a Pydantic model
  - generate(): plain text (relevance scores, free-form answers)
"""

import logging
from typing import Dict, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic_ai import Agent
from pydantic_ai.exceptions import FallbackExceptionGroup
from pydantic_ai.settings import ModelSettings

from ..config import Settings, get_settings
from .provider_manager import ProviderManager

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)


class LLMService:
    """High-level LLM service backed by pydantic-ai.

    Agents are cached by (output type, system prompt, retries, cooldown state)
    across all instances.
    """

    _agent_cache: Dict[tuple, Agent] = {}

    def __init__(self, settings: Optional[Settings] = None, mock_mode: bool = False,
                 disabled_providers: Optional[list] = None):
        self.settings = settings or get_settings()
        self.mock_mode = mock_mode or self.settings.mock_mode
        self.provider_manager = ProviderManager(
            settings=self.settings,
            mock_mode=self.mock_mode,
            disabled_providers=disabled_providers or [],
        )
        self.last_provider: Optional[str] = None
        logger.info(f"LLM: {'MOCK' if self.mock_mode else 'ONLINE'} mode")

    def _get_or_create_agent(self, output_type: type, system_prompt: str, retries: int = 2) -> Agent:
        """Get or create a cached pydantic-ai Agent.

        Cache key includes cooldown state so the FallbackModel is rebuilt
        when providers enter/exit cooldown.
        """
        cooldown_key = frozenset(ProviderManager._failed_providers.keys())
        key = (output_type, hash(system_prompt), retries, self.mock_mode, cooldown_key)
        if key not in self._agent_cache:
            self._agent_cache[key] = Agent(
                self.provider_manager.get_model(),
                output_type=output_type,
                system_prompt=system_prompt,
                retries=retries,
            )
        return self._agent_cache[key]

    async def run_structured(
        self,
        prompt: str,
        output_type: Type[T],
        system_prompt: str = "",
        retries: Optional[int] = None,
        temperature: float = 0.3,
    ) -> T:
        """Generate structured output validated by pydantic-ai."""
        retries = retries if retries is not None else self.settings.llm_json_max_retries
        agent = self._get_or_create_agent(output_type, system_prompt, retries)
        try:
            result = await agent.run(prompt, model_settings=ModelSettings(temperature=temperature))
        except FallbackExceptionGroup as eg:
            self._process_failures(eg)
            raise RuntimeError(f"All LLM providers failed: {eg}") from eg
        self.last_provider = self._extract_provider_name(result)
        return result.output

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 500,
    ) -> str:
        """Plain text completion."""
        if self.mock_mode:
            from . import mock_responses
            return mock_responses.get_mock_response(prompt)

        agent = self._get_or_create_agent(str, system_prompt or "", retries=1)
        try:
            result = await agent.run(
                prompt,
                model_settings=ModelSettings(temperature=temperature, max_tokens=max_tokens),
            )
        except FallbackExceptionGroup as eg:
            self._process_failures(eg)
            raise RuntimeError(f"All LLM providers failed: {eg}") from eg
        self.last_provider = self._extract_provider_name(result)
        if not result.output:
            raise ValueError("Empty response")
        return result.output

    # ── Internal helpers ─────────────────────────────────────────────

    def _process_failures(self, eg: BaseException):
        """Record a cooldown for every provider in the exception group."""
        for exc in getattr(eg, 'exceptions', [eg]):
            provider_name = self.provider_manager._infer_provider_from_error(exc)
            logger.warning(f"  {provider_name}: {str(exc)[:150]}")
            self.provider_manager.record_failure(provider_name, exc)

    def _extract_provider_name(self, result) -> str:
        for msg in reversed(result.all_messages()):
            model_name = getattr(msg, 'model_name', None)
            if model_name:
                return model_name
        names = self.provider_manager.get_provider_names()
        return names[0] if names else "unknown"

    @classmethod
    def clear_cache(cls):
        """Clear agent cache. Useful for testing or config changes."""
        cls._agent_cache.clear()
