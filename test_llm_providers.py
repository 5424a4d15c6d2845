"""
LLM provider layer tests (offline).

Covers:
  - Mock mode: FunctionModel answers for forecasting, relevance and related keywords
  - ProviderManager: provider ordering, cooldowns, error attribution
  - JSON extraction helpers used on raw model text

Nothing here touches the network: real providers are only constructed,
never called.

Run with: pytest test_llm_providers.py -v
"""

import asyncio

import pytest
from pydantic_ai.models.fallback import FallbackModel
from pydantic_ai.models.function import FunctionModel

from conftest import NOW, make_record
from trend_intel.config import Settings
from trend_intel.schemas.llm_outputs import PeakForecastLLM
from trend_intel.schemas.trends import VelocityData
from trend_intel.tools import LLMService, ProviderManager, extract_json_object, parse_first_int
from trend_intel.trends.prediction import LLMForecastModel, ModelStrategy
from trend_intel.trends.relevance import LLMRelevanceBackend


@pytest.fixture(autouse=True)
def clean_provider_state():
    ProviderManager.reset_cooldowns()
    LLMService.clear_cache()
    yield
    ProviderManager.reset_cooldowns()
    LLMService.clear_cache()


def offline_settings(**overrides):
    fields = dict(openai_api_key="", groq_api_key="", use_ollama=False, mock_mode=False)
    fields.update(overrides)
    return Settings(**fields)


# ════════════════════════════════════════════════════════════════════
# Mock mode
# ════════════════════════════════════════════════════════════════════

class TestMockMode:

    def test_mock_model_is_function_model(self, settings):
        manager = ProviderManager(settings=settings, mock_mode=True)
        assert isinstance(manager.get_model(), FunctionModel)

    def test_structured_forecast(self, settings):
        llm = LLMService(settings=settings, mock_mode=True)
        result = asyncio.run(llm.run_structured("Predict the peak of laundry pickup apps", PeakForecastLLM))
        assert isinstance(result, PeakForecastLLM)
        assert 1 <= result.days_until_peak <= 30
        assert result.reasoning

    def test_forecast_model_through_strategy(self, settings):
        strategy = ModelStrategy(LLMForecastModel(LLMService(settings=settings, mock_mode=True)))
        prediction = asyncio.run(strategy.predict(make_record(), VelocityData(keyword="eco laundry"), NOW))
        assert prediction.days_until_peak in (2, 4, 6, 9, 12)

    def test_generate_relevance(self, settings):
        llm = LLMService(settings=settings, mock_mode=True)
        text = asyncio.run(llm.generate("Rate the relevance of this trending topic ..."))
        assert parse_first_int(text) in (35, 47, 59, 71, 83)

    def test_related_keywords(self, settings):
        backend = LLMRelevanceBackend(LLMService(settings=settings, mock_mode=True))
        keywords = asyncio.run(backend.related_keywords("eco laundry"))
        assert 0 < len(keywords) <= 5


# ════════════════════════════════════════════════════════════════════
# ProviderManager
# ════════════════════════════════════════════════════════════════════

class TestProviderManager:

    def test_no_providers_configured(self):
        manager = ProviderManager(settings=offline_settings())
        with pytest.raises(RuntimeError):
            manager.get_model()

    def test_priority_order(self):
        manager = ProviderManager(settings=offline_settings(openai_api_key="sk-test", groq_api_key="gsk-test", use_ollama=True))
        model = manager.get_model()
        assert isinstance(model, FallbackModel)
        assert manager.get_provider_names() == ["OpenAI", "Groq", "Ollama"]

    def test_single_provider_is_not_wrapped(self):
        manager = ProviderManager(settings=offline_settings(groq_api_key="gsk-test"))
        assert not isinstance(manager.get_model(), FallbackModel)
        assert manager.get_provider_names() == ["Groq"]

    def test_disabled_provider_skipped(self):
        manager = ProviderManager(
            settings=offline_settings(openai_api_key="sk-test", groq_api_key="gsk-test"),
            disabled_providers=["OpenAI"],
        )
        manager.get_model()
        assert manager.get_provider_names() == ["Groq"]

    def test_rate_limit_cooldown(self):
        manager = ProviderManager(settings=offline_settings(openai_api_key="sk-test", groq_api_key="gsk-test"))
        manager.record_failure("OpenAI", Exception("status_code: 429, rate limit exceeded"))
        manager.get_model()
        assert manager.get_provider_names() == ["Groq"]
        ProviderManager.reset_cooldowns()
        manager.get_model()
        assert manager.get_provider_names() == ["OpenAI", "Groq"]

    def test_billing_failure_disables_provider(self):
        manager = ProviderManager(settings=offline_settings(groq_api_key="gsk-test"))
        manager.record_failure("Groq", Exception("status_code: 401 invalid api key"))
        with pytest.raises(RuntimeError):
            manager.get_model()

    def test_transient_error_has_no_cooldown(self):
        manager = ProviderManager(settings=offline_settings(groq_api_key="gsk-test"))
        manager.record_failure("Groq", Exception("connection reset"))
        manager.get_model()
        assert manager.get_provider_names() == ["Groq"]

    def test_infer_provider(self):
        settings = offline_settings()
        manager = ProviderManager(settings=settings)
        assert manager._infer_provider_from_error(Exception(f"model_name: {settings.groq_model}, 429")) == "Groq"
        assert manager._infer_provider_from_error(Exception("https://api.openai.com/v1 failed")) == "OpenAI"
        assert manager._infer_provider_from_error(Exception("something else")) == "unknown"


# ════════════════════════════════════════════════════════════════════
# JSON extraction
# ════════════════════════════════════════════════════════════════════

class TestJsonExtract:

    def test_markdown_fence(self):
        assert extract_json_object('```json\n{"daysUntilPeak": 4}\n```') == '{"daysUntilPeak": 4}'

    def test_prose_around_object(self):
        text = 'Sure! Here is the forecast: {"confidence": 70, "reasoning": "ok"} Hope it helps.'
        assert extract_json_object(text) == '{"confidence": 70, "reasoning": "ok"}'

    def test_braces_inside_strings(self):
        text = '{"reasoning": "a } b \\" c", "confidence": 1}'
        assert extract_json_object(text) == text

    def test_no_object(self):
        assert extract_json_object("no json here") is None

    def test_truncated_object_is_not_completed(self):
        assert extract_json_object('{"keywords": ["a", "b"') is None
        assert extract_json_object('{"reasoning": "cut off') is None

    def test_first_int(self):
        assert parse_first_int("Relevance: 85/100") == 85
        assert parse_first_int("none") is None

    def test_first_int_keeps_sign(self):
        assert parse_first_int("-20") == -20
