"""
Inner Pydantic models for LLM structured output.

These models define ONLY what the LLM produces. Used with
LLMService.run_structured() to get typed, validated output, and to validate
raw JSON payloads from any ForecastModel.

Types and presence are validated here; range clamping is the consumer's job
so that "confidence: 104" is corrected rather than thrown away.

Convention: Suffix with "LLM" to distinguish from the full output schemas.
"""

from pydantic import BaseModel, Field, field_validator


class PeakForecastLLM(BaseModel):
    """Forecast model answer for one trend."""
    days_until_peak: int = Field(alias="daysUntilPeak", description="Number between 1-30")
    confidence: float = Field(description="Number 0-100", allow_inf_nan=False)
    reasoning: str = Field(description="2-3 sentence explanation")

    model_config = {"populate_by_name": True}

    @field_validator("reasoning", mode="after")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reasoning must not be blank")
        return v


class RelatedKeywordsLLM(BaseModel):
    """Keywords someone searching the trend would also search for."""
    keywords: list[str] = Field(default_factory=list)


class SentimentLLM(BaseModel):
    """Sentiment read of a trending topic; overallSentiment is clamped by the consumer."""
    overall_sentiment: float = Field(alias="overallSentiment", description="Number from -1 to 1",
                                     allow_inf_nan=False)
    positive_signals: list[str] = Field(default_factory=list, alias="positiveSignals")
    negative_signals: list[str] = Field(default_factory=list, alias="negativeSignals")
    opportunities: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class ContentIdeasLLM(BaseModel):
    """Content or content-bundle titles."""
    titles: list[str] = Field(default_factory=list, description="3 titles")
