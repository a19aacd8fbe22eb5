"""Configuration models for the CRM assistant."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimitPolicy(BaseModel):
    """Fixed-window limit applied at one call site."""

    max_per_window: int = Field(default=20, ge=1)
    window_length_ms: int = Field(default=60_000, ge=1)


CHAT_QUERY_POLICY = RateLimitPolicy(max_per_window=20, window_length_ms=60_000)
FORM_WRITE_POLICY = RateLimitPolicy(max_per_window=10, window_length_ms=60_000)


class ProcessorConfig(BaseModel):
    """Configures per-intent defaults used by the query processor."""

    at_risk_threshold_days: int = Field(default=60, ge=1)
    at_risk_limit: int = Field(default=10, ge=1)
    appointments_limit: int = Field(default=25, ge=1)
    generic_list_limit: int = Field(default=10, ge=1)
    max_limit: int = Field(default=100, ge=1)


class ScoringConfig(BaseModel):
    """RFM score bands, highest band first.

    A measure scores 5 for the first band it satisfies, 4 for the second and
    so on, falling back to 1.
    """

    recency_days: tuple[int, int, int, int] = (30, 60, 90, 180)
    frequency_visits: tuple[int, int, int, int] = (10, 7, 4, 2)
    monetary_spend: tuple[float, float, float, float] = (1000.0, 500.0, 200.0, 50.0)
    lifespan_factor: float = Field(default=2.5, gt=0.0)


class AssistantConfig(BaseModel):
    """Top-level settings for the chat assistant."""

    chat_rate_limit: RateLimitPolicy = Field(default_factory=lambda: CHAT_QUERY_POLICY.model_copy())
    processor: ProcessorConfig = Field(default_factory=ProcessorConfig)
