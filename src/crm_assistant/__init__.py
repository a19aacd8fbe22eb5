"""CRM assistant package."""

from .config import AssistantConfig, ProcessorConfig, RateLimitPolicy, ScoringConfig

__all__ = ["AssistantConfig", "ProcessorConfig", "RateLimitPolicy", "ScoringConfig"]
