"""
Configuration management using Pydantic Settings.
Handles environment variables and engine configuration.
"""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings


class EngagementSettings(BaseSettings):
    """Conversation limits and termination thresholds."""

    max_messages: int = Field(
        default=30,
        description="Messages after which a conversation is always ended"
    )
    min_messages_for_extraction: int = Field(
        default=6,
        description="Messages required before completeness can end a conversation"
    )
    min_messages_for_advisory: int = Field(
        default=4,
        description="Messages required before the advisory service is consulted"
    )
    min_history_for_advisory: int = Field(
        default=2,
        description="History entries required to give the advisory service context"
    )
    max_duration_seconds: int = Field(
        default=30 * 60,
        description="Maximum conversation duration in seconds"
    )
    inactivity_timeout_seconds: int = Field(
        default=5 * 60,
        description="Maximum gap between two messages in seconds"
    )
    frustration_threshold: int = Field(
        default=80,
        description="Frustration level that ends the conversation"
    )
    frustration_step: int = Field(
        default=15,
        description="Frustration added per impatient message"
    )
    completeness_threshold_base: int = Field(
        default=75,
        description="Centre of the per-session completeness threshold"
    )
    completeness_threshold_jitter: int = Field(
        default=10,
        description="Maximum distance of the per-session threshold from the base"
    )
    advisory_history_window: int = Field(
        default=6,
        description="Recent messages sent to the advisory service"
    )
    history_limit: int = Field(
        default=50,
        description="Messages kept per session for advisory context"
    )

    class Config:
        env_prefix = "ENGAGEMENT_"


class RegistrySettings(BaseSettings):
    """Tracker retention and sweep configuration."""

    retention_window_seconds: int = Field(
        default=60 * 60,
        description="Age after which completed sessions are swept"
    )
    sweep_interval_seconds: int = Field(
        default=15 * 60,
        description="Interval between background sweeps"
    )

    class Config:
        env_prefix = "REGISTRY_"


class AdvisorySettings(BaseSettings):
    """External termination advisory configuration."""

    enabled: bool = Field(
        default=False,
        description="Consult the advisory service before the rule-based fallback"
    )
    provider: str = Field(
        default="gemini",
        description="Advisory backend: 'gemini' or 'http'"
    )
    timeout_seconds: float = Field(
        default=8.0,
        description="Upper bound for one advisory call"
    )
    endpoint_url: Optional[str] = Field(
        default=None,
        description="Decision endpoint for the 'http' provider"
    )
    api_key: Optional[str] = Field(
        default=None,
        description="API key for the advisory backend"
    )
    model: str = Field(
        default="gemini-1.5-flash",
        description="Model used by the 'gemini' provider"
    )
    temperature: float = Field(
        default=0.2,
        description="Sampling temperature for the 'gemini' provider"
    )
    max_output_tokens: int = Field(
        default=300,
        description="Output token limit for the 'gemini' provider"
    )

    class Config:
        env_prefix = "ADVISORY_"


class Settings(BaseSettings):
    """Main application settings."""

    # Application metadata
    app_name: str = "Honeytrack Engagement Engine"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "production"
    log_level: str = "INFO"

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    engagement: EngagementSettings = EngagementSettings()
    registry: RegistrySettings = RegistrySettings()
    advisory: AdvisorySettings = AdvisorySettings()

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"


# Global settings instance
settings = Settings()
