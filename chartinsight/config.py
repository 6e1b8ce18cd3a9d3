"""Configuration management using pydantic-settings."""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: str = ""

    # Claude (Anthropic) Configuration
    claude_api_key: str = ""
    claude_model_planning: str = "claude-sonnet-4-20250514"
    claude_model_fast: str = "claude-3-5-haiku-20241022"

    # Grok (xAI) Configuration
    grok_api_key: str = ""
    grok_model_planning: str = "grok-4"
    grok_model_fast: str = "grok-3-mini"

    # "claude" or "grok"; empty means pick whichever is configured
    default_provider: str = ""

    # Pipeline Configuration
    # Timeouts are per stage; the request deadline spans every layer
    stage_timeout_seconds: float = 60.0
    synthesis_timeout_seconds: float = 90.0
    request_deadline_seconds: float = 180.0
    # Extra attempts for stages that fail with a transport error (0 or 1)
    transport_retries: int = 1
    # Persona stages are told to ignore signals contrary to their bias
    debate_adversarial_personas: bool = True
    annotation_enabled: bool = True
    default_pipeline: str = "chained"

    # Storage Configuration
    database_path: str = "data/chartinsight.db"

    # Rate Limiting
    rate_limit_per_minute: int = 60
    rate_limit_ai_per_minute: int = 10

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def cors_origin_list(self) -> List[str]:
        """Parse comma-separated CORS origins."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
