from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.models.tiers import TierDefinition


class Settings(BaseSettings):
    patreon_webhook_secret: str
    supabase_url: str
    supabase_service_role_key: str
    discord_bot_token: str | None = None
    discord_log_channel_id: str | None = None
    discord_api_base_url: str = "https://discord.com/api/v10"
    discord_timeout_seconds: float = 10.0
    discord_log_forwarding: bool = False
    discord_log_forwarding_level: str = "WARNING"
    tier_config: list[TierDefinition] = Field(default_factory=list)
    free_tier_name: str = "Free"
    patreon_base_url: str = "https://www.patreon.com"
    webhook_serialize_per_key: bool = True
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
