from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from src.config import settings
from src.domain.tiers import TierTable, build_tier_table
from src.notifier import DiscordNotifier, Notifier


@dataclass(frozen=True)
class WebhookContext:
    """Everything a handler needs besides the payload itself."""

    tiers: TierTable
    notifier: Notifier
    request_id: str | None = None
    patreon_base_url: str = "https://www.patreon.com"
    serialize_per_key: bool = True


@lru_cache(maxsize=1)
def get_tier_table() -> TierTable:
    return build_tier_table(settings.tier_config, free_tier_name=settings.free_tier_name)


def build_context(request_id: str | None = None) -> WebhookContext:
    return WebhookContext(
        tiers=get_tier_table(),
        notifier=DiscordNotifier(
            bot_token=settings.discord_bot_token,
            log_channel_id=settings.discord_log_channel_id,
            api_base_url=settings.discord_api_base_url,
            timeout_seconds=settings.discord_timeout_seconds,
            request_id=request_id,
        ),
        request_id=request_id,
        patreon_base_url=settings.patreon_base_url,
        serialize_per_key=settings.webhook_serialize_per_key,
    )
