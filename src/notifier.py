from __future__ import annotations

import logging
from typing import Any, Protocol

from src import store
from src.domain.messages import MessageType
from src.observability import incr_metric, log_event
from src.providers.discord.client import DiscordProviderError, send_channel_message


class Notifier(Protocol):
    def message_template(self, message_type: MessageType) -> str | None: ...

    def send_to_tier_channel(self, tier_name: str, message: dict[str, Any], *, tier_id: str | None = None) -> bool: ...

    def send_to_log_channel(self, message: dict[str, Any]) -> bool: ...


class DiscordNotifier:
    """Delivers rendered messages to the Discord channel mapped to a tier.

    Delivery problems of any kind (no mapping, no token, Discord errors) are
    logged and reported as False; they never propagate into the engine.
    """

    def __init__(
        self,
        *,
        bot_token: str | None,
        log_channel_id: str | None = None,
        api_base_url: str | None = None,
        timeout_seconds: float = 10.0,
        request_id: str | None = None,
    ) -> None:
        self.bot_token = bot_token
        self.log_channel_id = log_channel_id
        self.api_base_url = api_base_url
        self.timeout_seconds = timeout_seconds
        self.request_id = request_id

    def message_template(self, message_type: MessageType) -> str | None:
        try:
            return store.get_custom_message(message_type)
        except store.StoreError as exc:
            log_event(
                "custom_message_lookup_failed",
                level=logging.WARNING,
                request_id=self.request_id,
                message_type=message_type,
                error=str(exc),
            )
            return None

    def send_to_tier_channel(self, tier_name: str, message: dict[str, Any], *, tier_id: str | None = None) -> bool:
        try:
            mapping = store.get_tier_mapping(tier_id) if tier_id else None
            if mapping is None:
                mapping = store.get_tier_mapping_by_name(tier_name)
        except store.StoreError as exc:
            return self._failed("tier", tier_name=tier_name, reason="mapping_lookup_failed", error=str(exc))
        if mapping is None:
            return self._failed("tier", tier_name=tier_name, reason="no_channel_mapping")
        return self._deliver("tier", mapping.channel_id, message, tier_name=tier_name)

    def send_to_log_channel(self, message: dict[str, Any]) -> bool:
        if not self.log_channel_id:
            return self._failed("log", reason="log_channel_not_configured")
        return self._deliver("log", self.log_channel_id, message)

    def _deliver(self, target: str, channel_id: str, message: dict[str, Any], **fields: Any) -> bool:
        try:
            send_channel_message(
                bot_token=self.bot_token,
                channel_id=channel_id,
                message=message,
                base_url=self.api_base_url,
                timeout_seconds=self.timeout_seconds,
            )
        except DiscordProviderError as exc:
            return self._failed(
                target,
                reason="delivery_error",
                channel_id=channel_id,
                category=exc.category,
                retryable=exc.retryable,
                error=str(exc),
                **fields,
            )
        incr_metric("notifications.sent", target=target)
        log_event("notification_sent", request_id=self.request_id, target=target, channel_id=channel_id, **fields)
        return True

    def _failed(self, target: str, *, reason: str, **fields: Any) -> bool:
        incr_metric("notifications.failed", target=target, reason=reason)
        log_event(
            "notification_failed",
            level=logging.WARNING,
            request_id=self.request_id,
            target=target,
            reason=reason,
            **fields,
        )
        return False
