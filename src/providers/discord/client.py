from __future__ import annotations

import random
import time
from typing import Any

import httpx


DISCORD_API_BASE = "https://discord.com/api/v10"
_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_MAX_RETRY_ATTEMPTS = 3
_RETRY_BASE_DELAY_SECONDS = 0.5
_RETRY_MAX_DELAY_SECONDS = 5.0


class DiscordProviderError(Exception):
    """Provider-level exception for Discord delivery failures."""

    @property
    def category(self) -> str:
        message = str(self).lower()
        if "connectivity error" in message or "http 429" in message or "http 5" in message:
            return "transient"
        if (
            "missing discord bot token" in message
            or "invalid discord bot token" in message
            or "missing permissions" in message
            or "unknown channel" in message
        ):
            return "terminal"
        return "unknown"

    @property
    def retryable(self) -> bool:
        return self.category == "transient"


def _build_base_url(base_url: str | None) -> str:
    return (base_url or DISCORD_API_BASE).rstrip("/")


def _headers(bot_token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bot {bot_token}",
        "Content-Type": "application/json",
        "User-Agent": "PatreonTierWaterfall/0.1",
    }


def _retry_delay(response: httpx.Response | None, attempt: int) -> float:
    if response is not None and response.status_code == 429:
        try:
            retry_after = float(response.json().get("retry_after", 0))
        except (ValueError, AttributeError, TypeError):
            retry_after = 0.0
        if retry_after > 0:
            return min(retry_after, _RETRY_MAX_DELAY_SECONDS)
    delay = min(_RETRY_BASE_DELAY_SECONDS * (2 ** (attempt - 1)), _RETRY_MAX_DELAY_SECONDS)
    return delay + random.uniform(0, delay * 0.2)


def _request_with_retry(
    *,
    method: str,
    url: str,
    headers: dict[str, str],
    timeout_seconds: float,
    json_payload: dict[str, Any] | None = None,
) -> httpx.Response:
    response: httpx.Response | None = None
    for attempt in range(1, _MAX_RETRY_ATTEMPTS + 1):
        try:
            with httpx.Client(timeout=timeout_seconds) as client:
                response = client.request(method=method, url=url, headers=headers, json=json_payload)
        except httpx.HTTPError:
            if attempt >= _MAX_RETRY_ATTEMPTS:
                raise
            time.sleep(_retry_delay(None, attempt))
            continue

        if response.status_code in _RETRYABLE_STATUS_CODES and attempt < _MAX_RETRY_ATTEMPTS:
            time.sleep(_retry_delay(response, attempt))
            continue
        return response

    assert response is not None
    return response


def send_channel_message(
    *,
    bot_token: str | None,
    channel_id: str,
    message: dict[str, Any],
    base_url: str | None = None,
    timeout_seconds: float = 10.0,
) -> dict[str, Any]:
    """POST a message (content and/or embeds) to a guild text channel."""
    if not bot_token:
        raise DiscordProviderError("Missing Discord bot token")
    path = f"/channels/{channel_id}/messages"
    try:
        response = _request_with_retry(
            method="POST",
            url=f"{_build_base_url(base_url)}{path}",
            headers=_headers(bot_token),
            timeout_seconds=timeout_seconds,
            json_payload=message,
        )
    except httpx.HTTPError as exc:
        raise DiscordProviderError(f"Discord connectivity error: {exc}") from exc

    if response.status_code == 401:
        raise DiscordProviderError("Invalid Discord bot token")
    if response.status_code == 403:
        raise DiscordProviderError(f"Missing permissions for channel {channel_id}")
    if response.status_code == 404:
        raise DiscordProviderError(f"Unknown channel {channel_id}")
    if response.status_code >= 400:
        raise DiscordProviderError(f"Discord API returned HTTP {response.status_code}: {response.text[:200]}")

    try:
        data = response.json()
    except ValueError as exc:
        raise DiscordProviderError("Discord returned non-JSON response") from exc
    if not isinstance(data, dict):
        raise DiscordProviderError("Unexpected Discord message response type")
    return data
