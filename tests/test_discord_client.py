from __future__ import annotations

import httpx
import pytest

from src.providers.discord import client as discord_client


class _FakeResponse:
    def __init__(self, status_code: int, payload=None, *, invalid_json: bool = False):
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json
        self.text = str(payload)

    def json(self):
        if self._invalid_json:
            raise ValueError("not json")
        return self._payload


def test_send_channel_message_posts_to_channel_with_bot_auth(monkeypatch):
    calls: list[dict] = []

    def _fake_request_with_retry(**kwargs):
        calls.append(kwargs)
        return _FakeResponse(200, {"id": "msg-1", "channel_id": "chan-1"})

    monkeypatch.setattr(discord_client, "_request_with_retry", _fake_request_with_retry)
    result = discord_client.send_channel_message(
        bot_token="tok",
        channel_id="chan-1",
        message={"content": "hi"},
        base_url="https://discord.example/api/",
    )

    assert result["id"] == "msg-1"
    assert calls[0]["method"] == "POST"
    assert calls[0]["url"] == "https://discord.example/api/channels/chan-1/messages"
    assert calls[0]["headers"]["Authorization"] == "Bot tok"
    assert calls[0]["json_payload"] == {"content": "hi"}


def test_missing_token_is_terminal_without_request(monkeypatch):
    def _unexpected(**_kwargs):
        raise AssertionError("request should not be sent")

    monkeypatch.setattr(discord_client, "_request_with_retry", _unexpected)
    with pytest.raises(discord_client.DiscordProviderError) as exc_info:
        discord_client.send_channel_message(bot_token=None, channel_id="c", message={})
    assert exc_info.value.category == "terminal"
    assert exc_info.value.retryable is False


@pytest.mark.parametrize(
    "status_code,category",
    [(401, "terminal"), (403, "terminal"), (404, "terminal"), (429, "transient"), (503, "transient"), (400, "unknown")],
)
def test_error_statuses_map_to_categories(monkeypatch, status_code, category):
    monkeypatch.setattr(
        discord_client,
        "_request_with_retry",
        lambda **_kwargs: _FakeResponse(status_code, {"message": "nope"}),
    )
    with pytest.raises(discord_client.DiscordProviderError) as exc_info:
        discord_client.send_channel_message(bot_token="tok", channel_id="c", message={})
    assert exc_info.value.category == category


def test_connectivity_error_is_transient(monkeypatch):
    def _raise(**_kwargs):
        raise httpx.ConnectError("refused")

    monkeypatch.setattr(discord_client, "_request_with_retry", _raise)
    with pytest.raises(discord_client.DiscordProviderError) as exc_info:
        discord_client.send_channel_message(bot_token="tok", channel_id="c", message={})
    assert exc_info.value.retryable is True


def test_non_json_response_is_rejected(monkeypatch):
    monkeypatch.setattr(
        discord_client,
        "_request_with_retry",
        lambda **_kwargs: _FakeResponse(200, invalid_json=True),
    )
    with pytest.raises(discord_client.DiscordProviderError):
        discord_client.send_channel_message(bot_token="tok", channel_id="c", message={})


def test_retry_delay_honours_retry_after():
    assert discord_client._retry_delay(_FakeResponse(429, {"retry_after": 1.5}), 1) == 1.5
    assert discord_client._retry_delay(_FakeResponse(429, {"retry_after": 60}), 1) == 5.0
    assert 0.5 <= discord_client._retry_delay(None, 1) <= 0.6
