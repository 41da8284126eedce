from __future__ import annotations

import json
import logging

import pytest

from src import observability
from src.observability import DiscordLogHandler, enable_discord_log_forwarding, log_event, metrics_snapshot
from src.providers.discord import client as discord_client


class _FakeResponse:
    def __init__(self, status_code: int, payload: dict):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        return self._payload


@pytest.fixture
def forwarding():
    handler = enable_discord_log_forwarding(
        bot_token="tok",
        channel_id="chan-log",
        base_url="https://discord.example",
    )
    yield handler
    observability.logger.removeHandler(handler)


def test_warning_events_are_forwarded_to_log_channel(monkeypatch, forwarding):
    calls: list[dict] = []

    def _fake_request_with_retry(**kwargs):
        calls.append(kwargs)
        return _FakeResponse(200, {"id": "msg-1"})

    monkeypatch.setattr(discord_client, "_request_with_retry", _fake_request_with_retry)

    log_event("tier_resolution_failed", level=logging.WARNING, request_id="req-1", post_id="p1")
    log_event("post_transition", level=logging.INFO, outcome="published")

    assert len(calls) == 1
    assert calls[0]["url"] == "https://discord.example/channels/chan-log/messages"
    embed = calls[0]["json_payload"]["embeds"][0]
    assert embed["title"].endswith("WARNING: tier_resolution_failed")
    assert embed["color"] == 0xFFA500
    assert '"post_id": "p1"' in embed["description"]
    assert metrics_snapshot()["log_forwarding.sent|level=WARNING"] == 1


def test_forwarding_failure_is_counted_not_raised(monkeypatch, forwarding):
    monkeypatch.setattr(
        discord_client,
        "_request_with_retry",
        lambda **_kwargs: _FakeResponse(503, {"message": "unavailable"}),
    )

    log_event("webhook_failed", level=logging.ERROR, reason="persistence")

    assert metrics_snapshot()["log_forwarding.failed|category=transient"] == 1


def test_logs_emitted_while_forwarding_are_not_forwarded_again(monkeypatch, forwarding):
    calls: list[dict] = []

    def _logging_request(**kwargs):
        calls.append(kwargs)
        log_event("nested_warning", level=logging.WARNING)
        return _FakeResponse(200, {"id": "msg-1"})

    monkeypatch.setattr(discord_client, "_request_with_retry", _logging_request)

    log_event("outer_warning", level=logging.WARNING)

    assert len(calls) == 1


def test_forwarding_needs_token_and_channel():
    assert enable_discord_log_forwarding(bot_token=None, channel_id="chan-log") is None
    assert not any(isinstance(handler, DiscordLogHandler) for handler in observability.logger.handlers)


def test_enabling_twice_keeps_a_single_handler(forwarding):
    second = enable_discord_log_forwarding(bot_token="tok", channel_id="chan-other")
    try:
        handlers = [handler for handler in observability.logger.handlers if isinstance(handler, DiscordLogHandler)]
        assert handlers == [second]
    finally:
        observability.logger.removeHandler(second)


def test_build_message_tolerates_plain_text_records():
    handler = DiscordLogHandler(bot_token="tok", channel_id="chan-log")
    record = logging.LogRecord("patreon_waterfall", logging.ERROR, __file__, 1, "plain text", None, None)

    embed = handler.build_message(record)["embeds"][0]

    assert embed["title"].endswith("ERROR")
    assert "plain text" in embed["description"]
    assert json.loads(json.dumps(embed))["color"] == 0xFF0000
