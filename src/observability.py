from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import datetime, timezone
from threading import Lock, local
from typing import Any

from src.providers.discord import client as discord_client


logger = logging.getLogger("patreon_waterfall")

_metrics_lock = Lock()
_metrics_counter: Counter[str] = Counter()

_LOG_COLORS = {"WARNING": 0xFFA500, "ERROR": 0xFF0000, "CRITICAL": 0x8B0000}
_LOG_EMOJIS = {"WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🚨"}


def configure_logging(level: str = "INFO") -> None:
    if logger.handlers:
        logger.setLevel(level.upper())
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False


def _normalize(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_normalize(v) for v in value]
    return str(value)


def metric_key(name: str, **labels: Any) -> str:
    if not labels:
        return name
    ordered = ",".join(f"{k}={labels[k]}" for k in sorted(labels))
    return f"{name}|{ordered}"


def incr_metric(name: str, value: int = 1, **labels: Any) -> None:
    key = metric_key(name, **{k: _normalize(v) for k, v in labels.items()})
    with _metrics_lock:
        _metrics_counter[key] += value


def metrics_snapshot() -> dict[str, int]:
    with _metrics_lock:
        return dict(_metrics_counter)


def reset_metrics() -> None:
    with _metrics_lock:
        _metrics_counter.clear()


def log_event(
    event: str,
    *,
    level: int = logging.INFO,
    request_id: str | None = None,
    **fields: Any,
) -> None:
    payload = {"event": event}
    if request_id:
        payload["request_id"] = request_id
    for key, value in fields.items():
        payload[key] = _normalize(value)
    logger.log(level, json.dumps(payload, sort_keys=True, ensure_ascii=False))


class DiscordLogHandler(logging.Handler):
    """Forwards WARNING-or-higher service logs to the Discord log channel.

    Best effort: delivery failures are counted, never raised, and a record
    emitted while forwarding is not forwarded again.
    """

    def __init__(
        self,
        *,
        bot_token: str,
        channel_id: str,
        base_url: str | None = None,
        timeout_seconds: float = 5.0,
        level: int | str = logging.WARNING,
    ) -> None:
        super().__init__(level=level)
        self.bot_token = bot_token
        self.channel_id = channel_id
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self._local = local()

    def build_message(self, record: logging.LogRecord) -> dict[str, Any]:
        text = record.getMessage()
        try:
            event = json.loads(text).get("event")
        except (ValueError, AttributeError):
            event = None
        title = f"{_LOG_EMOJIS.get(record.levelname, '📝')} {record.levelname}"
        if event:
            title = f"{title}: {event}"
        return {
            "embeds": [
                {
                    "title": title[:256],
                    "description": f"```json\n{text[:3900]}\n```",
                    "color": _LOG_COLORS.get(record.levelname, 0x5865F2),
                    "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                }
            ]
        }

    def emit(self, record: logging.LogRecord) -> None:
        if getattr(self._local, "forwarding", False):
            return
        self._local.forwarding = True
        try:
            discord_client.send_channel_message(
                bot_token=self.bot_token,
                channel_id=self.channel_id,
                message=self.build_message(record),
                base_url=self.base_url,
                timeout_seconds=self.timeout_seconds,
            )
        except discord_client.DiscordProviderError as exc:
            incr_metric("log_forwarding.failed", category=exc.category)
        except Exception:
            self.handleError(record)
        else:
            incr_metric("log_forwarding.sent", level=record.levelname)
        finally:
            self._local.forwarding = False


def enable_discord_log_forwarding(
    *,
    bot_token: str | None,
    channel_id: str | None,
    base_url: str | None = None,
    level: str = "WARNING",
) -> DiscordLogHandler | None:
    for handler in list(logger.handlers):
        if isinstance(handler, DiscordLogHandler):
            logger.removeHandler(handler)
    if not bot_token or not channel_id:
        log_event("log_forwarding_disabled", level=logging.INFO, reason="missing_token_or_channel")
        return None
    handler = DiscordLogHandler(bot_token=bot_token, channel_id=channel_id, base_url=base_url, level=level.upper())
    logger.addHandler(handler)
    return handler
