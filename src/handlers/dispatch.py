from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any, Callable

from src import store
from src.handlers.context import WebhookContext
from src.handlers.locks import KeyedLock
from src.handlers.members import handle_member_create, handle_member_delete, handle_member_update
from src.handlers.payloads import member_identity, primary_resource, resource_id
from src.handlers.posts import handle_posts_delete, handle_posts_publish, handle_posts_update
from src.models.webhooks import PatreonEventType
from src.observability import incr_metric, log_event


Handler = Callable[[dict[str, Any], WebhookContext], str]

EVENT_HANDLERS: dict[PatreonEventType, Handler] = {
    "members:create": handle_member_create,
    "members:update": handle_member_update,
    "members:delete": handle_member_delete,
    "members:pledge:create": handle_member_create,
    "members:pledge:update": handle_member_update,
    "members:pledge:delete": handle_member_delete,
    "posts:publish": handle_posts_publish,
    "posts:update": handle_posts_update,
    "posts:delete": handle_posts_delete,
}

_entity_locks = KeyedLock()


@dataclass(frozen=True)
class RouteResult:
    event_type: str
    handled_as: str | None
    outcome: str


def entity_key(event_type: str, payload: dict[str, Any]) -> str:
    if event_type.startswith("posts:"):
        return f"post:{resource_id(primary_resource(payload))}"
    return f"member:{member_identity(payload).member_id}"


def effective_event_type(event_type: str, payload: dict[str, Any]) -> str:
    """Patreon reuses posts:publish for "edit and republish"; a known post is an update."""
    if event_type != "posts:publish":
        return event_type
    post_id = resource_id(primary_resource(payload))
    if store.get_tracked_post(post_id) is not None:
        return "posts:update"
    return event_type


def route_event(event_type: str, payload: dict[str, Any], ctx: WebhookContext) -> RouteResult:
    if event_type not in EVENT_HANDLERS:
        incr_metric("webhook.events.ignored", event_type=event_type)
        log_event(
            "webhook_event_ignored",
            level=logging.WARNING,
            request_id=ctx.request_id,
            event_type=event_type,
            supported=sorted(EVENT_HANDLERS),
        )
        return RouteResult(event_type=event_type, handled_as=None, outcome="ignored")

    key = entity_key(event_type, payload)
    guard = _entity_locks.hold(key) if ctx.serialize_per_key else nullcontext()
    with guard:
        handled_as = effective_event_type(event_type, payload)
        if handled_as != event_type:
            log_event(
                "webhook_event_redirected",
                request_id=ctx.request_id,
                event_type=event_type,
                handled_as=handled_as,
                entity=key,
            )
        outcome = EVENT_HANDLERS[handled_as](payload, ctx)

    return RouteResult(event_type=event_type, handled_as=handled_as, outcome=outcome)
