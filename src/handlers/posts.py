from __future__ import annotations

import logging
from typing import Any, Literal

from src import store
from src.domain.messages import build_post_message
from src.domain.resolver import TierResolution, resolve_tier
from src.domain.tiers import is_waterfall
from src.handlers.context import WebhookContext
from src.handlers.payloads import (
    included_resources,
    now_ms,
    post_tags,
    post_title,
    post_url,
    primary_resource,
    resource_id,
)
from src.models.tracking import TrackedPost
from src.observability import incr_metric, log_event


PostOutcome = Literal[
    "published",
    "waterfall",
    "unchanged",
    "restricted",
    "untracked",
    "unresolved",
    "deleted",
    "not_tracked",
]


def classify_post_transition(old_rank: int, new_rank: int) -> PostOutcome:
    if is_waterfall(old_rank, new_rank):
        return "waterfall"
    if old_rank == new_rank:
        return "unchanged"
    return "restricted"


def _record(outcome: PostOutcome, ctx: WebhookContext, **fields: Any) -> PostOutcome:
    incr_metric("posts.transition", outcome=outcome)
    level = logging.WARNING if outcome in {"untracked", "unresolved"} else logging.INFO
    log_event("post_transition", level=level, request_id=ctx.request_id, outcome=outcome, **fields)
    return outcome


def _resolve(post: dict[str, Any], payload: dict[str, Any], ctx: WebhookContext, post_id: str) -> TierResolution | None:
    resolution = resolve_tier(post, included_resources(payload), ctx.tiers)
    if resolution is None:
        incr_metric("tier.resolution", strategy="none", resource="post")
        log_event(
            "tier_resolution_failed",
            level=logging.WARNING,
            request_id=ctx.request_id,
            post_id=post_id,
            relationships=sorted((post.get("relationships") or {}).keys()),
            known_tier_ids=sorted(ctx.tiers.by_id),
            known_pledge_cents=sorted(ctx.tiers.by_cents),
        )
        return None
    incr_metric("tier.resolution", strategy=resolution.strategy, resource="post")
    return resolution


def _persist(post_id: str, resolution: TierResolution, title: str) -> None:
    store.upsert_tracked_post(
        TrackedPost(
            post_id=post_id,
            last_tier_access=resolution.tier.name,
            title=title,
            updated_at=now_ms(),
        )
    )


def _notify(post: dict[str, Any], post_id: str, resolution: TierResolution, ctx: WebhookContext, *, is_update: bool) -> bool:
    message_type = "post_waterfall" if is_update else "post_new"
    message = build_post_message(
        title=post_title(post),
        url=post_url(post, post_id, ctx.patreon_base_url),
        tier_name=resolution.tier.name,
        tags=post_tags(post),
        is_update=is_update,
        template=ctx.notifier.message_template(message_type),
    )
    return ctx.notifier.send_to_tier_channel(resolution.tier.name, message, tier_id=resolution.tier.external_id)


def handle_posts_publish(payload: dict[str, Any], ctx: WebhookContext) -> PostOutcome:
    """First sighting of a post: persist its tier, then announce it to that tier."""
    post = primary_resource(payload)
    post_id = resource_id(post)
    title = post_title(post)

    resolution = _resolve(post, payload, ctx, post_id)
    if resolution is None:
        return _record("unresolved", ctx, post_id=post_id, title=title)

    _persist(post_id, resolution, title)
    delivered = _notify(post, post_id, resolution, ctx, is_update=False)
    return _record(
        "published",
        ctx,
        post_id=post_id,
        title=title,
        tier=resolution.tier.name,
        strategy=resolution.strategy,
        delivered=delivered,
    )


def handle_posts_update(payload: dict[str, Any], ctx: WebhookContext) -> PostOutcome:
    """Diff the post's tier against the stored one; only a lower rank notifies."""
    post = primary_resource(payload)
    post_id = resource_id(post)
    title = post_title(post)

    resolution = _resolve(post, payload, ctx, post_id)
    if resolution is None:
        return _record("unresolved", ctx, post_id=post_id, title=title)

    tracked = store.get_tracked_post(post_id)
    previous = ctx.tiers.get_by_name(tracked.last_tier_access) if tracked else None
    if previous is None:
        _persist(post_id, resolution, title)
        return _record(
            "untracked",
            ctx,
            post_id=post_id,
            title=title,
            tier=resolution.tier.name,
            stored_tier=tracked.last_tier_access if tracked else None,
        )

    outcome = classify_post_transition(previous.rank, resolution.tier.rank)
    _persist(post_id, resolution, title)
    fields: dict[str, Any] = {
        "post_id": post_id,
        "title": title,
        "old_tier": previous.name,
        "new_tier": resolution.tier.name,
        "strategy": resolution.strategy,
    }
    if outcome == "waterfall":
        fields["delivered"] = _notify(post, post_id, resolution, ctx, is_update=True)
    return _record(outcome, ctx, **fields)


def handle_posts_delete(payload: dict[str, Any], ctx: WebhookContext) -> PostOutcome:
    # Deletions are never announced to any channel.
    post = primary_resource(payload)
    post_id = resource_id(post)
    removed = store.delete_tracked_post(post_id)
    return _record("deleted" if removed else "not_tracked", ctx, post_id=post_id, title=post_title(post))
