from __future__ import annotations

import logging
from typing import Any, Literal

from src import store
from src.domain.messages import build_departure_message, build_member_message
from src.domain.resolver import TierResolution, resolve_tier
from src.domain.tiers import Tier, is_upgrade
from src.handlers.context import WebhookContext
from src.handlers.payloads import (
    UNKNOWN_MEMBER,
    MemberIdentity,
    included_resources,
    member_identity,
    now_ms,
    primary_resource,
)
from src.models.tracking import TrackedMember
from src.observability import incr_metric, log_event


MemberOutcome = Literal[
    "created",
    "duplicate",
    "upgraded",
    "downgraded",
    "unchanged",
    "untracked",
    "departed",
    "unresolved",
]


def _record(outcome: MemberOutcome, ctx: WebhookContext, **fields: Any) -> MemberOutcome:
    incr_metric("members.transition", outcome=outcome)
    level = logging.WARNING if outcome in {"untracked", "unresolved"} else logging.INFO
    log_event("member_transition", level=level, request_id=ctx.request_id, outcome=outcome, **fields)
    return outcome


def _resolve(payload: dict[str, Any], ctx: WebhookContext, member_id: str) -> TierResolution | None:
    resolution = resolve_tier(primary_resource(payload), included_resources(payload), ctx.tiers)
    strategy = resolution.strategy if resolution else "none"
    incr_metric("tier.resolution", strategy=strategy, resource="member")
    if resolution is None:
        log_event(
            "tier_resolution_failed",
            level=logging.WARNING,
            request_id=ctx.request_id,
            member_id=member_id,
        )
    return resolution


def _stored_tier(ctx: WebhookContext, member: TrackedMember | None) -> Tier | None:
    if member is None:
        return None
    return ctx.tiers.get_by_id(member.current_tier_id) or ctx.tiers.free


def _with_stored_details(identity: MemberIdentity, existing: TrackedMember | None) -> MemberIdentity:
    if existing is None:
        return identity
    full_name = existing.full_name if identity.full_name == UNKNOWN_MEMBER else identity.full_name
    return MemberIdentity(identity.member_id, full_name, identity.email or existing.email)


def _persist(identity: MemberIdentity, tier: Tier, existing: TrackedMember | None) -> None:
    now = now_ms()
    store.upsert_tracked_member(
        TrackedMember(
            member_id=identity.member_id,
            full_name=identity.full_name,
            current_tier_id=tier.external_id,
            email=identity.email,
            joined_at=existing.joined_at if existing else now,
            updated_at=now,
        )
    )


def _notify_log(ctx: WebhookContext, identity: MemberIdentity, tier: Tier, *, upgrade: bool) -> bool:
    # Member alerts never reach tier channels.
    message = build_member_message(
        full_name=identity.full_name,
        tier_name=tier.name,
        is_upgrade=upgrade,
        template=ctx.notifier.message_template("member_upgrade" if upgrade else "welcome"),
    )
    return ctx.notifier.send_to_log_channel(message)


def handle_member_create(payload: dict[str, Any], ctx: WebhookContext) -> MemberOutcome:
    """members:create and members:pledge:create."""
    identity = member_identity(payload)
    existing = store.get_tracked_member(identity.member_id)
    identity = _with_stored_details(identity, existing)
    resolution = _resolve(payload, ctx, identity.member_id)

    if resolution is None:
        tier = _stored_tier(ctx, existing) or ctx.tiers.free
        _persist(identity, tier, existing)
        return _record("unresolved", ctx, member_id=identity.member_id, tier=tier.name)

    tier = resolution.tier
    _persist(identity, tier, existing)
    if existing is not None and existing.current_tier_id == tier.external_id:
        return _record("duplicate", ctx, member_id=identity.member_id, tier=tier.name)

    delivered = _notify_log(ctx, identity, tier, upgrade=False)
    return _record(
        "created",
        ctx,
        member_id=identity.member_id,
        tier=tier.name,
        strategy=resolution.strategy,
        delivered=delivered,
    )


def handle_member_update(payload: dict[str, Any], ctx: WebhookContext) -> MemberOutcome:
    """members:update and members:pledge:update; downgrades stay silent."""
    identity = member_identity(payload)
    existing = store.get_tracked_member(identity.member_id)
    identity = _with_stored_details(identity, existing)
    previous = _stored_tier(ctx, existing)
    resolution = _resolve(payload, ctx, identity.member_id)

    if resolution is None:
        tier = previous or ctx.tiers.free
        _persist(identity, tier, existing)
        return _record("unresolved", ctx, member_id=identity.member_id, tier=tier.name)

    tier = resolution.tier
    _persist(identity, tier, existing)
    if previous is None:
        return _record("untracked", ctx, member_id=identity.member_id, tier=tier.name)

    fields = {"member_id": identity.member_id, "old_tier": previous.name, "new_tier": tier.name}
    if is_upgrade(previous.rank, tier.rank):
        delivered = _notify_log(ctx, identity, tier, upgrade=True)
        return _record("upgraded", ctx, delivered=delivered, **fields)
    if tier.rank < previous.rank:
        return _record("downgraded", ctx, **fields)
    return _record("unchanged", ctx, **fields)


def handle_member_delete(payload: dict[str, Any], ctx: WebhookContext) -> MemberOutcome:
    """members:delete and members:pledge:delete: drop to Free, tell the log channel only."""
    identity = member_identity(payload)
    existing = store.get_tracked_member(identity.member_id)
    identity = _with_stored_details(identity, existing)
    previous = _stored_tier(ctx, existing)

    _persist(identity, ctx.tiers.free, existing)
    message = build_departure_message(
        full_name=identity.full_name,
        previous_tier_name=previous.name if previous and previous != ctx.tiers.free else None,
        template=ctx.notifier.message_template("member_departed"),
    )
    delivered = ctx.notifier.send_to_log_channel(message)
    return _record(
        "departed",
        ctx,
        member_id=identity.member_id,
        old_tier=previous.name if previous else None,
        delivered=delivered,
    )
