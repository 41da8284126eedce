from __future__ import annotations

from typing import Any

from src.db import get_supabase
from src.domain.tiers import normalize_tier_name
from src.models.tiers import TierMapping
from src.models.tracking import TrackedMember, TrackedPost


class StoreError(Exception):
    """The state store could not complete a read or write."""


def _execute(description: str, query: Any) -> list[dict[str, Any]]:
    try:
        result = query.execute()
    except Exception as exc:
        raise StoreError(f"{description} failed: {exc}") from exc
    return list(result.data or [])


def _table(name: str) -> Any:
    return get_supabase().table(name)


def get_tracked_post(post_id: str) -> TrackedPost | None:
    rows = _execute(
        f"get tracked post {post_id}",
        _table("tracked_posts").select("*").eq("post_id", post_id).limit(1),
    )
    return TrackedPost(**rows[0]) if rows else None


def upsert_tracked_post(post: TrackedPost) -> None:
    _execute(
        f"upsert tracked post {post.post_id}",
        _table("tracked_posts").upsert(post.model_dump(), on_conflict="post_id"),
    )


def delete_tracked_post(post_id: str) -> bool:
    rows = _execute(
        f"delete tracked post {post_id}",
        _table("tracked_posts").delete().eq("post_id", post_id),
    )
    return bool(rows)


def get_tracked_member(member_id: str) -> TrackedMember | None:
    rows = _execute(
        f"get tracked member {member_id}",
        _table("tracked_members").select("*").eq("member_id", member_id).limit(1),
    )
    return TrackedMember(**rows[0]) if rows else None


def upsert_tracked_member(member: TrackedMember) -> None:
    _execute(
        f"upsert tracked member {member.member_id}",
        _table("tracked_members").upsert(member.model_dump(), on_conflict="member_id"),
    )


def get_tier_mapping(tier_id: str) -> TierMapping | None:
    rows = _execute(
        f"get tier mapping {tier_id}",
        _table("tier_mappings").select("*").eq("tier_id", tier_id).limit(1),
    )
    return TierMapping(**rows[0]) if rows else None


def list_tier_mappings() -> list[TierMapping]:
    rows = _execute(
        "list tier mappings",
        _table("tier_mappings").select("*").order("tier_rank", desc=True),
    )
    return [TierMapping(**row) for row in rows]


def get_tier_mapping_by_name(tier_name: str) -> TierMapping | None:
    rows = _execute(
        f"get tier mapping {tier_name}",
        _table("tier_mappings").select("*").eq("tier_name", tier_name).limit(1),
    )
    if rows:
        return TierMapping(**rows[0])
    # Admins type tier names by hand, so "gold" or "Gold." must still find "Gold".
    wanted = normalize_tier_name(tier_name)
    for mapping in list_tier_mappings():
        if normalize_tier_name(mapping.tier_name) == wanted:
            return mapping
    return None


def get_custom_message(message_type: str) -> str | None:
    rows = _execute(
        f"get custom message {message_type}",
        _table("custom_messages").select("content").eq("message_type", message_type).limit(1),
    )
    if not rows:
        return None
    content = rows[0].get("content")
    return str(content) if content else None
