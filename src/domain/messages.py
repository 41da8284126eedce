from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Literal

from src.domain.tiers import tier_color, tier_emoji


MessageType = Literal["welcome", "post_new", "post_waterfall", "member_upgrade", "member_departed"]

_PLACEHOLDER = re.compile(r"\{(\w+)\}")
_DEPARTED_COLOR = 0xFF0000


def format_message(template: str, values: dict[str, str | None]) -> str:
    """Fill ``{name}`` placeholders; unknown or empty ones are left as written."""

    def _replace(match: re.Match[str]) -> str:
        value = values.get(match.group(1))
        return value if value else match.group(0)

    return _PLACEHOLDER.sub(_replace, template)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _with_content(embed: dict[str, Any], template: str | None, values: dict[str, str | None]) -> dict[str, Any]:
    message: dict[str, Any] = {"embeds": [embed]}
    if template:
        message["content"] = format_message(template, values)
    return message


def build_post_message(
    *,
    title: str,
    url: str,
    tier_name: str,
    tags: list[str] | None = None,
    is_update: bool = False,
    template: str | None = None,
) -> dict[str, Any]:
    if is_update:
        description = f"✨ **Update:** This chapter is now available for **{tier_name}** members!"
    else:
        description = f"\U0001F195 **New chapter available for {tier_name} members!**"
    embed: dict[str, Any] = {
        "title": f"{tier_emoji(tier_name)} {title}"[:256],
        "description": description,
        "color": tier_color(tier_name),
        "timestamp": _now_iso(),
    }
    if url.startswith(("http://", "https://")):
        embed["url"] = url
    if tags:
        embed["fields"] = [
            {"name": "\U0001F3F7️ Tags", "value": ", ".join(f"#{tag}" for tag in tags)[:1024], "inline": True}
        ]
    return _with_content(embed, template, {"tier": tier_name, "title": title, "url": url})


def build_member_message(
    *,
    full_name: str,
    tier_name: str,
    is_upgrade: bool = False,
    template: str | None = None,
) -> dict[str, Any]:
    emoji = tier_emoji(tier_name)
    if is_upgrade:
        title = "\U0001F4C8 Member Upgrade!"
        description = f"**{full_name}** just upgraded to **{emoji} {tier_name}**! Welcome to the inner circle."
    else:
        title = "\U0001F389 New Member!"
        description = f"**{full_name}** has pledged to the **{emoji} {tier_name}** tier!"
    embed = {
        "title": title,
        "description": description,
        "color": tier_color(tier_name),
        "timestamp": _now_iso(),
    }
    return _with_content(embed, template, {"user": full_name, "tier": tier_name})


def build_departure_message(*, full_name: str, previous_tier_name: str | None, template: str | None = None) -> dict[str, Any]:
    description = f"**{full_name}** has ended their pledge."
    if previous_tier_name:
        description = f"**{full_name}** has ended their **{previous_tier_name}** pledge."
    embed = {
        "title": "\U0001F44B Member Departed",
        "description": description,
        "color": _DEPARTED_COLOR,
        "timestamp": _now_iso(),
    }
    return _with_content(embed, template, {"user": full_name, "tier": previous_tier_name})
