from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from src.domain.resolver import find_included


UNKNOWN_MEMBER = "Unknown Member"


class MalformedEventError(ValueError):
    """The webhook body is missing a field every handler relies on."""


def now_ms() -> int:
    return int(time.time() * 1000)


def primary_resource(payload: dict[str, Any]) -> dict[str, Any]:
    data = payload.get("data")
    if not isinstance(data, dict):
        raise MalformedEventError("Webhook payload has no data object")
    return data


def included_resources(payload: dict[str, Any]) -> list[dict[str, Any]]:
    included = payload.get("included")
    if not isinstance(included, list):
        return []
    return [item for item in included if isinstance(item, dict)]


def attributes(resource: dict[str, Any]) -> dict[str, Any]:
    value = resource.get("attributes")
    return value if isinstance(value, dict) else {}


def resource_id(resource: dict[str, Any]) -> str:
    raw = resource.get("id")
    if raw is None or str(raw).strip() == "":
        raise MalformedEventError("Webhook resource has no id")
    return str(raw)


def post_title(resource: dict[str, Any]) -> str:
    return str(attributes(resource).get("title") or "Untitled Post")


def post_url(resource: dict[str, Any], post_id: str, base_url: str) -> str:
    base = base_url.rstrip("/")
    raw = attributes(resource).get("url")
    if not raw:
        return f"{base}/posts/{post_id}"
    url = str(raw)
    if url.startswith("/"):
        return f"{base}{url}"
    return url


def post_tags(resource: dict[str, Any]) -> list[str]:
    raw = attributes(resource).get("tags")
    if not isinstance(raw, list):
        return []
    return [str(tag) for tag in raw if tag]


@dataclass(frozen=True)
class MemberIdentity:
    member_id: str
    full_name: str
    email: str | None


def _relationship_ref(resource: dict[str, Any], name: str) -> dict[str, Any] | None:
    relationships = resource.get("relationships")
    if not isinstance(relationships, dict):
        return None
    relationship = relationships.get(name)
    data = relationship.get("data") if isinstance(relationship, dict) else None
    return data if isinstance(data, dict) and data.get("id") is not None else None


def member_identity(payload: dict[str, Any]) -> MemberIdentity:
    """Identify the member behind a members:* or members:pledge:* event.

    Member resources carry their own name and email. Pledge-shaped resources
    point at the patron (or user) relationship and side-load the user.
    """
    resource = primary_resource(payload)
    if resource.get("type") != "member":
        ref = _relationship_ref(resource, "patron") or _relationship_ref(resource, "user")
        if ref is not None:
            user = find_included(included_resources(payload), "user", ref["id"]) or {}
            user_attributes = attributes(user)
            return MemberIdentity(
                member_id=str(ref["id"]),
                full_name=str(user_attributes.get("full_name") or UNKNOWN_MEMBER),
                email=user_attributes.get("email") or None,
            )
    member_attributes = attributes(resource)
    return MemberIdentity(
        member_id=resource_id(resource),
        full_name=str(member_attributes.get("full_name") or UNKNOWN_MEMBER),
        email=member_attributes.get("email") or None,
    )
