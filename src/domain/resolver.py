from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from src.domain.tiers import Tier, TierTable, lowest_ranked


ResolutionStrategy = Literal["relationship", "identifier", "pledge_amount", "explicit_free"]

# Relationship names Patreon has used for "which tiers gate this resource".
_TIER_RELATIONSHIPS = ("tiers", "access_rules", "currently_entitled_tiers", "tier")
_AMOUNT_ATTRIBUTES = (
    "min_cents_pledged_to_view",
    "currently_entitled_amount_cents",
    "amount_cents",
    "will_pay_amount_cents",
)


@dataclass(frozen=True)
class TierResolution:
    tier: Tier
    strategy: ResolutionStrategy

    @property
    def name(self) -> str:
        return self.tier.name

    @property
    def rank(self) -> int:
        return self.tier.rank


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _relationship_data(resource: dict[str, Any], name: str) -> list[dict[str, Any]] | None:
    """Return the reference list of a relationship, or None when it is absent."""
    relationship = _as_dict(resource.get("relationships")).get(name)
    if not isinstance(relationship, dict) or "data" not in relationship:
        return None
    data = relationship["data"]
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    return []


def relationship_tier_ids(resource: dict[str, Any]) -> list[str]:
    ids: list[str] = []
    for name in _TIER_RELATIONSHIPS:
        for ref in _relationship_data(resource, name) or []:
            if ref.get("id") is not None and str(ref["id"]) not in ids:
                ids.append(str(ref["id"]))
    return ids


def attribute_tier_ids(resource: dict[str, Any]) -> list[str]:
    raw = _as_dict(resource.get("attributes")).get("tiers")
    if not isinstance(raw, list):
        return []
    ids: list[str] = []
    for item in raw:
        value = item.get("id") if isinstance(item, dict) else item
        if value is not None and str(value) not in ids:
            ids.append(str(value))
    return ids


def find_included(included: list[dict[str, Any]] | None, resource_type: str, resource_id: Any) -> dict[str, Any] | None:
    if resource_id is None:
        return None
    for item in included or []:
        if isinstance(item, dict) and item.get("type") == resource_type and str(item.get("id")) == str(resource_id):
            return item
    return None


def pledge_amount_cents(resource: dict[str, Any]) -> int | None:
    attributes = _as_dict(resource.get("attributes"))
    for key in _AMOUNT_ATTRIBUTES:
        raw = attributes.get(key)
        if raw is None:
            continue
        try:
            return int(raw)
        except (TypeError, ValueError):
            continue
    return None


def _reference_matches(
    resource: dict[str, Any],
    included: list[dict[str, Any]] | None,
    tiers: TierTable,
) -> list[tuple[Tier, ResolutionStrategy]]:
    """Resolve every tier reference on its own: included title first, then its id."""
    matches: list[tuple[Tier, ResolutionStrategy]] = []
    for tier_id in relationship_tier_ids(resource):
        entry = find_included(included, "tier", tier_id)
        title = _as_dict(entry.get("attributes")).get("title") if entry else None
        tier = tiers.get_by_name(title) if title else None
        if tier is not None:
            matches.append((tier, "relationship"))
            continue
        tier = tiers.get_by_id(tier_id)
        if tier is not None:
            matches.append((tier, "identifier"))
    for tier_id in attribute_tier_ids(resource):
        tier = tiers.get_by_id(tier_id)
        if tier is not None:
            matches.append((tier, "identifier"))
    return matches


def _is_explicitly_free(resource: dict[str, Any]) -> bool:
    attributes = _as_dict(resource.get("attributes"))
    if attributes.get("is_public") is True:
        return True
    if pledge_amount_cents(resource) == 0:
        return True
    entitled = _relationship_data(resource, "currently_entitled_tiers")
    return entitled is not None and len(entitled) == 0


def resolve_tier(
    resource: dict[str, Any] | None,
    included: list[dict[str, Any]] | None,
    tiers: TierTable,
) -> TierResolution | None:
    """Resolve the tier that gates a post or pledge resource.

    Each tier reference is resolved on its own, by the title of its
    side-loaded ``included`` tier and otherwise by its id in the configured
    table. When several tiers gate the resource the lowest-ranked one wins,
    since its audience is the one that just gained access. Without any
    usable reference the exact pledge amount is tried, and finally an
    explicit free signal in the payload. Returns None when nothing in the
    payload identifies a tier.
    """
    if not isinstance(resource, dict):
        return None

    matches = _reference_matches(resource, included, tiers)
    tier = lowest_ranked(match for match, _ in matches)
    if tier is not None:
        strategy = next(strategy for match, strategy in matches if match is tier)
        return TierResolution(tier=tier, strategy=strategy)

    tier = tiers.get_by_cents(pledge_amount_cents(resource))
    if tier is not None:
        return TierResolution(tier=tier, strategy="pledge_amount")

    if _is_explicitly_free(resource):
        return TierResolution(tier=tiers.free, strategy="explicit_free")
    return None
