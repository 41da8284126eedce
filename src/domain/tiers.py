from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

from src.models.tiers import TierDefinition


FREE_TIER_ID = "free"
_TRAILING_PUNCTUATION = re.compile(r"[\s.,;:!?]+$")

_TIER_COLORS = {
    "diamond": 0x00FFFF,
    "gold": 0xFFD700,
    "silver": 0xC0C0C0,
    "bronze": 0xCD7F32,
    "free": 0x808080,
}
_TIER_EMOJIS = {
    "diamond": "\U0001F48E",
    "gold": "\U0001F947",
    "silver": "\U0001F948",
    "bronze": "\U0001F949",
    "free": "\U0001F193",
}
_DEFAULT_COLOR = 0x5865F2
_DEFAULT_EMOJI = "⭐"


class TierConfigurationError(ValueError):
    """Raised when TIER_CONFIG cannot produce a consistent tier table."""


def normalize_tier_name(value: str | None) -> str:
    if not value:
        return ""
    return _TRAILING_PUNCTUATION.sub("", str(value).strip().lower())


@dataclass(frozen=True)
class Tier:
    name: str
    external_id: str
    rank: int
    pledge_cents: int | None = None

    @property
    def key(self) -> str:
        return normalize_tier_name(self.name)


@dataclass(frozen=True)
class TierTable:
    """Immutable lookup tables built once from the tier configuration."""

    free: Tier
    by_id: Mapping[str, Tier] = field(default_factory=dict)
    by_name: Mapping[str, Tier] = field(default_factory=dict)
    by_cents: Mapping[int, Tier] = field(default_factory=dict)
    by_rank: Mapping[int, Tier] = field(default_factory=dict)

    def get_by_id(self, tier_id: str | None) -> Tier | None:
        if tier_id is None:
            return None
        return self.by_id.get(str(tier_id))

    def get_by_name(self, name: str | None) -> Tier | None:
        return self.by_name.get(normalize_tier_name(name))

    def get_by_cents(self, cents: int | None) -> Tier | None:
        if cents is None:
            return None
        return self.by_cents.get(cents)

    def get_by_rank(self, rank: int) -> Tier | None:
        return self.by_rank.get(rank)

    def ordered(self) -> list[Tier]:
        return [self.by_rank[rank] for rank in sorted(self.by_rank)]


def lowest_ranked(tiers: Iterable[Tier]) -> Tier | None:
    candidates = list(tiers)
    if not candidates:
        return None
    return min(candidates, key=lambda tier: tier.rank)


def build_tier_table(definitions: Iterable[TierDefinition], free_tier_name: str = "Free") -> TierTable:
    tiers = [
        Tier(
            name=definition.name.strip(),
            external_id=str(definition.id),
            rank=int(definition.rank),
            pledge_cents=definition.pledge_cents,
        )
        for definition in definitions
    ]

    seen_ranks: set[int] = set()
    for tier in tiers:
        if tier.rank in seen_ranks:
            raise TierConfigurationError(f"Duplicate tier rank in TIER_CONFIG: {tier.rank}")
        seen_ranks.add(tier.rank)

    free_key = normalize_tier_name(free_tier_name)
    free = next((tier for tier in tiers if tier.key == free_key), None)
    if free is None:
        lowest = min(seen_ranks) if seen_ranks else 1
        free = Tier(name=free_tier_name, external_id=FREE_TIER_ID, rank=min(0, lowest - 1), pledge_cents=0)
        tiers.append(free)
    elif any(tier.rank < free.rank for tier in tiers):
        raise TierConfigurationError(f"Tier {free.name!r} must have the lowest rank")

    by_id: dict[str, Tier] = {}
    by_name: dict[str, Tier] = {}
    by_cents: dict[int, Tier] = {}
    by_rank: dict[int, Tier] = {}
    for tier in tiers:
        by_id[tier.external_id] = tier
        by_name[tier.key] = tier
        by_rank[tier.rank] = tier
        if tier.pledge_cents is not None:
            by_cents.setdefault(tier.pledge_cents, tier)
    # Members without a paid tier are stored with the free id even when the configured Free tier has another id.
    by_id.setdefault(FREE_TIER_ID, free)

    return TierTable(
        free=free,
        by_id=MappingProxyType(by_id),
        by_name=MappingProxyType(by_name),
        by_cents=MappingProxyType(by_cents),
        by_rank=MappingProxyType(by_rank),
    )


def is_waterfall(old_rank: int, new_rank: int) -> bool:
    return new_rank < old_rank


def is_upgrade(old_rank: int, new_rank: int) -> bool:
    return new_rank > old_rank


def tier_color(tier_name: str | None) -> int:
    return _TIER_COLORS.get(normalize_tier_name(tier_name), _DEFAULT_COLOR)


def tier_emoji(tier_name: str | None) -> str:
    return _TIER_EMOJIS.get(normalize_tier_name(tier_name), _DEFAULT_EMOJI)
