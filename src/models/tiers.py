from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field


class TierDefinition(BaseModel):
    """One entry of the TIER_CONFIG list."""

    name: str
    id: str
    rank: int
    pledge_cents: int | None = Field(
        default=None,
        validation_alias=AliasChoices("pledge_cents", "pledgeCents", "cents"),
    )


class TierMapping(BaseModel):
    tier_id: str
    tier_name: str
    tier_rank: int
    channel_id: str
