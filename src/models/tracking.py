from __future__ import annotations

from pydantic import BaseModel


class TrackedPost(BaseModel):
    post_id: str
    last_tier_access: str
    title: str
    updated_at: int


class TrackedMember(BaseModel):
    member_id: str
    full_name: str
    current_tier_id: str
    email: str | None = None
    joined_at: int
    updated_at: int
