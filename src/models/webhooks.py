from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


PatreonEventType = Literal[
    "members:create",
    "members:update",
    "members:delete",
    "members:pledge:create",
    "members:pledge:update",
    "members:pledge:delete",
    "posts:publish",
    "posts:update",
    "posts:delete",
]


class WebhookAck(BaseModel):
    received: bool = True
    event_type: str
    outcome: str


class HealthResponse(BaseModel):
    status: Literal["ok"]
    timestamp: str
