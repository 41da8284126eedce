from datetime import datetime, timezone
from uuid import uuid4

from fastapi import FastAPI, Request

from src.config import settings
from src.handlers.context import get_tier_table
from src.models.webhooks import HealthResponse
from src.observability import configure_logging, enable_discord_log_forwarding, log_event
from src.routers import webhooks

configure_logging(settings.log_level)
if settings.discord_log_forwarding:
    enable_discord_log_forwarding(
        bot_token=settings.discord_bot_token,
        channel_id=settings.discord_log_channel_id,
        base_url=settings.discord_api_base_url,
        level=settings.discord_log_forwarding_level,
    )
_tiers = get_tier_table()
log_event(
    "tier_table_loaded",
    tiers=[{"name": tier.name, "id": tier.external_id, "rank": tier.rank} for tier in _tiers.ordered()],
)

app = FastAPI(title="Patreon Tier Waterfall", version="0.1.0")


@app.middleware("http")
async def attach_request_id(request: Request, call_next):
    request_id = (
        request.headers.get("X-Request-ID")
        or request.headers.get("X-Correlation-ID")
        or str(uuid4())
    )
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response

app.include_router(webhooks.router)


@app.get("/")
async def root():
    return {"status": "ok", "service": "patreon-tier-waterfall"}


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc).isoformat())
