from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from src.config import settings
from src.domain.signature import verify_signature
from src.handlers.context import build_context
from src.handlers.dispatch import route_event
from src.handlers.payloads import MalformedEventError
from src.models.webhooks import WebhookAck
from src.observability import incr_metric, log_event
from src.store import StoreError


router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _request_id(request: Request | None) -> str | None:
    if not request:
        return None
    return getattr(getattr(request, "state", None), "request_id", None)


def _event_type_header(request: Request) -> str | None:
    value = request.headers.get("X-Patreon-Event") or request.headers.get("X-Event-Type")
    return value.strip() if value and value.strip() else None


def _signature_header(request: Request) -> str | None:
    return request.headers.get("X-Patreon-Signature") or request.headers.get("X-Signature")


def _parse_payload(raw_body: bytes) -> dict[str, Any]:
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedEventError("Invalid JSON payload") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
        raise MalformedEventError("Webhook payload has no data object")
    if payload.get("included") is not None and not isinstance(payload["included"], list):
        raise MalformedEventError("Webhook payload included must be a list")
    return payload


def _reject(*, request_id: str | None, status_code: int, reason: str, message: str, **fields: Any) -> HTTPException:
    incr_metric("webhook.events.rejected", reason=reason)
    log_event(
        "webhook_rejected",
        level=logging.WARNING,
        request_id=request_id,
        reason=reason,
        status_code=status_code,
        **fields,
    )
    return HTTPException(
        status_code=status_code,
        detail={"type": "webhook_rejected", "provider": "patreon", "reason": reason, "message": message},
    )


@router.post("/patreon", response_model=WebhookAck)
async def ingest_patreon_webhook(request: Request):
    req_id = _request_id(request)
    raw_body = await request.body()
    event_type = _event_type_header(request)
    signature = _signature_header(request)
    incr_metric("webhook.events.received", event_type=event_type or "missing")

    # The signature covers the exact bytes received, so it is checked before any parsing.
    if not verify_signature(raw_body, signature, settings.patreon_webhook_secret):
        raise _reject(
            request_id=req_id,
            status_code=status.HTTP_401_UNAUTHORIZED,
            reason="invalid_signature" if signature else "missing_signature",
            message="Invalid webhook signature",
            event_type=event_type,
            body_length=len(raw_body),
        )
    if not event_type:
        raise _reject(
            request_id=req_id,
            status_code=status.HTTP_400_BAD_REQUEST,
            reason="missing_event_type",
            message="Missing event type header",
        )
    try:
        payload = _parse_payload(raw_body)
    except MalformedEventError as exc:
        raise _reject(
            request_id=req_id,
            status_code=status.HTTP_400_BAD_REQUEST,
            reason="malformed_payload",
            message=str(exc),
            event_type=event_type,
        ) from exc

    data = payload["data"]
    log_event(
        "webhook_received",
        request_id=req_id,
        event_type=event_type,
        resource_type=data.get("type"),
        resource_id=data.get("id"),
        included_count=len(payload.get("included") or []),
    )

    try:
        result = await run_in_threadpool(route_event, event_type, payload, build_context(req_id))
    except MalformedEventError as exc:
        raise _reject(
            request_id=req_id,
            status_code=status.HTTP_400_BAD_REQUEST,
            reason="malformed_payload",
            message=str(exc),
            event_type=event_type,
        ) from exc
    except StoreError as exc:
        incr_metric("webhook.events.failed", event_type=event_type, reason="persistence")
        log_event(
            "webhook_failed",
            level=logging.ERROR,
            request_id=req_id,
            event_type=event_type,
            reason="persistence",
            error=str(exc),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"type": "webhook_processing_failed", "reason": "persistence", "message": "State store unavailable"},
        ) from exc
    except Exception as exc:
        incr_metric("webhook.events.failed", event_type=event_type, reason="unhandled")
        log_event(
            "webhook_failed",
            level=logging.ERROR,
            request_id=req_id,
            event_type=event_type,
            reason="unhandled",
            error=repr(exc),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"type": "webhook_processing_failed", "reason": "unhandled", "message": "Internal server error"},
        ) from exc

    incr_metric("webhook.events.processed", event_type=event_type, outcome=result.outcome)
    log_event(
        "webhook_processed",
        request_id=req_id,
        event_type=event_type,
        handled_as=result.handled_as,
        outcome=result.outcome,
    )
    return WebhookAck(event_type=event_type, outcome=result.outcome)
