#!/usr/bin/env python3
"""
Sign a sample Patreon payload and POST it to a running instance.

Usage: python scripts/send_test_webhook.py posts:update [--url http://localhost:8000/webhooks/patreon]
"""

import argparse
import json
import os
import sys

import httpx
from dotenv import load_dotenv

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)
load_dotenv(os.path.join(project_root, ".env"))

from src.domain.signature import compute_signature  # noqa: E402


def _post(tier_id: str) -> dict:
    return {
        "data": {
            "id": "sample-post-1",
            "type": "post",
            "attributes": {"title": "Sample Chapter", "url": "/posts/sample-chapter", "tags": ["sample"]},
            "relationships": {"tiers": {"data": [{"type": "tier", "id": tier_id}]}},
        },
        "included": [],
    }


def _member(amount_cents: int) -> dict:
    return {
        "data": {
            "id": "sample-member-1",
            "type": "member",
            "attributes": {
                "full_name": "Sample Patron",
                "email": "patron@example.com",
                "currently_entitled_amount_cents": amount_cents,
            },
        },
        "included": [],
    }


SAMPLES = {
    "members:create": lambda tier: _member(tier["pledge_cents"]),
    "members:update": lambda tier: _member(tier["pledge_cents"]),
    "members:delete": lambda tier: _member(0),
    "members:pledge:create": lambda tier: _member(tier["pledge_cents"]),
    "members:pledge:update": lambda tier: _member(tier["pledge_cents"]),
    "members:pledge:delete": lambda tier: _member(0),
    "posts:publish": lambda tier: _post(tier["id"]),
    "posts:update": lambda tier: _post(tier["id"]),
    "posts:delete": lambda tier: _post(tier["id"]),
}


def _pick_tier(name: str | None) -> dict:
    tiers = json.loads(os.getenv("TIER_CONFIG") or "[]")
    if not tiers:
        raise SystemExit("TIER_CONFIG is empty; run scripts/fetch_patreon_config.py first")
    if name:
        for tier in tiers:
            if tier["name"].lower() == name.lower():
                return tier
        raise SystemExit(f"Tier {name!r} is not in TIER_CONFIG")
    return max(tiers, key=lambda tier: tier["rank"])


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("event_type", choices=sorted(SAMPLES))
    parser.add_argument("--tier", help="tier name from TIER_CONFIG (defaults to the highest rank)")
    parser.add_argument("--url", default="http://localhost:8000/webhooks/patreon")
    args = parser.parse_args()

    secret = os.getenv("PATREON_WEBHOOK_SECRET")
    if not secret:
        raise SystemExit("PATREON_WEBHOOK_SECRET is not set")

    tier = _pick_tier(args.tier)
    tier.setdefault("pledge_cents", tier.get("cents") or tier.get("pledgeCents") or 0)
    body = json.dumps(SAMPLES[args.event_type](tier)).encode("utf-8")
    response = httpx.post(
        args.url,
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Patreon-Event": args.event_type,
            "X-Patreon-Signature": compute_signature(body, secret),
        },
        timeout=15.0,
    )
    print(f"{response.status_code} {response.text}")


if __name__ == "__main__":
    main()
