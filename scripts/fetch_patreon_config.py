#!/usr/bin/env python3
"""
Print a TIER_CONFIG line for the campaign owned by PATREON_ACCESS_TOKEN.

Ranks follow price: the cheapest paid tier gets rank 1, Free stays at 0.
Run from project root: python scripts/fetch_patreon_config.py
"""

import json
import os
import sys

import httpx
from dotenv import load_dotenv

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(project_root, ".env"))

CAMPAIGNS_URL = "https://www.patreon.com/api/oauth2/v2/campaigns"


def build_tier_config(included: list[dict]) -> list[dict]:
    tiers = [item for item in included if item.get("type") == "tier"]
    paid = sorted(
        (tier for tier in tiers if (tier.get("attributes") or {}).get("amount_cents")),
        key=lambda tier: tier["attributes"]["amount_cents"],
    )
    config = [{"name": "Free", "id": "free", "rank": 0, "pledge_cents": 0}]
    for rank, tier in enumerate(paid, start=1):
        attributes = tier["attributes"]
        config.append(
            {
                "name": attributes.get("title") or f"Tier {tier['id']}",
                "id": str(tier["id"]),
                "rank": rank,
                "pledge_cents": int(attributes["amount_cents"]),
            }
        )
    return config


def main():
    token = os.getenv("PATREON_ACCESS_TOKEN")
    if not token:
        print("PATREON_ACCESS_TOKEN is missing from .env")
        sys.exit(1)

    print("Connecting to Patreon API...")
    try:
        response = httpx.get(
            CAMPAIGNS_URL,
            params={"include": "tiers", "fields[tier]": "title,amount_cents"},
            headers={"Authorization": f"Bearer {token}"},
            timeout=15.0,
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        print(f"Patreon API request failed: {exc}")
        print("Check that the token is valid and has the campaigns scope.")
        sys.exit(1)

    body = response.json()
    campaigns = body.get("data") or []
    if not campaigns:
        print("No campaign found for this access token.")
        sys.exit(1)

    tier_config = build_tier_config(body.get("included") or [])
    print(f"\nPATREON_CAMPAIGN_ID={campaigns[0]['id']}")
    print(f"TIER_CONFIG='{json.dumps(tier_config)}'")
    print("\nTiers (by price):")
    for tier in tier_config:
        print(f"  rank {tier['rank']:>2}  {tier['name']:<24} {tier['pledge_cents'] / 100:>8.2f}  id={tier['id']}")
    print("\nRanks only need to be unique and ordered; adjust them if your tiers are not priced in order.")


if __name__ == "__main__":
    main()
