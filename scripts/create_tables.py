#!/usr/bin/env python3
"""Create the state tables for the Patreon tier waterfall service."""

import os
import psycopg2
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")

SQL = """
-- 1. tracked_posts: last tier each post was announced to
CREATE TABLE IF NOT EXISTS tracked_posts (
    post_id VARCHAR(64) PRIMARY KEY,
    last_tier_access VARCHAR(255) NOT NULL,
    title TEXT NOT NULL DEFAULT 'Untitled Post',
    updated_at BIGINT NOT NULL
);

-- 2. tracked_members: current tier per patron
CREATE TABLE IF NOT EXISTS tracked_members (
    member_id VARCHAR(64) PRIMARY KEY,
    full_name VARCHAR(255) NOT NULL,
    current_tier_id VARCHAR(64) NOT NULL,
    email VARCHAR(255),
    joined_at BIGINT NOT NULL,
    updated_at BIGINT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tracked_members_tier ON tracked_members(current_tier_id);

-- 3. tier_mappings: Discord channel per tier
CREATE TABLE IF NOT EXISTS tier_mappings (
    tier_id VARCHAR(64) PRIMARY KEY,
    tier_name VARCHAR(255) NOT NULL,
    tier_rank INTEGER NOT NULL,
    channel_id VARCHAR(32) NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tier_mappings_name ON tier_mappings(tier_name);

-- 4. custom_messages: operator overrides for announcement text
CREATE TABLE IF NOT EXISTS custom_messages (
    message_type VARCHAR(32) PRIMARY KEY
        CHECK (message_type IN ('welcome', 'post_new', 'post_waterfall', 'member_upgrade', 'member_departed')),
    content TEXT NOT NULL
);
"""


def main():
    if not DATABASE_URL:
        raise SystemExit("DATABASE_URL is not set")

    print("Connecting to database...")
    conn = psycopg2.connect(DATABASE_URL)
    conn.autocommit = True
    cur = conn.cursor()

    print("Creating tables...")
    cur.execute(SQL)

    # Verify
    cur.execute(
        "SELECT table_name FROM information_schema.tables WHERE table_schema = 'public' "
        "AND table_name IN ('tracked_posts', 'tracked_members', 'tier_mappings', 'custom_messages') "
        "ORDER BY table_name;"
    )
    tables = cur.fetchall()
    print(f"\nTables present: {[t[0] for t in tables]}")

    cur.execute("SELECT tier_name, tier_rank, channel_id FROM tier_mappings ORDER BY tier_rank DESC;")
    mappings = cur.fetchall()
    print(f"Tier mappings: {mappings}")

    cur.close()
    conn.close()
    print("\nDone!")

if __name__ == "__main__":
    main()
