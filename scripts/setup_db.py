#!/usr/bin/env python3
"""
Database setup script for the article engine.

Creates the article_engine database and all content store tables.

Usage:
    python scripts/setup_db.py
    python scripts/setup_db.py --seed-demo   # also insert a demo tenant
"""
import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import asyncpg
from dotenv import load_dotenv
from sqlalchemy.engine import make_url

load_dotenv(Path(__file__).parent.parent / ".env")

from article_engine.shared.database import check_db_connection, dispose_engine, get_database_url, init_db
from article_engine.shared.models import Base
from article_engine.nodes.db_ops import ContentStore

DEMO_MEDIA_ID = "demo"


async def create_database(database_url: str):
    """Create the target database if it doesn't exist."""
    url = make_url(database_url)
    # Connect to default postgres database
    conn = await asyncpg.connect(
        user=url.username,
        password=url.password,
        host=url.host or "localhost",
        port=url.port or 5432,
        database="postgres",
    )

    try:
        exists = await conn.fetchval(
            "SELECT 1 FROM pg_database WHERE datname = $1",
            url.database,
        )

        if not exists:
            await conn.execute(f'CREATE DATABASE "{url.database}"')
            print(f"✓ Created database: {url.database}")
        else:
            print(f"✓ Database already exists: {url.database}")

    finally:
        await conn.close()


async def create_tables():
    """Create all tables using SQLAlchemy models."""
    await init_db()

    print("✓ Created tables:")
    for table_name in Base.metadata.tables.keys():
        print(f"  - {table_name}")


async def seed_demo_tenant():
    """Insert one category, writer and image pattern for a smoke run."""
    store = ContentStore()
    if await store.get("categories", "travel"):
        print("✓ Demo tenant already seeded")
        return

    await store.create("categories", {
        "id": "travel",
        "media_id": DEMO_MEDIA_ID,
        "name": "国内旅行",
        "slug": "travel",
        "description": "Domestic travel guides for Japan",
    })
    await store.create("writers", {"id": "w1", "media_id": DEMO_MEDIA_ID, "name": "編集部"})
    await store.create("image_prompt_patterns", {
        "id": "p1",
        "media_id": DEMO_MEDIA_ID,
        "name": "Editorial photo",
        "prompt": "High quality editorial photograph, natural light, soft colours, no text.",
        "size": "1792x1024",
    })
    print(f"✓ Seeded demo tenant: media_id={DEMO_MEDIA_ID} category=travel writer=w1 pattern=p1")


async def main(seed_demo: bool) -> int:
    database_url = get_database_url()

    print("=" * 60)
    print("ARTICLE ENGINE DATABASE SETUP")
    print("=" * 60)
    print()

    step = 1
    if database_url.startswith("postgresql"):
        print(f"{step}. Creating database...")
        await create_database(database_url)
        print()
        step += 1

    if not await check_db_connection():
        print(f"✗ Cannot connect to {database_url}", file=sys.stderr)
        await dispose_engine()
        return 1

    print(f"{step}. Creating tables...")
    await create_tables()
    print()
    step += 1

    if seed_demo:
        print(f"{step}. Seeding demo tenant...")
        await seed_demo_tenant()
        print()

    await dispose_engine()

    print("=" * 60)
    print("✓ Setup complete!")
    print()
    print(f"Connection URL: {database_url}")
    if "DATABASE_URL" not in os.environ:
        print()
        print("Add to your .env:")
        print(f"  DATABASE_URL={database_url}")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create article engine tables")
    parser.add_argument("--seed-demo", action="store_true", help="Insert a demo tenant (travel / w1 / p1)")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.seed_demo)))
