#!/usr/bin/env python3
"""Database migration script - creates all tables and the DynamoDB table."""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from officemate.config import get_settings, redact_url
from officemate.db.database import close_db, init_db
from officemate.profile.route_preferences import RoutePreferenceStore


async def main(with_dynamodb: bool):
    """Run database migrations."""
    settings = get_settings()

    print(f"Database URL: {redact_url(settings.database_url)}")
    print("Creating database tables...")

    try:
        await init_db()
        print("Database tables created successfully!")
    except Exception as e:
        print(f"Error creating tables: {e}")
        raise
    finally:
        await close_db()

    if with_dynamodb:
        store = RoutePreferenceStore()
        created = await store.ensure_table()
        print(f"DynamoDB table {store.table_name}: {'created' if created else 'already exists'}")


if __name__ == "__main__":
    asyncio.run(main("--dynamodb" in sys.argv[1:]))
