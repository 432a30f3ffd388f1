#!/usr/bin/env python3
"""Import legacy users from MongoDB into the relational database.

Usage:
    python scripts/migrate_mongo.py                 # Import everything
    python scripts/migrate_mongo.py --dry-run       # Validate without writing
    python scripts/migrate_mongo.py --batch-size 200
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from officemate.config import get_settings, redact_url
from officemate.db.database import close_db, get_session_factory, init_db
from officemate.migration import LegacyUserImporter
from officemate.migration.mongo import DEFAULT_BATCH_SIZE, open_legacy_collection


async def main(args) -> int:
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    client, collection = open_legacy_collection(
        args.mongo_url or settings.mongo_url,
        args.database or settings.mongo_database,
        args.collection or settings.mongo_users_collection,
    )
    print(f"Source: {redact_url(args.mongo_url or settings.mongo_url)}")
    print(f"Target: {redact_url(settings.database_url)}")
    if args.dry_run:
        print("DRY RUN - nothing will be written")

    try:
        await init_db()
        async with get_session_factory()() as session:
            importer = LegacyUserImporter(
                collection, session, batch_size=args.batch_size, dry_run=args.dry_run
            )
            report = await importer.run()
    finally:
        client.close()
        await close_db()

    print(f"Done: {report.summary()}")
    for error in report.errors:
        print(f"  skipped {error}")
    return 1 if report.errors and args.strict else 0


def parse_args():
    parser = argparse.ArgumentParser(description="Import legacy MongoDB users")
    parser.add_argument("--mongo-url", help="Override MONGO_URL")
    parser.add_argument("--database", help="Override MONGO_DATABASE")
    parser.add_argument("--collection", help="Override MONGO_USERS_COLLECTION")
    parser.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE)
    parser.add_argument("--dry-run", action="store_true", help="Roll back instead of committing")
    parser.add_argument("--strict", action="store_true", help="Exit 1 if any document was skipped")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args()


if __name__ == "__main__":
    sys.exit(asyncio.run(main(parse_args())))
