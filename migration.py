"""
Migration script to prepare a MongoDB database for the library service
Run this script once per database (it is safe to re-run)

- creates the unique indexes on id, author/member email and book ISBN
- seeds the id counters from rows imported with existing integer ids

Usage:
    python migration.py
"""

import asyncio

from config import load_settings
from database import COLLECTIONS, create_client, ensure_indexes


async def migrate(settings=None):
    if settings is None:
        settings = load_settings()
    client = create_client(settings)
    db = client[settings.mongo_db]

    print("Creating indexes...")
    await ensure_indexes(db)

    for name in COLLECTIONS:
        highest = await db[name].find_one({"id": {"$type": "int"}}, sort=[("id", -1)])
        if not highest:
            print(f"'{name}': no existing rows, counter left as is")
            continue

        counter = await db.counters.find_one({"_id": name})
        current = counter["sequence_value"] if counter else 0
        if current >= highest["id"]:
            print(f"'{name}': counter already at {current}")
            continue

        await db.counters.update_one(
            {"_id": name}, {"$set": {"sequence_value": highest["id"]}}, upsert=True
        )
        print(f"'{name}': counter moved from {current} to {highest['id']}")

    print("Migration completed successfully!")
    client.close()


if __name__ == "__main__":
    print("Library Management System - Database Migration")
    print("=" * 50)
    asyncio.run(migrate())
