"""
MongoDB Setup Script
Checks the connection and creates the indexes the automation core queries by.
"""
import asyncio
from src.repositories import db_manager
from src.config import settings

COLLECTIONS = ("leads", "progression_rules", "calendar_events")


async def setup_mongodb():
    """Initialize the CRM database with its collections and indexes."""
    print("🔄 Connecting to MongoDB...")
    print(f"   Database: {settings.mongodb_database}")
    print()

    try:
        await db_manager.connect()
        print("✅ Connection successful!")
        print()

        db = db_manager.database

        existing_collections = await db.list_collection_names()
        print(f"📦 Existing collections: {existing_collections or 'None'}")
        print()

        print("🔨 Creating indexes...")
        await db_manager.create_indexes()
        print("✅ Indexes created successfully!")
        print()

        print("📊 Verifying indexes:")
        total = 0
        for name in COLLECTIONS:
            indexes = await db[name].index_information()
            total += len(indexes)
            print(f"   {name}: {len(indexes)} indexes")
            for idx_name in indexes:
                print(f"      - {idx_name}")

        print()
        print("🎉 MongoDB setup complete!")
        print(f"   ✅ Collections: {', '.join(COLLECTIONS)}")
        print(f"   ✅ Indexes: {total} total")
        print()

    except Exception as e:
        print(f"❌ Error: {e}")
        print()
        print("💡 Troubleshooting:")
        print("   1. Check MONGODB_URI in your .env file")
        print("   2. Verify your IP is allowed by the cluster's network access rules")
        print("   3. Ensure the cluster is running (not paused)")
        raise

    finally:
        await db_manager.disconnect()
        print("👋 Disconnected from MongoDB")


if __name__ == "__main__":
    asyncio.run(setup_mongodb())
