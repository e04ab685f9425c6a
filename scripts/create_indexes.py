"""
Database Index Creation Script

Creates the indexes chat history and membership lookups rely on.
Run this script after deployment or when setting up a new database.
"""

import asyncio
import logging

from motor.motor_asyncio import AsyncIOMotorClient

from tripchat.config import settings
from tripchat.database import create_chat_indexes

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def create_indexes():
    """Create all necessary indexes for optimal query performance."""
    client = AsyncIOMotorClient(settings.mongodb_uri)
    db = client[settings.mongodb_database]

    logger.info("Creating database indexes...")
    await create_chat_indexes(db)

    logger.info("All indexes created successfully!")
    client.close()


if __name__ == "__main__":
    asyncio.run(create_indexes())
