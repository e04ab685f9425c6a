"""
TripChat Database Module

MongoDB and Redis connection management.
"""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

import redis.asyncio as redis
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from tripchat.config import settings
from tripchat.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# MongoDB Connection
# =============================================================================

class MongoDB:
    """MongoDB connection manager."""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None


mongo = MongoDB()


async def create_chat_indexes(db: AsyncIOMotorDatabase):
    """Create the indexes the chat queries rely on."""
    # Messages: unique id plus the compound key used for cursor pagination
    await db.chat_messages.create_index("message_id", unique=True)
    await db.chat_messages.create_index([
        ("trip_id", ASCENDING),
        ("created_at", DESCENDING),
        ("message_id", DESCENDING),
    ])
    await db.chat_messages.create_index([
        ("sender_id", ASCENDING),
        ("created_at", DESCENDING),
    ])

    # Trips: membership lookups
    await db.trips.create_index("trip_id", unique=True)
    await db.trips.create_index("member_ids")

    # Users: sender resolution
    await db.users.create_index("user_id", unique=True)


async def init_mongodb():
    """Initialize MongoDB connection and create indexes."""
    mongo.client = AsyncIOMotorClient(settings.mongodb_uri, tz_aware=True)
    mongo.db = mongo.client[settings.mongodb_database]

    await create_chat_indexes(mongo.db)


async def close_mongodb():
    """Close MongoDB connection."""
    if mongo.client:
        mongo.client.close()


def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    if mongo.db is None:
        raise RuntimeError("Database not initialized")
    return mongo.db


async def with_timeout(operation: Awaitable[T], context: str) -> T:
    """
    Await a storage call under the configured I/O timeout.

    Timeouts and driver errors are converted to StorageUnavailableError so
    callers can report a retryable failure instead of hanging.
    """
    try:
        return await asyncio.wait_for(operation, timeout=settings.storage_timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"Storage timeout during {context} after {settings.storage_timeout_seconds}s")
        raise StorageUnavailableError(f"Storage timeout during {context}")
    except PyMongoError as e:
        logger.error(f"Storage error during {context}: {e}")
        raise StorageUnavailableError(f"Storage error during {context}")


# =============================================================================
# Redis Connection
# =============================================================================

class RedisClient:
    """Redis connection manager."""

    client: Optional[redis.Redis] = None


redis_client = RedisClient()


async def init_redis():
    """Initialize Redis connection."""
    redis_client.client = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        health_check_interval=30,
        socket_connect_timeout=5,
        retry_on_timeout=True,
        socket_keepalive=True
    )


async def close_redis():
    """Close Redis connection."""
    if redis_client.client:
        await redis_client.client.aclose()


def get_redis() -> redis.Redis:
    """Get Redis client instance."""
    if redis_client.client is None:
        raise RuntimeError("Redis not initialized")
    return redis_client.client


# =============================================================================
# Combined Initialization
# =============================================================================

async def init_db():
    """Initialize all database connections."""
    await init_mongodb()
    await init_redis()


async def close_db():
    """Close all database connections."""
    await close_mongodb()
    await close_redis()
