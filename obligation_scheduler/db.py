# obligation_scheduler/db.py
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo import ASCENDING

from obligation_scheduler.config import get_settings

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None

PATTERNS = "recurrence_patterns"
TEMPLATES = "obligation_templates"
INSTANCES = "obligation_instances"
AUTOMATION_SETTINGS = "automation_settings"
USERS = "users"


def get_client() -> AsyncIOMotorClient:
    """
    Returns a singleton AsyncIOMotorClient. Creates it if not already created.
    Every operation issued through it is bounded by ``store_timeout_ms``.
    """
    global _client
    if _client is None:
        settings = get_settings()
        if not settings.mongo_uri:
            raise RuntimeError("MONGO_URI not set in environment")
        _client = AsyncIOMotorClient(settings.mongo_uri, timeoutMS=settings.store_timeout_ms, tz_aware=True)
    return _client


def get_database() -> AsyncIOMotorDatabase:
    """
    Returns the configured database object.
    """
    global _db
    if _db is None:
        db_name = get_settings().mongo_db_name
        if not db_name:
            raise RuntimeError("MONGO_DB_NAME not set in environment")
        _db = get_client()[db_name]
    return _db


def get_collection(name: str) -> AsyncIOMotorCollection:
    """
    Convenience to get a collection from the configured DB.
    Usage: patterns = get_collection(PATTERNS); await patterns.find_one({...})
    """
    return get_database()[name]


def close_client() -> None:
    """
    Close the motor client - call this on application shutdown.
    """
    global _client, _db
    if _client is not None:
        _client.close()
        _client = None
        _db = None


async def create_indexes() -> None:
    users = get_collection(USERS)
    await users.create_index("firm_id")

    patterns = get_collection(PATTERNS)
    await patterns.create_index([("firm_id", ASCENDING), ("type", ASCENDING)])
    await patterns.create_index([("firm_id", ASCENDING), ("name", ASCENDING)])
    await patterns.create_index("is_active")

    templates = get_collection(TEMPLATES)
    await templates.create_index([("firm_id", ASCENDING), ("pattern_id", ASCENDING), ("is_active", ASCENDING)])

    # One auto-generated instance per template per calendar day, across processes.
    instances = get_collection(INSTANCES)
    await instances.create_index(
        [("template_id", ASCENDING), ("due_day", ASCENDING)],
        unique=True,
        partialFilterExpression={"template_id": {"$type": "string"}},
        name="template_due_day_unique",
    )
    await instances.create_index([("firm_id", ASCENDING), ("due_date", ASCENDING)])

    automation = get_collection(AUTOMATION_SETTINGS)
    await automation.create_index("firm_id", unique=True)
    await automation.create_index("enabled")
