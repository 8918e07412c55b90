import logging
from typing import Optional

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.core.config import settings


logger = logging.getLogger(__name__)

_mongo_client: Optional[AsyncIOMotorClient] = None


def get_mongo_client() -> AsyncIOMotorClient:
    global _mongo_client
    if _mongo_client is None:
        client_kwargs = {
            "serverSelectionTimeoutMS": settings.MONGODB_TIMEOUT_MS,
            "appname": "taskledger",
            # Session arithmetic relies on naive UTC datetimes coming back
            "tz_aware": False,
        }
        # Use certifi CA bundle to avoid SSL verify errors with Atlas
        if settings.MONGODB_URI.startswith("mongodb+srv://"):
            client_kwargs["tlsCAFile"] = certifi.where()
        _mongo_client = AsyncIOMotorClient(settings.MONGODB_URI, **client_kwargs)
        logger.info("Mongo client created for database %s", settings.MONGODB_DB_NAME)
    return _mongo_client


def get_mongo_db() -> AsyncIOMotorDatabase:
    return get_mongo_client()[settings.MONGODB_DB_NAME]


def close_mongo_client() -> None:
    global _mongo_client
    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None
        logger.info("Mongo client closed")
