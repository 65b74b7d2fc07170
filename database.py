import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from bson import Decimal128
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from config import Settings

logger = logging.getLogger(__name__)

COLLECTIONS = ("authors", "books", "members", "loans")
UNIQUE_FIELDS = {"authors": "email", "books": "isbn", "members": "email"}


def create_client(settings: Settings) -> AsyncIOMotorClient:
    return AsyncIOMotorClient(
        settings.mongo_url,
        serverSelectionTimeoutMS=settings.mongo_timeout_ms,
        tz_aware=False,
    )


async def test_connection(client: AsyncIOMotorClient):
    try:
        await client.admin.command('ping')
        logger.info("MongoDB connection successful")
    except PyMongoError as e:
        logger.error("MongoDB connection failed: %s", e)
        raise


# --- Auto Increment Function ---
async def get_next_sequence(db: AsyncIOMotorDatabase, name: str) -> int:
    counter = await db.counters.find_one_and_update(
        {"_id": name},
        {"$inc": {"sequence_value": 1}},
        return_document=ReturnDocument.AFTER,
        upsert=True,
    )
    return counter["sequence_value"]


async def ensure_indexes(db: AsyncIOMotorDatabase):
    for name in COLLECTIONS:
        await db[name].create_index([("id", ASCENDING)], unique=True)
    for name, field in UNIQUE_FIELDS.items():
        await db[name].create_index([(field, ASCENDING)], unique=True)
    await db.loans.create_index([("member_id", ASCENDING), ("status", ASCENDING)])
    await db.loans.create_index([("book_id", ASCENDING), ("status", ASCENDING)])


# --- BSON conversion ---
def to_bson_value(value):
    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, Enum):
        return value.value
    # BSON has no date-only type
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    return value


def _from_bson(value):
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, datetime):
        return value.date()
    return value


def to_document(model) -> dict:
    return {key: to_bson_value(value) for key, value in model.model_dump().items()}


def from_document(doc: dict) -> dict:
    return {key: _from_bson(value) for key, value in doc.items() if key != "_id"}
