from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from timeledger.config import settings


client = AsyncIOMotorClient(settings.MONGODB_URL)
db = client[settings.MONGODB_DB_NAME]

TIME_ENTRIES = "time_entries"
OWNER_SETTINGS = "owner_settings"
COUNTERS = "counters"


def get_database() -> AsyncIOMotorDatabase:
    """FastAPI dependency returning the database handle used by the routers."""
    return db


async def ensure_indexes(database: AsyncIOMotorDatabase):
    # An entry carries `active_owner` only while it is open, so the sparse unique
    # index allows at most one open entry per owner.
    await database[TIME_ENTRIES].create_index("active_owner", unique=True, sparse=True)
    await database[TIME_ENTRIES].create_index([("owner_id", ASCENDING), ("local_date", DESCENDING)])
    await database[OWNER_SETTINGS].create_index("owner_id", unique=True)


async def next_sequence(database: AsyncIOMotorDatabase, name: str) -> int:
    counter = await database[COUNTERS].find_one_and_update(
        {"_id": name},
        {"$inc": {"value": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["value"]
