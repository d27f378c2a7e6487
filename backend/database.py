import logging
from datetime import datetime, timezone

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from config import DATABASE_URL, DATABASE_NAME
from errors import NotFound, PersistenceError

logger = logging.getLogger(__name__)

_client: AsyncIOMotorClient | None = None
_db = None


async def get_db():
    global _client, _db
    if _db is None:
        _client = AsyncIOMotorClient(DATABASE_URL)
        _db = _client[DATABASE_NAME]
    return _db


async def ensure_indexes():
    db = await get_db()
    await db["user"].create_index("email", unique=True)
    await db["product"].create_index("owner_id")
    await db["rentalorder"].create_index("customer_id")
    await db["rentalorder"].create_index("end_user_ids")
    await db["notification"].create_index([("user_id", 1), ("created_at", -1)])


def utcnow() -> datetime:
    # naive UTC, matching what the driver hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def oid(oid_str: str, label: str = "Document") -> ObjectId:
    try:
        return ObjectId(oid_str)
    except (InvalidId, TypeError):
        raise NotFound(f"{label} not found")


def map_doc(doc: dict | None) -> dict | None:
    if doc is None:
        return None
    d = {**doc}
    if d.get("_id") is not None:
        d["id"] = str(d.pop("_id"))
    return d


async def create_document(collection_name: str, data: dict):
    db = await get_db()
    now = utcnow()
    data["created_at"] = now
    data["updated_at"] = now
    try:
        res = await db[collection_name].insert_one(data)
    except PyMongoError as e:
        logger.error("Insert into %s failed: %s", collection_name, e)
        raise PersistenceError(f"Failed to save {collection_name}") from e
    data["_id"] = res.inserted_id
    return data


async def get_documents(collection_name: str, filter_dict: dict | None = None, limit: int | None = None):
    db = await get_db()
    cursor = db[collection_name].find(filter_dict or {}).sort("created_at", -1)
    if limit:
        cursor = cursor.limit(limit)
    return [doc async for doc in cursor]


async def update_document(collection_name: str, doc_id: ObjectId, updates: dict):
    db = await get_db()
    updates["updated_at"] = utcnow()
    try:
        await db[collection_name].update_one({"_id": doc_id}, {"$set": updates})
    except PyMongoError as e:
        logger.error("Update of %s %s failed: %s", collection_name, doc_id, e)
        raise PersistenceError(f"Failed to update {collection_name}") from e
    return await db[collection_name].find_one({"_id": doc_id})
