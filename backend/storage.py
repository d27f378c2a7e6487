"""Key-value stores holding the serialized cart, wishlist and checkout blobs."""

from abc import ABC, abstractmethod
from typing import Optional

from pymongo.errors import PyMongoError

from database import utcnow
from errors import PersistenceError

CART_KEY = "cart"
WISHLIST_KEY = "wishlist"
CHECKOUT_DATA_KEY = "checkoutData"
ORDER_DATA_KEY = "orderData"


class KeyValueStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...


class MemoryStore(KeyValueStore):
    """Process-local store, one per device/session."""

    def __init__(self, initial: Optional[dict] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key):
        return self._data.get(key)

    async def set(self, key, value):
        self._data[key] = value

    async def delete(self, key):
        self._data.pop(key, None)

    async def clear(self):
        self._data.clear()


class DocumentStore(KeyValueStore):
    """Keeps the blobs of one scope (device or user) in a single document."""

    collection = "device_store"

    def __init__(self, db, scope: str):
        self.db = db
        self.scope = scope

    async def _doc(self) -> dict:
        try:
            doc = await self.db[self.collection].find_one({"scope": self.scope})
        except PyMongoError as e:
            raise PersistenceError("Local storage is unavailable") from e
        return (doc or {}).get("values", {})

    async def get(self, key):
        return (await self._doc()).get(key)

    async def set(self, key, value):
        await self._write({"$set": {f"values.{key}": value, "updated_at": utcnow()}})

    async def delete(self, key):
        await self._write({"$unset": {f"values.{key}": ""}, "$set": {"updated_at": utcnow()}})

    async def clear(self):
        await self._write({"$set": {"values": {}, "updated_at": utcnow()}})

    async def _write(self, update: dict):
        try:
            await self.db[self.collection].update_one({"scope": self.scope}, update, upsert=True)
        except PyMongoError as e:
            raise PersistenceError("Failed to write local storage") from e
