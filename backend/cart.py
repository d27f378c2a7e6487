"""
Device-local cart, wishlist and checkout hand-off blobs.

Each blob is stored as JSON under a fixed key of a ``KeyValueStore`` and
wrapped in a versioned envelope. Mutations rewrite the whole blob
(read-modify-write, last write wins).
"""

import json
import logging
from datetime import date, timedelta
from typing import Optional

from pydantic import ValidationError as SchemaError

from errors import ParseError
from schemas import CartLineItem, RentalDuration
from storage import CART_KEY, CHECKOUT_DATA_KEY, ORDER_DATA_KEY, WISHLIST_KEY, KeyValueStore

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def encode(items: list) -> str:
    return json.dumps({"version": SCHEMA_VERSION, "items": items})


def decode(raw: str) -> list:
    try:
        blob = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Stored value is not valid JSON: {e}") from e
    if not isinstance(blob, dict) or blob.get("version") != SCHEMA_VERSION:
        raise ParseError("Stored value has an unknown schema version")
    items = blob.get("items")
    if not isinstance(items, list):
        raise ParseError("Stored value has no item list")
    return items


def snapshot_price(product: dict, duration: RentalDuration = RentalDuration.DAY) -> float:
    price = product.get(f"price_per_{duration.value}")
    if price is None:
        price = product.get("price_per_day") or product.get("price_per_hour") or 0
    return float(price)


class CartAggregator:
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def _read(self, key: str) -> list:
        raw = await self.store.get(key)
        if raw is None:
            return []
        return decode(raw)

    async def load(self) -> list[CartLineItem]:
        try:
            return [CartLineItem(**item) for item in await self._read(CART_KEY)]
        except (ParseError, SchemaError, TypeError) as e:
            logger.warning("Discarding unreadable cart: %s", e)
            return []

    async def _save(self, items: list[CartLineItem]) -> None:
        await self.store.set(CART_KEY, encode([i.model_dump(mode="json") for i in items]))

    async def add_item(
        self,
        product: dict,
        quantity: int = 1,
        duration: RentalDuration = RentalDuration.DAY,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> list[CartLineItem]:
        """Add a product, or raise the quantity of its existing line.

        A product occupies one line. Adding it again keeps that line's duration,
        dates and price snapshot; change them by removing the line first.
        """
        items = await self.load()
        product_id = str(product["id"])
        for item in items:
            if item.product_id == product_id:
                item.quantity += quantity
                break
        else:
            start = from_date or date.today()
            items.append(CartLineItem(
                product_id=product_id,
                name=product["name"],
                image=product.get("image"),
                price=snapshot_price(product, duration),
                quantity=quantity,
                duration=duration,
                from_date=start,
                to_date=to_date or start + timedelta(days=1),
            ))
        await self._save(items)
        return items

    async def update_quantity(self, product_id: str, quantity: int) -> list[CartLineItem]:
        if quantity < 1:
            return await self.remove_item(product_id)
        items = await self.load()
        for item in items:
            if item.product_id == product_id:
                item.quantity = quantity
        await self._save(items)
        return items

    async def remove_item(self, product_id: str) -> list[CartLineItem]:
        items = [i for i in await self.load() if i.product_id != product_id]
        await self._save(items)
        return items

    async def clear(self) -> None:
        await self.store.delete(CART_KEY)

    # Wishlist

    async def wishlist(self) -> list[str]:
        try:
            return [str(p) for p in await self._read(WISHLIST_KEY)]
        except ParseError as e:
            logger.warning("Discarding unreadable wishlist: %s", e)
            return []

    async def add_to_wishlist(self, product_id: str) -> bool:
        wishlist = await self.wishlist()
        if product_id in wishlist:
            return False
        wishlist.append(product_id)
        await self.store.set(WISHLIST_KEY, encode(wishlist))
        return True

    async def remove_from_wishlist(self, product_id: str) -> list[str]:
        wishlist = [p for p in await self.wishlist() if p != product_id]
        await self.store.set(WISHLIST_KEY, encode(wishlist))
        return wishlist

    # Checkout hand-off

    async def save_checkout_data(self, data: dict) -> None:
        await self.store.set(CHECKOUT_DATA_KEY, encode([data]))

    async def load_checkout_data(self) -> Optional[dict]:
        return await self._load_single(CHECKOUT_DATA_KEY)

    async def save_order_data(self, data: dict) -> None:
        await self.store.set(ORDER_DATA_KEY, encode([data]))

    async def load_order_data(self) -> Optional[dict]:
        return await self._load_single(ORDER_DATA_KEY)

    async def _load_single(self, key: str) -> Optional[dict]:
        try:
            items = await self._read(key)
        except ParseError as e:
            logger.warning("Discarding unreadable %s: %s", key, e)
            return None
        if not items or not isinstance(items[0], dict):
            return None
        return items[0]
