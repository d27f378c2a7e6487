import re
from typing import Optional

from database import create_document, get_documents, map_doc, oid, update_document
from errors import Forbidden, NotFound, ValidationError
from schemas import CATEGORIES, Product, ProductUpdate

SORTS = ("price_asc", "price_desc", "name_asc", "name_desc")


def list_price(product: dict) -> float:
    return product.get("price_per_day") or product.get("price_per_hour") or 0


def _check_category(category: Optional[str]):
    if category is not None and category not in CATEGORIES:
        raise ValidationError(f"Unknown category: {category}", field="category")


async def list_products(
    q: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort: Optional[str] = None,
    available_only: bool = True,
    owner_id: Optional[str] = None,
) -> list[dict]:
    flt = {}
    if available_only:
        flt["availability"] = True
    if category:
        flt["category"] = category
    if owner_id:
        flt["owner_id"] = owner_id
    if q:
        pattern = re.escape(q.strip())
        flt["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    docs = [map_doc(d) for d in await get_documents("product", flt)]

    if min_price is not None:
        docs = [d for d in docs if list_price(d) >= min_price]
    if max_price is not None:
        docs = [d for d in docs if list_price(d) <= max_price]

    if sort is None:
        return docs
    if sort not in SORTS:
        raise ValidationError(f"Unknown sort: {sort}", field="sort")
    field, direction = sort.rsplit("_", 1)
    if field == "price":
        key = list_price
    else:
        key = lambda d: d["name"].lower()
    return sorted(docs, key=key, reverse=direction == "desc")


async def get_product(db, product_id: str) -> dict:
    doc = await db["product"].find_one({"_id": oid(product_id, "Product")})
    if not doc:
        raise NotFound("Product not found")
    return map_doc(doc)


async def create_product(owner_id: str, product: Product) -> dict:
    _check_category(product.category)
    data = product.model_dump(exclude={"id", "created_at", "updated_at"})
    data["owner_id"] = owner_id
    return map_doc(await create_document("product", data))


async def _owned(db, owner_id: str, product_id: str) -> dict:
    product = await get_product(db, product_id)
    if product["owner_id"] != owner_id:
        raise Forbidden("Not owner")
    return product


async def update_product(db, owner_id: str, product_id: str, changes: ProductUpdate) -> dict:
    product = await _owned(db, owner_id, product_id)
    updates = changes.model_dump(exclude_none=True)
    _check_category(updates.get("category"))
    return map_doc(await update_document("product", oid(product["id"]), updates))


async def delete_product(db, owner_id: str, product_id: str) -> None:
    product = await _owned(db, owner_id, product_id)
    await db["product"].delete_one({"_id": oid(product["id"])})
