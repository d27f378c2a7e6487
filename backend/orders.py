"""
Checkout submission and booking management.

Payment is simulated: a submitted order is recorded as confirmed and paid
without contacting any processor. Only the listing's availability flag is
checked, so nothing prevents two customers from booking the same unit for
overlapping dates.
"""

import logging
from datetime import date, datetime
from typing import Optional

from pymongo.errors import PyMongoError

import pricing
from cart import CartAggregator, snapshot_price
from config import LATE_FEE_PER_DAY
from database import create_document, get_documents, map_doc, oid, update_document, utcnow
from errors import Conflict, NotFound, PersistenceError, ValidationError
from notifications import create_notification
from products import get_product
from schemas import (
    Address,
    CheckoutPayload,
    NotificationType,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    RentalOrder,
    Role,
    SessionClaims,
)

logger = logging.getLogger(__name__)

REQUIRED_ADDRESS_FIELDS = ("name", "phone", "address", "city", "state", "pincode")


def first_missing_address_field(address: Optional[Address]) -> Optional[str]:
    for field in REQUIRED_ADDRESS_FIELDS:
        if address is None or not getattr(address, field).strip():
            return field
    return None


def validate_checkout(payload: CheckoutPayload) -> None:
    if not payload.items:
        raise ValidationError("Your cart is empty", field="items")

    missing = first_missing_address_field(payload.delivery_address)
    if missing:
        raise ValidationError(f"Please fill in {missing}", field=f"delivery_address.{missing}")

    if not payload.same_as_delivery:
        missing = first_missing_address_field(payload.billing_address)
        if missing:
            raise ValidationError(f"Please fill in billing {missing}", field=f"billing_address.{missing}")

    if not payload.delivery_method:
        raise ValidationError("Please select a delivery method", field="delivery_method")
    if payload.delivery_method not in pricing.DELIVERY_METHODS:
        raise ValidationError(f"Unknown delivery method: {payload.delivery_method}", field="delivery_method")


class OrderSubmitter:
    def __init__(self, db, cart: CartAggregator):
        self.db = db
        self.cart = cart

    async def submit(self, claims: SessionClaims, payload: CheckoutPayload) -> dict:
        validate_checkout(payload)

        items = []
        lines = []
        deposit = 0.0
        for line in payload.items:
            product = await get_product(self.db, line.product_id)
            if not product.get("availability", True):
                raise ValidationError(f"{product['name']} is no longer available", field="items")
            # unit prices always come from the listing, never from the client
            line = line.model_copy(update={"name": product["name"], "price": snapshot_price(product, line.duration)})
            lines.append(line)
            deposit += float(product.get("deposit") or 0) * line.quantity
            items.append(OrderItem(
                product_id=line.product_id,
                end_user_id=product["owner_id"],
                name=line.name,
                price=line.price,
                quantity=line.quantity,
                duration=line.duration,
                from_date=line.from_date,
                to_date=line.to_date,
            ))

        breakdown = pricing.calculate(lines, payload.coupon_code, payload.delivery_method)
        if payload.pricing is not None and payload.pricing.total != breakdown.total:
            logger.info(
                "Client total %s for customer %s differs from computed %s; using computed",
                payload.pricing.total, claims.sub, breakdown.total,
            )

        delivery = payload.delivery_address
        billing = delivery if payload.same_as_delivery else payload.billing_address
        end_user_ids = sorted({i.end_user_id for i in items})
        order_doc = RentalOrder(
            customer_id=claims.sub,
            end_user_ids=end_user_ids,
            items=items,
            start_date=min(i.from_date for i in items),
            end_date=max(i.to_date for i in items),
            pricing=breakdown,
            total_price=breakdown.total,
            deposit=deposit,
            status=OrderStatus.CONFIRMED,
            payment_status=PaymentStatus.PAID,
            delivery_method=payload.delivery_method,
            addresses={"delivery": delivery.model_dump(), "billing": billing.model_dump()},
            coupon_code=payload.coupon_code,
        ).model_dump(mode="json", exclude={"id", "created_at", "updated_at"})
        order = map_doc(await create_document("rentalorder", order_doc))
        logger.info("Order %s confirmed for customer %s total=%s", order["id"], claims.sub, order["total_price"])

        # the cart only goes away once the order is safely stored
        await self.cart.clear()
        await self.cart.save_order_data({
            "order_id": order["id"],
            "pricing": order["pricing"],
            "delivery_method": order["delivery_method"],
        })

        await self._notify(order, end_user_ids)
        return order

    async def _notify(self, order: dict, end_user_ids: list[str]) -> None:
        try:
            await create_notification(
                order["customer_id"], NotificationType.ORDER_CONFIRMED,
                f"Your order {order['id']} is confirmed.", order_id=order["id"],
            )
            for end_user_id in end_user_ids:
                await create_notification(
                    end_user_id, NotificationType.NEW_BOOKING,
                    f"New booking {order['id']} received.", order_id=order["id"],
                )
        except PersistenceError:
            logger.exception("Order %s saved but notifications could not be created", order["id"])


async def list_customer_orders(customer_id: str) -> list[dict]:
    return [map_doc(d) for d in await get_documents("rentalorder", {"customer_id": customer_id})]


async def list_end_user_orders(end_user_id: str, status: Optional[OrderStatus] = None) -> list[dict]:
    flt = {"end_user_ids": end_user_id}
    if status is not None:
        flt["status"] = status.value
    return [map_doc(d) for d in await get_documents("rentalorder", flt)]


async def get_order(db, claims: SessionClaims, order_id: str) -> dict:
    doc = await db["rentalorder"].find_one({"_id": oid(order_id, "Order")})
    if claims.role is Role.CUSTOMER:
        visible = doc is not None and doc["customer_id"] == claims.sub
    elif claims.role is Role.ENDUSER:
        visible = doc is not None and claims.sub in doc["end_user_ids"]
    else:
        raise ValueError(f"Unhandled role {claims.role!r}")
    if not visible:
        raise NotFound("Order not found")
    return map_doc(doc)


async def change_status(db, claims: SessionClaims, order_id: str, new_status: OrderStatus) -> dict:
    order = await get_order(db, claims, order_id)
    current = OrderStatus(order["status"])
    if current.is_terminal:
        raise Conflict(f"Order is already {current.value}")

    updates = {"status": new_status.value}
    if new_status is OrderStatus.CANCELLED and order["payment_status"] == PaymentStatus.PAID.value:
        updates["payment_status"] = PaymentStatus.REFUNDED.value
    updated = map_doc(await update_document("rentalorder", oid(order["id"]), updates))
    logger.info("Order %s moved %s -> %s by %s", order["id"], current.value, new_status.value, claims.sub)

    await create_notification(
        order["customer_id"], NotificationType.STATUS_CHANGED,
        f"Your order {order['id']} is now {new_status.value}.", order_id=order["id"],
    )
    return updated


def overdue_days(end_date: str, today: date) -> int:
    return (today - date.fromisoformat(end_date)).days


async def check_late_returns(db, end_user_id: str, now: Optional[datetime] = None) -> list[dict]:
    """Flag delivered orders past their end date as late with a flat per-day fee."""
    today = (now or utcnow()).date()
    flt = {
        "end_user_ids": end_user_id,
        "status": OrderStatus.DELIVERED.value,
        "end_date": {"$lt": today.isoformat()},
    }
    try:
        overdue = [doc async for doc in db["rentalorder"].find(flt)]
    except PyMongoError as e:
        raise PersistenceError("Failed to load orders") from e

    flagged = []
    for doc in overdue:
        days = overdue_days(doc["end_date"], today)
        fee = LATE_FEE_PER_DAY * days
        updated = await update_document(
            "rentalorder", doc["_id"], {"status": OrderStatus.LATE.value, "late_fee": fee}
        )
        await create_notification(
            doc["customer_id"], NotificationType.LATE_RETURN,
            f"Order {doc['_id']} is {days} day(s) overdue. Late fee: {fee}.", order_id=str(doc["_id"]),
        )
        flagged.append(map_doc(updated))
    if flagged:
        logger.info("Marked %d order(s) late for end user %s", len(flagged), end_user_id)
    return flagged


async def dashboard_summary(db, end_user_id: str) -> dict:
    orders = await list_end_user_orders(end_user_id)
    by_status = {s.value: 0 for s in OrderStatus}
    revenue = 0.0
    for order in orders:
        by_status[order["status"]] += 1
        if order["payment_status"] == PaymentStatus.PAID.value:
            revenue += order["total_price"]
    return {
        "products": await db["product"].count_documents({"owner_id": end_user_id}),
        "orders": len(orders),
        "orders_by_status": by_status,
        "revenue": revenue,
    }
