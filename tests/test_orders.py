from datetime import date, datetime

import pytest

import database
import notifications
import orders
from cart import CartAggregator
from errors import Conflict, NotFound, PersistenceError, ValidationError
from schemas import Address, CheckoutPayload, NotificationType, OrderStatus, Role, SessionClaims
from storage import CART_KEY, ORDER_DATA_KEY, MemoryStore

ADDRESS = Address(name="Ana", phone="555", address="1 Main St", city="Pune", state="MH", pincode="411001")


def claims_for(identity):
    return SessionClaims(sub=identity["id"], email=identity["email"], name=identity["name"],
                         role=identity["role"], iat=0, exp=9999999999)


@pytest.fixture
async def setup(db, make_user):
    customer = await make_user()
    owner = await make_user(email="shop@example.com", role=Role.ENDUSER, name="Shop")
    product = await database.create_document("product", {
        "owner_id": owner["id"], "name": "Drill", "category": "Tools", "description": "",
        "price_per_day": 500.0, "deposit": 200.0, "availability": True, "quantity_available": 3,
    })
    store = MemoryStore()
    cart = CartAggregator(store)
    await cart.add_item({**database.map_doc(product)}, quantity=2,
                        from_date=date(2026, 3, 1), to_date=date(2026, 3, 4))
    return {"customer": customer, "owner": owner, "product_id": str(product["_id"]),
            "cart": cart, "store": store}


async def checkout(setup, **overrides):
    data = {"items": await setup["cart"].load(), "delivery_address": ADDRESS, "delivery_method": "standard"}
    data.update(overrides)
    return CheckoutPayload(**data)


async def test_submit_persists_confirmed_paid_order(db, setup):
    submitter = orders.OrderSubmitter(db, setup["cart"])
    order = await submitter.submit(claims_for(setup["customer"]), await checkout(setup))

    assert order["status"] == "confirmed"
    assert order["payment_status"] == "paid"
    assert order["pricing"]["subtotal"] == 1000
    assert order["total_price"] == pytest.approx(1050)
    assert order["deposit"] == 400
    assert order["end_user_ids"] == [setup["owner"]["id"]]
    assert order["start_date"] == "2026-03-01"
    assert order["end_date"] == "2026-03-04"
    assert order["addresses"]["billing"] == order["addresses"]["delivery"]

    assert await db["rentalorder"].count_documents({}) == 1
    assert await setup["store"].get(CART_KEY) is None
    assert await setup["store"].get(ORDER_DATA_KEY) is not None
    assert (await setup["cart"].load_order_data())["order_id"] == order["id"]


async def test_submit_notifies_customer_and_owner(db, setup):
    await orders.OrderSubmitter(db, setup["cart"]).submit(claims_for(setup["customer"]), await checkout(setup))

    kinds = {n["user_id"]: n["type"] async for n in db["notification"].find({})}
    assert kinds == {setup["customer"]["id"]: "order_confirmed", setup["owner"]["id"]: "new_booking"}


async def test_client_total_is_not_trusted(db, setup):
    payload = await checkout(setup, coupon_code="SAVE20", pricing={
        "subtotal": 1, "discount": 0, "delivery_charge": 0, "tax": 0, "total": 1,
    })
    order = await orders.OrderSubmitter(db, setup["cart"]).submit(claims_for(setup["customer"]), payload)

    p = order["pricing"]
    assert p["discount"] == 200
    assert order["total_price"] == p["subtotal"] - p["discount"] + p["delivery_charge"] + p["tax"]


@pytest.mark.parametrize("overrides, field", [
    ({"delivery_address": ADDRESS.model_copy(update={"city": "  "})}, "delivery_address.city"),
    ({"delivery_address": Address()}, "delivery_address.name"),
    ({"same_as_delivery": False, "billing_address": ADDRESS.model_copy(update={"pincode": ""})},
     "billing_address.pincode"),
    ({"same_as_delivery": False}, "billing_address.name"),
    ({"delivery_method": None}, "delivery_method"),
    ({"items": []}, "items"),
])
async def test_validation_reports_first_missing_field(db, setup, overrides, field):
    payload = await checkout(setup, **overrides)
    with pytest.raises(ValidationError) as exc:
        await orders.OrderSubmitter(db, setup["cart"]).submit(claims_for(setup["customer"]), payload)

    assert exc.value.field == field
    assert await db["rentalorder"].count_documents({}) == 0
    assert len(await setup["cart"].load()) == 1


async def test_unknown_product_fails_without_side_effects(db, setup):
    items = await setup["cart"].load()
    items[0].product_id = "000000000000000000000000"
    with pytest.raises(NotFound):
        await orders.OrderSubmitter(db, setup["cart"]).submit(
            claims_for(setup["customer"]), await checkout(setup, items=items))
    assert len(await setup["cart"].load()) == 1


async def test_failed_write_keeps_cart(db, setup, monkeypatch):
    async def broken(*args, **kwargs):
        raise PersistenceError("Failed to save rentalorder")
    monkeypatch.setattr(orders, "create_document", broken)

    with pytest.raises(PersistenceError):
        await orders.OrderSubmitter(db, setup["cart"]).submit(claims_for(setup["customer"]), await checkout(setup))
    assert len(await setup["cart"].load()) == 1


async def test_resubmission_creates_duplicate_orders(db, setup):
    payload = await checkout(setup)
    submitter = orders.OrderSubmitter(db, setup["cart"])
    await submitter.submit(claims_for(setup["customer"]), payload)
    await submitter.submit(claims_for(setup["customer"]), payload)
    assert await db["rentalorder"].count_documents({}) == 2


async def test_order_visibility(db, setup, make_user):
    order = await orders.OrderSubmitter(db, setup["cart"]).submit(
        claims_for(setup["customer"]), await checkout(setup))

    assert (await orders.get_order(db, claims_for(setup["owner"]), order["id"]))["id"] == order["id"]
    stranger = await make_user(email="other@example.com")
    with pytest.raises(NotFound):
        await orders.get_order(db, claims_for(stranger), order["id"])


async def test_status_changes_and_terminal_states(db, setup):
    order = await orders.OrderSubmitter(db, setup["cart"]).submit(
        claims_for(setup["customer"]), await checkout(setup))
    owner = claims_for(setup["owner"])

    updated = await orders.change_status(db, owner, order["id"], OrderStatus.CANCELLED)
    assert updated["status"] == "cancelled"
    assert updated["payment_status"] == "refunded"

    with pytest.raises(Conflict):
        await orders.change_status(db, owner, order["id"], OrderStatus.CONFIRMED)


async def test_late_check_flags_overdue_deliveries(db, setup):
    order = await orders.OrderSubmitter(db, setup["cart"]).submit(
        claims_for(setup["customer"]), await checkout(setup))
    owner = claims_for(setup["owner"])
    await orders.change_status(db, owner, order["id"], OrderStatus.DELIVERED)

    flagged = await orders.check_late_returns(db, owner.sub, now=datetime(2026, 3, 7, 12))

    assert [o["id"] for o in flagged] == [order["id"]]
    assert flagged[0]["status"] == "late"
    assert flagged[0]["late_fee"] == 300
    assert await db["notification"].count_documents({"type": "late_return"}) == 1

    assert await orders.check_late_returns(db, owner.sub, now=datetime(2026, 3, 8)) == []


async def test_dashboard_summary(db, setup):
    await orders.OrderSubmitter(db, setup["cart"]).submit(claims_for(setup["customer"]), await checkout(setup))

    summary = await orders.dashboard_summary(db, setup["owner"]["id"])

    assert summary["products"] == 1
    assert summary["orders"] == 1
    assert summary["orders_by_status"]["confirmed"] == 1
    assert summary["revenue"] == pytest.approx(1050)


async def test_unit_prices_come_from_the_listing(db, setup):
    items = await setup["cart"].load()
    items[0] = items[0].model_copy(update={"price": 0.01, "name": "Renamed"})
    order = await orders.OrderSubmitter(db, setup["cart"]).submit(
        claims_for(setup["customer"]), await checkout(setup, items=items))

    assert order["items"][0]["price"] == 500
    assert order["items"][0]["name"] == "Drill"
    assert order["pricing"]["subtotal"] == 1000
    assert order["total_price"] == pytest.approx(1050)


async def test_unavailable_product_is_rejected(db, setup):
    await db["product"].update_one({"_id": database.oid(setup["product_id"])}, {"$set": {"availability": False}})

    with pytest.raises(ValidationError) as exc:
        await orders.OrderSubmitter(db, setup["cart"]).submit(claims_for(setup["customer"]), await checkout(setup))

    assert exc.value.field == "items"
    assert await db["rentalorder"].count_documents({}) == 0
    assert len(await setup["cart"].load()) == 1


async def test_notifications_are_per_user(db, setup):
    note = await notifications.create_notification(
        setup["customer"]["id"], kind=NotificationType.RETURN_REMINDER, message="Return due tomorrow")
    assert note["type"] == "return_reminder"
    assert note["read"] is False

    with pytest.raises(NotFound):
        await notifications.mark_read(db, setup["owner"]["id"], note["id"])
    assert (await notifications.mark_read(db, setup["customer"]["id"], note["id"]))["read"] is True
