import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Header, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth
import notifications
import orders
import pricing
import products
from cart import CartAggregator
from config import FRONTEND_URL, LOG_LEVEL, SESSION_COOKIE_NAME, SESSION_MAX_AGE_MINUTES
from database import ensure_indexes, get_db
from errors import AppError, Forbidden, InvalidCredential, NotFound, ValidationError, error_body
from guard import RouteGuardMiddleware
from navigation import navigation_for
from schemas import (
    CartItemIn,
    CheckoutPayload,
    OrderStatus,
    PricingRequest,
    Product,
    ProductUpdate,
    QuantityUpdate,
    RegisterPayload,
    Role,
    SessionClaims,
    StatusUpdate,
    WishlistIn,
)
from storage import DocumentStore

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)
audit = logging.getLogger("audit")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_indexes()
    yield


app = FastAPI(title="Rental Marketplace API", lifespan=lifespan)

# CORS
origins = [
    FRONTEND_URL,
    "*",
]
app.add_middleware(RouteGuardMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error envelope

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(error_body(exc.message), status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(error_body(str(exc.detail)), status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "request"
    return JSONResponse(error_body(f"Invalid {field}: {first.get('msg', 'invalid value')}"), status_code=400)


def ok(data=None, message: Optional[str] = None) -> dict:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


# Session dependencies

def get_claims(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> Optional[SessionClaims]:
    return auth.decode_session_token(token or request.cookies.get(SESSION_COOKIE_NAME))


def require_session(claims: Optional[SessionClaims] = Depends(get_claims)) -> SessionClaims:
    if claims is None:
        raise InvalidCredential("Authentication required")
    return claims


def require_role(role: Role):
    def dependency(claims: SessionClaims = Depends(require_session)) -> SessionClaims:
        if claims.role is not role:
            raise Forbidden(f"This action requires the {role.value} role")
        return claims
    return dependency


require_customer = require_role(Role.CUSTOMER)
require_enduser = require_role(Role.ENDUSER)


async def get_cart(
    claims: SessionClaims = Depends(require_customer),
    x_device_id: Optional[str] = Header(None),
) -> CartAggregator:
    db = await get_db()
    return CartAggregator(DocumentStore(db, f"{claims.sub}:{x_device_id}" if x_device_id else claims.sub))


@app.get("/")
def read_root():
    return ok(message="Rental Marketplace API is running")


# Auth endpoints

@app.post("/auth/register", status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterPayload):
    db = await get_db()
    user = await auth.register_user(db, payload)
    return ok(user, "User registered successfully")


@app.post("/auth/login")
async def login(response: Response, form_data: OAuth2PasswordRequestForm = Depends()):
    db = await get_db()
    try:
        identity = await auth.authenticate(db, form_data.username, form_data.password)
    except (NotFound, InvalidCredential):
        raise InvalidCredential("Invalid email or password")
    token = auth.issue_session_token(identity)
    response.set_cookie(
        SESSION_COOKIE_NAME, token,
        max_age=SESSION_MAX_AGE_MINUTES * 60, httponly=True, samesite="lax",
    )
    body = ok({"access_token": token, "token_type": "bearer", "user": identity}, "Signed in")
    # OAuth2 password-flow clients read the token from the top level
    body.update(access_token=token, token_type="bearer")
    return body


@app.post("/auth/logout")
async def logout(response: Response, claims: Optional[SessionClaims] = Depends(get_claims)):
    audit.info("logout email=%s", claims.email if claims else "-")
    response.delete_cookie(SESSION_COOKIE_NAME)
    return ok(message="Signed out")


@app.get("/auth/session")
async def session(claims: SessionClaims = Depends(require_session)):
    return ok(claims.model_dump())


@app.get("/navigation")
async def navigation(claims: Optional[SessionClaims] = Depends(get_claims)):
    entries = navigation_for(claims.role if claims else None)
    return ok([entry._asdict() for entry in entries])


# Catalogue

@app.get("/products")
async def list_products(
    q: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort: Optional[str] = None,
):
    docs = await products.list_products(q, category, min_price, max_price, sort)
    return ok(docs)


@app.get("/products/{product_id}")
async def get_product(product_id: str):
    db = await get_db()
    return ok(await products.get_product(db, product_id))


# Cart

@app.get("/cart")
async def read_cart(cart: CartAggregator = Depends(get_cart)):
    items = await cart.load()
    return ok({"items": items, "pricing": pricing.calculate(items)})


@app.post("/cart/items")
async def add_to_cart(item: CartItemIn, cart: CartAggregator = Depends(get_cart)):
    db = await get_db()
    product = await products.get_product(db, item.product_id)
    if not product.get("availability", True):
        raise ValidationError("Product is not available", field="product_id")
    items = await cart.add_item(product, item.quantity, item.duration, item.from_date, item.to_date)
    return ok(items, "Added to cart")


@app.patch("/cart/items/{product_id}")
async def update_cart_item(product_id: str, update: QuantityUpdate, cart: CartAggregator = Depends(get_cart)):
    return ok(await cart.update_quantity(product_id, update.quantity))


@app.delete("/cart/items/{product_id}")
async def remove_cart_item(product_id: str, cart: CartAggregator = Depends(get_cart)):
    return ok(await cart.remove_item(product_id))


@app.delete("/cart")
async def clear_cart(cart: CartAggregator = Depends(get_cart)):
    await cart.clear()
    return ok([])


@app.get("/cart/wishlist")
async def read_wishlist(cart: CartAggregator = Depends(get_cart)):
    return ok(await cart.wishlist())


@app.post("/cart/wishlist")
async def add_to_wishlist(item: WishlistIn, cart: CartAggregator = Depends(get_cart)):
    added = await cart.add_to_wishlist(item.product_id)
    return ok(await cart.wishlist(), "Added to wishlist" if added else "Already in wishlist")


@app.delete("/cart/wishlist/{product_id}")
async def remove_from_wishlist(product_id: str, cart: CartAggregator = Depends(get_cart)):
    return ok(await cart.remove_from_wishlist(product_id))


# Checkout

@app.post("/checkout/pricing")
async def price_cart(req: PricingRequest, cart: CartAggregator = Depends(get_cart)):
    items = await cart.load()
    breakdown = pricing.calculate(items, req.coupon_code, req.delivery_method)
    checkout_data = {
        "items": [i.model_dump(mode="json") for i in items],
        "pricing": breakdown.model_dump(),
        "coupon_code": req.coupon_code,
    }
    await cart.save_checkout_data(checkout_data)
    return ok(checkout_data)


@app.get("/checkout/delivery-methods")
async def delivery_methods(claims: SessionClaims = Depends(require_customer)):
    return ok([m._asdict() for m in pricing.DELIVERY_METHODS.values()])


@app.post("/checkout/orders", status_code=status.HTTP_201_CREATED)
async def submit_order(
    payload: CheckoutPayload,
    claims: SessionClaims = Depends(require_customer),
    cart: CartAggregator = Depends(get_cart),
):
    if not payload.items:
        payload.items = await cart.load()
    db = await get_db()
    order = await orders.OrderSubmitter(db, cart).submit(claims, payload)
    return ok(order, "Order confirmed")


@app.get("/orders")
async def my_orders(claims: SessionClaims = Depends(require_customer)):
    return ok(await orders.list_customer_orders(claims.sub))


@app.get("/orders/{order_id}")
async def my_order(order_id: str, claims: SessionClaims = Depends(require_customer)):
    db = await get_db()
    return ok(await orders.get_order(db, claims, order_id))


# End user dashboard

@app.get("/enduser")
async def dashboard(claims: SessionClaims = Depends(require_enduser)):
    db = await get_db()
    return ok(await orders.dashboard_summary(db, claims.sub))


@app.get("/enduser/products")
async def my_products(claims: SessionClaims = Depends(require_enduser)):
    return ok(await products.list_products(available_only=False, owner_id=claims.sub))


@app.post("/enduser/products", status_code=status.HTTP_201_CREATED)
async def create_product(product: Product, claims: SessionClaims = Depends(require_enduser)):
    return ok(await products.create_product(claims.sub, product), "Product created")


@app.put("/enduser/products/{product_id}")
async def update_product(product_id: str, changes: ProductUpdate, claims: SessionClaims = Depends(require_enduser)):
    db = await get_db()
    return ok(await products.update_product(db, claims.sub, product_id, changes), "Product updated")


@app.delete("/enduser/products/{product_id}")
async def delete_product(product_id: str, claims: SessionClaims = Depends(require_enduser)):
    db = await get_db()
    await products.delete_product(db, claims.sub, product_id)
    return ok(message="Product deleted")


@app.get("/enduser/orders")
async def bookings(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    claims: SessionClaims = Depends(require_enduser),
):
    return ok(await orders.list_end_user_orders(claims.sub, status_filter))


@app.patch("/enduser/orders/{order_id}/status")
async def change_order_status(order_id: str, update: StatusUpdate, claims: SessionClaims = Depends(require_enduser)):
    db = await get_db()
    return ok(await orders.change_status(db, claims, order_id, update.status))


@app.post("/enduser/orders/late-check")
async def late_check(claims: SessionClaims = Depends(require_enduser)):
    db = await get_db()
    return ok(await orders.check_late_returns(db, claims.sub))


# Notifications

@app.get("/notifications")
async def my_notifications(unread: bool = False, claims: SessionClaims = Depends(require_session)):
    return ok(await notifications.list_notifications(claims.sub, unread))


@app.post("/notifications/{notification_id}/read")
async def read_notification(notification_id: str, claims: SessionClaims = Depends(require_session)):
    db = await get_db()
    return ok(await notifications.mark_read(db, claims.sub, notification_id))
