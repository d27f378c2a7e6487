from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field
from datetime import date, datetime, timedelta

# Each class name lowercased corresponds to collection name


class Role(str, Enum):
    CUSTOMER = "customer"
    ENDUSER = "enduser"


class OrderStatus(str, Enum):
    QUOTATION = "quotation"
    CONFIRMED = "confirmed"
    RESERVED = "reserved"
    DELIVERED = "delivered"
    RETURNED = "returned"
    LATE = "late"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.RETURNED, OrderStatus.CANCELLED)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


class NotificationType(str, Enum):
    ORDER_CONFIRMED = "order_confirmed"
    NEW_BOOKING = "new_booking"
    STATUS_CHANGED = "status_changed"
    RETURN_REMINDER = "return_reminder"
    LATE_RETURN = "late_return"


class RentalDuration(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


CATEGORIES = ["Electronics", "Furniture", "Vehicles", "Tools", "Sports"]


class User(BaseModel):
    id: Optional[str] = None
    name: str
    email: EmailStr
    password: Optional[str] = None  # hashed
    role: Role
    phone: Optional[str] = None
    address: Optional[str] = None
    company_name: Optional[str] = None  # enduser only
    business_type: Optional[str] = None  # enduser only
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RegisterPayload(BaseModel):
    # everything optional here so missing fields surface as a ValidationError
    # naming the field instead of a generic 422
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    company_name: Optional[str] = None
    business_type: Optional[str] = None


class Product(BaseModel):
    id: Optional[str] = None
    owner_id: Optional[str] = None
    name: str
    image: Optional[str] = None
    description: str = ""
    category: str
    price_per_hour: Optional[float] = Field(None, ge=0)
    price_per_day: Optional[float] = Field(None, ge=0)
    price_per_week: Optional[float] = Field(None, ge=0)
    price_per_month: Optional[float] = Field(None, ge=0)
    price_per_year: Optional[float] = Field(None, ge=0)
    deposit: float = Field(0, ge=0)
    availability: bool = True
    quantity_available: int = Field(1, ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    image: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price_per_hour: Optional[float] = Field(None, ge=0)
    price_per_day: Optional[float] = Field(None, ge=0)
    price_per_week: Optional[float] = Field(None, ge=0)
    price_per_month: Optional[float] = Field(None, ge=0)
    price_per_year: Optional[float] = Field(None, ge=0)
    deposit: Optional[float] = Field(None, ge=0)
    availability: Optional[bool] = None
    quantity_available: Optional[int] = Field(None, ge=0)


class CartLineItem(BaseModel):
    product_id: str
    name: str
    image: Optional[str] = None
    price: float = Field(..., ge=0)  # unit price snapshot
    quantity: int = Field(1, ge=1)
    duration: RentalDuration = RentalDuration.DAY
    from_date: date = Field(default_factory=date.today)
    to_date: date = Field(default_factory=lambda: date.today() + timedelta(days=1))


class CartItemIn(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    duration: RentalDuration = RentalDuration.DAY
    from_date: Optional[date] = None
    to_date: Optional[date] = None


class QuantityUpdate(BaseModel):
    quantity: int


class WishlistIn(BaseModel):
    product_id: str


class Address(BaseModel):
    name: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    landmark: str = ""


class PricingBreakdown(BaseModel):
    subtotal: float
    discount: float
    delivery_charge: float
    tax: float
    total: float


class PricingRequest(BaseModel):
    coupon_code: Optional[str] = None
    delivery_method: Optional[str] = None


class CheckoutPayload(BaseModel):
    items: List[CartLineItem] = []
    pricing: Optional[PricingBreakdown] = None  # client copy; recomputed on submit
    coupon_code: Optional[str] = None
    delivery_method: Optional[str] = None
    delivery_address: Address = Address()
    billing_address: Optional[Address] = None
    same_as_delivery: bool = True


class OrderItem(BaseModel):
    product_id: str
    end_user_id: str
    name: str
    price: float
    quantity: int
    duration: RentalDuration = RentalDuration.DAY
    from_date: date
    to_date: date


class RentalOrder(BaseModel):
    id: Optional[str] = None
    customer_id: str
    end_user_ids: List[str]
    items: List[OrderItem]
    start_date: date
    end_date: date
    pricing: PricingBreakdown
    total_price: float = Field(..., ge=0)
    deposit: float = 0
    late_fee: float = 0
    status: OrderStatus = OrderStatus.QUOTATION
    payment_status: PaymentStatus = PaymentStatus.PENDING
    delivery_method: str
    addresses: dict
    coupon_code: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StatusUpdate(BaseModel):
    status: OrderStatus


class Notification(BaseModel):
    id: Optional[str] = None
    user_id: str
    type: NotificationType
    message: str
    read: bool = False
    scheduled_date: Optional[datetime] = None
    order_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SessionClaims(BaseModel):
    sub: str
    email: str
    name: str
    role: Role
    iat: int
    exp: int
