from typing import Iterable, NamedTuple, Optional

from config import TAX_RATE
from errors import ValidationError
from schemas import CartLineItem, PricingBreakdown


class Discount(NamedTuple):
    kind: str  # "percent" | "flat"
    amount: float


class DeliveryMethod(NamedTuple):
    id: str
    name: str
    time: str
    price: float


DISCOUNT_CODES = {
    "WELCOME10": Discount("percent", 10),
    "SAVE20": Discount("percent", 20),
    "FLAT100": Discount("flat", 100),
}

DELIVERY_METHODS = {
    "standard": DeliveryMethod("standard", "Standard Delivery", "3-5 days", 0),
    "express": DeliveryMethod("express", "Express Delivery", "1-2 days", 50),
    "same-day": DeliveryMethod("same-day", "Same Day Delivery", "Same day", 100),
}


def lookup_discount(code: Optional[str]) -> Optional[Discount]:
    if not code:
        return None
    return DISCOUNT_CODES.get(code.strip().upper())


def discount_amount(subtotal: float, code: Optional[str]) -> float:
    discount = lookup_discount(code)
    if discount is None:
        return 0.0
    if discount.kind == "percent":
        amount = subtotal * discount.amount / 100
    else:
        amount = discount.amount
    return min(amount, subtotal)


def delivery_charge(method: Optional[str]) -> float:
    if not method:
        return 0.0
    try:
        return float(DELIVERY_METHODS[method].price)
    except KeyError:
        raise ValidationError(f"Unknown delivery method: {method}", field="delivery_method")


def calculate(
    line_items: Iterable[CartLineItem],
    discount_code: Optional[str] = None,
    delivery_method: Optional[str] = None,
    tax_rate: float = TAX_RATE,
) -> PricingBreakdown:
    """Price a cart. Pure: identical inputs always give an identical breakdown."""
    subtotal = float(sum(item.price * item.quantity for item in line_items))
    discount = discount_amount(subtotal, discount_code)
    charge = delivery_charge(delivery_method)
    tax = subtotal * tax_rate
    total = max(0.0, subtotal - discount + charge + tax)
    return PricingBreakdown(
        subtotal=subtotal,
        discount=discount,
        delivery_charge=charge,
        tax=tax,
        total=total,
    )
