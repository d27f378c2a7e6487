from typing import NamedTuple, Optional

from schemas import Role


class NavEntry(NamedTuple):
    label: str
    destination: str
    icon: str


ANONYMOUS_NAVIGATION = (
    NavEntry("Home", "/", "home"),
    NavEntry("Login", "/login", "log-in"),
    NavEntry("Register", "/register", "user-plus"),
)

CUSTOMER_NAVIGATION = (
    NavEntry("Home", "/", "home"),
    NavEntry("Shop", "/shop", "store"),
    NavEntry("My Rentals", "/my-rentals", "calendar"),
    NavEntry("Cart", "/cart", "shopping-cart"),
)

ENDUSER_NAVIGATION = (
    NavEntry("Dashboard", "/enduser", "bar-chart"),
    NavEntry("Products", "/enduser/products", "package"),
    NavEntry("Orders", "/enduser/orders", "calendar"),
    NavEntry("Transfer", "/enduser/transfer", "truck"),
    NavEntry("Customers", "/enduser/customers", "user"),
)


def navigation_for(role: Optional[Role]) -> list[NavEntry]:
    if role is None:
        return list(ANONYMOUS_NAVIGATION)
    if role is Role.CUSTOMER:
        return list(CUSTOMER_NAVIGATION)
    if role is Role.ENDUSER:
        return list(ENDUSER_NAVIGATION)
    raise ValueError(f"No navigation defined for role {role!r}")


def is_active_path(href: str, pathname: str) -> bool:
    if href == "/":
        return pathname == "/"
    return pathname.startswith(href)
