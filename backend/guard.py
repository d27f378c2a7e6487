"""
Role-based route protection.

``evaluate`` is the decision itself: a pure function of the verified session
claims and the requested path. ``RouteGuardMiddleware`` only gathers its
inputs from the request and turns a ``Redirect`` into an HTTP response.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urlencode

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse

from auth import decode_session_token
from config import LOGIN_PATH, SESSION_COOKIE_NAME
from schemas import Role, SessionClaims

logger = logging.getLogger(__name__)

# First matching prefix wins
ROUTE_REQUIREMENTS: list[tuple[str, Role]] = [
    ("/shop", Role.CUSTOMER),
    ("/cart", Role.CUSTOMER),
    ("/checkout", Role.CUSTOMER),
    ("/orders", Role.CUSTOMER),
    ("/my-rentals", Role.CUSTOMER),
    ("/enduser", Role.ENDUSER),
    ("/dashboard", Role.ENDUSER),
]


@dataclass(frozen=True)
class Allow:
    pass


@dataclass(frozen=True)
class Redirect:
    target: str


Decision = Union[Allow, Redirect]


def _matches(prefix: str, path: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def required_role(path: str) -> Optional[Role]:
    for prefix, role in ROUTE_REQUIREMENTS:
        if _matches(prefix, path):
            return role
    return None


def login_redirect(destination: Optional[str] = None) -> Redirect:
    if not destination:
        return Redirect(LOGIN_PATH)
    return Redirect(f"{LOGIN_PATH}?{urlencode({'callbackUrl': destination})}")


def evaluate(claims: Optional[SessionClaims], path: str, destination: Optional[str] = None) -> Decision:
    role = required_role(path)
    if role is None:
        return Allow()
    if claims is None or claims.role is not role:
        return login_redirect(destination or path)
    return Allow()


def token_from_request(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization")
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1]
    return request.cookies.get(SESSION_COOKIE_NAME)


class RouteGuardMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if required_role(path) is None:
            return await call_next(request)
        try:
            claims = decode_session_token(token_from_request(request))
            decision = evaluate(claims, path, str(request.url))
        except Exception:
            logger.exception("Route guard failed for %s", path)
            decision = login_redirect()

        if isinstance(decision, Redirect):
            logger.info("Redirecting %s %s to %s", request.method, path, decision.target)
            return RedirectResponse(url=decision.target)
        return await call_next(request)
