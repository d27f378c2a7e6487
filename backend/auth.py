import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from passlib.context import CryptContext
from pydantic import EmailStr, TypeAdapter, ValidationError as SchemaError
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import SECRET_KEY, ALGORITHM, SESSION_MAX_AGE_MINUTES
from database import create_document
from errors import Conflict, InvalidCredential, NotFound, PersistenceError, ValidationError
from schemas import RegisterPayload, Role, SessionClaims

logger = logging.getLogger(__name__)
audit = logging.getLogger("audit")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 6
REQUIRED_REGISTRATION_FIELDS = ("name", "email", "password", "role")

email_adapter = TypeAdapter(EmailStr)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def identity_of(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "email": user["email"],
        "name": user["name"],
        "role": user["role"],
    }


async def authenticate(db, email: Optional[str], password: Optional[str]) -> dict:
    """Verify credentials and return the identity projection {id, email, name, role}.

    Raises ``NotFound`` for an unknown email and ``InvalidCredential`` for a
    wrong password. Callers facing the user should not tell the two apart.
    """
    email = normalize_email(email)
    if not email or not password:
        audit.info("login.rejected reason=missing_credentials email=%s", email or "-")
        raise InvalidCredential("Email and password are required")

    try:
        user = await db["user"].find_one({"email": email})
    except PyMongoError as e:
        logger.error("User lookup failed for %s: %s", email, e)
        raise PersistenceError("Authentication is temporarily unavailable") from e

    if not user:
        audit.info("login.failed reason=not_found email=%s", email)
        raise NotFound("User not found")
    if not verify_password(password, user.get("password", "")):
        audit.info("login.failed reason=bad_password email=%s", email)
        raise InvalidCredential("Invalid password")

    audit.info("login.succeeded email=%s role=%s", email, user["role"])
    return identity_of(user)


# Session tokens

def issue_session_token(identity: dict, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    expire = now + timedelta(minutes=SESSION_MAX_AGE_MINUTES)
    claims = {
        "sub": identity["id"],
        "email": identity["email"],
        "name": identity["name"],
        "role": Role(identity["role"]).value,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def decode_session_token(token: Optional[str]) -> Optional[SessionClaims]:
    """Return the verified claims, or None for a missing, expired, tampered
    or otherwise unusable token."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return SessionClaims(**payload)
    except (JWTError, SchemaError) as e:
        logger.debug("Rejected session token: %s", e)
        return None


# Registration

def validate_registration(payload: RegisterPayload) -> dict:
    for field in REQUIRED_REGISTRATION_FIELDS:
        value = getattr(payload, field)
        if value is None or not str(value).strip():
            raise ValidationError(
                "Missing required fields: name, email, password, and role are required",
                field=field,
            )

    try:
        role = Role(payload.role)
    except ValueError:
        raise ValidationError('Invalid role. Must be either "customer" or "enduser"', field="role")

    try:
        email = email_adapter.validate_python(normalize_email(payload.email))
    except SchemaError:
        raise ValidationError("Please provide a valid email address", field="email")
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long", field="password"
        )

    user_doc = {
        "name": payload.name.strip(),
        "email": email,
        "role": role.value,
    }
    if payload.phone:
        user_doc["phone"] = payload.phone.strip()
    if payload.address:
        user_doc["address"] = payload.address.strip()

    if role is Role.ENDUSER:
        if not (payload.company_name or "").strip():
            raise ValidationError(
                "Company name and business type are required for end users", field="company_name"
            )
        if not (payload.business_type or "").strip():
            raise ValidationError(
                "Company name and business type are required for end users", field="business_type"
            )
        user_doc["company_name"] = payload.company_name.strip()
        user_doc["business_type"] = payload.business_type.strip()
    return user_doc


def sanitize_user(user: dict) -> dict:
    data = {
        "id": str(user["_id"]),
        "name": user["name"],
        "email": user["email"],
        "role": user["role"],
        "phone": user.get("phone"),
        "address": user.get("address"),
    }
    if user["role"] == Role.ENDUSER.value:
        data["company_name"] = user.get("company_name")
        data["business_type"] = user.get("business_type")
    return data


async def register_user(db, payload: RegisterPayload) -> dict:
    user_doc = validate_registration(payload)

    # check-then-insert is not atomic; the unique index backs it up
    existing = await db["user"].find_one({"email": user_doc["email"]})
    if existing:
        logger.warning("Registration attempt with existing email %s", user_doc["email"])
        raise Conflict("A user with this email already exists")

    user_doc["password"] = hash_password(payload.password)
    try:
        user_doc = await create_document("user", user_doc)
    except PersistenceError as e:
        if isinstance(e.__cause__, DuplicateKeyError):
            raise Conflict("A user with this email already exists") from e
        raise PersistenceError("Failed to register user. Please try again.") from e

    audit.info("register.succeeded email=%s role=%s id=%s", user_doc["email"], user_doc["role"], user_doc["_id"])
    return sanitize_user(user_doc)

