"""
Caller identity.

Authentication itself happens in the identity service; this module only
verifies the short-lived HS256 access token it issues and exposes the
verified user id and role to the routes.

Token claims:
    sub      — user id
    role     — customer | shop_owner | driver | admin
    shop_id  — optional, scopes a shop_owner to one shop
    name     — optional display name
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from fastapi import Header

from config import settings
from domain.enums import UserRole
from domain.errors import DomainError, PermissionDeniedError, UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: str
    shop_id: str | None = None
    name: str | None = None

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.SHOP_OWNER.value, UserRole.DRIVER.value, UserRole.ADMIN.value)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def _require_secret() -> str:
    if not settings.jwt_secret:
        raise DomainError("Server auth misconfigured (JWT secret missing).", status_code=500)
    return settings.jwt_secret


def decode_access_token(token: str) -> dict:
    secret = _require_secret()
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Access token expired.")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid access token.")


def issue_access_token(
    *,
    user_id: str,
    role: str = UserRole.CUSTOMER.value,
    shop_id: str | None = None,
    name: str | None = None,
) -> str:
    now = _now_utc()
    exp = now.replace(microsecond=0) + timedelta(minutes=settings.jwt_access_ttl_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": user_id,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if shop_id:
        payload["shop_id"] = shop_id
    if name:
        payload["name"] = name
    return jwt.encode(payload, _require_secret(), algorithm="HS256")


async def require_caller(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> Caller:
    """Dependency: verified caller from the Bearer token."""
    token = _parse_bearer_token(authorization)
    if not token:
        raise UnauthorizedError("Authentication required. Provide Authorization: Bearer <token>.")

    payload = decode_access_token(token)
    role = payload.get("role") or UserRole.CUSTOMER.value
    try:
        UserRole(role)
    except ValueError:
        logger.warning(f"Token for user {payload.get('sub')} carries unknown role {role!r}")
        raise PermissionDeniedError(f"Unknown role: {role}")

    return Caller(
        user_id=str(payload["sub"]),
        role=role,
        shop_id=payload.get("shop_id"),
        name=payload.get("name"),
    )

