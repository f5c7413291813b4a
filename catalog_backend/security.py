"""
Password hashing, JWT cookies and the authentication dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import bcrypt
import jwt
from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from catalog_backend.config import Settings, get_settings
from catalog_backend.db import User
from catalog_backend.dependencies import get_session
from catalog_backend.errors import ApiError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"

ADMIN = "Admin"
MANAGER = "Manager"
SALES = "Sales"
PRODUCT_MANAGER = "ProductManager"
ROLES = (ADMIN, MANAGER, SALES, PRODUCT_MANAGER)

# bcrypt only looks at the first 72 bytes.
_BCRYPT_MAX_BYTES = 72


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    rounds = rounds or get_settings().bcrypt_rounds
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8")[:_BCRYPT_MAX_BYTES], salt).decode(
        "utf-8"
    )


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(
            password.encode("utf-8")[:_BCRYPT_MAX_BYTES], hashed.encode("utf-8")
        )
    except ValueError:
        return False


def create_access_token(user: User, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    payload = {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "exp": datetime.now(timezone.utc)
        + timedelta(minutes=settings.access_token_expiry_minutes),
    }
    return jwt.encode(payload, settings.access_token_secret, algorithm=JWT_ALGORITHM)


def create_refresh_token(user_id: str, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    payload = {
        "id": user_id,
        "exp": datetime.now(timezone.utc)
        + timedelta(days=settings.refresh_token_expiry_days),
    }
    return jwt.encode(payload, settings.refresh_token_secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, settings: Optional[Settings] = None) -> dict:
    settings = settings or get_settings()
    try:
        return jwt.decode(
            token, settings.access_token_secret, algorithms=[JWT_ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        raise ApiError(401, "Access token expired")
    except jwt.InvalidTokenError:
        raise ApiError(401, "Invalid access token")


def set_auth_cookies(
    response: Response,
    access_token: str,
    refresh_token: str,
    settings: Optional[Settings] = None,
) -> None:
    settings = settings or get_settings()
    max_age = settings.cookie_max_age_days * 24 * 60 * 60
    for name, value in ((REFRESH_COOKIE, refresh_token), (ACCESS_COOKIE, access_token)):
        response.set_cookie(
            name,
            value,
            max_age=max_age,
            httponly=True,
            secure=settings.is_production,
            samesite="lax",
        )


def clear_auth_cookies(response: Response, settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(
            name, httponly=True, secure=settings.is_production, samesite="lax"
        )


def _token_from_request(request: Request) -> Optional[str]:
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


def current_user(request: Request, session: Session = Depends(get_session)) -> User:
    token = _token_from_request(request)
    if not token:
        raise ApiError(401, "Unauthorized request")
    payload = decode_access_token(token)
    user = session.get(User, payload.get("id"))
    if user is None:
        logger.warning("Access token for unknown user %s", payload.get("id"))
        raise ApiError(401, "Invalid access token")
    return user


def require_roles(*roles: str) -> Callable[..., User]:
    """Dependency that lets only users holding one of ``roles`` through."""

    def dependency(user: User = Depends(current_user)) -> User:
        if user.role not in roles:
            raise ApiError(403, "You do not have permission to perform this action")
        return user

    return dependency
