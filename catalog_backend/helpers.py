"""
Text normalization, slugs, validation and pagination helpers.
"""

from __future__ import annotations

import math
import re
import uuid
from typing import Callable, Optional
from urllib.parse import unquote

from catalog_backend.errors import ApiError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6
META_DESCRIPTION_LENGTH = 160


def normalize_text(text: str) -> str:
    return text.lower().replace("-", " ").strip()


def normalize_for_storage(text: str) -> str:
    """Lowercase, dashes to spaces, collapsed whitespace."""
    return re.sub(r"\s+", " ", text.lower().replace("-", " ")).strip()


def robust_normalize(text: Optional[str]) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", unquote(text).lower()).strip()


def create_slug(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower())
    return slug.strip("-") or "item"


def unique_slug(base: str, exists: Callable[[str], bool]) -> str:
    """Return ``base`` or the first free ``base-N`` according to ``exists``."""
    root = create_slug(base)
    candidate = root
    counter = 1
    while exists(candidate):
        candidate = f"{root}-{counter}"
        counter += 1
    return candidate


def create_meta_description(description: Optional[str]) -> str:
    if not description:
        return ""
    text = re.sub(r"<[^>]*>", "", description)
    text = re.sub(r"[^\w\s]", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) > META_DESCRIPTION_LENGTH:
        return text[:META_DESCRIPTION_LENGTH] + "..."
    return text


def clean_search_query(query: str) -> str:
    text = re.sub(r"<[^>]*>", "", query.lower())
    return text.replace("&nbsp;", " ").strip()


def is_uuid(value: object) -> bool:
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def validate_email(email: Optional[str]) -> str:
    email = (email or "").lower().strip()
    if not EMAIL_PATTERN.match(email):
        raise ApiError(400, "Invalid email address")
    return email


def validate_password(password: Optional[str]) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ApiError(
            400, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    if not re.search(r"[A-Za-z]", password) or not re.search(r"\d", password):
        raise ApiError(400, "Password must contain at least one letter and one number")
    return password


def validate_text(text: Optional[str], field: str = "Text") -> str:
    if text is None or not str(text).strip():
        raise ApiError(400, f"{field} is required")
    return str(text)


def parse_positive_int(value: Optional[str], default: int) -> int:
    """Lenient integer parsing for query strings; bad input gives ``default``."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def parse_price(value: Optional[str], field: str = "price") -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ApiError(400, f"Invalid {field} format")


def page_info(total: int, page: int, limit: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "totalPages": total_pages,
        "currentPage": page,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }
